"""Field normalization from raw input shapes to CanonicalRecord.

Three input shapes are reconciled into one record type:
- JSON rows keyed by canonical field name,
- spreadsheet rows paired positionally with a localized (Chinese) header row,
- call-sheet push query parameters keyed by PBX parameter names.

Every function here is pure and fails fast with MissingFieldError on the
first absent required field; no partial batch is ever returned.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from app.core.exceptions import MissingFieldError
from app.features.ingest.schemas import CANONICAL_FIELDS, CanonicalRecord


@dataclass(frozen=True, slots=True)
class FieldMapping:
    """One (source name -> canonical field) pair."""

    source: str
    field: str


# Spreadsheet export headers, in canonical field order.
SPREADSHEET_FIELD_MAPPING: tuple[FieldMapping, ...] = (
    FieldMapping("通话ID", "call_id"),
    FieldMapping("主叫号码", "caller_number"),
    FieldMapping("被叫号码", "callee_number"),
    FieldMapping("呼叫类型", "call_type"),
    FieldMapping("呼叫时间", "call_time"),
    FieldMapping("座席接听时间", "agent_call_time"),
    FieldMapping("部门", "department"),
    FieldMapping("座席姓名", "agent_name"),
    FieldMapping("座席工号", "agent_id"),
    FieldMapping("通话状态", "call_status"),
    FieldMapping("技能组", "skill_group"),
    FieldMapping("结束节点", "end_node"),
    FieldMapping("按键轨迹", "key_track"),
    FieldMapping("省", "province"),
    FieldMapping("市", "city"),
    FieldMapping("PBX名称", "pbx_name"),
)

# Call-sheet push parameters. call_id comes from the configured key parameter.
PUSH_FIELD_MAPPING: tuple[FieldMapping, ...] = (
    FieldMapping("CallNo", "caller_number"),
    FieldMapping("CalledNo", "callee_number"),
    FieldMapping("CallType", "call_type"),
    FieldMapping("Ring", "call_time"),
    FieldMapping("Begin", "agent_call_time"),
    FieldMapping("Department", "department"),
    FieldMapping("AgentName", "agent_name"),
    FieldMapping("Agent", "agent_id"),
    FieldMapping("State", "call_status"),
    FieldMapping("Queue", "skill_group"),
    FieldMapping("EndNode", "end_node"),
    FieldMapping("IVRKEY", "key_track"),
    FieldMapping("Province", "province"),
    FieldMapping("District", "city"),
    FieldMapping("PBX", "pbx_name"),
)


def _validate_mapping(mapping: Sequence[FieldMapping], expected: set[str]) -> None:
    fields = [m.field for m in mapping]
    if len(set(fields)) != len(fields) or set(fields) != expected:
        raise RuntimeError(f"Field mapping does not cover canonical fields exactly: {fields}")


_validate_mapping(SPREADSHEET_FIELD_MAPPING, set(CANONICAL_FIELDS))
_validate_mapping(PUSH_FIELD_MAPPING, set(CANONICAL_FIELDS) - {"call_id"})


def cell_text(value: Any) -> str:
    """Render a raw value as text; None becomes the empty string."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    # Spreadsheet integers often arrive as floats (13800138000.0)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def normalize_json_rows(rows: Sequence[Mapping[str, Any]]) -> list[CanonicalRecord]:
    """Translate JSON rows keyed by canonical field name.

    Args:
        rows: Submitted rows, in order.

    Returns:
        One CanonicalRecord per row, in input order. Extra keys are ignored.

    Raises:
        MissingFieldError: On the first canonical field absent from the first
            offending row.
    """
    records: list[CanonicalRecord] = []
    for idx, row in enumerate(rows):
        for field in CANONICAL_FIELDS:
            if field not in row:
                raise MissingFieldError(field, row_index=idx)
        records.append(CanonicalRecord(**{f: cell_text(row[f]) for f in CANONICAL_FIELDS}))
    return records


def normalize_tabular_rows(
    headers: Sequence[Any],
    rows: Sequence[Sequence[Any]],
    mapping: Sequence[FieldMapping] = SPREADSHEET_FIELD_MAPPING,
) -> list[CanonicalRecord]:
    """Translate spreadsheet rows paired positionally with a header row.

    The header row is checked once, before any data row is read. Unmapped
    headers are dropped, short rows are padded with empty cells, and rows
    that are blank in every cell are skipped.

    Args:
        headers: Header row (localized field names).
        rows: Data rows.
        mapping: Header to canonical field table.

    Returns:
        One CanonicalRecord per non-blank data row, in sheet order.

    Raises:
        MissingFieldError: Naming the first localized header not found.
    """
    positions: dict[str, int] = {}
    for idx, header in enumerate(headers):
        positions.setdefault(cell_text(header).strip(), idx)

    columns: dict[str, int] = {}
    for entry in mapping:
        if entry.source not in positions:
            raise MissingFieldError(entry.source)
        columns[entry.field] = positions[entry.source]

    records: list[CanonicalRecord] = []
    for row in rows:
        cells = [cell_text(value).strip() for value in row]
        if not any(cells):
            continue
        values = {
            field: cells[pos] if pos < len(cells) else "" for field, pos in columns.items()
        }
        records.append(CanonicalRecord(**values))
    return records


def normalize_push_params(
    params: Mapping[str, str],
    key_param: str = "CallSheetID",
) -> CanonicalRecord:
    """Translate one call-sheet push into a CanonicalRecord.

    Only the key parameter is required; other absent parameters are empty.

    Raises:
        MissingFieldError: If the key parameter is absent or blank.
    """
    call_id = (params.get(key_param) or "").strip()
    if not call_id:
        raise MissingFieldError(key_param)

    values = {entry.field: params.get(entry.source, "") for entry in PUSH_FIELD_MAPPING}
    return CanonicalRecord(call_id=call_id, **values)
