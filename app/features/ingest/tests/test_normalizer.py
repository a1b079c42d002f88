"""Unit tests for field normalization."""

import pytest

from app.core.exceptions import MissingFieldError
from app.features.ingest.normalizer import (
    PUSH_FIELD_MAPPING,
    SPREADSHEET_FIELD_MAPPING,
    cell_text,
    normalize_json_rows,
    normalize_push_params,
    normalize_tabular_rows,
)
from app.features.ingest.schemas import CANONICAL_FIELDS


class TestCellText:
    """Tests for raw value rendering."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (None, ""),
            ("abc", "abc"),
            (13800138000.0, "13800138000"),
            (1.5, "1.5"),
            (42, "42"),
        ],
    )
    def test_renders_text(self, value, expected):
        assert cell_text(value) == expected


class TestNormalizeJsonRows:
    """Tests for canonical-keyed JSON rows."""

    def test_complete_row_normalized(self, row_factory):
        records = normalize_json_rows([row_factory("1")])

        assert len(records) == 1
        assert records[0].call_id == "1"
        assert records[0].pbx_name == "pbx_name-1"

    def test_missing_field_names_first_absent_field(self):
        """Only call_id and caller_number supplied."""
        with pytest.raises(MissingFieldError) as exc_info:
            normalize_json_rows([{"call_id": "1", "caller_number": "x"}])

        assert exc_info.value.missing_field == "callee_number"
        assert exc_info.value.message == "Missing required field: callee_number"

    def test_fail_fast_on_first_offending_row(self, row_factory):
        """Only the first offending row is reported; no partial acceptance."""
        good = row_factory("1")
        bad_first = row_factory("2")
        del bad_first["province"]
        bad_second = row_factory("3")
        del bad_second["caller_number"]

        with pytest.raises(MissingFieldError) as exc_info:
            normalize_json_rows([good, bad_first, bad_second])

        assert exc_info.value.missing_field == "province"
        assert exc_info.value.row_index == 1

    def test_empty_string_is_present(self, row_factory):
        records = normalize_json_rows([row_factory("1", city="")])

        assert records[0].city == ""

    def test_null_value_becomes_empty_string(self, row_factory):
        records = normalize_json_rows([row_factory("1", department=None)])

        assert records[0].department == ""

    def test_extra_keys_ignored(self, row_factory):
        records = normalize_json_rows([row_factory("1", unexpected="x")])

        assert "unexpected" not in records[0].model_dump()

    def test_order_preserved(self, row_factory):
        records = normalize_json_rows([row_factory(str(i)) for i in range(5)])

        assert [r.call_id for r in records] == ["0", "1", "2", "3", "4"]

    def test_empty_batch(self):
        assert normalize_json_rows([]) == []


class TestNormalizeTabularRows:
    """Tests for spreadsheet rows with localized headers."""

    def test_rows_projected_through_mapping(self, localized_headers):
        row = [f"v{i}" for i in range(len(localized_headers))]

        records = normalize_tabular_rows(localized_headers, [row])

        assert records[0].call_id == "v0"
        assert records[0].province == "v13"
        assert records[0].pbx_name == "v15"

    def test_missing_header_fails_before_rows(self, localized_headers):
        """Header row lacks 省."""
        headers = [h for h in localized_headers if h != "省"]

        with pytest.raises(MissingFieldError) as exc_info:
            normalize_tabular_rows(headers, [["x"] * len(headers)])

        assert exc_info.value.missing_field == "省"
        assert exc_info.value.row_index is None

    def test_missing_header_fails_even_without_rows(self, localized_headers):
        with pytest.raises(MissingFieldError):
            normalize_tabular_rows(localized_headers[1:], [])

    def test_unmapped_headers_dropped_and_order_free(self, localized_headers):
        headers = ["备注", *reversed(localized_headers)]
        row = ["note", *reversed([f"v{i}" for i in range(len(localized_headers))])]

        records = normalize_tabular_rows(headers, [row])

        assert records[0].call_id == "v0"
        assert records[0].city == "v14"

    def test_short_row_padded_with_empty_cells(self, localized_headers):
        records = normalize_tabular_rows(localized_headers, [["id-1", "13800138000"]])

        assert records[0].call_id == "id-1"
        assert records[0].caller_number == "13800138000"
        assert records[0].pbx_name == ""

    def test_none_cells_become_empty(self, localized_headers):
        row = ["id-1"] + [None] * (len(localized_headers) - 1)

        records = normalize_tabular_rows(localized_headers, [row])

        assert records[0].skill_group == ""

    def test_headers_and_cells_stripped(self, localized_headers):
        headers = [f" {h} " for h in localized_headers]
        row = ["  id-1 "] + [""] * (len(localized_headers) - 1)

        records = normalize_tabular_rows(headers, [row])

        assert records[0].call_id == "id-1"

    def test_blank_rows_skipped(self, localized_headers):
        rows = [["id-1"], [None, None], [], ["id-2"]]

        records = normalize_tabular_rows(localized_headers, rows)

        assert [r.call_id for r in records] == ["id-1", "id-2"]

    def test_numeric_cells_rendered_as_text(self, localized_headers):
        records = normalize_tabular_rows(localized_headers, [[1001, 13800138000.0]])

        assert records[0].call_id == "1001"
        assert records[0].caller_number == "13800138000"


class TestNormalizePushParams:
    """Tests for call-sheet push parameters."""

    def test_full_push(self):
        params = {entry.source: f"p-{entry.field}" for entry in PUSH_FIELD_MAPPING}
        params["CallSheetID"] = "abc"

        record = normalize_push_params(params)

        assert record.call_id == "abc"
        assert record.caller_number == "p-caller_number"
        assert record.city == "p-city"

    def test_only_key_required(self):
        record = normalize_push_params({"CallSheetID": "abc"})

        assert record.call_id == "abc"
        assert record.agent_name == ""

    @pytest.mark.parametrize("params", [{}, {"CallSheetID": ""}, {"CallSheetID": "   "}])
    def test_missing_key_rejected(self, params):
        with pytest.raises(MissingFieldError) as exc_info:
            normalize_push_params(params)

        assert exc_info.value.missing_field == "CallSheetID"

    def test_custom_key_param(self):
        record = normalize_push_params({"SheetKey": "k1"}, key_param="SheetKey")

        assert record.call_id == "k1"


def test_mappings_cover_canonical_fields():
    """Every canonical field has exactly one spreadsheet header."""
    assert sorted(m.field for m in SPREADSHEET_FIELD_MAPPING) == sorted(CANONICAL_FIELDS)
    assert "省" in {m.source for m in SPREADSHEET_FIELD_MAPPING}
