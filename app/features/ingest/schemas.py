"""Pydantic schemas for the ingest API and pipeline."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.features.ingest.models import ImportStatus


class CanonicalRecord(BaseModel):
    """Normalized call record, the unit of persistence.

    All attributes are text; an empty string is a valid value, an absent
    attribute is not (the normalizer rejects it before this model is built).
    """

    model_config = ConfigDict(frozen=True)

    call_id: str
    caller_number: str
    callee_number: str
    call_type: str
    call_time: str
    agent_call_time: str
    department: str
    agent_name: str
    agent_id: str
    call_status: str
    skill_group: str
    end_node: str
    key_track: str
    province: str
    city: str
    pbx_name: str


CANONICAL_FIELDS: tuple[str, ...] = tuple(CanonicalRecord.model_fields)


class CallRecordImportRequest(BaseModel):
    """Request body for POST /ingest/call-records.

    Rows are kept as raw mappings so a missing key surfaces as
    ``Missing required field: <name>`` rather than a generic 422.
    """

    rows: list[dict[str, Any]] = Field(..., description="Call records keyed by canonical field name")


class ImportResponse(BaseModel):
    """Response body for the synchronous import endpoints."""

    message: str = Field(..., description="Human-readable outcome")
    rows_imported: int = Field(..., ge=0, description="Rows committed")
    duration_ms: float = Field(..., ge=0, description="Processing duration in milliseconds")


class ImportOutcome(BaseModel):
    """Immutable audit entry describing one import attempt."""

    model_config = ConfigDict(frozen=True)

    table_name: str
    rows_imported: int = Field(0, ge=0)
    status: ImportStatus
    error_message: str | None = None

    @model_validator(mode="after")
    def validate_failure_has_message(self) -> "ImportOutcome":
        """Failed outcomes must carry error detail; successes must not."""
        if self.status is ImportStatus.FAILED and not self.error_message:
            raise ValueError("failed outcome requires error_message")
        if self.status is ImportStatus.SUCCESS and self.error_message is not None:
            raise ValueError("successful outcome cannot carry error_message")
        return self

    @classmethod
    def success(cls, table_name: str, rows_imported: int) -> "ImportOutcome":
        """Build a success outcome."""
        return cls(table_name=table_name, rows_imported=rows_imported, status=ImportStatus.SUCCESS)

    @classmethod
    def failed(cls, table_name: str, error_message: str) -> "ImportOutcome":
        """Build a failure outcome."""
        return cls(
            table_name=table_name,
            rows_imported=0,
            status=ImportStatus.FAILED,
            error_message=error_message,
        )


class ImportLogEntry(BaseModel):
    """One row of the import audit log."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    table_name: str
    rows_imported: int
    status: ImportStatus
    error_message: str | None = None
    created_at: datetime
