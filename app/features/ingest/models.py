"""ORM models for ingested call records and the import audit log.

Grain: CallRecord is uniquely keyed by call_id (business key). Every
attribute is stored as text exactly as received; no date or numeric
coercion happens at this layer.
"""

from __future__ import annotations

import datetime
from enum import Enum

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base
from app.shared.models import TimestampMixin


class ImportStatus(str, Enum):
    """Outcome of one import attempt."""

    SUCCESS = "success"
    FAILED = "failed"


class CallRecord(TimestampMixin, Base):
    """One call-center interaction.

    Attributes:
        id: Surrogate primary key.
        call_id: Unique business key; upserts conflict on this column.
        caller_number: Calling party number.
        callee_number: Called party number.
        call_type: Inbound / outbound / ... as reported by the PBX.
        call_time: Call start time, verbatim.
        agent_call_time: Time the agent picked up, verbatim.
        department: Owning department.
        agent_name: Agent display name.
        agent_id: Agent work number.
        call_status: Final call state.
        skill_group: Queue / skill group.
        end_node: IVR node where the call ended.
        key_track: IVR key presses.
        province: Caller province.
        city: Caller city.
        pbx_name: Originating PBX.
    """

    __tablename__ = "call_record"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    call_id: Mapped[str] = mapped_column(String(128), unique=True, index=True)
    caller_number: Mapped[str] = mapped_column(String(64), default="")
    callee_number: Mapped[str] = mapped_column(String(64), default="")
    call_type: Mapped[str] = mapped_column(String(64), default="")
    call_time: Mapped[str] = mapped_column(String(64), default="")
    agent_call_time: Mapped[str] = mapped_column(String(64), default="")
    department: Mapped[str] = mapped_column(String(255), default="")
    agent_name: Mapped[str] = mapped_column(String(255), default="")
    agent_id: Mapped[str] = mapped_column(String(64), default="")
    call_status: Mapped[str] = mapped_column(String(64), default="")
    skill_group: Mapped[str] = mapped_column(String(255), default="")
    end_node: Mapped[str] = mapped_column(String(255), default="")
    key_track: Mapped[str] = mapped_column(Text, default="")
    province: Mapped[str] = mapped_column(String(64), default="")
    city: Mapped[str] = mapped_column(String(64), default="")
    pbx_name: Mapped[str] = mapped_column(String(255), default="")

    __table_args__ = (Index("ix_call_record_agent_id", "agent_id"),)


class ImportLog(Base):
    """Append-only audit entry, one per import attempt.

    Never updated or deleted by the application.

    Attributes:
        id: Primary key.
        table_name: Target table of the import.
        rows_imported: Rows committed (0 on failure).
        status: success | failed.
        error_message: Failure detail, null on success.
        created_at: When the attempt finished.
    """

    __tablename__ = "import_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    table_name: Mapped[str] = mapped_column(String(64))
    rows_imported: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(20), index=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('success', 'failed')",
            name="ck_import_log_valid_status",
        ),
        CheckConstraint("rows_imported >= 0", name="ck_import_log_rows_non_negative"),
    )
