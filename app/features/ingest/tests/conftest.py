"""Feature-specific test fixtures for ingest module."""

import io
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from openpyxl import Workbook

from app.features.ingest.audit import ImportAuditLogger
from app.features.ingest.dedup import IdempotencyCache
from app.features.ingest.normalizer import SPREADSHEET_FIELD_MAPPING
from app.features.ingest.orchestrator import IngestionOrchestrator
from app.features.ingest.schemas import CANONICAL_FIELDS, CanonicalRecord
from app.features.ingest.worker import CallSheetWorker


def make_row(call_id: str = "1", **overrides: Any) -> dict[str, Any]:
    """A JSON row with all 16 canonical fields."""
    row: dict[str, Any] = {field: f"{field}-{call_id}" for field in CANONICAL_FIELDS}
    row["call_id"] = call_id
    row.update(overrides)
    return row


def make_records(count: int) -> list[CanonicalRecord]:
    """``count`` distinct canonical records with call_id 0..count-1."""
    return [CanonicalRecord(**make_row(str(i))) for i in range(count)]


def spreadsheet_headers() -> list[str]:
    """Localized header row in canonical order."""
    return [entry.source for entry in SPREADSHEET_FIELD_MAPPING]


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSessionMaker:
    """Stands in for async_sessionmaker; every call yields the same session."""

    def __init__(self, session: Any) -> None:
        self.session = session
        self.calls = 0

    def __call__(self) -> "FakeSessionMaker":
        self.calls += 1
        return self

    async def __aenter__(self) -> Any:
        return self.session

    async def __aexit__(self, *exc_info: Any) -> bool:
        return False


def make_session() -> AsyncMock:
    """AsyncSession double; ``add`` is synchronous like the real one."""
    session = AsyncMock()
    session.add = MagicMock()
    return session


class RecordingAuditLogger(ImportAuditLogger):
    """Audit logger that keeps outcomes in memory."""

    def __init__(self) -> None:
        super().__init__()
        self.outcomes: list[Any] = []

    async def record(self, outcome: Any) -> None:
        self.outcomes.append(outcome)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store_session() -> AsyncMock:
    """Session used for upserts."""
    return make_session()


@pytest.fixture
def session_maker(store_session) -> FakeSessionMaker:
    return FakeSessionMaker(store_session)


@pytest.fixture
def audit_logger() -> RecordingAuditLogger:
    return RecordingAuditLogger()


@pytest.fixture
def cache(fake_clock) -> IdempotencyCache[str]:
    return IdempotencyCache[str](ttl_seconds=300, clock=fake_clock)


@pytest.fixture
def worker(session_maker, audit_logger) -> CallSheetWorker:
    return CallSheetWorker(session_maker=session_maker, audit_logger=audit_logger)


@pytest.fixture
def orchestrator(session_maker, audit_logger, cache, worker) -> IngestionOrchestrator:
    return IngestionOrchestrator(
        session_maker=session_maker,
        audit_logger=audit_logger,
        cache=cache,
        worker=worker,
    )


@pytest.fixture
def row_factory():
    """Factory for complete JSON rows."""
    return make_row


@pytest.fixture
def records_factory():
    """Factory for lists of canonical records."""
    return make_records


@pytest.fixture
def localized_headers() -> list[str]:
    return spreadsheet_headers()


@pytest.fixture
def xlsx_factory():
    """Build .xlsx bytes from a header row and data rows."""

    def build(headers: list[Any], rows: list[list[Any]]) -> bytes:
        workbook = Workbook()
        sheet = workbook.active
        sheet.append(headers)
        for row in rows:
            sheet.append(row)
        # A second sheet must be ignored
        workbook.create_sheet("ignored").append(["noise"])
        buffer = io.BytesIO()
        workbook.save(buffer)
        return buffer.getvalue()

    return build
