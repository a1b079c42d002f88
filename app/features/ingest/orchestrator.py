"""Ingestion orchestrator: normalize, dedupe, upsert, audit, respond.

Each import attempt walks
Received -> Validating -> (Rejected | Deduplicating) -> (ShortCircuited |
Upserting) -> (Committed | RolledBack) -> Logged -> Responded,
and every transition is logged as ``ingest.<path>.<state>``.

JSON and spreadsheet imports persist before responding and skip
deduplication. Call-sheet pushes are gated by the idempotency cache and
persisted by the background worker after the response.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping, Sequence
from enum import Enum
from functools import lru_cache
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import Settings, get_settings
from app.core.database import get_session_maker
from app.core.exceptions import BadRequestError, UpsertError, ValidationError
from app.core.logging import get_logger
from app.features.ingest.audit import ImportAuditLogger
from app.features.ingest.dedup import DedupResult, IdempotencyCache, get_callsheet_cache
from app.features.ingest.normalizer import (
    normalize_json_rows,
    normalize_push_params,
    normalize_tabular_rows,
)
from app.features.ingest.schemas import CanonicalRecord
from app.features.ingest.spreadsheet import read_first_sheet
from app.features.ingest.service import import_call_records
from app.features.ingest.worker import CallSheetWorker, PersistenceJob, get_callsheet_worker

logger = get_logger(__name__)

ACK_TOKEN = "success"


class IngestState(str, Enum):
    """States of one import attempt."""

    RECEIVED = "received"
    VALIDATING = "validating"
    REJECTED = "rejected"
    DEDUPLICATING = "deduplicating"
    SHORT_CIRCUITED = "short_circuited"
    UPSERTING = "upserting"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    LOGGED = "logged"
    RESPONDED = "responded"


def _transition(path: str, state: IngestState, **fields: Any) -> None:
    logger.info(f"ingest.{path}.{state.value}", **fields)


class IngestionOrchestrator:
    """Composes normalizer, cache, upsert engine, audit logger and worker."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession] | None = None,
        audit_logger: ImportAuditLogger | None = None,
        cache: IdempotencyCache[str] | None = None,
        worker: CallSheetWorker | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._session_maker = session_maker
        self._audit_logger = audit_logger or ImportAuditLogger(session_maker)
        self._cache = cache
        self._worker = worker
        self.settings = settings or get_settings()

    @property
    def cache(self) -> IdempotencyCache[str]:
        return self._cache or get_callsheet_cache()

    @property
    def worker(self) -> CallSheetWorker:
        return self._worker or get_callsheet_worker()

    # =========================================================================
    # Synchronous import paths
    # =========================================================================

    async def import_json(self, rows: Sequence[Mapping[str, Any]]) -> int:
        """Import rows keyed by canonical field name.

        Returns:
            Rows imported.

        Raises:
            MissingFieldError: Before any store access if a field is absent.
            BadRequestError: If the batch exceeds INGEST_MAX_ROWS.
            UpsertError: After rollback and a failed audit entry.
        """
        path = "json"
        _transition(path, IngestState.RECEIVED, row_count=len(rows))
        self._check_row_limit(path, len(rows))
        records = self._validate(path, lambda: normalize_json_rows(rows))
        return await self._persist(path, records)

    async def import_spreadsheet(self, content: bytes) -> int:
        """Import the first sheet of an .xlsx upload.

        Raises:
            BadRequestError: If the workbook cannot be read.
            MissingFieldError: Naming the first absent localized header.
            UpsertError: After rollback and a failed audit entry.
        """
        path = "spreadsheet"
        _transition(path, IngestState.RECEIVED, size_bytes=len(content))
        sheet = await asyncio.to_thread(read_first_sheet, content)
        self._check_row_limit(path, len(sheet.rows))
        records = self._validate(path, lambda: normalize_tabular_rows(sheet.headers, sheet.rows))
        return await self._persist(path, records)

    # =========================================================================
    # Fire-and-acknowledge path
    # =========================================================================

    async def acknowledge_call_sheet(self, params: Mapping[str, str]) -> str:
        """Accept one call-sheet push and return the acknowledgement token.

        Persistence happens on the worker after this returns; a duplicate key
        inside the TTL window gets the same token without a second write.

        Raises:
            MissingFieldError: If the key parameter is absent.
            asyncio.QueueFull: If the worker queue is at capacity; the key
                is released so the client's retry is treated as fresh.
        """
        path = "callsheet"
        key_param = self.settings.callsheet_key_param
        _transition(path, IngestState.RECEIVED)
        record = self._validate(path, lambda: [normalize_push_params(params, key_param)])[0]

        _transition(path, IngestState.DEDUPLICATING, key=record.call_id)
        if self.cache.check_and_mark(record.call_id) is DedupResult.DUPLICATE:
            _transition(path, IngestState.SHORT_CIRCUITED, key=record.call_id)
            return ACK_TOKEN

        try:
            self.worker.enqueue(PersistenceJob(key=record.call_id, records=(record,)))
        except asyncio.QueueFull:
            self.cache.discard(record.call_id)
            logger.error("ingest.callsheet.queue_full", key=record.call_id)
            raise

        _transition(path, IngestState.UPSERTING, key=record.call_id, detached=True)
        _transition(path, IngestState.RESPONDED, key=record.call_id)
        return ACK_TOKEN

    # =========================================================================
    # Helpers
    # =========================================================================

    def _check_row_limit(self, path: str, row_count: int) -> None:
        limit = self.settings.ingest_max_rows
        if row_count > limit:
            _transition(path, IngestState.REJECTED, reason="too_many_rows", row_count=row_count)
            raise BadRequestError(
                message=f"Too many rows: {row_count} (limit {limit})",
                details={"row_count": row_count, "limit": limit},
            )

    def _validate(
        self, path: str, normalize: Callable[[], list[CanonicalRecord]]
    ) -> list[CanonicalRecord]:
        _transition(path, IngestState.VALIDATING)
        try:
            records: list[CanonicalRecord] = normalize()
        except ValidationError as e:
            _transition(path, IngestState.REJECTED, error=e.message, details=e.details)
            raise
        return records

    async def _persist(self, path: str, records: list[CanonicalRecord]) -> int:
        _transition(path, IngestState.UPSERTING, record_count=len(records))
        # Runs to completion even if the caller is cancelled; the task owns
        # its own session.
        task = asyncio.ensure_future(
            import_call_records(
                self._session_maker or get_session_maker(),
                records,
                self._audit_logger,
            )
        )
        try:
            rows = await asyncio.shield(task)
        except UpsertError as e:
            _transition(path, IngestState.ROLLED_BACK, error=e.message, error_code=e.code)
            _transition(path, IngestState.LOGGED, status="failed")
            raise
        _transition(path, IngestState.COMMITTED, rows_imported=rows)
        _transition(path, IngestState.LOGGED, status="success")
        return rows


@lru_cache
def get_ingestion_orchestrator() -> IngestionOrchestrator:
    """FastAPI dependency returning the process-wide orchestrator."""
    return IngestionOrchestrator()
