"""Detached persistence for fire-and-acknowledge call-sheet pushes.

The request path enqueues a job and responds; a single consumer task drains
the queue, running the transactional upsert and the audit entry for each
job. Outcomes are only logged: the pushing client never sees them.
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass
from functools import lru_cache

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import get_settings
from app.core.database import get_session_maker
from app.core.exceptions import UpsertError
from app.core.logging import get_logger
from app.features.ingest.audit import ImportAuditLogger
from app.features.ingest.schemas import CanonicalRecord
from app.features.ingest.service import import_call_records

logger = get_logger(__name__)


@dataclass(frozen=True)
class PersistenceJob:
    """Records accepted under one idempotency key."""

    key: str
    records: tuple[CanonicalRecord, ...]


class CallSheetWorker:
    """Queue plus single consumer task for call-sheet persistence."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession] | None = None,
        audit_logger: ImportAuditLogger | None = None,
        maxsize: int = 0,
    ) -> None:
        self._session_maker = session_maker
        self._audit_logger = audit_logger or ImportAuditLogger(session_maker)
        self._queue: asyncio.Queue[PersistenceJob] = asyncio.Queue(maxsize)
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def enqueue(self, job: PersistenceJob) -> None:
        """Hand a job to the consumer without waiting.

        Raises:
            asyncio.QueueFull: If the queue is at capacity.
        """
        self._queue.put_nowait(job)
        logger.debug("ingest.worker.job_enqueued", key=job.key, pending=self._queue.qsize())

    def start(self) -> None:
        """Start the consumer task on the running loop."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(), name="callsheet-worker")
        logger.info("ingest.worker.started")

    async def join(self) -> None:
        """Wait until every enqueued job has been processed."""
        await self._queue.join()

    async def stop(self, drain_timeout: float = 10.0) -> None:
        """Drain outstanding jobs (bounded by ``drain_timeout``) and stop."""
        if self._task is None:
            return
        try:
            async with asyncio.timeout(drain_timeout):
                await self._queue.join()
        except TimeoutError:
            logger.warning("ingest.worker.drain_timed_out", pending=self._queue.qsize())
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("ingest.worker.stopped")

    async def _run(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self.process(job)
            except Exception as e:
                logger.error(
                    "ingest.worker.job_crashed",
                    key=job.key,
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
            finally:
                self._queue.task_done()

    async def process(self, job: PersistenceJob) -> None:
        """Persist one job; store failures are logged, not raised."""
        session_maker = self._session_maker or get_session_maker()
        with structlog.contextvars.bound_contextvars(ingest_path="callsheet", key=job.key):
            try:
                rows = await import_call_records(session_maker, job.records, self._audit_logger)
            except UpsertError as e:
                logger.error(
                    "ingest.worker.job_failed",
                    error=e.message,
                    error_code=e.code,
                )
                return
            logger.info("ingest.worker.job_completed", rows_imported=rows)


@lru_cache
def get_callsheet_worker() -> CallSheetWorker:
    """Process-wide call-sheet worker."""
    return CallSheetWorker(maxsize=get_settings().callsheet_queue_maxsize)
