"""Batch upsert engine for call records.

One invocation writes every chunk inside a single transaction: either all
chunks commit or none do. Each chunk is one PostgreSQL
INSERT ... ON CONFLICT (call_id) DO UPDATE statement with bound parameters,
so re-importing the same records only overwrites identical data.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from typing import Any

from sqlalchemy import func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import get_settings
from app.core.exceptions import StoreUnavailableError, UpsertError
from app.core.logging import get_logger
from app.features.ingest.audit import ImportAuditLogger
from app.features.ingest.models import CallRecord
from app.features.ingest.schemas import CANONICAL_FIELDS, CanonicalRecord, ImportOutcome

logger = get_logger(__name__)

# asyncpg caps bind parameters per statement at 32767
MAX_CHUNK_SIZE = 32767 // len(CANONICAL_FIELDS)


@dataclass
class UpsertResult:
    """Result of a committed batch upsert."""

    rows_imported: int = 0
    chunk_count: int = 0


def chunked(records: Sequence[CanonicalRecord], size: int) -> Iterator[Sequence[CanonicalRecord]]:
    """Yield consecutive slices of at most ``size`` records, in input order."""
    if size <= 0:
        raise ValueError(f"chunk size must be positive, got {size}")
    for start in range(0, len(records), size):
        yield records[start : start + size]


def build_upsert_statement(rows: list[dict[str, Any]]) -> Any:
    """Build one multi-row upsert keyed on call_id.

    Args:
        rows: Canonical field dicts.

    Returns:
        INSERT ... ON CONFLICT (call_id) DO UPDATE statement.
    """
    insert_stmt = pg_insert(CallRecord).values(rows)
    set_: dict[str, Any] = {
        field: insert_stmt.excluded[field] for field in CANONICAL_FIELDS if field != "call_id"
    }
    set_["updated_at"] = func.now()
    return insert_stmt.on_conflict_do_update(index_elements=["call_id"], set_=set_)


async def _acquire_connection(db: AsyncSession) -> None:
    try:
        await db.connection()
    except (SQLAlchemyError, OSError) as e:
        logger.error(
            "ingest.upsert.connection_failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise StoreUnavailableError(e) from e


async def _rollback(db: AsyncSession) -> None:
    try:
        await db.rollback()
    except (SQLAlchemyError, OSError) as e:
        # The driver discards the transaction when the connection dies.
        logger.error(
            "ingest.upsert.rollback_failed",
            error=str(e),
            error_type=type(e).__name__,
        )


async def upsert_call_records(
    db: AsyncSession,
    records: Sequence[CanonicalRecord],
    chunk_size: int | None = None,
    timeout_seconds: float | None = None,
) -> UpsertResult:
    """Upsert records in ordered chunks inside one transaction.

    A call_id repeated within the batch is written once, carrying its last
    occurrence; one statement cannot update the same row twice.

    Args:
        db: Session with no transaction in progress.
        records: Validated canonical records.
        chunk_size: Rows per statement (defaults to INGEST_BATCH_SIZE).
        timeout_seconds: Bound on the whole attempt, connection acquisition
            included (defaults to INGEST_TIMEOUT_SECONDS).

    Returns:
        UpsertResult with rows processed and chunk statements issued.

    Raises:
        StoreUnavailableError: If no connection could be acquired.
        UpsertError: If any chunk or the commit fails, or the attempt times
            out. Nothing is committed in that case.
        ValueError: If chunk_size is out of range.
    """
    settings = get_settings()
    chunk_size = chunk_size or settings.ingest_batch_size
    timeout = timeout_seconds or settings.ingest_timeout_seconds
    if not 0 < chunk_size <= MAX_CHUNK_SIZE:
        raise ValueError(f"chunk size must be in 1..{MAX_CHUNK_SIZE}, got {chunk_size}")

    if not records:
        return UpsertResult()

    unique = list({record.call_id: record for record in records}.values())
    total_chunks = -(-len(unique) // chunk_size)
    logger.info(
        "ingest.upsert.started",
        batch_size=len(records),
        distinct_call_ids=len(unique),
        chunk_size=chunk_size,
        total_chunks=total_chunks,
    )

    chunk_count = 0
    try:
        async with asyncio.timeout(timeout):
            await _acquire_connection(db)
            for chunk in chunked(unique, chunk_size):
                await db.execute(build_upsert_statement([r.model_dump() for r in chunk]))
                chunk_count += 1
                logger.debug(
                    "ingest.upsert.chunk_written",
                    chunk=chunk_count,
                    total_chunks=total_chunks,
                    rows=len(chunk),
                )
            await db.commit()
    except StoreUnavailableError:
        raise
    except Exception as e:
        await _rollback(db)
        logger.error(
            "ingest.upsert.rolled_back",
            failed_chunk=chunk_count + 1,
            total_chunks=total_chunks,
            error=str(e) or type(e).__name__,
            error_type=type(e).__name__,
        )
        raise UpsertError(e) from e

    logger.info(
        "ingest.upsert.committed",
        rows_imported=len(records),
        chunk_count=chunk_count,
    )
    return UpsertResult(rows_imported=len(records), chunk_count=chunk_count)


async def import_call_records(
    session_maker: async_sessionmaker[AsyncSession],
    records: Sequence[CanonicalRecord],
    audit_logger: ImportAuditLogger,
    chunk_size: int | None = None,
) -> int:
    """Upsert records in a fresh session, then append the audit outcome.

    The audit entry is written after the import transaction has ended and
    outside it. A failed audit write never changes the result.

    Returns:
        Rows imported.

    Raises:
        UpsertError: After the failure has been recorded in the audit log.
    """
    table_name = get_settings().call_record_table
    try:
        async with session_maker() as session:
            result = await upsert_call_records(session, records, chunk_size=chunk_size)
    except UpsertError as e:
        await audit_logger.record(ImportOutcome.failed(table_name, e.message))
        raise

    await audit_logger.record(ImportOutcome.success(table_name, result.rows_imported))
    return result.rows_imported
