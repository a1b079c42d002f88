"""Import audit log: one append-only entry per import attempt."""

from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.database import get_session_maker
from app.core.logging import get_logger
from app.features.ingest.models import ImportLog, ImportStatus
from app.features.ingest.schemas import ImportLogEntry, ImportOutcome
from app.shared.schemas import PaginatedResponse, PaginationParams
from app.shared.utils import paginate_response

logger = get_logger(__name__)


class ImportAuditLogger:
    """Best-effort writer for import outcomes.

    Each entry is written in its own session and transaction. Failures are
    logged and swallowed so they never replace the outcome already computed
    for the caller.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession] | None = None) -> None:
        self._session_maker = session_maker

    async def record(self, outcome: ImportOutcome) -> None:
        """Append one outcome entry.

        Args:
            outcome: Immutable outcome of the finished attempt.
        """
        session_maker = self._session_maker or get_session_maker()
        try:
            async with session_maker() as session:
                session.add(
                    ImportLog(
                        table_name=outcome.table_name,
                        rows_imported=outcome.rows_imported,
                        status=outcome.status.value,
                        error_message=outcome.error_message,
                    )
                )
                await session.commit()
        except Exception as e:
            logger.error(
                "ingest.audit.write_failed",
                table_name=outcome.table_name,
                status=outcome.status.value,
                rows_imported=outcome.rows_imported,
                error=str(e),
                error_type=type(e).__name__,
            )
            return

        logger.info(
            "ingest.audit.recorded",
            table_name=outcome.table_name,
            status=outcome.status.value,
            rows_imported=outcome.rows_imported,
        )


async def list_import_logs(
    db: AsyncSession,
    pagination: PaginationParams,
    status: ImportStatus | None = None,
) -> PaginatedResponse[ImportLogEntry]:
    """Page through the audit log, newest first."""
    stmt = select(ImportLog)
    if status is not None:
        stmt = stmt.where(ImportLog.status == status.value)

    total = (await db.execute(select(func.count()).select_from(stmt.subquery()))).scalar_one()

    stmt = (
        stmt.order_by(ImportLog.created_at.desc(), ImportLog.id.desc())
        .offset(pagination.offset)
        .limit(pagination.limit)
    )
    rows = (await db.execute(stmt)).scalars().all()

    return paginate_response(
        [ImportLogEntry.model_validate(row) for row in rows],
        total,
        pagination,
    )
