"""Ingest API routes for call-record imports and call-sheet pushes."""

import time

from fastapi import APIRouter, Depends, File, Query, Request, UploadFile, status
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import get_db
from app.core.exceptions import BadRequestError
from app.core.logging import get_logger
from app.features.ingest.audit import list_import_logs
from app.features.ingest.models import ImportStatus
from app.features.ingest.orchestrator import IngestionOrchestrator, get_ingestion_orchestrator
from app.features.ingest.schemas import CallRecordImportRequest, ImportLogEntry, ImportResponse
from app.features.ingest.spreadsheet import XLSX_CONTENT_TYPES
from app.shared.schemas import PaginatedResponse, PaginationParams

logger = get_logger(__name__)

router = APIRouter(prefix="/ingest", tags=["ingest"])


def _import_response(rows_imported: int, start_time: float) -> ImportResponse:
    return ImportResponse(
        message=f"Successfully imported {rows_imported} rows",
        rows_imported=rows_imported,
        duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
    )


async def get_xlsx_upload(file: UploadFile = File(...)) -> bytes:
    """Validate the upload looks like an .xlsx workbook and read it.

    Raises:
        BadRequestError: On a non-.xlsx file or one over the size limit.
    """
    settings = get_settings()
    filename = (file.filename or "").strip().lower()
    content_type = (file.content_type or "").strip().lower()

    try:
        if not filename.endswith(".xlsx") and content_type not in XLSX_CONTENT_TYPES:
            raise BadRequestError(
                message="Only .xlsx spreadsheets are accepted",
                details={"filename": file.filename, "content_type": file.content_type},
            )
        content = await file.read(settings.ingest_max_upload_bytes + 1)
    finally:
        await file.close()

    if len(content) > settings.ingest_max_upload_bytes:
        raise BadRequestError(
            message=f"Upload exceeds {settings.ingest_max_upload_bytes} bytes",
        )
    return content


@router.post(
    "/call-records",
    response_model=ImportResponse,
    status_code=status.HTTP_200_OK,
    summary="Import call records from JSON",
    description="""
Upsert call records keyed by `call_id`.

Every row must carry all 16 canonical fields (empty strings allowed). The
first missing field aborts the whole batch with 400 and nothing is written.

**Idempotency:** re-importing the same rows updates them in place.

**Atomicity:** all rows commit together or none do.
""",
)
async def import_call_records_json(
    request: CallRecordImportRequest,
    orchestrator: IngestionOrchestrator = Depends(get_ingestion_orchestrator),
) -> ImportResponse:
    """Import JSON rows.

    Args:
        request: Body with the rows to import.
        orchestrator: Ingestion orchestrator dependency.

    Returns:
        Success message with the imported row count.
    """
    start_time = time.perf_counter()
    rows_imported = await orchestrator.import_json(request.rows)
    return _import_response(rows_imported, start_time)


@router.post(
    "/call-records/upload",
    response_model=ImportResponse,
    status_code=status.HTTP_200_OK,
    summary="Import call records from a spreadsheet",
    description="""
Upsert call records from the first sheet of an `.xlsx` upload.

Row 1 must hold the localized headers (通话ID, 主叫号码, ..., 省, 市, PBX名称).
Extra columns are ignored; a missing header fails with 400 naming it.
""",
)
async def import_call_records_upload(
    content: bytes = Depends(get_xlsx_upload),
    orchestrator: IngestionOrchestrator = Depends(get_ingestion_orchestrator),
) -> ImportResponse:
    """Import an uploaded spreadsheet.

    Args:
        content: Raw workbook bytes.
        orchestrator: Ingestion orchestrator dependency.

    Returns:
        Success message with the imported row count.
    """
    start_time = time.perf_counter()
    rows_imported = await orchestrator.import_spreadsheet(content)
    return _import_response(rows_imported, start_time)


@router.get(
    "/callsheet",
    response_class=PlainTextResponse,
    status_code=status.HTTP_200_OK,
    summary="Acknowledge a call-sheet push",
    description="""
Fire-and-acknowledge endpoint for PBX call-sheet pushes.

Requires the `CallSheetID` query parameter. Responds `success` immediately;
the record is persisted afterwards. Repeats of the same `CallSheetID` within
the dedup window are acknowledged without a second write.
""",
)
async def acknowledge_call_sheet(
    request: Request,
    orchestrator: IngestionOrchestrator = Depends(get_ingestion_orchestrator),
) -> PlainTextResponse:
    """Acknowledge a push; persistence is detached from this response.

    Args:
        request: Incoming request (query parameters carry the call sheet).
        orchestrator: Ingestion orchestrator dependency.

    Returns:
        Plain-text ``success``.
    """
    token = await orchestrator.acknowledge_call_sheet(dict(request.query_params))
    return PlainTextResponse(token)


@router.get(
    "/import-logs",
    response_model=PaginatedResponse[ImportLogEntry],
    summary="List import audit entries",
)
async def get_import_logs(
    page: int = Query(1, ge=1, description="Page number (1-indexed)"),
    page_size: int = Query(50, ge=1, le=1000, description="Items per page"),
    status_filter: ImportStatus | None = Query(None, alias="status", description="Filter by outcome"),
    db: AsyncSession = Depends(get_db),
) -> PaginatedResponse[ImportLogEntry]:
    """Page through import outcomes, newest first.

    Args:
        page: Page number.
        page_size: Items per page.
        status_filter: Optional outcome filter.
        db: Async database session from dependency.

    Returns:
        Paginated audit entries.
    """
    return await list_import_logs(
        db,
        PaginationParams(page=page, page_size=page_size),
        status=status_filter,
    )
