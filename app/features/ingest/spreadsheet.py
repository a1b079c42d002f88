"""Tabular reader for uploaded spreadsheets.

Reads the first sheet of an .xlsx workbook into a header row plus raw data
rows. Cells are kept as raw values; text rendering happens in the
normalizer.
"""

from __future__ import annotations

import io
import zipfile
from dataclasses import dataclass, field
from typing import Any

import pandas as pd

from app.core.exceptions import BadRequestError
from app.core.logging import get_logger

logger = get_logger(__name__)

XLSX_CONTENT_TYPES = {
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/octet-stream",
}


@dataclass
class TabularSheet:
    """Header row and data rows of one worksheet."""

    headers: list[Any]
    rows: list[list[Any]] = field(default_factory=list)


def read_first_sheet(content: bytes) -> TabularSheet:
    """Read the first worksheet; row 1 is the header row.

    Args:
        content: Raw .xlsx bytes.

    Returns:
        TabularSheet with NaN cells replaced by None.

    Raises:
        BadRequestError: If the bytes are not a readable workbook or the
            sheet has no header row.
    """
    try:
        frame = pd.read_excel(
            io.BytesIO(content),
            sheet_name=0,
            header=None,
            dtype=object,
            engine="openpyxl",
        )
    except (ValueError, KeyError, OSError, zipfile.BadZipFile) as e:
        logger.warning(
            "ingest.spreadsheet.read_failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise BadRequestError(
            message="Uploaded file is not a readable .xlsx workbook",
            details={"error": str(e)},
        ) from e

    if frame.empty:
        raise BadRequestError(message="Uploaded workbook has no header row")

    frame = frame.astype(object).where(pd.notna(frame), None)
    values: list[list[Any]] = frame.values.tolist()

    logger.debug(
        "ingest.spreadsheet.read_completed",
        columns=len(values[0]),
        data_rows=len(values) - 1,
    )
    return TabularSheet(headers=values[0], rows=values[1:])
