"""Shared models, schemas and pagination helpers."""

from app.shared.models import TimestampMixin
from app.shared.schemas import PaginatedResponse, PaginationParams
from app.shared.utils import paginate_response

__all__ = [
    "PaginatedResponse",
    "PaginationParams",
    "TimestampMixin",
    "paginate_response",
]
