"""Ingest feature: call-record imports with idempotent chunked upserts."""

from app.features.ingest.dedup import DedupResult, IdempotencyCache
from app.features.ingest.orchestrator import IngestionOrchestrator
from app.features.ingest.routes import router
from app.features.ingest.schemas import CanonicalRecord, ImportOutcome
from app.features.ingest.service import UpsertResult, upsert_call_records

__all__ = [
    "CanonicalRecord",
    "DedupResult",
    "IdempotencyCache",
    "ImportOutcome",
    "IngestionOrchestrator",
    "UpsertResult",
    "router",
    "upsert_call_records",
]
