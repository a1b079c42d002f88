"""Process-local idempotency cache for call-sheet pushes.

An expiring-entry map guarded by one mutex. A key marked at time T is a
duplicate until T + ttl and fresh again from then on, whether or not the
write it gated ever completed. Entries expire lazily on access, and every
call sweeps out entries past their deadline so the map stays bounded by the
traffic of one TTL window.

Not shared between processes and not persisted across restarts.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Hashable
from enum import Enum
from functools import lru_cache
from typing import Generic, TypeVar

from app.core.config import get_settings
from app.core.logging import get_logger

logger = get_logger(__name__)

K = TypeVar("K", bound=Hashable)


class DedupResult(str, Enum):
    """Outcome of check_and_mark."""

    FRESH = "fresh"
    DUPLICATE = "duplicate"


class IdempotencyCache(Generic[K]):
    """Expiring set of recently seen request keys."""

    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
        self._ttl = ttl_seconds
        self._clock = clock
        self._deadlines: dict[K, float] = {}
        self._lock = threading.Lock()

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def check_and_mark(self, key: K) -> DedupResult:
        """Atomically test for ``key`` and mark it seen if absent.

        Args:
            key: Caller-supplied idempotency key.

        Returns:
            FRESH if the key was not live (now marked until now + ttl),
            DUPLICATE if it was marked within the last ttl seconds.
        """
        with self._lock:
            now = self._clock()
            self._sweep(now)
            if key in self._deadlines:
                return DedupResult.DUPLICATE
            self._deadlines[key] = now + self._ttl
            return DedupResult.FRESH

    def discard(self, key: K) -> None:
        """Forget ``key`` so its next submission is fresh."""
        with self._lock:
            self._deadlines.pop(key, None)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            deadline = self._deadlines.get(key)  # type: ignore[arg-type]
            return deadline is not None and deadline > self._clock()

    def __len__(self) -> int:
        with self._lock:
            self._sweep(self._clock())
            return len(self._deadlines)

    def clear(self) -> None:
        with self._lock:
            self._deadlines.clear()

    def _sweep(self, now: float) -> None:
        # dict preserves insertion order and deadlines grow monotonically with
        # a fixed ttl, so expired entries are always a prefix
        expired = 0
        for key, deadline in self._deadlines.items():
            if deadline > now:
                break
            expired += 1
        if expired:
            for key in list(self._deadlines)[:expired]:
                del self._deadlines[key]
            logger.debug("ingest.dedup.swept", expired=expired, live=len(self._deadlines))


@lru_cache
def get_callsheet_cache() -> IdempotencyCache[str]:
    """Process-wide cache gating call-sheet pushes."""
    return IdempotencyCache[str](ttl_seconds=get_settings().dedup_ttl_seconds)
