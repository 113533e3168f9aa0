"""TTL cache for aggregated context, keyed by (user, strategy, blueprint).

Entries are evicted oldest-inserted first once capacity is exceeded; reads do
not refresh an entry's position. Two callers racing on the same cold key may
both aggregate; request-level coalescing lives in ``single_flight``.
"""

import threading
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from cardgen.core.logging import get_logger
from cardgen.core.schemas_generation import AggregatedContext

logger = get_logger(__name__)

CacheKey = tuple[str, str, str]


@dataclass(frozen=True)
class CachedContext:
    key: CacheKey
    context: AggregatedContext
    timestamp: float


class ContextCache:
    def __init__(
        self,
        ttl_seconds: float = 300.0,
        max_entries: int = 100,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._entries: dict[CacheKey, CachedContext] = {}
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    @staticmethod
    def make_key(user_id: str, scope_id: str, schema_type: str) -> CacheKey:
        return (user_id, scope_id, schema_type)

    def get(self, key: CacheKey) -> AggregatedContext | None:
        """Return a fresh entry or None. Expired entries are dropped."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if self._clock() - entry.timestamp >= self._ttl:
                del self._entries[key]
                self._misses += 1
                return None
            self._hits += 1
            return entry.context

    def put(self, key: CacheKey, context: AggregatedContext) -> None:
        with self._lock:
            # Re-inserting moves the key to the newest position
            self._entries.pop(key, None)
            self._entries[key] = CachedContext(key=key, context=context, timestamp=self._clock())
            while len(self._entries) > self._max_entries:
                oldest = next(iter(self._entries))
                del self._entries[oldest]
                logger.debug(f"Evicted context cache entry {oldest}")

    async def get_or_populate(
        self,
        key: CacheKey,
        populate: Callable[[], Awaitable[AggregatedContext]],
    ) -> AggregatedContext:
        """Return the cached context for key, aggregating on miss or expiry."""
        cached = self.get(key)
        if cached is not None:
            logger.info(f"Using cached context for key {key}")
            return cached

        logger.info(f"Fetching fresh context for key {key}")
        # Populate outside the lock
        context = await populate()
        self.put(key, context)
        return context

    def invalidate(self, user_id: str, scope_id: str | None = None) -> int:
        """Drop every entry for a user, optionally only within one strategy."""
        with self._lock:
            doomed = [
                k for k in self._entries
                if k[0] == user_id and (scope_id is None or k[1] == scope_id)
            ]
            for k in doomed:
                del self._entries[k]
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def stats(self) -> dict[str, Any]:
        with self._lock:
            size, hits, misses = len(self._entries), self._hits, self._misses
        total = hits + misses
        return {
            "size": size,
            "hits": hits,
            "misses": misses,
            "hit_rate": round(hits / total, 3) if total > 0 else 0.0,
        }
