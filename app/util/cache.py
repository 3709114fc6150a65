import asyncio
import copy
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from app.util.log import logger

Clock = Callable[[], float]

T = TypeVar("T")


class CacheMetrics:
    """Cache metrics tracker.

    Caches live on a single event loop, so plain counters are enough.
    """

    hits: int
    misses: int
    evictions: int
    coalesced: int

    def __init__(self):
        self.reset()

    def record_hit(self):
        self.hits += 1

    def record_miss(self):
        self.misses += 1

    def record_eviction(self):
        self.evictions += 1

    def record_coalesced(self):
        self.coalesced += 1

    def hit_rate(self) -> float:
        """Return cache hit rate as percentage (0-100)."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return (self.hits / total) * 100

    def reset(self):
        """Reset all metrics to zero."""
        self.hits = 0
        self.misses = 0
        self.evictions = 0
        self.coalesced = 0

    def as_dict(self) -> dict[str, float]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "coalesced": self.coalesced,
            "hitRate": round(self.hit_rate(), 2),
        }


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    key: str
    value: T
    created_at: float
    ttl: float

    def is_valid(self, now: float) -> bool:
        return now - self.created_at < self.ttl


class MetadataCache:
    """
    Get-or-compute cache with a TTL chosen per call site.

    Entries age out purely by TTL; staleness is checked on every read and there
    is no background sweep. Failed computations are never stored. Concurrent
    callers for a key that is already being computed wait for that computation
    instead of starting their own.
    """

    _entries: dict[str, CacheEntry[object]]
    _in_flight: dict[str, asyncio.Future[object]]
    _metrics: CacheMetrics
    _clock: Clock

    def __init__(self, clock: Clock = time.monotonic):
        self._entries = {}
        self._in_flight = {}
        self._metrics = CacheMetrics()
        self._clock = clock

    def _get_valid(self, key: str) -> CacheEntry[object] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if not entry.is_valid(self._clock()):
            del self._entries[key]
            self._metrics.record_eviction()
            return None
        return entry

    async def get_or_compute(
        self,
        key: str,
        ttl: float,
        compute: Callable[[], Awaitable[T]],
    ) -> tuple[T, bool]:
        """
        Return (value, was_cached).

        A valid entry is returned as a deep copy without calling compute.
        Otherwise compute runs (or an identical in-flight computation is
        awaited) and its result is stored with the given ttl.
        """
        while True:
            entry = self._get_valid(key)
            if entry is not None:
                self._metrics.record_hit()
                logger.debug("Cache hit", cache_key=key)
                return copy.deepcopy(entry.value), True  # pyright: ignore[reportReturnType]

            pending = self._in_flight.get(key)
            if pending is None:
                break

            self._metrics.record_coalesced()
            logger.debug("Waiting for in-flight computation", cache_key=key)
            try:
                value = await asyncio.shield(pending)
            except asyncio.CancelledError:
                if not pending.cancelled():
                    raise
                # The task computing this key was cancelled; try again ourselves
                continue
            return copy.deepcopy(value), False  # pyright: ignore[reportReturnType]

        self._metrics.record_miss()
        future: asyncio.Future[object] = asyncio.get_running_loop().create_future()
        self._in_flight[key] = future
        try:
            value = await compute()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # Mark retrieved so an error nobody waited for isn't logged by asyncio
            future.exception()
            raise
        finally:
            if self._in_flight.get(key) is future:
                del self._in_flight[key]

        self._entries[key] = CacheEntry(
            key=key, value=value, created_at=self._clock(), ttl=ttl
        )
        future.set_result(value)
        return copy.deepcopy(value), False

    def flush(self):
        self._entries = {}

    def get_metrics(self) -> CacheMetrics:
        """Return the metrics tracker for this cache."""
        return self._metrics

    def size(self) -> int:
        """Return current number of entries in cache, including not yet collected stale ones."""
        return len(self._entries)
