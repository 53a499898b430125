from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional, Tuple

from pool_aggregator.models import AggregationResult, CacheStats

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, str]


def cache_key(dex: str, chain: Optional[str]) -> CacheKey:
    return (dex.lower(), (chain or "all").lower())


@dataclass
class CacheEntry:
    result: AggregationResult
    expires_at: float


@dataclass
class KeyLock:
    lock: asyncio.Lock
    users: int = 0


class PoolCache:
    """In-process TTL cache of aggregation results keyed by (dex, chain).

    Entries are evicted lazily on lookup. Each key has its own lock, so
    lookups and stores for one key are serialized (a burst of misses runs the
    computation once) while other keys proceed independently. A key's lock
    exists only while some caller is using or waiting on it.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._locks: Dict[CacheKey, KeyLock] = {}
        self.hits = 0
        self.misses = 0

    def _acquire_slot(self, key: CacheKey) -> KeyLock:
        slot = self._locks.get(key)
        if slot is None:
            slot = self._locks[key] = KeyLock(asyncio.Lock())
        slot.users += 1
        return slot

    def _release_slot(self, key: CacheKey, slot: KeyLock) -> None:
        slot.users -= 1
        if slot.users == 0 and self._locks.get(key) is slot:
            del self._locks[key]

    def _lookup(self, key: CacheKey) -> Optional[AggregationResult]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            return None
        return entry.result

    async def get_or_compute(
        self,
        key: CacheKey,
        ttl_seconds: float,
        compute: Callable[[], Awaitable[AggregationResult]],
    ) -> AggregationResult:
        slot = self._acquire_slot(key)
        try:
            async with slot.lock:
                stored = self._lookup(key)
                if stored is not None:
                    self.hits += 1
                    logger.debug(f"Cache hit for {key}")
                    return stored.model_copy(deep=True, update={"cached": True})

                self.misses += 1
                result = await compute()
                if result.cacheable:
                    self._entries[key] = CacheEntry(
                        result=result.model_copy(deep=True, update={"cached": False}),
                        expires_at=self._clock() + ttl_seconds,
                    )
                else:
                    logger.info(f"Not caching {result.source} result with {result.count} pools for {key}")
                return result.model_copy(deep=True, update={"cached": False})
        finally:
            self._release_slot(key, slot)

    def clear(self) -> int:
        cleared = len(self._entries)
        self._entries.clear()
        logger.info(f"Cache cleared ({cleared} entries)")
        return cleared

    def stats(self) -> CacheStats:
        now = self._clock()
        live = sum(1 for entry in self._entries.values() if entry.expires_at > now)
        return CacheStats(keys=live, hits=self.hits, misses=self.misses)
