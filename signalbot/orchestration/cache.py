"""
Time-bucketed acquisition cache.

Keyed by (tickers, usernames, max_count, time bucket). Concurrent identical
requests share one in-flight fetch instead of each calling upstream.
"""

import asyncio
import logging
import time
from typing import Callable, Dict, Iterable, Optional, Tuple, Union

from signalbot.errors import InputError
from signalbot.orchestration.acquisition import AcquisitionCoordinator, AcquisitionResult
from signalbot.services.sources import FetchTargets

logger = logging.getLogger(__name__)

CacheKey = Tuple[tuple, tuple, int, int]


def _detached(result: AcquisitionResult) -> AcquisitionResult:
    """Copy with its own lists, so callers never share a cached result."""
    return AcquisitionResult(posts=list(result.posts), source=result.source, degraded=list(result.degraded))


class CachedAcquisition:
    def __init__(self, coordinator: AcquisitionCoordinator, bucket_seconds: int,
                 clock: Callable[[], float] = time.time):
        if bucket_seconds <= 0:
            raise ValueError("bucket_seconds must be positive")
        self.coordinator = coordinator
        self.bucket_seconds = bucket_seconds
        self._clock = clock
        self._lock = asyncio.Lock()
        self._entries: Dict[CacheKey, AcquisitionResult] = {}
        self._inflight: Dict[CacheKey, asyncio.Task] = {}

    def key_for(self, targets: FetchTargets, max_count: int) -> CacheKey:
        bucket = int(self._clock() // self.bucket_seconds)
        return (tuple(sorted(targets.tickers)), tuple(sorted(targets.usernames)), max_count, bucket)

    async def fetch_posts(self, targets, max_count: int, budget: Optional[float] = None):
        result = await self.fetch_with_report(targets, max_count, budget)
        return result.posts

    async def fetch_with_report(self, targets: Union[FetchTargets, Iterable[str]], max_count: int,
                                budget: Optional[float] = None) -> AcquisitionResult:
        parsed = targets if isinstance(targets, FetchTargets) else FetchTargets.parse(targets)
        if max_count <= 0:
            raise InputError(f"max_count must be positive, got {max_count}")
        key = self.key_for(parsed, max_count)

        async with self._lock:
            self._evict_stale(key[3])
            cached = self._entries.get(key)
            if cached is not None:
                logger.debug(f"Acquisition cache hit for {key}")
                return _detached(cached)
            task = self._inflight.get(key)
            if task is None:
                task = asyncio.ensure_future(self._build(key, parsed, max_count, budget))
                self._inflight[key] = task

        # A cancelled waiter must not cancel the build other waiters share
        return _detached(await asyncio.shield(task))

    async def _build(self, key: CacheKey, targets: FetchTargets, max_count: int,
                     budget: Optional[float]) -> AcquisitionResult:
        try:
            result = await self.coordinator.fetch_with_report(targets, max_count, budget)
            # Empty results are retried on the next request
            if result.posts:
                async with self._lock:
                    self._entries[key] = result
            return result
        finally:
            self._inflight.pop(key, None)

    def _evict_stale(self, current_bucket: int) -> None:
        for key in [k for k in self._entries if k[3] < current_bucket]:
            del self._entries[key]

    def clear(self) -> None:
        self._entries.clear()
