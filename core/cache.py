from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    value: Any
    timestamp: float


class TTLCache:
    """
    Async TTL cache with single-flight refresh.

    Concurrent readers of an expired key share one in-flight producer task;
    failures are not cached.
    """

    def __init__(
        self,
        ttl: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._inflight: dict[str, asyncio.Task[Any]] = {}

    def peek(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None or self._is_expired(entry):
            return None
        return entry.value

    def _is_expired(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.timestamp >= self.ttl

    async def get(self, key: str, producer: Callable[[], Awaitable[Any]]) -> Any:
        entry = self._entries.get(key)
        if entry is not None and not self._is_expired(entry):
            return entry.value

        task = self._inflight.get(key)
        if task is None:
            logger.debug("Cache miss for %s, fetching", key)
            task = asyncio.ensure_future(self._refresh(key, producer))
            self._inflight[key] = task
        # A cancelled reader must not cancel the fetch other readers wait on.
        return await asyncio.shield(task)

    async def _refresh(self, key: str, producer: Callable[[], Awaitable[Any]]) -> Any:
        try:
            value = await producer()
            self._entries[key] = CacheEntry(value=value, timestamp=self._clock())
            return value
        finally:
            self._inflight.pop(key, None)

    def invalidate(self, key: str | None = None) -> None:
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return self.peek(key) is not None
