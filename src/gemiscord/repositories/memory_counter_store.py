"""
In-process counter store.

Used by tests and when the bot runs without a database. Counters live only as
long as the process.
"""

import asyncio
from typing import Dict, Optional, Tuple

from ..utils.clock import Clock, now_ms


class MemoryCounterStore:
    """Dictionary-backed CounterStore guarded by an asyncio lock."""

    def __init__(self, clock: Clock = now_ms):
        self._clock = clock
        self._lock = asyncio.Lock()
        # key -> (value, expires_at_ms or None)
        self._counters: Dict[str, Tuple[int, Optional[int]]] = {}

    def _live(self, key: str) -> Optional[Tuple[int, Optional[int]]]:
        entry = self._counters.get(key)
        if entry is None:
            return None
        _, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            del self._counters[key]
            return None
        return entry

    def _expiry(self, ttl_ms: Optional[int]) -> Optional[int]:
        return self._clock() + ttl_ms if ttl_ms else None

    async def get(self, key: str) -> int:
        async with self._lock:
            entry = self._live(key)
            return entry[0] if entry else 0

    async def set(self, key: str, value: int, ttl_ms: Optional[int] = None) -> None:
        async with self._lock:
            self._counters[key] = (value, self._expiry(ttl_ms))

    async def increment(
        self, key: str, delta: int = 1, ttl_ms: Optional[int] = None
    ) -> int:
        async with self._lock:
            entry = self._live(key)
            if entry is None:
                value, expires_at = delta, self._expiry(ttl_ms)
            else:
                value, expires_at = entry[0] + delta, entry[1]
            self._counters[key] = (value, expires_at)
            return value

    async def has(self, key: str) -> bool:
        async with self._lock:
            return self._live(key) is not None

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._counters.pop(key, None)

    async def cleanup_expired(self) -> int:
        async with self._lock:
            expired = [key for key in list(self._counters) if self._live(key) is None]
            return len(expired)

    def __len__(self) -> int:
        return len(self._counters)
