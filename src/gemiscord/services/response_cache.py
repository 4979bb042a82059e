"""
Short-lived memoization of non-tool generation results.

Only requests without tool calling are cached; tool results such as search
go stale too quickly.
"""

import asyncio
import hashlib
import json
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from ..ai.types import GenerationResult

logger = logging.getLogger(__name__)

CACHE_TTL_SECONDS = 600
CACHE_MAX_ENTRIES = 100


@dataclass
class CacheEntry:
    key: str
    response: GenerationResult
    inserted_at: float


class ResponseCache:
    """Bounded TTL cache shared by all concurrent requests of the process."""

    def __init__(
        self,
        ttl_seconds: float = CACHE_TTL_SECONDS,
        max_entries: int = CACHE_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._lock = asyncio.Lock()
        # Insertion ordered; the first key is the oldest entry
        self._entries: Dict[str, CacheEntry] = {}

    @staticmethod
    def key(
        model: str,
        system_prompt: str,
        user_message: str,
        temperature: float,
        max_output_tokens: int,
    ) -> str:
        """Deterministic digest of the request fields that shape the answer."""
        payload = json.dumps(
            [model, system_prompt, user_message, temperature, max_output_tokens],
            ensure_ascii=True,
        )
        return hashlib.sha256(payload.encode("ascii")).hexdigest()

    def _expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.inserted_at >= self.ttl_seconds

    async def get(self, key: str) -> Optional[GenerationResult]:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._expired(entry, self._clock()):
                del self._entries[key]
                return None
            return entry.response.model_copy(update={"cached": True}, deep=True)

    async def put(self, key: str, response: GenerationResult) -> None:
        async with self._lock:
            now = self._clock()
            self._entries.pop(key, None)
            if len(self._entries) >= self.max_entries:
                self._evict(now)
            self._entries[key] = CacheEntry(
                key=key,
                response=response.model_copy(update={"cached": False}, deep=True),
                inserted_at=now,
            )

    def _evict(self, now: float) -> None:
        expired = [k for k, e in self._entries.items() if self._expired(e, now)]
        for k in expired:
            del self._entries[k]

        evicted = 0
        while len(self._entries) >= self.max_entries:
            del self._entries[next(iter(self._entries))]
            evicted += 1

        if expired or evicted:
            logger.debug(
                f"🧹 Cache eviction: {len(expired)} expired, {evicted} oldest removed"
            )

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
