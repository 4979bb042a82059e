"""
Counter store interface.

The rate limit tracker and the search quota gate only talk to this protocol;
the backing store is chosen at startup.
"""

from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class CounterStore(Protocol):
    """Async integer counters with per-key TTL."""

    async def get(self, key: str) -> int:
        """Current value, 0 when the key is missing or expired."""
        ...

    async def set(self, key: str, value: int, ttl_ms: Optional[int] = None) -> None:
        ...

    async def increment(
        self, key: str, delta: int = 1, ttl_ms: Optional[int] = None
    ) -> int:
        """
        Atomically add ``delta`` and return the new value.

        A missing or expired key starts from zero and takes ``ttl_ms``.
        """
        ...

    async def has(self, key: str) -> bool:
        ...

    async def delete(self, key: str) -> None:
        ...
