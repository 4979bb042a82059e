"""
Repository layer for counter storage.

Both stores implement the CounterStore protocol: the SQL store for durable,
multi-process counters and the memory store for tests and database-free runs.
"""

from .base import CounterStore
from .counter_repository import SqlCounterStore
from .memory_counter_store import MemoryCounterStore

__all__ = [
    "CounterStore",
    "MemoryCounterStore",
    "SqlCounterStore",
]
