"""
gemiscord database models package.

- base: Common mixins
- counter: Quota counters shared by the rate limit tracker and search gate
"""

from .base import TimestampMixin
from .counter import QuotaCounter

__all__ = [
    "TimestampMixin",
    "QuotaCounter",
]
