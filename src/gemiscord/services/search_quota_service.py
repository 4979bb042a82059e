"""
Monthly search budget for the Brave Search tool.

Independent of the model trackers: a model can be admissible while search is
not, and vice versa. The month is part of the counter key, so the budget
rolls over when the calendar month changes.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..config import ConfigManager
from ..exceptions import CounterStoreError
from ..repositories.base import CounterStore
from ..utils.clock import Clock, ms_to_datetime, now_ms
from .rate_limit_service import QuotaHealth

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchBudget:
    month: str
    used: int
    free_quota: int
    resets_at: datetime

    @property
    def remaining(self) -> int:
        return max(0, self.free_quota - self.used)

    @property
    def available(self) -> bool:
        return self.remaining > 0


@dataclass(frozen=True)
class SearchStatus:
    health: QuotaHealth
    budget: Optional[SearchBudget] = None
    error: Optional[str] = None


def month_id(timestamp: datetime) -> str:
    return timestamp.strftime("%Y-%m")


def next_month_start(timestamp: datetime) -> datetime:
    start = timestamp.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if start.month == 12:
        return start.replace(year=start.year + 1, month=1)
    return start.replace(month=start.month + 1)


def search_usage_key(month: str) -> str:
    return f"search:usage:{month}"


class SearchQuotaGate:
    """Checks and consumes the monthly free search quota."""

    def __init__(
        self, store: CounterStore, config: ConfigManager, clock: Clock = now_ms
    ):
        self.store = store
        self.config = config
        self.clock = clock

    def _key(self) -> str:
        return search_usage_key(month_id(ms_to_datetime(self.clock())))

    async def budget(self) -> SearchBudget:
        now = ms_to_datetime(self.clock())
        month = month_id(now)
        used = await self.store.get(search_usage_key(month))
        return SearchBudget(
            month=month,
            used=used,
            free_quota=self.config.settings.brave_search.free_quota,
            resets_at=next_month_start(now),
        )

    async def available(self) -> bool:
        return (await self.budget()).available

    async def consume(self) -> int:
        """Count one successful search. Returns the month's new total."""
        used = await self.store.increment(
            self._key(), 1, ttl_ms=self.config.settings.rate_limiting.time_windows.month
        )
        free_quota = self.config.settings.brave_search.free_quota
        logger.debug(f"🔍 Search quota used: {used}/{free_quota}")
        if used >= free_quota:
            logger.warning(f"⚠️ Monthly search quota exhausted ({used}/{free_quota})")
        return used

    async def status(self) -> SearchStatus:
        try:
            budget = await self.budget()
        except CounterStoreError as e:
            logger.warning(f"⚠️ Search quota status unavailable: {e}")
            return SearchStatus(health=QuotaHealth.UNKNOWN, error=str(e))

        health = QuotaHealth.HEALTHY if budget.available else QuotaHealth.LIMITED
        return SearchStatus(health=health, budget=budget)

    async def reset(self) -> None:
        await self.store.delete(self._key())
        logger.info("🔄 Reset monthly search counter")
