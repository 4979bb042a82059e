"""
Tests for the monthly search quota gate.
"""

import asyncio
from datetime import datetime, UTC

import pytest

from gemiscord.config import ConfigManager
from gemiscord.exceptions import CounterStoreError
from gemiscord.repositories import MemoryCounterStore
from gemiscord.services import QuotaHealth, SearchQuotaGate, search_usage_key
from gemiscord.services.search_quota_service import month_id, next_month_start

from conftest import FakeClock, make_settings


def epoch_ms(*args) -> int:
    return int(datetime(*args, tzinfo=UTC).timestamp() * 1000)


class BrokenStore(MemoryCounterStore):
    async def get(self, key: str) -> int:
        raise CounterStoreError("database is locked")


class TestMonthHelpers:
    def test_month_id(self):
        assert month_id(datetime(2025, 6, 15, tzinfo=UTC)) == "2025-06"

    def test_next_month_start(self):
        assert next_month_start(datetime(2025, 6, 15, 12, tzinfo=UTC)) == datetime(
            2025, 7, 1, tzinfo=UTC
        )

    def test_next_month_start_in_december(self):
        assert next_month_start(datetime(2025, 12, 31, 23, 59, tzinfo=UTC)) == datetime(
            2026, 1, 1, tzinfo=UTC
        )


class TestSearchQuotaGate:
    """Tests for SearchQuotaGate."""

    @pytest.mark.asyncio
    async def test_fresh_month_is_available(self, search_gate):
        budget = await search_gate.budget()

        assert budget.month == "2025-06"
        assert budget.used == 0
        assert budget.remaining == 2000
        assert budget.resets_at == datetime(2025, 7, 1, tzinfo=UTC)
        assert await search_gate.available() is True

    @pytest.mark.asyncio
    async def test_consume_counts_searches(self, search_gate):
        assert await search_gate.consume() == 1
        assert await search_gate.consume() == 2

        assert (await search_gate.budget()).used == 2

    @pytest.mark.asyncio
    async def test_exhausted_quota_is_unavailable(self, search_gate, store):
        await store.set(search_usage_key("2025-06"), 2000)

        assert await search_gate.available() is False
        budget = await search_gate.budget()
        assert budget.remaining == 0
        assert budget.available is False

    @pytest.mark.asyncio
    async def test_one_search_left_is_available(self, search_gate, store):
        await store.set(search_usage_key("2025-06"), 1999)

        assert await search_gate.available() is True
        assert await search_gate.consume() == 2000
        assert await search_gate.available() is False

    @pytest.mark.asyncio
    async def test_budget_rolls_over_with_the_month(self, store):
        clock = FakeClock(epoch_ms(2025, 6, 30, 23, 59, 59))
        config = ConfigManager(settings=make_settings())
        gate = SearchQuotaGate(store, config, clock=clock)
        await store.set(search_usage_key("2025-06"), 2000)
        assert await gate.available() is False

        clock.now = epoch_ms(2025, 7, 1, 0, 0, 1)

        budget = await gate.budget()
        assert budget.month == "2025-07"
        assert budget.used == 0
        assert await gate.available() is True

    @pytest.mark.asyncio
    async def test_concurrent_consumes_are_counted(self, search_gate):
        await asyncio.gather(*(search_gate.consume() for _ in range(25)))

        assert (await search_gate.budget()).used == 25

    @pytest.mark.asyncio
    async def test_zero_free_quota_is_never_available(self, store, clock):
        config = ConfigManager(settings=make_settings(brave_search={"free_quota": 0}))
        gate = SearchQuotaGate(store, config, clock=clock)

        assert await gate.available() is False

    @pytest.mark.asyncio
    async def test_status_reports_health(self, search_gate, store):
        status = await search_gate.status()
        assert status.health == QuotaHealth.HEALTHY
        assert status.budget.used == 0

        await store.set(search_usage_key("2025-06"), 2000)
        assert (await search_gate.status()).health == QuotaHealth.LIMITED

    @pytest.mark.asyncio
    async def test_status_is_unknown_when_store_fails(self, config, clock):
        gate = SearchQuotaGate(BrokenStore(clock=clock), config, clock=clock)

        status = await gate.status()

        assert status.health == QuotaHealth.UNKNOWN
        assert status.budget is None
        assert "database is locked" in status.error

    @pytest.mark.asyncio
    async def test_available_propagates_store_errors(self, config, clock):
        gate = SearchQuotaGate(BrokenStore(clock=clock), config, clock=clock)

        with pytest.raises(CounterStoreError):
            await gate.available()

    @pytest.mark.asyncio
    async def test_reset_clears_current_month(self, search_gate):
        await search_gate.consume()
        await search_gate.reset()

        assert (await search_gate.budget()).used == 0
