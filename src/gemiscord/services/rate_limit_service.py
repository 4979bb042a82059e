"""
Rate limit tracking for Gemini models.

The tracker owns no state of its own: every call reads the current-window
counters from the CounterStore and the limits from live configuration, so a
config reload or another process's increments are visible immediately.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from ..config import ConfigManager
from ..exceptions import CounterStoreError
from ..repositories.base import CounterStore
from ..utils.clock import Clock, ms_to_datetime, now_ms, window_start

logger = logging.getLogger(__name__)

METRICS = ("rpm", "tpm", "rpd")


class QuotaHealth(str, Enum):
    """Outcome of a status measurement."""

    HEALTHY = "healthy"
    LIMITED = "limited"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class MetricUsage:
    """Usage of one metric in its current window."""

    current: int
    limit: int
    remaining: int
    usage: float
    reset_at: datetime


@dataclass(frozen=True)
class CapacitySnapshot:
    """Derived view of a model's remaining capacity."""

    model: str
    metrics: Dict[str, MetricUsage]
    overall_usage: float
    can_make_request: bool
    safety_buffer: float

    @property
    def percentage(self) -> float:
        """Overall usage as a percentage, capped at 100."""
        return min(100.0, self.overall_usage * 100)

    @property
    def next_reset(self) -> datetime:
        return min(metric.reset_at for metric in self.metrics.values())


@dataclass(frozen=True)
class ModelStatus:
    """Status of one model; ``snapshot`` is None when health is UNKNOWN."""

    model: str
    health: QuotaHealth
    snapshot: Optional[CapacitySnapshot] = None
    error: Optional[str] = None
    last_request: Optional[datetime] = None


def counter_key(model: str, metric: str, window_id: int) -> str:
    return f"ratelimit:{model}:{metric}:{window_id}"


def last_request_key(model: str) -> str:
    return f"ratelimit:{model}:last_request"


@dataclass(frozen=True)
class _Window:
    length_ms: int
    window_id: int
    reset_at_ms: int

    @classmethod
    def at(cls, now: int, length_ms: int) -> "_Window":
        start = window_start(now, length_ms)
        return cls(length_ms, start // length_ms, start + length_ms)


class RateLimitTracker:
    """Computes per-model capacity and records usage against the store."""

    def __init__(
        self, store: CounterStore, config: ConfigManager, clock: Clock = now_ms
    ):
        self.store = store
        self.config = config
        self.clock = clock

    def _windows(self, now: int) -> Dict[str, _Window]:
        windows = self.config.settings.rate_limiting.time_windows
        minute = _Window.at(now, windows.minute)
        day = _Window.at(now, windows.day)
        return {"rpm": minute, "tpm": minute, "rpd": day}

    async def capacity(self, model: str) -> CapacitySnapshot:
        """
        Get the remaining capacity of a model in the current windows.

        Args:
            model: Configured model name

        Returns:
            CapacitySnapshot with per-metric usage and the admission decision

        Raises:
            UnknownModelError: If the model has no configured limits
            CounterStoreError: If the counters cannot be read
        """
        limits = self.config.model_limits(model)
        safety_buffer = self.config.settings.rate_limiting.safety_buffer
        now = self.clock()

        windows = self._windows(now)
        metrics: Dict[str, MetricUsage] = {}
        for metric in METRICS:
            window = windows[metric]
            limit = getattr(limits, metric)
            current = await self.store.get(counter_key(model, metric, window.window_id))
            metrics[metric] = MetricUsage(
                current=current,
                limit=limit,
                remaining=max(0, limit - current),
                usage=current / (limit * safety_buffer),
                reset_at=ms_to_datetime(window.reset_at_ms),
            )

        overall = max(metric.usage for metric in metrics.values())
        return CapacitySnapshot(
            model=model,
            metrics=metrics,
            overall_usage=overall,
            can_make_request=overall < 1.0,
            safety_buffer=safety_buffer,
        )

    async def admissible(self, model: str) -> bool:
        return (await self.capacity(model)).can_make_request

    async def record(self, model: str, requests: int = 0, tokens: int = 0) -> None:
        """
        Record usage for a model in the current windows.

        Args:
            model: Configured model name
            requests: Requests to add to the rpm and rpd counters
            tokens: Tokens to add to the tpm counter
        """
        self.config.model_limits(model)
        now = self.clock()
        windows = self._windows(now)

        deltas = {"rpm": requests, "rpd": requests, "tpm": tokens}
        for metric, delta in deltas.items():
            if delta <= 0:
                continue
            window = windows[metric]
            await self.store.increment(
                counter_key(model, metric, window.window_id),
                delta,
                ttl_ms=window.length_ms,
            )

        if requests > 0:
            try:
                await self.store.set(
                    last_request_key(model),
                    now,
                    ttl_ms=self.config.settings.rate_limiting.time_windows.day,
                )
            except CounterStoreError as e:
                logger.warning(f"⚠️ Could not record last request for {model}: {e}")

        logger.debug(
            f"📈 Recorded usage for {model}",
            extra={"model": model, "requests": requests, "tokens": tokens},
        )

    async def last_request(self, model: str) -> Optional[datetime]:
        key = last_request_key(model)
        if not await self.store.has(key):
            return None
        return ms_to_datetime(await self.store.get(key))

    async def status(self) -> List[ModelStatus]:
        """
        Measure every configured model in priority order.

        A model whose counters cannot be read is reported as UNKNOWN with the
        error attached instead of being assumed healthy.
        """
        statuses: List[ModelStatus] = []
        for model in self.config.models_by_priority():
            try:
                snapshot = await self.capacity(model)
                last_request = await self.last_request(model)
            except CounterStoreError as e:
                logger.warning(f"⚠️ Status unavailable for {model}: {e}")
                statuses.append(
                    ModelStatus(model=model, health=QuotaHealth.UNKNOWN, error=str(e))
                )
                continue

            health = (
                QuotaHealth.HEALTHY if snapshot.can_make_request else QuotaHealth.LIMITED
            )
            statuses.append(
                ModelStatus(
                    model=model,
                    health=health,
                    snapshot=snapshot,
                    last_request=last_request,
                )
            )
        return statuses

    async def reset(self, model: Optional[str] = None) -> List[str]:
        """
        Clear the current-window counters of one or all models.

        Returns:
            Names of the models that were reset
        """
        models = [model] if model else self.config.models_by_priority()
        for name in models:
            self.config.model_limits(name)

        windows = self._windows(self.clock())
        for name in models:
            for metric, window in windows.items():
                await self.store.delete(counter_key(name, metric, window.window_id))
            await self.store.delete(last_request_key(name))
            logger.info(f"🔄 Reset rate limit counters for {name}")
        return models
