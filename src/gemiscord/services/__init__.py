"""
Service layer for quota and caching logic.

This package contains the components the orchestrator consults before and
after each model call: rate limit tracking, model selection, the monthly
search budget, and the response cache.
"""

from .model_selector import ModelSelector
from .rate_limit_service import (
    CapacitySnapshot,
    MetricUsage,
    ModelStatus,
    QuotaHealth,
    RateLimitTracker,
    counter_key,
    last_request_key,
)
from .response_cache import ResponseCache
from .search_quota_service import (
    SearchBudget,
    SearchQuotaGate,
    SearchStatus,
    search_usage_key,
)

__all__ = [
    "CapacitySnapshot",
    "MetricUsage",
    "ModelSelector",
    "ModelStatus",
    "QuotaHealth",
    "RateLimitTracker",
    "ResponseCache",
    "SearchBudget",
    "SearchQuotaGate",
    "SearchStatus",
    "counter_key",
    "last_request_key",
    "search_usage_key",
]
