"""
Component wiring.

Every stateful component (counter store, cache, HTTP clients) is built once
per process here and handed to its callers by reference.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from .ai.gemini import GeminiBackend, ModelBackend
from .config import ConfigManager
from .core.delivery import ResponseDeliveryStrategy
from .core.orchestrator import GenerationOrchestrator
from .db import create_tables, get_engine
from .repositories import CounterStore, MemoryCounterStore, SqlCounterStore
from .services import ModelSelector, RateLimitTracker, ResponseCache, SearchQuotaGate
from .tools import BraveSearchClient, ToolExecutor

logger = logging.getLogger(__name__)


@dataclass
class QuotaServices:
    """The quota components, enough for status and maintenance commands."""

    config: ConfigManager
    store: CounterStore
    tracker: RateLimitTracker
    search_gate: SearchQuotaGate
    engine: Optional[AsyncEngine] = None


@dataclass
class Services:
    """Everything the Discord adapter needs."""

    config: ConfigManager
    store: CounterStore
    tracker: RateLimitTracker
    search_gate: SearchQuotaGate
    selector: ModelSelector
    cache: ResponseCache
    backend: ModelBackend
    tool_executor: ToolExecutor
    orchestrator: GenerationOrchestrator
    delivery: ResponseDeliveryStrategy
    search_client: Optional[BraveSearchClient] = None
    engine: Optional[AsyncEngine] = None

    async def aclose(self) -> None:
        if self.search_client is not None:
            await self.search_client.aclose()
        if isinstance(self.backend, GeminiBackend):
            await self.backend.close()


async def build_quota_services(
    config: ConfigManager, use_database: bool = True
) -> QuotaServices:
    """Build the counter store and the components that read it."""
    engine: Optional[AsyncEngine] = None
    store: CounterStore
    if use_database:
        engine = get_engine(config.settings.database)
        await create_tables(engine)
        store = SqlCounterStore(
            engine, timeout_seconds=config.settings.rate_limiting.store_timeout_seconds
        )
        logger.info(f"🗄️ Using database counter store ({engine.dialect.name})")
    else:
        store = MemoryCounterStore()
        logger.warning("⚠️ Using in-memory counter store; quotas reset on restart")

    return QuotaServices(
        config=config,
        store=store,
        tracker=RateLimitTracker(store, config),
        search_gate=SearchQuotaGate(store, config),
        engine=engine,
    )


async def build_services(
    config: ConfigManager,
    use_database: bool = True,
    backend: Optional[ModelBackend] = None,
    search_client: Optional[BraveSearchClient] = None,
) -> Services:
    """Build the full component graph for one process."""
    quota = await build_quota_services(config, use_database=use_database)

    if search_client is None and config.settings.brave_search.api_key.get_secret_value():
        search_client = BraveSearchClient(config)
    if search_client is None:
        logger.warning("⚠️ Brave Search API key not set; web search is disabled")

    backend = backend or GeminiBackend(config)
    selector = ModelSelector(quota.tracker, config)
    cache = ResponseCache()
    tool_executor = ToolExecutor(config, quota.search_gate, search_client)
    orchestrator = GenerationOrchestrator(
        config=config,
        selector=selector,
        tracker=quota.tracker,
        backend=backend,
        cache=cache,
        search_gate=quota.search_gate,
        tool_executor=tool_executor,
    )

    return Services(
        config=config,
        store=quota.store,
        tracker=quota.tracker,
        search_gate=quota.search_gate,
        engine=quota.engine,
        selector=selector,
        cache=cache,
        backend=backend,
        search_client=search_client,
        tool_executor=tool_executor,
        orchestrator=orchestrator,
        delivery=ResponseDeliveryStrategy(config, orchestrator),
    )
