"""
Test configuration and fixtures for the gemiscord test suite.
"""

from typing import Any, Callable, Dict, List, Optional, Union
from unittest.mock import AsyncMock, Mock

import pytest

from gemiscord.ai.types import ConversationState, GenerationResult, TokenUsage, ToolCall
from gemiscord.config import ConfigManager, Settings
from gemiscord.core.delivery import ResponseDeliveryStrategy
from gemiscord.core.orchestrator import GenerationOrchestrator
from gemiscord.repositories import MemoryCounterStore
from gemiscord.services import (
    ModelSelector,
    RateLimitTracker,
    ResponseCache,
    SearchQuotaGate,
)
from gemiscord.tools import ToolExecutor

# 2025-06-15T12:00:30Z, thirty seconds into a minute window
START_MS = 1_749_988_830_000


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "slow: mark test as slow running",
    )


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start: int = START_MS):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class ScriptedBackend:
    """
    ModelBackend that replays a script of results.

    Each script entry is a GenerationResult, an exception to raise, or a
    callable taking the conversation and returning either.
    """

    def __init__(self, script: Optional[List[Any]] = None):
        self.script = list(script or [])
        self.calls: List[Dict[str, Any]] = []

    async def generate(
        self,
        model: str,
        conversation: ConversationState,
        tools: Optional[List[Dict[str, Any]]] = None,
        temperature: Optional[float] = None,
        max_output_tokens: Optional[int] = None,
    ) -> GenerationResult:
        self.calls.append(
            {
                "model": model,
                "conversation": conversation.model_copy(deep=True),
                "tools": tools,
                "temperature": temperature,
                "max_output_tokens": max_output_tokens,
            }
        )
        if not self.script:
            return text_result(model, "default answer")

        step: Union[GenerationResult, Exception, Callable] = self.script.pop(0)
        if callable(step) and not isinstance(step, GenerationResult):
            step = step(conversation)
        if isinstance(step, Exception):
            raise step
        return step.model_copy(update={"model": model})

    def tool_names(self, call_index: int) -> List[str]:
        tools = self.calls[call_index]["tools"] or []
        return [tool["function"]["name"] for tool in tools]


def text_result(model: str, text: str, tokens: int = 50) -> GenerationResult:
    return GenerationResult(
        model=model,
        text=text,
        usage=TokenUsage(
            prompt_tokens=tokens // 2,
            completion_tokens=tokens - tokens // 2,
            total_tokens=tokens,
        ),
        finish_reason="stop",
    )


def tool_call_result(
    model: str, *calls: ToolCall, text: str = "", tokens: int = 30
) -> GenerationResult:
    return GenerationResult(
        model=model,
        text=text,
        tool_calls=list(calls),
        usage=TokenUsage(total_tokens=tokens),
        finish_reason="tool_calls",
    )


MODELS = {
    "model-a": {"rpm": 10, "tpm": 10_000, "rpd": 100, "priority": 0},
    "model-b": {"rpm": 15, "tpm": 20_000, "rpd": 200, "priority": 1},
}


def make_settings(**overrides: Any) -> Settings:
    values: Dict[str, Any] = {
        "discord": {"token": "test_token"},
        "gemini": {"api_key": "test_gemini_key", "models": MODELS},
        "brave_search": {"api_key": "test_brave_key", "min_interval_seconds": 0},
        "response": {"split_delay_seconds": 0},
        "database": {"url": "sqlite+aiosqlite:///:memory:"},
    }
    for group, value in overrides.items():
        if isinstance(value, dict) and isinstance(values.get(group), dict):
            values[group] = {**values[group], **value}
        else:
            values[group] = value
    return Settings(**values)


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings with two small models and safe defaults."""
    return make_settings()


@pytest.fixture
def config(test_settings) -> ConfigManager:
    return ConfigManager(settings=test_settings)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> MemoryCounterStore:
    return MemoryCounterStore(clock=clock)


@pytest.fixture
def tracker(store, config, clock) -> RateLimitTracker:
    return RateLimitTracker(store, config, clock=clock)


@pytest.fixture
def search_gate(store, config, clock) -> SearchQuotaGate:
    return SearchQuotaGate(store, config, clock=clock)


@pytest.fixture
def selector(tracker, config) -> ModelSelector:
    return ModelSelector(tracker, config)


@pytest.fixture
def backend() -> ScriptedBackend:
    return ScriptedBackend()


@pytest.fixture
def search_client():
    """Stand-in for BraveSearchClient; tests set ``search.return_value``."""
    client = Mock()
    client.search = AsyncMock()
    client.aclose = AsyncMock()
    return client


@pytest.fixture
def tool_executor(config, search_gate, search_client) -> ToolExecutor:
    return ToolExecutor(config, search_gate, search_client)


@pytest.fixture
def orchestrator(
    config, selector, tracker, backend, search_gate, tool_executor
) -> GenerationOrchestrator:
    return GenerationOrchestrator(
        config=config,
        selector=selector,
        tracker=tracker,
        backend=backend,
        cache=ResponseCache(),
        search_gate=search_gate,
        tool_executor=tool_executor,
    )


@pytest.fixture
def delivery(config, orchestrator) -> ResponseDeliveryStrategy:
    return ResponseDeliveryStrategy(config, orchestrator)
