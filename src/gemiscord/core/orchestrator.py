"""
Generation orchestrator.

Drives one request through model selection, the bounded
generate → tool call → regenerate loop, and the response cache:

    SELECTING_MODEL → GENERATING → (AWAITING_TOOL_RESULTS → GENERATING)* → DONE

Any failure moves the run to FAILED and raises a typed exception; nothing is
retried here.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from ..ai.gemini import ModelBackend
from ..ai.types import ConversationState, GenerationResult, TokenUsage, ToolRound
from ..config import ConfigManager
from ..exceptions import OrchestrationLimitExceeded, QuotaExceeded
from ..services.model_selector import ModelSelector
from ..services.rate_limit_service import RateLimitTracker
from ..services.response_cache import ResponseCache
from ..services.search_quota_service import SearchQuotaGate
from ..tools.declarations import build_tool_declarations
from ..tools.executor import ToolExecutor
from .state import GenerationOutcome, GenerationRequest, OrchestrationState

logger = logging.getLogger(__name__)

# Tokens charged for a successful call whose response carried no usage
DEFAULT_TOKEN_ESTIMATE = 100


class _Run:
    """Bookkeeping for a single run."""

    def __init__(self):
        self.path: List[OrchestrationState] = []
        self.usage = TokenUsage()
        self.model_calls = 0
        self.tools_used: List[str] = []

    def enter(self, state: OrchestrationState) -> None:
        self.path.append(state)
        logger.debug(f"🛤️ State → {state.value}")


class GenerationOrchestrator:
    """Runs generation requests against the best available Gemini model."""

    def __init__(
        self,
        config: ConfigManager,
        selector: ModelSelector,
        tracker: RateLimitTracker,
        backend: ModelBackend,
        cache: ResponseCache,
        search_gate: SearchQuotaGate,
        tool_executor: ToolExecutor,
    ):
        self.config = config
        self.selector = selector
        self.tracker = tracker
        self.backend = backend
        self.cache = cache
        self.search_gate = search_gate
        self.tool_executor = tool_executor

    async def run(self, request: GenerationRequest) -> GenerationOutcome:
        """
        Produce the final answer for a request.

        Args:
            request: The generation request

        Returns:
            GenerationOutcome with the final text

        Raises:
            QuotaExceeded: No model has capacity left
            ModelBackendError: The model call failed
            OrchestrationLimitExceeded: The model kept calling tools past the cap
        """
        run = _Run()
        try:
            return await self._run(request, run)
        except BaseException:
            run.enter(OrchestrationState.FAILED)
            raise

    async def _run(self, request: GenerationRequest, run: _Run) -> GenerationOutcome:
        settings = self.config.settings
        temperature = (
            request.temperature
            if request.temperature is not None
            else settings.gemini.temperature
        )
        max_output_tokens = request.max_output_tokens or settings.gemini.max_output_tokens

        run.enter(OrchestrationState.SELECTING_MODEL)
        model = await self.selector.select_model(request.priority)
        if model is None:
            raise QuotaExceeded("gemini models")

        cache_key: Optional[str] = None
        if not request.tools_enabled and not request.attachments:
            cache_key = self.cache.key(
                model,
                request.system_prompt,
                request.user_message,
                temperature,
                max_output_tokens,
            )
            cached = await self.cache.get(cache_key)
            if cached is not None:
                logger.info(f"💾 Serving cached response for {model}")
                run.enter(OrchestrationState.DONE)
                return self._outcome(cached, run, rounds=0)

        conversation = ConversationState(
            system_prompt=request.system_prompt,
            user_message=request.user_message,
            attachments=request.attachments,
        )
        max_rounds = settings.orchestration.max_tool_rounds

        while True:
            run.enter(OrchestrationState.GENERATING)
            tools = await self._tool_declarations() if request.tools_enabled else None
            result = await self._generate(
                run, model, conversation, tools, temperature, max_output_tokens
            )

            if not request.tools_enabled or not result.tool_calls:
                break

            if len(conversation.rounds) >= max_rounds:
                logger.warning(
                    f"🔁 Tool loop cap reached after {len(conversation.rounds)} rounds"
                )
                raise OrchestrationLimitExceeded(len(conversation.rounds))

            run.enter(OrchestrationState.AWAITING_TOOL_RESULTS)
            results = []
            for call in result.tool_calls:
                results.append(await self.tool_executor.execute(call))
                run.tools_used.append(call.name)
            conversation.rounds.append(
                ToolRound(text=result.text, calls=result.tool_calls, results=results)
            )

        run.enter(OrchestrationState.DONE)
        if cache_key is not None:
            await self.cache.put(cache_key, result)

        return self._outcome(result, run, rounds=len(conversation.rounds))

    async def _tool_declarations(self) -> List[Dict[str, Any]]:
        try:
            include_search = await self.search_gate.available()
        except Exception as e:
            logger.warning(f"⚠️ Search quota unknown, not offering search: {e}")
            include_search = False

        if not include_search:
            logger.debug("🔍 Search tool omitted for this turn")
        return build_tool_declarations(
            self.config.settings.tools, include_search=include_search
        )

    async def _generate(
        self,
        run: _Run,
        model: str,
        conversation: ConversationState,
        tools: Optional[List[Dict[str, Any]]],
        temperature: float,
        max_output_tokens: int,
    ) -> GenerationResult:
        run.model_calls += 1
        try:
            result = await self.backend.generate(
                model,
                conversation,
                tools=tools,
                temperature=temperature,
                max_output_tokens=max_output_tokens,
            )
        except BaseException:
            # The request went out, so it counts even if it failed or was cancelled
            await asyncio.shield(self._record_usage(model, tokens=0))
            raise

        tokens = result.usage.total_tokens if result.usage else 0
        await self._record_usage(model, tokens=tokens or DEFAULT_TOKEN_ESTIMATE)
        if result.usage:
            run.usage = run.usage + result.usage
        return result

    async def _record_usage(self, model: str, tokens: int) -> None:
        try:
            await self.tracker.record(model, requests=1, tokens=tokens)
        except Exception as e:
            logger.error(f"❌ Failed to record usage for {model}: {e}")

    def _outcome(
        self, result: GenerationResult, run: _Run, rounds: int
    ) -> GenerationOutcome:
        return GenerationOutcome(
            text=result.text,
            model=result.model,
            cached=result.cached,
            rounds=rounds,
            model_calls=run.model_calls,
            usage=run.usage,
            tools_used=run.tools_used,
            path=run.path,
        )
