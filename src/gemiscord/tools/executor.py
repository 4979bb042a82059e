"""
Tool execution for the orchestration loop.

Every failure, including timeouts and unknown tool names, comes back as an
error ToolResult so the model can read it and adapt on its next turn.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from ..ai.types import ToolCall, ToolResult
from ..config import ConfigManager
from ..exceptions import BackendError, GemiscordError, ToolExecutionError
from ..services.search_quota_service import SearchQuotaGate
from .character_count import count_characters
from .declarations import COUNT_TOOL, SEARCH_TOOL
from .web_search_tools import BraveSearchClient, format_results_for_model

logger = logging.getLogger(__name__)

ToolHandler = Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]


def _error(call: ToolCall, code: str, message: str) -> ToolResult:
    return ToolResult(
        call_id=call.id,
        name=call.name,
        content={"error": code, "message": message},
        is_error=True,
    )


class ToolExecutor:
    """Dispatches model tool calls to their implementations."""

    def __init__(
        self,
        config: ConfigManager,
        search_gate: SearchQuotaGate,
        search_client: Optional[BraveSearchClient] = None,
    ):
        self.config = config
        self.search_gate = search_gate
        self.search_client = search_client
        self._handlers: Dict[str, ToolHandler] = {
            COUNT_TOOL: self._count_characters,
            SEARCH_TOOL: self._search_web,
        }

    async def execute(self, call: ToolCall) -> ToolResult:
        handler = self._handlers.get(call.name)
        if handler is None:
            logger.warning(f"⚠️ Model requested unknown tool {call.name}")
            return _error(call, "unknown_tool", f"No tool named '{call.name}'")

        timeout = self.config.settings.orchestration.tool_timeout_seconds
        logger.info(f"🔧 Executing tool {call.name}")
        try:
            content = await asyncio.wait_for(handler(call.arguments), timeout=timeout)
        except ToolExecutionError as e:
            logger.warning(f"⚠️ {e}")
            return _error(call, e.code, e.message)
        except asyncio.TimeoutError:
            logger.warning(f"⏱️ Tool {call.name} timed out after {timeout}s")
            return _error(call, "timeout", f"Tool timed out after {timeout} seconds")
        except BackendError as e:
            logger.warning(f"⚠️ Tool {call.name} backend failure: {e}")
            return _error(call, f"backend_{e.kind.value}", str(e))
        except GemiscordError as e:
            logger.warning(f"⚠️ Tool {call.name} failed: {e}")
            return _error(call, "unavailable", str(e))
        except Exception as e:
            logger.exception(f"❌ Unexpected error in tool {call.name}: {e}")
            return _error(call, "internal_error", str(e))

        return ToolResult(call_id=call.id, name=call.name, content=content)

    async def _count_characters(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        message = arguments.get("message")
        if not isinstance(message, str):
            raise ToolExecutionError(
                COUNT_TOOL, "'message' must be a string", code="invalid_arguments"
            )
        response = self.config.settings.response
        return count_characters(
            message, response.max_characters, response.split_max_length
        ).model_dump()

    async def _search_web(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        query = arguments.get("query")
        if not isinstance(query, str) or not query.strip():
            raise ToolExecutionError(
                SEARCH_TOOL, "'query' must be a non-empty string", code="invalid_arguments"
            )
        if self.search_client is None:
            raise ToolExecutionError(
                SEARCH_TOOL, "Web search is not configured", code="unavailable"
            )
        if not await self.search_gate.available():
            raise ToolExecutionError(
                SEARCH_TOOL,
                "The monthly web search quota is used up. Answer without searching.",
                code="quota_exceeded",
            )

        response = await self.search_client.search(
            query.strip(), region=arguments.get("region")
        )

        try:
            # A finished search is counted even if the tool timeout fires meanwhile
            await asyncio.shield(self.search_gate.consume())
        except GemiscordError as e:
            logger.error(f"❌ Search succeeded but quota could not be recorded: {e}")

        return {
            "query": response.query,
            "region": response.region,
            "total_results": response.total_results,
            "results": [r.model_dump(exclude_none=True) for r in response.results],
            "summary": format_results_for_model(response),
        }
