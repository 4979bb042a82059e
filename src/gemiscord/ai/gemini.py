"""
Gemini model backend.

Talks to Gemini through its OpenAI-compatible chat completions endpoint with
the ``openai`` async client and converts payloads to the typed shapes in
``ai.types``.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Protocol

import openai
from openai import AsyncOpenAI

from ..config import ConfigManager
from ..exceptions import BackendErrorKind, ModelBackendError
from .types import (
    ConversationState,
    GenerationResult,
    TokenUsage,
    ToolCall,
)

logger = logging.getLogger(__name__)


class ModelBackend(Protocol):
    """Anything that can produce one model turn."""

    async def generate(
        self,
        model: str,
        conversation: ConversationState,
        tools: Optional[List[Dict[str, Any]]] = None,
        temperature: Optional[float] = None,
        max_output_tokens: Optional[int] = None,
    ) -> GenerationResult:
        ...


def build_messages(conversation: ConversationState) -> List[Dict[str, Any]]:
    """Render the conversation as chat completion messages."""
    messages: List[Dict[str, Any]] = []
    if conversation.system_prompt:
        messages.append({"role": "system", "content": conversation.system_prompt})

    text = conversation.user_message
    others = [a for a in conversation.attachments if not a.is_supported]
    if others:
        listed = "\n".join(
            f"- {a.name} ({a.content_type or 'unknown type'}, {a.size} bytes)"
            + (", image not viewable" if a.is_image else "")
            for a in others
        )
        text = f"{text}\n\n[Attached files]\n{listed}"

    images = [a for a in conversation.attachments if a.is_supported]
    if images:
        content: Any = [{"type": "text", "text": text}] + [
            {"type": "image_url", "image_url": {"url": a.url}} for a in images
        ]
    else:
        content = text
    messages.append({"role": "user", "content": content})

    for round_ in conversation.rounds:
        messages.append(
            {
                "role": "assistant",
                "content": round_.text or None,
                "tool_calls": [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {
                            "name": call.name,
                            "arguments": json.dumps(call.arguments, ensure_ascii=False),
                        },
                    }
                    for call in round_.calls
                ],
            }
        )
        for result in round_.results:
            messages.append(
                {
                    "role": "tool",
                    "tool_call_id": result.call_id,
                    "content": json.dumps(result.content, ensure_ascii=False),
                }
            )

    return messages


def parse_tool_arguments(name: str, raw: Optional[str]) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        arguments = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning(f"⚠️ Unparseable arguments for tool {name}: {raw[:100]}")
        return {}
    if not isinstance(arguments, dict):
        logger.warning(f"⚠️ Non-object arguments for tool {name}: {raw[:100]}")
        return {}
    return arguments


def parse_completion(model: str, completion: Any) -> GenerationResult:
    """Convert a chat completion into a GenerationResult, ignoring unknown fields."""
    usage = None
    if getattr(completion, "usage", None) is not None:
        usage = TokenUsage(
            prompt_tokens=completion.usage.prompt_tokens or 0,
            completion_tokens=completion.usage.completion_tokens or 0,
            total_tokens=completion.usage.total_tokens or 0,
        )

    if not completion.choices:
        return GenerationResult(model=model, usage=usage)

    choice = completion.choices[0]
    message = choice.message

    tool_calls: List[ToolCall] = []
    for index, call in enumerate(message.tool_calls or []):
        function = getattr(call, "function", None)
        if function is None:
            continue
        tool_calls.append(
            ToolCall(
                id=call.id or f"call_{index}",
                name=function.name,
                arguments=parse_tool_arguments(function.name, function.arguments),
            )
        )

    return GenerationResult(
        model=model,
        text=message.content or "",
        tool_calls=tool_calls,
        usage=usage,
        finish_reason=choice.finish_reason,
    )


def classify_error(error: Exception) -> ModelBackendError:
    """Map an openai exception onto the backend error taxonomy."""
    status = getattr(error, "status_code", None)
    message = str(error)

    if isinstance(error, openai.RateLimitError) or "quota" in message.lower():
        kind = BackendErrorKind.QUOTA
    elif isinstance(error, (openai.AuthenticationError, openai.PermissionDeniedError)):
        kind = BackendErrorKind.AUTHENTICATION
    elif isinstance(error, (openai.APITimeoutError, openai.APIConnectionError)):
        kind = BackendErrorKind.NETWORK
    else:
        kind = BackendErrorKind.GENERIC

    return ModelBackendError(message, kind=kind, status=status)


class GeminiBackend:
    """ModelBackend implementation for Gemini."""

    def __init__(self, config: ConfigManager, client: Optional[AsyncOpenAI] = None):
        self.config = config
        if client is None:
            gemini = config.settings.gemini
            client = AsyncOpenAI(
                api_key=gemini.api_key.get_secret_value(),
                base_url=gemini.base_url,
                timeout=gemini.timeout_seconds,
                max_retries=0,
            )
        self.client = client

    async def generate(
        self,
        model: str,
        conversation: ConversationState,
        tools: Optional[List[Dict[str, Any]]] = None,
        temperature: Optional[float] = None,
        max_output_tokens: Optional[int] = None,
    ) -> GenerationResult:
        """
        Run one chat completion.

        Raises:
            ModelBackendError: classified authentication, quota, network or
                generic failure
        """
        gemini = self.config.settings.gemini
        request: Dict[str, Any] = {
            "model": model,
            "messages": build_messages(conversation),
            "temperature": gemini.temperature if temperature is None else temperature,
            "max_tokens": max_output_tokens or gemini.max_output_tokens,
        }
        if tools:
            request["tools"] = tools
            request["tool_choice"] = "auto"

        try:
            completion = await self.client.chat.completions.create(**request)
        except openai.OpenAIError as e:
            error = classify_error(e)
            logger.error(f"❌ Gemini call failed for {model}: {error}")
            raise error from e

        result = parse_completion(model, completion)
        logger.debug(
            f"🤖 {model} returned {len(result.text)} chars, "
            f"{len(result.tool_calls)} tool calls"
        )
        return result

    async def close(self) -> None:
        await self.client.close()
