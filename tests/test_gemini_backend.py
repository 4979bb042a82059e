"""
Tests for the Gemini backend: message rendering, completion parsing and
error classification.
"""

import json
from unittest.mock import AsyncMock, Mock

import httpx
import openai
import pytest
from openai.types.chat import ChatCompletion

from gemiscord.ai.gemini import (
    GeminiBackend,
    build_messages,
    classify_error,
    parse_completion,
    parse_tool_arguments,
)
from gemiscord.ai.types import (
    Attachment,
    ConversationState,
    ToolCall,
    ToolResult,
    ToolRound,
)
from gemiscord.exceptions import BackendErrorKind, ModelBackendError

REQUEST = httpx.Request(
    "POST", "https://generativelanguage.googleapis.com/v1beta/openai/chat/completions"
)


def completion(content=None, tool_calls=None, usage=True, finish_reason="stop"):
    payload = {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 1_750_000_000,
        "model": "gemini-2.5-flash",
        "choices": [
            {
                "index": 0,
                "finish_reason": finish_reason,
                "message": {
                    "role": "assistant",
                    "content": content,
                    "tool_calls": tool_calls,
                },
            }
        ],
    }
    if usage:
        payload["usage"] = {
            "prompt_tokens": 12,
            "completion_tokens": 8,
            "total_tokens": 20,
        }
    return ChatCompletion.model_validate(payload)


def status_error(cls, status: int, message: str):
    return cls(message, response=httpx.Response(status, request=REQUEST), body=None)


class TestBuildMessages:
    def test_system_and_user(self):
        messages = build_messages(
            ConversationState(system_prompt="Be brief.", user_message="Hi")
        )

        assert messages == [
            {"role": "system", "content": "Be brief."},
            {"role": "user", "content": "Hi"},
        ]

    def test_images_become_content_parts(self):
        conversation = ConversationState(
            user_message="What is this?",
            attachments=[
                Attachment(
                    name="cat.png",
                    url="https://cdn.discordapp.com/cat.png",
                    content_type="image/png",
                    size=1024,
                )
            ],
        )

        user = build_messages(conversation)[0]

        assert user["content"][0] == {"type": "text", "text": "What is this?"}
        assert user["content"][1]["image_url"]["url"] == "https://cdn.discordapp.com/cat.png"

    def test_other_attachments_are_listed_in_text(self):
        conversation = ConversationState(
            user_message="Summarize",
            attachments=[
                Attachment(
                    name="notes.pdf",
                    url="https://cdn.discordapp.com/notes.pdf",
                    content_type="application/pdf",
                    size=2048,
                )
            ],
        )

        user = build_messages(conversation)[0]

        assert "notes.pdf (application/pdf, 2048 bytes)" in user["content"]

    @pytest.mark.parametrize(
        "content_type,size",
        [
            ("image/svg+xml", 1024),
            ("image/gif", 1024),
            ("image/png", 21 * 1024 * 1024),
        ],
    )
    def test_unsupported_images_are_listed_as_text(self, content_type, size):
        conversation = ConversationState(
            user_message="Look",
            attachments=[
                Attachment(
                    name="picture",
                    url="https://cdn.discordapp.com/picture",
                    content_type=content_type,
                    size=size,
                )
            ],
        )

        user = build_messages(conversation)[0]

        assert isinstance(user["content"], str)
        assert f"picture ({content_type}, {size} bytes), image not viewable" in (
            user["content"]
        )

    def test_supported_and_unsupported_images_mixed(self):
        conversation = ConversationState(
            user_message="Compare",
            attachments=[
                Attachment(
                    name="a.jpg",
                    url="https://cdn.discordapp.com/a.jpg",
                    content_type="image/jpeg",
                    size=2048,
                ),
                Attachment(
                    name="b.svg",
                    url="https://cdn.discordapp.com/b.svg",
                    content_type="image/svg+xml",
                    size=2048,
                ),
            ],
        )

        content = build_messages(conversation)[0]["content"]

        image_urls = [p["image_url"]["url"] for p in content if p["type"] == "image_url"]
        assert image_urls == ["https://cdn.discordapp.com/a.jpg"]
        assert "b.svg" in content[0]["text"]

    def test_tool_rounds_follow_the_user_message(self):
        call = ToolCall(id="call_1", name="count_characters", arguments={"message": "hi"})
        conversation = ConversationState(
            user_message="Hi",
            rounds=[
                ToolRound(
                    calls=[call],
                    results=[
                        ToolResult(
                            call_id="call_1",
                            name="count_characters",
                            content={"length": 2},
                        )
                    ],
                )
            ],
        )

        messages = build_messages(conversation)

        assert [m["role"] for m in messages] == ["user", "assistant", "tool"]
        assert messages[1]["tool_calls"][0]["function"]["name"] == "count_characters"
        assert json.loads(messages[1]["tool_calls"][0]["function"]["arguments"]) == {
            "message": "hi"
        }
        assert messages[2]["tool_call_id"] == "call_1"
        assert json.loads(messages[2]["content"]) == {"length": 2}


class TestParseCompletion:
    def test_text_answer(self):
        result = parse_completion("gemini-2.5-flash", completion(content="Hello!"))

        assert result.text == "Hello!"
        assert result.tool_calls == []
        assert result.usage.total_tokens == 20
        assert result.finish_reason == "stop"

    def test_tool_calls(self):
        result = parse_completion(
            "gemini-2.5-flash",
            completion(
                tool_calls=[
                    {
                        "id": "call_1",
                        "type": "function",
                        "function": {
                            "name": "search_web",
                            "arguments": '{"query": "weather tokyo"}',
                        },
                    }
                ],
                finish_reason="tool_calls",
            ),
        )

        assert result.text == ""
        assert result.tool_calls == [
            ToolCall(id="call_1", name="search_web", arguments={"query": "weather tokyo"})
        ]

    def test_missing_usage(self):
        result = parse_completion("gemini-2.5-flash", completion(content="x", usage=False))

        assert result.usage is None

    @pytest.mark.parametrize("raw", [None, "", "not json", "[1, 2]"])
    def test_bad_tool_arguments_become_empty(self, raw):
        assert parse_tool_arguments("search_web", raw) == {}


class TestClassifyError:
    @pytest.mark.parametrize(
        "error,kind",
        [
            (
                status_error(openai.RateLimitError, 429, "Too many requests"),
                BackendErrorKind.QUOTA,
            ),
            (
                status_error(openai.AuthenticationError, 401, "Bad key"),
                BackendErrorKind.AUTHENTICATION,
            ),
            (
                status_error(openai.PermissionDeniedError, 403, "Denied"),
                BackendErrorKind.AUTHENTICATION,
            ),
            (openai.APITimeoutError(request=REQUEST), BackendErrorKind.NETWORK),
            (openai.APIConnectionError(request=REQUEST), BackendErrorKind.NETWORK),
            (
                status_error(openai.InternalServerError, 500, "Oops"),
                BackendErrorKind.GENERIC,
            ),
            (
                status_error(
                    openai.BadRequestError, 400, "Resource has been exhausted (check quota)."
                ),
                BackendErrorKind.QUOTA,
            ),
        ],
    )
    def test_kinds(self, error, kind):
        classified = classify_error(error)

        assert isinstance(classified, ModelBackendError)
        assert classified.kind == kind

    def test_status_is_kept(self):
        classified = classify_error(status_error(openai.RateLimitError, 429, "slow down"))

        assert classified.status == 429
        assert str(classified).startswith("gemini quota error 429")


class TestGeminiBackend:
    """Tests for GeminiBackend.generate with a mocked OpenAI client."""

    @pytest.fixture
    def client(self):
        client = Mock()
        client.chat.completions.create = AsyncMock(return_value=completion(content="Hi!"))
        client.close = AsyncMock()
        return client

    @pytest.mark.asyncio
    async def test_generate_sends_request(self, config, client):
        backend = GeminiBackend(config, client=client)
        tools = [{"type": "function", "function": {"name": "count_characters"}}]

        result = await backend.generate(
            "model-a",
            ConversationState(user_message="Hello"),
            tools=tools,
            temperature=0.2,
            max_output_tokens=256,
        )

        assert result.text == "Hi!"
        assert result.model == "model-a"
        kwargs = client.chat.completions.create.await_args.kwargs
        assert kwargs["model"] == "model-a"
        assert kwargs["temperature"] == 0.2
        assert kwargs["max_tokens"] == 256
        assert kwargs["tools"] == tools
        assert kwargs["tool_choice"] == "auto"

    @pytest.mark.asyncio
    async def test_generate_uses_configured_defaults(self, config, client):
        backend = GeminiBackend(config, client=client)

        await backend.generate("model-a", ConversationState(user_message="Hello"))

        kwargs = client.chat.completions.create.await_args.kwargs
        assert kwargs["temperature"] == 0.9
        assert kwargs["max_tokens"] == 8192
        assert "tools" not in kwargs

    @pytest.mark.asyncio
    async def test_generate_raises_classified_errors(self, config, client):
        client.chat.completions.create.side_effect = status_error(
            openai.RateLimitError, 429, "quota exceeded"
        )
        backend = GeminiBackend(config, client=client)

        with pytest.raises(ModelBackendError) as exc_info:
            await backend.generate("model-a", ConversationState(user_message="Hello"))

        assert exc_info.value.kind == BackendErrorKind.QUOTA

    @pytest.mark.asyncio
    async def test_close(self, config, client):
        await GeminiBackend(config, client=client).close()

        client.close.assert_awaited_once()

    def test_default_client_has_retries_disabled(self, config):
        backend = GeminiBackend(config)

        assert backend.client.max_retries == 0
        assert str(backend.client.base_url).startswith(
            "https://generativelanguage.googleapis.com/v1beta/openai"
        )
