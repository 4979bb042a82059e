"""
Typed request/response shapes at the model backend boundary.

Backends translate their wire payloads into these models; nothing untyped
crosses into the orchestration logic.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ToolCall(BaseModel):
    """A function call requested by the model."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Backend-assigned call id, echoed in the result")
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)


class ToolResult(BaseModel):
    """Structured output of one tool call, fed back to the model."""

    call_id: str
    name: str
    content: Dict[str, Any] = Field(default_factory=dict)
    is_error: bool = False


class TokenUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


class GenerationResult(BaseModel):
    """One model turn."""

    model: str
    text: str = ""
    tool_calls: List[ToolCall] = Field(default_factory=list)
    usage: Optional[TokenUsage] = None
    finish_reason: Optional[str] = None
    cached: bool = Field(default=False, description="Served from the response cache")


# Image formats and size Gemini accepts inline
SUPPORTED_IMAGE_TYPES = frozenset(
    {"image/png", "image/jpeg", "image/webp", "image/heic", "image/heif"}
)
MAX_ATTACHMENT_BYTES = 20 * 1024 * 1024


class Attachment(BaseModel):
    """A file attached to the user's message."""

    name: str
    url: str
    content_type: Optional[str] = None
    size: int = 0

    @property
    def is_image(self) -> bool:
        return bool(self.content_type and self.content_type.startswith("image/"))

    @property
    def is_supported(self) -> bool:
        """Whether the file can be sent to the model as an inline image."""
        if not self.content_type:
            return False
        media_type = self.content_type.split(";")[0].strip().lower()
        return media_type in SUPPORTED_IMAGE_TYPES and self.size <= MAX_ATTACHMENT_BYTES


class ToolRound(BaseModel):
    """An assistant turn that requested tools, and the results in call order."""

    text: str = ""
    calls: List[ToolCall]
    results: List[ToolResult]


class ConversationState(BaseModel):
    """Everything the backend needs to render the next model turn."""

    system_prompt: str = ""
    user_message: str
    attachments: List[Attachment] = Field(default_factory=list)
    rounds: List[ToolRound] = Field(default_factory=list)
