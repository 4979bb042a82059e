"""
Model backend and the typed shapes exchanged with it.
"""

from .gemini import GeminiBackend, ModelBackend
from .types import (
    Attachment,
    ConversationState,
    GenerationResult,
    TokenUsage,
    ToolCall,
    ToolResult,
    ToolRound,
)

__all__ = [
    "Attachment",
    "ConversationState",
    "GeminiBackend",
    "GenerationResult",
    "ModelBackend",
    "TokenUsage",
    "ToolCall",
    "ToolResult",
    "ToolRound",
]
