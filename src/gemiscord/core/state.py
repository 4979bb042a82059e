"""
State definitions for the generation workflow.

A request enters as a GenerationRequest, moves through OrchestrationState
while the orchestrator works on it, and leaves as a GenerationOutcome that
the delivery strategy turns into a DeliveryPlan.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from ..ai.types import Attachment, TokenUsage


class OrchestrationState(str, Enum):
    SELECTING_MODEL = "selecting_model"
    GENERATING = "generating"
    AWAITING_TOOL_RESULTS = "awaiting_tool_results"
    DONE = "done"
    FAILED = "failed"


class GenerationRequest(BaseModel):
    """A single inbound generation request."""

    system_prompt: str = ""
    user_message: str
    attachments: List[Attachment] = Field(default_factory=list)
    tools_enabled: bool = True

    # None falls back to configuration
    temperature: Optional[float] = None
    max_output_tokens: Optional[int] = None
    priority: Optional[List[str]] = None


class GenerationOutcome(BaseModel):
    """Final answer of a run plus what it took to get there."""

    text: str
    model: str
    cached: bool = False
    rounds: int = 0
    model_calls: int = 0
    usage: TokenUsage = Field(default_factory=TokenUsage)
    tools_used: List[str] = Field(default_factory=list)
    path: List[OrchestrationState] = Field(default_factory=list)

    @property
    def state(self) -> OrchestrationState:
        return self.path[-1] if self.path else OrchestrationState.DONE


class DeliveryStrategy(str, Enum):
    DIRECT = "direct"
    SPLIT = "split"
    COMPRESS = "compress"


class DeliveryPlan(BaseModel):
    """How a finished answer goes out: ordered chunks within the hard limit."""

    text: str
    strategy: DeliveryStrategy
    chunks: List[str]

    def labelled_chunks(self) -> List[str]:
        """Chunks with an ``(i/n)`` part label when there is more than one."""
        total = len(self.chunks)
        if total < 2:
            return list(self.chunks)
        labelled = []
        for index, chunk in enumerate(self.chunks, start=1):
            # A label after a closing fence would break it
            separator = "" if chunk.endswith("\n") else " "
            labelled.append(f"{chunk}{separator}({index}/{total})")
        return labelled


def format_state_summary(outcome: GenerationOutcome) -> str:
    """
    Create a readable summary of a finished run for debug logs.

    Args:
        outcome: Result of GenerationOrchestrator.run

    Returns:
        Multi-line summary string
    """
    text = outcome.text
    lines = [
        "🔄 Generation Summary",
        "=" * 40,
        f"🤖 Model: {outcome.model}{' (cached)' if outcome.cached else ''}",
        f"🔄 Model Calls: {outcome.model_calls}",
        f"🔧 Tool Rounds: {outcome.rounds}",
        f"🛠️ Tools Used: {', '.join(outcome.tools_used) or 'none'}",
        f"🪙 Tokens: {outcome.usage.total_tokens}",
        f"🛤️ Path: {' → '.join(state.value for state in outcome.path)}",
        "",
        "💬 Final Response:",
        f"   📝 Length: {len(text)} characters",
        f"   💭 Response: {text[:100]}{'...' if len(text) > 100 else ''}",
    ]
    return "\n".join(lines)
