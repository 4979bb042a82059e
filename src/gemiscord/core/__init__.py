"""
Core generation workflow: orchestration state machine and delivery planning.
"""

from .delivery import ResponseDeliveryStrategy, split_message
from .orchestrator import GenerationOrchestrator
from .state import (
    DeliveryPlan,
    DeliveryStrategy,
    GenerationOutcome,
    GenerationRequest,
    OrchestrationState,
    format_state_summary,
)

__all__ = [
    "DeliveryPlan",
    "DeliveryStrategy",
    "GenerationOrchestrator",
    "GenerationOutcome",
    "GenerationRequest",
    "OrchestrationState",
    "ResponseDeliveryStrategy",
    "format_state_summary",
    "split_message",
]
