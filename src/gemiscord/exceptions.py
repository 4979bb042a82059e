"""
Exceptions for the gemiscord bot.

This module defines custom exceptions used throughout the application.
"""

from datetime import datetime, UTC
from enum import Enum
from typing import Optional


class GemiscordError(Exception):
    """Base class for all bot errors."""


class ConfigurationError(GemiscordError):
    """Configuration could not be loaded or is invalid."""


class UnknownModelError(GemiscordError):
    """A model name has no configured limits."""

    def __init__(self, model: str):
        self.model = model
        super().__init__(f"No rate limits configured for model '{model}'")


class QuotaExceeded(GemiscordError):
    """Exception raised when no quota is left for a resource."""

    def __init__(self, resource: str, reset_at: Optional[datetime] = None):
        self.resource = resource
        self.reset_at = reset_at

        message = f"Quota exhausted for '{resource}'."
        if reset_at is not None:
            reset_seconds = max(0, int((reset_at - datetime.now(UTC)).total_seconds()))
            message += f" Resets in {reset_seconds} seconds."
        super().__init__(message)


class BackendErrorKind(str, Enum):
    """Classification of upstream failures."""

    AUTHENTICATION = "authentication"
    QUOTA = "quota"
    NETWORK = "network"
    GENERIC = "generic"


class BackendError(GemiscordError):
    """A model or search backend call failed."""

    backend = "backend"

    def __init__(
        self,
        message: str,
        kind: BackendErrorKind = BackendErrorKind.GENERIC,
        status: Optional[int] = None,
    ):
        self.kind = kind
        self.status = status
        super().__init__(message)

    def __str__(self) -> str:
        status = f" {self.status}" if self.status is not None else ""
        return f"{self.backend} {self.kind.value} error{status}: {self.args[0]}"


class ModelBackendError(BackendError):
    backend = "gemini"


class SearchBackendError(BackendError):
    backend = "brave_search"


class ToolExecutionError(GemiscordError):
    """A tool failed; the failure is reported back to the model as tool output."""

    def __init__(self, tool: str, message: str, code: str = "execution_failed"):
        self.tool = tool
        self.code = code
        self.message = message
        super().__init__(f"Tool '{tool}' failed ({code}): {message}")


class OrchestrationLimitExceeded(GemiscordError):
    """The model kept requesting tools past the round cap."""

    def __init__(self, rounds: int):
        self.rounds = rounds
        super().__init__(f"Tool loop stopped after {rounds} rounds")


class CounterStoreError(GemiscordError):
    """The quota counter store failed or timed out."""
