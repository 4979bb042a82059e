"""
Discord gateway adapter.
"""

from .handlers import MessageProcessor, MessageResult, ProcessingContext, describe_failure

__all__ = ["MessageProcessor", "MessageResult", "ProcessingContext", "describe_failure"]
