from .clock import ms_to_datetime, now_ms, window_start
from .logging import setup_logging
from .sanitizer import sanitize_message_content

__all__ = [
    "ms_to_datetime",
    "now_ms",
    "sanitize_message_content",
    "setup_logging",
    "window_start",
]
