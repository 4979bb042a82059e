"""
Wall-clock helpers shared by the quota components.

All quota arithmetic is done in integer epoch milliseconds so window ids and
reset times line up across processes.
"""

import time
from datetime import datetime, UTC
from typing import Callable

Clock = Callable[[], int]


def now_ms() -> int:
    """Current UTC time in epoch milliseconds."""
    return int(time.time() * 1000)


def ms_to_datetime(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, UTC)


def window_start(timestamp_ms: int, window_ms: int) -> int:
    """Start of the window containing ``timestamp_ms``."""
    return timestamp_ms - (timestamp_ms % window_ms)
