"""
Function tools the model can call: web search and character counting.
"""

from .character_count import count_characters
from .declarations import COUNT_TOOL, SEARCH_TOOL, build_tool_declarations
from .executor import ToolExecutor
from .web_search_tools import BraveSearchClient, format_results_for_model

__all__ = [
    "BraveSearchClient",
    "COUNT_TOOL",
    "SEARCH_TOOL",
    "ToolExecutor",
    "build_tool_declarations",
    "count_characters",
    "format_results_for_model",
]
