"""
Function declarations offered to the model.

Declarations use the OpenAI tool schema accepted by Gemini's compatible
endpoint.
"""

from typing import Any, Dict, List

from ..config import ToolSettings

SEARCH_TOOL = "search_web"
COUNT_TOOL = "count_characters"


def search_declaration(tools: ToolSettings) -> Dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": SEARCH_TOOL,
            "description": tools.search_description,
            "parameters": {
                "type": "object",
                "properties": {
                    "query": {
                        "type": "string",
                        "description": "Search query",
                    },
                    "region": {
                        "type": "string",
                        "enum": ["JP", "US", "global"],
                        "description": "Region to search in",
                    },
                },
                "required": ["query"],
            },
        },
    }


def count_declaration(tools: ToolSettings) -> Dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": COUNT_TOOL,
            "description": tools.count_description,
            "parameters": {
                "type": "object",
                "properties": {
                    "message": {
                        "type": "string",
                        "description": "Draft message to measure",
                    },
                },
                "required": ["message"],
            },
        },
    }


def build_tool_declarations(
    tools: ToolSettings, include_search: bool
) -> List[Dict[str, Any]]:
    """The character counter is always offered; search only while quota lasts."""
    declarations = [count_declaration(tools)]
    if include_search:
        declarations.append(search_declaration(tools))
    return declarations
