"""
Gemini Discord Bot Package

A Discord bot that answers mentions with Gemini, choosing between models by
remaining free-tier quota and calling web search and character count tools.
"""

__version__ = "0.1.0"

from .config import ConfigManager, Settings

__all__ = [
    "__version__",
    "ConfigManager",
    "Settings",
]
