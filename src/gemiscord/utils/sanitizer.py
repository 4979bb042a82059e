"""
Cleanup of Discord message text before it reaches the model.

Discord encodes mentions and custom emoji as markup like ``<@123>`` or
``<:wave:456>``. The model gets readable placeholders instead, and pasted
code blocks are replaced so they cannot carry instructions.
"""

import re

USER_PLACEHOLDER = "[user]"
CHANNEL_PLACEHOLDER = "[channel]"
ROLE_PLACEHOLDER = "[role]"
CODE_BLOCK_PLACEHOLDER = "[code block]"

USER_MENTION = re.compile(r"<@!?(\d+)>")
CHANNEL_MENTION = re.compile(r"<#(\d+)>")
ROLE_MENTION = re.compile(r"<@&(\d+)>")
CUSTOM_EMOJI = re.compile(r"<a?:([^:\s>]+):\d+>")
CODE_BLOCK = re.compile(r"```.*?```", re.DOTALL)
WHITESPACE = re.compile(r"\s+")


def sanitize_message_content(content: str) -> str:
    """
    Replace Discord markup with plain text and collapse whitespace.

    Args:
        content: Raw message content

    Returns:
        Single-line text with mentions, custom emoji and code blocks replaced
    """
    if not content:
        return ""

    sanitized = USER_MENTION.sub(USER_PLACEHOLDER, content)
    sanitized = CHANNEL_MENTION.sub(CHANNEL_PLACEHOLDER, sanitized)
    sanitized = ROLE_MENTION.sub(ROLE_PLACEHOLDER, sanitized)
    sanitized = CUSTOM_EMOJI.sub(r":\1:", sanitized)
    sanitized = CODE_BLOCK.sub(CODE_BLOCK_PLACEHOLDER, sanitized)
    return WHITESPACE.sub(" ", sanitized).strip()
