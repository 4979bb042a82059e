"""
Character counting tool.

Lets the model check a draft against the Discord message limit before it
commits to an answer.
"""

import math

from .schemas import CharacterCountResponse


def count_characters(
    message: str, max_characters: int, split_max_length: int
) -> CharacterCountResponse:
    length = len(message)
    return CharacterCountResponse(
        length=length,
        within_limit=length <= max_characters,
        requires_compression=length > max_characters,
        estimated_chunks_if_split=math.ceil(length / split_max_length),
    )
