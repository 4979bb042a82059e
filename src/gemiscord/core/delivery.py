"""
Response delivery strategy.

Decides how a finished answer reaches Discord: as-is, split into ordered
chunks, or compressed into one message by a second generation.
"""

import logging
from typing import TYPE_CHECKING, Iterator, List, Optional

from ..config import ConfigManager
from ..exceptions import GemiscordError
from .state import DeliveryPlan, DeliveryStrategy, GenerationRequest

if TYPE_CHECKING:
    from .orchestrator import GenerationOrchestrator

logger = logging.getLogger(__name__)

FENCE = "```"
# Room kept in split chunks for a " (999/999)" part label
PART_LABEL_RESERVE = 10


def _is_fence(line: str) -> bool:
    return line.lstrip().startswith(FENCE)


def _segments(text: str) -> Iterator[str]:
    """Yield single lines, and whole fenced code blocks as one segment."""
    lines = text.splitlines(keepends=True)
    i = 0
    while i < len(lines):
        if not _is_fence(lines[i]):
            yield lines[i]
            i += 1
            continue

        end = i + 1
        while end < len(lines) and not _is_fence(lines[end]):
            end += 1
        # Unclosed fences run to the end of the text
        yield "".join(lines[i : end + 1])
        i = end + 1


def _split_long_line(line: str, max_length: int) -> List[str]:
    """Cut at the last whitespace before the limit, else hard-cut."""
    pieces = []
    while len(line) > max_length:
        cut = next(
            (i for i in range(max_length - 1, 0, -1) if line[i].isspace()), -1
        )
        size = cut + 1 if cut > 0 else max_length
        pieces.append(line[:size])
        line = line[size:]
    if line:
        pieces.append(line)
    return pieces


def _split_code_block(block: str, max_length: int) -> List[str]:
    """Split an oversized code block by lines, re-fencing every piece."""
    lines = block.splitlines(keepends=True)
    opening = lines[0] if lines[0].endswith("\n") else lines[0] + "\n"
    closed = len(lines) > 1 and _is_fence(lines[-1])
    body = lines[1:-1] if closed else lines[1:]
    closing = FENCE + "\n"

    budget = max_length - len(opening) - len(closing)
    if budget < 2:
        return _split_long_line(block, max_length)

    body_lines: List[str] = []
    for line in body:
        if not line.endswith("\n"):
            line += "\n"
        if len(line) <= budget:
            body_lines.append(line)
            continue
        for piece in _split_long_line(line.rstrip("\n"), budget - 1):
            body_lines.append(piece + "\n")

    pieces: List[str] = []
    current = ""
    for line in body_lines:
        if current and len(current) + len(line) > budget:
            pieces.append(opening + current + closing)
            current = ""
        current += line
    if current or not pieces:
        pieces.append(opening + current + closing)
    return pieces


def split_message(text: str, max_length: int) -> List[str]:
    """
    Split text into ordered chunks of at most ``max_length`` characters.

    Lines are packed greedily so breaks fall on line boundaries where
    possible; lines longer than the limit break at whitespace, then hard.
    Fenced code blocks are kept whole unless a block alone exceeds the
    limit, in which case it is split by lines and each piece is re-fenced.
    Plain text chunks concatenate back to the original text.
    """
    if max_length < 1:
        raise ValueError("max_length must be positive")
    if len(text) <= max_length:
        return [text]

    chunks: List[str] = []
    current = ""
    for segment in _segments(text):
        if len(current) + len(segment) <= max_length:
            current += segment
            continue

        if current:
            chunks.append(current)
            current = ""

        if len(segment) <= max_length:
            current = segment
            continue

        if _is_fence(segment):
            pieces = _split_code_block(segment, max_length)
        else:
            pieces = _split_long_line(segment, max_length)
        chunks.extend(pieces[:-1])
        current = pieces[-1]

    if current:
        chunks.append(current)
    return chunks


class ResponseDeliveryStrategy:
    """Builds delivery plans for finished answers."""

    def __init__(
        self,
        config: ConfigManager,
        orchestrator: Optional["GenerationOrchestrator"] = None,
    ):
        self.config = config
        self.orchestrator = orchestrator

    async def plan(
        self,
        text: str,
        max_chunk_length: Optional[int] = None,
        strategy: Optional[DeliveryStrategy] = None,
    ) -> DeliveryPlan:
        """
        Decide how to send ``text``.

        Args:
            text: Final answer
            max_chunk_length: Hard per-message limit; defaults to config
            strategy: SPLIT or COMPRESS for oversized text; defaults to config

        Returns:
            DeliveryPlan whose labelled chunks are all within ``max_chunk_length``
        """
        response = self.config.settings.response
        max_length = max_chunk_length or response.max_characters
        strategy = strategy or DeliveryStrategy(response.strategy)

        if len(text) <= max_length:
            return DeliveryPlan(text=text, strategy=DeliveryStrategy.DIRECT, chunks=[text])

        if strategy == DeliveryStrategy.COMPRESS:
            compressed = await self._compress(text, max_length)
            if compressed and len(compressed) <= max_length:
                logger.info(f"🗜️ Compressed response {len(text)} → {len(compressed)} chars")
                return DeliveryPlan(
                    text=compressed,
                    strategy=DeliveryStrategy.COMPRESS,
                    chunks=[compressed],
                )
            if compressed:
                logger.info(
                    f"✂️ Compressed response still {len(compressed)} chars, splitting"
                )
                text = compressed

        split_length = max_length
        if max_length > PART_LABEL_RESERVE * 2:
            split_length -= PART_LABEL_RESERVE
        chunks = split_message(text, split_length)
        logger.info(f"✂️ Split response into {len(chunks)} messages")
        return DeliveryPlan(text=text, strategy=DeliveryStrategy.SPLIT, chunks=chunks)

    async def _compress(self, text: str, max_length: int) -> Optional[str]:
        if self.orchestrator is None:
            logger.warning("⚠️ No orchestrator for compression, splitting instead")
            return None

        instruction = self.config.settings.response.compress_instruction.format(
            max_characters=max_length
        )
        request = GenerationRequest(
            system_prompt=instruction,
            user_message=text,
            tools_enabled=False,
        )
        try:
            outcome = await self.orchestrator.run(request)
        except GemiscordError as e:
            logger.warning(f"⚠️ Compression failed, splitting original text: {e}")
            return None

        return outcome.text.strip() or None
