"""
Event handlers for the Discord client.

The processor decides whether to answer, hands the request to the
orchestrator, and sends the delivery plan back to the channel. Failures are
translated into short user-facing messages here, never inside the core.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional

import discord

from ..ai.types import Attachment
from ..config import ConfigManager
from ..core.delivery import ResponseDeliveryStrategy
from ..core.orchestrator import GenerationOrchestrator
from ..core.state import DeliveryPlan, GenerationRequest, format_state_summary
from ..exceptions import BackendError, BackendErrorKind, QuotaExceeded
from ..utils.sanitizer import sanitize_message_content

logger = logging.getLogger(__name__)

BUSY_MESSAGE = (
    "⏳ I'm handling a lot of requests right now. Please try again in a little while."
)
API_LIMIT_MESSAGE = (
    "⚠️ The AI service usage limit has been reached. Please try again later."
)
GENERIC_ERROR_MESSAGE = "❌ Something went wrong while processing your message."
EMPTY_RESPONSE_MESSAGE = "🤔 I couldn't come up with an answer this time."
GREETING_MESSAGE = "👋 Hi! Mention me with a question and I'll do my best to answer."

# Generated text must never ping @everyone, @here or roles
REPLY_MENTIONS = discord.AllowedMentions(everyone=False, roles=False)


class MessageResult(Enum):
    """Result of message processing."""

    NOT_HANDLED = "not_handled"  # Bot chose not to respond
    PROCESSED = "processed"  # Message was processed and response sent
    ERROR = "error"  # Error reply was sent


@dataclass
class ProcessingContext:
    """Context needed for message processing."""

    config: ConfigManager
    orchestrator: GenerationOrchestrator
    delivery: ResponseDeliveryStrategy
    bot_user: Any
    sleep: Callable[[float], Any] = asyncio.sleep


def describe_failure(error: Exception) -> str:
    """User-facing text for a failed run."""
    if isinstance(error, QuotaExceeded):
        return BUSY_MESSAGE
    if isinstance(error, BackendError) and error.kind == BackendErrorKind.QUOTA:
        return API_LIMIT_MESSAGE
    return GENERIC_ERROR_MESSAGE


class MessageProcessor:
    """
    Handles the complete message processing pipeline.

    From deciding whether to respond through sending every chunk of the
    final answer.
    """

    def __init__(self, context: ProcessingContext):
        self.context = context

    async def handle_message(self, message: discord.Message) -> MessageResult:
        """
        Handle a Discord message through the complete pipeline.

        Args:
            message: Discord message to process

        Returns:
            MessageResult indicating what happened
        """
        should_respond, reason = self._should_respond(message)
        if not should_respond:
            logger.debug(f"🚫 Not responding to {message.author.name}: {reason}")
            return MessageResult.NOT_HANDLED

        content = self._clean_message_content(message.content)
        attachments = self._attachments(message)
        if not content and not attachments:
            await message.reply(GREETING_MESSAGE)
            return MessageResult.PROCESSED

        logger.info(
            f"📨 Processing message from {message.author.name}: {content[:50]}..."
        )

        try:
            async with message.channel.typing():
                outcome = await self.context.orchestrator.run(
                    self._build_request(content, attachments)
                )
                logger.debug(f"\n{format_state_summary(outcome)}")
                plan = await self.context.delivery.plan(
                    outcome.text or EMPTY_RESPONSE_MESSAGE
                )
        except Exception as e:
            logger.exception(
                f"❌ Error processing message from {message.author.name}: {e}",
                extra={"error_type": type(e).__name__},
            )
            await message.reply(describe_failure(e))
            return MessageResult.ERROR

        await self._send_plan(message, plan)
        logger.info(
            f"✅ Sent {len(plan.chunks)} message(s) to {message.author.name} "
            f"({plan.strategy.value})"
        )
        return MessageResult.PROCESSED

    def _should_respond(self, message: discord.Message) -> tuple[bool, str]:
        """Determine whether the bot should respond to a message."""
        if message.author.bot:
            return False, "Message from a bot"

        if message.guild is None:
            return False, "Direct message"

        if message.type not in (discord.MessageType.default, discord.MessageType.reply):
            return False, "System message"

        bot_user = self.context.bot_user
        if bot_user is not None and bot_user in message.mentions:
            return True, "Bot was mentioned"

        reference = message.reference
        if reference is not None and isinstance(reference.resolved, discord.Message):
            if reference.resolved.author == bot_user:
                return True, "Reply to the bot"

        return False, "No bot mention or reply in guild channel"

    def _clean_message_content(self, content: str) -> str:
        """Remove the bot mention, then replace the remaining Discord markup."""
        if not content:
            return ""

        bot_user = self.context.bot_user
        cleaned = content
        if bot_user is not None:
            cleaned = cleaned.replace(f"<@{bot_user.id}>", "").replace(
                f"<@!{bot_user.id}>", ""
            )
        return sanitize_message_content(cleaned)

    def _attachments(self, message: discord.Message) -> List[Attachment]:
        return [
            Attachment(
                name=attachment.filename,
                url=attachment.url,
                content_type=attachment.content_type,
                size=attachment.size,
            )
            for attachment in message.attachments
        ]

    def _build_request(
        self, content: str, attachments: List[Attachment]
    ) -> GenerationRequest:
        settings = self.context.config.settings
        suffix = settings.orchestration.auto_response_suffix.format(
            max_characters=settings.response.max_characters
        )
        return GenerationRequest(
            system_prompt=f"{settings.orchestration.base_system_prompt}\n\n{suffix}",
            user_message=content or "Please look at the attached files.",
            attachments=attachments,
            tools_enabled=settings.discord.tools_enabled,
        )

    async def _send_plan(self, message: discord.Message, plan: DeliveryPlan) -> None:
        """Reply with the first chunk, then post the rest to the channel in order."""
        delay = self.context.config.settings.response.split_delay_seconds
        for index, chunk in enumerate(plan.labelled_chunks()):
            if index == 0:
                await message.reply(chunk, allowed_mentions=REPLY_MENTIONS)
                continue
            if delay > 0:
                await self.context.sleep(delay)
            await message.channel.send(chunk, allowed_mentions=REPLY_MENTIONS)


class ErrorHandler:
    """Logs client-level errors that happen outside message processing."""

    def __init__(self):
        self.error_counts: dict[str, int] = {}

    async def handle_client_error(self, event: str, error: Optional[BaseException]):
        error_type = type(error).__name__ if error else "Unknown"
        self.error_counts[error_type] = self.error_counts.get(error_type, 0) + 1
        logger.error(
            f"❌ Discord client error in {event}: {error_type} "
            f"(seen {self.error_counts[error_type]} times)"
        )
