"""
Main Discord client implementation.

Thin gateway adapter: discord.py dispatches every on_message in its own task,
so inbound messages are processed concurrently and independently.
"""

import logging
import sys
from typing import Optional

import discord

from ..app import Services
from .handlers import ErrorHandler, MessageProcessor, ProcessingContext

logger = logging.getLogger(__name__)


class BotClient(discord.Client):
    """Discord client that routes mentions through the generation pipeline."""

    def __init__(self, services: Services):
        intents = discord.Intents.default()
        intents.message_content = True
        intents.guilds = True

        super().__init__(intents=intents)

        self.services = services
        self.message_processor: Optional[MessageProcessor] = None
        self.error_handler = ErrorHandler()

        logger.info("🤖 Discord client initialized")

    async def setup_hook(self) -> None:
        """Wire the message processor once the bot user is known."""
        self.message_processor = MessageProcessor(
            ProcessingContext(
                config=self.services.config,
                orchestrator=self.services.orchestrator,
                delivery=self.services.delivery,
                bot_user=self.user,
            )
        )
        logger.info("✅ Discord client initialization complete")

    async def on_ready(self):
        """Called when bot successfully connects to Discord."""
        logger.info(f"🎉 {self.user} has connected to Discord!")
        logger.info(f"📊 Connected to {len(self.guilds)} guilds")

    async def on_message(self, message: discord.Message):
        """Handle incoming Discord messages."""
        if not self.message_processor:
            logger.error("Message processor not initialized")
            return

        await self.message_processor.handle_message(message)

    async def on_error(self, event: str, *args, **kwargs):
        """Handle Discord client errors."""
        await self.error_handler.handle_client_error(event, sys.exc_info()[1])
