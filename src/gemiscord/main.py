"""
Main entry point for the Discord bot.
Handles startup, graceful shutdown, and error handling.
"""

import asyncio
import logging
import signal
import sys
from typing import Optional

from .app import Services, build_services
from .config import ConfigManager
from .db import dispose_engine
from .discord.client import BotClient
from .exceptions import ConfigurationError
from .utils.logging import setup_logging

logger = logging.getLogger(__name__)


class BotApplication:
    """Main application class that manages the bot lifecycle."""

    def __init__(self, config: ConfigManager, use_database: bool = True):
        self.config = config
        self.use_database = use_database
        self.services: Optional[Services] = None
        self.client: Optional[BotClient] = None

    async def startup(self) -> None:
        """Initialize all bot components."""
        logger.info("🚀 Starting Discord bot...")

        token = self.config.settings.discord.token.get_secret_value()
        if not token:
            raise ConfigurationError(
                "Discord bot token must be set. Please configure GEMISCORD_DISCORD__TOKEN."
            )
        if not self.config.settings.gemini.api_key.get_secret_value():
            raise ConfigurationError(
                "Gemini API key must be set. Please configure GEMISCORD_GEMINI__API_KEY."
            )

        try:
            self.services = await build_services(
                self.config, use_database=self.use_database
            )
            self.client = BotClient(self.services)
            await self.client.login(token)
            logger.info("✅ Bot startup complete!")
        except Exception as e:
            logger.error(f"❌ Failed to start bot: {e}")
            await self.cleanup()
            raise

    async def run(self) -> None:
        """Run the bot until interrupted."""
        await self.startup()
        if self.client is None:
            raise RuntimeError("Discord client was not created during startup")
        self.install_reload_handler()

        try:
            await self.client.connect()
        finally:
            await self.cleanup()

    def install_reload_handler(self) -> None:
        """Reload configuration on SIGHUP where the platform supports it."""
        try:
            asyncio.get_running_loop().add_signal_handler(
                signal.SIGHUP, self.reload_config
            )
        except (AttributeError, NotImplementedError):
            logger.debug("SIGHUP reload is not available on this platform")

    def reload_config(self) -> None:
        try:
            self.config.reload()
        except ConfigurationError as e:
            logger.error(f"❌ Configuration reload failed, keeping previous settings: {e}")

    async def cleanup(self) -> None:
        """Clean up resources on shutdown."""
        logger.info("🧹 Cleaning up resources...")

        if self.client is not None and not self.client.is_closed():
            await self.client.close()
        if self.services is not None:
            await self.services.aclose()
        await dispose_engine()

        logger.info("✅ Cleanup complete!")


async def main(config: ConfigManager, use_database: bool = True) -> None:
    app = BotApplication(config, use_database=use_database)
    await app.run()


def sync_main() -> None:
    """Synchronous wrapper for main() - used by script entry point."""
    try:
        config = ConfigManager()
    except ConfigurationError as e:
        print(f"❌ Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    settings = config.settings
    setup_logging(settings.log_level, settings.log_format, settings.log_file)

    try:
        asyncio.run(main(config))
    except KeyboardInterrupt:
        logger.info("🛑 Bot stopped by user")
    except ConfigurationError as e:
        logger.error(f"❌ Configuration error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    sync_main()
