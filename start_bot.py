#!/usr/bin/env python3
"""
Startup script for the moola bot
Runs the Discord bot together with the HTTP health endpoint
"""

import asyncio
import signal
import sys

from moolabot.services.discord_moola_bot import setup_bot
from moolabot.services.health_server import HealthServer
from moolabot.utils.config_loader import (
    get_health_settings,
    get_log_level,
    get_log_path,
    load_config,
    validate_required_keys,
)
from moolabot.utils.logger_setup import setup_logging


class BotManager:
    def __init__(self, config: dict):
        self.config = config
        self.bot = None
        self.health_server = None
        self.logger = None
        self._stopping = False

    async def start_bot(self):
        """Start the Discord bot and health endpoint"""
        self.logger = setup_logging(get_log_level(self.config), get_log_path(self.config))

        self.bot, token = setup_bot(self.config)

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, lambda s=sig: asyncio.create_task(self.shutdown(s)))
            except NotImplementedError:
                # Windows event loops have no signal handler support
                pass

        health = get_health_settings(self.config)
        if health['enabled']:
            self.health_server = HealthServer(self.bot, health['host'], health['port'])
            await self.health_server.start()

        self.logger.info("Starting moola bot...")
        try:
            async with self.bot:
                await self.bot.start(token)
        finally:
            await self.shutdown()

    async def shutdown(self, sig=None):
        """Gracefully shutdown the bot"""
        if self._stopping:
            return
        self._stopping = True

        if sig is not None:
            self.logger.info(f"Received signal {sig.name}, shutting down")

        if self.bot and not self.bot.is_closed():
            await self.bot.close()
        if self.health_server:
            await self.health_server.stop()

        self.logger.info("Bot shutdown complete")


def main():
    """Main entry point"""
    try:
        config = load_config()
        validate_required_keys(config)
    except FileNotFoundError as e:
        print(f"{e}")
        print("Please copy config/config.example.yml to config/config.yml and fill in your ids")
        sys.exit(1)
    except ValueError as e:
        print(f"Invalid configuration: {e}")
        sys.exit(1)

    manager = BotManager(config)

    try:
        asyncio.run(manager.start_bot())
    except KeyboardInterrupt:
        print("\nGoodbye!")
    except Exception as e:
        print(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
