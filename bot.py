# Copyright (C) 2026 grodz
#
# This file is part of Tapster.
#
# Tapster is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.

"""
Tapster Demo Bot
========================================================
VERSION: 1.0.0
========================================================

Minimal discord.py bot that drives a Lavalink v4 node through the
Tapster client. Commands are mention-prefixed (see cogs/music.py).

Raw gateway dispatches are read to forward VOICE_SERVER_UPDATE and
VOICE_STATE_UPDATE to the node; voice joins are sent back as op 4.
"""

import asyncio
import json
import os
import signal
from pathlib import Path

import discord
from discord.ext import commands
from dotenv import load_dotenv
from loguru import logger

from config import VERSION
from core.node import Node
from utils.config import ConfigManager, validate_configuration
from utils.logging import setup_logging

# Load environment variables
load_dotenv()

EXTENSIONS = ("cogs.music",)


class TapsterBot(commands.Bot):
    """commands.Bot owning one Lavalink node.

    Attributes:
        config_manager: Loaded ConfigManager
        node: Lavalink node, created in setup_hook once the bot user is known
    """

    def __init__(self, config_manager: ConfigManager) -> None:
        intents = discord.Intents.default()
        intents.message_content = True
        intents.voice_states = True

        super().__init__(
            command_prefix=commands.when_mentioned,
            intents=intents,
            help_command=None,
            # Needed for on_socket_raw_receive
            enable_debug_events=True,
        )
        self.config_manager = config_manager
        self.node: Node | None = None

    async def setup_hook(self) -> None:
        """Connect to Lavalink before the gateway session starts."""
        lavalink = self.config_manager.get("lavalink")
        self.node = Node(
            lavalink["url"],
            lavalink["password"],
            self.send_gateway,
            self.user.id,
            voice_update_delay=lavalink["voice_update_delay"],
        )
        for extension in EXTENSIONS:
            await self.load_extension(extension)

        logger.info(f"connecting to lavalink at {lavalink['url']}...")
        await self.node.connect()
        logger.log("NOTICE", f"lavalink ready (session {self.node.session_id})")

    async def send_gateway(self, guild_id: str, packet: dict) -> None:
        """Send a raw gateway packet (voice state update) on the bot's websocket."""
        if self.ws is None:
            logger.warning(f"guild {guild_id}: gateway not connected, dropping op {packet.get('op')}")
            return
        await self.ws.send_as_json(packet)

    async def on_ready(self) -> None:
        logger.log("NOTICE", f"logged in as {self.user} ({self.user.id})")

    async def on_socket_raw_receive(self, msg: str) -> None:
        """Forward voice dispatches to the node."""
        if self.node is None or "VOICE_" not in msg:
            return
        try:
            packet = json.loads(msg)
        except ValueError:
            return
        if packet.get("op") != 0:
            return

        event = packet.get("t")
        if event == "VOICE_SERVER_UPDATE":
            self.node.voice_server_update(packet["d"])
        elif event == "VOICE_STATE_UPDATE":
            self.node.voice_state_update(packet["d"])

    async def on_command_error(self, ctx: commands.Context, error: commands.CommandError) -> None:
        """Log command errors not already answered by a cog."""
        if getattr(ctx, "error_handled", False):
            return
        # Typos and missing arguments are user mistakes, not code errors
        if isinstance(error, (commands.CommandNotFound, commands.MissingRequiredArgument, commands.CheckFailure)):
            logger.debug(f"ignored command error from {ctx.author}: {error}")
            return

        original = getattr(error, "original", error)
        logger.opt(exception=original).error(f"command error in {ctx.command}: {original}")
        try:
            await ctx.reply(self.config_manager.msg("error_generic"), mention_author=False)
        except discord.HTTPException:
            pass

    async def close(self) -> None:
        """Close the Lavalink node, then the Discord connection."""
        logger.info("shutting down...")
        if self.node is not None:
            try:
                await self.node.close()
            except Exception:
                logger.opt(exception=True).error("error closing lavalink node")
        await super().close()
        logger.info("shutdown complete")


async def main() -> None:
    config_path = Path(os.getenv("CONFIG_PATH") or Path(__file__).parent / "config")
    config_manager = ConfigManager(config_path)
    await config_manager.load()

    logging_config = config_manager.get("logging")
    setup_logging(logging_config["level"], logging_config["suppress_library_logs"])
    validate_configuration(config_manager)

    logger.log("NOTICE", f"tapster {VERSION} starting")
    bot = TapsterBot(config_manager)

    # SIGTERM = systemd stop / docker stop; SIGINT surfaces as KeyboardInterrupt
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGTERM, lambda: loop.create_task(bot.close()))
    except NotImplementedError:
        pass  # Windows

    async with bot:
        await bot.start(os.environ["DISCORD_TOKEN"].strip())


if __name__ == '__main__':
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("stopped by user (Ctrl+C)")
