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

"""Response utilities for the demo bot's text commands.

Provides ResponseMixin so cogs get msg() and respond() helpers backed by
the ConfigManager's messages.yaml.
"""

import discord
from discord.ext import commands

# Discord message content limit is 2000, leave room for formatting
TITLE_MAX = 200


def escape_markdown(text: str) -> str:
    """Escape characters Discord would render as formatting in track titles."""
    for char in ("\\", "*", "_", "`", "~", "|"):
        text = text.replace(char, f"\\{char}")
    return text


def truncate_for_display(text: str, max_length: int = TITLE_MAX) -> str:
    """Truncate text with "..." so the result is at most max_length.

    Call BEFORE escape_markdown(); escaping adds characters.
    """
    if len(text) <= max_length:
        return text
    return text[:max_length - 3] + "..."


def format_duration(ms: int) -> str:
    """Format milliseconds as m:ss or h:mm:ss."""
    seconds = max(0, int(ms)) // 1000
    hours, rem = divmod(seconds, 3600)
    minutes, secs = divmod(rem, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def display_title(title: str) -> str:
    return escape_markdown(truncate_for_display(title or "unknown"))


class ResponseMixin:
    """Mixin providing config-driven replies for cogs.

    Requirements:
        self.bot must have a config_manager with msg(key, **kwargs) and
        is_enabled(key)
    """

    def msg(self, key: str, **kwargs) -> str:
        return self.bot.config_manager.msg(key, **kwargs)

    async def respond(self, ctx: commands.Context, key: str, **kwargs) -> None:
        """Reply with the message for key, or just react when it's disabled."""
        if not self.bot.config_manager.is_enabled(key):
            try:
                await ctx.message.add_reaction("\N{WHITE HEAVY CHECK MARK}")
            except discord.HTTPException:
                pass  # Missing permission or message gone
            return
        await ctx.reply(self.msg(key, **kwargs), mention_author=False)
