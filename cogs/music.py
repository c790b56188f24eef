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

"""Demo music commands driving a Lavalink node."""

from discord.ext import commands
from loguru import logger

from core.errors import LavalinkError, NotReady, PreconditionError
from core.node import Node
from core.player import Player, PlayerEvent, TrackEnd
from core.messages import TrackExceptionEvent, TrackStuckEvent, WebSocketClosedEvent
from core.track import (
    EmptyResult,
    ErrorResult,
    LoadResult,
    PlaylistResult,
    SearchResult,
    Track,
    TrackResult,
)
from utils.response import ResponseMixin, display_title, format_duration


def _is_identifier(query: str) -> bool:
    """URLs and "source:query" strings go to Lavalink unchanged."""
    head = query.split(" ", 1)[0]
    return "://" in head or (":" in head and not head.endswith(":"))


class Music(ResponseMixin, commands.Cog):
    """Mention-prefixed commands: ping, join, begone, play, lookup, lookup-and-play, destroy, np, stats."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot
        # Last track found by lookup, per guild (played by a bare "play")
        self._loaded: dict[str, Track] = {}

    @property
    def node(self) -> Node:
        return self.bot.node

    def get_player(self, guild_id: int | str) -> Player:
        """Registry player for guild_id, with this cog's listeners attached once."""
        player = self.node.players.get(guild_id)
        if not player.listeners(PlayerEvent.START):
            player.on(PlayerEvent.START, lambda track: self.on_track_start(player, track))
            player.on(PlayerEvent.END, lambda end: self.on_track_end(player, end))
            player.on(PlayerEvent.ERROR, lambda event: self.on_track_exception(player, event))
            player.on(PlayerEvent.STUCK, lambda event: self.on_track_stuck(player, event))
            player.on(PlayerEvent.WS_CLOSED, lambda event: self.on_websocket_closed(player, event))
        return player

    async def cog_check(self, ctx: commands.Context) -> bool:
        return ctx.guild is not None

    async def cog_command_error(self, ctx: commands.Context, error: commands.CommandError) -> None:
        original = getattr(error, "original", error)
        if not isinstance(original, LavalinkError):
            return  # bot.on_command_error logs it

        ctx.error_handled = True
        if isinstance(original, NotReady):
            await self.respond(ctx, "node_unavailable")
        elif isinstance(original, PreconditionError):
            logger.debug(f"guild {ctx.guild.id}: {original}")
            await self.respond(ctx, "voice_not_ready")
        else:
            logger.warning(f"guild {ctx.guild.id}: {ctx.command} failed: {original}")
            await self.respond(ctx, "error_generic")

    # =========================================================================
    # Player listeners
    # =========================================================================

    def on_track_start(self, player: Player, track: Track) -> None:
        logger.info(f"guild {player.guild_id}: playing {track}")

    def on_track_end(self, player: Player, end: TrackEnd) -> None:
        logger.debug(f"guild {player.guild_id}: track ended ({end.reason})")

    def on_track_exception(self, player: Player, event: TrackExceptionEvent) -> None:
        logger.warning(f"guild {player.guild_id}: track exception ({event.severity}): {event.message}")

    def on_track_stuck(self, player: Player, event: TrackStuckEvent) -> None:
        logger.warning(f"guild {player.guild_id}: track stuck (threshold: {event.threshold_ms}ms)")

    def on_websocket_closed(self, player: Player, event: WebSocketClosedEvent) -> None:
        logger.debug(
            f"guild {player.guild_id}: voice websocket closed: code={event.code}, "
            f"reason={event.reason!r}, by_remote={event.by_remote}"
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _lookup(self, query: str) -> LoadResult:
        if not _is_identifier(query):
            query = f"{self.bot.config_manager.get('search_prefix', '')}{query}"
        return await self.node.load_tracks(query)

    async def _report(self, ctx: commands.Context, query: str, result: LoadResult) -> Track | None:
        """Reply describing a load result. Returns the first playable track, if any."""
        if isinstance(result, ErrorResult):
            await self.respond(ctx, "load_failed", severity=result.severity, message=result.message)
            return None
        if isinstance(result, EmptyResult) or not result.tracks:
            if isinstance(result, (EmptyResult, TrackResult, PlaylistResult, SearchResult)):
                await self.respond(ctx, "no_results", query=query)
            else:
                await self.respond(ctx, "load_unknown", load_type=result.load_type)
            return None

        first = result.tracks[0]
        if isinstance(result, PlaylistResult):
            playlist = result.playlist
            if playlist.selected_track is not None and playlist.selected_track < len(playlist.tracks):
                first = playlist.tracks[playlist.selected_track]
            await self.respond(ctx, "lookup_playlist", name=display_title(playlist.name), count=len(playlist.tracks))
        elif isinstance(result, SearchResult):
            await self.respond(
                ctx, "lookup_search", count=len(result.results), query=query,
                title=display_title(first.title), author=display_title(first.author), encoded=first.encoded,
            )
        else:
            await self.respond(
                ctx, "lookup_track", title=display_title(first.title), author=display_title(first.author),
                length=format_duration(first.length), encoded=first.encoded,
            )

        self._loaded[str(ctx.guild.id)] = first
        return first

    async def _require_voice(self, ctx: commands.Context) -> bool:
        if not ctx.author.voice or not ctx.author.voice.channel:
            await self.respond(ctx, "not_in_vc")
            return False
        return True

    # =========================================================================
    # Commands
    # =========================================================================

    @commands.command(name="ping")
    async def ping(self, ctx: commands.Context) -> None:
        await self.respond(ctx, "pong", state="ready" if self.node.ready else "not connected")

    @commands.command(name="join")
    async def join(self, ctx: commands.Context) -> None:
        """Join the caller's voice channel."""
        if not await self._require_voice(ctx):
            return
        channel = ctx.author.voice.channel
        self.get_player(ctx.guild.id)
        await self.node.join(ctx.guild.id, channel.id, deaf=bool(self.bot.config_manager.get("self_deaf", True)))
        await self.respond(ctx, "joining", channel=channel.mention)

    @commands.command(name="begone")
    async def begone(self, ctx: commands.Context) -> None:
        """Leave voice (the Lavalink player is kept)."""
        await self.node.join(ctx.guild.id)
        await self.respond(ctx, "leaving")

    @commands.command(name="play")
    async def play(self, ctx: commands.Context, encoded: str | None = None) -> None:
        """Play an encoded track, or the last track found by lookup."""
        if not await self._require_voice(ctx):
            return
        guild_id = str(ctx.guild.id)
        track: Track | str | None = encoded or self._loaded.get(guild_id)
        if track is None:
            await self.respond(ctx, "nothing_loaded")
            return

        player = await self.get_player(guild_id).play(track)
        title = player.track.title if player.track else str(track)
        await self.respond(ctx, "playing", title=display_title(title))

    @commands.command(name="lookup")
    async def lookup(self, ctx: commands.Context, *, query: str) -> None:
        """Resolve a URL or search query without playing it."""
        result = await self._lookup(query)
        await self._report(ctx, query, result)

    @commands.command(name="lookup-and-play")
    async def lookup_and_play(self, ctx: commands.Context, *, query: str) -> None:
        if not await self._require_voice(ctx):
            return
        result = await self._lookup(query)
        track = await self._report(ctx, query, result)
        if track is None:
            return
        await self.get_player(ctx.guild.id).play(track)
        await self.respond(ctx, "playing", title=display_title(track.title))

    @commands.command(name="destroy")
    async def destroy(self, ctx: commands.Context) -> None:
        """Destroy the guild's Lavalink player and leave voice."""
        await self.node.destroy_player(ctx.guild.id)
        self._loaded.pop(str(ctx.guild.id), None)
        await self.respond(ctx, "destroyed")

    @commands.command(name="np")
    async def now_playing(self, ctx: commands.Context) -> None:
        player = self.node.players.peek(ctx.guild.id)
        if player is None or player.track is None:
            await self.respond(ctx, "nothing_playing")
            return
        track = player.track
        position = min(player.position, track.length) if track.length else player.position
        await self.respond(
            ctx, "now_playing",
            title=display_title(track.title), author=display_title(track.author),
            position=format_duration(position), length=format_duration(track.length),
        )

    @commands.command(name="stats")
    async def stats(self, ctx: commands.Context) -> None:
        """Show node stats (pushed snapshot, or fetched if none arrived yet)."""
        stats = self.node.stats
        if not stats.last_updated:
            stats = await self.node.fetch_stats()
        await self.respond(
            ctx, "stats",
            playing=stats.playing_players, players=stats.players,
            uptime=format_duration(stats.uptime),
            memory=stats.memory.used // (1024 * 1024),
            cpu=round(stats.cpu.lavalink_load * 100, 1),
        )


async def setup(bot: commands.Bot) -> None:
    """Load the Music cog."""
    await bot.add_cog(Music(bot))
