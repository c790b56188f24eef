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
Player - Per-Guild Playback State

Mirrors one guild's Lavalink player. Holds two snapshots, both replaced
wholesale and never computed locally:

- PlayerData: what Lavalink last said about the player (track, volume,
  paused, filters), from update-player responses and track events
- PlayerState: the last position report (playerUpdate messages)

All mutation goes through the Node: REST responses via _handle_new_data()
and websocket messages via _handle_message(). Track lifecycle events are
re-published to listeners registered with on().
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from loguru import logger

from core.messages import (
    EventMessage,
    PlayerState,
    PlayerUpdateMessage,
    TrackEndEvent,
    TrackExceptionEvent,
    TrackStartEvent,
    TrackStuckEvent,
    UnknownEvent,
    WebSocketClosedEvent,
)
from core.track import Track, parse_track
from systems.events import EventEmitter
from utils.clock import now_ms

if TYPE_CHECKING:
    from core.node import Node


class PlayerEvent(str, Enum):
    """Events published by a Player.

    START     payload: Track
    END       payload: TrackEnd
    ERROR     payload: TrackExceptionEvent
    STUCK     payload: TrackStuckEvent
    WS_CLOSED payload: WebSocketClosedEvent
    """
    START = "start"
    END = "end"
    ERROR = "error"
    STUCK = "stuck"
    WS_CLOSED = "ws_closed"


@dataclass
class TrackEnd:
    track: Track | None
    reason: str


@dataclass
class PlayerData:
    """Player snapshot as last reported by Lavalink."""
    track: Track | None = None
    volume: int = 100
    paused: bool = False
    filters: dict = field(default_factory=dict)

    @classmethod
    def from_payload(cls, data: dict) -> "PlayerData":
        return cls(
            track=parse_track(data.get("track")),
            volume=data.get("volume", 100),
            paused=data.get("paused", False),
            filters=data.get("filters") or {},
        )


class Player(EventEmitter):
    """
    Per-guild Lavalink player.

    Get instances from node.players.get(guild_id); do not construct them
    directly. After destroy() the instance is detached from the registry
    and is_destroyed() returns True; get a fresh one from the registry.

    Attributes:
        guild_id: Guild this player belongs to
        node: Node that owns the websocket session (not owned by the player)
        last_error: Last TrackExceptionEvent / TrackStuckEvent received
    """

    def __init__(self, guild_id: str, node: "Node") -> None:
        super().__init__()
        self._guild_id = str(guild_id)
        self._node = node
        self._state = PlayerState()
        self._data = PlayerData()
        self.last_error: TrackExceptionEvent | TrackStuckEvent | None = None

    def __repr__(self) -> str:
        return f"<Player guild={self._guild_id} track={self.track!s} paused={self.paused}>"

    # =========================================================================
    # Snapshot accessors
    # =========================================================================

    @property
    def guild_id(self) -> str:
        return self._guild_id

    @property
    def node(self) -> "Node":
        return self._node

    @property
    def state(self) -> PlayerState:
        """Last position report. state.time == 0 means no report yet."""
        return self._state

    @property
    def data(self) -> PlayerData:
        return self._data

    @property
    def track(self) -> Track | None:
        return self._data.track

    @property
    def volume(self) -> int:
        return self._data.volume

    @property
    def paused(self) -> bool:
        return self._data.paused

    @property
    def filters(self) -> dict:
        return self._data.filters

    @property
    def connected(self) -> bool:
        return self._state.connected

    @property
    def ping(self) -> int:
        return self._state.ping

    @property
    def position(self) -> int:
        """Current track position in ms, interpolated from the last report.

        While paused, or before the first report (time 0), the reported
        position is returned as-is; otherwise the wall-clock time elapsed
        since the report is added.
        """
        if self._data.paused or not self._state.time:
            return self._state.position
        return self._state.position + (now_ms() - self._state.time)

    # =========================================================================
    # Commands
    # =========================================================================

    async def update(self, options: dict | None = None, *, no_replace: bool = False, **fields: Any) -> "Player":
        """Send a player update to Lavalink.

        Args:
            options: Update-player body (track, position, endTime, volume,
                paused, filters). "voice" is filled in automatically.
            no_replace: Don't replace a track that is already playing
            **fields: Merged into options

        Returns:
            This player, with its snapshot replaced by Lavalink's response
        """
        body = {**(options or {}), **fields}
        await self._node.update_player(self._guild_id, body, no_replace=no_replace)
        return self

    async def play(self, track: Track | str, *, no_replace: bool = False, **fields: Any) -> "Player":
        """Play a track (Track object or encoded string)."""
        encoded = track.encoded if isinstance(track, Track) else track
        return await self.update({"track": {"encoded": encoded}}, no_replace=no_replace, **fields)

    async def stop(self) -> "Player":
        return await self.update({"track": {"encoded": None}})

    async def pause(self, paused: bool = True) -> "Player":
        return await self.update({"paused": paused})

    async def resume(self) -> "Player":
        return await self.pause(False)

    async def set_volume(self, volume: int) -> "Player":
        """Set volume (0-1000, 100 is unchanged)."""
        return await self.update({"volume": max(0, min(1000, int(volume)))})

    async def seek(self, position: int) -> "Player":
        """Seek to position (ms) in the current track."""
        return await self.update({"position": max(0, int(position))})

    async def set_filters(self, filters: dict) -> "Player":
        return await self.update({"filters": filters})

    async def join(self, channel_id: str | int | None, *, deaf: bool = False, mute: bool = False) -> "Player":
        """Join (or move to) a voice channel. Must happen before anything can play."""
        await self._node.join(self._guild_id, channel_id, deaf=deaf, mute=mute)
        return self

    async def destroy(self) -> None:
        """Destroy the Lavalink player and leave voice.

        Removes this instance from the registry; get a new player from
        node.players.get() afterwards.
        """
        await self._node.destroy_player(self._guild_id)

    def is_destroyed(self) -> bool:
        """True once the registry no longer holds this exact instance."""
        players = self._node.players
        if not players.has(self._guild_id):
            return True
        return players.peek(self._guild_id) is not self

    # =========================================================================
    # Node callbacks
    # =========================================================================

    def _handle_new_data(self, data: dict) -> None:
        """Replace the player snapshot with an update-player response."""
        self._data = PlayerData.from_payload(data)

    def _handle_message(self, message: PlayerUpdateMessage | EventMessage) -> None:
        """Apply one websocket message addressed to this guild."""
        if isinstance(message, PlayerUpdateMessage):
            self._state = message.state
        elif isinstance(message, TrackStartEvent):
            self._data.track = message.track
            self.emit(PlayerEvent.START, message.track)
        elif isinstance(message, TrackEndEvent):
            self._data.track = None
            self.emit(PlayerEvent.END, TrackEnd(message.track, message.reason))
        elif isinstance(message, TrackExceptionEvent):
            self.last_error = message
            self.emit(PlayerEvent.ERROR, message)
            message.received_at = now_ms()
        elif isinstance(message, TrackStuckEvent):
            self.last_error = message
            self.emit(PlayerEvent.STUCK, message)
        elif isinstance(message, WebSocketClosedEvent):
            self.emit(PlayerEvent.WS_CLOSED, message)
        elif isinstance(message, UnknownEvent):
            logger.warning(f"guild {self._guild_id}: unknown player event {message.type!r}")
        else:
            logger.warning(f"guild {self._guild_id}: unexpected message {message.raw!r}")
