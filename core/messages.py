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
Inbound WebSocket Messages

Every text frame from the Lavalink websocket is decoded exactly once into
one of the classes below. Consumers branch on the class, never on the raw
"op"/"type" strings. Anything this client does not know becomes
UnknownMessage / UnknownEvent so it can be logged and dropped.

Message kinds (op):
    ready        -> ReadyMessage
    stats        -> StatsMessage
    playerUpdate -> PlayerUpdateMessage
    event        -> one of the *Event classes, chosen by "type"
"""

from dataclasses import dataclass, field
from typing import Callable, Union

from core.stats import NodeStats
from core.track import Track, parse_track


@dataclass
class PlayerState:
    """
    Position report for one player.

    Attributes:
        time: Epoch ms when Lavalink took the report (0 = never updated)
        position: Track position in ms at that time
        connected: Whether Lavalink is connected to the voice gateway
        ping: Voice gateway latency in ms (-1 if not connected)
    """
    time: int = 0
    position: int = 0
    connected: bool = False
    ping: int = -1

    @classmethod
    def from_payload(cls, data: dict) -> "PlayerState":
        return cls(
            time=data.get("time", 0),
            position=data.get("position", 0),
            connected=data.get("connected", False),
            ping=data.get("ping", -1),
        )


# =============================================================================
# Top-level messages
# =============================================================================

@dataclass
class InboundMessage:
    raw: dict = field(repr=False)


@dataclass
class ReadyMessage(InboundMessage):
    session_id: str
    resumed: bool = False


@dataclass
class StatsMessage(InboundMessage):
    stats: NodeStats


@dataclass
class PlayerUpdateMessage(InboundMessage):
    guild_id: str | None
    state: PlayerState


@dataclass
class UnknownMessage(InboundMessage):
    op: str | None


# =============================================================================
# Player events (op == "event")
# =============================================================================

@dataclass
class EventMessage(InboundMessage):
    guild_id: str | None


@dataclass
class TrackStartEvent(EventMessage):
    track: Track | None


@dataclass
class TrackEndEvent(EventMessage):
    """reason: finished, loadFailed, stopped, replaced or cleanup."""
    track: Track | None
    reason: str


@dataclass
class TrackExceptionEvent(EventMessage):
    """
    A track failed while playing.

    received_at is stamped (epoch ms) by the player after listeners ran.
    """
    track: Track | None
    message: str | None
    severity: str
    cause: str | None
    received_at: int | None = None


@dataclass
class TrackStuckEvent(EventMessage):
    track: Track | None
    threshold_ms: int


@dataclass
class WebSocketClosedEvent(EventMessage):
    """Discord closed Lavalink's voice websocket for this guild."""
    code: int
    reason: str
    by_remote: bool


@dataclass
class UnknownEvent(EventMessage):
    type: str | None


PlayerMessage = Union[PlayerUpdateMessage, EventMessage]


def _guild_id(data: dict) -> str | None:
    guild_id = data.get("guildId")
    return str(guild_id) if guild_id else None


def _track_start(data: dict) -> EventMessage:
    return TrackStartEvent(data, _guild_id(data), parse_track(data.get("track")))


def _track_end(data: dict) -> EventMessage:
    return TrackEndEvent(data, _guild_id(data), parse_track(data.get("track")), data.get("reason", ""))


def _track_exception(data: dict) -> EventMessage:
    exception = data.get("exception") or {}
    return TrackExceptionEvent(
        data,
        _guild_id(data),
        parse_track(data.get("track")),
        message=exception.get("message"),
        severity=exception.get("severity", "fault"),
        cause=exception.get("cause"),
    )


def _track_stuck(data: dict) -> EventMessage:
    return TrackStuckEvent(data, _guild_id(data), parse_track(data.get("track")), data.get("thresholdMs", 0))


def _websocket_closed(data: dict) -> EventMessage:
    return WebSocketClosedEvent(
        data,
        _guild_id(data),
        code=data.get("code", 0),
        reason=data.get("reason", ""),
        by_remote=data.get("byRemote", False),
    )


_EVENT_DECODERS: dict[str, Callable[[dict], EventMessage]] = {
    "TrackStartEvent": _track_start,
    "TrackEndEvent": _track_end,
    "TrackExceptionEvent": _track_exception,
    "TrackStuckEvent": _track_stuck,
    "WebSocketClosedEvent": _websocket_closed,
}


def decode_event(data: dict) -> EventMessage:
    decoder = _EVENT_DECODERS.get(data.get("type"))
    if decoder is None:
        return UnknownEvent(data, _guild_id(data), data.get("type"))
    return decoder(data)


def decode_message(data: dict, received_at: int = 0) -> InboundMessage:
    """Decode a parsed websocket frame into its message class.

    Args:
        data: JSON object from the websocket
        received_at: Local receipt time in epoch ms (stamped onto stats)

    Returns:
        The matching InboundMessage subclass; UnknownMessage for unknown ops
    """
    op = data.get("op")
    if op == "ready":
        return ReadyMessage(data, session_id=data.get("sessionId", ""), resumed=data.get("resumed", False))
    if op == "stats":
        return StatsMessage(data, NodeStats.from_payload(data, received_at=received_at))
    if op == "playerUpdate":
        return PlayerUpdateMessage(data, _guild_id(data), PlayerState.from_payload(data.get("state") or {}))
    if op == "event":
        return decode_event(data)
    return UnknownMessage(data, op)
