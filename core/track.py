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
Track Models and Load Results

Typed views of the track payloads Lavalink returns from /loadtracks,
/decodetrack(s) and player events. Each model keeps the raw payload so
unknown plugin fields survive a round trip.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class TrackInfo:
    """Metadata block of a track ("info" in the Lavalink payload)."""
    identifier: str
    title: str
    author: str
    length: int
    position: int = 0
    is_seekable: bool = False
    is_stream: bool = False
    uri: str | None = None
    artwork_url: str | None = None
    isrc: str | None = None
    source_name: str = ""

    @classmethod
    def from_payload(cls, data: dict) -> "TrackInfo":
        return cls(
            identifier=data.get("identifier", ""),
            title=data.get("title", "unknown"),
            author=data.get("author", "unknown"),
            length=data.get("length", 0),
            position=data.get("position", 0),
            is_seekable=data.get("isSeekable", False),
            is_stream=data.get("isStream", False),
            uri=data.get("uri"),
            artwork_url=data.get("artworkUrl"),
            isrc=data.get("isrc"),
            source_name=data.get("sourceName", ""),
        )


@dataclass
class Track:
    """
    A playable track.

    Attributes:
        encoded: Base64 blob Lavalink uses to identify the track
        info: Parsed metadata
        plugin_info: Extra data added by Lavalink plugins
        user_data: Arbitrary data attached by the client on play
        raw: Original payload

    Equality is based on the encoded string only.
    """
    encoded: str
    info: TrackInfo
    plugin_info: dict = field(default_factory=dict)
    user_data: dict = field(default_factory=dict)
    raw: dict = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_payload(cls, data: dict) -> "Track":
        return cls(
            encoded=data.get("encoded", ""),
            info=TrackInfo.from_payload(data.get("info") or {}),
            plugin_info=data.get("pluginInfo") or {},
            user_data=data.get("userData") or {},
            raw=data,
        )

    @property
    def title(self) -> str:
        return self.info.title

    @property
    def author(self) -> str:
        return self.info.author

    @property
    def length(self) -> int:
        """Duration in milliseconds (0 for streams of unknown length)."""
        return self.info.length

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Track):
            return NotImplemented
        return self.encoded == other.encoded

    def __hash__(self) -> int:
        return hash(self.encoded)

    def __str__(self) -> str:
        return f"{self.info.title} by {self.info.author}"


def parse_track(data: dict | None) -> Track | None:
    """Parse an optional track payload (None or empty -> None)."""
    if not data:
        return None
    return Track.from_payload(data)


@dataclass
class Playlist:
    """A playlist returned by a "playlist" load result.

    selected_track is the index Lavalink marked as selected, or None
    when the source did not select one (Lavalink sends -1).
    """
    name: str
    tracks: list[Track]
    selected_track: int | None = None
    plugin_info: dict = field(default_factory=dict)

    @classmethod
    def from_payload(cls, data: dict) -> "Playlist":
        info = data.get("info") or {}
        selected = info.get("selectedTrack", -1)
        return cls(
            name=info.get("name", ""),
            tracks=[Track.from_payload(t) for t in data.get("tracks", [])],
            selected_track=selected if selected is not None and selected >= 0 else None,
            plugin_info=data.get("pluginInfo") or {},
        )


# =============================================================================
# Load Results
# =============================================================================
# /loadtracks returns {"loadType": ..., "data": ...}; the shape of "data"
# depends on loadType. One class per loadType.


@dataclass
class LoadResult:
    """Base class for /loadtracks results."""
    load_type: str

    @property
    def tracks(self) -> list[Track]:
        """All tracks carried by this result (empty for empty/error)."""
        return []


@dataclass
class TrackResult(LoadResult):
    track: Track

    @property
    def tracks(self) -> list[Track]:
        return [self.track]


@dataclass
class PlaylistResult(LoadResult):
    playlist: Playlist

    @property
    def tracks(self) -> list[Track]:
        return self.playlist.tracks


@dataclass
class SearchResult(LoadResult):
    results: list[Track]

    @property
    def tracks(self) -> list[Track]:
        return self.results


@dataclass
class EmptyResult(LoadResult):
    pass


@dataclass
class ErrorResult(LoadResult):
    """A failed load. severity is "common", "suspicious" or "fault"."""
    message: str
    severity: str
    cause: str


@dataclass
class UnknownResult(LoadResult):
    data: Any = None


def parse_load_result(payload: dict) -> LoadResult:
    """Turn a /loadtracks response body into its LoadResult variant.

    Unknown loadType values produce UnknownResult instead of raising,
    so a newer server does not break older clients.
    """
    load_type = payload.get("loadType", "")
    data = payload.get("data")

    if load_type == "track":
        return TrackResult(load_type, Track.from_payload(data or {}))
    if load_type == "playlist":
        return PlaylistResult(load_type, Playlist.from_payload(data or {}))
    if load_type == "search":
        return SearchResult(load_type, [Track.from_payload(t) for t in data or []])
    if load_type == "empty":
        return EmptyResult(load_type)
    if load_type == "error":
        data = data or {}
        return ErrorResult(
            load_type,
            message=data.get("message") or "unknown error",
            severity=data.get("severity", "fault"),
            cause=data.get("cause") or "",
        )
    return UnknownResult(load_type, data)
