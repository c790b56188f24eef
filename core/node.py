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
Node - Lavalink Connection Session

One Node per Lavalink server. Owns the REST path and the websocket,
the handshake/readiness gate, the voice coordinator and the player
registry. Inbound websocket frames are decoded once and routed: session
and stats messages are applied here, player messages go to the guild's
Player.

Lifecycle:
    node = Node(url, password, send, user_id)
    await node.connect()          # version probe, websocket, wait for "ready"
    ...
    await node.close()

A node connects at most once. If its websocket errors or closes, ready
flips to False and the node stays down; construct a new Node to reconnect.
"""

import asyncio
import json
from typing import Any, Callable

from loguru import logger

from config import API_PREFIX, API_VERSION, API_VERSION_HEADER, CLIENT_NAME, VOICE_UPDATE_DEBOUNCE
from core.errors import (
    AlreadyConnected,
    BackendRequestError,
    ConfigurationError,
    InputValidationError,
    NotReady,
    PreconditionError,
    ProtocolVersionMismatch,
    TransportError,
)
from core.messages import (
    EventMessage,
    PlayerUpdateMessage,
    ReadyMessage,
    StatsMessage,
    decode_message,
)
from core.player_manager import PlayerManager
from core.stats import NodeStats
from core.track import LoadResult, Track, parse_load_result
from core.transport import HTTPResponse, MessageStream, Transport
from systems.voice_coordinator import VoiceCoordinator
from utils.clock import now_ms
from utils.url import append_path, verify_url, websocket_url, with_query


def _require_guild(guild_id: Any) -> str:
    if guild_id is None or guild_id == "":
        raise InputValidationError("no guild ID provided")
    return str(guild_id)


class Node:
    """
    Connection session to one Lavalink v4 server.

    Args:
        url: Base http(s) address of the server (e.g., "http://localhost:2333")
        password: Server password, sent as the Authorization header
        send: Gateway send function, called as send(guild_id, packet) to join or
            leave voice channels; may return an awaitable
        user_id: The bot's own Discord user id
        client_name: Sent as Client-Name when opening the websocket
        transport: Transport to use (defaults to an aiohttp Transport)
        voice_update_delay: Seconds to debounce voice events before updating

    Attributes:
        ready: True between the "ready" message and a websocket error/close
        session_id: Session id assigned by Lavalink in the "ready" message
        players: PlayerManager for this node
        voice: VoiceCoordinator holding per-guild voice credentials
    """

    def __init__(
        self,
        url: str,
        password: str,
        send: Callable[[str, dict], Any],
        user_id: str | int,
        client_name: str = CLIENT_NAME,
        *,
        transport: Transport | None = None,
        voice_update_delay: float = VOICE_UPDATE_DEBOUNCE,
    ) -> None:
        if not url:
            raise ConfigurationError("no URL provided")
        if password is None:
            raise ConfigurationError("no password provided")
        if send is None or not callable(send):
            raise ConfigurationError("no send function provided")
        if not user_id:
            raise ConfigurationError("no user ID provided")
        verify_url(url)

        self.url = url
        self.password = password
        self.send = send
        self.user_id = str(user_id)
        self.client_name = client_name
        self.transport = transport or Transport()

        self.ready = False
        self.session_id: str | None = None
        self._stats = NodeStats()

        self.players = PlayerManager(self)
        self.voice = VoiceCoordinator(self.user_id, send, self._flush_voice, delay=voice_update_delay)

        # Readiness gate for the connect() call in progress
        self._gate: asyncio.Future | None = None
        self._stream: MessageStream | None = None
        self._reader: asyncio.Task | None = None
        self._spent = False

        # Serializes update-player requests per guild
        self._update_locks: dict[str, asyncio.Lock] = {}

    def __repr__(self) -> str:
        return f"<Node url={self.url} ready={self.ready} session={self.session_id}>"

    @property
    def stats(self) -> NodeStats:
        """Last stats snapshot pushed over the websocket (last_updated == 0 if none yet)."""
        return self._stats

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    async def connect(self) -> None:
        """Connect to the server and wait until it reports ready.

        Raises:
            AlreadyConnected: If connected or a connect is already in progress
            PreconditionError: If this node's connection already ended
            ProtocolVersionMismatch: If the server is not Lavalink v4
            BackendRequestError: If the version probe is rejected
            TransportError: If the websocket fails or closes before ready
        """
        if self.ready:
            raise AlreadyConnected("already connected")
        if self._gate is not None and not self._gate.done():
            raise AlreadyConnected("connect already in progress")
        if self._spent:
            raise PreconditionError("node connection has ended, create a new Node to reconnect")

        loop = asyncio.get_running_loop()
        gate = loop.create_future()
        self._gate = gate
        try:
            response = await self.request("GET", "/version", version_prefix="", action="fetch version")
            version = response.header(API_VERSION_HEADER)
            if version != API_VERSION:
                raise ProtocolVersionMismatch(version, API_VERSION)

            headers = {
                "Authorization": self.password,
                "User-Id": self.user_id,
                "Client-Name": self.client_name,
            }
            stream = await self.transport.open_stream(
                websocket_url(self.url, API_PREFIX, "/websocket"), headers=headers
            )
        except BaseException:
            self._gate = None
            raise

        self._spent = True
        self._stream = stream
        self._reader = loop.create_task(self._read_loop(stream))
        await gate

    async def close(self) -> None:
        """Close the websocket and HTTP session and cancel pending voice updates."""
        self.voice.close()
        self.ready = False
        self._spent = True
        if self._gate is not None and not self._gate.done():
            self._gate.set_exception(TransportError("node closed before ready"))

        if self._reader and not self._reader.done():
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
        if self._stream is not None:
            await self._stream.close()
        await self.transport.close()
        logger.info(f"lavalink node {self.url} closed")

    async def _read_loop(self, stream: MessageStream) -> None:
        try:
            async for text in stream:
                self._handle_frame(text)
        except TransportError as e:
            self._on_stream_lost(e)
        else:
            reason = f" ({stream.close_reason})" if stream.close_reason else ""
            self._on_stream_lost(TransportError(f"websocket closed with code {stream.close_code}{reason}"))

    def _on_stream_lost(self, error: TransportError) -> None:
        self.ready = False
        if self._gate is not None and not self._gate.done():
            self._gate.set_exception(error)
        else:
            logger.warning(f"lavalink connection lost: {error}")

    def _handle_frame(self, text: str) -> None:
        try:
            payload = json.loads(text)
        except ValueError:
            logger.warning(f"ignoring malformed websocket frame: {text[:200]!r}")
            return
        if not isinstance(payload, dict):
            logger.warning(f"ignoring non-object websocket frame: {text[:200]!r}")
            return
        try:
            self.handle_message(payload)
        except Exception:
            logger.opt(exception=True).error(f"failed to handle websocket message {payload.get('op')!r}")

    def handle_message(self, payload: dict) -> None:
        """Apply one decoded websocket message."""
        message = decode_message(payload, received_at=now_ms())

        if isinstance(message, ReadyMessage):
            self.session_id = message.session_id
            self.ready = True
            if self._gate is not None and not self._gate.done():
                self._gate.set_result(None)
            logger.info(f"connected to lavalink at {self.url} (session {self.session_id})")
        elif isinstance(message, StatsMessage):
            self._stats = message.stats
        elif isinstance(message, (PlayerUpdateMessage, EventMessage)):
            if message.guild_id is None:
                logger.warning(f"dropping {payload.get('op')} message without guildId")
                return
            self.players.get(message.guild_id)._handle_message(message)
        else:
            logger.warning(f"unknown websocket message: {payload!r}")

    # =========================================================================
    # REST
    # =========================================================================

    async def request(
        self,
        method: str,
        path: str,
        *,
        body: Any = None,
        query: dict | None = None,
        headers: dict[str, str] | None = None,
        version_prefix: str = API_PREFIX,
        action: str | None = None,
    ) -> HTTPResponse:
        """Send a REST request to the server.

        Args:
            method: HTTP method
            path: Path below the version prefix (e.g., "/stats")
            body: JSON-serializable body (str/bytes are sent as-is)
            query: Query parameters, url-encoded
            headers: Extra headers; Content-Type defaults to application/json
            version_prefix: Path prefix, "" for unversioned endpoints
            action: Description used in error messages (e.g., "load tracks")

        Raises:
            BackendRequestError: On a non-2xx response
            TransportError: If the request could not be sent
        """
        request_headers = dict(headers or {})
        if not any(key.lower() == "content-type" for key in request_headers):
            request_headers["Content-Type"] = "application/json"
        request_headers["Authorization"] = self.password

        url = with_query(append_path(self.url, version_prefix, path), query)
        if body is not None and not isinstance(body, (str, bytes)):
            body = json.dumps(body)

        response = await self.transport.request(method, url, headers=request_headers, body=body)
        if not response.ok:
            raise BackendRequestError(action or f"{method} {path}", response.status, response.reason, response.text)
        return response

    @staticmethod
    def _decode(response: HTTPResponse, action: str) -> Any:
        """JSON body of a successful response; an undecodable body is a backend error."""
        try:
            return response.json()
        except ValueError as e:
            raise BackendRequestError(
                f"{action} (invalid JSON: {e})", response.status, response.reason, response.text
            ) from e

    def _require_session(self) -> str:
        if not self.ready or not self.session_id:
            raise NotReady("node is not ready, await connect() first")
        return self.session_id

    def _update_lock(self, guild_id: str) -> asyncio.Lock:
        lock = self._update_locks.get(guild_id)
        if lock is None:
            lock = asyncio.Lock()
            self._update_locks[guild_id] = lock
        return lock

    async def update_player(self, guild_id: str | int, data: dict | None = None, *, no_replace: bool = False) -> dict:
        """PATCH a guild's player with data plus the stored voice credentials.

        Requests for the same guild are sent one at a time.

        Args:
            guild_id: Guild to update
            data: Update-player fields; a "noReplace": True key is honored too
            no_replace: Don't replace a track that is already playing

        Returns:
            Lavalink's player payload (also applied to the guild's Player)

        Raises:
            NotReady: Before the node is ready
            PreconditionError: If either voice half is missing
            BackendRequestError: If Lavalink rejects the update
        """
        guild_id = _require_guild(guild_id)
        body = dict(data or {})
        if body.pop("noReplace", False) is True:
            no_replace = True

        async with self._update_lock(guild_id):
            session_id = self._require_session()
            body["voice"] = self.voice.voice_payload(guild_id)
            # Supersedes any pending debounced voice update
            self.voice.cancel(guild_id)

            response = await self.request(
                "PATCH",
                f"/sessions/{session_id}/players/{guild_id}",
                body=body,
                query={"noReplace": "true"} if no_replace else None,
                action="update player",
            )
            payload = self._decode(response, "update player") or {}
            self.players.get(guild_id)._handle_new_data(payload)
        return payload

    async def _flush_voice(self, guild_id: str) -> None:
        """Debounce callback: both voice halves are present for guild_id."""
        logger.debug(f"guild {guild_id}: sending voice update")
        await self.update_player(guild_id)

    async def destroy_player(self, guild_id: str | int) -> None:
        """Destroy a guild's player on the server, drop it locally and leave voice."""
        guild_id = _require_guild(guild_id)
        session_id = self._require_session()
        await self.request(
            "DELETE",
            f"/sessions/{session_id}/players/{guild_id}",
            action="destroy player",
        )
        self.players._delete(guild_id)
        self._update_locks.pop(guild_id, None)
        await self.join(guild_id)

    async def load_tracks(self, identifier: str) -> LoadResult:
        """Resolve an identifier (URL or "ytsearch:..." style query) into tracks."""
        if not identifier:
            raise InputValidationError("no identifier provided")
        response = await self.request("GET", "/loadtracks", query={"identifier": identifier}, action="load tracks")
        return parse_load_result(self._decode(response, "load tracks") or {})

    async def decode_track(self, encoded: str) -> Track:
        if not encoded:
            raise InputValidationError("no track provided")
        response = await self.request("GET", "/decodetrack", query={"encodedTrack": encoded}, action="decode track")
        return Track.from_payload(self._decode(response, "decode track") or {})

    async def decode_tracks(self, tracks: list[str | Track]) -> list[Track]:
        """Decode several encoded tracks in one request.

        Raises:
            InputValidationError: If tracks is missing, not a list, or empty
        """
        if tracks is None:
            raise InputValidationError("no tracks provided")
        if not isinstance(tracks, (list, tuple)):
            raise InputValidationError("tracks must be a list")
        if not tracks:
            raise InputValidationError("tracks must not be empty")
        encoded = [t.encoded if isinstance(t, Track) else t for t in tracks]
        response = await self.request("POST", "/decodetracks", body=encoded, action="decode tracks")
        return [Track.from_payload(t) for t in self._decode(response, "decode tracks") or []]

    async def fetch_stats(self) -> NodeStats:
        """Fetch stats over REST (does not replace the websocket snapshot)."""
        response = await self.request("GET", "/stats", action="fetch stats")
        return NodeStats.from_payload(self._decode(response, "fetch stats") or {}, received_at=now_ms())

    # =========================================================================
    # Voice
    # =========================================================================

    async def join(
        self,
        guild_id: str | int,
        channel_id: str | int | None = None,
        *,
        deaf: bool = False,
        mute: bool = False,
    ) -> None:
        """Join, move to, or (channel_id=None) leave a voice channel."""
        guild_id = _require_guild(guild_id)
        await self.voice.set_target_channel(guild_id, channel_id, deaf=deaf, mute=mute)

    def voice_server_update(self, data: dict) -> None:
        """Feed a raw VOICE_SERVER_UPDATE payload from the gateway."""
        guild_id = data.get("guild_id")
        if not guild_id:
            return
        self.voice.on_server_half(str(guild_id), data)

    def voice_state_update(self, data: dict) -> None:
        """Feed a raw VOICE_STATE_UPDATE payload from the gateway (other users are ignored)."""
        guild_id = data.get("guild_id")
        if not guild_id:
            return
        self.voice.on_state_half(str(guild_id), data)
