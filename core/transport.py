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
Transport Layer

Thin aiohttp wrapper owning the two wire paths to a Lavalink node:
one request/response path for REST calls and one persistent websocket.
Nothing here knows about Lavalink semantics; the Node builds URLs and
headers and interprets the results.

Failures of the underlying connection are raised as TransportError so
callers never have to catch aiohttp exceptions directly.
"""

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, AsyncIterator

import aiohttp
from loguru import logger

from config import HTTP_TIMEOUT, WEBSOCKET_HEARTBEAT
from core.errors import TransportError


@dataclass
class HTTPResponse:
    """Fully-read response of a REST call."""
    status: int
    reason: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    text: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def header(self, name: str) -> str | None:
        """Case-insensitive header lookup."""
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return None

    def json(self) -> Any:
        """Decode the body as JSON (None for an empty body)."""
        if not self.text:
            return None
        return json.loads(self.text)


class MessageStream:
    """
    Persistent websocket to the node.

    Iterating yields the text of each frame until the socket closes.
    An error frame raises TransportError. After iteration ends,
    close_code / close_reason describe why.
    """

    def __init__(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        self._ws = ws

    @property
    def closed(self) -> bool:
        return self._ws.closed

    @property
    def close_code(self) -> int | None:
        return self._ws.close_code

    @property
    def close_reason(self) -> str:
        extra = getattr(self._ws, "close_reason", None)
        return str(extra) if extra else ""

    def __aiter__(self) -> AsyncIterator[str]:
        return self._frames()

    async def _frames(self) -> AsyncIterator[str]:
        async for msg in self._ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                yield msg.data
            elif msg.type == aiohttp.WSMsgType.ERROR:
                raise TransportError(f"websocket error: {self._ws.exception()}")
            else:
                logger.debug(f"ignoring websocket frame of type {msg.type.name}")

    async def close(self) -> None:
        if not self._ws.closed:
            await self._ws.close()


class Transport:
    """
    aiohttp-backed transport.

    The ClientSession is created lazily on first use (it must be created
    inside a running event loop). Pass an existing session to share a
    connection pool with the rest of an application; a shared session is
    not closed by close().

    Attributes:
        timeout: Total seconds allowed per REST call
        heartbeat: Websocket ping interval in seconds
    """

    def __init__(
        self,
        session: aiohttp.ClientSession | None = None,
        timeout: float = HTTP_TIMEOUT,
        heartbeat: float | None = WEBSOCKET_HEARTBEAT,
    ) -> None:
        self._session = session
        self._owns_session = session is None
        self.timeout = timeout
        self.heartbeat = heartbeat
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _get_session(self) -> aiohttp.ClientSession:
        if self._closed:
            raise TransportError("transport is closed")
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        body: str | bytes | None = None,
    ) -> HTTPResponse:
        """Send one HTTP request and read the whole response.

        Raises:
            TransportError: If the connection fails or times out
        """
        session = self._get_session()
        try:
            async with session.request(
                method, url, headers=headers, data=body,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as resp:
                try:
                    text = await resp.text()
                except (aiohttp.ClientPayloadError, UnicodeDecodeError):
                    text = ""
                return HTTPResponse(
                    status=resp.status,
                    reason=resp.reason or "",
                    headers=dict(resp.headers),
                    text=text,
                )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"{method} {url} failed: {e}") from e

    async def open_stream(self, url: str, *, headers: dict[str, str]) -> MessageStream:
        """Open the websocket.

        Raises:
            TransportError: If the handshake fails
        """
        session = self._get_session()
        try:
            ws = await session.ws_connect(url, headers=headers, heartbeat=self.heartbeat)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"websocket connect to {url} failed: {e}") from e
        return MessageStream(ws)

    async def close(self) -> None:
        """Close the HTTP session if this transport created it. Later calls raise TransportError."""
        self._closed = True
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
