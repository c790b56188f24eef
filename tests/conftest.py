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

"""Shared fixtures: an in-memory transport standing in for a Lavalink server."""

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import parse_qs, urlsplit

import pytest
import pytest_asyncio

from core.node import Node
from core.transport import HTTPResponse

BOT_ID = "1234567890"
GUILD_ID = "1000"
URL = "http://lavalink.test:2333"
PASSWORD = "youshallnotpass"


@dataclass
class RecordedRequest:
    method: str
    url: str
    path: str
    query: dict[str, list[str]]
    headers: dict[str, str]
    body: Any = None


class _Close:
    def __init__(self, code: int, reason: str) -> None:
        self.code = code
        self.reason = reason


class FakeStream:
    """Websocket stand-in. push() frames, push_close() ends iteration, push an exception to raise it."""

    def __init__(self) -> None:
        self.queue: asyncio.Queue = asyncio.Queue()
        self.close_code: int | None = None
        self.close_reason = ""
        self.closed = False

    def push(self, item: Any) -> None:
        if isinstance(item, dict):
            item = json.dumps(item)
        self.queue.put_nowait(item)

    def push_close(self, code: int = 1000, reason: str = "") -> None:
        self.queue.put_nowait(_Close(code, reason))

    def __aiter__(self):
        return self._frames()

    async def _frames(self):
        while True:
            item = await self.queue.get()
            if isinstance(item, _Close):
                self.close_code = item.code
                self.close_reason = item.reason
                self.closed = True
                return
            if isinstance(item, BaseException):
                raise item
            yield item

    async def close(self) -> None:
        if not self.closed:
            self.push_close(1000, "client closed")
            self.closed = True


@dataclass
class FakeTransport:
    """Records requests and answers them from canned responses.

    Responses are keyed by (method, path); a value may be an HTTPResponse,
    a list of them (consumed in order) or an exception to raise.
    """
    version: str | None = "4"
    requests: list[RecordedRequest] = field(default_factory=list)
    responses: dict[tuple[str, str], Any] = field(default_factory=dict)
    stream: FakeStream = field(default_factory=FakeStream)
    stream_url: str | None = None
    stream_headers: dict[str, str] | None = None
    stream_error: Exception | None = None
    closed: bool = False
    # Set to an asyncio.Event to hold every request until it is set
    hold: asyncio.Event | None = None
    in_flight: int = 0
    max_in_flight: int = 0

    def respond(self, method: str, path: str, payload: Any = None, *, status: int = 200,
                reason: str = "OK", headers: dict | None = None) -> None:
        text = payload if isinstance(payload, str) else ("" if payload is None else json.dumps(payload))
        self.responses[(method, path)] = HTTPResponse(status, reason, headers or {}, text)

    def requests_to(self, method: str, path: str) -> list[RecordedRequest]:
        return [r for r in self.requests if r.method == method and r.path == path]

    async def request(self, method: str, url: str, *, headers: dict[str, str], body=None) -> HTTPResponse:
        parts = urlsplit(url)
        recorded = RecordedRequest(
            method, url, parts.path, parse_qs(parts.query), dict(headers),
            json.loads(body) if body else None,
        )
        self.requests.append(recorded)

        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.hold is not None:
                await self.hold.wait()
            return self._answer(recorded)
        finally:
            self.in_flight -= 1

    def _answer(self, recorded: RecordedRequest) -> HTTPResponse:
        canned = self.responses.get((recorded.method, recorded.path))
        if isinstance(canned, list):
            canned = canned.pop(0)
        if isinstance(canned, BaseException):
            raise canned
        if canned is not None:
            return canned

        if recorded.path.endswith("/version"):
            headers = {"Lavalink-Api-Version": self.version} if self.version is not None else {}
            return HTTPResponse(200, "OK", headers, "4.0.8")
        if recorded.method == "PATCH":
            body = recorded.body or {}
            player = {
                "guildId": recorded.path.rsplit("/", 1)[-1],
                "track": None,
                "volume": body.get("volume", 100),
                "paused": body.get("paused", False),
                "filters": body.get("filters", {}),
            }
            return HTTPResponse(200, "OK", {}, json.dumps(player))
        if recorded.method == "DELETE":
            return HTTPResponse(204, "No Content", {}, "")
        return HTTPResponse(404, "Not Found", {}, '{"message": "no canned response"}')

    async def open_stream(self, url: str, *, headers: dict[str, str]) -> FakeStream:
        self.stream_url = url
        self.stream_headers = dict(headers)
        if self.stream_error is not None:
            raise self.stream_error
        return self.stream

    async def close(self) -> None:
        self.closed = True


def track_payload(encoded: str = "QAAAjQIAJVJpY2sgQXN0bGV5", title: str = "Never Gonna Give You Up",
                  author: str = "Rick Astley", length: int = 212000) -> dict:
    return {
        "encoded": encoded,
        "info": {
            "identifier": "dQw4w9WgXcQ",
            "isSeekable": True,
            "author": author,
            "length": length,
            "isStream": False,
            "position": 0,
            "title": title,
            "uri": "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
            "artworkUrl": None,
            "isrc": None,
            "sourceName": "youtube",
        },
        "pluginInfo": {},
        "userData": {},
    }


def feed_voice(node: Node, guild_id: str = GUILD_ID, session_id: str = "voice-session",
               token: str = "voice-token", endpoint: str = "us-east1.discord.media:443") -> None:
    """Deliver both gateway voice events for the bot user."""
    node.voice_server_update({"guild_id": guild_id, "token": token, "endpoint": endpoint})
    node.voice_state_update({
        "guild_id": guild_id,
        "user_id": BOT_ID,
        "session_id": session_id,
        "channel_id": "555",
    })


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def sent() -> list[tuple[str, dict]]:
    """Gateway packets handed to the node's send function."""
    return []


@pytest.fixture
def node(transport, sent) -> Node:
    def send(guild_id: str, packet: dict) -> None:
        sent.append((guild_id, packet))

    return Node(URL, PASSWORD, send, BOT_ID, transport=transport, voice_update_delay=0.02)


@pytest_asyncio.fixture
async def ready_node(node, transport):
    transport.stream.push({"op": "ready", "resumed": False, "sessionId": "session-1"})
    await node.connect()
    yield node
    await node.close()


async def settle(rounds: int = 10) -> None:
    """Let the node's reader task drain pushed frames."""
    for _ in range(rounds):
        await asyncio.sleep(0)
