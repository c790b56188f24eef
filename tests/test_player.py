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

import asyncio

import pytest

import core.player
from core.messages import TrackExceptionEvent, TrackStuckEvent, WebSocketClosedEvent, decode_message
from core.player import Player, PlayerEvent, TrackEnd

from conftest import GUILD_ID, feed_voice, settle, track_payload


def event(type_: str, **fields) -> dict:
    return {"op": "event", "type": type_, "guildId": GUILD_ID, **fields}


def deliver(player: Player, payload: dict) -> None:
    player._handle_message(decode_message(payload))


@pytest.fixture
def player(node) -> Player:
    return node.players.get(GUILD_ID)


# =============================================================================
# Position
# =============================================================================

def test_position_interpolates_while_playing(player, monkeypatch):
    deliver(player, {"op": "playerUpdate", "guildId": GUILD_ID, "state": {"time": 10_000, "position": 2_000}})

    monkeypatch.setattr(core.player, "now_ms", lambda: 10_500)
    assert player.position == 2_500
    monkeypatch.setattr(core.player, "now_ms", lambda: 13_000)
    assert player.position == 5_000


def test_position_is_frozen_while_paused(player, monkeypatch):
    deliver(player, {"op": "playerUpdate", "guildId": GUILD_ID, "state": {"time": 10_000, "position": 2_000}})
    player._handle_new_data({"paused": True, "volume": 100})

    for now in (10_000, 20_000, 99_000):
        monkeypatch.setattr(core.player, "now_ms", lambda now=now: now)
        assert player.position == 2_000


def test_position_is_zero_before_first_report(player, monkeypatch):
    monkeypatch.setattr(core.player, "now_ms", lambda: 1_760_000_000_000)
    assert not player.paused
    assert player.state.time == 0
    assert player.position == 0


def test_fresh_player_has_never_updated_state(player):
    assert player.state.time == 0
    assert player.track is None
    assert player.volume == 100
    assert not player.paused
    assert not player.connected
    assert player.ping == -1


def test_player_update_replaces_state_wholesale(player):
    deliver(player, {"op": "playerUpdate", "guildId": GUILD_ID,
                     "state": {"time": 1, "position": 2, "connected": True, "ping": 30}})
    deliver(player, {"op": "playerUpdate", "guildId": GUILD_ID, "state": {"time": 5, "position": 9}})
    assert player.state.time == 5
    assert player.state.position == 9
    assert not player.connected
    assert player.ping == -1


# =============================================================================
# Events
# =============================================================================

def test_start_then_end_emits_in_order_and_clears_track(player):
    seen = []
    player.on(PlayerEvent.START, lambda track: seen.append(("start", track.encoded, player.track)))
    player.on(PlayerEvent.END, lambda end: seen.append(("end", end.reason, player.track)))

    deliver(player, event("TrackStartEvent", track=track_payload(encoded="abc")))
    assert player.track.encoded == "abc"
    deliver(player, event("TrackEndEvent", track=track_payload(encoded="abc"), reason="finished"))

    assert player.track is None
    assert [entry[:2] for entry in seen] == [("start", "abc"), ("end", "finished")]
    # Listeners observe the state at emission time
    assert seen[0][2].encoded == "abc"
    assert seen[1][2] is None


def test_end_event_payload(player):
    ends = []
    player.on("end", ends.append)
    deliver(player, event("TrackEndEvent", track=track_payload(encoded="x"), reason="replaced"))
    assert ends == [TrackEnd(track=ends[0].track, reason="replaced")]
    assert ends[0].track.encoded == "x"


def test_exception_event_is_stamped_after_listeners(player, monkeypatch):
    monkeypatch.setattr(core.player, "now_ms", lambda: 777)
    stamps = []
    player.on(PlayerEvent.ERROR, lambda error: stamps.append(error.received_at))

    deliver(player, event(
        "TrackExceptionEvent",
        track=track_payload(),
        exception={"message": "video unavailable", "severity": "common", "cause": "x"},
    ))

    assert stamps == [None]
    assert isinstance(player.last_error, TrackExceptionEvent)
    assert player.last_error.received_at == 777
    assert player.last_error.message == "video unavailable"


def test_stuck_and_ws_closed_events(player):
    stuck, closed = [], []
    player.on(PlayerEvent.STUCK, stuck.append)
    player.on(PlayerEvent.WS_CLOSED, closed.append)

    deliver(player, event("TrackStuckEvent", track=track_payload(), thresholdMs=10000))
    deliver(player, event("WebSocketClosedEvent", code=4006, reason="Session is no longer valid", byRemote=True))

    assert isinstance(stuck[0], TrackStuckEvent) and stuck[0].threshold_ms == 10000
    assert player.last_error is stuck[0]
    assert isinstance(closed[0], WebSocketClosedEvent)
    assert closed[0].code == 4006 and closed[0].by_remote


def test_unknown_event_emits_nothing(player):
    calls = []
    for name in PlayerEvent:
        player.on(name, calls.append)
    deliver(player, event("SegmentsLoaded", segments=[]))
    assert calls == []


def test_failing_listener_does_not_block_others(player):
    seen = []

    def broken(track):
        raise RuntimeError("listener bug")

    player.on(PlayerEvent.START, broken)
    player.on(PlayerEvent.START, seen.append)
    deliver(player, event("TrackStartEvent", track=track_payload()))
    assert len(seen) == 1


@pytest.mark.asyncio
async def test_async_listener_is_scheduled(player):
    seen = asyncio.Event()

    async def on_start(track):
        seen.set()

    player.on(PlayerEvent.START, on_start)
    deliver(player, event("TrackStartEvent", track=track_payload()))
    await asyncio.wait_for(seen.wait(), timeout=1)


# =============================================================================
# Commands
# =============================================================================

@pytest.mark.asyncio
async def test_play_sends_encoded_track(ready_node, transport):
    feed_voice(ready_node)
    transport.respond(
        "PATCH", f"/v4/sessions/session-1/players/{GUILD_ID}",
        {"track": track_payload(encoded="abc"), "volume": 80, "paused": False, "filters": {}},
    )
    player = await ready_node.players.get(GUILD_ID).play("abc", no_replace=True)

    request = transport.requests_to("PATCH", f"/v4/sessions/session-1/players/{GUILD_ID}")[0]
    assert request.body["track"] == {"encoded": "abc"}
    assert request.query == {"noReplace": ["true"]}
    assert player.track.encoded == "abc"
    assert player.volume == 80


@pytest.mark.asyncio
async def test_player_commands_build_update_bodies(ready_node, transport):
    feed_voice(ready_node)
    player = ready_node.players.get(GUILD_ID)

    await player.pause()
    await player.resume()
    await player.set_volume(5000)
    await player.seek(-10)
    await player.set_filters({"timescale": {"speed": 1.2}})
    await player.stop()

    bodies = [r.body for r in transport.requests_to("PATCH", f"/v4/sessions/session-1/players/{GUILD_ID}")]
    for body in bodies:
        body.pop("voice")
    assert bodies == [
        {"paused": True},
        {"paused": False},
        {"volume": 1000},
        {"position": 0},
        {"filters": {"timescale": {"speed": 1.2}}},
        {"track": {"encoded": None}},
    ]


@pytest.mark.asyncio
async def test_destroy_detaches_player(ready_node, sent):
    feed_voice(ready_node)
    old = ready_node.players.get(GUILD_ID)
    await old.join(555)

    await old.destroy()

    assert old.is_destroyed()
    fresh = ready_node.players.get(GUILD_ID)
    assert fresh is not old
    assert not fresh.is_destroyed()
    assert sent[-1][1]["d"]["channel_id"] is None


@pytest.mark.asyncio
async def test_events_reach_player_through_node(ready_node, transport):
    starts = []
    ready_node.players.get(GUILD_ID).on(PlayerEvent.START, starts.append)
    transport.stream.push(event("TrackStartEvent", track=track_payload(encoded="via-ws")))
    await settle()
    assert [t.encoded for t in starts] == ["via-ws"]
