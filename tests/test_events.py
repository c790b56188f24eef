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

from core.player import PlayerEvent
from systems.events import EventEmitter


def test_listeners_run_in_registration_order():
    emitter = EventEmitter()
    calls = []
    emitter.on("start", lambda x: calls.append(("a", x)))
    emitter.on("start", lambda x: calls.append(("b", x)))

    assert emitter.emit("start", 1) == 2
    assert calls == [("a", 1), ("b", 1)]


def test_enum_and_string_keys_are_interchangeable():
    emitter = EventEmitter()
    calls = []
    emitter.on(PlayerEvent.END, calls.append)
    emitter.emit("end", "x")
    emitter.emit(PlayerEvent.END, "y")
    assert calls == ["x", "y"]
    assert emitter.listeners("end") == [calls.append]


def test_off_removes_listener():
    emitter = EventEmitter()
    calls = []
    listener = emitter.on("stuck", calls.append)

    emitter.off("stuck", listener)
    emitter.off("stuck", listener)
    assert emitter.emit("stuck", 1) == 0
    assert calls == []


def test_listener_exception_is_contained():
    emitter = EventEmitter()
    calls = []
    emitter.on("error", lambda _: 1 / 0)
    emitter.on("error", calls.append)
    assert emitter.emit("error", "payload") == 2
    assert calls == ["payload"]


@pytest.mark.asyncio
async def test_coroutine_listener_runs_as_task():
    emitter = EventEmitter()
    done = asyncio.Event()
    received = []

    async def listener(value):
        received.append(value)
        done.set()

    emitter.on("start", listener)
    emitter.emit("start", 5)
    assert received == []
    await asyncio.wait_for(done.wait(), timeout=1)
    assert received == [5]
