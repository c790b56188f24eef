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
Event Listener Registry

Small observer used by players to publish track lifecycle events.

Listeners are called in registration order. Plain functions run inline,
before emit() returns, so state observed by a listener is the state at
emission time. Coroutine functions are scheduled as tasks on the running
loop. A listener that raises is logged and does not stop the others.
"""

import asyncio
import inspect
from typing import Any, Callable

from loguru import logger

# Fire-and-forget listener tasks, kept referenced until done
_listener_tasks: set[asyncio.Task] = set()


def _key(event: Any) -> str:
    """Event names may be plain strings or str-valued Enum members."""
    return getattr(event, "value", event)


class EventEmitter:
    """Named-event listener registry."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[Callable[..., Any]]] = {}

    def on(self, event: str, listener: Callable[..., Any]) -> Callable[..., Any]:
        """Register listener for event. Returns the listener (usable as a decorator)."""
        self._listeners.setdefault(_key(event), []).append(listener)
        return listener

    def off(self, event: str, listener: Callable[..., Any]) -> None:
        """Remove a listener. Unknown listeners are ignored."""
        listeners = self._listeners.get(_key(event), [])
        if listener in listeners:
            listeners.remove(listener)

    def listeners(self, event: str) -> list[Callable[..., Any]]:
        return list(self._listeners.get(_key(event), []))

    def emit(self, event: str, *args: Any) -> int:
        """Call every listener registered for event.

        Returns:
            Number of listeners that were called or scheduled
        """
        count = 0
        for listener in self.listeners(event):
            count += 1
            try:
                if inspect.iscoroutinefunction(listener):
                    task = asyncio.get_running_loop().create_task(
                        self._run_async(event, listener, *args)
                    )
                    _listener_tasks.add(task)
                    task.add_done_callback(_listener_tasks.discard)
                else:
                    listener(*args)
            except Exception:
                logger.opt(exception=True).error(f"listener for '{_key(event)}' failed")
        return count

    @staticmethod
    async def _run_async(event: str, listener: Callable[..., Any], *args: Any) -> None:
        try:
            await listener(*args)
        except Exception:
            logger.opt(exception=True).error(f"listener for '{_key(event)}' failed")
