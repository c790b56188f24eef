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
Voice Coordinator

Merges the two halves of a guild's voice credentials into one player update.

Discord delivers VOICE_SERVER_UPDATE (token + endpoint) and
VOICE_STATE_UPDATE (session id) independently, in any order, and sometimes
more than once per join. Lavalink needs all three values in a single
"voice" object before it can connect. Each new half re-arms a per-guild
debounce task; when the task fires with both halves present, exactly one
merged update is sent. With only one half present nothing is sent and the
coordinator waits for the next event.
"""

import asyncio
import inspect
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from loguru import logger

from config import VOICE_UPDATE_DEBOUNCE
from core.errors import LavalinkError, PreconditionError

# Gateway opcode for "Update Voice State" (join / move / leave a voice channel)
VOICE_STATE_UPDATE_OP = 4


def _current_task() -> asyncio.Task | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None  # No running loop (sync teardown)


@dataclass
class VoiceServerHalf:
    """Payload of VOICE_SERVER_UPDATE."""
    token: str
    endpoint: str | None

    @classmethod
    def from_payload(cls, data: dict) -> "VoiceServerHalf":
        return cls(token=data.get("token", ""), endpoint=data.get("endpoint"))


@dataclass
class VoiceStateHalf:
    """Payload of VOICE_STATE_UPDATE for this client's own user."""
    session_id: str
    user_id: str
    channel_id: str | None = None
    self_mute: bool = False
    self_deaf: bool = False
    mute: bool = False
    deaf: bool = False

    @classmethod
    def from_payload(cls, data: dict) -> "VoiceStateHalf":
        channel_id = data.get("channel_id")
        return cls(
            session_id=data.get("session_id", ""),
            user_id=str(data.get("user_id", "")),
            channel_id=str(channel_id) if channel_id else None,
            self_mute=data.get("self_mute", False),
            self_deaf=data.get("self_deaf", False),
            mute=data.get("mute", False),
            deaf=data.get("deaf", False),
        )


@dataclass
class GuildVoiceRecord:
    """Voice bookkeeping for one guild.

    channel_id is the channel this client last asked to be in; the halves
    are only meaningful for that channel's session.
    """
    guild_id: str
    channel_id: str | None = None
    server: VoiceServerHalf | None = None
    state: VoiceStateHalf | None = None
    timer: asyncio.Task | None = field(default=None, repr=False)

    @property
    def complete(self) -> bool:
        return self.server is not None and self.state is not None

    def clear(self) -> None:
        self.server = None
        self.state = None


class VoiceCoordinator:
    """
    Per-guild voice half-state and debounce timers.

    Args:
        user_id: This client's own Discord user id (state halves of other users are ignored)
        send: Gateway send function, called as send(guild_id, packet); may be sync or async
        flush: Coroutine function called with a guild id when both halves are ready
        delay: Debounce delay in seconds
    """

    def __init__(
        self,
        user_id: str,
        send: Callable[[str, dict], Any],
        flush: Callable[[str], Awaitable[Any]],
        delay: float = VOICE_UPDATE_DEBOUNCE,
    ) -> None:
        self.user_id = str(user_id)
        self.delay = delay
        self._send = send
        self._flush = flush
        self._records: dict[str, GuildVoiceRecord] = {}

    def record(self, guild_id: str) -> GuildVoiceRecord | None:
        """Current record for a guild, without creating one."""
        return self._records.get(str(guild_id))

    def _record(self, guild_id: str) -> GuildVoiceRecord:
        guild_id = str(guild_id)
        record = self._records.get(guild_id)
        if record is None:
            record = GuildVoiceRecord(guild_id)
            self._records[guild_id] = record
        return record

    # =========================================================================
    # Gateway ingestion
    # =========================================================================

    def on_server_half(self, guild_id: str, payload: dict) -> None:
        """Store a VOICE_SERVER_UPDATE payload and re-arm the debounce."""
        record = self._record(guild_id)
        record.server = VoiceServerHalf.from_payload(payload)
        logger.debug(f"guild {record.guild_id}: voice server update ({record.server.endpoint})")
        self._arm(record)

    def on_state_half(self, guild_id: str, payload: dict) -> bool:
        """Store a VOICE_STATE_UPDATE payload and re-arm the debounce.

        Returns:
            False if the payload belongs to another user (nothing stored)
        """
        if str(payload.get("user_id")) != self.user_id:
            return False
        record = self._record(guild_id)
        record.state = VoiceStateHalf.from_payload(payload)
        logger.debug(f"guild {record.guild_id}: voice state update (channel {record.state.channel_id})")
        self._arm(record)
        return True

    # =========================================================================
    # Channel target
    # =========================================================================

    async def set_target_channel(
        self,
        guild_id: str,
        channel_id: str | None,
        *,
        deaf: bool = False,
        mute: bool = False,
    ) -> None:
        """Ask the gateway to move this client to channel_id (None = leave).

        When the target differs from the previous one, stored halves are
        discarded first: they belong to the old channel's voice session.
        """
        guild_id = str(guild_id)
        channel_id = str(channel_id) if channel_id is not None else None
        record = self._record(guild_id)
        if record.channel_id != channel_id:
            record.clear()
            self.cancel(guild_id)
        record.channel_id = channel_id
        if channel_id is None:
            self.evict(guild_id)

        packet = {
            "op": VOICE_STATE_UPDATE_OP,
            "d": {
                "guild_id": guild_id,
                "channel_id": channel_id,
                "self_deaf": deaf,
                "self_mute": mute,
            },
        }
        result = self._send(guild_id, packet)
        if inspect.isawaitable(result):
            await result

    # =========================================================================
    # Merged voice data
    # =========================================================================

    def has_voice(self, guild_id: str) -> bool:
        record = self._records.get(str(guild_id))
        return record is not None and record.complete

    def voice_payload(self, guild_id: str) -> dict:
        """Build the "voice" object for an update-player request.

        Raises:
            PreconditionError: If either half has not been received
        """
        record = self._records.get(str(guild_id))
        if record is None or record.server is None:
            raise PreconditionError(
                f"no voice server update received for guild {guild_id}, "
                "forward VOICE_SERVER_UPDATE events and join a voice channel first"
            )
        if record.state is None:
            raise PreconditionError(
                f"no voice state update received for guild {guild_id}, "
                "forward VOICE_STATE_UPDATE events and join a voice channel first"
            )
        return {
            "token": record.server.token,
            "endpoint": record.server.endpoint,
            "sessionId": record.state.session_id,
        }

    # =========================================================================
    # Debounce
    # =========================================================================

    def _arm(self, record: GuildVoiceRecord) -> None:
        """Cancel the guild's pending update (if any) and schedule a new one."""
        self.cancel(record.guild_id)
        record.timer = asyncio.get_running_loop().create_task(
            self._debounced_update(record.guild_id)
        )

    async def _debounced_update(self, guild_id: str) -> None:
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            return  # Superseded by a newer voice event

        record = self._records.get(guild_id)
        if record is None:
            return
        # Detach before sending so a re-arm can't cancel the in-flight request
        if record.timer is _current_task():
            record.timer = None
        if not record.complete:
            logger.debug(f"guild {guild_id}: waiting for the other voice half")
            return

        try:
            await self._flush(guild_id)
        except LavalinkError as e:
            logger.warning(f"guild {guild_id}: voice update failed: {e}")

    def cancel(self, guild_id: str) -> None:
        """Cancel a pending debounce for a guild (no-op if none, or if called from it)."""
        record = self._records.get(str(guild_id))
        if record is None or record.timer is None:
            return
        if record.timer is not _current_task() and not record.timer.done():
            record.timer.cancel()
        record.timer = None

    def evict(self, guild_id: str) -> None:
        """Drop all voice state for a guild."""
        self.cancel(guild_id)
        self._records.pop(str(guild_id), None)

    def close(self) -> None:
        """Cancel every pending debounce and forget all guilds."""
        for guild_id in list(self._records):
            self.evict(guild_id)
