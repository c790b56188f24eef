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

"""Node statistics snapshot."""

from dataclasses import dataclass, field


@dataclass
class MemoryStats:
    free: int = 0
    used: int = 0
    allocated: int = 0
    reservable: int = 0


@dataclass
class CpuStats:
    cores: int = 0
    system_load: float = 0.0
    lavalink_load: float = 0.0


@dataclass
class FrameStats:
    """Audio frame counters for the last minute (absent on idle nodes)."""
    sent: int = 0
    nulled: int = 0
    deficit: int = 0


@dataclass
class NodeStats:
    """
    Last stats report received from the node.

    last_updated is the local receipt time in epoch milliseconds;
    0 means no report has been received yet.
    """
    players: int = 0
    playing_players: int = 0
    uptime: int = 0
    memory: MemoryStats = field(default_factory=MemoryStats)
    cpu: CpuStats = field(default_factory=CpuStats)
    frame_stats: FrameStats = field(default_factory=FrameStats)
    last_updated: int = 0

    @classmethod
    def from_payload(cls, data: dict, received_at: int = 0) -> "NodeStats":
        """Build a snapshot from a stats message or a GET /stats body.

        The message's own "op" tag is not part of the snapshot.
        """
        memory = data.get("memory") or {}
        cpu = data.get("cpu") or {}
        frames = data.get("frameStats") or {}
        return cls(
            players=data.get("players", 0),
            playing_players=data.get("playingPlayers", 0),
            uptime=data.get("uptime", 0),
            memory=MemoryStats(
                free=memory.get("free", 0),
                used=memory.get("used", 0),
                allocated=memory.get("allocated", 0),
                reservable=memory.get("reservable", 0),
            ),
            cpu=CpuStats(
                cores=cpu.get("cores", 0),
                system_load=cpu.get("systemLoad", 0.0),
                lavalink_load=cpu.get("lavalinkLoad", 0.0),
            ),
            frame_stats=FrameStats(
                sent=frames.get("sent", 0),
                nulled=frames.get("nulled", 0),
                deficit=frames.get("deficit", 0),
            ),
            last_updated=received_at,
        )
