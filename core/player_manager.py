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
Player Registry

Maps guild ids to Player instances. A local mirror only: an entry existing
here says nothing about whether Lavalink has a player for that guild.
"""

from typing import TYPE_CHECKING, Iterator

from core.player import Player

if TYPE_CHECKING:
    from core.node import Node


class PlayerManager:
    """
    Guild id -> Player registry owned by a Node.

    get() creates players on first access; use has() to check without
    creating. Entries are only removed by destroy().
    """

    def __init__(self, node: "Node") -> None:
        self.node = node
        self._players: dict[str, Player] = {}

    def get(self, guild_id: str | int) -> Player:
        """Get the player for a guild, creating it if needed."""
        guild_id = str(guild_id)
        player = self._players.get(guild_id)
        if player is None:
            player = Player(guild_id, self.node)
            self._players[guild_id] = player
        return player

    def peek(self, guild_id: str | int) -> Player | None:
        """Get the player for a guild without creating one."""
        return self._players.get(str(guild_id))

    def has(self, guild_id: str | int) -> bool:
        """Whether a player object exists for a guild (not whether it is playing)."""
        return str(guild_id) in self._players

    def _delete(self, guild_id: str | int) -> None:
        """Remove a guild's entry. Not for normal use, see destroy()."""
        self._players.pop(str(guild_id), None)

    async def destroy(self, guild_id: str | int) -> None:
        """Destroy a guild's Lavalink player and drop the local entry.

        The backend call happens even if no local entry exists.
        """
        await self.node.destroy_player(guild_id)
        self._delete(guild_id)

    def values(self) -> list[Player]:
        return list(self._players.values())

    def __contains__(self, guild_id: object) -> bool:
        return str(guild_id) in self._players

    def __len__(self) -> int:
        return len(self._players)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._players))
