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

import pytest

from core.errors import TransportError
from core.node import Node
from core.transport import Transport

from conftest import BOT_ID, PASSWORD, URL


@pytest.mark.asyncio
async def test_closed_transport_does_not_reopen_a_session():
    transport = Transport()
    await transport.close()
    assert transport.closed

    with pytest.raises(TransportError):
        await transport.request("GET", f"{URL}/version", headers={})
    with pytest.raises(TransportError):
        await transport.open_stream("ws://lavalink.test:2333/v4/websocket", headers={})
    assert transport._session is None


@pytest.mark.asyncio
async def test_rest_calls_after_node_close_raise_transport_error():
    node = Node(URL, PASSWORD, lambda guild_id, packet: None, BOT_ID)
    await node.close()

    with pytest.raises(TransportError):
        await node.load_tracks("ytsearch:anything")
    with pytest.raises(TransportError):
        await node.fetch_stats()
    assert node.transport._session is None
