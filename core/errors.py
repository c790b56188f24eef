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

"""Exception types raised by the Lavalink client.

Every error derives from LavalinkError so callers can catch the whole family
with one clause. Validation and precondition errors are raised straight to the
caller of the offending operation; transport and request errors surface from
the awaited call that started the request.
"""


class LavalinkError(Exception):
    """Base class for all client errors."""


class ConfigurationError(LavalinkError):
    """Missing or invalid constructor arguments."""


class ProtocolVersionMismatch(LavalinkError):
    """The backend reported an API version this client does not speak."""

    def __init__(self, version: str | None, expected: str) -> None:
        self.version = version
        self.expected = expected
        super().__init__(f"invalid API version {version!r} (expected {expected!r})")


class TransportError(LavalinkError):
    """The HTTP connection or the WebSocket stream failed or closed."""


class PreconditionError(LavalinkError):
    """An operation was attempted before its requirements were met."""


class NotReady(PreconditionError):
    """The node has no ready WebSocket session yet."""


class AlreadyConnected(PreconditionError):
    """connect() was called on a node that is connected, connecting, or spent."""


class InputValidationError(LavalinkError):
    """A caller-supplied argument was missing or malformed."""


class BackendRequestError(LavalinkError):
    """The backend answered a REST call with a non-2xx status.

    Attributes:
        status: HTTP status code
        reason: HTTP reason phrase
        body: Response body text (empty if it could not be read)
    """

    def __init__(self, action: str, status: int, reason: str = "", body: str = "") -> None:
        self.action = action
        self.status = status
        self.reason = reason
        self.body = body
        message = f"failed to {action}: {status} {reason}".rstrip()
        if body:
            message = f"{message} {body}"
        super().__init__(message)
