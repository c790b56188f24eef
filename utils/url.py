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

"""URL helpers for building Lavalink endpoints."""

from urllib.parse import urlencode, urlsplit, urlunsplit, quote

from core.errors import ConfigurationError


def verify_url(url: str) -> str:
    """Check that url is an absolute http(s) address.

    Args:
        url: Base address of the Lavalink server (e.g., "http://localhost:2333")

    Returns:
        The url, unchanged

    Raises:
        ConfigurationError: If url is empty, relative, or not http/https
    """
    if not url or not isinstance(url, str):
        raise ConfigurationError(f"invalid URL {url!r}")
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ConfigurationError(f"invalid URL {url!r}")
    return url


def append_path(url: str, *paths: str) -> str:
    """Append path segments to a URL.

    Segments are joined with single slashes. A query string on a segment
    replaces the URL's query, so the last segment carrying one wins.

    Examples:
        append_path("http://host:2333", "/v4", "/version")
            -> "http://host:2333/v4/version"
        append_path("http://host/base/", "", "/stats?x=1")
            -> "http://host/base/stats?x=1"
    """
    parts = urlsplit(url)
    segments = [parts.path.strip("/")]
    query = parts.query
    for path in paths:
        sub = urlsplit(path)
        segments.append(sub.path.strip("/"))
        if sub.query:
            query = sub.query
    joined = "/" + "/".join(s for s in segments if s)
    return urlunsplit((parts.scheme, parts.netloc, joined, query, ""))


def with_query(url: str, query: dict | None) -> str:
    """Attach url-encoded query parameters (spaces as %20) to url."""
    if not query:
        return url
    parts = urlsplit(url)
    encoded = urlencode(query, quote_via=quote)
    if parts.query:
        encoded = f"{parts.query}&{encoded}"
    return urlunsplit((parts.scheme, parts.netloc, parts.path, encoded, ""))


def websocket_url(url: str, *paths: str) -> str:
    """Swap an http(s) base address for its ws(s) equivalent and append paths."""
    parts = urlsplit(url)
    scheme = "wss" if parts.scheme == "https" else "ws"
    base = urlunsplit((scheme, parts.netloc, parts.path, "", ""))
    return append_path(base, *paths)
