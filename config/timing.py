"""
Timing Settings - Delays and timeouts used by the Lavalink client

These control how long the client waits before acting on voice updates
and how long network calls may take.
"""

# =========================================================================================================
# VOICE UPDATES
# =========================================================================================================

VOICE_UPDATE_DEBOUNCE = 1.0        # Seconds to wait after the last voice server/state event before
                                   # sending the merged voice update to Lavalink
                                   # LOWER = joins faster, HIGHER = fewer duplicate updates
                                   # Discord sends both events within a few hundred ms of each other

# =========================================================================================================
# NETWORK
# =========================================================================================================

HTTP_TIMEOUT = 30.0                # Seconds before a REST call to Lavalink is abandoned
                                   # Track searches on slow sources can take several seconds

WEBSOCKET_HEARTBEAT = 30.0         # Seconds between websocket pings (aiohttp heartbeat)
                                   # Detects half-open connections; None disables pings
