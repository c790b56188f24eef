"""
Lavalink Protocol Settings

Constants describing the one backend protocol version this client speaks.
Changing these does NOT add support for another Lavalink version.
"""

VERSION = "1.0.0"

# =========================================================================================================
# API VERSION
# =========================================================================================================

API_VERSION = "4"                        # Only accepted value of the version header on GET /version
API_VERSION_HEADER = "Lavalink-Api-Version"
API_PREFIX = "/v4"                       # Prepended to every REST path except the version probe

# =========================================================================================================
# CLIENT IDENTITY
# =========================================================================================================

CLIENT_NAME = f"Tapster/{VERSION}"       # Sent as Client-Name when opening the websocket
