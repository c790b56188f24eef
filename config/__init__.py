"""
Configuration Package - Client Constants

Static settings shared by the Lavalink client and the demo bot.
Runtime settings for the bot (tokens, addresses, messages) live in
settings.yaml / messages.yaml and are handled by utils.config.ConfigManager.

Structure:
  lavalink.py - Protocol constants (API version, path prefix, client name)
  timing.py   - Delays and timeouts
"""

from .lavalink import *
from .timing import *

__all__ = [
    'API_VERSION',
    'API_PREFIX',
    'API_VERSION_HEADER',
    'CLIENT_NAME',
    'VERSION',
    'VOICE_UPDATE_DEBOUNCE',
    'HTTP_TIMEOUT',
    'WEBSOCKET_HEARTBEAT',
]
