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

"""Configuration management for the Tapster demo bot."""

import asyncio
import copy
import os
import sys
import tempfile
from pathlib import Path
from typing import Any, Callable

import yaml
from loguru import logger

from core.errors import ConfigurationError
from utils.url import verify_url


# =============================================================================
# DEFAULT SETTINGS SCHEMA
# =============================================================================
# Used when settings.yaml is missing or incomplete.
# Environment variables override any setting (see _apply_env_overrides).
#
# Lavalink (lavalink.*):
#   url                    - Base http(s) address of the Lavalink server
#   password               - Lavalink server password
#   voice_update_delay     - Seconds to batch voice events before updating (0-10)
#
# Playback:
#   search_prefix          - Prepended to lookups that aren't URLs (e.g., "ytsearch:")
#   self_deaf              - Join voice deafened
#
# Logging (logging.*):
#   level                  - "minimal", "verbose", "debug" or a level name
#   suppress_library_logs  - Keep discord.py/aiohttp logs at WARNING
# =============================================================================

DEFAULT_SETTINGS = {
    "lavalink": {
        "url": "http://127.0.0.1:2333",
        "password": "youshallnotpass",
        "voice_update_delay": 1.0,
    },
    "search_prefix": "ytsearch:",
    "self_deaf": True,
    "logging": {
        "level": "verbose",
        "suppress_library_logs": True,
    },
}

# =============================================================================
# DEFAULT MESSAGES SCHEMA
# =============================================================================
# Each message has:
#   text    - Template, supports {variables}
#   enabled - False replies with a reaction instead of text
# =============================================================================

DEFAULT_MESSAGES = {
    # Voice
    "not_in_vc": {"text": "join a voice channel first", "enabled": True},
    "joining": {"text": "joining {channel}", "enabled": True},
    "leaving": {"text": "bye", "enabled": True},

    # Playback
    "nothing_playing": {"text": "nothing is playing", "enabled": True},
    "nothing_loaded": {"text": "nothing loaded, use `lookup` first", "enabled": True},
    "now_playing": {"text": "now playing: **{title}** by {author} `{position}/{length}`", "enabled": True},
    "playing": {"text": "playing **{title}**", "enabled": True},
    "destroyed": {"text": "player destroyed", "enabled": True},

    # Lookup
    "lookup_track": {"text": "found **{title}** by {author} ({length})\n`{encoded}`", "enabled": True},
    "lookup_search": {
        "text": "found {count} results for `{query}`, first: **{title}** by {author}\n`{encoded}`",
        "enabled": True,
    },
    "lookup_playlist": {"text": "found playlist **{name}** with {count} tracks", "enabled": True},
    "no_results": {"text": "no results for `{query}`", "enabled": True},
    "load_failed": {"text": "couldn't load that ({severity}): {message}", "enabled": True},
    "load_unknown": {"text": "don't know what to do with a `{load_type}` result", "enabled": True},

    # Node
    "pong": {"text": "pong, lavalink is {state}", "enabled": True},
    "stats": {
        "text": "players {playing}/{players}, uptime {uptime}, memory {memory} MiB, cpu {cpu}%",
        "enabled": True,
    },

    # Errors
    "node_unavailable": {"text": "lavalink isn't connected", "enabled": True},
    "voice_not_ready": {"text": "still waiting for discord voice, try again in a moment", "enabled": True},
    "error_generic": {"text": "something broke, try again", "enabled": True},
}


def deep_merge(user: dict, defaults: dict) -> dict:
    """Merge user config over defaults, recursing into nested dicts.

    Keys missing from defaults are logged and ignored.
    """
    result = copy.deepcopy(defaults)
    for key, value in user.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(value, result[key])
        elif key in defaults:
            result[key] = value
        else:
            logger.warning(f"unknown config key: {key}")
    return result


def load_yaml(path: Path, defaults: dict) -> dict:
    """Load a YAML file merged over defaults.

    A missing file, a non-mapping document or a syntax error all fall back
    to defaults (syntax errors are logged).
    """
    if not path.exists():
        return copy.deepcopy(defaults)

    try:
        with open(path, 'r', encoding='utf-8') as f:
            user = yaml.safe_load(f) or {}
    except yaml.YAMLError:
        logger.opt(exception=True).error(f"failed to parse {path.name}")
        return copy.deepcopy(defaults)

    if not isinstance(user, dict):
        logger.warning(f"{path.name} invalid, using defaults")
        return copy.deepcopy(defaults)
    return deep_merge(user, defaults)


def save_yaml(path: Path, data: dict, header: str = "") -> None:
    """Write YAML through a temp file and rename so a crash can't truncate it."""
    temp_path = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_fd, temp_path = tempfile.mkstemp(dir=path.parent, suffix='.tmp')
        with os.fdopen(temp_fd, 'w', encoding='utf-8') as f:
            if header:
                f.write(header)
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)
        Path(temp_path).replace(path)
    except Exception:
        if temp_path:
            Path(temp_path).unlink(missing_ok=True)
        raise


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


class ConfigManager:
    """Bot configuration from settings.yaml and messages.yaml.

    Priority (highest wins):
    1. DEFAULT_SETTINGS / DEFAULT_MESSAGES
    2. settings.yaml / messages.yaml
    3. Environment variables

    Access patterns:
        config.get("key")                 # top-level setting
        config.lavalink("url")            # lavalink.* setting
        config.msg("key", **vars)         # formatted reply text
        config.is_enabled("key")          # whether a reply shows text

    Attributes:
        config_path: Directory holding settings.yaml and messages.yaml
        settings: Loaded, validated settings
        messages: Loaded messages
    """

    def __init__(self, config_path: Path) -> None:
        self.config_path = Path(config_path)
        self.settings: dict = {}
        self.messages: dict = {}

    async def load(self) -> None:
        """Load both files (generating missing ones), apply env overrides, validate."""
        settings_path = self.config_path / "settings.yaml"
        self.settings = await asyncio.to_thread(load_yaml, settings_path, DEFAULT_SETTINGS)
        if not settings_path.exists():
            header = "# Tapster Settings\n# Environment variables override these values\n\n"
            await asyncio.to_thread(save_yaml, settings_path, DEFAULT_SETTINGS, header)
            logger.debug(f"generated {settings_path.name}")

        messages_path = self.config_path / "messages.yaml"
        self.messages = await asyncio.to_thread(load_yaml, messages_path, DEFAULT_MESSAGES)
        if not messages_path.exists():
            header = "# Tapster Replies\n\n"
            await asyncio.to_thread(save_yaml, messages_path, DEFAULT_MESSAGES, header)
            logger.debug(f"generated {messages_path.name}")

        self._apply_env_overrides()
        self._validate_settings()
        logger.debug("config loaded")

    def _apply_env_overrides(self) -> None:
        """Override settings from environment variables.

        Invalid values are logged and leave the setting unchanged.
        """
        env_map: dict[str, tuple[str, Callable[[str], Any]]] = {
            "LAVALINK_URL": ("lavalink.url", str),
            "LAVALINK_PASSWORD": ("lavalink.password", str),
            "VOICE_UPDATE_DELAY": ("lavalink.voice_update_delay", float),
            "SEARCH_PREFIX": ("search_prefix", str),
            "SELF_DEAF": ("self_deaf", _as_bool),
            "LOG_LEVEL": ("logging.level", str),
            "SUPPRESS_LIBRARY_LOGS": ("logging.suppress_library_logs", _as_bool),
        }

        for env_key, (setting_key, converter) in env_map.items():
            if value := os.getenv(env_key):
                try:
                    converted = converter(value)
                except (ValueError, TypeError) as e:
                    logger.warning(f"invalid env var {env_key}: {e}")
                    continue

                target = self.settings
                *parents, leaf = setting_key.split(".")
                for part in parents:
                    target = target.setdefault(part, {})
                    if not isinstance(target, dict):
                        logger.warning(f"invalid config structure for {setting_key}")
                        break
                else:
                    target[leaf] = converted
                    logger.debug(f"{env_key} overrides {setting_key}")

    def _validate_settings(self) -> None:
        """Restore nulls to defaults and clamp ranged values."""
        for key in list(self.settings):
            if self.settings[key] is None and key in DEFAULT_SETTINGS:
                self.settings[key] = copy.deepcopy(DEFAULT_SETTINGS[key])
        for section in ("lavalink", "logging"):
            sect = self.settings.get(section)
            defaults = DEFAULT_SETTINGS[section]
            if not isinstance(sect, dict):
                logger.warning(f"{section} section invalid, using defaults")
                self.settings[section] = dict(defaults)
                continue
            for key in list(sect):
                if sect[key] is None and key in defaults:
                    sect[key] = defaults[key]

        lavalink = self.settings["lavalink"]
        delay = lavalink.get("voice_update_delay")
        try:
            v = float(delay)
            clamped = max(0.0, min(10.0, v))
            if clamped != v:
                logger.warning(f"lavalink.voice_update_delay={v} out of range, clamped to {clamped} (valid: 0-10)")
            lavalink["voice_update_delay"] = clamped
        except (ValueError, TypeError):
            logger.warning(f"lavalink.voice_update_delay={delay!r} invalid, using default")
            lavalink["voice_update_delay"] = DEFAULT_SETTINGS["lavalink"]["voice_update_delay"]

        lavalink["url"] = str(lavalink.get("url", "")).strip()
        lavalink["password"] = str(lavalink.get("password", ""))

    def get(self, key: str, default=None) -> Any:
        return self.settings.get(key, default)

    def lavalink(self, key: str, default=None) -> Any:
        return self.settings.get("lavalink", {}).get(key, default)

    def msg(self, key: str, **kwargs) -> str:
        """Formatted reply text. Falls back to the key itself when unknown."""
        entry = self.messages.get(key, DEFAULT_MESSAGES.get(key, {}))
        template = entry.get("text", key) if isinstance(entry, dict) else entry
        try:
            return template.format(**kwargs)
        except KeyError:
            return template

    def is_enabled(self, key: str) -> bool:
        entry = self.messages.get(key, DEFAULT_MESSAGES.get(key, {}))
        return entry.get("enabled", True) if isinstance(entry, dict) else True


def validate_configuration(config: ConfigManager) -> None:
    """Pre-flight check before the bot starts. Logs every problem and exits on failure.

    Checks DISCORD_TOKEN is present and shaped like a token, and that the
    Lavalink URL and password are usable.
    """
    errors = []

    token = (os.getenv("DISCORD_TOKEN") or "").strip()
    if not token:
        errors.append("DISCORD_TOKEN not set, add it to .env or the environment")
    else:
        parts = token.split(".")
        if len(parts) != 3 or any(not part for part in parts):
            errors.append("DISCORD_TOKEN format appears invalid (expected three dot-separated sections)")

    try:
        verify_url(config.lavalink("url"))
    except ConfigurationError as e:
        errors.append(f"lavalink.url: {e}")
    if not config.lavalink("password"):
        errors.append("lavalink.password is empty, set LAVALINK_PASSWORD")

    if errors:
        for error in errors:
            logger.error(error)
        sys.exit(1)
