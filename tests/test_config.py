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
import yaml

from utils.config import DEFAULT_SETTINGS, ConfigManager, deep_merge, validate_configuration

ENV_KEYS = ("LAVALINK_URL", "LAVALINK_PASSWORD", "VOICE_UPDATE_DELAY", "SEARCH_PREFIX",
            "SELF_DEAF", "LOG_LEVEL", "SUPPRESS_LIBRARY_LOGS", "DISCORD_TOKEN")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


@pytest.mark.asyncio
async def test_missing_files_are_generated_with_defaults(tmp_path):
    config = ConfigManager(tmp_path)
    await config.load()

    assert (tmp_path / "settings.yaml").exists()
    assert (tmp_path / "messages.yaml").exists()
    assert config.lavalink("url") == DEFAULT_SETTINGS["lavalink"]["url"]
    assert config.get("search_prefix") == "ytsearch:"


@pytest.mark.asyncio
async def test_yaml_values_merge_over_defaults(tmp_path):
    (tmp_path / "settings.yaml").write_text(yaml.safe_dump({
        "lavalink": {"url": "http://lava:2333"},
        "unknown_key": 1,
    }))
    config = ConfigManager(tmp_path)
    await config.load()

    assert config.lavalink("url") == "http://lava:2333"
    assert config.lavalink("password") == DEFAULT_SETTINGS["lavalink"]["password"]
    assert "unknown_key" not in config.settings


@pytest.mark.asyncio
async def test_env_overrides_win(tmp_path, monkeypatch):
    monkeypatch.setenv("LAVALINK_URL", "https://lava.example.com")
    monkeypatch.setenv("LAVALINK_PASSWORD", "hunter2")
    monkeypatch.setenv("SELF_DEAF", "false")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    config = ConfigManager(tmp_path)
    await config.load()

    assert config.lavalink("url") == "https://lava.example.com"
    assert config.lavalink("password") == "hunter2"
    assert config.get("self_deaf") is False
    assert config.get("logging")["level"] == "debug"


@pytest.mark.asyncio
async def test_invalid_values_are_clamped_or_reset(tmp_path, monkeypatch):
    (tmp_path / "settings.yaml").write_text(yaml.safe_dump({"lavalink": {"voice_update_delay": 60}}))
    config = ConfigManager(tmp_path)
    await config.load()
    assert config.lavalink("voice_update_delay") == 10.0

    monkeypatch.setenv("VOICE_UPDATE_DELAY", "soon")
    await config.load()
    assert config.lavalink("voice_update_delay") == 10.0


@pytest.mark.asyncio
async def test_broken_yaml_falls_back_to_defaults(tmp_path):
    (tmp_path / "settings.yaml").write_text("lavalink: [unclosed\n")
    config = ConfigManager(tmp_path)
    await config.load()
    assert config.lavalink("url") == DEFAULT_SETTINGS["lavalink"]["url"]


@pytest.mark.asyncio
async def test_messages(tmp_path):
    (tmp_path / "messages.yaml").write_text(yaml.safe_dump({
        "playing": {"text": "now: {title}", "enabled": False},
    }))
    config = ConfigManager(tmp_path)
    await config.load()

    assert config.msg("playing", title="x") == "now: x"
    assert not config.is_enabled("playing")
    assert config.is_enabled("destroyed")
    assert config.msg("no_results") == "no results for `{query}`"
    assert config.msg("not_a_message") == "not_a_message"


def test_deep_merge_keeps_nested_defaults():
    merged = deep_merge({"lavalink": {"password": "x"}}, DEFAULT_SETTINGS)
    assert merged["lavalink"]["password"] == "x"
    assert merged["lavalink"]["url"] == DEFAULT_SETTINGS["lavalink"]["url"]


@pytest.mark.asyncio
async def test_validate_configuration_exits_without_token(tmp_path):
    config = ConfigManager(tmp_path)
    await config.load()
    with pytest.raises(SystemExit):
        validate_configuration(config)


@pytest.mark.asyncio
async def test_validate_configuration_accepts_good_setup(tmp_path, monkeypatch):
    monkeypatch.setenv("DISCORD_TOKEN", "aaa.bbb.ccc")
    config = ConfigManager(tmp_path)
    await config.load()
    validate_configuration(config)
