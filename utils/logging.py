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
Logging Setup

Single loguru sink on stderr with 4-character level tags for aligned logs:
    DEBUG    -> [DBUG] technical details for debugging
    INFO     -> [INFO] normal operation messages
    NOTICE   -> [NOTE] startup milestones worth seeing at minimal verbosity
    WARNING  -> [WARN] issues that don't stop operation
    ERROR    -> [FAIL] recoverable failures
    CRITICAL -> [CRIT] catastrophic failures

Records from the standard logging module (discord.py, aiohttp) are routed
into loguru so everything shares one format.
"""

import inspect
import logging
import sys

from loguru import logger

LEVEL_TAGS = {
    "TRACE": "TRCE",
    "DEBUG": "DBUG",
    "INFO": "INFO",
    "NOTICE": "NOTE",
    "SUCCESS": "GOOD",
    "WARNING": "WARN",
    "ERROR": "FAIL",
    "CRITICAL": "CRIT",
}

# Verbosity presets accepted in settings.yaml / LOG_LEVEL
VERBOSITY = {
    "minimal": "NOTICE",
    "verbose": "INFO",
    "debug": "DEBUG",
}

LIBRARY_LOGGERS = ("discord", "discord.gateway", "discord.client", "aiohttp")

FORMAT = "<green>{time:YYYY-MM-DD HH:mm:ss}</green> [<level>{extra[tag]}</level>] {name}: <level>{message}</level>"


class InterceptHandler(logging.Handler):
    """Forward standard logging records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find the caller outside the logging module so {name} is meaningful
        frame, depth = inspect.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _add_tag(record: dict) -> None:
    record["extra"]["tag"] = LEVEL_TAGS.get(record["level"].name, record["level"].name[:4])


def _ensure_notice_level() -> None:
    try:
        logger.level("NOTICE")
    except ValueError:
        logger.level("NOTICE", no=25, color="<cyan><bold>")


def resolve_level(level: str) -> str:
    """Map a verbosity preset ("minimal", "verbose", "debug") or level name to a loguru level."""
    level = (level or "verbose").strip()
    return VERBOSITY.get(level.lower(), level.upper())


def setup_logging(level: str = "verbose", suppress_library_logs: bool = True) -> str:
    """Replace loguru's default sink and route stdlib logging into it.

    Args:
        level: Verbosity preset or level name (e.g., "debug", "WARNING")
        suppress_library_logs: Keep discord.py/aiohttp at WARNING

    Returns:
        The resolved loguru level name
    """
    _ensure_notice_level()
    resolved = resolve_level(level)
    try:
        logger.level(resolved)
    except ValueError:
        logger.warning(f"unknown log level {level!r}, using INFO")
        resolved = "INFO"

    logger.remove()
    logger.configure(patcher=_add_tag)
    logger.add(sys.stderr, level=resolved, format=FORMAT, backtrace=False, diagnose=False)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    library_level = logging.WARNING if suppress_library_logs else logging.getLevelName(
        resolved if resolved != "NOTICE" else "INFO"
    )
    for name in LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    logger.debug(f"logging configured at {resolved}")
    return resolved
