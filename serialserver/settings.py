"""Configuration helpers and shared constants for the serial server."""

from __future__ import annotations

import logging

CONFIG_FILE = "serial_server.json"
LOG_LEVEL = logging.INFO
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
POLL_INTERVAL = 1.0


def configure_logging(
    *, level: int = LOG_LEVEL, fmt: str = LOG_FORMAT, force: bool = False
) -> None:
    """Set up root logging for the CLI unless handlers already exist.

    ``force`` replaces existing handlers, e.g. after ``--log-level`` changes.
    """

    if force:
        logging.basicConfig(level=level, format=fmt, force=True)
        return

    if logging.getLogger().handlers:
        return
    logging.basicConfig(level=level, format=fmt)


def resolve_log_level(name: str, default: int = LOG_LEVEL) -> int:
    """Map a level name such as ``"debug"`` to its numeric value."""

    value = logging.getLevelName(str(name).strip().upper())
    return value if isinstance(value, int) else default
