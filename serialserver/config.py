"""Configuration file handling for the serial server."""
from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, List

from .settings import CONFIG_FILE, POLL_INTERVAL
from .transport import DEFAULT_BAUDRATE, DEFAULT_TIMEOUT

logger = logging.getLogger(__name__)


def _ensure_parent(path: Path) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError:
        # Directory creation failures will surface during write; keep silent here.
        pass


def _coerce_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _coerce_positive_float(value: Any, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def _coerce_ports(value: Any) -> List[int]:
    if isinstance(value, (str, int)):
        value = [value]
    if not isinstance(value, list):
        return []
    ports: List[int] = []
    for item in value:
        port = _coerce_int(item, -1)
        if port < 0:
            logger.warning("Ignoring invalid port number %r in config", item)
            continue
        if port not in ports:
            ports.append(port)
    return ports


@dataclass
class ServerConfig:
    ports: List[int] = field(default_factory=list)
    baud_rate: int = DEFAULT_BAUDRATE
    poll_interval: float = POLL_INTERVAL
    timeout: float = DEFAULT_TIMEOUT
    log_level: str = "INFO"
    demo: bool = True


def load_config(path: str | Path = CONFIG_FILE) -> ServerConfig:
    """Load configuration data from *path* or return defaults on failure."""

    defaults = ServerConfig()
    cfg_path = Path(path)
    if not cfg_path.exists():
        return defaults

    try:
        raw = json.loads(cfg_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        logger.error("Config file %s contains invalid JSON: %s", cfg_path, exc)
        return defaults
    except OSError as exc:
        logger.error("Could not read config file %s: %s", cfg_path, exc)
        return defaults

    if not isinstance(raw, dict):
        logger.error("Config file %s did not contain an object", cfg_path)
        return defaults

    data = asdict(defaults)
    data["ports"] = _coerce_ports(raw.get("ports", data["ports"]))
    data["baud_rate"] = max(1, _coerce_int(raw.get("baud_rate"), defaults.baud_rate))
    data["poll_interval"] = _coerce_positive_float(
        raw.get("poll_interval"), defaults.poll_interval
    )
    data["timeout"] = _coerce_positive_float(raw.get("timeout"), defaults.timeout)
    data["log_level"] = str(raw.get("log_level", data["log_level"])).upper()
    data["demo"] = bool(raw.get("demo", data["demo"]))

    return ServerConfig(**data)


def save_config(config: ServerConfig, path: str | Path = CONFIG_FILE) -> None:
    """Persist *config* to *path*, logging errors without raising."""

    cfg_path = Path(path)
    _ensure_parent(cfg_path)
    try:
        cfg_path.write_text(json.dumps(asdict(config), indent=4), encoding="utf-8")
    except OSError as exc:
        logger.error("Could not write config file %s: %s", cfg_path, exc)
