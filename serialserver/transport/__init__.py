"""Transport layer for the serial server."""

from .ports import (
    DEFAULT_BAUDRATE,
    DEFAULT_TIMEOUT,
    LINE_ENDING,
    list_port_names,
    match_port_by_number,
    open_serial,
)
from .session import DESYNC_MESSAGE, PROMPT_MARKER, SerialSession

__all__ = [
    "DEFAULT_BAUDRATE",
    "DEFAULT_TIMEOUT",
    "DESYNC_MESSAGE",
    "LINE_ENDING",
    "PROMPT_MARKER",
    "SerialSession",
    "list_port_names",
    "match_port_by_number",
    "open_serial",
]
