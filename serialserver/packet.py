"""Packet shape shared by every serial server notification."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional


class ErrorKind(enum.Enum):
    PORT_NOT_FOUND = "port_not_found"
    OPEN_ERROR = "open_error"
    DESYNC = "desync"
    DUPLICATE_PORT = "duplicate_port"
    IO_ERROR = "io_error"


@dataclass
class SerialPacket:
    """A command, a result, or an error for one serial port."""

    port: int = 0
    baud_rate: int = 0
    port_name: str = ""
    has_executed: bool = False
    command_text: Optional[str] = None
    result_text: Optional[str] = None
    error: Optional[ErrorKind] = None

    @property
    def is_error(self) -> bool:
        return self.error is not None
