"""Exceptions raised by the serial server."""

from __future__ import annotations

from typing import Optional

from .packet import ErrorKind, SerialPacket


class SerialServerError(Exception):
    """Base error carrying the packet that describes the failure."""

    kind: ErrorKind = ErrorKind.IO_ERROR

    def __init__(self, message: str, packet: Optional[SerialPacket] = None) -> None:
        super().__init__(message)
        if packet is None:
            packet = SerialPacket(result_text=message)
        packet.error = self.kind
        self.packet = packet


class PortNotFoundError(SerialServerError):
    kind = ErrorKind.PORT_NOT_FOUND


class PortOpenError(SerialServerError):
    kind = ErrorKind.OPEN_ERROR


class DesyncError(SerialServerError):
    kind = ErrorKind.DESYNC


class DuplicatePortError(SerialServerError):
    kind = ErrorKind.DUPLICATE_PORT
