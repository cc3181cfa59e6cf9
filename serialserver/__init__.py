"""Serial server package correlating microcontroller replies with commands."""

from __future__ import annotations

from .manager import SessionManager
from .packet import ErrorKind, SerialPacket
from .transport import SerialSession

__all__ = ["ErrorKind", "SerialPacket", "SerialSession", "SessionManager", "main"]


def main() -> int:
    """Run the serial server command-line interface."""

    from .cli import main as _cli_main

    return _cli_main()
