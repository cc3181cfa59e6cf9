"""Serial device enumeration, port matching and opening."""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Sequence

import serial
import serial.tools.list_ports

PortLister = Callable[[], List[str]]
PortMatcher = Callable[[int, Sequence[str]], Optional[str]]
SerialFactory = Callable[[], serial.Serial]

DEFAULT_BAUDRATE = 9600
DEFAULT_TIMEOUT = 1.5
LINE_ENDING = "\r\n"
ENCODING = "utf-8"

_LOGGER = logging.getLogger(__name__)


def list_port_names() -> List[str]:
    """Return the device paths of every serial port on this host, sorted."""
    names = [
        info.device
        for info in serial.tools.list_ports.comports()
        if getattr(info, "device", None)
    ]
    names.sort()
    return names


def match_port_by_number(port: int, candidates: Sequence[str]) -> Optional[str]:
    """Pick the first candidate whose name contains *port* as a substring.

    The rule is deliberately loose because device naming differs per host
    (``COM3``, ``/dev/ttyACM3``, ``/dev/tty.usbmodem3``). Candidates are taken
    in order, so ``1`` also matches ``COM10`` if it is listed before ``COM1``.
    """
    needle = str(port)
    for name in candidates:
        if needle in name:
            return name
    return None


def open_serial(
    port_name: str,
    baud_rate: int = DEFAULT_BAUDRATE,
    *,
    timeout: float = DEFAULT_TIMEOUT,
    factory: Optional[SerialFactory] = None,
) -> serial.Serial:
    """Open *port_name* as 8N1 without flow control, RTS and DTR asserted."""
    ser = (factory or serial.Serial)()
    ser.port = port_name
    ser.baudrate = baud_rate
    ser.bytesize = serial.EIGHTBITS
    ser.parity = serial.PARITY_NONE
    ser.stopbits = serial.STOPBITS_ONE
    ser.xonxoff = False
    ser.rtscts = False
    ser.dsrdtr = False
    ser.timeout = timeout
    ser.write_timeout = timeout
    # pyserial applies these on open().
    ser.rts = True
    ser.dtr = True
    ser.open()
    _LOGGER.debug("Opened %s at %d baud", port_name, baud_rate)
    return ser
