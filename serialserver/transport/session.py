"""Serial session correlating echoed device replies with sent commands."""

from __future__ import annotations

import codecs
import logging
from collections import deque
from typing import Optional, Tuple

import serial

from ..errors import (
    DesyncError,
    PortNotFoundError,
    PortOpenError,
    SerialServerError,
)
from ..packet import SerialPacket
from ..signals import PacketSignal
from .ports import (
    DEFAULT_TIMEOUT,
    ENCODING,
    LINE_ENDING,
    PortLister,
    PortMatcher,
    SerialFactory,
    list_port_names,
    match_port_by_number,
    open_serial,
)

PROMPT_MARKER = ">>>"
PORT_NOT_FOUND_MESSAGE = "Unable to find specified port!"
DESYNC_MESSAGE = "Incoming command was not last one sent! Desync!"

_LOGGER = logging.getLogger(__name__)


class SerialSession:
    """Owns one serial connection and the queue of commands awaiting an echo.

    Replies are matched first-in first-out: every non-idle read is compared
    against the oldest pending command. Sessions are not thread safe; the
    :class:`~serialserver.manager.SessionManager` serializes access.
    """

    def __init__(
        self,
        *,
        port_lister: PortLister = list_port_names,
        matcher: PortMatcher = match_port_by_number,
        serial_factory: Optional[SerialFactory] = None,
        timeout: float = DEFAULT_TIMEOUT,
        prompt: str = PROMPT_MARKER,
    ) -> None:
        self._port_lister = port_lister
        self._matcher = matcher
        self._serial_factory = serial_factory
        self.timeout = timeout
        self.prompt = prompt
        self.port = 0
        self.baud_rate = 0
        self.found_port = ""
        self._serial: Optional[serial.Serial] = None
        self._sent_commands: deque[str] = deque()
        self._decoder = codecs.getincrementaldecoder(ENCODING)(errors="replace")
        self.on_error = PacketSignal("error")
        self.on_command_sent = PacketSignal("command-sent")
        self.on_result = PacketSignal("result")

    @property
    def connected(self) -> bool:
        return bool(self._serial is not None and self._serial.is_open)

    @property
    def pending(self) -> Tuple[str, ...]:
        return tuple(self._sent_commands)

    def _packet(self, **fields) -> SerialPacket:
        return SerialPacket(
            port=self.port,
            baud_rate=self.baud_rate,
            port_name=self.found_port,
            **fields,
        )

    def _emit_error(self, exc: SerialServerError) -> None:
        _LOGGER.debug("Port %s error (%s): %s", self.port, exc.kind.value, exc)
        self.on_error.emit(exc.packet)

    def connect(self, port: int, baud_rate: int) -> SerialPacket:
        """Find the device for *port* and open it.

        Raises:
            PortNotFoundError: no device name matches *port*.
            PortOpenError: the device exists but could not be opened.
        """
        self.port = port
        self.baud_rate = baud_rate
        try:
            self.found_port = self._matcher(port, self._port_lister()) or ""
        except (serial.SerialException, OSError) as err:
            self.found_port = ""
            exc = PortNotFoundError(str(err), self._packet(result_text=str(err)))
            self._emit_error(exc)
            raise exc from err

        if not self.found_port:
            exc = PortNotFoundError(
                PORT_NOT_FOUND_MESSAGE,
                self._packet(result_text=PORT_NOT_FOUND_MESSAGE),
            )
            self._emit_error(exc)
            raise exc

        try:
            self._serial = open_serial(
                self.found_port,
                baud_rate,
                timeout=self.timeout,
                factory=self._serial_factory,
            )
            self._decoder = codecs.getincrementaldecoder(ENCODING)(errors="replace")
        except (serial.SerialException, OSError, ValueError) as err:
            self._serial = None
            exc = PortOpenError(str(err), self._packet(result_text=str(err)))
            self._emit_error(exc)
            raise exc from err

        return self._packet()

    def send(self, command: str) -> None:
        """Write *command* and queue it until its echo comes back."""
        if not self.connected:
            return

        self._sent_commands.append(command)
        try:
            self._serial.write(f"{command}{LINE_ENDING}".encode(ENCODING))
            self._serial.flush()
        except (serial.SerialException, OSError) as err:
            # Never reached the device, so no echo will arrive for it.
            self._sent_commands.pop()
            self._emit_error(
                SerialServerError(
                    str(err),
                    self._packet(command_text=command, result_text=str(err)),
                )
            )
            return

        self.on_command_sent.emit(self._packet(command_text=command))

    def _read_existing(self) -> str:
        waiting = self._serial.in_waiting
        if not waiting:
            return ""
        # A multi-byte character split across reads is held until its tail arrives.
        return self._decoder.decode(self._serial.read(waiting))

    def poll(self) -> None:
        """Read whatever the device has buffered and classify it."""
        if not self.connected:
            return

        # pyserial read timeouts return short data rather than raising, so an
        # idle device simply yields an empty string here.
        try:
            raw = self._read_existing().strip()
        except (serial.SerialException, OSError) as err:
            self._emit_error(
                SerialServerError(str(err), self._packet(result_text=str(err)))
            )
            return

        if not raw:
            return
        if raw == self.prompt:
            return

        command: Optional[str] = None
        if self._sent_commands:
            command = self._sent_commands.popleft()
            if command not in raw:
                self._emit_error(
                    DesyncError(
                        DESYNC_MESSAGE,
                        self._packet(command_text=command, result_text=DESYNC_MESSAGE),
                    )
                )
                return
            raw = raw.replace(command, "").strip()

        result = raw.replace(self.prompt, "").strip()
        self.on_result.emit(
            self._packet(
                command_text=command,
                result_text=result,
                has_executed=command is not None,
            )
        )

    def close(self) -> None:
        ser = self._serial
        self._serial = None
        if ser is None:
            return
        try:
            ser.close()
        except (serial.SerialException, OSError):
            _LOGGER.debug("Failed to close %s", self.found_port, exc_info=True)
