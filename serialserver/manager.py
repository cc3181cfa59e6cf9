"""Multiplexes serial sessions behind one port-number keyed mapping."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Optional

from .errors import DuplicatePortError, SerialServerError
from .packet import SerialPacket
from .signals import PacketSignal
from .transport import SerialSession

SessionFactory = Callable[[], SerialSession]

logger = logging.getLogger(__name__)


class SessionManager:
    """Owns every :class:`SerialSession` it opens, keyed by port number.

    All public methods hold one re-entrant lock for their whole duration, so
    notifications are delivered while the lock is held and subscribers may
    call back into the manager.
    """

    def __init__(self, session_factory: SessionFactory = SerialSession) -> None:
        self._session_factory = session_factory
        self._sessions: Dict[int, Optional[SerialSession]] = {}
        self._lock = threading.RLock()
        self.on_error = PacketSignal("error")
        self.on_command_sent = PacketSignal("command-sent")
        self.on_result = PacketSignal("result")

    @property
    def ports(self) -> List[int]:
        with self._lock:
            return list(self._sessions)

    def __contains__(self, port: object) -> bool:
        with self._lock:
            return port in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def is_connected(self, port: int) -> bool:
        with self._lock:
            session = self._sessions.get(port)
            return session is not None and session.connected

    def reset(self) -> None:
        """Forget every session without closing its port."""
        logger.info("Serial server manager starting up...")
        with self._lock:
            self._sessions.clear()

    def open(self, port: int, baud_rate: int) -> Optional[SerialPacket]:
        """Connect to the device for *port* and register its session.

        Returns the connection packet, or ``None`` after reporting the failure
        on :attr:`on_error`.
        """
        with self._lock:
            if port in self._sessions:
                message = f"Already created serial server on port {port}"
                error = DuplicatePortError(
                    message,
                    SerialPacket(port=port, baud_rate=baud_rate, result_text=message),
                )
                self.on_error.emit(error.packet)
                return None

            session = self._session_factory()
            session.on_error.connect(self.on_error.emit)
            session.on_command_sent.connect(self.on_command_sent.emit)
            session.on_result.connect(self.on_result.emit)

            try:
                packet = session.connect(port, baud_rate)
            except SerialServerError as exc:
                message = f"Error creating serial connection on port {port}"
                failure = type(exc)(
                    message,
                    SerialPacket(
                        port=port,
                        baud_rate=baud_rate,
                        port_name=session.found_port,
                        result_text=message,
                    ),
                )
                self.on_error.emit(failure.packet)
                return None

            logger.info("Serial communication startup...")
            logger.info("Using serial port: %s", session.found_port)
            self._sessions[port] = session
            return packet

    def send(self, port: int, command: str) -> None:
        """Forward *command* to the session registered for *port*."""
        with self._lock:
            if port not in self._sessions:
                logger.warning(
                    "Attempted to send message to %s, but not in the internal mapping!",
                    port,
                )
                return

            session = self._sessions[port]
            if session is None:
                logger.warning(
                    "Found %s in the mapping, but its instance is missing!", port
                )
                return

            if not session.connected:
                logger.warning(
                    "Cannot send message! Found mapping to %s, but it's not connected yet!",
                    port,
                )
                return

            session.send(command)

    def send_packet(self, packet: Optional[SerialPacket]) -> None:
        if packet is None or packet.command_text is None:
            return
        self.send(packet.port, packet.command_text)

    def poll_all(self) -> None:
        """Poll every connected session once, in registration order."""
        with self._lock:
            for port, session in list(self._sessions.items()):
                if session is None or not session.connected:
                    logger.debug("Skipping poll of disconnected port %s", port)
                    continue
                session.poll()

    def teardown(self) -> None:
        """Close every session and empty the mapping."""
        with self._lock:
            for session in list(self._sessions.values()):
                if session is None:
                    continue
                session.close()
            self._sessions.clear()
