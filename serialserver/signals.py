"""Synchronous packet notification channels."""

from __future__ import annotations

import logging
import threading
from typing import Callable

from .packet import SerialPacket

PacketCallback = Callable[[SerialPacket], None]

_LOGGER = logging.getLogger(__name__)


class PacketSignal:
    """A list of subscribers called in registration order on ``emit``."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._callbacks: list[PacketCallback] = []
        self._lock = threading.Lock()

    def connect(self, callback: PacketCallback) -> None:
        if not callback:
            return
        with self._lock:
            self._callbacks.append(callback)

    def disconnect(self, callback: PacketCallback) -> None:
        with self._lock:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass

    def emit(self, packet: SerialPacket) -> None:
        with self._lock:
            callbacks = list(self._callbacks)
        for callback in callbacks:
            try:
                callback(packet)
            except Exception:
                _LOGGER.warning(
                    "%s callback failed for port %s", self.name, packet.port,
                    exc_info=True,
                )

    def __len__(self) -> int:
        with self._lock:
            return len(self._callbacks)
