"""Command-line entry point driving the session manager polling loop."""

from __future__ import annotations

import argparse
import functools
import logging
import time
from collections import deque
from typing import Iterable, List, Optional, Sequence

from .config import ServerConfig, load_config
from .manager import SessionManager
from .packet import SerialPacket
from .settings import CONFIG_FILE, configure_logging, resolve_log_level
from .transport import SerialSession

logger = logging.getLogger(__name__)

LED_PIN = 25
BLINK_TOGGLES = 5


def build_demo_commands(port: int) -> List[SerialPacket]:
    """Soft reset, blink the on-board LED, then ask for the board identity."""

    led_high = f"machine.Pin({LED_PIN}, machine.Pin.OUT).high()"
    led_low = f"machine.Pin({LED_PIN}, machine.Pin.OUT).low()"

    commands = ["machine.soft_reset()"]
    for index in range(BLINK_TOGGLES):
        commands.append(led_high if index % 2 == 0 else led_low)
    commands.append(led_low)
    commands.append("machine.unique_id()")
    commands.append(f"machine.Pin({LED_PIN}).value()")
    return [SerialPacket(port=port, command_text=command) for command in commands]


class CommandRunner:
    """Feeds queued commands to a manager one per polling cycle."""

    def __init__(self, manager: SessionManager, *, interval: float = 1.0) -> None:
        self.manager = manager
        self.interval = interval
        self.commands: deque[SerialPacket] = deque()
        self.failed = False
        manager.on_error.connect(self._on_error)
        manager.on_command_sent.connect(self._on_command_sent)
        manager.on_result.connect(self._on_result)

    def _on_command_sent(self, packet: SerialPacket) -> None:
        logger.info("SENT[%s]: %s", packet.port, packet.command_text)

    def _on_result(self, packet: SerialPacket) -> None:
        logger.info("GET[%s]: %s", packet.port, packet.result_text or "None")

    def _on_error(self, packet: SerialPacket) -> None:
        logger.error("ERROR[%s]: %s", packet.port, packet.result_text)
        self.failed = True

    def open_ports(self, ports: Iterable[int], baud_rate: int, *, demo: bool = True) -> None:
        for port in ports:
            if self.manager.open(port, baud_rate) is None:
                logger.error("Unable to connect to serial port %s. Exiting!", port)
                continue
            if demo:
                self.commands.extend(build_demo_commands(port))

    def step(self) -> None:
        self.manager.poll_all()
        if self.failed:
            return
        if self.commands:
            self.manager.send_packet(self.commands.popleft())

    def run(self, cycles: Optional[int] = None) -> bool:
        """Pump until an error, Ctrl+C, or *cycles* iterations; True on success."""
        count = 0
        try:
            while not self.failed and (cycles is None or count < cycles):
                self.step()
                count += 1
                if self.failed:
                    break
                time.sleep(self.interval)
        except KeyboardInterrupt:
            logger.info("Interrupted, shutting down")
        return not self.failed


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="serial-server",
        description="Send commands to serial-attached microcontrollers and match their replies.",
    )
    parser.add_argument(
        "-p", "--ports", type=int, nargs="+", help="Serial port numbers to use"
    )
    parser.add_argument("-b", "--baud", type=int, help="Serial port baud rate.")
    parser.add_argument(
        "-c", "--config", default=CONFIG_FILE, help="Path to a JSON config file."
    )
    parser.add_argument(
        "-i", "--interval", type=float, help="Seconds between polling cycles."
    )
    parser.add_argument("--log-level", help="Logging level, e.g. DEBUG or INFO.")
    parser.add_argument(
        "--no-demo",
        action="store_true",
        help="Only connect and poll; do not queue the LED demonstration.",
    )
    parser.add_argument(
        "--cycles", type=int, help="Stop after this many polling cycles."
    )
    return parser


def resolve_config(args: argparse.Namespace) -> ServerConfig:
    cfg = load_config(args.config)
    if args.ports:
        cfg.ports = list(dict.fromkeys(args.ports))
    if args.baud is not None:
        cfg.baud_rate = args.baud
    if args.interval is not None:
        cfg.poll_interval = args.interval
    if args.log_level:
        cfg.log_level = args.log_level.upper()
    if args.no_demo:
        cfg.demo = False
    return cfg


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    cfg = resolve_config(args)
    if not cfg.ports:
        parser.error("at least one port is required (--ports or config file)")
    if cfg.baud_rate <= 0:
        parser.error("baud rate must be positive")

    configure_logging(level=resolve_log_level(cfg.log_level))

    manager = SessionManager(functools.partial(SerialSession, timeout=cfg.timeout))
    runner = CommandRunner(manager, interval=cfg.poll_interval)
    try:
        runner.open_ports(cfg.ports, cfg.baud_rate, demo=cfg.demo)
        ok = not runner.failed and runner.run(args.cycles)
    finally:
        manager.teardown()

    return 0 if ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
