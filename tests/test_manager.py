import threading
import unittest
from typing import Dict, List

import serial

from serialserver.manager import SessionManager
from serialserver.packet import ErrorKind, SerialPacket
from serialserver.transport.session import DESYNC_MESSAGE, SerialSession
from serial_fakes import FakeSerial


class SessionManagerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.devices = ["COM3", "COM4"]
        self.fakes: Dict[int, FakeSerial] = {}
        self.sessions: List[SerialSession] = []
        self.manager = SessionManager(self.make_session)
        self.errors: List[SerialPacket] = []
        self.sent: List[SerialPacket] = []
        self.results: List[SerialPacket] = []
        self.manager.on_error.connect(self.errors.append)
        self.manager.on_command_sent.connect(self.sent.append)
        self.manager.on_result.connect(self.results.append)

    def make_session(self) -> SerialSession:
        fake = FakeSerial()

        def factory() -> FakeSerial:
            return fake

        session = SerialSession(
            port_lister=lambda: list(self.devices), serial_factory=factory
        )
        session.fake = fake
        self.sessions.append(session)
        return session

    def open(self, port: int) -> FakeSerial:
        packet = self.manager.open(port, 9600)
        self.assertIsNotNone(packet)
        fake = self.sessions[-1].fake
        self.fakes[port] = fake
        return fake

    def test_open_registers_session(self) -> None:
        packet = self.manager.open(3, 9600)
        self.assertEqual(
            (packet.port, packet.baud_rate, packet.port_name), (3, 9600, "COM3")
        )
        self.assertIn(3, self.manager)
        self.assertEqual(self.manager.ports, [3])
        self.assertTrue(self.manager.is_connected(3))
        self.assertEqual(self.errors, [])

    def test_duplicate_open_is_rejected_without_side_effects(self) -> None:
        fake = self.open(3)
        self.manager.send(3, "reset()")

        self.assertIsNone(self.manager.open(3, 115200))

        self.assertEqual(len(self.sessions), 1)
        self.assertEqual(len(self.errors), 1)
        self.assertEqual(self.errors[0].error, ErrorKind.DUPLICATE_PORT)
        self.assertEqual(
            self.errors[0].result_text, "Already created serial server on port 3"
        )
        self.assertTrue(fake.is_open)
        self.assertEqual(fake.open_calls, 1)
        self.assertEqual(self.sessions[0].pending, ("reset()",))
        self.assertEqual(self.sessions[0].baud_rate, 9600)

    def test_failed_open_reports_and_skips_registration(self) -> None:
        self.assertIsNone(self.manager.open(7, 9600))
        self.assertNotIn(7, self.manager)
        self.assertEqual(len(self.manager), 0)
        self.assertEqual(
            [e.result_text for e in self.errors],
            ["Unable to find specified port!", "Error creating serial connection on port 7"],
        )
        self.assertTrue(all(e.error is ErrorKind.PORT_NOT_FOUND for e in self.errors))
        self.assertTrue(all(e.port == 7 for e in self.errors))

    def test_open_failure_on_existing_device_reports_open_error(self) -> None:
        manager = SessionManager(
            lambda: SerialSession(
                port_lister=lambda: ["COM3"],
                serial_factory=lambda: FakeSerial(
                    open_error=serial.SerialException("could not open port COM3")
                ),
            )
        )
        errors: List[SerialPacket] = []
        manager.on_error.connect(errors.append)

        self.assertIsNone(manager.open(3, 9600))

        self.assertNotIn(3, manager)
        self.assertEqual(
            [e.result_text for e in errors],
            ["could not open port COM3", "Error creating serial connection on port 3"],
        )
        self.assertTrue(all(e.error is ErrorKind.OPEN_ERROR for e in errors))
        self.assertTrue(all(e.port_name == "COM3" for e in errors))

    def test_enumeration_failure_is_reported_not_raised(self) -> None:
        def broken_lister() -> List[str]:
            raise OSError("enumeration failed")

        manager = SessionManager(lambda: SerialSession(port_lister=broken_lister))
        errors: List[SerialPacket] = []
        manager.on_error.connect(errors.append)

        self.assertIsNone(manager.open(3, 9600))

        self.assertEqual(len(manager), 0)
        self.assertEqual(
            [e.result_text for e in errors],
            ["enumeration failed", "Error creating serial connection on port 3"],
        )
        self.assertTrue(all(e.error is ErrorKind.PORT_NOT_FOUND for e in errors))

    def test_send_to_unknown_port_only_warns(self) -> None:
        fake = self.open(3)
        with self.assertLogs("serialserver.manager", level="WARNING") as logs:
            self.manager.send(4, "reset()")
        self.assertIn("not in the internal mapping", logs.output[0])
        self.assertEqual(fake.written, [])
        self.assertEqual(self.sent, [])

    def test_send_to_disconnected_port_only_warns(self) -> None:
        fake = self.open(3)
        fake.is_open = False
        with self.assertLogs("serialserver.manager", level="WARNING") as logs:
            self.manager.send(3, "reset()")
        self.assertIn("not connected", logs.output[0])
        self.assertEqual(fake.written, [])
        self.assertEqual(self.sessions[0].pending, ())

    def test_end_to_end_command_and_result(self) -> None:
        fake = self.open(3)
        self.manager.send(3, "machine.unique_id()")
        self.assertEqual(len(self.sent), 1)
        self.assertEqual(self.sent[0].command_text, "machine.unique_id()")

        fake.feed("machine.unique_id()\r\nb'\\x24\\x19'\r\n>>>")
        self.manager.poll_all()

        self.assertEqual(len(self.results), 1)
        result = self.results[0]
        self.assertEqual(result.port, 3)
        self.assertEqual(result.command_text, "machine.unique_id()")
        self.assertEqual(result.result_text, "b'\\x24\\x19'")
        self.assertTrue(result.has_executed)

    def test_end_to_end_desync(self) -> None:
        fake = self.open(3)
        self.manager.send_packet(SerialPacket(port=3, command_text="reset()"))
        fake.feed("ERR: busy\r\n>>>")
        self.manager.poll_all()
        self.assertEqual(self.results, [])
        self.assertEqual(len(self.errors), 1)
        self.assertEqual(self.errors[0].error, ErrorKind.DESYNC)
        self.assertEqual(self.errors[0].result_text, DESYNC_MESSAGE)
        self.assertIn(3, self.manager)
        self.assertTrue(self.manager.is_connected(3))

    def test_poll_all_continues_past_disconnected_session(self) -> None:
        first = self.open(3)
        second = self.open(4)
        self.manager.send(4, "machine.Pin(25).value()")
        first.is_open = False
        second.feed("machine.Pin(25).value()\r\n1\r\n>>>")

        self.manager.poll_all()

        self.assertEqual([r.port for r in self.results], [4])
        self.assertEqual(self.results[0].result_text, "1")

    def test_subscriber_may_call_back_into_manager(self) -> None:
        fake = self.open(3)

        def follow_up(packet: SerialPacket) -> None:
            if packet.command_text == "a = 1":
                self.manager.send(3, "a")

        self.manager.on_result.connect(follow_up)
        self.manager.send(3, "a = 1")
        fake.feed("a = 1\r\n>>>")
        self.manager.poll_all()

        self.assertEqual(self.results[0].result_text, "")
        self.assertEqual(fake.written[-1], b"a\r\n")
        self.assertEqual(self.sessions[0].pending, ("a",))

    def test_teardown_closes_and_clears(self) -> None:
        first = self.open(3)
        second = self.open(4)
        self.manager.teardown()
        self.assertEqual(len(self.manager), 0)
        self.assertFalse(first.is_open)
        self.assertFalse(second.is_open)
        self.manager.teardown()
        self.assertEqual(first.close_calls, 1)

    def test_reset_clears_without_closing(self) -> None:
        fake = self.open(3)
        self.manager.reset()
        self.assertEqual(len(self.manager), 0)
        self.assertTrue(fake.is_open)
        self.assertIsNotNone(self.manager.open(3, 9600))

    def test_concurrent_opens_register_every_port(self) -> None:
        self.devices = [f"COM{port}" for port in range(10, 20)]
        barrier = threading.Barrier(10)

        def worker(port: int) -> None:
            barrier.wait()
            self.manager.open(port, 9600)

        threads = [
            threading.Thread(target=worker, args=(port,)) for port in range(10, 20)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=5)

        self.assertEqual(sorted(self.manager.ports), list(range(10, 20)))
        self.assertEqual(self.errors, [])


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
