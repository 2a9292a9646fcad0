import asyncio
import unittest
from typing import Optional
from unittest import mock

from adbconnect.credentials import MemoryCredentialStore
from adbconnect.exceptions import AuthenticationError, DeviceNotFoundError, TransportError
from adbconnect.manager import UNSUPPORTED_MESSAGE, ConnectionManager
from adbconnect.services.session import SessionState
from adbconnect.transport.base import Backend, BackendKind

ENDPOINT = "ws://localhost:15555"


class FakeBackend(Backend):
    def __init__(self, serial: str, name: Optional[str] = None, *, fail: bool = False) -> None:
        super().__init__(serial, name)
        self.fail = fail
        self.connect_calls = 0
        self.dispose_calls = 0
        self._open = False

    @property
    def is_connected(self) -> bool:
        return self._open

    async def connect(self) -> None:
        self.connect_calls += 1
        if self.fail:
            raise TransportError("nothing listening")
        self._open = True

    async def dispose(self) -> None:
        self.dispose_calls += 1
        self._open = False

    async def send(self, line: str) -> None:
        return None

    async def receive(self, timeout: float) -> Optional[str]:
        return None


class FakePolledBackend(FakeBackend):
    kind = BackendKind.POLLED


class FakeUsb:
    def __init__(self, backends=(), *, supported: bool = True) -> None:
        self.backends = list(backends)
        self.supported = supported
        self.watch_callback = None
        self.watcher = mock.Mock(name="watcher")
        self.granted = {}

    def is_supported(self) -> bool:
        return self.supported

    async def list(self):
        return list(self.backends)

    def watch(self, on_event):
        self.watch_callback = on_event
        return self.watcher

    async def request_device(self, port: str):
        backend = self.granted.get(port)
        if backend is None:
            raise DeviceNotFoundError(f"No serial device found at '{port}'")
        self.backends.append(backend)
        return backend


class FakeSession:
    def __init__(self, backend, log, *, error=None, gate=None) -> None:
        self.backend = backend
        self.error = error
        self.gate = gate
        self.dispose_calls = 0

    async def connect(self, credential_store) -> None:
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error

    async def dispose(self) -> None:
        self.dispose_calls += 1


class Probe:
    """Probe factory whose outcome the test controls."""

    def __init__(self, *, reachable: bool = False) -> None:
        self.reachable = reachable
        self.created: list[FakePolledBackend] = []

    def __call__(self, endpoint: str) -> FakePolledBackend:
        backend = FakePolledBackend(endpoint, "WebSocket", fail=not self.reachable)
        self.created.append(backend)
        return backend


class ConnectionManagerTests(unittest.IsolatedAsyncioTestCase):
    def build(self, usb, *, probe=None, session_kwargs=None, **kwargs) -> ConnectionManager:
        self.reporter = mock.Mock(name="reporter")
        self.probe = probe or Probe()
        self.sessions = []
        session_kwargs = session_kwargs or {}
        poll_interval = kwargs.pop("poll_interval", 3600)

        def session_factory(backend, log):
            session = FakeSession(backend, log, **session_kwargs)
            self.sessions.append(session)
            return session

        manager = ConnectionManager(
            usb,
            self.reporter,
            MemoryCredentialStore(),
            endpoint=ENDPOINT,
            poll_interval=poll_interval,
            probe_factory=self.probe,
            session_factory=session_factory,
            **kwargs,
        )
        self.addAsyncCleanup(manager.stop)
        return manager

    async def test_scenario_a_select_and_connect_single_device(self) -> None:
        x = FakeBackend("X")
        manager = self.build(FakeUsb([x]))
        await manager.start()

        self.assertIs(manager.selected, x)
        self.assertTrue(await manager.connect())

        self.assertIs(manager.session, self.sessions[0])
        self.assertIs(self.sessions[0].backend, x)
        self.assertFalse(manager.connecting)
        self.assertEqual(manager.candidates, [x])

    async def test_scenario_b_attach_keeps_existing_selection(self) -> None:
        usb = FakeUsb([FakeBackend("X")])
        manager = self.build(usb)
        await manager.start()

        new_x, y = FakeBackend("X"), FakeBackend("Y")
        usb.backends = [new_x, y]
        await usb.watch_callback("Y")

        self.assertIs(manager.selected, new_x)
        self.assertEqual(manager.candidates, [new_x, y])

    async def test_attach_selects_new_device_when_nothing_selected(self) -> None:
        usb = FakeUsb([])
        manager = self.build(usb)
        await manager.start()
        self.assertIsNone(manager.selected)

        z, y = FakeBackend("Z"), FakeBackend("Y")
        usb.backends = [z, y]
        await manager.handle_watch_event("Y")

        self.assertIs(manager.selected, y)

    async def test_scenario_c_detach_clears_selection(self) -> None:
        usb = FakeUsb([FakeBackend("X")])
        manager = self.build(usb)
        await manager.start()
        self.assertEqual(manager.selected.serial, "X")

        usb.backends = []
        await manager.handle_watch_event(None)
        await manager.tick()

        self.assertIsNone(manager.selected)
        self.assertEqual(manager.candidates, [])

    async def test_scenario_c_detach_does_not_cancel_pending_connect(self) -> None:
        gate = asyncio.Event()
        usb = FakeUsb([FakeBackend("X")])
        manager = self.build(usb, session_kwargs={"gate": gate})
        await manager.start()

        pending = asyncio.create_task(manager.connect())
        await asyncio.sleep(0)
        self.assertTrue(manager.connecting)

        usb.backends = []
        await manager.handle_watch_event(None)
        self.assertIsNone(manager.selected)

        gate.set()
        self.assertTrue(await pending)
        self.assertIsNotNone(manager.session)
        self.assertEqual(self.sessions[0].backend.serial, "X")

    async def test_scenario_d_probe_skipped_while_session_active(self) -> None:
        probe = Probe(reachable=True)
        manager = self.build(FakeUsb([]), probe=probe)
        await manager.start()

        self.assertTrue(await manager.tick())
        w = manager.candidates[0]
        self.assertEqual(w.serial, ENDPOINT)
        self.assertIs(manager.selected, w)
        self.assertEqual(w.dispose_calls, 1)

        await manager.connect()
        self.assertIs(manager.state, SessionState.CONNECTED)

        probe.reachable = False
        self.assertFalse(await manager.tick())
        self.assertEqual(len(probe.created), 1)
        self.assertEqual(manager.aggregator.polled, [w])

        await manager.disconnect()
        self.assertTrue(await manager.tick())
        self.assertEqual(manager.aggregator.polled, [])

    async def test_scenario_e_credential_error_is_reported(self) -> None:
        manager = self.build(
            FakeUsb([FakeBackend("X")]),
            session_kwargs={"error": AuthenticationError("Device did not authorize this key")},
        )
        await manager.start()

        self.assertFalse(await manager.connect())

        self.assertIsNone(manager.session)
        self.assertFalse(manager.connecting)
        self.assertEqual(self.sessions[0].dispose_calls, 1)
        self.reporter.show.assert_called_once_with("Device did not authorize this key")

    async def test_probe_not_attempted_while_connecting(self) -> None:
        gate = asyncio.Event()
        probe = Probe(reachable=True)
        manager = self.build(
            FakeUsb([FakeBackend("X")]), probe=probe, session_kwargs={"gate": gate}
        )
        await manager.start()

        pending = asyncio.create_task(manager.connect())
        await asyncio.sleep(0)

        self.assertFalse(await manager.tick())
        self.assertEqual(probe.created, [])

        gate.set()
        await pending
        self.assertFalse(await manager.tick())
        self.assertEqual(probe.created, [])

    async def test_polled_backend_follows_enumerated(self) -> None:
        x = FakeBackend("X")
        manager = self.build(FakeUsb([x]), probe=Probe(reachable=True))
        await manager.start()

        await manager.tick()

        self.assertEqual([b.serial for b in manager.candidates], ["X", ENDPOINT])
        self.assertIs(manager.selected, x)

    async def test_manual_select_by_serial(self) -> None:
        x, y = FakeBackend("X"), FakeBackend("Y")
        manager = self.build(FakeUsb([x, y]))
        await manager.start()

        self.assertIs(manager.select("Y"), y)
        self.assertIs(manager.select("nope"), y)

    async def test_preferred_serial_restored_on_start(self) -> None:
        x, y = FakeBackend("X"), FakeBackend("Y")
        manager = self.build(FakeUsb([x, y]), preferred_serial="Y")

        await manager.start()

        self.assertIs(manager.selected, y)

    async def test_unsupported_environment_reports_once(self) -> None:
        usb = FakeUsb([FakeBackend("X")], supported=False)
        manager = self.build(usb)

        await manager.start()

        self.assertFalse(manager.supported)
        self.reporter.show.assert_called_once_with(UNSUPPORTED_MESSAGE)
        self.assertIsNone(usb.watch_callback)
        self.assertEqual(manager.candidates, [])

    async def test_request_device_selects_granted_backend(self) -> None:
        usb = FakeUsb([FakeBackend("X")])
        usb.granted["/dev/ttyACM1"] = FakeBackend("N", "Pixel")
        manager = self.build(usb)
        await manager.start()

        result = await manager.request_device("/dev/ttyACM1")

        self.assertEqual(result.serial, "N")
        self.assertIs(manager.selected, result)

    async def test_request_device_failure_is_reported(self) -> None:
        manager = self.build(FakeUsb([FakeBackend("X")]))
        await manager.start()

        self.assertIsNone(await manager.request_device("/dev/missing"))

        self.reporter.show.assert_called_once_with("No serial device found at '/dev/missing'")
        self.assertEqual(manager.selected.serial, "X")

    async def test_listeners_notified_and_removable(self) -> None:
        manager = self.build(FakeUsb([FakeBackend("X")]))
        seen = []
        remove = manager.add_listener(lambda m: seen.append(m.selected))

        await manager.start()
        self.assertTrue(seen)

        remove()
        count = len(seen)
        await manager.refresh()
        self.assertEqual(len(seen), count)

    async def test_stop_cancels_watcher_and_poll_task(self) -> None:
        usb = FakeUsb([FakeBackend("X")])
        manager = self.build(usb)
        await manager.start()

        await manager.stop()

        usb.watcher.cancel.assert_called_once_with()

    async def test_stop_disconnects_active_session(self) -> None:
        manager = self.build(FakeUsb([FakeBackend("X")]))
        await manager.start()
        await manager.connect()

        await manager.stop()

        self.assertEqual(self.sessions[0].dispose_calls, 1)
        self.assertIsNone(manager.session)
        self.assertIs(manager.state, SessionState.IDLE)

    async def test_poll_loop_probes_while_idle_and_skips_while_connected(self) -> None:
        probe = Probe(reachable=True)
        manager = self.build(FakeUsb([FakeBackend("X")]), probe=probe, poll_interval=0.01)
        await manager.start()

        for _ in range(100):
            if probe.created:
                break
            await asyncio.sleep(0.01)
        self.assertTrue(probe.created)
        self.assertEqual([b.serial for b in manager.candidates], ["X", ENDPOINT])

        await manager.connect()
        await asyncio.sleep(0.02)
        probed = len(probe.created)
        await asyncio.sleep(0.1)
        self.assertEqual(len(probe.created), probed)

    async def test_poll_loop_survives_failing_tick(self) -> None:
        manager = self.build(FakeUsb([FakeBackend("X")]), poll_interval=0.01)
        ticks = 0

        async def failing_tick():
            nonlocal ticks
            ticks += 1
            raise RuntimeError("probe exploded")

        manager.tick = failing_tick
        await manager.start()
        for _ in range(100):
            if ticks >= 2:
                break
            await asyncio.sleep(0.01)

        self.assertGreaterEqual(ticks, 2)
        self.assertFalse(manager._poll_task.done())


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
