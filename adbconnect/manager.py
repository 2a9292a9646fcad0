"""Connection manager tying discovery, selection and the session together."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional

from .credentials import CredentialStore
from .reporting import ErrorReporter, describe_error
from .services.discovery import BackendAggregator, ProbeFactory
from .services.selection import SelectionTracker
from .services.session import Session, SessionFactory, SessionManager, SessionState
from .session import DeviceSession, LogSink
from .transport.base import Backend
from .transport.usb import UsbDiscovery, UsbWatcher
from .transport.websocket import DEFAULT_ENDPOINT, WebSocketBackend

Listener = Callable[["ConnectionManager"], None]

DEFAULT_POLL_INTERVAL = 5.0
UNSUPPORTED_MESSAGE = (
    "Serial port enumeration is not available on this system, which is required "
    "to find USB devices.\n\n"
    "Install pyserial with port listing support for this platform, or connect "
    "through the WebSocket bridge instead."
)

_LOGGER = logging.getLogger(__name__)


class ConnectionManager:
    """Discover backends, keep a stable selection and own the active session.

    Every mutating operation is a coroutine meant to run on one event loop.
    Listeners are called after each state change with the manager itself.
    """

    def __init__(
        self,
        usb: UsbDiscovery,
        reporter: ErrorReporter,
        credential_store: CredentialStore,
        *,
        endpoint: str = DEFAULT_ENDPOINT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        probe_factory: ProbeFactory = WebSocketBackend,
        session_factory: SessionFactory = DeviceSession,
        log: Optional[LogSink] = None,
        preferred_serial: Optional[str] = None,
    ) -> None:
        self.usb = usb
        self.reporter = reporter
        self.credential_store = credential_store
        self.poll_interval = poll_interval
        self.preferred_serial = preferred_serial
        self.aggregator = BackendAggregator(
            usb, endpoint=endpoint, probe_factory=probe_factory
        )
        self.selection = SelectionTracker()
        self.sessions = SessionManager(
            reporter,
            session_factory=session_factory,
            log=log,
            on_change=self._notify,
        )
        self.supported = True
        self._watcher: Optional[UsbWatcher] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._listeners: List[Listener] = []

    # -- Read-only views ---------------------------------------------------
    @property
    def candidates(self) -> List[Backend]:
        return self.selection.candidates

    @property
    def selected(self) -> Optional[Backend]:
        return self.selection.selected

    @property
    def session(self) -> Optional[Session]:
        return self.sessions.session

    @property
    def connecting(self) -> bool:
        return self.sessions.connecting

    @property
    def state(self) -> SessionState:
        return self.sessions.state

    # -- Lifecycle ---------------------------------------------------------
    async def start(self) -> None:
        self.supported = self.usb.is_supported()
        if not self.supported:
            self.reporter.show(UNSUPPORTED_MESSAGE)
        else:
            await self.refresh()
            if self.preferred_serial:
                self.select(self.preferred_serial)
            self._watcher = self.usb.watch(self.handle_watch_event)
        if self._poll_task is None:
            self._poll_task = asyncio.get_running_loop().create_task(
                self._poll_loop(), name="BackendProbe"
            )
        self._notify()

    async def stop(self) -> None:
        if self._watcher is not None:
            self._watcher.cancel()
            self._watcher = None
        task = self._poll_task
        self._poll_task = None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if self.sessions.session is not None:
            await self.sessions.disconnect()

    # -- Discovery ---------------------------------------------------------
    async def refresh(self) -> List[Backend]:
        await self.aggregator.refresh_enumerated()
        self._publish()
        return self.candidates

    async def handle_watch_event(self, serial: Optional[str]) -> None:
        """Re-list after an attach/detach and select a newly attached device.

        The attached serial only takes the selection when nothing was
        selected before, so a device plugged in while another one is chosen
        does not steal the selection.
        """
        had_selection = self.selection.selected is not None
        await self.refresh()
        if serial and not had_selection:
            self.select(serial)

    async def tick(self) -> bool:
        """Run one polling probe unless a connection is pending or active."""
        if self.sessions.state is not SessionState.IDLE:
            _LOGGER.debug("Probe skipped while %s", self.sessions.state.value)
            return False
        await self.aggregator.probe()
        self._publish()
        return True

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            try:
                await self.tick()
            except Exception:
                _LOGGER.debug("Polling tick failed", exc_info=True)

    async def request_device(self, port: str) -> Optional[Backend]:
        """Grant access to *port*, re-list and select the device found there."""
        if not self.supported:
            self.reporter.show(UNSUPPORTED_MESSAGE)
            return None
        try:
            backend = await self.usb.request_device(port)
        except Exception as exc:
            _LOGGER.warning("Adding device %s failed: %s", port, exc)
            self.reporter.show(describe_error(exc))
            return None
        await self.refresh()
        return self.select(backend.serial)

    # -- Selection ---------------------------------------------------------
    def select(self, serial: Optional[str]) -> Optional[Backend]:
        selected = self.selection.select_manually(serial)
        self._notify()
        return selected

    # -- Session -----------------------------------------------------------
    async def connect(self) -> bool:
        return await self.sessions.connect(self.selection.selected, self.credential_store)

    async def disconnect(self) -> bool:
        return await self.sessions.disconnect()

    # -- Listeners ---------------------------------------------------------
    def add_listener(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return remove

    def _publish(self) -> None:
        self.selection.update(self.aggregator.candidates)
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                _LOGGER.debug("Connection listener failed", exc_info=True)
