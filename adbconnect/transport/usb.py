"""USB serial transport: enumerated discovery, attach/detach watcher, backend."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Iterable, List, Optional

import serial
import serial.tools.list_ports

from ..exceptions import DeviceNotFoundError, TransportError
from .base import Backend, BackendKind

WatchCallback = Callable[[Optional[str]], Awaitable[None]]

_DEFAULT_BAUDRATE = 115200
_LOGGER = logging.getLogger(__name__)


def _toggle_control_lines(ser: serial.Serial) -> None:
    """Best-effort DTR/RTS toggling so the device firmware enters data mode."""
    try:
        ser.dtr = False
        time.sleep(0.05)
        ser.dtr = True
        ser.rts = False
    except Exception:
        _LOGGER.debug("Failed to toggle control lines", exc_info=True)


def _serial_for(info) -> str:
    return getattr(info, "serial_number", None) or info.device


def _name_for(info) -> Optional[str]:
    product = getattr(info, "product", None)
    if product:
        return product
    description = getattr(info, "description", None)
    if description and description != "n/a":
        return description
    return None


class SerialBackend(Backend):
    """Backend for a device reachable through a local serial port."""

    kind = BackendKind.ENUMERATED

    def __init__(
        self,
        port: str,
        serial_id: Optional[str] = None,
        name: Optional[str] = None,
        *,
        baudrate: int = _DEFAULT_BAUDRATE,
        timeout: float = 0.5,
        write_timeout: float = 0.5,
    ) -> None:
        super().__init__(serial_id or port, name)
        self.port = port
        self.baudrate = baudrate
        self.timeout = timeout
        self.write_timeout = write_timeout
        self._serial: Optional[serial.Serial] = None

    @classmethod
    def from_port_info(cls, info, *, baudrate: int = _DEFAULT_BAUDRATE) -> "SerialBackend":
        return cls(info.device, _serial_for(info), _name_for(info), baudrate=baudrate)

    @property
    def is_connected(self) -> bool:
        return bool(self._serial and self._serial.is_open)

    async def connect(self) -> None:
        if self.is_connected:
            return
        try:
            self._serial = await asyncio.to_thread(self._open)
        except (serial.SerialException, OSError) as exc:
            raise TransportError(f"Could not open {self.port}: {exc}") from exc

    def _open(self) -> serial.Serial:
        ser = serial.Serial(
            self.port,
            self.baudrate,
            timeout=self.timeout,
            write_timeout=self.write_timeout,
        )
        try:
            _toggle_control_lines(ser)
            ser.reset_input_buffer()
        except Exception:
            try:
                ser.close()
            except Exception:
                pass
            raise
        return ser

    async def dispose(self) -> None:
        ser = self._serial
        self._serial = None
        if ser is None:
            return
        await asyncio.to_thread(ser.close)

    async def send(self, line: str) -> None:
        ser = self._serial
        if ser is None or not ser.is_open:
            raise TransportError(f"Serial port {self.port} is not open")
        payload = line if line.endswith("\n") else f"{line}\n"

        def write() -> None:
            ser.write(payload.encode("utf-8"))
            ser.flush()

        try:
            await asyncio.to_thread(write)
        except (serial.SerialException, OSError) as exc:
            raise TransportError(f"Write to {self.port} failed: {exc}") from exc

    async def receive(self, timeout: float) -> Optional[str]:
        ser = self._serial
        if ser is None or not ser.is_open:
            raise TransportError(f"Serial port {self.port} is not open")

        def read() -> Optional[str]:
            deadline = time.time() + timeout
            while time.time() < deadline:
                line = ser.readline().decode("utf-8", errors="ignore").strip()
                if line:
                    return line
            return None

        try:
            return await asyncio.to_thread(read)
        except (serial.SerialException, OSError) as exc:
            raise TransportError(f"Read from {self.port} failed: {exc}") from exc


class UsbWatcher:
    """Subscription that reports attach/detach by diffing port snapshots.

    pyserial offers no hotplug notification, so presence is sampled every
    *interval* seconds. Each attached serial is dispatched on its own; any
    number of detaches in one sample produce a single ``None`` event. The
    callback is awaited before the next event is dispatched.
    """

    def __init__(
        self,
        discovery: "UsbDiscovery",
        on_event: WatchCallback,
        *,
        interval: float = 1.0,
    ) -> None:
        self._discovery = discovery
        self._on_event = on_event
        self.interval = interval
        self._known: Optional[List[str]] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def is_active(self) -> bool:
        return bool(self._task and not self._task.done())

    def start(self) -> None:
        if self.is_active:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name="UsbWatcher"
        )

    def cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()
        self._task = None

    async def _run(self) -> None:
        while True:
            await self.poll()
            await asyncio.sleep(self.interval)

    async def poll(self) -> None:
        """Take one snapshot and dispatch whatever changed since the last one."""
        try:
            current = await self._discovery.serials()
        except Exception as exc:
            _LOGGER.debug("USB watcher snapshot failed: %s", exc)
            return
        previous = self._known
        self._known = current
        if previous is None:
            return
        attached = [serial_id for serial_id in current if serial_id not in previous]
        detached = [serial_id for serial_id in previous if serial_id not in current]
        for serial_id in attached:
            _LOGGER.info("USB device attached: %s", serial_id)
            await self._dispatch(serial_id)
        if detached:
            _LOGGER.info("USB device detached: %s", ", ".join(detached))
            await self._dispatch(None)

    async def _dispatch(self, serial_id: Optional[str]) -> None:
        try:
            await self._on_event(serial_id)
        except Exception:
            _LOGGER.debug("USB watch callback failed", exc_info=True)


class UsbDiscovery:
    """List USB serial backends, optionally filtered by vendor id.

    Ports hidden by the vendor filter can be granted explicitly through
    :meth:`request_device`; granted ports are listed from then on.
    """

    def __init__(
        self,
        *,
        vendor_ids: Iterable[int] = (),
        baudrate: int = _DEFAULT_BAUDRATE,
        watch_interval: float = 1.0,
    ) -> None:
        self.vendor_ids = frozenset(vendor_ids)
        self.baudrate = baudrate
        self.watch_interval = watch_interval
        self._granted: set[str] = set()

    def is_supported(self) -> bool:
        """Return whether port enumeration works on this host."""
        try:
            serial.tools.list_ports.comports()
        except Exception as exc:
            _LOGGER.warning("Serial port enumeration unavailable: %s", exc)
            return False
        return True

    def _allowed(self, info) -> bool:
        if info.device in self._granted or not self.vendor_ids:
            return True
        return getattr(info, "vid", None) in self.vendor_ids

    def _snapshot(self) -> list:
        return [
            info
            for info in serial.tools.list_ports.comports()
            if getattr(info, "device", None) and self._allowed(info)
        ]

    async def list(self) -> List[SerialBackend]:
        ports = await asyncio.to_thread(self._snapshot)
        return [SerialBackend.from_port_info(info, baudrate=self.baudrate) for info in ports]

    async def serials(self) -> List[str]:
        ports = await asyncio.to_thread(self._snapshot)
        return [_serial_for(info) for info in ports]

    async def request_device(self, port: str) -> SerialBackend:
        """Grant *port* so it is listed regardless of the vendor filter."""
        wanted = (port or "").strip()
        ports = await asyncio.to_thread(serial.tools.list_ports.comports)
        for info in ports:
            if getattr(info, "device", None) == wanted:
                self._granted.add(wanted)
                _LOGGER.info("Granted access to %s", wanted)
                return SerialBackend.from_port_info(info, baudrate=self.baudrate)
        raise DeviceNotFoundError(f"No serial device found at '{wanted}'")

    def watch(self, on_event: WatchCallback) -> UsbWatcher:
        """Start a watcher; must be called from a running event loop."""
        watcher = UsbWatcher(self, on_event, interval=self.watch_interval)
        watcher.start()
        return watcher
