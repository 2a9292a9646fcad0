"""WebSocket transport for devices bridged onto a network endpoint."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import websockets
import websockets.exceptions

from ..exceptions import TransportError
from .base import Backend, BackendKind

DEFAULT_ENDPOINT = "ws://localhost:15555"
_LOGGER = logging.getLogger(__name__)

_SOCKET_ERRORS = (OSError, asyncio.TimeoutError, websockets.exceptions.WebSocketException)


class WebSocketBackend(Backend):
    """Backend that talks to a device through a WebSocket bridge.

    The endpoint URL doubles as the serial, so successive probes of the same
    endpoint yield backends that compare equal by serial.
    """

    kind = BackendKind.POLLED

    def __init__(
        self,
        endpoint: str = DEFAULT_ENDPOINT,
        *,
        open_timeout: float = 2.0,
    ) -> None:
        super().__init__(endpoint, "WebSocket")
        self.endpoint = endpoint
        self.open_timeout = open_timeout
        self._socket = None

    @property
    def is_connected(self) -> bool:
        return self._socket is not None

    async def connect(self) -> None:
        if self._socket is not None:
            return
        try:
            self._socket = await websockets.connect(
                self.endpoint,
                open_timeout=self.open_timeout,
                ping_interval=20,
                ping_timeout=20,
            )
        except _SOCKET_ERRORS as exc:
            raise TransportError(f"Could not reach {self.endpoint}: {exc}") from exc

    async def dispose(self) -> None:
        socket = self._socket
        self._socket = None
        if socket is None:
            return
        try:
            await socket.close()
        except _SOCKET_ERRORS as exc:
            _LOGGER.debug("Closing %s failed: %s", self.endpoint, exc)

    async def send(self, line: str) -> None:
        if self._socket is None:
            raise TransportError(f"{self.endpoint} is not connected")
        try:
            await self._socket.send(line.rstrip("\n"))
        except _SOCKET_ERRORS as exc:
            raise TransportError(f"Send to {self.endpoint} failed: {exc}") from exc

    async def receive(self, timeout: float) -> Optional[str]:
        if self._socket is None:
            raise TransportError(f"{self.endpoint} is not connected")
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                return None
            try:
                message = await asyncio.wait_for(self._socket.recv(), timeout=remaining)
            except asyncio.TimeoutError:
                return None
            except websockets.exceptions.WebSocketException as exc:
                raise TransportError(f"Read from {self.endpoint} failed: {exc}") from exc
            if isinstance(message, bytes):
                message = message.decode("utf-8", errors="ignore")
            line = (message or "").strip()
            if line:
                return line
