"""Transport layer abstractions for adbconnect."""

from .base import Backend, BackendKind
from .usb import SerialBackend, UsbDiscovery, UsbWatcher
from .websocket import DEFAULT_ENDPOINT, WebSocketBackend

__all__ = [
    "Backend",
    "BackendKind",
    "DEFAULT_ENDPOINT",
    "SerialBackend",
    "UsbDiscovery",
    "UsbWatcher",
    "WebSocketBackend",
]
