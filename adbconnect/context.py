"""Application context container for shared services."""
from __future__ import annotations

from dataclasses import dataclass

from .credentials import MemoryCredentialStore
from .loop import AsyncLoopThread
from .messaging import TelegramHandler
from .transport.usb import UsbDiscovery


@dataclass
class AppContext:
    telegram: TelegramHandler
    usb: UsbDiscovery
    credentials: MemoryCredentialStore
    loop: AsyncLoopThread
