"""Backend contract shared by every transport."""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional


class BackendKind(str, Enum):
    """How a backend was discovered."""

    ENUMERATED = "enumerated"
    POLLED = "polled"


class Backend(ABC):
    """A connectable device handle identified by a stable serial.

    Identity fields are read-only. A replugged device yields a new instance
    carrying the same serial.
    """

    kind: BackendKind = BackendKind.ENUMERATED

    def __init__(self, serial: str, name: Optional[str] = None) -> None:
        if not serial:
            raise ValueError("Backend serial must not be empty")
        self._serial = serial
        self._name = name or None

    @property
    def serial(self) -> str:
        return self._serial

    @property
    def name(self) -> Optional[str]:
        return self._name

    @property
    def label(self) -> str:
        """Text shown to the user for this backend."""
        return f"{self._serial} ({self._name})" if self._name else self._serial

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Return whether the underlying channel is open."""

    @abstractmethod
    async def connect(self) -> None:
        """Open the underlying channel."""

    @abstractmethod
    async def dispose(self) -> None:
        """Release the underlying channel. Safe to call more than once."""

    @abstractmethod
    async def send(self, line: str) -> None:
        """Write one newline-terminated line."""

    @abstractmethod
    async def receive(self, timeout: float) -> Optional[str]:
        """Return the next non-empty line, or ``None`` once *timeout* expires."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(serial={self._serial!r}, name={self._name!r})"
