"""Exception hierarchy shared by the adbconnect transports and services."""

from __future__ import annotations


class AdbConnectError(Exception):
    """Base exception for all adbconnect errors."""


class TransportError(AdbConnectError):
    """A backend could not be opened, written to, or read from."""


class DeviceNotFoundError(TransportError):
    """No device answered at the requested location."""


class HandshakeError(AdbConnectError):
    """The device replied with something the handshake does not understand."""


class AuthenticationError(AdbConnectError):
    """The device refused every credential offered to it."""


class UnsupportedEnvironmentError(AdbConnectError):
    """The host lacks the API required by a transport."""
