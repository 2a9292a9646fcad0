"""Device session: opens a backend and authenticates with the device."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from .credentials import CredentialStore
from .exceptions import AuthenticationError, HandshakeError
from .transport.base import Backend

LogSink = Callable[[str], None]

HANDSHAKE_COMMAND = "hello|handshake"
READY_REPLY = "READY"
ACK_REPLY = "ACK"
AUTH_PREFIX = "AUTH|"

_LOGGER = logging.getLogger(__name__)


class DeviceSession:
    """Owns an authenticated channel to a single device.

    Handshake: ``hello|handshake`` is answered with ``READY`` when the device
    does not require authentication, or ``AUTH|<challenge>`` otherwise. Each
    stored key is tried with ``auth|sign|<hmac>``; when none is accepted a new
    key is offered with ``auth|key|<token>`` and the session waits for the
    user to authorize it on the device.
    """

    def __init__(
        self,
        backend: Backend,
        log: Optional[LogSink] = None,
        *,
        reply_timeout: float = 2.0,
        auth_timeout: float = 30.0,
    ) -> None:
        self.backend = backend
        self.reply_timeout = reply_timeout
        self.auth_timeout = auth_timeout
        self._log = log or _LOGGER.debug
        self._authenticated = False

    @property
    def is_authenticated(self) -> bool:
        return self._authenticated

    async def connect(self, credential_store: CredentialStore) -> None:
        await self.backend.connect()
        await self._send(HANDSHAKE_COMMAND)
        reply = await self._expect(self.reply_timeout)
        if reply == READY_REPLY:
            self._authenticated = True
            return

        challenge = self._challenge(reply)
        for key in credential_store.iter_keys():
            await self._send(f"auth|sign|{key.sign(challenge)}")
            reply = await self._expect(self.reply_timeout)
            if reply == ACK_REPLY:
                self._authenticated = True
                return
            challenge = self._challenge(reply)

        key = credential_store.generate_key()
        self._log(f"Waiting for authorization of key {key.fingerprint}")
        await self._send(f"auth|key|{key.token}")
        reply = await self.backend.receive(self.auth_timeout)
        if reply is not None:
            self._log(f"RX: {reply}")
        if reply == ACK_REPLY:
            self._authenticated = True
            return
        raise AuthenticationError(
            "The device did not authorize this connection. "
            "Accept the prompt on the device and connect again."
        )

    async def dispose(self) -> None:
        self._authenticated = False
        await self.backend.dispose()

    async def _send(self, line: str) -> None:
        self._log(f"TX: {line}")
        await self.backend.send(line)

    async def _expect(self, timeout: float) -> str:
        reply = await self.backend.receive(timeout)
        if reply is None:
            raise HandshakeError(f"{self.backend.serial} did not answer the handshake")
        self._log(f"RX: {reply}")
        return reply

    @staticmethod
    def _challenge(reply: str) -> str:
        if not reply.startswith(AUTH_PREFIX):
            raise HandshakeError(f"Unexpected handshake reply: {reply!r}")
        challenge = reply[len(AUTH_PREFIX):]
        if not challenge:
            raise HandshakeError("Device sent an empty authentication challenge")
        return challenge
