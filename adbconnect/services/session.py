"""Connect/disconnect state machine for the single active device session."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Optional, Protocol

from ..credentials import CredentialStore
from ..reporting import ErrorReporter, describe_error
from ..session import DeviceSession, LogSink
from ..transport.base import Backend

_LOGGER = logging.getLogger(__name__)


class Session(Protocol):
    async def connect(self, credential_store: CredentialStore) -> None:
        ...

    async def dispose(self) -> None:
        ...


SessionFactory = Callable[[Backend, LogSink], Session]


class SessionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class SessionManager:
    """Own the active session and the connecting flag.

    Only one attempt runs at a time: ``connect`` refuses to start while an
    attempt is pending or a session is already active. Failures are reported
    through the error reporter and never propagate.
    """

    def __init__(
        self,
        reporter: ErrorReporter,
        *,
        session_factory: SessionFactory = DeviceSession,
        log: Optional[LogSink] = None,
        on_change: Optional[Callable[[], None]] = None,
    ) -> None:
        self.reporter = reporter
        self.session_factory = session_factory
        self.log: LogSink = log or _LOGGER.debug
        self.on_change = on_change
        self._session: Optional[Session] = None
        self._connecting = False

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def connecting(self) -> bool:
        return self._connecting

    @property
    def state(self) -> SessionState:
        if self._connecting:
            return SessionState.CONNECTING
        if self._session is not None:
            return SessionState.CONNECTED
        return SessionState.IDLE

    async def connect(self, backend: Optional[Backend], credential_store: CredentialStore) -> bool:
        if backend is None:
            _LOGGER.debug("Connect requested without a selected backend")
            return False
        if self.state is not SessionState.IDLE:
            _LOGGER.debug("Connect to %s ignored while %s", backend.serial, self.state.value)
            return False

        self._connecting = True
        self._changed()
        try:
            session = self.session_factory(backend, self.log)
            try:
                await session.connect(credential_store)
            except BaseException:
                # Cancellation mid-handshake must still close the transport.
                await self._release(session)
                raise
            self._session = session
            _LOGGER.info("Connected to %s", backend.label)
            return True
        except Exception as exc:
            _LOGGER.warning("Connecting to %s failed: %s", backend.label, exc)
            self.reporter.show(describe_error(exc))
            return False
        finally:
            self._connecting = False
            self._changed()

    async def disconnect(self) -> bool:
        session = self._session
        if session is None:
            return False
        try:
            await session.dispose()
            _LOGGER.info("Disconnected")
        except Exception as exc:
            _LOGGER.warning("Disconnect failed: %s", exc)
            self.reporter.show(describe_error(exc))
        finally:
            self._session = None
            self._changed()
        return True

    def _changed(self) -> None:
        if self.on_change is None:
            return
        try:
            self.on_change()
        except Exception:
            _LOGGER.debug("Session state listener failed", exc_info=True)

    @staticmethod
    async def _release(session: Session) -> None:
        try:
            await session.dispose()
        except Exception:
            _LOGGER.debug("Releasing a failed session raised", exc_info=True)
