"""Backend aggregation across the enumerated and polled discovery sources."""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Protocol, Sequence

from ..transport.base import Backend
from ..transport.websocket import DEFAULT_ENDPOINT, WebSocketBackend

ProbeFactory = Callable[[str], Backend]

_LOGGER = logging.getLogger(__name__)


class EnumeratedSource(Protocol):
    async def list(self) -> Sequence[Backend]:
        ...


def aggregate(enumerated: Sequence[Backend], polled: Sequence[Backend]) -> List[Backend]:
    """Return the candidate set: enumerated backends first, then polled ones."""
    return [*enumerated, *polled]


async def poll_once(
    endpoint: str,
    *,
    factory: ProbeFactory = WebSocketBackend,
) -> Optional[Backend]:
    """Connect to *endpoint* and release it again.

    Returns the backend when something answered and ``None`` otherwise. The
    probe connection is always released before returning.
    """
    backend = factory(endpoint)
    try:
        await backend.connect()
        return backend
    except Exception as exc:
        _LOGGER.debug("Probe of %s failed: %s", endpoint, exc)
        return None
    finally:
        try:
            await backend.dispose()
        except Exception:
            _LOGGER.debug("Releasing probe of %s failed", endpoint, exc_info=True)


class BackendAggregator:
    """Hold the latest enumerated and polled lists and merge them on demand."""

    def __init__(
        self,
        source: EnumeratedSource,
        *,
        endpoint: str = DEFAULT_ENDPOINT,
        probe_factory: ProbeFactory = WebSocketBackend,
    ) -> None:
        self.source = source
        self.endpoint = endpoint
        self.probe_factory = probe_factory
        self._enumerated: List[Backend] = []
        self._polled: List[Backend] = []

    @property
    def enumerated(self) -> List[Backend]:
        return list(self._enumerated)

    @property
    def polled(self) -> List[Backend]:
        return list(self._polled)

    @property
    def candidates(self) -> List[Backend]:
        return aggregate(self._enumerated, self._polled)

    async def refresh_enumerated(self) -> List[Backend]:
        """Re-list the enumerated source; a failing source counts as empty."""
        try:
            backends = list(await self.source.list())
        except Exception as exc:
            _LOGGER.warning("Device enumeration failed: %s", exc)
            backends = []
        self._enumerated = backends
        return list(backends)

    async def probe(self) -> Optional[Backend]:
        """Probe the polled endpoint and replace the polled list with the result."""
        backend = await poll_once(self.endpoint, factory=self.probe_factory)
        self._polled = [backend] if backend is not None else []
        return backend
