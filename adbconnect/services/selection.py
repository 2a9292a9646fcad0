"""Selection tracking that stays stable while the candidate set is rebuilt."""

from __future__ import annotations

from typing import List, Optional, Sequence

from ..transport.base import Backend


def find_backend(candidates: Sequence[Backend], serial: Optional[str]) -> Optional[Backend]:
    if not serial:
        return None
    for backend in candidates:
        if backend.serial == serial:
            return backend
    return None


def reconcile(previous: Optional[Backend], candidates: Sequence[Backend]) -> Optional[Backend]:
    """Return the selection for a freshly rebuilt candidate set.

    The previously selected serial wins if it is still present, and the new
    instance carrying it is returned. Otherwise the first candidate is picked,
    or ``None`` for an empty set.
    """
    if previous is not None:
        current = find_backend(candidates, previous.serial)
        if current is not None:
            return current
    return candidates[0] if candidates else None


class SelectionTracker:
    """Hold the chosen backend and reconcile it on every candidate change."""

    def __init__(self) -> None:
        self._candidates: List[Backend] = []
        self._selected: Optional[Backend] = None

    @property
    def selected(self) -> Optional[Backend]:
        return self._selected

    @property
    def candidates(self) -> List[Backend]:
        return list(self._candidates)

    def update(self, candidates: Sequence[Backend]) -> Optional[Backend]:
        self._candidates = list(candidates)
        self._selected = reconcile(self._selected, self._candidates)
        return self._selected

    def select_manually(self, serial: Optional[str]) -> Optional[Backend]:
        """Select the current candidate carrying *serial*.

        The handle is always looked up in the current set. An unknown serial
        leaves the selection unchanged.
        """
        backend = find_backend(self._candidates, serial)
        if backend is not None:
            self._selected = backend
        return self._selected
