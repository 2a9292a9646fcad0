"""Discovery, selection and session services behind the connection manager."""

from .discovery import BackendAggregator, aggregate, poll_once
from .selection import SelectionTracker, find_backend, reconcile
from .session import SessionManager, SessionState

__all__ = [
    "BackendAggregator",
    "SelectionTracker",
    "SessionManager",
    "SessionState",
    "aggregate",
    "find_backend",
    "poll_once",
    "reconcile",
]
