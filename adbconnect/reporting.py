"""Error reporter surfaces for user-visible failure messages."""

from __future__ import annotations

import logging
from typing import Iterable, Protocol

logger = logging.getLogger(__name__)


class ErrorReporter(Protocol):
    def show(self, message: str) -> None:
        ...


class LoggingReporter:
    """Report failures to the log only."""

    def show(self, message: str) -> None:
        logger.error("%s", message)


class CompositeReporter:
    """Fan a message out to several reporters; one failing does not stop the rest."""

    def __init__(self, reporters: Iterable[ErrorReporter]) -> None:
        self.reporters = list(reporters)

    def show(self, message: str) -> None:
        for reporter in self.reporters:
            try:
                reporter.show(message)
            except Exception:
                logger.debug("Error reporter %r failed", reporter, exc_info=True)


def describe_error(exc: BaseException) -> str:
    """Return the message shown to the user for *exc*."""
    return str(exc) or type(exc).__name__
