"""Background asyncio loop used by the Tk front end."""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
from typing import Any, Coroutine, Optional

logger = logging.getLogger(__name__)


class AsyncLoopThread:
    """Owns an asyncio loop running on a daemon thread.

    All connection manager coroutines run here, one loop for the whole
    process, so manager state is only ever touched from this thread.
    """

    def __init__(self, name: str = "AsyncLoopThread") -> None:
        self.name = name
        self._thread: Optional[threading.Thread] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._ready = threading.Event()

    @property
    def loop(self) -> Optional[asyncio.AbstractEventLoop]:
        return self._loop

    @property
    def is_running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def start(self) -> None:
        if self.is_running:
            return
        self._ready.clear()
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()
        self._ready.wait(timeout=2.0)

    def stop(self, timeout: float = 2.0) -> None:
        loop = self._loop
        if loop and loop.is_running():
            loop.call_soon_threadsafe(loop.stop)
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        self._thread = None

    def submit(self, coro: Coroutine[Any, Any, Any]) -> concurrent.futures.Future:
        loop = self._loop
        if loop is None or not loop.is_running():
            coro.close()
            raise RuntimeError("Event loop is not running")
        return asyncio.run_coroutine_threadsafe(coro, loop)

    def _run(self) -> None:
        loop = asyncio.new_event_loop()
        self._loop = loop
        asyncio.set_event_loop(loop)
        loop.call_soon(self._ready.set)
        try:
            loop.run_forever()
        finally:
            try:
                pending = asyncio.all_tasks(loop)
                for task in pending:
                    task.cancel()
                if pending:
                    loop.run_until_complete(
                        asyncio.gather(*pending, return_exceptions=True)
                    )
            except Exception:
                logger.debug("Cancelling pending tasks failed", exc_info=True)
            loop.close()
            self._loop = None
