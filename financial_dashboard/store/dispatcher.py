"""
Background persistence dispatcher.

Store mutations are synchronous; saving is not. The dispatcher owns an
asyncio event loop running on a daemon thread, and dispatch() hands it a
coroutine without waiting for the result. Coroutines start in the order
they were dispatched. Nothing is queued, retried or cancelled here.
"""

import asyncio
import concurrent.futures
import threading
from typing import Any, Coroutine, Optional

import structlog


logger = structlog.get_logger(__name__)


class PersistenceDispatcher:
    """Runs fire-and-forget coroutines on a private event loop thread."""

    def __init__(self, name: str = "persistence-dispatcher"):
        self._loop = asyncio.new_event_loop()
        self._pending: set[concurrent.futures.Future] = set()
        self._lock = threading.Lock()
        self._closed = False
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    @property
    def closed(self) -> bool:
        return self._closed

    def dispatch(self, coro: Coroutine[Any, Any, Any]) -> Optional[concurrent.futures.Future]:
        """
        Schedule `coro` and return immediately.

        Returns None (and drops the coroutine) once the dispatcher is closed.
        """
        if self._closed:
            coro.close()
            logger.warning("dispatch_after_close")
            return None
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._discard)
        return future

    def _discard(self, future: concurrent.futures.Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until everything dispatched so far has finished.

        Returns False if the timeout expired first.
        """
        with self._lock:
            pending = list(self._pending)
        if not pending:
            return True
        _, not_done = concurrent.futures.wait(pending, timeout=timeout)
        return not not_done

    def close(self, timeout: Optional[float] = 5.0) -> None:
        """Let pending work finish (up to `timeout`), then stop the loop."""
        if self._closed:
            return
        if not self.wait(timeout):
            logger.warning("dispatcher_closed_with_pending_work")
        self._closed = True
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout)
        if not self._thread.is_alive():
            self._loop.close()
