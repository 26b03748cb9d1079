"""
workers/async_worker.py – Background QThread that hosts the application's
single asyncio event loop.

Every coroutine that touches the catalogue store, the agent session or the
HTTP clients runs on this loop, so those objects have exactly one owner and
never see preemption.  Results travel back to the GUI thread through Qt
signals.

Signal contract (per submission)
--------------------------------
  done(object)    : Return value of the coroutine
  failed(object)  : Exception raised by the coroutine
"""

import asyncio
import concurrent.futures
import logging
from typing import Any, Callable, Coroutine, Optional, Set

from PySide6.QtCore import QObject, QThread, Signal

logger = logging.getLogger(__name__)

DoneCallback = Callable[[Any], None]
ErrorCallback = Callable[[BaseException], None]


class _Relay(QObject):
    """Lives in the GUI thread; its signals are queued across threads."""

    done = Signal(object)
    failed = Signal(object)


class AsyncWorker(QThread):
    """
    Runs an asyncio event loop until stop() is called.

    Instantiate, call start(), then submit() coroutines from the GUI thread.
    """

    def __init__(self, parent=None) -> None:
        super().__init__(parent)
        self._loop = asyncio.new_event_loop()
        self._relays: Set[_Relay] = set()

    # ── QThread entry point ───────────────────────────────────────────────────

    def run(self) -> None:
        asyncio.set_event_loop(self._loop)
        try:
            self._loop.run_forever()
        finally:
            pending = asyncio.all_tasks(self._loop)
            for task in pending:
                task.cancel()
            if pending:
                self._loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            self._loop.run_until_complete(self._loop.shutdown_asyncgens())
            self._loop.close()

    # ── Public API ────────────────────────────────────────────────────────────

    def submit(
        self,
        coro: Coroutine[Any, Any, Any],
        on_done: Optional[DoneCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> concurrent.futures.Future:
        """
        Schedule *coro* on the loop.  Callbacks are invoked on the GUI thread.
        """
        relay = _Relay()
        self._relays.add(relay)
        relay.done.connect(lambda result: self._deliver(relay, on_done, result))
        relay.failed.connect(lambda exc: self._deliver(relay, on_error, exc))

        future = asyncio.run_coroutine_threadsafe(coro, self._loop)

        def _finish(fut: concurrent.futures.Future) -> None:
            if fut.cancelled():
                relay.failed.emit(concurrent.futures.CancelledError())
                return
            exc = fut.exception()
            if exc is None:
                relay.done.emit(fut.result())
            else:
                relay.failed.emit(exc)

        future.add_done_callback(_finish)
        return future

    def stop(self, cleanup: Optional[Coroutine[Any, Any, Any]] = None, timeout_ms: int = 3000) -> None:
        """Run *cleanup* on the loop (if given), then stop it and join the thread."""
        if cleanup is not None and self._loop.is_running():
            try:
                asyncio.run_coroutine_threadsafe(cleanup, self._loop).result(timeout_ms / 1000)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Cleanup before loop shutdown failed: %s", exc)
        self._loop.call_soon_threadsafe(self._loop.stop)
        self.wait(timeout_ms)

    # ── Private helpers ───────────────────────────────────────────────────────

    def _deliver(self, relay: _Relay, callback: Optional[Callable[[Any], None]], value: Any) -> None:
        self._relays.discard(relay)
        if callback is not None:
            callback(value)
        elif isinstance(value, BaseException):
            logger.error("Unhandled error in background task: %s", value)
