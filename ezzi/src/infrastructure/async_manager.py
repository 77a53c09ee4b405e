"""
Background asyncio loop for the processing core.

Queues, the view state machine, the processing controller and the window
reconciler are only touched from this loop. The Qt side hands work over
with ``submit`` and hears back through queued signals.
"""

import asyncio
import concurrent.futures
import logging
import threading
from typing import Any, Coroutine, Optional, Set

logger = logging.getLogger("ezzi.async_manager")


class AsyncIOManager:
    """Owns the core event loop and the thread that runs it."""

    def __init__(self, thread_name: str = "ezzi_core_loop"):
        self._thread_name = thread_name
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._loop_thread: Optional[threading.Thread] = None
        self._pending: Set[concurrent.futures.Future] = set()
        self._shutdown_requested = False

    def initialize(self) -> bool:
        """
        Start the loop thread.

        Returns:
            bool: True once the loop is running
        """
        if self.is_initialized():
            return True

        ready = threading.Event()

        def run_loop():
            loop = asyncio.new_event_loop()
            asyncio.set_event_loop(loop)
            self._loop = loop
            ready.set()
            try:
                loop.run_forever()
            finally:
                loop.run_until_complete(loop.shutdown_asyncgens())
                loop.close()
                logger.debug("Core loop closed")

        self._shutdown_requested = False
        self._loop_thread = threading.Thread(target=run_loop, name=self._thread_name, daemon=True)
        self._loop_thread.start()

        if not ready.wait(timeout=5.0):
            logger.error("Core loop did not start within 5s")
            return False
        logger.info("Core loop started")
        return True

    def is_initialized(self) -> bool:
        return (
            self._loop is not None and
            not self._loop.is_closed() and
            self._loop_thread is not None and
            self._loop_thread.is_alive()
        )

    def submit(self, coro: Coroutine) -> concurrent.futures.Future:
        """
        Schedule ``coro`` on the core loop from any thread.

        Raises:
            RuntimeError: If the loop is not running
        """
        if self._shutdown_requested or not self.is_initialized():
            coro.close()
            raise RuntimeError("Core loop is not running")
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        self._pending.add(future)
        future.add_done_callback(self._pending.discard)
        return future

    def run_blocking(self, coro: Coroutine, timeout: float = 5.0) -> Any:
        """Run ``coro`` on the loop and wait for its result; used on shutdown paths."""
        return self.submit(coro).result(timeout=timeout)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def shutdown(self):
        """Cancel outstanding work, stop the loop and join its thread."""
        if self._shutdown_requested:
            return
        self._shutdown_requested = True
        logger.info("Stopping core loop...")

        for future in list(self._pending):
            future.cancel()

        loop = self._loop
        if loop is not None and not loop.is_closed():
            loop.call_soon_threadsafe(loop.stop)
        if self._loop_thread is not None and self._loop_thread.is_alive():
            self._loop_thread.join(timeout=2.0)
            if self._loop_thread.is_alive():
                logger.warning("Core loop thread did not exit within 2s")

        self._loop = None
        self._loop_thread = None
        logger.info("Core loop stopped")
