"""Tests for the background core loop."""

import asyncio
import concurrent.futures
import threading

import pytest

from ezzi.src.infrastructure.async_manager import AsyncIOManager


class TestAsyncIOManager:

    @pytest.fixture(autouse=True)
    def setup(self):
        self.manager = AsyncIOManager()
        assert self.manager.initialize()
        yield
        self.manager.shutdown()

    def test_runs_on_its_own_thread(self):
        async def thread_name():
            return threading.current_thread().name

        assert self.manager.run_blocking(thread_name()) == "ezzi_core_loop"

    def test_initialize_twice(self):
        assert self.manager.initialize()
        assert self.manager.is_initialized()

    def test_submit_propagates_errors(self):
        async def boom():
            raise ValueError("bad")

        future = self.manager.submit(boom())

        with pytest.raises(ValueError):
            future.result(timeout=2)

    def test_shutdown_cancels_pending_work(self):
        started = threading.Event()

        async def forever():
            started.set()
            await asyncio.sleep(3600)

        future = self.manager.submit(forever())
        assert started.wait(timeout=2)

        self.manager.shutdown()

        assert not self.manager.is_initialized()
        with pytest.raises(concurrent.futures.CancelledError):
            future.result(timeout=2)

    def test_submit_after_shutdown(self):
        self.manager.shutdown()

        async def noop():
            return None

        with pytest.raises(RuntimeError):
            self.manager.submit(noop())
