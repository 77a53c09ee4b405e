"""
Tests for the coordinator's loop-side actions.

The coordinator is wired to a real session (queues, state machine, token
storage) but no widgets. Work it submits to the core loop is collected and
run in the test's own event loop.
"""

import asyncio
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from ezzi.src.application.app_coordinator import AppCoordinator
from ezzi.src.domain.models.screenshot import QueueName
from ezzi.src.infrastructure.capture.capture_provider import CaptureError
from ezzi.src.infrastructure.storage import AuthStorage, SettingsManager
from ezzi.tests.fakes import FakeCaptureProvider, make_context


class TestAppCoordinator:
    """Test cases for AppCoordinator."""

    @pytest.fixture(autouse=True)
    def setup(self, tmp_path):
        self.settings = SettingsManager(settings_dir=tmp_path / "configs")
        self.auth = AuthStorage(self.settings)
        self.provider = FakeCaptureProvider()
        self.ctx = make_context(tmp_path / "screenshots", auth=self.auth, capture_provider=self.provider)

        self.submitted = []
        manager = Mock()
        manager.submit.side_effect = self.submit

        c = AppCoordinator(settings=self.settings, async_manager=manager, platform="linux")
        c._context = self.ctx
        c._queues = self.ctx.queues
        c._state_machine = self.ctx.state_machine
        c._events = self.ctx.events
        c._reconciler = Mock(visible=False)
        c._overlay = Mock()
        c._tray = Mock()
        self.coordinator = c

        self.statuses = []
        self.previews = []
        self.delete_failures = []
        self.capture_failures = []
        c.queue_status_changed.connect(self.statuses.append)
        c.previews_changed.connect(self.previews.append)
        c.screenshot_delete_failed.connect(self.delete_failures.append)
        c.capture_failed.connect(self.capture_failures.append)

        yield
        for coro in self.submitted:
            coro.close()

    def submit(self, coro):
        self.submitted.append(coro)
        return Mock()

    async def drain(self):
        """Run everything submitted to the core loop so far, in order."""
        results = []
        while self.submitted:
            results.append(await self.submitted.pop(0))
        return results

    def enter_solutions_view(self):
        self.ctx.state_machine.begin_solve()
        assert self.ctx.state_machine.solve_succeeded()

    # --- Capture -------------------------------------------------------------

    @pytest.mark.asyncio
    async def test_take_screenshot_enqueues(self):
        ref = await self.coordinator._take_screenshot()

        assert self.ctx.queues.list(QueueName.PRIMARY) == (ref,)
        assert self.capture_failures == []

    @pytest.mark.asyncio
    async def test_capture_error_is_reported(self):
        self.provider.error = CaptureError("no display")

        assert await self.coordinator._take_screenshot() is None
        assert self.capture_failures == ["no display"]

    @pytest.mark.asyncio
    async def test_reset_during_capture_drops_screenshot_quietly(self):
        self.provider.gate = asyncio.Event()
        pending = asyncio.ensure_future(self.coordinator._take_screenshot())
        await asyncio.sleep(0)

        self.ctx.queues.clear_all()
        self.provider.gate.set()

        assert await pending is None
        assert self.ctx.queues.is_empty(QueueName.PRIMARY)
        assert list(self.ctx.queues.screenshot_dir.glob("*.png")) == []
        assert self.capture_failures == []

    # --- Deleting screenshots --------------------------------------------------

    @pytest.mark.asyncio
    async def test_delete_screenshot_runs_on_loop(self):
        keep = await self.ctx.queues.capture()
        gone = await self.ctx.queues.capture()

        self.coordinator.delete_screenshot(str(gone.path))
        assert self.ctx.queues.find(gone) is QueueName.PRIMARY

        assert await self.drain() == [True]
        assert self.ctx.queues.list(QueueName.PRIMARY) == (keep,)
        assert not gone.path.exists()
        assert self.delete_failures == []

    @pytest.mark.asyncio
    async def test_delete_unknown_screenshot_is_reported(self):
        self.coordinator.delete_screenshot(str(self.ctx.queues.screenshot_dir / "gone.png"))

        assert await self.drain() == [False]
        assert self.delete_failures == ["That screenshot is no longer in the queue."]

    @pytest.mark.asyncio
    async def test_delete_file_error_is_reported(self):
        ref = await self.ctx.queues.capture()

        with patch.object(Path, "unlink", side_effect=PermissionError(13, "denied")):
            self.coordinator.delete_screenshot(str(ref.path))
            assert await self.drain() == [False]

        assert self.ctx.queues.is_empty(QueueName.PRIMARY)
        assert len(self.delete_failures) == 1
        assert self.delete_failures[0].startswith("Screenshot removed from the queue.")
        assert "denied" in self.delete_failures[0]

    @pytest.mark.asyncio
    async def test_delete_last_uses_the_current_view_queue(self):
        first = await self.ctx.queues.capture()
        await self.ctx.queues.capture()
        self.enter_solutions_view()
        follow_up = await self.ctx.queues.capture()

        self.coordinator.delete_last_screenshot()
        await self.drain()

        assert self.ctx.queues.is_empty(QueueName.EXTRA)
        assert not follow_up.path.exists()
        assert len(self.ctx.queues.list(QueueName.PRIMARY)) == 2
        assert first.path.exists()

    @pytest.mark.asyncio
    async def test_delete_last_with_empty_queue(self):
        self.coordinator.delete_last_screenshot()

        assert await self.drain() == [False]
        assert self.delete_failures == ["No screenshots to delete."]

    # --- Previews --------------------------------------------------------------

    @pytest.mark.asyncio
    async def test_previews_follow_the_current_view_queue(self):
        refs = [await self.ctx.queues.capture() for _ in range(2)]

        previews = await self.coordinator._refresh_previews()

        assert [path for path, _ in previews] == [str(ref.path) for ref in refs]
        assert all(url.startswith("data:image/png;base64,") for _, url in previews)
        assert self.previews == [previews]

        self.enter_solutions_view()
        assert await self.coordinator._refresh_previews() == []

    @pytest.mark.asyncio
    async def test_unreadable_screenshot_has_no_preview(self):
        broken = await self.ctx.queues.capture()
        broken.path.write_bytes(b"not an image")
        fine = await self.ctx.queues.capture()

        previews = await self.coordinator._refresh_previews()

        assert [path for path, _ in previews] == [str(fine.path)]

    @pytest.mark.asyncio
    async def test_outdated_preview_refresh_is_not_published(self):
        await self.ctx.queues.capture()
        gate = asyncio.Event()
        calls = []

        async def preview(ref):
            calls.append(ref)
            if len(calls) == 1:
                await gate.wait()
            return "data:image/png;base64,"

        with patch.object(self.ctx.queues, "get_preview", new=preview):
            older = asyncio.ensure_future(self.coordinator._refresh_previews())
            await asyncio.sleep(0)
            await self.coordinator._refresh_previews()
            gate.set()
            await older

        assert len(self.previews) == 1

    # --- Queue status ----------------------------------------------------------

    @pytest.mark.asyncio
    async def test_status_in_queue_view_schedules_previews(self):
        await self.ctx.queues.capture()

        self.coordinator._publish_queue_status(QueueName.PRIMARY)

        assert self.statuses[-1] == "Queue: 1 screenshot(s). Process when ready."
        await self.drain()
        assert len(self.previews) == 1

    def test_status_shows_debugged_solutions(self):
        self.enter_solutions_view()

        self.coordinator._publish_queue_status(QueueName.EXTRA)
        self.ctx.has_debugged = True
        self.coordinator._publish_queue_status(QueueName.EXTRA)

        assert self.statuses == [
            "Solutions. Follow-up screenshots: 0",
            "Solutions (debugged). Follow-up screenshots: 0",
        ]

    @pytest.mark.asyncio
    async def test_debug_success_republishes_status(self):
        self.enter_solutions_view()
        self.ctx.has_debugged = True

        self.coordinator._on_debug_success(Mock())
        await self.drain()

        assert self.statuses[0].startswith("Solutions (debugged)")
        self.coordinator._tray.set_processing.assert_called_with(False)

    # --- Session token ---------------------------------------------------------

    @pytest.mark.asyncio
    async def test_sign_in_stores_token_on_loop(self):
        self.coordinator.sign_in("tok", expires_in=60)
        assert not self.auth.is_authenticated

        await self.drain()

        assert self.auth.get_token() == "tok"
        assert isinstance(self.settings.get('auth.token_expiry'), float)

    @pytest.mark.asyncio
    async def test_sign_out_clears_token(self):
        self.auth.set_token("tok")

        self.coordinator.sign_out()
        await self.drain()

        assert not self.auth.is_authenticated

    @pytest.mark.asyncio
    async def test_sign_in_dialog(self):
        with patch("ezzi.src.application.app_coordinator.QInputDialog.getText", return_value=("  tok \n", True)):
            self.coordinator._on_sign_in_requested()
        await self.drain()

        assert self.auth.get_token() == "tok"

    def test_cancelled_sign_in_dialog_changes_nothing(self):
        with patch("ezzi.src.application.app_coordinator.QInputDialog.getText", return_value=("tok", False)):
            self.coordinator._on_sign_in_requested()

        assert self.submitted == []
        assert not self.auth.is_authenticated
