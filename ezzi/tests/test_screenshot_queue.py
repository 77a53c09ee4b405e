"""
Tests for the screenshot queues.

Covers capture routing, bounded FIFO eviction, deletion and the
queue/disk consistency guarantees.
"""

import asyncio
import base64
from pathlib import Path
from unittest.mock import patch

import pytest

from ezzi.src.application.screenshot_queue import (
    CaptureDiscardedError,
    ScreenshotDeleteError,
    ScreenshotNotFoundError,
    ScreenshotQueueManager,
)
from ezzi.src.domain.models.screenshot import QueueName
from ezzi.src.infrastructure.capture.capture_provider import CaptureError
from ezzi.tests.fakes import FakeCaptureProvider


class TestScreenshotQueueManager:
    """Test cases for ScreenshotQueueManager."""

    @pytest.fixture(autouse=True)
    def setup(self, tmp_path):
        self.dir = tmp_path / "screenshots"
        self.provider = FakeCaptureProvider()
        self.target = QueueName.PRIMARY
        self.changes = []
        self.queues = ScreenshotQueueManager(
            self.provider, self.dir, lambda: self.target, max_screenshots=2
        )
        self.queues.on_change(self.changes.append)

    def files_on_disk(self):
        return sorted(p.name for p in self.dir.glob("*.png"))

    def files_in_queues(self):
        return sorted(ref.name for which in QueueName for ref in self.queues.list(which))

    def test_directory_created(self):
        assert self.dir.is_dir()
        assert self.queues.is_empty(QueueName.PRIMARY)
        assert self.queues.is_empty(QueueName.EXTRA)

    @pytest.mark.asyncio
    async def test_capture_writes_file_and_enqueues(self):
        ref = await self.queues.capture()

        assert ref.path.exists()
        assert ref.path.parent == self.dir
        assert ref.path.suffix == ".png"
        assert ref.path.read_bytes() == self.provider.data
        assert self.queues.list(QueueName.PRIMARY) == (ref,)
        assert self.changes == [QueueName.PRIMARY]

    @pytest.mark.asyncio
    async def test_primary_queue_is_bounded_fifo(self):
        first = await self.queues.capture()
        second = await self.queues.capture()
        third = await self.queues.capture()

        assert self.queues.list(QueueName.PRIMARY) == (second, third)
        assert not first.path.exists()
        assert self.files_on_disk() == self.files_in_queues()

    @pytest.mark.asyncio
    async def test_capture_routes_to_selected_queue(self):
        primary = await self.queues.capture()
        self.target = QueueName.EXTRA
        extra = await self.queues.capture()

        assert self.queues.list(QueueName.PRIMARY) == (primary,)
        assert self.queues.list(QueueName.EXTRA) == (extra,)
        assert self.changes == [QueueName.PRIMARY, QueueName.EXTRA]

    @pytest.mark.asyncio
    async def test_extra_queue_unbounded_by_default(self):
        self.target = QueueName.EXTRA
        for _ in range(5):
            await self.queues.capture()

        assert self.queues.limit(QueueName.EXTRA) is None
        assert len(self.queues.list(QueueName.EXTRA)) == 5

    @pytest.mark.asyncio
    async def test_extra_queue_cap(self, tmp_path):
        queues = ScreenshotQueueManager(
            self.provider, tmp_path / "capped", lambda: QueueName.EXTRA,
            max_screenshots=2, max_extra_screenshots=3,
        )
        refs = [await queues.capture() for _ in range(4)]

        assert queues.list(QueueName.EXTRA) == tuple(refs[1:])
        assert not refs[0].path.exists()

    @pytest.mark.asyncio
    async def test_capture_failure_leaves_queues_untouched(self):
        self.provider.error = CaptureError("no display")

        with pytest.raises(CaptureError):
            await self.queues.capture()

        assert self.queues.is_empty(QueueName.PRIMARY)
        assert self.files_on_disk() == []
        assert self.changes == []

    @pytest.mark.asyncio
    async def test_delete_removes_entry_and_file(self):
        keep = await self.queues.capture()
        gone = await self.queues.capture()

        which = self.queues.delete(gone)

        assert which is QueueName.PRIMARY
        assert self.queues.list(QueueName.PRIMARY) == (keep,)
        assert not gone.path.exists()
        assert self.changes[-1] is QueueName.PRIMARY

    @pytest.mark.asyncio
    async def test_delete_accepts_path_string(self):
        self.target = QueueName.EXTRA
        ref = await self.queues.capture()

        assert self.queues.delete(str(ref.path)) is QueueName.EXTRA
        assert self.queues.is_empty(QueueName.EXTRA)

    @pytest.mark.asyncio
    async def test_delete_unknown_path_changes_nothing(self):
        ref = await self.queues.capture()
        changes_before = list(self.changes)

        with pytest.raises(ScreenshotNotFoundError):
            self.queues.delete(self.dir / "unknown.png")

        assert self.queues.list(QueueName.PRIMARY) == (ref,)
        assert self.changes == changes_before

    @pytest.mark.asyncio
    async def test_delete_file_error_still_removes_entry(self):
        ref = await self.queues.capture()

        with patch.object(Path, "unlink", side_effect=PermissionError(13, "denied")):
            with pytest.raises(ScreenshotDeleteError):
                self.queues.delete(ref)

        assert self.queues.find(ref) is None
        assert self.queues.is_empty(QueueName.PRIMARY)

    @pytest.mark.asyncio
    async def test_clear_single_queue(self):
        primary = await self.queues.capture()
        self.target = QueueName.EXTRA
        extra = await self.queues.capture()

        self.queues.clear(QueueName.EXTRA)

        assert self.queues.is_empty(QueueName.EXTRA)
        assert not extra.path.exists()
        assert self.queues.list(QueueName.PRIMARY) == (primary,)

    @pytest.mark.asyncio
    async def test_clear_all_sweeps_orphans(self):
        await self.queues.capture()
        self.target = QueueName.EXTRA
        await self.queues.capture()
        (self.dir / "left-over.png").write_bytes(b"stale")
        (self.dir / "notes.txt").write_text("not a screenshot")

        self.queues.clear_all()

        assert self.queues.is_empty(QueueName.PRIMARY)
        assert self.queues.is_empty(QueueName.EXTRA)
        assert self.files_on_disk() == []
        assert (self.dir / "notes.txt").exists()

    @pytest.mark.asyncio
    async def test_reset_during_capture_discards_the_image(self):
        self.provider.gate = asyncio.Event()
        pending = asyncio.ensure_future(self.queues.capture())
        await asyncio.sleep(0)

        self.queues.clear_all()
        self.provider.gate.set()

        with pytest.raises(CaptureDiscardedError):
            await pending
        assert self.queues.is_empty(QueueName.PRIMARY)
        assert self.files_on_disk() == []

    @pytest.mark.asyncio
    async def test_reset_while_writing_removes_the_written_file(self):
        async def write_then_reset(fn, *args):
            fn(*args)
            assert self.files_on_disk() != []
            self.queues.clear_all()

        with patch("asyncio.to_thread", new=write_then_reset):
            with pytest.raises(CaptureDiscardedError):
                await self.queues.capture()

        assert self.queues.is_empty(QueueName.PRIMARY)
        assert self.files_on_disk() == []

    @pytest.mark.asyncio
    async def test_capture_after_reset_is_kept(self):
        self.queues.clear_all()

        ref = await self.queues.capture()

        assert self.queues.list(QueueName.PRIMARY) == (ref,)

    @pytest.mark.asyncio
    async def test_failing_change_callback_does_not_break_capture(self):
        def broken(_which):
            raise RuntimeError("listener bug")

        self.queues.on_change(broken)
        ref = await self.queues.capture()

        assert self.queues.list(QueueName.PRIMARY) == (ref,)

    @pytest.mark.asyncio
    async def test_encode_preserves_order(self):
        first = await self.queues.capture()
        first.path.write_bytes(b"first")
        second = await self.queues.capture()
        second.path.write_bytes(b"second")

        images = await self.queues.encode(self.queues.list(QueueName.PRIMARY))

        assert [base64.b64decode(image) for image in images] == [b"first", b"second"]

    @pytest.mark.asyncio
    async def test_preview_is_png_data_url(self):
        ref = await self.queues.capture()

        preview = await self.queues.get_preview(ref)

        assert preview.startswith("data:image/png;base64,")
        assert base64.b64decode(preview.split(",", 1)[1]).startswith(b"\x89PNG")

    @pytest.mark.asyncio
    async def test_files_and_queues_stay_consistent(self):
        for _ in range(3):
            await self.queues.capture()
        self.target = QueueName.EXTRA
        extra = [await self.queues.capture() for _ in range(2)]
        self.queues.delete(extra[0])
        self.target = QueueName.PRIMARY
        await self.queues.capture()

        assert self.files_on_disk() == self.files_in_queues()
        assert len(self.queues.list(QueueName.PRIMARY)) == 2
