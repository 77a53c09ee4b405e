"""
Screenshot Queue Manager for Ezzi.

Owns the primary and extra screenshot queues. Every screenshot on disk is
in exactly one queue; removing it from a queue removes the file too.
"""

import asyncio
import base64
import logging
import uuid
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

from ..domain.models.screenshot import QueueName, ScreenshotRef
from ..infrastructure.capture.capture_provider import CaptureError, CaptureProvider
from ..infrastructure.capture.image_preview import make_preview

logger = logging.getLogger("ezzi.screenshot_queue")

DEFAULT_MAX_SCREENSHOTS = 2


class ScreenshotNotFoundError(KeyError):
    """The screenshot is not in either queue."""


class ScreenshotDeleteError(OSError):
    """The screenshot left its queue but its file could not be deleted."""


class CaptureDiscardedError(CaptureError):
    """The queues were reset while a capture was in progress; the image was thrown away."""


class ScreenshotQueueManager:
    """
    Bounded FIFO queues of captured screenshots.

    ``queue_selector`` decides which queue a new capture joins; the
    coordinator wires it to the view state machine so captures taken in the
    queue view go to PRIMARY and follow-ups in the solutions view go to EXTRA.
    A limit of None (or 0) means unbounded.
    """

    def __init__(
        self,
        capture_provider: CaptureProvider,
        screenshot_dir: Path,
        queue_selector: Callable[[], QueueName],
        max_screenshots: int = DEFAULT_MAX_SCREENSHOTS,
        max_extra_screenshots: Optional[int] = None,
    ):
        self._provider = capture_provider
        self._dir = Path(screenshot_dir)
        self._dir.mkdir(parents=True, exist_ok=True)
        self._queue_selector = queue_selector
        self._queues: Dict[QueueName, List[ScreenshotRef]] = {
            QueueName.PRIMARY: [],
            QueueName.EXTRA: [],
        }
        self._limits: Dict[QueueName, Optional[int]] = {
            QueueName.PRIMARY: max_screenshots or None,
            QueueName.EXTRA: max_extra_screenshots or None,
        }
        self._change_callbacks: List[Callable[[QueueName], None]] = []
        # bumped by clear_all so captures started before a reset are not enqueued after it
        self._generation = 0

    @property
    def screenshot_dir(self) -> Path:
        return self._dir

    # --- Observers -----------------------------------------------------------

    def on_change(self, callback: Callable[[QueueName], None]):
        """Register a callback invoked with the queue that changed."""
        if callback not in self._change_callbacks:
            self._change_callbacks.append(callback)

    def _notify_change(self, which: QueueName):
        for callback in self._change_callbacks:
            try:
                callback(which)
            except Exception as e:
                logger.error(f"Queue change callback failed: {e}")

    # --- Queries -------------------------------------------------------------

    def list(self, which: QueueName = QueueName.PRIMARY) -> Tuple[ScreenshotRef, ...]:
        """Screenshots in ``which``, oldest first."""
        return tuple(self._queues[which])

    def is_empty(self, which: QueueName = QueueName.PRIMARY) -> bool:
        return not self._queues[which]

    def limit(self, which: QueueName) -> Optional[int]:
        return self._limits[which]

    def find(self, ref: Union[ScreenshotRef, str, Path]) -> Optional[QueueName]:
        ref = self._as_ref(ref)
        for which, queue in self._queues.items():
            if ref in queue:
                return which
        return None

    # --- Mutations -----------------------------------------------------------

    async def capture(self) -> ScreenshotRef:
        """
        Grab the screen, save it, and append it to the queue for the current view.

        Raises:
            CaptureError: the provider could not produce an image
            CaptureDiscardedError: the queues were cleared before the capture finished
            OSError: the image could not be written
        """
        generation = self._generation
        data = await self._provider.capture()
        if generation != self._generation:
            raise CaptureDiscardedError("Screenshot queues were reset while capturing")

        path = self._dir / f"{uuid.uuid4()}.png"
        await asyncio.to_thread(path.write_bytes, data)
        if generation != self._generation:
            path.unlink(missing_ok=True)
            raise CaptureDiscardedError("Screenshot queues were reset while capturing")

        # The view may have changed while capturing; route by the current one.
        which = self._queue_selector()
        ref = ScreenshotRef(path)
        self._enqueue(which, ref)
        logger.info(f"Screenshot captured into {which.value} queue: {path.name}")
        return ref

    def _enqueue(self, which: QueueName, ref: ScreenshotRef):
        queue = self._queues[which]
        queue.append(ref)

        limit = self._limits[which]
        evicted = []
        while limit is not None and len(queue) > limit:
            evicted.append(queue.pop(0))

        for old in evicted:
            logger.debug(f"Evicting oldest screenshot from {which.value} queue: {old.name}")
            self._remove_file_quietly(old)

        self._notify_change(which)

    def delete(self, ref: Union[ScreenshotRef, str, Path]) -> QueueName:
        """
        Remove ``ref`` from its queue and delete its file.

        Returns:
            The queue the screenshot was removed from

        Raises:
            ScreenshotNotFoundError: ``ref`` is in neither queue (nothing changes)
            ScreenshotDeleteError: the file could not be deleted (the entry is gone regardless)
        """
        ref = self._as_ref(ref)
        which = self.find(ref)
        if which is None:
            raise ScreenshotNotFoundError(str(ref.path))

        self._queues[which].remove(ref)
        self._notify_change(which)

        try:
            ref.path.unlink(missing_ok=True)
        except OSError as e:
            raise ScreenshotDeleteError(e.errno, f"Failed to delete {ref.path}: {e.strerror}") from e

        logger.info(f"Screenshot deleted from {which.value} queue: {ref.name}")
        return which

    def clear(self, which: QueueName):
        """Empty one queue, deleting its files."""
        refs = self._queues[which]
        if not refs:
            return
        self._queues[which] = []
        for ref in refs:
            self._remove_file_quietly(ref)
        self._notify_change(which)
        logger.debug(f"Cleared {len(refs)} screenshot(s) from {which.value} queue")

    def clear_all(self):
        """Empty both queues and remove any stray screenshots left in the directory."""
        self._generation += 1
        for which in QueueName:
            self.clear(which)
        self._sweep_orphans()
        logger.info("All screenshot queues cleared")

    def _sweep_orphans(self):
        known = {ref.path for queue in self._queues.values() for ref in queue}
        for path in self._dir.glob("*.png"):
            if path not in known:
                self._remove_file_quietly(ScreenshotRef(path))

    # --- Payload helpers -----------------------------------------------------

    async def encode(self, refs: Iterable[ScreenshotRef]) -> List[str]:
        """Read and base64-encode ``refs`` in order."""
        images = []
        for ref in refs:
            data = await asyncio.to_thread(ref.path.read_bytes)
            images.append(base64.b64encode(data).decode("ascii"))
        return images

    async def get_preview(self, ref: ScreenshotRef) -> str:
        """Thumbnail of ``ref`` as a PNG data URL."""
        return await asyncio.to_thread(make_preview, ref.path)

    # --- Helpers -------------------------------------------------------------

    @staticmethod
    def _as_ref(ref: Union[ScreenshotRef, str, Path]) -> ScreenshotRef:
        return ref if isinstance(ref, ScreenshotRef) else ScreenshotRef(Path(ref))

    @staticmethod
    def _remove_file_quietly(ref: ScreenshotRef):
        try:
            ref.path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not delete screenshot file {ref.path}: {e}")
