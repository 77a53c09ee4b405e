"""
Application Coordinator for Ezzi.

Builds the core components, wires the tray and the overlay to them and owns
the application lifecycle. Everything that touches queues, processing or
window configs runs on the asyncio loop thread; Qt slots on this object run
on the GUI thread.
"""

import asyncio
import logging
import sys
from typing import Callable, Coroutine, List, Optional, Tuple

from PyQt6.QtCore import QObject, pyqtSignal
from PyQt6.QtGui import QGuiApplication
from PyQt6.QtWidgets import QInputDialog, QLineEdit

from ..domain.models.app_state import AppMode, ViewChangeEvent, ViewState
from ..domain.models.processing import SolveResponse
from ..domain.models.screenshot import QueueName
from ..domain.models.window_config import WindowBounds
from ..domain.services.state_machine import ViewStateMachine
from ..infrastructure.ai.api_client import SolvingApiClient
from ..infrastructure.async_manager import AsyncIOManager
from ..infrastructure.capture.capture_provider import CaptureError, get_capture_provider
from ..infrastructure.processors.processor_registry import create_default_registry
from ..infrastructure.storage.auth_storage import AuthStorage
from ..infrastructure.storage.settings_manager import SettingsManager, get_settings
from ..presentation.ui.overlay_window import OverlayWindow, QtNativeWindow
from ..presentation.ui.system_tray import SystemTray
from ..utils.config_paths import get_screenshots_dir
from ..utils.environment import api_base_url_override
from .processing_controller import ProcessingController
from .screenshot_queue import (
    CaptureDiscardedError,
    ScreenshotDeleteError,
    ScreenshotNotFoundError,
    ScreenshotQueueManager,
)
from .session_context import ProcessingEvents, ProcessingOptions, SessionContext
from .window_reconciler import MoveDirection, WindowVisibilityReconciler

logger = logging.getLogger("ezzi.coordinator")

# Delay around a capture so the hidden overlay is not in the shot.
CAPTURE_SETTLE_SECONDS = 0.2


class AppCoordinator(QObject):
    """
    Main application coordinator.

    Responsibilities:
    - Build settings, queues, processors and the window reconciler
    - Route tray actions onto the asyncio loop
    - Render processing events in the overlay
    - Graceful shutdown
    """

    # Signals
    app_initialized = pyqtSignal()
    app_shutdown = pyqtSignal()
    queue_status_changed = pyqtSignal(str)
    capture_failed = pyqtSignal(str)
    previews_changed = pyqtSignal(list)      # [(path, data_url)] for the current view's queue
    screenshot_delete_failed = pyqtSignal(str)

    def __init__(self, settings: Optional[SettingsManager] = None,
                 async_manager: Optional[AsyncIOManager] = None,
                 platform: str = sys.platform):
        super().__init__()
        self._settings = settings
        self._async_manager = async_manager
        self._platform = platform

        self._api_client: Optional[SolvingApiClient] = None
        self._state_machine: Optional[ViewStateMachine] = None
        self._queues: Optional[ScreenshotQueueManager] = None
        self._events: Optional[ProcessingEvents] = None
        self._context: Optional[SessionContext] = None
        self._controller: Optional[ProcessingController] = None
        self._overlay: Optional[OverlayWindow] = None
        self._reconciler: Optional[WindowVisibilityReconciler] = None
        self._tray: Optional[SystemTray] = None

        self._preview_generation = 0
        self._initialized = False
        self._shut_down = False

    @property
    def context(self) -> Optional[SessionContext]:
        return self._context

    @property
    def controller(self) -> Optional[ProcessingController]:
        return self._controller

    def initialize(self) -> bool:
        """
        Initialize the application components.

        Returns:
            True if initialization was successful
        """
        try:
            logger.info("Initializing Ezzi application...")

            if self._settings is None:
                self._settings = get_settings()
            settings = self._settings

            if self._async_manager is None:
                self._async_manager = AsyncIOManager()
            if not self._async_manager.is_initialized() and not self._async_manager.initialize():
                logger.error("Failed to start the asyncio loop")
                return False

            self._init_core(settings)
            self._init_ui(settings)
            self._connect_signals()

            self._initialized = True
            self.app_initialized.emit()
            logger.info("Ezzi application initialized successfully")
            return True

        except Exception as e:
            logger.error(f"Failed to initialize application: {e}", exc_info=True)
            return False

    def _init_core(self, settings: SettingsManager):
        base_url = api_base_url_override() or settings.get('api.base_url')
        self._api_client = SolvingApiClient(
            base_url=base_url,
            timeout=settings.get('api.timeout_seconds', 300),
            verify_ssl=not settings.get('advanced.ignore_ssl_verification', False),
        )

        self._state_machine = ViewStateMachine()
        self._queues = ScreenshotQueueManager(
            capture_provider=get_capture_provider(self._platform),
            screenshot_dir=get_screenshots_dir(),
            queue_selector=self._state_machine.capture_queue,
            max_screenshots=settings.get('queue.max_screenshots', 2),
            max_extra_screenshots=settings.get('queue.max_extra_screenshots', 0),
        )
        self._events = ProcessingEvents()
        self._context = SessionContext(
            state_machine=self._state_machine,
            queues=self._queues,
            processors=create_default_registry(self._api_client),
            events=self._events,
            auth=AuthStorage(settings),
            options=ProcessingOptions.from_settings(settings),
            app_mode=AppMode.from_value(settings.get('app.app_mode'), AppMode.LIVE_INTERVIEW),
        )
        self._controller = ProcessingController(self._context)
        logger.info(f"Core ready (mode={self._context.app_mode.value}, api={base_url})")

    def _init_ui(self, settings: SettingsManager):
        self._overlay = OverlayWindow(self._initial_bounds(settings))
        self._reconciler = WindowVisibilityReconciler(
            QtNativeWindow(self._overlay, self._platform),
            self._context,
            platform=self._platform,
            toggle_cooldown=settings.get('window.toggle_cooldown_ms', 300) / 1000.0,
            move_step=settings.get('window.move_step', 60),
        )
        self._tray = SystemTray(self._context.app_mode)

    def _initial_bounds(self, settings: SettingsManager) -> WindowBounds:
        width = settings.get('window.width', 500)
        height = settings.get('window.height', 520)
        x = settings.get('window.x')
        if x is None:
            screen = QGuiApplication.primaryScreen()
            screen_width = screen.availableGeometry().width() if screen else width
            x = max(0, (screen_width - width) // 2)
        return WindowBounds(x, settings.get('window.y', 50), width, height)

    def _connect_signals(self):
        # Loop thread -> reconciler, called directly
        self._queues.on_change(self._reconciler.on_queue_changed)
        self._queues.on_change(self._publish_queue_status)
        self._state_machine.add_view_change_callback(self._reconciler.on_view_changed)

        # Loop thread -> GUI thread, queued through this object
        self._state_machine.view_changed.connect(self._on_view_changed)
        self._events.solve_start.connect(self._on_solve_start)
        self._events.solve_success.connect(self._on_solve_success)
        self._events.solve_error.connect(self._on_processing_error)
        self._events.debug_start.connect(self._on_debug_start)
        self._events.debug_success.connect(self._on_debug_success)
        self._events.debug_error.connect(self._on_processing_error)
        self._events.no_screenshots.connect(self._on_no_screenshots)
        self._events.reset_view.connect(self._on_reset_view)
        self.queue_status_changed.connect(self._overlay.show_status)
        self.previews_changed.connect(self._overlay.show_previews)
        self.screenshot_delete_failed.connect(self._on_delete_failed)
        self.capture_failed.connect(self._on_capture_failed)

        self._overlay.focus_regained.connect(self._on_focus_regained)
        self._overlay.delete_requested.connect(self.delete_screenshot)

        self._tray.screenshot_requested.connect(self.take_screenshot)
        self._tray.process_requested.connect(self.process_screenshots)
        self._tray.debug_requested.connect(self.debug_screenshots)
        self._tray.reset_requested.connect(self.reset)
        self._tray.toggle_requested.connect(self.toggle_window)
        self._tray.move_requested.connect(self.move_window)
        self._tray.mode_requested.connect(self.set_app_mode)
        self._tray.delete_last_requested.connect(self.delete_last_screenshot)
        self._tray.sign_in_requested.connect(self._on_sign_in_requested)
        self._tray.sign_out_requested.connect(self.sign_out)
        self._tray.quit_requested.connect(self._on_quit_requested)

        self._settings.on_change(self._on_setting_changed)

    # --- Startup -------------------------------------------------------------

    def start(self):
        """Show the tray and the overlay."""
        if not self._initialized:
            logger.warning("start() called before initialize()")
            return
        self._tray.show()
        self._call_on_loop(self._reconciler.show)
        self._call_on_loop(self._publish_queue_status, QueueName.PRIMARY)
        logger.info("Ezzi started")

    # --- Loop helpers --------------------------------------------------------

    def _submit(self, coro: Coroutine):
        future = self._async_manager.submit(coro)
        future.add_done_callback(self._log_task_failure)
        return future

    def _call_on_loop(self, fn: Callable, *args):
        async def invoke():
            return fn(*args)
        return self._submit(invoke())

    @staticmethod
    def _log_task_failure(future):
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error(f"Background task failed: {error}", exc_info=error)

    # --- Tray actions --------------------------------------------------------

    def take_screenshot(self):
        self._submit(self._take_screenshot())

    async def _take_screenshot(self):
        was_visible = self._reconciler.visible
        if was_visible:
            self._reconciler.hide()
            await asyncio.sleep(CAPTURE_SETTLE_SECONDS)
        try:
            ref = await self._queues.capture()
            logger.info(f"Screenshot taken: {ref.name}")
            return ref
        except CaptureDiscardedError as e:
            logger.info(f"Screenshot dropped: {e}")
        except CaptureError as e:
            logger.error(f"Screenshot capture failed: {e}")
            self.capture_failed.emit(str(e))
        except OSError as e:
            logger.error(f"Could not store screenshot: {e}")
            self.capture_failed.emit(f"Could not store screenshot: {e}")
        finally:
            if was_visible:
                await asyncio.sleep(CAPTURE_SETTLE_SECONDS)
                self._reconciler.show()
        return None

    def process_screenshots(self):
        self._submit(self._controller.run_solve())

    def debug_screenshots(self):
        self._submit(self._controller.debug())

    def reset(self):
        self._call_on_loop(self._controller.reset, "user_reset")

    def toggle_window(self):
        self._call_on_loop(self._reconciler.toggle)

    def move_window(self, direction: MoveDirection):
        self._call_on_loop(self._reconciler.move, direction)

    def set_app_mode(self, mode: AppMode):
        """Switch app mode, persist it and re-apply the window config."""
        if self._context.app_mode is mode:
            return
        logger.info(f"App mode: {self._context.app_mode.value} -> {mode.value}")
        self._settings.set('app.app_mode', mode.value)
        self._tray.set_mode(mode)
        self._call_on_loop(self._switch_mode, mode)

    def _switch_mode(self, mode: AppMode):
        self._context.app_mode = mode
        self._reconciler.on_app_mode_changed(mode)

    def _on_setting_changed(self, key_path: str):
        if key_path.startswith('processing.'):
            options = ProcessingOptions.from_settings(self._settings)
            self._call_on_loop(setattr, self._context, 'options', options)

    # --- Screenshot management -----------------------------------------------

    def delete_screenshot(self, path: str):
        return self._call_on_loop(self._delete_screenshot, path)

    def delete_last_screenshot(self):
        return self._call_on_loop(self._delete_last_screenshot)

    def _delete_screenshot(self, path: str) -> bool:
        try:
            which = self._queues.delete(path)
        except ScreenshotNotFoundError:
            logger.warning(f"Delete requested for a screenshot not in any queue: {path}")
            self.screenshot_delete_failed.emit("That screenshot is no longer in the queue.")
            return False
        except ScreenshotDeleteError as e:
            logger.error(f"Screenshot file could not be deleted: {e}")
            self.screenshot_delete_failed.emit(f"Screenshot removed from the queue. {e.strerror}")
            return False
        logger.info(f"Screenshot deleted by user from {which.value} queue")
        return True

    def _delete_last_screenshot(self) -> bool:
        refs = self._queues.list(self._state_machine.capture_queue())
        if not refs:
            self.screenshot_delete_failed.emit("No screenshots to delete.")
            return False
        return self._delete_screenshot(str(refs[-1].path))

    # --- Session token -------------------------------------------------------

    def _on_sign_in_requested(self):
        token, accepted = QInputDialog.getText(
            None, "Ezzi - Sign In", "Session token:", QLineEdit.EchoMode.Password
        )
        token = token.strip()
        if accepted and token:
            self.sign_in(token)

    def sign_in(self, token: str, expires_in: Optional[float] = None):
        self._tray.show_message("Ezzi", "Signed in")
        return self._call_on_loop(self._context.auth.set_token, token, expires_in)

    def sign_out(self):
        self._tray.show_message("Ezzi", "Signed out")
        return self._call_on_loop(self._context.auth.clear)

    # --- Queue status (loop thread) ------------------------------------------

    def _publish_queue_status(self, which: QueueName):
        primary = len(self._queues.list(QueueName.PRIMARY))
        extra = len(self._queues.list(QueueName.EXTRA))
        if self._state_machine.is_queue_view:
            text = f"Queue: {primary} screenshot(s). Process when ready."
        elif self._context.has_debugged:
            text = f"Solutions (debugged). Follow-up screenshots: {extra}"
        else:
            text = f"Solutions. Follow-up screenshots: {extra}"
        self.queue_status_changed.emit(text)
        self._submit(self._refresh_previews())

    async def _refresh_previews(self) -> List[Tuple[str, str]]:
        self._preview_generation += 1
        generation = self._preview_generation

        previews = []
        for ref in self._queues.list(self._state_machine.capture_queue()):
            try:
                previews.append((str(ref.path), await self._queues.get_preview(ref)))
            except OSError as e:
                logger.warning(f"No preview for {ref.name}: {e}")

        # a newer refresh started while this one was reading files
        if generation != self._preview_generation:
            return previews
        self.previews_changed.emit(previews)
        return previews

    # --- GUI slots -----------------------------------------------------------

    def _on_view_changed(self, event: ViewChangeEvent):
        logger.debug(f"View changed to {event.to_state.value} ({event.trigger})")
        if event.to_state == ViewState.QUEUE:
            self._overlay.clear_solution()
        self._call_on_loop(self._publish_queue_status, QueueName.PRIMARY)

    def _on_solve_start(self):
        self._tray.set_processing(True)
        self._overlay.show_message("Generating solution...")

    def _on_solve_success(self, solution: SolveResponse):
        self._tray.set_processing(False)
        self._overlay.show_solution(solution)

    def _on_debug_start(self):
        self._tray.set_processing(True)
        self._overlay.show_message("Debugging with your follow-up screenshots...")

    def _on_debug_success(self, solution: SolveResponse):
        self._tray.set_processing(False)
        self._overlay.show_solution(solution)
        self._call_on_loop(self._publish_queue_status, QueueName.EXTRA)

    def _on_processing_error(self, message: str):
        self._tray.set_processing(False)
        self._overlay.show_message(message)

    def _on_no_screenshots(self):
        self._tray.set_processing(False)
        self._overlay.show_message("No screenshots to process.")

    def _on_reset_view(self):
        self._tray.set_processing(False)
        self._overlay.clear_solution()

    def _on_capture_failed(self, message: str):
        self._overlay.show_message(message)
        self._tray.show_message("Screenshot failed", message)

    def _on_delete_failed(self, message: str):
        self._overlay.show_message(message)
        self._tray.show_message("Delete failed", message)

    def _on_focus_regained(self):
        self._call_on_loop(self._reconciler.on_focus_regained)

    def _on_quit_requested(self):
        self.shutdown()
        self.app_shutdown.emit()

    # --- Shutdown ------------------------------------------------------------

    def shutdown(self):
        """Cancel in-flight work and release resources. Safe to call more than once."""
        if self._shut_down:
            return
        self._shut_down = True
        logger.info("Shutting down Ezzi...")

        if self._controller and self._async_manager and self._async_manager.is_initialized():
            try:
                self._async_manager.run_blocking(self._cancel_on_loop())
            except Exception as e:
                logger.warning(f"Could not cancel in-flight requests: {e}")

        if self._settings:
            self._settings.remove_change_callback(self._on_setting_changed)
        if self._api_client:
            self._api_client.close()
        if self._tray:
            self._tray.hide()
        if self._async_manager:
            self._async_manager.shutdown()
        if self._settings:
            self._settings.save()

        logger.info("Ezzi shutdown completed")

    async def _cancel_on_loop(self) -> bool:
        return self._controller.cancel_ongoing()
