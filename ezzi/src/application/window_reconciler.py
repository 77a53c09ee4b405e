"""
Window Visibility Reconciler for Ezzi.

Keeps the native overlay window's attributes in line with the logical
state (app mode, view, whether the primary queue is empty, shown or
hidden). Configs come from ``WindowConfigFactory``; applying one is a
single batch of setter calls bracketed by a bounds save/restore because
several native setters move or resize the window as a side effect.
"""

import logging
import sys
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Optional

from .session_context import SessionContext
from ..domain.models.app_state import ViewChangeEvent
from ..domain.models.screenshot import QueueName
from ..domain.models.window_config import (
    AlwaysOnTopLevel,
    PlatformWindowOptions,
    VisibilityPhase,
    WindowBounds,
    WindowVisibilityConfig,
)
from ..domain.services.window_config_factory import WindowConfigFactory

logger = logging.getLogger("ezzi.window_reconciler")

DEFAULT_TOGGLE_COOLDOWN = 0.3
DEFAULT_MOVE_STEP = 60


class NativeWindow(ABC):
    """The window operations the reconciler relies on."""

    @abstractmethod
    def get_bounds(self) -> WindowBounds: ...

    @abstractmethod
    def set_bounds(self, bounds: WindowBounds): ...

    @abstractmethod
    def screen_geometry(self) -> WindowBounds:
        """Available geometry of the screen the window is on."""

    @abstractmethod
    def set_opacity(self, opacity: float): ...

    @abstractmethod
    def set_ignore_mouse_events(self, ignore: bool): ...

    @abstractmethod
    def set_focusable(self, focusable: bool): ...

    @abstractmethod
    def set_skip_taskbar(self, skip: bool): ...

    @abstractmethod
    def set_always_on_top(self, on_top: bool, level: AlwaysOnTopLevel): ...

    @abstractmethod
    def set_visible_on_all_workspaces(self, visible: bool, visible_on_full_screen: bool): ...

    @abstractmethod
    def set_content_protection(self, enabled: bool): ...

    def apply_platform_options(self, options):
        """Apply the DarwinWindowOptions / Win32WindowOptions for this OS."""

    @abstractmethod
    def show_inactive(self): ...

    @abstractmethod
    def hide(self): ...

    @abstractmethod
    def is_visible(self) -> bool: ...


class MoveDirection(Enum):
    LEFT = (-1, 0)
    RIGHT = (1, 0)
    UP = (0, -1)
    DOWN = (0, 1)


class WindowVisibilityReconciler:
    """Applies window configs on show, hide, queue changes, focus and mode changes."""

    def __init__(
        self,
        window: NativeWindow,
        context: SessionContext,
        config_factory: Optional[WindowConfigFactory] = None,
        platform: str = sys.platform,
        toggle_cooldown: float = DEFAULT_TOGGLE_COOLDOWN,
        move_step: int = DEFAULT_MOVE_STEP,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._window = window
        self._ctx = context
        self._factory = config_factory or WindowConfigFactory()
        self._platform = platform
        self._toggle_cooldown = toggle_cooldown
        self._move_step = move_step
        self._clock = clock

        self._visible = window.is_visible()
        self._stored_bounds: Optional[WindowBounds] = None
        self._last_toggle: Optional[float] = None
        self._last_queue_empty: Optional[bool] = None
        self._last_applied: Optional[WindowVisibilityConfig] = None

    @property
    def visible(self) -> bool:
        return self._visible

    @property
    def last_applied(self) -> Optional[WindowVisibilityConfig]:
        return self._last_applied

    def current_phase(self) -> VisibilityPhase:
        if not self._visible:
            return VisibilityPhase.HIDE
        if self._ctx.state_machine.is_queue_view:
            if self._ctx.queues.is_empty(QueueName.PRIMARY):
                return VisibilityPhase.QUEUE_EMPTY
            return VisibilityPhase.QUEUE_NON_EMPTY
        return VisibilityPhase.SHOW

    def current_config(self) -> WindowVisibilityConfig:
        return self._factory.compute_config(self._ctx.app_mode, self.current_phase())

    # --- Applying ------------------------------------------------------------

    def apply(self, config: WindowVisibilityConfig):
        """Write every attribute of ``config`` to the window, keeping its bounds."""
        bounds = self._window.get_bounds()

        self._window.set_ignore_mouse_events(config.ignore_mouse_events)
        self._window.set_focusable(config.focusable)
        self._window.set_skip_taskbar(config.skip_taskbar)
        self._window.set_always_on_top(config.always_on_top, config.always_on_top_level)
        self._window.set_visible_on_all_workspaces(config.visible_on_all_workspaces,
                                                   config.visible_on_full_screen)
        self._window.set_content_protection(config.content_protection)
        platform_options = self._platform_options(config.platform)
        if platform_options is not None:
            self._window.apply_platform_options(platform_options)
        self._window.set_opacity(config.opacity)

        self._window.set_bounds(bounds)
        self._last_applied = config
        logger.debug(f"Applied window config: {config}")

    def _platform_options(self, options: Optional[PlatformWindowOptions]):
        if options is None:
            return None
        if self._platform == "darwin":
            return options.darwin
        if self._platform == "win32":
            return options.win32
        return None

    def reconcile(self, reason: str = "state_changed"):
        """Re-apply the config for the current phase."""
        logger.debug(f"Reconciling window ({reason}): {self.current_phase().value}")
        self.apply(self.current_config())

    # --- Show / hide ---------------------------------------------------------

    def show(self):
        if self._stored_bounds is not None:
            self._window.set_bounds(self._stored_bounds)
        self._visible = True
        self._last_queue_empty = self._ctx.queues.is_empty(QueueName.PRIMARY)

        # Show fully transparent first so the window never flashes in its old state
        self._window.set_opacity(0.0)
        self._window.show_inactive()
        self.reconcile("show")
        logger.info("Overlay shown")

    def hide(self):
        self._stored_bounds = self._window.get_bounds()
        self._visible = False
        self.reconcile("hide")
        self._window.hide()
        logger.info("Overlay hidden")

    def toggle(self) -> bool:
        """
        Show or hide the window.

        Calls within the cool-down of the previous toggle are ignored and
        return False.
        """
        now = self._clock()
        if self._last_toggle is not None and now - self._last_toggle < self._toggle_cooldown:
            logger.debug("Toggle ignored (cool-down)")
            return False
        self._last_toggle = now

        if self._visible:
            self.hide()
        else:
            self.show()
        return True

    # --- Triggers ------------------------------------------------------------

    def on_queue_changed(self, which: QueueName):
        """React to the primary queue turning empty or non-empty while in the queue view."""
        if which is not QueueName.PRIMARY or not self._visible:
            return
        if not self._ctx.state_machine.is_queue_view:
            return
        empty = self._ctx.queues.is_empty(QueueName.PRIMARY)
        if empty == self._last_queue_empty:
            return
        self._last_queue_empty = empty
        self.reconcile("queue_empty" if empty else "queue_non_empty")

    def on_view_changed(self, event: Optional[ViewChangeEvent] = None):
        if self._visible:
            self._last_queue_empty = self._ctx.queues.is_empty(QueueName.PRIMARY)
            self.reconcile("view_changed")

    def on_focus_regained(self):
        """The OS may have reset always-on-top or taskbar state; put it back."""
        if self._visible:
            self.reconcile("focus")

    def on_app_mode_changed(self, *_):
        self.reconcile("app_mode_changed")

    # --- Movement ------------------------------------------------------------

    def move(self, direction: MoveDirection):
        """
        Nudge the window one step.

        Horizontally at most half the window may leave the screen,
        vertically at most two thirds.
        """
        dx, dy = direction.value
        bounds = self._stored_bounds if not self._visible and self._stored_bounds else self._window.get_bounds()
        screen = self._window.screen_geometry()

        x = bounds.x + dx * self._move_step
        y = bounds.y + dy * self._move_step

        min_x = screen.x - bounds.width // 2
        max_x = screen.x + screen.width - bounds.width // 2
        min_y = screen.y - (bounds.height * 2) // 3
        max_y = screen.y + screen.height - bounds.height // 3

        moved = bounds.moved_to(max(min_x, min(x, max_x)), max(min_y, min(y, max_y)))
        if self._visible:
            self._window.set_bounds(moved)
        else:
            self._stored_bounds = moved
        logger.debug(f"Window moved {direction.name.lower()} to ({moved.x}, {moved.y})")
