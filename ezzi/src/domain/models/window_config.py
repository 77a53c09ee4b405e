"""
Window visibility models for Ezzi.

Immutable values describing how the overlay window should look and behave
in a given phase (shown, hidden, empty queue, queue with screenshots).
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional


class VisibilityPhase(Enum):
    """Inputs to window configuration selection."""
    SHOW = "show"
    HIDE = "hide"
    QUEUE_EMPTY = "queue_empty"
    QUEUE_NON_EMPTY = "queue_non_empty"


class AlwaysOnTopLevel(Enum):
    """Stacking level requested from the window system."""
    NORMAL = "normal"
    FLOATING = "floating"
    SCREEN_SAVER = "screen-saver"


@dataclass(frozen=True)
class WindowBounds:
    """Window geometry in screen coordinates."""
    x: int
    y: int
    width: int
    height: int

    def moved_to(self, x: int, y: int) -> "WindowBounds":
        return replace(self, x=x, y=y)


@dataclass(frozen=True)
class DarwinWindowOptions:
    """macOS-only window attributes."""
    hidden_in_mission_control: bool = True
    window_button_visibility: bool = False
    background_color: str = "#00000000"
    has_shadow: bool = False


@dataclass(frozen=True)
class Win32WindowOptions:
    """Windows-only window attributes."""
    thick_frame: bool = False


@dataclass(frozen=True)
class PlatformWindowOptions:
    darwin: Optional[DarwinWindowOptions] = None
    win32: Optional[Win32WindowOptions] = None


@dataclass(frozen=True)
class WindowVisibilityConfig:
    """Full set of native window attributes applied in one batch."""
    opacity: float = 1.0
    ignore_mouse_events: bool = False
    skip_taskbar: bool = True
    always_on_top: bool = True
    always_on_top_level: AlwaysOnTopLevel = AlwaysOnTopLevel.SCREEN_SAVER
    visible_on_all_workspaces: bool = True
    visible_on_full_screen: bool = True
    focusable: bool = True
    content_protection: bool = True
    platform: Optional[PlatformWindowOptions] = None

    def __post_init__(self):
        if not 0.0 <= self.opacity <= 1.0:
            raise ValueError(f"opacity must be within [0, 1], got {self.opacity}")


@dataclass(frozen=True)
class WindowBehaviorConfig:
    """Per app-mode table of visibility configs, one per phase."""
    show: WindowVisibilityConfig
    hide: WindowVisibilityConfig
    queue_empty: WindowVisibilityConfig
    queue_with_screenshots: WindowVisibilityConfig

    def for_phase(self, phase: VisibilityPhase) -> WindowVisibilityConfig:
        return {
            VisibilityPhase.SHOW: self.show,
            VisibilityPhase.HIDE: self.hide,
            VisibilityPhase.QUEUE_EMPTY: self.queue_empty,
            VisibilityPhase.QUEUE_NON_EMPTY: self.queue_with_screenshots,
        }[phase]
