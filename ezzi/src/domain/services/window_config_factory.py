"""
Window configuration tables for Ezzi.

``compute_config`` is a pure lookup from (app mode, phase) to the window
attributes the overlay should have. The tables are built once at import.
"""

import logging
from dataclasses import replace
from typing import Dict, Mapping, Optional
from types import MappingProxyType

from ..models.app_state import AppMode
from ..models.window_config import (
    AlwaysOnTopLevel,
    DarwinWindowOptions,
    PlatformWindowOptions,
    VisibilityPhase,
    WindowBehaviorConfig,
    WindowVisibilityConfig,
    Win32WindowOptions,
)

logger = logging.getLogger("ezzi.window_config")

_STEALTH_PLATFORM = PlatformWindowOptions(
    darwin=DarwinWindowOptions(),
    win32=Win32WindowOptions(),
)

_LIVE_INTERVIEW_SHOW = WindowVisibilityConfig(
    opacity=1.0,
    ignore_mouse_events=False,
    skip_taskbar=True,
    always_on_top=True,
    always_on_top_level=AlwaysOnTopLevel.SCREEN_SAVER,
    visible_on_all_workspaces=True,
    visible_on_full_screen=True,
    focusable=True,
    content_protection=True,
    platform=_STEALTH_PLATFORM,
)

LIVE_INTERVIEW_BEHAVIOR = WindowBehaviorConfig(
    show=_LIVE_INTERVIEW_SHOW,
    hide=replace(_LIVE_INTERVIEW_SHOW, opacity=0.0, ignore_mouse_events=True, focusable=False),
    # Empty queue needs clicks (sign-in, mode picker); with screenshots the
    # overlay turns click-through so it never steals focus from the interview.
    queue_empty=replace(_LIVE_INTERVIEW_SHOW, ignore_mouse_events=False, focusable=True),
    queue_with_screenshots=replace(_LIVE_INTERVIEW_SHOW, ignore_mouse_events=True, focusable=False),
)

_LEETCODE_SHOW = replace(
    _LIVE_INTERVIEW_SHOW,
    always_on_top_level=AlwaysOnTopLevel.FLOATING,
    visible_on_full_screen=False,
)

LEETCODE_SOLVER_BEHAVIOR = WindowBehaviorConfig(
    show=_LEETCODE_SHOW,
    hide=replace(_LEETCODE_SHOW, opacity=0.0, ignore_mouse_events=True, focusable=False),
    queue_empty=_LEETCODE_SHOW,
    queue_with_screenshots=_LEETCODE_SHOW,
)


class WindowConfigFactory:
    """
    Registry of window behaviour tables keyed by app mode.

    Unknown modes fall back to the first registered table.
    """

    def __init__(self, behaviors: Optional[Mapping[AppMode, WindowBehaviorConfig]] = None):
        table: Dict[AppMode, WindowBehaviorConfig] = dict(behaviors) if behaviors else {
            AppMode.LIVE_INTERVIEW: LIVE_INTERVIEW_BEHAVIOR,
            AppMode.LEETCODE_SOLVER: LEETCODE_SOLVER_BEHAVIOR,
        }
        if not table:
            raise ValueError("At least one window behaviour must be registered")
        self._behaviors = MappingProxyType(table)
        self._default_mode = next(iter(table))

    @property
    def modes(self):
        return tuple(self._behaviors)

    def get_behavior(self, app_mode) -> WindowBehaviorConfig:
        behavior = self._behaviors.get(app_mode)
        if behavior is None:
            logger.warning(f"No window behaviour for mode {app_mode!r}, using {self._default_mode.value}")
            behavior = self._behaviors[self._default_mode]
        return behavior

    def compute_config(self, app_mode, phase: VisibilityPhase) -> WindowVisibilityConfig:
        return self.get_behavior(app_mode).for_phase(phase)


_default_factory = WindowConfigFactory()


def compute_config(app_mode, phase: VisibilityPhase) -> WindowVisibilityConfig:
    """Window configuration for ``app_mode`` in ``phase`` using the built-in tables."""
    return _default_factory.compute_config(app_mode, phase)
