"""
Session context shared by the processing controller and its collaborators.

One instance per running application. It replaces ambient globals: every
component that needs the view, the queues or the app mode is handed this
object explicitly.
"""

from dataclasses import dataclass, field
from typing import Optional, Protocol

from PyQt6.QtCore import QObject, pyqtSignal

from ..domain.models.app_state import AppMode
from ..domain.models.processing import OverlapPolicy, SolveResponse
from ..domain.services.state_machine import ViewStateMachine
from ..infrastructure.processors.processor_registry import ProcessorRegistry
from ..utils.environment import is_mock_mode, is_self_hosted
from .screenshot_queue import ScreenshotQueueManager


class TokenStore(Protocol):
    def get_token(self) -> Optional[str]:
        ...


class ProcessingEvents(QObject):
    """Fire-and-forget notifications for the UI."""

    solve_start = pyqtSignal()
    solve_success = pyqtSignal(object)   # SolveResponse
    solve_error = pyqtSignal(str)
    debug_start = pyqtSignal()
    debug_success = pyqtSignal(object)   # DebugResponse
    debug_error = pyqtSignal(str)
    no_screenshots = pyqtSignal()
    reset_view = pyqtSignal()


@dataclass
class ProcessingOptions:
    """Per-request options that do not depend on the screenshots."""
    language: str = "python"
    locale: str = "en-US"
    is_mock: bool = False
    self_hosted: bool = False
    overlap_policy: OverlapPolicy = OverlapPolicy.REJECT

    @classmethod
    def from_settings(cls, settings) -> "ProcessingOptions":
        """Read options from a SettingsManager; environment toggles win over stored values."""
        return cls(
            language=settings.get('processing.language', 'python'),
            locale=settings.get('processing.locale', 'en-US'),
            is_mock=is_mock_mode(),
            self_hosted=is_self_hosted(),
            overlap_policy=OverlapPolicy.from_value(settings.get('processing.overlap_policy', 'reject')),
        )


@dataclass
class SessionContext:
    state_machine: ViewStateMachine
    queues: ScreenshotQueueManager
    processors: ProcessorRegistry
    events: ProcessingEvents
    auth: Optional[TokenStore] = None
    options: ProcessingOptions = field(default_factory=ProcessingOptions)
    app_mode: AppMode = AppMode.LIVE_INTERVIEW
    solution: Optional[SolveResponse] = None
    conversation_id: Optional[str] = None
    has_debugged: bool = False
