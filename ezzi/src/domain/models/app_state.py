"""
Application State Models for Ezzi.

Defines the overlay views, application modes, operation kinds and the
events emitted when the view changes.
"""

from enum import Enum
from typing import Optional, Dict, Any
from dataclasses import dataclass
from datetime import datetime


class ViewState(Enum):
    """Which screen the overlay is showing."""
    QUEUE = "queue"          # Collecting problem screenshots
    SOLUTIONS = "solutions"  # Showing a solution, collecting follow-up screenshots
    DEBUG = "debug"          # Rendering only: solutions view with the debug overlay raised


class AppMode(Enum):
    """Application modes. Each selects a request processor and window behaviour."""
    LIVE_INTERVIEW = "live_interview"
    LEETCODE_SOLVER = "leetcode_solver"

    @classmethod
    def from_value(cls, value: Any, default: Optional["AppMode"] = None) -> Optional["AppMode"]:
        """Parse a persisted mode string, returning ``default`` when unknown."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return default


class OperationKind(Enum):
    """Network operations that can be in flight at the same time."""
    SOLVE = "solve"
    DEBUG = "debug"


class StateTransition(Enum):
    """View transitions."""
    SOLVE_DISPATCHED = "solve_dispatched"
    SOLVE_SUCCEEDED = "solve_succeeded"
    SOLVE_FAILED = "solve_failed"
    DEBUG_DISPATCHED = "debug_dispatched"
    DEBUG_FINISHED = "debug_finished"
    RESET = "reset"


@dataclass
class ViewChangeEvent:
    """Represents a view change event with metadata."""
    from_state: ViewState
    to_state: ViewState
    transition: StateTransition
    timestamp: datetime
    trigger: str  # What triggered the transition (process_action, reset_action, timeout, ...)
    debug_overlay: bool = False
    metadata: Optional[Dict[str, Any]] = None
