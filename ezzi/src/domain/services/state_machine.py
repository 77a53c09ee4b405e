"""
View State Machine for Ezzi.

Tracks which view the overlay is in (queue or solutions) plus the debug
overlay flag raised while a debug request is being processed.
"""

import logging
from typing import Callable, List, Optional
from datetime import datetime
from PyQt6.QtCore import QObject, pyqtSignal

from ..models.app_state import ViewState, StateTransition, ViewChangeEvent
from ..models.screenshot import QueueName

logger = logging.getLogger("ezzi.state_machine")


class ViewStateMachine(QObject):
    """
    State machine for the overlay view.

    Features:
    - Two persisted views: QUEUE (initial) and SOLUTIONS
    - DEBUG is not a state of its own, it is SOLUTIONS with ``debug_overlay`` set
    - Solve dispatch only records the pending move to SOLUTIONS; the view
      changes when the solve succeeds
    - Reset is always allowed and returns to QUEUE
    - Transition history for debugging
    """

    view_changed = pyqtSignal(ViewChangeEvent)
    debug_overlay_changed = pyqtSignal(bool)

    VALID_TRANSITIONS = {
        ViewState.QUEUE: {ViewState.SOLUTIONS},
        ViewState.SOLUTIONS: {ViewState.QUEUE},
    }

    def __init__(self):
        super().__init__()
        self._current_view = ViewState.QUEUE
        self._previous_view: Optional[ViewState] = None
        self._debug_overlay = False
        self._solve_pending = False
        self._transition_history: List[ViewChangeEvent] = []
        self._view_change_callbacks: List[Callable[[ViewChangeEvent], None]] = []

    @property
    def current_view(self) -> ViewState:
        """The persisted view, QUEUE or SOLUTIONS."""
        return self._current_view

    @property
    def previous_view(self) -> Optional[ViewState]:
        return self._previous_view

    @property
    def effective_view(self) -> ViewState:
        """The view to render; DEBUG while the debug overlay is raised."""
        if self._current_view == ViewState.SOLUTIONS and self._debug_overlay:
            return ViewState.DEBUG
        return self._current_view

    @property
    def debug_overlay(self) -> bool:
        return self._debug_overlay

    @property
    def solve_pending(self) -> bool:
        return self._solve_pending

    @property
    def is_queue_view(self) -> bool:
        return self._current_view == ViewState.QUEUE

    def capture_queue(self) -> QueueName:
        """Queue that new screenshots go to in the current view."""
        return QueueName.PRIMARY if self.is_queue_view else QueueName.EXTRA

    def can_transition_to(self, target_view: ViewState) -> bool:
        if target_view == self._current_view:
            return False
        return target_view in self.VALID_TRANSITIONS.get(self._current_view, set())

    def transition_to(self, target_view: ViewState, transition: StateTransition,
                      trigger: str = "user_action", metadata: Optional[dict] = None) -> bool:
        """
        Move to ``target_view``.

        Returns True when the machine ends up in ``target_view``, including
        when it already was there.
        """
        if target_view == ViewState.DEBUG:
            logger.warning("DEBUG is an overlay, not a view; ignoring transition request")
            return False

        if not self.can_transition_to(target_view):
            if target_view == self._current_view:
                logger.debug(f"Already in view {target_view.value}, no transition needed")
                return True
            logger.warning(f"Invalid transition from {self._current_view.value} to {target_view.value}")
            return False

        event = ViewChangeEvent(
            from_state=self._current_view,
            to_state=target_view,
            transition=transition,
            timestamp=datetime.now(),
            trigger=trigger,
            debug_overlay=self._debug_overlay,
            metadata=metadata or {},
        )

        self._previous_view = self._current_view
        self._current_view = target_view

        self._transition_history.append(event)
        if len(self._transition_history) > 100:
            self._transition_history = self._transition_history[-100:]

        self.view_changed.emit(event)
        for callback in self._view_change_callbacks:
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Error in view change callback: {e}")

        logger.info(f"View transition: {self._previous_view.value} -> {target_view.value} ({trigger})")
        return True

    # --- Processing lifecycle ------------------------------------------------

    def begin_solve(self, trigger: str = "solve_dispatched"):
        """Record that a solve was dispatched; the view moves only on success."""
        self._solve_pending = True
        logger.debug(f"Solve dispatched from {self._current_view.value} ({trigger})")

    def solve_succeeded(self, trigger: str = "solve_succeeded") -> bool:
        self._solve_pending = False
        return self.transition_to(ViewState.SOLUTIONS, StateTransition.SOLVE_SUCCEEDED, trigger)

    def solve_failed(self, trigger: str = "solve_failed") -> bool:
        self._solve_pending = False
        return self.transition_to(ViewState.QUEUE, StateTransition.SOLVE_FAILED, trigger)

    def solve_abandoned(self):
        """Forget a pending solve without touching the view (cancellation)."""
        self._solve_pending = False

    def begin_debug(self):
        self._set_debug_overlay(True)

    def end_debug(self):
        self._set_debug_overlay(False)

    def reset(self, trigger: str = "reset") -> bool:
        """Return to QUEUE and clear the debug overlay and any pending solve."""
        self._solve_pending = False
        self._set_debug_overlay(False)
        return self.transition_to(ViewState.QUEUE, StateTransition.RESET, trigger)

    def _set_debug_overlay(self, value: bool):
        if self._debug_overlay == value:
            return
        self._debug_overlay = value
        self.debug_overlay_changed.emit(value)
        logger.debug(f"Debug overlay {'raised' if value else 'cleared'}")

    # --- Callbacks / introspection -------------------------------------------

    def add_view_change_callback(self, callback: Callable[[ViewChangeEvent], None]):
        if callback not in self._view_change_callbacks:
            self._view_change_callbacks.append(callback)

    def remove_view_change_callback(self, callback: Callable[[ViewChangeEvent], None]):
        if callback in self._view_change_callbacks:
            self._view_change_callbacks.remove(callback)

    def get_transition_history(self, limit: int = 10) -> List[ViewChangeEvent]:
        return self._transition_history[-limit:]

    def get_state_info(self) -> dict:
        """Get comprehensive state information for debugging."""
        return {
            'current_view': self._current_view.value,
            'effective_view': self.effective_view.value,
            'previous_view': self._previous_view.value if self._previous_view else None,
            'debug_overlay': self._debug_overlay,
            'solve_pending': self._solve_pending,
            'transition_count': len(self._transition_history),
            'last_transition': self._transition_history[-1] if self._transition_history else None,
        }
