"""Processor for live interview mode."""

from .base_processor import AppModeProcessor
from ...domain.models.app_state import AppMode


class LiveInterviewProcessor(AppModeProcessor):
    mode = AppMode.LIVE_INTERVIEW
    solve_endpoint = "/solutions/solve"
    debug_endpoint = "/solutions/debug"
    quota_message = "You have used up your free solutions. Please upgrade to continue."
