"""
Processor for LeetCode solver mode.

The service keeps a conversation per problem: the solve response carries a
``conversationId`` and every debug request must send it back.
"""

from typing import Any, Dict, Optional

from .base_processor import AppModeProcessor, ProcessingParams
from ...domain.models.app_state import AppMode, OperationKind
from ...domain.models.processing import ProcessingErrorKind, ProcessingResult

MISSING_CONVERSATION_MESSAGE = (
    "Conversation ID is required for debug requests. Please solve a problem first."
)


class LeetCodeProcessor(AppModeProcessor):
    mode = AppMode.LEETCODE_SOLVER
    solve_endpoint = "/leetcode/solve"
    debug_endpoint = "/leetcode/debug"
    quota_message = "You need an active subscription to continue. Please upgrade."

    def validate_debug(self, params: ProcessingParams) -> Optional[ProcessingResult]:
        if not params.conversation_id:
            return ProcessingResult.failure(ProcessingErrorKind.SERVER_ERROR, MISSING_CONVERSATION_MESSAGE)
        return None

    def build_payload(self, kind: OperationKind, params: ProcessingParams) -> Dict[str, Any]:
        payload = super().build_payload(kind, params)
        if kind is OperationKind.DEBUG:
            payload["conversationId"] = params.conversation_id
        return payload
