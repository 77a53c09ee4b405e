"""
Base class for app-mode request processors.

A processor knows which endpoints its mode talks to, how to shape the
request body, and how to turn the service's answer into a
``ProcessingResult``. It never retries and never raises for request
failures; cancellation comes back as a CANCELED result.
"""

import asyncio
import functools
import logging
from abc import ABC
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Type

from ..ai.api_client import APIResponse, SolvingApiClient
from ...domain.models.app_state import AppMode, OperationKind
from ...domain.models.processing import (
    DEBUG_CANCELED_MESSAGE,
    GENERIC_SERVER_ERROR_MESSAGE,
    REMOTE_TIMEOUT_MESSAGE,
    SESSION_EXPIRED_MESSAGE,
    SOLVE_CANCELED_MESSAGE,
    DebugResponse,
    ProcessingErrorKind,
    ProcessingResult,
    SolveResponse,
)
from ...domain.services.cancellation import CancelToken

logger = logging.getLogger("ezzi.processors")


@dataclass
class ProcessingParams:
    """Everything a processor needs for one request."""
    images: List[str]  # base64-encoded PNGs, oldest first
    language: str
    locale: str
    is_mock: bool
    signal: CancelToken
    headers: Dict[str, str] = field(default_factory=dict)
    conversation_id: Optional[str] = None


def _discard_result(future: "asyncio.Future") -> None:
    # Result of an abandoned request; retrieve it so asyncio does not warn.
    if not future.cancelled():
        future.exception()


class AppModeProcessor(ABC):
    """Request strategy for one application mode."""

    mode: AppMode
    solve_endpoint: str
    debug_endpoint: str
    quota_message: str = GENERIC_SERVER_ERROR_MESSAGE

    def __init__(self, api_client: SolvingApiClient):
        self._client = api_client

    async def solve(self, params: ProcessingParams) -> ProcessingResult:
        payload = self.build_payload(OperationKind.SOLVE, params)
        return await self._execute(OperationKind.SOLVE, self.solve_endpoint, payload, params, SolveResponse)

    async def debug(self, params: ProcessingParams) -> ProcessingResult:
        rejection = self.validate_debug(params)
        if rejection is not None:
            return rejection
        payload = self.build_payload(OperationKind.DEBUG, params)
        return await self._execute(OperationKind.DEBUG, self.debug_endpoint, payload, params, DebugResponse)

    def validate_debug(self, params: ProcessingParams) -> Optional[ProcessingResult]:
        """Return a failure result when a debug request cannot be sent."""
        return None

    def build_payload(self, kind: OperationKind, params: ProcessingParams) -> Dict[str, Any]:
        return {
            "images": list(params.images),
            "language": params.language,
            "locale": params.locale,
            "isMock": params.is_mock,
        }

    def user_message(self, response: APIResponse) -> str:
        """Map a failed response to the text shown to the user."""
        if response.status_code in (401, 403):
            return SESSION_EXPIRED_MESSAGE
        if response.status_code == 402:
            return self.quota_message
        if response.error_kind is ProcessingErrorKind.REMOTE_TIMEOUT:
            return response.error or REMOTE_TIMEOUT_MESSAGE
        return response.error or GENERIC_SERVER_ERROR_MESSAGE

    @staticmethod
    def cancel_message(kind: OperationKind) -> str:
        return SOLVE_CANCELED_MESSAGE if kind is OperationKind.SOLVE else DEBUG_CANCELED_MESSAGE

    async def _execute(self, kind: OperationKind, endpoint: str, payload: Dict[str, Any],
                       params: ProcessingParams, response_type: Type[SolveResponse]) -> ProcessingResult:
        """Run the blocking request on a worker thread and race it against the cancel token."""
        if params.signal.cancelled:
            return ProcessingResult.cancelled(self.cancel_message(kind))

        loop = asyncio.get_running_loop()
        request = loop.run_in_executor(
            None, functools.partial(self._client.post, endpoint, payload, params.headers)
        )
        cancel_wait = asyncio.ensure_future(params.signal.wait())
        try:
            await asyncio.wait({request, cancel_wait}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancel_wait.cancel()

        if params.signal.cancelled:
            logger.info(f"{self.mode.value} {kind.value} request canceled")
            request.add_done_callback(_discard_result)
            return ProcessingResult.cancelled(self.cancel_message(kind))

        try:
            response: APIResponse = request.result()
        except Exception as e:
            logger.exception(f"{self.mode.value} {kind.value} request raised unexpectedly")
            return ProcessingResult.failure(ProcessingErrorKind.SERVER_ERROR,
                                            str(e) or GENERIC_SERVER_ERROR_MESSAGE)

        if not response.success:
            return ProcessingResult.failure(
                response.error_kind or ProcessingErrorKind.SERVER_ERROR,
                self.user_message(response),
                response.status_code,
            )

        return ProcessingResult.ok(response_type.from_payload(response.data), response.status_code)
