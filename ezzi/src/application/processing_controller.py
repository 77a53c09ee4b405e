"""
Processing Controller for Ezzi.

Runs solve and debug requests against the active app-mode processor and
turns every outcome into a UI notification plus a view transition. At most
one request per operation kind is in flight; what happens when another is
requested is decided by the configured overlap policy.

All methods must be called on the event loop thread. Slots are set before
the first await and released in ``finally``, which is enough because
nothing else touches them between suspension points.
"""

import asyncio
import logging
import time
from typing import Dict, List, Optional, Sequence

from .session_context import SessionContext
from ..domain.models.app_state import OperationKind
from ..domain.models.processing import (
    AUTH_REQUIRED_MESSAGE,
    GENERIC_SERVER_ERROR_MESSAGE,
    OverlapPolicy,
    ProcessingErrorKind,
    ProcessingResult,
)
from ..domain.models.screenshot import QueueName, ScreenshotRef
from ..domain.services.cancellation import CancelReason, CancelToken
from ..infrastructure.logging.logging_config import log_performance
from ..infrastructure.processors.base_processor import ProcessingParams

logger = logging.getLogger("ezzi.processing")


class ProcessingController:
    """Owns the in-flight request slots for one session."""

    def __init__(self, context: SessionContext):
        self._ctx = context
        self._in_flight: Dict[OperationKind, CancelToken] = {}
        self._outcomes: Dict[OperationKind, asyncio.Future] = {}

    @property
    def context(self) -> SessionContext:
        return self._ctx

    def is_processing(self, kind: Optional[OperationKind] = None) -> bool:
        if kind is None:
            return bool(self._in_flight)
        return kind in self._in_flight

    # --- Public operations ---------------------------------------------------

    async def run_solve(self) -> Optional[ProcessingResult]:
        """
        Process whatever the current view calls for.

        In the queue view this solves the primary queue; in the solutions
        view it debugs with the primary and extra screenshots combined.
        """
        if self._ctx.state_machine.is_queue_view:
            return await self.solve()
        return await self._run(OperationKind.DEBUG, require_extra=False)

    async def solve(self) -> Optional[ProcessingResult]:
        """Solve the problem in the primary queue."""
        return await self._run(OperationKind.SOLVE)

    async def debug(self) -> Optional[ProcessingResult]:
        """Revise the current solution using the extra queue. Requires follow-up screenshots."""
        return await self._run(OperationKind.DEBUG, require_extra=True)

    def cancel_ongoing(self) -> bool:
        """
        Cancel every in-flight request.

        Emits ``no_screenshots`` only when something was actually cancelled.
        Returns True in that case.
        """
        cancelled = False
        for kind, token in list(self._in_flight.items()):
            if token.cancel(CancelReason.USER):
                logger.info(f"Canceled in-flight {kind.value} request")
                cancelled = True
        self._in_flight.clear()
        self._outcomes.clear()
        self._ctx.has_debugged = False

        if cancelled:
            self._ctx.events.no_screenshots.emit()
        return cancelled

    def reset(self, trigger: str = "reset"):
        """Cancel everything, empty both queues and go back to the queue view."""
        self.cancel_ongoing()
        self._ctx.queues.clear_all()
        self._ctx.solution = None
        self._ctx.conversation_id = None
        self._ctx.state_machine.reset(trigger)
        self._ctx.events.reset_view.emit()
        logger.info(f"Session reset ({trigger})")

    # --- Dispatch ------------------------------------------------------------

    def _screenshots_for(self, kind: OperationKind, require_extra: bool) -> List[ScreenshotRef]:
        queues = self._ctx.queues
        primary = list(queues.list(QueueName.PRIMARY))
        if kind is OperationKind.SOLVE:
            return primary
        extra = list(queues.list(QueueName.EXTRA))
        if require_extra and not extra:
            return []
        return primary + extra

    async def _run(self, kind: OperationKind, require_extra: bool = False) -> Optional[ProcessingResult]:
        # An empty request must never disturb one that is already running
        refs = self._screenshots_for(kind, require_extra)
        if not refs:
            logger.info(f"No screenshots to {kind.value}")
            self._ctx.events.no_screenshots.emit()
            return None

        running = self._in_flight.get(kind)
        if running is not None:
            policy = self._ctx.options.overlap_policy
            if policy is OverlapPolicy.REJECT:
                logger.warning(f"{kind.value} already in progress, ignoring new request")
                return None
            if policy is OverlapPolicy.COALESCE:
                logger.info(f"{kind.value} already in progress, waiting for its result")
                return await asyncio.shield(self._outcomes[kind])
            logger.info(f"{kind.value} already in progress, superseding it")
            running.cancel(CancelReason.SUPERSEDED)

        token = CancelToken(kind.value)
        outcome = asyncio.get_running_loop().create_future()
        self._in_flight[kind] = token
        self._outcomes[kind] = outcome

        result: Optional[ProcessingResult] = None
        try:
            if kind is OperationKind.SOLVE:
                result = await self._solve(token, refs)
            else:
                result = await self._debug(token, refs)
            return result
        finally:
            if not outcome.done():
                outcome.set_result(result)
            self._release(kind, token)

    def _release(self, kind: OperationKind, token: CancelToken):
        # A superseding request owns the slot now; leave it alone.
        if self._in_flight.get(kind) is token:
            del self._in_flight[kind]
            self._outcomes.pop(kind, None)

    async def _request(self, kind: OperationKind, token: CancelToken,
                       refs: Sequence[ScreenshotRef]) -> ProcessingResult:
        """Build the request and hand it to the processor; never raises."""
        app_mode = self._ctx.app_mode
        processor = self._ctx.processors.get(app_mode)
        started = time.monotonic()
        try:
            headers = self._auth_headers()
            if headers is None:
                return ProcessingResult.failure(ProcessingErrorKind.UNAUTHORIZED, AUTH_REQUIRED_MESSAGE)

            params = ProcessingParams(
                images=await self._ctx.queues.encode(refs),
                language=self._ctx.options.language,
                locale=self._ctx.options.locale,
                is_mock=self._ctx.options.is_mock,
                signal=token,
                headers=headers,
                conversation_id=self._ctx.conversation_id,
            )
            if kind is OperationKind.SOLVE:
                return await processor.solve(params)
            return await processor.debug(params)
        except OSError as e:
            logger.error(f"Could not read screenshots for {kind.value}: {e}")
            return ProcessingResult.failure(ProcessingErrorKind.IO_ERROR, f"Could not read screenshot: {e}")
        except Exception as e:
            logger.exception(f"Unexpected error during {kind.value}")
            return ProcessingResult.failure(ProcessingErrorKind.SERVER_ERROR, str(e) or GENERIC_SERVER_ERROR_MESSAGE)
        finally:
            log_performance(f"{kind.value}_request", time.monotonic() - started,
                            {"app_mode": app_mode.value, "images": len(refs)})

    def _auth_headers(self) -> Optional[Dict[str, str]]:
        """Authorization header for this request; None when a token is required but missing."""
        if self._ctx.options.self_hosted:
            return {}
        token = self._ctx.auth.get_token() if self._ctx.auth else None
        if not token:
            return None
        return {"Authorization": f"Bearer {token}"}

    # --- Outcomes ------------------------------------------------------------

    async def _solve(self, token: CancelToken, refs: Sequence[ScreenshotRef]) -> ProcessingResult:
        ctx = self._ctx
        ctx.state_machine.begin_solve()
        ctx.events.solve_start.emit()
        logger.info(f"Solving {len(refs)} screenshot(s) in {ctx.app_mode.value} mode")

        result = await self._request(OperationKind.SOLVE, token, refs)

        if token.reason is CancelReason.SUPERSEDED:
            logger.debug("Superseded solve finished, dropping its result")
            return result

        if result.canceled:
            ctx.state_machine.solve_abandoned()
            ctx.events.solve_error.emit(result.error)
        elif result.success:
            ctx.queues.clear(QueueName.EXTRA)
            ctx.solution = result.data
            if result.data.conversation_id:
                ctx.conversation_id = result.data.conversation_id
            ctx.state_machine.solve_succeeded()
            ctx.events.solve_success.emit(result.data)
            logger.info("Solve succeeded")
        else:
            logger.error(f"Solve failed ({_kind_label(result)}): {result.error}")
            ctx.state_machine.solve_failed()
            ctx.events.solve_error.emit(result.error)
        return result

    async def _debug(self, token: CancelToken, refs: Sequence[ScreenshotRef]) -> ProcessingResult:
        ctx = self._ctx
        ctx.state_machine.begin_debug()
        ctx.events.debug_start.emit()
        logger.info(f"Debugging with {len(refs)} screenshot(s) in {ctx.app_mode.value} mode")

        try:
            result = await self._request(OperationKind.DEBUG, token, refs)
        finally:
            if token.reason is not CancelReason.SUPERSEDED:
                ctx.state_machine.end_debug()

        if token.reason is CancelReason.SUPERSEDED:
            logger.debug("Superseded debug finished, dropping its result")
            return result

        if result.canceled:
            ctx.events.debug_error.emit(result.error)
        elif result.success:
            ctx.solution = result.data
            ctx.has_debugged = True
            ctx.events.debug_success.emit(result.data)
            logger.info("Debug succeeded")
        else:
            logger.error(f"Debug failed ({_kind_label(result)}): {result.error}")
            ctx.events.debug_error.emit(result.error)
            if result.error_kind is ProcessingErrorKind.REMOTE_TIMEOUT:
                # A debug the server gave up on leaves nothing to recover.
                self._release(OperationKind.DEBUG, token)
                self.reset(trigger="remote_timeout")
        return result


def _kind_label(result: ProcessingResult) -> str:
    return result.error_kind.value if result.error_kind else "rejected"
