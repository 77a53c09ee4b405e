"""Cooperative cancellation tokens for in-flight requests."""

import asyncio
from enum import Enum
from typing import Optional


class CancelReason(Enum):
    USER = "user"              # cancel/reset action
    SUPERSEDED = "superseded"  # replaced by a newer request of the same kind
    SHUTDOWN = "shutdown"


class CancelToken:
    """
    A one-shot cancellation flag that coroutines can await.

    Must be created and used on the event loop that runs the request.
    """

    def __init__(self, label: str = ""):
        self.label = label
        self._event = asyncio.Event()
        self._reason: Optional[CancelReason] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[CancelReason]:
        return self._reason

    def cancel(self, reason: CancelReason = CancelReason.USER) -> bool:
        """Cancel the token. Returns False if it was already cancelled."""
        if self._event.is_set():
            return False
        self._reason = reason
        self._event.set()
        return True

    async def wait(self) -> CancelReason:
        await self._event.wait()
        return self._reason

    def __repr__(self) -> str:
        state = f"cancelled:{self._reason.value}" if self._reason else "active"
        return f"CancelToken({self.label!r}, {state})"
