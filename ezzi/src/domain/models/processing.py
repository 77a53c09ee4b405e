"""
Processing models for Ezzi.

Request/response shapes exchanged with the solving service, the error
taxonomy used to classify failures, and the user-facing messages those
failures map to.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class ProcessingErrorKind(Enum):
    """Classification of a failed solve/debug request."""
    CANCELED = "canceled"
    UNAUTHORIZED = "unauthorized"
    QUOTA_EXHAUSTED = "quota_exhausted"
    REMOTE_TIMEOUT = "remote_timeout"
    SERVER_ERROR = "server_error"
    NETWORK_ERROR = "network_error"
    IO_ERROR = "io_error"


class OverlapPolicy(Enum):
    """What to do when an operation is requested while one of the same kind is in flight."""
    REJECT = "reject"        # keep the running request, ignore the new one
    COALESCE = "coalesce"    # the new caller waits for the running request's result
    LAST_WINS = "last_wins"  # cancel the running request and start a new one

    @classmethod
    def from_value(cls, value: Any) -> "OverlapPolicy":
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.REJECT


# User-facing messages
SESSION_EXPIRED_MESSAGE = "Your session or subscription has expired. Please sign in again."
AUTH_REQUIRED_MESSAGE = "Authentication required. Please log in."
GENERIC_SERVER_ERROR_MESSAGE = "Server error. Please try again."
SOLVE_CANCELED_MESSAGE = "Processing was canceled by the user."
DEBUG_CANCELED_MESSAGE = "Debug processing was canceled by the user."
REMOTE_TIMEOUT_MESSAGE = "The request timed out on the server. Please try again."

# The remote service reports its own soft timeout through this marker in ``error``
TIMEOUT_MARKER = "timeout"


@dataclass
class SolveResponse:
    """A proposed solution returned by the solving service."""
    code: str = ""
    thoughts: List[str] = field(default_factory=list)
    time_complexity: str = ""
    space_complexity: str = ""
    conversation_id: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_payload(cls, payload: Any) -> "SolveResponse":
        """Build from a JSON body, tolerating the ``{"data": {...}}`` envelope."""
        if not isinstance(payload, dict):
            return cls(raw={"value": payload})
        body = payload.get("data") if isinstance(payload.get("data"), dict) else payload
        thoughts = body.get("thoughts") or []
        if isinstance(thoughts, str):
            thoughts = [thoughts]
        return cls(
            code=str(body.get("code") or ""),
            thoughts=[str(t) for t in thoughts],
            time_complexity=str(body.get("time_complexity") or ""),
            space_complexity=str(body.get("space_complexity") or ""),
            conversation_id=payload.get("conversationId") or body.get("conversationId"),
            raw=payload,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "thoughts": list(self.thoughts),
            "time_complexity": self.time_complexity,
            "space_complexity": self.space_complexity,
            "conversation_id": self.conversation_id,
        }


@dataclass
class DebugResponse(SolveResponse):
    """A revised solution returned by a debug pass."""


@dataclass
class ProcessingResult:
    """Outcome of a single solve/debug request."""
    success: bool
    data: Optional[SolveResponse] = None
    error: Optional[str] = None
    error_kind: Optional[ProcessingErrorKind] = None
    status_code: Optional[int] = None

    @property
    def canceled(self) -> bool:
        return self.error_kind is ProcessingErrorKind.CANCELED

    @classmethod
    def ok(cls, data: SolveResponse, status_code: Optional[int] = None) -> "ProcessingResult":
        return cls(success=True, data=data, status_code=status_code)

    @classmethod
    def failure(
        cls,
        kind: ProcessingErrorKind,
        message: str,
        status_code: Optional[int] = None,
    ) -> "ProcessingResult":
        return cls(success=False, error=message, error_kind=kind, status_code=status_code)

    @classmethod
    def cancelled(cls, message: str) -> "ProcessingResult":
        return cls.failure(ProcessingErrorKind.CANCELED, message)
