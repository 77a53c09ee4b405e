"""
Solving Service API Client for Ezzi.

Posts screenshots to the remote solving service and classifies every
failure into the processing error taxonomy. Requests are single-attempt;
re-running is always an explicit user action.
"""

import json
import logging
from typing import Dict, Any, Optional
from urllib.parse import urljoin
import requests
from dataclasses import dataclass

from .session_manager import session_manager
from ...domain.models.processing import ProcessingErrorKind, TIMEOUT_MARKER

logger = logging.getLogger("ezzi.api_client")

DEFAULT_TIMEOUT_SECONDS = 300


@dataclass
class APIResponse:
    """Standard API response wrapper."""
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    error_kind: Optional[ProcessingErrorKind] = None
    status_code: Optional[int] = None
    headers: Optional[Dict[str, str]] = None


class APIClientError(Exception):
    """Base exception for API client errors."""
    kind = ProcessingErrorKind.SERVER_ERROR

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(APIClientError):
    """Token missing, invalid or expired (401)."""
    kind = ProcessingErrorKind.UNAUTHORIZED


class QuotaExhaustedError(APIClientError):
    """Payment required or subscription inactive (402/403)."""
    kind = ProcessingErrorKind.QUOTA_EXHAUSTED


class RemoteTimeoutError(APIClientError):
    """The solving service gave up on the request itself."""
    kind = ProcessingErrorKind.REMOTE_TIMEOUT


class APIServerError(APIClientError):
    """Any other error response."""
    kind = ProcessingErrorKind.SERVER_ERROR


class NetworkError(APIClientError):
    """No response was received (connection failure or transport timeout)."""
    kind = ProcessingErrorKind.NETWORK_ERROR


def extract_error_message(payload: Any) -> Optional[str]:
    """Pull the message out of ``{"error": "..."}`` or ``{"error": {"message": "..."}}``."""
    if not isinstance(payload, dict):
        return None
    error = payload.get("error")
    if isinstance(error, dict):
        error = error.get("message")
    if error:
        return str(error)
    message = payload.get("message")
    return str(message) if message else None


def has_timeout_marker(message: Optional[str]) -> bool:
    return bool(message) and TIMEOUT_MARKER in message.lower()


class SolvingApiClient:
    """
    HTTP client for the solving service.

    All modes share one client; endpoints and auth headers are supplied per
    request by the mode processors.
    """

    def __init__(
        self,
        base_url: str,
        timeout: int = DEFAULT_TIMEOUT_SECONDS,
        verify_ssl: bool = True,
    ):
        """
        Initialize the API client.

        Args:
            base_url: Base API URL (e.g., http://localhost:3000)
            timeout: Transport timeout in seconds, the only hard upper bound on a request
            verify_ssl: Verify TLS certificates
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout

        session_manager.configure_session(timeout=timeout, max_retries=0, verify_ssl=verify_ssl)

        logger.info(f"API client initialized: {self.base_url}")

    def build_url(self, endpoint: str) -> str:
        return urljoin(f"{self.base_url}/", endpoint.lstrip('/'))

    def _handle_error_response(self, response: requests.Response) -> APIClientError:
        """Convert HTTP error responses to appropriate exceptions."""
        try:
            error_message = extract_error_message(response.json())
        except (json.JSONDecodeError, ValueError):
            error_message = None
        if not error_message:
            error_message = f"HTTP {response.status_code}: {response.text[:200]}"

        status = response.status_code
        if status == 401:
            return AuthenticationError(error_message, status)
        if status in (402, 403):
            return QuotaExhaustedError(error_message, status)
        if status == 408 or has_timeout_marker(error_message):
            return RemoteTimeoutError(error_message, status)
        return APIServerError(error_message, status)

    def _make_request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> APIResponse:
        """
        Make a single HTTP request.

        Returns:
            APIResponse object with success/error information
        """
        url = self.build_url(endpoint)
        try:
            response = session_manager.make_request(
                method=method,
                url=url,
                json=data,
                headers=headers or {},
                timeout=self.timeout,
            )
        except requests.Timeout:
            return self._error_response(NetworkError(f"Request timeout after {self.timeout}s"))
        except requests.ConnectionError as e:
            return self._error_response(NetworkError(f"Connection error: {e}"))
        except requests.RequestException as e:
            return self._error_response(NetworkError(f"Network error: {e}"))

        if response.status_code >= 400:
            return self._error_response(self._handle_error_response(response), response)

        try:
            response_data = response.json()
        except (json.JSONDecodeError, ValueError):
            response_data = {"text": response.text}

        # Some failures arrive with a 2xx status and only an ``error`` field
        if isinstance(response_data, dict) and response_data.get("error") and "code" not in response_data:
            message = extract_error_message(response_data)
            if has_timeout_marker(message):
                error = RemoteTimeoutError(message, response.status_code)
            else:
                error = APIServerError(message, response.status_code)
            return self._error_response(error, response)

        return APIResponse(
            success=True,
            data=response_data,
            status_code=response.status_code,
            headers=dict(response.headers),
        )

    def _error_response(self, error: APIClientError,
                        response: Optional[requests.Response] = None) -> APIResponse:
        logger.error(f"API request failed ({error.kind.value}): {error}")
        return APIResponse(
            success=False,
            error=str(error),
            error_kind=error.kind,
            status_code=error.status_code if error.status_code is not None else (
                response.status_code if response is not None else None),
            headers=dict(response.headers) if response is not None else None,
        )

    def post(self, endpoint: str, payload: Dict[str, Any],
             headers: Optional[Dict[str, str]] = None) -> APIResponse:
        """POST ``payload`` as JSON to ``endpoint``. Blocking; run it off the event loop."""
        return self._make_request("POST", endpoint, data=payload, headers=headers)

    def close(self):
        session_manager.close()
