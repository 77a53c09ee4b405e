"""
Shared HTTP session for the solving service.

One ``requests.Session`` is reused by every solve and debug call so the
TLS connection to the service stays warm between screenshots.
"""

import logging
import threading
from typing import Optional

import requests
import urllib3
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ....__version__ import __version__

logger = logging.getLogger("ezzi.session_manager")

# solve and debug may be in flight at the same time
POOL_SIZE = 2


class SessionManager:
    """
    Owns the pooled session used for solving requests.

    The lock only guards creating and swapping the session; requests
    themselves run unlocked on executor threads.
    """

    def __init__(self):
        self._session: Optional[requests.Session] = None
        self._lock = threading.RLock()
        self._default_timeout: float = 300

    def configure_session(self, timeout: float = 300, max_retries: int = 0, verify_ssl: bool = True) -> None:
        """
        (Re)build the session.

        Args:
            timeout: Default transport timeout in seconds
            max_retries: Connection-level retries; solving requests are never retried
            verify_ssl: Verify TLS certificates of the solving service
        """
        with self._lock:
            self._close_session()

            session = requests.Session()
            adapter = HTTPAdapter(
                max_retries=Retry(total=max_retries, connect=max_retries, read=0, status=0,
                                  raise_on_status=False),
                pool_connections=POOL_SIZE,
                pool_maxsize=POOL_SIZE,
            )
            session.mount("http://", adapter)
            session.mount("https://", adapter)
            session.headers.update({
                "User-Agent": f"Ezzi/{__version__}",
                "Accept": "application/json",
            })
            session.verify = verify_ssl
            if not verify_ssl:
                urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
                logger.warning("TLS verification disabled for the solving service")

            self._session = session
            self._default_timeout = timeout
            logger.debug(f"Session configured: timeout={timeout}s retries={max_retries}")

    def make_request(self, method: str, url: str, timeout: Optional[float] = None, **kwargs) -> requests.Response:
        """
        Send one request on the shared session.

        Raises:
            RuntimeError: If configure_session() was never called
            requests.RequestException: Transport failures, passed through to the caller
        """
        with self._lock:
            session = self._session
        if session is None:
            raise RuntimeError("Session not configured. Call configure_session() first.")

        logger.debug(f"{method} {url}")
        response = session.request(method=method, url=url,
                                   timeout=timeout if timeout is not None else self._default_timeout,
                                   **kwargs)
        logger.debug(f"{method} {url} -> {response.status_code}")
        return response

    @property
    def is_configured(self) -> bool:
        with self._lock:
            return self._session is not None

    def _close_session(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None

    def close(self) -> None:
        with self._lock:
            self._close_session()
        logger.info("HTTP session closed")


session_manager = SessionManager()
