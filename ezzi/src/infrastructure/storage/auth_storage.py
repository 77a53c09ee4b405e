"""
Session token storage.

The token lives encrypted in the settings file together with an optional
expiry; an expired token is cleared the first time it is read.
"""

import logging
import time
from typing import Callable, Optional

from .settings_manager import SettingsManager

logger = logging.getLogger("ezzi.auth_storage")

TOKEN_KEY = 'auth.token'
EXPIRY_KEY = 'auth.token_expiry'


class AuthStorage:
    """Reads and writes the bearer token used for solving requests."""

    def __init__(self, settings: SettingsManager, clock: Callable[[], float] = time.time):
        self._settings = settings
        self._clock = clock

    def get_token(self) -> Optional[str]:
        """Return the stored token, or None when missing or expired."""
        token = self._settings.get(TOKEN_KEY, '')
        if not token:
            return None

        expiry = self._settings.get(EXPIRY_KEY)
        if isinstance(expiry, (int, float)) and expiry <= self._clock():
            logger.info("Stored session token expired, clearing it")
            self.clear()
            return None

        return token

    def set_token(self, token: str, expires_in: Optional[float] = None):
        """Store ``token``; ``expires_in`` is a lifetime in seconds."""
        self._settings.set(TOKEN_KEY, token)
        self._settings.set(EXPIRY_KEY, self._clock() + expires_in if expires_in else None)
        logger.info("Session token stored")

    def clear(self):
        self._settings.set(TOKEN_KEY, '')
        self._settings.set(EXPIRY_KEY, None)

    @property
    def is_authenticated(self) -> bool:
        return self.get_token() is not None
