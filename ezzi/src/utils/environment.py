"""
Environment toggles.

``IS_MOCK`` asks the solving service for canned responses,
``EZZI_SELF_HOSTED_MODE`` disables authentication and
``EZZI_API_BASE_URL`` points the client at another server.
"""

import os
from typing import Optional

MOCK_ENV = "IS_MOCK"
SELF_HOSTED_ENV = "EZZI_SELF_HOSTED_MODE"
API_BASE_URL_ENV = "EZZI_API_BASE_URL"

_TRUTHY = {"1", "true", "yes", "on"}


def _flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in _TRUTHY


def is_mock_mode() -> bool:
    return _flag(MOCK_ENV)


def is_self_hosted() -> bool:
    return _flag(SELF_HOSTED_ENV)


def api_base_url_override() -> Optional[str]:
    value = os.environ.get(API_BASE_URL_ENV, "").strip()
    return value.rstrip("/") or None
