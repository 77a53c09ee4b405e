"""
Persistent settings for Ezzi.

Settings are a two-level JSON document (``section.key``) stored under the
per-user config directory. The session token is encrypted with Fernet and
stored with an ``enc:`` prefix; the key sits next to the settings file.
"""

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from cryptography.fernet import Fernet, InvalidToken
from PyQt6.QtCore import QStandardPaths

logger = logging.getLogger("ezzi.settings")

ENCRYPTED_PREFIX = 'enc:'

DEFAULT_SETTINGS: Dict[str, Dict[str, Any]] = {
    'app': {
        'app_mode': 'live_interview',
    },
    'api': {
        'base_url': 'http://localhost:3000',
        'timeout_seconds': 300,
    },
    'processing': {
        'language': 'python',
        'locale': 'en-US',
        'overlap_policy': 'reject',
    },
    'queue': {
        'max_screenshots': 2,
        'max_extra_screenshots': 0,  # 0 = unbounded
    },
    'window': {
        'width': 500,
        'height': 520,
        'x': None,  # None = centred on the primary screen
        'y': 50,
        'move_step': 60,
        'toggle_cooldown_ms': 300,
    },
    'auth': {
        'token': '',
        'token_expiry': None,  # epoch seconds
    },
    'advanced': {
        'log_level': 'INFO',
        'log_location': '',
        'log_retention_days': 10,
        'ignore_ssl_verification': False,
    },
}

# Values outside these sets or below these minimums are reset to the default on load
CHOICES = {
    'app.app_mode': ('live_interview', 'leetcode_solver'),
    'processing.overlap_policy': ('reject', 'coalesce', 'last_wins'),
    'advanced.log_level': ('DEBUG', 'INFO', 'WARNING', 'ERROR'),
}
MINIMUMS = {
    'api.timeout_seconds': 1,
    'queue.max_screenshots': 1,
    'queue.max_extra_screenshots': 0,
    'window.move_step': 1,
    'window.toggle_cooldown_ms': 0,
    'advanced.log_retention_days': 1,
}

SENSITIVE_KEYS = frozenset({'auth.token'})


def _coerce(value: Any, default: Any, key_path: str) -> Any:
    """Return ``value`` if it fits the default's type and the key's limits, else the default."""
    if default is None:
        return value

    if isinstance(default, bool):
        ok = isinstance(value, bool)
    elif isinstance(default, int):
        ok = isinstance(value, int) and not isinstance(value, bool)
    else:
        ok = isinstance(value, type(default))

    if ok and key_path in CHOICES:
        ok = value in CHOICES[key_path]
    if ok and key_path in MINIMUMS:
        ok = value >= MINIMUMS[key_path]

    if not ok:
        logger.warning(f"Invalid value for '{key_path}': {value!r}. Using default: {default!r}")
        return copy.deepcopy(default)
    return value


def _merge_with_defaults(loaded: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """Keep known keys from ``loaded``, validated; fill everything else from the defaults."""
    merged: Dict[str, Dict[str, Any]] = {}
    for section, defaults in DEFAULT_SETTINGS.items():
        stored = loaded.get(section, {})
        if not isinstance(stored, dict):
            logger.warning(f"Settings section '{section}' is not an object. Using defaults")
            stored = {}
        merged[section] = {
            key: _coerce(stored[key], default, f"{section}.{key}") if key in stored else copy.deepcopy(default)
            for key, default in defaults.items()
        }

    unknown = set(loaded) - set(DEFAULT_SETTINGS)
    if unknown:
        logger.debug(f"Ignoring unknown settings sections: {sorted(unknown)}")
    return merged


def default_settings_dir() -> Path:
    """``<AppData>/Ezzi/configs``, falling back to the platform user data dir."""
    base = QStandardPaths.writableLocation(QStandardPaths.StandardLocation.AppDataLocation)
    if base:
        base_path = Path(base)
        if base_path.name.lower() != "ezzi":
            base_path = base_path / "Ezzi"
        return base_path / "configs"

    from ...utils.config_paths import get_user_data_dir
    return get_user_data_dir() / "configs"


class SettingsManager:
    """
    Dot-notation access to the settings file.

    Every ``set`` is written through to disk and reported to the change
    callbacks with the key that changed.
    """

    def __init__(self, settings_dir: Optional[Path] = None):
        self.settings_dir = Path(settings_dir) if settings_dir else default_settings_dir()
        self.settings_file = self.settings_dir / "settings.json"
        self.key_file = self.settings_dir / ".key"
        self.settings_dir.mkdir(parents=True, exist_ok=True)

        self._settings: Dict[str, Dict[str, Any]] = {}
        self._change_callbacks: List[Callable[[str], None]] = []
        self._fernet = Fernet(self._load_or_create_key())

        self.load()
        logger.info(f"Settings file: {self.settings_file}")

    # --- Encryption ----------------------------------------------------------

    def _load_or_create_key(self) -> bytes:
        if self.key_file.exists():
            return self.key_file.read_bytes().strip()

        key = Fernet.generate_key()
        self.key_file.write_bytes(key)
        if os.name == 'nt':
            import ctypes
            ctypes.windll.kernel32.SetFileAttributesW(str(self.key_file), 2)  # FILE_ATTRIBUTE_HIDDEN
        else:
            os.chmod(self.key_file, 0o600)
        logger.debug("Created settings encryption key")
        return key

    def _decrypt(self, stored: str) -> str:
        try:
            return self._fernet.decrypt(stored[len(ENCRYPTED_PREFIX):].encode()).decode()
        except InvalidToken:
            logger.error("Stored token could not be decrypted (key changed?); treating it as empty")
            return ""

    # --- Change callbacks ----------------------------------------------------

    def on_change(self, callback: Callable[[str], None]) -> None:
        if callback not in self._change_callbacks:
            self._change_callbacks.append(callback)

    def remove_change_callback(self, callback: Callable[[str], None]) -> None:
        if callback in self._change_callbacks:
            self._change_callbacks.remove(callback)

    def _notify_change(self, key_path: str) -> None:
        for callback in list(self._change_callbacks):
            try:
                callback(key_path)
            except Exception as e:
                logger.warning(f"Settings change callback failed for '{key_path}': {e}")

    # --- Load / save ---------------------------------------------------------

    def load(self):
        """Read the settings file, or write the defaults when there is none."""
        if not self.settings_file.exists():
            self._settings = copy.deepcopy(DEFAULT_SETTINGS)
            self.save()
            logger.info("Default settings created")
            return

        try:
            with open(self.settings_file, 'r', encoding='utf-8') as f:
                loaded = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Could not read {self.settings_file}: {e}. Using defaults")
            self._settings = copy.deepcopy(DEFAULT_SETTINGS)
            return

        if not isinstance(loaded, dict):
            logger.error("Settings file does not contain an object. Using defaults")
            loaded = {}
        self._settings = _merge_with_defaults(loaded)

    def save(self):
        try:
            with open(self.settings_file, 'w', encoding='utf-8') as f:
                json.dump(self._settings, f, indent=2, ensure_ascii=False)
        except (OSError, TypeError) as e:
            logger.error(f"Failed to save settings: {e}")

    # --- Access --------------------------------------------------------------

    @staticmethod
    def _split(key_path: str) -> Tuple[str, str]:
        section, _, key = key_path.partition('.')
        return section, key

    def get(self, key_path: str, default: Any = None) -> Any:
        """Value at ``section.key``; the token is returned decrypted."""
        section, key = self._split(key_path)
        values = self._settings.get(section)
        if not isinstance(values, dict) or key not in values:
            return default

        value = values[key]
        if key_path in SENSITIVE_KEYS and isinstance(value, str) and value.startswith(ENCRYPTED_PREFIX):
            return self._decrypt(value)
        return value

    def set(self, key_path: str, value: Any):
        section, key = self._split(key_path)
        if key_path in SENSITIVE_KEYS and value:
            value = ENCRYPTED_PREFIX + self._fernet.encrypt(str(value).encode()).decode()

        self._settings.setdefault(section, {})[key] = value
        self.save()
        logger.debug(f"Setting '{key_path}' updated")
        self._notify_change(key_path)

    def delete(self, key_path: str):
        section, key = self._split(key_path)
        values = self._settings.get(section)
        if isinstance(values, dict) and key in values:
            del values[key]
            self.save()
            self._notify_change(key_path)

    def reset_to_defaults(self):
        self._settings = copy.deepcopy(DEFAULT_SETTINGS)
        self.save()
        logger.info("Settings reset to defaults")


_settings: Optional[SettingsManager] = None


def get_settings() -> SettingsManager:
    """The process-wide SettingsManager, created on first use."""
    global _settings
    if _settings is None:
        _settings = SettingsManager()
    return _settings
