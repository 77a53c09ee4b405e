"""Storage infrastructure for Ezzi."""

from .settings_manager import SettingsManager, get_settings
from .auth_storage import AuthStorage

__all__ = ["SettingsManager", "get_settings", "AuthStorage"]
