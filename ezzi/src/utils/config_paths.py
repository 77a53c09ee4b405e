"""
Configuration paths utilities for Ezzi.

Provides centralized path management for all application data.
"""

import os
import sys
from pathlib import Path


def get_user_data_dir() -> Path:
    """
    Get the user data directory for Ezzi.

    Returns:
        Path to the user data directory (AppData/Roaming/Ezzi on Windows,
        Application Support/Ezzi on macOS, XDG data home elsewhere)
    """
    if os.name == 'nt':  # Windows
        appdata = os.environ.get('APPDATA')
        if appdata:
            return Path(appdata) / "Ezzi"

    if sys.platform == 'darwin':
        return Path.home() / "Library" / "Application Support" / "Ezzi"

    xdg_data_home = os.environ.get('XDG_DATA_HOME')
    if xdg_data_home:
        return Path(xdg_data_home) / "ezzi"

    # Default XDG location
    return Path.home() / ".local" / "share" / "ezzi"


def _ensure_subdir(name: str) -> Path:
    path = get_user_data_dir() / name
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_logs_dir() -> Path:
    return _ensure_subdir("logs")


def get_screenshots_dir() -> Path:
    """Captured screenshots live here until they are deleted or the queues are reset."""
    return _ensure_subdir("screenshots")
