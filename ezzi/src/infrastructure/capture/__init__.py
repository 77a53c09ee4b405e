"""Screen capture infrastructure."""

from .capture_provider import (
    CaptureError,
    CaptureProvider,
    CaptureToolMissingError,
    CommandCaptureProvider,
    UnsupportedPlatformError,
    get_capture_provider,
)

__all__ = [
    "CaptureError",
    "CaptureProvider",
    "CaptureToolMissingError",
    "CommandCaptureProvider",
    "UnsupportedPlatformError",
    "get_capture_provider",
]
