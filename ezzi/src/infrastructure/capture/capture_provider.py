"""
Screen capture providers.

Each platform shells out to its native screenshot tool, writes to a
temporary PNG and hands back the bytes. Providers only capture; persisting
and queueing are the screenshot queue's job.
"""

import asyncio
import logging
import sys
import tempfile
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, List, Optional, Sequence

logger = logging.getLogger("ezzi.capture")

CommandBuilder = Callable[[Path], List[str]]

LINUX_TOOLS_MISSING_MESSAGE = (
    "Screenshot capture failed. Please ensure gnome-screenshot or ImageMagick is installed."
)

_WINDOWS_CAPTURE_SCRIPT = """
Add-Type -AssemblyName System.Windows.Forms
Add-Type -AssemblyName System.Drawing
$screen = [System.Windows.Forms.Screen]::PrimaryScreen
$bitmap = New-Object System.Drawing.Bitmap $screen.Bounds.Width, $screen.Bounds.Height
$graphics = [System.Drawing.Graphics]::FromImage($bitmap)
$graphics.CopyFromScreen($screen.Bounds.X, $screen.Bounds.Y, 0, 0, $bitmap.Size)
$bitmap.Save('{path}')
$graphics.Dispose()
$bitmap.Dispose()
"""


class CaptureError(Exception):
    """A screen capture could not be produced."""


class UnsupportedPlatformError(CaptureError):
    """No capture tool is known for this operating system."""


class CaptureToolMissingError(CaptureError):
    """The platform's capture tool is not installed or not on PATH."""


class CaptureProvider(ABC):
    """Produces the PNG bytes of one full-screen grab."""

    @abstractmethod
    async def capture(self) -> bytes:
        ...


class CommandCaptureProvider(CaptureProvider):
    """
    Runs capture commands in order until one writes the target file.

    When every command fails because its tool is not installed,
    ``CaptureToolMissingError`` is raised with ``missing_message``. If any
    installed tool ran and failed, its error is raised as ``CaptureError``.
    """

    def __init__(self, commands: Sequence[CommandBuilder], temp_dir: Optional[Path] = None,
                 missing_message: str = "Screenshot tool not found"):
        if not commands:
            raise ValueError("At least one capture command is required")
        self._commands = list(commands)
        self._temp_dir = Path(temp_dir) if temp_dir else Path(tempfile.gettempdir())
        self._missing_message = missing_message

    async def capture(self) -> bytes:
        tmp_path = self._temp_dir / f"{uuid.uuid4()}.png"
        errors: List[Exception] = []

        for build in self._commands:
            argv = build(tmp_path)
            try:
                await self._run(argv)
                return await self._read_output(argv[0], tmp_path)
            except (OSError, CaptureError) as e:
                logger.warning(f"Capture with {argv[0]} failed: {e}")
                errors.append(e)
            finally:
                tmp_path.unlink(missing_ok=True)

        if all(isinstance(e, FileNotFoundError) for e in errors):
            raise CaptureToolMissingError(self._missing_message) from errors[-1]
        failed = next(e for e in reversed(errors) if not isinstance(e, FileNotFoundError))
        raise CaptureError(str(failed)) from failed

    @staticmethod
    async def _read_output(tool: str, path: Path) -> bytes:
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise CaptureError(f"{tool} exited cleanly but left no readable screenshot: {e}") from e

    @staticmethod
    async def _run(argv: List[str]) -> None:
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        _, stderr = await process.communicate()
        if process.returncode != 0:
            detail = stderr.decode(errors="replace").strip() if stderr else ""
            raise CaptureError(f"{argv[0]} exited with code {process.returncode}: {detail}")


class UnsupportedPlatformProvider(CaptureProvider):
    """Stand-in used on operating systems without a known capture tool."""

    def __init__(self, platform: str):
        self.platform = platform

    async def capture(self) -> bytes:
        raise UnsupportedPlatformError(f"Unsupported platform: {self.platform}")


def _macos_command(path: Path) -> List[str]:
    return ["screencapture", "-x", str(path)]


def _windows_command(path: Path) -> List[str]:
    script = _WINDOWS_CAPTURE_SCRIPT.format(path=str(path).replace("'", "''"))
    return ["powershell", "-NoProfile", "-Command", script]


def _gnome_screenshot_command(path: Path) -> List[str]:
    return ["gnome-screenshot", "-f", str(path), "-d", "1", "--include-border"]


def _imagemagick_command(path: Path) -> List[str]:
    return ["import", "-window", "root", "-silent", "-depth", "8", "-quality", "100", str(path)]


def get_capture_provider(platform: Optional[str] = None, temp_dir: Optional[Path] = None) -> CaptureProvider:
    """Pick the capture provider for ``platform`` (defaults to ``sys.platform``)."""
    platform = platform or sys.platform
    if platform == "darwin":
        return CommandCaptureProvider([_macos_command], temp_dir)
    if platform == "win32":
        return CommandCaptureProvider([_windows_command], temp_dir)
    if platform.startswith("linux"):
        return CommandCaptureProvider(
            [_gnome_screenshot_command, _imagemagick_command],
            temp_dir,
            missing_message=LINUX_TOOLS_MISSING_MESSAGE,
        )
    logger.warning(f"No screenshot tool for platform {platform}")
    return UnsupportedPlatformProvider(platform)
