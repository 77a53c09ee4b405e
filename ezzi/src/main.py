"""
Ezzi entry point.

Parses the command line, configures logging, then runs the Qt event loop
with the app coordinator living in the system tray.
"""

import argparse
import atexit
import faulthandler
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Optional, TextIO

from PyQt6.QtCore import QTimer
from PyQt6.QtWidgets import QApplication

from ..__version__ import __version__
from .application.app_coordinator import AppCoordinator
from .domain.models.app_state import AppMode
from .infrastructure.logging.logging_config import setup_logging
from .infrastructure.storage.auth_storage import AuthStorage
from .infrastructure.storage.settings_manager import SettingsManager, get_settings
from .utils.environment import MOCK_ENV, SELF_HOSTED_ENV

logger = logging.getLogger("ezzi.main")


class EzziApplication:
    """Owns the QApplication and the coordinator for one run."""

    def __init__(self, settings: SettingsManager, app_mode: Optional[AppMode] = None):
        self.settings = settings
        self.app_mode = app_mode
        self.app: Optional[QApplication] = None
        self.coordinator: Optional[AppCoordinator] = None
        # keeps the interpreter ticking so SIGINT/SIGTERM are seen during app.exec()
        self._signal_pump: Optional[QTimer] = None

    def _create_qt_application(self) -> QApplication:
        app = QApplication(sys.argv)
        app.setApplicationName("Ezzi")
        app.setApplicationVersion(__version__)
        app.setOrganizationName("Ezzi")
        # the overlay is hidden far more often than shown; only the tray's Quit ends the app
        app.setQuitOnLastWindowClosed(False)

        self._signal_pump = QTimer()
        self._signal_pump.timeout.connect(lambda: None)
        self._signal_pump.start(250)
        return app

    def _install_shutdown_hooks(self):
        for name in ("SIGTERM", "SIGINT", "SIGHUP"):
            signum = getattr(signal, name, None)
            if signum is None:
                continue
            try:
                signal.signal(signum, self._handle_signal)
            except (ValueError, OSError) as e:
                logger.debug(f"Could not install {name} handler: {e}")
        atexit.register(self._shutdown)

    def _handle_signal(self, signum, frame):
        logger.info(f"Received signal {signum}, shutting down")
        self._shutdown()
        if self.app:
            self.app.quit()

    def _shutdown(self):
        if self.coordinator:
            self.coordinator.shutdown()

    @staticmethod
    def _install_excepthook():
        previous = sys.excepthook

        def log_unhandled(exc_type, exc_value, exc_tb):
            logger.critical("Unhandled exception in Qt callback", exc_info=(exc_type, exc_value, exc_tb))
            previous(exc_type, exc_value, exc_tb)

        sys.excepthook = log_unhandled

    def run(self) -> int:
        """Start the tray app and block until it quits. Returns the exit code."""
        self._install_excepthook()
        self._install_shutdown_hooks()
        self.app = self._create_qt_application()

        if self.app_mode is not None:
            self.settings.set('app.app_mode', self.app_mode.value)

        self.coordinator = AppCoordinator(settings=self.settings)
        self.coordinator.app_shutdown.connect(self.app.quit)
        if not self.coordinator.initialize():
            logger.error("Ezzi could not start; see the log for details")
            return 1

        try:
            self.coordinator.start()
            exit_code = self.app.exec()
            logger.info(f"Qt event loop finished with code {exit_code}")
            return exit_code
        except KeyboardInterrupt:
            return 0
        finally:
            self._shutdown()


def parse_arguments(argv=None):
    parser = argparse.ArgumentParser(
        prog="ezzi",
        description="Capture a coding problem, send it to the solving service and show the answer in an overlay.",
    )
    parser.add_argument("--debug", action="store_true", help="Log at DEBUG level")
    parser.add_argument("--log-dir", type=str, help="Write log files here instead of the user data dir")
    parser.add_argument("--version", action="version", version=f"Ezzi {__version__}")
    parser.add_argument(
        "--mock", action="store_true",
        help=f"Ask the solving service for canned responses (same as {MOCK_ENV}=true)",
    )
    parser.add_argument(
        "--self-hosted", action="store_true",
        help=f"Send requests without a session token (same as {SELF_HOSTED_ENV}=true)",
    )
    parser.add_argument(
        "--mode", choices=[mode.value for mode in AppMode],
        help="Start in this app mode and keep it for later runs",
    )
    parser.add_argument(
        "--token", metavar="TOKEN",
        help="Store this session token for solving requests (use - to read it from stdin)",
    )
    parser.add_argument(
        "--token-expires-in", type=float, metavar="SECONDS",
        help="Lifetime of the token given with --token",
    )
    parser.add_argument("--sign-out", action="store_true", help="Forget the stored session token")
    return parser.parse_args(argv)


def apply_token_arguments(args, settings: SettingsManager, stdin: Optional[TextIO] = None):
    """Store or forget the session token as asked on the command line."""
    auth = AuthStorage(settings)
    if args.sign_out:
        auth.clear()
        logger.info("Stored session token removed")

    if args.token is None:
        return
    token = (stdin or sys.stdin).readline() if args.token == "-" else args.token
    token = token.strip()
    if not token:
        raise ValueError("--token was given but no token was provided")
    auth.set_token(token, expires_in=args.token_expires_in)


def _open_crash_log(log_dir: Path) -> TextIO:
    """Route faulthandler output (segfaults in Qt or native calls) to ``crash.log``."""
    crash_file = open(log_dir / "crash.log", "a", encoding="utf-8")
    crash_file.write(f"\n--- Ezzi {__version__} started (pid {os.getpid()}) ---\n")
    crash_file.flush()
    faulthandler.enable(file=crash_file)
    return crash_file


def main(argv=None) -> int:
    args = parse_arguments(argv)

    if args.mock:
        os.environ[MOCK_ENV] = "true"
    if args.self_hosted:
        os.environ[SELF_HOSTED_ENV] = "true"

    settings = get_settings()
    debug = args.debug or settings.get("advanced.log_level") == "DEBUG"
    log_dir = setup_logging(
        debug=debug,
        log_dir=args.log_dir or (settings.get("advanced.log_location") or "").strip() or None,
        retention_days=settings.get("advanced.log_retention_days", 10),
    )
    try:
        apply_token_arguments(args, settings)
    except ValueError as e:
        logger.error(str(e))
        return 2

    crash_file = _open_crash_log(log_dir)

    logger.info(f"Ezzi {__version__} on {sys.platform}, Python {sys.version.split()[0]}")
    logger.info(f"Debug logging: {debug}; mock: {bool(args.mock)}; self-hosted: {bool(args.self_hosted)}")

    try:
        return EzziApplication(settings, AppMode.from_value(args.mode) if args.mode else None).run()
    finally:
        faulthandler.disable()
        crash_file.close()


if __name__ == "__main__":
    sys.exit(main())
