"""
System Tray for Ezzi.

The tray menu is the trigger surface for every overlay action: capturing
and deleting screenshots, processing, moving the window, switching modes
and signing in.
"""

import logging
from typing import Dict, Optional
from PyQt6.QtWidgets import QSystemTrayIcon, QMenu
from PyQt6.QtCore import QObject, Qt, pyqtSignal
from PyQt6.QtGui import QIcon, QAction, QActionGroup, QPixmap, QPainter, QFont

from ...application.window_reconciler import MoveDirection
from ...domain.models.app_state import AppMode

logger = logging.getLogger("ezzi.system_tray")

_MODE_LABELS = {
    AppMode.LIVE_INTERVIEW: "Live Interview",
    AppMode.LEETCODE_SOLVER: "LeetCode Solver",
}


class SystemTray(QObject):
    """System tray icon whose context menu drives the overlay."""

    screenshot_requested = pyqtSignal()
    process_requested = pyqtSignal()
    debug_requested = pyqtSignal()
    reset_requested = pyqtSignal()
    toggle_requested = pyqtSignal()
    move_requested = pyqtSignal(object)      # MoveDirection
    mode_requested = pyqtSignal(object)      # AppMode
    delete_last_requested = pyqtSignal()
    sign_in_requested = pyqtSignal()
    sign_out_requested = pyqtSignal()
    quit_requested = pyqtSignal()

    def __init__(self, current_mode: AppMode = AppMode.LIVE_INTERVIEW):
        super().__init__()
        self.tray_icon: Optional[QSystemTrayIcon] = None
        self.context_menu: Optional[QMenu] = None
        self._processing = False
        self._mode_actions: Dict[AppMode, QAction] = {}

        self._init_tray_icon()
        self._init_context_menu(current_mode)

        logger.info("SystemTray initialized")

    def _init_tray_icon(self):
        if not QSystemTrayIcon.isSystemTrayAvailable():
            logger.error("System tray is not available on this system")
            return

        self.tray_icon = QSystemTrayIcon()
        self.tray_icon.setIcon(self._create_programmatic_icon())
        self.tray_icon.setToolTip("Ezzi")
        self.tray_icon.activated.connect(self._on_tray_activated)

    def _add_action(self, menu: QMenu, text: str, signal) -> QAction:
        action = QAction(text, menu)
        action.triggered.connect(lambda _checked=False: signal.emit())
        menu.addAction(action)
        return action

    def _init_context_menu(self, current_mode: AppMode):
        self.context_menu = QMenu()

        self._add_action(self.context_menu, "Take Screenshot", self.screenshot_requested)
        self._add_action(self.context_menu, "Process", self.process_requested)
        self._add_action(self.context_menu, "Debug", self.debug_requested)
        self._add_action(self.context_menu, "Delete Last Screenshot", self.delete_last_requested)
        self._add_action(self.context_menu, "Reset", self.reset_requested)
        self.context_menu.addSeparator()
        self._add_action(self.context_menu, "Show / Hide", self.toggle_requested)

        move_menu = self.context_menu.addMenu("Move")
        for direction, text in ((MoveDirection.LEFT, "Left"), (MoveDirection.RIGHT, "Right"),
                                (MoveDirection.UP, "Up"), (MoveDirection.DOWN, "Down")):
            action = QAction(text, move_menu)
            action.triggered.connect(lambda _checked=False, d=direction: self.move_requested.emit(d))
            move_menu.addAction(action)

        mode_menu = self.context_menu.addMenu("Mode")
        group = QActionGroup(mode_menu)
        group.setExclusive(True)
        for mode, text in _MODE_LABELS.items():
            action = QAction(text, mode_menu)
            action.setCheckable(True)
            action.setChecked(mode == current_mode)
            action.triggered.connect(lambda _checked=False, m=mode: self.mode_requested.emit(m))
            group.addAction(action)
            mode_menu.addAction(action)
            self._mode_actions[mode] = action

        account_menu = self.context_menu.addMenu("Account")
        self._add_action(account_menu, "Sign In...", self.sign_in_requested)
        self._add_action(account_menu, "Sign Out", self.sign_out_requested)

        self.context_menu.addSeparator()
        self._add_action(self.context_menu, "Quit", self.quit_requested)

        if self.tray_icon:
            self.tray_icon.setContextMenu(self.context_menu)

    def _create_programmatic_icon(self) -> QIcon:
        """A small round icon; tinted while a request is in flight."""
        pixmap = QPixmap(32, 32)
        pixmap.fill(Qt.GlobalColor.transparent)

        painter = QPainter(pixmap)
        painter.setRenderHint(QPainter.RenderHint.Antialiasing)
        if self._processing:
            painter.setBrush(Qt.GlobalColor.darkCyan)
            painter.setPen(Qt.GlobalColor.darkBlue)
        else:
            painter.setBrush(Qt.GlobalColor.darkGray)
            painter.setPen(Qt.GlobalColor.black)
        painter.drawEllipse(4, 4, 24, 24)
        painter.setPen(Qt.GlobalColor.white)
        painter.setFont(QFont("Arial", 16, QFont.Weight.Bold))
        painter.drawText(10, 22, "E")
        painter.end()

        return QIcon(pixmap)

    def _on_tray_activated(self, reason: QSystemTrayIcon.ActivationReason):
        if reason == QSystemTrayIcon.ActivationReason.DoubleClick:
            self.toggle_requested.emit()

    def set_processing(self, processing: bool):
        self._processing = processing
        if self.tray_icon:
            self.tray_icon.setIcon(self._create_programmatic_icon())
            self.tray_icon.setToolTip("Ezzi - processing..." if processing else "Ezzi")

    def set_mode(self, mode: AppMode):
        action = self._mode_actions.get(mode)
        if action:
            action.setChecked(True)

    def show_message(self, title: str, message: str, duration: int = 3000):
        if self.tray_icon and self.tray_icon.isVisible():
            self.tray_icon.showMessage(title, message, QSystemTrayIcon.MessageIcon.Information, duration)

    def show(self):
        if self.tray_icon:
            self.tray_icon.show()
            logger.info("System tray icon shown")
        else:
            logger.warning("Cannot show system tray - not available")

    def hide(self):
        if self.tray_icon:
            self.tray_icon.hide()
