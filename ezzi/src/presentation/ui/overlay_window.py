"""
Overlay window and its native-window adapter.

``OverlayWindow`` is the frameless always-on-top widget that shows the
queue status and the latest solution. ``QtNativeWindow`` exposes it to the
window reconciler; the reconciler runs on the asyncio loop thread, so
every write is marshalled onto the GUI thread and reads come from a cache
the widget keeps current.
"""

import base64
import ctypes
import logging
import sys
from typing import Callable, List, Optional, Tuple

from PyQt6.QtCore import QEvent, QObject, QPoint, QThread, Qt, pyqtSignal
from PyQt6.QtGui import QFont, QGuiApplication, QMouseEvent, QPixmap
from PyQt6.QtWidgets import QHBoxLayout, QLabel, QPlainTextEdit, QToolButton, QVBoxLayout, QWidget

from ...application.window_reconciler import NativeWindow
from ...domain.models.processing import SolveResponse
from ...domain.models.window_config import (
    AlwaysOnTopLevel,
    DarwinWindowOptions,
    WindowBounds,
    Win32WindowOptions,
)

logger = logging.getLogger("ezzi.overlay_window")

WDA_NONE = 0x00
WDA_EXCLUDEFROMCAPTURE = 0x11

THUMBNAIL_HEIGHT = 72


class OverlayWindow(QWidget):
    """Frameless overlay showing queue status, screenshot thumbnails and solutions."""

    focus_regained = pyqtSignal()
    delete_requested = pyqtSignal(str)       # screenshot path

    def __init__(self, bounds: WindowBounds, parent=None):
        super().__init__(parent)
        self.setWindowFlags(
            Qt.WindowType.FramelessWindowHint |
            Qt.WindowType.WindowStaysOnTopHint |
            Qt.WindowType.Tool
        )
        self.setAttribute(Qt.WidgetAttribute.WA_ShowWithoutActivating, True)
        self.setAttribute(Qt.WidgetAttribute.WA_TranslucentBackground, True)
        self.setAttribute(Qt.WidgetAttribute.WA_DeleteOnClose, False)
        self.setWindowTitle("Ezzi")

        self.cached_bounds = bounds
        self.setGeometry(bounds.x, bounds.y, bounds.width, bounds.height)

        self._drag_offset: Optional[QPoint] = None
        self._build_ui()

    def _build_ui(self):
        self.setStyleSheet(
            "QWidget#panel { background-color: rgba(20, 20, 24, 215); border-radius: 8px; }"
            "QLabel { color: #e6e6e6; }"
            "QPlainTextEdit { background: rgba(0, 0, 0, 120); color: #e6e6e6; border: none; }"
        )
        panel = QWidget(self)
        panel.setObjectName("panel")
        outer = QVBoxLayout(self)
        outer.setContentsMargins(0, 0, 0, 0)
        outer.addWidget(panel)

        layout = QVBoxLayout(panel)
        self.status_label = QLabel("Queue: 0 screenshot(s)")
        self.message_label = QLabel("")
        self.message_label.setWordWrap(True)
        self.solution_view = QPlainTextEdit()
        self.solution_view.setReadOnly(True)
        self.solution_view.setFont(QFont("Consolas", 10))

        self.preview_strip = QWidget()
        self._preview_layout = QHBoxLayout(self.preview_strip)
        self._preview_layout.setContentsMargins(0, 0, 0, 0)
        self._preview_layout.addStretch(1)
        self.preview_strip.hide()

        layout.addWidget(self.status_label)
        layout.addWidget(self.preview_strip)
        layout.addWidget(self.message_label)
        layout.addWidget(self.solution_view, 1)

    # --- Rendering -----------------------------------------------------------

    def show_status(self, text: str):
        self.status_label.setText(text)

    def show_message(self, text: str):
        self.message_label.setText(text)

    def show_previews(self, previews: List[Tuple[str, str]]):
        """Replace the thumbnail strip with ``previews`` ([(path, data_url)], oldest first)."""
        while self._preview_layout.count() > 1:
            item = self._preview_layout.takeAt(0)
            if item.widget():
                item.widget().deleteLater()

        for index, (path, data_url) in enumerate(previews):
            self._preview_layout.insertWidget(index, self._make_thumbnail(path, data_url))
        self.preview_strip.setVisible(bool(previews))

    def _make_thumbnail(self, path: str, data_url: str) -> QWidget:
        tile = QWidget()
        tile_layout = QVBoxLayout(tile)
        tile_layout.setContentsMargins(0, 0, 0, 0)
        tile_layout.setSpacing(2)

        image = QLabel()
        pixmap = QPixmap()
        if pixmap.loadFromData(base64.b64decode(data_url.split(",", 1)[-1])):
            image.setPixmap(pixmap.scaledToHeight(THUMBNAIL_HEIGHT, Qt.TransformationMode.SmoothTransformation))
        else:
            image.setText("?")
        image.setToolTip(path)

        delete_button = QToolButton()
        delete_button.setText("Delete")
        delete_button.clicked.connect(lambda _checked=False, p=path: self.delete_requested.emit(p))

        tile_layout.addWidget(image)
        tile_layout.addWidget(delete_button)
        return tile

    def show_solution(self, solution: SolveResponse):
        parts = []
        if solution.thoughts:
            parts.append("\n".join(f"- {t}" for t in solution.thoughts))
        if solution.code:
            parts.append(solution.code)
        complexity = []
        if solution.time_complexity:
            complexity.append(f"Time: {solution.time_complexity}")
        if solution.space_complexity:
            complexity.append(f"Space: {solution.space_complexity}")
        if complexity:
            parts.append("\n".join(complexity))
        self.solution_view.setPlainText("\n\n".join(parts))
        self.message_label.setText("")

    def clear_solution(self):
        self.solution_view.clear()
        self.message_label.setText("")

    # --- Events --------------------------------------------------------------

    def moveEvent(self, event):
        super().moveEvent(event)
        self._sync_bounds()

    def resizeEvent(self, event):
        super().resizeEvent(event)
        self._sync_bounds()

    def _sync_bounds(self):
        geometry = self.geometry()
        self.cached_bounds = WindowBounds(geometry.x(), geometry.y(), geometry.width(), geometry.height())

    def changeEvent(self, event):
        super().changeEvent(event)
        if event.type() == QEvent.Type.ActivationChange and self.isActiveWindow():
            self.focus_regained.emit()

    def mousePressEvent(self, event: QMouseEvent):
        if event.button() == Qt.MouseButton.LeftButton:
            self._drag_offset = event.globalPosition().toPoint() - self.pos()
        super().mousePressEvent(event)

    def mouseMoveEvent(self, event: QMouseEvent):
        if self._drag_offset is not None and event.buttons() & Qt.MouseButton.LeftButton:
            self.move(event.globalPosition().toPoint() - self._drag_offset)
        super().mouseMoveEvent(event)

    def mouseReleaseEvent(self, event: QMouseEvent):
        self._drag_offset = None
        super().mouseReleaseEvent(event)


class _GuiDispatcher(QObject):
    """Runs callables on the thread this object lives on (the GUI thread)."""

    invoke = pyqtSignal(object)

    def __init__(self):
        super().__init__()
        self.invoke.connect(self._run, Qt.ConnectionType.QueuedConnection)

    def _run(self, fn: Callable[[], None]):
        try:
            fn()
        except Exception:
            logger.exception("Window update failed")

    def call(self, fn: Callable[[], None]):
        if QThread.currentThread() == self.thread():
            self._run(fn)
        else:
            self.invoke.emit(fn)


class QtNativeWindow(NativeWindow):
    """NativeWindow backed by an OverlayWindow."""

    def __init__(self, widget: OverlayWindow, platform: str = sys.platform):
        self._widget = widget
        self._platform = platform
        self._dispatcher = _GuiDispatcher()
        self._visible = widget.isVisible()

        screen = QGuiApplication.primaryScreen()
        if screen is not None:
            area = screen.availableGeometry()
            self._screen = WindowBounds(area.x(), area.y(), area.width(), area.height())
        else:
            self._screen = WindowBounds(0, 0, 1920, 1080)

    @property
    def widget(self) -> OverlayWindow:
        return self._widget

    def get_bounds(self) -> WindowBounds:
        return self._widget.cached_bounds

    def set_bounds(self, bounds: WindowBounds):
        self._widget.cached_bounds = bounds
        self._dispatcher.call(lambda: self._widget.setGeometry(bounds.x, bounds.y, bounds.width, bounds.height))

    def screen_geometry(self) -> WindowBounds:
        return self._screen

    def set_opacity(self, opacity: float):
        self._dispatcher.call(lambda: self._widget.setWindowOpacity(opacity))

    def _set_flag(self, flag: Qt.WindowType, on: bool):
        def update():
            if self._widget.testWindowFlag(flag) == on:
                return
            was_visible = self._widget.isVisible()
            self._widget.setWindowFlag(flag, on)
            # Changing flags re-creates the native window and hides it
            if was_visible:
                self._widget.show()
        self._dispatcher.call(update)

    def set_ignore_mouse_events(self, ignore: bool):
        self._set_flag(Qt.WindowType.WindowTransparentForInput, ignore)
        self._dispatcher.call(
            lambda: self._widget.setAttribute(Qt.WidgetAttribute.WA_TransparentForMouseEvents, ignore)
        )

    def set_focusable(self, focusable: bool):
        self._set_flag(Qt.WindowType.WindowDoesNotAcceptFocus, not focusable)

    def set_skip_taskbar(self, skip: bool):
        self._set_flag(Qt.WindowType.Tool, skip)

    def set_always_on_top(self, on_top: bool, level: AlwaysOnTopLevel):
        self._set_flag(Qt.WindowType.WindowStaysOnTopHint, on_top)
        if on_top and level is not AlwaysOnTopLevel.FLOATING:
            logger.debug(f"Stacking level {level.value} approximated with WindowStaysOnTopHint")

    def set_visible_on_all_workspaces(self, visible: bool, visible_on_full_screen: bool):
        logger.debug("Workspace visibility is managed by the window system under Qt")

    def set_content_protection(self, enabled: bool):
        if self._platform != "win32":
            logger.debug("Content protection is not available on this platform")
            return

        def update():
            hwnd = int(self._widget.winId())
            affinity = WDA_EXCLUDEFROMCAPTURE if enabled else WDA_NONE
            if not ctypes.windll.user32.SetWindowDisplayAffinity(hwnd, affinity):
                logger.warning("SetWindowDisplayAffinity failed")
        self._dispatcher.call(update)

    def apply_platform_options(self, options):
        if isinstance(options, DarwinWindowOptions):
            self._set_flag(Qt.WindowType.NoDropShadowWindowHint, not options.has_shadow)
        elif isinstance(options, Win32WindowOptions):
            self._set_flag(Qt.WindowType.FramelessWindowHint, not options.thick_frame)

    def show_inactive(self):
        self._visible = True
        self._dispatcher.call(self._widget.show)

    def hide(self):
        self._visible = False
        self._dispatcher.call(self._widget.hide)

    def is_visible(self) -> bool:
        return self._visible
