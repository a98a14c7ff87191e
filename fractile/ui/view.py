from typing import Optional

from PySide6.QtCore import QPoint, QRect, Qt, QTimer
from PySide6.QtGui import QColor, QImage, QPainter, QPen, QWheelEvent
from PySide6.QtWidgets import (
    QCheckBox, QDockWidget, QHBoxLayout, QLabel, QMainWindow, QPlainTextEdit,
    QPushButton, QSizePolicy, QVBoxLayout, QWidget
)

from fractile.adapters.qt_render_bridge import QtRenderBridge
from fractile.api.render_api import RenderAPI
from fractile.utils.enums import InteractionMode
from fractile.utils.image_helpers import ndarray_to_qimage

# A press that moves less than this is a click, not a drag
CLICK_SLOP = 3


# =============================================================================
# Canvas
# =============================================================================
class FractalCanvas(QWidget):
    """
    Paints the pixel surface 1:1 and turns mouse gestures into navigation.
    Drag pans (or selects a rectangle in select mode), click zooms in,
    ctrl+click zooms out, the wheel zooms at the cursor.
    """

    def __init__(self, api: RenderAPI, parent=None):
        super().__init__(parent)
        self.api = api
        self.image: Optional[QImage] = None
        self.setSizePolicy(QSizePolicy.Policy.Expanding, QSizePolicy.Policy.Expanding)
        self.setMinimumSize(64, 64)
        self.setMouseTracking(False)

        # Drag state
        self.dragging = False
        self.press_pos: Optional[QPoint] = None
        self.current_pos: Optional[QPoint] = None

        # Resizes are coalesced so a window drag regenerates once
        self._resize_timer = QTimer(self)
        self._resize_timer.setSingleShot(True)
        self._resize_timer.setInterval(120)
        self._resize_timer.timeout.connect(self._apply_size)

    def set_image(self, image: QImage) -> None:
        self.image = image
        self.update()

    # ---------- Painting ----------
    def paintEvent(self, _event):
        painter = QPainter(self)
        painter.fillRect(self.rect(), QColor(0, 0, 0))
        if self.image is not None:
            offset = QPoint(0, 0)
            if self.dragging and not self._selecting():
                offset = self.current_pos - self.press_pos
            painter.drawImage(offset, self.image)
        if self.dragging and self._selecting():
            painter.setPen(QPen(QColor(255, 255, 255), 1, Qt.PenStyle.DashLine))
            painter.drawRect(QRect(self.press_pos, self.current_pos).normalized())
        painter.end()

    def resizeEvent(self, event):
        super().resizeEvent(event)
        self._resize_timer.start()

    def _apply_size(self):
        self.api.set_image_size(max(1, self.width()), max(1, self.height()))

    # ---------- Gestures ----------
    def _selecting(self) -> bool:
        return self.api.service.interaction_mode is InteractionMode.SELECT

    def mousePressEvent(self, event):
        if event.button() != Qt.MouseButton.LeftButton:
            return
        self.press_pos = event.position().toPoint()
        self.current_pos = self.press_pos
        self.dragging = False

    def mouseMoveEvent(self, event):
        if self.press_pos is None:
            return
        self.current_pos = event.position().toPoint()
        if (self.current_pos - self.press_pos).manhattanLength() > CLICK_SLOP:
            self.dragging = True
        if self.dragging:
            self.update()

    def mouseReleaseEvent(self, event):
        if event.button() != Qt.MouseButton.LeftButton or self.press_pos is None:
            return
        end = event.position().toPoint()
        start = self.press_pos
        was_drag = self.dragging
        self.dragging = False
        self.press_pos = None
        if was_drag:
            self.api.drag_finished((start.x(), start.y()), (end.x(), end.y()))
        else:
            zoom_in = not (event.modifiers() & Qt.KeyboardModifier.ControlModifier)
            self.api.zoom_at(end.x(), end.y(), zoom_in)
        self.update()

    def wheelEvent(self, event: QWheelEvent):
        delta = event.angleDelta().y()
        if delta == 0:
            return
        pos = event.position()
        self.api.zoom_at(pos.x(), pos.y(), delta > 0)


# =============================================================================
# Main Window
# =============================================================================
class FractalViewer(QMainWindow):
    """Canvas plus a status line and a log dock. Drives the service from a QTimer."""

    def __init__(self, api: RenderAPI, fps: int = 60):
        super().__init__()
        self.api = api
        self.setWindowTitle("Fractile")
        self.resize(api.service.width + 320, api.service.height + 60)

        self.bridge = QtRenderBridge(api, parent=self)
        self.canvas = FractalCanvas(api, parent=self)
        self._dirty = False

        self.bridge.band_written.connect(self._on_band)
        self.bridge.frame_ready.connect(self._on_frame)
        self.bridge.log_line.connect(self.log)

        self._build_ui()

        self.pump_timer = QTimer(self)
        self.pump_timer.setInterval(max(1, int(1000 / fps)))
        self.pump_timer.timeout.connect(self._tick)

    def _build_ui(self):
        layout = QVBoxLayout()
        layout.setContentsMargins(8, 8, 8, 8)
        layout.addWidget(self.canvas, 1)

        controls = QHBoxLayout()
        self.select_tool = QCheckBox("Rectangle select")
        self.select_tool.toggled.connect(
            lambda on: self.api.set_interaction_mode(InteractionMode.SELECT if on else InteractionMode.PAN))
        reset_btn = QPushButton("Reset view")
        reset_btn.clicked.connect(self.api.reset)
        controls.addWidget(self.select_tool)
        controls.addWidget(reset_btn)
        controls.addStretch(1)
        self.status_label = QLabel("")
        self.status_label.setStyleSheet("color: #AAB; padding: 2px;")
        controls.addWidget(self.status_label)
        layout.addLayout(controls)

        container = QWidget()
        container.setLayout(layout)
        self.setCentralWidget(container)

        # Log dock
        self.log_dock = QDockWidget("Log", self)
        self.log_dock.setAllowedAreas(Qt.DockWidgetArea.RightDockWidgetArea)
        self.log_dock.setFeatures(QDockWidget.DockWidgetFeature.NoDockWidgetFeatures)
        self.log_view = QPlainTextEdit(self)
        self.log_view.setReadOnly(True)
        self.log_view.setMaximumBlockCount(5000)
        self.log_view.setStyleSheet(
            "background: #0f0f10; color: #cfd2d6; font-family: Consolas, monospace; font-size: 11px;"
        )
        self.log_dock.setWidget(self.log_view)
        self.addDockWidget(Qt.DockWidgetArea.RightDockWidgetArea, self.log_dock)

    # ---------- Lifecycle ----------
    def start(self):
        self.api.start_async_render()
        self.pump_timer.start()

    def closeEvent(self, event):
        self.pump_timer.stop()
        self.api.shutdown()
        super().closeEvent(event)

    def _tick(self):
        self.api.pump()
        if self._dirty:
            self._dirty = False
            self.canvas.set_image(ndarray_to_qimage(self.api.frame()))
        self._update_status()

    def _on_band(self, _epoch: int):
        self._dirty = True

    def _on_frame(self, image: QImage):
        self._dirty = False
        self.canvas.set_image(image)

    def _update_status(self):
        st = self.api.status()
        parts = [self.api.location(), f"iter {st.effective_max_iterations}", st.precision]
        if st.precision_limit_reached:
            parts.append("precision limit")
        parts.append(st.backend_label)
        if st.rendering:
            parts.append(f"{st.pending_bands} bands left")
        elif st.last_render_ms is not None:
            parts.append(f"{st.last_render_ms:.0f} ms")
        self.status_label.setText(" | ".join(parts))

    def log(self, message: str):
        self.log_view.appendPlainText(message)
