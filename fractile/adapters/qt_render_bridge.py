import logging

from PySide6.QtCore import QObject, Signal
from PySide6.QtGui import QImage

from fractile.api.render_api import RenderAPI
from fractile.rendering.events import FrameEvent, LogEvent, TileEvent
from fractile.utils.image_helpers import ndarray_to_qimage


class QtRenderBridge(QObject):
    """
    Re-emits service callbacks as Qt signals.

    Bands only mark the canvas dirty; the viewer repaints from the surface
    once per timer tick. A finished epoch carries the presented frame.
    """
    frame_ready = Signal(QImage)
    band_written = Signal(int)
    log_line = Signal(str)

    def __init__(self, api: RenderAPI, parent=None):
        super().__init__(parent)
        self.api = api
        api.on_frame(self._frame)
        api.on_tile(self._band)
        api.on_log(self._log)

    def _frame(self, evt: FrameEvent) -> None:
        self.frame_ready.emit(ndarray_to_qimage(evt.data))

    def _band(self, evt: TileEvent) -> None:
        self.band_written.emit(int(evt.seq))

    def _log(self, evt: LogEvent) -> None:
        level = logging.getLevelName(evt.level if evt.level is not None else logging.INFO)
        self.log_line.emit(f"[{level}] {evt.message}")
