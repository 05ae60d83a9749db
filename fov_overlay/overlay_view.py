"""
Overlay display widget.

Shows the session's published image letterboxed in the widget.  In
corner-marker mode the published image is the undrawn base photo and the
corner PNGs are stacked on top as separate pixmaps, positioned in canvas
coordinates and mapped through the same scale and offset as the photo.
"""

from pathlib import Path

from PyQt6.QtCore import QPointF, QRectF, Qt
from PyQt6.QtGui import QColor, QImageReader, QPainter, QPaintEvent, QPixmap, QResizeEvent
from PyQt6.QtWidgets import QSizePolicy, QWidget


def load_pixmap(path: Path) -> QPixmap | None:
    """Load *path* upright, honouring EXIF orientation, or None if unreadable."""
    reader = QImageReader(str(path))
    reader.setAutoTransform(True)
    image = reader.read()
    if image.isNull():
        return None
    return QPixmap.fromImage(image)


class OverlayView(QWidget):
    """Read-only view of the composited overlay image."""

    def __init__(self, parent=None):
        super().__init__(parent)
        self.setMinimumSize(320, 240)
        self.setSizePolicy(QSizePolicy.Policy.Expanding, QSizePolicy.Policy.Expanding)

        self._pixmap: QPixmap | None = None
        self._canvas_w = 0
        self._canvas_h = 0
        self._layers: tuple = ()
        self._layer_pixmaps: dict[Path, QPixmap] = {}
        self._message = "Rendering overlay…"

        # Display mapping
        self._scale = 1.0
        self._offset_x = 0.0
        self._offset_y = 0.0

    def set_overlay(self, path: Path | None, canvas_w: int, canvas_h: int, layers=()):
        """Show the image at *path*, drawn at *canvas_w* × *canvas_h*, plus corner *layers*."""
        if path is None:
            self._pixmap = None
        else:
            self._pixmap = load_pixmap(path)
            if self._pixmap is None:
                self._message = "Could not load overlay image"
        self._canvas_w = canvas_w
        self._canvas_h = canvas_h
        self._layers = tuple(layers)
        self._update_display_mapping()
        self.update()

    def set_message(self, text: str):
        self._message = text
        self.update()

    def _layer_pixmap(self, asset: Path) -> QPixmap | None:
        pixmap = self._layer_pixmaps.get(asset)
        if pixmap is None:
            pixmap = QPixmap(str(asset))
            self._layer_pixmaps[asset] = pixmap
        return None if pixmap.isNull() else pixmap

    # --- Coordinate mapping ---

    def _update_display_mapping(self):
        """Fit the canvas in the widget with letterboxing."""
        if self._canvas_w == 0 or self._canvas_h == 0:
            return
        ww, wh = self.width(), self.height()
        self._scale = min(ww / self._canvas_w, wh / self._canvas_h)
        self._offset_x = (ww - self._canvas_w * self._scale) / 2
        self._offset_y = (wh - self._canvas_h * self._scale) / 2

    def _canvas_to_display(self, cx: float, cy: float) -> QPointF:
        return QPointF(cx * self._scale + self._offset_x, cy * self._scale + self._offset_y)

    # --- Painting ---

    def paintEvent(self, event: QPaintEvent):
        painter = QPainter(self)
        painter.setRenderHint(QPainter.RenderHint.SmoothPixmapTransform)
        painter.fillRect(self.rect(), QColor(30, 30, 30))

        if not self._pixmap:
            painter.setPen(QColor(128, 128, 128))
            painter.drawText(self.rect(), Qt.AlignmentFlag.AlignCenter, self._message)
            painter.end()
            return

        dest = QRectF(
            self._canvas_to_display(0, 0),
            self._canvas_to_display(self._canvas_w, self._canvas_h),
        )
        painter.drawPixmap(dest.toRect(), self._pixmap)

        for layer in self._layers:
            pixmap = self._layer_pixmap(layer.asset)
            if pixmap is None:
                continue
            tl = self._canvas_to_display(layer.x, layer.y)
            size = QRectF(tl, self._canvas_to_display(layer.x + pixmap.width(), layer.y + pixmap.height()))
            painter.drawPixmap(size.toRect(), pixmap)

        painter.end()

    def resizeEvent(self, event: QResizeEvent):
        super().resizeEvent(event)
        self._update_display_mapping()
