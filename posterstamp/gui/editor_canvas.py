"""editor_canvas.py – interactive slot canvas over the template base image."""
from __future__ import annotations

from PIL import Image
from PyQt6.QtCore import QPointF, QRectF, Qt, pyqtSignal
from PyQt6.QtGui import QColor, QFont, QPainter, QPen, QPixmap
from PyQt6.QtWidgets import QLabel, QWidget

from posterstamp.constants import (
    ACTION_RESIZE,
    ALIGN_CENTER,
    ALIGN_RIGHT,
    MODE_EDIT,
    MODE_PREVIEW,
    SHAPE_ELLIPSE,
    TARGET_TEXT,
)
from posterstamp.geometry import PixelRect
from posterstamp.gui.editor_utils import pil_to_qpixmap
from posterstamp.log import get_logger
from posterstamp.manipulation import ManipulationEngine, PointerEventHub
from posterstamp.preview import SLOT_COLORS, PreviewRenderer, SlotOverlay, ViewportNotifier

_log = get_logger("gui.canvas")

_HANDLE_CURSORS = {
    "nw": Qt.CursorShape.SizeFDiagCursor,
    "se": Qt.CursorShape.SizeFDiagCursor,
    "ne": Qt.CursorShape.SizeBDiagCursor,
    "sw": Qt.CursorShape.SizeBDiagCursor,
}


def _qcolor(rgb: tuple[int, int, int], alpha: int = 255) -> QColor:
    return QColor(rgb[0], rgb[1], rgb[2], alpha)


def _qrect(rect: PixelRect, origin: QPointF) -> QRectF:
    return QRectF(origin.x() + rect.left, origin.y() + rect.top, rect.width, rect.height)


class SlotEditorCanvas(QLabel):
    """Shows the base image fitted to the widget and lets the user drag/resize slots.

    Pointer positions are translated into the displayed image's own
    coordinate space before they reach the engine, so letterbox margins never
    leak into percent deltas.
    """

    geometryEdited = pyqtSignal(str)
    selectionChanged = pyqtSignal(str)

    def __init__(self, parent: QWidget | None = None) -> None:
        super().__init__("Open a base image to start.", parent)
        self.setObjectName("PreviewLabel")
        self.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self.setMouseTracking(True)
        self.setMinimumSize(320, 240)

        self.events = PointerEventHub()
        self.notifier = ViewportNotifier()
        self._engine: ManipulationEngine | None = None
        self._renderer: PreviewRenderer | None = None
        self._base_image: Image.Image | None = None
        self._source_pixmap: QPixmap | None = None
        self._sample_photo: Image.Image | None = None
        self._preview_pixmap: QPixmap | None = None

    # -- wiring ------------------------------------------------------------

    @property
    def engine(self) -> ManipulationEngine | None:
        return self._engine

    @property
    def renderer(self) -> PreviewRenderer | None:
        return self._renderer

    def attach(self, engine: ManipulationEngine, renderer: PreviewRenderer) -> None:
        if self._engine is not None:
            self._engine.end_session()
        self._engine = engine
        self._renderer = renderer
        renderer.bind(engine)
        renderer.watch(self.notifier)
        engine.on_change(self._on_engine_change)
        engine.on_select(self._on_engine_select)
        self._sync_viewport()
        self.update()

    def set_base_image(self, image: Image.Image | None) -> None:
        self._base_image = image
        self._source_pixmap = pil_to_qpixmap(image) if image is not None else None
        self.setText("" if image is not None else "Open a base image to start.")
        self._sync_viewport()
        self._invalidate_preview()

    def set_sample_photo(self, image: Image.Image | None) -> None:
        self._sample_photo = image
        self._invalidate_preview()

    def set_mode(self, mode: str) -> None:
        if self._renderer is None:
            return
        if self._engine is not None:
            self._engine.end_session()
        self._renderer.set_mode(mode)
        self.unsetCursor()
        self._invalidate_preview()

    def refresh(self) -> None:
        self._invalidate_preview()

    def _on_engine_change(self, target: str, _rect) -> None:
        self._invalidate_preview()
        self.geometryEdited.emit(target)

    def _on_engine_select(self, target: str) -> None:
        self.update()
        self.selectionChanged.emit(target)

    def _invalidate_preview(self) -> None:
        self._preview_pixmap = None
        self.update()

    # -- geometry ----------------------------------------------------------

    def _display_rect(self) -> QRectF | None:
        if self._source_pixmap is None:
            return None
        content = self.contentsRect()
        if content.width() <= 0 or content.height() <= 0:
            return None
        pix_w = max(1, self._source_pixmap.width())
        pix_h = max(1, self._source_pixmap.height())
        scale = min(content.width() / float(pix_w), content.height() / float(pix_h))
        draw_w = pix_w * scale
        draw_h = pix_h * scale
        center = QPointF(content.center())
        return QRectF(center.x() - draw_w * 0.5, center.y() - draw_h * 0.5, draw_w, draw_h)

    def _sync_viewport(self) -> None:
        draw_rect = self._display_rect()
        if draw_rect is None:
            return
        width = int(round(draw_rect.width()))
        height = int(round(draw_rect.height()))
        if self.notifier.size != (width, height):
            self.notifier.notify(width, height)
        if self._engine is not None:
            self._engine.set_viewport_size(draw_rect.width(), draw_rect.height())
        self._preview_pixmap = None

    def _local_point(self, pos: QPointF) -> tuple[float, float] | None:
        draw_rect = self._display_rect()
        if draw_rect is None:
            return None
        return (pos.x() - draw_rect.left(), pos.y() - draw_rect.top())

    # -- events ------------------------------------------------------------

    def resizeEvent(self, event) -> None:  # type: ignore[override]
        super().resizeEvent(event)
        self._sync_viewport()

    def mousePressEvent(self, event) -> None:  # type: ignore[override]
        if event.button() != Qt.MouseButton.LeftButton or self._engine is None or self._renderer is None:
            super().mousePressEvent(event)
            return
        point = self._local_point(event.position())
        if point is None:
            super().mousePressEvent(event)
            return
        hit = self._renderer.hit_test(*point)
        if hit is None:
            super().mousePressEvent(event)
            return
        _log.debug("press at %.1f,%.1f -> %s", point[0], point[1], hit)
        if hit.action is None:
            self._engine.select(hit.target)
        else:
            draw_rect = self._display_rect()
            viewport = (draw_rect.width(), draw_rect.height()) if draw_rect is not None else None
            self._engine.begin_session(hit.target, hit.action, point, hit.handle, viewport=viewport)
            self._update_cursor(hit.action, hit.handle)
        event.accept()

    def mouseMoveEvent(self, event) -> None:  # type: ignore[override]
        point = self._local_point(event.position())
        if self._engine is not None and self._engine.is_active:
            if point is not None:
                self.events.move(*point)
            event.accept()
            return
        if self._renderer is not None and self._renderer.mode == MODE_EDIT:
            previous = self._renderer.hovered
            if point is None:
                self._renderer.set_hover(None)
                self.unsetCursor()
            else:
                hit = self._renderer.hit_test(*point)
                self._renderer.set_hover(*point)
                if hit is None:
                    self.unsetCursor()
                else:
                    self._update_cursor(hit.action, hit.handle)
            if previous != self._renderer.hovered:
                self.update()
        super().mouseMoveEvent(event)

    def mouseReleaseEvent(self, event) -> None:  # type: ignore[override]
        if event.button() == Qt.MouseButton.LeftButton and self._engine is not None and self._engine.is_active:
            point = self._local_point(event.position()) or (0.0, 0.0)
            self.events.release(*point)
            self.unsetCursor()
            event.accept()
            return
        super().mouseReleaseEvent(event)

    def leaveEvent(self, event) -> None:  # type: ignore[override]
        if self._renderer is not None and self._renderer.hovered is not None:
            self._renderer.set_hover(None)
            self.update()
        super().leaveEvent(event)

    def focusOutEvent(self, event) -> None:  # type: ignore[override]
        if self._engine is not None and self._engine.is_active:
            self.events.cancel()
        super().focusOutEvent(event)

    def _update_cursor(self, action: str | None, handle: str | None) -> None:
        if action == ACTION_RESIZE and handle in _HANDLE_CURSORS:
            self.setCursor(_HANDLE_CURSORS[handle])
        elif action is None:
            self.setCursor(Qt.CursorShape.PointingHandCursor)
        else:
            self.setCursor(Qt.CursorShape.SizeAllCursor)

    # -- painting ----------------------------------------------------------

    def _preview_frame(self, width: int, height: int) -> QPixmap | None:
        if self._renderer is None or self._base_image is None:
            return None
        if self._preview_pixmap is None or self._preview_pixmap.size().width() != width:
            frame = self._renderer.render(self._base_image, self._sample_photo)
            self._preview_pixmap = pil_to_qpixmap(frame)
        return self._preview_pixmap

    def paintEvent(self, event) -> None:  # type: ignore[override]
        super().paintEvent(event)
        draw_rect = self._display_rect()
        if draw_rect is None or self._source_pixmap is None:
            return

        painter = QPainter(self)
        painter.setRenderHint(QPainter.RenderHint.SmoothPixmapTransform, True)
        painter.setRenderHint(QPainter.RenderHint.Antialiasing, True)
        painter.setClipRect(self.contentsRect())

        if self._renderer is not None and self._renderer.mode == MODE_PREVIEW:
            frame = self._preview_frame(int(round(draw_rect.width())), int(round(draw_rect.height())))
            if frame is not None:
                painter.drawPixmap(draw_rect, frame, QRectF(0, 0, frame.width(), frame.height()))
            painter.end()
            return

        painter.drawPixmap(
            draw_rect,
            self._source_pixmap,
            QRectF(0, 0, self._source_pixmap.width(), self._source_pixmap.height()),
        )
        if self._renderer is not None:
            layout = self._renderer.layout()
            origin = draw_rect.topLeft()
            for overlay in layout.overlays():
                self._paint_overlay(painter, overlay, origin, layout.font_size)
        painter.end()

    def _paint_overlay(self, painter: QPainter, overlay: SlotOverlay, origin: QPointF, font_size: int) -> None:
        colors = SLOT_COLORS[overlay.target]
        rect = _qrect(overlay.rect, origin)

        fill = _qcolor(colors["accent"], 60 if overlay.hovered else 26)
        painter.setPen(Qt.PenStyle.NoPen)
        painter.setBrush(fill)
        if overlay.shape == SHAPE_ELLIPSE:
            painter.drawEllipse(rect)
        else:
            painter.drawRect(rect)

        if overlay.selected or overlay.hovered:
            pen = QPen(_qcolor(colors["accent"] if overlay.selected else colors["hover"]))
            pen.setWidth(2 if overlay.selected else 1)
            if not overlay.selected:
                pen.setStyle(Qt.PenStyle.DashLine)
            painter.setPen(pen)
        else:
            pen = QPen(_qcolor(colors["accent"], 140))
            pen.setStyle(Qt.PenStyle.DashLine)
            painter.setPen(pen)
        painter.setBrush(Qt.BrushStyle.NoBrush)
        if overlay.shape == SHAPE_ELLIPSE:
            painter.drawEllipse(rect)
        else:
            painter.drawRect(rect)

        if overlay.target == TARGET_TEXT and self._renderer is not None and self._renderer.text_slot is not None:
            self._paint_text_label(painter, overlay, rect, font_size)
        else:
            painter.setPen(_qcolor(colors["accent"], 200))
            font = QFont()
            font.setBold(True)
            painter.setFont(font)
            painter.drawText(rect, Qt.AlignmentFlag.AlignCenter.value, overlay.label)

        painter.setPen(QPen(_qcolor(colors["accent"])))
        painter.setBrush(QColor("#FFFFFF"))
        for handle in overlay.handles.values():
            painter.drawRect(_qrect(handle, origin))

    def _paint_text_label(self, painter: QPainter, overlay: SlotOverlay, rect: QRectF, font_size: int) -> None:
        slot = self._renderer.text_slot if self._renderer is not None else None
        if slot is None or font_size <= 0:
            return
        font = QFont(slot.font_family)
        font.setPixelSize(font_size)
        font.setBold(True)
        painter.setFont(font)
        painter.setPen(QColor(slot.color))
        horizontal = Qt.AlignmentFlag.AlignLeft
        if slot.align == ALIGN_CENTER:
            horizontal = Qt.AlignmentFlag.AlignHCenter
        elif slot.align == ALIGN_RIGHT:
            horizontal = Qt.AlignmentFlag.AlignRight
        flags = (horizontal | Qt.AlignmentFlag.AlignVCenter).value | Qt.TextFlag.TextDontClip.value
        painter.drawText(rect, flags, overlay.label)
