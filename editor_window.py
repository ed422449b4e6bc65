"""Preview surface: shows the image, edit handles and export size."""

from __future__ import annotations

from typing import Callable, TYPE_CHECKING

from PySide6.QtCore import Qt, QPointF, QRect, QRectF
from PySide6.QtGui import QColor, QImage, QPainter, QPen
from PySide6.QtWidgets import QWidget

from encoder import SizeMetrics
from geometry import CropRect, DisplayRect, from_percent
from interaction import (
  MODE_CROP, MODE_FOCUS, MODE_TEXT, MODE_ARROW, ARROW_HANDLE_RADIUS,
  TEXT_BORDER, text_handle_size,
)
from log import get_logger
from overlays import TEXT, ARROW

if TYPE_CHECKING:
  from PySide6.QtGui import QPaintEvent, QMouseEvent, QKeyEvent, QResizeEvent
  from session import EditSession

log = get_logger("editor")

HANDLE_COLOR = QColor("#667eea")
IDLE_HANDLE_COLOR = QColor("#999999")
MIN_CROP_SIZE = 3
STATUS_HEIGHT = 24

_MODE_KEYS = {
  Qt.Key.Key_C: MODE_CROP,
  Qt.Key.Key_F: MODE_FOCUS,
  Qt.Key.Key_T: MODE_TEXT,
  Qt.Key.Key_A: MODE_ARROW,
}


def format_metrics(metrics: SizeMetrics | None) -> str:
  if metrics is None:
    return ""
  text = "Original: %.2f MB   New: %.2f MB" % (
    metrics.original_size_mb, metrics.new_size_mb,
  )
  if metrics.reduction_percent is not None:
    text += "   Saved: %d%%" % metrics.reduction_percent
  return text


class EditorWindow(QWidget):
  """Hosts one EditSession and feeds it pointer and keyboard input."""

  def __init__(self, session: EditSession,
               on_done: Callable[..., None] | None = None,
               parent: QWidget | None = None):
    super().__init__(parent)
    self.session = session
    self.on_done = on_done
    self.setWindowTitle("ProductShot")
    self.setFocusPolicy(Qt.FocusPolicy.StrongFocus)
    self.setMinimumSize(320, 240)

    self._image_rect = QRect()
    self._press_consumed = False
    self._pressed = False
    self._crop_start: QPointF | None = None
    self._crop_current: QPointF | None = None
    self._status = ""

    session.preview_ready.connect(self._on_preview)
    session.metrics_changed.connect(self._on_metrics)
    session.encode_failed.connect(self._on_encode_failed)
    self._compute_layout()

  # -- Layout -----------------------------------------------------------------

  def _compute_layout(self) -> None:
    """Fit the source image into the widget, never upscaling."""
    image = self.session.image
    sw, sh = self.width(), self.height() - STATUS_HEIGHT
    if image is None or image.isNull() or sw <= 0 or sh <= 0:
      self._image_rect = QRect()
      return
    iw, ih = image.width(), image.height()
    scale = min(sw / iw, sh / ih, 1.0)
    dw = max(1, int(iw * scale))
    dh = max(1, int(ih * scale))
    self._image_rect = QRect((sw - dw) // 2, (sh - dh) // 2, dw, dh)
    self.session.set_display_size(dw, dh)

  def display_rect(self) -> DisplayRect:
    r = self._image_rect
    return DisplayRect(r.x(), r.y(), r.width(), r.height())

  def refresh(self) -> None:
    """Re-fit after the session loaded a different image."""
    self._compute_layout()
    self.update()

  def resizeEvent(self, event: QResizeEvent) -> None:
    super().resizeEvent(event)
    self._compute_layout()

  # -- Session signals --------------------------------------------------------

  def _on_preview(self, _frame) -> None:
    self.update()

  def _on_metrics(self, metrics: SizeMetrics) -> None:
    self._status = format_metrics(metrics)
    self.update()

  def _on_encode_failed(self, message: str) -> None:
    self._status = "Export failed: %s" % message
    self.update()

  # -- Pointer input ----------------------------------------------------------

  def handle_press(self, pos: QPointF) -> None:
    self._pressed = True
    if self.session.edit_mode == MODE_CROP:
      if self._image_rect.contains(pos.toPoint()):
        self._crop_start = pos
        self._crop_current = pos
      self._press_consumed = True
      return
    self._press_consumed = self.session.controller.pointer_down(
      pos.x(), pos.y(), self.display_rect(),
    )

  def handle_move(self, pos: QPointF) -> None:
    if self._crop_start is not None:
      self._crop_current = pos
      self.update()
    elif self.session.controller.pointer_move(pos.x(), pos.y(), self.display_rect()):
      self.update()

  def handle_release(self, pos: QPointF) -> None:
    if self._crop_start is not None:
      self._commit_crop_band()
    self.session.controller.pointer_up()
    if self._pressed and not self._press_consumed and self._image_rect.contains(pos.toPoint()):
      self.session.controller.click(pos.x(), pos.y(), self.display_rect())
    self._pressed = False
    self._press_consumed = False
    self.update()

  def _commit_crop_band(self) -> None:
    band = QRectF(self._crop_start, self._crop_current).normalized()
    band = band.intersected(QRectF(self._image_rect))
    self._crop_start = None
    self._crop_current = None
    if band.width() < MIN_CROP_SIZE or band.height() < MIN_CROP_SIZE:
      return
    self.session.commit_crop(CropRect(
      band.x() - self._image_rect.x(), band.y() - self._image_rect.y(),
      band.width(), band.height(),
    ))

  def mousePressEvent(self, event: QMouseEvent) -> None:
    if event.button() == Qt.MouseButton.LeftButton:
      self.handle_press(event.position())

  def mouseMoveEvent(self, event: QMouseEvent) -> None:
    self.handle_move(event.position())

  def mouseReleaseEvent(self, event: QMouseEvent) -> None:
    if event.button() == Qt.MouseButton.LeftButton:
      self.handle_release(event.position())

  # -- Keyboard ---------------------------------------------------------------

  def delete_selected(self) -> None:
    """Remove the selected text or arrow for the active mode."""
    kind = self.session.controller.active_kind
    if kind not in (TEXT, ARROW):
      return
    selected = self.session.store.selected(kind)
    if selected is not None:
      self.session.store.remove(kind, selected)
      log.debug("Deleted %s %d", kind, selected)

  def download(self) -> str | None:
    path = self.session.download()
    if path:
      self._status = "Saved %s" % path
    else:
      log.warning("Download produced no file")
      self._status = "Export failed"
    self.update()
    return path

  def keyPressEvent(self, event: QKeyEvent) -> None:
    key = event.key()
    mods = event.modifiers() & Qt.KeyboardModifier.ControlModifier
    if key == Qt.Key.Key_S and mods:
      self.download()
    elif key in _MODE_KEYS and not mods:
      self.session.set_edit_mode(_MODE_KEYS[key])
      self.update()
    elif key == Qt.Key.Key_E and not mods:
      self.session.set_focus_enabled(not self.session.focus.enabled)
    elif key in (Qt.Key.Key_Delete, Qt.Key.Key_Backspace):
      self.delete_selected()
    elif key == Qt.Key.Key_Escape:
      self.close()
    else:
      super().keyPressEvent(event)

  def closeEvent(self, event) -> None:
    if self.on_done:
      self.on_done(self.session.last_encoded)
    super().closeEvent(event)

  # -- Paint ------------------------------------------------------------------

  def frame_to_show(self) -> QImage | None:
    """Source while cropping, the latest render otherwise."""
    if self.session.edit_mode == MODE_CROP or self.session.preview is None:
      return self.session.image
    return self.session.preview

  def paintEvent(self, event: QPaintEvent) -> None:
    painter = QPainter(self)
    painter.setRenderHint(QPainter.RenderHint.Antialiasing)
    painter.fillRect(self.rect(), QColor(40, 40, 40))

    frame = self.frame_to_show()
    if frame is not None and not self._image_rect.isEmpty():
      painter.drawImage(QRectF(self._image_rect), frame)
      rect = self.display_rect()
      mode = self.session.edit_mode
      if mode == MODE_CROP:
        self._paint_crop(painter)
      elif mode == MODE_FOCUS:
        self._paint_focus_handles(painter, rect)
      elif mode == MODE_ARROW:
        self._paint_arrow_handles(painter, rect)
      elif mode == MODE_TEXT:
        self._paint_text_handle(painter, rect)

    painter.setPen(QColor(220, 220, 220))
    painter.drawText(
      QRect(8, self.height() - STATUS_HEIGHT, self.width() - 16, STATUS_HEIGHT),
      Qt.AlignmentFlag.AlignVCenter | Qt.AlignmentFlag.AlignLeft,
      "[%s]  %s" % (self.session.edit_mode, self._status),
    )
    painter.end()

  def _paint_crop(self, painter: QPainter) -> None:
    if self._crop_start is not None:
      band = QRectF(self._crop_start, self._crop_current).normalized()
    elif self.session.crop is not None and self.session.crop.is_valid():
      c = self.session.crop
      band = QRectF(self._image_rect.x() + c.x, self._image_rect.y() + c.y,
                    c.width, c.height)
    else:
      return
    painter.setPen(QPen(HANDLE_COLOR, 2, Qt.PenStyle.DashLine))
    painter.setBrush(Qt.BrushStyle.NoBrush)
    painter.drawRect(band)

  def _paint_focus_handles(self, painter: QPainter, rect: DisplayRect) -> None:
    focus = self.session.focus
    if not focus.enabled:
      return
    rx = focus.size_percent / 100 * rect.width / 2
    ry = focus.size_percent / 100 * rect.height / 2
    for index, point in enumerate(self.session.store.focus_points, start=1):
      center = QPointF(*from_percent(point.x_percent, point.y_percent, rect))
      painter.setPen(QPen(HANDLE_COLOR, 3, Qt.PenStyle.DashLine))
      painter.setBrush(Qt.BrushStyle.NoBrush)
      painter.drawEllipse(center, rx, ry)
      painter.setPen(QPen(QColor("white"), 3))
      painter.setBrush(HANDLE_COLOR)
      painter.drawEllipse(center, 7, 7)
      painter.setPen(HANDLE_COLOR)
      painter.drawText(center + QPointF(-6, -14), "#%d" % index)

  def _paint_arrow_handles(self, painter: QPainter, rect: DisplayRect) -> None:
    selected = self.session.store.selected(ARROW)
    r = ARROW_HANDLE_RADIUS - 1
    for arrow in self.session.store.arrows:
      ring = HANDLE_COLOR if arrow.id == selected else IDLE_HANDLE_COLOR
      painter.setPen(QPen(ring, 2))
      painter.setBrush(QColor("white"))
      for px, py in ((arrow.start_x, arrow.start_y), (arrow.end_x, arrow.end_y)):
        painter.drawEllipse(QPointF(*from_percent(px, py, rect)), r, r)

  def _paint_text_handle(self, painter: QPainter, rect: DisplayRect) -> None:
    text = self.session.store.selected_item(TEXT)
    if text is None:
      return
    w, h = text_handle_size(text, rect.width)
    painter.save()
    painter.translate(*from_percent(text.x_percent, text.y_percent, rect))
    painter.rotate(text.rotation)
    painter.setPen(QPen(HANDLE_COLOR, TEXT_BORDER, Qt.PenStyle.DashLine))
    painter.setBrush(Qt.BrushStyle.NoBrush)
    painter.drawRect(QRectF(-w / 2, -h / 2, w, h))
    painter.restore()
