"""Render the edited image: crop, color filters, focus blur and annotations."""

from __future__ import annotations

import math
from typing import Iterable

from PIL import Image
from PySide6.QtCore import Qt, QPointF, QRectF
from PySide6.QtGui import (
  QImage, QPainter, QColor, QPen, QBrush, QFont, QFontMetricsF,
  QPainterPath, QRadialGradient, QLinearGradient, QTransform,
)

from filters import FilterSettings, FocusConfig, filtered, apply_blur
from geometry import (
  CropRect, resolve_crop, scale_factors, output_size, source_box,
  to_canvas_space,
)
from log import get_logger
from overlays import FocusPoint, Arrow, TextOverlay, text_font

log = get_logger("compositor")

# Focus hole: fully erased inside FOCUS_INNER_RATIO * r, feathered out to r
FOCUS_INNER_RATIO = 0.4
FOCUS_STOPS = ((0.0, 255), (0.6, 204), (1.0, 0))

ARROW_HEAD_LENGTH = 20  # output pixels, not scaled with resolution
ARROW_HEAD_ANGLE = math.pi / 6
ARROW_DASH = (10, 5)

TEXT_GRADIENT_HALF_SPAN = 200  # output pixels either side of the anchor
TEXT_FALLBACK_COLOR = "#FFFFFF"
SHADOW_COLOR = QColor(0, 0, 0, 204)
SHADOW_BLUR = 4
SHADOW_OFFSET = (2, 2)


# -- Image conversion ---------------------------------------------------------

def qimage_to_pil(qimage: QImage) -> Image.Image:
  img = qimage.convertToFormat(QImage.Format.Format_RGBA8888)
  data = bytes(img.constBits())
  return Image.frombuffer(
    "RGBA", (img.width(), img.height()), data,
    "raw", "RGBA", img.bytesPerLine(), 1,
  ).copy()


def pil_to_qimage(image: Image.Image) -> QImage:
  img = image.convert("RGBA")
  w, h = img.size
  return QImage(
    img.tobytes("raw", "RGBA"), w, h, w * 4, QImage.Format.Format_RGBA8888,
  ).copy()


# -- Pipeline -----------------------------------------------------------------

def _crop_region(source: Image.Image, crop: CropRect,
                 scale: tuple[float, float],
                 size: tuple[int, int]) -> Image.Image | None:
  """The crop at natural resolution, resampled to exactly `size`."""
  left, top, right, bottom = source_box(crop, scale)
  left = max(0.0, left)
  top = max(0.0, top)
  right = min(float(source.width), right)
  bottom = min(float(source.height), bottom)
  if right <= left or bottom <= top:
    return None
  return source.resize(size, Image.Resampling.BICUBIC,
                       box=(left, top, right, bottom))


def render(source: QImage | None, display_size: tuple[float, float],
           crop: CropRect | None, filters: FilterSettings, focus: FocusConfig,
           focus_points: Iterable[FocusPoint] = (),
           arrows: Iterable[Arrow] = (),
           texts: Iterable[TextOverlay] = ()) -> QImage | None:
  """Composite one output frame, or return None when there is nothing to draw.

  Nothing here mutates its inputs; identical inputs give identical pixels.
  """
  if source is None or source.isNull():
    log.debug("Render skipped: no source image")
    return None
  dw, dh = display_size
  if dw <= 0 or dh <= 0:
    log.debug("Render skipped: image not laid out yet")
    return None

  crop = resolve_crop(crop, display_size)
  scale = scale_factors((source.width(), source.height()), display_size)
  out_w, out_h = output_size(crop, scale)
  if out_w <= 0 or out_h <= 0:
    log.debug("Render skipped: empty output %dx%d", out_w, out_h)
    return None

  region = _crop_region(qimage_to_pil(source), crop, scale, (out_w, out_h))
  if region is None:
    log.debug("Render skipped: crop outside the image")
    return None

  focus_points = tuple(focus_points)
  canvas = QImage(out_w, out_h, QImage.Format.Format_ARGB32_Premultiplied)
  canvas.fill(Qt.GlobalColor.transparent)

  painter = QPainter(canvas)
  painter.setRenderHint(QPainter.RenderHint.Antialiasing)
  try:
    sharp = pil_to_qimage(filtered(region, filters))
    if focus.enabled and focus_points:
      blurred = pil_to_qimage(filtered(region, filters, blur=focus.blur_strength))
      painter.drawImage(0, 0, blurred)

      painter.setCompositionMode(QPainter.CompositionMode.CompositionMode_DestinationOut)
      radius = focus.size_percent / 100 * min(out_w, out_h)
      for point in focus_points:
        _punch_focus_hole(painter, point, radius, out_w, out_h)

      painter.setCompositionMode(QPainter.CompositionMode.CompositionMode_DestinationOver)
      painter.drawImage(0, 0, sharp)
      painter.setCompositionMode(QPainter.CompositionMode.CompositionMode_SourceOver)
    else:
      painter.drawImage(0, 0, sharp)

    for arrow in arrows:
      _paint_arrow(painter, arrow, out_w, out_h)
    for text in texts:
      _paint_text(painter, text, out_w, out_h)
  finally:
    painter.end()

  return canvas


def _punch_focus_hole(painter: QPainter, point: FocusPoint, radius: float,
                      width: int, height: int) -> None:
  if radius <= 0:
    return
  cx, cy = to_canvas_space(point.x_percent, point.y_percent, width, height)
  center = QPointF(cx, cy)
  gradient = QRadialGradient(center, radius, center, radius * FOCUS_INNER_RATIO)
  for pos, alpha in FOCUS_STOPS:
    gradient.setColorAt(pos, QColor(0, 0, 0, alpha))
  painter.fillRect(QRectF(0, 0, width, height), QBrush(gradient))


# -- Arrows -------------------------------------------------------------------

def arrow_pen(arrow: Arrow) -> QPen:
  pen = QPen(QColor(arrow.color), arrow.thickness, Qt.PenStyle.SolidLine,
             Qt.PenCapStyle.RoundCap, Qt.PenJoinStyle.MiterJoin)
  if arrow.style == "dashed" and arrow.thickness > 0:
    # Qt dash lengths are in units of the pen width
    pen.setDashPattern([d / arrow.thickness for d in ARROW_DASH])
  return pen


def arrow_head(end: QPointF, angle: float) -> QPainterPath:
  """Two open strokes from the tip, each ARROW_HEAD_ANGLE off the shaft."""
  path = QPainterPath()
  for side in (-1, 1):
    a = angle + side * ARROW_HEAD_ANGLE
    path.moveTo(end)
    path.lineTo(end.x() - ARROW_HEAD_LENGTH * math.cos(a),
                end.y() - ARROW_HEAD_LENGTH * math.sin(a))
  return path


def _paint_arrow(painter: QPainter, arrow: Arrow, width: int, height: int) -> None:
  start = QPointF(*to_canvas_space(arrow.start_x, arrow.start_y, width, height))
  end = QPointF(*to_canvas_space(arrow.end_x, arrow.end_y, width, height))
  painter.setPen(arrow_pen(arrow))
  painter.setBrush(Qt.BrushStyle.NoBrush)
  painter.drawLine(start, end)
  angle = math.atan2(end.y() - start.y(), end.x() - start.x())
  painter.drawPath(arrow_head(end, angle))


# -- Text ---------------------------------------------------------------------

def text_path(text: TextOverlay, font: QFont) -> QPainterPath:
  """Glyph outline centred on the origin, both axes."""
  fm = QFontMetricsF(font)
  width = fm.horizontalAdvance(text.text)
  baseline = (fm.ascent() - fm.descent()) / 2
  path = QPainterPath()
  path.addText(QPointF(-width / 2, baseline), font, text.text)
  return path


def text_gradient(text: TextOverlay) -> QLinearGradient | None:
  """Horizontal fill across a fixed window around the anchor, whatever the glyph width."""
  if not text.gradient or len(text.gradient) < 2:
    return None
  gradient = QLinearGradient(
    QPointF(-TEXT_GRADIENT_HALF_SPAN, 0), QPointF(TEXT_GRADIENT_HALF_SPAN, 0),
  )
  last = len(text.gradient) - 1
  for i, color in enumerate(text.gradient):
    gradient.setColorAt(i / last, QColor(color))
  return gradient


def text_brush(text: TextOverlay) -> QBrush:
  gradient = text_gradient(text)
  if gradient is not None:
    return QBrush(gradient)
  return QBrush(QColor(text.color or TEXT_FALLBACK_COLOR))


def _paint_text(painter: QPainter, text: TextOverlay, width: int, height: int) -> None:
  if not text.text:
    return
  x, y = to_canvas_space(text.x_percent, text.y_percent, width, height)
  font = text_font(text, width)
  path = text_path(text, font)
  transform = QTransform()
  transform.translate(x, y)
  transform.rotate(text.rotation)

  _paint_text_shadow(painter, transform.map(path))

  painter.save()
  painter.setTransform(transform)
  painter.fillPath(path, text_brush(text))
  painter.restore()


def _paint_text_shadow(painter: QPainter, device_path: QPainterPath) -> None:
  """Blurred shadow of the glyphs, offset in unrotated output space."""
  sigma = SHADOW_BLUR / 2
  margin = math.ceil(sigma * 3) + 1
  bounds = device_path.boundingRect().adjusted(-margin, -margin, margin, margin)
  rect = bounds.toAlignedRect()
  if rect.isEmpty():
    return

  layer = QImage(rect.size(), QImage.Format.Format_ARGB32_Premultiplied)
  layer.fill(Qt.GlobalColor.transparent)
  p = QPainter(layer)
  p.setRenderHint(QPainter.RenderHint.Antialiasing)
  p.translate(-rect.left(), -rect.top())
  p.fillPath(device_path, QBrush(SHADOW_COLOR))
  p.end()

  shadow = pil_to_qimage(apply_blur(qimage_to_pil(layer), sigma))
  painter.save()
  painter.resetTransform()
  painter.drawImage(rect.left() + SHADOW_OFFSET[0], rect.top() + SHADOW_OFFSET[1], shadow)
  painter.restore()
