"""Tests for the render pipeline."""

import math

import pytest
from PIL import Image, ImageChops
from PySide6.QtCore import QPointF
from PySide6.QtGui import QColor, QFont, QGradient, QImage, QPainter, QPainterPath
from PySide6.QtWidgets import QApplication

app = QApplication.instance() or QApplication([])

from compositor import (
  render, arrow_pen, arrow_head, text_brush, text_gradient, pil_to_qimage,
  qimage_to_pil, _paint_text_shadow, ARROW_HEAD_LENGTH, SHADOW_BLUR,
  SHADOW_COLOR, SHADOW_OFFSET,
)
from filters import FilterSettings, FocusConfig
from geometry import CropRect
from overlays import Arrow, FocusPoint, TextOverlay, make_font, text_font


def solid_image(w, h, color=(255, 255, 255)):
  img = QImage(w, h, QImage.Format.Format_ARGB32)
  img.fill(QColor(*color))
  return img


def striped_image(w=100, h=100):
  """One-pixel black and white columns, which blur to mid grey."""
  pil = Image.new("RGBA", (w, h))
  pil.putdata([
    (255, 255, 255, 255) if x % 2 else (0, 0, 0, 255)
    for y in range(h) for x in range(w)
  ])
  return pil_to_qimage(pil)


def plain(source, **kwargs):
  args = dict(
    display_size=(source.width(), source.height()), crop=None,
    filters=FilterSettings(), focus=FocusConfig(),
  )
  args.update(kwargs)
  return render(source, **args)


def ink_box(image, background):
  """Bounding box of every pixel that differs from the background color."""
  pil = qimage_to_pil(image).convert("RGB")
  return ImageChops.difference(pil, Image.new("RGB", pil.size, background)).getbbox()


def count_color(image, rgb):
  return sum(1 for px in qimage_to_pil(image).convert("RGB").getdata() if px == rgb)


class TestNotReady:
  def test_no_source(self):
    assert render(None, (100, 100), None, FilterSettings(), FocusConfig()) is None

  def test_null_source(self):
    assert render(QImage(), (100, 100), None, FilterSettings(), FocusConfig()) is None

  def test_not_laid_out(self):
    assert plain(solid_image(10, 10), display_size=(0, 0)) is None

  def test_crop_outside_image(self):
    src = solid_image(100, 100)
    assert plain(src, crop=CropRect(200, 200, 10, 10)) is None


class TestSize:
  def test_crop_at_natural_resolution(self):
    out = plain(solid_image(1000, 800), display_size=(500, 400),
                crop=CropRect(50, 40, 200, 150))
    assert (out.width(), out.height()) == (400, 300)

  def test_no_crop_is_natural_size(self):
    out = plain(solid_image(1000, 800), display_size=(500, 400))
    assert (out.width(), out.height()) == (1000, 800)

  def test_zero_area_crop_is_full_image(self):
    out = plain(solid_image(300, 200), crop=CropRect(10, 10, 0, 0))
    assert (out.width(), out.height()) == (300, 200)


class TestPixels:
  def test_identity_keeps_colors(self):
    out = plain(solid_image(20, 20, (12, 150, 240)))
    assert out.pixelColor(10, 10) == QColor(12, 150, 240)

  def test_brightness_applied(self):
    out = plain(solid_image(20, 20, (100, 100, 100)),
                filters=FilterSettings(brightness=50))
    assert out.pixelColor(5, 5).red() == 50

  def test_render_is_idempotent(self):
    src = striped_image()
    kwargs = dict(
      focus=FocusConfig(enabled=True),
      focus_points=(FocusPoint(1, 30, 40),),
      arrows=(Arrow(2, 10, 10, 80, 80),),
    )
    assert plain(src, **kwargs) == plain(src, **kwargs)

  def test_focus_without_points_equals_disabled(self):
    src = striped_image()
    assert plain(src, focus=FocusConfig(enabled=True)) == plain(src, focus=FocusConfig())

  def test_focus_hole_keeps_center_sharp(self):
    src = striped_image()
    out = plain(src, focus=FocusConfig(enabled=True, size_percent=25, blur_strength=10),
                focus_points=(FocusPoint(1, 50, 50),))
    assert out.pixelColor(50, 50) == src.pixelColor(50, 50)
    assert out.pixelColor(51, 50) == src.pixelColor(51, 50)
    corner = out.pixelColor(2, 2).red()
    assert 60 < corner < 200

  def test_focus_disabled_ignores_points(self):
    src = striped_image()
    out = plain(src, focus=FocusConfig(enabled=False),
                focus_points=(FocusPoint(1, 50, 50),))
    assert out.pixelColor(2, 2) == src.pixelColor(2, 2)

  def test_arrow_is_drawn(self):
    src = solid_image(100, 100)
    out = plain(src, arrows=(Arrow(1, 10, 50, 90, 50, color="#FF0000", thickness=4),))
    assert out.pixelColor(50, 50) == QColor(255, 0, 0)
    assert out.pixelColor(50, 10) == QColor(255, 255, 255)

  def test_text_is_drawn(self):
    src = solid_image(500, 200, (0, 0, 0))
    text = TextOverlay(1, 50, 50, text="MMMM", font_size=60, color="#FFFFFF")
    with_text = plain(src, texts=(text,))
    assert with_text != plain(src)

  def test_empty_text_draws_nothing(self):
    src = solid_image(100, 100, (0, 0, 0))
    text = TextOverlay(1, 50, 50, text="")
    assert plain(src, texts=(text,)) == plain(src)


class TestArrowShape:
  def test_dash_pattern_in_pen_units(self):
    pen = arrow_pen(Arrow(1, 0, 0, 1, 1, thickness=5, style="dashed"))
    assert pen.dashPattern() == pytest.approx([2.0, 1.0])

  def test_solid_pen(self):
    pen = arrow_pen(Arrow(1, 0, 0, 1, 1, color="#00FF00", thickness=3))
    assert pen.color() == QColor("#00FF00")
    assert pen.widthF() == 3

  def test_head_barbs(self):
    path = arrow_head(QPointF(100, 0), 0.0)
    barb = path.elementAt(1)
    assert barb.x == pytest.approx(100 - ARROW_HEAD_LENGTH * math.cos(math.pi / 6))
    assert abs(barb.y) == pytest.approx(ARROW_HEAD_LENGTH * math.sin(math.pi / 6))


class TestText:
  def test_solid_brush(self):
    brush = text_brush(TextOverlay(1, 0, 0, color="#FF0000"))
    assert brush.color() == QColor("#FF0000")

  def test_gradient_brush(self):
    brush = text_brush(TextOverlay(1, 0, 0, color=None,
                                   gradient=("#FF0000", "#00FF00", "#0000FF")))
    gradient = brush.gradient()
    assert gradient.type() == QGradient.Type.LinearGradient
    assert [pos for pos, _ in gradient.stops()] == [0, 0.5, 1]

  def test_gradient_window_is_fixed(self):
    for size in (12, 96):
      text = TextOverlay(1, 0, 0, text="Sale", font_size=size, color=None,
                         gradient=("#FF0000", "#0000FF"))
      gradient = text_gradient(text)
      assert gradient.start() == QPointF(-200, 0)
      assert gradient.finalStop() == QPointF(200, 0)

  def test_single_color_gradient_is_solid(self):
    text = TextOverlay(1, 0, 0, color="#123456", gradient=("#FF0000",))
    assert text_gradient(text) is None
    assert text_brush(text).color() == QColor("#123456")

  def test_font_weight(self):
    assert make_font("Arial", "bold", 20).weight() == QFont.Weight.Bold
    assert make_font("Arial", "lighter", 20).weight() == QFont.Weight.Light
    assert make_font("Arial", "normal", 20).pixelSize() == 20

  def test_font_scales_with_width(self):
    text = TextOverlay(1, 50, 50, font_size=24)
    assert text_font(text, 500).pixelSize() == 24
    assert text_font(text, 1000).pixelSize() == 48
    assert text_font(text, 250).pixelSize() == 12

  def test_rendered_text_ignores_height(self):
    text = TextOverlay(1, 50, 50, text="MMMM", font_size=30, color="#FFFFFF")
    short = ink_box(plain(solid_image(500, 100, (0, 0, 0)), texts=(text,)), (0, 0, 0))
    tall = ink_box(plain(solid_image(500, 400, (0, 0, 0)), texts=(text,)), (0, 0, 0))
    assert short[2] - short[0] == tall[2] - tall[0]

  def test_rendered_text_follows_width(self):
    text = TextOverlay(1, 50, 50, text="MMMM", font_size=30, color="#FFFFFF")
    narrow = ink_box(plain(solid_image(500, 300, (0, 0, 0)), texts=(text,)), (0, 0, 0))
    wide = ink_box(plain(solid_image(1000, 300, (0, 0, 0)), texts=(text,)), (0, 0, 0))
    assert wide[2] - wide[0] > 1.8 * (narrow[2] - narrow[0])

  def test_rotation_turns_glyphs(self):
    src = solid_image(400, 400, (0, 0, 0))
    flat = TextOverlay(1, 50, 50, text="MMMMMM", font_size=40, color="#FFFFFF")
    upright = TextOverlay(1, 50, 50, text="MMMMMM", font_size=40, color="#FFFFFF",
                          rotation=90)
    left, top, right, bottom = ink_box(plain(src, texts=(flat,)), (0, 0, 0))
    assert right - left > bottom - top
    left, top, right, bottom = ink_box(plain(src, texts=(upright,)), (0, 0, 0))
    assert bottom - top > right - left
    # Rotation is about the anchor, which stays near the centre
    assert abs((left + right) / 2 - 200) < 30
    assert abs((top + bottom) / 2 - 200) < 30


class TestTextShadow:
  def test_shadow_parameters(self):
    assert SHADOW_COLOR == QColor(0, 0, 0, 204)
    assert SHADOW_BLUR == 4
    assert SHADOW_OFFSET == (2, 2)

  def _shadow_of_square(self):
    img = solid_image(60, 60)
    path = QPainterPath()
    path.addRect(20, 20, 10, 10)
    painter = QPainter(img)
    _paint_text_shadow(painter, path)
    painter.end()
    return img

  def test_shadow_is_translucent_black(self):
    img = self._shadow_of_square()
    centre = img.pixelColor(27, 27)
    # At most 80% black, softened further by the blur
    assert 40 <= centre.red() <= 80
    assert centre.red() == centre.green() == centre.blue()

  def test_shadow_is_blurred(self):
    img = self._shadow_of_square()
    inner = img.pixelColor(27, 27).red()
    edge = img.pixelColor(33, 27).red()
    assert inner < edge < 255
    assert img.pixelColor(5, 5) == QColor(255, 255, 255)
    assert img.pixelColor(55, 55) == QColor(255, 255, 255)

  def test_shadow_is_offset_down_right(self):
    img = self._shadow_of_square()
    # The shadow square spans 22..32 on both axes
    assert img.pixelColor(30, 27).red() < img.pixelColor(20, 27).red()
    assert img.pixelColor(27, 30).red() < img.pixelColor(27, 20).red()

  def test_shadow_only_text_darkens_background(self):
    src = solid_image(300, 120)
    text = TextOverlay(1, 50, 50, text="MMMM", font_size=60, color="#FFFFFF")
    out = plain(src, texts=(text,))
    left, top, right, bottom = ink_box(out, (255, 255, 255))
    assert out.pixelColor(2, 2) == QColor(255, 255, 255)
    assert 0 < left and right < 300

  def test_shadow_stays_under_its_own_glyphs(self):
    src = solid_image(300, 120)
    red = TextOverlay(1, 50, 50, text="MMMM", font_size=60, color="#FF0000")
    green = TextOverlay(2, 50, 50, text="MMMM", font_size=60, color="#00FF00")
    alone = plain(src, texts=(green,))
    stacked = plain(src, texts=(red, green))
    solid = count_color(alone, (0, 255, 0))
    assert solid > 0
    # Glyph interiors of the later overlay keep their exact fill
    assert count_color(stacked, (0, 255, 0)) == solid
    assert count_color(stacked, (255, 0, 0)) == 0


def test_pil_conversion_keeps_pixels():
  src = solid_image(3, 2, (10, 20, 30))
  pil = qimage_to_pil(src)
  assert pil.size == (3, 2)
  assert pil.getpixel((1, 1)) == (10, 20, 30, 255)
