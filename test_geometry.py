"""Tests for coordinate conversions."""

import pytest

from geometry import (
  CropRect, DisplayRect, clamp_percent, from_percent, output_size,
  resolve_crop, scale_factors, source_box, to_canvas_space, to_percent,
)


RECT = DisplayRect(0, 0, 500, 400)


class TestPercent:
  def test_center_is_fifty(self):
    assert to_percent(250, 200, RECT) == (50, 50)

  def test_offset_rect(self):
    rect = DisplayRect(100, 50, 200, 100)
    assert to_percent(200, 100, rect) == (50, 50)

  def test_unclamped_passes_through(self):
    assert to_percent(600, -40, RECT) == (120, -10)

  def test_clamped(self):
    assert to_percent(600, 450, RECT, clamp=True) == (100, 100)
    assert to_percent(-5, -5, RECT, clamp=True) == (0, 0)

  def test_empty_rect_raises(self):
    with pytest.raises(ValueError):
      to_percent(1, 1, DisplayRect(0, 0, 0, 10))

  def test_from_percent_inverts(self):
    rect = DisplayRect(10, 20, 300, 150)
    x, y = from_percent(*to_percent(130, 95, rect), rect)
    assert x == pytest.approx(130)
    assert y == pytest.approx(95)

  def test_clamp_percent(self):
    assert clamp_percent(-1) == 0
    assert clamp_percent(101) == 100
    assert clamp_percent(42.5) == 42.5

  def test_canvas_space(self):
    assert to_canvas_space(50, 25, 400, 300) == (200, 75)


class TestCropResolution:
  def test_scale_factors(self):
    assert scale_factors((1000, 800), (500, 400)) == (2, 2)

  def test_scale_factors_reject_empty_display(self):
    with pytest.raises(ValueError):
      scale_factors((1000, 800), (0, 400))

  def test_crop_output_size(self):
    crop = CropRect(50, 40, 200, 150)
    assert output_size(crop, (2, 2)) == (400, 300)

  def test_output_size_truncates(self):
    assert output_size(CropRect(0, 0, 100.7, 50.9), (1, 1)) == (100, 50)

  def test_source_box(self):
    assert source_box(CropRect(50, 40, 200, 150), (2, 2)) == (100, 80, 500, 380)

  def test_missing_crop_is_full_image(self):
    assert resolve_crop(None, (500, 400)) == CropRect(0, 0, 500, 400)

  def test_zero_area_crop_is_full_image(self):
    assert resolve_crop(CropRect(10, 10, 0, 30), (500, 400)) == CropRect(0, 0, 500, 400)

  def test_valid_crop_kept(self):
    crop = CropRect(1, 2, 3, 4)
    assert resolve_crop(crop, (500, 400)) is crop
