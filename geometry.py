"""Coordinate conversions between pointer, percent and output-canvas space.

Three spaces are involved:

* display pixels: the (possibly scaled) on-screen image, where pointer
  events and the crop rectangle live
* percent: 0-100 relative to the displayed image, where overlays live
* canvas pixels: the rendered output, which is the crop at the source
  image's natural resolution
"""

from __future__ import annotations

import dataclasses


@dataclasses.dataclass(frozen=True)
class DisplayRect:
  """On-screen bounds of the displayed image, in pointer coordinates."""
  left: float
  top: float
  width: float
  height: float

  def is_empty(self) -> bool:
    return self.width <= 0 or self.height <= 0


@dataclasses.dataclass(frozen=True)
class CropRect:
  """Crop selection in displayed-image pixels."""
  x: float
  y: float
  width: float
  height: float

  def is_valid(self) -> bool:
    return self.width > 0 and self.height > 0


def clamp_percent(value: float) -> float:
  return max(0.0, min(100.0, value))


def to_percent(x: float, y: float, rect: DisplayRect,
               clamp: bool = False) -> tuple[float, float]:
  """Convert a pointer position to percent of the displayed image.

  Drag updates pass ``clamp=True``; initial placement does not, since a click
  on the image surface already lies inside it.
  """
  if rect.is_empty():
    raise ValueError("display rect has no area")
  xp = (x - rect.left) / rect.width * 100
  yp = (y - rect.top) / rect.height * 100
  if clamp:
    return clamp_percent(xp), clamp_percent(yp)
  return xp, yp


def from_percent(x_percent: float, y_percent: float,
                 rect: DisplayRect) -> tuple[float, float]:
  """Inverse of to_percent, used to place edit handles on screen."""
  return (
    rect.left + x_percent / 100 * rect.width,
    rect.top + y_percent / 100 * rect.height,
  )


def to_canvas_space(x_percent: float, y_percent: float,
                    canvas_width: float, canvas_height: float) -> tuple[float, float]:
  return x_percent / 100 * canvas_width, y_percent / 100 * canvas_height


def scale_factors(natural_size: tuple[int, int],
                  display_size: tuple[float, float]) -> tuple[float, float]:
  """Per-axis natural / displayed ratio."""
  nw, nh = natural_size
  dw, dh = display_size
  if dw <= 0 or dh <= 0:
    raise ValueError("display size has no area")
  return nw / dw, nh / dh


def resolve_crop(crop: CropRect | None,
                 display_size: tuple[float, float]) -> CropRect:
  """Return the crop if it has area, else the full displayed bounds."""
  if crop is not None and crop.is_valid():
    return crop
  dw, dh = display_size
  return CropRect(0, 0, dw, dh)


def output_size(crop: CropRect, scale: tuple[float, float]) -> tuple[int, int]:
  sx, sy = scale
  return int(crop.width * sx), int(crop.height * sy)


def source_box(crop: CropRect,
               scale: tuple[float, float]) -> tuple[float, float, float, float]:
  """The crop as a (left, top, right, bottom) box in natural pixels."""
  sx, sy = scale
  left = crop.x * sx
  top = crop.y * sy
  return left, top, left + crop.width * sx, top + crop.height * sy
