"""Global color adjustments and blur, with CSS filter-function semantics.

Brightness multiplies each channel, contrast pivots around mid-grey and
saturation uses the CSS luminance matrix. All values are percentages with
100 as identity. Alpha is never touched.
"""

from __future__ import annotations

import dataclasses

from PIL import Image, ImageFilter

IDENTITY = 100.0

DEFAULT_FOCUS_SIZE = 25
DEFAULT_BLUR_STRENGTH = 10


@dataclasses.dataclass(frozen=True)
class FilterSettings:
  brightness: float = IDENTITY
  contrast: float = IDENTITY
  saturation: float = IDENTITY

  def is_identity(self) -> bool:
    return (self.brightness == IDENTITY and self.contrast == IDENTITY
            and self.saturation == IDENTITY)


@dataclasses.dataclass(frozen=True)
class FocusConfig:
  enabled: bool = False
  size_percent: float = DEFAULT_FOCUS_SIZE  # 10-50, of min(out_w, out_h)
  blur_strength: float = DEFAULT_BLUR_STRENGTH  # px, 0-25


def _clip(v: float) -> int:
  return max(0, min(255, int(round(v))))


def _tone_table(brightness: float, contrast: float) -> list[int]:
  """256-entry lookup for brightness followed by contrast."""
  b = brightness / 100
  c = contrast / 100
  table = []
  for v in range(256):
    lit = _clip(v * b)
    table.append(_clip(((lit / 255 - 0.5) * c + 0.5) * 255))
  return table


def saturation_matrix(saturation: float) -> tuple[float, ...]:
  """CSS saturate() as a 12-tuple for Image.convert("RGB", matrix)."""
  s = saturation / 100
  return (
    0.213 + 0.787 * s, 0.715 - 0.715 * s, 0.072 - 0.072 * s, 0,
    0.213 - 0.213 * s, 0.715 + 0.285 * s, 0.072 - 0.072 * s, 0,
    0.213 - 0.213 * s, 0.715 - 0.715 * s, 0.072 + 0.928 * s, 0,
  )


def apply_adjustments(image: Image.Image, settings: FilterSettings) -> Image.Image:
  """Apply brightness, contrast and saturation to an RGBA image.

  The three run together as one chain. Stages sitting at 100 are exact
  no-ops and are skipped so identity settings return pixel-identical output.
  """
  img = image.convert("RGBA")
  if settings.brightness != IDENTITY or settings.contrast != IDENTITY:
    tone = _tone_table(settings.brightness, settings.contrast)
    img = img.point(tone * 3 + list(range(256)))
  if settings.saturation != IDENTITY:
    alpha = img.getchannel("A")
    rgb = img.convert("RGB").convert("RGB", saturation_matrix(settings.saturation))
    img = rgb.convert("RGBA")
    img.putalpha(alpha)
  return img


def apply_blur(image: Image.Image, radius: float) -> Image.Image:
  """Gaussian blur where radius is the standard deviation in pixels."""
  if radius <= 0:
    return image.copy()
  return image.filter(ImageFilter.GaussianBlur(radius=radius))


def filtered(image: Image.Image, settings: FilterSettings,
             blur: float = 0) -> Image.Image:
  """Blur (when requested) then color-adjust, in CSS filter-list order."""
  return apply_adjustments(apply_blur(image, blur), settings)
