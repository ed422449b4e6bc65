"""Overlay data model and store: focus points, text overlays and arrows."""

from __future__ import annotations

import dataclasses
import itertools
import re
from typing import Any, Callable, Union

from PySide6.QtGui import QFont

from log import get_logger

log = get_logger("overlays")


# -- Data model ---------------------------------------------------------------

FOCUS = "focus"
TEXT = "text"
ARROW = "arrow"
OVERLAY_KINDS = (FOCUS, TEXT, ARROW)

MAX_FOCUS_POINTS = 5

FONT_WEIGHTS = ("normal", "bold", "lighter")
ARROW_STYLES = ("solid", "dashed")
ARROW_THICKNESS_RANGE = (1, 10)
ROTATION_RANGE = (-180, 180)  # degrees

DEFAULT_TEXT = "Imagine yourself having this"
DEFAULT_TEXT_COLOR = "#FFFFFF"
DEFAULT_FONT_SIZE = 24
DEFAULT_FONT_WEIGHT = "bold"
DEFAULT_FONT_FAMILY = "Arial"

DEFAULT_ARROW_COLOR = "#FF0000"
DEFAULT_ARROW_THICKNESS = 3
DEFAULT_ARROW_STYLE = "solid"
ARROW_END_OFFSET = (15.0, -10.0)

TEXT_COLORS = (
  "#FFFFFF", "#000000", "#FF0000", "#00FF00", "#0000FF",
  "#FFFF00", "#FF00FF", "#00FFFF", "#FFA500", "#800080",
  "#FFC0CB", "#A52A2A", "#808080", "#FFD700", "#4B0082",
)
ARROW_COLORS = (
  "#FF0000", "#FF8C00", "#FFD700", "#00FF00", "#0000FF",
  "#FF00FF", "#00FFFF", "#FFFFFF", "#000000", "#808080",
)
FONT_FAMILIES = (
  "Arial", "Helvetica", "Times New Roman", "Courier New",
  "Verdana", "Georgia", "Comic Sans MS", "Impact",
)
GRADIENT_PRESETS = {
  "Orange-Blue": ("#FF8C00", "#1E90FF"),
  "Green-Violet": ("#32CD32", "#9370DB"),
  "Blue-Green": ("#4169E1", "#00FA9A"),
  "Red-Yellow": ("#FF6347", "#FFD700"),
  "Pink-Purple": ("#FF1493", "#8A2BE2"),
  "Cyan-Blue": ("#00CED1", "#000080"),
  "Sunset": ("#FF4500", "#FF69B4", "#FFD700"),
  "Ocean": ("#006994", "#00D4FF", "#7FFFD4"),
  "Fire": ("#FF0000", "#FF8C00", "#FFD700"),
  "Forest": ("#228B22", "#ADFF2F", "#32CD32"),
  "Royal": ("#4B0082", "#9370DB", "#DDA0DD"),
  "Rainbow": ("#FF0000", "#FF7F00", "#FFFF00", "#00FF00",
              "#0000FF", "#4B0082", "#9400D3"),
}

_HEX_COLOR = re.compile(r"#[0-9A-Fa-f]{6}")


def parse_gradient(css: str) -> tuple[str, ...]:
  """Extract the #RRGGBB stops from a CSS linear-gradient() string."""
  return tuple(_HEX_COLOR.findall(css))


@dataclasses.dataclass(frozen=True)
class FocusPoint:
  id: int
  x_percent: float
  y_percent: float


@dataclasses.dataclass(frozen=True)
class TextOverlay:
  id: int
  x_percent: float
  y_percent: float
  text: str = DEFAULT_TEXT
  font_size: float = DEFAULT_FONT_SIZE
  color: str | None = DEFAULT_TEXT_COLOR
  gradient: tuple[str, ...] | None = None  # left-to-right, replaces color
  font_weight: str = DEFAULT_FONT_WEIGHT
  font_family: str = DEFAULT_FONT_FAMILY
  rotation: float = 0.0  # degrees, -180..180


@dataclasses.dataclass(frozen=True)
class Arrow:
  id: int
  start_x: float
  start_y: float
  end_x: float
  end_y: float
  color: str = DEFAULT_ARROW_COLOR
  thickness: float = DEFAULT_ARROW_THICKNESS
  style: str = DEFAULT_ARROW_STYLE  # "solid" or "dashed"


Overlay = Union[FocusPoint, TextOverlay, Arrow]


# -- Text fonts ---------------------------------------------------------------

TEXT_REFERENCE_WIDTH = 500  # a font_size is calibrated for this image width

_QT_WEIGHTS = {
  "normal": QFont.Weight.Normal,
  "bold": QFont.Weight.Bold,
  "lighter": QFont.Weight.Light,
}


def make_font(family: str, weight: str, pixel_size: float) -> QFont:
  font = QFont(family)
  font.setPixelSize(max(1, round(pixel_size)))
  font.setWeight(_QT_WEIGHTS.get(weight, QFont.Weight.Normal))
  return font


def text_font(text: TextOverlay, width: float) -> QFont:
  """Font for a text overlay drawn on an image `width` pixels wide.

  Only the width scales the size, so one overlay looks the same on the
  on-screen preview and on the full-resolution export.
  """
  return make_font(text.font_family, text.font_weight,
                   text.font_size * width / TEXT_REFERENCE_WIDTH)


@dataclasses.dataclass(frozen=True)
class OverlaySnapshot:
  """Immutable view of every collection, in insertion order."""
  focus_points: tuple[FocusPoint, ...] = ()
  texts: tuple[TextOverlay, ...] = ()
  arrows: tuple[Arrow, ...] = ()


# Shared across stores so ids are never reused within the process
_ids = itertools.count(1)


def next_id() -> int:
  return next(_ids)


def _check_range(name: str, value: float, bounds: tuple[float, float]) -> None:
  low, high = bounds
  if not low <= value <= high:
    raise ValueError(f"{name} must be within {low}..{high}, got {value!r}")


def _check_text_fields(fields: dict[str, Any]) -> dict[str, Any]:
  fields = dict(fields)
  if "font_weight" in fields and fields["font_weight"] not in FONT_WEIGHTS:
    raise ValueError(f"Unknown font weight: {fields['font_weight']!r}")
  if "rotation" in fields:
    _check_range("rotation", fields["rotation"], ROTATION_RANGE)
  gradient = fields.get("gradient")
  if gradient is not None:
    if isinstance(gradient, str):
      gradient = parse_gradient(gradient)
    gradient = tuple(gradient)
    if len(gradient) < 2:
      raise ValueError("A gradient needs at least two colors")
    fields["gradient"] = gradient
    fields["color"] = None
  elif fields.get("color") is not None:
    fields["gradient"] = None
  return fields


def _check_arrow_fields(fields: dict[str, Any]) -> dict[str, Any]:
  if "style" in fields and fields["style"] not in ARROW_STYLES:
    raise ValueError(f"Unknown arrow style: {fields['style']!r}")
  if "thickness" in fields:
    _check_range("thickness", fields["thickness"], ARROW_THICKNESS_RANGE)
  return fields


# -- Store --------------------------------------------------------------------

class OverlayStore:
  """Owns the three overlay collections and per-kind selection.

  Every collection is an ordered id -> entity dict that is replaced, never
  mutated, so a snapshot taken by the renderer stays consistent.
  """

  def __init__(self, on_change: Callable[[], None] | None = None):
    self.on_change = on_change
    self._items: dict[str, dict[int, Overlay]] = {k: {} for k in OVERLAY_KINDS}
    self._selected: dict[str, int | None] = {k: None for k in OVERLAY_KINDS}

  # -- Reads ------------------------------------------------------------------

  def items(self, kind: str) -> tuple[Overlay, ...]:
    return tuple(self._collection(kind).values())

  def get(self, kind: str, overlay_id: int) -> Overlay | None:
    return self._collection(kind).get(overlay_id)

  def count(self, kind: str) -> int:
    return len(self._collection(kind))

  @property
  def focus_points(self) -> tuple[FocusPoint, ...]:
    return self.items(FOCUS)

  @property
  def texts(self) -> tuple[TextOverlay, ...]:
    return self.items(TEXT)

  @property
  def arrows(self) -> tuple[Arrow, ...]:
    return self.items(ARROW)

  def snapshot(self) -> OverlaySnapshot:
    return OverlaySnapshot(
      focus_points=self.focus_points, texts=self.texts, arrows=self.arrows,
    )

  def selected(self, kind: str) -> int | None:
    self._collection(kind)
    return self._selected[kind]

  def selected_item(self, kind: str) -> Overlay | None:
    selected = self.selected(kind)
    return None if selected is None else self.get(kind, selected)

  # -- Focus points -----------------------------------------------------------

  def add_focus_point(self, x_percent: float, y_percent: float) -> FocusPoint | None:
    """Add a focus point, or return None when the collection is full."""
    if self.count(FOCUS) >= MAX_FOCUS_POINTS:
      log.debug("Focus point refused: already %d", MAX_FOCUS_POINTS)
      return None
    point = FocusPoint(next_id(), x_percent, y_percent)
    self._put(FOCUS, point)
    return point

  def update_focus_point(self, point_id: int, **fields: Any) -> FocusPoint | None:
    return self._update(FOCUS, point_id, fields)

  def remove_focus_point(self, point_id: int) -> None:
    self._remove(FOCUS, point_id)

  def clear_focus_points(self) -> None:
    self._clear(FOCUS)

  # -- Text overlays ----------------------------------------------------------

  def add_text(self, x_percent: float, y_percent: float, **fields: Any) -> TextOverlay:
    """Add a text overlay with default styling and select it."""
    fields = _check_text_fields(fields)
    text = TextOverlay(next_id(), x_percent, y_percent, **fields)
    self._put(TEXT, text, select=True)
    return text

  def update_text(self, text_id: int, **fields: Any) -> TextOverlay | None:
    return self._update(TEXT, text_id, _check_text_fields(fields))

  def remove_text(self, text_id: int) -> None:
    self._remove(TEXT, text_id)

  def clear_texts(self) -> None:
    self._clear(TEXT)

  # -- Arrows -----------------------------------------------------------------

  def add_arrow(self, start_x: float, start_y: float,
                end_x: float | None = None, end_y: float | None = None,
                **fields: Any) -> Arrow:
    """Add an arrow and select it; the end defaults to a fixed offset."""
    if end_x is None:
      end_x = start_x + ARROW_END_OFFSET[0]
    if end_y is None:
      end_y = start_y + ARROW_END_OFFSET[1]
    arrow = Arrow(next_id(), start_x, start_y, end_x, end_y,
                  **_check_arrow_fields(fields))
    self._put(ARROW, arrow, select=True)
    return arrow

  def update_arrow(self, arrow_id: int, **fields: Any) -> Arrow | None:
    return self._update(ARROW, arrow_id, _check_arrow_fields(fields))

  def remove_arrow(self, arrow_id: int) -> None:
    self._remove(ARROW, arrow_id)

  def clear_arrows(self) -> None:
    self._clear(ARROW)

  # -- Generic ----------------------------------------------------------------

  def update(self, kind: str, overlay_id: int, **fields: Any) -> Overlay | None:
    if kind == TEXT:
      return self.update_text(overlay_id, **fields)
    if kind == ARROW:
      return self.update_arrow(overlay_id, **fields)
    return self.update_focus_point(overlay_id, **fields)

  def remove(self, kind: str, overlay_id: int) -> None:
    self._remove(kind, overlay_id)

  def clear(self, kind: str | None = None) -> None:
    """Clear one collection, or all of them when kind is None."""
    kinds = OVERLAY_KINDS if kind is None else (kind,)
    changed = [self._clear(k, notify=False) for k in kinds]
    if any(changed):
      self._notify()

  def select(self, kind: str, overlay_id: int | None) -> None:
    """Select an overlay of the given kind; None clears the selection."""
    items = self._collection(kind)
    if overlay_id is not None and overlay_id not in items:
      return
    if self._selected[kind] != overlay_id:
      self._selected[kind] = overlay_id
      self._notify()

  # -- Internals --------------------------------------------------------------

  def _collection(self, kind: str) -> dict[int, Overlay]:
    try:
      return self._items[kind]
    except KeyError:
      raise ValueError(f"Unknown overlay kind: {kind!r}") from None

  def _put(self, kind: str, item: Overlay, select: bool = False) -> None:
    items = dict(self._collection(kind))
    items[item.id] = item
    self._items[kind] = items
    if select:
      self._selected[kind] = item.id
    log.debug("Added %s %d", kind, item.id)
    self._notify()

  def _update(self, kind: str, overlay_id: int,
              fields: dict[str, Any]) -> Overlay | None:
    items = self._collection(kind)
    current = items.get(overlay_id)
    if current is None:
      return None
    if "id" in fields:
      raise ValueError("Overlay ids are immutable")
    updated = dataclasses.replace(current, **fields)
    if updated == current:
      return current
    items = dict(items)
    items[overlay_id] = updated
    self._items[kind] = items
    self._notify()
    return updated

  def _remove(self, kind: str, overlay_id: int) -> None:
    items = self._collection(kind)
    if overlay_id not in items:
      return
    items = dict(items)
    del items[overlay_id]
    self._items[kind] = items
    if self._selected[kind] == overlay_id:
      self._selected[kind] = None
    log.debug("Removed %s %d", kind, overlay_id)
    self._notify()

  def _clear(self, kind: str, notify: bool = True) -> bool:
    had_items = bool(self._collection(kind))
    self._items[kind] = {}
    self._selected[kind] = None
    if had_items and notify:
      self._notify()
    return had_items

  def _notify(self) -> None:
    if self.on_change:
      self.on_change()
