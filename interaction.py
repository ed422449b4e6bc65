"""Pointer gesture handling: edit modes, placement and drag sessions.

One controller receives every pointer event and dispatches it once, using a
single DragState, so only the overlay owned by the active drag is ever
mutated.
"""

from __future__ import annotations

import dataclasses
import math
from typing import Callable

from PySide6.QtGui import QFontMetricsF

from filters import FocusConfig
from geometry import DisplayRect, to_percent, from_percent
from log import get_logger
from overlays import (
  FOCUS, TEXT, ARROW, Overlay, OverlayStore, TextOverlay, text_font,
)

log = get_logger("interaction")

MODE_CROP = "crop"
MODE_FOCUS = "focus"
MODE_TEXT = "text"
MODE_ARROW = "arrow"
EDIT_MODES = (MODE_CROP, MODE_FOCUS, MODE_TEXT, MODE_ARROW)

# Overlay kind that is interactive in each mode
MODE_KINDS = {
  MODE_CROP: None,
  MODE_FOCUS: FOCUS,
  MODE_TEXT: TEXT,
  MODE_ARROW: ARROW,
}

ENDPOINT_START = "start"
ENDPOINT_END = "end"

# Handle geometry, in display pixels
ARROW_HANDLE_RADIUS = 9
TEXT_PADDING = (10, 5)
TEXT_BORDER = 2


@dataclasses.dataclass(frozen=True)
class DragState:
  kind: str
  id: int
  endpoint: str | None = None  # arrows only


# -- Hit testing --------------------------------------------------------------

def text_handle_size(text: TextOverlay, display_width: float) -> tuple[float, float]:
  """On-screen box of a text overlay shown on an image display_width wide."""
  fm = QFontMetricsF(text_font(text, display_width))
  pad_x, pad_y = TEXT_PADDING
  w = fm.horizontalAdvance(text.text) + 2 * (pad_x + TEXT_BORDER)
  h = fm.height() + 2 * (pad_y + TEXT_BORDER)
  return w, h


def _hit_focus(x: float, y: float, rect: DisplayRect, points,
               size_percent: float) -> int | None:
  rx = size_percent / 100 * rect.width / 2
  ry = size_percent / 100 * rect.height / 2
  if rx <= 0 or ry <= 0:
    return None
  for point in reversed(points):
    cx, cy = from_percent(point.x_percent, point.y_percent, rect)
    if ((x - cx) / rx) ** 2 + ((y - cy) / ry) ** 2 <= 1:
      return point.id
  return None


def _hit_arrow(x: float, y: float, rect: DisplayRect,
               arrows) -> tuple[int, str] | None:
  for arrow in reversed(arrows):
    # The end handle is drawn last, so it wins when both overlap
    for endpoint, px, py in (
      (ENDPOINT_END, arrow.end_x, arrow.end_y),
      (ENDPOINT_START, arrow.start_x, arrow.start_y),
    ):
      hx, hy = from_percent(px, py, rect)
      if math.hypot(x - hx, y - hy) <= ARROW_HANDLE_RADIUS:
        return arrow.id, endpoint
  return None


def _hit_text(x: float, y: float, rect: DisplayRect, texts) -> int | None:
  for text in reversed(texts):
    cx, cy = from_percent(text.x_percent, text.y_percent, rect)
    # Undo the overlay's rotation around its anchor
    theta = math.radians(-text.rotation)
    dx, dy = x - cx, y - cy
    lx = dx * math.cos(theta) - dy * math.sin(theta)
    ly = dx * math.sin(theta) + dy * math.cos(theta)
    w, h = text_handle_size(text, rect.width)
    if abs(lx) <= w / 2 and abs(ly) <= h / 2:
      return text.id
  return None


# -- Controller ---------------------------------------------------------------

class InteractionController:
  """Translate pointer events into OverlayStore mutations."""

  def __init__(self, store: OverlayStore,
               focus_config: Callable[[], FocusConfig] | None = None,
               mode: str = MODE_CROP):
    self.store = store
    self._focus_config = focus_config or FocusConfig
    self._mode = MODE_CROP
    self.drag: DragState | None = None
    self.set_mode(mode)

  @property
  def mode(self) -> str:
    return self._mode

  @property
  def active_kind(self) -> str | None:
    return MODE_KINDS[self._mode]

  def set_mode(self, mode: str) -> None:
    """Switch edit mode. Collections are kept; an active drag ends."""
    if mode not in EDIT_MODES:
      raise ValueError(f"Unknown edit mode: {mode!r}")
    if mode != self._mode:
      log.debug("Edit mode %s -> %s", self._mode, mode)
    self._mode = mode
    self.drag = None

  def is_dragging(self) -> bool:
    return self.drag is not None

  # -- Hit testing ------------------------------------------------------------

  def hit_test(self, x: float, y: float, rect: DisplayRect) -> DragState | None:
    """Return the handle under the pointer for the active mode, topmost first."""
    if rect.is_empty():
      return None
    kind = self.active_kind
    if kind == FOCUS:
      focus = self._focus_config()
      if not focus.enabled:
        return None
      hit = _hit_focus(x, y, rect, self.store.focus_points, focus.size_percent)
      return DragState(FOCUS, hit) if hit is not None else None
    if kind == ARROW:
      hit = _hit_arrow(x, y, rect, self.store.arrows)
      return DragState(ARROW, hit[0], hit[1]) if hit is not None else None
    if kind == TEXT:
      hit = _hit_text(x, y, rect, self.store.texts)
      return DragState(TEXT, hit) if hit is not None else None
    return None

  # -- Pointer events ---------------------------------------------------------

  def pointer_down(self, x: float, y: float, rect: DisplayRect) -> bool:
    """Start a drag if a handle is under the pointer.

    Returns True when the gesture was consumed; the host must then not
    deliver a click for it.
    """
    handle = self.hit_test(x, y, rect)
    if handle is None:
      return False
    self.begin_drag(handle.kind, handle.id, handle.endpoint)
    return True

  def begin_drag(self, kind: str, overlay_id: int, endpoint: str | None = None) -> None:
    if kind == ARROW and endpoint not in (ENDPOINT_START, ENDPOINT_END):
      raise ValueError(f"Arrow drags need an endpoint, got {endpoint!r}")
    self.drag = DragState(kind, overlay_id, endpoint if kind == ARROW else None)
    if kind in (TEXT, ARROW):
      self.store.select(kind, overlay_id)
    log.debug("Drag start: %s %d %s", kind, overlay_id, endpoint or "")

  def pointer_move(self, x: float, y: float, rect: DisplayRect) -> bool:
    """Move the dragged overlay; returns True if an overlay changed."""
    drag = self.drag
    if drag is None or rect.is_empty():
      return False
    if drag.kind != self.active_kind:
      return False
    xp, yp = to_percent(x, y, rect, clamp=True)
    if drag.kind == FOCUS:
      updated = self.store.update_focus_point(drag.id, x_percent=xp, y_percent=yp)
    elif drag.kind == TEXT:
      updated = self.store.update_text(drag.id, x_percent=xp, y_percent=yp)
    elif drag.endpoint == ENDPOINT_START:
      updated = self.store.update_arrow(drag.id, start_x=xp, start_y=yp)
    else:
      updated = self.store.update_arrow(drag.id, end_x=xp, end_y=yp)
    return updated is not None

  def pointer_up(self) -> None:
    """End any drag, wherever the pointer is."""
    if self.drag is not None:
      log.debug("Drag end: %s %d", self.drag.kind, self.drag.id)
    self.drag = None

  def click(self, x: float, y: float, rect: DisplayRect) -> Overlay | None:
    """Place a new overlay at a click on the bare image surface."""
    if rect.is_empty():
      return None
    kind = self.active_kind
    if kind is None:
      # Crop rectangles come from the crop selector via commit_crop
      return None
    xp, yp = to_percent(x, y, rect)
    if kind == FOCUS:
      if not self._focus_config().enabled:
        return None
      return self.store.add_focus_point(xp, yp)
    if kind == TEXT:
      return self.store.add_text(xp, yp)
    return self.store.add_arrow(xp, yp)
