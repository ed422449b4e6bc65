"""One editing session: the source image plus every edit parameter.

The session owns all mutable state. Each mutation marks it dirty and
schedules a single coalesced re-render on the Qt event loop; ``flush()``
renders immediately for callers that want a synchronous result.
"""

from __future__ import annotations

import dataclasses
from typing import Any

from PySide6.QtCore import QObject, QTimer, Signal
from PySide6.QtGui import QImage

import compositor
from encoder import (
  EncodeError, EncodeResult, SizeMetrics, encode, write_export,
  DEFAULT_FORMAT, DEFAULT_QUALITY, FILENAME_PREFIX,
)
from filters import (
  FilterSettings, FocusConfig, DEFAULT_FOCUS_SIZE, DEFAULT_BLUR_STRENGTH,
)
from geometry import CropRect
from interaction import InteractionController, MODE_CROP
from log import get_logger
from overlays import OverlayStore

log = get_logger("session")


class EditSession(QObject):
  """Editing state for one loaded image."""

  preview_ready = Signal(QImage)
  metrics_changed = Signal(object)
  encode_failed = Signal(str)

  def __init__(self, config: dict[str, Any] | None = None,
               parent: QObject | None = None):
    super().__init__(parent)
    config = config or {}
    self.export_format = config.get("export_format", DEFAULT_FORMAT)
    self.filename_prefix = config.get("filename_prefix", FILENAME_PREFIX)
    self.download_folder = config.get("download_folder", "~/Downloads")
    self._default_focus_size = config.get("focus_size", DEFAULT_FOCUS_SIZE)
    self._default_blur = config.get("blur_strength", DEFAULT_BLUR_STRENGTH)

    self.quality = int(config.get("quality", DEFAULT_QUALITY))
    self.filters = FilterSettings()
    self.focus = FocusConfig(
      size_percent=self._default_focus_size, blur_strength=self._default_blur,
    )
    self.crop: CropRect | None = None

    self.image: QImage | None = None
    self.display_size: tuple[float, float] = (0, 0)
    self.original_bytes = 0

    self.store = OverlayStore(on_change=self.mark_dirty)
    self.controller = InteractionController(self.store, lambda: self.focus)

    self.preview: QImage | None = None
    self.last_encoded: EncodeResult | None = None
    self.metrics: SizeMetrics | None = None

    self._dirty = False
    self._generation = 0
    self._preview_generation = -1
    self._encoded_generation = -1
    self._encode_pending = False
    self._render_timer = QTimer(self)
    self._render_timer.setSingleShot(True)
    self._render_timer.setInterval(int(config.get("render_delay_ms", 0)))
    self._render_timer.timeout.connect(self.flush)

  # -- Image ------------------------------------------------------------------

  def load_image(self, data: bytes, display_size: tuple[float, float] | None = None) -> None:
    """Decode a new source image and reset every edit tied to the old one."""
    image = QImage.fromData(data)
    if image.isNull():
      raise ValueError("Could not decode image data")
    self.image = image
    self.original_bytes = len(data)
    self.display_size = display_size or (image.width(), image.height())
    self.crop = None
    self.store.clear()
    self.controller.pointer_up()
    self.preview = None
    self.last_encoded = None
    self.metrics = None
    log.info("Loaded %dx%d image (%d bytes)", image.width(), image.height(), len(data))
    self.mark_dirty()

  def set_display_size(self, width: float, height: float) -> None:
    if (width, height) != self.display_size:
      self.display_size = (width, height)
      self.mark_dirty()

  def commit_crop(self, rect: CropRect | None) -> None:
    """Accept a crop from the crop selector, in displayed-image pixels."""
    self.crop = rect
    self.mark_dirty()

  def set_edit_mode(self, mode: str) -> None:
    self.controller.set_mode(mode)

  @property
  def edit_mode(self) -> str:
    return self.controller.mode

  # -- Parameters -------------------------------------------------------------

  def _set_filters(self, **fields: Any) -> None:
    updated = dataclasses.replace(self.filters, **fields)
    if updated != self.filters:
      self.filters = updated
      self.mark_dirty()

  def _set_focus(self, **fields: Any) -> None:
    updated = dataclasses.replace(self.focus, **fields)
    if updated != self.focus:
      self.focus = updated
      self.mark_dirty()

  def set_brightness(self, value: float) -> None:
    self._set_filters(brightness=value)

  def set_contrast(self, value: float) -> None:
    self._set_filters(contrast=value)

  def set_saturation(self, value: float) -> None:
    self._set_filters(saturation=value)

  def set_focus_enabled(self, enabled: bool) -> None:
    self._set_focus(enabled=bool(enabled))

  def set_focus_size(self, percent: float) -> None:
    self._set_focus(size_percent=percent)

  def set_blur_strength(self, px: float) -> None:
    self._set_focus(blur_strength=px)

  def set_quality(self, quality: int) -> None:
    quality = int(quality)
    if quality != self.quality:
      self.quality = quality
      self.mark_dirty()

  def reset_filters(self) -> None:
    """Back to identity colors, focus off with default size and blur."""
    self.filters = FilterSettings()
    self.focus = FocusConfig(
      size_percent=self._default_focus_size, blur_strength=self._default_blur,
    )
    self.store.clear_focus_points()
    self.mark_dirty()

  # -- Rendering --------------------------------------------------------------

  def mark_dirty(self) -> None:
    """Note a change and schedule one re-render; repeated calls coalesce."""
    self._dirty = True
    self._generation += 1
    if not self._render_timer.isActive():
      self._render_timer.start()

  def is_dirty(self) -> bool:
    return self._dirty

  def render(self) -> QImage | None:
    """Composite the current state without touching the preview."""
    snapshot = self.store.snapshot()
    return compositor.render(
      self.image, self.display_size, self.crop, self.filters, self.focus,
      snapshot.focus_points, snapshot.arrows, snapshot.texts,
    )

  def flush(self) -> QImage | None:
    """Render now if dirty and publish the frame; returns the preview."""
    self._render_timer.stop()
    if not self._dirty:
      return self.preview
    self._dirty = False
    frame = self.render()
    if frame is None:
      # Keep showing the previous frame
      return self.preview
    self.preview = frame
    self._preview_generation = self._generation
    self.preview_ready.emit(frame)
    self.request_encode()
    return frame

  # -- Encoding ---------------------------------------------------------------

  def encode(self) -> EncodeResult | None:
    """Encode the current preview; on failure metrics are left unchanged."""
    if self.preview is None:
      return None
    try:
      result = encode(self.preview, self.quality, self.export_format)
    except EncodeError as e:
      log.error("Encoding failed: %s", e)
      self.encode_failed.emit(str(e))
      return None
    self.last_encoded = result
    self._encoded_generation = self._preview_generation
    self.metrics = SizeMetrics(self.original_bytes, result.size)
    self.metrics_changed.emit(self.metrics)
    return result

  def request_encode(self) -> None:
    """Encode on a later event-loop turn.

    At most one request is queued. When it runs it encodes whatever preview
    is newest at that moment, so the last rendered frame always wins.
    """
    if self._encode_pending:
      return
    self._encode_pending = True
    QTimer.singleShot(0, self._run_encode)

  def _run_encode(self) -> None:
    self._encode_pending = False
    if self._dirty:
      # The pending render requests an encode for its own frame
      log.debug("Deferring encode: generation %d not rendered yet", self._generation)
      return
    if self._encoded_generation == self._preview_generation:
      return
    self.encode()

  def download(self, folder: str | None = None) -> str | None:
    """Write the latest encoded bytes to product-image-<timestamp>.<ext>."""
    self.flush()
    result = self.encode()
    if result is None:
      log.warning("Nothing to download")
      return None
    return write_export(result, folder or self.download_folder, self.filename_prefix)
