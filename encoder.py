"""Compress rendered frames and report size metrics."""

from __future__ import annotations

import dataclasses
import os
import time

from PySide6.QtCore import QBuffer, QByteArray, QIODevice
from PySide6.QtGui import QImage, QImageWriter

from log import get_logger

log = get_logger("encoder")

DEFAULT_FORMAT = "webp"
DEFAULT_QUALITY = 85
FILENAME_PREFIX = "product-image"

# export extension -> Qt image format name
_QT_FORMATS = {
  "webp": "WEBP",
  "jpg": "JPEG",
  "jpeg": "JPEG",
}

BYTES_PER_MB = 1024 * 1024


class EncodeError(Exception):
  """The writer produced no bytes for a frame."""


@dataclasses.dataclass(frozen=True)
class EncodeResult:
  data: bytes
  fmt: str
  quality: int

  @property
  def size(self) -> int:
    return len(self.data)


@dataclasses.dataclass(frozen=True)
class SizeMetrics:
  original_bytes: int
  new_bytes: int

  @property
  def original_size_mb(self) -> float:
    return round(self.original_bytes / BYTES_PER_MB, 2)

  @property
  def new_size_mb(self) -> float:
    return round(self.new_bytes / BYTES_PER_MB, 2)

  @property
  def reduction_percent(self) -> float | None:
    """Percent saved against the original file, None when unknown."""
    if self.original_bytes <= 0:
      return None
    return round((1 - self.new_bytes / self.original_bytes) * 100)


def normalize_quality(quality: float) -> float:
  """Map the 1-100 slider scale onto 0.0-1.0."""
  return max(1, min(100, quality)) / 100


def supported_formats() -> set[str]:
  return {bytes(f).decode().lower() for f in QImageWriter.supportedImageFormats()}


def encode(image: QImage, quality: int = DEFAULT_QUALITY,
           fmt: str = DEFAULT_FORMAT) -> EncodeResult:
  """Encode a frame in memory. Raises EncodeError instead of returning nothing."""
  fmt = fmt.lower()
  qt_format = _QT_FORMATS.get(fmt)
  if qt_format is None:
    raise EncodeError(f"Unsupported export format: {fmt}")
  if image is None or image.isNull():
    raise EncodeError("Nothing to encode")
  if qt_format.lower() not in supported_formats():
    raise EncodeError(f"No {qt_format} writer available")

  level = round(normalize_quality(quality) * 100)
  buf = QBuffer()
  buf.open(QIODevice.OpenModeFlag.WriteOnly)
  try:
    ok = image.save(buf, qt_format, level)
    data = QByteArray(buf.data())
  finally:
    buf.close()

  if not ok or data.isEmpty():
    raise EncodeError(f"{qt_format} encoder produced no output")
  result = EncodeResult(bytes(data.data()), fmt, level)
  log.debug("Encoded %dx%d %s q=%d -> %d bytes",
            image.width(), image.height(), fmt, level, result.size)
  return result


def export_filename(ext: str = DEFAULT_FORMAT, prefix: str = FILENAME_PREFIX,
                    now: float | None = None) -> str:
  """product-image-<epoch milliseconds>.<ext>"""
  stamp = int((time.time() if now is None else now) * 1000)
  return f"{prefix}-{stamp}.{ext}"


def write_export(result: EncodeResult, folder: str,
                 prefix: str = FILENAME_PREFIX) -> str | None:
  """Write encoded bytes into folder; returns the path or None on failure."""
  try:
    folder = os.path.expanduser(folder)
    os.makedirs(folder, exist_ok=True)
  except OSError as e:
    log.error("Cannot create download folder '%s': %s", folder, e)
    return None

  filepath = os.path.join(folder, export_filename(result.fmt, prefix))
  try:
    with open(filepath, "wb") as f:
      f.write(result.data)
  except OSError as e:
    log.error("Failed to write export to %s: %s", filepath, e)
    return None

  log.info("Exported %s (%d bytes)", filepath, result.size)
  return filepath
