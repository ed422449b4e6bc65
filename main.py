from __future__ import annotations

import os
import sys
from typing import Any

from PySide6.QtWidgets import QApplication, QFileDialog

from config import load_config
from editor_window import EditorWindow
from encoder import EncodeResult
from log import get_logger
from session import EditSession

log = get_logger("main")

IMAGE_FILTER = "Images (*.png *.jpg *.jpeg *.webp *.bmp)"


def read_image(path: str) -> bytes | None:
  """Read the raw file bytes; the original size is measured from these."""
  try:
    with open(path, "rb") as f:
      return f.read()
  except OSError as e:
    log.error("Cannot read image %s: %s", path, e)
    return None


class ProductShot:
  """Application shell: one editor window over one session."""

  def __init__(self, config: dict[str, Any] | None = None) -> None:
    self.config = config if config is not None else load_config()
    self.app: QApplication | None = None
    self.session: EditSession | None = None
    self.window: EditorWindow | None = None

  def open_image(self, path: str) -> bool:
    data = read_image(path)
    if data is None:
      return False
    try:
      self.session.load_image(data)
    except ValueError as e:
      log.error("Unsupported image %s: %s", path, e)
      return False
    self.window.setWindowTitle("ProductShot - %s" % os.path.basename(path))
    self.window.refresh()
    return True

  def _on_done(self, result: EncodeResult | None) -> None:
    if result is not None:
      log.info("Closing with last export %s, %d bytes", result.fmt, result.size)

  def run(self, argv: list[str]) -> int:
    self.app = QApplication.instance() or QApplication(argv)
    self.session = EditSession(self.config)
    self.window = EditorWindow(self.session, on_done=self._on_done)

    path = argv[1] if len(argv) > 1 else None
    if path is None:
      path, _ = QFileDialog.getOpenFileName(None, "Open image", "", IMAGE_FILTER)
    if not path or not self.open_image(path):
      log.info("No image opened, exiting")
      return 1

    self.window.resize(1000, 760)
    self.window.show()
    log.info("ProductShot running (format=%s, quality=%d)",
      self.session.export_format, self.session.quality)
    return self.app.exec()


def main() -> None:
  sys.exit(ProductShot().run(sys.argv))


if __name__ == "__main__":
  main()
