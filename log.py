"""Centralized logging for ProductShot."""

from __future__ import annotations

import logging
import os
import sys
import tempfile
from logging.handlers import RotatingFileHandler

LOG_FILENAME = "productshot.log"
LOG_DIR_ENV = "PRODUCTSHOT_LOG_DIR"
LOG_LEVEL_ENV = "PRODUCTSHOT_LOG_LEVEL"


def _writable(folder: str) -> bool:
  try:
    os.makedirs(folder, exist_ok=True)
    with open(os.path.join(folder, LOG_FILENAME), "a"):
      pass
  except OSError:
    return False
  return True


def _resolve_log_dir() -> str:
  """Pick a writable directory for the log file.

  Priority: $PRODUCTSHOT_LOG_DIR > app dir > per-user state dir > temp dir.
  """
  candidates = []
  override = os.environ.get(LOG_DIR_ENV)
  if override:
    candidates.append(os.path.expanduser(override))

  if getattr(sys, "frozen", False):
    candidates.append(os.path.dirname(sys.executable))
  else:
    candidates.append(os.path.dirname(os.path.abspath(__file__)))

  if sys.platform == "win32":
    appdata = os.environ.get("APPDATA", "")
    if appdata:
      candidates.append(os.path.join(appdata, "ProductShot"))
  else:
    xdg = os.environ.get("XDG_STATE_HOME", os.path.expanduser("~/.local/state"))
    candidates.append(os.path.join(xdg, "productshot"))

  for folder in candidates:
    if _writable(folder):
      return folder
  return tempfile.gettempdir()


def _resolve_level() -> int:
  name = os.environ.get(LOG_LEVEL_ENV, "DEBUG").upper()
  level = logging.getLevelName(name)
  return level if isinstance(level, int) else logging.DEBUG


_log_dir = _resolve_log_dir()
LOG_PATH = os.path.join(_log_dir, LOG_FILENAME)

_formatter = logging.Formatter(
  "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
  datefmt="%Y-%m-%d %H:%M:%S",
)

# 1 MB per file, 3 backups
try:
  _file_handler = RotatingFileHandler(
    LOG_PATH, maxBytes=1_000_000, backupCount=3, encoding="utf-8",
  )
  _file_handler.setFormatter(_formatter)
except OSError:
  _file_handler = None

_console_handler = logging.StreamHandler()
_console_handler.setFormatter(_formatter)


def get_logger(name: str) -> logging.Logger:
  """Get a named logger under the ``productshot`` namespace."""
  logger = logging.getLogger(f"productshot.{name}")
  if not logger.handlers:
    logger.setLevel(_resolve_level())
    logger.propagate = False
    if _file_handler:
      logger.addHandler(_file_handler)
    logger.addHandler(_console_handler)
  return logger
