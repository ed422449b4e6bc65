"""Persistent application settings (config.json)."""

from __future__ import annotations

import json
import os
import platform
import sys
from typing import Any

from log import get_logger

log = get_logger("config")

SYSTEM = platform.system()

# When frozen as exe, config lives next to the executable
if getattr(sys, "frozen", False):
  APP_DIR = os.path.dirname(sys.executable)
else:
  APP_DIR = os.path.dirname(os.path.abspath(__file__))
CONFIG_PATH = os.path.join(APP_DIR, "config.json")

EXPORT_FORMATS = ("webp", "jpg")


def default_download_folder() -> str:
  """Return a sensible default export folder per platform."""
  if SYSTEM == "Windows":
    home = os.path.expanduser("~")
    onedrive = os.path.join(home, "OneDrive", "Downloads")
    if os.path.isdir(onedrive):
      return "~/OneDrive/Downloads"
  return "~/Downloads"


CONFIG_VERSION = 2

DEFAULT_CONFIG = {
  "config_version": CONFIG_VERSION,
  "quality": 85,
  "export_format": "webp",
  "download_folder": default_download_folder(),
  "filename_prefix": "product-image",
  "focus_size": 25,
  "blur_strength": 10,
  "render_delay_ms": 0,
}


def migrate_config(config: dict[str, Any]) -> bool:
  """Fill in missing keys from defaults and bump version. Returns True if changed."""
  version = config.get("config_version", 1)
  changed = False

  for key, default_val in DEFAULT_CONFIG.items():
    if key not in config:
      config[key] = default_val
      log.info("Config migration: added '%s' = %r", key, default_val)
      changed = True

  # v1 stored the format as "jpeg"
  if config.get("export_format") not in EXPORT_FORMATS:
    log.warning("Unknown export format %r, using %r",
                config.get("export_format"), DEFAULT_CONFIG["export_format"])
    config["export_format"] = DEFAULT_CONFIG["export_format"]
    changed = True

  if version < CONFIG_VERSION:
    config["config_version"] = CONFIG_VERSION
    changed = True
    log.info("Config migrated from v%d to v%d", version, CONFIG_VERSION)

  return changed


def load_config() -> dict[str, Any]:
  if not os.path.exists(CONFIG_PATH):
    log.info("No config found, creating defaults at %s", CONFIG_PATH)
    save_config(DEFAULT_CONFIG)
    return dict(DEFAULT_CONFIG)
  try:
    with open(CONFIG_PATH, encoding="utf-8") as f:
      config = json.load(f)
  except json.JSONDecodeError as e:
    log.error("Corrupted config file, resetting to defaults: %s", e)
    save_config(DEFAULT_CONFIG)
    return dict(DEFAULT_CONFIG)
  except OSError as e:
    log.error("Cannot read config file: %s", e)
    return dict(DEFAULT_CONFIG)

  if not isinstance(config, dict):
    log.error("Config root is not an object, resetting to defaults")
    save_config(DEFAULT_CONFIG)
    return dict(DEFAULT_CONFIG)

  if migrate_config(config):
    save_config(config)
  return config


def save_config(config: dict[str, Any]) -> None:
  try:
    with open(CONFIG_PATH, "w", encoding="utf-8") as f:
      json.dump(config, f, indent=2)
      f.write("\n")
  except OSError as e:
    log.error("Failed to save config: %s", e)
