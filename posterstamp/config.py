from __future__ import annotations

import copy
import os
import platform
import sys
from pathlib import Path
from typing import Any

import yaml

from posterstamp.constants import DEFAULT_FONT_FAMILY, DEFAULT_SAMPLE_NAME

DEFAULT_CONFIG: dict[str, Any] = {
    "template_dir": None,
    "output_dir": None,
    "name_template": "{name}_poster.{ext}",
    "request_timeout": 30,
    "max_output_pixels": 80_000_000,
    "default_font_family": DEFAULT_FONT_FAMILY,
    "font_path": None,
    "sample_photo": None,
    "sample_name": DEFAULT_SAMPLE_NAME,
    "preview_width": 800,
    "log_level": "info",
    "log_file": None,
}


def get_app_dir() -> Path:
    """Return the application root directory.

    - Frozen (PyInstaller): directory containing the executable.
    - Development: project root (two levels up from this file).
    """
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    return Path(__file__).resolve().parent.parent


def get_user_data_dir() -> Path:
    if not getattr(sys, "frozen", False):
        return get_app_dir()

    system_name = platform.system().lower()
    if system_name == "windows":
        base = (
            os.environ.get("APPDATA")
            or os.environ.get("LOCALAPPDATA")
            or str(Path.home() / "AppData" / "Roaming")
        )
        return Path(base) / "PosterStamp"
    if system_name == "darwin":
        return Path.home() / "Library" / "Application Support" / "PosterStamp"

    xdg_config_home = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config_home:
        return Path(xdg_config_home) / "PosterStamp"
    return Path.home() / ".config" / "PosterStamp"


def get_config_path() -> Path:
    env_path = os.environ.get("POSTERSTAMP_CONFIG")
    if env_path:
        return Path(env_path)
    return get_user_data_dir() / "Config" / "config.yaml"


def _deep_merge(base: dict[str, Any], incoming: dict[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in incoming.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(path: Path | None = None) -> dict[str, Any]:
    cfg_path = path or get_config_path()
    if not cfg_path.exists():
        return copy.deepcopy(DEFAULT_CONFIG)

    text = cfg_path.read_text(encoding="utf-8")
    loaded = yaml.safe_load(text) or {}
    if not isinstance(loaded, dict):
        loaded = {}
    return _deep_merge(DEFAULT_CONFIG, loaded)


def write_default_config(path: Path | None = None, force: bool = False) -> Path:
    cfg_path = path or get_config_path()
    cfg_path.parent.mkdir(parents=True, exist_ok=True)
    if cfg_path.exists() and not force:
        return cfg_path
    cfg_path.write_text(yaml.safe_dump(DEFAULT_CONFIG, sort_keys=False, allow_unicode=True), encoding="utf-8")
    return cfg_path


def template_directory(cfg: dict[str, Any] | None = None) -> Path:
    cfg = cfg if cfg is not None else load_config()
    configured = cfg.get("template_dir")
    if configured:
        return Path(str(configured)).expanduser()
    return get_config_path().parent / "templates"


def request_timeout(cfg: dict[str, Any] | None) -> float:
    try:
        value = float((cfg or {}).get("request_timeout") or DEFAULT_CONFIG["request_timeout"])
    except (TypeError, ValueError):
        value = float(DEFAULT_CONFIG["request_timeout"])
    return max(1.0, value)


def max_output_pixels(cfg: dict[str, Any] | None) -> int:
    try:
        return max(1, int((cfg or {}).get("max_output_pixels") or DEFAULT_CONFIG["max_output_pixels"]))
    except (TypeError, ValueError):
        return int(DEFAULT_CONFIG["max_output_pixels"])


def default_font_family(cfg: dict[str, Any] | None) -> str:
    return str((cfg or {}).get("default_font_family") or DEFAULT_FONT_FAMILY).strip() or DEFAULT_FONT_FAMILY


def preview_width(cfg: dict[str, Any] | None) -> int:
    try:
        value = int((cfg or {}).get("preview_width") or DEFAULT_CONFIG["preview_width"])
    except (TypeError, ValueError):
        value = int(DEFAULT_CONFIG["preview_width"])
    return max(16, value)
