from __future__ import annotations

import os
import platform
import re
from functools import lru_cache
from pathlib import Path

from PIL import ImageFont

from posterstamp.log import get_logger

_log = get_logger("typography")

_FONT_FILE_SUFFIXES = {".ttf", ".ttc", ".otf", ".otc"}
_BOLD_MARKERS = ("bold", "bd", "heavy", "black")
_STYLE_WORDS = re.compile(r"[-_ ]?(regular|bold|bd|italic|oblique|light|medium|heavy|black|book|roman)\b", re.I)

# common web/CSS family names and files that usually carry them
_FAMILY_FILE_HINTS: dict[str, tuple[str, ...]] = {
    "arial": ("arial", "liberationsans", "arimo", "dejavusans"),
    "helvetica": ("helvetica", "liberationsans", "arimo", "dejavusans"),
    "sans-serif": ("dejavusans", "liberationsans", "arial", "notosans"),
    "times new roman": ("times", "liberationserif", "tinos", "dejavuserif"),
    "serif": ("dejavuserif", "liberationserif", "times", "notoserif"),
    "courier new": ("cour", "liberationmono", "cousine", "dejavusansmono"),
    "monospace": ("dejavusansmono", "liberationmono", "cour"),
}


def _system_font_candidates(bold: bool = False) -> list[Path]:
    system = platform.system().lower()
    if "windows" in system:
        names = ["arialbd.ttf", "arial.ttf"] if bold else ["arial.ttf"]
        return [Path(r"C:\Windows\Fonts") / name for name in names]
    if "darwin" in system:
        return [
            Path("/System/Library/Fonts/Supplemental/Arial Bold.ttf" if bold else "/System/Library/Fonts/Supplemental/Arial.ttf"),
            Path("/System/Library/Fonts/Helvetica.ttc"),
            Path("/Library/Fonts/Arial Unicode.ttf"),
        ]
    names = ["DejaVuSans-Bold.ttf", "DejaVuSans.ttf"] if bold else ["DejaVuSans.ttf"]
    return [Path("/usr/share/fonts/truetype/dejavu") / name for name in names] + [
        Path("/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf" if bold else "/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf"),
    ]


def _system_font_directories() -> list[Path]:
    system = platform.system().lower()
    roots: list[Path] = []
    if "windows" in system:
        windows_dir = Path(os.environ.get("WINDIR", r"C:\Windows"))
        roots.append(windows_dir / "Fonts")
        local_app_data = os.environ.get("LOCALAPPDATA")
        if local_app_data:
            roots.append(Path(local_app_data) / "Microsoft" / "Windows" / "Fonts")
    elif "darwin" in system:
        roots.extend(
            [
                Path("/System/Library/Fonts"),
                Path("/System/Library/Fonts/Supplemental"),
                Path("/Library/Fonts"),
                Path.home() / "Library" / "Fonts",
            ]
        )
    else:
        roots.extend(
            [
                Path("/usr/share/fonts"),
                Path("/usr/local/share/fonts"),
                Path.home() / ".fonts",
                Path.home() / ".local" / "share" / "fonts",
            ]
        )
    return roots


@lru_cache(maxsize=1)
def list_available_font_paths() -> list[Path]:
    system = platform.system().lower()
    available: list[Path] = []
    seen: set[str] = set()

    for root in _system_font_directories():
        try:
            if not root.exists() or not root.is_dir():
                continue
        except OSError:
            continue

        for dir_path, _dir_names, file_names in os.walk(root, onerror=lambda _err: None):
            for file_name in file_names:
                if Path(file_name).suffix.lower() not in _FONT_FILE_SUFFIXES:
                    continue
                candidate = Path(dir_path) / file_name
                key = str(candidate)
                dedupe_key = key.lower() if "windows" in system else key
                if dedupe_key in seen:
                    continue
                seen.add(dedupe_key)
                available.append(candidate)

    available.sort(key=lambda path: (path.stem.lower(), str(path).lower()))
    return available


def _squash(text: str) -> str:
    return re.sub(r"[^a-z0-9]", "", text.lower())


def _family_key(path: Path) -> str:
    return _squash(_STYLE_WORDS.sub("", path.stem))


def _is_bold_file(path: Path) -> bool:
    stem = path.stem.lower()
    return any(marker in stem for marker in _BOLD_MARKERS)


@lru_cache(maxsize=64)
def resolve_font_path(font_family: str | None, bold: bool = False) -> Path | None:
    """Find an installed font file for a CSS-like family list ("Arial, sans-serif")."""
    families = [item.strip().strip("'\"") for item in str(font_family or "").split(",")]
    families = [item for item in families if item]
    fonts = list_available_font_paths()
    for family in families:
        direct = Path(family).expanduser()
        if direct.suffix.lower() in _FONT_FILE_SUFFIXES and direct.exists():
            return direct
        keys = [_squash(family)]
        keys.extend(_FAMILY_FILE_HINTS.get(family.lower(), ()))
        for key in keys:
            matches = [path for path in fonts if _family_key(path) == key]
            if not matches:
                continue
            preferred = [path for path in matches if _is_bold_file(path) == bold]
            return (preferred or matches)[0]
    for candidate in _system_font_candidates(bold=bold):
        if candidate.exists():
            return candidate
    return None


def load_font(font_path: Path | None, size: float) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    candidates: list[Path] = []
    if font_path:
        candidates.append(font_path)
    candidates.extend(_system_font_candidates())
    size = max(1.0, float(size))
    for candidate in candidates:
        if candidate.exists():
            try:
                return ImageFont.truetype(str(candidate), size=size)
            except OSError:
                _log.debug("font not loadable: %s", candidate)
                continue
    return ImageFont.load_default(size=size)


def load_family_font(font_family: str | None, size: float, bold: bool = False, font_path: str | Path | None = None):
    """Font for ``font_family``; a configured ``font_path`` file wins over the family lookup."""
    if font_path:
        configured = Path(str(font_path)).expanduser()
        if configured.is_file():
            return load_font(configured, size)
        _log.warning("configured font_path not found: %s", configured)
    return load_font(resolve_font_path(font_family, bold=bold), size)

