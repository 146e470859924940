from __future__ import annotations

import re
from pathlib import Path

from posterstamp.constants import OUTPUT_SUFFIX

INVALID_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1F]')


def sanitize_token(value: str | None, fallback: str = "NA") -> str:
    text = (value or "").strip()
    if not text:
        text = fallback
    text = INVALID_FILENAME_CHARS.sub("_", text)
    text = re.sub(r"\s+", "_", text)
    text = text.strip(" ._")
    return text or fallback


def sanitize_filename(value: str, fallback: str = "output") -> str:
    text = INVALID_FILENAME_CHARS.sub("_", value).strip()
    text = text.strip(" .")
    return text or fallback


def build_output_filename(template_name: str, extension: str = "png") -> str:
    """``"Summer Party 2024"`` -> ``"Summer_Party_2024_poster.png"``."""
    ext = extension.lower().lstrip(".")
    stem = re.sub(r"\s+", "_", (template_name or "").strip()) or "template"
    return sanitize_filename(f"{stem}{OUTPUT_SUFFIX}.{ext}", fallback=f"template{OUTPUT_SUFFIX}.{ext}")


def build_output_name(name_template: str, template_name: str, user_name: str | None, extension: str = "png") -> str:
    ext = extension.lower().lstrip(".")
    values = {
        "name": re.sub(r"\s+", "_", (template_name or "").strip()) or "template",
        "user": sanitize_token(user_name, fallback="user"),
        "ext": ext,
    }
    try:
        rendered = name_template.format(**values)
    except KeyError as exc:
        missing = str(exc).strip("'")
        raise ValueError(f"name template contains unknown key: {missing}") from exc

    rendered = sanitize_filename(rendered, fallback=build_output_filename(template_name, ext))
    if not Path(rendered).suffix:
        rendered = f"{rendered}.{ext}"
    return rendered
