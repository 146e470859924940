from __future__ import annotations

import json
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import yaml
from PIL import Image, ImageDraw

from posterstamp.constants import (
    DEFAULT_FONT_FAMILY,
    DEFAULT_FONT_SIZE,
    DEFAULT_IMAGE_RECT,
    DEFAULT_TEXT_COLOR,
    DEFAULT_TEXT_RECT,
    ALIGN_LEFT,
    SHAPE_ALIASES,
    SHAPE_RECTANGLE,
    VALID_ALIGNS,
)
from posterstamp.errors import TemplateFormatError
from posterstamp.geometry import clamp_rect, round2
from posterstamp.models import ImageSlot, NormalizedRect, Template, TextSlot
from posterstamp.render.layers import safe_color

TEMPLATE_SUFFIXES = (".json", ".yaml", ".yml")
DEFAULT_BASE_SIZE = (1600, 1000)


def _parse_float(value: Any, fallback: float) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return fallback
    if parsed != parsed:  # NaN
        return fallback
    return parsed


def _normalize_rect(data: dict[str, Any], default: tuple[float, float, float, float]) -> NormalizedRect:
    rect = NormalizedRect(
        x=_parse_float(data.get("x"), default[0]),
        y=_parse_float(data.get("y"), default[1]),
        width=_parse_float(data.get("width", data.get("w")), default[2]),
        height=_parse_float(data.get("height", data.get("h")), default[3]),
    )
    return clamp_rect(rect)


def normalize_shape(value: Any) -> str:
    return SHAPE_ALIASES.get(str(value or "").strip().lower(), SHAPE_RECTANGLE)


def _normalize_image_slot(data: Any) -> ImageSlot:
    if not isinstance(data, dict):
        data = {}
    return ImageSlot(
        rect=_normalize_rect(data, DEFAULT_IMAGE_RECT),
        shape=normalize_shape(data.get("shape")),
    )


def _normalize_text_slot(data: Any, default_font_family: str = DEFAULT_FONT_FAMILY) -> TextSlot | None:
    if not isinstance(data, dict):
        return None
    align = str(data.get("align") or ALIGN_LEFT).strip().lower()
    if align not in VALID_ALIGNS:
        align = ALIGN_LEFT
    font_size = _parse_float(data.get("fontSize", data.get("font_size")), DEFAULT_FONT_SIZE)
    if font_size <= 0:
        font_size = DEFAULT_FONT_SIZE
    font_family = str(data.get("fontFamily") or data.get("font_family") or default_font_family).strip()
    return TextSlot(
        rect=_normalize_rect(data, DEFAULT_TEXT_RECT),
        color=safe_color(str(data.get("color") or ""), DEFAULT_TEXT_COLOR),
        font_size=round2(font_size),
        align=align,
        font_family=font_family or default_font_family or DEFAULT_FONT_FAMILY,
    )


def _parse_created_at(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    text = str(value or "").strip()
    if text:
        try:
            return datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            pass
    return datetime.now(timezone.utc)


def normalize_template_dict(
    data: dict[str, Any],
    fallback_name: str = "template",
    *,
    default_font_family: str = DEFAULT_FONT_FAMILY,
) -> Template:
    """Build a Template from its stored form, clamping geometry into range.

    Accepts the ``imageSlot``/``textSlot`` layout and the older
    ``placeholder``/``nameField`` one.
    """
    if not isinstance(data, dict):
        raise TemplateFormatError("template data is not a mapping")
    image_url = str(data.get("imageUrl") or data.get("image_url") or "").strip()
    if not image_url:
        raise TemplateFormatError("template has no base image (imageUrl)")
    image_raw = data.get("imageSlot", data.get("placeholder"))
    text_raw = data.get("textSlot", data.get("nameField"))
    try:
        download_count = max(0, int(data.get("downloadCount") or 0))
    except (TypeError, ValueError):
        download_count = 0
    thumbnail = data.get("thumbnailUrl")
    return Template(
        id=str(data.get("id") or Template.new_id()),
        name=str(data.get("name") or fallback_name),
        image_url=image_url,
        image_slot=_normalize_image_slot(image_raw),
        text_slot=_normalize_text_slot(text_raw, default_font_family),
        created_at=_parse_created_at(data.get("createdAt")),
        download_count=download_count,
        thumbnail_url=str(thumbnail) if thumbnail else None,
    )


def image_slot_to_dict(slot: ImageSlot) -> dict[str, Any]:
    return {**slot.rect.to_dict(), "shape": slot.shape}


def text_slot_to_dict(slot: TextSlot) -> dict[str, Any]:
    return {
        **slot.rect.to_dict(),
        "color": slot.color,
        "fontSize": slot.font_size,
        "align": slot.align,
        "fontFamily": slot.font_family,
    }


def template_to_dict(template: Template) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": template.id,
        "name": template.name,
        "imageUrl": template.image_url,
        "imageSlot": image_slot_to_dict(template.image_slot),
    }
    if template.text_slot is not None:
        payload["textSlot"] = text_slot_to_dict(template.text_slot)
    payload["createdAt"] = template.created_at.isoformat()
    payload["downloadCount"] = template.download_count
    if template.thumbnail_url:
        payload["thumbnailUrl"] = template.thumbnail_url
    return payload


def _load_file(path: Path) -> dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise TemplateFormatError(f"template file is not valid: {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TemplateFormatError(f"template file is not a dict: {path}")
    return data


def load_template(path: Path, *, default_font_family: str = DEFAULT_FONT_FAMILY) -> Template:
    """Load a template file; a relative ``imageUrl`` stays relative to the file's directory."""
    raw = _load_file(path)
    template = normalize_template_dict(raw, fallback_name=path.stem, default_font_family=default_font_family)
    return replace(template, source_dir=path.parent)


def _stored_image_url(template: Template, target_dir: Path) -> str:
    source = template.image_source()
    if source == template.image_url:
        return template.image_url
    if template.source_dir is not None and template.source_dir.resolve() == target_dir.resolve():
        return template.image_url
    # saved somewhere else: the relative reference would no longer point at the image
    return str(Path(source).resolve(strict=False))


def save_template(path: Path, template: Template) -> None:
    payload = template_to_dict(template)
    payload["imageUrl"] = _stored_image_url(template, path.parent)
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix.lower() in {".yaml", ".yml"}:
        path.write_text(yaml.safe_dump(payload, sort_keys=False, allow_unicode=True), encoding="utf-8")
        return
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")


def list_template_names(template_dir: Path) -> list[str]:
    if not template_dir.is_dir():
        return []
    names = {path.stem for path in template_dir.iterdir() if path.is_file() and path.suffix.lower() in TEMPLATE_SUFFIXES}
    return sorted(names)


def find_template_path(name_or_path: str, template_dir: Path) -> Path | None:
    candidate = Path(name_or_path).expanduser()
    if candidate.is_file():
        return candidate
    for suffix in TEMPLATE_SUFFIXES:
        path = template_dir / f"{name_or_path}{suffix}"
        if path.is_file():
            return path
    return None


def new_template(
    name: str,
    image_url: str,
    *,
    with_text_slot: bool = False,
    font_family: str = DEFAULT_FONT_FAMILY,
) -> Template:
    return Template(
        id=Template.new_id(),
        name=name,
        image_url=image_url,
        image_slot=ImageSlot(),
        text_slot=TextSlot(font_family=font_family) if with_text_slot else None,
    )


def _write_default_base_image(path: Path) -> None:
    image = Image.new("RGB", DEFAULT_BASE_SIZE, "#F4F1EA")
    draw = ImageDraw.Draw(image)
    width, height = DEFAULT_BASE_SIZE
    draw.rectangle((0, 0, width - 1, height // 8), fill="#1F2937")
    draw.rectangle((0, height - height // 8, width - 1, height - 1), fill="#1F2937")
    image.save(path, format="PNG", optimize=True)


def ensure_template_repository(template_dir: Path) -> None:
    """Seed an empty template directory with a ``default`` template and its base image."""
    template_dir.mkdir(parents=True, exist_ok=True)
    if list_template_names(template_dir):
        return
    base_path = template_dir / "default_base.png"
    if not base_path.exists():
        _write_default_base_image(base_path)
    template = new_template("default", base_path.name, with_text_slot=True)
    save_template(template_dir / "default.json", template)
