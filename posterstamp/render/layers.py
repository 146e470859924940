# Slot drawing shared by the preview raster and the final compositor.
from __future__ import annotations

from PIL import Image, ImageChops, ImageColor, ImageDraw

from posterstamp.constants import ALIGN_CENTER, ALIGN_LEFT, ALIGN_RIGHT, SHAPE_ELLIPSE
from posterstamp.geometry import PixelRect
from posterstamp.render.image_modes import cover_fit, crop_to_visible

_TEXT_ANCHORS = {
    ALIGN_LEFT: "lm",
    ALIGN_CENTER: "mm",
    ALIGN_RIGHT: "rm",
}


def safe_color(value: str | None, fallback: str) -> str:
    text = (value or "").strip()
    if not text:
        return fallback
    try:
        ImageColor.getrgb(text)
    except ValueError:
        return fallback
    return text


def _clip_box(box: tuple[int, int, int, int], size: tuple[int, int]) -> tuple[int, int, int, int]:
    left, top, right, bottom = box
    width, height = size
    return (max(0, left), max(0, top), min(width, right), min(height, bottom))


def slot_mask(size: tuple[int, int], zone: PixelRect, shape: str) -> Image.Image:
    """Hard-edged clip mask: the rect itself, or the ellipse inscribed in it."""
    mask = Image.new("L", size, 0)
    left, top, right, bottom = zone.box()
    if right - left < 1 or bottom - top < 1:
        return mask
    draw = ImageDraw.Draw(mask)
    bounds = (left, top, right - 1, bottom - 1)
    if shape == SHAPE_ELLIPSE:
        draw.ellipse(bounds, fill=255)
    else:
        draw.rectangle(bounds, fill=255)
    return mask


def paste_clipped_photo(canvas: Image.Image, photo: Image.Image, zone: PixelRect, shape: str) -> PixelRect:
    """Cover-fit ``photo`` into ``zone`` on an RGBA ``canvas``, clipped to the slot shape.

    Returns the (unclipped) placement the photo was drawn at.
    """
    placement = cover_fit(photo.size, zone)
    left, top, right, bottom = _clip_box(zone.box(), canvas.size)
    if right - left < 1 or bottom - top < 1:
        return placement

    visible, origin = crop_to_visible(photo.convert("RGBA"), placement, (left, top, right, bottom))
    if visible is None:
        return placement
    region_size = (right - left, bottom - top)
    layer = Image.new("RGBA", region_size, (0, 0, 0, 0))
    layer.paste(visible, (origin[0] - left, origin[1] - top))
    mask = slot_mask(region_size, zone.offset(-left, -top), shape)
    layer.putalpha(ImageChops.multiply(layer.getchannel("A"), mask))
    canvas.alpha_composite(layer, dest=(left, top))
    return placement


def text_anchor_point(zone: PixelRect, align: str) -> tuple[float, float]:
    middle_y = zone.top + zone.height / 2.0
    if align == ALIGN_CENTER:
        return (zone.left + zone.width / 2.0, middle_y)
    if align == ALIGN_RIGHT:
        return (zone.right, middle_y)
    return (zone.left, middle_y)


def draw_slot_text(
    canvas: Image.Image,
    text: str,
    zone: PixelRect,
    *,
    align: str,
    color: str,
    font,
) -> tuple[int, int, int, int]:
    """Draw one line anchored at the slot's vertical middle; returns its bbox."""
    draw = ImageDraw.Draw(canvas)
    anchor = _TEXT_ANCHORS.get(align, "lm")
    position = text_anchor_point(zone, align if align in _TEXT_ANCHORS else ALIGN_LEFT)
    fill = safe_color(color, "#000000")
    draw.text(position, text, font=font, fill=fill, anchor=anchor)
    return draw.textbbox(position, text, font=font, anchor=anchor)
