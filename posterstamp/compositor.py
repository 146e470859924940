"""Final poster compositing at the base image's native resolution.

Layer order is fixed: base image, clipped user photo, name text. The photo and
text placement use the same percent-to-pixel mapping and reference-width font
scaling as the editor preview, so the output matches what was previewed.
"""
from __future__ import annotations

import asyncio
import io
import time
from typing import Any

import aiohttp
from PIL import Image

from posterstamp.assets import describe_source, load_image
from posterstamp.config import max_output_pixels, request_timeout
from posterstamp.errors import EncodingError, RenderContextError
from posterstamp.geometry import rect_to_pixels, scaled_font_size
from posterstamp.log import get_logger
from posterstamp.models import DownloadEvent, GeneratedImage, Template, UserAssets
from posterstamp.naming import build_output_filename
from posterstamp.render.layers import draw_slot_text, paste_clipped_photo
from posterstamp.render.typography import load_family_font

_log = get_logger("compositor")


def create_canvas(size: tuple[int, int], limit: int | None = None) -> Image.Image:
    width, height = size
    if width <= 0 or height <= 0:
        raise RenderContextError(f"invalid canvas size {width}x{height}")
    if limit is not None and width * height > limit:
        raise RenderContextError(f"canvas {width}x{height} exceeds the {limit} pixel limit")
    try:
        return Image.new("RGBA", (width, height), (0, 0, 0, 0))
    except (MemoryError, ValueError) as exc:
        raise RenderContextError(f"could not allocate {width}x{height} canvas: {exc}") from exc


def compose(
    template: Template,
    base: Image.Image,
    photo: Image.Image | None,
    name: str | None,
    *,
    pixel_limit: int | None = None,
    font_path: str | None = None,
) -> Image.Image:
    """Synchronous drawing phase, once every asset is decoded."""
    canvas = create_canvas(base.size, pixel_limit)
    canvas.alpha_composite(base.convert("RGBA"), dest=(0, 0))

    if photo is not None:
        slot = template.image_slot
        zone = rect_to_pixels(slot.rect, canvas.width, canvas.height)
        placement = paste_clipped_photo(canvas, photo, zone, slot.shape)
        _log.debug(
            "photo %sx%s -> zone %.1f,%.1f %.1fx%.1f placed %.1fx%.1f (%s)",
            photo.width,
            photo.height,
            zone.left,
            zone.top,
            zone.width,
            zone.height,
            placement.width,
            placement.height,
            slot.shape,
        )

    text_slot = template.text_slot
    if text_slot is not None and name:
        zone = rect_to_pixels(text_slot.rect, canvas.width, canvas.height)
        font_px = scaled_font_size(text_slot.font_size, canvas.width)
        font = load_family_font(text_slot.font_family, font_px, bold=True, font_path=font_path)
        draw_slot_text(
            canvas,
            name,
            zone,
            align=text_slot.align,
            color=text_slot.color,
            font=font,
        )
    return canvas


def encode_png(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    try:
        image.save(buffer, format="PNG", optimize=True)
    except (OSError, ValueError) as exc:
        raise EncodingError(f"PNG encoding failed: {exc}") from exc
    return buffer.getvalue()


async def generate(
    template: Template,
    assets: UserAssets,
    *,
    config: dict[str, Any] | None = None,
) -> GeneratedImage:
    """Render ``assets`` into ``template`` and return the PNG.

    Raises AssetLoadError, RenderContextError or EncodingError.
    """
    started = time.perf_counter()
    timeout = request_timeout(config)
    async with aiohttp.ClientSession() as session:
        loads = [load_image(template.image_source(), session=session, timeout=timeout)]
        if assets.photo is not None:
            loads.append(load_image(assets.photo, session=session, timeout=timeout))
        # both decodes run to completion before the session closes
        results = await asyncio.gather(*loads, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    base = results[0]
    photo = results[1] if len(results) > 1 else None

    canvas = compose(
        template,
        base,
        photo,
        (assets.name or "").strip() or None,
        pixel_limit=max_output_pixels(config),
        font_path=(config or {}).get("font_path"),
    )
    data = encode_png(canvas)
    _log.info(
        "generated %s (%sx%s, %s bytes) in %.2fs photo=%s",
        template.name,
        canvas.width,
        canvas.height,
        len(data),
        time.perf_counter() - started,
        describe_source(assets.photo)[:60] if assets.photo is not None else "-",
    )
    return GeneratedImage(
        data=data,
        width=canvas.width,
        height=canvas.height,
        filename=build_output_filename(template.name),
    )


def build_download_event(template: Template, user_name: str | None) -> DownloadEvent:
    return DownloadEvent(
        template_id=template.id,
        template_name=template.name,
        user_name=(user_name or "").strip(),
    )
