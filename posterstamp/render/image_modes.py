from __future__ import annotations

from PIL import Image

from posterstamp.geometry import PixelRect


def cover_fit(photo_size: tuple[int, int], zone: PixelRect) -> PixelRect:
    """Placement that fills ``zone`` completely, keeps aspect ratio, centers the crop.

    A photo relatively wider than the zone is scaled to the zone height and
    overflows left/right equally; otherwise it is scaled to the zone width and
    overflows top/bottom equally.
    """
    photo_w, photo_h = photo_size
    if photo_w <= 0 or photo_h <= 0 or zone.width <= 0 or zone.height <= 0:
        return zone
    photo_ratio = photo_w / float(photo_h)
    zone_ratio = zone.width / zone.height

    if photo_ratio > zone_ratio:
        render_h = zone.height
        render_w = zone.height * photo_ratio
        return PixelRect(
            left=zone.left - (render_w - zone.width) / 2.0,
            top=zone.top,
            width=render_w,
            height=render_h,
        )
    render_w = zone.width
    render_h = zone.width / photo_ratio
    return PixelRect(
        left=zone.left,
        top=zone.top - (render_h - zone.height) / 2.0,
        width=render_w,
        height=render_h,
    )


def crop_to_visible(
    photo: Image.Image,
    placement: PixelRect,
    region: tuple[int, int, int, int],
) -> tuple[Image.Image | None, tuple[int, int]]:
    """Resample only the part of ``photo`` that lands inside ``region``.

    ``placement`` is where the whole photo would be drawn (it may overflow the
    region on two sides). The source area behind the visible window is cropped
    first, so the output never exceeds the region size whatever the photo's
    aspect ratio. Returns the image and its paste origin, or ``None`` when
    nothing is visible.
    """
    place_left, place_top, place_right, place_bottom = placement.box()
    place_w = max(1, place_right - place_left)
    place_h = max(1, place_bottom - place_top)
    left = max(region[0], place_left)
    top = max(region[1], place_top)
    right = min(region[2], place_left + place_w)
    bottom = min(region[3], place_top + place_h)
    if right - left < 1 or bottom - top < 1:
        return None, (left, top)

    scale_x = photo.width / float(place_w)
    scale_y = photo.height / float(place_h)
    source_box = (
        (left - place_left) * scale_x,
        (top - place_top) * scale_y,
        (right - place_left) * scale_x,
        (bottom - place_top) * scale_y,
    )
    size = (right - left, bottom - top)
    return photo.resize(size, Image.Resampling.LANCZOS, box=source_box), (left, top)
