"""Resolution-independent slot preview.

The renderer turns percent geometry into pixel overlays for whatever size the
base image is currently displayed at. It never writes geometry back; it only
recomputes derived values (pixel rects, display font size) when it is told
the viewport changed.
"""
from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass, field

from PIL import Image, ImageDraw

from posterstamp.constants import (
    ACTION_DRAG,
    ACTION_RESIZE,
    MODE_EDIT,
    MODE_PREVIEW,
    NAME_PLACEHOLDER_LABEL,
    PHOTO_PLACEHOLDER_LABEL,
    RESIZE_HANDLES,
    SHAPE_ELLIPSE,
    SHAPE_RECTANGLE,
    TARGET_IMAGE,
    TARGET_TEXT,
    VALID_MODES,
)
from posterstamp.geometry import PixelRect, rect_to_pixels, scaled_font_size
from posterstamp.log import get_logger
from posterstamp.models import ImageSlot, TextSlot
from posterstamp.render.layers import draw_slot_text, paste_clipped_photo, slot_mask
from posterstamp.render.typography import load_family_font

_log = get_logger("preview")

HANDLE_SIZE_PX = 12.0

SLOT_COLORS = {
    TARGET_IMAGE: {"accent": (14, 165, 233), "hover": (125, 211, 252)},
    TARGET_TEXT: {"accent": (168, 85, 247), "hover": (216, 180, 254)},
}

ViewportListener = Callable[[int, int], None]


def display_font_size(reference_font_size: float, viewport_width: float) -> int:
    """On-screen font px, rounded half up; the unrounded value is what the compositor uses."""
    return int(math.floor(scaled_font_size(reference_font_size, viewport_width) + 0.5))


class ViewportNotifier:
    """Explicit "display surface size changed" event."""

    def __init__(self) -> None:
        self._listeners: list[ViewportListener] = []
        self._size: tuple[int, int] | None = None

    @property
    def size(self) -> tuple[int, int] | None:
        return self._size

    def subscribe(self, callback: ViewportListener) -> Callable[[], None]:
        self._listeners.append(callback)

        def _unsubscribe() -> None:
            try:
                self._listeners.remove(callback)
            except ValueError:
                pass

        return _unsubscribe

    def notify(self, width: float, height: float) -> None:
        self._size = (int(round(width)), int(round(height)))
        for callback in list(self._listeners):
            callback(*self._size)


@dataclass(slots=True)
class PreviewSample:
    name: str = ""


@dataclass(slots=True)
class SlotOverlay:
    target: str
    rect: PixelRect
    shape: str
    label: str
    selected: bool = False
    hovered: bool = False
    handles: dict[str, PixelRect] = field(default_factory=dict)


@dataclass(slots=True)
class PreviewLayout:
    viewport: tuple[int, int]
    mode: str
    image: SlotOverlay
    text: SlotOverlay | None = None
    font_size: int = 0

    def overlays(self) -> list[SlotOverlay]:
        """Bottom to top paint order: unselected slots first, selected last."""
        items = [self.image] + ([self.text] if self.text is not None else [])
        return sorted(items, key=lambda item: (item.selected, item.target == TARGET_TEXT))


@dataclass(frozen=True, slots=True)
class HitResult:
    target: str
    # None: a press only selects the slot
    action: str | None
    handle: str | None = None


def handle_rects(rect: PixelRect, size: float = HANDLE_SIZE_PX) -> dict[str, PixelRect]:
    half = size / 2.0
    corners = {
        "nw": (rect.left, rect.top),
        "ne": (rect.right, rect.top),
        "sw": (rect.left, rect.bottom),
        "se": (rect.right, rect.bottom),
    }
    return {name: PixelRect(cx - half, cy - half, size, size) for name, (cx, cy) in corners.items()}


class PreviewRenderer:
    def __init__(
        self,
        image_slot: ImageSlot,
        text_slot: TextSlot | None = None,
        *,
        mode: str = MODE_EDIT,
        sample: PreviewSample | None = None,
        notifier: ViewportNotifier | None = None,
        font_path: str | None = None,
    ) -> None:
        self.image_slot = image_slot
        self.text_slot = text_slot
        self.selected = TARGET_IMAGE
        self.hovered: str | None = None
        self.sample = sample or PreviewSample()
        self.font_path = font_path
        self._mode = MODE_EDIT
        self.set_mode(mode)
        self._viewport = (0, 0)
        self.font_size = 0
        self._unsubscribe: Callable[[], None] | None = None
        if notifier is not None:
            self.watch(notifier)

    # -- inputs ------------------------------------------------------------

    @property
    def mode(self) -> str:
        return self._mode

    @property
    def viewport(self) -> tuple[int, int]:
        return self._viewport

    def set_mode(self, mode: str) -> None:
        if mode not in VALID_MODES:
            raise ValueError(f"unknown preview mode: {mode}")
        self._mode = mode
        if mode == MODE_PREVIEW:
            self.hovered = None

    def watch(self, notifier: ViewportNotifier) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
        self._unsubscribe = notifier.subscribe(self.on_viewport_resized)
        if notifier.size is not None:
            self.on_viewport_resized(*notifier.size)

    def on_viewport_resized(self, width: int, height: int) -> None:
        self._viewport = (max(0, int(width)), max(0, int(height)))
        self._recompute_font_size()
        _log.debug("viewport %sx%s font=%spx", self._viewport[0], self._viewport[1], self.font_size)

    def _recompute_font_size(self) -> None:
        if self.text_slot is None:
            self.font_size = 0
            return
        self.font_size = display_font_size(self.text_slot.font_size, self._viewport[0])

    def set_geometry(self, image_slot: ImageSlot, text_slot: TextSlot | None) -> None:
        self.image_slot = image_slot
        self.text_slot = text_slot
        if text_slot is None and self.selected == TARGET_TEXT:
            self.selected = TARGET_IMAGE
        self._recompute_font_size()

    def set_selected(self, target: str) -> None:
        self.selected = target
        if self.hovered == target:
            self.hovered = None

    def bind(self, engine) -> None:
        """Follow a ManipulationEngine's draft geometry and selection."""
        def _on_change(_target, _rect) -> None:
            self.set_geometry(engine.image_slot, engine.text_slot)

        self.set_geometry(engine.image_slot, engine.text_slot)
        self.set_selected(engine.selected)
        engine.on_change(_on_change)
        engine.on_select(self.set_selected)

    # -- layout ------------------------------------------------------------

    def _label(self, target: str) -> str:
        if self._mode == MODE_PREVIEW:
            return self.sample.name if target == TARGET_TEXT else ""
        return NAME_PLACEHOLDER_LABEL if target == TARGET_TEXT else PHOTO_PLACEHOLDER_LABEL

    def _overlay(self, target: str, rect: PixelRect, shape: str) -> SlotOverlay:
        editing = self._mode == MODE_EDIT
        selected = editing and self.selected == target
        return SlotOverlay(
            target=target,
            rect=rect,
            shape=shape,
            label=self._label(target),
            selected=selected,
            hovered=editing and not selected and self.hovered == target,
            handles=handle_rects(rect) if selected else {},
        )

    def layout(self) -> PreviewLayout:
        width, height = self._viewport
        image = self._overlay(
            TARGET_IMAGE,
            rect_to_pixels(self.image_slot.rect, width, height),
            self.image_slot.shape,
        )
        text = None
        if self.text_slot is not None:
            text = self._overlay(
                TARGET_TEXT,
                rect_to_pixels(self.text_slot.rect, width, height),
                SHAPE_RECTANGLE,
            )
        return PreviewLayout(viewport=self._viewport, mode=self._mode, image=image, text=text, font_size=self.font_size)

    # -- pointer affordances ---------------------------------------------

    @staticmethod
    def _slot_contains(overlay: SlotOverlay, x: float, y: float) -> bool:
        if overlay.shape == SHAPE_ELLIPSE:
            return overlay.rect.contains_ellipse(x, y)
        return overlay.rect.contains(x, y)

    def hit_test(self, x: float, y: float) -> HitResult | None:
        """What a press at ``(x, y)`` (viewport px) would start."""
        if self._mode != MODE_EDIT:
            return None
        layout = self.layout()
        for overlay in reversed(layout.overlays()):
            if not overlay.selected:
                continue
            for name in RESIZE_HANDLES:
                handle = overlay.handles.get(name)
                if handle is not None and handle.contains(x, y):
                    return HitResult(overlay.target, ACTION_RESIZE, name)
        for overlay in reversed(layout.overlays()):
            if self._slot_contains(overlay, x, y):
                if overlay.selected:
                    return HitResult(overlay.target, ACTION_DRAG)
                return HitResult(overlay.target, None)
        return None

    def set_hover(self, x: float | None, y: float | None = None) -> str | None:
        self.hovered = None
        if x is None or y is None or self._mode != MODE_EDIT:
            return None
        for overlay in reversed(self.layout().overlays()):
            if overlay.selected:
                if self._slot_contains(overlay, x, y):
                    return None
                continue
            if self._slot_contains(overlay, x, y):
                self.hovered = overlay.target
                break
        return self.hovered

    # -- raster ------------------------------------------------------------

    def render(self, base_image: Image.Image, sample_photo: Image.Image | None = None) -> Image.Image:
        """Raster preview at viewport size (base image fit when no viewport is set)."""
        width, height = self._viewport
        if width <= 0 or height <= 0:
            width, height = base_image.size
            self.on_viewport_resized(width, height)
        frame = base_image.convert("RGBA")
        if frame.size != (width, height):
            frame = frame.resize((width, height), Image.Resampling.LANCZOS)

        layout = self.layout()
        if self._mode == MODE_PREVIEW and sample_photo is not None:
            paste_clipped_photo(frame, sample_photo, layout.image.rect, layout.image.shape)
        elif self._mode == MODE_EDIT:
            _draw_placeholder_fill(frame, layout.image)

        if layout.text is not None and self.text_slot is not None and layout.text.label:
            font = load_family_font(
                self.text_slot.font_family, max(1, layout.font_size), bold=True, font_path=self.font_path
            )
            draw_slot_text(
                frame,
                layout.text.label,
                layout.text.rect,
                align=self.text_slot.align,
                color=self.text_slot.color,
                font=font,
            )

        if self._mode == MODE_EDIT:
            for overlay in layout.overlays():
                _draw_overlay_chrome(frame, overlay)
        return frame


def _draw_placeholder_fill(frame: Image.Image, overlay: SlotOverlay) -> None:
    left, top, right, bottom = overlay.rect.box()
    if right - left < 1 or bottom - top < 1:
        return
    accent = SLOT_COLORS[overlay.target]["accent"]
    tint = Image.new("RGBA", (right - left, bottom - top), accent + (0,))
    mask = slot_mask(tint.size, overlay.rect.offset(-left, -top), overlay.shape)
    tint.putalpha(mask.point(lambda value: 26 if value else 0))
    frame.alpha_composite(tint, dest=(left, top))
    draw = ImageDraw.Draw(frame)
    draw.text(overlay.rect.center, overlay.label, fill=accent + (255,), anchor="mm")


def _draw_overlay_chrome(frame: Image.Image, overlay: SlotOverlay) -> None:
    if not (overlay.selected or overlay.hovered):
        return
    draw = ImageDraw.Draw(frame)
    colors = SLOT_COLORS[overlay.target]
    left, top, right, bottom = overlay.rect.box()
    bounds = (left, top, max(left, right - 1), max(top, bottom - 1))
    color = colors["accent"] if overlay.selected else colors["hover"]
    width = 2 if overlay.selected else 1
    if overlay.shape == SHAPE_ELLIPSE:
        draw.ellipse(bounds, outline=color, width=width)
    else:
        draw.rectangle(bounds, outline=color, width=width)
    for handle in overlay.handles.values():
        hl, ht, hr, hb = handle.box()
        draw.rectangle((hl, ht, hr - 1, hb - 1), fill=(255, 255, 255), outline=colors["accent"])
