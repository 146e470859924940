from dataclasses import fields

import pytest
from PIL import Image

from posterstamp.constants import (
    ACTION_DRAG,
    ACTION_RESIZE,
    MODE_EDIT,
    MODE_PREVIEW,
    SHAPE_ELLIPSE,
    TARGET_IMAGE,
    TARGET_TEXT,
)
from posterstamp.geometry import PixelRect, scaled_font_size
from posterstamp.manipulation import ManipulationEngine
from posterstamp.models import ImageSlot, NormalizedRect, TextSlot
from posterstamp.preview import (
    PreviewRenderer,
    PreviewSample,
    ViewportNotifier,
    display_font_size,
)


def _renderer(mode: str = MODE_EDIT) -> PreviewRenderer:
    renderer = PreviewRenderer(
        ImageSlot(rect=NormalizedRect(30, 30, 40, 40), shape=SHAPE_ELLIPSE),
        TextSlot(),
        mode=mode,
        sample=PreviewSample(name="Ann Lee"),
    )
    renderer.on_viewport_resized(400, 300)
    return renderer


def test_display_font_size_matches_output_scaling() -> None:
    assert display_font_size(24, 800) == 24
    assert display_font_size(24, 400) == 12
    assert display_font_size(24, 350) == 11
    assert display_font_size(25, 500) == 16
    for width in (320, 640, 1000, 1920):
        assert abs(display_font_size(24, width) - scaled_font_size(24, width)) <= 0.5


def test_layout_maps_percent_rects_to_viewport() -> None:
    layout = _renderer().layout()
    assert layout.viewport == (400, 300)
    assert layout.font_size == 12
    assert layout.image.rect == PixelRect(120.0, 90.0, 160.0, 120.0)
    assert layout.image.label == "PHOTO"
    assert layout.text is not None
    assert layout.text.rect == PixelRect(40.0, 240.0, 320.0, 30.0)
    assert layout.text.label == "NAME HERE"


def test_handles_only_on_selected_slot() -> None:
    renderer = _renderer()
    layout = renderer.layout()
    assert layout.image.selected
    assert set(layout.image.handles) == {"nw", "ne", "sw", "se"}
    assert layout.text.handles == {}
    assert layout.image.handles["se"] == PixelRect(274.0, 204.0, 12.0, 12.0)

    renderer.set_selected(TARGET_TEXT)
    layout = renderer.layout()
    assert layout.image.handles == {}
    assert set(layout.text.handles) == {"nw", "ne", "sw", "se"}
    assert layout.overlays()[-1].target == TARGET_TEXT


def test_hit_test_resolves_handles_body_and_selection() -> None:
    renderer = _renderer()
    hit = renderer.hit_test(280, 210)
    assert (hit.target, hit.action, hit.handle) == (TARGET_IMAGE, ACTION_RESIZE, "se")
    hit = renderer.hit_test(121, 91)
    assert (hit.action, hit.handle) == (ACTION_RESIZE, "nw")
    assert renderer.hit_test(200, 150).action == ACTION_DRAG

    # inside the bounding box, outside the ellipse
    assert renderer.hit_test(135, 100) is None

    hit = renderer.hit_test(200, 255)
    assert (hit.target, hit.action) == (TARGET_TEXT, None)
    renderer.set_selected(TARGET_TEXT)
    assert renderer.hit_test(200, 255).action == ACTION_DRAG


def test_preview_mode_hides_editing_affordances() -> None:
    renderer = _renderer(MODE_PREVIEW)
    layout = renderer.layout()
    assert layout.image.label == ""
    assert layout.text.label == "Ann Lee"
    assert not layout.image.selected
    assert layout.image.handles == {}
    assert renderer.hit_test(200, 150) is None
    assert renderer.set_hover(200, 150) is None


def test_hover_skips_selected_slot() -> None:
    renderer = _renderer()
    assert renderer.set_hover(200, 255) == TARGET_TEXT
    assert renderer.layout().text.hovered
    assert renderer.set_hover(200, 150) is None
    assert renderer.set_hover(None) is None


def test_invalid_mode_rejected() -> None:
    with pytest.raises(ValueError):
        PreviewRenderer(ImageSlot(), mode="print")


def test_viewport_notifier_drives_recompute() -> None:
    notifier = ViewportNotifier()
    renderer = PreviewRenderer(ImageSlot(), TextSlot(font_size=30), notifier=notifier)
    notifier.notify(1600, 900)
    assert renderer.viewport == (1600, 900)
    assert renderer.font_size == 60
    notifier.notify(1600, 900)
    assert renderer.font_size == 60
    notifier.notify(400, 225)
    assert renderer.font_size == 15
    assert renderer.layout().image.rect == PixelRect(120.0, 67.5, 160.0, 90.0)

    other = ViewportNotifier()
    renderer.watch(other)
    notifier.notify(800, 450)
    assert renderer.viewport == (400, 225)


def test_unsubscribe_from_notifier() -> None:
    notifier = ViewportNotifier()
    seen = []
    unsubscribe = notifier.subscribe(lambda w, h: seen.append((w, h)))
    notifier.notify(10, 20)
    unsubscribe()
    unsubscribe()
    notifier.notify(30, 40)
    assert seen == [(10, 20)]


def test_bind_follows_engine_edits_and_selection() -> None:
    engine = ManipulationEngine(ImageSlot(), TextSlot())
    renderer = PreviewRenderer(ImageSlot(rect=NormalizedRect(0, 0, 10, 10)))
    renderer.bind(engine)
    renderer.on_viewport_resized(1000, 1000)
    assert renderer.layout().image.rect == PixelRect(300.0, 300.0, 400.0, 400.0)

    engine.set_rect(TARGET_IMAGE, NormalizedRect(0, 0, 50, 50))
    assert renderer.layout().image.rect == PixelRect(0.0, 0.0, 500.0, 500.0)

    engine.select(TARGET_TEXT)
    assert renderer.selected == TARGET_TEXT
    engine.update_text_style(font_size=40)
    assert renderer.font_size == 50

    engine.remove_text_slot()
    assert renderer.text_slot is None
    assert renderer.selected == TARGET_IMAGE
    assert renderer.layout().text is None


def test_render_preview_clips_sample_photo_and_draws_name() -> None:
    renderer = _renderer(MODE_PREVIEW)
    base = Image.new("RGB", (800, 600), "white")
    photo = Image.new("RGB", (100, 100), (255, 0, 0))
    frame = renderer.render(base, photo)
    assert frame.size == (400, 300)
    assert frame.getpixel((200, 150))[:3] == (255, 0, 0)
    assert frame.getpixel((122, 92))[:3] == (255, 255, 255)
    assert frame.getpixel((10, 10))[:3] == (255, 255, 255)
    name_zone = frame.crop((40, 240, 360, 270)).convert("L")
    assert name_zone.getextrema()[0] < 128


def test_render_edit_mode_without_viewport_uses_base_size() -> None:
    renderer = PreviewRenderer(ImageSlot(), TextSlot())
    frame = renderer.render(Image.new("RGB", (640, 480), "white"))
    assert frame.size == (640, 480)
    assert renderer.viewport == (640, 480)
    assert frame.getpixel((5, 5))[:3] == (255, 255, 255)
    # translucent placeholder tint in the photo slot
    assert frame.getpixel((320, 200))[:3] != (255, 255, 255)



def test_sample_photo_is_passed_to_render_not_stored(tmp_path) -> None:
    assert [item.name for item in fields(PreviewSample)] == ["name"]
    renderer = PreviewRenderer(
        ImageSlot(),
        TextSlot(color="#000000"),
        mode=MODE_PREVIEW,
        sample=PreviewSample(name="Ann"),
        font_path=str(tmp_path / "missing.ttf"),
    )
    renderer.on_viewport_resized(400, 300)
    frame = renderer.render(Image.new("RGB", (400, 300), "white"))
    assert frame.getpixel((200, 150))[:3] == (255, 255, 255)
    assert frame.crop((40, 240, 360, 270)).convert("L").getextrema()[0] < 128
