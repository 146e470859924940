import asyncio
import base64
import io
from pathlib import Path

import pytest
from PIL import Image, ImageChops

from posterstamp.compositor import (
    build_download_event,
    compose,
    create_canvas,
    encode_png,
    generate,
)
from posterstamp.errors import AssetLoadError, EncodingError, RenderContextError
from posterstamp.geometry import PixelRect
from posterstamp.models import ImageSlot, NormalizedRect, Template, TextSlot, UserAssets
from posterstamp.render.image_modes import cover_fit, crop_to_visible
from posterstamp.render.typography import load_family_font, resolve_font_path

WHITE = (255, 255, 255)
RED = (255, 0, 0)


def _template(image_url: str, shape: str = "ellipse", text: TextSlot | None = None) -> Template:
    return Template(
        id="tpl-1",
        name="Summer Party",
        image_url=image_url,
        image_slot=ImageSlot(rect=NormalizedRect(30, 30, 40, 40), shape=shape),
        text_slot=text,
    )


def _write_png(path: Path, size: tuple[int, int], color) -> Path:
    Image.new("RGB", size, color).save(path, format="PNG")
    return path


def test_cover_fit_portrait_photo_crops_top_and_bottom() -> None:
    placement = cover_fit((400, 600), PixelRect(300, 300, 400, 400))
    assert placement == PixelRect(300.0, 200.0, 400.0, 600.0)


def test_cover_fit_landscape_photo_crops_sides() -> None:
    placement = cover_fit((800, 400), PixelRect(300, 300, 400, 400))
    assert placement == PixelRect(100.0, 300.0, 800.0, 400.0)


def test_ellipse_slot_never_paints_outside_the_ellipse() -> None:
    base = Image.new("RGB", (1000, 1000), WHITE)
    photo = Image.new("RGB", (400, 600), RED)
    canvas = compose(_template("base.png"), base, photo, None)

    assert canvas.size == (1000, 1000)
    assert canvas.getpixel((500, 500))[:3] == RED
    assert canvas.getpixel((310, 500))[:3] == RED
    assert canvas.getpixel((305, 305))[:3] == WHITE
    assert canvas.getpixel((250, 500))[:3] == WHITE
    for y in range(300, 700, 5):
        for x in range(300, 700, 5):
            distance = ((x + 0.5 - 500) / 200) ** 2 + ((y + 0.5 - 500) / 200) ** 2
            if distance > 1.05:
                assert canvas.getpixel((x, y))[:3] == WHITE


def test_rectangle_slot_fills_the_whole_zone() -> None:
    base = Image.new("RGB", (1000, 1000), WHITE)
    photo = Image.new("RGB", (800, 400), RED)
    canvas = compose(_template("base.png", shape="rectangle"), base, photo, None)
    assert canvas.getpixel((301, 301))[:3] == RED
    assert canvas.getpixel((698, 698))[:3] == RED
    assert canvas.getpixel((299, 299))[:3] == WHITE
    assert canvas.getpixel((700, 500))[:3] == WHITE


def test_name_drawn_inside_text_slot() -> None:
    base = Image.new("RGB", (1000, 1000), WHITE)
    template = _template("base.png", text=TextSlot(color="#000000"))
    canvas = compose(template, base, None, "Ann Lee")
    name_zone = canvas.crop((100, 800, 900, 900)).convert("L")
    assert name_zone.getextrema()[0] < 128
    above = canvas.crop((0, 0, 1000, 780)).convert("L")
    assert above.getextrema() == (255, 255)


def test_empty_name_draws_nothing() -> None:
    base = Image.new("RGB", (400, 400), WHITE)
    canvas = compose(_template("base.png", text=TextSlot()), base, None, None)
    assert canvas.convert("L").getextrema() == (255, 255)


def test_create_canvas_rejects_bad_sizes() -> None:
    with pytest.raises(RenderContextError):
        create_canvas((0, 10))
    with pytest.raises(RenderContextError):
        create_canvas((100, 100), limit=5000)
    assert create_canvas((10, 10)).size == (10, 10)


def test_encode_png_failure_is_encoding_error() -> None:
    with pytest.raises(EncodingError):
        encode_png(Image.new("CMYK", (4, 4)))


def test_generate_writes_png_with_output_filename(tmp_path: Path) -> None:
    base_path = _write_png(tmp_path / "base.png", (1000, 800), WHITE)
    photo_path = _write_png(tmp_path / "me.png", (300, 300), RED)
    template = _template(str(base_path), text=TextSlot())

    result = asyncio.run(generate(template, UserAssets(photo=str(photo_path), name="Ann")))

    assert result.size == (1000, 800)
    assert result.filename == "Summer_Party_poster.png"
    assert result.data.startswith(b"\x89PNG")
    with Image.open(io.BytesIO(result.data)) as decoded:
        assert decoded.size == (1000, 800)
        assert decoded.convert("RGB").getpixel((500, 400)) == RED


def test_generate_accepts_data_uri_photo(tmp_path: Path) -> None:
    base_path = _write_png(tmp_path / "base.png", (200, 200), WHITE)
    buffer = io.BytesIO()
    Image.new("RGB", (50, 50), RED).save(buffer, format="PNG")
    data_uri = "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode("ascii")

    result = asyncio.run(generate(_template(str(base_path)), UserAssets(photo=data_uri)))
    with Image.open(io.BytesIO(result.data)) as decoded:
        assert decoded.convert("RGB").getpixel((100, 100)) == RED


def test_generate_missing_photo_is_asset_error(tmp_path: Path) -> None:
    base_path = _write_png(tmp_path / "base.png", (200, 200), WHITE)
    with pytest.raises(AssetLoadError):
        asyncio.run(generate(_template(str(base_path)), UserAssets(photo=str(tmp_path / "nope.png"))))


def test_generate_undecodable_photo_is_asset_error(tmp_path: Path) -> None:
    base_path = _write_png(tmp_path / "base.png", (200, 200), WHITE)
    with pytest.raises(AssetLoadError):
        asyncio.run(generate(_template(str(base_path)), UserAssets(photo=b"definitely not an image")))


def test_generate_respects_pixel_limit(tmp_path: Path) -> None:
    base_path = _write_png(tmp_path / "base.png", (200, 200), WHITE)
    with pytest.raises(RenderContextError):
        asyncio.run(generate(_template(str(base_path)), UserAssets(), config={"max_output_pixels": 100}))


def test_independent_generations_run_concurrently(tmp_path: Path) -> None:
    base_path = _write_png(tmp_path / "base.png", (300, 200), WHITE)
    red_path = _write_png(tmp_path / "red.png", (60, 60), RED)
    blue_path = _write_png(tmp_path / "blue.png", (60, 60), (0, 0, 255))
    template = _template(str(base_path), shape="rectangle")

    async def _both():
        return await asyncio.gather(
            generate(template, UserAssets(photo=str(red_path))),
            generate(template, UserAssets(photo=str(blue_path))),
        )

    first, second = asyncio.run(_both())
    with Image.open(io.BytesIO(first.data)) as a, Image.open(io.BytesIO(second.data)) as b:
        assert a.convert("RGB").getpixel((150, 100)) == RED
        assert b.convert("RGB").getpixel((150, 100)) == (0, 0, 255)


def test_download_event_payload() -> None:
    event = build_download_event(_template("base.png"), "  Ann Lee ")
    payload = event.to_dict()
    assert payload["templateId"] == "tpl-1"
    assert payload["templateName"] == "Summer Party"
    assert payload["userName"] == "Ann Lee"
    assert payload["status"] == "completed"
    assert "downloadedAt" in payload


def test_extreme_aspect_photo_resamples_only_the_visible_window(monkeypatch) -> None:
    sizes = []
    original_resize = Image.Image.resize

    def _recording_resize(self, size, *args, **kwargs):
        sizes.append(tuple(size))
        return original_resize(self, size, *args, **kwargs)

    monkeypatch.setattr(Image.Image, "resize", _recording_resize)
    base = Image.new("RGB", (1000, 1000), WHITE)
    canvas = compose(_template("base.png"), base, Image.new("RGB", (1000, 4), RED), None)

    assert sizes
    assert all(width * height <= 400 * 400 for width, height in sizes)
    assert canvas.getpixel((500, 500))[:3] == RED
    assert canvas.getpixel((305, 305))[:3] == WHITE


def test_crop_to_visible_stays_inside_region() -> None:
    photo = Image.new("RGB", (300, 100), RED)
    placement = cover_fit(photo.size, PixelRect(0, 0, 50, 50))
    visible, origin = crop_to_visible(photo, placement, (0, 0, 50, 50))
    assert visible.size == (50, 50)
    assert origin == (0, 0)

    hidden, _ = crop_to_visible(photo, PixelRect(100, 100, 30, 10), (0, 0, 50, 50))
    assert hidden is None


@pytest.mark.parametrize("align", ["left", "center", "right"])
def test_name_is_anchored_horizontally_and_centered_vertically(align: str) -> None:
    base = Image.new("RGB", (1000, 1000), WHITE)
    template = _template("base.png", text=TextSlot(color="#000000", align=align))
    canvas = compose(template, base, None, "Ann Lee")

    bbox = ImageChops.difference(canvas.convert("RGB"), base).getbbox()
    assert bbox is not None
    left, top, right, bottom = bbox
    # default text slot: x 100..900, y 800..900
    assert 100 <= left and right <= 900
    assert 800 <= top and bottom <= 900
    if align == "left":
        assert left - 100 <= 6
    elif align == "right":
        assert 900 - right <= 6
    else:
        assert abs((left + right) / 2 - 500) <= 3
    assert abs((top + bottom) / 2 - 850) <= 8


def test_configured_font_path_overrides_family() -> None:
    found = resolve_font_path("sans-serif")
    if found is None:
        pytest.skip("no TrueType font installed")
    font = load_family_font("No Such Family", 20, font_path=str(found))
    assert Path(font.path) == found


def test_missing_font_path_falls_back_to_family(tmp_path: Path) -> None:
    base = Image.new("RGB", (400, 400), WHITE)
    canvas = compose(
        _template("base.png", text=TextSlot(color="#000000")),
        base,
        None,
        "Ann",
        font_path=str(tmp_path / "missing.ttf"),
    )
    assert canvas.crop((40, 320, 360, 360)).convert("L").getextrema()[0] < 128
