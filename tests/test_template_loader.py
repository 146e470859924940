import json
from pathlib import Path

import pytest

from posterstamp.errors import TemplateFormatError
from posterstamp.models import NormalizedRect
from posterstamp.template_loader import (
    ensure_template_repository,
    find_template_path,
    list_template_names,
    load_template,
    normalize_template_dict,
    save_template,
    template_to_dict,
)


def test_normalize_template_dict_clamps_values() -> None:
    template = normalize_template_dict(
        {
            "name": "custom",
            "imageUrl": "https://example.com/base.png",
            "imageSlot": {"x": 90, "y": -4, "width": 2, "height": 150, "shape": "circle"},
            "textSlot": {"x": 10, "y": 80, "width": 80, "height": 10, "fontSize": -3, "align": "justify", "color": "nope"},
        }
    )
    assert template.name == "custom"
    assert template.image_slot.rect == NormalizedRect(90.0, 0.0, 5.0, 100.0)
    assert template.image_slot.shape == "ellipse"
    assert template.text_slot.font_size == 24.0
    assert template.text_slot.align == "left"
    assert template.text_slot.color == "#000000"
    assert template.text_slot.font_family == "Arial"


def test_legacy_placeholder_keys_are_accepted() -> None:
    template = normalize_template_dict(
        {
            "id": "abc",
            "name": "Old",
            "imageUrl": "base.png",
            "placeholder": {"x": 10, "y": 10, "width": 30, "height": 30, "shape": "rect"},
            "nameField": {"x": 5, "y": 85, "width": 90, "height": 10, "fontSize": 32, "align": "center", "color": "#FF00FF", "fontFamily": "Georgia"},
            "downloadCount": 7,
        }
    )
    assert template.id == "abc"
    assert template.image_slot.shape == "rectangle"
    assert template.text_slot.rect == NormalizedRect(5.0, 85.0, 90.0, 10.0)
    assert template.text_slot.font_family == "Georgia"
    assert template.download_count == 7


def test_missing_image_url_rejected() -> None:
    with pytest.raises(TemplateFormatError):
        normalize_template_dict({"name": "no base"})


def test_save_load_round_trip_is_stable(tmp_path: Path) -> None:
    original = normalize_template_dict(
        {
            "name": "Gala",
            "imageUrl": "https://example.com/gala.png",
            "imageSlot": {"x": 12.345, "y": 20.006, "width": 33.333, "height": 40.0, "shape": "ellipse"},
            "textSlot": {"x": 10, "y": 80, "width": 80, "height": 10, "fontSize": 28, "align": "right"},
        }
    )
    for suffix in (".json", ".yaml"):
        path = tmp_path / f"gala{suffix}"
        save_template(path, original)
        loaded = load_template(path)
        assert loaded.image_slot == original.image_slot
        assert loaded.text_slot == original.text_slot
        save_template(path, loaded)
        assert load_template(path).image_slot == original.image_slot


def test_template_without_text_slot_serializes_without_key(tmp_path: Path) -> None:
    template = normalize_template_dict({"name": "Bare", "imageUrl": "https://example.com/x.png"})
    assert template.text_slot is None
    assert "textSlot" not in template_to_dict(template)


def test_relative_image_resolved_against_template_file(tmp_path: Path) -> None:
    path = tmp_path / "tpl.json"
    path.write_text(json.dumps({"name": "Rel", "imageUrl": "art/base.png"}), encoding="utf-8")
    template = load_template(path)
    assert template.image_url == "art/base.png"
    assert Path(template.image_source()) == tmp_path / "art" / "base.png"


def test_resave_keeps_relative_image_reference(tmp_path: Path) -> None:
    path = tmp_path / "tpl.json"
    path.write_text(json.dumps({"name": "Rel", "imageUrl": "art/base.png"}), encoding="utf-8")
    save_template(path, load_template(path))
    assert json.loads(path.read_text(encoding="utf-8"))["imageUrl"] == "art/base.png"

    moved = tmp_path / "moved"
    moved.mkdir()
    (tmp_path / "tpl.json").rename(moved / "tpl.json")
    assert Path(load_template(moved / "tpl.json").image_source()) == moved / "art" / "base.png"


def test_save_elsewhere_pins_relative_image(tmp_path: Path) -> None:
    path = tmp_path / "tpl.json"
    path.write_text(json.dumps({"name": "Rel", "imageUrl": "base.png"}), encoding="utf-8")
    other = tmp_path / "other" / "tpl.json"
    save_template(other, load_template(path))
    stored = json.loads(other.read_text(encoding="utf-8"))["imageUrl"]
    assert Path(stored) == (tmp_path / "base.png").resolve()
    assert Path(load_template(other).image_source()) == (tmp_path / "base.png").resolve()


def test_default_font_family_fills_missing_family(tmp_path: Path) -> None:
    path = tmp_path / "tpl.yaml"
    path.write_text("name: F\nimageUrl: base.png\ntextSlot: {x: 10, y: 80, width: 80, height: 10}\n", encoding="utf-8")
    assert load_template(path, default_font_family="Georgia").text_slot.font_family == "Georgia"
    assert load_template(path).text_slot.font_family == "Arial"


def test_invalid_file_is_format_error(tmp_path: Path) -> None:
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(TemplateFormatError):
        load_template(path)


def test_ensure_template_repository_seeds_default(tmp_path: Path) -> None:
    template_dir = tmp_path / "templates"
    ensure_template_repository(template_dir)
    assert list_template_names(template_dir) == ["default"]
    path = find_template_path("default", template_dir)
    template = load_template(path)
    assert template.image_url == "default_base.png"
    assert Path(template.image_source()).is_file()
    assert template.text_slot is not None

    ensure_template_repository(template_dir)
    assert list_template_names(template_dir) == ["default"]
