import json
from pathlib import Path

from PIL import Image
from typer.testing import CliRunner

from posterstamp import cli
from posterstamp.models import ImageSlot, NormalizedRect, Template, TextSlot
from posterstamp.template_loader import save_template

runner = CliRunner()


def _setup(tmp_path: Path, monkeypatch) -> Path:
    monkeypatch.setenv("POSTERSTAMP_CONFIG", str(tmp_path / "config.yaml"))
    monkeypatch.setattr(cli, "setup_logging", lambda *args, **kwargs: None)
    Image.new("RGB", (800, 400), "white").save(tmp_path / "base.png")
    Image.new("RGB", (100, 100), (255, 0, 0)).save(tmp_path / "me.png")
    template = Template(
        id="cli1",
        name="Open Day",
        image_url="base.png",
        image_slot=ImageSlot(rect=NormalizedRect(25, 25, 50, 50), shape="ellipse"),
        text_slot=TextSlot(),
    )
    path = tmp_path / "open_day.json"
    save_template(path, template)
    return path


def test_render_writes_poster_and_prints_event(tmp_path: Path, monkeypatch) -> None:
    template_path = _setup(tmp_path, monkeypatch)
    out_dir = tmp_path / "out"
    result = runner.invoke(
        cli.app,
        ["render", str(template_path), "--photo", str(tmp_path / "me.png"), "--name", "Ann", "--out", str(out_dir)],
    )
    assert result.exit_code == 0, result.output
    poster = out_dir / "Open_Day_poster.png"
    assert poster.is_file()
    with Image.open(poster) as image:
        assert image.size == (800, 400)
    assert '"templateId": "cli1"' in result.output
    assert '"userName": "Ann"' in result.output


def test_render_bad_photo_exits_nonzero(tmp_path: Path, monkeypatch) -> None:
    template_path = _setup(tmp_path, monkeypatch)
    result = runner.invoke(cli.app, ["render", str(template_path), "--photo", str(tmp_path / "missing.png")])
    assert result.exit_code == 1


def test_unknown_template_exits_nonzero(tmp_path: Path, monkeypatch) -> None:
    _setup(tmp_path, monkeypatch)
    result = runner.invoke(cli.app, ["inspect", "no-such-template"])
    assert result.exit_code == 1


def test_inspect_reports_pixel_rects(tmp_path: Path, monkeypatch) -> None:
    template_path = _setup(tmp_path, monkeypatch)
    result = runner.invoke(cli.app, ["inspect", str(template_path), "--width", "400"])
    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["render"] == {
        "width": 400,
        "height": 200,
        "imageSlot": [100.0, 50.0, 200.0, 100.0],
        "textSlot": [40.0, 160.0, 320.0, 20.0],
        "fontSize": 12.0,
        "displayFontSize": 12,
    }
    assert payload["template"]["imageSlot"]["shape"] == "ellipse"


def test_preview_writes_raster(tmp_path: Path, monkeypatch) -> None:
    template_path = _setup(tmp_path, monkeypatch)
    out_file = tmp_path / "preview.png"
    result = runner.invoke(
        cli.app,
        ["preview", str(template_path), "--width", "400", "--mode", "preview", "--photo", str(tmp_path / "me.png"), "--out", str(out_file)],
    )
    assert result.exit_code == 0, result.output
    with Image.open(out_file) as image:
        assert image.size == (400, 200)
        assert image.convert("RGB").getpixel((200, 100)) == (255, 0, 0)


def test_init_config_writes_yaml(tmp_path: Path, monkeypatch) -> None:
    config_path = tmp_path / "nested" / "config.yaml"
    monkeypatch.setenv("POSTERSTAMP_CONFIG", str(config_path))
    result = runner.invoke(cli.app, ["init-config"])
    assert result.exit_code == 0, result.output
    assert config_path.is_file()
    assert "name_template" in config_path.read_text(encoding="utf-8")


def test_preview_width_defaults_to_config(tmp_path: Path, monkeypatch) -> None:
    template_path = _setup(tmp_path, monkeypatch)
    (tmp_path / "config.yaml").write_text("preview_width: 200\n", encoding="utf-8")
    out_file = tmp_path / "edit.png"
    result = runner.invoke(cli.app, ["preview", str(template_path), "--out", str(out_file)])
    assert result.exit_code == 0, result.output
    with Image.open(out_file) as image:
        assert image.size == (200, 100)
    assert "font 6px" in result.output
