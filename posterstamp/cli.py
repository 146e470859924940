from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import typer

from posterstamp.assets import load_image_sync
from posterstamp.compositor import build_download_event, generate
from posterstamp.config import (
    default_font_family,
    load_config,
    preview_width,
    request_timeout,
    template_directory,
    write_default_config,
)
from posterstamp.constants import MODE_EDIT, MODE_PREVIEW, REFERENCE_WIDTH
from posterstamp.errors import PosterStampError, TemplateFormatError
from posterstamp.geometry import rect_to_pixels, scaled_font_size
from posterstamp.log import get_logger, setup_logging
from posterstamp.models import Template, UserAssets
from posterstamp.naming import build_output_name
from posterstamp.preview import PreviewRenderer, PreviewSample, display_font_size
from posterstamp.template_loader import find_template_path, load_template, template_to_dict

app = typer.Typer(add_completion=False, no_args_is_help=True, help="PosterStamp personalized poster CLI.")
LOGGER = get_logger("cli")


def _configure(log_level: str | None, cfg: dict[str, Any]) -> None:
    log_file = cfg.get("log_file")
    setup_logging(log_level or str(cfg.get("log_level") or "info"), Path(str(log_file)) if log_file else None)


def _load_template_arg(template_arg: str, cfg: dict[str, Any]) -> Template:
    path = find_template_path(template_arg, template_directory(cfg))
    if path is None:
        typer.secho(f"Template not found: {template_arg}", err=True, fg=typer.colors.RED)
        raise typer.Exit(1)
    try:
        template = load_template(path, default_font_family=default_font_family(cfg))
    except (OSError, TemplateFormatError) as exc:
        typer.secho(f"Template load failed: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(1)
    LOGGER.info("Template: %s", path)
    return template


@app.command()
def render(
    template: str = typer.Argument(..., help="Template name or .json/.yaml file path."),
    photo: str = typer.Option(..., "--photo", help="User photo: file path, http(s) URL or data URI."),
    name: str | None = typer.Option(None, "--name", help="Name drawn into the text slot."),
    out: Path | None = typer.Option(None, "--out", help="Output directory."),
    name_template: str | None = typer.Option(None, "--name-template", help='Output filename, e.g. "{name}_{user}.{ext}"'),
    log_level: str | None = typer.Option(None, "--log-level"),
) -> None:
    """Render a personalized PNG from a template, a photo and a name."""
    cfg = load_config()
    _configure(log_level, cfg)
    tpl = _load_template_arg(template, cfg)

    try:
        result = asyncio.run(generate(tpl, UserAssets(photo=photo, name=name), config=cfg))
    except PosterStampError as exc:
        typer.secho(f"Render failed: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(1)

    out_dir = out or Path(str(cfg.get("output_dir") or "output"))
    out_dir.mkdir(parents=True, exist_ok=True)
    if name_template:
        try:
            filename = build_output_name(name_template, tpl.name, name)
        except ValueError as exc:
            typer.secho(str(exc), err=True, fg=typer.colors.RED)
            raise typer.Exit(1)
    else:
        filename = result.filename
    output_file = out_dir / filename
    output_file.write_bytes(result.data)
    LOGGER.info("OK   %s -> %s (%sx%s)", tpl.name, output_file, result.width, result.height)

    event = build_download_event(tpl, name)
    typer.echo(json.dumps(event.to_dict(), ensure_ascii=False, indent=2))


@app.command()
def preview(
    template: str = typer.Argument(..., help="Template name or .json/.yaml file path."),
    width: int | None = typer.Option(
        None, "--width", min=16, help="Display width of the base image in px (default: preview_width from config)."
    ),
    mode: str = typer.Option(MODE_EDIT, "--mode", help="edit|preview"),
    photo: str | None = typer.Option(None, "--photo", help="Sample photo shown in preview mode."),
    name: str | None = typer.Option(None, "--name", help="Sample name shown in preview mode."),
    out: Path | None = typer.Option(None, "--out", help="Output PNG file."),
    log_level: str | None = typer.Option(None, "--log-level"),
) -> None:
    """Write the editor preview raster at a given display width."""
    cfg = load_config()
    _configure(log_level, cfg)
    mode = mode.lower()
    if mode not in {MODE_EDIT, MODE_PREVIEW}:
        typer.secho(f"mode must be edit or preview, got: {mode!r}", err=True, fg=typer.colors.RED)
        raise typer.Exit(1)
    tpl = _load_template_arg(template, cfg)
    if width is None:
        width = preview_width(cfg)

    timeout = request_timeout(cfg)
    try:
        base = load_image_sync(tpl.image_source(), timeout=timeout)
        sample_photo = load_image_sync(photo, timeout=timeout) if photo else None
    except PosterStampError as exc:
        typer.secho(f"Preview failed: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(1)

    height = max(1, int(round(base.height * width / float(base.width))))
    renderer = PreviewRenderer(
        tpl.image_slot,
        tpl.text_slot,
        mode=mode,
        sample=PreviewSample(name=name if name is not None else str(cfg.get("sample_name") or "")),
        font_path=cfg.get("font_path"),
    )
    renderer.on_viewport_resized(width, height)
    frame = renderer.render(base, sample_photo)

    output_file = out or Path(f"{tpl.name.replace(' ', '_')}_{mode}_{width}.png")
    output_file.parent.mkdir(parents=True, exist_ok=True)
    frame.save(output_file, format="PNG", optimize=True)
    typer.echo(f"Preview written: {output_file} ({frame.width}x{frame.height}, font {renderer.font_size}px)")


@app.command("inspect")
def inspect_template(
    template: str = typer.Argument(..., help="Template name or .json/.yaml file path."),
    width: int = typer.Option(REFERENCE_WIDTH, "--width", min=1, help="Render width used for pixel rects."),
    height: int | None = typer.Option(None, "--height", min=1, help="Render height (default: from base image)."),
) -> None:
    """Print the normalized template and its slot rects in pixels."""
    cfg = load_config()
    tpl = _load_template_arg(template, cfg)
    if height is None:
        try:
            base = load_image_sync(tpl.image_source(), timeout=request_timeout(cfg))
        except PosterStampError as exc:
            typer.secho(f"Base image unavailable: {exc}", err=True, fg=typer.colors.RED)
            raise typer.Exit(1)
        height = max(1, int(round(base.height * width / float(base.width))))

    payload: dict[str, Any] = {"template": template_to_dict(tpl), "render": {"width": width, "height": height}}
    image_px = rect_to_pixels(tpl.image_slot.rect, width, height)
    payload["render"]["imageSlot"] = [round(v, 2) for v in (image_px.left, image_px.top, image_px.width, image_px.height)]
    if tpl.text_slot is not None:
        text_px = rect_to_pixels(tpl.text_slot.rect, width, height)
        payload["render"]["textSlot"] = [round(v, 2) for v in (text_px.left, text_px.top, text_px.width, text_px.height)]
        payload["render"]["fontSize"] = round(scaled_font_size(tpl.text_slot.font_size, width), 3)
        payload["render"]["displayFontSize"] = display_font_size(tpl.text_slot.font_size, width)
    typer.echo(json.dumps(payload, ensure_ascii=False, indent=2))


@app.command("init-config")
def init_config(
    force: bool = typer.Option(False, "--force", help="Overwrite existing config file."),
) -> None:
    path = write_default_config(force=force)
    typer.echo(f"Config initialized: {path}")


@app.command()
def gui(
    file: Path | None = typer.Option(
        None,
        "--file",
        exists=True,
        resolve_path=True,
        dir_okay=False,
        help="Open this template or base image on startup.",
    ),
) -> None:
    try:
        from posterstamp.gui.editor import launch_gui
    except ImportError as exc:
        typer.secho(f"GUI is unavailable: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(1)

    setup_logging(str(load_config().get("log_level") or "info"))
    launch_gui(startup_file=file)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
