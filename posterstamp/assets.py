"""Asynchronous image asset loading: URL, local path, data URI or raw bytes."""
from __future__ import annotations

import asyncio
import base64
import binascii
import io
from pathlib import Path
from urllib.parse import unquote_to_bytes

import aiofiles
import aiohttp
from PIL import Image, ImageOps, UnidentifiedImageError

from posterstamp.errors import AssetLoadError
from posterstamp.log import get_logger

_log = get_logger("assets")

AssetSource = str | bytes | Path

_HEIF_REGISTERED = False


def _register_heif_opener() -> bool:
    global _HEIF_REGISTERED
    if _HEIF_REGISTERED:
        return True
    try:
        from pillow_heif import register_heif_opener
    except ImportError:
        return False
    register_heif_opener()
    _HEIF_REGISTERED = True
    return True


def describe_source(source: AssetSource) -> str:
    if isinstance(source, bytes):
        return f"<{len(source)} bytes>"
    return str(source)


def _decode_data_uri(uri: str) -> bytes:
    header, _, encoded = uri.partition(",")
    if not encoded:
        raise AssetLoadError(uri, "data URI has no payload")
    if ";base64" not in header:
        return unquote_to_bytes(encoded)
    try:
        return base64.b64decode(encoded, validate=False)
    except (binascii.Error, ValueError) as exc:
        raise AssetLoadError(uri, f"invalid base64 payload: {exc}") from exc


async def _fetch_url(url: str, session: aiohttp.ClientSession, timeout: float) -> bytes:
    try:
        async with session.get(url, timeout=aiohttp.ClientTimeout(total=timeout)) as response:
            response.raise_for_status()
            return await response.read()
    except aiohttp.ClientResponseError as exc:
        raise AssetLoadError(url, f"HTTP {exc.status}") from exc
    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
        raise AssetLoadError(url, f"network failure: {type(exc).__name__}") from exc


async def _read_file(path: Path) -> bytes:
    try:
        async with aiofiles.open(path, "rb") as handle:
            return await handle.read()
    except OSError as exc:
        raise AssetLoadError(str(path), exc.strerror or type(exc).__name__) from exc


async def load_asset_bytes(
    source: AssetSource,
    *,
    session: aiohttp.ClientSession | None = None,
    timeout: float = 30.0,
) -> bytes:
    if isinstance(source, bytes):
        if not source:
            raise AssetLoadError(describe_source(source), "empty image data")
        return source
    if isinstance(source, Path):
        return await _read_file(source)

    text = str(source).strip()
    if not text:
        raise AssetLoadError(text, "empty image reference")
    if text.startswith("data:"):
        return _decode_data_uri(text)
    if text.startswith(("http://", "https://")):
        if session is not None:
            return await _fetch_url(text, session, timeout)
        async with aiohttp.ClientSession() as own_session:
            return await _fetch_url(text, own_session, timeout)
    if text.startswith("file://"):
        text = text[len("file://"):]
    return await _read_file(Path(text).expanduser())


def decode_image_bytes(data: bytes, source: str = "<bytes>") -> Image.Image:
    """Decode to RGBA with EXIF orientation applied."""
    _register_heif_opener()
    try:
        with Image.open(io.BytesIO(data)) as image:
            image.load()
            oriented = ImageOps.exif_transpose(image)
            return oriented.convert("RGBA")
    except (UnidentifiedImageError, Image.DecompressionBombError) as exc:
        raise AssetLoadError(source, f"unsupported or unsafe image format: {exc}") from exc
    except (OSError, ValueError, SyntaxError) as exc:
        raise AssetLoadError(source, f"decode failed: {exc}") from exc


async def load_image(
    source: AssetSource,
    *,
    session: aiohttp.ClientSession | None = None,
    timeout: float = 30.0,
) -> Image.Image:
    label = describe_source(source)
    data = await load_asset_bytes(source, session=session, timeout=timeout)
    loop = asyncio.get_running_loop()
    image = await loop.run_in_executor(None, decode_image_bytes, data, label)
    _log.debug("decoded %s size=%sx%s", label[:80], image.width, image.height)
    return image


def load_image_sync(source: AssetSource, *, timeout: float = 30.0) -> Image.Image:
    """Blocking wrapper for callers outside an event loop (CLI, GUI thread)."""
    return asyncio.run(load_image(source, timeout=timeout))
