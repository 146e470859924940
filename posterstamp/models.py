from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from posterstamp.constants import (
    DEFAULT_FONT_FAMILY,
    DEFAULT_FONT_SIZE,
    DEFAULT_IMAGE_RECT,
    DEFAULT_TEXT_COLOR,
    DEFAULT_TEXT_RECT,
    ALIGN_CENTER,
    SHAPE_RECTANGLE,
)


@dataclass(frozen=True, slots=True)
class NormalizedRect:
    """Slot rectangle in percent of the base image's width/height."""

    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass(frozen=True, slots=True)
class ImageSlot:
    rect: NormalizedRect = field(default_factory=lambda: NormalizedRect(*DEFAULT_IMAGE_RECT))
    shape: str = SHAPE_RECTANGLE


@dataclass(frozen=True, slots=True)
class TextSlot:
    rect: NormalizedRect = field(default_factory=lambda: NormalizedRect(*DEFAULT_TEXT_RECT))
    color: str = DEFAULT_TEXT_COLOR
    # px when the base image is rendered 800 units wide
    font_size: float = DEFAULT_FONT_SIZE
    align: str = ALIGN_CENTER
    font_family: str = DEFAULT_FONT_FAMILY


@dataclass(frozen=True, slots=True)
class Template:
    id: str
    name: str
    image_url: str
    image_slot: ImageSlot
    text_slot: TextSlot | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    download_count: int = 0
    thumbnail_url: str | None = None
    # directory a relative image_url is resolved against; not serialized
    source_dir: Path | None = field(default=None, compare=False, repr=False)

    def image_source(self) -> str:
        """Location to decode the base image from."""
        url = self.image_url
        if self.source_dir is None or "://" in url or url.startswith("data:"):
            return url
        candidate = Path(url).expanduser()
        if candidate.is_absolute():
            return url
        return str(self.source_dir / candidate)

    def with_download_recorded(self) -> Template:
        return replace(self, download_count=self.download_count + 1)

    @staticmethod
    def new_id() -> str:
        return uuid.uuid4().hex[:12]


@dataclass(slots=True)
class ManipulationSession:
    target: str
    action: str
    pointer_origin: tuple[float, float]
    snapshot: NormalizedRect
    handle: str | None = None


@dataclass(slots=True)
class UserAssets:
    # path, http(s) URL, data URI or raw encoded bytes
    photo: str | bytes | None = None
    name: str | None = None


@dataclass(slots=True)
class GeneratedImage:
    data: bytes
    width: int
    height: int
    filename: str

    @property
    def size(self) -> tuple[int, int]:
        return (self.width, self.height)


@dataclass(slots=True)
class DownloadEvent:
    template_id: str
    template_name: str
    user_name: str
    downloaded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    status: str = "completed"

    def to_dict(self) -> dict[str, Any]:
        return {
            "templateId": self.template_id,
            "templateName": self.template_name,
            "userName": self.user_name,
            "downloadedAt": self.downloaded_at.isoformat(),
            "status": self.status,
        }

