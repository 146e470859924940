from __future__ import annotations

from dataclasses import dataclass


class PosterStampError(Exception):
    """Base class for errors raised by the rendering core."""


class AssetLoadError(PosterStampError):
    def __init__(self, source: str, reason: str) -> None:
        self.source = source
        self.reason = reason
        super().__init__(f"failed to load image asset {_short_source(source)}: {reason}")


class RenderContextError(PosterStampError):
    """The output surface could not be created; nothing was drawn."""


class EncodingError(PosterStampError):
    """Drawing finished but the raster could not be serialized."""


class TemplateFormatError(ValueError):
    pass


@dataclass(frozen=True, slots=True)
class GeometryConstraintViolation:
    """Diagnostic record of a clamped or rejected geometry update.

    Never raised: manipulation clamps silently and only reports these to
    optional listeners.
    """

    field: str
    requested: float
    applied: float
    limit: str

    def describe(self) -> str:
        return f"{self.field}: requested {self.requested:.2f}, applied {self.applied:.2f} ({self.limit})"


def _short_source(source: str) -> str:
    text = str(source)
    if text.startswith("data:"):
        return text[:32] + "..."
    if len(text) > 120:
        return text[:117] + "..."
    return text
