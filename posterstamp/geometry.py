"""Percent-space slot geometry: clamping, rounding and pixel conversion."""
from __future__ import annotations

import math
from dataclasses import dataclass

from posterstamp.constants import MAX_PCT, MIN_SLOT_PCT, REFERENCE_WIDTH
from posterstamp.errors import GeometryConstraintViolation
from posterstamp.models import NormalizedRect

_EPSILON = 1e-6


def round2(value: float) -> float:
    """Round half up to 2 decimals; stable under repeated application."""
    return math.floor(float(value) * 100.0 + 0.5) / 100.0


def clamp_value(value: float, minimum: float, maximum: float) -> float:
    return max(minimum, min(maximum, value))


def clamp_rect(rect: NormalizedRect) -> NormalizedRect:
    width = round2(clamp_value(rect.width, MIN_SLOT_PCT, MAX_PCT))
    height = round2(clamp_value(rect.height, MIN_SLOT_PCT, MAX_PCT))
    x = round2(clamp_value(rect.x, 0.0, MAX_PCT - width))
    y = round2(clamp_value(rect.y, 0.0, MAX_PCT - height))
    return NormalizedRect(x=x, y=y, width=width, height=height)


def rect_violations(rect: NormalizedRect) -> list[GeometryConstraintViolation]:
    violations: list[GeometryConstraintViolation] = []
    clamped = clamp_rect(rect)
    checks = (
        ("x", rect.x, clamped.x, "0 <= x <= 100 - width"),
        ("y", rect.y, clamped.y, "0 <= y <= 100 - height"),
        ("width", rect.width, clamped.width, f"{MIN_SLOT_PCT:g} <= width <= 100"),
        ("height", rect.height, clamped.height, f"{MIN_SLOT_PCT:g} <= height <= 100"),
    )
    for name, requested, applied, limit in checks:
        if abs(requested - applied) > 0.005:
            violations.append(GeometryConstraintViolation(name, requested, applied, limit))
    return violations


def is_valid_rect(rect: NormalizedRect) -> bool:
    return (
        rect.x >= -_EPSILON
        and rect.y >= -_EPSILON
        and rect.width >= MIN_SLOT_PCT - _EPSILON
        and rect.height >= MIN_SLOT_PCT - _EPSILON
        and rect.x + rect.width <= MAX_PCT + _EPSILON
        and rect.y + rect.height <= MAX_PCT + _EPSILON
    )


def scaled_font_size(reference_font_size: float, render_width: float) -> float:
    """Font size in px for a surface ``render_width`` wide.

    Both the on-screen preview and the final output go through this, so the
    text keeps the same proportion to the image at any resolution.
    """
    if render_width <= 0:
        return 0.0
    return float(reference_font_size) * float(render_width) / float(REFERENCE_WIDTH)


@dataclass(frozen=True, slots=True)
class PixelRect:
    left: float
    top: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height

    @property
    def center(self) -> tuple[float, float]:
        return (self.left + self.width * 0.5, self.top + self.height * 0.5)

    def box(self) -> tuple[int, int, int, int]:
        return (
            int(round(self.left)),
            int(round(self.top)),
            int(round(self.right)),
            int(round(self.bottom)),
        )

    def contains(self, x: float, y: float) -> bool:
        return self.left <= x <= self.right and self.top <= y <= self.bottom

    def contains_ellipse(self, x: float, y: float) -> bool:
        rx = self.width * 0.5
        ry = self.height * 0.5
        if rx <= 0 or ry <= 0:
            return False
        cx, cy = self.center
        return ((x - cx) / rx) ** 2 + ((y - cy) / ry) ** 2 <= 1.0

    def offset(self, dx: float, dy: float) -> PixelRect:
        return PixelRect(self.left + dx, self.top + dy, self.width, self.height)


def rect_to_pixels(rect: NormalizedRect, width: float, height: float) -> PixelRect:
    return PixelRect(
        left=rect.x / 100.0 * width,
        top=rect.y / 100.0 * height,
        width=rect.width / 100.0 * width,
        height=rect.height / 100.0 * height,
    )
