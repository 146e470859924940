"""Pointer-driven drag/resize of template slots in percent space.

The engine keeps the draft geometry of one template. A press on a slot (or on
one of its corner handles) opens a :class:`ManipulationSession`; every pointer
move recomputes the slot rect from the snapshot taken at press time, so the
result of a gesture depends only on the total pointer delta and never drifts.
"""
from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from typing import Any

from posterstamp.constants import (
    ACTION_DRAG,
    ACTION_RESIZE,
    MAX_PCT,
    MIN_SLOT_PCT,
    QUICK_CENTER,
    QUICK_FULL_HEIGHT,
    QUICK_FULL_WIDTH,
    RESIZE_HANDLES,
    SHAPE_ALIASES,
    TARGET_IMAGE,
    TARGET_TEXT,
    VALID_ACTIONS,
    VALID_ALIGNS,
    VALID_QUICK_ACTIONS,
    VALID_TARGETS,
)
from posterstamp.errors import GeometryConstraintViolation
from posterstamp.geometry import clamp_rect, clamp_value, rect_violations, round2
from posterstamp.log import get_logger
from posterstamp.models import ImageSlot, ManipulationSession, NormalizedRect, Template, TextSlot

_log = get_logger("manipulation")

POINTER_MOVE = "move"
POINTER_UP = "up"
POINTER_CANCEL = "cancel"

Point = tuple[float, float]
ChangeListener = Callable[[str, NormalizedRect], None]
SelectListener = Callable[[str], None]
ViolationListener = Callable[[GeometryConstraintViolation], None]


class PointerEventHub:
    """Minimal pointer event dispatcher fed by the editor surface.

    The engine subscribes to it only while a session is live, so no listener
    survives between gestures.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Callable[[Point], None]]] = {
            POINTER_MOVE: [],
            POINTER_UP: [],
            POINTER_CANCEL: [],
        }

    def subscribe(self, kind: str, callback: Callable[[Point], None]) -> Callable[[], None]:
        if kind not in self._listeners:
            raise ValueError(f"unknown pointer event: {kind}")
        self._listeners[kind].append(callback)

        def _unsubscribe() -> None:
            try:
                self._listeners[kind].remove(callback)
            except ValueError:
                pass

        return _unsubscribe

    def listener_count(self, kind: str | None = None) -> int:
        if kind is not None:
            return len(self._listeners.get(kind, []))
        return sum(len(items) for items in self._listeners.values())

    def emit(self, kind: str, pos: Point) -> None:
        # copy: a callback may unsubscribe while we iterate
        for callback in list(self._listeners.get(kind, [])):
            callback(pos)

    def move(self, x: float, y: float) -> None:
        self.emit(POINTER_MOVE, (x, y))

    def release(self, x: float, y: float) -> None:
        self.emit(POINTER_UP, (x, y))

    def cancel(self) -> None:
        self.emit(POINTER_CANCEL, (0.0, 0.0))


def _edges_for_handle(handle: str) -> set[str]:
    return {edge for edge in "nsew" if edge in handle}


def compute_drag(
    snapshot: NormalizedRect,
    delta_x: float,
    delta_y: float,
    violations: list[GeometryConstraintViolation] | None = None,
) -> NormalizedRect:
    raw_x = snapshot.x + delta_x
    raw_y = snapshot.y + delta_y
    x = round2(clamp_value(raw_x, 0.0, MAX_PCT - snapshot.width))
    y = round2(clamp_value(raw_y, 0.0, MAX_PCT - snapshot.height))
    if violations is not None:
        if abs(x - raw_x) > 0.005:
            violations.append(GeometryConstraintViolation("x", raw_x, x, "0 <= x <= 100 - width"))
        if abs(y - raw_y) > 0.005:
            violations.append(GeometryConstraintViolation("y", raw_y, y, "0 <= y <= 100 - height"))
    return NormalizedRect(x=x, y=y, width=snapshot.width, height=snapshot.height)


def compute_resize(
    snapshot: NormalizedRect,
    handle: str,
    delta_x: float,
    delta_y: float,
    violations: list[GeometryConstraintViolation] | None = None,
) -> NormalizedRect:
    """Resize from ``snapshot`` by the corner ``handle``.

    Each edge touched by the handle is resolved on its own: east/south are
    clamped, while a west/north candidate that would leave the image or shrink
    to the minimum size is dropped for that axis only.
    """
    edges = _edges_for_handle(handle)
    x, y, width, height = snapshot.x, snapshot.y, snapshot.width, snapshot.height
    report = violations if violations is not None else []

    if "e" in edges:
        raw = snapshot.width + delta_x
        width = round2(clamp_value(raw, MIN_SLOT_PCT, MAX_PCT - snapshot.x))
        if abs(width - raw) > 0.005:
            report.append(GeometryConstraintViolation("width", raw, width, "5 <= width <= 100 - x"))
    if "s" in edges:
        raw = snapshot.height + delta_y
        height = round2(clamp_value(raw, MIN_SLOT_PCT, MAX_PCT - snapshot.y))
        if abs(height - raw) > 0.005:
            report.append(GeometryConstraintViolation("height", raw, height, "5 <= height <= 100 - y"))
    if "w" in edges:
        candidate_width = snapshot.width - delta_x
        candidate_x = snapshot.x + delta_x
        if candidate_width > MIN_SLOT_PCT and candidate_x >= 0:
            width = round2(candidate_width)
            # the east edge stays put
            x = round2(snapshot.right - width)
        else:
            report.append(GeometryConstraintViolation("x", candidate_x, snapshot.x, "west edge rejected"))
    if "n" in edges:
        candidate_height = snapshot.height - delta_y
        candidate_y = snapshot.y + delta_y
        if candidate_height > MIN_SLOT_PCT and candidate_y >= 0:
            height = round2(candidate_height)
            y = round2(snapshot.bottom - height)
        else:
            report.append(GeometryConstraintViolation("y", candidate_y, snapshot.y, "north edge rejected"))
    return NormalizedRect(x=x, y=y, width=width, height=height)


class ManipulationEngine:
    def __init__(
        self,
        image_slot: ImageSlot,
        text_slot: TextSlot | None = None,
        *,
        events: PointerEventHub | None = None,
    ) -> None:
        self.image_slot = replace(image_slot, rect=clamp_rect(image_slot.rect))
        self.text_slot = replace(text_slot, rect=clamp_rect(text_slot.rect)) if text_slot else None
        self.selected = TARGET_IMAGE
        self.session: ManipulationSession | None = None
        self._events = events
        self._subscriptions: list[Callable[[], None]] = []
        self._viewport: tuple[float, float] = (0.0, 0.0)
        self._change_listeners: list[ChangeListener] = []
        self._select_listeners: list[SelectListener] = []
        self._violation_listeners: list[ViolationListener] = []

    @classmethod
    def from_template(cls, template: Template, *, events: PointerEventHub | None = None) -> ManipulationEngine:
        return cls(template.image_slot, template.text_slot, events=events)

    # -- listeners ---------------------------------------------------------

    def on_change(self, callback: ChangeListener) -> None:
        self._change_listeners.append(callback)

    def on_select(self, callback: SelectListener) -> None:
        self._select_listeners.append(callback)

    def on_violation(self, callback: ViolationListener) -> None:
        self._violation_listeners.append(callback)

    def _emit_change(self, target: str) -> None:
        rect = self.rect_for(target)
        if rect is None:
            return
        for callback in list(self._change_listeners):
            callback(target, rect)

    def _emit_violations(self, violations: list[GeometryConstraintViolation]) -> None:
        for violation in violations:
            _log.debug("geometry clamped %s", violation.describe())
            for callback in list(self._violation_listeners):
                callback(violation)

    # -- state -------------------------------------------------------------

    @property
    def is_active(self) -> bool:
        return self.session is not None

    def set_viewport_size(self, width: float, height: float) -> None:
        """Size in px of the rendered base image itself, not its container."""
        self._viewport = (float(width), float(height))

    def rect_for(self, target: str) -> NormalizedRect | None:
        if target == TARGET_IMAGE:
            return self.image_slot.rect
        if target == TARGET_TEXT:
            return self.text_slot.rect if self.text_slot else None
        raise ValueError(f"unknown slot target: {target}")

    def _write_rect(self, target: str, rect: NormalizedRect) -> None:
        if target == TARGET_IMAGE:
            self.image_slot = replace(self.image_slot, rect=rect)
        elif self.text_slot is not None:
            self.text_slot = replace(self.text_slot, rect=rect)
        self._emit_change(target)

    def select(self, target: str) -> None:
        if target not in VALID_TARGETS:
            raise ValueError(f"unknown slot target: {target}")
        if target == TARGET_TEXT and self.text_slot is None:
            return
        if target == self.selected:
            return
        self.selected = target
        for callback in list(self._select_listeners):
            callback(target)

    # -- sessions ----------------------------------------------------------

    def begin_session(
        self,
        target: str,
        action: str,
        pointer_pos: Point,
        handle: str | None = None,
        *,
        viewport: tuple[float, float] | None = None,
    ) -> ManipulationSession:
        if action not in VALID_ACTIONS:
            raise ValueError(f"unknown manipulation action: {action}")
        if action == ACTION_RESIZE and handle not in RESIZE_HANDLES:
            raise ValueError(f"resize needs one of {RESIZE_HANDLES}, got {handle!r}")
        snapshot = self.rect_for(target)
        if snapshot is None:
            raise ValueError("template has no text slot")

        # single pointer: a new press releases whatever was in flight
        self.end_session()

        if viewport is not None:
            self.set_viewport_size(*viewport)
        self.select(target)
        self.session = ManipulationSession(
            target=target,
            action=action,
            pointer_origin=(float(pointer_pos[0]), float(pointer_pos[1])),
            snapshot=snapshot,
            handle=handle if action == ACTION_RESIZE else None,
        )
        if self._events is not None:
            self._subscriptions = [
                self._events.subscribe(POINTER_MOVE, self.update_session),
                self._events.subscribe(POINTER_UP, lambda _pos: self.end_session()),
                self._events.subscribe(POINTER_CANCEL, lambda _pos: self.end_session()),
            ]
        _log.debug("session begin target=%s action=%s handle=%s", target, action, handle)
        return self.session

    def update_session(self, pointer_pos: Point) -> NormalizedRect | None:
        session = self.session
        if session is None:
            return None
        view_w, view_h = self._viewport
        if view_w <= 0 or view_h <= 0:
            _log.debug("pointer move ignored, viewport size unknown")
            return None

        delta_x = (float(pointer_pos[0]) - session.pointer_origin[0]) / view_w * 100.0
        delta_y = (float(pointer_pos[1]) - session.pointer_origin[1]) / view_h * 100.0
        violations: list[GeometryConstraintViolation] = []
        if session.action == ACTION_DRAG:
            rect = compute_drag(session.snapshot, delta_x, delta_y, violations)
        else:
            rect = compute_resize(session.snapshot, session.handle or "", delta_x, delta_y, violations)
        self._write_rect(session.target, rect)
        if violations:
            self._emit_violations(violations)
        return rect

    def end_session(self) -> None:
        for unsubscribe in self._subscriptions:
            unsubscribe()
        self._subscriptions = []
        if self.session is not None:
            _log.debug("session end target=%s", self.session.target)
        self.session = None

    # -- direct edits ------------------------------------------------------

    def set_rect(self, target: str, rect: NormalizedRect) -> NormalizedRect:
        if self.rect_for(target) is None:
            raise ValueError("template has no text slot")
        violations = rect_violations(rect)
        clamped = clamp_rect(rect)
        self._write_rect(target, clamped)
        if violations:
            self._emit_violations(violations)
        return clamped

    def quick_position(self, target: str, action: str) -> NormalizedRect:
        current = self.rect_for(target)
        if current is None:
            raise ValueError("template has no text slot")
        if action not in VALID_QUICK_ACTIONS:
            raise ValueError(f"unknown quick position: {action}")
        if action == QUICK_CENTER:
            rect = replace(
                current,
                x=round2((MAX_PCT - current.width) / 2.0),
                y=round2((MAX_PCT - current.height) / 2.0),
            )
        elif action == QUICK_FULL_WIDTH:
            rect = replace(current, x=0.0, width=MAX_PCT)
        else:
            rect = replace(current, y=0.0, height=MAX_PCT)
        return self.set_rect(target, rect)

    def set_shape(self, shape: str) -> None:
        normalized = SHAPE_ALIASES.get(str(shape).strip().lower())
        if normalized is None:
            raise ValueError(f"unknown slot shape: {shape}")
        self.image_slot = replace(self.image_slot, shape=normalized)
        self._emit_change(TARGET_IMAGE)

    def add_text_slot(self, text_slot: TextSlot | None = None) -> TextSlot:
        if self.text_slot is None:
            slot = text_slot or TextSlot()
            self.text_slot = replace(slot, rect=clamp_rect(slot.rect))
        self.select(TARGET_TEXT)
        self._emit_change(TARGET_TEXT)
        return self.text_slot

    def remove_text_slot(self) -> None:
        if self.session is not None and self.session.target == TARGET_TEXT:
            self.end_session()
        self.text_slot = None
        self.select(TARGET_IMAGE)
        self._emit_change(TARGET_IMAGE)

    def update_text_style(self, **changes: Any) -> TextSlot:
        if self.text_slot is None:
            raise ValueError("template has no text slot")
        allowed = {"color", "font_size", "align", "font_family"}
        unknown = set(changes) - allowed
        if unknown:
            raise ValueError(f"unknown text style fields: {sorted(unknown)}")
        if "align" in changes and changes["align"] not in VALID_ALIGNS:
            raise ValueError(f"unknown text alignment: {changes['align']}")
        if "font_size" in changes:
            size = float(changes["font_size"])
            if size <= 0:
                raise ValueError("font size must be positive")
            changes["font_size"] = size
        self.text_slot = replace(self.text_slot, **changes)
        self._emit_change(TARGET_TEXT)
        return self.text_slot

    def apply_to(self, template: Template) -> Template:
        return replace(template, image_slot=self.image_slot, text_slot=self.text_slot)
