from __future__ import annotations

import asyncio
import json
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any

from PyQt6.QtCore import Qt
from PyQt6.QtGui import QAction, QColor, QKeySequence, QPalette
from PyQt6.QtWidgets import (
    QApplication,
    QCheckBox,
    QColorDialog,
    QComboBox,
    QDoubleSpinBox,
    QFileDialog,
    QFormLayout,
    QGroupBox,
    QHBoxLayout,
    QLineEdit,
    QMainWindow,
    QMessageBox,
    QPushButton,
    QScrollArea,
    QSplitter,
    QVBoxLayout,
    QWidget,
)

from posterstamp.assets import load_image_sync
from posterstamp.compositor import build_download_event, generate
from posterstamp.config import default_font_family, load_config, request_timeout, template_directory
from posterstamp.constants import (
    ALIGN_CENTER,
    MODE_EDIT,
    MODE_PREVIEW,
    QUICK_CENTER,
    QUICK_FULL_HEIGHT,
    QUICK_FULL_WIDTH,
    SHAPE_ELLIPSE,
    SHAPE_RECTANGLE,
    STANDARD_EXTENSIONS,
    TARGET_IMAGE,
    TARGET_TEXT,
    VALID_ALIGNS,
)
from posterstamp.errors import GeometryConstraintViolation, PosterStampError, TemplateFormatError
from posterstamp.gui.editor_canvas import SlotEditorCanvas
from posterstamp.gui.editor_utils import percent_spin, set_spin_value
from posterstamp.log import get_logger
from posterstamp.manipulation import ManipulationEngine
from posterstamp.models import NormalizedRect, Template, TextSlot, UserAssets
from posterstamp.naming import build_output_name
from posterstamp.preview import PreviewRenderer, PreviewSample
from posterstamp.render.layers import safe_color
from posterstamp.template_loader import (
    TEMPLATE_SUFFIXES,
    ensure_template_repository,
    find_template_path,
    list_template_names,
    load_template,
    new_template,
    save_template,
)

_log = get_logger("gui.editor")

RECT_FIELDS = ("x", "y", "width", "height")
QUICK_BUTTONS = ((QUICK_CENTER, "Center"), (QUICK_FULL_WIDTH, "Full Width"), (QUICK_FULL_HEIGHT, "Full Height"))
IMAGE_FILTER = "Images (" + " ".join(f"*{ext}" for ext in sorted(STANDARD_EXTENSIONS)) + ");;All Files (*.*)"
TEMPLATE_FILTER = "Templates (" + " ".join(f"*{ext}" for ext in TEMPLATE_SUFFIXES) + ")"


class PosterStampEditorWindow(QMainWindow):
    def __init__(self, startup_file: Path | None = None) -> None:
        super().__init__()
        self.setWindowTitle("PosterStamp Template Editor")
        self.resize(1480, 900)
        self.setMinimumSize(1100, 700)

        self.config: dict[str, Any] = load_config()
        self.template_dir = template_directory(self.config)
        self.template: Template | None = None
        self.template_path: Path | None = None
        self.engine: ManipulationEngine | None = None
        self.sample_photo_path: Path | None = None

        self._setup_ui()
        self._setup_shortcuts()
        self._apply_system_adaptive_style()
        self._set_controls_enabled(False)
        self._set_status("Ready. Open a template or a base image to start.")

        ensure_template_repository(self.template_dir)
        self._reload_template_list()
        self._preload_sample_photo()
        if startup_file:
            self.open_path(startup_file)

    # -- layout ------------------------------------------------------------

    def _setup_ui(self) -> None:
        root = QWidget()
        self.setCentralWidget(root)
        root_layout = QHBoxLayout(root)
        root_layout.setContentsMargins(10, 10, 10, 10)

        splitter = QSplitter(Qt.Orientation.Horizontal)
        root_layout.addWidget(splitter)

        left_scroll = QScrollArea()
        left_scroll.setWidgetResizable(True)
        left_scroll.setMinimumWidth(380)
        left_scroll.setMaximumWidth(480)

        left_panel = QWidget()
        left_scroll.setWidget(left_panel)
        left_layout = QVBoxLayout(left_panel)
        left_layout.setContentsMargins(6, 6, 6, 6)
        left_layout.setSpacing(10)

        self._build_template_group(left_layout)
        self._build_image_slot_group(left_layout)
        self._build_text_slot_group(left_layout)
        self._build_preview_group(left_layout)
        self._build_generate_group(left_layout)
        left_layout.addStretch(1)

        right_panel = QWidget()
        right_layout = QVBoxLayout(right_panel)
        right_layout.setContentsMargins(8, 8, 8, 8)
        self.canvas = SlotEditorCanvas()
        self.canvas.geometryEdited.connect(self._sync_slot_controls)
        self.canvas.selectionChanged.connect(lambda _target: self._refresh_text_controls())
        right_layout.addWidget(self.canvas, stretch=1)

        splitter.addWidget(left_scroll)
        splitter.addWidget(right_panel)
        splitter.setStretchFactor(0, 0)
        splitter.setStretchFactor(1, 1)
        splitter.setSizes([420, 1060])

        self.setStatusBar(self.statusBar())

    def _build_template_group(self, parent_layout: QVBoxLayout) -> None:
        group = QGroupBox("Template")
        parent_layout.addWidget(group)
        layout = QVBoxLayout(group)
        layout.setSpacing(6)

        top_row = QHBoxLayout()
        self.template_combo = QComboBox()
        self.template_combo.activated.connect(self._on_template_chosen)
        top_row.addWidget(self.template_combo, stretch=1)
        open_btn = QPushButton("Open File")
        open_btn.clicked.connect(self.pick_template)
        top_row.addWidget(open_btn)
        layout.addLayout(top_row)

        action_row = QHBoxLayout()
        new_btn = QPushButton("New From Image")
        new_btn.clicked.connect(self.pick_base_image)
        action_row.addWidget(new_btn)
        self.save_button = QPushButton("Save Template")
        self.save_button.clicked.connect(self.save_current_template)
        action_row.addWidget(self.save_button)
        action_row.addStretch(1)
        layout.addLayout(action_row)

        form = QFormLayout()
        form.setHorizontalSpacing(10)
        form.setVerticalSpacing(6)
        self.template_name_input = QLineEdit()
        self.template_name_input.setPlaceholderText("Template name")
        form.addRow("Name", self.template_name_input)
        self.base_path_edit = QLineEdit()
        self.base_path_edit.setReadOnly(True)
        self.base_path_edit.setPlaceholderText("Base image")
        form.addRow("Base Image", self.base_path_edit)
        layout.addLayout(form)

    def _build_rect_form(self, form: QFormLayout, target: str) -> dict[str, QDoubleSpinBox]:
        spins: dict[str, QDoubleSpinBox] = {}
        for name in RECT_FIELDS:
            spin = percent_spin(5.0 if name in {"width", "height"} else 0.0)
            spin.valueChanged.connect(lambda _value, t=target: self._on_rect_spin_changed(t))
            spins[name] = spin
            form.addRow(name.capitalize(), spin)

        quick_row = QHBoxLayout()
        for action, label in QUICK_BUTTONS:
            button = QPushButton(label)
            button.clicked.connect(lambda _checked=False, t=target, a=action: self._quick_position(t, a))
            quick_row.addWidget(button)
        quick_wrap = QWidget()
        quick_wrap.setLayout(quick_row)
        form.addRow("Quick", quick_wrap)
        return spins

    def _build_image_slot_group(self, parent_layout: QVBoxLayout) -> None:
        self.image_group = QGroupBox("Photo Slot")
        parent_layout.addWidget(self.image_group)
        form = QFormLayout(self.image_group)
        form.setHorizontalSpacing(10)
        form.setVerticalSpacing(6)

        self.shape_combo = QComboBox()
        self.shape_combo.addItems([SHAPE_RECTANGLE, SHAPE_ELLIPSE])
        self.shape_combo.currentTextChanged.connect(self._on_shape_changed)
        form.addRow("Shape", self.shape_combo)
        self.image_spins = self._build_rect_form(form, TARGET_IMAGE)

    def _build_text_slot_group(self, parent_layout: QVBoxLayout) -> None:
        self.text_group = QGroupBox("Name Field")
        parent_layout.addWidget(self.text_group)
        layout = QVBoxLayout(self.text_group)

        self.text_toggle_button = QPushButton("Add Name Field")
        self.text_toggle_button.clicked.connect(self._toggle_text_slot)
        layout.addWidget(self.text_toggle_button)

        self.text_form_widget = QWidget()
        form = QFormLayout(self.text_form_widget)
        form.setContentsMargins(0, 0, 0, 0)
        form.setHorizontalSpacing(10)
        form.setVerticalSpacing(6)
        self.text_spins = self._build_rect_form(form, TARGET_TEXT)

        color_row = QWidget()
        color_layout = QHBoxLayout(color_row)
        color_layout.setContentsMargins(0, 0, 0, 0)
        self.text_color_input = QLineEdit()
        self.text_color_input.editingFinished.connect(self._on_text_style_changed)
        color_layout.addWidget(self.text_color_input, stretch=1)
        pick_btn = QPushButton("Pick")
        pick_btn.setFixedWidth(56)
        pick_btn.clicked.connect(self.choose_text_color)
        color_layout.addWidget(pick_btn)
        form.addRow("Color", color_row)

        self.font_size_spin = QDoubleSpinBox()
        self.font_size_spin.setRange(4.0, 400.0)
        self.font_size_spin.setDecimals(1)
        self.font_size_spin.setSuffix(" px @800")
        self.font_size_spin.setKeyboardTracking(False)
        self.font_size_spin.valueChanged.connect(lambda _value: self._on_text_style_changed())
        form.addRow("Font Size", self.font_size_spin)

        self.align_combo = QComboBox()
        self.align_combo.addItems(list(VALID_ALIGNS))
        self.align_combo.currentTextChanged.connect(lambda _value: self._on_text_style_changed())
        form.addRow("Align", self.align_combo)

        self.font_family_input = QLineEdit()
        self.font_family_input.editingFinished.connect(self._on_text_style_changed)
        form.addRow("Font Family", self.font_family_input)

        layout.addWidget(self.text_form_widget)

    def _build_preview_group(self, parent_layout: QVBoxLayout) -> None:
        group = QGroupBox("Preview")
        parent_layout.addWidget(group)
        form = QFormLayout(group)
        form.setHorizontalSpacing(10)
        form.setVerticalSpacing(6)

        self.preview_check = QCheckBox("Show as end user sees it")
        self.preview_check.toggled.connect(self._on_preview_toggled)
        form.addRow("", self.preview_check)

        self.sample_name_input = QLineEdit(str(self.config.get("sample_name") or ""))
        self.sample_name_input.textChanged.connect(self._on_sample_name_changed)
        form.addRow("Test Name", self.sample_name_input)

        sample_row = QWidget()
        sample_layout = QHBoxLayout(sample_row)
        sample_layout.setContentsMargins(0, 0, 0, 0)
        self.sample_photo_edit = QLineEdit()
        self.sample_photo_edit.setReadOnly(True)
        sample_layout.addWidget(self.sample_photo_edit, stretch=1)
        sample_btn = QPushButton("Pick")
        sample_btn.setFixedWidth(56)
        sample_btn.clicked.connect(self.pick_sample_photo)
        sample_layout.addWidget(sample_btn)
        form.addRow("Test Photo", sample_row)

    def _build_generate_group(self, parent_layout: QVBoxLayout) -> None:
        group = QGroupBox("Generate")
        parent_layout.addWidget(group)
        layout = QVBoxLayout(group)
        hint = QLineEdit()
        hint.setReadOnly(True)
        hint.setText("Uses the test photo and test name above.")
        hint.setFrame(False)
        layout.addWidget(hint)
        self.generate_button = QPushButton("Generate PNG")
        self.generate_button.clicked.connect(self.generate_png)
        layout.addWidget(self.generate_button)

    def _setup_shortcuts(self) -> None:
        bindings = (
            (QKeySequence.StandardKey.Open, self.pick_template),
            (QKeySequence.StandardKey.Save, self.save_current_template),
            (QKeySequence("Ctrl+E"), self.generate_png),
            (QKeySequence("Ctrl+P"), self.preview_check.toggle),
        )
        for sequence, slot in bindings:
            action = QAction(self)
            action.setShortcut(sequence)
            action.triggered.connect(slot)
            self.addAction(action)

    def _apply_system_adaptive_style(self) -> None:
        palette = self.palette()
        window_color = palette.color(QPalette.ColorRole.Window)
        base_color = palette.color(QPalette.ColorRole.Base)
        text_color = palette.color(QPalette.ColorRole.Text)
        dark_mode = window_color.lightness() < 128
        border_color = window_color.lighter(135) if dark_mode else window_color.darker(130)
        canvas_bg = window_color.lighter(110) if dark_mode else window_color.darker(103)

        self.setStyleSheet(
            f"""
            QWidget {{
                font-size: 13px;
            }}
            QGroupBox {{
                border: 1px solid {border_color.name()};
                border-radius: 10px;
                margin-top: 10px;
                background: {base_color.name()};
            }}
            QGroupBox::title {{
                left: 10px;
                padding: 0 4px;
                color: {text_color.name()};
                font-weight: 600;
            }}
            QLabel#PreviewLabel {{
                border: 1px solid {border_color.name()};
                border-radius: 10px;
                background: {canvas_bg.name()};
            }}
            """
        )

    def _set_status(self, message: str) -> None:
        self.statusBar().showMessage(message)

    def _show_error(self, title: str, message: str) -> None:
        QMessageBox.critical(self, title, message)

    def _set_controls_enabled(self, enabled: bool) -> None:
        for widget in (self.image_group, self.text_group, self.save_button, self.generate_button):
            widget.setEnabled(enabled)

    # -- template lifecycle -----------------------------------------------

    def _reload_template_list(self) -> None:
        names = list_template_names(self.template_dir)
        self.template_combo.blockSignals(True)
        self.template_combo.clear()
        self.template_combo.addItems(names)
        self.template_combo.blockSignals(False)

    def _on_template_chosen(self, index: int) -> None:
        name = self.template_combo.itemText(index)
        path = find_template_path(name, self.template_dir)
        if path is not None:
            self.open_template(path)

    def open_path(self, path: Path) -> None:
        if path.suffix.lower() in TEMPLATE_SUFFIXES:
            self.open_template(path)
        else:
            self.new_from_image(path)

    def pick_template(self) -> None:
        file_path, _ = QFileDialog.getOpenFileName(self, "Open template", str(self.template_dir), TEMPLATE_FILTER)
        if file_path:
            self.open_template(Path(file_path))

    def pick_base_image(self) -> None:
        file_path, _ = QFileDialog.getOpenFileName(self, "Choose base image", "", IMAGE_FILTER)
        if file_path:
            self.new_from_image(Path(file_path))

    def open_template(self, path: Path) -> None:
        try:
            template = load_template(path, default_font_family=default_font_family(self.config))
        except (OSError, TemplateFormatError) as exc:
            self._show_error("Template Error", str(exc))
            self._set_status(f"Template load failed: {exc}")
            return
        if self._install_template(template):
            self.template_path = path
            self._set_status(f"Template: {path}")

    def new_from_image(self, path: Path) -> None:
        template = new_template(
            path.stem,
            str(path.resolve(strict=False)),
            with_text_slot=True,
            font_family=default_font_family(self.config),
        )
        if self._install_template(template):
            self.template_path = None
            self._set_status(f"New template from {path.name}. Drag the slots into place, then save.")

    def _install_template(self, template: Template) -> bool:
        try:
            base = load_image_sync(template.image_source(), timeout=request_timeout(self.config))
        except PosterStampError as exc:
            self._show_error("Base Image Error", str(exc))
            self._set_status(str(exc))
            return False

        self.template = template
        self.template_name_input.setText(template.name)
        self.base_path_edit.setText(template.image_url)
        self.engine = ManipulationEngine.from_template(template, events=self.canvas.events)
        self.engine.on_violation(self._on_violation)
        mode = MODE_PREVIEW if self.preview_check.isChecked() else MODE_EDIT
        renderer = PreviewRenderer(
            self.engine.image_slot,
            self.engine.text_slot,
            mode=mode,
            sample=PreviewSample(name=self.sample_name_input.text()),
            font_path=self.config.get("font_path"),
        )
        self.canvas.set_base_image(base)
        self.canvas.attach(self.engine, renderer)
        self._set_controls_enabled(True)
        self._sync_slot_controls(TARGET_IMAGE)
        self._sync_slot_controls(TARGET_TEXT)
        _log.info("template loaded name=%s base=%sx%s", template.name, base.width, base.height)
        return True

    def current_template(self) -> Template | None:
        if self.template is None or self.engine is None:
            return None
        template = self.engine.apply_to(self.template)
        name = self.template_name_input.text().strip()
        if name and name != template.name:
            template = replace(template, name=name)
        return template

    def save_current_template(self) -> None:
        template = self.current_template()
        if template is None:
            return
        default_path = self.template_path or (self.template_dir / f"{template.name}.json")
        file_path, _ = QFileDialog.getSaveFileName(self, "Save template", str(default_path), TEMPLATE_FILTER)
        if not file_path:
            return
        path = Path(file_path)
        if path.suffix.lower() not in TEMPLATE_SUFFIXES:
            path = path.with_suffix(".json")
        try:
            save_template(path, template)
        except OSError as exc:
            self._show_error("Save Error", str(exc))
            return
        self.template = template
        self.template_path = path
        self._reload_template_list()
        self._set_status(f"Template saved: {path}")

    # -- slot controls -----------------------------------------------------

    def _sync_slot_controls(self, target: str) -> None:
        if self.engine is None:
            return
        if target == TARGET_IMAGE:
            rect = self.engine.image_slot.rect
            for name, spin in self.image_spins.items():
                set_spin_value(spin, getattr(rect, name))
            self.shape_combo.blockSignals(True)
            self.shape_combo.setCurrentText(self.engine.image_slot.shape)
            self.shape_combo.blockSignals(False)
            return
        self._refresh_text_controls()

    def _refresh_text_controls(self) -> None:
        slot = self.engine.text_slot if self.engine is not None else None
        self.text_toggle_button.setText("Remove Name Field" if slot is not None else "Add Name Field")
        self.text_form_widget.setVisible(slot is not None)
        if slot is None:
            return
        for name, spin in self.text_spins.items():
            set_spin_value(spin, getattr(slot.rect, name))
        set_spin_value(self.font_size_spin, slot.font_size)
        for widget, value in (
            (self.text_color_input, slot.color),
            (self.font_family_input, slot.font_family),
        ):
            widget.blockSignals(True)
            widget.setText(value)
            widget.blockSignals(False)
        self.align_combo.blockSignals(True)
        self.align_combo.setCurrentText(slot.align)
        self.align_combo.blockSignals(False)

    def _on_rect_spin_changed(self, target: str) -> None:
        if self.engine is None:
            return
        spins = self.image_spins if target == TARGET_IMAGE else self.text_spins
        values = {name: spin.value() for name, spin in spins.items()}
        try:
            self.engine.set_rect(target, NormalizedRect(**values))
        except ValueError as exc:
            self._set_status(str(exc))

    def _quick_position(self, target: str, action: str) -> None:
        if self.engine is None:
            return
        try:
            self.engine.quick_position(target, action)
        except ValueError as exc:
            self._set_status(str(exc))

    def _on_shape_changed(self, shape: str) -> None:
        if self.engine is not None and shape:
            self.engine.set_shape(shape)

    def _toggle_text_slot(self) -> None:
        if self.engine is None:
            return
        if self.engine.text_slot is None:
            self.engine.add_text_slot(TextSlot(font_family=default_font_family(self.config)))
        else:
            self.engine.remove_text_slot()
        self._refresh_text_controls()

    def choose_text_color(self) -> None:
        current = QColor(self.text_color_input.text().strip() or "#000000")
        color = QColorDialog.getColor(current, self, "Pick Color")
        if color.isValid():
            self.text_color_input.setText(color.name().upper())
            self._on_text_style_changed()

    def _on_text_style_changed(self) -> None:
        if self.engine is None or self.engine.text_slot is None:
            return
        slot = self.engine.text_slot
        align = self.align_combo.currentText() or ALIGN_CENTER
        try:
            self.engine.update_text_style(
                color=safe_color(self.text_color_input.text(), slot.color),
                font_size=self.font_size_spin.value(),
                align=align,
                font_family=self.font_family_input.text().strip() or slot.font_family,
            )
        except ValueError as exc:
            self._set_status(str(exc))

    def _on_violation(self, violation: GeometryConstraintViolation) -> None:
        self._set_status(f"Adjusted to stay inside the image: {violation.describe()}")

    # -- preview -----------------------------------------------------------

    def _on_preview_toggled(self, checked: bool) -> None:
        self.canvas.set_mode(MODE_PREVIEW if checked else MODE_EDIT)
        self._set_status("Preview mode" if checked else "Edit mode")

    def _on_sample_name_changed(self, text: str) -> None:
        renderer = self.canvas.renderer
        if renderer is None:
            return
        renderer.sample.name = text
        self.canvas.refresh()

    def pick_sample_photo(self) -> None:
        file_path, _ = QFileDialog.getOpenFileName(self, "Choose test photo", "", IMAGE_FILTER)
        if not file_path:
            return
        try:
            self._load_sample_photo(Path(file_path))
        except PosterStampError as exc:
            self._show_error("Photo Error", str(exc))

    def _load_sample_photo(self, path: Path) -> None:
        photo = load_image_sync(path, timeout=request_timeout(self.config))
        self.sample_photo_path = path
        self.sample_photo_edit.setText(str(path))
        self.canvas.set_sample_photo(photo)

    def _preload_sample_photo(self) -> None:
        configured = self.config.get("sample_photo")
        if not configured:
            return
        path = Path(str(configured)).expanduser()
        try:
            self._load_sample_photo(path)
        except PosterStampError as exc:
            _log.warning("sample_photo not loaded: %s", exc)
            return
        _log.info("sample photo: %s", path)

    # -- output ------------------------------------------------------------

    def generate_png(self) -> None:
        template = self.current_template()
        if template is None:
            return
        if self.sample_photo_path is None:
            self._show_error("Generate", "Pick a test photo first.")
            return
        user_name = self.sample_name_input.text().strip()
        assets = UserAssets(photo=str(self.sample_photo_path), name=user_name)
        try:
            result = asyncio.run(generate(template, assets, config=self.config))
        except PosterStampError as exc:
            self._show_error("Generate Error", str(exc))
            self._set_status(f"Generate failed: {exc}")
            return

        output_dir = Path(str(self.config.get("output_dir") or Path.home()))
        filename = build_output_name(
            str(self.config.get("name_template") or "{name}_poster.{ext}"),
            template.name,
            user_name,
        )
        file_path, _ = QFileDialog.getSaveFileName(
            self, "Save poster", str(output_dir / filename), "PNG (*.png)"
        )
        if not file_path:
            return
        path = Path(file_path).with_suffix(".png")
        try:
            path.write_bytes(result.data)
        except OSError as exc:
            self._show_error("Export Error", str(exc))
            return
        event = build_download_event(template, user_name)
        self.template = template.with_download_recorded()
        _log.info("download %s", json.dumps(event.to_dict(), ensure_ascii=False))
        self._set_status(f"Exported {result.width}x{result.height}: {path}")


def launch_gui(startup_file: Path | None = None) -> None:
    app = QApplication.instance() or QApplication(sys.argv)
    window = PosterStampEditorWindow(startup_file=startup_file)
    window.show()
    app.exec()
