from __future__ import annotations

from PIL import Image
from PyQt6.QtGui import QImage, QPixmap
from PyQt6.QtWidgets import QDoubleSpinBox

from posterstamp.constants import MAX_PCT


def pil_to_qpixmap(image: Image.Image) -> QPixmap:
    """Convert a PIL Image to a QPixmap (RGBA round-trip)."""
    rgba = image.convert("RGBA")
    data = rgba.tobytes("raw", "RGBA")
    q_image = QImage(data, rgba.width, rgba.height, QImage.Format.Format_RGBA8888)
    return QPixmap.fromImage(q_image.copy())


def percent_spin(minimum: float = 0.0) -> QDoubleSpinBox:
    spin = QDoubleSpinBox()
    spin.setRange(minimum, MAX_PCT)
    spin.setDecimals(2)
    spin.setSingleStep(0.5)
    spin.setSuffix(" %")
    spin.setKeyboardTracking(False)
    return spin


def set_spin_value(spin: QDoubleSpinBox, value: float) -> None:
    """Update a spin box without firing its valueChanged signal."""
    blocked = spin.blockSignals(True)
    try:
        spin.setValue(float(value))
    finally:
        spin.blockSignals(blocked)
