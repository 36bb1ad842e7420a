from __future__ import annotations
import logging

import numpy as np
import pyqtgraph as pg
from PyQt6.QtWidgets import (
    QDialog,
    QDialogButtonBox,
    QDoubleSpinBox,
    QFormLayout,
    QLabel,
    QVBoxLayout,
)

from ..core.io_utils import display_u8
from ..core.segmentation import suggest_threshold, threshold_mask
from ..models.records import ThresholdRange

logger = logging.getLogger(__name__)

CHANNEL_NAMES = {"primary": "conf405", "secondary": "conf488"}
OVERLAY_RGBA = (255, 0, 0, 110)


class ThresholdDialog(QDialog):
    """Pick the intensity range used for every image of one channel."""

    def __init__(self, channel: str, identifier: str, image: np.ndarray, parent=None):
        super().__init__(parent)
        name = CHANNEL_NAMES.get(channel, channel)
        self.setWindowTitle(f"Set Threshold - {name} ({identifier})")
        self.setModal(False)
        self.resize(700, 650)
        self._image = image

        layout = QVBoxLayout(self)
        layout.addWidget(
            QLabel(
                f"Adjust the threshold on the {name} image, "
                "then click OK to use it for all images."
            )
        )

        self.view = pg.ImageView()
        self.view.ui.roiBtn.hide()
        self.view.ui.menuBtn.hide()
        self.view.setImage(display_u8(image).T)
        self.overlay = pg.ImageItem()
        self.view.addItem(self.overlay)
        layout.addWidget(self.view, 1)

        lo, hi = float(image.min()), float(image.max())
        guess = suggest_threshold(image)
        decimals = 0 if np.issubdtype(image.dtype, np.integer) else 4
        form = QFormLayout()
        self.min_spin = QDoubleSpinBox()
        self.max_spin = QDoubleSpinBox()
        for spin, val in ((self.min_spin, guess.min), (self.max_spin, guess.max)):
            spin.setDecimals(decimals)
            spin.setRange(lo, hi)
            spin.setValue(val)
            spin.valueChanged.connect(self._update_overlay)
        form.addRow("Lower", self.min_spin)
        form.addRow("Upper", self.max_spin)
        self.coverage_label = QLabel()
        form.addRow("Foreground", self.coverage_label)
        layout.addLayout(form)

        buttons = QDialogButtonBox(
            QDialogButtonBox.StandardButton.Ok | QDialogButtonBox.StandardButton.Cancel
        )
        buttons.accepted.connect(self.accept)
        buttons.rejected.connect(self.reject)
        layout.addWidget(buttons)
        self._update_overlay()

    def threshold_range(self) -> ThresholdRange:
        return ThresholdRange(self.min_spin.value(), self.max_spin.value())

    def _update_overlay(self, *args) -> None:
        rng = self.threshold_range()
        if not rng.is_valid():
            self.overlay.clear()
            self.coverage_label.setText("empty range")
            return
        mask = threshold_mask(self._image, rng).astype(bool)
        rgba = np.zeros(mask.shape + (4,), dtype=np.uint8)
        rgba[mask] = OVERLAY_RGBA
        self.overlay.setImage(rgba.transpose(1, 0, 2))
        self.coverage_label.setText(f"{100.0 * mask.mean():.1f}% of pixels")

    def result_range(self) -> ThresholdRange | None:
        """Chosen range, or ``None`` if the dialog was not accepted."""
        if self.result() != QDialog.DialogCode.Accepted:
            return None
        return self.threshold_range()
