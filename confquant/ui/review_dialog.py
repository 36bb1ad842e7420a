from __future__ import annotations
import logging

import cv2
import numpy as np
import pyqtgraph as pg
from PyQt6.QtCore import pyqtSignal
from PyQt6.QtWidgets import (
    QDialog,
    QHBoxLayout,
    QLabel,
    QListWidget,
    QPushButton,
    QVBoxLayout,
)

from ..core.io_utils import display_u8
from ..core.regions import Region, RegionSet

logger = logging.getLogger(__name__)

ROI_COLOR = (255, 255, 0)
SELECTED_COLOR = (0, 255, 255)
NEW_ROI_HALF_SIZE = 10


class _EditableRegion:
    """Pairs a region with the pyqtgraph ROI that displays it."""

    def __init__(self, region: Region):
        self.region = region
        self.modified = False
        # Full-resolution outlines carry one vertex per boundary pixel; a
        # simplified copy keeps the handles usable.
        approx = cv2.approxPolyDP(region.points.reshape(-1, 1, 2), 1.0, True).reshape(-1, 2)
        if len(approx) < 3:
            approx = region.points
        self.roi = pg.PolyLineROI(
            [(float(x), float(y)) for x, y in approx], closed=True, pen=pg.mkPen(ROI_COLOR, width=1)
        )
        self.roi.sigRegionChangeFinished.connect(self._on_changed)

    def _on_changed(self, *args) -> None:
        self.modified = True

    def to_region(self) -> Region:
        if not self.modified:
            return self.region
        pos = self.roi.pos()
        pts = [
            (p.x() + pos.x(), p.y() + pos.y())
            for _, p in self.roi.getLocalHandlePositions()
        ]
        return Region(np.array(pts, dtype=np.float64), name=self.region.name)


class ReviewDialog(QDialog):
    """Non-modal cell review: delete, add, reorder or reshape ROIs.

    ``decided`` emits ``True`` for "OK - Continue" and ``False`` for
    "Cancel - Stop" or when the window is closed. On approval the
    :class:`RegionSet` passed in is updated in place.
    """

    decided = pyqtSignal(bool)

    def __init__(self, identifier: str, image: np.ndarray, regions: RegionSet, parent=None):
        super().__init__(parent)
        self.setWindowTitle(f"Cell Selection - {identifier}")
        self.setModal(False)
        self.resize(900, 700)
        self.regions = regions
        self._shape = image.shape[:2]
        self._items: list[_EditableRegion] = []
        self._decision_sent = False

        layout = QVBoxLayout(self)
        title = QLabel(f"<b>Review detected cells for: {identifier}</b>")
        layout.addWidget(title)
        self.count_label = QLabel()
        layout.addWidget(self.count_label)
        layout.addWidget(
            QLabel(
                "You can:\n"
                "• Delete unwanted ROIs from the list\n"
                "• Add new ROIs and drag their handles\n"
                "• Reorder or reshape ROIs as needed"
            )
        )

        body = QHBoxLayout()
        self.view = pg.ImageView()
        self.view.ui.roiBtn.hide()
        self.view.ui.menuBtn.hide()
        self.view.setImage(display_u8(image).T)
        body.addWidget(self.view, 1)

        side = QVBoxLayout()
        self.roi_list = QListWidget()
        self.roi_list.currentRowChanged.connect(self._highlight)
        side.addWidget(self.roi_list, 1)
        self.add_btn = QPushButton("Add ROI")
        self.add_btn.clicked.connect(self._add_roi)
        self.delete_btn = QPushButton("Delete")
        self.delete_btn.clicked.connect(self._delete_selected)
        self.up_btn = QPushButton("Move up")
        self.up_btn.clicked.connect(lambda: self._move_selected(-1))
        self.down_btn = QPushButton("Move down")
        self.down_btn.clicked.connect(lambda: self._move_selected(1))
        for btn in (self.add_btn, self.delete_btn, self.up_btn, self.down_btn):
            side.addWidget(btn)
        body.addLayout(side)
        layout.addLayout(body, 1)

        buttons = QHBoxLayout()
        self.ok_btn = QPushButton("OK - Continue")
        self.ok_btn.clicked.connect(self._approve)
        self.cancel_btn = QPushButton("Cancel - Stop")
        self.cancel_btn.setStyleSheet("color: red;")
        self.cancel_btn.clicked.connect(self._cancel)
        buttons.addStretch(1)
        buttons.addWidget(self.ok_btn)
        buttons.addWidget(self.cancel_btn)
        buttons.addStretch(1)
        layout.addLayout(buttons)

        for region in regions:
            self._append_item(_EditableRegion(region))
        self._refresh_list()

    def _append_item(self, item: _EditableRegion) -> None:
        self._items.append(item)
        self.view.addItem(item.roi)

    def _refresh_list(self) -> None:
        row = self.roi_list.currentRow()
        self.roi_list.blockSignals(True)
        self.roi_list.clear()
        for i, _ in enumerate(self._items, start=1):
            self.roi_list.addItem(f"ROI {i}")
        self.roi_list.blockSignals(False)
        if self._items:
            self.roi_list.setCurrentRow(min(max(row, 0), len(self._items) - 1))
        self.count_label.setText(f"Detected: {len(self._items)} cell(s)")

    def _highlight(self, row: int) -> None:
        for i, item in enumerate(self._items):
            if i == row:
                item.roi.setPen(pg.mkPen(SELECTED_COLOR, width=2))
            else:
                item.roi.setPen(pg.mkPen(ROI_COLOR, width=1))

    def _add_roi(self) -> None:
        h, w = self._shape
        cx, cy = w // 2, h // 2
        d = NEW_ROI_HALF_SIZE
        square = np.array(
            [(cx - d, cy - d), (cx + d, cy - d), (cx + d, cy + d), (cx - d, cy + d)]
        )
        item = _EditableRegion(Region(square))
        item.modified = True
        self._append_item(item)
        self._refresh_list()
        self.roi_list.setCurrentRow(len(self._items) - 1)
        logger.info("ROI added by user (%d total)", len(self._items))

    def _delete_selected(self) -> None:
        row = self.roi_list.currentRow()
        if row < 0 or row >= len(self._items):
            return
        item = self._items.pop(row)
        self.view.removeItem(item.roi)
        self._refresh_list()
        logger.info("ROI %d deleted by user (%d left)", row + 1, len(self._items))

    def _move_selected(self, step: int) -> None:
        row = self.roi_list.currentRow()
        dst = row + step
        if row < 0 or not 0 <= dst < len(self._items):
            return
        self._items.insert(dst, self._items.pop(row))
        self._refresh_list()
        self.roi_list.setCurrentRow(dst)

    def edited_regions(self) -> list[Region]:
        return [item.to_region() for item in self._items]

    def _send(self, proceed: bool) -> None:
        if self._decision_sent:
            return
        self._decision_sent = True
        if proceed:
            self.regions.replace(self.edited_regions())
        self.decided.emit(proceed)

    def _approve(self) -> None:
        self._send(True)
        self.accept()

    def _cancel(self) -> None:
        self.reject()

    def closeEvent(self, event):
        self._send(False)
        super().closeEvent(event)

    def reject(self):
        # Escape key and window close both end up here.
        self._send(False)
        super().reject()
