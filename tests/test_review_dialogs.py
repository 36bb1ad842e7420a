import os
import sys
from pathlib import Path

import numpy as np
import pytest

pytest.importorskip("PyQt6.QtWidgets")
pg = pytest.importorskip("pyqtgraph")
from PyQt6.QtCore import QSettings
from PyQt6.QtWidgets import QApplication

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
pg.setConfigOptions(useOpenGL=False)

sys.path.append(str(Path(__file__).resolve().parents[1]))
from confquant.core.review import ReviewRequest
from confquant.core.segmentation import detect_regions
from confquant.models.records import ThresholdRange
from confquant.ui.review_dialog import ReviewDialog
from confquant.ui.threshold_dialog import ThresholdDialog


def three_cells():
    img = np.zeros((60, 60), dtype=np.uint8)
    img[5:17, 5:17] = 200
    img[25:37, 25:37] = 200
    img[45:57, 40:52] = 200
    regions = detect_regions(img, ThresholdRange(100, 255), min_size=50)
    return img, regions


def test_review_delete_and_approve_updates_regions():
    app = QApplication.instance() or QApplication([])
    img, regions = three_cells()
    originals = list(regions)
    decisions = []

    dlg = ReviewDialog("1", img, regions)
    dlg.decided.connect(decisions.append)
    assert dlg.roi_list.count() == 3
    dlg.roi_list.setCurrentRow(0)
    dlg.delete_btn.click()
    assert dlg.count_label.text() == "Detected: 2 cell(s)"
    dlg.ok_btn.click()

    assert decisions == [True]
    assert len(regions) == 2
    assert list(regions) == originals[1:]
    app.quit()


def test_review_reorder():
    app = QApplication.instance() or QApplication([])
    img, regions = three_cells()
    originals = list(regions)

    dlg = ReviewDialog("1", img, regions)
    dlg.roi_list.setCurrentRow(2)
    dlg.up_btn.click()
    assert dlg.roi_list.currentRow() == 1
    dlg.ok_btn.click()

    assert list(regions) == [originals[0], originals[2], originals[1]]
    app.quit()


def test_review_added_roi_is_kept():
    app = QApplication.instance() or QApplication([])
    img, regions = three_cells()

    dlg = ReviewDialog("1", img, regions)
    dlg.add_btn.click()
    dlg.ok_btn.click()

    assert len(regions) == 4
    assert regions[3].bounds() == (20, 20)
    app.quit()


def test_review_cancel_leaves_regions_untouched():
    app = QApplication.instance() or QApplication([])
    img, regions = three_cells()
    originals = list(regions)
    decisions = []

    dlg = ReviewDialog("1", img, regions)
    dlg.decided.connect(decisions.append)
    dlg.roi_list.setCurrentRow(0)
    dlg.delete_btn.click()
    dlg.cancel_btn.click()
    # Closing afterwards must not send a second decision.
    dlg.close()

    assert decisions == [False]
    assert list(regions) == originals
    app.quit()


def test_threshold_dialog_result_only_when_accepted():
    app = QApplication.instance() or QApplication([])
    img = np.tile(np.arange(0, 200, 2, dtype=np.uint8), (20, 1))

    dlg = ThresholdDialog("secondary", "3", img)
    assert "conf488" in dlg.windowTitle()
    assert dlg.threshold_range().is_valid()
    assert dlg.result_range() is None

    dlg.min_spin.setValue(50)
    dlg.max_spin.setValue(150)
    dlg.accept()
    assert dlg.result_range() == ThresholdRange(50, 150)

    other = ThresholdDialog("primary", "3", img)
    other.reject()
    assert other.result_range() is None
    app.quit()


def test_main_window_answers_requests(tmp_path):
    QSettings.setDefaultFormat(QSettings.Format.IniFormat)
    QSettings.setPath(QSettings.Format.IniFormat, QSettings.Scope.UserScope, str(tmp_path))
    app = QApplication.instance() or QApplication([])
    from confquant.ui.main_window import MainWindow

    win = MainWindow()
    img, regions = three_cells()

    review = ReviewRequest("regions", "1", img, regions=regions)
    win._on_review_requested(review)
    dlg = win._dialogs[id(review)]
    dlg.ok_btn.click()
    assert review.done
    assert review.result.proceed
    assert review.result.regions is regions
    assert id(review) not in win._dialogs

    thresh = ReviewRequest("threshold", "1", img, channel="primary")
    win._on_threshold_requested(thresh)
    tdlg = win._dialogs[id(thresh)]
    tdlg.min_spin.setValue(100)
    tdlg.max_spin.setValue(200)
    tdlg.accept()
    assert thresh.done
    assert thresh.result == ThresholdRange(100, 200)

    pending = ReviewRequest("regions", "2", img, regions=regions)
    win._on_review_requested(pending)
    win._teardown_thread()
    # Closing an open review dialog counts as "stop".
    assert pending.done
    assert not pending.result.proceed

    win.close()
    app.quit()
