from __future__ import annotations
from PyQt6.QtWidgets import (
    QMainWindow,
    QFileDialog,
    QMessageBox,
    QWidget,
    QVBoxLayout,
    QPushButton,
    QHBoxLayout,
    QLabel,
    QCheckBox,
    QSpinBox,
    QDoubleSpinBox,
    QGroupBox,
    QFormLayout,
    QLineEdit,
    QProgressBar,
)
from PyQt6.QtCore import QThread
from dataclasses import asdict
import logging
from pathlib import Path

from ..core.review import ReviewOutcome, ReviewRequest
from ..models.config import (
    AnalysisParams,
    save_settings,
    load_settings,
    save_preset,
    load_preset,
)
from ..models.records import BatchSummary
from ..workers.batch_worker import BatchWorker
from .log_view import LogView
from .review_dialog import ReviewDialog
from .threshold_dialog import ThresholdDialog

logger = logging.getLogger(__name__)

HELP_TEXT = (
    "Conf405/488 Analysis\n\n"
    "Expected File Format:\n"
    "- conf405-1.tif, conf488-1.tif\n"
    "- conf405-2.tif, conf488-2.tif\n"
    "- etc. (.tif, .tiff or .stk; 'conf 405' and 'conf488 -' also accepted)\n\n"
    "Workflow:\n"
    "1. Select folder containing image pairs\n"
    "2. Set the conf405 threshold once; cells are detected in every conf405 image\n"
    "3. Review and adjust ROIs for each image\n"
    "4. Set the conf488 threshold once; raw and thresholded conf488 are measured\n\n"
    "Output (in <folder>/Results):\n"
    "- Results_all.csv (combined conf488 raw + threshold)\n"
    "- <id>/ROIset.zip (saved ROIs, ImageJ format)\n"
    "- <id>/Results_raw.csv, <id>/Results_thresh.csv"
)


class MainWindow(QMainWindow):
    def __init__(self):
        super().__init__()
        self.setWindowTitle("Conf405/488 Analysis Tool")
        self.resize(520, 640)
        self.params = load_settings()
        self.thread: QThread | None = None
        self.worker: BatchWorker | None = None
        # Open review/threshold dialogs keyed by id(request)
        self._dialogs: dict[int, object] = {}
        self._build_ui()

    def _build_ui(self):
        central = QWidget()
        self.setCentralWidget(central)
        layout = QVBoxLayout(central)

        title = QLabel("<b>Automated Conf405/488 Analysis</b>")
        layout.addWidget(title)
        layout.addWidget(
            QLabel("Process image pairs with cell detection and intensity measurements")
        )

        # Folder
        folder_box = QHBoxLayout()
        self.folder_edit = QLineEdit()
        if self.params.last_folder:
            self.folder_edit.setText(self.params.last_folder)
        browse_btn = QPushButton("Browse…")
        browse_btn.clicked.connect(self._choose_folder)
        folder_box.addWidget(self.folder_edit)
        folder_box.addWidget(browse_btn)
        layout.addLayout(folder_box)
        self.folder_edit.textChanged.connect(self._persist_settings)

        # Detection / measurement parameters
        group = QGroupBox("Parameters")
        form = QFormLayout(group)
        self.min_size = QSpinBox()
        self.min_size.setRange(0, 10_000_000)
        self.min_size.setValue(self.params.min_particle_size)
        self.max_size = QSpinBox()
        self.max_size.setRange(0, 100_000_000)
        self.max_size.setSpecialValueText("Infinity")
        self.max_size.setValue(self.params.max_particle_size or 0)
        self.fill_holes_cb = QCheckBox("Fill holes before particle analysis")
        self.fill_holes_cb.setChecked(self.params.fill_holes)
        self.pixel_size = QDoubleSpinBox()
        self.pixel_size.setDecimals(4)
        self.pixel_size.setRange(0.0001, 1000.0)
        self.pixel_size.setValue(self.params.pixel_size)
        self.decimals = QSpinBox()
        self.decimals.setRange(0, 9)
        self.decimals.setValue(self.params.decimals)
        form.addRow("Min particle size (px)", self.min_size)
        form.addRow("Max particle size (px)", self.max_size)
        form.addRow(self.fill_holes_cb)
        form.addRow("Pixel size", self.pixel_size)
        form.addRow("Decimal places", self.decimals)
        layout.addWidget(group)
        for w in (self.min_size, self.max_size, self.decimals):
            w.valueChanged.connect(self._persist_settings)
        self.pixel_size.valueChanged.connect(self._persist_settings)
        self.fill_holes_cb.toggled.connect(self._persist_settings)

        preset_box = QHBoxLayout()
        save_preset_btn = QPushButton("Save Preset")
        save_preset_btn.clicked.connect(self._save_preset)
        load_preset_btn = QPushButton("Load Preset")
        load_preset_btn.clicked.connect(self._load_preset)
        preset_box.addWidget(save_preset_btn)
        preset_box.addWidget(load_preset_btn)
        layout.addLayout(preset_box)

        run_box = QHBoxLayout()
        self.run_btn = QPushButton("Run Conf405/488 Analysis")
        self.run_btn.clicked.connect(self._run_pipeline)
        self.stop_btn = QPushButton("Stop")
        self.stop_btn.setEnabled(False)
        self.stop_btn.clicked.connect(self._stop_pipeline)
        help_btn = QPushButton("About / Help")
        help_btn.clicked.connect(self._show_help)
        run_box.addWidget(self.run_btn)
        run_box.addWidget(self.stop_btn)
        run_box.addWidget(help_btn)
        layout.addLayout(run_box)

        self.progress = QProgressBar()
        self.progress.setRange(0, 1)
        self.progress.setValue(0)
        layout.addWidget(self.progress)
        self.status_label = QLabel("Ready")
        layout.addWidget(self.status_label)

        self.log_view = LogView(self)
        layout.addWidget(self.log_view, 1)
        logger.info("UI build complete")

    def _show_help(self):
        QMessageBox.information(self, "About Conf405/488 Analysis", HELP_TEXT)

    def _choose_folder(self):
        logger.info("Browse button clicked")
        d = QFileDialog.getExistingDirectory(
            self, "Choose a Directory with your images", self.folder_edit.text()
        )
        if d:
            logger.info("Folder selected: %s", d)
            self.folder_edit.setText(d)
        else:
            logger.info("Folder selection canceled")

    def _collect_params(self) -> AnalysisParams:
        params = AnalysisParams(
            min_particle_size=self.min_size.value(),
            max_particle_size=self.max_size.value() or None,
            fill_holes=self.fill_holes_cb.isChecked(),
            pixel_size=self.pixel_size.value(),
            decimals=self.decimals.value(),
            poll_interval_s=self.params.poll_interval_s,
            results_dirname=self.params.results_dirname,
            combined_filename=self.params.combined_filename,
        )
        params.presets_path = self.params.presets_path
        return params

    def _apply_params(self, params: AnalysisParams) -> None:
        self.min_size.setValue(params.min_particle_size)
        self.max_size.setValue(params.max_particle_size or 0)
        self.fill_holes_cb.setChecked(params.fill_holes)
        self.pixel_size.setValue(params.pixel_size)
        self.decimals.setValue(params.decimals)

    def _persist_settings(self, *args) -> AnalysisParams:
        """Collect current UI state and save via QSettings."""
        params = self._collect_params()
        params.last_folder = self.folder_edit.text() or self.params.last_folder
        self.params = params
        save_settings(params)
        return params

    def _save_preset(self):
        params = self._persist_settings()
        initial = (
            str(Path(params.presets_path) / "preset.json")
            if params.presets_path
            else "preset.json"
        )
        path, _ = QFileDialog.getSaveFileName(self, "Save Preset", initial, "JSON (*.json)")
        if path:
            self.params.presets_path = str(Path(path).parent)
            save_preset(path, self.params)
            save_settings(self.params)
            logger.info("Preset saved: %s", path)

    def _load_preset(self):
        path, _ = QFileDialog.getOpenFileName(
            self, "Load Preset", self.params.presets_path or "", "JSON (*.json)"
        )
        if not path:
            return
        try:
            params = load_preset(path)
        except (OSError, ValueError) as e:
            QMessageBox.warning(self, "Preset", f"Could not load preset:\n{e}")
            return
        self._apply_params(params)
        self.params.presets_path = str(Path(path).parent)
        self._persist_settings()
        logger.info("Preset loaded: %s", path)

    def _is_running(self) -> bool:
        return self.thread is not None and self.thread.isRunning()

    def _run_pipeline(self):
        if self._is_running():
            return
        folder = self.folder_edit.text().strip()
        if not folder or not Path(folder).is_dir():
            QMessageBox.warning(self, "No folder", "Choose an image folder first.")
            return
        params = self._persist_settings()
        cfg = asdict(params)
        logger.info(
            "Run Analysis clicked: folder=%s min_size=%d", folder, params.min_particle_size
        )

        self.thread = QThread()
        self.worker = BatchWorker(Path(folder), cfg)
        self.worker.moveToThread(self.thread)
        self.thread.started.connect(self.worker.run)
        self.thread.started.connect(lambda: logger.info("Batch thread started"))
        self.worker.progressed.connect(self._on_progress)
        self.worker.review_requested.connect(self._on_review_requested)
        self.worker.threshold_requested.connect(self._on_threshold_requested)
        self.worker.finished.connect(self._on_done)
        self.worker.failed.connect(self._on_failed)
        self.run_btn.setEnabled(False)
        self.stop_btn.setEnabled(True)
        self.thread.start()
        self.status_label.setText("Processing…")

    def _stop_pipeline(self):
        if self.worker is not None:
            self.worker.request_stop()
        self.status_label.setText("Stopping…")

    def _on_progress(self, current: int, total: int, identifier: str):
        self.progress.setRange(0, max(total, 1))
        self.progress.setValue(current)
        if identifier:
            self.status_label.setText(f"Processing {identifier} ({current + 1}/{total})")

    def _on_review_requested(self, req: ReviewRequest):
        regions = req.extra["regions"]
        dlg = ReviewDialog(req.identifier, req.image, regions, self)
        self._dialogs[id(req)] = dlg

        def decided(proceed: bool) -> None:
            self._dialogs.pop(id(req), None)
            req.resolve(ReviewOutcome(regions, proceed))

        dlg.decided.connect(decided)
        dlg.show()
        dlg.raise_()

    def _on_threshold_requested(self, req: ReviewRequest):
        dlg = ThresholdDialog(req.extra["channel"], req.identifier, req.image, self)
        self._dialogs[id(req)] = dlg

        def done(_code: int) -> None:
            self._dialogs.pop(id(req), None)
            req.resolve(dlg.result_range())

        dlg.finished.connect(done)
        dlg.show()
        dlg.raise_()

    def _teardown_thread(self):
        for dlg in list(self._dialogs.values()):
            dlg.close()
        self._dialogs.clear()
        if self.thread is not None:
            self.thread.quit()
            self.thread.wait()
        self.run_btn.setEnabled(True)
        self.stop_btn.setEnabled(False)

    def _on_done(self, summary: BatchSummary):
        logger.info("Batch thread finished: %s", summary.out_dir)
        self._teardown_thread()
        if summary.pairs_found == 0 and summary.state.processed_count == 0:
            QMessageBox.information(
                self,
                "No Images Found",
                "No conf405/conf488 image pairs found in the selected directory.\n\n"
                "Expected format: conf405-1.tif, conf488-1.tif, etc.",
            )
            self.status_label.setText("No image pairs found")
            return
        self.status_label.setText(
            f"{summary.title}. Outputs: {summary.out_dir}"
        )
        QMessageBox.information(self, summary.title, summary.message())

    def _on_failed(self, err: str):
        logger.error("Batch thread failed: %s", err)
        self._teardown_thread()
        QMessageBox.critical(self, "Fatal Error", f"A fatal error occurred:\n{err}")
        self.status_label.setText(f"Failed: {err}")

    def closeEvent(self, event):
        """Stop a running batch and persist settings when the window closes."""
        if self.worker is not None and self._is_running():
            self.worker.finished.disconnect()
            self.worker.failed.disconnect()
            self.worker.request_stop()
            self._teardown_thread()
        self._persist_settings()
        self.log_view.detach()
        super().closeEvent(event)
