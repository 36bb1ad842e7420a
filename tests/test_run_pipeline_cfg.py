import logging
import os
import sys
from pathlib import Path

import pytest

pytest.importorskip("PyQt6")
pytest.importorskip("pyqtgraph")
from PyQt6.QtCore import QSettings
from PyQt6.QtWidgets import QApplication, QMessageBox


def _window(tmp_path):
    os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
    QSettings.setDefaultFormat(QSettings.Format.IniFormat)
    QSettings.setPath(QSettings.Format.IniFormat, QSettings.Scope.UserScope, str(tmp_path / "cfg"))
    sys.path.append(str(Path(__file__).resolve().parents[1]))
    app = QApplication.instance() or QApplication([])

    from confquant.ui.main_window import MainWindow

    return app, MainWindow()


class DummySignal:
    def connect(self, *args, **kwargs):
        pass


class DummyThread:
    def __init__(self):
        self.started = DummySignal()

    def start(self):
        pass

    def isRunning(self):
        return False

    def quit(self):
        pass

    def wait(self):
        pass


def test_run_pipeline_passes_analysis_params(tmp_path, monkeypatch, caplog):
    """The worker receives the folder and the parameters shown in the UI."""
    app, win = _window(tmp_path)
    win.folder_edit.setText(str(tmp_path))
    win.min_size.setValue(150)
    win.max_size.setValue(0)
    win.fill_holes_cb.setChecked(False)
    win.pixel_size.setValue(0.5)

    captured = {}

    class DummyWorker:
        progressed = DummySignal()
        review_requested = DummySignal()
        threshold_requested = DummySignal()
        finished = DummySignal()
        failed = DummySignal()

        def __init__(self, folder, cfg):
            captured["folder"] = folder
            captured["cfg"] = cfg

        def moveToThread(self, thread):
            pass

        def run(self):
            pass

    monkeypatch.setattr("confquant.ui.main_window.QThread", DummyThread)
    monkeypatch.setattr("confquant.ui.main_window.BatchWorker", DummyWorker)

    with caplog.at_level(logging.INFO):
        win._run_pipeline()

    assert captured["folder"] == tmp_path
    cfg = captured["cfg"]
    assert cfg["min_particle_size"] == 150
    assert cfg["max_particle_size"] is None
    assert cfg["fill_holes"] is False
    assert cfg["pixel_size"] == pytest.approx(0.5)
    assert cfg["results_dirname"] == "Results"
    assert "Run Analysis clicked" in caplog.text
    assert not win.run_btn.isEnabled()
    assert win.stop_btn.isEnabled()

    win.worker = None
    win.close()
    app.quit()


def test_run_pipeline_requires_folder(tmp_path, monkeypatch):
    app, win = _window(tmp_path)
    win.folder_edit.setText(str(tmp_path / "missing"))
    warned = []
    monkeypatch.setattr(QMessageBox, "warning", lambda *a, **k: warned.append(a[1]))

    win._run_pipeline()

    assert warned == ["No folder"]
    assert win.thread is None
    assert win.run_btn.isEnabled()
    win.close()
    app.quit()


def test_empty_folder_reports_no_images(tmp_path, monkeypatch):
    from confquant.core.batch import run_batch

    app, win = _window(tmp_path)
    shown = []
    monkeypatch.setattr(QMessageBox, "information", lambda *a, **k: shown.append(a[1]))

    summary = run_batch(tmp_path, reviewer=None)
    win._on_done(summary)

    assert shown == ["No Images Found"]
    assert win.status_label.text() == "No image pairs found"
    win.close()
    app.quit()


def test_failed_batch_shows_fatal_error(tmp_path, monkeypatch):
    app, win = _window(tmp_path)
    shown = []
    monkeypatch.setattr(QMessageBox, "critical", lambda *a, **k: shown.append((a[1], a[2])))

    win._on_failed("Batch aborted: disk gone")

    assert shown[0][0] == "Fatal Error"
    assert "disk gone" in shown[0][1]
    assert win.run_btn.isEnabled()
    win.close()
    app.quit()
