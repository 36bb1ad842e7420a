import os
import sys
from pathlib import Path

import pytest

pytest.importorskip("PyQt6")
pg = pytest.importorskip("pyqtgraph")
from PyQt6.QtWidgets import QApplication, QFileDialog
from PyQt6.QtCore import QSettings

pg.setConfigOptions(useOpenGL=False)

sys.path.append(str(Path(__file__).resolve().parents[1]))
from confquant.ui.main_window import MainWindow
from confquant.models.config import (
    AnalysisParams,
    SETTINGS_APP,
    SETTINGS_ORG,
    load_preset,
    load_settings,
    save_preset,
)


def _isolated_settings(tmp_path):
    os.environ["QT_QPA_PLATFORM"] = "offscreen"
    QSettings.setDefaultFormat(QSettings.Format.IniFormat)
    QSettings.setPath(QSettings.Format.IniFormat, QSettings.Scope.UserScope, str(tmp_path))
    s = QSettings(SETTINGS_ORG, SETTINGS_APP)
    s.clear()
    s.sync()


def test_settings_persist(tmp_path):
    _isolated_settings(tmp_path)
    app = QApplication.instance() or QApplication([])

    win = MainWindow()
    win.folder_edit.setText(str(tmp_path))
    win.min_size.setValue(250)
    win.max_size.setValue(5000)
    win.fill_holes_cb.setChecked(False)
    win.pixel_size.setValue(0.25)
    win.decimals.setValue(4)
    win.close()
    app.processEvents()

    win2 = MainWindow()
    assert win2.folder_edit.text() == str(tmp_path)
    assert win2.min_size.value() == 250
    assert win2.max_size.value() == 5000
    assert not win2.fill_holes_cb.isChecked()
    assert win2.pixel_size.value() == pytest.approx(0.25)
    assert win2.decimals.value() == 4
    assert win2.params.max_particle_size == 5000
    win2.close()
    app.quit()


def test_unbounded_max_size_stored_as_none(tmp_path):
    _isolated_settings(tmp_path)
    app = QApplication.instance() or QApplication([])
    win = MainWindow()
    win.max_size.setValue(0)
    win.close()
    assert load_settings().max_particle_size is None
    app.quit()


def test_corrupt_settings_fall_back_to_defaults(tmp_path):
    _isolated_settings(tmp_path)
    s = QSettings(SETTINGS_ORG, SETTINGS_APP)
    s.setValue("analysis", "{not json")
    s.sync()
    assert load_settings() == AnalysisParams()


def test_presets_path_persist(tmp_path, monkeypatch):
    _isolated_settings(tmp_path)

    preset_dir1 = tmp_path / "presets1"
    preset_dir1.mkdir()
    preset_file1 = preset_dir1 / "preset1.json"

    def fake_save(parent, caption, dir, filter):
        return str(preset_file1), "JSON (*.json)"

    monkeypatch.setattr(QFileDialog, "getSaveFileName", fake_save)

    app = QApplication.instance() or QApplication([])
    win = MainWindow()
    win.min_size.setValue(321)
    win._save_preset()
    assert win.params.presets_path == str(preset_dir1)
    assert load_preset(str(preset_file1)).min_particle_size == 321
    win.close()
    app.processEvents()

    win2 = MainWindow()
    assert win2.params.presets_path == str(preset_dir1)

    preset_dir2 = tmp_path / "presets2"
    preset_dir2.mkdir()
    preset_file2 = preset_dir2 / "preset2.json"
    save_preset(str(preset_file2), AnalysisParams(min_particle_size=42, decimals=1))

    def fake_open(parent, caption, dir, filter):
        assert dir == str(preset_dir1)
        return str(preset_file2), "JSON (*.json)"

    monkeypatch.setattr(QFileDialog, "getOpenFileName", fake_open)
    win2._load_preset()
    assert win2.min_size.value() == 42
    assert win2.decimals.value() == 1
    assert win2.params.presets_path == str(preset_dir2)
    win2.close()

    win3 = MainWindow()
    assert win3.params.presets_path == str(preset_dir2)
    win3.close()
    app.quit()


def test_preset_ignores_unknown_keys(tmp_path):
    preset = tmp_path / "preset.json"
    preset.write_text(
        '{"analysis": {"min_particle_size": 77, "fill_holes": false, "legacy_option": 3}}'
    )
    params = load_preset(str(preset))
    assert params.min_particle_size == 77
    assert params.fill_holes is False
    assert params.decimals == AnalysisParams().decimals
