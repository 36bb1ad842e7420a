from __future__ import annotations
from dataclasses import dataclass, asdict, fields
from typing import Optional, Dict, Any
import json
from PyQt6.QtCore import QSettings

SETTINGS_ORG = "ConfQuant"
SETTINGS_APP = "Conf405_488"


@dataclass
class AnalysisParams:
    min_particle_size: int = 100  # px, inclusive
    max_particle_size: Optional[int] = None  # None = no upper bound
    fill_holes: bool = True
    pixel_size: float = 1.0  # calibrated units per pixel
    decimals: int = 3
    poll_interval_s: float = 0.1  # review dialog polling
    results_dirname: str = "Results"
    combined_filename: str = "Results_all.csv"
    last_folder: Optional[str] = None
    presets_path: Optional[str] = None


def _from_dict(data: Dict[str, Any]) -> AnalysisParams:
    # Tolerate presets written by older or newer versions.
    known = {f.name for f in fields(AnalysisParams)}
    return AnalysisParams(**{k: v for k, v in data.items() if k in known})


def save_preset(path: str, params: AnalysisParams) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump({"analysis": asdict(params)}, f, indent=2)


def load_preset(path: str) -> AnalysisParams:
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return _from_dict(data.get("analysis", {}))


def save_settings(params: AnalysisParams) -> None:
    s = QSettings(SETTINGS_ORG, SETTINGS_APP)
    s.setValue("analysis", json.dumps(asdict(params)))
    s.sync()


def load_settings() -> AnalysisParams:
    s = QSettings(SETTINGS_ORG, SETTINGS_APP)
    v = s.value("analysis")
    if v is None:
        return AnalysisParams()
    try:
        return _from_dict(json.loads(v))
    except (TypeError, ValueError):
        return AnalysisParams()
