from __future__ import annotations
from pathlib import Path
import logging
import shutil

import pandas as pd

from ..models.records import MEASUREMENT_COLUMNS, CombinedRow, MeasurementRow
from .io_utils import ensure_dir
from .regions import RegionSet, save_roi_zip

logger = logging.getLogger(__name__)

ROI_FILENAME = "ROIset.zip"
RAW_FILENAME = "Results_raw.csv"
THRESH_FILENAME = "Results_thresh.csv"
COMBINED_FILENAME = "Results_all.csv"

PAIR_COLUMNS = ["Label", "ROI", *MEASUREMENT_COLUMNS]
COMBINED_COLUMNS = [
    "Label",
    "ROI",
    *(f"Raw_{c}" for c in MEASUREMENT_COLUMNS),
    *(f"Thresh_{c}" for c in MEASUREMENT_COLUMNS),
]


def measurements_frame(rows: list[MeasurementRow]) -> pd.DataFrame:
    return pd.DataFrame([r.as_dict() for r in rows], columns=PAIR_COLUMNS)


def combined_frame(rows: list[CombinedRow]) -> pd.DataFrame:
    return pd.DataFrame([r.as_dict() for r in rows], columns=COMBINED_COLUMNS)


def _write_csv(df: pd.DataFrame, path: Path, decimals: int) -> None:
    df.to_csv(path, index=False, float_format=f"%.{int(decimals)}f", na_rep="NaN")


def pair_dir_for(out_dir: Path, identifier: str) -> Path:
    """Return ``out_dir / identifier``, refusing anything but a direct child."""
    out_dir = Path(out_dir)
    pair_dir = out_dir / identifier
    if not identifier or pair_dir.resolve().parent != out_dir.resolve():
        raise ValueError(f"Identifier {identifier!r} is not a valid results folder name")
    return pair_dir


def remove_pair_artifacts(out_dir: Path, identifier: str) -> None:
    """Delete artifacts a previous run left for ``identifier``."""
    pair_dir = pair_dir_for(out_dir, identifier)
    if pair_dir.is_dir():
        logger.info("Removing previous results for %s in %s", identifier, pair_dir)
        shutil.rmtree(pair_dir)


def write_pair_artifacts(
    out_dir: Path,
    identifier: str,
    regions: RegionSet,
    raw: list[MeasurementRow],
    thresh: list[MeasurementRow],
    decimals: int = 3,
) -> Path:
    """Write the ROI set and both measurement tables for one pair.

    All three files land in ``out_dir / identifier``. If any write fails the
    folder is removed before the error propagates so a pair never leaves a
    partial set of files behind.

    Raises
    ------
    ValueError
        ``identifier`` does not name a direct subfolder of ``out_dir``.
    """
    pair_dir = pair_dir_for(out_dir, identifier)
    ensure_dir(pair_dir)
    try:
        save_roi_zip(regions, pair_dir / ROI_FILENAME)
        _write_csv(measurements_frame(raw), pair_dir / RAW_FILENAME, decimals)
        _write_csv(measurements_frame(thresh), pair_dir / THRESH_FILENAME, decimals)
    except Exception:
        logger.error("Writing results for %s failed; removing %s", identifier, pair_dir)
        shutil.rmtree(pair_dir, ignore_errors=True)
        raise
    logger.info("Saved %d ROI(s) and measurements to %s", len(regions), pair_dir)
    return pair_dir


def write_combined(rows: list[CombinedRow], path: Path, decimals: int = 3) -> Path:
    path = Path(path)
    ensure_dir(path.parent)
    _write_csv(combined_frame(rows), path, decimals)
    logger.info("Combined results saved to: %s", path)
    return path
