from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, Optional
import math

Channel = Literal["primary", "secondary"]

MEASUREMENT_COLUMNS = ("Area", "Mean", "IntDen", "%Area", "RawIntDen")


@dataclass(frozen=True)
class ImagePairPaths:
    identifier: str
    primary_path: Path
    secondary_path: Path


@dataclass(frozen=True)
class ThresholdRange:
    min: float
    max: float

    def is_valid(self) -> bool:
        return (
            math.isfinite(self.min)
            and math.isfinite(self.max)
            and self.min <= self.max
        )


@dataclass
class ThresholdCache:
    """Threshold ranges chosen by the user during one batch run.

    Each channel is set at most once; later pairs reuse the stored range.
    """

    primary: Optional[ThresholdRange] = None
    secondary: Optional[ThresholdRange] = None

    def get(self, channel: Channel) -> Optional[ThresholdRange]:
        return getattr(self, channel)

    def set(self, channel: Channel, rng: ThresholdRange) -> None:
        if getattr(self, channel) is not None:
            raise RuntimeError(f"{channel} threshold already set for this run")
        setattr(self, channel, rng)


@dataclass(frozen=True)
class MeasurementRow:
    identifier: str
    region_index: int  # 1-based
    area: float
    mean: float
    integrated_density: float
    area_fraction: float
    raw_integrated_density: float

    def values(self) -> dict[str, float]:
        return {
            "Area": self.area,
            "Mean": self.mean,
            "IntDen": self.integrated_density,
            "%Area": self.area_fraction,
            "RawIntDen": self.raw_integrated_density,
        }

    def as_dict(self) -> dict:
        row: dict = {"Label": self.identifier, "ROI": self.region_index}
        row.update(self.values())
        return row


@dataclass(frozen=True)
class CombinedRow:
    identifier: str
    region_index: int
    raw: MeasurementRow
    thresh: MeasurementRow

    def as_dict(self) -> dict:
        row: dict = {"Label": self.identifier, "ROI": self.region_index}
        for key, val in self.raw.values().items():
            row[f"Raw_{key}"] = val
        for key, val in self.thresh.values().items():
            row[f"Thresh_{key}"] = val
        return row


@dataclass(frozen=True)
class RowCountMismatch:
    """Raw and thresholded passes returned different row counts."""

    identifier: str
    raw_count: int
    thresh_count: int


@dataclass(frozen=True)
class SkippedFile:
    name: str
    reason: str


@dataclass
class PairResult:
    identifier: str
    region_count: int
    combined_rows: list[CombinedRow] = field(default_factory=list)
    mismatch: Optional[RowCountMismatch] = None


@dataclass
class BatchRunState:
    processed_count: int = 0
    skipped_count: int = 0
    cancelled: bool = False
    combined_rows: list[CombinedRow] = field(default_factory=list)
    mismatches: list[RowCountMismatch] = field(default_factory=list)
    skipped: list[SkippedFile] = field(default_factory=list)

    def skip(self, name: str, reason: str) -> None:
        self.skipped_count += 1
        self.skipped.append(SkippedFile(name, reason))


@dataclass
class BatchSummary:
    state: BatchRunState
    out_dir: Path
    combined_path: Optional[Path] = None
    pairs_found: int = 0

    @property
    def cancelled(self) -> bool:
        return self.state.cancelled

    @property
    def title(self) -> str:
        return "Processing Cancelled" if self.cancelled else "Processing Complete"

    def message(self) -> str:
        lines = [f"Processed: {self.state.processed_count} image pair(s)"]
        if self.state.skipped_count > 0:
            lines.append(f"Skipped: {self.state.skipped_count} image pair(s)")
        if self.cancelled:
            lines.append("Stopped by user request")
        lines.append("Results saved in:")
        lines.append(str(self.out_dir))
        return "\n".join(lines)
