from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator
import zipfile

import cv2
import numpy as np
import roifile


@dataclass(eq=False)
class Region:
    """A closed polygon outline in image pixel coordinates (x, y)."""

    points: np.ndarray
    name: str | None = None

    def __post_init__(self) -> None:
        pts = np.asarray(self.points).reshape(-1, 2)
        self.points = np.rint(pts).astype(np.int32)

    def mask(self, shape: tuple[int, int]) -> np.ndarray:
        """Rasterise the polygon (including its outline) into a boolean mask."""
        m = np.zeros(shape[:2], dtype=np.uint8)
        if len(self.points):
            cv2.fillPoly(m, [self.points.reshape(-1, 1, 2)], 1)
        return m.astype(bool)

    def bounds(self) -> tuple[int, int]:
        """Top-most, then left-most vertex; used for raster ordering."""
        top = int(self.points[:, 1].min())
        left = int(self.points[self.points[:, 1] == top, 0].min())
        return top, left


class RegionSet:
    """Ordered, editable collection of regions for one image."""

    def __init__(self, regions: Iterable[Region] = ()):
        self._regions: list[Region] = list(regions)

    def __len__(self) -> int:
        return len(self._regions)

    def __iter__(self) -> Iterator[Region]:
        return iter(self._regions)

    def __getitem__(self, idx: int) -> Region:
        return self._regions[idx]

    @property
    def count(self) -> int:
        return len(self._regions)

    def append(self, region: Region) -> None:
        self._regions.append(region)

    def remove(self, idx: int) -> Region:
        return self._regions.pop(idx)

    def move(self, src: int, dst: int) -> None:
        region = self._regions.pop(src)
        self._regions.insert(dst, region)

    def replace(self, regions: Iterable[Region]) -> None:
        self._regions = list(regions)

    def copy(self) -> "RegionSet":
        return RegionSet(Region(r.points.copy(), r.name) for r in self._regions)


def _roi_name(idx: int, region: Region) -> str:
    return region.name or f"{idx + 1:04d}"


def save_roi_zip(regions: RegionSet, path: Path) -> None:
    """Write ``regions`` as an ImageJ ROI set, preserving their order."""
    path = Path(path)
    with zipfile.ZipFile(path, "w") as zf:
        for i, region in enumerate(regions):
            name = _roi_name(i, region)
            roi = roifile.ImagejRoi.frompoints(region.points)
            roi.name = name
            zf.writestr(f"{name}.roi", roi.tobytes())


def load_roi_zip(path: Path) -> RegionSet:
    """Read an ImageJ ROI set written by :func:`save_roi_zip` (or ImageJ)."""
    out = RegionSet()
    with zipfile.ZipFile(Path(path)) as zf:
        for member in zf.namelist():
            if not member.lower().endswith(".roi"):
                continue
            roi = roifile.ImagejRoi.frombytes(zf.read(member))
            name = roi.name or Path(member).stem
            out.append(Region(roi.coordinates(), name=name))
    return out
