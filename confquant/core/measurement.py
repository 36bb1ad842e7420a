from __future__ import annotations
import logging
import numpy as np

from ..models.records import MeasurementRow, RowCountMismatch, CombinedRow
from .regions import RegionSet

logger = logging.getLogger(__name__)


def measure(
    image: np.ndarray,
    regions: RegionSet,
    identifier: str,
    pixel_size: float = 1.0,
) -> list[MeasurementRow]:
    """Measure ``image`` inside every region.

    Per region this reports the calibrated area, mean pixel value,
    integrated density (area times mean), the percentage of non-zero pixels
    and the raw integrated density (sum of pixel values). Parts of a region
    outside the image are ignored; a region with no pixels inside the image
    yields zeros and NaN mean.
    """
    unit_area = float(pixel_size) ** 2
    data = image.astype(np.float64, copy=False)
    rows: list[MeasurementRow] = []
    for i, region in enumerate(regions, start=1):
        m = region.mask(image.shape)
        vals = data[m]
        n = int(vals.size)
        if n == 0:
            logger.warning("Region %d of %s lies outside the image", i, identifier)
            mean = float("nan")
            raw = 0.0
            frac = 0.0
        else:
            raw = float(vals.sum())
            mean = raw / n
            frac = 100.0 * float(np.count_nonzero(vals)) / n
        area = n * unit_area
        rows.append(
            MeasurementRow(
                identifier=identifier,
                region_index=i,
                area=area,
                mean=mean,
                integrated_density=area * mean if n else 0.0,
                area_fraction=frac,
                raw_integrated_density=raw,
            )
        )
    return rows


def join_rows(
    raw: list[MeasurementRow], thresh: list[MeasurementRow]
) -> tuple[list[CombinedRow], RowCountMismatch | None]:
    """Pair raw and thresholded rows by position.

    Only ``min(len(raw), len(thresh))`` rows are combined; differing counts
    are returned as a :class:`RowCountMismatch` instead of raising.
    """
    mismatch = None
    if len(raw) != len(thresh):
        ident = (raw or thresh)[0].identifier
        mismatch = RowCountMismatch(ident, len(raw), len(thresh))
        logger.warning(
            "Raw/Threshold row count mismatch for %s (raw=%d, thresh=%d)",
            ident, len(raw), len(thresh),
        )
    combined = [
        CombinedRow(r.identifier, i, r, t)
        for i, (r, t) in enumerate(zip(raw, thresh), start=1)
    ]
    return combined, mismatch
