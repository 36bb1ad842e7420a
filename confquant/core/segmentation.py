from __future__ import annotations
import logging
import numpy as np
import cv2
from skimage import filters

from ..models.records import ThresholdRange
from .regions import Region, RegionSet

logger = logging.getLogger(__name__)

DEFAULT_MIN_PARTICLE_SIZE = 100


def threshold_mask(image: np.ndarray, rng: ThresholdRange) -> np.ndarray:
    """Return a ``uint8`` 0/1 mask of pixels with ``min <= value <= max``."""
    return ((image >= rng.min) & (image <= rng.max)).astype(np.uint8)


def apply_mask(image: np.ndarray, rng: ThresholdRange) -> np.ndarray:
    """Convert ``image`` to a binary 0/255 mask using ``rng``.

    Measuring regions on this mask gives the "thresholded" statistics: the
    mean is 255 times the foreground fraction.
    """
    return threshold_mask(image, rng) * np.uint8(255)


def fill_holes(mask: np.ndarray) -> np.ndarray:
    """Fill background pockets fully enclosed by foreground."""
    bw = (mask > 0).astype(np.uint8)
    if not bw.any():
        return bw
    h, w = bw.shape
    # Flood the background from a one-pixel frame; anything left at zero is
    # enclosed.
    padded = np.zeros((h + 2, w + 2), dtype=np.uint8)
    padded[1:-1, 1:-1] = bw
    ff_mask = np.zeros((h + 4, w + 4), dtype=np.uint8)
    cv2.floodFill(padded, ff_mask, (0, 0), 1)
    holes = padded[1:-1, 1:-1] == 0
    bw[holes] = 1
    return bw


def suggest_threshold(image: np.ndarray) -> ThresholdRange:
    """Initial range for the threshold dialog.

    Uses the IsoData threshold with bright objects on a dark background,
    i.e. ``[t, image.max()]``. Images with a single intensity get their full
    range.
    """
    lo = float(image.min())
    hi = float(image.max())
    if np.unique(image).size < 2:
        return ThresholdRange(lo, hi)
    t = float(filters.threshold_isodata(image))
    return ThresholdRange(min(max(t, lo), hi), hi)


def detect_regions(
    image: np.ndarray,
    rng: ThresholdRange,
    min_size: int = DEFAULT_MIN_PARTICLE_SIZE,
    max_size: float | None = None,
    fill: bool = True,
) -> RegionSet:
    """Threshold ``image`` and outline each particle.

    Parameters
    ----------
    image : np.ndarray
        Grayscale image of any numeric dtype.
    rng : ThresholdRange
        Intensity range treated as foreground.
    min_size, max_size :
        Inclusive particle area limits in pixels, measured after hole
        filling. ``max_size=None`` means no upper bound.
    fill : bool
        Fill enclosed holes before particle analysis.

    Returns
    -------
    RegionSet
        One polygon per 8-connected particle, ordered by the position of
        its first pixel in raster order (top to bottom, left to right).
    """
    bw = threshold_mask(image, rng)
    if fill:
        bw = fill_holes(bw)

    num_labels, labels, stats, _ = cv2.connectedComponentsWithStats(bw, connectivity=8)
    if num_labels <= 1:
        logger.info("No particles found in range %.3f-%.3f", rng.min, rng.max)
        return RegionSet()

    upper = float("inf") if max_size is None else float(max_size)
    uniq, first_idx = np.unique(labels.ravel(), return_index=True)
    first_pixel = dict(zip(uniq.tolist(), first_idx.tolist()))

    kept: list[tuple[int, Region]] = []
    for lbl in range(1, num_labels):  # Skip background
        area = int(stats[lbl, cv2.CC_STAT_AREA])
        if area < min_size or area > upper:
            continue
        x = int(stats[lbl, cv2.CC_STAT_LEFT])
        y = int(stats[lbl, cv2.CC_STAT_TOP])
        w = int(stats[lbl, cv2.CC_STAT_WIDTH])
        h = int(stats[lbl, cv2.CC_STAT_HEIGHT])
        # Pad the crop so outlines touching the crop edge stay closed.
        crop = np.zeros((h + 2, w + 2), dtype=np.uint8)
        crop[1:-1, 1:-1] = (labels[y:y + h, x:x + w] == lbl)
        contours, _ = cv2.findContours(crop, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_NONE)
        if not contours:
            continue
        contour = max(contours, key=len).reshape(-1, 2) + np.array([x - 1, y - 1])
        kept.append((first_pixel[lbl], Region(contour)))

    kept.sort(key=lambda item: item[0])
    logger.info(
        "Detected %d particle(s) of %d component(s) with area >= %d px",
        len(kept), num_labels - 1, min_size,
    )
    return RegionSet(region for _, region in kept)
