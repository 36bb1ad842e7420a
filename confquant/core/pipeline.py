from __future__ import annotations
from pathlib import Path
import logging

import numpy as np

from ..models.records import ImagePairPaths, PairResult, ThresholdCache
from .errors import Aborted
from .io_utils import imread_plane
from .measurement import join_rows, measure
from .results import write_pair_artifacts
from .review import Reviewer, ensure_threshold
from .segmentation import DEFAULT_MIN_PARTICLE_SIZE, apply_mask, detect_regions

logger = logging.getLogger(__name__)


def process_pair(
    pair: ImagePairPaths,
    thresholds: ThresholdCache,
    reviewer: Reviewer,
    out_dir: Path,
    cfg: dict,
) -> PairResult:
    """Detect, review and measure one conf405/conf488 pair.

    Parameters
    ----------
    pair:
        Resolved file paths and identifier.
    thresholds:
        Run-scoped threshold cache; filled in on first use per channel.
    reviewer:
        Human decisions (threshold choice, ROI review).
    out_dir:
        Batch results folder; artifacts go to ``out_dir / pair.identifier``.
    cfg:
        Analysis settings: ``min_particle_size``, ``max_particle_size``,
        ``fill_holes``, ``pixel_size`` and ``decimals``.

    Returns
    -------
    PairResult
        Combined rows for the pair (empty when the user approved no ROIs).

    Raises
    ------
    LoadError
        Either image could not be read.
    Aborted
        The user cancelled the review (or dismissed a threshold dialog, as
        :class:`NoThresholdSet`). Nothing is written for the pair.
    """
    ident = pair.identifier
    images: dict[str, np.ndarray] = {}
    logger.info("--- Processing: %s ---", ident)
    try:
        logger.info("Opening conf405 image %s", pair.primary_path.name)
        images["primary"] = imread_plane(pair.primary_path)

        rng = ensure_threshold(thresholds, "primary", ident, images["primary"], reviewer)
        regions = detect_regions(
            images["primary"],
            rng,
            min_size=int(cfg.get("min_particle_size", DEFAULT_MIN_PARTICLE_SIZE)),
            max_size=cfg.get("max_particle_size"),
            fill=bool(cfg.get("fill_holes", True)),
        )
        logger.info("Detected %d cell(s)", len(regions))

        outcome = reviewer.review_regions(ident, images["primary"], regions)
        if not outcome.proceed:
            logger.info("Processing cancelled by user at image %s", ident)
            raise Aborted(f"Processing cancelled by user at {ident}")
        regions = outcome.regions
        images.pop("primary")

        if len(regions) == 0:
            logger.warning("No ROIs defined for %s; skipping conf488 measurements", ident)
            return PairResult(ident, 0)

        logger.info("Opening conf488 image %s", pair.secondary_path.name)
        images["secondary"] = imread_plane(pair.secondary_path)
        pixel_size = float(cfg.get("pixel_size", 1.0))

        logger.info("Measuring raw conf488 intensities...")
        raw = measure(images["secondary"], regions, ident, pixel_size)

        logger.info("Measuring thresholded conf488 intensities...")
        rng488 = ensure_threshold(thresholds, "secondary", ident, images["secondary"], reviewer)
        images["mask"] = apply_mask(images["secondary"], rng488)
        thresh = measure(images["mask"], regions, ident, pixel_size)

        combined, mismatch = join_rows(raw, thresh)
        write_pair_artifacts(
            out_dir, ident, regions, raw, thresh, decimals=int(cfg.get("decimals", 3))
        )
        logger.info("Successfully processed: %s", ident)
        return PairResult(ident, len(regions), combined, mismatch)
    finally:
        images.clear()
