from __future__ import annotations
from pathlib import Path
from typing import Callable, Optional
import logging

from ..models.records import BatchRunState, BatchSummary, ThresholdCache
from .errors import Aborted, BatchError, LoadError
from .io_utils import ensure_dir
from .pairing import resolve_pairs
from .pipeline import process_pair
from .results import COMBINED_FILENAME, remove_pair_artifacts, write_combined
from .review import Reviewer

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]


def _write_partial(state: BatchRunState, path: Path, decimals: int) -> Optional[Path]:
    if not state.combined_rows:
        return None
    try:
        return write_combined(state.combined_rows, path, decimals)
    except OSError as e:
        logger.error("Failed to save combined results: %s", e)
        return None


def run_batch(
    folder: Path,
    reviewer: Reviewer,
    cfg: dict | None = None,
    should_stop: Callable[[], bool] | None = None,
    progress: ProgressCallback | None = None,
) -> BatchSummary:
    """Process every conf405/conf488 pair found in ``folder``.

    Pairs are handled strictly one after another. Unreadable images and
    other per-pair failures are counted as skipped; a user cancellation
    stops the loop after the current pair. Combined rows gathered so far are
    always written to ``Results/Results_all.csv`` when there are any.

    A fresh threshold cache is created for every call, so thresholds chosen
    in one run never leak into the next.

    Raises
    ------
    BatchError
        The results folder cannot be created, the input folder cannot be
        listed, or an unexpected error escapes the batch loop. The exception
        carries the partial :class:`BatchRunState` and the path of any
        partial combined table written before the failure.
    """
    cfg = dict(cfg or {})
    folder = Path(folder)
    out_dir = folder / cfg.get("results_dirname", "Results")
    combined_path = out_dir / cfg.get("combined_filename", COMBINED_FILENAME)
    decimals = int(cfg.get("decimals", 3))

    state = BatchRunState()
    thresholds = ThresholdCache()

    try:
        ensure_dir(out_dir)
        if combined_path.is_file():
            logger.info("Replacing previous combined results %s", combined_path)
            combined_path.unlink()
        pairing = resolve_pairs(folder)
    except OSError as e:
        logger.exception("Cannot prepare batch in %s", folder)
        raise BatchError(f"Cannot prepare batch in {folder}: {e}", state) from e

    for skipped in pairing.skipped:
        state.skip(skipped.name, skipped.reason)

    summary = BatchSummary(state, out_dir, pairs_found=len(pairing.pairs))
    if not pairing.pairs:
        logger.info("No conf405/conf488 pairs found in %s - stopping.", folder)
        return summary

    total = len(pairing.pairs)
    logger.info("=== Starting batch processing: %d pair(s) in %s ===", total, folder)
    try:
        for i, pair in enumerate(pairing.pairs):
            if should_stop is not None and should_stop():
                logger.info("Stop requested before %s", pair.identifier)
                state.cancelled = True
                break
            if progress is not None:
                progress(i, total, pair.identifier)
            try:
                # A skipped or empty pair must not keep files from an earlier run.
                remove_pair_artifacts(out_dir, pair.identifier)
                result = process_pair(pair, thresholds, reviewer, out_dir, cfg)
            except Aborted as e:
                logger.info("Processing stopped by user: %s", e)
                state.cancelled = True
                state.skip(pair.primary_path.name, "cancelled")
            except LoadError as e:
                logger.error("SKIPPED %s: %s", pair.identifier, e)
                state.skip(pair.primary_path.name, str(e))
            except Exception as e:
                logger.exception("ERROR processing %s", pair.identifier)
                state.skip(pair.primary_path.name, f"error: {e}")
            else:
                state.processed_count += 1
                state.combined_rows.extend(result.combined_rows)
                if result.mismatch is not None:
                    state.mismatches.append(result.mismatch)
            if state.cancelled:
                break
        if progress is not None and not state.cancelled:
            progress(total, total, "")
    except Exception as e:
        partial = _write_partial(state, combined_path, decimals)
        logger.exception("Batch aborted")
        raise BatchError(f"Batch aborted: {e}", state, partial) from e

    summary.combined_path = _write_partial(state, combined_path, decimals)

    logger.info(
        "=== Batch processing %s! ===", "cancelled" if state.cancelled else "complete"
    )
    logger.info("Processed: %d image pair(s)", state.processed_count)
    if state.skipped_count > 0:
        logger.info("Skipped: %d image pair(s)", state.skipped_count)
    logger.info("Results saved in: %s", out_dir)
    return summary
