from __future__ import annotations
import logging
from pathlib import Path

import numpy as np
from PyQt6.QtCore import QObject, pyqtSignal

from ..core.batch import run_batch
from ..core.errors import BatchError
from ..core.regions import RegionSet
from ..core.review import DEFAULT_POLL_INTERVAL_S, ReviewGate, ReviewOutcome, ReviewRequest
from ..models.records import Channel, ThresholdRange

logger = logging.getLogger(__name__)


class BatchWorker(QObject):
    """Runs a batch on a worker thread and asks the GUI for review decisions.

    The worker acts as the batch's reviewer: each question is posted to the
    GUI thread as a :class:`ReviewRequest` via ``review_requested`` or
    ``threshold_requested`` and the worker waits on it through a
    :class:`ReviewGate`.
    """

    progressed = pyqtSignal(int, int, str)  # current, total, identifier
    review_requested = pyqtSignal(object)    # ReviewRequest(kind="regions")
    threshold_requested = pyqtSignal(object)  # ReviewRequest(kind="threshold")
    finished = pyqtSignal(object)             # BatchSummary
    failed = pyqtSignal(str)

    def __init__(self, folder: Path, cfg: dict):
        super().__init__()
        self.folder = Path(folder)
        self.cfg = cfg
        self.gate = ReviewGate(cfg.get("poll_interval_s", DEFAULT_POLL_INTERVAL_S))

    def request_stop(self) -> None:
        logger.info("Stop requested")
        self.gate.stop()

    def review_regions(
        self, identifier: str, image: np.ndarray, regions: RegionSet
    ) -> ReviewOutcome:
        req = ReviewRequest("regions", identifier, image, regions=regions)
        self.review_requested.emit(req)
        return self.gate.wait(req, ReviewOutcome(regions, False))

    def select_threshold(
        self, channel: Channel, identifier: str, image: np.ndarray
    ) -> ThresholdRange | None:
        req = ReviewRequest("threshold", identifier, image, channel=channel)
        self.threshold_requested.emit(req)
        return self.gate.wait(req, None)

    def run(self):
        try:
            logger.info("Starting batch for %s", self.folder)
            summary = run_batch(
                self.folder,
                self,
                self.cfg,
                should_stop=lambda: self.gate.stopped,
                progress=self.progressed.emit,
            )
            self.finished.emit(summary)
            logger.info("Batch finished: %s", summary.out_dir)
        except BatchError as e:
            msg = str(e)
            if e.combined_path is not None:
                msg += f"\nPartial results saved to:\n{e.combined_path}"
            self.failed.emit(msg)
        except Exception as e:
            logger.exception("Processing failed")
            self.failed.emit(str(e))
