from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Protocol
import logging
import threading

import numpy as np

from ..models.records import Channel, ThresholdCache, ThresholdRange
from .errors import NoThresholdSet
from .regions import RegionSet

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_S = 0.1


@dataclass
class ReviewOutcome:
    regions: RegionSet
    proceed: bool


class Reviewer(Protocol):
    """Human decisions needed while processing a pair.

    Both calls block until the user answers.
    """

    def review_regions(
        self, identifier: str, image: np.ndarray, regions: RegionSet
    ) -> ReviewOutcome: ...

    def select_threshold(
        self, channel: Channel, identifier: str, image: np.ndarray
    ) -> ThresholdRange | None: ...


class ReviewRequest:
    """One pending question for the GUI thread.

    The GUI calls :meth:`resolve` exactly once; the worker waits for it.
    """

    def __init__(self, kind: str, identifier: str, image: np.ndarray, **extra: Any):
        self.kind = kind
        self.identifier = identifier
        self.image = image
        self.extra = extra
        self._result: Any = None
        self._done = threading.Event()

    def resolve(self, result: Any) -> None:
        if self._done.is_set():
            return
        self._result = result
        self._done.set()

    @property
    def done(self) -> bool:
        return self._done.is_set()

    @property
    def result(self) -> Any:
        return self._result

    def wait(self, timeout: float) -> bool:
        return self._done.wait(timeout)


class ReviewGate:
    """Blocks the worker thread until a :class:`ReviewRequest` is answered.

    The wait polls at ``poll_interval`` seconds so that :meth:`stop` (e.g.
    the main window closing) releases a pending gate within one interval.
    There is no timeout.
    """

    def __init__(self, poll_interval: float = DEFAULT_POLL_INTERVAL_S):
        self.poll_interval = max(float(poll_interval), 0.001)
        self._stop = threading.Event()

    def stop(self) -> None:
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def wait(self, request: ReviewRequest, abort_value: Any) -> Any:
        while not request.wait(self.poll_interval):
            if self._stop.is_set():
                logger.info("Review of %s interrupted by stop request", request.identifier)
                request.resolve(abort_value)
                return abort_value
        return request.result


def ensure_threshold(
    cache: ThresholdCache,
    channel: Channel,
    identifier: str,
    image: np.ndarray,
    reviewer: Reviewer,
) -> ThresholdRange:
    """Return the run's threshold for ``channel``, asking the user once.

    Raises
    ------
    NoThresholdSet
        If the user dismissed the dialog or picked an empty range.
    """
    rng = cache.get(channel)
    if rng is not None:
        return rng
    logger.info("Waiting for user to set threshold on %s channel (%s)...", channel, identifier)
    rng = reviewer.select_threshold(channel, identifier, image)
    if rng is None or not rng.is_valid():
        raise NoThresholdSet(
            f"No threshold set on {channel} channel. Please set a threshold and click OK."
        )
    cache.set(channel, rng)
    logger.info("Using manual %s threshold for run: min=%g, max=%g", channel, rng.min, rng.max)
    return rng
