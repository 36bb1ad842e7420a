from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path
    from ..models.records import BatchRunState


class ConfQuantError(Exception):
    """Base class for errors raised while processing image pairs."""


class LoadError(ConfQuantError):
    """An image file is missing or could not be decoded."""


class Aborted(ConfQuantError):
    """The user cancelled processing at a review checkpoint."""


class NoThresholdSet(Aborted):
    """The threshold dialog was dismissed without a usable range."""


class BatchError(ConfQuantError):
    """A run-level failure that ends the whole batch.

    ``state`` holds whatever was accumulated before the failure so callers can
    still report partial results.
    """

    def __init__(
        self,
        message: str,
        state: "BatchRunState | None" = None,
        combined_path: "Path | None" = None,
    ):
        super().__init__(message)
        self.state = state
        self.combined_path = combined_path
