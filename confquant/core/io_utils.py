from __future__ import annotations
from pathlib import Path
import logging
import numpy as np
import cv2
import tifffile

from .errors import LoadError

logger = logging.getLogger(__name__)


def imread_plane(path: Path) -> np.ndarray:
    """Read the first 2-D plane of a TIFF/STK image, keeping its dtype.

    Parameters
    ----------
    path: Path
        Image file to read. MetaMorph ``.stk`` stacks and multi-page TIFFs
        contribute only their first plane; RGB images are converted to
        grayscale.

    Raises
    ------
    LoadError
        If the file is missing or cannot be decoded.
    """
    path = Path(path)
    if not path.is_file():
        raise LoadError(f"Image not found: {path}")
    try:
        img = tifffile.imread(str(path), key=0)
    except Exception as e:
        raise LoadError(f"Failed to open {path.name}: {e}") from e
    img = np.asarray(img)
    if img.ndim == 3 and img.shape[-1] in (3, 4):
        img = cv2.cvtColor(img[..., :3], cv2.COLOR_RGB2GRAY)
    while img.ndim > 2:
        img = img[0]
    if img.ndim != 2 or img.size == 0:
        raise LoadError(f"Unsupported image shape {img.shape} in {path.name}")
    logger.debug("Loaded %s (%dx%d, %s)", path.name, img.shape[1], img.shape[0], img.dtype)
    return img


def display_u8(img: np.ndarray) -> np.ndarray:
    """Scale an image to ``uint8`` for display only."""
    if img.dtype == np.uint8:
        return img
    return cv2.normalize(img.astype(np.float32), None, 0, 255, cv2.NORM_MINMAX).astype(np.uint8)


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)
