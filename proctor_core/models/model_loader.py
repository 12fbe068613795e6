"""
Model Loader - Lazy loading and caching of vision models
"""

import os
import logging
from functools import lru_cache
from typing import Optional

from ..errors import ModelLoadError

logger = logging.getLogger(__name__)

# Default model paths (relative to this file's directory)
MODELS_DIR = os.path.join(os.path.dirname(__file__), "weights")

FACE_CASCADE_FILE = "haarcascade_frontalface_default.xml"


def _find_cascade_path() -> Optional[str]:
    import cv2

    possible_paths = [
        os.path.join(MODELS_DIR, FACE_CASCADE_FILE),
    ]
    cascade_dir = getattr(getattr(cv2, "data", None), "haarcascades", None)
    if cascade_dir:
        possible_paths.append(os.path.join(cascade_dir, FACE_CASCADE_FILE))

    for path in possible_paths:
        if os.path.exists(path):
            return path
    return None


@lru_cache(maxsize=1)
def get_face_cascade():
    """
    Get the OpenCV Haar cascade used for face counting.

    Model file: haarcascade_frontalface_default.xml (ships with opencv-python)

    Returns:
        cv2.CascadeClassifier instance

    Raises:
        ModelLoadError: if OpenCV or the cascade file is unavailable
    """
    try:
        import cv2
    except ImportError as e:
        raise ModelLoadError("OpenCV is not installed") from e

    path = _find_cascade_path()
    if path is None:
        raise ModelLoadError(
            f"{FACE_CASCADE_FILE} not found in {MODELS_DIR} or the OpenCV data directory"
        )

    cascade = cv2.CascadeClassifier(path)
    if cascade.empty():
        raise ModelLoadError(f"Haar cascade at {path} failed to load")

    logger.info(f"Loaded face cascade from: {path}")
    return cascade


def check_models() -> dict:
    """
    Check which models are available.

    Returns:
        Dict with model status
    """
    status = {"face_cascade": False}
    try:
        status["face_cascade"] = _find_cascade_path() is not None
    except ImportError as e:
        logger.warning(f"OpenCV unavailable, face cascade not checked: {e}")
    return status
