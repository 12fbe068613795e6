"""
Face Detector - Counts faces in a camera frame

Two variants share one contract, ``detect(frame) -> int``:
- PreciseDetector: OpenCV Haar cascade
- HeuristicDetector: brightness-variance fallback used when no vision model
  can be loaded
"""

import logging
from typing import Optional

import cv2
import numpy as np

from ..utils.frame_quality import brightness_stats

logger = logging.getLogger(__name__)


class PreciseDetector:
    """
    Detects faces with OpenCV's frontal-face Haar cascade.

    Any object exposing ``detect(frame) -> int`` can stand in for this class
    (e.g. a host-provided DNN adapter).
    """

    SCALE_FACTOR = 1.1
    MIN_NEIGHBORS = 5
    MIN_FACE_SIZE = (60, 60)

    def __init__(self, cascade):
        """
        Args:
            cascade: loaded cv2.CascadeClassifier
        """
        self.cascade = cascade

    @classmethod
    def load(cls) -> "PreciseDetector":
        """
        Load the cascade through the model loader.

        Raises:
            ModelLoadError: if the cascade cannot be loaded
        """
        from ..models import get_face_cascade
        return cls(get_face_cascade())

    def detect(self, frame: Optional[np.ndarray]) -> int:
        """
        Count faces in a BGR frame.

        Returns:
            Number of faces found (0 for an empty frame)
        """
        if frame is None or frame.size == 0:
            return 0

        if frame.ndim == 3:
            gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
        else:
            gray = frame

        faces = self.cascade.detectMultiScale(
            gray,
            scaleFactor=self.SCALE_FACTOR,
            minNeighbors=self.MIN_NEIGHBORS,
            minSize=self.MIN_FACE_SIZE
        )
        return len(faces)


class HeuristicDetector:
    """
    Guesses whether a person is in view from frame brightness alone.

    A frame with real content has noticeable brightness variance and is
    neither black nor blown out. Such a frame counts as one face; anything
    else counts as none. It can never report multiple faces.
    """

    MIN_VARIANCE = 100
    MIN_BRIGHTNESS = 20
    MAX_BRIGHTNESS = 235

    def detect(self, frame: Optional[np.ndarray]) -> int:
        mean, variance = brightness_stats(frame)
        has_content = variance > self.MIN_VARIANCE
        reasonable = self.MIN_BRIGHTNESS < mean < self.MAX_BRIGHTNESS
        return 1 if has_content and reasonable else 0
