"""
Frame Quality Checker - Brightness statistics for presence and lighting checks
"""

import logging
from typing import Optional, Tuple

import numpy as np

from ..schemas import LightingCheck

logger = logging.getLogger(__name__)

# Average brightness (0-255) considered adequate lighting
MIN_LIGHTING_BRIGHTNESS = 50
MAX_LIGHTING_BRIGHTNESS = 200


def pixel_brightness(frame: np.ndarray) -> np.ndarray:
    """
    Per-pixel brightness as the mean of the colour channels.

    Args:
        frame: HxWx3 (or HxWx4, alpha ignored) colour frame, or HxW grayscale

    Returns:
        HxW float array of brightness values (0-255)
    """
    data = np.asarray(frame, dtype=np.float64)
    if data.ndim == 3:
        return data[:, :, :3].mean(axis=2)
    return data


def brightness_stats(frame: Optional[np.ndarray]) -> Tuple[float, float]:
    """
    Mean and variance of per-pixel brightness.

    Returns:
        (mean, variance); (0.0, 0.0) for an empty frame
    """
    if frame is None or np.asarray(frame).size == 0:
        return (0.0, 0.0)

    brightness = pixel_brightness(frame)
    return (float(brightness.mean()), float(brightness.var()))


def check_lighting(
    frame: Optional[np.ndarray],
    min_brightness: float = MIN_LIGHTING_BRIGHTNESS,
    max_brightness: float = MAX_LIGHTING_BRIGHTNESS
) -> LightingCheck:
    """Lighting is adequate when average brightness is strictly inside the range"""
    if frame is None or np.asarray(frame).size == 0:
        return LightingCheck(adequate=False, brightness=0.0)

    mean, _ = brightness_stats(frame)
    adequate = min_brightness < mean < max_brightness

    logger.debug(f"Lighting check: brightness={mean:.1f} adequate={adequate}")
    return LightingCheck(adequate=adequate, brightness=mean)
