"""Utility modules"""

from .frame_quality import brightness_stats, check_lighting
from .listeners import ListenerRegistry
from .logging import log_proctor_event
from .logging_config import setup_logging
from .timers import IntervalTimer

__all__ = [
    "brightness_stats",
    "check_lighting",
    "ListenerRegistry",
    "log_proctor_event",
    "setup_logging",
    "IntervalTimer"
]
