"""
Session Lifecycle - Phases of a proctoring session and the stop latch
"""

import logging
from enum import Enum

logger = logging.getLogger(__name__)


class SessionPhase(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    INITIALIZED = "initialized"
    STARTING = "starting"
    ACTIVE = "active"
    STOPPED = "stopped"


class LatchState(str, Enum):
    LOCKED = "locked"
    UNLOCKABLE = "unlockable"


class StopLatch:
    """
    Gate on session teardown.

    The latch is armed (LOCKED) when monitoring starts. While locked, stop
    requests are ignored so a student cannot end monitoring mid-exam. Only
    the host's explicit ``allow()`` (exam submitted) moves it to UNLOCKABLE.
    """

    def __init__(self):
        self.state = LatchState.LOCKED

    @property
    def can_stop(self) -> bool:
        return self.state == LatchState.UNLOCKABLE

    def arm(self):
        self.state = LatchState.LOCKED

    def allow(self):
        if self.state != LatchState.UNLOCKABLE:
            logger.info("Stop latch released")
        self.state = LatchState.UNLOCKABLE
