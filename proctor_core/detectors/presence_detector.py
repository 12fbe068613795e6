"""
Presence Detector - Watches the camera for a missing or extra person

Polls one frame per tick, counts faces and debounces the count:
- no face for longer than 3 s    -> high face_not_detected
- 2+ faces for longer than 2 s   -> high multiple_faces
- exactly one face clears both timers
"""

import asyncio
import logging
from typing import Any, Callable, Optional

import numpy as np

from ..config import ProctorSettings, settings as default_settings
from ..environment import HostEnvironment, VideoElement
from ..schemas import LightingCheck, Severity, ViolationEvent, ViolationType
from ..utils.frame_quality import check_lighting
from ..utils.logging import log_capability_degraded
from ..utils.timers import IntervalTimer
from .face_detector import HeuristicDetector, PreciseDetector

logger = logging.getLogger(__name__)

ViolationCallback = Callable[[ViolationEvent], None]


class PresenceDetector:
    """
    Face/person presence monitoring on top of a playing video element.

    The precise vision model is loaded in ``initialize()``. When it cannot
    be loaded the detector keeps working with the brightness heuristic and
    reports the degradation once.
    """

    NO_FACE_THRESHOLD_MS = 3000
    MULTIPLE_FACES_THRESHOLD_MS = 2000

    def __init__(
        self,
        video: VideoElement,
        on_violation: ViolationCallback,
        environment: HostEnvironment,
        settings: Optional[ProctorSettings] = None,
        loader: Callable[[], Any] = PreciseDetector.load,
        session_id: str = ""
    ):
        """
        Args:
            video: Video element bound to the camera stream
            on_violation: Callback receiving every violation
            environment: Host environment (clock)
            settings: Runtime settings (poll interval)
            loader: Zero-arg callable returning a precise detector;
                    runs in a worker thread
            session_id: Session ID for log lines
        """
        self.video = video
        self.on_violation = on_violation
        self.environment = environment
        self.settings = settings or default_settings
        self.loader = loader
        self.session_id = session_id

        self._precise: Optional[Any] = None
        self._heuristic = HeuristicDetector()
        self._timer: Optional[IntervalTimer] = None

        self.last_face_count = 0
        self._no_face_since: Optional[int] = None
        self._multiple_faces_since: Optional[int] = None

    @property
    def is_model_loaded(self) -> bool:
        return self._precise is not None

    @property
    def is_running(self) -> bool:
        return self._timer is not None and self._timer.running

    async def initialize(self):
        """Load the precise detector, falling back to the heuristic on failure"""
        if self._precise is not None:
            return

        try:
            self._precise = await asyncio.to_thread(self.loader)
            logger.info("Face detection model loaded")
        except Exception as e:
            self._precise = None
            logger.error(f"Failed to load face detection model: {e}")
            log_capability_degraded(self.session_id, "face_detection", str(e))
            self.on_violation(ViolationEvent(
                type=ViolationType.SUSPICIOUS_MOVEMENT,
                timestamp=self.environment.now_ms(),
                severity=Severity.MEDIUM,
                description="Face detection model unavailable; using fallback presence check",
                data={"error": str(e)}
            ))

    def start(self):
        if self.is_running:
            return

        self._timer = IntervalTimer(
            self.settings.PRESENCE_POLL_INTERVAL,
            self.poll_once,
            name="presence-poll"
        )
        self._timer.start()
        logger.info("Presence detection started")

    def stop(self):
        if self._timer is None:
            return

        self._timer.cancel()
        self._timer = None
        self._no_face_since = None
        self._multiple_faces_since = None
        logger.info("Presence detection stopped")

    def _capture(self) -> Optional[np.ndarray]:
        if not self.video.ready:
            return None
        try:
            return self.video.capture_frame()
        except Exception as e:
            logger.warning(f"Frame capture failed: {e}")
            return None

    def _count_faces(self, frame: Optional[np.ndarray]) -> int:
        if frame is None:
            return 0

        if self._precise is not None:
            try:
                return int(self._precise.detect(frame))
            except Exception as e:
                logger.warning(f"Face detection failed, falling back to heuristic: {e}")

        return self._heuristic.detect(frame)

    def poll_once(self):
        """One detection tick: capture, count, debounce. Skipped when no frame is available."""
        frame = self._capture()
        if frame is None:
            return
        self.handle_face_count(self._count_faces(frame))

    def handle_face_count(self, face_count: int):
        """
        Feed one face count through the debounce timers.

        Args:
            face_count: Faces seen in the current frame
        """
        now = self.environment.now_ms()

        if face_count == 0:
            if self._no_face_since is None:
                self._no_face_since = now
            elif now - self._no_face_since > self.NO_FACE_THRESHOLD_MS:
                self.on_violation(ViolationEvent(
                    type=ViolationType.FACE_NOT_DETECTED,
                    timestamp=now,
                    severity=Severity.HIGH,
                    description="Student face not visible in camera",
                    data={"duration": now - self._no_face_since}
                ))
                self._no_face_since = now
            self._multiple_faces_since = None

        elif face_count > 1:
            if self._multiple_faces_since is None:
                self._multiple_faces_since = now
            elif now - self._multiple_faces_since > self.MULTIPLE_FACES_THRESHOLD_MS:
                self.on_violation(ViolationEvent(
                    type=ViolationType.MULTIPLE_FACES,
                    timestamp=now,
                    severity=Severity.HIGH,
                    description=f"Multiple people detected in camera ({face_count} faces)",
                    data={"face_count": face_count, "duration": now - self._multiple_faces_since}
                ))
                self._multiple_faces_since = now
            self._no_face_since = None

        else:
            self._no_face_since = None
            self._multiple_faces_since = None

        self.last_face_count = face_count

    async def detect_faces(self) -> int:
        """Count faces in the current frame (environment scan probe)"""
        frame = self._capture()
        if frame is None:
            return self.last_face_count
        return self._count_faces(frame)

    async def check_lighting(self) -> LightingCheck:
        """Average brightness of the current frame; adequate when 50 < b < 200"""
        return check_lighting(self._capture())
