"""
Proctoring Manager - Runs one proctored exam session

Owns the session state, composes the sensors, keeps the violation ledger
and the live risk score, and is the only surface the host talks to.
"""

import asyncio
import inspect
import logging
import uuid
from typing import Any, Awaitable, Callable, Iterable, List, Mapping, Optional, Union

from .config import ProctoringConfig, ProctorSettings, settings as default_settings
from .detectors import ActivityMonitor, LockdownController, PresenceDetector, PreciseDetector, ViolationAnalyzer
from .environment import HostEnvironment, MediaError, MediaStream, VideoElement
from .errors import (
    DeviceAccessError,
    DeviceError,
    DeviceNotFoundError,
    SessionStateError,
    StreamTimeoutError
)
from .lifecycle import SessionPhase, StopLatch
from .metrics import ViolationLedger
from .schemas import (
    EnvironmentScanResult,
    FingerprintCheck,
    ProctoringState,
    ProctoringSummary,
    QuestionTiming,
    Severity,
    ViolationEvent,
    ViolationType
)
from .scoring import ReviewPolicy, RiskScorer
from .utils.logging import (
    log_capability_degraded,
    log_session_end,
    log_session_start,
    log_stop_prevented,
    log_violation_recorded
)
from .utils.timers import IntervalTimer

logger = logging.getLogger(__name__)

ViolationHandler = Callable[[ViolationEvent], Any]
StateChangeHandler = Callable[[ProctoringState], Any]


class ProctoringManager:
    """
    Manages a single proctoring session.

    Lifecycle: UNINITIALIZED -> INITIALIZING -> INITIALIZED -> STARTING -> ACTIVE -> STOPPED.
    Once active, ``stop()`` is ignored until the host calls ``allow_stop()``.
    """

    MAX_FRAME_RATE = 30

    def __init__(
        self,
        config: ProctoringConfig,
        environment: HostEnvironment,
        settings: Optional[ProctorSettings] = None,
        session_id: Optional[str] = None,
        face_detector_loader: Callable[[], Any] = PreciseDetector.load
    ):
        """
        Initialize a new proctoring session.

        Args:
            config: Capabilities and thresholds for this exam
            environment: Host platform surface
            settings: Runtime tuning (defaults to PROCTOR_* environment settings)
            session_id: Optional custom session ID (auto-generated if not provided)
            face_detector_loader: Loader for the precise face detector
        """
        self.config = config
        self.environment = environment
        self.settings = settings or default_settings
        self.session_id = session_id or f"EXM_{uuid.uuid4().hex[:6].upper()}"
        self.face_detector_loader = face_detector_loader

        self._phase = SessionPhase.UNINITIALIZED
        self._latch = StopLatch()

        # Live state
        self._is_active = False
        self._is_initialized = False
        self._has_webcam = False
        self._has_microphone = False
        self._risk_score = 0.0
        self._last_heartbeat = environment.now_ms()

        self.ledger = ViolationLedger(session_id=self.session_id)
        self.scorer = RiskScorer()
        self.review_policy = ReviewPolicy(config.suspicious_activity_threshold)

        # Camera
        self._stream: Optional[MediaStream] = None
        self._video: Optional[VideoElement] = None

        # Sensors (presence needs a camera; the rest are lazy loaded)
        self.presence_detector: Optional[PresenceDetector] = None
        self._lockdown: Optional[LockdownController] = None
        self._activity_monitor: Optional[ActivityMonitor] = None
        self._violation_analyzer: Optional[ViolationAnalyzer] = None

        self._heartbeat: Optional[IntervalTimer] = None

        self._on_violation: Optional[ViolationHandler] = None
        self._on_state_change: Optional[StateChangeHandler] = None

    # ============== Sensors ==============

    @property
    def lockdown(self) -> LockdownController:
        """Lazy load lockdown controller"""
        if self._lockdown is None:
            self._lockdown = LockdownController(self.config, self.environment)
        return self._lockdown

    @property
    def activity_monitor(self) -> ActivityMonitor:
        """Lazy load activity monitor"""
        if self._activity_monitor is None:
            self._activity_monitor = ActivityMonitor(
                self.config, self._handle_violation, self.environment, self.settings
            )
        return self._activity_monitor

    @property
    def violation_analyzer(self) -> ViolationAnalyzer:
        """Lazy load violation analyzer"""
        if self._violation_analyzer is None:
            self._violation_analyzer = ViolationAnalyzer(
                self.config, self._handle_violation, self.environment, self.settings
            )
        return self._violation_analyzer

    # ============== Accessors ==============

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def can_stop(self) -> bool:
        return self._latch.can_stop

    @property
    def video_element(self) -> Optional[VideoElement]:
        """Self-view preview bound to the camera stream, if one is open"""
        return self._video

    def get_state(self) -> ProctoringState:
        return ProctoringState(
            is_active=self._is_active,
            is_initialized=self._is_initialized,
            has_webcam=self._has_webcam,
            has_microphone=self._has_microphone,
            violations=self.ledger.violations,
            risk_score=self._risk_score,
            last_heartbeat=self._last_heartbeat
        )

    def set_violation_handler(self, handler: Optional[ViolationHandler]):
        self._on_violation = handler

    def set_state_change_handler(self, handler: Optional[StateChangeHandler]):
        self._on_state_change = handler

    # ============== Lifecycle ==============

    async def initialize(self) -> bool:
        """
        Probe devices, open the camera and prepare the sensors.

        Returns:
            True once initialized

        Raises:
            DeviceNotFoundError: webcam required but missing
            DeviceAccessError: camera permission denied or stream failed
            StreamTimeoutError: camera never became ready
            SessionStateError: initialize() already in progress
        """
        if self._is_initialized:
            return True
        if self._phase == SessionPhase.INITIALIZING:
            raise SessionStateError("Proctoring initialization already in progress")

        logger.info(f"Initializing proctoring session {self.session_id}")
        self._phase = SessionPhase.INITIALIZING

        try:
            await self._check_device_capabilities()

            if self.config.webcam_required or self.config.face_detection:
                await self._open_camera()

            await self._initialize_services()
        except Exception as e:
            logger.error(f"Failed to initialize proctoring system: {e}")
            self._release_stream()
            self._phase = SessionPhase.UNINITIALIZED
            raise

        self._is_initialized = True
        self._phase = SessionPhase.INITIALIZED
        self._notify_state_change()

        logger.info(f"Proctoring session {self.session_id} initialized")
        return True

    async def start(self):
        """Start monitoring. The stop latch is re-armed; a start already in progress makes this a no-op."""
        if not self._is_initialized:
            raise SessionStateError("Proctoring system not initialized")
        if self._is_active or self._phase == SessionPhase.STARTING:
            return

        logger.info(f"Starting proctoring monitoring for {self.session_id}")
        previous_phase = self._phase
        self._phase = SessionPhase.STARTING

        if self._stream is None and (self.config.webcam_required or self.presence_detector is not None):
            try:
                await self._open_camera()
            except Exception:
                self._phase = previous_phase
                raise
            if self.presence_detector is not None and self._video is not None:
                self.presence_detector.video = self._video

        if self.config.browser_lockdown:
            await self._start_sensor("browser lockdown", self.lockdown.enable)

        if self.presence_detector is not None and self._video is not None:
            await self._start_sensor("presence detection", self.presence_detector.start)

        await self._start_sensor("activity monitor", self.activity_monitor.start)
        await self._start_sensor("violation analyzer", self.violation_analyzer.start)

        self._last_heartbeat = self.environment.now_ms()
        if self._heartbeat is not None:
            self._heartbeat.cancel()
        self._heartbeat = IntervalTimer(self.settings.HEARTBEAT_INTERVAL, self._heartbeat_tick, name="heartbeat")
        self._heartbeat.start()

        self._is_active = True
        self._phase = SessionPhase.ACTIVE
        self._latch.arm()

        log_session_start(
            self.session_id,
            webcam=self._stream is not None,
            microphone=self.violation_analyzer.audio_active,
            lockdown=self.lockdown.is_enabled
        )
        self._notify_state_change()

    def allow_stop(self):
        """Unlock stop(); called by the host when the exam is submitted or time is up"""
        self._latch.allow()

    async def stop(self):
        """Stop monitoring and release every resource. Ignored while the latch is locked."""
        if not self._latch.can_stop:
            logger.info("Proctoring stop prevented: exam still in progress")
            log_stop_prevented(self.session_id)
            return

        logger.info(f"Stopping proctoring monitoring for {self.session_id}")

        if self.presence_detector is not None:
            await self._stop_sensor("presence detection", self.presence_detector.stop)
        if self._lockdown is not None:
            await self._stop_sensor("browser lockdown", self._lockdown.disable)
        if self._activity_monitor is not None:
            await self._stop_sensor("activity monitor", self._activity_monitor.stop)
        if self._violation_analyzer is not None:
            await self._stop_sensor("violation analyzer", self._violation_analyzer.stop)

        self._release_stream()

        if self._heartbeat is not None:
            self._heartbeat.cancel()
            self._heartbeat = None

        was_active = self._is_active
        self._is_active = False
        if self._is_initialized:
            self._phase = SessionPhase.STOPPED

        if was_active:
            log_session_end(self.session_id, self._risk_score, len(self.ledger))
        self._notify_state_change()

    async def _start_sensor(self, name: str, action: Callable[[], Optional[Awaitable[Any]]]):
        try:
            result = action()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Failed to start {name}: {e}", exc_info=True)
            log_capability_degraded(self.session_id, name, str(e))

    async def _stop_sensor(self, name: str, action: Callable[[], Optional[Awaitable[Any]]]):
        try:
            result = action()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"Error stopping {name}: {e}")

    # ============== Devices ==============

    async def _check_device_capabilities(self):
        devices = self.environment.media_devices
        found = []
        if devices is not None:
            try:
                found = await devices.enumerate_devices()
            except MediaError as e:
                raise DeviceAccessError(f"Could not enumerate media devices: {e}") from e

        self._has_webcam = any(d.kind == "videoinput" for d in found)
        self._has_microphone = any(d.kind == "audioinput" for d in found)

        logger.info(f"Device capabilities checked: webcam={self._has_webcam} microphone={self._has_microphone}")

        if self.config.webcam_required and not self._has_webcam:
            raise DeviceNotFoundError("Webcam is required but not available")

    async def _open_camera(self):
        """Open the camera; degrade instead of raising when it is optional"""
        try:
            await self._start_camera_stream()
        except (DeviceError, StreamTimeoutError) as e:
            self._release_stream()
            if self.config.webcam_required:
                raise

            logger.warning(f"Camera unavailable, continuing without face detection: {e}")
            log_capability_degraded(self.session_id, "camera", str(e))
            if self.config.face_detection:
                self._handle_violation(ViolationEvent(
                    type=ViolationType.SUSPICIOUS_MOVEMENT,
                    timestamp=self.environment.now_ms(),
                    severity=Severity.MEDIUM,
                    description="Camera unavailable; face detection disabled",
                    data={"error": str(e)}
                ))

    async def _start_camera_stream(self):
        devices = self.environment.media_devices
        if devices is None or not devices.supports_get_user_media:
            raise DeviceNotFoundError("Camera access not supported")

        video_constraints = {
            "width": {"ideal": self.settings.VIDEO_WIDTH},
            "height": {"ideal": self.settings.VIDEO_HEIGHT},
            "frame_rate": {"ideal": self.settings.VIDEO_FRAME_RATE, "max": self.MAX_FRAME_RATE}
        }

        try:
            self._stream = await devices.get_user_media(
                video=video_constraints,
                audio=self.config.microphone_monitoring
            )
        except MediaError as e:
            if e.name == "NotAllowedError":
                raise DeviceAccessError("Camera access denied. Please allow camera access to continue.") from e
            if e.name == "NotFoundError":
                raise DeviceNotFoundError("No camera found. Please connect a camera to continue.") from e
            raise DeviceAccessError(f"Camera stream failed: {e}") from e

        self._video = self.environment.create_video_element(self._stream)

        timeout = self.settings.STREAM_READY_TIMEOUT
        try:
            await asyncio.wait_for(self._video.wait_until_ready(), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise StreamTimeoutError(f"Camera stream did not become ready within {timeout}s") from e

        logger.info("Camera stream started successfully")

    def _release_stream(self):
        stream, self._stream = self._stream, None
        self._video = None
        if stream is None:
            return

        for track in stream.get_tracks():
            try:
                track.stop()
            except Exception as e:
                logger.warning(f"Could not stop {track.kind} track: {e}")

    async def _initialize_services(self):
        if self.config.face_detection and self._video is not None and self.presence_detector is None:
            self.presence_detector = PresenceDetector(
                self._video,
                self._handle_violation,
                self.environment,
                settings=self.settings,
                loader=self.face_detector_loader,
                session_id=self.session_id
            )
            await self.presence_detector.initialize()

        # Touch the lazy sensors so they exist before monitoring starts
        _ = self.lockdown, self.activity_monitor, self.violation_analyzer
        logger.info("All services initialized")

    # ============== Violations / state ==============

    def _handle_violation(self, violation: ViolationEvent):
        self.ledger.record(violation)
        self._risk_score = self.scorer.compute(self.ledger.violations, self.environment.now_ms())

        log_violation_recorded(
            self.session_id,
            violation.type.value,
            violation.severity.value,
            self._risk_score
        )

        if self._on_violation is not None:
            try:
                self._on_violation(violation)
            except Exception:
                logger.exception("Violation handler raised")

        self._notify_state_change()

    def _heartbeat_tick(self):
        if not self._is_active:
            if self._heartbeat is not None:
                self._heartbeat.cancel()
                self._heartbeat = None
            return

        self._last_heartbeat = self.environment.now_ms()
        self._risk_score = self.scorer.compute(self.ledger.violations, self._last_heartbeat)
        self._notify_state_change()

    def _notify_state_change(self):
        if self._on_state_change is None:
            return
        try:
            self._on_state_change(self.get_state())
        except Exception:
            logger.exception("State change handler raised")

    # ============== Scan / analysis ==============

    async def perform_environment_scan(self) -> EnvironmentScanResult:
        """
        Pre-exam check of lighting, people in view and browser support.
        Never raises and never changes session state.
        """
        if not self._is_initialized:
            return EnvironmentScanResult(
                success=False,
                issues=["Proctoring system not initialized"],
                recommendations=["Initialize proctoring before scanning the environment"]
            )

        issues: List[str] = []
        recommendations: List[str] = []

        try:
            if self.presence_detector is not None:
                lighting = await self.presence_detector.check_lighting()
                if not lighting.adequate:
                    issues.append("Poor lighting conditions detected")
                    recommendations.append("Ensure adequate lighting on your face")

                face_count = await self.presence_detector.detect_faces()
                if face_count > 1:
                    issues.append("Multiple people detected in camera view")
                    recommendations.append("Ensure you are alone in the camera view")
                elif face_count == 0:
                    issues.append("No face detected in camera view")
                    recommendations.append("Position yourself clearly in front of the camera")
            elif self.config.face_detection:
                issues.append("Camera not available for face detection")
                recommendations.append("Connect a camera and allow camera access")

            compatibility = self.lockdown.check_compatibility()
            if not compatibility.compatible:
                issues.append("Browser not fully compatible with proctoring features")
                issues.extend(compatibility.issues)
                recommendations.append("Use Chrome or Firefox for best experience")

            return EnvironmentScanResult(success=not issues, issues=issues, recommendations=recommendations)
        except Exception as e:
            logger.error(f"Environment scan failed: {e}", exc_info=True)
            return EnvironmentScanResult(
                success=False,
                issues=["Environment scan failed"],
                recommendations=["Please refresh and try again"]
            )

    def get_summary(self) -> ProctoringSummary:
        """
        Summarize the session for review.

        session_duration is the time since the last heartbeat while active
        and 0 otherwise.
        """
        duration = self.environment.now_ms() - self._last_heartbeat if self._is_active else 0
        return self.ledger.get_summary(self._risk_score, duration, self.review_policy)

    def analyze_patterns(self, record: bool = False) -> List[ViolationEvent]:
        """
        Run pattern analysis over the ledger.

        Args:
            record: Also append the findings to the ledger
        """
        findings = self.violation_analyzer.detect_anomalous_patterns(
            self.ledger.violations, self.environment.now_ms()
        )
        if record:
            for finding in findings:
                self._handle_violation(finding)
        return findings

    def analyze_response_timing(
        self,
        timings: Iterable[Union[QuestionTiming, Mapping[str, Any]]],
        record: bool = False
    ) -> List[ViolationEvent]:
        findings = self.violation_analyzer.analyze_response_timing(timings)
        if record:
            for finding in findings:
                self._handle_violation(finding)
        return findings

    def check_browser_fingerprint(self) -> FingerprintCheck:
        return self.violation_analyzer.check_browser_fingerprint()
