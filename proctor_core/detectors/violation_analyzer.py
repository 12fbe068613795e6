"""
Violation Analyzer - Environmental heuristics and post-hoc pattern analysis

Live checks (while running):
- microphone audio levels (only with microphone_monitoring)
- event-loop stalls and heap pressure
- media device, network and connection changes

On-demand checks:
- anomalous patterns in a violation ledger
- response timing across questions
- browser fingerprint consistency
"""

import json
import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Union

import numpy as np

from ..config import ProctoringConfig, ProctorSettings, settings as default_settings
from ..environment import DomEvent, HostEnvironment, MediaStream
from ..schemas import FingerprintCheck, QuestionTiming, Severity, ViolationEvent, ViolationType
from ..utils.listeners import ListenerRegistry
from ..utils.timers import IntervalTimer
from .audio_detector import AudioDetector

logger = logging.getLogger(__name__)

ViolationCallback = Callable[[ViolationEvent], None]

FINGERPRINT_STORAGE_KEY = "proctoringFingerprint"


class ViolationAnalyzer:
    """
    Runs the environmental sensors and the on-demand heuristics.
    """

    # Performance
    STALL_THRESHOLD_MS = 100
    STALLS_BEFORE_REPORT = 3
    MEMORY_PRESSURE_RATIO = 0.8

    # Pattern analysis
    BURST_WINDOW_MS = 60_000
    BURST_LIMIT = 10
    MIN_INTERVALS = 5
    REGULAR_VARIANCE = 1000
    REGULAR_MEAN_MS = 10_000
    TYPE_REPEAT_LIMIT = 8

    # Response timing
    MIN_TIMINGS = 3
    CONSISTENT_VARIANCE = 1000
    CONSISTENT_MEAN_MS = 30_000
    FAST_RESPONSE_MS = 5000

    def __init__(
        self,
        config: ProctoringConfig,
        on_violation: ViolationCallback,
        environment: HostEnvironment,
        settings: Optional[ProctorSettings] = None,
        audio_detector: Optional[AudioDetector] = None
    ):
        self.config = config
        self.on_violation = on_violation
        self.environment = environment
        self.settings = settings or default_settings
        self.audio_detector = audio_detector or AudioDetector()

        self.is_running = False
        self._listeners = ListenerRegistry()

        self._audio_stream: Optional[MediaStream] = None
        self._audio_timer: Optional[IntervalTimer] = None

        self._performance_timer: Optional[IntervalTimer] = None
        self._last_check: Optional[float] = None
        self._stall_count = 0

    @property
    def audio_active(self) -> bool:
        return self._audio_stream is not None

    # ============== Lifecycle ==============

    async def start(self):
        if self.is_running:
            return

        self.is_running = True
        logger.info("Starting violation analyzer")

        if self.config.microphone_monitoring:
            await self._start_audio_monitoring()

        self._start_performance_monitoring()
        self._monitor_device_changes()
        self._monitor_network_changes()

    def stop(self):
        if not self.is_running:
            return

        self.is_running = False
        self._stop_audio_monitoring()

        if self._performance_timer is not None:
            self._performance_timer.cancel()
            self._performance_timer = None

        self._listeners.remove_all()
        logger.info("Violation analyzer stopped")

    def _emit(self, severity: Severity, description: str, data: Dict[str, Any],
              violation_type: ViolationType = ViolationType.SUSPICIOUS_MOVEMENT):
        self.on_violation(self._event(severity, description, data, violation_type))

    def _event(self, severity: Severity, description: str, data: Dict[str, Any],
               violation_type: ViolationType = ViolationType.SUSPICIOUS_MOVEMENT,
               now: Optional[int] = None) -> ViolationEvent:
        return ViolationEvent(
            type=violation_type,
            timestamp=now if now is not None else self.environment.now_ms(),
            severity=severity,
            description=description,
            data=data
        )

    # ============== Audio ==============

    async def _start_audio_monitoring(self):
        devices = self.environment.media_devices
        if devices is None:
            logger.warning("Audio monitoring unavailable: no media devices API")
            return

        try:
            self._audio_stream = await devices.get_user_media(audio={
                "echo_cancellation": False,
                "noise_suppression": False,
                "auto_gain_control": False
            })
        except Exception as e:
            logger.warning(f"Could not start audio monitoring: {e}")
            self._audio_stream = None
            return

        self.audio_detector.reset()
        self._audio_timer = IntervalTimer(
            self.settings.AUDIO_SAMPLE_INTERVAL,
            self.sample_audio,
            name="audio-sample"
        )
        self._audio_timer.start()
        logger.info("Audio monitoring started")

    def _stop_audio_monitoring(self):
        if self._audio_timer is not None:
            self._audio_timer.cancel()
            self._audio_timer = None

        stream, self._audio_stream = self._audio_stream, None
        if stream is not None:
            for track in stream.get_tracks():
                track.stop()
            logger.info("Audio monitoring stopped")

    def sample_audio(self):
        """One audio tick: read the latest PCM chunk and analyse it"""
        if self._audio_stream is None:
            return

        tracks = self._audio_stream.get_audio_tracks()
        if not tracks:
            return

        samples = tracks[0].read_samples()
        if samples is None:
            return

        self.analyze_audio_levels(self.audio_detector.frequency_bins(samples))

    def analyze_audio_levels(self, bins: np.ndarray):
        result = self.audio_detector.analyze(bins)
        now = self.environment.now_ms()

        if result.speech_suspected:
            self.on_violation(self._event(
                Severity.MEDIUM,
                "Suspicious audio activity detected - possible communication",
                {
                    "average_level": result.average,
                    "speech_level": result.speech_level,
                    "max_level": result.data["max_level"]
                },
                ViolationType.AUDIO_DETECTED,
                now
            ))

        if result.complex_pattern:
            self.on_violation(self._event(
                Severity.LOW,
                "Complex audio pattern detected",
                {
                    "ratio": result.energy_ratio,
                    "high_freq": result.data["high_energy"],
                    "low_freq": result.data["low_energy"]
                },
                ViolationType.AUDIO_DETECTED,
                now
            ))

    # ============== Performance ==============

    def _start_performance_monitoring(self):
        self._last_check = self.environment.monotonic_ms()
        self._stall_count = 0
        self._performance_timer = IntervalTimer(
            self.settings.PERFORMANCE_CHECK_INTERVAL,
            self.check_performance,
            name="performance-check"
        )
        self._performance_timer.start()

    def check_performance(self):
        """
        Detect event-loop stalls and heap pressure.

        A tick arriving more than STALL_THRESHOLD_MS after it was due counts
        as a stall; three in a row are reported once and the count restarts.
        """
        now = self.environment.monotonic_ms()
        expected = self.settings.PERFORMANCE_CHECK_INTERVAL * 1000
        elapsed = now - self._last_check if self._last_check is not None else expected
        self._last_check = now
        lag = elapsed - expected

        if lag > self.STALL_THRESHOLD_MS:
            self._stall_count += 1
            if self._stall_count >= self.STALLS_BEFORE_REPORT:
                self._emit(
                    Severity.LOW,
                    "Performance degradation detected - possible screen recording",
                    {"stalls": self._stall_count, "lag_ms": lag}
                )
                self._stall_count = 0
        else:
            self._stall_count = 0

        memory = self.environment.memory_info()
        if memory:
            used, total = memory
            if total > 0 and used / total > self.MEMORY_PRESSURE_RATIO:
                self._emit(
                    Severity.LOW,
                    "High memory usage detected",
                    {"memory_usage": used / total, "used_memory": used, "total_memory": total}
                )

    # ============== Devices / network ==============

    def _monitor_device_changes(self):
        devices = self.environment.media_devices
        if devices is not None:
            self._listeners.listen(devices, "devicechange", self._on_device_change)

    def _on_device_change(self, event: DomEvent):
        self._emit(Severity.MEDIUM, "Media device configuration changed", {"event": "devicechange"})

    def _monitor_network_changes(self):
        window = self.environment.window
        self._listeners.listen(window, "online", self._on_online)
        self._listeners.listen(window, "offline", self._on_offline)

        connection = self.environment.navigator.connection
        if connection is not None:
            self._listeners.listen(connection, "change", self._on_connection_change)

    def _on_online(self, event: DomEvent):
        logger.info("Network connection restored")

    def _on_offline(self, event: DomEvent):
        self._emit(Severity.HIGH, "Network connection lost", {"event": "offline"})

    def _on_connection_change(self, event: DomEvent):
        connection = self.environment.navigator.connection
        self._emit(
            Severity.LOW,
            "Network connection type changed",
            {
                "effective_type": connection.effective_type,
                "downlink": connection.downlink,
                "rtt": connection.rtt
            }
        )

    # ============== On-demand analysis ==============

    def detect_anomalous_patterns(
        self,
        violations: Sequence[ViolationEvent],
        now: Optional[int] = None
    ) -> List[ViolationEvent]:
        """
        Look for suspicious structure in a violation ledger.

        Returns new violations; nothing is reported through the callback.
        """
        now = now if now is not None else self.environment.now_ms()
        findings = []

        # Burst of violations
        recent_count = sum(1 for v in violations if now - v.timestamp < self.BURST_WINDOW_MS)
        if recent_count > self.BURST_LIMIT:
            findings.append(self._event(
                Severity.HIGH,
                "Unusual violation pattern detected - rapid succession",
                {"violation_count": recent_count, "time_window": self.BURST_WINDOW_MS},
                now=now
            ))

        # Machine-regular spacing
        timestamps = [v.timestamp for v in violations]
        intervals = np.diff(timestamps) if len(timestamps) > 1 else np.array([])
        if len(intervals) > self.MIN_INTERVALS:
            mean_interval = float(intervals.mean())
            variance = float(intervals.var())
            if variance < self.REGULAR_VARIANCE and mean_interval < self.REGULAR_MEAN_MS:
                findings.append(self._event(
                    Severity.HIGH,
                    "Regular violation timing detected - possible automation",
                    {"average_interval": mean_interval, "variance": variance},
                    now=now
                ))

        # One type repeated over and over
        counts: Dict[str, int] = {}
        for v in violations:
            counts[v.type.value] = counts.get(v.type.value, 0) + 1

        for violation_type, count in counts.items():
            if count > self.TYPE_REPEAT_LIMIT and violation_type != ViolationType.FACE_NOT_DETECTED.value:
                findings.append(self._event(
                    Severity.MEDIUM,
                    f"Excessive {violation_type} violations detected",
                    {"violation_type": violation_type, "count": count},
                    now=now
                ))

        return findings

    def analyze_response_timing(
        self,
        timings: Iterable[Union[QuestionTiming, Mapping[str, Any]]]
    ) -> List[ViolationEvent]:
        """
        Flag suspiciously uniform or fast answers.

        Args:
            timings: Per-question time spent (ms); dicts may use
                     question_id/questionId and time_spent/timeSpent

        Returns:
            New violations (not reported through the callback)
        """
        entries = [t if isinstance(t, QuestionTiming) else QuestionTiming.model_validate(t) for t in timings]
        if len(entries) < self.MIN_TIMINGS:
            return []

        now = self.environment.now_ms()
        times = np.array([t.time_spent for t in entries], dtype=np.float64)
        mean_time = float(times.mean())
        variance = float(times.var())
        findings = []

        if variance < self.CONSISTENT_VARIANCE and mean_time < self.CONSISTENT_MEAN_MS:
            findings.append(self._event(
                Severity.MEDIUM,
                "Suspiciously consistent response timing",
                {"average_time": mean_time, "variance": variance, "question_count": len(times)},
                now=now
            ))

        fast_count = int((times < self.FAST_RESPONSE_MS).sum())
        if fast_count > len(times) * 0.5:
            findings.append(self._event(
                Severity.HIGH,
                "Multiple extremely fast responses detected",
                {"fast_response_count": fast_count, "total_questions": len(times)},
                now=now
            ))

        return findings

    def current_fingerprint(self) -> Dict[str, Any]:
        navigator = self.environment.navigator
        screen = self.environment.screen
        return {
            "user_agent": navigator.user_agent,
            "language": navigator.language,
            "platform": navigator.platform,
            "hardware_concurrency": navigator.hardware_concurrency,
            "timezone": self.environment.timezone,
            "screen_resolution": f"{screen.width}x{screen.height}",
            "color_depth": screen.color_depth
        }

    def check_browser_fingerprint(self) -> FingerprintCheck:
        """
        Compare the browser fingerprint with the first one captured this
        browser session. The first call stores the fingerprint.
        """
        current = self.current_fingerprint()
        storage = self.environment.session_storage

        stored = None
        raw = storage.get(FINGERPRINT_STORAGE_KEY)
        if raw:
            try:
                stored = json.loads(raw)
            except ValueError:
                logger.warning("Stored fingerprint is not valid JSON; replacing it")

        if not isinstance(stored, dict):
            storage[FINGERPRINT_STORAGE_KEY] = json.dumps(current)
            return FingerprintCheck(consistent=True, changes=[])

        changes = [
            f"{key} changed from {stored.get(key)} to {value}"
            for key, value in current.items()
            if stored.get(key) != value
        ]
        return FingerprintCheck(consistent=not changes, changes=changes)
