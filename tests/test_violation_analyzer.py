"""
Tests for ViolationAnalyzer and AudioDetector

Tests:
1. Audio bin analysis thresholds
2. Performance stalls and heap pressure
3. Device and network events
4. Pattern, response-timing and fingerprint analysis
"""
import json

import numpy as np
import pytest

from proctor_core.config import ProctoringConfig
from proctor_core.detectors import AudioDetector, ViolationAnalyzer
from proctor_core.detectors.violation_analyzer import FINGERPRINT_STORAGE_KEY
from proctor_core.environment import DomEvent, MediaError
from proctor_core.schemas import QuestionTiming, Severity, ViolationType

from conftest import FakeEnvironment, FakeMediaDevices, START_MS, make_violation


def make_analyzer(env, settings, violations, **config_values):
    return ViolationAnalyzer(ProctoringConfig(**config_values), violations.append, env, settings)


def bins_with(base: int, speech: int = None, high: int = None) -> np.ndarray:
    bins = np.full(128, base, dtype=np.uint8)
    if speech is not None:
        bins[5:25] = speech
    if high is not None:
        bins[25:60] = high
    return bins


class TestAudioDetector:
    """Tests for the frequency-bin analyser"""

    def test_bin_count(self):
        detector = AudioDetector()
        bins = detector.frequency_bins(np.zeros(1024, dtype=np.int16))

        assert bins.shape == (128,)
        assert bins.dtype == np.uint8

    def test_silence_is_zero(self):
        bins = AudioDetector().frequency_bins(np.zeros(256, dtype=np.int16))

        assert int(bins.max()) == 0

    def test_loud_tone_raises_levels(self):
        """A loud tone in the speech band lights up those bins"""
        t = np.arange(256)
        tone = (20000 * np.sin(2 * np.pi * 10 * t / 256)).astype(np.int16)

        bins = AudioDetector(smoothing=0).frequency_bins(tone)

        assert bins[10] == 255
        assert int(bins[100]) < 50

    def test_short_chunk_padded(self):
        bins = AudioDetector().frequency_bins(np.ones(10, dtype=np.int16))
        assert bins.shape == (128,)

    def test_speech_suspected(self):
        """Average > 50 and speech band mean > 30"""
        result = AudioDetector().analyze(bins_with(60, speech=60, high=30))

        assert result.speech_suspected is True
        assert result.complex_pattern is False

    def test_quiet_room(self):
        result = AudioDetector().analyze(bins_with(10))

        assert result.speech_suspected is False
        assert result.complex_pattern is False

    def test_complex_pattern_high_ratio(self):
        """High band energy more than 1.5x speech band energy"""
        result = AudioDetector().analyze(bins_with(25, speech=10, high=100))

        assert result.complex_pattern is True
        assert result.energy_ratio > 1.5

    def test_metrics(self):
        detector = AudioDetector()
        detector.analyze(bins_with(10))
        detector.analyze(bins_with(60, speech=60, high=30))

        metrics = detector.get_metrics()
        assert metrics["total_samples"] == 2
        assert metrics["suspicious_ratio"] == 0.5


class TestAudioMonitoring:
    """Audio sampling inside the analyzer"""

    @pytest.mark.asyncio
    async def test_speech_reported_medium(self, env, settings, violations):
        analyzer = make_analyzer(env, settings, violations, microphone_monitoring=True)

        analyzer.analyze_audio_levels(bins_with(60, speech=60, high=30))

        assert violations[0].type == ViolationType.AUDIO_DETECTED
        assert violations[0].severity == Severity.MEDIUM

    @pytest.mark.asyncio
    async def test_complex_pattern_reported_low(self, env, settings, violations):
        analyzer = make_analyzer(env, settings, violations, microphone_monitoring=True)

        analyzer.analyze_audio_levels(bins_with(25, speech=10, high=100))

        assert [v.severity for v in violations] == [Severity.LOW]

    @pytest.mark.asyncio
    async def test_audio_stream_opened_and_released(self, settings, violations):
        devices = FakeMediaDevices(audio_reader=lambda: np.zeros(256, dtype=np.int16))
        env = FakeEnvironment(media_devices=devices)
        analyzer = make_analyzer(env, settings, violations, microphone_monitoring=True)

        await analyzer.start()
        assert analyzer.audio_active is True
        analyzer.sample_audio()
        track = devices.streams[0].get_audio_tracks()[0]

        analyzer.stop()

        assert analyzer.audio_active is False
        assert track.ready_state == "ended"
        assert violations == []

    @pytest.mark.asyncio
    async def test_microphone_failure_skips_audio(self, settings, violations):
        devices = FakeMediaDevices()
        devices.audio_error = MediaError("NotAllowedError", "denied")
        env = FakeEnvironment(media_devices=devices)
        analyzer = make_analyzer(env, settings, violations, microphone_monitoring=True)

        await analyzer.start()

        assert analyzer.audio_active is False
        assert analyzer.is_running is True
        analyzer.stop()

    @pytest.mark.asyncio
    async def test_no_audio_without_microphone_monitoring(self, env, settings, violations):
        analyzer = make_analyzer(env, settings, violations)

        await analyzer.start()

        assert analyzer.audio_active is False
        assert env.media_devices.streams == []
        analyzer.stop()


class TestPerformance:
    """Event-loop stall and memory checks"""

    @pytest.mark.asyncio
    async def test_three_stalls_report_once(self, env, settings, violations):
        analyzer = make_analyzer(env, settings, violations)
        await analyzer.start()
        expected = settings.PERFORMANCE_CHECK_INTERVAL * 1000

        for _ in range(3):
            env.clock.advance(int(expected) + 500)
            analyzer.check_performance()

        assert len(violations) == 1
        assert violations[0].severity == Severity.LOW
        analyzer.stop()

    @pytest.mark.asyncio
    async def test_on_time_tick_resets_stalls(self, env, settings, violations):
        analyzer = make_analyzer(env, settings, violations)
        await analyzer.start()
        expected = int(settings.PERFORMANCE_CHECK_INTERVAL * 1000)

        for lag in (500, 500, 0, 500, 500):
            env.clock.advance(expected + lag)
            analyzer.check_performance()

        assert violations == []
        analyzer.stop()

    @pytest.mark.asyncio
    async def test_memory_pressure(self, env, settings, violations):
        analyzer = make_analyzer(env, settings, violations)
        await analyzer.start()
        env.memory = (90, 100)

        env.clock.advance(int(settings.PERFORMANCE_CHECK_INTERVAL * 1000))
        analyzer.check_performance()

        assert len(violations) == 1
        assert violations[0].description == "High memory usage detected"
        analyzer.stop()


class TestDeviceAndNetwork:
    """Device and network listeners"""

    @pytest.mark.asyncio
    async def test_events(self, env, settings, violations):
        analyzer = make_analyzer(env, settings, violations)
        await analyzer.start()

        env.media_devices.dispatch_event(DomEvent("devicechange"))
        env.window.dispatch_event(DomEvent("offline"))
        env.window.dispatch_event(DomEvent("online"))
        env.navigator.connection.dispatch_event(DomEvent("change"))

        assert [v.severity for v in violations] == [Severity.MEDIUM, Severity.HIGH, Severity.LOW]
        assert violations[2].data["effective_type"] == "4g"
        analyzer.stop()

    @pytest.mark.asyncio
    async def test_listeners_removed_on_stop(self, env, settings, violations):
        analyzer = make_analyzer(env, settings, violations)
        await analyzer.start()

        analyzer.stop()

        assert env.media_devices.listener_count() == 0
        assert env.window.listener_count() == 0
        assert env.navigator.connection.listener_count() == 0


class TestPatterns:
    """Post-hoc ledger analysis"""

    def test_rapid_succession(self, env, settings, violations):
        analyzer = make_analyzer(env, settings, violations)
        now = env.now_ms()
        ledger = [make_violation(now - 59_000 + i * 1500) for i in range(11)]

        findings = analyzer.detect_anomalous_patterns(ledger, now)

        assert any(
            f.severity == Severity.HIGH and "rapid succession" in f.description
            for f in findings
        )
        assert violations == []

    def test_regular_timing(self, env, settings, violations):
        """Seven violations exactly 2 s apart look automated"""
        analyzer = make_analyzer(env, settings, violations)
        now = env.now_ms()
        ledger = [make_violation(now - 600_000 + i * 2000) for i in range(7)]

        findings = analyzer.detect_anomalous_patterns(ledger, now)

        assert [f.description for f in findings] == [
            "Regular violation timing detected - possible automation"
        ]

    def test_type_clustering_ignores_face_not_detected(self, env, settings, violations):
        analyzer = make_analyzer(env, settings, violations)
        old = START_MS - 10_000_000
        ledger = [
            make_violation(old + i * 60_000 + (i * i * 997), violation_type=ViolationType.FACE_NOT_DETECTED)
            for i in range(9)
        ]

        findings = analyzer.detect_anomalous_patterns(ledger, env.now_ms())

        assert findings == []

    def test_type_clustering(self, env, settings, violations):
        analyzer = make_analyzer(env, settings, violations)
        old = START_MS - 10_000_000
        ledger = [
            make_violation(old + i * 60_000 + (i * i * 997), violation_type=ViolationType.TAB_SWITCH)
            for i in range(9)
        ]

        findings = analyzer.detect_anomalous_patterns(ledger, env.now_ms())

        assert len(findings) == 1
        assert findings[0].severity == Severity.MEDIUM
        assert findings[0].description == "Excessive tab_switch violations detected"


class TestResponseTiming:
    """Response timing heuristics"""

    def test_too_few_entries(self, env, settings, violations):
        analyzer = make_analyzer(env, settings, violations)

        assert analyzer.analyze_response_timing([QuestionTiming(question_id="q1", time_spent=100)]) == []

    def test_consistent_timing(self, env, settings, violations):
        analyzer = make_analyzer(env, settings, violations)
        timings = [{"questionId": f"q{i}", "timeSpent": 20_000} for i in range(4)]

        findings = analyzer.analyze_response_timing(timings)

        assert [f.severity for f in findings] == [Severity.MEDIUM]

    def test_fast_responses(self, env, settings, violations):
        analyzer = make_analyzer(env, settings, violations)
        timings = [
            QuestionTiming(question_id="q1", time_spent=1000),
            QuestionTiming(question_id="q2", time_spent=3000),
            QuestionTiming(question_id="q3", time_spent=60_000)
        ]

        findings = analyzer.analyze_response_timing(timings)

        assert [f.severity for f in findings] == [Severity.HIGH]

    def test_normal_timing(self, env, settings, violations):
        analyzer = make_analyzer(env, settings, violations)
        timings = [
            QuestionTiming(question_id="q1", time_spent=40_000),
            QuestionTiming(question_id="q2", time_spent=90_000),
            QuestionTiming(question_id="q3", time_spent=65_000)
        ]

        assert analyzer.analyze_response_timing(timings) == []


class TestFingerprint:
    """Browser fingerprint persistence"""

    def test_first_check_stores_fingerprint(self, env, settings, violations):
        analyzer = make_analyzer(env, settings, violations)

        result = analyzer.check_browser_fingerprint()

        assert result.consistent is True
        stored = json.loads(env.session_storage[FINGERPRINT_STORAGE_KEY])
        assert stored["screen_resolution"] == "1920x1080"

    def test_change_detected(self, env, settings, violations):
        analyzer = make_analyzer(env, settings, violations)
        analyzer.check_browser_fingerprint()

        env.navigator.user_agent = "Mozilla/5.0 OtherBrowser"
        result = analyzer.check_browser_fingerprint()

        assert result.consistent is False
        assert result.changes == [
            "user_agent changed from Mozilla/5.0 TestBrowser to Mozilla/5.0 OtherBrowser"
        ]

    def test_survives_new_analyzer(self, env, settings, violations):
        """A reload creates a new analyzer but session storage persists"""
        make_analyzer(env, settings, violations).check_browser_fingerprint()
        env.screen.width = 1280

        result = make_analyzer(env, settings, violations).check_browser_fingerprint()

        assert result.consistent is False
        assert result.changes[0].startswith("screen_resolution changed")
