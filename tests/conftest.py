"""
Pytest Configuration for Proctoring Core Tests

Provides an in-memory host environment with a controllable clock,
scriptable media devices and a video element that serves numpy frames.
"""
import asyncio
import os
import sys
from typing import List, Optional

import numpy as np
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from proctor_core.config import ProctoringConfig, ProctorSettings
from proctor_core.environment import (
    Document,
    HostEnvironment,
    MediaDeviceInfo,
    MediaDevices,
    MediaError,
    MediaStream,
    MediaStreamTrack,
    Navigator,
    NetworkConnection,
    VideoElement,
    Window
)
from proctor_core.schemas import Severity, ViolationEvent, ViolationType

START_MS = 1_700_000_000_000


class FakeClock:
    """Wall and monotonic clocks advanced by hand"""

    def __init__(self, start_ms: int = START_MS):
        self.now = start_ms
        self.monotonic = 0.0

    def advance(self, ms: int):
        self.now += ms
        self.monotonic += ms


class FakeMediaDevices(MediaDevices):
    """Camera/microphone stand-in; set ``error`` to make get_user_media fail"""

    def __init__(self, devices: Optional[List[MediaDeviceInfo]] = None, audio_reader=None):
        super().__init__()
        if devices is None:
            devices = [
                MediaDeviceInfo(kind="videoinput", device_id="cam0", label="Camera"),
                MediaDeviceInfo(kind="audioinput", device_id="mic0", label="Microphone")
            ]
        self.devices = devices
        self.audio_reader = audio_reader
        self.error: Optional[MediaError] = None
        self.audio_error: Optional[MediaError] = None
        self.streams: List[MediaStream] = []
        self.display_media_calls = 0

    async def enumerate_devices(self):
        return list(self.devices)

    async def get_user_media(self, video=False, audio=False):
        if video and self.error is not None:
            raise self.error
        if not video and audio and self.audio_error is not None:
            raise self.audio_error

        tracks = []
        if video:
            tracks.append(MediaStreamTrack("video", label="Camera"))
        if audio:
            tracks.append(MediaStreamTrack("audio", label="Microphone", sample_reader=self.audio_reader))
        stream = MediaStream(tracks)
        self.streams.append(stream)
        return stream

    async def get_display_media(self, *args, **kwargs):
        self.display_media_calls += 1
        return MediaStream([MediaStreamTrack("video", label="Screen")])


class FakeVideoElement(VideoElement):
    """Serves ``environment.frame`` once ready"""

    def __init__(self, stream: MediaStream, environment: "FakeEnvironment"):
        super().__init__(stream)
        self.environment = environment

    @property
    def ready(self) -> bool:
        return self.environment.video_ready

    async def wait_until_ready(self):
        if self.environment.video_hangs:
            await asyncio.Event().wait()

    def capture_frame(self):
        return self.environment.frame

    @property
    def video_width(self) -> int:
        return 0 if self.environment.frame is None else self.environment.frame.shape[1]

    @property
    def video_height(self) -> int:
        return 0 if self.environment.frame is None else self.environment.frame.shape[0]


class FakeEnvironment(HostEnvironment):
    """In-memory host for tests"""

    def __init__(self, media_devices: Optional[FakeMediaDevices] = None, **navigator_fields):
        self.clock = FakeClock()
        self.frame: Optional[np.ndarray] = face_frame()
        self.video_ready = True
        self.video_hangs = False
        self.memory = None
        self.video_elements: List[FakeVideoElement] = []

        devices = media_devices if media_devices is not None else FakeMediaDevices()
        navigator = Navigator(
            media_devices=devices,
            user_agent=navigator_fields.pop("user_agent", "Mozilla/5.0 TestBrowser"),
            platform=navigator_fields.pop("platform", "Linux x86_64"),
            hardware_concurrency=navigator_fields.pop("hardware_concurrency", 8),
            connection=NetworkConnection(),
            **navigator_fields
        )
        super().__init__(document=Document(), window=Window(), navigator=navigator)

    def now_ms(self) -> int:
        return self.clock.now

    def monotonic_ms(self) -> float:
        return self.clock.monotonic

    def memory_info(self):
        return self.memory

    def create_video_element(self, stream: MediaStream) -> VideoElement:
        video = FakeVideoElement(stream, self)
        self.video_elements.append(video)
        return video


class StubDetector:
    """Precise-detector stand-in returning a fixed face count"""

    def __init__(self, count: int = 1):
        self.count = count

    def detect(self, frame) -> int:
        return self.count


def face_frame(height: int = 48, width: int = 64) -> np.ndarray:
    """Textured mid-brightness frame (heuristic counts one face)"""
    rng = np.random.default_rng(0)
    return rng.integers(60, 200, size=(height, width, 3), dtype=np.uint8)


def flat_frame(value: int, height: int = 48, width: int = 64) -> np.ndarray:
    return np.full((height, width, 3), value, dtype=np.uint8)


def make_violation(
    timestamp: int,
    severity: Severity = Severity.LOW,
    violation_type: ViolationType = ViolationType.SUSPICIOUS_MOVEMENT
) -> ViolationEvent:
    return ViolationEvent(
        type=violation_type,
        timestamp=timestamp,
        severity=severity,
        description="test violation"
    )


@pytest.fixture
def env():
    """Fresh fake host environment"""
    return FakeEnvironment()


@pytest.fixture
def settings():
    """Settings with intervals long enough that timers never fire on their own"""
    return ProctorSettings(
        PRESENCE_POLL_INTERVAL=3600,
        AUDIO_SAMPLE_INTERVAL=3600,
        PERFORMANCE_CHECK_INTERVAL=3600,
        HEARTBEAT_INTERVAL=3600,
        MOUSE_IDLE_CHECK_INTERVAL=3600,
        STREAM_READY_TIMEOUT=0.05
    )


@pytest.fixture
def config():
    return ProctoringConfig()


@pytest.fixture
def violations():
    """Collects violations passed to a sensor callback"""
    collected: List[ViolationEvent] = []
    return collected
