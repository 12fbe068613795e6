"""
Proctoring Configuration

Two layers:
- ProctoringConfig: per-exam capability toggles and thresholds, supplied by
  the host when a session is created (immutable).
- ProctorSettings: process-wide runtime tuning (timer intervals, timeouts,
  logging), read from PROCTOR_* environment variables or a .env file.
"""
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError


class ProctoringConfig(BaseModel):
    """Capabilities and thresholds for one proctored exam."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )

    # Capability toggles
    face_detection: bool = True
    screen_recording: bool = False
    browser_lockdown: bool = True
    prevent_copy_paste: bool = True
    prevent_right_click: bool = True
    prevent_tab_switch: bool = True
    webcam_required: bool = True
    microphone_monitoring: bool = False
    environment_scan: bool = True
    id_verification: bool = False

    # Thresholds
    allowed_tab_switches: int = Field(2, ge=0)
    suspicious_activity_threshold: int = Field(70, ge=0, le=100)


def build_config(**values: Any) -> ProctoringConfig:
    """
    Build a ProctoringConfig, accepting snake_case or camelCase keys.

    Raises:
        ConfigurationError: if any value is out of range or unknown
    """
    try:
        return ProctoringConfig(**values)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid proctoring configuration: {e}") from e


# ============== Presets ==============

STRICT_PROCTORING_CONFIG = ProctoringConfig(
    face_detection=True,
    screen_recording=False,
    browser_lockdown=True,
    prevent_copy_paste=True,
    prevent_right_click=True,
    prevent_tab_switch=True,
    allowed_tab_switches=0,
    webcam_required=True,
    microphone_monitoring=True,
    environment_scan=True,
    id_verification=False,
    suspicious_activity_threshold=50,
)

MODERATE_PROCTORING_CONFIG = ProctoringConfig(
    face_detection=True,
    screen_recording=False,
    browser_lockdown=True,
    prevent_copy_paste=True,
    prevent_right_click=True,
    prevent_tab_switch=True,
    allowed_tab_switches=2,
    webcam_required=True,
    microphone_monitoring=False,
    environment_scan=True,
    id_verification=False,
    suspicious_activity_threshold=70,
)

LENIENT_PROCTORING_CONFIG = ProctoringConfig(
    face_detection=True,
    screen_recording=False,
    browser_lockdown=False,
    prevent_copy_paste=False,
    prevent_right_click=False,
    prevent_tab_switch=True,
    allowed_tab_switches=5,
    webcam_required=True,
    microphone_monitoring=False,
    environment_scan=False,
    id_verification=False,
    suspicious_activity_threshold=80,
)

BASIC_PROCTORING_CONFIG = ProctoringConfig(
    face_detection=False,
    screen_recording=False,
    browser_lockdown=False,
    prevent_copy_paste=False,
    prevent_right_click=False,
    prevent_tab_switch=False,
    allowed_tab_switches=10,
    webcam_required=False,
    microphone_monitoring=False,
    environment_scan=False,
    id_verification=False,
    suspicious_activity_threshold=90,
)


class ProctorSettings(BaseSettings):
    """Runtime tuning for the proctoring core."""

    # Timer intervals (seconds)
    PRESENCE_POLL_INTERVAL: float = 1.0
    AUDIO_SAMPLE_INTERVAL: float = 1.0
    PERFORMANCE_CHECK_INTERVAL: float = 5.0
    HEARTBEAT_INTERVAL: float = 5.0
    MOUSE_IDLE_CHECK_INTERVAL: float = 30.0

    # Camera
    STREAM_READY_TIMEOUT: float = 5.0
    VIDEO_WIDTH: int = 640
    VIDEO_HEIGHT: int = 480
    VIDEO_FRAME_RATE: int = 15

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_TO_FILE: bool = False
    LOG_DIR: str = "logs"

    model_config = SettingsConfigDict(
        env_prefix="PROCTOR_",
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )


settings = ProctorSettings()
