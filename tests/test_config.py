"""
Tests for proctoring configuration and runtime settings
"""
import pytest
from pydantic import ValidationError

from proctor_core.config import (
    BASIC_PROCTORING_CONFIG,
    LENIENT_PROCTORING_CONFIG,
    MODERATE_PROCTORING_CONFIG,
    STRICT_PROCTORING_CONFIG,
    ProctoringConfig,
    ProctorSettings,
    build_config
)
from proctor_core.errors import ConfigurationError


class TestProctoringConfig:
    """Tests for ProctoringConfig"""

    def test_defaults(self):
        config = ProctoringConfig()

        assert config.webcam_required is True
        assert config.microphone_monitoring is False
        assert config.allowed_tab_switches == 2
        assert config.suspicious_activity_threshold == 70

    def test_camel_case_keys(self):
        config = ProctoringConfig(allowedTabSwitches=4, preventCopyPaste=False)

        assert config.allowed_tab_switches == 4
        assert config.prevent_copy_paste is False

    def test_dump_by_alias(self):
        dumped = ProctoringConfig().model_dump(by_alias=True)

        assert dumped["suspiciousActivityThreshold"] == 70
        assert "browserLockdown" in dumped

    def test_frozen(self):
        config = ProctoringConfig()

        with pytest.raises(ValidationError):
            config.face_detection = False


class TestBuildConfig:
    """Tests for build_config()"""

    def test_valid(self):
        assert build_config(allowed_tab_switches=0).allowed_tab_switches == 0

    @pytest.mark.parametrize("values", [
        {"allowed_tab_switches": -1},
        {"suspicious_activity_threshold": 101},
        {"unknown_toggle": True},
    ])
    def test_invalid(self, values):
        with pytest.raises(ConfigurationError):
            build_config(**values)


class TestPresets:
    """Tests for the preset configurations"""

    def test_strict(self):
        assert STRICT_PROCTORING_CONFIG.allowed_tab_switches == 0
        assert STRICT_PROCTORING_CONFIG.microphone_monitoring is True
        assert STRICT_PROCTORING_CONFIG.suspicious_activity_threshold == 50

    def test_thresholds_loosen(self):
        presets = [
            STRICT_PROCTORING_CONFIG,
            MODERATE_PROCTORING_CONFIG,
            LENIENT_PROCTORING_CONFIG,
            BASIC_PROCTORING_CONFIG
        ]

        thresholds = [p.suspicious_activity_threshold for p in presets]
        assert thresholds == sorted(thresholds)

    def test_basic_has_no_camera(self):
        assert BASIC_PROCTORING_CONFIG.webcam_required is False
        assert BASIC_PROCTORING_CONFIG.face_detection is False


class TestProctorSettings:
    """Tests for environment-driven settings"""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("PROCTOR_HEARTBEAT_INTERVAL", raising=False)

        assert ProctorSettings(_env_file=None).HEARTBEAT_INTERVAL == 5.0

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("PROCTOR_HEARTBEAT_INTERVAL", "2.5")
        monkeypatch.setenv("PROCTOR_LOG_LEVEL", "DEBUG")

        loaded = ProctorSettings(_env_file=None)

        assert loaded.HEARTBEAT_INTERVAL == 2.5
        assert loaded.LOG_LEVEL == "DEBUG"
