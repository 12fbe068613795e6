"""
Proctoring Core

Supervises a student during a timed assessment by detecting:
- Face absence and multiple-person presence
- Tab switches, focus loss, clipboard and context-menu attempts
- Developer-tool and navigation shortcuts
- Suspicious audio, device and network changes

Keeps an append-only violation ledger and a live Risk Score (0-100)
over a five-minute trailing window.
"""

from .config import (
    ProctoringConfig,
    ProctorSettings,
    build_config,
    STRICT_PROCTORING_CONFIG,
    MODERATE_PROCTORING_CONFIG,
    LENIENT_PROCTORING_CONFIG,
    BASIC_PROCTORING_CONFIG
)
from .errors import (
    ProctoringError,
    ConfigurationError,
    SessionStateError,
    DeviceError,
    DeviceAccessError,
    DeviceNotFoundError,
    ModelLoadError,
    StreamTimeoutError
)
from .lifecycle import SessionPhase
from .manager import ProctoringManager
from .schemas import (
    ViolationType,
    Severity,
    ViolationEvent,
    ProctoringState,
    ProctoringSummary,
    EnvironmentScanResult,
    QuestionTiming
)

__all__ = [
    "ProctoringConfig",
    "ProctorSettings",
    "build_config",
    "STRICT_PROCTORING_CONFIG",
    "MODERATE_PROCTORING_CONFIG",
    "LENIENT_PROCTORING_CONFIG",
    "BASIC_PROCTORING_CONFIG",
    "ProctoringError",
    "ConfigurationError",
    "SessionStateError",
    "DeviceError",
    "DeviceAccessError",
    "DeviceNotFoundError",
    "ModelLoadError",
    "StreamTimeoutError",
    "SessionPhase",
    "ProctoringManager",
    "ViolationType",
    "Severity",
    "ViolationEvent",
    "ProctoringState",
    "ProctoringSummary",
    "EnvironmentScanResult",
    "QuestionTiming"
]
