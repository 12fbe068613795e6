"""
Proctoring Schemas - Violation events, state snapshots and probe results
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel


class ViolationType(str, Enum):
    """Kinds of deviation a sensor can report"""
    FACE_NOT_DETECTED = "face_not_detected"
    MULTIPLE_FACES = "multiple_faces"
    TAB_SWITCH = "tab_switch"
    WINDOW_BLUR = "window_blur"
    COPY_PASTE = "copy_paste"
    RIGHT_CLICK = "right_click"
    SUSPICIOUS_MOVEMENT = "suspicious_movement"
    AUDIO_DETECTED = "audio_detected"
    SCREEN_SHARE_STOPPED = "screen_share_stopped"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ViolationEvent(BaseModel):
    """A single detected deviation. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    type: ViolationType
    timestamp: int = Field(..., description="Epoch milliseconds")
    severity: Severity
    description: str
    data: Optional[Mapping[str, Any]] = None

    @field_validator("data", mode="after")
    @classmethod
    def _freeze_data(cls, value):
        return None if value is None else _freeze(value)

    @field_serializer("data")
    def _dump_data(self, value):
        return None if value is None else _thaw(value)


def _freeze(value: Any) -> Any:
    """Read-only copy: mappings become mapping proxies, lists and sets become tuples"""
    if isinstance(value, Mapping):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple, set, frozenset)):
        return tuple(_freeze(v) for v in value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: _thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [_thaw(v) for v in value]
    return value


class ProctoringState(BaseModel):
    """Snapshot of a session's live state, handed to observers"""

    model_config = ConfigDict(frozen=True)

    is_active: bool = False
    is_initialized: bool = False
    has_webcam: bool = False
    has_microphone: bool = False
    violations: Tuple[ViolationEvent, ...] = ()
    risk_score: float = 0.0
    last_heartbeat: int = 0


class ProctoringSummary(BaseModel):
    """End-of-session digest of the violation ledger"""

    total_violations: int
    violations_by_type: Dict[str, int]
    severity_breakdown: Dict[str, int]
    final_risk_score: float
    session_duration: int
    threshold_exceeded: bool
    review_priority: str


class EnvironmentScanResult(BaseModel):
    """Outcome of the pre-exam environment scan"""

    success: bool
    issues: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


class QuestionTiming(BaseModel):
    """Time a student spent on one question (milliseconds)"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    question_id: str
    time_spent: float


@dataclass
class LightingCheck:
    """Result of a lighting probe"""
    adequate: bool
    brightness: float


@dataclass
class CompatibilityReport:
    """Browser feature support relevant to proctoring"""
    compatible: bool
    issues: List[str] = field(default_factory=list)


@dataclass
class FingerprintCheck:
    """Whether the browser fingerprint matches the first capture"""
    consistent: bool
    changes: List[str] = field(default_factory=list)
