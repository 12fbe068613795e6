"""Sensor modules for proctoring"""

from .face_detector import PreciseDetector, HeuristicDetector
from .presence_detector import PresenceDetector
from .activity_monitor import ActivityMonitor
from .lockdown import LockdownController
from .audio_detector import AudioDetector, AudioAnalysisResult
from .violation_analyzer import ViolationAnalyzer

__all__ = [
    "PreciseDetector",
    "HeuristicDetector",
    "PresenceDetector",
    "ActivityMonitor",
    "LockdownController",
    "AudioDetector",
    "AudioAnalysisResult",
    "ViolationAnalyzer"
]
