"""
Audio Detector - Detects speech and multi-voice patterns in microphone audio

Turns raw int16 PCM into 128 byte-scaled frequency bins the way a browser
AnalyserNode does (FFT size 256, Blackman window, time smoothing, dB range
-100..-30 mapped to 0..255) and analyses the bin levels.

Features:
- Loud audio with energy in the speech band (possible communication)
- Skewed high/low band energy ratio (possible multiple voices)
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import numpy as np

logger = logging.getLogger(__name__)


@dataclass
class AudioAnalysisResult:
    """Result of audio analysis"""
    average: float
    speech_level: float
    energy_ratio: Optional[float]
    speech_suspected: bool
    complex_pattern: bool
    data: Dict[str, Any] = field(default_factory=dict)


class AudioDetector:
    """
    Analyses frequency-bin levels for suspicious audio.

    Bin ranges (at 44.1 kHz each bin is ~172 Hz wide):
    - speech band: bins 5-24
    - high band:   bins 25-59
    """

    FFT_SIZE = 256
    MIN_DECIBELS = -100.0
    MAX_DECIBELS = -30.0
    SMOOTHING = 0.8

    LOUD_AVERAGE = 50
    SPEECH_LEVEL = 30
    ACTIVE_AVERAGE = 20
    HIGH_RATIO = 1.5
    LOW_RATIO = 0.3

    SPEECH_BAND = slice(5, 25)
    HIGH_BAND = slice(25, 60)

    def __init__(self, smoothing: float = SMOOTHING):
        """
        Initialize audio detector.

        Args:
            smoothing: Time smoothing between consecutive spectra (0 disables)
        """
        self.smoothing = smoothing
        self._window = np.blackman(self.FFT_SIZE)
        self._previous: Optional[np.ndarray] = None

        self._total_samples = 0
        self._suspicious_samples = 0

    @property
    def bin_count(self) -> int:
        return self.FFT_SIZE // 2

    def frequency_bins(self, samples: np.ndarray) -> np.ndarray:
        """
        Convert the latest PCM chunk to byte frequency data.

        Args:
            samples: int16 PCM (mono); only the last FFT_SIZE samples are used

        Returns:
            uint8 array of length FFT_SIZE / 2
        """
        pcm = np.asarray(samples, dtype=np.float64).ravel() / 32768.0
        if pcm.size < self.FFT_SIZE:
            pcm = np.pad(pcm, (self.FFT_SIZE - pcm.size, 0))
        else:
            pcm = pcm[-self.FFT_SIZE:]

        spectrum = np.abs(np.fft.rfft(pcm * self._window))[:self.bin_count] / self.FFT_SIZE

        if self._previous is not None and self.smoothing > 0:
            spectrum = self.smoothing * self._previous + (1 - self.smoothing) * spectrum
        self._previous = spectrum

        with np.errstate(divide="ignore"):
            decibels = 20 * np.log10(spectrum)

        scaled = 255 * (decibels - self.MIN_DECIBELS) / (self.MAX_DECIBELS - self.MIN_DECIBELS)
        return np.clip(np.nan_to_num(scaled, neginf=0.0), 0, 255).astype(np.uint8)

    def analyze(self, bins: np.ndarray) -> AudioAnalysisResult:
        """
        Analyse one set of frequency bins.

        Args:
            bins: Byte frequency data (0-255 per bin)

        Returns:
            AudioAnalysisResult with detection flags
        """
        levels = np.asarray(bins, dtype=np.float64)
        average = float(levels.mean()) if levels.size else 0.0

        speech = levels[self.SPEECH_BAND]
        speech_level = float(speech.mean()) if speech.size else 0.0

        speech_suspected = average > self.LOUD_AVERAGE and speech_level > self.SPEECH_LEVEL

        high_energy = float(levels[self.HIGH_BAND].sum())
        low_energy = float(speech.sum())
        ratio = None
        complex_pattern = False
        if high_energy > 0 and low_energy > 0 and average > self.ACTIVE_AVERAGE:
            ratio = high_energy / low_energy
            complex_pattern = ratio > self.HIGH_RATIO or ratio < self.LOW_RATIO

        self._total_samples += 1
        if speech_suspected or complex_pattern:
            self._suspicious_samples += 1

        return AudioAnalysisResult(
            average=average,
            speech_level=speech_level,
            energy_ratio=ratio,
            speech_suspected=speech_suspected,
            complex_pattern=complex_pattern,
            data={
                "max_level": int(levels.max()) if levels.size else 0,
                "high_energy": high_energy,
                "low_energy": low_energy
            }
        )

    def get_metrics(self) -> Dict[str, Any]:
        """Get accumulated audio metrics"""
        return {
            "total_samples": self._total_samples,
            "suspicious_samples": self._suspicious_samples,
            "suspicious_ratio": self._suspicious_samples / max(1, self._total_samples)
        }

    def reset(self):
        """Reset smoothing state and counters"""
        self._previous = None
        self._total_samples = 0
        self._suspicious_samples = 0
