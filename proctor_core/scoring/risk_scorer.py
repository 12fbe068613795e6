"""
Risk Scorer - Computes the live risk score from the violation ledger
"""

import logging
from typing import Any, Dict, Iterable, List

from ..schemas import Severity, ViolationEvent

logger = logging.getLogger(__name__)


class RiskScorer:
    """
    Computes a bounded 0-100 risk score from recent violations.

    Formula:
        recent = violations with 0 <= now - timestamp < WINDOW_MS
        score  = sum(WEIGHTS[v.severity] for v in recent)
        score *= FREQUENCY_MULTIPLIER   if len(recent) > FREQUENCY_THRESHOLD
        score  = clamp(score, 0, 100)

    The score is recomputed from scratch on every call, so the same ledger
    and the same ``now`` always give the same value.
    """

    # Weight configuration
    WEIGHTS: Dict[Severity, float] = {
        Severity.LOW: 10.0,
        Severity.MEDIUM: 25.0,
        Severity.HIGH: 50.0
    }

    # Trailing window (5 minutes)
    WINDOW_MS = 300_000

    # More than this many windowed violations triggers the multiplier
    FREQUENCY_THRESHOLD = 5
    FREQUENCY_MULTIPLIER = 1.5

    MAX_SCORE = 100.0

    def __init__(self, weights: Dict[Severity, float] = None, window_ms: int = WINDOW_MS):
        """
        Initialize scorer with optional custom weights.

        Args:
            weights: Optional dict overriding default severity weights
            window_ms: Trailing window length in milliseconds
        """
        self.weights = self.WEIGHTS.copy()
        if weights:
            self.weights.update(weights)
        self.window_ms = window_ms

    def recent(self, violations: Iterable[ViolationEvent], now: int) -> List[ViolationEvent]:
        """Violations inside the trailing window ending at ``now``"""
        return [v for v in violations if 0 <= now - v.timestamp < self.window_ms]

    def compute(self, violations: Iterable[ViolationEvent], now: int) -> float:
        """
        Compute the risk score at time ``now``.

        Args:
            violations: The violation ledger (any order)
            now: Epoch milliseconds to evaluate at

        Returns:
            Risk score (0-100, higher is riskier)
        """
        recent = self.recent(violations, now)

        score = sum(self.weights[v.severity] for v in recent)
        if len(recent) > self.FREQUENCY_THRESHOLD:
            score *= self.FREQUENCY_MULTIPLIER

        final_score = max(0.0, min(self.MAX_SCORE, score))
        logger.debug(f"Computed risk score: {final_score} from {len(recent)} recent violations")
        return final_score

    def compute_breakdown(self, violations: Iterable[ViolationEvent], now: int) -> Dict[str, Any]:
        """
        Compute the risk score with a per-severity breakdown.

        Returns:
            Dict with score, raw score, window count and per-severity contributions
        """
        recent = self.recent(violations, now)

        contributions = {}
        for severity, weight in self.weights.items():
            count = sum(1 for v in recent if v.severity == severity)
            contributions[severity.value] = {
                "count": count,
                "weight": weight,
                "points": count * weight
            }

        raw = sum(c["points"] for c in contributions.values())
        multiplied = len(recent) > self.FREQUENCY_THRESHOLD
        if multiplied:
            raw *= self.FREQUENCY_MULTIPLIER

        return {
            "risk_score": max(0.0, min(self.MAX_SCORE, raw)),
            "raw_score": round(raw, 2),
            "windowed_violations": len(recent),
            "frequency_multiplier_applied": multiplied,
            "contributions": contributions
        }
