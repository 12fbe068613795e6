"""
Review Policy - Decides whether a finished session needs human review
"""

import logging
from typing import Mapping

logger = logging.getLogger(__name__)


class ReviewPolicy:
    """
    Turns a final risk score and violation breakdown into review hints.

    Priority order:
        urgent  - a multiple-faces or screen-share violation was recorded
        high    - final score reached the suspicious-activity threshold
        normal  - any other violation was recorded
        low     - clean session
    """

    # Violation types that always warrant a look
    CRITICAL_TYPES = ["multiple_faces", "screen_share_stopped"]

    def __init__(self, threshold: float):
        """
        Args:
            threshold: suspicious_activity_threshold from the exam config (0-100)
        """
        self.threshold = threshold

    def threshold_exceeded(self, risk_score: float) -> bool:
        return risk_score >= self.threshold

    def priority(self, risk_score: float, violations_by_type: Mapping[str, int]) -> str:
        """
        Get review priority level.

        Returns:
            'urgent', 'high', 'normal', or 'low'
        """
        if any(violations_by_type.get(t, 0) > 0 for t in self.CRITICAL_TYPES):
            return "urgent"

        if self.threshold_exceeded(risk_score):
            return "high"

        if sum(violations_by_type.values()) > 0:
            return "normal"

        return "low"
