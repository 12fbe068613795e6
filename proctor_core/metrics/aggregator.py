"""
Violation Ledger - Append-only record of a session's violations
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from ..schemas import ProctoringSummary, ViolationEvent
from ..scoring.review import ReviewPolicy

logger = logging.getLogger(__name__)


@dataclass
class ViolationLedger:
    """
    Aggregates every violation reported during a proctoring session.

    Entries are kept in arrival order, which is chronological because all
    sensors stamp events from the same clock on the same loop. Nothing is
    ever removed or rewritten.
    """

    session_id: str
    _violations: List[ViolationEvent] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self._violations)

    def record(self, violation: ViolationEvent):
        """Append one violation"""
        self._violations.append(violation)

    @property
    def violations(self) -> Tuple[ViolationEvent, ...]:
        return tuple(self._violations)

    def counts_by_type(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for v in self._violations:
            counts[v.type.value] = counts.get(v.type.value, 0) + 1
        return counts

    def severity_breakdown(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for v in self._violations:
            counts[v.severity.value] = counts.get(v.severity.value, 0) + 1
        return counts

    def get_summary(
        self,
        risk_score: float,
        session_duration: int,
        policy: ReviewPolicy
    ) -> ProctoringSummary:
        """
        Get complete ledger summary.

        Args:
            risk_score: Current risk score (0-100)
            session_duration: Duration value reported to the host (ms)
            policy: Review policy holding the exam's threshold

        Returns:
            ProctoringSummary for the host
        """
        by_type = self.counts_by_type()

        return ProctoringSummary(
            total_violations=len(self._violations),
            violations_by_type=by_type,
            severity_breakdown=self.severity_breakdown(),
            final_risk_score=risk_score,
            session_duration=session_duration,
            threshold_exceeded=policy.threshold_exceeded(risk_score),
            review_priority=policy.priority(risk_score, by_type)
        )
