"""Scoring modules"""

from .risk_scorer import RiskScorer
from .review import ReviewPolicy

__all__ = ["RiskScorer", "ReviewPolicy"]
