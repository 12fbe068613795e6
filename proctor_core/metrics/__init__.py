"""Metrics aggregation module"""

from .aggregator import ViolationLedger

__all__ = ["ViolationLedger"]
