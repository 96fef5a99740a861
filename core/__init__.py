"""
Valuation Engine - Core Business Logic

This package provides the comparable-sales valuation pipeline:
1. Normalisation (raw records to Transaction, drops counted by code)
2. Adjustment (signed percentage corrections per difference)
3. Weighting & Aggregation (weighted price per unit area)
4. Confidence Scoring (bounded score and label)
5. Anomaly Detection (z-score, rapid change, data gaps)
"""

from .valuation_engine import (
    InsufficientComparablesError,
    SubjectProperty,
    Transaction,
    ValuationResult,
    detect_anomalies,
    evaluate,
    get_profile,
    normalize,
)

__all__ = [
    "InsufficientComparablesError",
    "SubjectProperty",
    "Transaction",
    "ValuationResult",
    "detect_anomalies",
    "evaluate",
    "get_profile",
    "normalize",
]
