"""
Valuation Engine v1.0

Comparable-sales valuation: normalise raw transaction records, adjust
each comparable toward the subject property, weight and aggregate the
adjusted prices, score confidence, and flag anomalous transactions.

Pure computation: no I/O, no persistence, no shared state.
"""

from .models import (
    AdjustmentCategory,
    AdjustmentFactor,
    AggregateStatistics,
    AggregationBasis,
    AnomalyReport,
    AnomalyType,
    ComparableEvaluation,
    ConfidenceAssessment,
    ConfidenceLabel,
    ExcludedComparable,
    MarketPosition,
    MarketTrend,
    NormalizationResult,
    Severity,
    SubjectProperty,
    Transaction,
    TrendDirection,
    ValuationResult,
    ValueRange,
)
from .config import (
    DEFAULT_CONFIG,
    PROFILE_NAMES,
    PROFILES,
    ValuationConfig,
    get_profile,
)
from .exceptions import InsufficientComparablesError, ValuationError
from .normalizer import normalize, REJECTION_CODES
from .adjustments import compute_adjustments, toggle_adjustment, total_adjustment_percent
from .aggregation import aggregate, compute_weight, evaluate_comparable, similarity_score, value_range
from .confidence import score_confidence
from .anomalies import (
    check_price,
    detect_anomalies,
    detect_data_gaps,
    detect_rapid_changes,
    merge_reports,
)
from .valuation import evaluate, market_trend

__all__ = [
    # Models
    "AdjustmentCategory",
    "AdjustmentFactor",
    "AggregateStatistics",
    "AggregationBasis",
    "AnomalyReport",
    "AnomalyType",
    "ComparableEvaluation",
    "ConfidenceAssessment",
    "ConfidenceLabel",
    "ExcludedComparable",
    "MarketPosition",
    "MarketTrend",
    "NormalizationResult",
    "Severity",
    "SubjectProperty",
    "Transaction",
    "TrendDirection",
    "ValuationResult",
    "ValueRange",
    # Configuration
    "DEFAULT_CONFIG",
    "PROFILE_NAMES",
    "PROFILES",
    "ValuationConfig",
    "get_profile",
    # Errors
    "InsufficientComparablesError",
    "ValuationError",
    # Components
    "normalize",
    "REJECTION_CODES",
    "compute_adjustments",
    "toggle_adjustment",
    "total_adjustment_percent",
    "aggregate",
    "compute_weight",
    "evaluate_comparable",
    "similarity_score",
    "value_range",
    "score_confidence",
    "check_price",
    "detect_anomalies",
    "detect_data_gaps",
    "detect_rapid_changes",
    "merge_reports",
    # Pipeline
    "evaluate",
    "market_trend",
]

__version__ = "1.0"
