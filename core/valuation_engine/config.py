"""
Configuration for the Valuation Engine.

All thresholds, bands and coefficients used by the engine live here as
module-level defaults and are gathered into ValuationConfig. Property
categories (residential, office, rental) are expressed as profiles that
override a handful of defaults instead of carrying their own formulas.

The constants are tuned heuristics, not outputs of a statistical model.
They are configurable defaults and should be reviewed by a valuer.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict, Final, Optional, Tuple


# =============================================================================
# Normalizer
# =============================================================================

# Optional price-per-unit-area sanity band (None disables the bound)
MIN_PRICE_PER_UNIT_AREA: Final[Optional[float]] = None
MAX_PRICE_PER_UNIT_AREA: Final[Optional[float]] = None


# =============================================================================
# Adjustment Calculator
# =============================================================================

# Conventional range for a single factor. Callers clamp; the engine does not.
FACTOR_VALUE_RANGE: Final[Tuple[float, float]] = (-50.0, 50.0)

# Location: (distance threshold in meters, adjustment %)
FAR_DISTANCE_METERS = 2000.0
FAR_DISTANCE_ADJUSTMENT = -10.0
MID_DISTANCE_METERS = 1000.0
MID_DISTANCE_ADJUSTMENT = -5.0
NEAR_DISTANCE_METERS = 200.0
NEAR_DISTANCE_ADJUSTMENT = 2.0
NEIGHBORHOOD_MISMATCH_ADJUSTMENT = -5.0

# Size: (relative difference threshold, adjustment magnitude %), largest first
SIZE_BANDS: Final[Tuple[Tuple[float, float], ...]] = (
    (0.50, 8.0),
    (0.30, 5.0),
    (0.15, 3.0),
)

# Floor: % per floor of absolute difference
FLOOR_ADJUSTMENT_PER_FLOOR = -1.5

# Condition: ordinal rank per category and % per rank of difference
CONDITION_RANKS: Final[Dict[str, int]] = {
    "poor": 1,
    "fair": 2,
    "good": 3,
    "renovated": 4,
    "excellent": 4,
    "new": 5,
}
CONDITION_STEP_PERCENT = 3.0

# Building class: ordinal rank and % per rank the comparable is above subject
BUILDING_CLASS_RANKS: Final[Dict[str, int]] = {"A": 3, "B": 2, "C": 1}
BUILDING_CLASS_STEP_PERCENT = -8.0

# Age: (absolute build-year difference threshold, adjustment %), largest first
AGE_BANDS: Final[Tuple[Tuple[int, float], ...]] = (
    (10, -5.0),
    (5, -3.0),
)

# Amenities
PARKING_ADJUSTMENT_PER_SPACE = -2.0
ELEVATOR_ADJUSTMENT = 3.0

# Time: market drift applied to months beyond the threshold
TIME_THRESHOLD_MONTHS = 6.0
TIME_ADJUSTMENT_PER_MONTH = 0.3


# =============================================================================
# Weighting & Aggregation
# =============================================================================

# Convex blend of sub-weights (must sum to 1)
WEIGHT_PROXIMITY = 0.30
WEIGHT_SIMILARITY = 0.35
WEIGHT_RELIABILITY = 0.20
WEIGHT_RECENCY = 0.15

# Proximity: (max distance in meters, score)
PROXIMITY_BANDS: Final[Tuple[Tuple[float, float], ...]] = (
    (100.0, 1.0),
    (300.0, 0.9),
    (500.0, 0.7),
    (1000.0, 0.5),
    (2000.0, 0.3),
)
PROXIMITY_FLOOR_SCORE = 0.1

# Similarity sub-weight from |total adjustment %|: (max magnitude, score)
ADJUSTMENT_SIMILARITY_BANDS: Final[Tuple[Tuple[float, float], ...]] = (
    (10.0, 1.0),
    (15.0, 0.85),
    (20.0, 0.7),
)
ADJUSTMENT_SIMILARITY_FLOOR_SCORE = 0.5

# Recency: (max months, score)
RECENCY_BANDS: Final[Tuple[Tuple[float, float], ...]] = (
    (3.0, 1.0),
    (6.0, 0.9),
    (12.0, 0.7),
    (24.0, 0.5),
)
RECENCY_FLOOR_SCORE = 0.3

# Fixed band around the estimate, deliberately not derived from std-dev
RANGE_BAND_PERCENT = 5.0


# =============================================================================
# Confidence Scorer
# =============================================================================

CONFIDENCE_BASE = 0.70
CONFIDENCE_MIN = 0.50
CONFIDENCE_MAX = 0.95
CONFIDENCE_HIGH_THRESHOLD = 0.80
CONFIDENCE_MEDIUM_THRESHOLD = 0.60

LARGE_SAMPLE_SIZE = 5
SMALL_SAMPLE_SIZE = 3


# =============================================================================
# Anomaly Detector
# =============================================================================

ANOMALY_MIN_POPULATION = 5
ANOMALY_REPORT_Z = 1.8
ANOMALY_WARNING_Z = 2.0
ANOMALY_CRITICAL_Z = 2.5

RAPID_CHANGE_PERCENT = 30.0
RAPID_CHANGE_CRITICAL_PERCENT = 50.0
RAPID_CHANGE_WINDOW_MONTHS = 24.0
DATA_GAP_MONTHS = 36.0

# Manual single-price check against a reference average (percent deviation)
PRICE_CHECK_REPORT_PERCENT = 15.0
PRICE_CHECK_WARNING_PERCENT = 25.0
PRICE_CHECK_CRITICAL_PERCENT = 50.0


# =============================================================================
# Market Trend
# =============================================================================

TREND_RECENT_MONTHS = 6.0
TREND_WINDOW_MONTHS = 12.0
TREND_CHANGE_PERCENT = 5.0


@dataclass(frozen=True)
class ValuationConfig:
    """
    Tunable constants for one property category.

    Instances are immutable; use with_overrides() to derive a variant.
    """

    name: str = "custom"

    # Normalizer
    min_price_per_unit_area: Optional[float] = MIN_PRICE_PER_UNIT_AREA
    max_price_per_unit_area: Optional[float] = MAX_PRICE_PER_UNIT_AREA

    # Adjustments
    far_distance_meters: float = FAR_DISTANCE_METERS
    far_distance_adjustment: float = FAR_DISTANCE_ADJUSTMENT
    mid_distance_meters: float = MID_DISTANCE_METERS
    mid_distance_adjustment: float = MID_DISTANCE_ADJUSTMENT
    near_distance_meters: float = NEAR_DISTANCE_METERS
    near_distance_adjustment: float = NEAR_DISTANCE_ADJUSTMENT
    neighborhood_mismatch_adjustment: float = NEIGHBORHOOD_MISMATCH_ADJUSTMENT
    size_bands: Tuple[Tuple[float, float], ...] = SIZE_BANDS
    floor_adjustment_per_floor: float = FLOOR_ADJUSTMENT_PER_FLOOR
    condition_ranks: Dict[str, int] = field(default_factory=lambda: dict(CONDITION_RANKS))
    condition_step_percent: float = CONDITION_STEP_PERCENT
    building_class_ranks: Dict[str, int] = field(
        default_factory=lambda: dict(BUILDING_CLASS_RANKS)
    )
    building_class_step_percent: float = BUILDING_CLASS_STEP_PERCENT
    age_bands: Tuple[Tuple[int, float], ...] = AGE_BANDS
    parking_adjustment_per_space: float = PARKING_ADJUSTMENT_PER_SPACE
    elevator_adjustment: float = ELEVATOR_ADJUSTMENT
    time_threshold_months: float = TIME_THRESHOLD_MONTHS
    time_adjustment_per_month: float = TIME_ADJUSTMENT_PER_MONTH

    # Weighting
    weight_proximity: float = WEIGHT_PROXIMITY
    weight_similarity: float = WEIGHT_SIMILARITY
    weight_reliability: float = WEIGHT_RELIABILITY
    weight_recency: float = WEIGHT_RECENCY
    proximity_bands: Tuple[Tuple[float, float], ...] = PROXIMITY_BANDS
    proximity_floor_score: float = PROXIMITY_FLOOR_SCORE
    adjustment_similarity_bands: Tuple[Tuple[float, float], ...] = ADJUSTMENT_SIMILARITY_BANDS
    adjustment_similarity_floor_score: float = ADJUSTMENT_SIMILARITY_FLOOR_SCORE
    recency_bands: Tuple[Tuple[float, float], ...] = RECENCY_BANDS
    recency_floor_score: float = RECENCY_FLOOR_SCORE
    range_band_percent: float = RANGE_BAND_PERCENT

    # Comparable selection (None disables)
    max_total_adjustment_percent: Optional[float] = None
    max_comparables: Optional[int] = None

    # Confidence
    confidence_base: float = CONFIDENCE_BASE
    confidence_min: float = CONFIDENCE_MIN
    confidence_max: float = CONFIDENCE_MAX
    confidence_high_threshold: float = CONFIDENCE_HIGH_THRESHOLD
    confidence_medium_threshold: float = CONFIDENCE_MEDIUM_THRESHOLD

    # Anomalies
    anomaly_min_population: int = ANOMALY_MIN_POPULATION
    anomaly_report_z: float = ANOMALY_REPORT_Z
    anomaly_warning_z: float = ANOMALY_WARNING_Z
    anomaly_critical_z: float = ANOMALY_CRITICAL_Z
    rapid_change_percent: float = RAPID_CHANGE_PERCENT
    rapid_change_critical_percent: float = RAPID_CHANGE_CRITICAL_PERCENT
    rapid_change_window_months: float = RAPID_CHANGE_WINDOW_MONTHS
    data_gap_months: float = DATA_GAP_MONTHS

    def __post_init__(self) -> None:
        """Validate blend coefficients and confidence thresholds."""
        blend = (
            self.weight_proximity
            + self.weight_similarity
            + self.weight_reliability
            + self.weight_recency
        )
        if abs(blend - 1.0) > 1e-9:
            raise ValueError(f"weight blend must sum to 1, got {blend}")
        if not self.confidence_min <= self.confidence_max:
            raise ValueError("confidence_min must be <= confidence_max")
        if not self.confidence_medium_threshold <= self.confidence_high_threshold:
            raise ValueError("medium threshold must be <= high threshold")
        if self.max_comparables is not None and self.max_comparables < 1:
            raise ValueError("max_comparables must be positive if provided")

    def with_overrides(self, **overrides) -> "ValuationConfig":
        """Return a copy with the given fields replaced."""
        return replace(self, **overrides)

    def to_dict(self) -> dict:
        """Key constants for display."""
        return {
            "name": self.name,
            "range_band_percent": self.range_band_percent,
            "time_threshold_months": self.time_threshold_months,
            "time_adjustment_per_month": self.time_adjustment_per_month,
            "floor_adjustment_per_floor": self.floor_adjustment_per_floor,
            "condition_step_percent": self.condition_step_percent,
            "max_total_adjustment_percent": self.max_total_adjustment_percent,
            "max_comparables": self.max_comparables,
            "weights": {
                "proximity": self.weight_proximity,
                "similarity": self.weight_similarity,
                "reliability": self.weight_reliability,
                "recency": self.weight_recency,
            },
        }


# =============================================================================
# Property-Category Profiles
# =============================================================================

PROFILES: Final[Dict[str, ValuationConfig]] = {
    "residential": ValuationConfig(
        name="residential",
        min_price_per_unit_area=1_000.0,
        max_price_per_unit_area=200_000.0,
    ),
    "office": ValuationConfig(
        name="office",
        condition_step_percent=5.0,
        max_total_adjustment_percent=30.0,
    ),
    "rental": ValuationConfig(
        name="rental",
        time_threshold_months=0.0,
        time_adjustment_per_month=0.5,
        floor_adjustment_per_floor=-1.5,
        max_comparables=10,
    ),
}

PROFILE_NAMES: Final = tuple(PROFILES)

DEFAULT_CONFIG: Final = PROFILES["residential"]


def get_profile(name: Optional[str] = None) -> ValuationConfig:
    """
    Look up a property-category profile by name.

    Args:
        name: Profile name, case-insensitive (default: residential)

    Returns:
        The profile's ValuationConfig

    Raises:
        ValueError: If the name is not a known profile
    """
    key = (name or "residential").strip().lower()
    try:
        return PROFILES[key]
    except KeyError:
        raise ValueError(
            f"Unknown valuation profile: {name!r} (expected one of {', '.join(PROFILE_NAMES)})"
        ) from None
