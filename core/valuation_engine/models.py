"""
Data models for the Valuation Engine.

Every entity is an immutable value object. The engine only consumes and
produces these; persistence and identity belong to the caller. Each result
type renders to a flat, JSON-compatible dict via to_dict().
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum
from typing import Dict, Optional, Tuple


class AdjustmentCategory(Enum):
    """Fixed set of adjustment tags."""
    LOCATION = "location"
    SIZE = "size"
    FLOOR = "floor"
    CONDITION = "condition"
    AGE = "age"
    CLASS = "class"
    AMENITIES = "amenities"
    TIME = "time"

    @classmethod
    def from_string(cls, value: str) -> Optional["AdjustmentCategory"]:
        """Convert string to AdjustmentCategory, case-insensitive."""
        normalised = value.lower().strip()
        for member in cls:
            if member.value == normalised:
                return member
        return None


class ConfidenceLabel(Enum):
    """
    Discrete confidence label.

    High: score >= 0.80
    Medium: score >= 0.60
    Low: otherwise
    """
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AggregationBasis(Enum):
    """Series the aggregate statistics are computed over."""
    PRICE = "price"
    PRICE_PER_UNIT_AREA = "price_per_unit_area"


class AnomalyType(Enum):
    """Classification of an anomalous transaction."""
    ABOVE_MARKET = "above-market"
    BELOW_MARKET = "below-market"
    PRICE_OUTLIER = "price-outlier"
    RAPID_CHANGE = "rapid-change"
    DATA_GAP = "data-gap"


class MarketPosition(Enum):
    """Direction of a transaction's deviation from the market average."""
    ABOVE_MARKET = "above-market"
    BELOW_MARKET = "below-market"


class Severity(Enum):
    """Severity of an anomaly finding."""
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class TrendDirection(Enum):
    """Market trend direction."""
    INCREASING = "increasing"
    STABLE = "stable"
    DECREASING = "decreasing"


def _check_finite(name: str, value: Optional[float]) -> None:
    if value is not None and not math.isfinite(value):
        raise ValueError(f"{name} must be a finite number")


@dataclass(frozen=True)
class Transaction:
    """
    A normalised comparable sale or rental record.

    price is the total price for sales and the monthly rent for rentals.
    """
    # Required fields
    id: str
    street: str
    house_number: str
    city: str
    transaction_date: date
    price: float
    area: float  # Built area in square meters

    # Optional address/physical attributes
    neighborhood: Optional[str] = None
    rooms: Optional[float] = None
    floor: Optional[int] = None

    # Optional lookup attributes (adjustments and weighting only)
    condition: Optional[str] = None
    building_class: Optional[str] = None
    build_year: Optional[int] = None
    parking_spaces: Optional[int] = None
    has_elevator: Optional[bool] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    distance_meters: Optional[float] = None  # Precomputed distance to subject
    reliability: Optional[float] = None  # Source quality, 0-1

    def __post_init__(self) -> None:
        """Validate invariants at construction time."""
        if not self.id:
            raise ValueError("id is required")
        _check_finite("price", self.price)
        _check_finite("area", self.area)
        if self.price <= 0:
            raise ValueError("price must be positive")
        if self.area <= 0:
            raise ValueError("area must be positive")
        if self.rooms is not None and self.rooms < 0:
            raise ValueError("rooms cannot be negative")
        if self.distance_meters is not None and self.distance_meters < 0:
            raise ValueError("distance_meters cannot be negative")
        if self.reliability is not None and not 0 <= self.reliability <= 1:
            raise ValueError("reliability must be between 0 and 1")

    @property
    def price_per_unit_area(self) -> float:
        """Price divided by built area."""
        return self.price / self.area

    @property
    def address(self) -> str:
        """Street and house number."""
        return " ".join(part for part in (self.street, self.house_number) if part)

    @property
    def address_key(self) -> Tuple[str, str, str]:
        """Case-insensitive key for grouping sales of the same address."""
        return (
            self.street.casefold(),
            self.house_number.casefold(),
            self.city.casefold(),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON/CSV output."""
        return {
            "id": self.id,
            "address": self.address,
            "street": self.street,
            "house_number": self.house_number,
            "city": self.city,
            "neighborhood": self.neighborhood,
            "date": self.transaction_date.isoformat(),
            "price": self.price,
            "area": self.area,
            "price_per_unit_area": self.price_per_unit_area,
            "rooms": self.rooms,
            "floor": self.floor,
        }


@dataclass(frozen=True)
class SubjectProperty:
    """
    The property being valued.

    Same shape as a Transaction minus price and date, plus the valuation
    date that time adjustments are measured against.
    """
    area: float
    street: str = ""
    house_number: str = ""
    city: str = ""
    neighborhood: Optional[str] = None
    rooms: Optional[float] = None
    floor: Optional[int] = None
    id: str = "subject"
    valuation_date: date = field(default_factory=date.today)

    condition: Optional[str] = None
    building_class: Optional[str] = None
    build_year: Optional[int] = None
    parking_spaces: Optional[int] = None
    has_elevator: Optional[bool] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    def __post_init__(self) -> None:
        _check_finite("area", self.area)
        if self.area <= 0:
            raise ValueError("area must be positive")

    @property
    def address(self) -> str:
        return " ".join(part for part in (self.street, self.house_number) if part)


@dataclass(frozen=True)
class AdjustmentFactor:
    """
    A signed percentage correction for one difference between a comparable
    and the subject.

    Values conventionally lie in [-50, +50] (FACTOR_VALUE_RANGE); callers
    clamp, the engine does not. A factor with applied=False is kept for the
    audit trail but excluded from the total.
    """
    id: str
    category: AdjustmentCategory
    value: float
    reasoning: str
    source: str = ""
    applied: bool = True

    def __post_init__(self) -> None:
        if not isinstance(self.category, AdjustmentCategory):
            raise ValueError(f"Unknown adjustment category: {self.category!r}")
        if isinstance(self.value, bool) or not math.isfinite(self.value):
            raise ValueError(f"Adjustment value must be finite: {self.value!r}")

    def with_applied(self, applied: bool) -> "AdjustmentFactor":
        """Return a copy with the applied flag set."""
        return replace(self, applied=applied)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category": self.category.value,
            "value": self.value,
            "reasoning": self.reasoning,
            "source": self.source,
            "applied": self.applied,
        }


@dataclass(frozen=True)
class ComparableEvaluation:
    """A comparable with its adjustments, adjusted price and raw weight."""
    transaction: Transaction
    adjustments: Tuple[AdjustmentFactor, ...]
    total_adjustment_percent: float
    adjusted_price: float
    adjusted_price_per_unit_area: float
    weight: float
    similarity_score: float
    weight_breakdown: Dict[str, float] = field(default_factory=dict)
    distance_meters: Optional[float] = None

    @property
    def id(self) -> str:
        return self.transaction.id

    def to_dict(self) -> dict:
        row = self.transaction.to_dict()
        row.update({
            "adjustments": [a.to_dict() for a in self.adjustments],
            "total_adjustment_percent": self.total_adjustment_percent,
            "adjusted_price": self.adjusted_price,
            "adjusted_price_per_unit_area": self.adjusted_price_per_unit_area,
            "weight": self.weight,
            "similarity_score": self.similarity_score,
            "weight_breakdown": dict(self.weight_breakdown),
            "distance_meters": self.distance_meters,
        })
        return row


@dataclass(frozen=True)
class AggregateStatistics:
    """
    Weighted and descriptive statistics over an adjusted series.

    std_dev is the population standard deviation and
    coefficient_of_variation is std_dev / mean as a ratio.
    """
    weighted_average: float
    median: float
    min: float
    max: float
    mean: float
    std_dev: float
    coefficient_of_variation: float
    sample_size: int
    weights: Dict[str, float]
    basis: AggregationBasis = AggregationBasis.PRICE

    def to_dict(self) -> dict:
        return {
            "weighted_average": self.weighted_average,
            "median": self.median,
            "min": self.min,
            "max": self.max,
            "mean": self.mean,
            "std_dev": self.std_dev,
            "coefficient_of_variation": self.coefficient_of_variation,
            "sample_size": self.sample_size,
            "weights": dict(self.weights),
            "basis": self.basis.value,
        }


@dataclass(frozen=True)
class ValueRange:
    """Recommended value range."""
    min: float
    max: float

    def to_dict(self) -> dict:
        return {"min": self.min, "max": self.max}


@dataclass(frozen=True)
class ConfidenceAssessment:
    """Bounded confidence score with its label and contributing factors."""
    score: float
    label: ConfidenceLabel
    factors: Tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "label": self.label.value,
            "factors": list(self.factors),
        }


@dataclass(frozen=True)
class MarketTrend:
    """Direction of price-per-unit-area over the comparable set."""
    direction: TrendDirection
    change_percent: float
    recent_count: int
    older_count: int

    def to_dict(self) -> dict:
        return {
            "direction": self.direction.value,
            "change_percent": self.change_percent,
            "recent_count": self.recent_count,
            "older_count": self.older_count,
        }


@dataclass(frozen=True)
class ExcludedComparable:
    """A comparable left out of aggregation, with the reason."""
    transaction_id: str
    reason: str

    def to_dict(self) -> dict:
        return {"transaction_id": self.transaction_id, "reason": self.reason}


@dataclass(frozen=True)
class ValuationResult:
    """
    Complete valuation result for a subject property.

    A new result is produced for every evaluation request.
    """
    base_price_per_unit_area: float
    adjusted_price_per_unit_area: float
    estimated_value: float
    value_range: ValueRange
    confidence: ConfidenceAssessment
    sample_size: int
    comparables: Tuple[ComparableEvaluation, ...]
    statistics: AggregateStatistics
    market_trend: MarketTrend
    summary: str
    valuation_date: date
    profile: str = "residential"
    excluded_comparables: Tuple[ExcludedComparable, ...] = ()

    @property
    def confidence_label(self) -> ConfidenceLabel:
        return self.confidence.label

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON output."""
        return {
            "base_price_per_unit_area": self.base_price_per_unit_area,
            "adjusted_price_per_unit_area": self.adjusted_price_per_unit_area,
            "estimated_value": self.estimated_value,
            "value_range": self.value_range.to_dict(),
            "confidence": self.confidence.to_dict(),
            "sample_size": self.sample_size,
            "comparables": [c.to_dict() for c in self.comparables],
            "statistics": self.statistics.to_dict(),
            "market_trend": self.market_trend.to_dict(),
            "summary": self.summary,
            "valuation_date": self.valuation_date.isoformat(),
            "profile": self.profile,
            "excluded_comparables": [e.to_dict() for e in self.excluded_comparables],
        }


@dataclass(frozen=True)
class AnomalyReport:
    """
    A statistically or historically anomalous transaction.

    z_score is None for findings that are not z-score based
    (rapid-change, data-gap, manual checks). market_position is None for
    data-gap findings, which carry no price deviation.
    """
    transaction_id: str
    address: str
    city: str
    price: float
    market_average: float
    z_score: Optional[float]
    deviation_percent: float
    anomaly_type: AnomalyType
    market_position: Optional[MarketPosition]
    severity: Severity
    description: str = ""
    recommendation: str = ""

    def to_dict(self) -> dict:
        return {
            "transaction_id": self.transaction_id,
            "address": self.address,
            "city": self.city,
            "price": self.price,
            "market_average": self.market_average,
            "z_score": self.z_score,
            "deviation_percent": self.deviation_percent,
            "anomaly_type": self.anomaly_type.value,
            "market_position": self.market_position.value if self.market_position else None,
            "severity": self.severity.value,
            "description": self.description,
            "recommendation": self.recommendation,
        }


@dataclass(frozen=True)
class NormalizationResult:
    """Output of the normalizer with drop counts for observability."""
    transactions: Tuple[Transaction, ...]
    total_records: int
    dropped_count: int
    rejections_by_code: Dict[str, int] = field(default_factory=dict)

    @property
    def normalized_count(self) -> int:
        return len(self.transactions)

    def to_dict(self) -> dict:
        return {
            "transactions": [t.to_dict() for t in self.transactions],
            "total_records": self.total_records,
            "normalized_count": self.normalized_count,
            "dropped_count": self.dropped_count,
            "rejections_by_code": dict(self.rejections_by_code),
        }


def months_between(earlier: date, later: date) -> float:
    """Months (30-day periods) from earlier to later; negative if reversed."""
    return (later - earlier).days / 30.0

