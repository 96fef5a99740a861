"""
Adjustment Calculator

For a (subject, comparable) pair, computes one signed percentage
correction per difference between them. Every adjustment moves the
comparable's indicated value toward what it implies for the subject:
a larger, newer or better-graded comparable is discounted, a smaller or
worse one is marked up.

Factors whose inputs are missing on either side are omitted entirely.
A factor with value 0 means "computed, no difference", never "unknown".
"""

from __future__ import annotations

import math
from datetime import date
from typing import Iterable, List, Optional

from .config import DEFAULT_CONFIG, ValuationConfig
from .models import (
    AdjustmentCategory,
    AdjustmentFactor,
    SubjectProperty,
    Transaction,
    months_between,
)


# Mean Earth radius in meters
EARTH_RADIUS_METERS = 6_371_000.0

# Every factor id compute_adjustments can emit, in output order
FACTOR_IDS = (
    "location", "neighborhood", "size", "floor", "condition",
    "class", "age", "parking", "elevator", "time",
)


def haversine_distance_meters(
    lat1: float, lon1: float,
    lat2: float, lon2: float,
) -> float:
    """
    Calculate distance between two points in meters using Haversine formula.

    Args:
        lat1, lon1: First point coordinates (degrees)
        lat2, lon2: Second point coordinates (degrees)

    Returns:
        Distance in meters
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
    )
    c = 2 * math.asin(math.sqrt(a))

    return EARTH_RADIUS_METERS * c


def comparable_distance(
    subject: SubjectProperty,
    comparable: Transaction,
) -> Optional[float]:
    """
    Distance from subject to comparable in meters, if it can be known.

    A precomputed distance on the comparable wins over coordinates.
    """
    if comparable.distance_meters is not None:
        return comparable.distance_meters
    coords = (subject.latitude, subject.longitude, comparable.latitude, comparable.longitude)
    if any(c is None for c in coords):
        return None
    return haversine_distance_meters(*coords)


def _factor(
    factor_id: str,
    category: AdjustmentCategory,
    value: float,
    reasoning: str,
    source: str,
) -> AdjustmentFactor:
    # round() keeps float noise out of the audit trail; + 0.0 folds -0.0
    return AdjustmentFactor(
        id=factor_id,
        category=category,
        value=round(value, 4) + 0.0,
        reasoning=reasoning,
        source=source,
    )


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


# =============================================================================
# Individual Rules
# =============================================================================

def _location_factor(subject, comparable, config) -> Optional[AdjustmentFactor]:
    distance = comparable_distance(subject, comparable)
    if distance is None:
        return None

    if distance > config.far_distance_meters:
        value = config.far_distance_adjustment
        reasoning = f"Comparable is {distance:.0f} m away, beyond {config.far_distance_meters:.0f} m"
    elif distance > config.mid_distance_meters:
        value = config.mid_distance_adjustment
        reasoning = f"Comparable is {distance:.0f} m away, beyond {config.mid_distance_meters:.0f} m"
    elif distance < config.near_distance_meters:
        value = config.near_distance_adjustment
        reasoning = f"Comparable is {distance:.0f} m away, within {config.near_distance_meters:.0f} m"
    else:
        value = 0.0
        reasoning = f"Comparable is {distance:.0f} m away, no location correction"

    return _factor("location", AdjustmentCategory.LOCATION, value, reasoning,
                   f"{config.name} distance bands")


def _neighborhood_factor(subject, comparable, config) -> Optional[AdjustmentFactor]:
    if _blank(subject.neighborhood) or _blank(comparable.neighborhood):
        return None

    if subject.neighborhood.strip().casefold() == comparable.neighborhood.strip().casefold():
        value = 0.0
        reasoning = f"Same neighborhood ({comparable.neighborhood})"
    else:
        value = config.neighborhood_mismatch_adjustment
        reasoning = (
            f"Comparable is in {comparable.neighborhood}, "
            f"subject is in {subject.neighborhood}"
        )

    return _factor("neighborhood", AdjustmentCategory.LOCATION, value, reasoning,
                   f"{config.name} neighborhood rule")


def _size_factor(subject, comparable, config) -> AdjustmentFactor:
    diff = (comparable.area - subject.area) / subject.area

    value = 0.0
    for threshold, magnitude in config.size_bands:
        if abs(diff) > threshold:
            # Larger comparable is discounted toward the subject
            value = -magnitude if diff > 0 else magnitude
            break

    if value:
        direction = "larger" if diff > 0 else "smaller"
        reasoning = (
            f"Comparable is {abs(diff) * 100:.0f}% {direction} "
            f"({comparable.area:g} vs {subject.area:g} sqm)"
        )
    else:
        reasoning = f"Size within {config.size_bands[-1][0] * 100:.0f}% of subject"

    return _factor("size", AdjustmentCategory.SIZE, value, reasoning,
                   f"{config.name} size bands")


def _floor_factor(subject, comparable, config) -> Optional[AdjustmentFactor]:
    if subject.floor is None or comparable.floor is None:
        return None

    floors = abs(comparable.floor - subject.floor)
    value = floors * config.floor_adjustment_per_floor
    reasoning = (
        f"Floor {comparable.floor} vs subject floor {subject.floor} "
        f"({floors} floor difference)"
    )

    return _factor("floor", AdjustmentCategory.FLOOR, value, reasoning,
                   f"{config.name} floor rate {config.floor_adjustment_per_floor}% per floor")


def _condition_factor(subject, comparable, config) -> Optional[AdjustmentFactor]:
    if _blank(subject.condition) or _blank(comparable.condition):
        return None

    ranks = config.condition_ranks
    subject_rank = ranks.get(subject.condition.strip().lower())
    comp_rank = ranks.get(comparable.condition.strip().lower())
    if subject_rank is None or comp_rank is None:
        return None

    value = (subject_rank - comp_rank) * config.condition_step_percent
    reasoning = f"Condition '{comparable.condition}' vs subject '{subject.condition}'"

    return _factor("condition", AdjustmentCategory.CONDITION, value, reasoning,
                   f"{config.name} condition table")


def _class_factor(subject, comparable, config) -> Optional[AdjustmentFactor]:
    if _blank(subject.building_class) or _blank(comparable.building_class):
        return None

    ranks = config.building_class_ranks
    subject_rank = ranks.get(subject.building_class.strip().upper())
    comp_rank = ranks.get(comparable.building_class.strip().upper())
    if subject_rank is None or comp_rank is None:
        return None

    value = (comp_rank - subject_rank) * config.building_class_step_percent
    reasoning = (
        f"Building class {comparable.building_class.upper()} "
        f"vs subject class {subject.building_class.upper()}"
    )

    return _factor("class", AdjustmentCategory.CLASS, value, reasoning,
                   f"{config.name} building class table")


def _age_factor(subject, comparable, config) -> Optional[AdjustmentFactor]:
    if subject.build_year is None or comparable.build_year is None:
        return None

    years = abs(comparable.build_year - subject.build_year)
    value = 0.0
    for threshold, adjustment in config.age_bands:
        if years > threshold:
            value = adjustment
            break

    reasoning = (
        f"Built {comparable.build_year} vs subject {subject.build_year} "
        f"({years} years apart)"
    )

    return _factor("age", AdjustmentCategory.AGE, value, reasoning,
                   f"{config.name} age bands")


def _parking_factor(subject, comparable, config) -> Optional[AdjustmentFactor]:
    if subject.parking_spaces is None or comparable.parking_spaces is None:
        return None

    diff = comparable.parking_spaces - subject.parking_spaces
    value = diff * config.parking_adjustment_per_space
    reasoning = (
        f"{comparable.parking_spaces} parking space(s) vs "
        f"{subject.parking_spaces} for subject"
    )

    return _factor("parking", AdjustmentCategory.AMENITIES, value, reasoning,
                   f"{config.name} parking rate")


def _elevator_factor(subject, comparable, config) -> Optional[AdjustmentFactor]:
    if subject.has_elevator is None or comparable.has_elevator is None:
        return None

    if comparable.has_elevator == subject.has_elevator:
        value = 0.0
        reasoning = "Elevator access matches subject"
    elif comparable.has_elevator:
        value = -config.elevator_adjustment
        reasoning = "Comparable has an elevator, subject does not"
    else:
        value = config.elevator_adjustment
        reasoning = "Subject has an elevator, comparable does not"

    return _factor("elevator", AdjustmentCategory.AMENITIES, value, reasoning,
                   f"{config.name} elevator rule")


def _time_factor(comparable, reference_date, config) -> AdjustmentFactor:
    months = months_between(comparable.transaction_date, reference_date)
    excess = months - config.time_threshold_months

    if months > 0 and excess > 0:
        value = round(excess * config.time_adjustment_per_month, 2)
        reasoning = (
            f"Sold {months:.1f} months before {reference_date.isoformat()}; "
            f"{config.time_adjustment_per_month}% per month beyond "
            f"{config.time_threshold_months:g} months"
        )
    else:
        value = 0.0
        reasoning = f"Sold {max(months, 0.0):.1f} months ago, within time threshold"

    return _factor("time", AdjustmentCategory.TIME, value, reasoning,
                   f"{config.name} market drift rate")


# =============================================================================
# Public API
# =============================================================================

def compute_adjustments(
    subject: SubjectProperty,
    comparable: Transaction,
    config: Optional[ValuationConfig] = None,
    reference_date: Optional[date] = None,
) -> List[AdjustmentFactor]:
    """
    Compute every adjustment factor for a comparable against the subject.

    Args:
        subject: The property being valued
        comparable: A normalised comparable transaction
        config: Tunable constants (default: DEFAULT_CONFIG)
        reference_date: Date time decay is measured to
            (default: subject.valuation_date)

    Returns:
        List of AdjustmentFactor, all applied, in a fixed order
    """
    config = config or DEFAULT_CONFIG
    reference_date = reference_date or subject.valuation_date

    candidates = [
        _location_factor(subject, comparable, config),
        _neighborhood_factor(subject, comparable, config),
        _size_factor(subject, comparable, config),
        _floor_factor(subject, comparable, config),
        _condition_factor(subject, comparable, config),
        _class_factor(subject, comparable, config),
        _age_factor(subject, comparable, config),
        _parking_factor(subject, comparable, config),
        _elevator_factor(subject, comparable, config),
        _time_factor(comparable, reference_date, config),
    ]

    return [f for f in candidates if f is not None]


def total_adjustment_percent(factors: Iterable[AdjustmentFactor]) -> float:
    """Sum of the values of applied factors."""
    return sum(f.value for f in factors if f.applied)


def toggle_adjustment(
    factors: Iterable[AdjustmentFactor],
    factor_id: str,
    applied: bool,
) -> List[AdjustmentFactor]:
    """
    Return a new factor list with one factor's applied flag set.

    Raises:
        ValueError: If no factor has the given id
    """
    factors = list(factors)
    if not any(f.id == factor_id for f in factors):
        raise ValueError(f"Unknown adjustment factor: {factor_id!r}")

    return [
        f.with_applied(applied) if f.id == factor_id else f
        for f in factors
    ]
