"""
Weighting & Aggregation

Turns each comparable's adjustments into a relevance weight, then
reduces a set of evaluations to a weighted estimate plus descriptive
statistics over the same adjusted series.

Dispersion uses population statistics (divide by n, not n - 1), the
same convention as the anomaly detector.
"""

from __future__ import annotations

import logging
import math
import statistics
from datetime import date
from typing import Dict, Iterable, Optional, Sequence, Tuple

from .adjustments import comparable_distance, compute_adjustments, total_adjustment_percent
from .config import DEFAULT_CONFIG, RANGE_BAND_PERCENT, ValuationConfig
from .exceptions import InsufficientComparablesError
from .models import (
    AdjustmentFactor,
    AggregateStatistics,
    AggregationBasis,
    ComparableEvaluation,
    SubjectProperty,
    Transaction,
    ValueRange,
    months_between,
)

logger = logging.getLogger(__name__)


def _band_score(
    value: float,
    bands: Sequence[Tuple[float, float]],
    floor_score: float,
) -> float:
    """Score of the first band whose upper bound covers value."""
    for upper, score in bands:
        if value <= upper:
            return score
    return floor_score


# =============================================================================
# Weighting
# =============================================================================

def compute_weight(
    total_adjustment: float,
    distance_meters: Optional[float],
    months_since_sale: float,
    reliability: Optional[float],
    config: Optional[ValuationConfig] = None,
) -> Tuple[float, Dict[str, float]]:
    """
    Blend sub-weights into one raw weight.

    Sub-weights:
    - proximity: distance bands (skipped if distance unknown)
    - similarity: smaller |total adjustment| scores higher
    - reliability: source quality (skipped if unknown)
    - recency: months-since-sale bands

    Unavailable sub-weights drop out of the convex blend and the remaining
    coefficients are rescaled to sum to 1.

    Returns:
        Tuple of (weight, {sub-weight name: score})
    """
    config = config or DEFAULT_CONFIG

    scores: Dict[str, float] = {}
    coefficients: Dict[str, float] = {}

    if distance_meters is not None:
        scores["proximity"] = _band_score(
            distance_meters, config.proximity_bands, config.proximity_floor_score
        )
        coefficients["proximity"] = config.weight_proximity

    scores["similarity"] = _band_score(
        abs(total_adjustment),
        config.adjustment_similarity_bands,
        config.adjustment_similarity_floor_score,
    )
    coefficients["similarity"] = config.weight_similarity

    if reliability is not None:
        scores["reliability"] = reliability
        coefficients["reliability"] = config.weight_reliability

    scores["recency"] = _band_score(
        max(months_since_sale, 0.0), config.recency_bands, config.recency_floor_score
    )
    coefficients["recency"] = config.weight_recency

    blend = sum(coefficients.values())
    weight = sum(scores[k] * coefficients[k] for k in scores) / blend

    return weight, scores


def similarity_score(
    subject: SubjectProperty,
    comparable: Transaction,
    reference_date: Optional[date] = None,
) -> float:
    """
    Informational 0-100 similarity between subject and comparable.

    Starts at 100 and loses points for area, room, floor and age-of-sale
    differences; same neighborhood earns a bonus, a different one a
    penalty. Not used in the estimate except to rank comparables.
    """
    reference_date = reference_date or subject.valuation_date
    score = 100.0

    score -= 20 * abs(comparable.area - subject.area) / subject.area

    if subject.neighborhood and comparable.neighborhood:
        if subject.neighborhood.casefold() == comparable.neighborhood.casefold():
            score += 10
        else:
            score -= 15

    if subject.rooms is not None and comparable.rooms is not None:
        score -= 5 * abs(comparable.rooms - subject.rooms)

    if subject.floor is not None and comparable.floor is not None:
        score -= 2 * abs(comparable.floor - subject.floor)

    months = months_between(comparable.transaction_date, reference_date)
    score -= 1.5 * max(months, 0.0)

    return round(min(max(score, 0.0), 100.0), 2)


def evaluate_comparable(
    subject: SubjectProperty,
    comparable: Transaction,
    config: Optional[ValuationConfig] = None,
    reference_date: Optional[date] = None,
    adjustments: Optional[Iterable[AdjustmentFactor]] = None,
) -> ComparableEvaluation:
    """
    Build the evaluation of one comparable.

    Args:
        subject: The property being valued
        comparable: A normalised comparable transaction
        config: Tunable constants (default: DEFAULT_CONFIG)
        reference_date: Date time decay and recency are measured to
            (default: subject.valuation_date)
        adjustments: Pre-computed factors, e.g. after user toggles
            (default: compute_adjustments)

    Returns:
        ComparableEvaluation with adjusted price, weight and similarity
    """
    config = config or DEFAULT_CONFIG
    reference_date = reference_date or subject.valuation_date

    if adjustments is None:
        adjustments = compute_adjustments(subject, comparable, config, reference_date)
    adjustments = tuple(adjustments)

    total = total_adjustment_percent(adjustments)
    adjusted_price = comparable.price * (1 + total / 100)

    distance = comparable_distance(subject, comparable)
    weight, breakdown = compute_weight(
        total_adjustment=total,
        distance_meters=distance,
        months_since_sale=months_between(comparable.transaction_date, reference_date),
        reliability=comparable.reliability,
        config=config,
    )

    return ComparableEvaluation(
        transaction=comparable,
        adjustments=adjustments,
        total_adjustment_percent=total,
        adjusted_price=adjusted_price,
        adjusted_price_per_unit_area=adjusted_price / comparable.area,
        weight=weight,
        similarity_score=similarity_score(subject, comparable, reference_date),
        weight_breakdown=breakdown,
        distance_meters=distance,
    )


# =============================================================================
# Aggregation
# =============================================================================

def _series_value(evaluation: ComparableEvaluation, basis: AggregationBasis) -> float:
    if basis is AggregationBasis.PRICE_PER_UNIT_AREA:
        return evaluation.adjusted_price_per_unit_area
    return evaluation.adjusted_price


def usable_evaluations(
    evaluations: Iterable[ComparableEvaluation],
) -> Tuple[ComparableEvaluation, ...]:
    """Evaluations whose weight is finite and positive."""
    usable = []
    for evaluation in evaluations:
        if math.isfinite(evaluation.weight) and evaluation.weight > 0:
            usable.append(evaluation)
        else:
            logger.info(
                "Excluding comparable %s from aggregation: weight %r",
                evaluation.id,
                evaluation.weight,
            )
    return tuple(usable)


def aggregate(
    evaluations: Iterable[ComparableEvaluation],
    basis: AggregationBasis = AggregationBasis.PRICE,
) -> AggregateStatistics:
    """
    Reduce evaluations to a weighted estimate and dispersion statistics.

    Comparables with a non-finite or non-positive weight are excluded,
    not zero-weighted in. The remaining weights are renormalised to sum
    to 1 over exactly the included set.

    Args:
        evaluations: Comparable evaluations
        basis: Series to aggregate, adjusted price (default) or
            adjusted price per unit area

    Returns:
        AggregateStatistics

    Raises:
        InsufficientComparablesError: If no comparable is usable
    """
    evaluations = list(evaluations)
    usable = usable_evaluations(evaluations)
    if not usable:
        raise InsufficientComparablesError(excluded=len(evaluations))

    total_weight = sum(e.weight for e in usable)
    values = [_series_value(e, basis) for e in usable]
    normalized = [e.weight / total_weight for e in usable]

    lo, hi = min(values), max(values)
    weighted = sum(w * v for w, v in zip(normalized, values))
    # Float drift can push a convex combination a hair outside its inputs
    weighted = min(max(weighted, lo), hi)

    mean = statistics.fmean(values)
    std_dev = statistics.pstdev(values)
    cv = std_dev / mean if mean > 0 else 0.0

    weights: Dict[str, float] = {}
    for evaluation, w in zip(usable, normalized):
        weights[evaluation.id] = weights.get(evaluation.id, 0.0) + w

    return AggregateStatistics(
        weighted_average=weighted,
        median=statistics.median(values),
        min=lo,
        max=hi,
        mean=mean,
        std_dev=std_dev,
        coefficient_of_variation=cv,
        sample_size=len(usable),
        weights=weights,
        basis=basis,
    )


def value_range(estimate: float, band_percent: float = RANGE_BAND_PERCENT) -> ValueRange:
    """
    Fixed +/- band around an estimate, independent of dispersion.
    """
    band = band_percent / 100
    return ValueRange(min=estimate * (1 - band), max=estimate * (1 + band))
