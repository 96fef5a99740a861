"""
Confidence Scorer

Maps sample size, adjustment magnitude, distance and dispersion to a
bounded score and a discrete label. The score starts at a midpoint and
moves by fixed steps:

    >= 5 comparables            +0.10
    <  3 comparables            -0.15
    mean |adjustment| < 10%     +0.10
    mean |adjustment| > 20%     -0.15
    mean distance < 500 m       +0.05   (only when distances are known)
    mean distance > 2000 m      -0.10
    CV > 0.30                   -0.10
    CV > 0.20                   -0.05

The result is clamped to [0.50, 0.95]: the engine never claims full or
zero certainty.
"""

from __future__ import annotations

from typing import Iterable, List, Optional

from .config import DEFAULT_CONFIG, LARGE_SAMPLE_SIZE, SMALL_SAMPLE_SIZE, ValuationConfig
from .models import ComparableEvaluation, ConfidenceAssessment, ConfidenceLabel


def confidence_label(
    score: float,
    config: Optional[ValuationConfig] = None,
) -> ConfidenceLabel:
    """Label for a score; monotonic in score and exhaustive."""
    config = config or DEFAULT_CONFIG
    if score >= config.confidence_high_threshold:
        return ConfidenceLabel.HIGH
    if score >= config.confidence_medium_threshold:
        return ConfidenceLabel.MEDIUM
    return ConfidenceLabel.LOW


def score_confidence(
    evaluations: Iterable[ComparableEvaluation],
    sample_size: int,
    config: Optional[ValuationConfig] = None,
    coefficient_of_variation: Optional[float] = None,
) -> ConfidenceAssessment:
    """
    Score how trustworthy a valuation built on these evaluations is.

    Args:
        evaluations: Comparables that reached aggregation
        sample_size: Number of comparables used
        config: Tunable constants (default: DEFAULT_CONFIG)
        coefficient_of_variation: Dispersion of the adjusted series, if known

    Returns:
        ConfidenceAssessment with score, label and contributing factors
    """
    config = config or DEFAULT_CONFIG
    evaluations = list(evaluations)

    score = config.confidence_base
    factors: List[str] = []

    # Sample size
    if sample_size >= LARGE_SAMPLE_SIZE:
        score += 0.10
        factors.append(f"{sample_size} comparables (good sample)")
    elif sample_size < SMALL_SAMPLE_SIZE:
        score -= 0.15
        factors.append(f"Only {sample_size} comparable(s)")

    # Adjustment magnitude
    if evaluations:
        mean_adjustment = sum(abs(e.total_adjustment_percent) for e in evaluations) / len(evaluations)
        if mean_adjustment < 10:
            score += 0.10
            factors.append(f"Small average adjustment ({mean_adjustment:.1f}%)")
        elif mean_adjustment > 20:
            score -= 0.15
            factors.append(f"Large average adjustment ({mean_adjustment:.1f}%)")

    # Distance, only over comparables whose distance is known
    distances = [e.distance_meters for e in evaluations if e.distance_meters is not None]
    if distances:
        mean_distance = sum(distances) / len(distances)
        if mean_distance < 500:
            score += 0.05
            factors.append(f"Comparables close by ({mean_distance:.0f} m average)")
        elif mean_distance > 2000:
            score -= 0.10
            factors.append(f"Comparables far away ({mean_distance:.0f} m average)")

    # Dispersion
    if coefficient_of_variation is not None:
        if coefficient_of_variation > 0.30:
            score -= 0.10
            factors.append(f"High price dispersion (CV {coefficient_of_variation:.2f})")
        elif coefficient_of_variation > 0.20:
            score -= 0.05
            factors.append(f"Moderate price dispersion (CV {coefficient_of_variation:.2f})")

    score = round(min(max(score, config.confidence_min), config.confidence_max), 4)

    return ConfidenceAssessment(
        score=score,
        label=confidence_label(score, config),
        factors=tuple(factors),
    )
