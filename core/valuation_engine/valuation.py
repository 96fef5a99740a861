"""
Valuation pipeline.

Composes the engine's components for one subject property:

1. EVALUATE - adjustments, similarity and weight per comparable
2. SELECT - drop over-adjusted comparables, keep the most similar
3. AGGREGATE - weighted price per unit area, times subject area
4. SCORE - confidence from sample size, adjustments, distance, dispersion
5. DESCRIBE - market trend and narrative summary

Every call returns a new ValuationResult; nothing is cached or mutated.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from utils.formatting import format_currency, format_percent

from .adjustments import FACTOR_IDS, compute_adjustments, toggle_adjustment
from .aggregation import aggregate, evaluate_comparable, value_range
from .config import (
    DEFAULT_CONFIG,
    TREND_CHANGE_PERCENT,
    TREND_RECENT_MONTHS,
    TREND_WINDOW_MONTHS,
    ValuationConfig,
)
from .confidence import score_confidence
from .exceptions import InsufficientComparablesError
from .models import (
    AggregationBasis,
    ComparableEvaluation,
    ConfidenceAssessment,
    ExcludedComparable,
    MarketTrend,
    SubjectProperty,
    Transaction,
    TrendDirection,
    ValuationResult,
    ValueRange,
    months_between,
)

logger = logging.getLogger(__name__)

# Adjustments named in the narrative
SUMMARY_TOP_ADJUSTMENTS = 3


def market_trend(
    transactions: Iterable[Transaction],
    reference_date: date,
) -> MarketTrend:
    """
    Compare mean price per unit area of recent and older sales.

    Recent: sold within the last 6 months. Older: 6 to 12 months ago.
    A change beyond +/-5% is a trend; otherwise, or when either window is
    empty, the market is stable.
    """
    recent = []
    older = []
    for t in transactions:
        months = months_between(t.transaction_date, reference_date)
        if 0 <= months <= TREND_RECENT_MONTHS:
            recent.append(t.price_per_unit_area)
        elif TREND_RECENT_MONTHS < months <= TREND_WINDOW_MONTHS:
            older.append(t.price_per_unit_area)

    if not recent or not older:
        return MarketTrend(TrendDirection.STABLE, 0.0, len(recent), len(older))

    recent_mean = sum(recent) / len(recent)
    older_mean = sum(older) / len(older)
    change = (recent_mean - older_mean) / older_mean * 100

    if change > TREND_CHANGE_PERCENT:
        direction = TrendDirection.INCREASING
    elif change < -TREND_CHANGE_PERCENT:
        direction = TrendDirection.DECREASING
    else:
        direction = TrendDirection.STABLE

    return MarketTrend(direction, round(change, 2), len(recent), len(older))


def build_summary(
    subject: SubjectProperty,
    estimated_value: float,
    estimate_range: ValueRange,
    price_per_unit_area: float,
    confidence: ConfidenceAssessment,
    comparables: Sequence[ComparableEvaluation],
    trend: MarketTrend,
    excluded_count: int = 0,
) -> str:
    """Human-readable justification of a valuation."""
    subject_name = subject.address or subject.id
    lines = [
        f"Valuation of {subject_name} ({subject.area:g} sqm) based on "
        f"{len(comparables)} comparable transaction(s).",
        f"Estimated value {format_currency(estimated_value)} "
        f"(range {format_currency(estimate_range.min)} to {format_currency(estimate_range.max)}), "
        f"{format_currency(price_per_unit_area)} per sqm.",
        f"Confidence: {confidence.label.value} ({confidence.score:.2f}).",
    ]

    applied = [
        (abs(f.value), f, e.id)
        for e in comparables
        for f in e.adjustments
        if f.applied and f.value
    ]
    applied.sort(key=lambda item: item[0], reverse=True)
    if applied:
        named = ", ".join(
            f"{f.id} {format_percent(f.value, signed=True)} on {comp_id}"
            for _, f, comp_id in applied[:SUMMARY_TOP_ADJUSTMENTS]
        )
        lines.append(f"Largest adjustments: {named}.")

    if excluded_count:
        lines.append(f"{excluded_count} comparable(s) excluded from aggregation.")

    if trend.direction is TrendDirection.STABLE:
        lines.append("Market trend: stable.")
    else:
        lines.append(
            f"Market trend: {trend.direction.value} "
            f"({format_percent(trend.change_percent, signed=True)} versus 6-12 months ago)."
        )

    return " ".join(lines)


def _select(
    evaluations: List[ComparableEvaluation],
    config: ValuationConfig,
) -> tuple[List[ComparableEvaluation], List[ExcludedComparable]]:
    kept = []
    excluded = []

    for e in evaluations:
        limit = config.max_total_adjustment_percent
        if limit is not None and abs(e.total_adjustment_percent) > limit:
            excluded.append(ExcludedComparable(
                e.id,
                f"total adjustment {format_percent(e.total_adjustment_percent, signed=True)} "
                f"exceeds {format_percent(limit)}",
            ))
        elif not e.weight > 0:
            excluded.append(ExcludedComparable(e.id, f"non-positive weight {e.weight!r}"))
        else:
            kept.append(e)

    if config.max_comparables is not None and len(kept) > config.max_comparables:
        ranked = sorted(kept, key=lambda e: e.similarity_score, reverse=True)
        for e in ranked[config.max_comparables:]:
            excluded.append(ExcludedComparable(
                e.id, f"outside top {config.max_comparables} by similarity"
            ))
        keep_ids = {id(e) for e in ranked[:config.max_comparables]}
        kept = [e for e in kept if id(e) in keep_ids]

    for item in excluded:
        logger.info("Excluded comparable %s: %s", item.transaction_id, item.reason)

    return kept, excluded


def evaluate(
    subject: SubjectProperty,
    comparables: Iterable[Transaction],
    config: Optional[ValuationConfig] = None,
    reference_date: Optional[date] = None,
    overrides: Optional[Mapping[str, Mapping[str, bool]]] = None,
) -> ValuationResult:
    """
    Value a subject property from comparable transactions.

    Args:
        subject: The property being valued
        comparables: Normalised comparable transactions
        config: Tunable constants or a profile (default: DEFAULT_CONFIG)
        reference_date: Date time decay is measured to
            (default: subject.valuation_date)
        overrides: comparable id -> {factor id: applied}, to honour
            adjustments a user toggled off (or back on)

    Returns:
        ValuationResult

    Raises:
        InsufficientComparablesError: If no comparable survives selection
        ValueError: If an override names an unknown adjustment factor
    """
    config = config or DEFAULT_CONFIG
    reference_date = reference_date or subject.valuation_date
    overrides = overrides or {}

    # Step 1: Evaluate every comparable
    evaluations = []
    for comparable in comparables:
        factors = compute_adjustments(subject, comparable, config, reference_date)
        present = {f.id for f in factors}
        for factor_id, applied in overrides.get(comparable.id, {}).items():
            if factor_id not in FACTOR_IDS:
                raise ValueError(f"Unknown adjustment factor: {factor_id!r}")
            if factor_id not in present:
                logger.debug(
                    "Override %s=%s skipped for %s: factor not computed",
                    factor_id, applied, comparable.id,
                )
                continue
            factors = toggle_adjustment(factors, factor_id, applied)
        evaluations.append(
            evaluate_comparable(subject, comparable, config, reference_date, adjustments=factors)
        )

    # Step 2: Selection
    kept, excluded = _select(evaluations, config)
    if not kept:
        raise InsufficientComparablesError(excluded=len(excluded))

    # Step 3: Aggregate over adjusted price per unit area
    stats = aggregate(kept, basis=AggregationBasis.PRICE_PER_UNIT_AREA)
    total_weight = sum(e.weight for e in kept)
    base_ppua = sum(e.weight * e.transaction.price_per_unit_area for e in kept) / total_weight
    estimated_value = stats.weighted_average * subject.area
    estimate_range = value_range(estimated_value, config.range_band_percent)

    # Step 4: Confidence
    confidence = score_confidence(
        kept,
        sample_size=stats.sample_size,
        config=config,
        coefficient_of_variation=stats.coefficient_of_variation,
    )

    # Step 5: Trend and narrative
    trend = market_trend((e.transaction for e in kept), reference_date)
    summary = build_summary(
        subject,
        estimated_value,
        estimate_range,
        stats.weighted_average,
        confidence,
        kept,
        trend,
        excluded_count=len(excluded),
    )

    logger.info(
        "Valued %s with %d comparables (%d excluded): %.0f, confidence %s",
        subject.id,
        stats.sample_size,
        len(excluded),
        estimated_value,
        confidence.label.value,
    )

    return ValuationResult(
        base_price_per_unit_area=base_ppua,
        adjusted_price_per_unit_area=stats.weighted_average,
        estimated_value=estimated_value,
        value_range=estimate_range,
        confidence=confidence,
        sample_size=stats.sample_size,
        comparables=tuple(kept),
        statistics=stats,
        market_trend=trend,
        summary=summary,
        valuation_date=reference_date,
        profile=config.name,
        excluded_comparables=tuple(excluded),
    )
