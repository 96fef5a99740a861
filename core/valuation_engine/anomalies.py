"""
Anomaly Detector

Independent statistical passes over a normalised transaction population.
Nothing here consumes or produces comparable evaluations; findings are
tied to transactions, never to a subject property.

Passes:
- detect_anomalies: z-score outliers on price
- detect_rapid_changes: repeat sales of one address with a large jump
- detect_data_gaps: addresses with no recent transaction
- check_price: one price against a reference average
"""

from __future__ import annotations

import logging
import statistics
from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

from .config import (
    DEFAULT_CONFIG,
    PRICE_CHECK_CRITICAL_PERCENT,
    PRICE_CHECK_REPORT_PERCENT,
    PRICE_CHECK_WARNING_PERCENT,
    ValuationConfig,
)
from .models import (
    AnomalyReport,
    AnomalyType,
    MarketPosition,
    Severity,
    Transaction,
    months_between,
)

logger = logging.getLogger(__name__)


RECOMMENDATION_CRITICAL = "Highly unusual transaction: do not use as a comparable without review."
RECOMMENDATION_REVIEW = "Check the property's condition and the terms of the transaction."
RECOMMENDATION_RAPID_CHANGE = "Check ownership history and renovations; treat with caution."
RECOMMENDATION_DATA_GAP = "Check the land registry and lease agreements for unreported activity."


def _position(deviation: float) -> MarketPosition:
    return MarketPosition.ABOVE_MARKET if deviation > 0 else MarketPosition.BELOW_MARKET


def _by_magnitude(reports: Iterable[AnomalyReport]) -> List[AnomalyReport]:
    return sorted(reports, key=lambda r: abs(r.deviation_percent), reverse=True)


# =============================================================================
# Z-Score Pass
# =============================================================================

def detect_anomalies(
    population: Iterable[Transaction],
    config: Optional[ValuationConfig] = None,
) -> List[AnomalyReport]:
    """
    Flag transactions whose price is a statistical outlier.

    z = (price - mean) / std_dev over the population (population std-dev).

    Classification:
    - |z| < 1.8: not reported
    - z > 2.5: above-market, critical
    - z < -2.5: below-market, critical
    - otherwise: price-outlier, warning if |z| > 2.0 else info

    market_position always records the direction of the deviation.

    Args:
        population: Normalised transactions
        config: Tunable constants (default: DEFAULT_CONFIG)

    Returns:
        Reports sorted by descending |deviation_percent|. Empty when the
        population has fewer than 5 transactions or zero spread.
    """
    config = config or DEFAULT_CONFIG
    population = list(population)

    if len(population) < config.anomaly_min_population:
        logger.debug("Population of %d too small for anomaly scan", len(population))
        return []

    prices = [t.price for t in population]
    mean = statistics.fmean(prices)
    std_dev = statistics.pstdev(prices)
    if std_dev == 0:
        logger.debug("Zero price spread across %d transactions", len(population))
        return []

    reports = []
    for transaction in population:
        z_score = (transaction.price - mean) / std_dev
        if abs(z_score) < config.anomaly_report_z:
            continue

        deviation = (transaction.price - mean) / mean * 100

        if z_score > config.anomaly_critical_z:
            anomaly_type = AnomalyType.ABOVE_MARKET
        elif z_score < -config.anomaly_critical_z:
            anomaly_type = AnomalyType.BELOW_MARKET
        else:
            anomaly_type = AnomalyType.PRICE_OUTLIER

        if abs(z_score) > config.anomaly_critical_z:
            severity = Severity.CRITICAL
        elif abs(z_score) > config.anomaly_warning_z:
            severity = Severity.WARNING
        else:
            severity = Severity.INFO

        direction = "above" if z_score > 0 else "below"
        reports.append(AnomalyReport(
            transaction_id=transaction.id,
            address=transaction.address,
            city=transaction.city,
            price=transaction.price,
            market_average=round(mean, 2),
            z_score=round(z_score, 4),
            deviation_percent=round(deviation, 1),
            anomaly_type=anomaly_type,
            market_position=_position(z_score),
            severity=severity,
            description=(
                f"Z-score {z_score:.2f}: price {abs(deviation):.0f}% "
                f"{direction} the population average."
            ),
            recommendation=(
                RECOMMENDATION_CRITICAL if severity is Severity.CRITICAL
                else RECOMMENDATION_REVIEW
            ),
        ))

    logger.info(
        "Anomaly scan: %d of %d transactions flagged",
        len(reports),
        len(population),
    )
    return _by_magnitude(reports)


# =============================================================================
# Historical Passes
# =============================================================================

def _group_by_address(
    population: Iterable[Transaction],
) -> Dict[Tuple[str, str, str], List[Transaction]]:
    groups: Dict[Tuple[str, str, str], List[Transaction]] = defaultdict(list)
    for transaction in population:
        # Without a street there is no address to track
        if transaction.street:
            groups[transaction.address_key].append(transaction)
    return groups


def detect_rapid_changes(
    population: Iterable[Transaction],
    config: Optional[ValuationConfig] = None,
) -> List[AnomalyReport]:
    """
    Flag repeat sales of one address with a large price jump.

    Consecutive sales of the same address (street, house number, city,
    case-insensitive) within 24 months whose price moved by more than 30%
    are reported on the later sale; above 50% the finding is critical.
    """
    config = config or DEFAULT_CONFIG
    reports = []

    for sales in _group_by_address(population).values():
        sales = sorted(sales, key=lambda t: t.transaction_date)
        for previous, current in zip(sales, sales[1:]):
            months = months_between(previous.transaction_date, current.transaction_date)
            if months > config.rapid_change_window_months:
                continue

            change = (current.price - previous.price) / previous.price * 100
            if abs(change) <= config.rapid_change_percent:
                continue

            severity = (
                Severity.CRITICAL if abs(change) > config.rapid_change_critical_percent
                else Severity.WARNING
            )
            direction = "rise" if change > 0 else "drop"
            reports.append(AnomalyReport(
                transaction_id=current.id,
                address=current.address,
                city=current.city,
                price=current.price,
                market_average=previous.price,
                z_score=None,
                deviation_percent=round(change, 1),
                anomaly_type=AnomalyType.RAPID_CHANGE,
                market_position=_position(change),
                severity=severity,
                description=(
                    f"{abs(change):.0f}% {direction} within {months:.0f} months "
                    f"(previous sale {previous.price:,.0f} on "
                    f"{previous.transaction_date.isoformat()})."
                ),
                recommendation=RECOMMENDATION_RAPID_CHANGE,
            ))

    return _by_magnitude(reports)


def detect_data_gaps(
    population: Iterable[Transaction],
    reference_date: Optional[date] = None,
    config: Optional[ValuationConfig] = None,
) -> List[AnomalyReport]:
    """
    Flag addresses whose latest transaction is older than 36 months.

    Findings are info severity and carry no price deviation.
    """
    config = config or DEFAULT_CONFIG
    reference_date = reference_date or date.today()
    reports = []

    for sales in _group_by_address(population).values():
        latest = max(sales, key=lambda t: t.transaction_date)
        months = months_between(latest.transaction_date, reference_date)
        if months <= config.data_gap_months:
            continue

        reports.append(AnomalyReport(
            transaction_id=latest.id,
            address=latest.address,
            city=latest.city,
            price=latest.price,
            market_average=latest.price,
            z_score=None,
            deviation_percent=0.0,
            anomaly_type=AnomalyType.DATA_GAP,
            market_position=None,
            severity=Severity.INFO,
            description=(
                f"No transactions reported in the last {months / 12:.1f} years "
                f"(latest {latest.transaction_date.isoformat()})."
            ),
            recommendation=RECOMMENDATION_DATA_GAP,
        ))

    return sorted(reports, key=lambda r: (r.city, r.address))


# =============================================================================
# Manual Check
# =============================================================================

def check_price(
    price: float,
    market_average: float,
    transaction_id: str = "manual",
    address: str = "",
    city: str = "",
) -> Optional[AnomalyReport]:
    """
    Check one reported price against a reference market average.

    Deviation bands:
    - < 15%: not anomalous (None)
    - > 50%: above-market or below-market, critical
    - > 25%: price-outlier, warning
    - otherwise: price-outlier, info

    Raises:
        ValueError: If price or market_average is not positive
    """
    if price <= 0 or market_average <= 0:
        raise ValueError("price and market_average must be positive")

    deviation = (price - market_average) / market_average * 100
    if abs(deviation) < PRICE_CHECK_REPORT_PERCENT:
        return None

    if deviation > PRICE_CHECK_CRITICAL_PERCENT:
        anomaly_type = AnomalyType.ABOVE_MARKET
    elif deviation < -PRICE_CHECK_CRITICAL_PERCENT:
        anomaly_type = AnomalyType.BELOW_MARKET
    else:
        anomaly_type = AnomalyType.PRICE_OUTLIER

    if abs(deviation) > PRICE_CHECK_CRITICAL_PERCENT:
        severity = Severity.CRITICAL
    elif abs(deviation) > PRICE_CHECK_WARNING_PERCENT:
        severity = Severity.WARNING
    else:
        severity = Severity.INFO

    direction = "above" if deviation > 0 else "below"
    return AnomalyReport(
        transaction_id=transaction_id,
        address=address,
        city=city,
        price=price,
        market_average=market_average,
        z_score=None,
        deviation_percent=round(deviation, 1),
        anomaly_type=anomaly_type,
        market_position=_position(deviation),
        severity=severity,
        description=f"Price {abs(deviation):.0f}% {direction} the reference average.",
        recommendation=(
            RECOMMENDATION_CRITICAL if severity is Severity.CRITICAL
            else RECOMMENDATION_REVIEW
        ),
    )


def merge_reports(*batches: Iterable[AnomalyReport]) -> List[AnomalyReport]:
    """Concatenate findings from several scans and re-sort by magnitude."""
    return _by_magnitude(report for batch in batches for report in batch)
