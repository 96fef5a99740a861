"""
Tests for the Anomaly Detector

Verifies:
- Too-small and zero-spread populations yield no findings
- z-score thresholds and classification
- Findings sorted by deviation magnitude
- Rapid-change, data-gap and manual price checks
"""

import json

import pytest
from datetime import date, timedelta
from pathlib import Path
import sys

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.valuation_engine import (
    AnomalyType,
    MarketPosition,
    Severity,
    Transaction,
    check_price,
    detect_anomalies,
    detect_data_gaps,
    detect_rapid_changes,
    merge_reports,
)


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def reference_date():
    """Fixed reference date for deterministic tests."""
    return date(2024, 6, 1)


@pytest.fixture
def create_transaction(reference_date):
    """Factory fixture for population transactions."""
    def _create(
        price: float,
        transaction_id: str,
        days_ago: int = 60,
        street: str = None,
        house_number: str = "1",
    ) -> Transaction:
        return Transaction(
            id=transaction_id,
            street=street if street is not None else f"Street {transaction_id}",
            house_number=house_number,
            city="Haifa",
            transaction_date=reference_date - timedelta(days=days_ago),
            price=price,
            area=80.0,
        )
    return _create


@pytest.fixture
def population(create_transaction):
    """Factory fixture for a population from a list of prices."""
    def _create(prices):
        return [create_transaction(p, f"t{i}") for i, p in enumerate(prices)]
    return _create


# =============================================================================
# Test: Z-Score Pass
# =============================================================================

class TestZScorePass:
    """Statistical outliers on price."""

    def test_identical_prices_no_findings(self, population):
        assert detect_anomalies(population([100] * 5)) == []

    def test_population_below_minimum(self, population):
        assert detect_anomalies(population([100, 100, 100, 1000])) == []

    def test_single_high_outlier(self, population):
        """[100, 100, 100, 100, 1000]: the 1000 row is reported, above market."""
        reports = detect_anomalies(population([100, 100, 100, 100, 1000]))

        assert len(reports) == 1
        report = reports[0]
        assert report.transaction_id == "t4"
        assert report.z_score > 1.8
        assert report.market_position == MarketPosition.ABOVE_MARKET
        # z is exactly 2.0: inside the price-outlier band, not above 2.0
        assert report.anomaly_type == AnomalyType.PRICE_OUTLIER
        assert report.severity == Severity.INFO
        assert report.market_average == pytest.approx(280)
        assert report.deviation_percent == pytest.approx(257.1)

    def test_warning_band(self, population):
        # One outlier among six: z = sqrt(5) ~ 2.24
        reports = detect_anomalies(population([100] * 5 + [1000]))

        assert len(reports) == 1
        assert reports[0].severity == Severity.WARNING
        assert reports[0].anomaly_type == AnomalyType.PRICE_OUTLIER

    def test_critical_above_market(self, population):
        # One outlier among ten: z = 3.0
        reports = detect_anomalies(population([100] * 9 + [1000]))

        assert len(reports) == 1
        assert reports[0].z_score == pytest.approx(3.0)
        assert reports[0].anomaly_type == AnomalyType.ABOVE_MARKET
        assert reports[0].severity == Severity.CRITICAL

    def test_critical_below_market(self, population):
        reports = detect_anomalies(population([1000] * 9 + [100]))

        assert len(reports) == 1
        assert reports[0].z_score == pytest.approx(-3.0)
        assert reports[0].anomaly_type == AnomalyType.BELOW_MARKET
        assert reports[0].market_position == MarketPosition.BELOW_MARKET
        assert reports[0].severity == Severity.CRITICAL

    def test_no_outliers_in_spread_population(self, population):
        assert detect_anomalies(population([95, 100, 105, 98, 102, 101])) == []

    def test_sorted_by_deviation_magnitude(self, population):
        reports = detect_anomalies(population([100] * 18 + [1000, 1200]))

        magnitudes = [abs(r.deviation_percent) for r in reports]
        assert len(reports) == 2
        assert magnitudes == sorted(magnitudes, reverse=True)
        assert reports[0].transaction_id == "t19"

    def test_report_serialisable(self, population):
        report = detect_anomalies(population([100] * 9 + [1000]))[0]

        data = json.loads(json.dumps(report.to_dict()))

        assert data["anomaly_type"] == "above-market"
        assert data["severity"] == "critical"
        assert data["address"] == "Street t9 1"


# =============================================================================
# Test: Rapid Changes
# =============================================================================

class TestRapidChanges:
    """Repeat sales of one address."""

    def test_rise_reported_on_later_sale(self, create_transaction):
        sales = [
            create_transaction(1_450_000, "new", days_ago=40, street="Hanassi"),
            create_transaction(1_000_000, "old", days_ago=400, street="HANASSI"),
        ]

        reports = detect_rapid_changes(sales)

        assert len(reports) == 1
        report = reports[0]
        assert report.transaction_id == "new"
        assert report.anomaly_type == AnomalyType.RAPID_CHANGE
        assert report.severity == Severity.WARNING
        assert report.deviation_percent == pytest.approx(45.0)
        assert report.market_average == 1_000_000
        assert report.z_score is None

    def test_critical_above_fifty_percent(self, create_transaction):
        sales = [
            create_transaction(1_000_000, "a", days_ago=300, street="Hanassi"),
            create_transaction(1_600_000, "b", days_ago=30, street="Hanassi"),
        ]

        assert detect_rapid_changes(sales)[0].severity == Severity.CRITICAL

    def test_drop_is_below_market(self, create_transaction):
        sales = [
            create_transaction(2_000_000, "a", days_ago=300, street="Hanassi"),
            create_transaction(1_200_000, "b", days_ago=30, street="Hanassi"),
        ]

        report = detect_rapid_changes(sales)[0]

        assert report.market_position == MarketPosition.BELOW_MARKET
        assert report.deviation_percent == pytest.approx(-40.0)

    def test_outside_window_ignored(self, create_transaction):
        sales = [
            create_transaction(1_000_000, "a", days_ago=1000, street="Hanassi"),
            create_transaction(1_600_000, "b", days_ago=30, street="Hanassi"),
        ]

        assert detect_rapid_changes(sales) == []

    def test_different_addresses_not_compared(self, create_transaction):
        sales = [
            create_transaction(1_000_000, "a", days_ago=300, street="Hanassi", house_number="1"),
            create_transaction(1_600_000, "b", days_ago=30, street="Hanassi", house_number="2"),
        ]

        assert detect_rapid_changes(sales) == []


# =============================================================================
# Test: Data Gaps
# =============================================================================

class TestDataGaps:
    """Addresses without recent transactions."""

    def test_stale_address_flagged(self, create_transaction, reference_date):
        sales = [
            create_transaction(900_000, "stale", days_ago=1500, street="Herzl"),
            create_transaction(1_100_000, "fresh", days_ago=100, street="Weizmann"),
        ]

        reports = detect_data_gaps(sales, reference_date=reference_date)

        assert [r.transaction_id for r in reports] == ["stale"]
        assert reports[0].anomaly_type == AnomalyType.DATA_GAP
        assert reports[0].severity == Severity.INFO
        assert reports[0].market_position is None
        assert reports[0].to_dict()["market_position"] is None

    def test_latest_sale_decides(self, create_transaction, reference_date):
        sales = [
            create_transaction(900_000, "old", days_ago=1500, street="Herzl"),
            create_transaction(1_000_000, "recent", days_ago=200, street="Herzl"),
        ]

        assert detect_data_gaps(sales, reference_date=reference_date) == []


# =============================================================================
# Test: Manual Price Check
# =============================================================================

class TestCheckPrice:
    """One price against a reference average."""

    @pytest.mark.parametrize("price,anomaly_type,severity", [
        (2_400_000, AnomalyType.PRICE_OUTLIER, Severity.INFO),
        (2_600_000, AnomalyType.PRICE_OUTLIER, Severity.WARNING),
        (3_200_000, AnomalyType.ABOVE_MARKET, Severity.CRITICAL),
        (800_000, AnomalyType.BELOW_MARKET, Severity.CRITICAL),
        (1_400_000, AnomalyType.PRICE_OUTLIER, Severity.WARNING),
    ])
    def test_bands(self, price, anomaly_type, severity):
        report = check_price(price, 2_000_000, address="Herzl 10", city="Tel Aviv")

        assert report.anomaly_type == anomaly_type
        assert report.severity == severity

    def test_close_to_average_not_reported(self):
        assert check_price(2_100_000, 2_000_000) is None

    def test_invalid_average_raises(self):
        with pytest.raises(ValueError):
            check_price(1_000_000, 0)


# =============================================================================
# Test: Merging
# =============================================================================

class TestMergeReports:
    """Callers merge independent scans by concatenation plus re-sort."""

    def test_merge_sorted(self, population, create_transaction):
        z_reports = detect_anomalies(population([100] * 9 + [1000]))
        rapid = detect_rapid_changes([
            create_transaction(1_000_000, "a", days_ago=300, street="Hanassi"),
            create_transaction(1_400_000, "b", days_ago=30, street="Hanassi"),
        ])

        merged = merge_reports(rapid, z_reports)

        assert len(merged) == 2
        assert merged[0].anomaly_type == AnomalyType.ABOVE_MARKET
        assert merged[1].anomaly_type == AnomalyType.RAPID_CHANGE

    def test_merge_empty(self):
        assert merge_reports([], []) == []
