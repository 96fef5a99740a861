"""
Tests for the JSON API

Verifies:
- Healthchecks and profile listing
- Valuation from raw records, with normalisation counts
- Not-enough-data (422) is distinguishable from bad input (400)
- Anomaly scans report "no_anomalies" explicitly
"""

import pytest
from fastapi.testclient import TestClient
from pathlib import Path
import sys

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from utils.config import Config
from web.app import create_app


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def client():
    """Client against an app with a fixed default profile."""
    app = create_app(Config(default_profile="residential"))
    return TestClient(app)


@pytest.fixture
def raw_comparables():
    """Raw comparable records as a data feed would deliver them."""
    return [
        {"id": "c1", "price": "2,000,000", "area": 100, "date": "2024-05-01",
         "street": "Herzl", "house_number": "1", "city": "Tel Aviv", "floor": 3},
        {"id": "c2", "dealAmount": 2_100_000, "builtArea": "100", "dealDate": "2024-04-01",
         "street": "Herzl", "house_number": "3", "city": "Tel Aviv", "floor": 2},
        {"id": "c3", "price": 1_900_000, "area": 100, "transaction_date": "2024-03-01",
         "street": "Herzl", "house_number": "5", "city": "Tel Aviv", "floor": 4},
        {"id": "bad", "price": 0, "area": 100, "date": "2024-03-01"},
    ]


@pytest.fixture
def subject():
    return {
        "area": 100,
        "street": "Herzl",
        "house_number": "7",
        "city": "Tel Aviv",
        "floor": 3,
        "valuation_date": "2024-06-01",
    }


def population(prices):
    return [
        {"id": f"t{i}", "price": p, "area": 100, "date": "2024-01-15",
         "street": f"Street {i}", "house_number": "1", "city": "Haifa"}
        for i, p in enumerate(prices)
    ]


# =============================================================================
# Test: Health & Profiles
# =============================================================================

class TestHealth:
    """Healthchecks have no dependencies."""

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_health(self, client):
        response = client.get("/health")

        assert response.json()["status"] == "healthy"

    def test_profiles(self, client):
        data = client.get("/api/profiles").json()

        assert data["default"] == "residential"
        assert set(data["profiles"]) == {"residential", "office", "rental"}
        assert data["profiles"]["office"]["max_total_adjustment_percent"] == 30.0


# =============================================================================
# Test: Normalisation
# =============================================================================

class TestNormalizeEndpoint:
    """Drops are counted, not raised."""

    def test_counts(self, client, raw_comparables):
        response = client.post("/api/normalize", json={"records": raw_comparables})

        assert response.status_code == 200
        data = response.json()
        assert data["normalized_count"] == 3
        assert data["dropped_count"] == 1
        assert data["rejections_by_code"] == {"INVALID_PRICE": 1}
        assert data["transactions"][1]["price"] == 2_100_000


# =============================================================================
# Test: Valuation
# =============================================================================

class TestValuationEndpoint:
    """End-to-end valuation over HTTP."""

    def test_success(self, client, subject, raw_comparables):
        response = client.post(
            "/api/valuations",
            json={"subject": subject, "comparables": raw_comparables},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        valuation = data["valuation"]
        assert valuation["sample_size"] == 3
        assert 1_800_000 <= valuation["estimated_value"] <= 2_200_000
        assert valuation["confidence"]["label"] in ("low", "medium", "high")
        assert valuation["profile"] == "residential"
        assert data["normalization"]["dropped_count"] == 1

    def test_overrides(self, client, subject, raw_comparables):
        response = client.post(
            "/api/valuations",
            json={
                "subject": subject,
                "comparables": raw_comparables,
                "overrides": {"c2": {"floor": False}},
            },
        )

        comps = {c["id"]: c for c in response.json()["valuation"]["comparables"]}
        floor = next(a for a in comps["c2"]["adjustments"] if a["id"] == "floor")
        assert floor["applied"] is False
        assert comps["c2"]["total_adjustment_percent"] == 0

    def test_override_for_uncomputed_factor(self, client, subject, raw_comparables):
        response = client.post(
            "/api/valuations",
            json={
                "subject": subject,
                "comparables": raw_comparables,
                "overrides": {"c1": {"neighborhood": False}},
            },
        )

        assert response.status_code == 200
        assert response.json()["valuation"]["sample_size"] == 3

    def test_insufficient_comparables(self, client, subject):
        response = client.post(
            "/api/valuations",
            json={"subject": subject, "comparables": [{"price": "n/a"}]},
        )

        assert response.status_code == 422
        assert response.json()["error"] == "insufficient_comparables"

    def test_invalid_subject(self, client, raw_comparables):
        response = client.post(
            "/api/valuations",
            json={"subject": {"area": 0}, "comparables": raw_comparables},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "computation_error"

    def test_unknown_profile(self, client, subject, raw_comparables):
        response = client.post(
            "/api/valuations",
            json={"subject": subject, "comparables": raw_comparables, "profile": "castle"},
        )

        assert response.status_code == 400

    def test_unknown_override_factor(self, client, subject, raw_comparables):
        response = client.post(
            "/api/valuations",
            json={
                "subject": subject,
                "comparables": raw_comparables,
                "overrides": {"c1": {"sea-view": False}},
            },
        )

        assert response.status_code == 400


# =============================================================================
# Test: Anomalies
# =============================================================================

class TestAnomalyEndpoint:
    """Empty scans are explicit."""

    def test_no_anomalies(self, client):
        response = client.post(
            "/api/anomalies",
            json={"records": population([2_000_000] * 6)},
        )

        data = response.json()
        assert data["status"] == "no_anomalies"
        assert data["count"] == 0
        assert data["anomalies"] == []

    def test_anomalies_found(self, client):
        response = client.post(
            "/api/anomalies",
            json={"records": population([2_000_000] * 9 + [15_000_000])},
        )

        data = response.json()
        assert data["status"] == "anomalies_found"
        assert data["anomalies"][0]["transaction_id"] == "t9"
        assert data["anomalies"][0]["severity"] == "critical"

    def test_data_gaps_requested(self, client):
        records = population([2_000_000] * 3)
        records[0]["date"] = "2019-01-01"

        response = client.post(
            "/api/anomalies",
            json={"records": records, "data_gaps": True, "reference_date": "2024-06-01"},
        )

        data = response.json()
        assert [a["anomaly_type"] for a in data["anomalies"]] == ["data-gap"]
