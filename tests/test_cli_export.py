"""
Tests for CSV export and the command line

Verifies:
- Export rows carry exactly the documented columns
- CSV files are written with a header line
- CLI subcommands return exit codes and readable errors
"""

import csv
import json

import pytest
from datetime import date
from pathlib import Path
import sys

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.valuation_engine import SubjectProperty, Transaction, evaluate
from reporting import (
    COMPARABLE_COLUMNS,
    TRANSACTION_COLUMNS,
    comparable_rows,
    transaction_rows,
    write_csv,
)
from reporting.cli import extract_records, main, parse_subject


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def transactions():
    return [
        Transaction(
            id=f"t{i}",
            street="Jabotinsky",
            house_number=str(i),
            city="Ramat Gan",
            transaction_date=date(2024, 4, 1),
            price=1_500_000 + i * 50_000,
            area=75.0,
        )
        for i in range(3)
    ]


@pytest.fixture
def records():
    """Raw records for CLI input files."""
    return [
        {"id": f"r{i}", "price": 1_500_000 + i * 50_000, "area": 75, "date": "2024-04-01",
         "street": "Jabotinsky", "house_number": str(i), "city": "Ramat Gan"}
        for i in range(4)
    ] + [{"id": "broken", "price": 1_000_000}]


@pytest.fixture
def write_json(tmp_path):
    """Factory fixture writing a JSON payload to a temp file."""
    def _write(payload, name="input.json") -> str:
        path = tmp_path / name
        path.write_text(json.dumps(payload), encoding="utf-8")
        return str(path)
    return _write


# =============================================================================
# Test: Export Rows
# =============================================================================

class TestExportRows:
    """Row shapes for CSV."""

    def test_transaction_rows(self, transactions):
        rows = transaction_rows(transactions)

        assert len(rows) == 3
        assert list(rows[0]) == TRANSACTION_COLUMNS
        assert rows[0]["address"] == "Jabotinsky 0"
        assert rows[0]["date"] == "2024-04-01"
        assert rows[0]["price_per_unit_area"] == pytest.approx(20_000)

    def test_comparable_rows(self, transactions):
        subject = SubjectProperty(area=75.0, valuation_date=date(2024, 6, 1))
        result = evaluate(subject, transactions)

        rows = comparable_rows(result.comparables)

        assert list(rows[0]) == COMPARABLE_COLUMNS
        assert rows[0]["adjusted_price"] == pytest.approx(rows[0]["price"])

    def test_write_csv(self, transactions, tmp_path):
        path = write_csv(transaction_rows(transactions), tmp_path / "out" / "tx.csv")

        with open(path, newline="", encoding="utf-8") as f:
            reader = csv.DictReader(f)
            rows = list(reader)

        assert reader.fieldnames == TRANSACTION_COLUMNS
        assert len(rows) == 3
        assert rows[2]["city"] == "Ramat Gan"

    def test_write_csv_empty_has_header(self, tmp_path):
        path = write_csv([], tmp_path / "empty.csv")

        assert path.read_text(encoding="utf-8").strip() == ",".join(TRANSACTION_COLUMNS)


# =============================================================================
# Test: Input Parsing
# =============================================================================

class TestInputParsing:
    """JSON input helpers."""

    def test_parse_subject(self):
        subject = parse_subject({"area": "82.5", "floor": 4, "valuation_date": "2024-06-01"})

        assert subject.area == 82.5
        assert subject.floor == 4
        assert subject.valuation_date == date(2024, 6, 1)

    def test_parse_subject_requires_area(self):
        with pytest.raises(KeyError):
            parse_subject({"floor": 2})

    def test_parse_subject_coerces_numeric_strings(self):
        subject = parse_subject({"area": "75", "floor": "3", "build_year": 2001.0, "house_number": 9})

        assert subject.floor == 3
        assert isinstance(subject.floor, int)
        assert subject.build_year == 2001
        assert subject.house_number == "9"

    @pytest.mark.parametrize("changes", [
        {"floor": "third"},
        {"floor": 2.5},
        {"area": "big"},
        {"rooms": [3]},
        {"has_elevator": "maybe"},
        {"street": {"name": "Herzl"}},
        {"valuation_date": 20240601},
        {"valuation_date": "01/06/2024"},
    ])
    def test_parse_subject_rejects_bad_fields(self, changes):
        with pytest.raises(ValueError):
            parse_subject(dict({"area": 75}, **changes))

    def test_extract_records(self):
        assert extract_records([{"a": 1}]) == [{"a": 1}]
        assert extract_records({"records": [{"a": 1}]}) == [{"a": 1}]
        assert extract_records({"comparables": [{"a": 1}]}, "comparables") == [{"a": 1}]
        assert extract_records("nonsense") == []


# =============================================================================
# Test: CLI
# =============================================================================

class TestCli:
    """Subcommands and exit codes."""

    def test_valuate(self, write_json, records, capsys):
        path = write_json({
            "subject": {"area": 75, "street": "Jabotinsky", "house_number": "9",
                        "valuation_date": "2024-06-01"},
            "comparables": records,
        })

        assert main(["valuate", path]) == 0

        out = capsys.readouterr().out
        assert "Estimated value ₪" in out
        assert "4 comparable" in out

    def test_valuate_json_and_csv(self, write_json, records, tmp_path, capsys):
        path = write_json({"subject": {"area": 75, "valuation_date": "2024-06-01"},
                           "comparables": records})
        csv_path = tmp_path / "comps.csv"

        assert main(["valuate", path, "--json", "--csv", str(csv_path)]) == 0

        out = capsys.readouterr().out
        payload = json.loads(out[:out.rindex("}") + 1])
        assert payload["sample_size"] == 4
        assert csv_path.exists()

    def test_valuate_not_enough_data(self, write_json, capsys):
        path = write_json({"subject": {"area": 75}, "comparables": [{"price": "?"}]})

        assert main(["valuate", path]) == 1
        assert "Not enough data" in capsys.readouterr().err

    @pytest.mark.parametrize("subject", [
        {"area": 75, "floor": "third"},
        {"area": 75, "valuation_date": 20240601},
        "not an object",
    ])
    def test_valuate_invalid_subject(self, write_json, records, subject, capsys):
        path = write_json({"subject": subject, "comparables": records})

        assert main(["valuate", path]) == 1
        assert "Invalid valuation input" in capsys.readouterr().err

    def test_valuate_string_floor(self, write_json, records, capsys):
        path = write_json({"subject": {"area": 75, "floor": "3", "valuation_date": "2024-06-01"},
                           "comparables": records})

        assert main(["valuate", path]) == 0

    def test_valuate_malformed_overrides(self, write_json, records, capsys):
        path = write_json({"subject": {"area": 75, "valuation_date": "2024-06-01"},
                           "comparables": records, "overrides": ["time"]})

        assert main(["valuate", path]) == 1
        assert "overrides" in capsys.readouterr().err

    def test_missing_file(self, tmp_path, capsys):
        assert main(["valuate", str(tmp_path / "nope.json")]) == 1
        assert "File not found" in capsys.readouterr().err

    def test_invalid_json(self, tmp_path, capsys):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")

        assert main(["anomalies", str(path)]) == 1
        assert "Invalid JSON" in capsys.readouterr().err

    def test_anomalies_none_found(self, write_json, records, capsys):
        path = write_json(records)

        assert main(["anomalies", path]) == 0
        assert "No anomalies found in 4 transactions" in capsys.readouterr().out

    def test_unknown_profile(self, write_json, records, capsys):
        path = write_json(records)

        assert main(["anomalies", path, "--profile", "castle"]) == 1
        assert "Unknown valuation profile" in capsys.readouterr().err

    def test_export(self, write_json, records, tmp_path, capsys):
        path = write_json({"records": records})
        output = tmp_path / "export" / "transactions.csv"

        assert main(["export", path, "--output", str(output)]) == 0

        assert "Exported 4 transactions (1 dropped)" in capsys.readouterr().out
        with open(output, newline="", encoding="utf-8") as f:
            assert len(list(csv.DictReader(f))) == 4
