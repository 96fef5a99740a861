#!/usr/bin/env python3
"""
CLI for running valuations and anomaly scans over raw transaction files.

Usage:
    python -m reporting.cli valuate <input_json> [--profile office] [--csv out.csv]
    python -m reporting.cli anomalies <input_json> [--rapid-changes] [--data-gaps]
    python -m reporting.cli export <input_json> --output transactions.csv

Input files:
    valuate:   {"subject": {...}, "comparables": [...], "overrides": {...}}
    anomalies: {"records": [...]} or a bare list of raw records
    export:    {"records": [...]} or a bare list of raw records
"""

import argparse
import json
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Any, List, Optional

from core.valuation_engine import (
    InsufficientComparablesError,
    SubjectProperty,
    ValuationError,
    detect_anomalies,
    detect_data_gaps,
    detect_rapid_changes,
    evaluate,
    get_profile,
    merge_reports,
    normalize,
)
from core.valuation_engine.normalizer import parse_date, parse_number
from utils.config import Config

from .export import comparable_rows, transaction_rows, write_csv

logger = logging.getLogger(__name__)


TEXT_FIELDS = (
    "street",
    "house_number",
    "city",
    "neighborhood",
    "id",
    "condition",
    "building_class",
)
FLOAT_FIELDS = ("rooms", "latitude", "longitude")
INT_FIELDS = ("floor", "build_year", "parking_spaces")
BOOL_FIELDS = ("has_elevator",)

SUBJECT_FIELDS = TEXT_FIELDS + FLOAT_FIELDS + INT_FIELDS + BOOL_FIELDS


def _subject_number(name: str, value: Any, integral: bool = False) -> float:
    number = parse_number(value)
    if number is None:
        raise ValueError(f"{name} must be a number, got {value!r}")
    if integral:
        if not number.is_integer():
            raise ValueError(f"{name} must be a whole number, got {value!r}")
        return int(number)
    return number


def parse_subject(data: dict) -> SubjectProperty:
    """
    Parse a JSON dictionary into a SubjectProperty.

    Numeric fields accept the same formatted strings as raw records
    ("82.5", "₪ 2,150,000"); anything that does not parse is an error
    rather than a silently dropped field.

    Args:
        data: Dictionary with at least 'area'

    Returns:
        SubjectProperty ready for valuation

    Raises:
        KeyError: If 'area' is missing
        ValueError: If a field is invalid
    """
    area = _subject_number("area", data["area"])

    kwargs = {}
    for name in SUBJECT_FIELDS:
        value = data.get(name)
        if value is None:
            continue
        if name in TEXT_FIELDS:
            if isinstance(value, bool) or not isinstance(value, (str, int)):
                raise ValueError(f"{name} must be text, got {value!r}")
            kwargs[name] = str(value)
        elif name in FLOAT_FIELDS:
            kwargs[name] = _subject_number(name, value)
        elif name in INT_FIELDS:
            kwargs[name] = _subject_number(name, value, integral=True)
        elif not isinstance(value, bool):
            raise ValueError(f"{name} must be true or false, got {value!r}")
        else:
            kwargs[name] = value

    if data.get("valuation_date") is not None:
        valuation_date = parse_date(data["valuation_date"])
        if valuation_date is None:
            raise ValueError(f"valuation_date must be an ISO-8601 date, got {data['valuation_date']!r}")
        kwargs["valuation_date"] = valuation_date

    return SubjectProperty(area=area, **kwargs)


def extract_records(data: Any, key: str = "records") -> List[dict]:
    """Raw records from a bare list or from a named key of a JSON object."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        return data.get(key) or []
    return []


def _load_json(path_str: str) -> Optional[Any]:
    input_path = Path(path_str)

    if not input_path.exists():
        print(f"Error: File not found: {input_path}", file=sys.stderr)
        return None

    try:
        with open(input_path, "r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        print(f"Error: Invalid JSON: {e}", file=sys.stderr)
        return None


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def cmd_valuate(args):
    """Value a subject property from a JSON file of raw comparables."""
    data = _load_json(args.input_file)
    if data is None:
        return 1

    try:
        profile = get_profile(args.profile)
        subject = parse_subject(data.get("subject", {}))
        reference_date = date.fromisoformat(args.reference_date) if args.reference_date else None
        overrides = data.get("overrides") or {}
        if not isinstance(overrides, dict) or not all(isinstance(v, dict) for v in overrides.values()):
            raise ValueError("overrides must map comparable ids to {factor: applied} objects")
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        print(f"Error: Invalid valuation input: {e}", file=sys.stderr)
        return 1

    normalised = normalize(extract_records(data, "comparables"), profile)

    try:
        result = evaluate(
            subject,
            normalised.transactions,
            config=profile,
            reference_date=reference_date,
            overrides=overrides,
        )
    except InsufficientComparablesError as e:
        print(
            f"Error: Not enough data: {e} "
            f"({normalised.dropped_count} of {normalised.total_records} records dropped)",
            file=sys.stderr,
        )
        return 1
    except ValuationError as e:
        print(f"Error: Computation failed: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Error: Invalid valuation input: {e}", file=sys.stderr)
        return 1

    if args.json:
        _print_json(result.to_dict())
    else:
        print(result.summary)

    if args.csv:
        filepath = write_csv(comparable_rows(result.comparables), Path(args.csv))
        print(f"Comparables written: {filepath}")

    return 0


def cmd_anomalies(args):
    """Scan a JSON file of raw records for anomalous transactions."""
    data = _load_json(args.input_file)
    if data is None:
        return 1

    try:
        profile = get_profile(args.profile)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    population = normalize(extract_records(data), profile).transactions

    batches = [detect_anomalies(population, profile)]
    if args.rapid_changes:
        batches.append(detect_rapid_changes(population, profile))
    if args.data_gaps:
        batches.append(detect_data_gaps(population, config=profile))
    reports = merge_reports(*batches)

    if args.json:
        _print_json([r.to_dict() for r in reports])
        return 0

    if not reports:
        print(f"No anomalies found in {len(population)} transactions")
        return 0

    print(f"{len(reports)} anomalies found in {len(population)} transactions:")
    for r in reports:
        print(
            f"  [{r.severity.value}] {r.anomaly_type.value} {r.address}, {r.city}: "
            f"{r.deviation_percent:+.1f}% - {r.recommendation}"
        )
    return 0


def cmd_export(args):
    """Normalise raw records and write them as CSV."""
    data = _load_json(args.input_file)
    if data is None:
        return 1

    try:
        profile = get_profile(args.profile)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    result = normalize(extract_records(data), profile)
    filepath = write_csv(transaction_rows(result.transactions), Path(args.output))

    print(
        f"Exported {result.normalized_count} transactions "
        f"({result.dropped_count} dropped): {filepath}"
    )
    return 0


def build_parser(default_profile: str = "residential") -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        description="Comparable-sales valuation engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python -m reporting.cli valuate cases/apartment.json --csv out/comps.csv
    python -m reporting.cli anomalies data/tel_aviv.json --rapid-changes
    python -m reporting.cli export data/tel_aviv.json --output out/transactions.csv
        """,
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # Valuate command
    val_parser = subparsers.add_parser(
        "valuate",
        help="Value a subject property from comparables",
    )
    val_parser.add_argument("input_file", help="Path to JSON valuation input")
    val_parser.add_argument("--profile", default=default_profile, help="Property-category profile")
    val_parser.add_argument("--reference-date", help="ISO date time decay is measured to")
    val_parser.add_argument("--csv", help="Write comparables to this CSV file")
    val_parser.add_argument("--json", action="store_true", help="Print the full result as JSON")
    val_parser.set_defaults(func=cmd_valuate)

    # Anomalies command
    anom_parser = subparsers.add_parser(
        "anomalies",
        help="Scan raw records for anomalous transactions",
    )
    anom_parser.add_argument("input_file", help="Path to JSON records")
    anom_parser.add_argument("--profile", default=default_profile, help="Property-category profile")
    anom_parser.add_argument("--rapid-changes", action="store_true", help="Include rapid-change scan")
    anom_parser.add_argument("--data-gaps", action="store_true", help="Include data-gap scan")
    anom_parser.add_argument("--json", action="store_true", help="Print findings as JSON")
    anom_parser.set_defaults(func=cmd_anomalies)

    # Export command
    exp_parser = subparsers.add_parser(
        "export",
        help="Normalise raw records and export them as CSV",
    )
    exp_parser.add_argument("input_file", help="Path to JSON records")
    exp_parser.add_argument("--output", required=True, help="CSV file to write")
    exp_parser.add_argument("--profile", default=default_profile, help="Property-category profile")
    exp_parser.set_defaults(func=cmd_export)

    return parser


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point."""
    config = Config.load()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    args = build_parser(config.default_profile).parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
