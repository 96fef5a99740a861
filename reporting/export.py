"""
CSV export of transactions and comparable evaluations.

Rows are built from fields the engine already exposes; nothing is
recomputed here.
"""

import csv
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from core.valuation_engine import ComparableEvaluation, Transaction


TRANSACTION_COLUMNS = [
    "address",
    "city",
    "area",
    "price",
    "price_per_unit_area",
    "date",
]

COMPARABLE_COLUMNS = TRANSACTION_COLUMNS + [
    "adjusted_price",
    "total_adjustment_percent",
    "weight",
]


def transaction_rows(transactions: Iterable[Transaction]) -> List[dict]:
    """One row per transaction with the export columns."""
    rows = []
    for t in transactions:
        data = t.to_dict()
        rows.append({column: data[column] for column in TRANSACTION_COLUMNS})
    return rows


def comparable_rows(evaluations: Iterable[ComparableEvaluation]) -> List[dict]:
    """One row per comparable, adding adjusted price and weight."""
    rows = []
    for e in evaluations:
        data = e.to_dict()
        rows.append({column: data[column] for column in COMPARABLE_COLUMNS})
    return rows


def write_csv(
    rows: Sequence[dict],
    path: Path,
    columns: Optional[Sequence[str]] = None,
) -> Path:
    """
    Write rows to a CSV file with a header line.

    Args:
        rows: Row dicts, as from transaction_rows() or comparable_rows()
        path: Output file; parent directories are created
        columns: Column order (default: keys of the first row, or the
            transaction columns when there are no rows)

    Returns:
        Path of the written file
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    if columns is None:
        columns = list(rows[0]) if rows else TRANSACTION_COLUMNS

    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=list(columns))
        writer.writeheader()
        writer.writerows(rows)

    return path
