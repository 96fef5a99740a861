"""
Reporting module for the valuation engine.

Exports normalised transactions and comparable evaluations as CSV, and
exposes the engine on the command line.

Usage:
    from reporting import comparable_rows, write_csv

    write_csv(comparable_rows(result.comparables), "comparables.csv")
"""

from .export import (
    COMPARABLE_COLUMNS,
    TRANSACTION_COLUMNS,
    comparable_rows,
    transaction_rows,
    write_csv,
)

__all__ = [
    "COMPARABLE_COLUMNS",
    "TRANSACTION_COLUMNS",
    "comparable_rows",
    "transaction_rows",
    "write_csv",
]
