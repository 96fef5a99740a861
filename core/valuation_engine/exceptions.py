"""
Errors raised by the Valuation Engine.

Invalid input records are not errors: the normalizer drops and counts them.
Degenerate statistics in the anomaly detector are not errors either: they
yield an empty finding set.
"""


class ValuationError(ValueError):
    """Base class for valuation computation failures."""


class InsufficientComparablesError(ValuationError):
    """Raised when no comparable survives to aggregation."""

    def __init__(self, message: str = "no usable comparables", excluded: int = 0):
        super().__init__(message)
        self.excluded = excluded
