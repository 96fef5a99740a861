"""
Formatting utilities for narratives and exports.
"""


def format_currency(amount: float, currency: str = "ILS") -> str:
    """
    Format an amount as currency, rounded to whole units.

    Args:
        amount: The amount in whole units (e.g., shekels, not agorot).
        currency: Currency code (default ILS).

    Returns:
        Formatted currency string.
    """
    symbols = {
        "ILS": "₪",
        "USD": "$",
        "EUR": "€",
        "GBP": "£",
    }
    symbol = symbols.get(currency, currency + " ")
    return f"{symbol}{round(amount):,}"


def format_percent(value: float, decimals: int = 1, signed: bool = False) -> str:
    """
    Format a number as a percentage.

    Args:
        value: The percentage value.
        decimals: Number of decimal places.
        signed: Always show the sign (for adjustments).

    Returns:
        Formatted percentage string.
    """
    if signed:
        return f"{value:+.{decimals}f}%"
    return f"{value:.{decimals}f}%"
