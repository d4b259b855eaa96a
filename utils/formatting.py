"""Display formatting for the inline expense editor templates."""

from typing import Any, Optional


def format_cents(value: Optional[Any], thousands_sep: bool = True) -> str:
    """Format an amount stored in cents as dollars.

    Args:
        value: Amount in cents (int, numeric string, or None)
        thousands_sep: Add thousands separator (default: True)

    Returns:
        Formatted string like "$1,234.56", or "-" when the value is missing
        or not a number.

    Examples:
        format_cents(300) -> "$3.00"
        format_cents(123456) -> "$1,234.56"
        format_cents(None) -> "-"
    """
    if value is None or value == "":
        return "-"
    try:
        cents = int(value)
    except (TypeError, ValueError):
        return "-"
    sign = "-" if cents < 0 else ""
    dollars = abs(cents) / 100
    if thousands_sep:
        return f"{sign}${dollars:,.2f}"
    return f"{sign}${dollars:.2f}"


def truncate_text(text: Optional[str], max_length: int = 60, suffix: str = "…") -> str:
    """Shorten *text* to at most *max_length* characters including *suffix*."""
    if not text:
        return ""
    if len(text) <= max_length:
        return text
    return text[: max(0, max_length - len(suffix))].rstrip() + suffix
