"""Formatting utilities for Tokemon.

This module provides formatting functions for token counts and currency
used by snapshot and forecast consumers.
"""

from typing import Optional


def format_token_count(count: int) -> str:
    """
    Format a token count with a K/M suffix.

    Counts of one million and above always use the "M" suffix, so a billion
    tokens renders as "1000.0M" rather than switching to "B".

    Parameters:
        count (int): Number of tokens.

    Returns:
        str: "500", "1.5K", "1.5M", ...
    """
    if count >= 1_000_000:
        return f"{count / 1_000_000:.1f}M"
    if count >= 1_000:
        return f"{count / 1_000:.1f}K"
    return str(count)


def format_currency(amount: float, currency: str = "USD") -> str:
    """
    Format a numeric amount as a currency string, using appropriate symbols and conventions.

    For USD, prepends a dollar sign and places the minus sign before the dollar sign for negative values. For other currencies, appends the currency code after the formatted amount.

    Parameters:
        amount (float): The numeric amount to format.
        currency (str, optional): The currency code (default is "USD").

    Returns:
        str: The formatted currency string.
    """
    amount = round(amount, 2)

    if currency == "USD":
        if amount >= 0:
            return f"${amount:,.2f}"
        else:
            return f"$-{abs(amount):,.2f}"
    else:
        return f"{amount:,.2f} {currency}"


def format_cents(cents: Optional[float], decimals: int = 2) -> str:
    """Format a cent amount as dollars, or "--" when unknown."""
    if cents is None:
        return "--"
    return f"${cents / 100.0:.{decimals}f}"

