"""Utilities package for Tokemon."""

from typing import List

# Minimal imports - users should import what they need explicitly
# Usage:
#   from tokemon.utils.formatting import format_token_count, format_currency
#   from tokemon.utils.time_utils import TimezoneHandler

__all__: List[str] = []
