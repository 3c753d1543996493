"""Tokemon - fused usage monitoring for Claude rate limits.

Combines the OAuth usage endpoint and local Claude Code session logs into a
single canonical usage snapshot plus derived metrics.
"""

from tokemon._version import __version__

__all__ = ["__version__"]
