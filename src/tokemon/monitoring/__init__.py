"""Monitoring package for Tokemon.

Polling orchestration, history retention, event fan-out and alerting.
"""

from typing import List

# Import directly from the modules without facade
__all__: List[str] = []
