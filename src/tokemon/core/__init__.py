"""Core package for Tokemon.

Data models, source state taxonomy, settings and the pure derived-metrics
engines (burn rate, forecasting, analytics).
"""

from typing import List

__all__: List[str] = []
