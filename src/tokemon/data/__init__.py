"""Data sources for Tokemon: the OAuth usage API and local session logs."""

from typing import List

__all__: List[str] = []
