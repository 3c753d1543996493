"""Version management utilities.

Reads the version from installed package metadata, falling back to
``setup.py`` for source checkouts that were never installed.
"""

import importlib.metadata
import re
from pathlib import Path


def get_version() -> str:
    """
    Retrieve the current package version as a string.

    Attempts to obtain the version from the installed package metadata. If the package is not installed, falls back to reading the version from `setup.py`. Returns "unknown" if the version cannot be determined.

    Returns:
        str: The version string of the package, or "unknown" if unavailable.
    """
    try:
        return importlib.metadata.version("tokemon")
    except importlib.metadata.PackageNotFoundError:
        return _get_version_from_setup()


def _get_version_from_setup() -> str:
    """
    Reads the ``__version__`` assignment from a `setup.py` located up to five directory levels above this file.

    Returns:
        str: The version string if found, otherwise "unknown".
    """
    current_dir = Path(__file__).parent
    for _ in range(5):
        setup_path = current_dir / "setup.py"
        if setup_path.exists():
            try:
                text = setup_path.read_text(encoding="utf-8")
            except OSError:
                return "unknown"
            match = re.search(r'^__version__\s*=\s*"([^"]+)"', text, re.MULTILINE)
            return match.group(1) if match else "unknown"
        current_dir = current_dir.parent

    return "unknown"


__version__: str = get_version()
