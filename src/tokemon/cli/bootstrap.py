"""Bootstrap utilities for CLI initialization."""

import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

CONFIG_DIR = Path.home() / ".tokemon"


def setup_logging(
    level: str = "INFO", log_file: Optional[Path] = None, disable_console: bool = False
) -> None:
    """
    Configure logging with the given level, an optional log file and optional console output.

    Parameters:
        level (str): Logging level name (e.g. "DEBUG", "INFO").
        log_file (Optional[Path]): File to append log records to, if provided.
        disable_console (bool): If True, nothing is logged to the console.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handlers: List[logging.Handler] = []
    if not disable_console:
        handlers.append(logging.StreamHandler(sys.stderr))
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    if not handlers:
        handlers.append(logging.NullHandler())

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )

    # Request-level chatter from the HTTP stack drowns the monitor's own output
    if log_level > logging.DEBUG:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)


def setup_environment() -> None:
    """Force UTF-8 stdout and default the TOKEMON_CONFIG_DIR variable."""
    if sys.stdout.encoding and sys.stdout.encoding.lower() != "utf-8":
        reconfigure = getattr(sys.stdout, "reconfigure", None)
        if reconfigure is not None:
            reconfigure(encoding="utf-8")

    os.environ.setdefault("TOKEMON_CONFIG_DIR", str(CONFIG_DIR))


def ensure_directories() -> None:
    """Create ``~/.tokemon`` and its logs directory if they do not exist."""
    dirs = [
        CONFIG_DIR,
        CONFIG_DIR / "logs",
    ]

    for directory in dirs:
        directory.mkdir(parents=True, exist_ok=True)
