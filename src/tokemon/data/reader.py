"""Session log reader for Tokemon.

Aggregates token usage from the JSONL session logs Claude Code writes under
``~/.claude/projects/<encoded-project-path>/<session>.jsonl``. This is the
fallback source when the OAuth usage API is unavailable: it yields token
counts but never a utilization percentage.
"""

import json
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import pytz

from tokemon.core.data_processors import TimestampProcessor, TokenExtractor
from tokemon.core.models import (
    NO_PERCENTAGE,
    AggregateUsage,
    DataSource,
    ProjectUsage,
    SessionUsage,
    UsageSnapshot,
)
from tokemon.error_handling import report_file_error
from tokemon.utils.time_utils import utc_now

DEFAULT_DATA_PATH = "~/.claude/projects"
# Matches the OAuth five-hour usage window
DEFAULT_LOOKBACK_HOURS = 5

logger = logging.getLogger(__name__)


class JSONLError(Exception):
    """Base error for the session log source."""


class NoProjectsDirectoryError(JSONLError):
    """The projects root does not exist."""

    def __init__(self, path: Union[str, Path]) -> None:
        super().__init__(f"Claude Code projects directory not found ({path})")
        self.path = path


class NoSessionFilesError(JSONLError):
    """The projects root exists but holds no (recent) session files."""

    def __init__(self, path: Union[str, Path]) -> None:
        super().__init__(f"No session files found in Claude Code projects ({path})")
        self.path = path


def _resolve_data_path(data_path: Optional[Union[str, Path]]) -> Path:
    return Path(data_path if data_path else DEFAULT_DATA_PATH).expanduser()


def _mtime(path: Path) -> Optional[datetime]:
    try:
        return datetime.fromtimestamp(path.stat().st_mtime, tz=pytz.UTC)
    except OSError:
        return None


def find_project_directories(
    data_path: Optional[Union[str, Path]] = None,
) -> List[Path]:
    """
    List the project directories under the projects root.

    Parameters:
        data_path: Projects root, defaults to ``~/.claude/projects``.

    Returns:
        List[Path]: Non-hidden subdirectories, sorted by name.

    Raises:
        NoProjectsDirectoryError: If the root is missing or not a directory.
    """
    root = _resolve_data_path(data_path)
    if not root.is_dir():
        raise NoProjectsDirectoryError(root)

    try:
        entries = list(root.iterdir())
    except OSError as e:
        report_file_error(e, str(root), operation="list")
        raise NoProjectsDirectoryError(root) from e

    return sorted(
        (p for p in entries if p.is_dir() and not p.name.startswith(".")),
        key=lambda p: p.name,
    )


def find_session_files(
    project_dir: Path, since: Optional[datetime] = None
) -> List[Path]:
    """
    List ``*.jsonl`` session files in one project directory, newest first.

    When ``since`` is given, files last modified before it are dropped.
    An unreadable directory yields an empty list.
    """
    try:
        candidates = [
            p
            for p in project_dir.iterdir()
            if p.suffix == ".jsonl" and p.is_file() and not p.name.startswith(".")
        ]
    except OSError as e:
        logger.debug(f"Cannot list {project_dir}: {e}")
        return []

    dated = []
    for path in candidates:
        modified = _mtime(path)
        if modified is None:
            continue
        if since is not None and modified < since:
            continue
        dated.append((modified, path))

    dated.sort(key=lambda item: item[0], reverse=True)
    return [path for _, path in dated]


def _session_from_record(
    record: Dict[str, Any], path: Path, timestamp_processor: TimestampProcessor
) -> SessionUsage:
    counts = TokenExtractor.extract_tokens(record)
    session_id = record.get("sessionId")
    return SessionUsage(
        input_tokens=counts.input_tokens,
        output_tokens=counts.output_tokens,
        cache_creation_tokens=counts.cache_creation_tokens,
        cache_read_tokens=counts.cache_read_tokens,
        model=TokenExtractor.extract_model_name(record),
        session_id=session_id if isinstance(session_id, str) else path.stem,
        timestamp=timestamp_processor.parse_timestamp(record.get("timestamp")),
    )


def parse_session(
    path: Path, timestamp_processor: Optional[TimestampProcessor] = None
) -> SessionUsage:
    """
    Read one session log and return its current token usage.

    Each assistant record carries the running usage of the conversation, so
    the counts and model come from the latest well-formed assistant record
    with a ``message.usage`` block. Malformed lines, including undecodable
    bytes, are skipped and counted.
    An unreadable file is reported and yields empty usage; it never raises.
    """
    timestamp_processor = timestamp_processor or TimestampProcessor()
    latest: Optional[Dict[str, Any]] = None
    skipped = 0

    try:
        with open(path, encoding="utf-8", errors="replace") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    record = json.loads(line)
                except json.JSONDecodeError:
                    skipped += 1
                    continue
                if not isinstance(record, dict):
                    skipped += 1
                    continue
                if TokenExtractor.is_assistant_usage(record):
                    latest = record
    except OSError as e:
        report_file_error(
            exception=e,
            file_path=str(path),
            operation="read",
            additional_context={"skipped_lines": skipped},
        )
        return SessionUsage(session_id=path.stem, skipped_lines=skipped)

    if skipped:
        logger.debug(f"Skipped {skipped} malformed lines in {path.name}")

    if latest is None:
        return SessionUsage(session_id=path.stem, skipped_lines=skipped)

    session = _session_from_record(latest, path, timestamp_processor)
    session.skipped_lines = skipped
    return session


def parse_recent_usage(
    data_path: Optional[Union[str, Path]] = None,
    since: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> AggregateUsage:
    """
    Aggregate token usage across all sessions modified since ``since``.

    Parameters:
        data_path: Projects root, defaults to ``~/.claude/projects``.
        since: Oldest modification time to include. Defaults to five hours
            before ``now``.
        now: Reference time for the default window.

    Returns:
        AggregateUsage: Summed session usage. The model is taken from the
        most recent session that names one.

    Raises:
        NoProjectsDirectoryError: If the projects root is missing.
        NoSessionFilesError: If no session files fall inside the window.
    """
    root = _resolve_data_path(data_path)
    if since is None:
        since = (now or utc_now()) - timedelta(hours=DEFAULT_LOOKBACK_HOURS)

    timestamp_processor = TimestampProcessor()
    aggregate = AggregateUsage()
    model_timestamp: Optional[datetime] = None

    for project_dir in find_project_directories(root):
        for session_file in find_session_files(project_dir, since=since):
            session = parse_session(session_file, timestamp_processor)
            aggregate.add(session)
            aggregate.session_count += 1

            stamp = session.timestamp or _mtime(session_file)
            if stamp is not None and (
                aggregate.latest_timestamp is None or stamp > aggregate.latest_timestamp
            ):
                aggregate.latest_timestamp = stamp
            if session.model and (
                model_timestamp is None or (stamp is not None and stamp > model_timestamp)
            ):
                aggregate.model = session.model
                model_timestamp = stamp

    if aggregate.session_count == 0:
        raise NoSessionFilesError(root)

    logger.info(
        f"Aggregated {aggregate.total_tokens} tokens from "
        f"{aggregate.session_count} sessions in {root}"
    )
    return aggregate


def to_snapshot(aggregate: AggregateUsage) -> UsageSnapshot:
    """Token-count snapshot for the JSONL fallback; it carries no percentage."""
    return UsageSnapshot(
        primary_percentage=NO_PERCENTAGE,
        source=DataSource.JSONL,
        input_tokens=aggregate.input_tokens,
        output_tokens=aggregate.output_tokens,
        cache_creation_tokens=aggregate.cache_creation_tokens,
        cache_read_tokens=aggregate.cache_read_tokens,
        model=aggregate.model,
    )


def decode_project_path(dir_name: str) -> str:
    """Decode a project directory name: ``"-Users-me-app"`` -> ``"/Users/me/app"``."""
    if not dir_name.startswith("-"):
        return dir_name
    return "/" + dir_name[1:].replace("-", "/")


def project_breakdown(
    data_path: Optional[Union[str, Path]] = None, since: Optional[datetime] = None
) -> List[ProjectUsage]:
    """
    Per-project token usage, largest total first.

    Projects without session files in the window are left out; a missing
    projects root gives an empty list.
    """
    try:
        project_dirs = find_project_directories(data_path)
    except NoProjectsDirectoryError as e:
        logger.info(f"No project breakdown available: {e}")
        return []

    timestamp_processor = TimestampProcessor()
    projects = []
    for project_dir in project_dirs:
        session_files = find_session_files(project_dir, since=since)
        if not session_files:
            continue

        decoded = decode_project_path(project_dir.name)
        project = ProjectUsage(
            project_path=decoded,
            project_name=decoded.rstrip("/").rsplit("/", 1)[-1] or decoded,
        )
        for session_file in session_files:
            project.add(parse_session(session_file, timestamp_processor))
            project.session_count += 1
        projects.append(project)

    return sorted(projects, key=lambda p: p.total_tokens, reverse=True)
