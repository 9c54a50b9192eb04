"""Recording of shell commands into the history store."""

import logging
import os
import sqlite3
from datetime import datetime

from bashtrack.filters import ExclusionFilter
from bashtrack.storage import SQLiteStorage

logger = logging.getLogger("bashtrack")

# Directory recorded when the working directory cannot be determined
UNKNOWN_DIRECTORY = "unknown"


def tokenize(command: str) -> list[str]:
    """Split a command into whitespace-delimited words."""
    return command.split()


def current_directory() -> str:
    """Return the working directory, or ``unknown`` if it no longer exists."""
    try:
        return os.getcwd()
    except OSError:
        return UNKNOWN_DIRECTORY


def record_command(
    storage: SQLiteStorage,
    raw_command: str,
    directory: str | None = None,
    exclusion: ExclusionFilter | None = None,
    now: datetime | None = None,
    log: logging.Logger | None = None,
) -> dict:
    """Record one command unless it is empty or excluded.

    Every call appends a new row; recording the same text twice keeps
    both occurrences. Storage failures are logged and reported in the
    result instead of raised, so a prompt hook never breaks the shell.

    Args:
        storage: Storage instance
        raw_command: Command text as typed
        directory: Working directory (default: current directory)
        exclusion: Exclusion filter to apply (default: none)
        now: Timestamp to record (default: now)
        log: Logger to report to (default: the bashtrack logger)

    Returns:
        Dict with status "recorded", "skipped" or "error"
    """
    log = log or logger

    words = tokenize(raw_command)
    if not words:
        return {"status": "skipped", "reason": "empty"}

    if exclusion is not None and exclusion.matches(raw_command):
        log.debug(f"Command excluded: {raw_command!r}")
        return {"status": "skipped", "reason": "excluded"}

    if directory is None:
        directory = current_directory()

    try:
        record = storage.add_command(raw_command, directory, words=words, timestamp=now)
    except sqlite3.Error as e:
        log.error(f"Error recording command: {e}")
        return {"status": "error", "reason": str(e)}

    log.debug(f"Recorded command {record.id} with {len(words)} words")
    return {
        "status": "recorded",
        "id": record.id,
        "word_count": len(words),
    }
