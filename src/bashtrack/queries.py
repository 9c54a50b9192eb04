"""Query implementations for bashtrack command history."""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime

from bashtrack.storage import CommandView, SQLiteStorage, to_datetime

logger = logging.getLogger("bashtrack")

# Maximum results returned by search_commands
SEARCH_LIMIT = 50

# Sizes of the stats leaderboards
TOP_DIRECTORIES = 10
TOP_COMMANDS = 10
TOP_WORDS = 15

# Commands longer than this are shortened for display only
DISPLAY_WIDTH = 50

# A command matches when its text, or any of its words, contains the needle.
# instr() keeps matching case-sensitive and treats % and _ literally.
_TEXT_MATCH = """(
    instr(c.full_command, ?) > 0
    OR EXISTS (
        SELECT 1
        FROM command_word_positions cwp
        JOIN words w ON w.id = cwp.word_id
        WHERE cwp.command_id = c.id AND instr(w.word, ?) > 0
    )
)"""


def _format_timestamp(ts) -> str | None:
    """Format a timestamp value for output.

    Handles both datetime objects and strings from SQLite.
    """
    if ts is None:
        return None
    if isinstance(ts, str):
        return ts  # Already a string
    return ts.isoformat()


def normalize_datetime(dt: datetime | None) -> datetime | None:
    """Normalize a datetime to naive (no timezone) for comparison.

    Rows written by older releases carry a UTC offset while new rows are
    naive local time. Stripping the offset keeps the local wall-clock
    values comparable.
    """
    if dt is not None and dt.tzinfo is not None:
        return dt.replace(tzinfo=None)
    return dt


def truncate_command(command: str, width: int = DISPLAY_WIDTH) -> str:
    """Shorten a command for display, marking the cut with ``...``."""
    if len(command) > width:
        return command[:width] + "..."
    return command


def build_where_clause(
    filter_text: str | None = None,
    directory: str | None = None,
    extra_conditions: list[str] | None = None,
) -> tuple[str, list]:
    """Build a WHERE clause over ``commands c`` with the common filters.

    Args:
        filter_text: Substring of the command text or of any of its words
        directory: Substring of the directory
        extra_conditions: Additional WHERE conditions to include

    Returns:
        Tuple of (where_clause_string, params_list)
    """
    conditions = []
    params: list = []

    if filter_text:
        conditions.append(_TEXT_MATCH)
        params.extend([filter_text, filter_text])

    if directory:
        conditions.append("instr(c.directory, ?) > 0")
        params.append(directory)

    if extra_conditions:
        conditions.extend(extra_conditions)

    where_clause = " AND ".join(conditions) if conditions else "1=1"
    return where_clause, params


def _error_result(action: str, error: Exception, **extra) -> dict:
    logger.error(f"Error {action}: {error}")
    return {"status": "error", "reason": str(error), **extra}


def _fetch_commands(
    storage: SQLiteStorage,
    where_clause: str,
    params: list,
    limit: int,
    include_words: bool,
) -> list[CommandView]:
    """Run a newest-first command query and optionally attach word lists."""
    # Safe: where_clause is built from hardcoded condition strings, not user input
    rows = storage.execute_query(
        f"""
        SELECT c.id, c.timestamp, c.directory, c.full_command
        FROM commands c
        WHERE {where_clause}
        ORDER BY c.timestamp DESC, c.id DESC
        LIMIT ?
        """,
        [*params, limit],
    )

    views = [
        CommandView(
            id=row["id"],
            timestamp=to_datetime(row["timestamp"]),
            directory=row["directory"],
            full_command=row["full_command"],
        )
        for row in rows
    ]

    if include_words and views:
        words = storage.get_command_words([view.id for view in views])
        for view in views:
            view.words = words[view.id]

    return views


def list_commands(
    storage: SQLiteStorage,
    limit: int = 20,
    filter_text: str | None = None,
    directory: str | None = None,
    include_words: bool = False,
) -> dict:
    """List recent commands, newest first.

    Args:
        storage: Storage instance
        limit: Maximum number of commands
        filter_text: Optional substring of the command or any of its words
        directory: Optional substring of the directory
        include_words: Attach each command's ordered word list

    Returns:
        Dict with the matching commands
    """
    if limit < 1:
        raise ValueError(f"limit must be positive, got {limit}")

    where_clause, params = build_where_clause(filter_text=filter_text, directory=directory)
    try:
        commands = _fetch_commands(storage, where_clause, params, limit, include_words)
    except (sqlite3.Error, ValueError) as e:
        return _error_result("querying commands", e, limit=limit, commands=[])

    return {
        "limit": limit,
        "filter": filter_text,
        "directory": directory,
        "count": len(commands),
        "commands": [c.to_dict() for c in commands],
    }


def search_commands(
    storage: SQLiteStorage,
    pattern: str,
    include_words: bool = False,
) -> dict:
    """Find commands whose text or words contain ``pattern``.

    Each command appears once, however many of its words match.
    Results are capped at SEARCH_LIMIT.

    Args:
        storage: Storage instance
        pattern: Substring to look for
        include_words: Attach each command's ordered word list

    Returns:
        Dict with the matching commands
    """
    where_clause, params = build_where_clause(filter_text=pattern)
    try:
        commands = _fetch_commands(storage, where_clause, params, SEARCH_LIMIT, include_words)
    except (sqlite3.Error, ValueError) as e:
        return _error_result("searching commands", e, pattern=pattern, commands=[])

    return {
        "pattern": pattern,
        "count": len(commands),
        "commands": [c.to_dict() for c in commands],
    }


def get_stats(storage: SQLiteStorage) -> dict:
    """Summarize the whole history.

    Grouping always uses the full command text; only the ``display``
    field of top_commands is truncated.

    Returns:
        Dict with totals, date span, average per day and leaderboards
    """
    try:
        total = storage.execute_query("SELECT COUNT(*) as count FROM commands")[0]["count"]

        span = storage.execute_query(
            "SELECT MIN(timestamp) as earliest, MAX(timestamp) as latest FROM commands"
        )[0]

        directory_rows = storage.execute_query(
            """
            SELECT directory, COUNT(*) as count
            FROM commands
            GROUP BY directory
            ORDER BY count DESC, directory
            LIMIT ?
            """,
            (TOP_DIRECTORIES,),
        )

        command_rows = storage.execute_query(
            """
            SELECT full_command, COUNT(*) as count
            FROM commands
            GROUP BY full_command
            ORDER BY count DESC, full_command
            LIMIT ?
            """,
            (TOP_COMMANDS,),
        )

        word_rows = storage.execute_query(
            """
            SELECT w.word, COUNT(*) as count
            FROM command_word_positions cwp
            JOIN words w ON w.id = cwp.word_id
            GROUP BY w.id
            ORDER BY count DESC, w.word
            LIMIT ?
            """,
            (TOP_WORDS,),
        )

        earliest = normalize_datetime(to_datetime(span["earliest"]))
        latest = normalize_datetime(to_datetime(span["latest"]))
    except (sqlite3.Error, ValueError) as e:
        return _error_result("computing statistics", e)

    day_span = None
    average_per_day = None
    if earliest is not None and latest is not None:
        day_span = (latest - earliest).days
        # A span under one day has no meaningful daily average
        if day_span > 0:
            average_per_day = round(total / day_span, 1)

    return {
        "total_commands": total,
        "earliest": _format_timestamp(earliest),
        "latest": _format_timestamp(latest),
        "day_span": day_span,
        "average_per_day": average_per_day,
        "top_directories": [
            {"directory": row["directory"], "count": row["count"]} for row in directory_rows
        ],
        "top_commands": [
            {
                "command": row["full_command"],
                "display": truncate_command(row["full_command"]),
                "count": row["count"],
            }
            for row in command_rows
        ],
        "top_words": [{"word": row["word"], "count": row["count"]} for row in word_rows],
    }


def prune_history(storage: SQLiteStorage, days: int = 90, now: datetime | None = None) -> dict:
    """Delete commands older than ``days`` days.

    Returns:
        Dict with the number of commands removed
    """
    try:
        deleted = storage.prune_commands(days, now=now)
    except sqlite3.Error as e:
        return _error_result("cleaning up commands", e, days=days, deleted=0)

    return {"days": days, "deleted": deleted}
