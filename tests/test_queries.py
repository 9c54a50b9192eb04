"""Tests for list, search, stats and cleanup queries."""

import sqlite3
from datetime import datetime, timedelta
from unittest.mock import patch

import pytest

from bashtrack.queries import (
    DISPLAY_WIDTH,
    SEARCH_LIMIT,
    build_where_clause,
    get_stats,
    list_commands,
    normalize_datetime,
    prune_history,
    search_commands,
    truncate_command,
)


def _texts(result: dict) -> list[str]:
    return [c["full_command"] for c in result["commands"]]


def _insert_raw_command(storage, timestamp: str, command: str):
    """Write a commands row directly, bypassing timestamp adaptation."""
    conn = sqlite3.connect(storage.db_path)
    try:
        conn.execute(
            "INSERT INTO commands (timestamp, directory, full_command) VALUES (?, ?, ?)",
            (timestamp, "/tmp", command),
        )
        conn.commit()
    finally:
        conn.close()


class TestListCommands:
    """Tests for list_commands."""

    def test_newest_first(self, populated_storage):
        result = list_commands(populated_storage)
        assert _texts(result) == [
            "docker ps",
            "git status",
            "docker build .",
            "git status",
            "make test",
        ]
        assert result["count"] == 5

    def test_limit(self, populated_storage):
        result = list_commands(populated_storage, limit=2)
        assert _texts(result) == ["docker ps", "git status"]

    def test_invalid_limit(self, populated_storage):
        with pytest.raises(ValueError, match="limit must be positive"):
            list_commands(populated_storage, limit=0)

    def test_filter_text(self, populated_storage):
        result = list_commands(populated_storage, filter_text="git")
        assert _texts(result) == ["git status", "git status"]

    def test_filter_directory(self, populated_storage):
        result = list_commands(populated_storage, directory="app")
        assert _texts(result) == ["docker ps", "docker build ."]
        assert all(c["directory"] == "/home/user/app" for c in result["commands"])

    def test_filters_are_combined(self, populated_storage):
        """Test that text and directory filters must both match."""
        assert list_commands(populated_storage, filter_text="docker", directory="proj")[
            "commands"
        ] == []
        result = list_commands(populated_storage, filter_text="status", directory="proj")
        assert result["count"] == 2

    def test_filter_is_case_sensitive(self, populated_storage):
        assert list_commands(populated_storage, filter_text="Docker")["commands"] == []

    def test_filter_treats_wildcards_literally(self, storage):
        """Test that % and _ in the filter are plain characters."""
        storage.add_command("echo 100%", "/tmp")
        storage.add_command("echo done", "/tmp")
        storage.add_command("my_script.sh", "/tmp")

        assert _texts(list_commands(storage, filter_text="%")) == ["echo 100%"]
        assert _texts(list_commands(storage, filter_text="_")) == ["my_script.sh"]

    def test_filter_matches_linked_words(self, storage):
        """Test that a word link matches even when the text does not contain it."""
        storage.add_command("gst", "/src", words=["git", "status"])
        storage.add_command("ls", "/src")

        assert _texts(list_commands(storage, filter_text="status")) == ["gst"]

    def test_include_words(self, populated_storage):
        result = list_commands(populated_storage, limit=1, include_words=True)
        assert result["commands"][0]["words"] == ["docker", "ps"]

    def test_words_omitted_by_default(self, populated_storage):
        result = list_commands(populated_storage, limit=1)
        assert "words" not in result["commands"][0]

    def test_empty_store(self, storage):
        result = list_commands(storage)
        assert result["commands"] == []
        assert result["count"] == 0

    def test_storage_error_reported(self, populated_storage):
        """Test that engine failures become an error result."""
        with patch.object(
            populated_storage, "execute_query", side_effect=sqlite3.OperationalError("malformed")
        ):
            result = list_commands(populated_storage)

        assert result["status"] == "error"
        assert result["reason"] == "malformed"
        assert result["commands"] == []

    def test_unparseable_timestamp_reported(self, storage):
        """Test that a row with a corrupt timestamp yields an error result."""
        _insert_raw_command(storage, "garbage", "make")

        result = list_commands(storage)

        assert result["status"] == "error"
        assert "garbage" in result["reason"]
        assert result["commands"] == []


class TestSearchCommands:
    """Tests for search_commands."""

    def test_search_docker(self, populated_storage):
        """Test that both docker commands come back newest first."""
        result = search_commands(populated_storage, "docker")
        assert _texts(result) == ["docker ps", "docker build ."]
        assert result["pattern"] == "docker"

    def test_distinct_results(self, populated_storage):
        """Test that a command matching several words appears once."""
        result = search_commands(populated_storage, "t")
        ids = [c["id"] for c in result["commands"]]
        assert len(ids) == len(set(ids))
        assert sorted(_texts(result)) == ["git status", "git status", "make test"]

    def test_capped_at_limit(self, storage):
        base = datetime(2025, 1, 1)
        for i in range(SEARCH_LIMIT + 10):
            storage.add_command(f"echo {i}", "/tmp", timestamp=base + timedelta(minutes=i))

        result = search_commands(storage, "echo")
        assert result["count"] == SEARCH_LIMIT
        assert result["commands"][0]["full_command"] == f"echo {SEARCH_LIMIT + 9}"

    def test_no_match(self, populated_storage):
        result = search_commands(populated_storage, "kubectl")
        assert result["commands"] == []

    def test_include_words(self, populated_storage):
        result = search_commands(populated_storage, "build", include_words=True)
        assert result["commands"][0]["words"] == ["docker", "build", "."]

    def test_storage_error_reported(self, populated_storage):
        with patch.object(
            populated_storage, "execute_query", side_effect=sqlite3.DatabaseError("corrupt")
        ):
            result = search_commands(populated_storage, "git")

        assert result["status"] == "error"
        assert result["commands"] == []

    def test_unparseable_timestamp_reported(self, storage):
        _insert_raw_command(storage, "garbage", "git status")

        result = search_commands(storage, "git")

        assert result["status"] == "error"
        assert result["commands"] == []


class TestGetStats:
    """Tests for get_stats."""

    def test_totals_and_span(self, populated_storage):
        stats = get_stats(populated_storage)

        assert stats["total_commands"] == 5
        assert stats["earliest"] < stats["latest"]
        assert stats["day_span"] == 9
        assert stats["average_per_day"] == round(5 / 9, 1)

    def test_top_directories(self, populated_storage):
        stats = get_stats(populated_storage)
        assert stats["top_directories"] == [
            {"directory": "/home/user/app", "count": 2},
            {"directory": "/home/user/proj", "count": 2},
            {"directory": "/tmp/build", "count": 1},
        ]

    def test_top_commands(self, populated_storage):
        stats = get_stats(populated_storage)
        top = stats["top_commands"][0]
        assert top == {"command": "git status", "display": "git status", "count": 2}
        assert len(stats["top_commands"]) == 4

    def test_top_words(self, populated_storage):
        stats = get_stats(populated_storage)
        assert stats["top_words"][:3] == [
            {"word": "docker", "count": 2},
            {"word": "git", "count": 2},
            {"word": "status", "count": 2},
        ]
        assert len(stats["top_words"]) == 8

    def test_leaderboard_sizes(self, storage):
        base = datetime(2025, 1, 1)
        for i in range(20):
            storage.add_command(f"cmd{i} arg{i}", f"/dir{i}", timestamp=base + timedelta(hours=i))

        stats = get_stats(storage)
        assert len(stats["top_directories"]) == 10
        assert len(stats["top_commands"]) == 10
        assert len(stats["top_words"]) == 15

    def test_empty_store(self, storage):
        stats = get_stats(storage)
        assert stats["total_commands"] == 0
        assert stats["earliest"] is None
        assert stats["latest"] is None
        assert stats["average_per_day"] is None
        assert stats["top_directories"] == []
        assert stats["top_commands"] == []
        assert stats["top_words"] == []

    def test_same_day_suppresses_average(self, storage):
        """Test that a span under one day reports no daily average."""
        now = datetime.now()
        storage.add_command("make", "/src", timestamp=now - timedelta(hours=5))
        storage.add_command("make", "/src", timestamp=now)

        stats = get_stats(storage)
        assert stats["day_span"] == 0
        assert stats["average_per_day"] is None

    def test_long_commands_truncated_for_display_only(self, storage):
        """Test that grouping uses the full text even when display is cut."""
        prefix = "x" * DISPLAY_WIDTH
        storage.add_command(prefix + " one", "/src")
        storage.add_command(prefix + " one", "/src")
        storage.add_command(prefix + " two", "/src")

        top = get_stats(storage)["top_commands"]
        assert [t["count"] for t in top] == [2, 1]
        assert top[0]["command"] == prefix + " one"
        assert top[0]["display"] == prefix + "..."

    def test_storage_error_reported(self, populated_storage):
        with patch.object(
            populated_storage, "execute_query", side_effect=sqlite3.OperationalError("locked")
        ):
            stats = get_stats(populated_storage)

        assert stats["status"] == "error"
        assert stats["reason"] == "locked"

    def test_unparseable_timestamp_reported(self, storage):
        """Test that a corrupt earliest/latest value yields an error result."""
        _insert_raw_command(storage, "garbage", "make")

        stats = get_stats(storage)

        assert stats["status"] == "error"
        assert "garbage" in stats["reason"]


class TestPruneHistory:
    """Tests for prune_history."""

    def test_prunes_old_commands(self, populated_storage):
        result = prune_history(populated_storage, days=5)
        assert result == {"days": 5, "deleted": 1}
        assert "make test" not in _texts(list_commands(populated_storage))

    def test_nothing_to_prune(self, populated_storage):
        assert prune_history(populated_storage, days=365)["deleted"] == 0

    def test_storage_error_reported(self, populated_storage):
        with patch.object(
            populated_storage, "prune_commands", side_effect=sqlite3.OperationalError("locked")
        ):
            result = prune_history(populated_storage, days=5)

        assert result["status"] == "error"
        assert result["deleted"] == 0


class TestHelpers:
    """Tests for query helpers."""

    def test_truncate_command(self):
        assert truncate_command("short") == "short"
        assert truncate_command("a" * 60) == "a" * 50 + "..."

    def test_normalize_datetime(self):
        aware = datetime.fromisoformat("2024-01-02T15:04:05-07:00")
        assert normalize_datetime(aware) == datetime(2024, 1, 2, 15, 4, 5)
        assert normalize_datetime(None) is None

    def test_build_where_clause_empty(self):
        assert build_where_clause() == ("1=1", [])

    def test_build_where_clause_params(self):
        where, params = build_where_clause(filter_text="git", directory="src")
        assert " AND " in where
        assert params == ["git", "git", "src"]
