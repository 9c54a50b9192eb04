"""Tests for configuration loading and exclude-pattern edits."""

import json

import pytest

from bashtrack.config import (
    CONFIG_FILENAME,
    DB_FILENAME,
    DEFAULT_EXCLUDE_PATTERNS,
    Config,
    add_exclude_pattern,
    config_dir,
    load_config,
    remove_exclude_pattern,
    save_config,
)
from bashtrack.exceptions import ConfigError


class TestLoadConfig:
    """Tests for load_config."""

    def test_creates_default_config(self, tmp_path):
        """Test that a missing file is written with the defaults."""
        config = load_config(tmp_path)

        assert config.exclude_patterns == DEFAULT_EXCLUDE_PATTERNS
        assert config.database_path == str(tmp_path / DB_FILENAME)
        saved = json.loads((tmp_path / CONFIG_FILENAME).read_text())
        assert saved["exclude_patterns"] == DEFAULT_EXCLUDE_PATTERNS

    def test_roundtrip(self, tmp_path):
        """Test saving then loading a custom config."""
        db_path = str(tmp_path / "test.db")
        save_config(
            Config(exclude_patterns=["test1", "test2"], database_path=db_path),
            tmp_path / CONFIG_FILENAME,
        )

        loaded = load_config(tmp_path)
        assert loaded.exclude_patterns == ["test1", "test2"]
        assert loaded.database_path == db_path

    def test_fills_missing_database_path(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text(json.dumps({"exclude_patterns": []}))
        config = load_config(tmp_path)
        assert config.database_path == str(tmp_path / DB_FILENAME)
        assert config.exclude_patterns == []

    def test_malformed_json_is_fatal(self, tmp_path):
        """Test that a broken file raises and is left untouched."""
        path = tmp_path / CONFIG_FILENAME
        path.write_text("{not json")

        with pytest.raises(ConfigError, match="Failed to parse config"):
            load_config(tmp_path)

        assert path.read_text() == "{not json"

    @pytest.mark.parametrize(
        "document",
        [
            [],
            {"exclude_patterns": "^ls"},
            {"exclude_patterns": [1, 2]},
            {"database_path": 42},
        ],
    )
    def test_wrong_types_are_fatal(self, tmp_path, document):
        (tmp_path / CONFIG_FILENAME).write_text(json.dumps(document))
        with pytest.raises(ConfigError):
            load_config(tmp_path)

    def test_uses_bashtrack_home(self, config_home):
        """Test that BASHTRACK_HOME selects the config directory."""
        assert config_dir() == config_home
        config = load_config()
        assert config.path == config_home / CONFIG_FILENAME
        assert (config_home / CONFIG_FILENAME).exists()

    def test_exclusion_filter(self, tmp_path):
        config = load_config(tmp_path)
        exclusion = config.exclusion_filter()
        assert exclusion.matches("cd /tmp") is True
        assert exclusion.matches("make test") is False


class TestExcludePatternEdits:
    """Tests for add_exclude_pattern and remove_exclude_pattern."""

    def test_add_pattern_persists(self, tmp_path):
        config = load_config(tmp_path)

        assert add_exclude_pattern(config, "^vim") is True

        assert config.exclude_patterns[-1] == "^vim"
        assert load_config(tmp_path).exclude_patterns[-1] == "^vim"

    def test_add_duplicate_pattern(self, tmp_path):
        config = load_config(tmp_path)
        assert add_exclude_pattern(config, "^ls.*") is False
        assert config.exclude_patterns.count("^ls.*") == 1

    def test_remove_pattern_persists(self, tmp_path):
        config = load_config(tmp_path)

        assert remove_exclude_pattern(config, "^cd.*") is True

        assert "^cd.*" not in load_config(tmp_path).exclude_patterns

    def test_remove_missing_pattern(self, tmp_path):
        config = load_config(tmp_path)
        assert remove_exclude_pattern(config, "^nothing$") is False
        assert load_config(tmp_path).exclude_patterns == DEFAULT_EXCLUDE_PATTERNS
