"""bashtrack configuration: JSON file load, save and exclude-pattern edits."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from bashtrack.exceptions import ConfigError
from bashtrack.filters import ExclusionFilter

logger = logging.getLogger("bashtrack")

APP_NAME = "bashtrack"
CONFIG_FILENAME = "config.json"
DB_FILENAME = "commands.db"

# Navigation, history lookups, anything that looks like a credential, and
# bashtrack's own invocations.
DEFAULT_EXCLUDE_PATTERNS = [
    "^ls.*",
    "^cd.*",
    "^pwd.*",
    "^clear.*",
    "^exit.*",
    "^history.*",
    ".*password.*",
    ".*secret.*",
    ".*token.*",
    ".*key.*",
    f".*{APP_NAME}.*",
]


def config_dir() -> Path:
    """Return the bashtrack config directory ($BASHTRACK_HOME or ~/.bashtrack)."""
    override = os.environ.get("BASHTRACK_HOME")
    if override:
        return Path(override).expanduser()
    return Path.home() / f".{APP_NAME}"


@dataclass
class Config:
    """User configuration consumed by the recorder and the CLI."""

    exclude_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE_PATTERNS))
    database_path: str = ""
    path: Path | None = field(default=None, repr=False, compare=False)

    def exclusion_filter(self) -> ExclusionFilter:
        """Compile the exclude patterns once for this configuration."""
        return ExclusionFilter(self.exclude_patterns)

    def to_dict(self) -> dict:
        return {
            "exclude_patterns": list(self.exclude_patterns),
            "database_path": self.database_path,
        }


def _parse_config(data, path: Path) -> Config:
    """Validate the decoded JSON document and build a Config."""
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: expected a JSON object, got {type(data).__name__}")

    patterns = data.get("exclude_patterns", [])
    if patterns is None:
        patterns = []
    if not isinstance(patterns, list) or not all(isinstance(p, str) for p in patterns):
        raise ConfigError(f"{path}: 'exclude_patterns' must be a list of strings")

    database_path = data.get("database_path") or ""
    if not isinstance(database_path, str):
        raise ConfigError(f"{path}: 'database_path' must be a string")

    return Config(exclude_patterns=patterns, database_path=database_path, path=path)


def load_config(directory: str | Path | None = None) -> Config:
    """Load the configuration, writing the defaults on first use.

    Args:
        directory: Config directory (default: config_dir())

    Returns:
        The loaded Config, with database_path always set

    Raises:
        ConfigError: if the file exists but cannot be read or parsed.
            The file is never overwritten in that case.
    """
    directory = Path(directory) if directory is not None else config_dir()
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ConfigError(f"Cannot create config directory {directory}: {e}") from e

    path = directory / CONFIG_FILENAME
    default_db = str(directory / DB_FILENAME)

    if not path.exists():
        logger.info(f"Creating default configuration at {path}")
        return save_config(Config(database_path=default_db, path=path), path)

    try:
        with open(path) as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        raise ConfigError(f"Failed to parse config {path}: {e}") from e

    config = _parse_config(data, path)
    if not config.database_path:
        config.database_path = default_db
    return config


def save_config(config: Config, path: str | Path | None = None) -> Config:
    """Write the configuration as indented JSON.

    Raises:
        ConfigError: if the file cannot be written
    """
    path = Path(path) if path is not None else config.path
    if path is None:
        path = config_dir() / CONFIG_FILENAME

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(config.to_dict(), indent=2) + "\n")
    except OSError as e:
        raise ConfigError(f"Failed to save config {path}: {e}") from e

    config.path = path
    return config


def add_exclude_pattern(config: Config, pattern: str) -> bool:
    """Append an exclude pattern and persist the config.

    Returns:
        False if the pattern was already present (nothing is written)
    """
    if pattern in config.exclude_patterns:
        return False
    config.exclude_patterns.append(pattern)
    save_config(config)
    return True


def remove_exclude_pattern(config: Config, pattern: str) -> bool:
    """Remove the first exact match of an exclude pattern and persist the config.

    Returns:
        False if the pattern was not found (nothing is written)
    """
    if pattern not in config.exclude_patterns:
        return False
    config.exclude_patterns.remove(pattern)
    save_config(config)
    return True
