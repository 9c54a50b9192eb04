"""bashtrack - SQLite-backed bash command history with search and statistics."""

from importlib.metadata import version

try:
    __version__ = version("bashtrack")
except Exception:
    __version__ = "0.1.0"  # Fallback for development

# Re-export public API
from bashtrack.config import Config, load_config, save_config
from bashtrack.exceptions import BashtrackError, ConfigError, MigrationError, StorageError
from bashtrack.filters import ExclusionFilter, is_excluded
from bashtrack.recorder import record_command
from bashtrack.storage import (
    CommandRecord,
    CommandView,
    SQLiteStorage,
    Word,
    WordPosition,
)

__all__ = [
    # Version
    "__version__",
    # Storage
    "SQLiteStorage",
    "CommandRecord",
    "CommandView",
    "Word",
    "WordPosition",
    # Recording
    "record_command",
    "ExclusionFilter",
    "is_excluded",
    # Configuration
    "Config",
    "load_config",
    "save_config",
    # Errors
    "BashtrackError",
    "ConfigError",
    "MigrationError",
    "StorageError",
]
