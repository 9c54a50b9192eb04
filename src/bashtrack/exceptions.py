"""bashtrack exception hierarchy."""

from __future__ import annotations


class BashtrackError(Exception):
    """Base exception for all bashtrack errors."""


class ConfigError(BashtrackError):
    """Raised when the configuration file is invalid or cannot be read."""


class MigrationError(BashtrackError):
    """Raised when the database schema cannot be brought up to date."""


class StorageError(BashtrackError):
    """Raised when the database file or its directory cannot be used."""
