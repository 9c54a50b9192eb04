"""Pytest configuration and shared fixtures."""

import tempfile
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from bashtrack.storage import SQLiteStorage


@pytest.fixture
def storage():
    """Create a temporary storage instance for testing.

    This is the base fixture for all storage-dependent tests.
    Use this when you need an empty database.
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        yield SQLiteStorage(db_path)


@pytest.fixture
def config_home(tmp_path, monkeypatch):
    """Point BASHTRACK_HOME at a temporary directory."""
    home = tmp_path / "bashtrack-home"
    monkeypatch.setenv("BASHTRACK_HOME", str(home))
    return home


@pytest.fixture
def populated_storage(storage):
    """Storage instance with sample history suitable for query and stats tests.

    Contains, newest first:
    - "docker ps" in /home/user/app (1 hour ago)
    - "git status" in /home/user/proj (2 hours ago)
    - "docker build ." in /home/user/app (3 hours ago)
    - "git status" in /home/user/proj (1 day ago)
    - "make test" in /tmp/build (10 days ago)
    """
    now = datetime.now()

    history = [
        ("make test", "/tmp/build", now - timedelta(days=10)),
        ("git status", "/home/user/proj", now - timedelta(days=1)),
        ("docker build .", "/home/user/app", now - timedelta(hours=3)),
        ("git status", "/home/user/proj", now - timedelta(hours=2)),
        ("docker ps", "/home/user/app", now - timedelta(hours=1)),
    ]
    for command, directory, timestamp in history:
        storage.add_command(command, directory, timestamp=timestamp)

    return storage
