"""SQLite storage backend for bashtrack command history."""

import logging
import os
import re
import sqlite3
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from pathlib import Path

from bashtrack.exceptions import MigrationError, StorageError

logger = logging.getLogger("bashtrack")

# Older releases stored Go-formatted timestamps with nanosecond precision
_EXTRA_FRACTION = re.compile(r"(\.\d{6})\d+")


def _adapt_datetime(dt: datetime) -> str:
    """Convert datetime to ISO format string for SQLite storage."""
    return dt.isoformat()


def to_datetime(value) -> datetime | None:
    """Parse a stored timestamp into a datetime.

    Handles datetime objects, ISO strings and the nanosecond-precision
    strings written by older releases (``2024-01-02 15:04:05.123456789-07:00``).
    """
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, bytes):
        value = value.decode()
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return datetime.fromisoformat(_EXTRA_FRACTION.sub(r"\1", value, count=1))


def _convert_datetime(data: bytes) -> datetime:
    """Convert ISO format string from SQLite to datetime."""
    return to_datetime(data)


sqlite3.register_adapter(datetime, _adapt_datetime)
sqlite3.register_converter("TIMESTAMP", _convert_datetime)
sqlite3.register_converter("DATETIME", _convert_datetime)


@dataclass
class CommandRecord:
    """A single recorded shell command."""

    id: int | None
    timestamp: datetime
    directory: str
    full_command: str


@dataclass
class CommandView(CommandRecord):
    """A command as returned by queries, optionally with its word breakdown."""

    words: list[str] | None = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat() if self.timestamp else None
        if self.words is None:
            del data["words"]
        return data


@dataclass(frozen=True)
class Word:
    """A distinct token from the recorded vocabulary."""

    id: int
    word: str


@dataclass(frozen=True)
class WordPosition:
    """Links the token at ``position`` of a command to its word."""

    command_id: int
    word_id: int
    position: int


# Default database path
DEFAULT_DB_PATH = Path.home() / ".bashtrack" / "commands.db"

# Seconds a writer waits on a locked database before failing
BUSY_TIMEOUT_SECONDS = 5.0

# Stay below SQLite's bound-parameter limit when expanding IN (...) lists
_MAX_IDS_PER_QUERY = 500

# Schema version for migrations
SCHEMA_VERSION = 3

# Migration functions: dict of version -> (migration_name, migration_func)
# Each migration upgrades FROM version-1 TO version and must be idempotent,
# since databases created by older releases carry no version at all.
MIGRATIONS: dict[int, tuple[str, callable]] = {}

_INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_timestamp ON commands(timestamp)",
    "CREATE INDEX IF NOT EXISTS idx_directory ON commands(directory)",
    "CREATE INDEX IF NOT EXISTS idx_full_command ON commands(full_command)",
    "CREATE INDEX IF NOT EXISTS idx_words_word ON words(word)",
    "CREATE INDEX IF NOT EXISTS idx_command_word_positions_command_id"
    " ON command_word_positions(command_id)",
    "CREATE INDEX IF NOT EXISTS idx_command_word_positions_word_id"
    " ON command_word_positions(word_id)",
    "CREATE INDEX IF NOT EXISTS idx_command_word_positions_position"
    " ON command_word_positions(position)",
)


def migration(version: int, name: str):
    """Decorator to register a schema migration."""

    def decorator(func: callable):
        MIGRATIONS[version] = (name, func)
        return func

    return decorator


def _table_exists(conn: sqlite3.Connection, name: str) -> bool:
    row = conn.execute(
        "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?", (name,)
    ).fetchone()
    return row is not None


@migration(1, "rename_legacy_command_column")
def migrate_v1(conn):
    """Rename the ``command`` column of the earliest layout to ``full_command``."""
    if not _table_exists(conn, "commands"):
        return
    existing_cols = {row[1] for row in conn.execute("PRAGMA table_info(commands)")}
    if "command" in existing_cols and "full_command" not in existing_cols:
        conn.execute("ALTER TABLE commands RENAME COLUMN command TO full_command")


@migration(2, "create_normalized_schema")
def migrate_v2(conn):
    """Create the commands, words and command_word_positions tables."""
    conn.execute("""
        CREATE TABLE IF NOT EXISTS commands (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            timestamp TIMESTAMP NOT NULL,
            directory TEXT NOT NULL,
            full_command TEXT NOT NULL
        )
    """)

    # Each distinct token is stored once
    conn.execute("""
        CREATE TABLE IF NOT EXISTS words (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            word TEXT NOT NULL UNIQUE
        )
    """)

    # Position is the 0-based token index within the command
    conn.execute("""
        CREATE TABLE IF NOT EXISTS command_word_positions (
            command_id INTEGER NOT NULL,
            word_id INTEGER NOT NULL,
            position INTEGER NOT NULL,
            PRIMARY KEY (command_id, word_id, position),
            FOREIGN KEY (command_id) REFERENCES commands(id) ON DELETE CASCADE,
            FOREIGN KEY (word_id) REFERENCES words(id) ON DELETE CASCADE
        )
    """)


@migration(3, "migrate_command_words")
def migrate_v3(conn):
    """Move the de-normalized ``command_words`` table into words + positions."""
    if not _table_exists(conn, "command_words"):
        return

    conn.execute("INSERT OR IGNORE INTO words (word) SELECT DISTINCT word FROM command_words")

    # Rows pointing at deleted commands cannot satisfy the foreign key; drop them
    conn.execute("""
        INSERT OR IGNORE INTO command_word_positions (command_id, word_id, position)
        SELECT cw.command_id, w.id, cw.word_position
        FROM command_words cw
        JOIN words w ON w.word = cw.word
        JOIN commands c ON c.id = cw.command_id
    """)

    conn.execute("DROP TABLE command_words")


class SQLiteStorage:
    """SQLite-backed storage for command history."""

    def __init__(self, db_path: str | Path | None = None):
        """Initialize storage with optional custom DB path.

        Raises:
            StorageError: if the database directory cannot be created
            MigrationError: if the schema cannot be brought up to date
        """
        if db_path is None:
            db_path = os.environ.get("BASHTRACK_DB", str(DEFAULT_DB_PATH))

        self.db_path = Path(db_path).expanduser()
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(
                f"Cannot create database directory {self.db_path.parent}: {e}"
            ) from e

        self.ensure_schema()

    @contextmanager
    def _connect(self):
        """Context manager for database connections.

        Connections run in autocommit mode; multi-statement writes go
        through ``_transaction()``.
        """
        conn = sqlite3.connect(
            self.db_path,
            timeout=BUSY_TIMEOUT_SECONDS,
            detect_types=sqlite3.PARSE_DECLTYPES | sqlite3.PARSE_COLNAMES,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA foreign_keys = ON")
            conn.execute("PRAGMA journal_mode = WAL")
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _transaction(self, conn: sqlite3.Connection):
        """Run a block inside one write transaction, rolling back on any error."""
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")

    def execute_query(self, sql: str, params: tuple | list = ()) -> list[sqlite3.Row]:
        """Execute a SQL query and return all results.

        This is the public API for raw SQL queries. Use this instead of
        accessing _connect() directly.

        Args:
            sql: SQL query string
            params: Query parameters (tuple or list)

        Returns:
            List of sqlite3.Row objects
        """
        with self._connect() as conn:
            return conn.execute(sql, params).fetchall()

    # Schema management

    def _get_schema_version(self, conn: sqlite3.Connection) -> int:
        """Get current schema version from database."""
        row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
        return row[0] if row and row[0] is not None else 0

    def _run_migrations(self, conn: sqlite3.Connection, current_version: int):
        """Run all pending migrations."""
        for version in range(current_version + 1, SCHEMA_VERSION + 1):
            if version in MIGRATIONS:
                name, migration_func = MIGRATIONS[version]
                logger.info(f"Running migration {version}: {name}")
                migration_func(conn)
        conn.execute("DELETE FROM schema_version")
        conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))

    def ensure_schema(self) -> int:
        """Bring the database schema up to date.

        Safe to call on every start. Pending migrations and index checks
        run in a single transaction, so a failure leaves the file exactly
        as it was.

        Returns:
            The schema version after migration

        Raises:
            MigrationError: if any step fails
        """
        try:
            with self._connect() as conn, self._transaction(conn):
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS schema_version (
                        version INTEGER PRIMARY KEY
                    )
                """)
                current_version = self._get_schema_version(conn)
                if current_version < SCHEMA_VERSION:
                    self._run_migrations(conn, current_version)
                elif current_version > SCHEMA_VERSION:
                    logger.warning(
                        f"Database {self.db_path} has schema version {current_version}, "
                        f"newer than supported version {SCHEMA_VERSION}"
                    )

                for statement in _INDEXES:
                    conn.execute(statement)
                return max(current_version, SCHEMA_VERSION)
        except sqlite3.Error as e:
            raise MigrationError(f"Failed to migrate database {self.db_path}: {e}") from e

    def get_schema_version(self) -> int:
        """Get the schema version recorded in the database."""
        with self._connect() as conn:
            return self._get_schema_version(conn)

    # Command operations

    def add_command(
        self,
        full_command: str,
        directory: str,
        words: list[str] | None = None,
        timestamp: datetime | None = None,
    ) -> CommandRecord:
        """Insert a command with its words and positions atomically.

        Args:
            full_command: Verbatim command text
            directory: Working directory the command ran in
            words: Tokens of the command (default: ``full_command.split()``)
            timestamp: When the command ran (default: now)

        Returns:
            The stored CommandRecord with its assigned ID

        Raises:
            ValueError: if the command is empty or has no tokens
            sqlite3.Error: if the transaction fails; nothing is written
        """
        if words is None:
            words = full_command.split()
        if not full_command.strip() or not words:
            raise ValueError("full_command cannot be empty")
        if timestamp is None:
            timestamp = datetime.now()

        with self._connect() as conn, self._transaction(conn):
            cursor = conn.execute(
                "INSERT INTO commands (timestamp, directory, full_command) VALUES (?, ?, ?)",
                (timestamp, directory, full_command),
            )
            command_id = cursor.lastrowid
            for position, word in enumerate(words):
                conn.execute(
                    """
                    INSERT INTO command_word_positions (command_id, word_id, position)
                    VALUES (?, ?, ?)
                    """,
                    (command_id, self._get_or_create_word(conn, word), position),
                )

        return CommandRecord(
            id=command_id,
            timestamp=timestamp,
            directory=directory,
            full_command=full_command,
        )

    def _get_or_create_word(self, conn: sqlite3.Connection, word: str) -> int:
        """Return the id for ``word``, inserting it if it is new.

        Relies on the UNIQUE constraint instead of check-then-insert.
        """
        try:
            return conn.execute("INSERT INTO words (word) VALUES (?)", (word,)).lastrowid
        except sqlite3.IntegrityError:
            row = conn.execute("SELECT id FROM words WHERE word = ?", (word,)).fetchone()
            if row is None:
                raise
            return row["id"]

    def get_command(self, command_id: int) -> CommandRecord | None:
        """Get a command by ID."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT id, timestamp, directory, full_command FROM commands WHERE id = ?",
                (command_id,),
            ).fetchone()
            if row:
                return self._row_to_command(row)
            return None

    def _row_to_command(self, row: sqlite3.Row) -> CommandRecord:
        """Convert a database row to a CommandRecord."""
        return CommandRecord(
            id=row["id"],
            timestamp=to_datetime(row["timestamp"]),
            directory=row["directory"],
            full_command=row["full_command"],
        )

    def get_command_count(self) -> int:
        """Get total number of commands."""
        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) as count FROM commands").fetchone()
            return row["count"]

    # Word operations

    def get_word(self, word: str) -> Word | None:
        """Look up a vocabulary entry by its text."""
        with self._connect() as conn:
            row = conn.execute("SELECT id, word FROM words WHERE word = ?", (word,)).fetchone()
            if row:
                return Word(id=row["id"], word=row["word"])
            return None

    def get_word_count(self) -> int:
        """Get number of distinct words."""
        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) as count FROM words").fetchone()
            return row["count"]

    def get_word_position_count(self) -> int:
        """Get total number of word position links."""
        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) as count FROM command_word_positions").fetchone()
            return row["count"]

    def get_word_positions(self, command_id: int) -> list[WordPosition]:
        """Get the position links of one command, ordered by position."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT command_id, word_id, position
                FROM command_word_positions
                WHERE command_id = ?
                ORDER BY position
                """,
                (command_id,),
            ).fetchall()
            return [
                WordPosition(
                    command_id=row["command_id"],
                    word_id=row["word_id"],
                    position=row["position"],
                )
                for row in rows
            ]

    def get_command_words(self, command_ids: list[int]) -> dict[int, list[str]]:
        """Reconstruct the ordered word lists of several commands.

        Returns:
            Dict of command ID -> words ordered by position. Commands with
            no position rows map to an empty list.
        """
        result: dict[int, list[str]] = {command_id: [] for command_id in command_ids}
        ids = list(result)

        with self._connect() as conn:
            for start in range(0, len(ids), _MAX_IDS_PER_QUERY):
                chunk = ids[start : start + _MAX_IDS_PER_QUERY]
                # Safe: placeholders are generated, values are bound as parameters
                placeholders = ", ".join("?" for _ in chunk)
                rows = conn.execute(
                    f"""
                    SELECT cwp.command_id, w.word
                    FROM command_word_positions cwp
                    JOIN words w ON w.id = cwp.word_id
                    WHERE cwp.command_id IN ({placeholders})
                    ORDER BY cwp.command_id, cwp.position
                    """,
                    chunk,
                ).fetchall()
                for row in rows:
                    result[row["command_id"]].append(row["word"])
        return result

    # Retention

    def prune_commands(self, max_age_days: int, now: datetime | None = None) -> int:
        """Delete commands older than ``max_age_days``.

        Position links go with their command through ON DELETE CASCADE.
        Words are kept even when nothing references them any more.

        Returns:
            Number of commands deleted
        """
        if max_age_days < 0:
            raise ValueError(f"max_age_days must be non-negative, got {max_age_days}")

        cutoff = (now or datetime.now()) - timedelta(days=max_age_days)
        with self._connect() as conn, self._transaction(conn):
            cursor = conn.execute("DELETE FROM commands WHERE timestamp < ?", (cutoff,))
            deleted = cursor.rowcount

        logger.info(f"Pruned {deleted} commands older than {cutoff.isoformat()}")
        return deleted
