# Journal_DB.py
#########################################
# Journal_DB Library
# Local SQLite store for the travel journal: trips, entries and the append-only sync log.
#
# This library provides a `JournalDB` class that owns a single SQLite database file.
# It handles connection management (thread-locally), schema initialization and
# versioning, parameterized statement execution and transactions. Record semantics
# (validation, sync status, soft deletes) live in the model classes under
# `travel_journal.Models`; this layer only stores rows.
#
# Key Features:
# - Instance-based: each `JournalDB` object connects to one DB file (or ':memory:').
# - Schema Versioning: fresh databases get the current schema; databases created before
#   images were stored per entry are migrated in place.
# - Thread-Safety: uses thread-local storage for database connections.
# - Soft Deletes: rows are never physically removed; `deleted=1` marks a tombstone.
# - Sync Log: an append-only audit trail of local changes, written by the models.
####
import logging
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Dict, Any, Optional, Union, Sequence

from travel_journal.Constants import TABLE_TRIPS, TABLE_ENTRIES, TABLE_SYNC_LOG, SYNC_STATUS_PENDING

logger = logging.getLogger(__name__)


# --- Custom Exceptions ---
class JournalDBError(Exception):
    """Base exception for local store errors."""
    pass


class SchemaError(JournalDBError):
    """Exception for schema version mismatches or migration failures."""
    pass


class InputError(ValueError):
    """Custom exception for record validation errors."""
    pass


class ConflictError(JournalDBError):
    """Raised when a write collides with an existing row (e.g. a duplicate primary key)."""

    def __init__(self, message="Conflict detected: record already exists.", entity=None, entity_id=None):
        super().__init__(message)
        self.entity = entity
        self.entity_id = entity_id

    def __str__(self):
        base = super().__str__()
        details = []
        if self.entity:
            details.append(f"Entity: {self.entity}")
        if self.entity_id:
            details.append(f"ID: {self.entity_id}")
        return f"{base} ({', '.join(details)})" if details else base


# --- Helpers ---
def get_current_utc_timestamp_iso() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and a 'Z' suffix."""
    return datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def generate_uuid() -> str:
    return str(uuid.uuid4())


@dataclass
class QueryResult:
    """Outcome of `JournalDB.execute`: fetched rows for reads, counters for writes."""
    rows: List[Dict[str, Any]] = field(default_factory=list)
    rows_affected: int = 0
    insert_id: Optional[int] = None


# --- Database Class ---
class JournalDB:
    _CURRENT_SCHEMA_VERSION = 2
    _SCHEMA_NAME = "travel_journal"

    _TABLES_SQL = f"""
    CREATE TABLE IF NOT EXISTS db_schema_version (
        schema_name TEXT PRIMARY KEY NOT NULL,
        version INTEGER NOT NULL
    );

    CREATE TABLE IF NOT EXISTS {TABLE_TRIPS} (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        description TEXT,
        start_date TEXT,
        end_date TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        sync_status TEXT NOT NULL DEFAULT '{SYNC_STATUS_PENDING}',
        deleted INTEGER NOT NULL DEFAULT 0
    );

    CREATE TABLE IF NOT EXISTS {TABLE_ENTRIES} (
        id TEXT PRIMARY KEY,
        trip_id TEXT NOT NULL,
        title TEXT NOT NULL,
        content TEXT,
        location TEXT,
        latitude REAL,
        longitude REAL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        sync_status TEXT NOT NULL DEFAULT '{SYNC_STATUS_PENDING}',
        deleted INTEGER NOT NULL DEFAULT 0,
        images TEXT,
        FOREIGN KEY (trip_id) REFERENCES {TABLE_TRIPS}(id)
    );

    CREATE TABLE IF NOT EXISTS {TABLE_SYNC_LOG} (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        entity_type TEXT NOT NULL,
        entity_id TEXT NOT NULL,
        action TEXT NOT NULL CHECK(action IN ('create', 'update', 'delete')),
        status TEXT NOT NULL,
        timestamp TEXT NOT NULL
    );
    """

    _INDICES_SQL = f"""
    CREATE INDEX IF NOT EXISTS idx_trips_sync_status ON {TABLE_TRIPS}(sync_status, updated_at);
    CREATE INDEX IF NOT EXISTS idx_trips_created_at ON {TABLE_TRIPS}(created_at);
    CREATE INDEX IF NOT EXISTS idx_entries_sync_status ON {TABLE_ENTRIES}(sync_status, updated_at);
    CREATE INDEX IF NOT EXISTS idx_entries_trip_id ON {TABLE_ENTRIES}(trip_id);
    CREATE INDEX IF NOT EXISTS idx_sync_log_entity_id ON {TABLE_SYNC_LOG}(entity_id);
    """

    def __init__(self, db_path: Union[str, Path], client_id: str):
        """
        Opens (or creates) the journal database and brings its schema up to date.

        Args:
            db_path: Path to the SQLite database file, or ':memory:'.
            client_id: Identifier of this installation, used in log messages.

        Raises:
            ValueError: If client_id is empty.
            JournalDBError: If the database cannot be opened or its schema cannot be set up.
        """
        if isinstance(db_path, Path):
            self.is_memory_db = False
            self.db_path = db_path.expanduser().resolve()
        else:
            self.is_memory_db = (db_path == ':memory:')
            self.db_path = Path(":memory:") if self.is_memory_db else Path(db_path).expanduser().resolve()
        self.db_path_str = ':memory:' if self.is_memory_db else str(self.db_path)

        if not client_id:
            raise ValueError("Client ID cannot be empty or None.")
        self.client_id = client_id

        if not self.is_memory_db:
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise JournalDBError(f"Failed to create database directory {self.db_path.parent}: {e}") from e

        logger.info(f"Initializing JournalDB for path: {self.db_path_str} [Client ID: {self.client_id}]")
        self._local = threading.local()

        try:
            self._initialize_schema()
        except SchemaError:
            self.close_connection()
            raise
        except (JournalDBError, sqlite3.Error) as e:
            logger.critical(f"FATAL: JournalDB initialization failed for {self.db_path_str}: {e}", exc_info=True)
            self.close_connection()
            raise JournalDBError(f"Journal database initialization failed: {e}") from e

    # --- Connection Management ---
    def _get_thread_connection(self) -> sqlite3.Connection:
        conn = getattr(self._local, 'conn', None)
        if conn is not None:
            try:
                conn.execute("SELECT 1")
                return conn
            except (sqlite3.ProgrammingError, sqlite3.OperationalError):
                logger.warning(f"Thread-local connection to {self.db_path_str} was closed. Reopening.")
                self._local.conn = None

        try:
            conn = sqlite3.connect(
                self.db_path_str,
                check_same_thread=False,
                timeout=10,
            )
            conn.row_factory = sqlite3.Row
            if not self.is_memory_db:
                conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA foreign_keys = ON;")
            self._local.conn = conn
            logger.debug(f"Opened SQLite connection to {self.db_path_str} [Thread: {threading.current_thread().name}]")
        except sqlite3.Error as e:
            logger.error(f"Failed to connect to database at {self.db_path_str}: {e}", exc_info=True)
            self._local.conn = None
            raise JournalDBError(f"Failed to connect to database '{self.db_path_str}': {e}") from e
        return conn

    def get_connection(self) -> sqlite3.Connection:
        return self._get_thread_connection()

    def close_connection(self):
        conn = getattr(self._local, 'conn', None)
        if conn is None:
            return
        self._local.conn = None
        try:
            if conn.in_transaction:
                conn.rollback()
            if not self.is_memory_db:
                conn.execute("PRAGMA wal_checkpoint(TRUNCATE);")
            conn.close()
            logger.debug(f"Closed connection for thread {threading.current_thread().name}.")
        except sqlite3.Error as e:
            logger.warning(f"Error closing connection to {self.db_path_str}: {e}")

    # --- Query Execution ---
    def execute_query(self, query: str, params: Optional[Sequence[Any]] = None, *, commit: bool = False) -> sqlite3.Cursor:
        """Runs one statement on the thread's connection and returns the cursor."""
        conn = self.get_connection()
        try:
            cursor = conn.cursor()
            logger.debug(f"Executing Query: {query[:200]}... Params: {str(params)[:100]}...")
            cursor.execute(query, tuple(params or ()))
            if commit:
                conn.commit()
            return cursor
        except sqlite3.IntegrityError as e:
            msg = str(e).lower()
            if "unique constraint" in msg or "primary key" in msg:
                logger.warning(f"Conflict on write: {query[:200]}... Error: {e}")
                raise ConflictError(f"Record already exists: {e}", entity=self._table_from_query(query)) from e
            logger.error(f"Integrity error: {query[:200]}... Error: {e}")
            raise JournalDBError(f"Integrity constraint violation: {e}") from e
        except sqlite3.Error as e:
            logger.error(f"Query failed: {query[:200]}... Error: {e}", exc_info=True)
            raise JournalDBError(f"Query execution failed: {e}") from e

    def execute(self, statement: str, params: Optional[Sequence[Any]] = None) -> QueryResult:
        """
        Executes a parameterized statement.

        Reads return their rows as plain dicts. Writes return the affected row count and the
        last inserted rowid, and are committed immediately unless a `transaction()` is open.
        """
        conn = self.get_connection()
        in_outer = conn.in_transaction
        try:
            cursor = self.execute_query(statement, params)
            rows = [dict(row) for row in cursor.fetchall()] if cursor.description is not None else []
            if not in_outer and conn.in_transaction:
                conn.commit()
        except Exception:
            if not in_outer and conn.in_transaction:
                conn.rollback()
            raise
        return QueryResult(
            rows=rows,
            rows_affected=max(cursor.rowcount, 0),
            insert_id=cursor.lastrowid,
        )

    @staticmethod
    def _table_from_query(query: str) -> Optional[str]:
        tokens = query.replace("(", " ").split()
        for keyword in ("INTO", "UPDATE", "FROM"):
            for i, token in enumerate(tokens[:-1]):
                if token.upper() == keyword:
                    return tokens[i + 1]
        return None

    # --- Transaction Context ---
    @contextmanager
    def transaction(self):
        """Commit on success, roll back on any exception. Nested blocks join the outer transaction."""
        conn = self.get_connection()
        in_outer = conn.in_transaction
        try:
            if not in_outer:
                conn.execute("BEGIN")
            yield conn
            if not in_outer:
                conn.commit()
        except Exception as e:
            if not in_outer:
                logger.error(f"Transaction failed, rolling back: {type(e).__name__} - {e}")
                try:
                    conn.rollback()
                except sqlite3.Error as rb_err:
                    logger.error(f"Rollback FAILED: {rb_err}", exc_info=True)
            raise

    # --- Schema Initialization and Migration ---
    def _table_exists(self, conn: sqlite3.Connection, table: str) -> bool:
        cursor = conn.execute("SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", (table,))
        return cursor.fetchone() is not None

    def _get_db_version(self, conn: sqlite3.Connection) -> int:
        """
        0 for an empty database. A database that has journal tables but no version table
        predates schema versioning and is treated as version 1.
        """
        if not self._table_exists(conn, "db_schema_version"):
            return 1 if self._table_exists(conn, TABLE_TRIPS) else 0
        cursor = conn.execute("SELECT version FROM db_schema_version WHERE schema_name = ?", (self._SCHEMA_NAME,))
        result = cursor.fetchone()
        if result:
            return result['version']
        return 1 if self._table_exists(conn, TABLE_TRIPS) else 0

    def _set_db_version(self, conn: sqlite3.Connection, version: int):
        conn.execute(
            "INSERT INTO db_schema_version (schema_name, version) VALUES (?, ?) "
            "ON CONFLICT(schema_name) DO UPDATE SET version = excluded.version",
            (self._SCHEMA_NAME, version),
        )

    def _add_column_if_missing(self, conn: sqlite3.Connection, table: str, column: str, column_type: str) -> bool:
        columns = {row['name'] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()}
        if column in columns:
            return False
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {column_type}")
        logger.info(f"Added column '{column}' to table '{table}'.")
        return True

    def _apply_schema_v2(self, conn: sqlite3.Connection):
        logger.info(f"Applying initial schema (Version 2) to DB: {self.db_path_str}...")
        conn.executescript(self._TABLES_SQL + self._INDICES_SQL)
        with self.transaction():
            self._set_db_version(conn, 2)

    def _migrate_v1_to_v2(self, conn: sqlite3.Connection):
        logger.info(f"Migrating DB schema from version 1 to 2: {self.db_path_str}...")
        conn.executescript(self._TABLES_SQL)
        with self.transaction():
            self._add_column_if_missing(conn, TABLE_ENTRIES, "images", "TEXT")
            self._set_db_version(conn, 2)
        conn.executescript(self._INDICES_SQL)

    def _initialize_schema(self):
        conn = self.get_connection()
        current_db_version = self._get_db_version(conn)
        target_version = self._CURRENT_SCHEMA_VERSION
        logger.info(f"Checking DB schema. Current: {current_db_version}, Code supports: {target_version}")

        if current_db_version == target_version:
            logger.debug("Database schema is up to date.")
            return
        if current_db_version > target_version:
            raise SchemaError(
                f"DB schema version ({current_db_version}) is newer than supported ({target_version}).")

        if current_db_version == 0:
            self._apply_schema_v2(conn)
        elif current_db_version == 1:
            self._migrate_v1_to_v2(conn)
        else:
            raise SchemaError(f"Migration needed from {current_db_version} to {target_version}, but no path defined.")

        final_db_version = self._get_db_version(conn)
        if final_db_version != target_version:
            raise SchemaError(
                f"Schema migration applied, but final DB version is {final_db_version}, expected {target_version}.")
        logger.info(f"Database schema initialized/migrated to version {target_version}.")

    def get_schema_version(self) -> int:
        return self._get_db_version(self.get_connection())

    # --- Sync Log ---
    def log_sync_event(self, entity_type: str, entity_id: str, action: str,
                       status: str = SYNC_STATUS_PENDING) -> int:
        """Appends one row to the sync log. Returns the new log id."""
        if not entity_type or not entity_id or not action:
            raise InputError("Sync log entry requires entity_type, entity_id and action.")
        result = self.execute(
            f"INSERT INTO {TABLE_SYNC_LOG} (entity_type, entity_id, action, status, timestamp) VALUES (?, ?, ?, ?, ?)",
            (entity_type, entity_id, action, status, get_current_utc_timestamp_iso()),
        )
        logger.debug(f"Logged sync event: {entity_type} {entity_id} {action}")
        return result.insert_id

    def get_sync_log_entries(self, entity_id: Optional[str] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Reads the sync log in insertion order, optionally for a single record."""
        query = f"SELECT id, entity_type, entity_id, action, status, timestamp FROM {TABLE_SYNC_LOG}"
        params: List[Any] = []
        if entity_id is not None:
            query += " WHERE entity_id = ?"
            params.append(entity_id)
        query += " ORDER BY id ASC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(int(limit))
        return self.execute(query, params).rows

#
# End of Journal_DB.py
#######################################################################################################################
