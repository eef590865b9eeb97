"""
SQLite handle for the agent memory store.

Owns the single connection, the schema (entity tables plus the FTS5 lexical
index and its sync triggers) and the transaction boundary every
multi-statement operation runs in. Entity, index and search components are
built on top of one explicit SQLiteStore instance; nothing here is global.

Usage:
    store = SQLiteStore("/path/to/memories.db")
    with store.transaction() as conn:
        conn.execute("INSERT INTO memories ...")
    store.close()
"""

import logging
import os
import sqlite3
import stat
import threading
import time as _time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List, Optional, Sequence, Tuple

from agent_memory import lexical_index
from agent_memory.errors import MemoryStoreError, StorageError

logger = logging.getLogger("agent_memory.sqlite_store")

SCHEMA_VERSION = 1

# ---------------------------------------------------------------------------
# SQLite retry -- WAL + busy_timeout cover normal contention; a locked
# database that outlives the timeout is retried with exponential backoff
# before the error surfaces.
# ---------------------------------------------------------------------------
_DB_RETRY_ATTEMPTS = 3
_DB_RETRY_BASE_DELAY = 0.5  # seconds


def _retry_on_locked(fn, *args, **kwargs):
    """Call fn with retry on 'database is locked' OperationalError."""
    for attempt in range(_DB_RETRY_ATTEMPTS):
        try:
            return fn(*args, **kwargs)
        except sqlite3.OperationalError as e:
            if "database is locked" in str(e) and attempt < _DB_RETRY_ATTEMPTS - 1:
                delay = _DB_RETRY_BASE_DELAY * (2 ** attempt)
                logger.warning("database is locked (attempt %d/%d), retrying in %.1fs",
                               attempt + 1, _DB_RETRY_ATTEMPTS, delay)
                _time.sleep(delay)
            else:
                raise


def secure_connect(db_path, **kwargs) -> sqlite3.Connection:
    """Create a SQLite connection with owner-only file permissions (0o600).

    Pre-creates the DB file with restricted permissions before connecting,
    and tightens existing files that are group/world accessible.
    """
    db_path_str = str(db_path)
    path_obj = Path(db_path_str)

    if not path_obj.exists():
        fd = os.open(db_path_str, os.O_CREAT | os.O_WRONLY, 0o600)
        os.close(fd)
    else:
        current_mode = path_obj.stat().st_mode
        if current_mode & (stat.S_IRWXG | stat.S_IRWXO):
            os.chmod(db_path_str, 0o600)

    return sqlite3.connect(db_path_str, **kwargs)


class SQLiteStore:
    """Connection owner and transaction boundary for the memory database."""

    def __init__(self, db_path):
        self.db_path = Path(db_path).expanduser()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.Lock()
        self._closed = False
        self._conn = self._connect()
        self._init_schema()

    def _connect(self) -> sqlite3.Connection:
        """Create the connection in autocommit mode; transactions are explicit."""
        conn = secure_connect(
            self.db_path,
            timeout=30,
            check_same_thread=False,
            isolation_level=None,
        )
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.execute("PRAGMA cache_size=1000")
        conn.execute("PRAGMA temp_store=MEMORY")
        conn.execute("PRAGMA busy_timeout=30000")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    def _init_schema(self) -> None:
        """Create tables, the lexical index and its triggers if missing."""
        with self.transaction() as c:
            c.execute("""
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER NOT NULL
                )
            """)
            row = c.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
            if row is None:
                c.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
            elif row[0] > SCHEMA_VERSION:
                raise StorageError(
                    f"Database schema v{row[0]} is newer than this release supports (v{SCHEMA_VERSION})"
                )

            c.execute("""
                CREATE TABLE IF NOT EXISTS memories (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    content_path TEXT NOT NULL UNIQUE,
                    summary TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)
            c.execute("""
                CREATE TABLE IF NOT EXISTS keywords (
                    memory_id INTEGER NOT NULL,
                    keyword TEXT NOT NULL,
                    PRIMARY KEY (memory_id, keyword),
                    FOREIGN KEY (memory_id) REFERENCES memories(id) ON DELETE CASCADE
                )
            """)
            c.execute("CREATE INDEX IF NOT EXISTS idx_memories_created_at ON memories(created_at)")
            c.execute("CREATE INDEX IF NOT EXISTS idx_keywords_keyword ON keywords(keyword)")

            try:
                created = lexical_index.create_schema(c)
            except sqlite3.OperationalError as e:
                raise StorageError(f"SQLite build lacks FTS5 support: {e}") from e

            if created:
                # Index created against pre-existing rows: populate it
                populated = lexical_index.populate(c)
                if populated:
                    logger.info("Populated lexical index with %d existing memories", populated)
        logger.debug("Schema ready at %s (v%d)", self.db_path, SCHEMA_VERSION)

    # ------------------------------------------------------------------
    # Transactions and queries
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the block inside BEGIN IMMEDIATE ... COMMIT.

        Any exception rolls the whole block back. sqlite3 errors surface as
        StorageError; MemoryStoreError subclasses pass through unchanged.
        """
        with self._lock:
            self._ensure_open()
            try:
                _retry_on_locked(self._conn.execute, "BEGIN IMMEDIATE")
                yield self._conn
                _retry_on_locked(self._conn.execute, "COMMIT")
            except MemoryStoreError:
                self._rollback()
                raise
            except sqlite3.Error as e:
                self._rollback()
                raise StorageError(str(e)) from e
            except BaseException:
                self._rollback()
                raise

    def _rollback(self) -> None:
        if self._conn.in_transaction:
            self._conn.execute("ROLLBACK")

    def fetchone(self, sql: str, params: Sequence[Any] = ()) -> Optional[Tuple]:
        with self._lock:
            self._ensure_open()
            try:
                return _retry_on_locked(self._conn.execute, sql, params).fetchone()
            except sqlite3.Error as e:
                raise StorageError(str(e)) from e

    def fetchall(self, sql: str, params: Sequence[Any] = ()) -> List[Tuple]:
        with self._lock:
            self._ensure_open()
            try:
                return _retry_on_locked(self._conn.execute, sql, params).fetchall()
            except sqlite3.Error as e:
                raise StorageError(str(e)) from e

    def _ensure_open(self) -> None:
        if self._closed:
            raise StorageError(f"Store at {self.db_path} is closed")

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def schema_version(self) -> int:
        row = self.fetchone("SELECT version FROM schema_version LIMIT 1")
        return row[0] if row else 0

    def schema_sql(self) -> str:
        """DDL for tables, triggers, indexes and views (FTS5 shadow tables omitted)."""
        rows = self.fetchall(
            f"""SELECT sql FROM sqlite_master
               WHERE type IN ('table', 'trigger', 'index', 'view')
                 AND name NOT LIKE 'sqlite_%'
                 AND name NOT LIKE '{lexical_index.FTS_TABLE}_%'
                 AND sql IS NOT NULL
               ORDER BY type, name"""
        )
        return ";\n\n".join(r[0] for r in rows) + ";"

    def database_size(self) -> int:
        """Logical size in bytes; pages still in the WAL are counted."""
        page_count = self.fetchone("PRAGMA page_count")
        page_size = self.fetchone("PRAGMA page_size")
        if not page_count or not page_size:
            return 0
        return page_count[0] * page_size[0]

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            try:
                self._conn.execute("PRAGMA wal_checkpoint(PASSIVE)")
            except sqlite3.Error as e:
                logger.debug("WAL checkpoint on close failed: %s", e)
            self._conn.close()

    def __enter__(self) -> "SQLiteStore":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
