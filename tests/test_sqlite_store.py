"""Tests for SQLiteStore -- schema, transactions, connection settings."""
import os
import re
import sqlite3
import stat

import pytest

from agent_memory.errors import InvalidInput, StorageError
from agent_memory.sqlite_store import SCHEMA_VERSION, SQLiteStore, _retry_on_locked


class TestSchema:
    def test_tables_and_triggers_created(self, sqlite_store):
        names = {r[0] for r in sqlite_store.fetchall("SELECT name FROM sqlite_master")}
        for expected in ("memories", "keywords", "memories_fts", "schema_version",
                         "memories_ai", "memories_au", "memories_ad",
                         "keywords_ai", "keywords_au", "keywords_ad"):
            assert expected in names

    def test_schema_version_recorded(self, sqlite_store):
        assert sqlite_store.schema_version() == SCHEMA_VERSION

    def test_reopen_is_idempotent(self, memory_home):
        path = memory_home / "reopen.db"
        s1 = SQLiteStore(path)
        with s1.transaction() as c:
            c.execute("INSERT INTO memories (content_path, summary, created_at) VALUES ('p', 's', 't')")
        s1.close()
        s2 = SQLiteStore(path)
        try:
            assert s2.fetchone("SELECT COUNT(*) FROM memories")[0] == 1
            assert s2.fetchone("SELECT COUNT(*) FROM memories_fts")[0] == 1
        finally:
            s2.close()

    def test_newer_schema_rejected(self, memory_home):
        path = memory_home / "future.db"
        SQLiteStore(path).close()
        conn = sqlite3.connect(str(path))
        conn.execute("UPDATE schema_version SET version = ?", (SCHEMA_VERSION + 1,))
        conn.commit()
        conn.close()
        with pytest.raises(StorageError, match="newer"):
            SQLiteStore(path)

    def test_index_populated_for_existing_rows(self, memory_home):
        path = memory_home / "legacy.db"
        SQLiteStore(path).close()
        conn = sqlite3.connect(str(path))
        conn.execute("DROP TABLE memories_fts")
        for trig in ("memories_ai", "memories_au", "memories_ad", "keywords_ai", "keywords_au", "keywords_ad"):
            conn.execute(f"DROP TRIGGER {trig}")
        conn.execute("INSERT INTO memories (content_path, summary, created_at) VALUES ('p', 'legacy row', 't')")
        conn.execute("INSERT INTO keywords (memory_id, keyword) VALUES (1, 'old')")
        conn.commit()
        conn.close()

        store = SQLiteStore(path)
        try:
            row = store.fetchone("SELECT summary, keywords FROM memories_fts WHERE rowid = 1")
            assert row == ("legacy row", "old")
        finally:
            store.close()

    def test_schema_sql_lists_ddl(self, sqlite_store):
        ddl = sqlite_store.schema_sql()
        assert re.search(r"CREATE TABLE (IF NOT EXISTS )?memories", ddl)
        assert re.search(r"CREATE VIRTUAL TABLE (IF NOT EXISTS )?memories_fts", ddl)
        assert "CREATE TRIGGER" in ddl
        # FTS5 shadow tables are implementation detail
        assert "memories_fts_data" not in ddl


class TestConnection:
    def test_pragmas(self, sqlite_store):
        assert sqlite_store.fetchone("PRAGMA journal_mode")[0] == "wal"
        assert sqlite_store.fetchone("PRAGMA foreign_keys")[0] == 1

    @pytest.mark.skipif(os.name != "posix", reason="POSIX permissions")
    def test_db_file_owner_only(self, sqlite_store):
        mode = sqlite_store.db_path.stat().st_mode
        assert mode & stat.S_IRWXG == 0
        assert mode & stat.S_IRWXO == 0

    def test_close_is_idempotent(self, memory_home):
        s = SQLiteStore(memory_home / "c.db")
        s.close()
        s.close()
        assert s.closed
        with pytest.raises(StorageError, match="closed"):
            s.fetchone("SELECT 1")

    def test_context_manager_closes(self, memory_home):
        with SQLiteStore(memory_home / "cm.db") as s:
            assert not s.closed
        assert s.closed


class TestTransactions:
    def test_commit(self, sqlite_store):
        with sqlite_store.transaction() as c:
            c.execute("INSERT INTO memories (content_path, summary, created_at) VALUES ('a', 's', 't')")
        assert sqlite_store.fetchone("SELECT COUNT(*) FROM memories")[0] == 1

    def test_rollback_on_store_error(self, sqlite_store):
        with pytest.raises(InvalidInput):
            with sqlite_store.transaction() as c:
                c.execute("INSERT INTO memories (content_path, summary, created_at) VALUES ('a', 's', 't')")
                raise InvalidInput("nope")
        assert sqlite_store.fetchone("SELECT COUNT(*) FROM memories")[0] == 0
        assert sqlite_store.fetchone("SELECT COUNT(*) FROM memories_fts")[0] == 0

    def test_sqlite_error_becomes_storage_error(self, sqlite_store):
        with pytest.raises(StorageError):
            with sqlite_store.transaction() as c:
                c.execute("INSERT INTO memories (content_path, summary, created_at) VALUES ('a', 's', 't')")
                c.execute("INSERT INTO memories (content_path, summary, created_at) VALUES ('a', 's', 't')")
        assert sqlite_store.fetchone("SELECT COUNT(*) FROM memories")[0] == 0

    def test_other_exceptions_roll_back(self, sqlite_store):
        with pytest.raises(KeyError):
            with sqlite_store.transaction() as c:
                c.execute("INSERT INTO memories (content_path, summary, created_at) VALUES ('a', 's', 't')")
                raise KeyError("boom")
        assert sqlite_store.fetchone("SELECT COUNT(*) FROM memories")[0] == 0

    def test_locked_begin_is_storage_error(self, sqlite_store, monkeypatch):
        real = _retry_on_locked

        def locked_begin(fn, *args):
            if args and args[0] == "BEGIN IMMEDIATE":
                raise sqlite3.OperationalError("database is locked")
            return real(fn, *args)

        monkeypatch.setattr("agent_memory.sqlite_store._retry_on_locked", locked_begin)
        with pytest.raises(StorageError, match="locked"):
            with sqlite_store.transaction():
                pass
        monkeypatch.undo()
        with sqlite_store.transaction() as c:
            c.execute("INSERT INTO memories (content_path, summary, created_at) VALUES ('a', 's', 't')")
        assert sqlite_store.fetchone("SELECT COUNT(*) FROM memories")[0] == 1

    def test_bad_query_is_storage_error(self, sqlite_store):
        with pytest.raises(StorageError):
            sqlite_store.fetchall("SELECT * FROM no_such_table")


class TestRetryOnLocked:
    def test_retries_then_succeeds(self, monkeypatch):
        monkeypatch.setattr("agent_memory.sqlite_store._time.sleep", lambda s: None)
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise sqlite3.OperationalError("database is locked")
            return "ok"

        assert _retry_on_locked(flaky) == "ok"
        assert len(calls) == 3

    def test_gives_up(self, monkeypatch):
        monkeypatch.setattr("agent_memory.sqlite_store._time.sleep", lambda s: None)

        def locked():
            raise sqlite3.OperationalError("database is locked")

        with pytest.raises(sqlite3.OperationalError):
            _retry_on_locked(locked)

    def test_other_errors_not_retried(self):
        calls = []

        def broken():
            calls.append(1)
            raise sqlite3.OperationalError("no such table: x")

        with pytest.raises(sqlite3.OperationalError):
            _retry_on_locked(broken)
        assert len(calls) == 1
