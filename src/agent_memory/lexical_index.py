"""
Lexical Index -- FTS5 shadow documents over (summary, keywords) per memory.

Each live memory has exactly one row in ``memories_fts`` with
``rowid = memories.id``; the ``keywords`` column holds the memory's keywords
sorted and joined by single spaces. Triggers on ``memories`` and ``keywords``
keep it in sync by always deleting the old document and inserting a freshly
built one, inside the same transaction as the mutation that fired them.

The index is never written directly by callers. ``check()`` and ``repair()``
are the consistency sweep offered for recovery after a crash or manual edits.
"""

import logging
import sqlite3
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from agent_memory.errors import StorageError

if TYPE_CHECKING:
    from agent_memory.sqlite_store import SQLiteStore

logger = logging.getLogger("agent_memory.lexical_index")

FTS_TABLE = "memories_fts"


def keywords_expr(memory_ref: str) -> str:
    """SQL expression aggregating a memory's keywords, sorted, space-joined."""
    return (
        "COALESCE((SELECT GROUP_CONCAT(keyword, ' ') FROM "
        f"(SELECT keyword FROM keywords WHERE memory_id = {memory_ref} ORDER BY keyword)), '')"
    )


def _reindex_sql(memory_ref: str) -> str:
    """Delete then re-insert the document for ``memory_ref`` if its memory still exists."""
    return f"""
        DELETE FROM {FTS_TABLE} WHERE rowid = {memory_ref};
        INSERT INTO {FTS_TABLE}(rowid, summary, keywords)
            SELECT m.id, m.summary, {keywords_expr('m.id')}
            FROM memories m WHERE m.id = {memory_ref};
    """


_TRIGGERS = {
    "memories_ai": f"""
        CREATE TRIGGER IF NOT EXISTS memories_ai AFTER INSERT ON memories BEGIN
            INSERT INTO {FTS_TABLE}(rowid, summary, keywords)
            VALUES (new.id, new.summary, {keywords_expr('new.id')});
        END
    """,
    "memories_au": f"""
        CREATE TRIGGER IF NOT EXISTS memories_au AFTER UPDATE ON memories BEGIN
            DELETE FROM {FTS_TABLE} WHERE rowid = old.id;
            INSERT INTO {FTS_TABLE}(rowid, summary, keywords)
            VALUES (new.id, new.summary, {keywords_expr('new.id')});
        END
    """,
    "memories_ad": f"""
        CREATE TRIGGER IF NOT EXISTS memories_ad AFTER DELETE ON memories BEGIN
            DELETE FROM {FTS_TABLE} WHERE rowid = old.id;
        END
    """,
    "keywords_ai": f"""
        CREATE TRIGGER IF NOT EXISTS keywords_ai AFTER INSERT ON keywords BEGIN
            {_reindex_sql('new.memory_id')}
        END
    """,
    "keywords_au": f"""
        CREATE TRIGGER IF NOT EXISTS keywords_au AFTER UPDATE ON keywords BEGIN
            {_reindex_sql('old.memory_id')}
            {_reindex_sql('new.memory_id')}
        END
    """,
    "keywords_ad": f"""
        CREATE TRIGGER IF NOT EXISTS keywords_ad AFTER DELETE ON keywords BEGIN
            {_reindex_sql('old.memory_id')}
        END
    """,
}


def create_schema(conn: sqlite3.Connection) -> bool:
    """Create the FTS5 table and sync triggers. Returns True if the table is new."""
    existed = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", (FTS_TABLE,)
    ).fetchone() is not None
    conn.execute(f"""
        CREATE VIRTUAL TABLE IF NOT EXISTS {FTS_TABLE} USING fts5(
            summary,
            keywords,
            tokenize='unicode61',
            prefix='2 3 4'
        )
    """)
    for sql in _TRIGGERS.values():
        conn.execute(sql)
    return not existed


def populate(conn: sqlite3.Connection) -> int:
    """Insert documents for every memory. Caller holds the transaction."""
    cur = conn.execute(
        f"""INSERT INTO {FTS_TABLE}(rowid, summary, keywords)
            SELECT m.id, m.summary, {keywords_expr('m.id')} FROM memories m"""
    )
    return cur.rowcount if cur.rowcount and cur.rowcount > 0 else 0


class IndexReport:
    """Result of a consistency sweep over the lexical index."""

    __slots__ = ("checked", "missing", "stale", "orphaned")

    def __init__(self, checked: int, missing: List[int], stale: List[int], orphaned: List[int]):
        self.checked = checked
        self.missing = missing
        self.stale = stale
        self.orphaned = orphaned

    @property
    def consistent(self) -> bool:
        return not (self.missing or self.stale or self.orphaned)

    def to_dict(self) -> Dict[str, object]:
        return {
            "checked": self.checked,
            "consistent": self.consistent,
            "missing": self.missing,
            "stale": self.stale,
            "orphaned": self.orphaned,
        }


class LexicalIndex:
    """Read and maintenance operations over ``memories_fts``."""

    def __init__(self, store: "SQLiteStore"):
        self._store = store

    def candidates(
        self,
        match_expr: str,
        summary_weight: float,
        keyword_weight: float,
        limit: int,
    ) -> List[Tuple[int, str, str, str, float]]:
        """Top ``limit`` (id, content_path, summary, created_at, bm25) rows, best first.

        BM25 scores follow the FTS5 convention: lower is more relevant.
        """
        return self._store.fetchall(
            f"""SELECT m.id, m.content_path, m.summary, m.created_at,
                       bm25({FTS_TABLE}, ?, ?) AS bm25_score
                FROM {FTS_TABLE}
                JOIN memories m ON m.id = {FTS_TABLE}.rowid
                WHERE {FTS_TABLE} MATCH ?
                ORDER BY bm25_score ASC, m.id DESC
                LIMIT ?""",
            (summary_weight, keyword_weight, match_expr, limit),
        )

    def entry(self, memory_id: int) -> Optional[Tuple[str, str]]:
        """The (summary, keywords) document stored for a memory, if any."""
        row = self._store.fetchone(
            f"SELECT summary, keywords FROM {FTS_TABLE} WHERE rowid = ?", (memory_id,)
        )
        return (row[0], row[1]) if row else None

    def document_count(self) -> int:
        row = self._store.fetchone(f"SELECT COUNT(*) FROM {FTS_TABLE}")
        return row[0] if row else 0

    def optimize(self) -> Dict[str, object]:
        """Merge FTS5 b-tree segments. Always reports success."""
        with self._store.transaction() as c:
            c.execute(f"INSERT INTO {FTS_TABLE}({FTS_TABLE}) VALUES('optimize')")
        logger.info("Lexical index optimized")
        return {"success": True, "message": "FTS5 index optimized successfully"}

    def integrity_check(self) -> bool:
        """Run the FTS5 integrity-check command."""
        try:
            with self._store.transaction() as c:
                c.execute(f"INSERT INTO {FTS_TABLE}({FTS_TABLE}) VALUES('integrity-check')")
        except StorageError as e:
            logger.warning("Lexical index integrity check failed: %s", e)
            return False
        return True

    # ------------------------------------------------------------------
    # Consistency sweep
    # ------------------------------------------------------------------

    @staticmethod
    def _scan(conn: sqlite3.Connection) -> IndexReport:
        checked = conn.execute("SELECT COUNT(*) FROM memories").fetchone()[0]
        rows = conn.execute(
            f"""SELECT m.id, f.rowid IS NULL
                FROM memories m
                LEFT JOIN {FTS_TABLE} f ON f.rowid = m.id
                WHERE f.rowid IS NULL
                   OR f.summary IS NOT m.summary
                   OR f.keywords IS NOT {keywords_expr('m.id')}
                ORDER BY m.id"""
        ).fetchall()
        missing = [r[0] for r in rows if r[1]]
        stale = [r[0] for r in rows if not r[1]]
        orphaned = [
            r[0]
            for r in conn.execute(
                f"SELECT rowid FROM {FTS_TABLE} WHERE rowid NOT IN (SELECT id FROM memories) ORDER BY rowid"
            ).fetchall()
        ]
        return IndexReport(checked, missing, stale, orphaned)

    def check(self) -> IndexReport:
        """Find memories whose index entry is missing or disagrees with current metadata."""
        with self._store.transaction() as c:
            return self._scan(c)

    def repair(self) -> IndexReport:
        """Rebuild every entry the sweep flags, in one transaction.

        Returns the report of what was found (and fixed).
        """
        with self._store.transaction() as c:
            report = self._scan(c)
            for memory_id in report.missing + report.stale + report.orphaned:
                c.execute(f"DELETE FROM {FTS_TABLE} WHERE rowid = ?", (memory_id,))
            for memory_id in report.missing + report.stale:
                c.execute(
                    f"""INSERT INTO {FTS_TABLE}(rowid, summary, keywords)
                        SELECT m.id, m.summary, {keywords_expr('m.id')}
                        FROM memories m WHERE m.id = ?""",
                    (memory_id,),
                )
        if not report.consistent:
            logger.info(
                "Lexical index repaired: %d missing, %d stale, %d orphaned",
                len(report.missing), len(report.stale), len(report.orphaned),
            )
        return report
