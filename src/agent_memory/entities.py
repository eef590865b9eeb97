"""
Entity Store -- memory rows and their keyword associations.

Every mutation runs in one SQLiteStore transaction; the lexical index
triggers fire inside that same transaction, so a committed change is always
reflected in the index.
"""

import logging
import sqlite3
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from agent_memory.errors import InconsistentUpdate, StorageError
from agent_memory.sqlite_store import SQLiteStore

logger = logging.getLogger("agent_memory.entities")

MAX_KEYWORDS = 10
MAX_SUMMARY_LENGTH = 1000

# Unit separator: cannot appear in a normalized keyword list split.
_KEYWORD_SEP = "\x1f"

_SELECT_RECORD = f"""
    SELECT m.id, m.content_path, m.summary, m.created_at,
           (SELECT GROUP_CONCAT(keyword, '{_KEYWORD_SEP}') FROM
               (SELECT keyword FROM keywords WHERE memory_id = m.id ORDER BY keyword))
    FROM memories m
"""


def normalize_keywords(raw: Optional[Iterable[Any]], max_keywords: Optional[int] = MAX_KEYWORDS) -> List[str]:
    """Trim, lower-case, drop empties and duplicates (first occurrence wins), cap.

    Idempotent: normalizing an already-normalized list returns it unchanged.
    """
    normalized: List[str] = []
    for item in raw or ():
        keyword = str(item).strip().lower()
        if keyword and keyword not in normalized:
            normalized.append(keyword)
    if max_keywords is not None:
        return normalized[:max_keywords]
    return normalized


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


class MemoryRecord:
    """A memory row plus its keyword set."""

    __slots__ = ("id", "content_path", "summary", "created_at", "keywords")

    def __init__(self, id: int, content_path: str, summary: str, created_at: str, keywords: Optional[List[str]] = None):
        self.id = id
        self.content_path = content_path
        self.summary = summary
        self.created_at = created_at
        self.keywords = keywords or []

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "content_path": self.content_path,
            "summary": self.summary,
            "created_at": self.created_at,
            "keywords": list(self.keywords),
        }

    def __repr__(self) -> str:
        return f"MemoryRecord(id={self.id}, content_path={self.content_path!r})"


def _row_to_record(row) -> MemoryRecord:
    kws = row[4].split(_KEYWORD_SEP) if row[4] else []
    return MemoryRecord(id=row[0], content_path=row[1], summary=row[2], created_at=row[3], keywords=kws)


class EntityStore:
    """CRUD over ``memories`` and ``keywords``."""

    def __init__(self, store: SQLiteStore):
        self._store = store

    def insert(
        self,
        content_path: str,
        summary: str,
        keywords: Optional[Iterable[str]] = None,
        publish: Optional[Callable[[], Any]] = None,
    ) -> int:
        """Insert a memory and its keywords atomically. Returns the new id.

        ``publish`` runs after the rows are written and before COMMIT; if it
        raises, the insert is rolled back.
        """
        kws = normalize_keywords(keywords)
        with self._store.transaction() as c:
            try:
                cur = c.execute(
                    "INSERT INTO memories (content_path, summary, created_at) VALUES (?, ?, ?)",
                    (content_path, summary, _utc_now_iso()),
                )
            except sqlite3.IntegrityError as e:
                raise StorageError(f"Content path already in use: {content_path}") from e
            memory_id = cur.lastrowid
            if kws:
                c.executemany(
                    "INSERT INTO keywords (memory_id, keyword) VALUES (?, ?)",
                    [(memory_id, k) for k in kws],
                )
            if publish is not None:
                publish()
        logger.debug("Inserted memory %d (%d keywords)", memory_id, len(kws))
        return memory_id

    def update(
        self,
        memory_id: int,
        summary: Optional[str] = None,
        keywords: Optional[Iterable[str]] = None,
        publish: Optional[Callable[[], Any]] = None,
    ) -> bool:
        """Update summary and/or replace keywords. Returns whether the memory exists.

        ``keywords=None`` leaves the keyword set alone; ``keywords=[]`` clears it.
        ``publish`` runs inside the transaction once the memory is known to exist.
        """
        kws = None if keywords is None else normalize_keywords(keywords)
        with self._store.transaction() as c:
            if c.execute("SELECT 1 FROM memories WHERE id = ?", (memory_id,)).fetchone() is None:
                return False
            if summary is None and kws is None:
                if publish is not None:
                    publish()
                return True

            cur = c.execute(
                "UPDATE memories SET summary = COALESCE(?, summary), created_at = ? WHERE id = ?",
                (summary, _utc_now_iso(), memory_id),
            )
            if cur.rowcount != 1:
                raise InconsistentUpdate(
                    f"Memory {memory_id} existed at check time but update touched {cur.rowcount} rows"
                )
            if kws is not None:
                c.execute("DELETE FROM keywords WHERE memory_id = ?", (memory_id,))
                if kws:
                    c.executemany(
                        "INSERT INTO keywords (memory_id, keyword) VALUES (?, ?)",
                        [(memory_id, k) for k in kws],
                    )
            if publish is not None:
                publish()
        logger.debug("Updated memory %d (summary=%s, keywords=%s)",
                     memory_id, summary is not None, kws)
        return True

    def get(self, memory_id: int) -> Optional[MemoryRecord]:
        row = self._store.fetchone(_SELECT_RECORD + " WHERE m.id = ?", (memory_id,))
        return _row_to_record(row) if row else None

    def list(self, limit: int, offset: int = 0) -> List[MemoryRecord]:
        """Most recently created/modified first."""
        rows = self._store.fetchall(
            _SELECT_RECORD + " ORDER BY m.created_at DESC, m.id DESC LIMIT ? OFFSET ?",
            (limit, offset),
        )
        return [_row_to_record(r) for r in rows]

    def path_in_use(self, content_path: str) -> bool:
        row = self._store.fetchone("SELECT 1 FROM memories WHERE content_path = ?", (content_path,))
        return row is not None

    def count(self) -> int:
        row = self._store.fetchone("SELECT COUNT(*) FROM memories")
        return row[0] if row else 0

    def delete(self, memory_id: int) -> bool:
        """Remove a memory; keywords go by cascade, the index entry by trigger."""
        with self._store.transaction() as c:
            cur = c.execute("DELETE FROM memories WHERE id = ?", (memory_id,))
            removed = cur.rowcount > 0
        if removed:
            logger.debug("Deleted memory %d", memory_id)
        return removed

    def keywords_for(self, memory_ids: Iterable[int]) -> Dict[int, List[str]]:
        ids = list(memory_ids)
        if not ids:
            return {}
        placeholders = ",".join("?" * len(ids))
        rows = self._store.fetchall(
            f"SELECT memory_id, keyword FROM keywords WHERE memory_id IN ({placeholders}) ORDER BY memory_id, keyword",
            ids,
        )
        result: Dict[int, List[str]] = {i: [] for i in ids}
        for memory_id, keyword in rows:
            result[memory_id].append(keyword)
        return result

    def export_all(self) -> List[MemoryRecord]:
        rows = self._store.fetchall(_SELECT_RECORD + " ORDER BY m.created_at DESC, m.id DESC")
        return [_row_to_record(r) for r in rows]

    def keyword_stats(self, top: int = 10) -> Dict[str, Any]:
        """Totals and the most used keywords."""
        total = self._store.fetchone("SELECT COUNT(*) FROM keywords")[0]
        unique = self._store.fetchone("SELECT COUNT(DISTINCT keyword) FROM keywords")[0]
        top_rows = self._store.fetchall(
            "SELECT keyword, COUNT(*) AS n FROM keywords GROUP BY keyword ORDER BY n DESC, keyword LIMIT ?",
            (top,),
        )
        return {
            "total_keywords": total,
            "unique_keywords": unique,
            "top_keywords": [{"keyword": k, "count": n} for k, n in top_rows],
        }

    def created_range(self) -> Dict[str, Optional[str]]:
        row = self._store.fetchone("SELECT MIN(created_at), MAX(created_at) FROM memories")
        return {"oldest_memory": row[0] if row else None, "newest_memory": row[1] if row else None}
