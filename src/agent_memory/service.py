"""
Memory Service -- one explicit handle over the blob store, entity store,
lexical index and search engine.

Write ordering: content is staged next to its final path, then the entity
transaction runs and renames the staged file into place just before COMMIT.
A failed rename rolls the rows back and a failed transaction discards the
staged bytes, so committed metadata never points at unpublished content. A
crash after the rename but before COMMIT leaves only an unreferenced file.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from agent_memory.blob_store import BlobStore, ContentRead, StagedBlob, slugify
from agent_memory.config import DEFAULT_READ_LIMIT, DEFAULT_STAGING_GRACE, Settings, load_settings
from agent_memory.entities import MAX_SUMMARY_LENGTH, EntityStore, MemoryRecord, normalize_keywords
from agent_memory.errors import InconsistentUpdate, InvalidInput, MemoryNotFound
from agent_memory.lexical_index import IndexReport, LexicalIndex
from agent_memory.search import (
    DEFAULT_KEYWORD_BOOST,
    DEFAULT_KEYWORD_WEIGHT,
    DEFAULT_LIMIT,
    DEFAULT_SUMMARY_WEIGHT,
    SearchEngine,
    SearchHit,
)
from agent_memory.sqlite_store import SQLiteStore

logger = logging.getLogger("agent_memory.service")

DEFAULT_LIST_LIMIT = 20


class MemoryPage:
    """One page of ``list`` results with pagination metadata."""

    __slots__ = ("records", "total", "limit", "offset")

    def __init__(self, records: List[MemoryRecord], total: int, limit: int, offset: int):
        self.records = records
        self.total = total
        self.limit = limit
        self.offset = offset

    @property
    def has_more(self) -> bool:
        return self.offset + self.limit < self.total

    def to_dict(self) -> Dict[str, Any]:
        return {
            "memories": [r.to_dict() for r in self.records],
            "pagination": {
                "total": self.total,
                "limit": self.limit,
                "offset": self.offset,
                "has_more": self.has_more,
            },
        }


class MemoryService:
    """The memory store: insert, update, get, delete, list, search, maintenance."""

    def __init__(
        self,
        store: SQLiteStore,
        blobs: BlobStore,
        read_limit_bytes: Optional[int] = None,
        staging_grace_seconds: int = DEFAULT_STAGING_GRACE,
    ):
        self.store = store
        self.blobs = blobs
        self.read_limit_bytes = read_limit_bytes or blobs.read_limit_bytes or DEFAULT_READ_LIMIT
        self.staging_grace_seconds = staging_grace_seconds
        self.entities = EntityStore(store)
        self.index = LexicalIndex(store)
        self.engine = SearchEngine(store, self.index)

    @classmethod
    def open(cls, settings: Optional[Settings] = None) -> "MemoryService":
        settings = settings or load_settings()
        store = SQLiteStore(settings.db_path)
        blobs = BlobStore(settings.content_root, read_limit_bytes=settings.read_limit_bytes)
        logger.debug("Opened memory service: %r", settings)
        return cls(
            store,
            blobs,
            read_limit_bytes=settings.read_limit_bytes,
            staging_grace_seconds=settings.staging_grace_seconds,
        )

    # ------------------------------------------------------------------
    # Core CRUD
    # ------------------------------------------------------------------

    def insert(
        self,
        content: str,
        summary: str,
        keywords: Optional[Iterable[str]] = None,
        now: Optional[datetime] = None,
    ) -> MemoryRecord:
        """Store content under a dated slug path and index its summary + keywords."""
        if not content:
            raise InvalidInput("content must not be empty")
        _check_summary(summary)
        kws = normalize_keywords(keywords)

        staged = self.blobs.stage(slugify(summary) + ".md", content, now=now)
        memory_id = self._commit_with(
            staged, lambda: self.entities.insert(staged.path, summary, kws, publish=staged.commit)
        )
        logger.info("Inserted memory %d at %s", memory_id, staged.path)
        return self._require(memory_id)

    def update(
        self,
        memory_id: int,
        content: Optional[str] = None,
        summary: Optional[str] = None,
        keywords: Optional[Iterable[str]] = None,
    ) -> MemoryRecord:
        """Overwrite content and/or replace summary/keywords of an existing memory.

        ``keywords=None`` leaves keywords unchanged; ``keywords=[]`` clears them.
        """
        if content is None and summary is None and keywords is None:
            raise InvalidInput("At least one of content, summary, or keywords must be provided")
        if content is not None and not content:
            raise InvalidInput("content must not be empty")
        if summary is not None:
            _check_summary(summary)
        kws = None if keywords is None else normalize_keywords(keywords)

        existing = self._require(memory_id)
        staged = self.blobs.stage_overwrite(existing.content_path, content) if content is not None else None

        def _apply():
            publish = staged.commit if staged is not None else None
            if not self.entities.update(memory_id, summary=summary, keywords=kws, publish=publish):
                raise InconsistentUpdate(f"Memory {memory_id} vanished during update")

        self._commit_with(staged, _apply)
        logger.info("Updated memory %d", memory_id)
        return self._require(memory_id)

    def get(self, memory_id: int) -> Dict[str, Any]:
        """Record plus capped content; unreadable content degrades to a placeholder."""
        record = self._require(memory_id)
        content = self.blobs.read_capped(record.content_path, self.read_limit_bytes)
        return _with_content(record.to_dict(), content)

    def delete(self, memory_id: int) -> None:
        """Remove the memory, its keywords and index entry. The content file stays."""
        if not self.entities.delete(memory_id):
            raise MemoryNotFound(memory_id)
        logger.info("Deleted memory %d", memory_id)

    def list(self, limit: int = DEFAULT_LIST_LIMIT, offset: int = 0) -> MemoryPage:
        records = self.entities.list(limit, offset)
        return MemoryPage(records, self.entities.count(), limit, offset)

    def count(self) -> int:
        return self.entities.count()

    # ------------------------------------------------------------------
    # Search and reads
    # ------------------------------------------------------------------

    def search(
        self,
        query: str,
        keywords: Optional[Iterable[str]] = None,
        limit: int = DEFAULT_LIMIT,
        summary_weight: float = DEFAULT_SUMMARY_WEIGHT,
        keyword_weight: float = DEFAULT_KEYWORD_WEIGHT,
        keyword_boost: float = DEFAULT_KEYWORD_BOOST,
    ) -> Dict[str, Any]:
        """Ranked matches with their content."""
        results = self.engine.search(
            query,
            boost_keywords=keywords,
            limit=limit,
            summary_weight=summary_weight,
            keyword_weight=keyword_weight,
            keyword_boost=keyword_boost,
        )
        return {
            "results": [self._hit_with_content(h) for h in results.hits],
            "total_found": results.total_candidates,
        }

    def _hit_with_content(self, hit: SearchHit) -> Dict[str, Any]:
        content = self.blobs.read_capped(hit.content_path, self.read_limit_bytes)
        return _with_content(hit.to_dict(), content)

    def read_content(self, path: str) -> ContentRead:
        """Capped read of a raw content file; the path must resolve inside the content root."""
        target = self.blobs.resolve_within_root(path)
        return self.blobs.read_capped(target, self.read_limit_bytes)

    # ------------------------------------------------------------------
    # Maintenance and introspection
    # ------------------------------------------------------------------

    def optimize(self) -> Dict[str, Any]:
        return self.index.optimize()

    def check_index(self) -> IndexReport:
        return self.index.check()

    def repair_index(self) -> IndexReport:
        return self.index.repair()

    def sweep_staged(self, grace_seconds: Optional[int] = None) -> int:
        if grace_seconds is None:
            grace_seconds = self.staging_grace_seconds
        return self.blobs.sweep_staged(grace_seconds, is_referenced=self.entities.path_in_use)

    def stats(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"total_memories": self.entities.count()}
        kw = self.entities.keyword_stats()
        data["total_keywords"] = kw["total_keywords"]
        data["unique_keywords"] = kw["unique_keywords"]
        data.update(self.entities.created_range())
        data["top_keywords"] = kw["top_keywords"]
        data["database_path"] = str(self.store.db_path)
        data["database_size_bytes"] = self.store.database_size()
        data["content_root"] = str(self.blobs.root)
        return data

    def export_all(self) -> Dict[str, Any]:
        records = self.entities.export_all()
        return {
            "export_timestamp": datetime.now(timezone.utc).isoformat(),
            "total_memories": len(records),
            "memories": [r.to_dict() for r in records],
        }

    def schema_sql(self) -> str:
        return self.store.schema_sql()

    def close(self) -> None:
        self.store.close()

    def __enter__(self) -> "MemoryService":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require(self, memory_id: int) -> MemoryRecord:
        record = self.entities.get(memory_id)
        if record is None:
            raise MemoryNotFound(memory_id)
        return record

    @staticmethod
    def _commit_with(staged: Optional[StagedBlob], write):
        """Run the metadata write, which publishes the staged blob before COMMIT.

        The staged blob is discarded when the write fails; after a successful
        write it must no longer be pending.
        """
        try:
            result = write()
        except BaseException:
            if staged is not None:
                staged.discard()
            raise
        if staged is not None and staged.pending:
            staged.discard()
            raise InconsistentUpdate(f"Metadata for {staged.path} was written without publishing its content")
        return result


def _check_summary(summary: str) -> None:
    if not summary or len(summary) > MAX_SUMMARY_LENGTH:
        raise InvalidInput(f"summary must be between 1 and {MAX_SUMMARY_LENGTH} characters")


def _with_content(data: Dict[str, Any], content: ContentRead) -> Dict[str, Any]:
    data = dict(data)
    data["file_contents"] = content.content
    data["file_exists"] = content.exists
    if content.size is not None:
        data["file_size"] = content.size
    if content.error is not None:
        data["content_error"] = content.error
    return data
