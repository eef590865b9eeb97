"""
Agent Memory Bridge -- high-level API used by the MCP handlers and the CLI.

All functions are thin wrappers over one lazily built MemoryService and
return JSON-able dicts in the shape clients see on the wire (content paths
are reported as ``file_path``).

Public API:
    Core:        insert_memory, update_memory, get_memory, delete_memory, list_memories
    Query:       search_memories, read_file
    Maintenance: optimize_index, check_index, sweep_staged
    Resources:   database_stats, export_memories, database_schema
    Testing:     reset_service
"""

import atexit
import logging
import threading
from typing import Any, Dict, List, Optional

from agent_memory.config import Settings, load_settings

logger = logging.getLogger("agent_memory.bridge")


# ---------------------------------------------------------------------------
# Lazy singleton
# ---------------------------------------------------------------------------

_service_instance = None
_service_lock = threading.Lock()
_atexit_registered = False


def _get_service(settings: Optional[Settings] = None):
    """Get or create the MemoryService singleton (thread-safe)."""
    global _service_instance, _atexit_registered
    if _service_instance is not None:
        return _service_instance
    with _service_lock:
        if _service_instance is not None:
            return _service_instance
        from agent_memory.service import MemoryService

        service = MemoryService.open(settings or load_settings())
        # Staged writes interrupted by a crash are dropped on startup
        swept = service.sweep_staged()
        if swept > 0:
            logger.info("Startup: removed %d stale staged file(s)", swept)
        _service_instance = service
        if not _atexit_registered:
            atexit.register(_close_service)
            _atexit_registered = True
    return _service_instance


def _close_service():
    """Close the MemoryService on process exit."""
    global _service_instance
    if _service_instance is not None:
        try:
            _service_instance.close()
        except Exception as e:
            logger.debug("Service close failed during shutdown: %s", e)


def reset_service():
    """Reset the singleton (useful for testing)."""
    global _service_instance
    with _service_lock:
        if _service_instance is not None:
            try:
                _service_instance.close()
            except Exception as e:
                logger.debug("Service close failed during reset: %s", e)
        _service_instance = None


# ---------------------------------------------------------------------------
# Wire shapes
# ---------------------------------------------------------------------------


def _wire(data: Dict[str, Any]) -> Dict[str, Any]:
    """Rename ``content_path`` to ``file_path`` keeping key order."""
    return {("file_path" if k == "content_path" else k): v for k, v in data.items()}


# ---------------------------------------------------------------------------
# Public API -- Core
# ---------------------------------------------------------------------------


def insert_memory(content: str, summary: str, keywords: Optional[List[str]] = None) -> Dict[str, Any]:
    record = _get_service().insert(content, summary, keywords or [])
    return {"message": "Memory inserted", "id": record.id, "file_path": record.content_path}


def update_memory(
    memory_id: int,
    content: Optional[str] = None,
    summary: Optional[str] = None,
    keywords: Optional[List[str]] = None,
) -> Dict[str, Any]:
    record = _get_service().update(memory_id, content=content, summary=summary, keywords=keywords)
    return {"message": "Memory updated", "id": record.id, "file_path": record.content_path}


def get_memory(memory_id: int) -> Dict[str, Any]:
    return _wire(_get_service().get(memory_id))


def delete_memory(memory_id: int) -> Dict[str, Any]:
    _get_service().delete(memory_id)
    return {"message": f"Memory with ID {memory_id} deleted successfully", "id": memory_id}


def list_memories(limit: int = 20, offset: int = 0) -> Dict[str, Any]:
    page = _get_service().list(limit=limit, offset=offset).to_dict()
    page["memories"] = [_wire(m) for m in page["memories"]]
    return page


# ---------------------------------------------------------------------------
# Public API -- Query
# ---------------------------------------------------------------------------


def search_memories(
    query: str,
    keywords: Optional[List[str]] = None,
    limit: int = 10,
    summary_weight: float = 0.8,
    keyword_weight: float = 2.0,
    keyword_boost: float = 1.0,
) -> Dict[str, Any]:
    found = _get_service().search(
        query,
        keywords=keywords,
        limit=limit,
        summary_weight=summary_weight,
        keyword_weight=keyword_weight,
        keyword_boost=keyword_boost,
    )
    found["results"] = [_wire(r) for r in found["results"]]
    return found


def read_file(file_path: str) -> Dict[str, Any]:
    content = _get_service().read_content(file_path)
    data = {"file_path": file_path}
    data.update(content.to_dict())
    return data


# ---------------------------------------------------------------------------
# Public API -- Maintenance
# ---------------------------------------------------------------------------


def optimize_index() -> Dict[str, Any]:
    return _get_service().optimize()


def check_index(repair: bool = False) -> Dict[str, Any]:
    service = _get_service()
    report = service.repair_index() if repair else service.check_index()
    data = report.to_dict()
    data["repaired"] = bool(repair and not report.consistent)
    return data


def sweep_staged(grace_seconds: Optional[int] = None) -> Dict[str, Any]:
    return {"removed": _get_service().sweep_staged(grace_seconds)}


# ---------------------------------------------------------------------------
# Public API -- Resources
# ---------------------------------------------------------------------------


def database_stats() -> Dict[str, Any]:
    return _get_service().stats()


def export_memories() -> Dict[str, Any]:
    export = _get_service().export_all()
    export["memories"] = [_wire(m) for m in export["memories"]]
    return export


def database_schema() -> str:
    return _get_service().schema_sql()
