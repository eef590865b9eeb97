"""Agent Memory -- full-text searchable memory store for AI agents.

Direct Python API -- no MCP server required::

    from agent_memory import MemoryService, load_settings
    with MemoryService.open(load_settings()) as memories:
        record = memories.insert("Use WAL mode for SQLite", "sqlite tuning", ["sqlite"])
        hits = memories.search("sqlite", keywords=["sqlite"])

The same operations are served over MCP by ``agent-memory serve``.
"""

__version__ = "0.3.0"

from agent_memory.config import Settings, load_settings
from agent_memory.errors import (
    ContentIOError,
    InconsistentUpdate,
    InvalidInput,
    MemoryNotFound,
    MemoryStoreError,
    PathOutsideContentRoot,
    StorageError,
)
from agent_memory.service import MemoryPage, MemoryService
from agent_memory.sqlite_store import SQLiteStore

__all__ = [
    "ContentIOError",
    "InconsistentUpdate",
    "InvalidInput",
    "MemoryNotFound",
    "MemoryPage",
    "MemoryService",
    "MemoryStoreError",
    "PathOutsideContentRoot",
    "SQLiteStore",
    "Settings",
    "StorageError",
    "load_settings",
]
