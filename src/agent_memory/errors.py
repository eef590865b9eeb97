"""Error taxonomy for the agent memory store.

Every error carries a stable ``kind`` string so protocol layers can report it
without parsing messages.
"""

from typing import Optional


class MemoryStoreError(Exception):
    """Base class for all memory store errors."""

    kind = "internal"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class MemoryNotFound(MemoryStoreError):
    kind = "not_found"

    def __init__(self, memory_id: int, message: Optional[str] = None):
        super().__init__(message or f"Memory with ID {memory_id} not found")
        self.memory_id = memory_id


class InvalidInput(MemoryStoreError):
    kind = "validation"


class ContentIOError(MemoryStoreError):
    """Disk read/write failure, distinct from a missing file."""

    kind = "io_failure"


class PathOutsideContentRoot(MemoryStoreError):
    kind = "path_outside_boundary"

    def __init__(self, path: str):
        super().__init__(f"File path outside content directory: {path}")
        self.path = path


class InconsistentUpdate(MemoryStoreError):
    """An update's existence check and its row mutation disagreed."""

    kind = "internal_inconsistency"


class StorageError(MemoryStoreError):
    """Relational store failure (constraint violation, locked database, ...)."""

    kind = "storage"
