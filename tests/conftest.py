"""Agent memory test configuration."""
import os
import sys
import pytest
from pathlib import Path

# Ensure agent_memory is importable without installation
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

_ENV_VARS = (
    "AGENT_MEMORY_HOME",
    "AGENT_MEMORY_DB",
    "AGENT_MEMORY_CONTENT_DIR",
    "AGENT_MEMORY_READ_LIMIT",
    "AGENT_MEMORY_STAGING_GRACE",
    "AGENT_MEMORY_LOG_LEVEL",
)


@pytest.fixture
def memory_home(tmp_path):
    """Create a temporary memory home and point the environment at it."""
    home = tmp_path / ".agent-memory"
    home.mkdir()
    saved = {k: os.environ.get(k) for k in _ENV_VARS}
    for k in _ENV_VARS:
        os.environ.pop(k, None)
    os.environ["AGENT_MEMORY_HOME"] = str(home)
    yield home
    for k, v in saved.items():
        if v is None:
            os.environ.pop(k, None)
        else:
            os.environ[k] = v


@pytest.fixture
def sqlite_store(memory_home):
    """Create a fresh SQLiteStore for testing."""
    from agent_memory.sqlite_store import SQLiteStore
    s = SQLiteStore(memory_home / "test.db")
    yield s
    s.close()


@pytest.fixture
def blob_store(memory_home):
    from agent_memory.blob_store import BlobStore
    return BlobStore(memory_home / "data")


@pytest.fixture
def service(sqlite_store, blob_store):
    """A MemoryService over isolated storage."""
    from agent_memory.service import MemoryService
    return MemoryService(sqlite_store, blob_store)


@pytest.fixture
def _reset_bridge(memory_home):
    """Reset the bridge singleton so each test gets a fresh service.

    Test modules can use this via @pytest.mark.usefixtures("_reset_bridge")
    or define a local autouse fixture that depends on it.
    """
    from agent_memory.bridge import reset_service

    reset_service()
    yield
    reset_service()
