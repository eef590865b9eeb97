"""Settings for the agent memory store, resolved from environment variables.

Resolution is lazy (``load_settings()`` reads the environment on each call)
so tests can point ``AGENT_MEMORY_HOME`` at a temporary directory.
"""

import logging
import os
from pathlib import Path
from typing import Optional

logger = logging.getLogger("agent_memory.config")

DEFAULT_READ_LIMIT = 1024 * 1024  # 1 MiB
_MIN_READ_LIMIT = 1024
_MAX_READ_LIMIT = 64 * 1024 * 1024
DEFAULT_STAGING_GRACE = 3600  # seconds
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def memory_home() -> Path:
    """Base directory for the database and content tree."""
    return Path(os.environ.get("AGENT_MEMORY_HOME", str(Path.home() / ".agent-memory"))).expanduser()


def _env_int(name: str, default: int, min_val: int, max_val: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r, using %d", name, raw, default)
        return default
    return max(min_val, min(value, max_val))


class Settings:
    """Resolved configuration for one memory store."""

    __slots__ = ("home", "db_path", "content_root", "read_limit_bytes", "staging_grace_seconds", "log_level")

    def __init__(
        self,
        home: Path,
        db_path: Path,
        content_root: Path,
        read_limit_bytes: int = DEFAULT_READ_LIMIT,
        staging_grace_seconds: int = DEFAULT_STAGING_GRACE,
        log_level: str = "WARNING",
    ):
        self.home = Path(home)
        self.db_path = Path(db_path)
        self.content_root = Path(content_root)
        self.read_limit_bytes = read_limit_bytes
        self.staging_grace_seconds = staging_grace_seconds
        self.log_level = log_level

    def __repr__(self) -> str:
        return (
            f"Settings(db_path={str(self.db_path)!r}, content_root={str(self.content_root)!r}, "
            f"read_limit_bytes={self.read_limit_bytes})"
        )


def load_settings(
    db_path: Optional[str] = None,
    content_root: Optional[str] = None,
    read_limit_bytes: Optional[int] = None,
) -> Settings:
    """Build Settings from the environment; explicit arguments win."""
    home = memory_home()
    db = db_path or os.environ.get("AGENT_MEMORY_DB") or str(home / "memories.db")
    root = content_root or os.environ.get("AGENT_MEMORY_CONTENT_DIR") or str(home / "data")
    if read_limit_bytes is None:
        read_limit_bytes = _env_int("AGENT_MEMORY_READ_LIMIT", DEFAULT_READ_LIMIT, _MIN_READ_LIMIT, _MAX_READ_LIMIT)
    grace = _env_int("AGENT_MEMORY_STAGING_GRACE", DEFAULT_STAGING_GRACE, 0, 7 * 24 * 3600)
    level = os.environ.get("AGENT_MEMORY_LOG_LEVEL", "WARNING").strip().upper() or "WARNING"
    if level not in _LOG_LEVELS:
        logger.warning("Ignoring unknown AGENT_MEMORY_LOG_LEVEL=%r, using WARNING", level)
        level = "WARNING"
    return Settings(
        home=home,
        db_path=Path(db).expanduser(),
        content_root=Path(root).expanduser(),
        read_limit_bytes=read_limit_bytes,
        staging_grace_seconds=grace,
        log_level=level,
    )
