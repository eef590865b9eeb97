"""
Blob Store -- raw memory content on disk under a dated directory tree.

Layout::

    <root>/YYYY/MM/DD/<slug>.md
    <root>/YYYY/MM/DD/<slug>-1.md     (second file with the same slug that day)

Paths are claimed with an exclusive create (O_CREAT | O_EXCL), so two writers
can never end up on the same file. Content is staged in a hidden temp file
next to its final path and renamed into place only when the caller commits,
which the service does inside its metadata transaction, just before COMMIT.
Stale staging files left by a crash are swept: promoted when their target is
still an empty claim that metadata references, deleted otherwise.
"""

import logging
import os
import re
import tempfile
import time
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Union

from agent_memory.config import DEFAULT_READ_LIMIT
from agent_memory.errors import ContentIOError, PathOutsideContentRoot

logger = logging.getLogger("agent_memory.blob_store")

CONTENT_EXTENSION = ".md"
STAGING_PREFIX = ".staging-"
STAGING_SUFFIX = ".tmp"

_MAX_SUFFIX_ATTEMPTS = 10000
_SLUG_MAX_WORDS = 8
_SLUG_MAX_LEN = 50

_SLUG_INVALID_RE = re.compile(r"[^a-z0-9-]+")
_DASH_RUN_RE = re.compile(r"-+")
_NAME_UNSAFE_RE = re.compile(r"[^A-Za-z0-9._-]+")

PathLike = Union[str, os.PathLike]


def slugify(summary: str) -> str:
    """Derive a filesystem-safe slug from a summary."""
    words = (summary or "").lower().split()[:_SLUG_MAX_WORDS]
    slug = _SLUG_INVALID_RE.sub("-", "-".join(words))
    slug = _DASH_RUN_RE.sub("-", slug).strip("-")
    slug = slug[:_SLUG_MAX_LEN].strip("-")
    return slug or "memory"


def safe_stem(name_hint: str) -> str:
    """Reduce a caller-supplied name to a bare file stem (no directories, no extension)."""
    base = os.path.basename((name_hint or "").replace("\\", "/"))
    base = _NAME_UNSAFE_RE.sub("-", base)
    if base.lower().endswith(CONTENT_EXTENSION):
        base = base[: -len(CONTENT_EXTENSION)]
    return base.strip(".-") or "note"


def staged_target(temp_path: PathLike) -> Optional[Path]:
    """Final path a staging file was written for (``.staging-<name>.<rand>.tmp`` -> ``<name>``)."""
    temp = Path(temp_path)
    name = temp.name
    if not (name.startswith(STAGING_PREFIX) and name.endswith(STAGING_SUFFIX)):
        return None
    middle = name[len(STAGING_PREFIX):-len(STAGING_SUFFIX)]
    final_name, sep, _rand = middle.rpartition(".")
    if not sep or not final_name:
        return None
    return temp.parent / final_name


class StoredBlob:
    """Final location and UTF-8 byte length of a written blob."""

    __slots__ = ("path", "bytes")

    def __init__(self, path: str, bytes: int):
        self.path = path
        self.bytes = bytes

    def __repr__(self) -> str:
        return f"StoredBlob(path={self.path!r}, bytes={self.bytes})"


class StagedBlob:
    """Content written to a temp file, waiting to be renamed onto ``path``.

    ``commit()`` renames atomically; ``discard()`` removes the temp file and,
    for a newly claimed path, the empty claim file as well.
    """

    __slots__ = ("path", "bytes", "_temp_path", "_claimed", "_done")

    def __init__(self, path: str, nbytes: int, temp_path: str, claimed: bool):
        self.path = path
        self.bytes = nbytes
        self._temp_path = temp_path
        self._claimed = claimed
        self._done = False

    @property
    def pending(self) -> bool:
        return not self._done

    def commit(self) -> StoredBlob:
        if self._done:
            raise RuntimeError(f"Staged blob for {self.path} already finalized")
        try:
            os.replace(self._temp_path, self.path)
        except OSError as e:
            raise ContentIOError(f"Failed to move staged content into {self.path}: {e}") from e
        self._done = True
        return StoredBlob(self.path, self.bytes)

    def discard(self) -> None:
        if self._done:
            return
        self._done = True
        leftovers = [self._temp_path]
        if self._claimed:
            leftovers.append(self.path)
        for p in leftovers:
            try:
                os.unlink(p)
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning("Could not remove staged file %s: %s", p, e)


class ContentRead:
    """Outcome of a capped content read.

    ``exists`` is None when the file could not even be inspected; in that
    case ``error`` says why.
    """

    __slots__ = ("exists", "size", "content", "error")

    def __init__(
        self,
        exists: Optional[bool],
        size: Optional[int] = None,
        content: Optional[str] = None,
        error: Optional[str] = None,
    ):
        self.exists = exists
        self.size = size
        self.content = content
        self.error = error

    def to_dict(self) -> dict:
        data = {"file_exists": self.exists, "file_contents": self.content}
        if self.size is not None:
            data["file_size"] = self.size
        if self.error is not None:
            data["error"] = self.error
        return data


class BlobStore:
    """Content files under ``root``; no knowledge of the entity store."""

    def __init__(self, root: PathLike, read_limit_bytes: int = DEFAULT_READ_LIMIT):
        self.root = Path(root).expanduser().resolve()
        self.read_limit_bytes = read_limit_bytes

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def dated_dir(self, now: datetime) -> Path:
        return self.root / f"{now.year:04d}" / f"{now.month:02d}" / f"{now.day:02d}"

    def assign_and_write(self, name_hint: str, content: str, now: Optional[datetime] = None) -> StoredBlob:
        """Write content to a fresh dated path; never overwrites an existing file."""
        return self.stage(name_hint, content, now=now).commit()

    def stage(self, name_hint: str, content: str, now: Optional[datetime] = None) -> StagedBlob:
        """Claim a free dated path for ``name_hint`` and stage ``content`` beside it."""
        target_dir = self.dated_dir(now or datetime.now())
        self._ensure_dir(target_dir)
        final_path = self._claim_path(target_dir, safe_stem(name_hint))
        data = content.encode("utf-8")
        try:
            temp_path = self._write_temp(target_dir, final_path.name, data)
        except ContentIOError:
            try:
                final_path.unlink()
            except OSError as e:
                logger.warning("Could not release claimed path %s: %s", final_path, e)
            raise
        logger.debug("Staged %d bytes for %s", len(data), final_path)
        return StagedBlob(str(final_path), len(data), temp_path, claimed=True)

    def stage_overwrite(self, path: PathLike, content: str) -> StagedBlob:
        """Stage replacement content for an existing path."""
        final_path = Path(path)
        self._ensure_dir(final_path.parent)
        data = content.encode("utf-8")
        temp_path = self._write_temp(final_path.parent, final_path.name, data)
        return StagedBlob(str(final_path), len(data), temp_path, claimed=False)

    def _ensure_dir(self, directory: Path) -> None:
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ContentIOError(f"Failed to create directory {directory}: {e}") from e

    def _claim_path(self, directory: Path, stem: str) -> Path:
        """Atomically create an empty file at the first free ``stem[-N].md``."""
        for attempt in range(_MAX_SUFFIX_ATTEMPTS):
            name = f"{stem}{CONTENT_EXTENSION}" if attempt == 0 else f"{stem}-{attempt}{CONTENT_EXTENSION}"
            candidate = directory / name
            try:
                fd = os.open(str(candidate), os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o600)
            except FileExistsError:
                continue
            except OSError as e:
                raise ContentIOError(f"Failed to create {candidate}: {e}") from e
            os.close(fd)
            return candidate
        raise ContentIOError(f"No free file name for '{stem}' in {directory} after {_MAX_SUFFIX_ATTEMPTS} attempts")

    def _write_temp(self, directory: Path, final_name: str, data: bytes) -> str:
        try:
            fd, temp_path = tempfile.mkstemp(
                prefix=f"{STAGING_PREFIX}{final_name}.", suffix=STAGING_SUFFIX, dir=str(directory)
            )
        except OSError as e:
            raise ContentIOError(f"Failed to stage content in {directory}: {e}") from e
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
        except OSError as e:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise ContentIOError(f"Failed to write staged content for {final_name}: {e}") from e
        return temp_path

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def sweep_staged(self, grace_seconds: int, is_referenced: Optional[Callable[[str], bool]] = None) -> int:
        """Resolve staged temp files older than ``grace_seconds``. Returns count handled.

        A temp file whose target is still an empty claim that ``is_referenced``
        reports as in use holds the only copy of committed content: it is
        renamed into place. Every other stale temp file is deleted, together
        with its empty claim when nothing references it.
        """
        if not self.root.is_dir():
            return 0
        cutoff = time.time() - grace_seconds
        handled = 0
        for temp in self.root.rglob(f"{STAGING_PREFIX}*{STAGING_SUFFIX}"):
            try:
                if temp.stat().st_mtime > cutoff:
                    continue
                target = staged_target(temp)
                claim_empty = target is not None and target.is_file() and target.stat().st_size == 0
                referenced = claim_empty and is_referenced is not None and is_referenced(str(target))
                if referenced:
                    os.replace(temp, target)
                    logger.warning("Recovered staged content into %s", target)
                else:
                    temp.unlink()
                    if claim_empty and is_referenced is not None:
                        target.unlink()
                handled += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning("Could not sweep staged file %s: %s", temp, e)
        if handled:
            logger.info("Swept %d stale staged file(s) under %s", handled, self.root)
        return handled

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def resolve_within_root(self, path: PathLike) -> Path:
        """Resolve ``path`` and ensure it lies strictly inside the content root."""
        target = Path(path).expanduser().resolve()
        root = os.path.normcase(str(self.root))
        try:
            common = os.path.commonpath([root, os.path.normcase(str(target))])
        except ValueError:
            common = None
        if common != root or os.path.normcase(str(target)) == root:
            raise PathOutsideContentRoot(str(path))
        return target

    def is_within_root(self, path: PathLike) -> bool:
        try:
            self.resolve_within_root(path)
        except PathOutsideContentRoot:
            return False
        return True

    def read_capped(self, path: PathLike, limit_bytes: Optional[int] = None) -> ContentRead:
        """Read a content file, refusing files larger than ``limit_bytes``."""
        limit = self.read_limit_bytes if limit_bytes is None else limit_bytes
        p = Path(path)
        try:
            size = p.stat().st_size
        except (FileNotFoundError, NotADirectoryError):
            return ContentRead(exists=False)
        except OSError as e:
            logger.warning("Cannot stat %s: %s", p, e)
            return ContentRead(exists=None, content=f"[Error reading file: {e}]", error=str(e))

        if size > limit:
            return ContentRead(
                exists=True,
                size=size,
                content=f"[File too large: {size / 1024 / 1024:.2f}MB. Contents not loaded.]",
            )

        try:
            text = p.read_bytes().decode("utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Cannot read %s: %s", p, e)
            return ContentRead(exists=True, size=size, content=f"[Error reading file: {e}]", error=str(e))
        return ContentRead(exists=True, size=size, content=text)
