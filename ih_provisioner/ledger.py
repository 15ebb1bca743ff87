"""Crash-safe record of allocated resource tags.

The ledger file lists one tag per line and is fully rewritten on every
mutation, so an out-of-band cleanup pass can reclaim whatever a killed test
process left behind. Ledgers bound to the same file treat it as the source of
truth: threads share one in-process lock and processes serialize on an
exclusive flock of the sidecar `<path>.lock`.
"""

from __future__ import annotations

import fcntl
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator, Optional

from ih_provisioner.models.types import DuplicateTagError, LedgerPersistenceError

logger = logging.getLogger(__name__)

_LOCKS: dict[str, threading.Lock] = {}
_LOCKS_GUARD = threading.Lock()


def _lock_for(path: Optional[Path]) -> threading.Lock:
    if path is None:
        return threading.Lock()
    key = str(path.resolve())
    with _LOCKS_GUARD:
        lock = _LOCKS.get(key)
        if lock is None:
            lock = _LOCKS[key] = threading.Lock()
        return lock


def read_ledger(path: Path) -> set[str]:
    """Return the tags recorded in a ledger file (empty when missing)."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return set()
    return {line.strip() for line in text.splitlines() if line.strip()}


def _write_ledger(path: Path, tags: Iterable[str]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    content = "".join(f"{tag}\n" for tag in sorted(tags))
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.tmp-", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
        os.chmod(tmp_name, 0o644)
        Path(tmp_name).replace(path)
    finally:
        Path(tmp_name).unlink(missing_ok=True)


def lock_file_for(path: Path) -> Path:
    return path.with_name(path.name + ".lock")


class ResourceLedger:
    """Lock-guarded set of allocated tags, optionally persisted to a file."""

    def __init__(self, path: Optional[Path | str] = None) -> None:
        self.path = Path(path).expanduser() if path else None
        self._lock = _lock_for(self.path)
        self._tags: set[str] = set()

    @contextmanager
    def _locked(self) -> Iterator[None]:
        with self._lock:
            if self.path is None:
                yield
                return
            lock_path = lock_file_for(self.path)
            try:
                lock_path.parent.mkdir(parents=True, exist_ok=True)
                handle = lock_path.open("a")
            except OSError as exc:
                raise LedgerPersistenceError(
                    f"Failed to open ledger lock {lock_path}",
                    context={"path": lock_path},
                    cause=exc,
                ) from exc
            with handle:
                fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
                try:
                    yield
                finally:
                    fcntl.flock(handle.fileno(), fcntl.LOCK_UN)

    def _load_locked(self) -> set[str]:
        if self.path is None:
            return set(self._tags)
        try:
            return read_ledger(self.path)
        except OSError as exc:
            raise LedgerPersistenceError(
                f"Failed to read resource ledger {self.path}",
                context={"path": self.path},
                cause=exc,
            ) from exc

    def _persist_locked(self, tags: set[str]) -> None:
        if self.path is None:
            return
        try:
            _write_ledger(self.path, tags)
        except OSError as exc:
            raise LedgerPersistenceError(
                f"Failed to write resource ledger {self.path}; "
                "the ledger may be inconsistent with disk",
                context={"path": self.path, "tags": sorted(tags)},
                cause=exc,
            ) from exc

    def allocate(self, tag: str) -> None:
        """Record tag as allocated; duplicate tags are a configuration bug."""
        if not tag or tag.strip() != tag or "\n" in tag:
            raise ValueError(f"invalid resource tag: {tag!r}")
        with self._locked():
            current = self._load_locked()
            if tag in current:
                raise DuplicateTagError(
                    f"resource tag not unique: {tag}",
                    context={"tag": tag, "path": self.path},
                )
            updated = current | {tag}
            self._persist_locked(updated)
            self._tags = updated
        logger.debug("Resource %s allocated", tag)

    def deallocate(self, tag: str) -> None:
        """Forget tag; removing an absent tag is not an error."""
        with self._locked():
            current = self._load_locked()
            updated = current - {tag}
            self._persist_locked(updated)
            self._tags = updated
        logger.debug("Resource %s deallocated", tag)

    def tags(self) -> set[str]:
        """Snapshot of the currently allocated tags."""
        with self._locked():
            return self._load_locked()

    def __contains__(self, tag: object) -> bool:
        return tag in self.tags()
