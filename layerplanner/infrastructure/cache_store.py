#!/usr/bin/env python3
"""Content-addressed, append-only store of layer cache records.

This module provides the persistent cache that lets repeated builds skip
materializing layers whose content digest has been produced before:
- Records keyed by (backend, layer digest)
- Append-only JSON-lines file, never rewritten in place
- Shared file lock while loading, exclusive lock while appending
- Thread-safe in-memory index
- Read-only snapshots for planning
- Hit/miss statistics

Example:
    >>> with CacheStore("~/.cache/layerplanner/records.jsonl") as store:
    ...     snapshot = store.snapshot("archive")
    ...     store.record("archive", "sha256:ab...", "/out/ab.tar")
    ...     store.flush()
"""

import fcntl
import json
import os
import threading
import time
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from layerplanner.core.constants import ErrorCode
from layerplanner.infrastructure.logger import get_logger


class CacheStoreError(Exception):
    """Cache store could not be read or written."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.INTERNAL_ERROR):
        self.message = message
        self.error_code = error_code
        super().__init__(message)


@dataclass(frozen=True)
class CacheRecord:
    """Maps a layer content digest to an artifact produced by one backend."""

    digest: str
    artifact_ref: str
    backend: str
    created_at: float = field(default_factory=time.time)

    def to_json(self) -> str:
        """Serialize as a single JSON line (sorted keys)."""
        return json.dumps(asdict(self), sort_keys=True, separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheRecord":
        """Build a record from a decoded JSON object.

        Raises:
            KeyError, TypeError, ValueError: If required fields are missing or malformed
        """
        return cls(
            digest=str(data["digest"]),
            artifact_ref=str(data["artifact_ref"]),
            backend=str(data["backend"]),
            created_at=float(data.get("created_at", 0.0)),
        )


class CacheStore:
    """Process-wide, append-only store of CacheRecords.

    Lifecycle: open() loads existing records (shared lock), record() stages
    new ones, flush() appends staged records (exclusive lock). A record for
    a (backend, digest) pair that already exists is never rewritten. With
    path=None the store lives only in memory.
    """

    def __init__(self, path: Optional[str] = None):
        """Initialize cache store.

        Args:
            path: JSON-lines file backing the store, or None for in-memory
        """
        self.path: Optional[Path] = Path(path).expanduser() if path else None
        self._records: Dict[Tuple[str, str], CacheRecord] = {}
        self._pending: List[CacheRecord] = []
        self._lock = threading.RLock()
        self._opened = False
        self._logger = get_logger()

        # Statistics
        self._hits = 0
        self._misses = 0
        self._appended = 0
        self._skipped_lines = 0

    def __enter__(self) -> "CacheStore":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self._opened

    def open(self) -> None:
        """Load persisted records.

        Raises:
            CacheStoreError: If the backing file cannot be read
        """
        with self._lock:
            self._records.clear()
            if self.path is not None and self.path.exists():
                # later lines supersede earlier ones for the same key
                for record in self._read_records():
                    self._records[(record.backend, record.digest)] = record
            self._opened = True

        self._logger.debug(
            "Cache store opened",
            path=str(self.path) if self.path else "<memory>",
            records=len(self._records),
        )

    def _read_records(self) -> Iterator[CacheRecord]:
        """Read records under a shared lock, skipping torn or corrupt lines."""
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                with _file_lock(f, fcntl.LOCK_SH):
                    lines = f.readlines()
        except OSError as e:
            raise CacheStoreError(f"Failed to read cache store {self.path}: {e}")

        for lineno, line in enumerate(lines, 1):
            line = line.strip()
            if not line:
                continue
            try:
                yield CacheRecord.from_dict(json.loads(line))
            except (ValueError, KeyError, TypeError):
                self._skipped_lines += 1
                self._logger.warning(
                    "Skipping malformed cache record", path=str(self.path), line=lineno
                )

    def lookup(self, backend: str, digest: str) -> Optional[CacheRecord]:
        """Find the record for a layer digest produced by a backend.

        Args:
            backend: Backend name
            digest: Layer artifact key (its content digest unless it holds executables)

        Returns:
            Matching record or None
        """
        with self._lock:
            record = self._records.get((backend, digest))
            if record is None:
                self._misses += 1
            else:
                self._hits += 1
            return record

    def snapshot(self, backend: str) -> Mapping[str, str]:
        """Return a read-only digest → artifact_ref view for one backend.

        Later record() calls do not change an already-taken snapshot.
        """
        with self._lock:
            return MappingProxyType(
                {
                    digest: record.artifact_ref
                    for (name, digest), record in self._records.items()
                    if name == backend
                }
            )

    def record(self, backend: str, digest: str, artifact_ref: str) -> Optional[CacheRecord]:
        """Stage a new record for the next flush().

        Args:
            backend: Backend name
            digest: Layer artifact key (its content digest unless it holds executables)
            artifact_ref: Reference to the produced artifact

        Returns:
            The staged record, or None if the pair is already known
        """
        with self._lock:
            key = (backend, digest)
            if key in self._records:
                return None
            record = CacheRecord(digest=digest, artifact_ref=artifact_ref, backend=backend)
            self._records[key] = record
            self._pending.append(record)
            return record

    def invalidate(self, backend: str, digest: str) -> bool:
        """Forget a record whose artifact no longer exists.

        The backing file is not touched; a later record() for the same pair
        is appended and supersedes the old line on the next open().

        Returns:
            True if a record was dropped from the index
        """
        with self._lock:
            return self._records.pop((backend, digest), None) is not None

    def flush(self) -> int:
        """Append staged records to the backing file.

        Returns:
            Number of records appended

        Raises:
            CacheStoreError: If the backing file cannot be written
        """
        with self._lock:
            if not self._pending:
                return 0

            pending = list(self._pending)
            if self.path is not None:
                payload = "".join(record.to_json() + "\n" for record in pending)
                try:
                    self.path.parent.mkdir(parents=True, exist_ok=True)
                    with open(self.path, "a", encoding="utf-8") as f:
                        with _file_lock(f, fcntl.LOCK_EX):
                            f.write(payload)
                            f.flush()
                            os.fsync(f.fileno())
                except OSError as e:
                    raise CacheStoreError(f"Failed to append to cache store {self.path}: {e}")

            self._pending.clear()
            self._appended += len(pending)

        self._logger.debug("Cache store flushed", appended=len(pending))
        return len(pending)

    def close(self) -> None:
        """Flush staged records and close the store."""
        self.flush()
        with self._lock:
            self._opened = False

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, key: Tuple[str, str]) -> bool:
        with self._lock:
            return key in self._records

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            total_requests = self._hits + self._misses
            hit_rate = self._hits / total_requests if total_requests > 0 else 0

            return {
                "records": len(self._records),
                "pending": len(self._pending),
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": hit_rate,
                "appended": self._appended,
                "skipped_lines": self._skipped_lines,
            }


@contextmanager
def _file_lock(f, mode: int):
    fcntl.flock(f.fileno(), mode)
    try:
        yield
    finally:
        fcntl.flock(f.fileno(), fcntl.LOCK_UN)
