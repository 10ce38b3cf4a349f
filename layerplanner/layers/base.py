"""
LayerPlanner Layers: Base Data Structures.

This module provides the immutable values the planner passes around:
- FileEntry: One classified file of the build output tree
- Layer: An ordered, independently cacheable group of FileEntries
"""

import hashlib
import os
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Tuple, Union

from layerplanner.core.constants import ContentHash, Limits, RelativePath, VolatilityClass


@dataclass(frozen=True)
class FileEntry:
    """
    Immutable metadata for one file of the build output tree.

    Attributes:
        path: POSIX path relative to the tree root (e.g., "BOOT-INF/lib/guava-33.0.0.jar")
        size: File size in bytes
        content_hash: SHA-256 hex digest of the file content
        volatility: Volatility class assigned by the classifier
    """

    path: RelativePath
    size: int
    content_hash: ContentHash
    volatility: VolatilityClass

    @property
    def name(self) -> str:
        """Filename only."""
        return self.path.rsplit("/", 1)[-1]

    @classmethod
    def from_path(
        cls,
        real_path: Union[str, Path],
        root: Union[str, Path],
        volatility: VolatilityClass,
    ) -> "FileEntry":
        """
        Create a FileEntry by reading a file under root.

        Args:
            real_path: Path to the file
            root: Tree root the entry path is relative to
            volatility: Class to assign

        Raises:
            FileNotFoundError: If the path doesn't exist
            ValueError: If the path is not a regular file
        """
        file_stat = os.stat(real_path)
        if not stat.S_ISREG(file_stat.st_mode):
            raise ValueError(f"Not a regular file: {real_path}")

        return cls(
            path=relative_posix_path(real_path, root),
            size=file_stat.st_size,
            content_hash=hash_file(real_path),
            volatility=volatility,
        )


@dataclass(frozen=True)
class Layer:
    """
    One filesystem layer of a build plan.

    Entries are always held sorted by path so the content digest is
    reproducible. Lower order_index layers are applied earlier.

    Attributes:
        order_index: Position in the plan (0 = base-most)
        volatility: Class shared by every entry
        entries: FileEntries sorted lexicographically by path
        content_digest: Digest over (path, content_hash) pairs
        part: Chunk number when one class is split into several layers
    """

    order_index: int
    volatility: VolatilityClass
    entries: Tuple[FileEntry, ...]
    content_digest: str
    part: int = 0

    @property
    def size(self) -> int:
        """Total bytes of all entries."""
        return sum(entry.size for entry in self.entries)

    @property
    def paths(self) -> Tuple[str, ...]:
        """Entry paths in canonical order."""
        return tuple(entry.path for entry in self.entries)

    def contains(self, path: str) -> bool:
        return any(entry.path == path for entry in self.entries)

    def __len__(self) -> int:
        return len(self.entries)


def canonical_order(entries: Iterable[FileEntry]) -> Tuple[FileEntry, ...]:
    """Sort entries lexicographically by path."""
    return tuple(sorted(entries, key=lambda entry: entry.path))


def relative_posix_path(real_path: Union[str, Path], root: Union[str, Path]) -> str:
    """Path of real_path relative to root, with forward slashes."""
    return Path(os.path.relpath(real_path, root)).as_posix()


def hash_file(real_path: Union[str, Path], chunk_size: int = Limits.HASH_CHUNK_SIZE) -> str:
    """SHA-256 hex digest of a file's content, streamed in chunks."""
    digest = hashlib.sha256()
    with open(real_path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()


def hash_bytes(content: bytes) -> str:
    """SHA-256 hex digest of in-memory content."""
    return hashlib.sha256(content).hexdigest()


def normalize_entry_path(path: str) -> Optional[str]:
    """Normalize a user-supplied tree path ("./bin/app", "/bin/app") to entry form."""
    if not path:
        return None
    normalized = path.replace("\\", "/").strip()
    while normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized.lstrip("/") or None
