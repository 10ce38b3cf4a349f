"""
LayerPlanner Layers: Cache Key Deriver.

Layer digests are SHA-256 over the path-sorted sequence of
``<path> NUL <content_hash> LF`` records. Nothing machine-specific
(timestamps, absolute paths, walk order) takes part, so identical trees give
identical digests everywhere.
"""

import hashlib
from typing import Iterable, Sequence

from layerplanner.layers.base import FileEntry, Layer, canonical_order

DIGEST_ALGORITHM = "sha256"


class CacheKeyDeriver:
    """Computes stable content digests for layers and plans."""

    def __init__(self, algorithm: str = DIGEST_ALGORITHM):
        self.algorithm = algorithm

    def derive(self, entries: Iterable[FileEntry]) -> str:
        """
        Digest a set of entries.

        Args:
            entries: Entries in any order; they are canonicalized first

        Returns:
            Digest string ("sha256:<hex>")
        """
        digest = hashlib.new(self.algorithm)
        for entry in canonical_order(entries):
            digest.update(encode_path(entry.path))
            digest.update(b"\0")
            digest.update(entry.content_hash.encode("ascii"))
            digest.update(b"\n")
        return f"{self.algorithm}:{digest.hexdigest()}"

    def plan_digest(self, layers: Sequence[Layer]) -> str:
        """
        Digest an ordered list of layers.

        Layer order matters here (unlike entry order inside a layer).
        """
        digest = hashlib.new(self.algorithm)
        for layer in sorted(layers, key=lambda l: l.order_index):
            digest.update(f"{layer.order_index}:{layer.content_digest}\n".encode("ascii"))
        return f"{self.algorithm}:{digest.hexdigest()}"

    def artifact_key(self, layer: Layer, executables: Iterable[str] = ()) -> str:
        """
        Key for a materialized layer artifact.

        Artifacts carry file modes, so the key extends the content digest
        with the executable paths inside the layer. A layer without
        executables is keyed by its content digest alone.

        Args:
            layer: Layer being materialized
            executables: Paths installed with the executable bit, in any layer
        """
        marked = sorted(path for path in set(executables) if layer.contains(path))
        if not marked:
            return layer.content_digest

        digest = hashlib.new(self.algorithm)
        digest.update(layer.content_digest.encode("ascii"))
        for path in marked:
            digest.update(b"\0x\0")
            digest.update(encode_path(path))
        return f"{self.algorithm}:{digest.hexdigest()}"

    def verify(self, layer: Layer) -> bool:
        """Check that a layer's stored digest matches its entries."""
        return self.derive(layer.entries) == layer.content_digest


def encode_path(path: str) -> bytes:
    # undecodable filename bytes round-trip as surrogates
    return path.encode("utf-8", "surrogateescape")
