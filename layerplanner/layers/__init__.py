"""LayerPlanner Layers.

This module turns a build output tree into ordered, cacheable layers:
- FileEntry / Layer: Immutable planning values
- FileClassifier: Assigns each file a volatility class
- LayerPartitioner: Groups entries into ordered, size-bounded layers
- CacheKeyDeriver: Stable content digests for layers and plans
"""

from .base import FileEntry, Layer, canonical_order, hash_bytes, hash_file
from .classifier import BuiltinRules, FileClassifier, RulePriority, parse_archive_version
from .digest import CacheKeyDeriver
from .partitioner import LayerPartitioner, PartitionPolicy, check_layer_order

__all__ = [
    # Values
    "FileEntry",
    "Layer",
    "canonical_order",
    "hash_file",
    "hash_bytes",
    # Classification
    "FileClassifier",
    "BuiltinRules",
    "RulePriority",
    "parse_archive_version",
    # Partitioning
    "PartitionPolicy",
    "LayerPartitioner",
    "check_layer_order",
    # Digests
    "CacheKeyDeriver",
]
