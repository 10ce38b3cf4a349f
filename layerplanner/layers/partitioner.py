"""
LayerPlanner Layers: Layer Partitioner.

This module groups classified FileEntries into ordered layers:
- One group per volatility class, in policy order (empty classes omitted)
- Classes larger than max_layer_bytes split into several same-class layers
  by path-sorted greedy chunking
- order_index assigned 0..n-1 in output order

Example:
    >>> partitioner = LayerPartitioner()
    >>> layers = partitioner.partition(entries, PartitionPolicy(max_layers=4))
    >>> [layer.volatility.value for layer in layers]
    ['FIXED_DEPENDENCY', 'SNAPSHOT_DEPENDENCY', 'APPLICATION_CODE']
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from layerplanner.core.constants import (
    DEFAULT_VOLATILITY_ORDER,
    ConfigKey,
    Limits,
    VolatilityClass,
)
from layerplanner.core.errors import PolicyViolationError
from layerplanner.infrastructure.logger import get_logger
from layerplanner.layers.base import FileEntry, Layer, canonical_order
from layerplanner.layers.digest import CacheKeyDeriver


@dataclass(frozen=True)
class PartitionPolicy:
    """
    Layering policy.

    Attributes:
        max_layers: Upper bound on the number of emitted layers
        max_layer_bytes: Split threshold per layer (None = unlimited)
        volatility_order: Classes from most stable (first) to most volatile
    """

    max_layers: int = Limits.DEFAULT_MAX_LAYERS
    max_layer_bytes: Optional[int] = None
    volatility_order: Tuple[VolatilityClass, ...] = DEFAULT_VOLATILITY_ORDER

    @classmethod
    def from_dict(cls, policy: Optional[Dict[str, Any]] = None) -> "PartitionPolicy":
        """
        Build a policy from the ``policy`` config section.

        Raises:
            ValueError: If a volatility class name is unknown
        """
        policy = policy or {}

        max_layers = policy.get(ConfigKey.MAX_LAYERS)
        order = policy.get(ConfigKey.VOLATILITY_ORDER)

        return cls(
            max_layers=Limits.DEFAULT_MAX_LAYERS if max_layers is None else max_layers,
            max_layer_bytes=policy.get(ConfigKey.MAX_LAYER_BYTES),
            volatility_order=(
                DEFAULT_VOLATILITY_ORDER
                if order is None
                else tuple(VolatilityClass.parse(name) for name in order)
            ),
        )

    def validate(self) -> None:
        """
        Check the policy on its own, before looking at any entries.

        Raises:
            PolicyViolationError: If the policy is self-contradictory
        """
        if self.max_layers < 1:
            raise PolicyViolationError(f"max_layers must be at least 1, got {self.max_layers}")

        if self.max_layer_bytes is not None and self.max_layer_bytes <= 0:
            raise PolicyViolationError(
                f"max_layer_bytes must be positive, got {self.max_layer_bytes}"
            )

        if len(set(self.volatility_order)) != len(self.volatility_order):
            raise PolicyViolationError(
                "volatility_order lists a class more than once: "
                + ", ".join(c.value for c in self.volatility_order)
            )

    def rank(self, volatility: VolatilityClass) -> int:
        """Position of a class in the volatility order."""
        return self.volatility_order.index(volatility)

    def to_dict(self) -> Dict[str, Any]:
        return {
            ConfigKey.MAX_LAYERS: self.max_layers,
            ConfigKey.MAX_LAYER_BYTES: self.max_layer_bytes,
            ConfigKey.VOLATILITY_ORDER: [c.value for c in self.volatility_order],
        }


class LayerPartitioner:
    """
    Groups FileEntries into ordered, size-bounded layers.

    Guarantees for every successful partition():
    - len(layers) <= policy.max_layers
    - every entry appears in exactly one layer
    - layer order follows policy.volatility_order
    """

    def __init__(self, deriver: Optional[CacheKeyDeriver] = None):
        """
        Initialize the partitioner.

        Args:
            deriver: Digest calculator for the produced layers
        """
        self.deriver = deriver or CacheKeyDeriver()
        self._logger = get_logger()

    def partition(
        self, entries: Iterable[FileEntry], policy: Optional[PartitionPolicy] = None
    ) -> List[Layer]:
        """
        Partition entries into layers.

        Args:
            entries: Classified entries (unique paths)
            policy: Layering policy (defaults apply if None)

        Returns:
            Layers in ascending order_index

        Raises:
            PolicyViolationError: If the policy cannot be satisfied
            ValueError: If two entries share a path
        """
        policy = policy or PartitionPolicy()
        policy.validate()

        groups: Dict[VolatilityClass, List[FileEntry]] = {}
        seen = set()
        for entry in entries:
            if entry.path in seen:
                raise ValueError(f"Duplicate entry path: {entry.path}")
            seen.add(entry.path)
            groups.setdefault(entry.volatility, []).append(entry)

        unordered = sorted(c.value for c in groups if c not in policy.volatility_order)
        if unordered:
            raise PolicyViolationError(
                "volatility_order does not include classes present in the tree: "
                + ", ".join(unordered)
            )

        present = [c for c in policy.volatility_order if groups.get(c)]
        if len(present) > policy.max_layers:
            raise PolicyViolationError(
                f"max_layers={policy.max_layers} is smaller than the {len(present)} non-empty "
                f"volatility classes ({', '.join(c.value for c in present)})"
            )

        chunked: List[Tuple[VolatilityClass, List[Tuple[FileEntry, ...]]]] = [
            (volatility, self._chunk(canonical_order(groups[volatility]), policy.max_layer_bytes))
            for volatility in present
        ]

        required = sum(len(chunks) for _, chunks in chunked)
        if required > policy.max_layers:
            raise PolicyViolationError(
                f"max_layer_bytes={policy.max_layer_bytes} needs {required} layers "
                f"but max_layers={policy.max_layers}"
            )

        layers: List[Layer] = []
        for volatility, chunks in chunked:
            for part, chunk in enumerate(chunks):
                layer = Layer(
                    order_index=len(layers),
                    volatility=volatility,
                    entries=chunk,
                    content_digest=self.deriver.derive(chunk),
                    part=part,
                )
                self._logger.debug(
                    "Layer partitioned",
                    order_index=layer.order_index,
                    volatility=volatility.value,
                    part=part,
                    files=len(layer),
                    bytes=layer.size,
                    digest=layer.content_digest,
                )
                layers.append(layer)

        return layers

    def _chunk(
        self, entries: Sequence[FileEntry], max_bytes: Optional[int]
    ) -> List[Tuple[FileEntry, ...]]:
        """
        Split path-sorted entries into consecutive chunks of at most max_bytes.

        Raises:
            PolicyViolationError: If one file alone exceeds max_bytes
        """
        if max_bytes is None:
            return [tuple(entries)]

        chunks: List[Tuple[FileEntry, ...]] = []
        current: List[FileEntry] = []
        current_bytes = 0

        for entry in entries:
            if entry.size > max_bytes:
                raise PolicyViolationError(
                    f"{entry.path} ({entry.size} bytes) exceeds max_layer_bytes={max_bytes}"
                )
            if current and current_bytes + entry.size > max_bytes:
                chunks.append(tuple(current))
                current, current_bytes = [], 0
            current.append(entry)
            current_bytes += entry.size

        if current:
            chunks.append(tuple(current))

        return chunks


def check_layer_order(
    layers: Sequence[Layer],
    volatility_order: Sequence[VolatilityClass] = DEFAULT_VOLATILITY_ORDER,
) -> Optional[str]:
    """
    Describe the first ordering problem in a layer list, or None if it is sound.

    Sound means order_index is 0..n-1 in sequence and volatility never moves
    backwards in volatility_order.
    """
    previous_rank = -1
    for position, layer in enumerate(layers):
        if layer.order_index != position:
            return f"layer at position {position} has order_index {layer.order_index}"
        if layer.volatility not in volatility_order:
            return f"layer {position} has unordered class {layer.volatility.value}"
        rank = list(volatility_order).index(layer.volatility)
        if rank < previous_rank:
            return (
                f"layer {position} ({layer.volatility.value}) is ordered after "
                f"a more volatile layer"
            )
        previous_rank = rank
    return None
