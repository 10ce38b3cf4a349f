"""
LayerPlanner Plan: Build Plan Emitter.

This module combines ordered layers, a base image reference and an entrypoint
into an immutable BuildPlan, and serializes plans for external backends.

The flat record list returned by BuildPlan.to_records() is the exact artifact
a backend consumes:

    - order_index: 0
      entries: [BOOT-INF/lib/guava-33.0.0-jre.jar, ...]
      digest: sha256:...
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, TextIO, Tuple

import yaml

from layerplanner.core.constants import (
    DEFAULT_VOLATILITY_ORDER,
    LAYERPLANNER_PLAN_VERSION,
    VolatilityClass,
)
from layerplanner.core.errors import InvalidPlanError
from layerplanner.core.validators import ValidationError, validate_image_reference
from layerplanner.infrastructure.logger import get_logger
from layerplanner.layers.base import FileEntry, Layer
from layerplanner.layers.digest import CacheKeyDeriver
from layerplanner.layers.partitioner import check_layer_order
from layerplanner.plan.entrypoint import EntrypointSpec

PLAN_FORMATS = ("yaml", "json")


@dataclass(frozen=True)
class BuildPlan:
    """
    Ordered layers plus the metadata an image backend needs.

    Constructed once per build invocation by BuildPlanEmitter.emit() and
    consumed by exactly one PlanExecution.

    Attributes:
        layers: Layers in ascending order_index
        base_image: Base image reference
        entrypoint: Entrypoint of the image
        source_root: Directory the entry paths are relative to (not serialized)
        plan_digest: Digest over the ordered layer digests
    """

    layers: Tuple[Layer, ...]
    base_image: str
    entrypoint: EntrypointSpec
    source_root: str
    plan_digest: str

    def __len__(self) -> int:
        return len(self.layers)

    @property
    def total_size(self) -> int:
        return sum(layer.size for layer in self.layers)

    def layer(self, order_index: int) -> Layer:
        """
        Get a layer by order_index.

        Raises:
            KeyError: If no layer has that index
        """
        for layer in self.layers:
            if layer.order_index == order_index:
                return layer
        raise KeyError(order_index)

    @property
    def executables(self) -> FrozenSet[str]:
        """Paths installed with the executable bit."""
        return frozenset({self.entrypoint.executable})

    def file_mode(self, path: str) -> int:
        return 0o755 if path in self.executables else 0o644

    def artifact_key(self, layer: Layer) -> str:
        """Key backends file and cache a layer's artifact under."""
        return CacheKeyDeriver().artifact_key(layer, self.executables)

    def find_entry(self, path: str) -> Optional[Tuple[Layer, FileEntry]]:
        """Locate the layer holding a path."""
        for layer in self.layers:
            for entry in layer.entries:
                if entry.path == path:
                    return layer, entry
        return None

    def to_records(self) -> List[Dict[str, Any]]:
        """Flat {order_index, entries, digest} records in plan order."""
        return [
            {
                "order_index": layer.order_index,
                "entries": list(layer.paths),
                "digest": layer.content_digest,
            }
            for layer in self.layers
        ]

    def to_dict(self) -> Dict[str, Any]:
        """Full plan document (machine-independent, no source_root)."""
        layers = []
        for record, layer in zip(self.to_records(), self.layers):
            record.update(volatility=layer.volatility.value, size=layer.size)
            layers.append(record)

        return {
            "version": LAYERPLANNER_PLAN_VERSION,
            "base_image": self.base_image,
            "entrypoint": self.entrypoint.to_dict(),
            "plan_digest": self.plan_digest,
            "layers": layers,
        }

    def dumps(self, fmt: str = "yaml") -> str:
        """
        Serialize the plan document.

        Raises:
            ValueError: If fmt is not "yaml" or "json"
        """
        if fmt == "yaml":
            return yaml.safe_dump(self.to_dict(), sort_keys=True, default_flow_style=False)
        if fmt == "json":
            return json.dumps(self.to_dict(), indent=2, sort_keys=True) + "\n"
        raise ValueError(f"Unknown plan format: {fmt}. Must be one of {PLAN_FORMATS}")

    def dump(self, stream: TextIO, fmt: str = "yaml") -> None:
        """Write the plan document to a text stream."""
        stream.write(self.dumps(fmt))


class BuildPlanEmitter:
    """
    Validates layers and metadata and produces BuildPlans.

    Nothing is emitted unless every check passes, so backends never see a
    plan with a missing base, a misplaced entrypoint or misordered layers.
    """

    def __init__(
        self,
        deriver: Optional[CacheKeyDeriver] = None,
        volatility_order: Sequence[VolatilityClass] = DEFAULT_VOLATILITY_ORDER,
    ):
        """
        Initialize the emitter.

        Args:
            deriver: Digest calculator (used to verify layers and digest the plan)
            volatility_order: Order the layers must follow
        """
        self.deriver = deriver or CacheKeyDeriver()
        self.volatility_order = tuple(volatility_order)
        self._logger = get_logger()

    def emit(
        self,
        layers: Sequence[Layer],
        base_image: Optional[str],
        entrypoint: Optional[EntrypointSpec],
        source_root: str = "",
    ) -> BuildPlan:
        """
        Build and validate a plan.

        Args:
            layers: Partitioned layers
            base_image: Base image reference
            entrypoint: Entrypoint specification
            source_root: Directory the layer entries were read from

        Returns:
            Immutable BuildPlan

        Raises:
            InvalidPlanError: If any validation fails
        """
        self._validate_base_image(base_image)

        layers = tuple(layers)
        if not layers:
            raise InvalidPlanError("Build plan has no layers")

        problem = check_layer_order(layers, self.volatility_order)
        if problem:
            raise InvalidPlanError(f"Layers are misordered: {problem}")

        for layer in layers:
            if not self.deriver.verify(layer):
                raise InvalidPlanError(
                    f"Layer {layer.order_index} digest does not match its entries"
                )

        self._validate_entrypoint(layers, entrypoint)

        plan = BuildPlan(
            layers=layers,
            base_image=base_image,
            entrypoint=entrypoint,
            source_root=str(source_root),
            plan_digest=self.deriver.plan_digest(layers),
        )

        self._logger.info(
            "Build plan emitted",
            layers=len(plan),
            files=sum(len(layer) for layer in layers),
            bytes=plan.total_size,
            base_image=base_image,
            digest=plan.plan_digest,
        )
        return plan

    def _validate_base_image(self, base_image: Optional[str]) -> None:
        if not base_image or not base_image.strip():
            raise InvalidPlanError("Base image reference cannot be empty")
        try:
            validate_image_reference(base_image)
        except ValidationError as e:
            raise InvalidPlanError(f"Invalid base image reference: {e}")

    def _validate_entrypoint(
        self, layers: Tuple[Layer, ...], entrypoint: Optional[EntrypointSpec]
    ) -> None:
        if entrypoint is None:
            raise InvalidPlanError("Build plan requires an entrypoint")

        for layer in layers:
            if layer.contains(entrypoint.executable):
                if layer.volatility is not VolatilityClass.APPLICATION_CODE:
                    raise InvalidPlanError(
                        f"Entrypoint {entrypoint.executable} is in a "
                        f"{layer.volatility.value} layer, not in application code"
                    )
                return

        raise InvalidPlanError(
            f"Entrypoint {entrypoint.executable} is not present in the application code layer"
        )
