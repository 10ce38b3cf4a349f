#!/usr/bin/env python3
"""Layer Planner facade.

Ties the planning pipeline together:

    build output tree
        -> FileClassifier     (FileEntries)
        -> LayerPartitioner   (ordered Layers with digests)
        -> BuildPlanEmitter   (validated BuildPlan)
        -> PlanExecution      (backend assembly, cache reuse)

Planning is single-threaded and has no side effects; only assemble() writes.

Example:
    >>> planner = LayerPlanner.from_config(config.get_all()["layerplanner"])
    >>> plan = planner.plan("target/app", "eclipse-temurin:21-jre", entrypoint)
    >>> planner.assemble(plan, get_backend("archive"), store).image_ref
    'sha256:...'
"""

import threading
from pathlib import Path
from typing import Any, Dict, Optional, Union

from layerplanner.backends.base import BackendAdapter
from layerplanner.backends.execution import PlanExecution
from layerplanner.core.constants import ConfigKey
from layerplanner.infrastructure.cache_store import CacheStore
from layerplanner.infrastructure.logger import get_logger
from layerplanner.layers.classifier import FileClassifier
from layerplanner.layers.digest import CacheKeyDeriver
from layerplanner.layers.partitioner import LayerPartitioner, PartitionPolicy
from layerplanner.plan.emitter import BuildPlan, BuildPlanEmitter
from layerplanner.plan.entrypoint import EntrypointSpec


class LayerPlanner:
    """
    Plans and assembles layered images for one policy.

    Attributes:
        classifier: File classifier
        partitioner: Layer partitioner
        emitter: Build plan emitter
        policy: Layering policy
    """

    def __init__(
        self,
        classifier: Optional[FileClassifier] = None,
        policy: Optional[PartitionPolicy] = None,
        deriver: Optional[CacheKeyDeriver] = None,
    ):
        """
        Initialize the planner.

        Args:
            classifier: Classifier (built-in rules if None)
            policy: Layering policy (defaults if None)
            deriver: Digest calculator shared by partitioner and emitter
        """
        self.classifier = classifier or FileClassifier.from_config()
        self.policy = policy or PartitionPolicy()
        deriver = deriver or CacheKeyDeriver()
        self.partitioner = LayerPartitioner(deriver)
        self.emitter = BuildPlanEmitter(deriver, self.policy.volatility_order)
        self._logger = get_logger()

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]] = None) -> "LayerPlanner":
        """
        Build a planner from the ``layerplanner`` configuration section.

        Raises:
            ValueError: If a class name or rule in the configuration is invalid
        """
        config = config or {}
        return cls(
            classifier=FileClassifier.from_config(config.get(ConfigKey.CLASSIFICATION)),
            policy=PartitionPolicy.from_dict(config.get(ConfigKey.POLICY)),
        )

    def plan(
        self,
        root: Union[str, Path],
        base_image: Optional[str],
        entrypoint: Optional[EntrypointSpec],
    ) -> BuildPlan:
        """
        Classify, partition and emit a plan for a build output tree.

        Raises:
            ClassificationError: If a file cannot be classified
            PolicyViolationError: If the policy cannot be satisfied
            InvalidPlanError: If the plan fails validation
        """
        root_path = Path(root).resolve()
        self._logger.info("Planning layers", root=str(root_path))

        entries = self.classifier.classify_tree(root_path)
        layers = self.partitioner.partition(entries, self.policy)
        return self.emitter.emit(layers, base_image, entrypoint, source_root=str(root_path))

    def cache_status(self, plan: BuildPlan, cache_store: CacheStore, backend: str) -> Dict[int, bool]:
        """
        Report which layers already have a recorded artifact.

        Only reads a snapshot of the store; artifact existence is checked at
        assembly time.

        Returns:
            order_index -> True if the layer artifact key is recorded for backend
        """
        snapshot = cache_store.snapshot(backend)
        return {layer.order_index: plan.artifact_key(layer) in snapshot for layer in plan.layers}

    def assemble(
        self,
        plan: BuildPlan,
        adapter: BackendAdapter,
        cache_store: Optional[CacheStore] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> PlanExecution:
        """
        Assemble a plan with a backend.

        Returns:
            The finished PlanExecution (state ASSEMBLED)

        Raises:
            AssemblyError: If assembly failed or was cancelled
        """
        execution = PlanExecution(plan, adapter, cache_store, cancel_event)
        execution.execute()
        return execution
