#!/usr/bin/env python3
"""Execution of a single build plan against a backend.

State machine:

    PLANNED -> ASSEMBLING -> ASSEMBLED
                          -> FAILED

Layers are processed strictly in ascending order_index. A layer whose digest
has a cache record for this backend, and whose artifact still exists, is
reused; any other layer is materialized and recorded. Cancellation is only
honored between layers. Nothing is retried here.

Example:
    >>> execution = PlanExecution(plan, get_backend("archive"), store)
    >>> image_ref = execution.execute()
    >>> execution.state
    <PlanState.ASSEMBLED: 'assembled'>
"""

import threading
from typing import Any, Dict, List, Optional

from layerplanner.backends.base import BackendAdapter
from layerplanner.core.constants import ErrorCode, PlanState
from layerplanner.core.errors import AssemblyCancelledError, AssemblyError
from layerplanner.infrastructure.cache_store import CacheStore, CacheStoreError
from layerplanner.infrastructure.logger import get_logger
from layerplanner.layers.base import Layer
from layerplanner.plan.emitter import BuildPlan


class PlanExecution:
    """Drives one BuildPlan through a BackendAdapter.

    Attributes:
        plan: Plan being assembled
        adapter: Backend doing the work
        cache_store: Record store (None disables reuse and recording)
        cancel_event: Set to stop at the next layer boundary
        artifact_refs: order_index -> artifact reference of processed layers
        image_ref: Final image reference once ASSEMBLED
        error: The AssemblyError once FAILED
    """

    def __init__(
        self,
        plan: BuildPlan,
        adapter: BackendAdapter,
        cache_store: Optional[CacheStore] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.plan = plan
        self.adapter = adapter
        self.cache_store = cache_store
        self.cancel_event = cancel_event or threading.Event()

        self.artifact_refs: Dict[int, str] = {}
        self.image_ref: Optional[str] = None
        self.error: Optional[AssemblyError] = None

        self._state = PlanState.PLANNED
        self._lock = threading.Lock()
        self._logger = get_logger()

        # Statistics
        self._reused = 0
        self._materialized = 0

    @property
    def state(self) -> PlanState:
        return self._state

    def cancel(self) -> None:
        """Request cancellation at the next layer boundary."""
        self.cancel_event.set()

    def execute(self) -> str:
        """Assemble the plan.

        Returns:
            Image reference produced by the backend

        Raises:
            AssemblyError: If the plan was already executed, or the backend
                failed (state becomes FAILED)
            AssemblyCancelledError: If cancellation was requested
        """
        with self._lock:
            if self._state is not PlanState.PLANNED:
                raise AssemblyError(
                    f"Plan {self.plan.plan_digest} was already executed "
                    f"(state: {self._state.value})",
                    error_code=ErrorCode.CONFLICT,
                )
            self._state = PlanState.ASSEMBLING

        self._logger.info(
            "Assembling plan",
            backend=self.adapter.name,
            layers=len(self.plan),
            digest=self.plan.plan_digest,
        )

        try:
            refs: List[str] = []
            for layer in sorted(self.plan.layers, key=lambda l: l.order_index):
                if self.cancel_event.is_set():
                    raise AssemblyCancelledError(
                        f"Assembly cancelled before layer {layer.order_index}",
                        layer_index=layer.order_index,
                    )
                ref = self._resolve_layer(layer)
                self.artifact_refs[layer.order_index] = ref
                refs.append(ref)

            try:
                image_ref = self.adapter.finalize(self.plan, refs)
            except Exception as e:
                raise AssemblyError(
                    f"Backend {self.adapter.name} failed to finalize the image: {e}", cause=e
                ) from e

            self._flush_records()

        except AssemblyError as e:
            self._fail(e)
            raise

        self.image_ref = image_ref
        self._state = PlanState.ASSEMBLED
        self._logger.info(
            "Plan assembled",
            backend=self.adapter.name,
            image=image_ref,
            reused=self._reused,
            materialized=self._materialized,
        )
        return image_ref

    def _resolve_layer(self, layer: Layer) -> str:
        """Reuse a cached artifact for a layer or materialize it."""
        key = self.plan.artifact_key(layer)
        try:
            ref = self._cached_artifact(layer, key)
            if ref is not None:
                self._reused += 1
                self._logger.info(
                    "Layer cache hit",
                    order_index=layer.order_index,
                    key=key,
                    artifact=ref,
                )
                return ref

            self._logger.info(
                "Layer cache miss", order_index=layer.order_index, key=key
            )
            ref = self.adapter.materialize_layer(self.plan, layer)
        except Exception as e:
            raise AssemblyError(
                f"Backend {self.adapter.name} failed on layer {layer.order_index}: {e}",
                cause=e,
                layer_index=layer.order_index,
            ) from e

        self._materialized += 1
        if self.cache_store is not None:
            self.cache_store.record(self.adapter.name, key, ref)
        return ref

    def _cached_artifact(self, layer: Layer, key: str) -> Optional[str]:
        if self.cache_store is None:
            return None

        record = self.cache_store.lookup(self.adapter.name, key)
        if record is None:
            return None

        if not self.adapter.has_artifact(record.artifact_ref):
            self._logger.debug(
                "Cached artifact missing, rebuilding",
                key=key,
                artifact=record.artifact_ref,
            )
            self.cache_store.invalidate(self.adapter.name, key)
            return None

        return record.artifact_ref

    def _flush_records(self) -> None:
        if self.cache_store is None:
            return
        try:
            self.cache_store.flush()
        except CacheStoreError as e:
            raise AssemblyError(f"Failed to record layer artifacts: {e}", cause=e) from e

    def _fail(self, error: AssemblyError) -> None:
        """Enter FAILED, keeping records of layers materialized so far."""
        self._state = PlanState.FAILED
        self.error = error
        self._logger.error(
            "Plan assembly failed",
            backend=self.adapter.name,
            layer=error.layer_index,
            error=error.message,
        )

        if self.cache_store is not None:
            try:
                self.cache_store.flush()
            except CacheStoreError as e:
                self._logger.exception("Failed to record materialized layers", e)

    def get_stats(self) -> Dict[str, Any]:
        """Get execution statistics."""
        return {
            "state": self._state.value,
            "backend": self.adapter.name,
            "layers": len(self.plan),
            "reused": self._reused,
            "materialized": self._materialized,
            "image_ref": self.image_ref,
        }
