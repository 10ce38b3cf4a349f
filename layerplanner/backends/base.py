#!/usr/bin/env python3
"""Base classes for image-assembly backends.

This module provides the backend framework:
- BackendAdapter: Abstract adapter every assembly mechanism implements
- BackendError: Failure raised by an adapter
- A name-keyed registry of adapter classes

Backends are interchangeable: the planner only talks to this interface, and
differences between tools are expressed as capability sets.

Example:
    >>> backend = get_backend("archive", output_dir="build/layers")
    >>> ref = backend.materialize_layer(plan, plan.layers[0])
    >>> backend.has_artifact(ref)
    True
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, FrozenSet, List, Type

from layerplanner.core.constants import Capability, ErrorCode
from layerplanner.layers.base import FileEntry, Layer, hash_bytes
from layerplanner.plan.emitter import BuildPlan


class BackendError(Exception):
    """Raised when a backend cannot materialize or finalize."""

    def __init__(
        self, message: str, backend_name: str = "", error_code: ErrorCode = ErrorCode.DEPENDENCY_ERROR
    ):
        """Initialize backend error.

        Args:
            message: Error message
            backend_name: Name of the failing backend
            error_code: Associated error code
        """
        super().__init__(message)
        self.backend_name = backend_name
        self.error_code = error_code


class BackendAdapter(ABC):
    """Abstract base class for image-assembly backends.

    Subclasses set ``name`` and ``capabilities`` and implement
    materialize_layer(), has_artifact() and finalize(). Layers are always
    handed over in ascending order_index.
    """

    name: str = ""
    capabilities: FrozenSet[Capability] = frozenset()

    def supports(self, capability: Capability) -> bool:
        """Check whether this backend has a capability."""
        return capability in self.capabilities

    @abstractmethod
    def materialize_layer(self, plan: BuildPlan, layer: Layer) -> str:
        """Produce the artifact for one layer.

        Args:
            plan: Plan the layer belongs to
            layer: Layer to materialize

        Returns:
            Artifact reference (recorded in the cache store)

        Raises:
            BackendError: If the artifact cannot be produced
        """

    @abstractmethod
    def has_artifact(self, artifact_ref: str) -> bool:
        """Check whether a previously recorded artifact still exists."""

    @abstractmethod
    def finalize(self, plan: BuildPlan, artifact_refs: List[str]) -> str:
        """Assemble the image from per-layer artifacts.

        Args:
            plan: Plan being assembled
            artifact_refs: One artifact reference per layer, in plan order

        Returns:
            Image reference

        Raises:
            BackendError: If the image cannot be assembled
        """

    def read_entry(self, plan: BuildPlan, entry: FileEntry) -> bytes:
        """Read an entry's content from the plan source tree.

        Raises:
            BackendError: If the file is unreadable or changed since planning
        """
        real_path = Path(plan.source_root) / entry.path
        try:
            content = real_path.read_bytes()
        except OSError as e:
            raise BackendError(f"Cannot read {entry.path}: {e}", self.name)

        if hash_bytes(content) != entry.content_hash:
            raise BackendError(f"{entry.path} changed since the plan was made", self.name)
        return content

    def get_stats(self) -> Dict[str, Any]:
        return {
            "backend": self.name,
            "capabilities": sorted(c.value for c in self.capabilities),
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"


_BACKENDS: Dict[str, Type[BackendAdapter]] = {}


def register_backend(cls: Type[BackendAdapter]) -> Type[BackendAdapter]:
    """Class decorator registering a backend under its ``name``.

    Raises:
        ValueError: If the name is empty or already registered
    """
    if not cls.name:
        raise ValueError(f"Backend {cls.__name__} has no name")
    existing = _BACKENDS.get(cls.name)
    if existing is not None and existing is not cls:
        raise ValueError(f"Backend already registered: {cls.name}")
    _BACKENDS[cls.name] = cls
    return cls


def unregister_backend(name: str) -> bool:
    """Remove a backend from the registry."""
    return _BACKENDS.pop(name, None) is not None


def get_backend(name: str, **options) -> BackendAdapter:
    """Instantiate a registered backend.

    Args:
        name: Registered backend name
        **options: Constructor arguments for the backend

    Raises:
        ValueError: If no backend has that name
    """
    factory: Callable[..., BackendAdapter]
    try:
        factory = _BACKENDS[name]
    except KeyError:
        raise ValueError(f"Unknown backend: {name}. Available: {available_backends()}")
    return factory(**options)


def available_backends() -> List[str]:
    """Names of all registered backends."""
    return sorted(_BACKENDS)
