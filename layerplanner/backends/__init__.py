"""LayerPlanner Backends.

This module provides the image-assembly side of the planner:
- BackendAdapter: Interface shared by every assembly mechanism
- PlanExecution: PLANNED -> ASSEMBLING -> ASSEMBLED/FAILED driver
- ArchiveBackend: Reproducible tar layers plus manifest ("archive")
- DockerfileBackend: Staged build context plus Dockerfile ("dockerfile")
"""

from .archive import ArchiveBackend
from .base import (
    BackendAdapter,
    BackendError,
    available_backends,
    get_backend,
    register_backend,
    unregister_backend,
)
from .dockerfile import DockerfileBackend
from .execution import PlanExecution

__all__ = [
    # Framework
    "BackendAdapter",
    "BackendError",
    "register_backend",
    "unregister_backend",
    "get_backend",
    "available_backends",
    "PlanExecution",
    # Backends
    "ArchiveBackend",
    "DockerfileBackend",
]
