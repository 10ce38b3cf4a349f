"""LayerPlanner Plan.

This module provides the build plan handed to image backends:
- EntrypointSpec: Executable plus argument template
- BuildPlan: Immutable ordered layers with base image and entrypoint
- BuildPlanEmitter: Validates and emits BuildPlans
"""

from .emitter import PLAN_FORMATS, BuildPlan, BuildPlanEmitter
from .entrypoint import DEFAULT_OPTIONS_ENV, EntrypointSpec

__all__ = [
    "EntrypointSpec",
    "DEFAULT_OPTIONS_ENV",
    "BuildPlan",
    "BuildPlanEmitter",
    "PLAN_FORMATS",
]
