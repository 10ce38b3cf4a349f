"""
LayerPlanner Core: Error Taxonomy

Every failure the planner surfaces to a caller derives from PlannerError and
carries an ErrorCode. None of these are retried by the planner itself.
"""
from typing import Optional

from layerplanner.core.constants import ErrorCode


class PlannerError(Exception):
    """Base exception for planning and assembly failures."""

    error_code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, error_code: Optional[ErrorCode] = None):
        """Initialize PlannerError.

        Args:
            message: Error message
            error_code: Associated error code (class default if None)
        """
        self.message = message
        if error_code is not None:
            self.error_code = error_code
        super().__init__(message)


class ClassificationError(PlannerError):
    """A file matched no classification rule and no default class is set."""

    error_code = ErrorCode.INVALID_INPUT

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(message)


class PolicyViolationError(PlannerError):
    """The layering policy cannot be satisfied for the given entries."""

    error_code = ErrorCode.CONFLICT


class InvalidPlanError(PlannerError):
    """The emitter rejected the plan before any backend was called."""

    error_code = ErrorCode.INVALID_INPUT


class AssemblyError(PlannerError):
    """A backend failed while assembling a plan.

    Attributes:
        cause: The backend's own exception, if any
        layer_index: order_index of the layer being processed, if any
    """

    error_code = ErrorCode.DEPENDENCY_ERROR

    def __init__(
        self,
        message: str,
        cause: Optional[BaseException] = None,
        layer_index: Optional[int] = None,
        error_code: Optional[ErrorCode] = None,
    ):
        self.cause = cause
        self.layer_index = layer_index
        super().__init__(message, error_code)


class AssemblyCancelledError(AssemblyError):
    """Assembly stopped at a layer boundary because cancellation was requested."""

    error_code = ErrorCode.CANCELLED
