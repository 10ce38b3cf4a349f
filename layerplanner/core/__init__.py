"""LayerPlanner Core - Shared constants, errors and validators.

Import specific names from submodules:
    from layerplanner.core.constants import VolatilityClass
    from layerplanner.core.errors import PolicyViolationError
    from layerplanner.core import validators
"""

from layerplanner.core import constants, errors, validators

__all__ = [
    "constants",
    "errors",
    "validators",
]
