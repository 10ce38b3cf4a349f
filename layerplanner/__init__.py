"""LayerPlanner - Cache-optimal container image layering for JVM build outputs."""

from layerplanner.core.constants import LAYERPLANNER_VERSION

__version__ = LAYERPLANNER_VERSION
