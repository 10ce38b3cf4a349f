"""
LayerPlanner Core: Constants and Type Definitions

This module provides system-wide constants, error codes, volatility classes
and the compiled default configuration.
"""
from enum import Enum, IntEnum
from typing import TypeAlias, Union

# Version information
LAYERPLANNER_VERSION = "1.0.0"
LAYERPLANNER_PLAN_VERSION = 1


# Error codes (0-9 range, doubles as process exit status)
class ErrorCode(IntEnum):
    """Standardized error codes for LayerPlanner operations."""

    SUCCESS = 0  # Operation completed successfully
    INVALID_INPUT = 1  # Bad path, invalid configuration, unclassifiable file
    NOT_FOUND = 2  # File or resource doesn't exist
    PERMISSION_DENIED = 3  # Insufficient permissions
    CONFLICT = 4  # Policy cannot be satisfied
    DEPENDENCY_ERROR = 5  # Backend or external collaborator failed
    INTERNAL_ERROR = 6  # Bug in LayerPlanner
    TIMEOUT = 7  # Operation timed out
    CANCELLED = 8  # Assembly cancelled at a layer boundary
    DEGRADED = 9  # Running with reduced functionality


# Type aliases for clarity
RelativePath: TypeAlias = str
ContentHash: TypeAlias = str
Pattern: TypeAlias = str


class VolatilityClass(Enum):
    """How often a group of files is expected to change."""

    FIXED_DEPENDENCY = "FIXED_DEPENDENCY"  # Released third-party archives
    SNAPSHOT_DEPENDENCY = "SNAPSHOT_DEPENDENCY"  # Unstable/snapshot archives
    RESOURCE = "RESOURCE"  # Static resources, templates, config
    APPLICATION_CODE = "APPLICATION_CODE"  # Compiled application classes

    @classmethod
    def parse(cls, value: Union[str, "VolatilityClass"]) -> "VolatilityClass":
        """Parse a class name, accepting any case and '-' for '_'."""
        if isinstance(value, cls):
            return value
        try:
            return cls[str(value).strip().upper().replace("-", "_")]
        except KeyError:
            valid = [c.value for c in cls]
            raise ValueError(f"Unknown volatility class: {value!r}. Must be one of {valid}")


DEFAULT_VOLATILITY_ORDER = (
    VolatilityClass.FIXED_DEPENDENCY,
    VolatilityClass.SNAPSHOT_DEPENDENCY,
    VolatilityClass.RESOURCE,
    VolatilityClass.APPLICATION_CODE,
)


class PlanState(Enum):
    """Execution state of a single build plan."""

    PLANNED = "planned"
    ASSEMBLING = "assembling"
    ASSEMBLED = "assembled"
    FAILED = "failed"


class Capability(Enum):
    """Things a backend adapter is able to do."""

    MATERIALIZE_LAYERS = "materialize_layers"  # Produces one artifact per layer
    REPRODUCIBLE_ARTIFACTS = "reproducible_artifacts"  # Byte-identical artifacts per digest
    RENDER_BUILDFILE = "render_buildfile"  # Emits a build description for another tool
    IMAGE_MANIFEST = "image_manifest"  # Writes an image manifest


# Resource limits and defaults
class Limits:
    """System resource limits and default values."""

    # Path limits
    MAX_PATH_LENGTH = 4096
    MAX_FILENAME_LENGTH = 255
    MAX_IMAGE_REFERENCE_LENGTH = 255

    # Layer limits
    DEFAULT_MAX_LAYERS = 4
    MAX_LAYERS = 127  # overlay filesystems cap the lower-dir stack

    # Hashing
    HASH_CHUNK_SIZE = 1024 * 1024  # 1MB

    # Log rotation
    LOG_MAX_BYTES = 10 * 1024 * 1024  # 10MB
    LOG_BACKUP_COUNT = 5


# Configuration keys
class ConfigKey:
    """Configuration key constants."""

    ROOT = "layerplanner"

    # Top-level keys
    POLICY = "policy"
    CLASSIFICATION = "classification"
    ENTRYPOINT = "entrypoint"
    BASE_IMAGE = "base_image"
    CACHE = "cache"
    BACKEND = "backend"
    LOGGING = "logging"

    # Policy configuration
    MAX_LAYERS = "max_layers"
    MAX_LAYER_BYTES = "max_layer_bytes"
    VOLATILITY_ORDER = "volatility_order"

    # Classification configuration
    DEPENDENCY_PATTERNS = "dependency_patterns"
    RESOURCE_PATTERNS = "resource_patterns"
    APPLICATION_PATTERNS = "application_patterns"
    SNAPSHOT_MARKERS = "snapshot_markers"
    DEFAULT_CLASS = "default_class"
    RULES = "rules"

    # Entrypoint configuration
    EXECUTABLE = "executable"
    INTERPRETER = "interpreter"
    ARGUMENTS = "arguments"
    OPTIONS_ENV = "options_env"

    # Cache configuration
    CACHE_ENABLED = "enabled"
    CACHE_PATH = "path"

    # Backend configuration
    BACKEND_NAME = "name"
    BACKEND_OUTPUT_DIR = "output_dir"
    BACKEND_TAG = "tag"


DEFAULT_DEPENDENCY_PATTERNS = [
    "**/lib/**/*.jar",
    "**/libs/**/*.jar",
    "**/dependency/**/*.jar",
    "BOOT-INF/lib/**",
    "WEB-INF/lib/**",
]

DEFAULT_RESOURCE_PATTERNS = [
    "**/resources/**",
    "**/static/**",
    "**/templates/**",
    "**/public/**",
    "BOOT-INF/classes/META-INF/**",
]

DEFAULT_APPLICATION_PATTERNS = [
    "**/*.class",
    "**/classes/**",
]

# Regexes searched (case-insensitively) in an archive's version string
DEFAULT_SNAPSHOT_MARKERS = [
    r"SNAPSHOT",
    r"\d{8}\.\d{6}-\d+",
]


# Default configuration values
DEFAULT_CONFIG = {
    ConfigKey.ROOT: {
        ConfigKey.POLICY: {
            ConfigKey.MAX_LAYERS: Limits.DEFAULT_MAX_LAYERS,
            ConfigKey.MAX_LAYER_BYTES: None,
            ConfigKey.VOLATILITY_ORDER: [c.value for c in DEFAULT_VOLATILITY_ORDER],
        },
        ConfigKey.CLASSIFICATION: {
            ConfigKey.DEPENDENCY_PATTERNS: list(DEFAULT_DEPENDENCY_PATTERNS),
            ConfigKey.RESOURCE_PATTERNS: list(DEFAULT_RESOURCE_PATTERNS),
            ConfigKey.APPLICATION_PATTERNS: list(DEFAULT_APPLICATION_PATTERNS),
            ConfigKey.SNAPSHOT_MARKERS: list(DEFAULT_SNAPSHOT_MARKERS),
            ConfigKey.DEFAULT_CLASS: VolatilityClass.APPLICATION_CODE.value,
            ConfigKey.RULES: [],
        },
        ConfigKey.ENTRYPOINT: {
            ConfigKey.EXECUTABLE: None,
            ConfigKey.INTERPRETER: [],
            ConfigKey.ARGUMENTS: [],
            ConfigKey.OPTIONS_ENV: "JAVA_OPTS",
        },
        ConfigKey.BASE_IMAGE: None,
        ConfigKey.CACHE: {
            ConfigKey.CACHE_ENABLED: True,
            ConfigKey.CACHE_PATH: "~/.cache/layerplanner/records.jsonl",
        },
        ConfigKey.BACKEND: {
            ConfigKey.BACKEND_NAME: "archive",
            ConfigKey.BACKEND_OUTPUT_DIR: "build/layerplanner",
            ConfigKey.BACKEND_TAG: None,
        },
        ConfigKey.LOGGING: {
            "level": "INFO",
            "file": None,
        },
    }
}
