"""
LayerPlanner Core: Input Validators.

This module provides input validation functions for configuration sections,
paths, patterns and image references.
"""
import re
from typing import Any, Dict, List, Pattern

from layerplanner.core.constants import ConfigKey, ErrorCode, Limits, VolatilityClass


class ValidationError(Exception):
    """Base exception for validation errors."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.INVALID_INPUT):
        """Initialize ValidationError.

        Args:
            message: Error message
            error_code: Associated error code
        """
        super().__init__(message)
        self.error_code = error_code


# registry[:port]/name[/name...][:tag][@sha256:hex]
_IMAGE_REFERENCE_RE = re.compile(
    r"^(?:[a-zA-Z0-9.-]+(?::[0-9]+)?/)?"
    r"[a-z0-9]+(?:[._-][a-z0-9]+)*(?:/[a-z0-9]+(?:[._-][a-z0-9]+)*)*"
    r"(?::[\w][\w.-]{0,127})?"
    r"(?:@sha256:[a-f0-9]{64})?$"
)


def validate_config(config: Dict[str, Any]) -> bool:
    """Validate the merged LayerPlanner configuration (the ``layerplanner`` section).

    Args:
        config: Configuration dictionary

    Returns:
        True if valid

    Raises:
        ValidationError: If configuration is invalid
    """
    if not isinstance(config, dict):
        raise ValidationError("Configuration must be a dictionary")

    if ConfigKey.POLICY in config:
        validate_policy_config(config[ConfigKey.POLICY])

    if ConfigKey.CLASSIFICATION in config:
        validate_classification_config(config[ConfigKey.CLASSIFICATION])

    if ConfigKey.ENTRYPOINT in config:
        validate_entrypoint_config(config[ConfigKey.ENTRYPOINT])

    base_image = config.get(ConfigKey.BASE_IMAGE)
    if base_image is not None:
        validate_image_reference(base_image)

    if ConfigKey.CACHE in config:
        validate_cache_config(config[ConfigKey.CACHE])

    if ConfigKey.BACKEND in config:
        backend = config[ConfigKey.BACKEND]
        if not isinstance(backend, dict):
            raise ValidationError("Backend configuration must be a dictionary")
        name = backend.get(ConfigKey.BACKEND_NAME)
        if name is not None and (not isinstance(name, str) or not name):
            raise ValidationError(f"Backend name must be a non-empty string: {name!r}")

    return True


def validate_policy_config(policy: Dict[str, Any]) -> bool:
    """Validate layering policy configuration.

    Args:
        policy: Policy configuration dictionary

    Returns:
        True if valid

    Raises:
        ValidationError: If policy is invalid
    """
    if not isinstance(policy, dict):
        raise ValidationError("Policy must be a dictionary")

    max_layers = policy.get(ConfigKey.MAX_LAYERS)
    if max_layers is not None:
        if isinstance(max_layers, bool) or not isinstance(max_layers, int):
            raise ValidationError(f"max_layers must be an integer: {max_layers!r}")
        if max_layers < 1 or max_layers > Limits.MAX_LAYERS:
            raise ValidationError(
                f"max_layers must be in range 1-{Limits.MAX_LAYERS}, got {max_layers}"
            )

    max_bytes = policy.get(ConfigKey.MAX_LAYER_BYTES)
    if max_bytes is not None:
        if isinstance(max_bytes, bool) or not isinstance(max_bytes, int):
            raise ValidationError(f"max_layer_bytes must be an integer: {max_bytes!r}")
        if max_bytes <= 0:
            raise ValidationError(f"max_layer_bytes must be positive: {max_bytes}")

    order = policy.get(ConfigKey.VOLATILITY_ORDER)
    if order is not None:
        validate_volatility_order(order)

    return True


def validate_volatility_order(order: List[Any]) -> bool:
    """Validate a volatility order list.

    Only names are checked here; completeness against the classes actually
    present is a policy question decided by the partitioner.

    Raises:
        ValidationError: If a name is unknown or repeated
    """
    if not isinstance(order, (list, tuple)):
        raise ValidationError("volatility_order must be a list")

    seen = set()
    for name in order:
        try:
            cls = VolatilityClass.parse(name)
        except ValueError as e:
            raise ValidationError(str(e))
        if cls in seen:
            raise ValidationError(f"Duplicate volatility class in order: {cls.value}")
        seen.add(cls)

    return True


def validate_classification_config(classification: Dict[str, Any]) -> bool:
    """Validate classification configuration.

    Args:
        classification: Classification configuration dictionary

    Returns:
        True if valid

    Raises:
        ValidationError: If classification config is invalid
    """
    if not isinstance(classification, dict):
        raise ValidationError("Classification must be a dictionary")

    for key in (
        ConfigKey.DEPENDENCY_PATTERNS,
        ConfigKey.RESOURCE_PATTERNS,
        ConfigKey.APPLICATION_PATTERNS,
    ):
        patterns = classification.get(key)
        if patterns is None:
            continue
        if not isinstance(patterns, list):
            raise ValidationError(f"{key} must be a list")
        for pattern in patterns:
            validate_pattern(pattern)

    markers = classification.get(ConfigKey.SNAPSHOT_MARKERS)
    if markers is not None:
        if not isinstance(markers, list):
            raise ValidationError("snapshot_markers must be a list")
        for marker in markers:
            validate_regex(marker)

    default_class = classification.get(ConfigKey.DEFAULT_CLASS)
    if default_class is not None:
        try:
            VolatilityClass.parse(default_class)
        except ValueError as e:
            raise ValidationError(str(e))

    rules = classification.get(ConfigKey.RULES)
    if rules is not None:
        if not isinstance(rules, list):
            raise ValidationError("Rules must be a list")
        for i, rule in enumerate(rules):
            try:
                validate_rule_config(rule)
            except ValidationError as e:
                raise ValidationError(f"Invalid rule configuration at index {i}: {e}")

    return True


def validate_rule_config(rule: Dict[str, Any]) -> bool:
    """Validate a user classification rule.

    Args:
        rule: Rule configuration dictionary

    Returns:
        True if valid

    Raises:
        ValidationError: If rule is invalid
    """
    if not isinstance(rule, dict):
        raise ValidationError("Rule must be a dictionary")

    if "class" not in rule:
        raise ValidationError("Rule must have 'class' field")

    try:
        VolatilityClass.parse(rule["class"])
    except ValueError as e:
        raise ValidationError(str(e))

    has_pattern = "pattern" in rule
    has_patterns = "patterns" in rule

    if not has_pattern and not has_patterns:
        raise ValidationError("Rule must have 'pattern' or 'patterns' field")

    if has_pattern:
        validate_pattern(rule["pattern"])

    if has_patterns:
        patterns = rule["patterns"]
        if not isinstance(patterns, list):
            raise ValidationError("Patterns must be a list")
        for pattern in patterns:
            validate_pattern(pattern)

    if "priority" in rule:
        priority = rule["priority"]
        if isinstance(priority, bool) or not isinstance(priority, int):
            raise ValidationError(f"Rule priority must be integer: {priority}")

    return True


def validate_entrypoint_config(entrypoint: Dict[str, Any]) -> bool:
    """Validate entrypoint configuration.

    Raises:
        ValidationError: If entrypoint config is invalid
    """
    if not isinstance(entrypoint, dict):
        raise ValidationError("Entrypoint must be a dictionary")

    executable = entrypoint.get(ConfigKey.EXECUTABLE)
    if executable is not None:
        validate_path(executable)

    for key in (ConfigKey.INTERPRETER, ConfigKey.ARGUMENTS):
        value = entrypoint.get(key)
        if value is None:
            continue
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise ValidationError(f"Entrypoint {key} must be a list of strings")

    options_env = entrypoint.get(ConfigKey.OPTIONS_ENV)
    if options_env is not None and not re.match(r"^[A-Za-z_][A-Za-z0-9_]*$", str(options_env)):
        raise ValidationError(f"Invalid environment variable name: {options_env}")

    return True


def validate_cache_config(cache: Dict[str, Any]) -> bool:
    """Validate cache store configuration.

    Raises:
        ValidationError: If cache config is invalid
    """
    if not isinstance(cache, dict):
        raise ValidationError("Cache configuration must be a dictionary")

    enabled = cache.get(ConfigKey.CACHE_ENABLED)
    if enabled is not None and not isinstance(enabled, bool):
        raise ValidationError(f"Cache enabled must be boolean: {enabled}")

    path = cache.get(ConfigKey.CACHE_PATH)
    if path is not None and (not isinstance(path, str) or not path):
        raise ValidationError(f"Cache path must be a non-empty string: {path!r}")

    return True


def validate_path(path: str) -> bool:
    """Validate that a tree-relative path is safe and valid.

    Args:
        path: Path to validate

    Returns:
        True if valid

    Raises:
        ValidationError: If path is invalid
    """
    if not path:
        raise ValidationError("Path cannot be empty")

    if not isinstance(path, str):
        raise ValidationError(f"Path must be string, got {type(path)}")

    if len(path) > Limits.MAX_PATH_LENGTH:
        raise ValidationError(f"Path exceeds maximum length ({Limits.MAX_PATH_LENGTH})")

    if "\0" in path:
        raise ValidationError("Path contains null bytes")

    if any(ord(c) < 32 for c in path):
        raise ValidationError("Path contains control characters")

    if ".." in path.replace("\\", "/").split("/"):
        raise ValidationError("Path traversal not allowed")

    return True


def validate_pattern(pattern: str) -> bool:
    """Validate a glob or regex pattern.

    Patterns prefixed with ``regex:`` are compiled as regular expressions.

    Raises:
        ValidationError: If pattern is invalid
    """
    if not pattern:
        raise ValidationError("Pattern cannot be empty")

    if not isinstance(pattern, str):
        raise ValidationError(f"Pattern must be string, got {type(pattern)}")

    if len(pattern) > Limits.MAX_PATH_LENGTH:
        raise ValidationError(f"Pattern exceeds maximum length ({Limits.MAX_PATH_LENGTH})")

    if "\0" in pattern:
        raise ValidationError("Invalid pattern: contains null bytes")

    if any(ord(c) < 32 and c not in "\t\n\r" for c in pattern):
        raise ValidationError("Invalid pattern: contains control characters")

    if pattern.startswith("regex:"):
        validate_regex(pattern[6:])

    return True


def validate_regex(pattern: str) -> Pattern[str]:
    """Validate and compile a regex pattern.

    Returns:
        Compiled regex pattern

    Raises:
        ValidationError: If pattern is invalid
    """
    if not pattern:
        raise ValidationError("Regex pattern cannot be empty")

    if not isinstance(pattern, str):
        raise ValidationError(f"Regex pattern must be string, got {type(pattern)}")

    try:
        return re.compile(pattern)
    except re.error as e:
        raise ValidationError(f"Failed to compile regex pattern: {e}")


def validate_image_reference(reference: str) -> bool:
    """Validate a container image reference (``registry/name:tag@digest``).

    Raises:
        ValidationError: If the reference is empty or malformed
    """
    if not isinstance(reference, str) or not reference.strip():
        raise ValidationError("Image reference cannot be empty")

    if len(reference) > Limits.MAX_IMAGE_REFERENCE_LENGTH:
        raise ValidationError(
            f"Image reference exceeds maximum length ({Limits.MAX_IMAGE_REFERENCE_LENGTH})"
        )

    # "scratch" is the conventional empty base
    if reference == "scratch":
        return True

    if not _IMAGE_REFERENCE_RE.match(reference):
        raise ValidationError(f"Invalid image reference: {reference}")

    return True
