#!/usr/bin/env python3
"""Hierarchical configuration manager for LayerPlanner.

This module provides configuration management with:
- 6-level precedence hierarchy
- YAML configuration files
- Environment variable overrides (LAYERPLANNER_SECTION__KEY)
- Validation of the merged result
- Thread-safe operations
- Deep merge of nested sections

Example:
    >>> config = ConfigManager()
    >>> config.load_file("layerplanner.yaml")
    >>> config.get("layerplanner.policy.max_layers", default=4)
    >>> config.section("backend")
"""

import copy
import os
import threading
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from layerplanner.core.constants import DEFAULT_CONFIG, ConfigKey, ErrorCode
from layerplanner.core.validators import ValidationError, validate_config

ENV_PREFIX = "LAYERPLANNER_"
ENV_SEPARATOR = "__"
SYSTEM_CONFIG_PATH = "/etc/layerplanner/config.yaml"


class ConfigSource(Enum):
    """Configuration source precedence levels."""

    COMPILED_DEFAULTS = 1  # Lowest precedence
    SYSTEM_CONFIG = 2
    USER_CONFIG = 3
    ENVIRONMENT = 4
    CLI_ARGS = 5
    RUNTIME = 6  # Highest precedence


class ConfigError(Exception):
    """Configuration error."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.INVALID_INPUT):
        self.message = message
        self.error_code = error_code
        super().__init__(message)


class ConfigManager:
    """Thread-safe hierarchical configuration manager.

    Manages configuration from multiple sources with precedence:
    1. Compiled defaults (lowest)
    2. System config (/etc/layerplanner/config.yaml)
    3. User config (layerplanner.yaml or --config)
    4. Environment variables (LAYERPLANNER_*)
    5. CLI arguments
    6. Runtime updates (highest)
    """

    DEFAULT_CONFIG = DEFAULT_CONFIG

    def __init__(self, config_file: Optional[str] = None, load_environment: bool = True):
        """Initialize configuration manager.

        Args:
            config_file: Optional config file to load
            load_environment: Read LAYERPLANNER_* environment variables
        """
        self._config: Dict[ConfigSource, Dict[str, Any]] = {}
        self._lock = threading.RLock()

        self._config[ConfigSource.COMPILED_DEFAULTS] = copy.deepcopy(self.DEFAULT_CONFIG)

        if config_file:
            self.load_file(config_file)

        if load_environment:
            self._load_environment()

    def load_file(self, file_path: str, source: ConfigSource = ConfigSource.USER_CONFIG) -> None:
        """Load configuration from YAML file.

        A file without the top-level ``layerplanner`` key is treated as the
        contents of that section.

        Args:
            file_path: Path to YAML config file
            source: Configuration source level

        Raises:
            ConfigError: If file cannot be loaded or parsed
        """
        path = Path(file_path).expanduser().resolve()

        if not path.exists():
            raise ConfigError(f"Config file not found: {file_path}", ErrorCode.NOT_FOUND)

        try:
            with open(path, "r") as f:
                config_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"YAML parse error in {file_path}: {e}", ErrorCode.INVALID_INPUT)
        except OSError as e:
            raise ConfigError(f"Error loading config {file_path}: {e}", ErrorCode.INTERNAL_ERROR)

        if not isinstance(config_data, dict):
            raise ConfigError(f"Invalid config format in {file_path}", ErrorCode.INVALID_INPUT)

        if ConfigKey.ROOT not in config_data:
            config_data = {ConfigKey.ROOT: config_data}

        with self._lock:
            self._config[source] = config_data

    def load_system_config(self, file_path: str = SYSTEM_CONFIG_PATH) -> bool:
        """Load the system-wide config file if there is one.

        Returns:
            True if a file was loaded

        Raises:
            ConfigError: If the file exists but cannot be loaded or parsed
        """
        if not Path(file_path).is_file():
            return False
        self.load_file(file_path, ConfigSource.SYSTEM_CONFIG)
        return True

    def load_dict(
        self, config_data: Dict[str, Any], source: ConfigSource = ConfigSource.RUNTIME
    ) -> None:
        """Load configuration from dictionary.

        Args:
            config_data: Configuration dictionary
            source: Configuration source level
        """
        data = copy.deepcopy(config_data)
        if ConfigKey.ROOT not in data:
            data = {ConfigKey.ROOT: data}
        with self._lock:
            self._config[source] = data

    def _load_environment(self) -> None:
        """Load configuration from environment variables.

        Environment variables in format: LAYERPLANNER_SECTION__KEY=value
        Example: LAYERPLANNER_POLICY__MAX_LAYERS=6
        """
        env_config: Dict[str, Any] = {}

        for key, value in os.environ.items():
            if not key.startswith(ENV_PREFIX):
                continue

            parts = [p for p in key[len(ENV_PREFIX):].lower().split(ENV_SEPARATOR) if p]
            if not parts:
                continue

            current = env_config
            for part in parts[:-1]:
                current = current.setdefault(part, {})
                if not isinstance(current, dict):
                    break
            else:
                current[parts[-1]] = self._parse_env_value(value)

        if env_config:
            with self._lock:
                self._config[ConfigSource.ENVIRONMENT] = {ConfigKey.ROOT: env_config}

    def _parse_env_value(self, value: str) -> Any:
        """Parse environment variable value.

        Args:
            value: String value from environment

        Returns:
            Parsed value (bool, int, float, list, None or str)
        """
        lowered = value.lower()
        if lowered in ("true", "yes"):
            return True
        if lowered in ("false", "no"):
            return False
        if lowered in ("null", "none", ""):
            return None

        try:
            return int(value)
        except ValueError:
            pass

        try:
            return float(value)
        except ValueError:
            pass

        # Comma-separated lists (volatility_order, patterns)
        if "," in value:
            return [item.strip() for item in value.split(",") if item.strip()]

        return value

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by key.

        Args:
            key: Dot-separated key path (e.g., "layerplanner.policy.max_layers")
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        with self._lock:
            for source in sorted(self._config.keys(), key=lambda s: s.value, reverse=True):
                value = self._get_nested(self._config[source], key)
                if value is not None:
                    return value

            return default

    def _get_nested(self, config: Dict[str, Any], key: str) -> Optional[Any]:
        """Get value from nested dictionary using dot notation."""
        parts = key.split(".")
        current = config

        for part in parts:
            if not isinstance(current, dict):
                return None
            if part not in current:
                return None
            current = current[part]

        return current

    def set(self, key: str, value: Any, source: ConfigSource = ConfigSource.RUNTIME) -> None:
        """Set configuration value.

        Args:
            key: Dot-separated key path
            value: Value to set
            source: Configuration source level
        """
        with self._lock:
            if source not in self._config:
                self._config[source] = {}

            parts = key.split(".")
            current = self._config[source]

            for part in parts[:-1]:
                if part not in current:
                    current[part] = {}
                current = current[part]

            current[parts[-1]] = value

    def get_all(self) -> Dict[str, Any]:
        """Get merged configuration from all sources.

        Unlike get(), an explicit None at a higher level overrides a lower one.

        Returns:
            Merged configuration dictionary
        """
        with self._lock:
            merged: Dict[str, Any] = {}

            for source in sorted(self._config.keys(), key=lambda s: s.value):
                merged = self._deep_merge(merged, self._config[source])

            return merged

    def section(self, name: str) -> Dict[str, Any]:
        """Get one merged section under the ``layerplanner`` root.

        Args:
            name: Section name (e.g., "policy", "backend")

        Returns:
            Section dictionary (empty if absent); scalar sections are returned as-is
        """
        return self.get_all().get(ConfigKey.ROOT, {}).get(name, {})

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries.

        Args:
            base: Base dictionary
            override: Override dictionary

        Returns:
            Merged dictionary
        """
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = copy.deepcopy(value)

        return result

    def validate(self) -> bool:
        """Validate the merged configuration.

        Returns:
            True if valid

        Raises:
            ConfigError: If validation fails
        """
        try:
            return validate_config(self.get_all().get(ConfigKey.ROOT, {}))
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}", e.error_code)

    def clear(self, source: Optional[ConfigSource] = None) -> None:
        """Clear configuration.

        Args:
            source: Specific source to clear, or None for all except defaults
        """
        with self._lock:
            if source:
                if source in self._config and source != ConfigSource.COMPILED_DEFAULTS:
                    del self._config[source]
            else:
                sources_to_clear = [
                    s for s in self._config.keys() if s != ConfigSource.COMPILED_DEFAULTS
                ]
                for s in sources_to_clear:
                    del self._config[s]


# Global config manager instance
_global_config: Optional[ConfigManager] = None


def get_config_manager(config_file: Optional[str] = None) -> ConfigManager:
    """Get or create global configuration manager.

    Args:
        config_file: Optional config file to load

    Returns:
        Global configuration manager
    """
    global _global_config
    if _global_config is None:
        _global_config = ConfigManager(config_file)
    return _global_config


def set_global_config(config: Optional[ConfigManager]) -> None:
    """Set (or reset, with None) the global configuration manager."""
    global _global_config
    _global_config = config
