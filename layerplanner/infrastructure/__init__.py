"""LayerPlanner Infrastructure Layer.

Core services used by the planner and backends:
- ConfigManager: Hierarchical configuration (YAML files, environment, CLI)
- CacheStore: Persistent, append-only layer cache records
- Logger: Structured logging system
"""

from .cache_store import CacheRecord, CacheStore, CacheStoreError
from .config_manager import ConfigError
from .config_manager import ConfigManager as Config
from .config_manager import ConfigSource, get_config_manager, set_global_config
from .logger import Logger, LogLevel, get_logger, set_global_logger

__all__ = [
    # Logger exports
    "Logger",
    "LogLevel",
    "get_logger",
    "set_global_logger",
    # CacheStore exports
    "CacheRecord",
    "CacheStore",
    "CacheStoreError",
    # ConfigManager exports
    "ConfigSource",
    "ConfigError",
    "Config",
    "get_config_manager",
    "set_global_config",
]
