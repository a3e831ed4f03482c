"""Configuration for marlintool.

This module provides the params file parser and the configuration snapshot
store.
"""

from .params import DEFAULT_PARAMS_FILE, ConfigError, Dependency, ToolConfig
from .snapshot import (
    CONFIGURATION_FILES,
    ConfigSnapshotStore,
    ConfigurationMissingError,
    SnapshotError,
    SnapshotNotFoundError,
)

__all__ = [
    "DEFAULT_PARAMS_FILE",
    "ConfigError",
    "Dependency",
    "ToolConfig",
    "CONFIGURATION_FILES",
    "ConfigSnapshotStore",
    "ConfigurationMissingError",
    "SnapshotError",
    "SnapshotNotFoundError",
]
