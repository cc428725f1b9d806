"""Configuration management for veg_monitor.

This module provides dataclass-based configuration for monitoring runs,
with support for validation and YAML-based configuration files.
"""

from .models import (
    DEFAULT_AOI_WKT,
    MAX_CONCURRENT_AGGREGATIONS,
    MonitorConfig,
    RetryConfig,
    VisualizationConfig,
)
from .yaml_loader import ConfigurationError, load_monitor_config

__all__ = [
    # Dataclasses
    "MonitorConfig",
    "RetryConfig",
    "VisualizationConfig",
    # Constants
    "DEFAULT_AOI_WKT",
    "MAX_CONCURRENT_AGGREGATIONS",
    # YAML loading
    "ConfigurationError",
    "load_monitor_config",
]
