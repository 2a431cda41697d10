"""
Configuration system for signoff.

This module provides configuration loading, validation, and management
for signoff. Configuration can be loaded from YAML files with
environment variable overrides.
"""

from signoff.config.defaults import (
    get_default_config,
    get_development_config,
    get_production_config,
    get_test_config,
)
from signoff.config.loader import ConfigLoader, load_config
from signoff.config.schema import (
    DatabaseConfig,
    LoggingConfig,
    NotificationConfig,
    ServerConfig,
    SignoffConfig,
    WorkflowConfig,
)

__all__ = [
    "ConfigLoader",
    "load_config",
    "SignoffConfig",
    "DatabaseConfig",
    "WorkflowConfig",
    "NotificationConfig",
    "LoggingConfig",
    "ServerConfig",
    "get_default_config",
    "get_development_config",
    "get_production_config",
    "get_test_config",
]
