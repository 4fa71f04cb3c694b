"""Configuration management for sqlconduit."""

from sqlconduit.config.models import (
    DatabaseType,
    DatabaseConfig,
    ExecutorSettings,
    SQLConduitConfig,
    EnvironmentSettings,
    RESTRICTED_OPTIONS,
)
from sqlconduit.config.parser import (
    ConfigParser,
    load_config,
)

__all__ = [
    # Models
    "DatabaseType",
    "DatabaseConfig",
    "ExecutorSettings",
    "SQLConduitConfig",
    "EnvironmentSettings",
    "RESTRICTED_OPTIONS",
    # Parser
    "ConfigParser",
    "load_config",
]
