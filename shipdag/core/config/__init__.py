"""Configuration loading and management for shipdag."""

from shipdag.core.config.loader import (
    ConfigLoader,
    clear_config_cache,
    get_default_config,
    load_config,
)
from shipdag.core.config.models import (
    ChangeRequestConfig,
    LoggingConfig,
    PipelineSettings,
    RepositoryIdentity,
    ShipDAGConfig,
)

__all__ = [
    "ChangeRequestConfig",
    "ConfigLoader",
    "LoggingConfig",
    "PipelineSettings",
    "RepositoryIdentity",
    "ShipDAGConfig",
    "clear_config_cache",
    "get_default_config",
    "load_config",
]
