"""TOML configuration loader for shipdag."""

from __future__ import annotations

import os
import re
import tomllib
from functools import lru_cache
from pathlib import Path
from typing import Any

from shipdag.core.config.models import (
    ChangeRequestConfig,
    LoggingConfig,
    PipelineSettings,
    RepositoryIdentity,
    ShipDAGConfig,
)
from shipdag.core.exceptions import ConfigurationError, ValidationError
from shipdag.core.logging import get_logger

_TRUTHY_VALUES = frozenset({"true", "1", "yes", "on", "enabled"})
_FALSY_VALUES = frozenset({"false", "0", "no", "off", "disabled"})

# Settings stored as tuples in PipelineSettings but written as TOML arrays
_TUPLE_SETTINGS = frozenset({"python_versions", "lint_command", "test_command", "coverage_command"})

CONFIG_FILENAMES = ("shipdag.toml", "pyproject.toml", ".shipdag.toml")

logger = get_logger(__name__)


def _parse_bool_env(value: str) -> bool:
    """Parse boolean from environment variable value.

    Raises
    ------
    ValueError
        If value is not a recognized boolean string
    """
    normalized = value.lower().strip()
    if normalized in _TRUTHY_VALUES:
        return True
    if normalized in _FALSY_VALUES:
        return False
    expected = sorted(_TRUTHY_VALUES | _FALSY_VALUES)
    raise ValueError(f"Invalid boolean value: {value!r}. Expected one of: {expected}")


@lru_cache(maxsize=32)
def _load_and_parse_cached(path_str: str) -> ShipDAGConfig:
    """Cached configuration loader."""
    loader = ConfigLoader()
    return loader._load_and_parse(Path(path_str))


class ConfigLoader:
    """Loads and processes shipdag configuration from TOML files."""

    ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")

    def load_from_toml(self, path: str | Path | None = None) -> ShipDAGConfig:
        """Load configuration from a TOML file.

        Parameters
        ----------
        path : str | Path | None
            Path to TOML file. If None, searches for shipdag.toml,
            pyproject.toml with a ``[tool.shipdag]`` table, or .shipdag.toml

        Returns
        -------
        ShipDAGConfig
            Parsed configuration with environment variables substituted

        Raises
        ------
        FileNotFoundError
            If no configuration file is found
        ConfigurationError
            If the file is not valid TOML or has the wrong shape
        """
        config_path = self._find_config_file(path)
        return _load_and_parse_cached(str(config_path.absolute()))

    def _load_and_parse(self, config_path: Path) -> ShipDAGConfig:
        logger.info("Loading configuration from {path}", path=config_path)

        try:
            with config_path.open("rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(str(config_path), f"invalid TOML: {e}") from e

        if config_path.name == "pyproject.toml":
            shipdag_data = data.get("tool", {}).get("shipdag", {})
            if not shipdag_data:
                logger.warning("No [tool.shipdag] section found in pyproject.toml, using defaults")
                return self.from_dict({})
        elif "tool" in data and "shipdag" in data.get("tool", {}):
            shipdag_data = data["tool"]["shipdag"]
        else:
            shipdag_data = data

        return self.from_dict(shipdag_data)

    def from_dict(self, data: dict[str, Any]) -> ShipDAGConfig:
        """Build a configuration from already-parsed TOML data.

        Environment placeholders are substituted and ``SHIPDAG_LOG_*``
        overrides applied, exactly as for a file.
        """
        data = self._substitute_env_vars(data)
        return self._parse_config(data)

    def _find_config_file(self, path: str | Path | None) -> Path:
        if path:
            config_path = Path(path)
            if not config_path.exists():
                raise FileNotFoundError(f"Configuration file not found: {config_path}")
            return config_path

        if env_path := os.getenv("SHIPDAG_CONFIG_PATH"):
            config_path = Path(env_path)
            if config_path.exists():
                logger.debug(f"Using config from SHIPDAG_CONFIG_PATH: {config_path}")
                return config_path
            logger.warning(f"SHIPDAG_CONFIG_PATH set but file not found: {config_path}")

        for name in CONFIG_FILENAMES:
            candidate = Path(name)
            if not candidate.exists():
                continue
            if name != "pyproject.toml" or self._has_tool_section(candidate):
                return candidate

        raise FileNotFoundError(
            f"No configuration file found. Searched for: {', '.join(CONFIG_FILENAMES)}"
        )

    @staticmethod
    def _has_tool_section(pyproject: Path) -> bool:
        try:
            with pyproject.open("rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError:
            return False
        return "shipdag" in data.get("tool", {})

    def _substitute_env_vars(self, data: Any) -> Any:
        """Recursively replace ``${VAR}`` with environment values.

        Unset variables keep their placeholder.
        """
        if isinstance(data, str):

            def replacer(match: re.Match[str]) -> str:
                var_name = match.group(1)
                value = os.environ.get(var_name)
                if value is None:
                    logger.debug(
                        f"Environment variable ${{{var_name}}} not found, keeping placeholder"
                    )
                    return match.group(0)
                return value

            return self.ENV_VAR_PATTERN.sub(replacer, data)

        if isinstance(data, dict):
            return {key: self._substitute_env_vars(value) for key, value in data.items()}

        if isinstance(data, list):
            return [self._substitute_env_vars(item) for item in data]

        return data

    def _parse_config(self, data: dict[str, Any]) -> ShipDAGConfig:
        return ShipDAGConfig(
            logging=self._parse_logging_config(self._section(data, "logging")),
            repository=self._build(RepositoryIdentity, self._section(data, "repository")),
            pipeline=self._parse_pipeline_settings(self._section(data, "pipeline")),
            change_requests=self._build(
                ChangeRequestConfig, self._section(data, "change_requests")
            ),
        )

    @staticmethod
    def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
        section = data.get(name, {})
        if not isinstance(section, dict):
            raise ConfigurationError(name, f"expected a table, got {type(section).__name__}")
        return section

    @staticmethod
    def _build(model: type, values: dict[str, Any]) -> Any:
        known = set(model.__dataclass_fields__)
        if unknown := sorted(set(values) - known):
            raise ConfigurationError(model.__name__, f"unknown setting(s): {unknown}")
        try:
            return model(**values)
        except TypeError as e:
            raise ConfigurationError(model.__name__, str(e)) from e

    def _parse_pipeline_settings(self, values: dict[str, Any]) -> PipelineSettings:
        normalized: dict[str, Any] = {}
        for key, value in values.items():
            if key in _TUPLE_SETTINGS:
                if isinstance(value, str):
                    value = value.split()
                if not isinstance(value, list):
                    raise ValidationError(key, "must be a list of strings", value)
                value = tuple(str(v) for v in value)
            normalized[key] = value
        settings: PipelineSettings = self._build(PipelineSettings, normalized)
        logger.debug(
            "Pipeline settings: coverage>={threshold}, severity>={severity}",
            threshold=settings.coverage_threshold,
            severity=settings.severity_threshold,
        )
        return settings

    def _parse_logging_config(self, logging_data: dict[str, Any]) -> LoggingConfig:
        """Parse logging configuration with environment variable overrides.

        Environment variables take precedence over TOML configuration:
        - SHIPDAG_LOG_LEVEL: Log level
        - SHIPDAG_LOG_FORMAT: Output format (console, json, structured, rich)
        - SHIPDAG_LOG_FILE: Optional file path for JSON log output
        - SHIPDAG_LOG_COLOR: Use color output (true/false)
        - SHIPDAG_LOG_TIMESTAMP: Include timestamp (true/false)
        - SHIPDAG_LOG_STDLIB_BRIDGE: Route stdlib logging through loguru (true/false)
        - SHIPDAG_LOG_DIAGNOSE: Enable diagnose mode (true/false)
        """
        values = dict(logging_data)

        if env_level := os.getenv("SHIPDAG_LOG_LEVEL"):
            values["level"] = env_level.upper()
            logger.debug(f"Overriding log level from env: {values['level']}")

        if env_format := os.getenv("SHIPDAG_LOG_FORMAT"):
            values["format"] = env_format.lower()
            logger.debug(f"Overriding log format from env: {values['format']}")

        if env_file := os.getenv("SHIPDAG_LOG_FILE"):
            values["output_file"] = env_file

        bool_overrides = {
            "SHIPDAG_LOG_COLOR": "use_color",
            "SHIPDAG_LOG_TIMESTAMP": "include_timestamp",
            "SHIPDAG_LOG_STDLIB_BRIDGE": "enable_stdlib_bridge",
            "SHIPDAG_LOG_DIAGNOSE": "diagnose",
        }
        for env_name, key in bool_overrides.items():
            if raw := os.getenv(env_name):
                try:
                    values[key] = _parse_bool_env(raw)
                except ValueError as e:
                    logger.warning(f"Invalid {env_name} value: {e}")

        return self._build(LoggingConfig, values)


def load_config(path: str | Path | None = None) -> ShipDAGConfig:
    """Load configuration from a TOML file or return defaults.

    Parameters
    ----------
    path : str | Path | None
        Path to configuration file or None to search

    Returns
    -------
    ShipDAGConfig
        Loaded configuration or defaults if no file found
    """
    loader = ConfigLoader()
    try:
        return loader.load_from_toml(path)
    except FileNotFoundError:
        if path:
            raise
        logger.info("No configuration file found, using defaults")
        return loader.from_dict({})


def clear_config_cache() -> None:
    """Clear configuration caches.

    Useful for testing or when configuration files have been modified.
    """
    _load_and_parse_cached.cache_clear()


def get_default_config() -> ShipDAGConfig:
    """Defaults with no file and no environment overrides applied."""
    return ShipDAGConfig()
