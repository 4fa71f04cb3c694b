"""YAML configuration loading with environment interpolation and includes."""

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import ValidationError

from sqlconduit.config.models import SQLConduitConfig, EnvironmentSettings
from sqlconduit.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_LOCATIONS = (
    Path("sqlconduit.yaml"),
    Path("sqlconduit.yml"),
    Path("config") / "sqlconduit.yaml",
)


class ConfigParser:
    """Reads ``sqlconduit.yaml`` files into :class:`SQLConduitConfig`.

    String values may reference the environment as ``${NAME}`` (required) or
    ``${NAME:-fallback}``. A top-level ``include`` key names one or more files,
    relative to the including file, whose contents sit underneath it: keys of
    the including file take priority, nested mappings are merged.
    """

    ENV_VAR_PATTERN = re.compile(r'\$\{([^}]+)\}')

    def __init__(self, env_settings: Optional[EnvironmentSettings] = None) -> None:
        """Initialize the configuration parser.

        Args:
            env_settings: Environment settings; read from ``SQLCONDUIT_*`` variables if omitted.
        """
        self.env_settings = env_settings or EnvironmentSettings()

    def load_config(self, config_path: Optional[Union[str, Path]] = None) -> SQLConduitConfig:
        """Load and validate a configuration file.

        Args:
            config_path: File to read. Falls back to ``SQLCONDUIT_CONFIG_FILE``,
                then to the default locations in the working directory.

        Returns:
            Validated SQLConduitConfig instance.

        Raises:
            ConfigurationError: If the file is missing, malformed or invalid.
        """
        path = self.locate(config_path)
        document = self._read_document(path, [])
        if not document:
            raise ConfigurationError(f"Configuration file '{path}' is empty")

        try:
            config = SQLConduitConfig(**document)
        except ValidationError as e:
            raise ConfigurationError(
                f"Configuration validation failed: {e}",
                details={'file': str(path)},
            ) from e

        logger.info(f"Loaded configuration from {path} with databases {list(config.databases)}")
        return config

    def locate(self, config_path: Optional[Union[str, Path]] = None) -> Path:
        """Resolve which configuration file to read.

        Raises:
            ConfigurationError: If no candidate file exists.
        """
        explicit = config_path or self.env_settings.config_file
        if explicit:
            path = Path(explicit)
            if not path.is_file():
                raise ConfigurationError(f"Configuration file '{explicit}' not found")
            return path

        for candidate in DEFAULT_LOCATIONS:
            path = Path.cwd() / candidate
            if path.is_file():
                return path

        raise ConfigurationError(
            "No configuration file found; looked for "
            + ", ".join(str(candidate) for candidate in DEFAULT_LOCATIONS)
        )

    def _read_document(self, path: Path, stack: List[Path]) -> Dict[str, Any]:
        resolved = path.resolve()
        if resolved in stack:
            chain = " -> ".join(str(item) for item in stack + [resolved])
            raise ConfigurationError(f"Circular include detected: {chain}")

        try:
            with open(path, 'r', encoding='utf-8') as file:
                raw = yaml.safe_load(file)
        except FileNotFoundError as e:
            raise ConfigurationError(f"Configuration file '{path}' not found") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in '{path}': {e}") from e

        if raw is None:
            return {}
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Configuration file '{path}' must contain a mapping")

        document = self.interpolate(raw)
        includes = document.pop('include', None) or []
        if isinstance(includes, str):
            includes = [includes]

        merged: Dict[str, Any] = {}
        for include in includes:
            included = self._read_document(path.parent / include, stack + [resolved])
            merged = deep_merge(merged, included)

        return deep_merge(merged, document)

    def interpolate(self, value: Any) -> Any:
        """Resolve environment references in every string of a parsed document.

        Raises:
            ConfigurationError: If a required variable is not set.
        """
        if isinstance(value, dict):
            return {key: self.interpolate(item) for key, item in value.items()}
        if isinstance(value, list):
            return [self.interpolate(item) for item in value]
        if not isinstance(value, str):
            return value

        def lookup(match: re.Match) -> str:
            name, has_default, default = match.group(1).partition(':-')
            name = name.strip()
            resolved = os.environ.get(name)
            if resolved is not None:
                return resolved
            if has_default:
                return default.strip()
            raise ConfigurationError(f"Required environment variable '{name}' is not set")

        return self.ENV_VAR_PATTERN.sub(lookup, value)


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Return ``base`` updated with ``override``, merging nested mappings."""
    result = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(config_path: Optional[Union[str, Path]] = None) -> SQLConduitConfig:
    """Load a configuration file with a parser built from the environment."""
    return ConfigParser().load_config(config_path)
