"""Config Loader - Loads connection configuration.

Handles loading YAML config files with environment variable substitution so
API keys can stay out of the file itself:

    meilisearch:
      hostname: search.internal
      port: 7700
      api_key: ${MEILI_MASTER_KEY}
      data_timeout: 5
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from meilirecord.models import ConnectionConfig


class ConfigError(Exception):
    """Raised when configuration loading fails."""


# Optional top-level key the connection settings may be nested under
CONFIG_SECTION = "meilisearch"

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


def load_connection_config(config_path: Path) -> ConnectionConfig:
    """Load connection configuration from YAML with ${ENV_VAR} substitution."""
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file: {e}") from e

    if raw_config is None:
        raw_config = {}
    if not isinstance(raw_config, dict):
        raise ConfigError("Config file must be a YAML mapping")

    if CONFIG_SECTION in raw_config:
        raw_config = raw_config[CONFIG_SECTION]
        if not isinstance(raw_config, dict):
            raise ConfigError(f"'{CONFIG_SECTION}' section must be a YAML mapping")

    raw_config = _substitute_env_vars(raw_config)

    try:
        return ConnectionConfig.model_validate(raw_config)
    except ValidationError as e:
        raise ConfigError(f"Invalid config structure: {e}") from e


def _substitute_env_vars(data: Any) -> Any:
    """Recursively substitute ${ENV_VAR} patterns in strings within data."""
    if isinstance(data, str):
        return _substitute_string(data)
    elif isinstance(data, dict):
        return {k: _substitute_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_substitute_env_vars(item) for item in data]
    return data


def _substitute_string(s: str) -> str:
    """Substitute ${ENV_VAR} patterns. Raises ConfigError if env var is not set."""

    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigError(f"Environment variable '{var_name}' is not set")
        return value

    return _ENV_VAR_PATTERN.sub(replacer, s)
