"""Config Loader - Loads client configuration from YAML.

A config file is either a single client mapping:

    base_url: https://api.example.com
    headers:
      Authorization: Bearer ${API_TOKEN}
    timeout: 10

or several named clients under ``clients:``, selected by name:

    clients:
      widgets:
        base_url: https://widgets.example.com
      billing:
        base_url: https://billing.example.com

${ENV_VAR} references in string values are substituted from the environment.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from protocol_client.errors import ConfigurationError
from protocol_client.models import ClientConfig

logger = logging.getLogger(__name__)

_ENV_VAR = re.compile(r"\$\{([^}]+)\}")


class ConfigFileError(ConfigurationError):
    """Raised when a configuration file cannot be loaded."""


def load_client_config(config_path: Path | str, name: str | None = None) -> ClientConfig:
    """Load a ClientConfig from YAML with ${ENV_VAR} substitution.

    Args:
        config_path: Path to the YAML file.
        name: Entry to select under ``clients:``. Required when the file
            holds more than one client.

    Raises:
        ConfigFileError: If the file is missing, malformed, references an
            unset environment variable, or does not describe a valid client.
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise ConfigFileError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigFileError(f"Invalid YAML in config file: {e}") from e

    if not isinstance(raw_config, dict):
        raise ConfigFileError("Config file must be a YAML mapping")

    raw_client = _select_client(raw_config, name)
    raw_client = _substitute_env_vars(raw_client)

    try:
        config = ClientConfig.model_validate(raw_client)
    except ValidationError as e:
        raise ConfigFileError(f"Invalid config structure: {e}") from e
    logger.debug("Loaded client config %s from %s", name or "(default)", config_path)
    return config


def _select_client(raw_config: dict[str, Any], name: str | None) -> Any:
    clients = raw_config.get("clients")
    if clients is None:
        if name is not None:
            raise ConfigFileError(f"Client '{name}' requested but config has no 'clients' section")
        return raw_config

    if not isinstance(clients, dict) or not clients:
        raise ConfigFileError("'clients' must be a non-empty mapping")
    if name is None:
        if len(clients) > 1:
            available = ", ".join(clients)
            raise ConfigFileError(f"Config defines several clients, pick one of: {available}")
        return next(iter(clients.values()))
    if name not in clients:
        available = ", ".join(clients)
        raise ConfigFileError(f"Client '{name}' not found in config. Available: {available}")
    return clients[name]


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
    """Substitute ${ENV_VAR} patterns. Raises ConfigFileError if env var is not set."""

    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigFileError(f"Environment variable '{var_name}' is not set")
        return value

    return _ENV_VAR.sub(replacer, s)
