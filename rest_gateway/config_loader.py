"""Config Loader - Loads gateway configuration from YAML.

Handles loading YAML config files with environment variable substitution and
selecting a named gateway from them.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml

from rest_gateway.models import GatewayConfig, GatewaysFile


class ConfigError(Exception):
    """Raised when configuration loading fails."""


_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


def load_gateways_file(config_path: Path) -> GatewaysFile:
    """Load gateway configuration from YAML with ${ENV_VAR} substitution."""
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file: {e}") from e

    if not isinstance(raw_config, dict):
        raise ConfigError("Config file must be a YAML mapping")

    raw_config = _substitute_env_vars(raw_config)

    try:
        return GatewaysFile.model_validate(raw_config)
    except Exception as e:
        raise ConfigError(f"Invalid config structure: {e}") from e


def load_gateway_config(config_path: Path, name: str) -> GatewayConfig:
    """Load the config file and return the gateway called name."""
    gateways = load_gateways_file(config_path)
    return select_gateway(gateways, name)


def select_gateway(gateways: GatewaysFile, name: str) -> GatewayConfig:
    """Return one gateway by name, listing the available ones if it is missing."""
    if name not in gateways.gateways:
        available = ", ".join(gateways.gateways.keys()) or "(none)"
        raise ConfigError(f"Gateway '{name}' not found in config. Available: {available}")
    return gateways.gateways[name]


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
