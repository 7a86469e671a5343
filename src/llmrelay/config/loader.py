# src/llmrelay/config/loader.py
"""
Configuration loading for llmrelay.

Layers, lowest precedence first:

1. The packaged ``default_config.toml``.
2. An optional user TOML file.
3. Environment variables carrying the ``LLMRELAY_`` prefix.
4. An overrides dictionary supplied by the caller.

Layering is delegated to ``confy``; the merged result is validated into a
:class:`~llmrelay.config.models.RelayConfig`.

Usage:
    from llmrelay.config.loader import load_config

    relay_config = load_config(config_file_path="~/.config/llmrelay/config.toml")
"""

from __future__ import annotations

import importlib.resources
import logging
import tomllib
from pathlib import Path
from typing import Any

from ..exceptions import ConfigError
from .models import ConfigStore, RelayConfig

logger = logging.getLogger(__name__)

DEFAULT_ENV_PREFIX = "LLMRELAY"


def load_default_config() -> dict[str, Any]:
    """Reads the packaged ``default_config.toml`` into a dictionary."""
    default_config_path = importlib.resources.files("llmrelay.config").joinpath("default_config.toml")
    with default_config_path.open("rb") as f:
        return tomllib.load(f)


def load_config_store(
    config_file_path: str | Path | None = None,
    env_prefix: str | None = DEFAULT_ENV_PREFIX,
    overrides: dict[str, Any] | None = None,
) -> ConfigStore:
    """
    Builds the layered confy ``Config`` object.

    Args:
        config_file_path: Optional path to a user TOML file.
        env_prefix: Prefix for environment overrides, ``None`` to disable them.
        overrides: Highest-precedence overrides (nested dict or dotted keys).

    Returns:
        The confy configuration object.

    Raises:
        ConfigError: If confy is missing, the file cannot be parsed or any
            layer is malformed.
    """
    try:
        from confy.loader import Config as ConfyConfig

        resolved_path = str(Path(config_file_path).expanduser()) if config_file_path else None
        store = ConfyConfig(
            defaults=load_default_config(),
            file_path=resolved_path,
            prefix=env_prefix,
            overrides_dict=overrides,
        )
    except Exception as e:
        raise ConfigError(f"llmrelay configuration loading failed: {e}")
    logger.debug(f"Configuration layers loaded (file={config_file_path}, env_prefix={env_prefix}).")
    return store


def load_config(
    config_file_path: str | Path | None = None,
    env_prefix: str | None = DEFAULT_ENV_PREFIX,
    overrides: dict[str, Any] | None = None,
) -> RelayConfig:
    """
    Loads and validates the complete llmrelay configuration.

    Raises:
        ConfigError: If loading fails or a section violates its schema.
    """
    store = load_config_store(config_file_path, env_prefix, overrides)
    return config_from_store(store)


def config_from_store(store: ConfigStore) -> RelayConfig:
    """Validates an already built store, wrapping schema errors in ``ConfigError``."""
    try:
        return RelayConfig.from_store(store)
    except ValueError as e:
        raise ConfigError(f"Invalid llmrelay configuration: {e}")


__all__ = [
    "DEFAULT_ENV_PREFIX",
    "config_from_store",
    "load_config",
    "load_config_store",
    "load_default_config",
]
