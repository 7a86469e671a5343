# src/llmrelay/config/__init__.py
"""
Configuration package for the llmrelay library.

This package handles the loading and validation of configuration settings,
leveraging the `confy` library for layering and a packaged default TOML file.

Configuration files:
    - default_config.toml: Packaged defaults
    - Custom config: Specified via LLMRelay.create(config_file_path=...)

Environment variables:
    - Prefix: LLMRELAY_
    - Nested keys use double underscores: LLMRELAY_RETRY__MAX_RETRIES
"""

from .loader import config_from_store, load_config, load_config_store, load_default_config
from .models import (
    ConfigStore,
    EmbeddingConfig,
    FallbackConfig,
    RelayConfig,
    RetryPolicy,
    RouteTarget,
    RoutingConfig,
)

__all__ = [
    "ConfigStore",
    "EmbeddingConfig",
    "FallbackConfig",
    "RelayConfig",
    "RetryPolicy",
    "RouteTarget",
    "RoutingConfig",
    "config_from_store",
    "load_config",
    "load_config_store",
    "load_default_config",
]
