# src/llmrelay/providers/registry.py
"""
Provider Registry for llmrelay.

Maps provider ids to factories and instantiates every provider declared in
the ``[providers]`` configuration section once, at construction time. The
router, the fallback orchestrator and the embedding service only ever look
providers up here; none of them constructs a provider itself.

Usage:
    registry = ProviderRegistry(relay_config.providers, default_provider="openai")
    provider = registry.get_provider("anthropic")
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from ..exceptions import UnknownProviderError
from .anthropic_provider import AnthropicProvider
from .base import BaseProvider
from .gemini_provider import GeminiProvider
from .openai_provider import OpenAIProvider

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[Dict[str, Any], bool], BaseProvider]

# --- Mapping from config provider type to factory ---
PROVIDER_FACTORIES: Dict[str, ProviderFactory] = {
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
    "google": GeminiProvider,
    "gemini": GeminiProvider,
}
# --- End Mapping ---


class ProviderRegistry:
    """
    Owns the provider instances used by the orchestration layer.

    A provider is *available* when it was instantiated successfully and
    reports itself as configured (credentials present). Instances failing to
    initialise are logged and listed by :meth:`get_providers_status`; they
    never abort registry construction.
    """
    _providers: Dict[str, BaseProvider]
    _load_errors: Dict[str, str]
    _default_provider_name: str

    def __init__(
        self,
        providers_config: Optional[Mapping[str, Dict[str, Any]]] = None,
        default_provider: str = "openai",
        factories: Optional[Mapping[str, ProviderFactory]] = None,
        log_raw_payloads: bool = False,
    ):
        """
        Initializes the registry and loads configured providers.

        Args:
            providers_config: The ``[providers]`` section: section name -> settings.
                              A ``type`` key selects the factory; the section name
                              is used when it is absent.
            default_provider: Name of the provider returned by :meth:`get_default_provider`.
            factories: Factory table replacing ``PROVIDER_FACTORIES``.
            log_raw_payloads: Passed to every provider instance.
        """
        self._providers = {}
        self._load_errors = {}
        self._factories: Dict[str, ProviderFactory] = dict(factories if factories is not None else PROVIDER_FACTORIES)
        self._default_provider_name = default_provider.lower()
        self._log_raw_payloads = log_raw_payloads
        self._load_configured_providers(providers_config or {})
        logger.info(
            f"ProviderRegistry initialized with providers {list(self._providers)}. "
            f"Default provider set to '{self._default_provider_name}'."
        )

    @classmethod
    def from_providers(
        cls,
        providers: Iterable[BaseProvider],
        default_provider: Optional[str] = None,
    ) -> "ProviderRegistry":
        """Builds a registry around already constructed provider instances."""
        providers = list(providers)
        if default_provider is None:
            default_provider = providers[0].get_name() if providers else "openai"
        registry = cls({}, default_provider=default_provider, factories={})
        for provider in providers:
            registry.register_provider(provider.get_name(), provider)
        return registry

    def _load_configured_providers(self, providers_config: Mapping[str, Dict[str, Any]]) -> None:
        for section_name, provider_config in providers_config.items():
            name = section_name.lower()
            if not isinstance(provider_config, dict):
                logger.warning(f"Configuration for provider '{name}' is not a valid dictionary. Skipping.")
                continue

            provider_type = str(provider_config.get("type", name)).lower()
            factory = self._factories.get(provider_type)
            if factory is None:
                logger.warning(f"Provider type '{provider_type}' (for section '{name}') is not registered. Skipping.")
                self._load_errors[name] = f"Unknown provider type '{provider_type}'"
                continue

            try:
                self._providers[name] = factory(provider_config, self._log_raw_payloads)
                logger.debug(f"Provider instance '{name}' (type: '{provider_type}') initialized.")
            except Exception as e:
                logger.error(f"Failed to initialize provider instance '{name}' (type: '{provider_type}'): {e}", exc_info=True)
                self._load_errors[name] = str(e)

        if not self._providers:
            logger.warning("No provider instances were successfully loaded after processing configuration.")

    def register_provider(self, name: str, provider: BaseProvider) -> None:
        """Adds or replaces a provider instance under ``name``."""
        self._providers[name.lower()] = provider
        self._load_errors.pop(name.lower(), None)
        logger.debug(f"Provider instance '{name.lower()}' registered.")

    def get_provider(self, name: Optional[str] = None) -> BaseProvider:
        """
        Gets a provider instance by name, or the default provider if name is None.

        Raises:
            UnknownProviderError: If no instance with that name was loaded.
        """
        target = name.lower() if name else self._default_provider_name
        provider = self._providers.get(target)
        if provider is None:
            reason = self._load_errors.get(target)
            message = f"Provider failed to initialize: {reason}." if reason else "Provider is not registered."
            raise UnknownProviderError(target, message)
        return provider

    def get_default_provider(self) -> BaseProvider:
        """Gets the instance of the configured default provider."""
        return self.get_provider(self._default_provider_name)

    @property
    def default_provider_name(self) -> str:
        return self._default_provider_name

    def is_provider_available(self, name: str) -> bool:
        """True if ``name`` is loaded and has its credentials configured."""
        provider = self._providers.get(name.lower())
        return provider is not None and provider.is_configured()

    def get_available_providers(self) -> List[str]:
        """Lists the names of all loaded provider instances, in configuration order."""
        return list(self._providers)

    def get_configured_providers(self) -> List[str]:
        """Lists the names of loaded providers that are ready to make API calls."""
        return [name for name, provider in self._providers.items() if provider.is_configured()]

    def get_providers_status(self) -> Dict[str, Dict[str, Any]]:
        """Returns per-provider configuration status, including failed initialisations."""
        status: Dict[str, Dict[str, Any]] = {}
        for name, provider in self._providers.items():
            status[name] = {**provider.get_config_status(), "default": name == self._default_provider_name}
        for name, error in self._load_errors.items():
            status[name] = {"name": name, "configured": False, "error": error, "default": name == self._default_provider_name}
        return status

    async def close(self) -> None:
        """Closes connections or cleans up resources for all loaded providers."""
        if not self._providers:
            return
        results = await asyncio.gather(
            *(provider.close() for provider in self._providers.values()),
            return_exceptions=True,
        )
        for name, result in zip(self._providers, results):
            if isinstance(result, Exception):
                logger.error(f"Error closing provider instance '{name}': {result}", exc_info=result)
        logger.info("Provider connections closure attempt complete.")
