# tests/providers/test_registry.py
"""
Tests for the provider registry.

Covers loading from configuration sections through factories, lookup and
availability rules, status reporting and shutdown.
"""

import pytest

from llmrelay.exceptions import UnknownProviderError
from llmrelay.providers.registry import ProviderRegistry

from conftest import FakeProvider


def _factory(name, configured=True):
    def build(config, log_raw_payloads):
        return FakeProvider(config.get("name", name), configured=configured)
    return build


def _broken_factory(config, log_raw_payloads):
    raise RuntimeError("SDK missing")


class TestLoading:
    """Tests for configuration-driven loading."""

    def test_loads_sections_through_factories(self) -> None:
        registry = ProviderRegistry(
            {"openai": {}, "Backup": {"type": "openai", "name": "backup"}},
            default_provider="openai",
            factories={"openai": _factory("openai")},
        )
        assert registry.get_available_providers() == ["openai", "backup"]

    def test_unknown_type_is_skipped(self) -> None:
        """Unregistered types are recorded, not fatal."""
        registry = ProviderRegistry({"mystery": {"type": "nope"}}, factories={})
        assert registry.get_available_providers() == []
        status = registry.get_providers_status()
        assert status["mystery"]["configured"] is False
        assert "nope" in status["mystery"]["error"]

    def test_failing_factory_is_recorded(self) -> None:
        registry = ProviderRegistry(
            {"openai": {}, "google": {}},
            factories={"openai": _broken_factory, "google": _factory("google")},
        )
        assert registry.get_available_providers() == ["google"]
        with pytest.raises(UnknownProviderError, match="SDK missing"):
            registry.get_provider("openai")

    def test_non_dict_section_is_skipped(self) -> None:
        registry = ProviderRegistry({"openai": "sk-..."}, factories={"openai": _factory("openai")})
        assert registry.get_available_providers() == []

    def test_default_factories_cover_known_providers(self) -> None:
        """The built-in factory table knows the three SDK-backed providers."""
        from llmrelay.providers.registry import PROVIDER_FACTORIES

        assert {"openai", "anthropic", "google", "gemini"} <= set(PROVIDER_FACTORIES)


class TestLookup:
    """Tests for lookups and availability."""

    def test_get_provider_and_default(self, registry, openai_like) -> None:
        assert registry.get_provider("OpenAI") is openai_like
        assert registry.get_provider() is openai_like
        assert registry.get_default_provider() is openai_like
        assert registry.default_provider_name == "openai"

    def test_unknown_provider(self, registry) -> None:
        with pytest.raises(UnknownProviderError) as exc_info:
            registry.get_provider("mistral")
        assert exc_info.value.code == "unknown_provider"

    def test_availability_requires_configuration(self, openai_like) -> None:
        """A registered but unconfigured provider is not available."""
        idle = FakeProvider("google", configured=False)
        registry = ProviderRegistry.from_providers([idle, openai_like])
        assert registry.is_provider_available("openai") is True
        assert registry.is_provider_available("google") is False
        assert registry.is_provider_available("mistral") is False
        assert registry.get_configured_providers() == ["openai"]

    def test_from_providers_defaults_to_first(self, google_like, openai_like) -> None:
        registry = ProviderRegistry.from_providers([google_like, openai_like])
        assert registry.default_provider_name == "google"

    def test_register_provider_replaces(self, registry) -> None:
        replacement = FakeProvider("openai", chat_models=("gpt-4o",))
        registry.register_provider("openai", replacement)
        assert registry.get_provider("openai") is replacement


class TestStatusAndClose:
    """Tests for status reporting and shutdown."""

    def test_status(self, registry) -> None:
        status = registry.get_providers_status()
        assert set(status) == {"openai", "anthropic", "google"}
        assert status["openai"]["default"] is True
        assert status["anthropic"]["supports_embeddings"] is False
        assert "gpt-4o-mini" in status["openai"]["models"]

    @pytest.mark.asyncio
    async def test_close_all(self, registry, openai_like, anthropic_like, google_like) -> None:
        await registry.close()
        assert openai_like.closed and anthropic_like.closed and google_like.closed

    @pytest.mark.asyncio
    async def test_close_survives_failing_provider(self, openai_like) -> None:
        """One provider failing to close does not stop the others."""
        failing = FakeProvider("google")

        async def boom() -> None:
            raise RuntimeError("close failed")

        failing.close = boom
        registry = ProviderRegistry.from_providers([failing, openai_like])
        await registry.close()
        assert openai_like.closed is True
