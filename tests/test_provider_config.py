"""Tests for the static provider registry."""

import dataclasses

import pytest

from knowledge_poster.core.types import ModelTier, Provider
from knowledge_poster.llm.provider_config import (
    PROVIDER_CONFIGS,
    get_model_ids,
    get_model_info,
    get_provider_config,
    resolve_provider,
)


class TestProviderLookup:
    """Tests for get_provider_config()."""

    def test_every_provider_has_config(self):
        """
        Given: The four supported providers
        When: Each is looked up
        Then: A config with a default model from its own catalog is returned
        """
        for provider in Provider:
            config = get_provider_config(provider)
            assert config is not None
            assert config.default_model in [m.id for m in config.models]

    def test_lookup_accepts_identifier_strings(self):
        assert get_provider_config("anthropic").name == "Anthropic Claude"
        assert get_provider_config(" XAI ").name == "xAI Grok"

    def test_unknown_provider_returns_none(self):
        assert get_provider_config("mistral") is None
        assert resolve_provider("mistral") is None

    def test_registry_is_read_only(self):
        with pytest.raises(TypeError):
            PROVIDER_CONFIGS[Provider.OPENAI] = None

        with pytest.raises(dataclasses.FrozenInstanceError):
            PROVIDER_CONFIGS[Provider.OPENAI].default_model = "other"


class TestModelLookup:
    """Tests for get_model_info() and get_model_ids()."""

    def test_known_model_descriptor(self):
        info = get_model_info(Provider.XAI, "grok-2-vision-1212")

        assert info.tier is ModelTier.VISION
        assert info.supports_vision is True
        assert info.context_window == 32768

    def test_model_from_other_provider_is_absent(self):
        assert get_model_info(Provider.OPENAI, "gemini-2.5-flash") is None

    def test_unknown_provider_has_no_models(self):
        assert get_model_info("unknown", "gpt-4o") is None
        assert get_model_ids("unknown") == []

    def test_model_ids_keep_catalog_order(self):
        assert get_model_ids(Provider.OPENAI)[:2] == ["gpt-5.1", "gpt-5-pro"]

