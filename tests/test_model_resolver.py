"""Tests for primary / fallback / default model selection."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from clawsync.config import DEFAULT_MODEL_NAME
from clawsync.model_resolver import resolve_model
from clawsync.models import AgentConfig
from clawsync.providers import ModelConstructionError, ModelHandle


class StaticConfig:
    def __init__(self, config: AgentConfig | None):
        self._config = config

    def get_config(self) -> AgentConfig | None:
        return self._config


def _fake_construct(broken: set[str]):
    """construct_model stand-in that fails for the given providers."""

    def _construct(provider: str, model_id: str) -> ModelHandle:
        if provider in broken:
            raise ModelConstructionError(provider, model_id, "no key")
        return ModelHandle(provider, model_id, MagicMock())

    return _construct


@pytest.fixture
def default_handle():
    handle = ModelHandle("anthropic", DEFAULT_MODEL_NAME, MagicMock())
    with patch("clawsync.model_resolver.default_model", return_value=handle):
        yield handle


class TestResolveModel:
    def test_no_config_uses_default_not_fallback(self, default_handle):
        resolved = resolve_model(StaticConfig(None))
        assert resolved.handle is default_handle
        assert resolved.is_fallback is False

    def test_primary(self, default_handle):
        config = AgentConfig(model_provider="openai", model="gpt-4o")
        with patch("clawsync.model_resolver.construct_model", _fake_construct(set())):
            resolved = resolve_model(StaticConfig(config))
        assert (resolved.provider, resolved.model_id) == ("openai", "gpt-4o")
        assert resolved.is_fallback is False

    def test_fallback_when_primary_fails(self, default_handle):
        config = AgentConfig(
            model_provider="openai",
            model="gpt-4o",
            fallback_provider="xai",
            fallback_model="grok-2",
        )
        with patch("clawsync.model_resolver.construct_model", _fake_construct({"openai"})):
            resolved = resolve_model(StaticConfig(config))
        assert (resolved.provider, resolved.model_id) == ("xai", "grok-2")
        assert resolved.is_fallback is True

    def test_default_when_no_fallback_configured(self, default_handle):
        config = AgentConfig(model_provider="openai", model="gpt-4o")
        with patch("clawsync.model_resolver.construct_model", _fake_construct({"openai"})):
            resolved = resolve_model(StaticConfig(config))
        assert resolved.handle is default_handle
        assert resolved.is_fallback is True

    def test_half_configured_fallback_is_ignored(self, default_handle):
        config = AgentConfig(model_provider="openai", model="gpt-4o", fallback_provider="xai")
        construct = MagicMock(side_effect=_fake_construct({"openai"}))
        with patch("clawsync.model_resolver.construct_model", construct):
            resolved = resolve_model(StaticConfig(config))
        assert construct.call_count == 1
        assert resolved.handle is default_handle

    def test_default_when_fallback_also_fails(self, default_handle):
        config = AgentConfig(
            model_provider="openai",
            model="gpt-4o",
            fallback_provider="xai",
            fallback_model="grok-2",
        )
        with patch(
            "clawsync.model_resolver.construct_model", _fake_construct({"openai", "xai"}),
        ):
            resolved = resolve_model(StaticConfig(config))
        assert resolved.handle is default_handle
        assert resolved.is_fallback is True

    def test_custom_without_separator_falls_back(self, default_handle):
        config = AgentConfig(
            model_provider="custom",
            model="no-separator",
            fallback_provider="anthropic",
            fallback_model="claude-3-5-haiku-latest",
        )
        with patch("clawsync.providers.ChatAnthropic"):
            resolved = resolve_model(StaticConfig(config))
        assert resolved.provider == "anthropic"
        assert resolved.model_id == "claude-3-5-haiku-latest"
        assert resolved.is_fallback is True
