"""Provider adapter registry.

Maps a provider identifier and model id to a LangChain chat model.  Every
provider has exactly one constructor in :data:`PROVIDER_CONSTRUCTORS`;
the OpenAI-compatible gateways (OpenRouter, OpenCode Zen, xAI and any
``custom`` endpoint) all go through ``ChatOpenAI`` with a different base
URL.

An unknown provider string never raises: it resolves to the default
Anthropic model.  A malformed ``custom`` model id, or a client that
refuses to construct (typically a missing API key), raises
:class:`ModelConstructionError` so the model resolver can apply its
fallback policy.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from langchain_anthropic import ChatAnthropic
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_openai import ChatOpenAI

from clawsync.config import (
    ANTHROPIC_API_KEY_ENV,
    APP_TITLE,
    APP_URL,
    CUSTOM_API_KEY_ENV,
    CUSTOM_MODEL_SEPARATOR,
    DEFAULT_MODEL_NAME,
    GEMINI_API_KEY_ENV,
    MAX_OUTPUT_TOKENS,
    OPENAI_API_KEY_ENV,
    OPENCODE_API_KEY_ENV,
    OPENCODE_ZEN_BASE_URL,
    OPENROUTER_API_KEY_ENV,
    OPENROUTER_BASE_URL,
    XAI_API_KEY_ENV,
    XAI_BASE_URL,
    get_secret,
)
from clawsync.models import ModelProvider

logger = logging.getLogger(__name__)


class ModelConstructionError(Exception):
    """Raised when a model handle cannot be built for a provider/model pair."""

    def __init__(self, provider: str, model_id: str, reason: str):
        self.provider = provider
        self.model_id = model_id
        super().__init__(f"Cannot construct {provider} model {model_id!r}: {reason}")


@dataclass(frozen=True)
class ModelHandle:
    """A ready-to-call chat model plus the routing facts it was built from."""

    provider: str
    model_id: str
    llm: BaseChatModel
    base_url: str | None = None


# ── Helpers ─────────────────────────────────────────────────────────


def _api_key_kwargs(env_name: str, param: str = "api_key") -> dict[str, Any]:
    """Pass an API key only when one is configured.

    Leaving it out lets the client apply its own environment lookup (and
    its own error when nothing is found).
    """
    key = get_secret(env_name)
    return {param: key} if key else {}


def _openai_compatible(
    provider: ModelProvider,
    model_id: str,
    base_url: str,
    key_env: str,
    headers: dict[str, str] | None = None,
) -> ModelHandle:
    """Build a ChatOpenAI client pointed at a gateway with the gateway's own key.

    The key is always passed explicitly: without it ChatOpenAI would read
    ``OPENAI_API_KEY`` and send that secret to the gateway host.
    """
    api_key = get_secret(key_env)
    if not api_key:
        raise ModelConstructionError(provider.value, model_id, f"{key_env} is not set")
    llm = ChatOpenAI(
        model=model_id,
        base_url=base_url,
        max_tokens=MAX_OUTPUT_TOKENS,
        default_headers=headers,
        api_key=api_key,
    )
    return ModelHandle(provider.value, model_id, llm, base_url=base_url)


# ── One constructor per provider ────────────────────────────────────


def _build_anthropic(model_id: str) -> ModelHandle:
    llm = ChatAnthropic(
        model=model_id,
        max_tokens=MAX_OUTPUT_TOKENS,
        **_api_key_kwargs(ANTHROPIC_API_KEY_ENV),
    )
    return ModelHandle(ModelProvider.ANTHROPIC.value, model_id, llm)


def _build_openai(model_id: str) -> ModelHandle:
    llm = ChatOpenAI(
        model=model_id,
        max_tokens=MAX_OUTPUT_TOKENS,
        **_api_key_kwargs(OPENAI_API_KEY_ENV),
    )
    return ModelHandle(ModelProvider.OPENAI.value, model_id, llm)


def _build_google(model_id: str) -> ModelHandle:
    # GEMINI_API_KEY instead of the client's default GOOGLE_API_KEY
    llm = ChatGoogleGenerativeAI(
        model=model_id,
        max_output_tokens=MAX_OUTPUT_TOKENS,
        **_api_key_kwargs(GEMINI_API_KEY_ENV, param="google_api_key"),
    )
    return ModelHandle(ModelProvider.GOOGLE.value, model_id, llm)


def _build_openrouter(model_id: str) -> ModelHandle:
    return _openai_compatible(
        ModelProvider.OPENROUTER,
        model_id,
        OPENROUTER_BASE_URL,
        OPENROUTER_API_KEY_ENV,
        headers={"HTTP-Referer": APP_URL, "X-Title": APP_TITLE},
    )


def _build_opencode_zen(model_id: str) -> ModelHandle:
    return _openai_compatible(
        ModelProvider.OPENCODE_ZEN, model_id, OPENCODE_ZEN_BASE_URL, OPENCODE_API_KEY_ENV,
    )


def _build_xai(model_id: str) -> ModelHandle:
    return _openai_compatible(ModelProvider.XAI, model_id, XAI_BASE_URL, XAI_API_KEY_ENV)


def parse_custom_model_id(model_id: str) -> tuple[str, str]:
    """Split ``"<baseUrl>::<modelId>"`` into its two halves."""
    base_url, sep, actual_model = model_id.partition(CUSTOM_MODEL_SEPARATOR)
    base_url, actual_model = base_url.strip(), actual_model.strip()
    if not sep or not base_url or not actual_model:
        raise ModelConstructionError(
            ModelProvider.CUSTOM.value,
            model_id,
            f"expected '<baseUrl>{CUSTOM_MODEL_SEPARATOR}<modelId>'",
        )
    return base_url, actual_model


def _build_custom(model_id: str) -> ModelHandle:
    base_url, actual_model = parse_custom_model_id(model_id)
    return _openai_compatible(ModelProvider.CUSTOM, actual_model, base_url, CUSTOM_API_KEY_ENV)


PROVIDER_CONSTRUCTORS: dict[ModelProvider, Callable[[str], ModelHandle]] = {
    ModelProvider.ANTHROPIC: _build_anthropic,
    ModelProvider.OPENAI: _build_openai,
    ModelProvider.GOOGLE: _build_google,
    ModelProvider.OPENROUTER: _build_openrouter,
    ModelProvider.OPENCODE_ZEN: _build_opencode_zen,
    ModelProvider.CUSTOM: _build_custom,
    ModelProvider.XAI: _build_xai,
}


# ── Public API ──────────────────────────────────────────────────────


def default_model() -> ModelHandle:
    """The system default: Anthropic with :data:`DEFAULT_MODEL_NAME`."""
    return _build_anthropic(DEFAULT_MODEL_NAME)


def construct_model(provider: str, model_id: str) -> ModelHandle:
    """Build the model handle for *provider* / *model_id*.

    Unknown providers degrade to :func:`default_model`.  Any failure for a
    known provider is raised as :class:`ModelConstructionError`.
    """
    try:
        variant = ModelProvider(provider)
    except ValueError:
        logger.warning(
            "Unknown model provider %r, using default %s", provider, DEFAULT_MODEL_NAME,
        )
        return default_model()

    try:
        return PROVIDER_CONSTRUCTORS[variant](model_id)
    except ModelConstructionError:
        raise
    except Exception as exc:
        raise ModelConstructionError(provider, model_id, str(exc)) from exc


_PROVIDER_INFO: dict[ModelProvider, tuple[str, str]] = {
    ModelProvider.ANTHROPIC: ("Anthropic", "Claude models via direct API"),
    ModelProvider.OPENAI: ("OpenAI", "GPT models via direct API"),
    ModelProvider.GOOGLE: ("Google AI (Gemini)", "Gemini models via Google AI Studio"),
    ModelProvider.OPENROUTER: ("OpenRouter", "Access 300+ models via unified API"),
    ModelProvider.OPENCODE_ZEN: ("OpenCode Zen", "Curated, tested models"),
    ModelProvider.CUSTOM: ("Custom Provider", "Any OpenAI-compatible API"),
    ModelProvider.XAI: ("xAI", "Grok models via the xAI API"),
}


def list_providers() -> list[dict[str, str]]:
    """Describe every selectable provider for the model-selection form."""
    return [
        {"id": provider.value, "name": name, "description": description}
        for provider, (name, description) in _PROVIDER_INFO.items()
    ]
