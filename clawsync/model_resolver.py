"""Resolve the model handle for one chat request from the stored config."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from langchain_core.language_models.chat_models import BaseChatModel

from clawsync.models import AgentConfig
from clawsync.providers import (
    ModelConstructionError,
    ModelHandle,
    construct_model,
    default_model,
)

logger = logging.getLogger(__name__)


class ConfigSource(Protocol):
    def get_config(self) -> AgentConfig | None: ...


@dataclass(frozen=True)
class ResolvedModel:
    """The model chosen for a single request.  Built fresh every time."""

    handle: ModelHandle
    provider: str
    model_id: str
    is_fallback: bool

    @property
    def llm(self) -> BaseChatModel:
        return self.handle.llm


def _resolved(handle: ModelHandle, *, is_fallback: bool) -> ResolvedModel:
    return ResolvedModel(
        handle=handle,
        provider=handle.provider,
        model_id=handle.model_id,
        is_fallback=is_fallback,
    )


def resolve_model(store: ConfigSource) -> ResolvedModel:
    """Pick primary, fallback or default model, in that order.

    1. No config → default model, ``is_fallback=False``.
    2. Primary constructs → primary, ``is_fallback=False``.
    3. Primary fails and both fallback fields are set → fallback,
       ``is_fallback=True``.
    4. Otherwise (no fallback pair, or the fallback fails as well) →
       default model, ``is_fallback=True``.
    """
    config = store.get_config()
    if config is None:
        return _resolved(default_model(), is_fallback=False)

    try:
        return _resolved(
            construct_model(config.model_provider, config.model), is_fallback=False,
        )
    except ModelConstructionError as exc:
        logger.warning("Primary model unavailable: %s", exc)

    if config.has_fallback:
        try:
            handle = construct_model(config.fallback_provider, config.fallback_model)
            logger.info(
                "Using fallback model %s/%s", handle.provider, handle.model_id,
            )
            return _resolved(handle, is_fallback=True)
        except ModelConstructionError as exc:
            logger.error("Fallback model unavailable: %s", exc)

    logger.info("Using default model after primary failure")
    return _resolved(default_model(), is_fallback=True)
