"""Domain models shared by the store, the orchestrator and the API."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field


def _now() -> datetime:
    return datetime.now(UTC)


class ModelProvider(str, Enum):
    """Upstream language-model vendors and gateways the agent can route to."""

    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    GOOGLE = "google"
    OPENROUTER = "openrouter"
    OPENCODE_ZEN = "opencode-zen"
    CUSTOM = "custom"
    XAI = "xai"


class ChannelType(str, Enum):
    TELEGRAM = "telegram"
    WHATSAPP = "whatsapp"
    SLACK = "slack"
    DISCORD = "discord"
    EMAIL = "email"


class Visibility(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"


class AgentConfig(BaseModel):
    """The single configuration row that governs every chat request.

    ``model_provider`` is kept as a plain string: a value written by an
    older build (or by hand) must still load, and the provider registry
    degrades unknown providers to the default model.

    For the ``custom`` provider ``model`` is ``"<baseUrl>::<modelId>"``.
    """

    model_provider: str = "anthropic"
    model: str = "claude-sonnet-4-20250514"
    fallback_provider: str | None = None
    fallback_model: str | None = None
    soul_document: str | None = None
    system_prompt: str | None = None
    updated_at: datetime = Field(default_factory=_now)

    @property
    def has_fallback(self) -> bool:
        """Fallback only activates when both halves of the pair are set."""
        return bool(self.fallback_provider and self.fallback_model)


class ChannelConfig(BaseModel):
    """Per-channel integration settings, keyed by ``channel_type``."""

    channel_type: str
    display_name: str
    enabled: bool = False
    rate_limit_per_minute: int = 20
    webhook_url: str | None = None
    metadata: str | None = None
    updated_at: datetime = Field(default_factory=_now)


class ActivityRecord(BaseModel):
    action_type: str
    summary: str
    visibility: Visibility = Visibility.PRIVATE
    channel: str | None = None
    created_at: datetime = Field(default_factory=_now)


class ChatResult(BaseModel):
    """Terminal outcome of one chat request.

    Exactly one of ``response`` / ``error`` is set.  Token counts are only
    filled in by the HTTP API entry point.
    """

    response: str | None = None
    thread_id: str | None = None
    error: str | None = None
    tokens_used: int | None = None
    input_tokens: int | None = None
    output_tokens: int | None = None

    @property
    def ok(self) -> bool:
        return self.error is None
