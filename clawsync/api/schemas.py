"""Pydantic schemas for the FastAPI endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from clawsync.models import ModelProvider


class ChatRequest(BaseModel):
    """Incoming chat message from SyncBoard or an API client.

    Message length is enforced by the admission guard (after rate limits),
    not here, so that every refusal uses the same response shape.
    """

    message: str = Field(..., min_length=1, description="The user's message")
    session_id: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Client session identifier, used as the rate-limit key",
    )
    thread_id: str | None = Field(
        default=None, description="Thread to continue; omit to start a new one",
    )


class ChatResponse(BaseModel):
    """Reply or refusal; exactly one of ``response`` / ``error`` is set."""

    response: str | None = None
    error: str | None = None
    thread_id: str | None = None


class ApiChatResponse(ChatResponse):
    tokens_used: int | None = None
    input_tokens: int | None = None
    output_tokens: int | None = None


class HistoryMessage(BaseModel):
    role: str
    content: str


class HistoryResponse(BaseModel):
    thread_id: str
    messages: list[HistoryMessage]


class AgentConfigUpdate(BaseModel):
    """Partial update of the agent config; omitted fields are unchanged."""

    model_provider: ModelProvider | None = None
    model: str | None = Field(default=None, min_length=1)
    fallback_provider: ModelProvider | None = None
    fallback_model: str | None = None
    soul_document: str | None = None
    system_prompt: str | None = None

    @field_validator("model_provider", "model")
    @classmethod
    def _not_null(cls, value):
        # omitted is fine; an explicit null is not
        if value is None:
            raise ValueError("must not be null")
        return value


class ChannelUpsert(BaseModel):
    display_name: str = Field(..., min_length=1)
    enabled: bool | None = None
    rate_limit_per_minute: int | None = Field(default=None, ge=1)
    webhook_url: str | None = None
    metadata: str | None = None


class WebhookSetupRequest(BaseModel):
    webhook_url: str = Field(..., min_length=1)


class OkResponse(BaseModel):
    ok: bool
    error: str | None = None
    username: str | None = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    service: str = "clawsync-agent"
