"""FastAPI route definitions for the ClawSync agent API."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, HTTPException, Request
from pydantic import ValidationError

from clawsync.agent import ChatOrchestrator, message_text
from clawsync.api.schemas import (
    AgentConfigUpdate,
    ApiChatResponse,
    ChannelUpsert,
    ChatRequest,
    ChatResponse,
    HealthResponse,
    HistoryMessage,
    HistoryResponse,
    OkResponse,
    WebhookSetupRequest,
)
from clawsync.channels.telegram import TelegramChannel, TelegramUpdate
from clawsync.models import ActivityRecord, AgentConfig, ChannelConfig, ChannelType, Visibility
from clawsync.providers import list_providers
from clawsync.services.analytics_client import SUPPORTED_DATE_RANGES, report_catalog
from clawsync.services.config_store import ChannelNotFoundError
from clawsync.services.telegram_client import TelegramAPIError, TelegramClient

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_agent(request: Request) -> ChatOrchestrator:
    """Retrieve the orchestrator from app state.

    It is created once during the FastAPI lifespan (see ``server.py``).
    """
    agent = getattr(request.app.state, "agent", None)
    if agent is None:
        raise HTTPException(
            status_code=503,
            detail="The agent is still starting up. Please try again in a moment.",
        )
    return agent


def _get_telegram_client(request: Request) -> TelegramClient:
    client = getattr(request.app.state, "telegram_client", None)
    if client is None or not client.is_configured:
        raise HTTPException(status_code=503, detail="Telegram is not configured.")
    return client


# ── Health ───────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse()


# ── Chat ─────────────────────────────────────────────────────────────


@router.post("/chat", response_model=ChatResponse, response_model_exclude_none=True)
async def chat(request: ChatRequest, http_request: Request):
    """Send a message to the agent and get a reply.

    Refusals and generation failures come back in the ``error`` field with
    HTTP 200; only a missing agent is an HTTP error.  The orchestration is
    blocking, so it runs in the default thread pool.
    """
    agent = _get_agent(http_request)
    result = await asyncio.to_thread(
        agent.send, request.message, request.session_id, request.thread_id,
    )
    if result.error:
        request_id = getattr(http_request.state, "request_id", "?")
        logger.info("[%s] Chat request refused or failed: %s", request_id, result.error)
    return ChatResponse(response=result.response, error=result.error, thread_id=result.thread_id)


@router.post("/v1/chat", response_model=ApiChatResponse, response_model_exclude_none=True)
async def api_chat(request: ChatRequest, http_request: Request):
    """HTTP API variant of ``/chat`` that also reports token usage."""
    agent = _get_agent(http_request)
    result = await asyncio.to_thread(
        agent.api_send, request.message, request.session_id, request.thread_id,
    )
    if result.error:
        request_id = getattr(http_request.state, "request_id", "?")
        logger.info("[%s] API chat request refused or failed: %s", request_id, result.error)
    return ApiChatResponse(**result.model_dump())


@router.get("/threads/{thread_id}/messages", response_model=HistoryResponse)
async def thread_history(thread_id: str, http_request: Request):
    agent = _get_agent(http_request)
    messages = [
        HistoryMessage(role=message.type, content=message_text(message))
        for message in agent.get_history(thread_id)
    ]
    return HistoryResponse(thread_id=thread_id, messages=messages)


# ── Agent config ─────────────────────────────────────────────────────


@router.get("/config/agent", response_model=AgentConfig | None)
async def get_agent_config(http_request: Request):
    return _get_agent(http_request).store.get_config()


@router.put("/config/agent", response_model=AgentConfig)
async def update_agent_config(update: AgentConfigUpdate, http_request: Request):
    """Patch the agent config; takes effect on the next message."""
    store = _get_agent(http_request).store
    changes = update.model_dump(exclude_unset=True, mode="json")
    try:
        return store.update_config(**changes)
    except ValidationError as e:
        raise HTTPException(
            status_code=422, detail=e.errors(include_url=False, include_context=False, include_input=False),
        ) from e


@router.get("/config/providers")
async def get_providers():
    return list_providers()


# ── Channels ─────────────────────────────────────────────────────────


@router.get("/channels", response_model=list[ChannelConfig])
async def list_channels(http_request: Request):
    return _get_agent(http_request).store.list_channels()


@router.get("/channels/enabled", response_model=list[ChannelConfig])
async def list_enabled_channels(http_request: Request):
    return _get_agent(http_request).store.list_enabled_channels()


@router.post("/channels/seed", response_model=list[ChannelConfig])
async def seed_channels(http_request: Request):
    return _get_agent(http_request).store.seed_channels()


@router.get("/channels/{channel_type}", response_model=ChannelConfig)
async def get_channel(channel_type: ChannelType, http_request: Request):
    channel = _get_agent(http_request).store.get_channel(channel_type.value)
    if channel is None:
        raise HTTPException(status_code=404, detail="Channel not found")
    return channel


@router.put("/channels/{channel_type}", response_model=ChannelConfig)
async def upsert_channel(channel_type: ChannelType, body: ChannelUpsert, http_request: Request):
    return _get_agent(http_request).store.upsert_channel(
        channel_type.value,
        body.display_name,
        enabled=body.enabled,
        rate_limit_per_minute=body.rate_limit_per_minute,
        webhook_url=body.webhook_url,
        metadata=body.metadata,
    )


@router.post("/channels/{channel_type}/toggle", response_model=ChannelConfig)
async def toggle_channel(channel_type: ChannelType, http_request: Request):
    try:
        return _get_agent(http_request).store.toggle_channel(channel_type.value)
    except ChannelNotFoundError as e:
        raise HTTPException(status_code=404, detail="Channel not found") from e


@router.delete("/channels/{channel_type}", status_code=204)
async def remove_channel(channel_type: ChannelType, http_request: Request):
    try:
        _get_agent(http_request).store.remove_channel(channel_type.value)
    except ChannelNotFoundError as e:
        raise HTTPException(status_code=404, detail="Channel not found") from e


# ── Analytics ────────────────────────────────────────────────────────


@router.get("/analytics/reports")
async def list_analytics_reports():
    """Report names and date ranges the getAnalytics tool understands."""
    return {"reports": report_catalog(), "date_ranges": SUPPORTED_DATE_RANGES}


# ── Activity ─────────────────────────────────────────────────────────


@router.get("/activity", response_model=list[ActivityRecord])
async def recent_activity(
    http_request: Request, visibility: Visibility | None = None, limit: int = 50,
):
    return _get_agent(http_request).activity_log.recent(limit=limit, visibility=visibility)


# ── Telegram ─────────────────────────────────────────────────────────


@router.post("/telegram/webhook", response_model=OkResponse, response_model_exclude_none=True)
async def telegram_webhook(update: TelegramUpdate, http_request: Request):
    """Receive one update from Telegram and answer it."""
    channel: TelegramChannel | None = getattr(http_request.app.state, "telegram", None)
    if channel is None:
        raise HTTPException(status_code=503, detail="Telegram is not configured.")
    await asyncio.to_thread(channel.handle_update, update)
    return OkResponse(ok=True)


@router.post("/telegram/setup-webhook", response_model=OkResponse, response_model_exclude_none=True)
async def telegram_setup_webhook(body: WebhookSetupRequest, http_request: Request):
    client = _get_telegram_client(http_request)
    try:
        await asyncio.to_thread(client.set_webhook, body.webhook_url)
    except TelegramAPIError as e:
        return OkResponse(ok=False, error=str(e))
    return OkResponse(ok=True)


@router.get("/telegram/me", response_model=OkResponse, response_model_exclude_none=True)
async def telegram_get_me(http_request: Request):
    """Verify the bot token by asking Telegram who we are."""
    client = _get_telegram_client(http_request)
    try:
        me = await asyncio.to_thread(client.get_me)
    except TelegramAPIError as e:
        return OkResponse(ok=False, error=str(e))
    return OkResponse(ok=True, username=me.get("username"))
