"""FastAPI server for the ClawSync agent.

Run with:
    uv run uvicorn clawsync.server:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from clawsync.agent import create_clawsync_agent
from clawsync.api.routes import router
from clawsync.channels.telegram import TelegramChannel
from clawsync.config import CORS_ORIGINS, SERVER_HOST, SERVER_PORT
from clawsync.services.metrics import metrics
from clawsync.services.telegram_client import get_telegram_client

# ── Logging ──────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan: initialise / tear-down shared resources ────────────────
@asynccontextmanager
async def lifespan(application: FastAPI):
    """Start-up: build the orchestrator and the Telegram channel once.

    Both live in app state so every request shares the same rate-limit
    buckets, thread memory and activity log.
    """
    logger.info("Starting ClawSync agent…")
    agent = create_clawsync_agent()
    telegram_client = get_telegram_client()
    application.state.agent = agent
    application.state.telegram_client = telegram_client
    application.state.telegram = TelegramChannel(agent, telegram_client)
    if not telegram_client.is_configured:
        logger.info("Telegram bot token not set; webhook replies will fail until it is.")
    logger.info("Agent ready.")
    yield
    agent.activity_log.flush()
    metrics.flush()


# ── FastAPI application ──────────────────────────────────────────────
app = FastAPI(
    title="ClawSync Agent",
    description=(
        "Multi-provider chat agent with per-request model routing, "
        "fallback, rate limiting and a Telegram channel."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

# ── CORS (SyncBoard runs on a separate origin) ───────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Request-ID middleware ────────────────────────────────────────────
@app.middleware("http")
async def add_request_id(request: Request, call_next) -> Response:
    """Attach a request ID to every request for log correlation.

    A caller-supplied ``X-Request-ID`` is reused; otherwise one is minted.
    It is echoed back in the response headers.
    """
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    logger.info("[%s] %s %s", request_id, request.method, request.url.path)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# ── Register routes ──────────────────────────────────────────────────
app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "service": "ClawSync Agent",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/health",
    }


# ── CLI entry point ──────────────────────────────────────────────────

if __name__ == "__main__":
    logger.info("Starting ClawSync API server on %s:%d", SERVER_HOST, SERVER_PORT)
    uvicorn.run(
        "clawsync.server:app",
        host=SERVER_HOST,
        port=SERVER_PORT,
        reload=True,
    )
