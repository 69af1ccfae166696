"""Centralized configuration for the ClawSync agent service.

Secret resolution order (per variable):
  1. Environment variable / ``.env`` file  (local dev)
  2. AWS SSM Parameter Store SecureString  (when ``AWS_EXECUTION_ENV`` is set)

The SSM paths follow the convention ``/clawsync/<VARIABLE_NAME>``.

Provider credentials and the GA4 triple are looked up at call time through
:func:`get_secret` rather than frozen at import, so that a key added to the
environment (or SSM) takes effect on the next request.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# ── Feature flag: running on AWS? ────────────────────────────────────
_ON_AWS = bool(os.getenv("AWS_EXECUTION_ENV"))


# ── Secret resolution ────────────────────────────────────────────────

def _get_ssm_parameter(name: str) -> str | None:
    """Fetch a SecureString from SSM Parameter Store.

    Returns ``None`` if the parameter does not exist or boto3 is
    unavailable.  Errors are logged but never raised so that local-dev
    fallback still works.
    """
    try:
        import boto3  # noqa: PLC0415  lazy: only needed on AWS

        ssm = boto3.client("ssm")
        resp = ssm.get_parameter(Name=f"/clawsync/{name}", WithDecryption=True)
        return resp["Parameter"]["Value"]
    except Exception:
        logger.debug("SSM lookup for %s failed (expected locally)", name)
        return None


def get_secret(name: str) -> str | None:
    """Return a secret from env-var or SSM, or ``None`` when it is not set.

    Placeholder values copied from ``.env.example`` (``your_...``) count
    as unset.
    """
    value = os.getenv(name)
    if value and not value.startswith("your_"):
        return value

    if _ON_AWS:
        return _get_ssm_parameter(name)
    return None


# ── Models ──────────────────────────────────────────────────────────
DEFAULT_PROVIDER: str = "anthropic"
DEFAULT_MODEL_NAME: str = "claude-sonnet-4-20250514"
MAX_OUTPUT_TOKENS: int = int(os.getenv("MAX_OUTPUT_TOKENS", "4096"))

# API key environment variable per provider
ANTHROPIC_API_KEY_ENV = "ANTHROPIC_API_KEY"
OPENAI_API_KEY_ENV = "OPENAI_API_KEY"
GEMINI_API_KEY_ENV = "GEMINI_API_KEY"  # not GOOGLE_API_KEY, see providers.py
OPENROUTER_API_KEY_ENV = "OPENROUTER_API_KEY"
OPENCODE_API_KEY_ENV = "OPENCODE_API_KEY"
CUSTOM_API_KEY_ENV = "CUSTOM_API_KEY"
XAI_API_KEY_ENV = "XAI_API_KEY"

# OpenAI-compatible gateways
OPENROUTER_BASE_URL: str = "https://openrouter.ai/api/v1"
OPENCODE_ZEN_BASE_URL: str = "https://opencode.ai/zen/v1"
XAI_BASE_URL: str = "https://api.x.ai/v1"
CUSTOM_MODEL_SEPARATOR: str = "::"

# Attribution headers sent to OpenRouter
APP_URL: str = "https://clawsync.dev"
APP_TITLE: str = "ClawSync"

# ── Admission ───────────────────────────────────────────────────────
MAX_MESSAGE_LENGTH: int = 4000
RATE_LIMIT_SESSION_PER_MINUTE: int = int(os.getenv("RATE_LIMIT_SESSION_PER_MINUTE", "10"))
RATE_LIMIT_GLOBAL_PER_MINUTE: int = int(os.getenv("RATE_LIMIT_GLOBAL_PER_MINUTE", "200"))

# ── Google Analytics 4 ──────────────────────────────────────────────
GA4_PROPERTY_ID_ENV = "GA4_PROPERTY_ID"
GA4_SERVICE_ACCOUNT_EMAIL_ENV = "GA4_SERVICE_ACCOUNT_EMAIL"
GA4_PRIVATE_KEY_ENV = "GA4_PRIVATE_KEY"
GA4_TOKEN_URL: str = "https://oauth2.googleapis.com/token"
GA4_DATA_API_URL: str = "https://analyticsdata.googleapis.com/v1beta"
GA4_SCOPE: str = "https://www.googleapis.com/auth/analytics.readonly"


def analytics_configured() -> bool:
    """True when the full GA4 credential triple is available."""
    return all(
        get_secret(name)
        for name in (GA4_PROPERTY_ID_ENV, GA4_SERVICE_ACCOUNT_EMAIL_ENV, GA4_PRIVATE_KEY_ENV)
    )


# ── Telegram ────────────────────────────────────────────────────────
TELEGRAM_BOT_TOKEN_ENV = "TELEGRAM_BOT_TOKEN"
TELEGRAM_API_URL: str = "https://api.telegram.org"

# ── Persistence ─────────────────────────────────────────────────────
# Optional JSON file for agent + channel config; in-memory when unset.
STATE_PATH: str | None = os.getenv("CLAWSYNC_STATE_PATH") or None

# ── Server ──────────────────────────────────────────────────────────
SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = int(os.getenv("SERVER_PORT", "8000"))
CORS_ORIGINS: list[str] = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:5173",
).split(",")
