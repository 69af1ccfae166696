"""HTTP client for the Telegram Bot API.

Telegram Bot API docs: https://core.telegram.org/bots/api
Every method is ``POST {TELEGRAM_API_URL}/bot<token>/<method>`` and
answers ``{"ok": bool, "result": ..., "description": ...}``.

Deliveries are one-shot: a failed ``sendMessage`` is logged and
reported as ``False``; retrying is left to the caller.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

import httpx

from clawsync.config import (
    TELEGRAM_API_URL,
    TELEGRAM_BOT_TOKEN_ENV,
    get_secret,
)
from clawsync.services.metrics import metrics

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 15.0


class TelegramAPIError(Exception):
    """Raised when a Bot API call fails or answers ``ok: false``."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class TelegramClient:
    """Thin wrapper around the Telegram Bot API."""

    def __init__(self, token: str | None = None, *, base_url: str | None = None):
        self._token = token or get_secret(TELEGRAM_BOT_TOKEN_ENV)
        self._client = httpx.Client(
            base_url=f"{base_url or TELEGRAM_API_URL}/bot{self._token}",
            timeout=REQUEST_TIMEOUT_SECONDS,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self._token)

    def _call(self, method: str, payload: dict[str, Any] | None = None) -> Any:
        """Invoke one Bot API method and return its ``result``."""
        if not self._token:
            raise TelegramAPIError(f"{TELEGRAM_BOT_TOKEN_ENV} is not set")

        with metrics.track("telegram", method):
            try:
                response = self._client.post(f"/{method}", json=payload or {})
                data = response.json()
            except (httpx.HTTPError, ValueError) as exc:
                raise TelegramAPIError(f"{method} failed: {exc}") from exc

            if not data.get("ok"):
                raise TelegramAPIError(
                    data.get("description") or f"{method} failed",
                    status_code=response.status_code,
                )
        return data.get("result")

    # ── Public API ───────────────────────────────────────────────────

    def send_message(
        self, chat_id: int, text: str, reply_to_message_id: int | None = None,
    ) -> bool:
        """Send a Markdown text message.  Returns ``False`` on any failure."""
        payload: dict[str, Any] = {"chat_id": chat_id, "text": text, "parse_mode": "Markdown"}
        if reply_to_message_id is not None:
            payload["reply_to_message_id"] = reply_to_message_id
        try:
            self._call("sendMessage", payload)
        except TelegramAPIError as exc:
            logger.error("Failed to send Telegram message to %s: %s", chat_id, exc)
            return False
        return True

    def send_typing(self, chat_id: int) -> None:
        """Show the "typing…" indicator; failures are only logged."""
        try:
            self._call("sendChatAction", {"chat_id": chat_id, "action": "typing"})
        except TelegramAPIError as exc:
            logger.debug("Typing indicator failed for %s: %s", chat_id, exc)

    def set_webhook(self, webhook_url: str) -> None:
        self._call("setWebhook", {"url": webhook_url, "allowed_updates": ["message"]})
        logger.info("Telegram webhook set to %s", webhook_url)

    def get_me(self) -> dict[str, Any]:
        """Return the bot's own user object (verifies the token)."""
        return self._call("getMe")


# ── Module-level singleton (thread-safe) ────────────────────────────
_client: TelegramClient | None = None
_client_lock = threading.Lock()


def get_telegram_client() -> TelegramClient:
    global _client
    if _client is None:
        with _client_lock:
            if _client is None:
                _client = TelegramClient()
    return _client
