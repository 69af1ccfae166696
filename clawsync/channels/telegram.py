"""Telegram channel: turns webhook updates into agent replies."""

from __future__ import annotations

import logging

from pydantic import BaseModel, ConfigDict, Field

from clawsync.agent import ChatOrchestrator
from clawsync.models import ChannelType, Visibility
from clawsync.services.activity_log import preview
from clawsync.services.telegram_client import TelegramClient

logger = logging.getLogger(__name__)

DISABLED_TEXT = "🔒 This bot is currently disabled. Please contact the administrator."
HELP_TEXT = (
    "📚 *Available Commands*\n\n"
    "/start - Start the bot\n"
    "/help - Show this help message\n\n"
    "Or just send me any message and I'll respond!"
)
FAILURE_TEXT = "❌ Sorry, something went wrong. Please try again."
EMPTY_REPLY_TEXT = "I apologize, but I couldn't generate a response."


def start_text(first_name: str) -> str:
    return (
        f"👋 Hello {first_name}! I'm your AI assistant.\n\n"
        "You can ask me anything!\n\n"
        "Use /help to see available commands."
    )


def session_key(chat_id: int) -> str:
    """Rate-limit partition key for a Telegram chat."""
    return f"telegram_{chat_id}"


# ── Update payload ──────────────────────────────────────────────────


class TelegramUser(BaseModel):
    id: int
    is_bot: bool = False
    first_name: str
    last_name: str | None = None
    username: str | None = None


class TelegramChat(BaseModel):
    id: int
    type: str
    title: str | None = None
    username: str | None = None


class TelegramMessage(BaseModel):
    message_id: int
    from_: TelegramUser | None = Field(default=None, alias="from")
    chat: TelegramChat
    date: int
    text: str | None = None

    model_config = ConfigDict(populate_by_name=True)


class TelegramUpdate(BaseModel):
    update_id: int
    message: TelegramMessage | None = None


# ── Handler ─────────────────────────────────────────────────────────


class TelegramChannel:
    """Processes inbound Telegram messages with the shared agent."""

    def __init__(self, agent: ChatOrchestrator, client: TelegramClient) -> None:
        self._agent = agent
        self._client = client

    def handle_update(self, update: TelegramUpdate) -> None:
        """Handle one webhook update; anything but a text message is ignored."""
        message = update.message
        if message is None or not message.text:
            return

        sender = message.from_
        self.process_message(
            chat_id=message.chat.id,
            message_id=message.message_id,
            text=message.text,
            first_name=sender.first_name if sender else "there",
            username=sender.username if sender else None,
        )

    def process_message(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        first_name: str,
        username: str | None = None,
    ) -> None:
        try:
            self._reply(chat_id, message_id, text, first_name, username)
        except Exception:
            logger.exception("Error processing Telegram message from chat %s", chat_id)
            self._client.send_message(chat_id, FAILURE_TEXT, reply_to_message_id=message_id)

    def _reply(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        first_name: str,
        username: str | None,
    ) -> None:
        self._client.send_typing(chat_id)

        channel = self._agent.store.get_channel(ChannelType.TELEGRAM.value)
        if channel is None or not channel.enabled:
            self._client.send_message(chat_id, DISABLED_TEXT, reply_to_message_id=message_id)
            return

        if text == "/start":
            self._client.send_message(chat_id, start_text(first_name), reply_to_message_id=message_id)
            return
        if text == "/help":
            self._client.send_message(chat_id, HELP_TEXT, reply_to_message_id=message_id)
            return

        result = self._agent.send_internal(
            text, session_key(chat_id), channel=ChannelType.TELEGRAM.value,
        )
        if result.error:
            self._client.send_message(
                chat_id,
                f"❌ Sorry, I encountered an error: {result.error}",
                reply_to_message_id=message_id,
            )
            return

        delivered = self._client.send_message(
            chat_id, result.response or EMPTY_REPLY_TEXT, reply_to_message_id=message_id,
        )
        if not delivered:
            logger.warning("Reply to Telegram chat %s was not delivered", chat_id)

        self._agent.activity_log.log(
            "telegram_message",
            f'Telegram: {first_name} (@{username or "no_username"}): "{preview(text)}"',
            Visibility.PUBLIC,
            ChannelType.TELEGRAM.value,
        )
