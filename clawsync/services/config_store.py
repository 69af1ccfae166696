"""Config store for the agent configuration and channel integrations.

Holds the single :class:`AgentConfig` row and one :class:`ChannelConfig`
per channel type.  Reads and writes go through one ``threading.Lock``;
there is no versioning, the last write wins.

When a ``path`` is given the whole state is written to that JSON file
after every change and loaded back on start-up.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from clawsync.config import STATE_PATH
from clawsync.models import AgentConfig, ChannelConfig, ChannelType

logger = logging.getLogger(__name__)

MAX_CHANNELS_LISTED = 50
DEFAULT_CHANNEL_RATE_LIMIT = 20

DEFAULT_CHANNELS: list[tuple[str, str]] = [
    (ChannelType.TELEGRAM.value, "Telegram"),
    (ChannelType.WHATSAPP.value, "WhatsApp"),
    (ChannelType.SLACK.value, "Slack"),
    (ChannelType.DISCORD.value, "Discord"),
    (ChannelType.EMAIL.value, "Email"),
]


class ChannelNotFoundError(KeyError):
    """Raised when a channel type has no stored config."""


class ConfigStore:
    """Read-one / write-one store for agent and channel configuration."""

    def __init__(self, path: str | Path | None = STATE_PATH) -> None:
        self._path = Path(path) if path else None
        self._agent_config: AgentConfig | None = None
        self._channels: dict[str, ChannelConfig] = {}
        self._lock = threading.Lock()
        if self._path is not None:
            self._load()

    # ── Agent config ─────────────────────────────────────────────────

    def get_config(self) -> AgentConfig | None:
        with self._lock:
            return self._agent_config

    def save_config(self, config: AgentConfig) -> AgentConfig:
        """Replace the agent config wholesale."""
        stored = config.model_copy(update={"updated_at": datetime.now(UTC)})
        with self._lock:
            self._agent_config = stored
            self._persist()
        logger.info(
            "Agent config saved: %s/%s", stored.model_provider, stored.model,
        )
        return stored

    def update_config(self, **changes: Any) -> AgentConfig:
        """Patch individual fields, starting from defaults when unset.

        The merged config is validated, so a patch that would leave the
        config unloadable raises ``ValidationError`` and nothing is stored.
        """
        with self._lock:
            current = self._agent_config or AgentConfig()
        merged = AgentConfig.model_validate({**current.model_dump(), **changes})
        return self.save_config(merged)

    # ── Channels ─────────────────────────────────────────────────────

    def list_channels(self) -> list[ChannelConfig]:
        with self._lock:
            return list(self._channels.values())[:MAX_CHANNELS_LISTED]

    def list_enabled_channels(self) -> list[ChannelConfig]:
        return [channel for channel in self.list_channels() if channel.enabled]

    def get_channel(self, channel_type: str) -> ChannelConfig | None:
        with self._lock:
            return self._channels.get(channel_type)

    def upsert_channel(
        self,
        channel_type: str,
        display_name: str,
        *,
        enabled: bool | None = None,
        rate_limit_per_minute: int | None = None,
        webhook_url: str | None = None,
        metadata: str | None = None,
    ) -> ChannelConfig:
        """Create or update a channel; omitted fields keep their stored value."""
        now = datetime.now(UTC)
        with self._lock:
            existing = self._channels.get(channel_type)
            if existing is not None:
                channel = existing.model_copy(
                    update={
                        "display_name": display_name,
                        "enabled": existing.enabled if enabled is None else enabled,
                        "rate_limit_per_minute": (
                            existing.rate_limit_per_minute
                            if rate_limit_per_minute is None
                            else rate_limit_per_minute
                        ),
                        "webhook_url": existing.webhook_url if webhook_url is None else webhook_url,
                        "metadata": existing.metadata if metadata is None else metadata,
                        "updated_at": now,
                    }
                )
            else:
                channel = ChannelConfig(
                    channel_type=channel_type,
                    display_name=display_name,
                    enabled=bool(enabled),
                    rate_limit_per_minute=(
                        DEFAULT_CHANNEL_RATE_LIMIT
                        if rate_limit_per_minute is None
                        else rate_limit_per_minute
                    ),
                    webhook_url=webhook_url,
                    metadata=metadata,
                    updated_at=now,
                )
            self._channels[channel_type] = channel
            self._persist()
        return channel

    def toggle_channel(self, channel_type: str) -> ChannelConfig:
        with self._lock:
            channel = self._channels.get(channel_type)
            if channel is None:
                raise ChannelNotFoundError(channel_type)
            channel = channel.model_copy(
                update={"enabled": not channel.enabled, "updated_at": datetime.now(UTC)},
            )
            self._channels[channel_type] = channel
            self._persist()
        logger.info("Channel %s %s", channel_type, "enabled" if channel.enabled else "disabled")
        return channel

    def remove_channel(self, channel_type: str) -> None:
        with self._lock:
            if self._channels.pop(channel_type, None) is None:
                raise ChannelNotFoundError(channel_type)
            self._persist()

    def seed_channels(self) -> list[ChannelConfig]:
        """Insert the default (disabled) channels that do not exist yet."""
        for channel_type, display_name in DEFAULT_CHANNELS:
            if self.get_channel(channel_type) is None:
                self.upsert_channel(channel_type, display_name, enabled=False)
        return self.list_channels()

    # ── Persistence ──────────────────────────────────────────────────

    def _persist(self) -> None:
        """Write the state file.  Caller must hold the lock."""
        if self._path is None:
            return
        state = {
            "agent_config": (
                self._agent_config.model_dump(mode="json") if self._agent_config else None
            ),
            "channels": [c.model_dump(mode="json") for c in self._channels.values()],
        }
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(state, indent=2), encoding="utf-8")

    def _load(self) -> None:
        try:
            state = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            logger.info("No state file at %s, starting empty", self._path)
            return

        if state.get("agent_config"):
            try:
                self._agent_config = AgentConfig.model_validate(state["agent_config"])
            except ValidationError:
                logger.exception("Ignoring invalid agent config in %s", self._path)

        for raw in state.get("channels", []):
            try:
                channel = ChannelConfig.model_validate(raw)
            except ValidationError:
                logger.exception("Ignoring invalid channel row in %s", self._path)
                continue
            self._channels[channel.channel_type] = channel
