"""System instructions for the ClawSync agent.

The instructions are rebuilt from the stored config on every request, so
edits made in SyncBoard apply to the next message without a redeploy.
"""

from __future__ import annotations

from clawsync.models import AgentConfig
from clawsync.tools.registry import Capabilities

DEFAULT_INSTRUCTIONS = "You are a helpful AI assistant."

ANALYTICS_INSTRUCTIONS = (
    "You have access to Google Analytics data via the getAnalytics tool. "
    "When users ask about website analytics, traffic, pageviews, top pages, "
    "traffic sources, devices, or performance, call getAnalytics. After getting "
    "the data, present it to the user in a clear format."
)


def compose_instructions(config: AgentConfig | None, capabilities: Capabilities) -> str:
    """Merge soul document, system prompt and tool hints into one string.

    The soul document and system prompt replace the default persona when
    either is non-empty and are joined by a blank line, soul first.
    """
    instructions = DEFAULT_INSTRUCTIONS
    if config is not None:
        parts = [part for part in (config.soul_document, config.system_prompt) if part]
        if parts:
            instructions = "\n\n".join(parts)

    if capabilities.analytics:
        instructions += "\n\n" + ANALYTICS_INSTRUCTIONS
    return instructions
