"""Assemble the tools offered to the model for one request."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from langchain_core.tools import BaseTool

from clawsync.config import analytics_configured
from clawsync.tools.analytics import make_analytics_tool


@dataclass(frozen=True)
class Capabilities:
    """Optional integrations available in the current environment."""

    analytics: bool = False


def detect_capabilities() -> Capabilities:
    return Capabilities(analytics=analytics_configured())


@dataclass
class ToolResultSlot:
    """Holds the most recent tool output of a single request.

    A model may end its turn on a tool call without producing text; the
    orchestrator then answers with whatever the tool returned.  One slot
    per request, never shared.
    """

    value: str | None = None

    def capture(self, text: str | None) -> None:
        self.value = text


def build_tools(
    capabilities: Capabilities,
    slot: ToolResultSlot,
    query_analytics: Callable[[str], str],
    default_query: str = "",
) -> dict[str, BaseTool]:
    """Return ``{tool name: tool}``; empty when no integration is configured."""
    tools: dict[str, BaseTool] = {}
    if capabilities.analytics:
        analytics_tool = make_analytics_tool(slot, query_analytics, default_query)
        tools[analytics_tool.name] = analytics_tool
    return tools
