"""LangChain tool that lets the model pull Google Analytics reports.

The tool is built per request: it closes over that request's
:class:`~clawsync.tools.registry.ToolResultSlot` so its output can be used
as the reply when the model ends its turn on the tool call without
writing any text.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from langchain_core.tools import BaseTool, tool

if TYPE_CHECKING:
    from clawsync.tools.registry import ToolResultSlot

logger = logging.getLogger(__name__)

ANALYTICS_TOOL_NAME = "getAnalytics"
DEFAULT_ANALYTICS_QUERY = "overview"


def make_analytics_tool(
    slot: ToolResultSlot,
    query_analytics: Callable[[str], str],
    default_query: str = "",
) -> BaseTool:
    """Create the ``getAnalytics`` tool bound to one request.

    Args:
        slot: Receives the tool's last output (report or error text).
        query_analytics: The analytics backend, ``query -> formatted text``.
        default_query: Used when the model calls the tool without a query;
            normally the user's own message.
    """

    @tool(ANALYTICS_TOOL_NAME)
    def get_analytics(query: str | None = None) -> str:
        """Get Google Analytics data. Call this tool when users ask about website traffic, pageviews, top pages, traffic sources, devices, or countries.

        Args:
            query: Optional specific analytics query like "top pages" or "traffic sources".
        """
        query_value = query or default_query or DEFAULT_ANALYTICS_QUERY
        logger.debug("getAnalytics called with query %r", query_value)
        try:
            result = query_analytics(query_value)
        except Exception as exc:
            logger.exception("getAnalytics failed")
            result = f"Error fetching analytics: {exc}"
        else:
            logger.debug("getAnalytics returned %d chars", len(result or ""))
        slot.capture(result)
        return result

    return get_analytics
