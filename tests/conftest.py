"""Shared test fixtures for the ClawSync test suite."""

from __future__ import annotations

import os
from unittest.mock import MagicMock

import pytest
from langchain_core.messages import AIMessage


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    This runs before any imports, so config.py picks the values up on
    module load and no provider client complains about a missing key.
    """
    os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key-123")
    os.environ.setdefault("OPENAI_API_KEY", "test-openai-key-456")
    os.environ.setdefault("GEMINI_API_KEY", "test-gemini-key-789")
    os.environ.setdefault("OPENROUTER_API_KEY", "test-openrouter-key")
    os.environ.setdefault("OPENCODE_API_KEY", "test-opencode-key")
    os.environ.setdefault("CUSTOM_API_KEY", "test-custom-key")
    os.environ.setdefault("XAI_API_KEY", "test-xai-key")
    os.environ["METRICS_ENABLED"] = "false"
    for name in ("GA4_PROPERTY_ID", "GA4_SERVICE_ACCOUNT_EMAIL", "GA4_PRIVATE_KEY"):
        os.environ.pop(name, None)


@pytest.fixture
def make_mock_llm():
    """Factory fixture for a chat model mock that answers with AIMessages.

    Each call to ``invoke`` returns a fresh message, so repeated turns on
    one thread append instead of replacing each other in the checkpoint.
    """

    def _make(*replies: str | AIMessage):
        def _reply(_messages):
            reply = replies[min(llm.invoke.call_count, len(replies)) - 1]
            if isinstance(reply, AIMessage):
                return reply.model_copy(deep=True)
            return AIMessage(content=reply)

        llm = MagicMock()
        llm.bind_tools.return_value = llm
        llm.invoke.side_effect = _reply
        return llm

    return _make
