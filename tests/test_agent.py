"""Tests for the generation orchestrator.

Covers:
  - Reply-text precedence (model text, tool output, fixed notice)
  - End-to-end runs with mocked provider models
  - Thread creation and continuation
  - Admission refusals and generation failures
  - Activity logging side effects
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from clawsync.agent import (
    GENERATION_FAILED_MESSAGE,
    NO_RESPONSE_MESSAGE,
    ChatOrchestrator,
    GenerationState,
    message_text,
    select_response_text,
    should_run_tools,
)
from clawsync.models import AgentConfig, Visibility
from clawsync.services.activity_log import ActivityLog
from clawsync.services.config_store import ConfigStore
from clawsync.services.rate_limiter import (
    GLOBAL_MESSAGES_BUCKET,
    PUBLIC_CHAT_BUCKET,
    BucketPolicy,
    RateLimiter,
)
from clawsync.tools.registry import Capabilities


# ── Helpers ──────────────────────────────────────────────────────────


def _orchestrator(
    *,
    config: AgentConfig | None = None,
    capabilities: Capabilities | None = None,
    analytics=None,
    activity_log=None,
    session_rate: int = 100,
) -> ChatOrchestrator:
    store = ConfigStore(path=None)
    if config is not None:
        store.save_config(config)
    limiter = RateLimiter(
        {
            PUBLIC_CHAT_BUCKET: BucketPolicy(rate=session_rate),
            GLOBAL_MESSAGES_BUCKET: BucketPolicy(rate=1000),
        }
    )
    return ChatOrchestrator(
        store,
        limiter,
        activity_log or ActivityLog(),
        analytics=analytics,
        capabilities=capabilities or Capabilities(),
    )


def _tool_call_message() -> AIMessage:
    return AIMessage(
        content="",
        tool_calls=[{"name": "getAnalytics", "args": {"query": "top pages"}, "id": "call_1"}],
    )


# ── Reply helpers ────────────────────────────────────────────────────


class TestSelectResponseText:
    def test_model_text_wins(self):
        assert select_response_text("Hello", "tool output") == "Hello"

    def test_tool_output_when_text_empty(self):
        assert select_response_text("", "tool output") == "tool output"

    def test_notice_when_both_empty(self):
        assert select_response_text("", None) == NO_RESPONSE_MESSAGE
        assert select_response_text("", "") == NO_RESPONSE_MESSAGE


class TestMessageText:
    def test_string_content(self):
        assert message_text(AIMessage(content="hi")) == "hi"

    def test_block_content(self):
        msg = AIMessage(
            content=[
                {"type": "text", "text": "Hello "},
                {"type": "tool_use", "id": "x", "name": "getAnalytics", "input": {}},
                {"type": "text", "text": "there"},
            ]
        )
        assert message_text(msg) == "Hello there"


class TestShouldRunTools:
    def test_routes_to_tools_on_tool_call(self):
        state: GenerationState = {"messages": [_tool_call_message()]}
        assert should_run_tools(state) == "tools"

    def test_ends_without_tool_call(self):
        state: GenerationState = {"messages": [AIMessage(content="done")]}
        assert should_run_tools(state) == "__end__"


# ── End-to-end ──────────────────────────────────────────────────────


class TestSend:
    def test_default_model_and_persona_when_unconfigured(self, make_mock_llm):
        llm = make_mock_llm("Hi there!")
        with patch("clawsync.providers.ChatAnthropic", return_value=llm) as mock_cls:
            result = _orchestrator().send("Hello", "s1")

        assert result.response == "Hi there!"
        assert result.error is None
        assert result.thread_id
        assert mock_cls.call_args.kwargs["model"] == "claude-sonnet-4-20250514"
        system = llm.invoke.call_args.args[0][0]
        assert isinstance(system, SystemMessage)
        assert system.content == "You are a helpful AI assistant."

    def test_configured_soul_document_reaches_model(self, make_mock_llm):
        llm = make_mock_llm("Hi, I'm Max.")
        config = AgentConfig(
            model_provider="anthropic",
            model="claude-3-5-haiku-latest",
            soul_document="You are Max.",
        )
        with patch("clawsync.providers.ChatAnthropic", return_value=llm) as mock_cls:
            result = _orchestrator(config=config).send("Who are you?", "s1")

        assert result.response == "Hi, I'm Max."
        assert mock_cls.call_args.kwargs["model"] == "claude-3-5-haiku-latest"
        sent = llm.invoke.call_args.args[0]
        assert sent[0].content == "You are Max."
        assert sent[-1].content == "Who are you?"

    def test_tools_not_bound_without_capabilities(self, make_mock_llm):
        llm = make_mock_llm("ok")
        with patch("clawsync.providers.ChatAnthropic", return_value=llm):
            _orchestrator().send("Hello", "s1")
        llm.bind_tools.assert_not_called()

    def test_tool_output_used_when_model_ends_on_tool_call(self, make_mock_llm):
        llm = make_mock_llm(_tool_call_message())
        analytics = MagicMock(return_value="Top Pages\n- /pricing: screenPageViews=42")
        orchestrator = _orchestrator(capabilities=Capabilities(analytics=True), analytics=analytics)

        with patch("clawsync.providers.ChatAnthropic", return_value=llm):
            result = orchestrator.send("What are my top pages?", "s1")

        analytics.assert_called_once_with("top pages")
        assert result.response == "Top Pages\n- /pricing: screenPageViews=42"
        llm.bind_tools.assert_called_once()
        # single model call: the tool output is not fed back to the model
        assert llm.invoke.call_count == 1

    def test_empty_reply_gives_fixed_notice(self, make_mock_llm):
        llm = make_mock_llm("")
        with patch("clawsync.providers.ChatAnthropic", return_value=llm):
            result = _orchestrator().send("Hello", "s1")
        assert result.response == NO_RESPONSE_MESSAGE

    def test_fallback_model_used_when_primary_fails(self, make_mock_llm):
        llm = make_mock_llm("from fallback")
        config = AgentConfig(
            model_provider="custom",
            model="no-separator",
            fallback_provider="openai",
            fallback_model="gpt-4o-mini",
        )
        with patch("clawsync.providers.ChatOpenAI", return_value=llm) as mock_cls:
            result = _orchestrator(config=config).send("Hello", "s1")
        assert result.response == "from fallback"
        assert mock_cls.call_args.kwargs["model"] == "gpt-4o-mini"


class TestThreads:
    def test_continuation_sees_prior_turns(self, make_mock_llm):
        llm = make_mock_llm("first reply", "second reply")
        orchestrator = _orchestrator()

        with patch("clawsync.providers.ChatAnthropic", return_value=llm):
            first = orchestrator.send("one", "s1")
            second = orchestrator.send("two", "s1", first.thread_id)

        assert second.thread_id == first.thread_id
        assert second.response == "second reply"
        sent = llm.invoke.call_args.args[0]
        assert [m.content for m in sent[1:]] == ["one", "first reply", "two"]

    def test_history_is_stored_per_thread(self, make_mock_llm):
        llm = make_mock_llm("reply")
        orchestrator = _orchestrator()
        with patch("clawsync.providers.ChatAnthropic", return_value=llm):
            result = orchestrator.send("hello", "s1")

        history = orchestrator.get_history(result.thread_id)
        assert [m.type for m in history] == ["human", "ai"]
        assert isinstance(history[0], HumanMessage)
        assert orchestrator.get_history("missing") == []

    def test_new_threads_are_distinct(self, make_mock_llm):
        llm = make_mock_llm("reply")
        orchestrator = _orchestrator()
        with patch("clawsync.providers.ChatAnthropic", return_value=llm):
            a = orchestrator.send("hello", "s1")
            b = orchestrator.send("hello", "s1")
        assert a.thread_id != b.thread_id

    def test_unknown_thread_is_an_error(self, make_mock_llm):
        llm = make_mock_llm("reply")
        with patch("clawsync.providers.ChatAnthropic", return_value=llm):
            result = _orchestrator().send("hello", "s1", "does-not-exist")

        assert result.error == GENERATION_FAILED_MESSAGE
        assert result.thread_id == "does-not-exist"
        llm.invoke.assert_not_called()


class TestFailures:
    def test_generation_error_is_not_leaked(self, make_mock_llm):
        llm = make_mock_llm("unused")
        llm.invoke.side_effect = RuntimeError("upstream said: invalid x-api-key sk-123")
        activity = ActivityLog()

        with patch("clawsync.providers.ChatAnthropic", return_value=llm):
            result = _orchestrator(activity_log=activity).send("Hello", "s1")

        assert result.error == GENERATION_FAILED_MESSAGE
        assert result.response is None
        assert result.thread_id
        activity.flush()
        assert activity.recent() == []

    def test_rate_limited_request_never_reaches_model(self, make_mock_llm):
        llm = make_mock_llm("reply")
        orchestrator = _orchestrator(session_rate=1)
        with patch("clawsync.providers.ChatAnthropic", return_value=llm):
            orchestrator.send("one", "s1")
            refused = orchestrator.send("two", "s1")

        assert refused.error == "Rate limit exceeded. Please wait before sending another message."
        assert llm.invoke.call_count == 1

    def test_too_long_message_refused(self, make_mock_llm):
        llm = make_mock_llm("reply")
        with patch("clawsync.providers.ChatAnthropic", return_value=llm):
            result = _orchestrator().send("x" * 4001, "s1")
        assert result.error == "Message too long. Maximum 4000 characters."
        llm.invoke.assert_not_called()

    def test_activity_log_failure_does_not_break_reply(self, make_mock_llm):
        llm = make_mock_llm("still fine")
        broken_log = MagicMock()
        broken_log.log.side_effect = RuntimeError("log store down")

        with patch("clawsync.providers.ChatAnthropic", return_value=llm):
            result = _orchestrator(activity_log=broken_log).send("Hello", "s1")

        assert result.response == "still fine"
        broken_log.log.assert_called_once()


# ── Entry-point variants ────────────────────────────────────────────


class TestEntryPoints:
    def test_send_logs_private_chat_activity(self, make_mock_llm):
        llm = make_mock_llm("reply")
        activity = ActivityLog()
        with patch("clawsync.providers.ChatAnthropic", return_value=llm):
            _orchestrator(activity_log=activity).send("Hello", "s1")

        activity.flush()
        [record] = activity.recent()
        assert record.action_type == "chat_message"
        assert record.visibility == Visibility.PRIVATE
        assert record.summary == 'Responded to: "Hello"'

    def test_send_internal_omits_thread_id_and_activity(self, make_mock_llm):
        llm = make_mock_llm("hi from telegram")
        activity = ActivityLog()
        with patch("clawsync.providers.ChatAnthropic", return_value=llm):
            result = _orchestrator(activity_log=activity).send_internal(
                "Hello", "telegram_42", channel="telegram",
            )

        assert result.response == "hi from telegram"
        assert result.thread_id is None
        activity.flush()
        assert activity.recent() == []

    def test_send_internal_error_has_only_error(self, make_mock_llm):
        with patch("clawsync.providers.ChatAnthropic", return_value=make_mock_llm("x")):
            result = _orchestrator().send_internal("x" * 5000, "telegram_42")
        assert result.error
        assert result.response is None
        assert result.thread_id is None

    def test_api_send_reports_token_usage(self, make_mock_llm):
        reply = AIMessage(
            content="answer",
            usage_metadata={"input_tokens": 12, "output_tokens": 30, "total_tokens": 42},
        )
        llm = make_mock_llm(reply)
        activity = ActivityLog()
        with patch("clawsync.providers.ChatAnthropic", return_value=llm):
            result = _orchestrator(activity_log=activity).api_send("question", "api-key-1")

        assert result.response == "answer"
        assert result.input_tokens == 12
        assert result.output_tokens == 30
        assert result.tokens_used == 42
        activity.flush()
        assert activity.recent()[0].action_type == "api_chat"

    @pytest.mark.parametrize("method", ["send", "api_send"])
    def test_config_changes_apply_to_next_message(self, make_mock_llm, method):
        llm = make_mock_llm("reply")
        orchestrator = _orchestrator(config=AgentConfig(soul_document="You are Max."))
        with patch("clawsync.providers.ChatAnthropic", return_value=llm):
            getattr(orchestrator, method)("one", "s1")
            orchestrator.store.update_config(soul_document="You are Ada.")
            getattr(orchestrator, method)("two", "s1")

        assert llm.invoke.call_args.args[0][0].content == "You are Ada."
