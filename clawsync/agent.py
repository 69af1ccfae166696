"""Generation orchestrator for the ClawSync agent.

Architecture:
  Each chat request walks through four steps:

    1. **admission**  — per-session and global rate limits, then message
                        length (``AdmissionGuard``)
    2. **thread**     — continue the caller's thread or mint a new one
    3. **generate**   — one LangGraph run against the resolved model
    4. **respond**    — pick the reply text and record the activity

  The per-request graph is deliberately short:

    generate → (has tool calls?) → tools → END
             → (no tool calls?)  → END

  There is no tool loop: when the model ends its turn on a tool call, the
  tool still runs and its output becomes the reply (see
  :func:`select_response_text`).

  Memory:
    Conversation history lives in a LangGraph checkpointer shared by
    every request; the ``thread_id`` is the checkpoint thread.  Two
    requests continuing the same thread at once are not serialized, so
    callers should keep at most one request in flight per thread.

  Model, instructions and tools are rebuilt from the stored config on
  every request, so configuration changes apply to the next message.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Annotated

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, AnyMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_core.tools import BaseTool
from langgraph.checkpoint.base import BaseCheckpointSaver
from langgraph.checkpoint.memory import MemorySaver
from langgraph.graph import END, StateGraph
from langgraph.graph.message import add_messages
from langgraph.prebuilt import ToolNode
from typing_extensions import TypedDict

from clawsync.admission import AdmissionGuard, AdmissionRejected
from clawsync.model_resolver import ResolvedModel, resolve_model
from clawsync.models import ChatResult, Visibility
from clawsync.prompts import compose_instructions
from clawsync.services.activity_log import ActivityLog, preview
from clawsync.services.analytics_client import query_analytics
from clawsync.services.config_store import ConfigStore
from clawsync.services.metrics import metrics
from clawsync.services.rate_limiter import RateLimiter
from clawsync.tools.registry import (
    Capabilities,
    ToolResultSlot,
    build_tools,
    detect_capabilities,
)

logger = logging.getLogger(__name__)

GENERATION_FAILED_MESSAGE = "Failed to generate response. Please try again."
NO_RESPONSE_MESSAGE = "I processed your request but couldn't generate a response."


class ThreadNotFoundError(LookupError):
    """Raised when a caller asks to continue a thread that does not exist."""


# ── State schema ─────────────────────────────────────────────────────


class GenerationState(TypedDict):
    """The state that flows through the per-request graph.

    ``messages`` uses the LangGraph ``add_messages`` reducer, so the
    checkpointer accumulates the full thread history across requests.
    """

    messages: Annotated[list[AnyMessage], add_messages]


@dataclass
class GenerationContext:
    """Everything one request needs, built step by step.

    ``tool_result`` is the request's own slot for tool output; the tool
    closure writes into it and :func:`select_response_text` reads it.
    """

    message: str
    session_id: str
    thread_id: str | None = None
    resolved: ResolvedModel | None = None
    instructions: str = ""
    tools: dict[str, BaseTool] = field(default_factory=dict)
    tool_result: ToolResultSlot = field(default_factory=ToolResultSlot)


@dataclass
class GenerationOutput:
    text: str
    input_tokens: int = 0
    output_tokens: int = 0


# ── Graph ───────────────────────────────────────────────────────────


def _make_generate_node(llm: BaseChatModel, instructions: str, tools: list[BaseTool]):
    """Create the node that makes the single model call of a request."""
    bound = llm.bind_tools(tools) if tools else llm

    def generate_node(state: GenerationState) -> dict:
        system = SystemMessage(content=instructions)
        response = bound.invoke([system] + state["messages"])
        return {"messages": [response]}

    return generate_node


def should_run_tools(state: GenerationState) -> str:
    """Route to the tools node when the model asked for a tool call."""
    last_message = state["messages"][-1]
    if getattr(last_message, "tool_calls", None):
        return "tools"
    return END


def build_generation_graph(
    llm: BaseChatModel,
    instructions: str,
    tools: list[BaseTool],
    checkpointer: BaseCheckpointSaver,
):
    """Compile the generate → tools → END graph for one request."""
    graph = StateGraph(GenerationState)
    graph.add_node("generate", _make_generate_node(llm, instructions, tools))
    graph.set_entry_point("generate")

    if tools:
        graph.add_node("tools", ToolNode(tools))
        graph.add_conditional_edges("generate", should_run_tools, {"tools": "tools", END: END})
        graph.add_edge("tools", END)
    else:
        graph.add_edge("generate", END)

    return graph.compile(checkpointer=checkpointer)


# ── Reply helpers ───────────────────────────────────────────────────


def message_text(message: BaseMessage) -> str:
    """Plain text of a message whose content may be a list of blocks."""
    content = message.content
    if isinstance(content, str):
        return content
    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


def select_response_text(generated: str, tool_output: str | None) -> str:
    """Model text first, then the captured tool output, then a fixed notice."""
    if generated:
        return generated
    if tool_output:
        return tool_output
    return NO_RESPONSE_MESSAGE


def _last_ai_message(messages: list[BaseMessage]) -> AIMessage | None:
    for message in reversed(messages):
        if isinstance(message, AIMessage):
            return message
    return None


# ── Orchestrator ────────────────────────────────────────────────────


class ChatOrchestrator:
    """Drives one request/response cycle per call.

    Never raises: every outcome is a :class:`ChatResult`, with ``error``
    set when the request was refused or generation failed.
    """

    def __init__(
        self,
        store: ConfigStore | None = None,
        limiter: RateLimiter | None = None,
        activity_log: ActivityLog | None = None,
        *,
        checkpointer: BaseCheckpointSaver | None = None,
        analytics: Callable[[str], str] | None = None,
        capabilities: Capabilities | None = None,
    ) -> None:
        self.store = store or ConfigStore()
        self.limiter = limiter or RateLimiter()
        self.activity_log = activity_log or ActivityLog()
        self.guard = AdmissionGuard(self.limiter)
        self._checkpointer = checkpointer or MemorySaver()
        self._analytics = analytics or query_analytics
        # None → re-detect from the environment on every request
        self._capabilities = capabilities

    # ── Entry points ─────────────────────────────────────────────────

    def send(self, message: str, session_id: str, thread_id: str | None = None) -> ChatResult:
        """Web chat: continue or start a thread and reply."""
        ctx = GenerationContext(message=message, session_id=session_id, thread_id=thread_id)
        result, _ = self._run(ctx, log_prefix="chat")
        if result.ok:
            self._log_activity("chat_message", f'Responded to: "{preview(message)}"')
        return result

    def send_internal(
        self, message: str, session_id: str, channel: str | None = None,
    ) -> ChatResult:
        """Channel-origin message: always a new thread, no thread id returned.

        No activity is recorded here; the channel handler writes its own
        record for the exchange.
        """
        ctx = GenerationContext(message=message, session_id=session_id)
        result, _ = self._run(ctx, log_prefix=channel or "internal")
        if not result.ok:
            return ChatResult(error=result.error)
        return ChatResult(response=result.response)

    def api_send(
        self, message: str, session_id: str, thread_id: str | None = None,
    ) -> ChatResult:
        """HTTP API: like :meth:`send`, plus token usage."""
        ctx = GenerationContext(message=message, session_id=session_id, thread_id=thread_id)
        result, output = self._run(ctx, log_prefix="api")
        if not result.ok:
            return result
        self._log_activity("api_chat", f'API: "{preview(message)}"', channel="api")
        return result.model_copy(
            update={
                "tokens_used": output.input_tokens + output.output_tokens,
                "input_tokens": output.input_tokens,
                "output_tokens": output.output_tokens,
            }
        )

    def get_history(self, thread_id: str) -> list[BaseMessage]:
        """All messages stored for *thread_id*; empty when it is unknown."""
        checkpoint = self._checkpointer.get_tuple(self._thread_config(thread_id))
        if checkpoint is None:
            return []
        return list(checkpoint.checkpoint["channel_values"].get("messages", []))

    def thread_exists(self, thread_id: str) -> bool:
        return self._checkpointer.get_tuple(self._thread_config(thread_id)) is not None

    # ── Pipeline ─────────────────────────────────────────────────────

    def _run(
        self, ctx: GenerationContext, *, log_prefix: str,
    ) -> tuple[ChatResult, GenerationOutput | None]:
        requested_thread = ctx.thread_id

        try:
            self.guard.admit(ctx.session_id, ctx.message)
        except AdmissionRejected as exc:
            metrics.record_rejection(exc.reason)
            logger.info("[%s] %s rejected: %s", log_prefix, ctx.session_id, exc.reason)
            return ChatResult(error=str(exc), thread_id=requested_thread), None

        try:
            self._resolve_thread(ctx)
            self._prepare(ctx)
            output = self._generate(ctx)
        except Exception:
            logger.exception("[%s] Chat error (session %s)", log_prefix, ctx.session_id)
            return ChatResult(error=GENERATION_FAILED_MESSAGE, thread_id=ctx.thread_id), None

        text = select_response_text(output.text, ctx.tool_result.value)
        if not output.text and ctx.tool_result.value:
            logger.debug("[%s] Using tool result as the reply", log_prefix)
        return ChatResult(response=text, thread_id=ctx.thread_id), output

    def _resolve_thread(self, ctx: GenerationContext) -> None:
        if ctx.thread_id:
            if not self.thread_exists(ctx.thread_id):
                raise ThreadNotFoundError(ctx.thread_id)
            return
        ctx.thread_id = str(uuid.uuid4())
        logger.debug("Created thread %s for session %s", ctx.thread_id, ctx.session_id)

    def _prepare(self, ctx: GenerationContext) -> None:
        """Resolve the model and build instructions and tools from config."""
        capabilities = self._capabilities or detect_capabilities()
        ctx.resolved = resolve_model(self.store)
        ctx.instructions = compose_instructions(self.store.get_config(), capabilities)
        ctx.tools = build_tools(
            capabilities, ctx.tool_result, self._analytics, default_query=ctx.message,
        )

    def _generate(self, ctx: GenerationContext) -> GenerationOutput:
        resolved = ctx.resolved
        graph = build_generation_graph(
            resolved.llm, ctx.instructions, list(ctx.tools.values()), self._checkpointer,
        )
        logger.debug(
            "Generating with %s/%s (fallback=%s, tools=%d)",
            resolved.provider, resolved.model_id, resolved.is_fallback, len(ctx.tools),
        )

        with metrics.track("llm", f"{resolved.provider}/{resolved.model_id}"):
            result = graph.invoke(
                {"messages": [HumanMessage(content=ctx.message)]},
                config=self._thread_config(ctx.thread_id),
            )

        reply = _last_ai_message(result.get("messages", []))
        if reply is None:
            return GenerationOutput(text="")
        usage = reply.usage_metadata or {}
        return GenerationOutput(
            text=message_text(reply),
            input_tokens=usage.get("input_tokens", 0),
            output_tokens=usage.get("output_tokens", 0),
        )

    # ── Helpers ──────────────────────────────────────────────────────

    @staticmethod
    def _thread_config(thread_id: str) -> dict:
        return {"configurable": {"thread_id": thread_id}}

    def _log_activity(
        self,
        action_type: str,
        summary: str,
        visibility: Visibility = Visibility.PRIVATE,
        channel: str | None = None,
    ) -> None:
        """Record activity without letting a logging failure reach the caller."""
        try:
            self.activity_log.log(action_type, summary, visibility, channel)
        except Exception:
            logger.exception("Failed to record %s activity", action_type)


def create_clawsync_agent() -> ChatOrchestrator:
    """Build the orchestrator with its default collaborators.

    Config store, rate limiter, activity log and thread memory are all
    in-process; the config store persists to ``CLAWSYNC_STATE_PATH`` when
    that is set.
    """
    agent = ChatOrchestrator()
    logger.debug("ClawSync agent ready")
    return agent
