"""ClawSync agent: model routing and tool orchestration for a chat agent.

Architecture Overview
=====================

Every message goes through one :class:`~clawsync.agent.ChatOrchestrator`:

1. **admission** — a per-session token bucket, then a global one, then the
   4000-character length cap.  A refused message never reaches a model.

2. **model resolution** — the stored agent config names a primary and an
   optional fallback ``(provider, model)`` pair.  The primary is tried,
   then the fallback, then the built-in default (Claude Sonnet 4).

3. **generation** — a short LangGraph run, ``generate → tools → END``,
   against the resolved model.  When the model ends on a tool call, the
   tool output becomes the reply.

4. **activity** — successful replies are recorded in the activity log.

Key Design Decisions
--------------------
- **Providers**: Anthropic, OpenAI and Google use their LangChain chat
  models; OpenRouter, OpenCode Zen, xAI and custom endpoints go through
  ``ChatOpenAI`` with a ``base_url``.
- **Per-request assembly**: model, instructions and tools are rebuilt from
  config for every message, so config edits apply immediately.
- **Tools**: capabilities are detected from the environment.  Today the
  only one is Google Analytics 4 (``getAnalytics``).
- **Memory**: a LangGraph MemorySaver keyed by ``thread_id``.
- **Interfaces**: FastAPI server (SyncBoard, HTTP API, Telegram webhook)
  and a CLI chat loop.

Package Structure
-----------------
- ``clawsync/agent.py`` — orchestrator and LangGraph graph
- ``clawsync/providers.py`` — model construction per provider
- ``clawsync/model_resolver.py`` — primary / fallback / default selection
- ``clawsync/admission.py`` — rate-limit and length guard
- ``clawsync/prompts.py`` — instruction composition
- ``clawsync/config.py`` — environment / SSM configuration
- ``clawsync/server.py`` — FastAPI application
- ``clawsync/main.py`` — CLI chat interface
- ``clawsync/services/`` — config store, rate limiter, activity log,
  metrics, GA4 and Telegram clients
- ``clawsync/tools/`` — LangChain tools and the capability registry
- ``clawsync/channels/`` — inbound channel handlers (Telegram)
- ``clawsync/api/`` — FastAPI routes and Pydantic schemas
"""
