"""LangGraph-based back-office assistant.

Architecture:
  One chat turn runs a small StateGraph with two nodes:

    1. **chatbot** -- Claude with the tools selected for this turn bound
                      (``auto``, ``any`` or one forced tool)
    2. **tools**   -- runs the requested tool calls through the registry
                      and turns their outcomes into a fixed Spanish reply

  Routing:
    chatbot -> (tool calls?)   -> tools -> (reply composed?) -> END
                                        -> (nothing yet?)    -> chatbot
            -> (plain text?)   -> END
            -> (empty answer?) -> chatbot

  The loop is capped at ``MAX_TOOL_ROUNDS`` model calls.  A turn that ends
  without any text gets ``FALLBACK_REPLY``.

  Memory:
    Sessions, history, rolling summaries and business facts live in the
    SQLite store behind :class:`SessionManager`; the graph itself keeps no
    checkpoint between turns.  A turn is only persisted once it succeeded,
    so a failed turn can be retried with the same message.
"""

from __future__ import annotations

import json
import logging
import operator
import threading
import time
from typing import Annotated, Any

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import AIMessage, AnyMessage, HumanMessage, SystemMessage, ToolMessage
from langchain_core.runnables import RunnableConfig
from langgraph.graph import END, StateGraph
from langgraph.graph.message import add_messages
from typing_extensions import TypedDict

from admin_assistant.config import (
    ANNOUNCEMENTS_ENABLED,
    ANTHROPIC_API_KEY,
    DAILY_MESSAGE_LIMIT,
    DATABASE_PATH,
    LLM_MAX_TOKENS,
    LLM_TEMPERATURE,
    MAX_HISTORY_MESSAGES,
    MODEL_NAME,
    SUMMARY_MAX_MESSAGES,
    SUMMARY_MODEL_NAME,
    TIME_ZONE,
)
from admin_assistant.errors import (
    AdminNotAuthorizedError,
    AssistantError,
    AssistantUnavailableError,
    DailyLimitExceededError,
    InvalidToolCallError,
    SessionNotFoundError,
)
from admin_assistant.intent import ToolSelection, select_tools
from admin_assistant.memory import SessionManager
from admin_assistant.models import ChatActions, ChatMessage, ChatResult, SessionTranscript
from admin_assistant.prompts import SUMMARIZER_SYSTEM_PROMPT, build_summary_prompt, get_system_prompt
from admin_assistant.replies import ReplyComposer, finalize_reply
from admin_assistant.services.backoffice_client import (
    BackofficeClient,
    TenantScope,
    get_backoffice_client,
)
from admin_assistant.services.metrics import metrics
from admin_assistant.services.store import ChatStore
from admin_assistant.tools.registry import ToolContext, ToolRegistry

__all__ = [
    "AdminAssistant",
    "AdminNotAuthorizedError",
    "AssistantUnavailableError",
    "DailyLimitExceededError",
    "InvalidToolCallError",
    "SessionNotFoundError",
    "create_admin_agent",
]

logger = logging.getLogger(__name__)

MAX_TOOL_ROUNDS = 3


# ── State schema ─────────────────────────────────────────────────────


class AgentState(TypedDict):
    """The state that flows through the graph.

    ``messages`` uses the ``add_messages`` reducer so each node appends to
    the transcript.  ``rounds`` counts model calls, ``reply`` holds the
    text that ends the turn, ``outcomes`` accumulates serialized tool
    results for persistence.
    """

    messages: Annotated[list[AnyMessage], add_messages]
    rounds: int
    reply: str
    actions: ChatActions
    outcomes: Annotated[list[dict[str, Any]], operator.add]


# ── LLM builders ────────────────────────────────────────────────────


def _build_llm() -> ChatAnthropic:
    """Build the tool-calling model; tools are bound per turn."""
    return ChatAnthropic(
        model=MODEL_NAME,
        api_key=ANTHROPIC_API_KEY,
        temperature=LLM_TEMPERATURE,
        max_tokens=LLM_MAX_TOKENS,
    )


def _build_summary_llm() -> ChatAnthropic:
    """Build the cheaper model used for rolling session summaries."""
    return ChatAnthropic(
        model=SUMMARY_MODEL_NAME,
        api_key=ANTHROPIC_API_KEY,
        temperature=0.2,
        max_tokens=200,
    )


def _text_of(message: AIMessage) -> str:
    """Plain text of a model response, ignoring tool_use content blocks."""
    content = message.content
    if isinstance(content, str):
        return content.strip()
    parts = [
        block.get("text", "") if isinstance(block, dict) else str(block)
        for block in content
        if not isinstance(block, dict) or block.get("type") == "text"
    ]
    return "".join(parts).strip()


# ── Node: chatbot ───────────────────────────────────────────────────


def _make_chatbot_node(registry: ToolRegistry):
    """Create the chatbot node.

    The base client is built once and captured in the closure; the tool
    subset and tool choice change per turn, so they are bound on every
    call from the ``selection`` passed in the run config.
    """
    llm = _build_llm()

    def chatbot_node(state: AgentState, config: RunnableConfig) -> dict:
        configurable = config["configurable"]
        selection: ToolSelection = configurable["selection"]
        system = SystemMessage(content=configurable["system_prompt"])
        bound = llm.bind_tools(registry.schemas(selection.tools), tool_choice=selection.tool_choice)

        rounds = state.get("rounds", 0) + 1
        logger.debug(
            "chatbot round %d: model %s, tools %s, choice %s",
            rounds, MODEL_NAME, selection.tools, selection.tool_choice,
        )
        t0 = time.perf_counter()
        try:
            response = bound.invoke([system] + state["messages"])
        except Exception as exc:
            elapsed = (time.perf_counter() - t0) * 1000
            metrics.record_failure(
                "anthropic", "llm_invoke",
                error_type=type(exc).__name__, latency_ms=elapsed,
            )
            raise
        elapsed = (time.perf_counter() - t0) * 1000
        metrics.record_success("anthropic", "llm_invoke", latency_ms=elapsed)
        logger.debug("chatbot responded in %.0fms", elapsed)

        if response.tool_calls:
            return {"messages": [response], "rounds": rounds}
        text = _text_of(response)
        if not text:
            # An empty assistant turn is not valid history; just spend the round.
            logger.info("Empty model answer in round %d", rounds)
            return {"rounds": rounds}
        return {"messages": [response], "rounds": rounds, "reply": text}

    return chatbot_node


# ── Node: tools ─────────────────────────────────────────────────────


def _make_tools_node(registry: ToolRegistry):
    def tools_node(state: AgentState, config: RunnableConfig) -> dict:
        configurable = config["configurable"]
        context: ToolContext = configurable["tool_context"]
        selection: ToolSelection = configurable["selection"]

        composer = ReplyComposer()
        tool_messages: list[ToolMessage] = []
        outcomes: list[dict[str, Any]] = []
        # Reject the whole round before any call writes to the back office.
        parsed_calls = [
            (call, registry.validate(call["name"], call.get("args"), context, allowed=selection.tools))
            for call in state["messages"][-1].tool_calls
        ]
        for call, parsed in parsed_calls:
            name = call["name"]
            outcome = registry.run(name, parsed, context)
            payload = outcome.to_payload()
            composer.add(name, outcome)
            outcomes.append({"tool": name, **payload})
            tool_messages.append(
                ToolMessage(content=json.dumps(payload, ensure_ascii=False), tool_call_id=call["id"], name=name)
            )

        actions = state.get("actions") or ChatActions()
        return {
            "messages": tool_messages,
            "reply": composer.text,
            "actions": actions.merged(composer.actions),
            "outcomes": outcomes,
        }

    return tools_node


# ── Conditional edges ────────────────────────────────────────────────


def _continue_or_end(state: AgentState) -> str:
    if state.get("reply") or state.get("rounds", 0) >= MAX_TOOL_ROUNDS:
        return END
    return "chatbot"


def after_chatbot(state: AgentState) -> str:
    """Run requested tools; otherwise stop on text or retry an empty answer."""
    last_message = state["messages"][-1] if state["messages"] else None
    if isinstance(last_message, AIMessage) and last_message.tool_calls and not state.get("reply"):
        return "tools"
    return _continue_or_end(state)


def after_tools(state: AgentState) -> str:
    """The first round that produced a composed reply ends the turn."""
    return _continue_or_end(state)


# ── Graph assembly ───────────────────────────────────────────────────


def create_admin_agent(registry: ToolRegistry):
    """Build and compile the assistant graph.

    Invoke with the per-turn selection, tool context and system prompt in
    the run config::

        graph.invoke(
            {"messages": [...], "rounds": 0, "reply": "", "outcomes": []},
            config={"configurable": {"selection": ..., "tool_context": ...,
                                     "system_prompt": ...}},
        )
    """
    graph = StateGraph(AgentState)
    graph.add_node("chatbot", _make_chatbot_node(registry))
    graph.add_node("tools", _make_tools_node(registry))
    graph.set_entry_point("chatbot")
    graph.add_conditional_edges("chatbot", after_chatbot, {"tools": "tools", "chatbot": "chatbot", END: END})
    graph.add_conditional_edges("tools", after_tools, {"chatbot": "chatbot", END: END})
    compiled = graph.compile()

    logger.debug(
        "Admin assistant compiled: model %s, tools %s, max rounds %d",
        MODEL_NAME, registry.available(), MAX_TOOL_ROUNDS,
    )
    return compiled


# ── Assistant facade ────────────────────────────────────────────────


def _history_messages(history: list[ChatMessage]) -> list[AnyMessage]:
    messages: list[AnyMessage] = []
    for message in history:
        if message.role == "user":
            messages.append(HumanMessage(content=message.content))
        elif message.role == "assistant" and message.content:
            messages.append(AIMessage(content=message.content))
    return messages


class AdminAssistant:
    """Entry point used by the API and the CLI: one call per chat turn."""

    def __init__(
        self,
        backoffice: BackofficeClient | None = None,
        sessions: SessionManager | None = None,
        registry: ToolRegistry | None = None,
        time_zone: str = TIME_ZONE,
        summarize: bool = True,
    ):
        self._backoffice = backoffice or get_backoffice_client()
        self._sessions = sessions or SessionManager(ChatStore(DATABASE_PATH), time_zone=time_zone)
        self._registry = registry or ToolRegistry(announcements_enabled=ANNOUNCEMENTS_ENABLED)
        self._time_zone = time_zone
        self._summarize = summarize
        self._graph = create_admin_agent(self._registry)
        self._summary_llm: ChatAnthropic | None = None

    @property
    def sessions(self) -> SessionManager:
        return self._sessions

    def _ensure_admin(self, scope: TenantScope, admin_user_id: str) -> None:
        if not self._backoffice.is_admin(scope, admin_user_id):
            raise AdminNotAuthorizedError(f"User {admin_user_id} is not an admin of local {scope.local_id}")

    # ── chat ─────────────────────────────────────────────────────────

    def chat(
        self,
        admin_user_id: str,
        message: str,
        session_id: str | None = None,
        *,
        scope: TenantScope,
    ) -> ChatResult:
        text = (message or "").strip()
        if not text:
            raise ValueError("Message must not be empty")

        try:
            self._ensure_admin(scope, admin_user_id)
            if self._sessions.count_user_messages_today(scope.local_id) >= DAILY_MESSAGE_LIMIT:
                raise DailyLimitExceededError(f"Daily limit of {DAILY_MESSAGE_LIMIT} messages reached")
            return self._run_turn(admin_user_id, text, session_id, scope)
        except AssistantError:
            raise
        except Exception as exc:
            logger.exception("Chat turn failed for admin %s", admin_user_id)
            raise AssistantUnavailableError("The assistant could not complete the request") from exc

    def _run_turn(
        self, admin_user_id: str, text: str, session_id: str | None, scope: TenantScope,
    ) -> ChatResult:
        session = self._sessions.get_or_create_session(admin_user_id, scope.local_id, session_id)
        now = self._sessions.now()
        history = self._sessions.get_recent_messages(session.id, MAX_HISTORY_MESSAGES)
        facts = self._sessions.get_facts(scope.local_id)

        last_assistant = next(
            (item.content for item in reversed(history) if item.role == "assistant"), None,
        )
        selection = select_tools(text, last_assistant, self._registry.available())
        logger.info(
            "Session %s: tools %s, choice %s", session.id, selection.tools, selection.tool_choice,
        )

        context = ToolContext(
            scope=scope, backoffice=self._backoffice, now=now, time_zone=self._time_zone, message=text,
        )
        system_prompt = get_system_prompt(
            now,
            self._time_zone,
            summary=session.summary,
            facts=facts,
            announcements_enabled=self._registry.announcements_enabled,
        )
        result = self._graph.invoke(
            {
                "messages": [*_history_messages(history), HumanMessage(content=text)],
                "rounds": 0,
                "reply": "",
                "actions": ChatActions(),
                "outcomes": [],
            },
            config={
                "configurable": {
                    "selection": selection,
                    "tool_context": context,
                    "system_prompt": system_prompt,
                },
            },
        )

        reply = finalize_reply(result.get("reply", ""))
        outcomes = result.get("outcomes") or []
        self._sessions.append_message(session.id, "user", text)
        self._sessions.append_message(
            session.id,
            "assistant",
            reply,
            tool_name=",".join(dict.fromkeys(item["tool"] for item in outcomes)) or None,
            tool_payload=outcomes or None,
        )

        if self._summarize and self._sessions.should_update_summary(session.id):
            threading.Thread(
                target=self._update_summary,
                args=(session.id, session.summary),
                daemon=True,
                name=f"summary-{session.id}",
            ).start()

        return ChatResult(
            session_id=session.id,
            reply=reply,
            actions=result.get("actions") or ChatActions(),
        )

    # ── summaries ────────────────────────────────────────────────────

    def _update_summary(self, session_id: str, previous_summary: str) -> None:
        """Fold the latest messages into the session summary (best effort)."""
        recent = self._sessions.get_recent_messages(session_id, SUMMARY_MAX_MESSAGES)
        if not recent:
            return
        prompt = build_summary_prompt(
            previous_summary, [f"{item.role}: {item.content}" for item in recent],
        )
        if self._summary_llm is None:
            self._summary_llm = _build_summary_llm()
        t0 = time.perf_counter()
        try:
            response = self._summary_llm.invoke(
                [SystemMessage(content=SUMMARIZER_SYSTEM_PROMPT), HumanMessage(content=prompt)]
            )
            elapsed = (time.perf_counter() - t0) * 1000
            metrics.record_success("anthropic", "summary_invoke", latency_ms=elapsed)
            summary = _text_of(response)
            if summary:
                self._sessions.update_summary(session_id, summary)
                logger.debug("Summary updated for session %s", session_id)
        except Exception as exc:
            elapsed = (time.perf_counter() - t0) * 1000
            metrics.record_failure(
                "anthropic", "summary_invoke",
                error_type=type(exc).__name__, latency_ms=elapsed,
            )
            logger.warning("Could not update summary for session %s: %s", session_id, exc)

    # ── session lookup ───────────────────────────────────────────────

    def get_session(
        self, admin_user_id: str, session_id: str, *, scope: TenantScope,
    ) -> SessionTranscript:
        try:
            self._ensure_admin(scope, admin_user_id)
            transcript = self._sessions.get_session_messages(admin_user_id, scope.local_id, session_id)
        except AssistantError:
            raise
        except Exception as exc:
            logger.exception("Session lookup failed for %s", session_id)
            raise AssistantUnavailableError("The session could not be loaded") from exc
        if transcript is None:
            raise SessionNotFoundError(f"Session {session_id} not found")
        return transcript
