"""LangGraph-based agent for the Digital Twin.

Architecture:
  A LangGraph StateGraph with two nodes:

    1. **chatbot**  calls Claude with the persona system prompt and the
                    four tool schemas bound
    2. **tools**    runs every tool call of the last AI message through
                    ``dispatch`` and appends one ``ToolMessage`` per call

  Routing:
    chatbot → (has tool calls?) → tools → chatbot (loop)
            → (no tool calls?)  → END

  Modes:
    ``text`` uses ``MODEL_NAME`` with ``CHAT_MAX_TOKENS``; ``voice`` uses
    the faster ``VOICE_MODEL_NAME`` with a short ``VOICE_MAX_TOKENS`` cap
    and a speech-friendly suffix on the system prompt.

  Memory:
    The graph has no checkpointer.  Conversation history lives in the
    database; each turn is invoked with the stored history, the
    conversation id (so tools can link visitors and bookings to it) and
    the mode.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Annotated, Optional

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import AnyMessage, SystemMessage, ToolMessage
from langgraph.graph import END, StateGraph
from langgraph.graph.message import add_messages
from typing_extensions import TypedDict

from digital_twin.config import (
    ANTHROPIC_API_KEY,
    CHAT_MAX_TOKENS,
    LLM_TEMPERATURE,
    MODEL_NAME,
    VOICE_MAX_TOKENS,
    VOICE_MODEL_NAME,
)
from digital_twin.db.store import Database, get_database
from digital_twin.prompts import get_system_prompt
from digital_twin.services.audit import get_audit_log
from digital_twin.services.metrics import metrics
from digital_twin.tools.dispatch import dispatch
from digital_twin.tools.schemas import TOOL_SPECS

logger = logging.getLogger(__name__)


# ── State schema ─────────────────────────────────────────────────────


class AgentState(TypedDict):
    """The state that flows through the graph.

    ``messages`` uses the LangGraph ``add_messages`` reducer so that each
    node can append messages without overwriting the full history.
    ``conversation_id`` and ``mode`` are set by the caller and only read.
    """

    messages: Annotated[list[AnyMessage], add_messages]
    conversation_id: Optional[str]
    mode: str


# ── LLM builder ─────────────────────────────────────────────────────


def _build_llm(model: str, max_tokens: int):
    """Build a Claude chat model with the Digital Twin tools bound."""
    llm = ChatAnthropic(
        model=model,
        api_key=ANTHROPIC_API_KEY,
        temperature=LLM_TEMPERATURE,
        max_tokens=max_tokens,
    )
    return llm.bind_tools(TOOL_SPECS)


# ── Node: chatbot ───────────────────────────────────────────────────


def _make_chatbot_node():
    """Create the chatbot node.

    Both LLM clients are built once and captured in the closure so that
    the chatbot → tools → chatbot loop reuses them.
    """
    llms = {
        "text": (_build_llm(MODEL_NAME, CHAT_MAX_TOKENS), MODEL_NAME),
        "voice": (_build_llm(VOICE_MODEL_NAME, VOICE_MAX_TOKENS), VOICE_MODEL_NAME),
    }

    def chatbot_node(state: AgentState) -> dict:
        """Invoke the LLM for the turn's mode with the conversation so far."""
        mode = state.get("mode") or "text"
        llm, model_name = llms.get(mode, llms["text"])
        logger.debug("chatbot node invoked: model=%s mode=%s", model_name, mode)
        system = SystemMessage(content=get_system_prompt(voice=mode == "voice"))
        operation = f"{mode}_invoke"
        t0 = time.perf_counter()
        try:
            response = llm.invoke([system] + state["messages"])
            elapsed = (time.perf_counter() - t0) * 1000
            metrics.record_success("anthropic", operation, latency_ms=elapsed)
            logger.debug("chatbot responded in %.0fms", elapsed)
            return {"messages": [response]}
        except Exception as exc:
            elapsed = (time.perf_counter() - t0) * 1000
            metrics.record_failure(
                "anthropic", operation,
                error_type=type(exc).__name__, latency_ms=elapsed,
            )
            raise

    return chatbot_node


# ── Node: tools ─────────────────────────────────────────────────────


def _make_tools_node(db: Database):
    """Create the node that executes tool calls through ``dispatch``."""
    audit = get_audit_log(db)

    def tools_node(state: AgentState) -> dict:
        last_message = state["messages"][-1]
        conversation_id = state.get("conversation_id")
        results = []
        for call in getattr(last_message, "tool_calls", None) or []:
            result = dispatch(
                call["name"], call.get("args"), conversation_id, db=db, audit=audit,
            )
            results.append(
                ToolMessage(
                    content=json.dumps(result, default=str),
                    tool_call_id=call["id"],
                    name=call["name"],
                )
            )
        return {"messages": results}

    return tools_node


# ── Conditional edge ─────────────────────────────────────────────────


def should_use_tools(state: AgentState) -> str:
    """Check if the last message has tool calls; if so, route to tools node."""
    last_message = state["messages"][-1]
    if hasattr(last_message, "tool_calls") and last_message.tool_calls:
        return "tools"
    return END


# ── Graph assembly ───────────────────────────────────────────────────


def create_digital_twin_agent(db: Database | None = None):
    """Build and compile the Digital Twin LangGraph agent.

    Returns a compiled graph that can be invoked with:
        graph.invoke({
            "messages": [HumanMessage(content="...")],
            "conversation_id": "…",
            "mode": "text",
        })
    """
    db = db or get_database()
    graph = StateGraph(AgentState)

    graph.add_node("chatbot", _make_chatbot_node())
    graph.add_node("tools", _make_tools_node(db))

    graph.set_entry_point("chatbot")
    graph.add_conditional_edges(
        "chatbot", should_use_tools, {"tools": "tools", END: END},
    )
    graph.add_edge("tools", "chatbot")

    compiled = graph.compile()
    logger.debug(
        "Digital Twin agent compiled: text=%s voice=%s tools=%d",
        MODEL_NAME, VOICE_MODEL_NAME, len(TOOL_SPECS),
    )
    return compiled
