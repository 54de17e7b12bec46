"""Conversation lifecycle: chat turns, history and summaries."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any

from langchain_core.messages import AIMessage, AnyMessage, HumanMessage

from digital_twin.db.models import BookingStatus, MessageRole
from digital_twin.db.store import Database, get_database
from digital_twin.services.errors import NotFoundError, UpstreamServiceError
from digital_twin.services.metrics import metrics
from digital_twin.services.validation import require_choice

logger = logging.getLogger(__name__)

FOCUS_AREAS = (
    "skills_discussed",
    "projects_discussed",
    "availability",
    "next_steps",
    "full_summary",
)
MAX_TITLE_LENGTH = 80


@dataclass(frozen=True)
class ChatTurn:
    conversation_id: str
    reply: str


def resolve_conversation(
    conversation_id: str | None,
    session_id: str | None = None,
    *,
    db: Database,
) -> str:
    """Return *conversation_id* if it exists, or create a new conversation.

    A client-supplied id that is unknown is an error rather than a silent
    fresh start, so history is never split across ids.
    """
    if conversation_id:
        if not db.conversation_exists(conversation_id):
            raise NotFoundError(f"Conversation {conversation_id} was not found.")
        return conversation_id
    return db.create_conversation(visitor_session_id=session_id)


def _to_langchain(messages) -> list[AnyMessage]:
    history: list[AnyMessage] = []
    for message in messages:
        if message.role == MessageRole.user.value:
            history.append(HumanMessage(content=message.content))
        else:
            history.append(AIMessage(content=message.content))
    return history


def _message_text(message: Any) -> str:
    """Plain text of an AI message whose content may be a list of blocks."""
    content = message.content if hasattr(message, "content") else message
    if isinstance(content, list):
        return "".join(
            block.get("text", "") if isinstance(block, dict) else str(block)
            for block in content
        ).strip()
    return str(content).strip()


def run_chat_turn(
    agent,
    message: str,
    *,
    conversation_id: str | None = None,
    session_id: str | None = None,
    mode: str = "text",
    db: Database | None = None,
) -> ChatTurn:
    """Handle one visitor message end to end.

    Persists the user message, runs the agent over the stored history,
    then persists and returns the assistant's reply.  An agent failure
    raises ``UpstreamServiceError``; what was already stored stays stored.
    """
    db = db or get_database()
    conversation_id = resolve_conversation(conversation_id, session_id, db=db)

    db.save_message(conversation_id, MessageRole.user.value, message, {"mode": mode})
    history = db.get_conversation_history(conversation_id)
    if len(history) == 1:
        db.update_conversation_title(conversation_id, message[:MAX_TITLE_LENGTH])

    t0 = time.perf_counter()
    try:
        result = agent.invoke(
            {
                "messages": _to_langchain(history),
                "conversation_id": conversation_id,
                "mode": mode,
            }
        )
    except Exception as exc:
        elapsed = (time.perf_counter() - t0) * 1000
        metrics.record_failure(
            "anthropic", f"{mode}_turn", error_type=type(exc).__name__, latency_ms=elapsed,
        )
        logger.exception("Agent failed for conversation %s", conversation_id)
        raise UpstreamServiceError("The assistant is temporarily unavailable.") from exc

    messages = result.get("messages", [])
    reply = _message_text(messages[-1]) if messages else ""
    if not reply:
        logger.error("Agent returned no text for conversation %s", conversation_id)
        raise UpstreamServiceError("The assistant produced no response.")

    db.save_message(conversation_id, MessageRole.assistant.value, reply, {"mode": mode})
    logger.debug(
        "Turn completed for %s in %.0fms", conversation_id, (time.perf_counter() - t0) * 1000,
    )
    return ChatTurn(conversation_id=conversation_id, reply=reply)


def get_conversation_detail(conversation_id: str, *, db: Database | None = None) -> dict[str, Any]:
    """Conversation metadata plus its messages, oldest first."""
    db = db or get_database()
    conversation = db.get_conversation(conversation_id)
    if conversation is None:
        raise NotFoundError(f"Conversation {conversation_id} was not found.")
    messages = db.get_conversation_history(conversation_id)
    return {
        "conversation": {
            "id": conversation.id,
            "title": conversation.title,
            "created_at": conversation.created_at,
            "updated_at": conversation.updated_at,
            "message_count": len(messages),
        },
        "messages": [
            {
                "id": m.id,
                "role": m.role,
                "content": m.content,
                "created_at": m.created_at,
            }
            for m in messages
        ],
    }


def _shorten(text: str, limit: int = 120) -> str:
    text = " ".join(text.split())
    return text if len(text) <= limit else text[: limit - 1] + "…"


def generate_summary(
    conversation_id: str,
    focus_area: str | None = None,
    *,
    db: Database | None = None,
) -> str:
    """Build a Markdown recap of a conversation from what is stored.

    The recap is assembled from the store (counts, the linked visitor, the
    booking, recent questions); no LLM call is made.
    """
    db = db or get_database()
    focus_area = require_choice(focus_area or "full_summary", FOCUS_AREAS, "focus area")

    conversation = db.get_conversation(conversation_id)
    messages = db.get_conversation_history(conversation_id) if conversation else []
    if not messages:
        raise NotFoundError("There are no messages in this conversation to summarize yet.")

    questions = [m.content for m in messages if m.role == MessageRole.user.value]
    visitor = db.get_visitor(conversation.visitor_id) if conversation.visitor_id else None
    bookings = db.get_conversation_bookings(conversation_id)
    booking = bookings[0] if bookings else None

    lines = ["## Conversation Summary", ""]
    lines.append(
        f"**Total Messages:** {len(messages)} "
        f"({len(questions)} from the visitor, {len(messages) - len(questions)} replies)"
    )
    if visitor is not None:
        role = f", {visitor.role.replace('_', ' ')}" if visitor.role else ""
        lines.append(f"**Visitor:** {visitor.name} ({visitor.email}{role})")

    if focus_area in ("skills_discussed", "projects_discussed", "full_summary"):
        lines += ["", "**Recent questions:**"]
        lines += [f"- {_shorten(q)}" for q in questions[-3:]]

    if focus_area in ("availability", "next_steps", "full_summary"):
        lines.append("")
        if booking is None:
            lines.append("**Meeting:** none requested yet")
        else:
            when = (
                booking.requested_datetime.strftime("%d %b %Y %H:%M UTC")
                if booking.requested_datetime else "time not specified"
            )
            lines.append(f"**Meeting:** {booking.status} ({when})")

    if focus_area in ("next_steps", "full_summary"):
        if booking is not None and booking.status != BookingStatus.cancelled.value:
            step = "Wait for the meeting confirmation email."
        elif visitor is not None:
            step = "Schedule a meeting to continue the conversation."
        else:
            step = "Share your contact details or schedule a meeting to connect directly."
        lines.append(f"**Next Steps:** {step}")

    return "\n".join(lines)
