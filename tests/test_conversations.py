"""Tests for chat turns, conversation detail and summaries."""

from __future__ import annotations

from datetime import datetime
from unittest.mock import MagicMock

import pytest
from langchain_core.messages import AIMessage, HumanMessage

from digital_twin.services.conversations import (
    generate_summary,
    get_conversation_detail,
    run_chat_turn,
)
from digital_twin.services.errors import InvalidInputError, NotFoundError, UpstreamServiceError
from digital_twin.services.visitors import capture_visitor


def _make_mock_agent(reply):
    """Create a mock compiled graph whose final message is *reply*."""
    agent = MagicMock()
    agent.invoke.return_value = {"messages": [AIMessage(content=reply)]}
    return agent


class TestRunChatTurn:
    def test_new_conversation_is_created_and_titled(self, db):
        agent = _make_mock_agent("Hi! I'm Alex's twin.")
        turn = run_chat_turn(agent, "Hello, who are you?", session_id="s-1", db=db)

        assert turn.reply == "Hi! I'm Alex's twin."
        conversation = db.get_conversation(turn.conversation_id)
        assert conversation.title == "Hello, who are you?"
        assert conversation.visitor_session_id == "s-1"
        history = db.get_conversation_history(turn.conversation_id)
        assert [(m.role, m.content) for m in history] == [
            ("user", "Hello, who are you?"),
            ("assistant", "Hi! I'm Alex's twin."),
        ]

    def test_agent_receives_stored_history_and_context(self, db, conversation_id):
        db.save_message(conversation_id, "user", "Earlier question")
        db.save_message(conversation_id, "assistant", "Earlier answer")
        agent = _make_mock_agent("Sure.")

        run_chat_turn(agent, "Follow-up", conversation_id=conversation_id, mode="voice", db=db)

        state = agent.invoke.call_args[0][0]
        assert state["conversation_id"] == conversation_id
        assert state["mode"] == "voice"
        assert [type(m) for m in state["messages"]] == [HumanMessage, AIMessage, HumanMessage]
        assert state["messages"][-1].content == "Follow-up"

    def test_title_is_only_set_from_the_first_message(self, db):
        agent = _make_mock_agent("ok")
        turn = run_chat_turn(agent, "First", db=db)
        run_chat_turn(agent, "Second", conversation_id=turn.conversation_id, db=db)
        assert db.get_conversation(turn.conversation_id).title == "First"

    def test_list_content_blocks_are_joined(self, db):
        agent = MagicMock()
        agent.invoke.return_value = {
            "messages": [AIMessage(content=[{"type": "text", "text": "Block reply"}])]
        }
        assert run_chat_turn(agent, "Hi", db=db).reply == "Block reply"

    def test_unknown_conversation_id(self, db):
        with pytest.raises(NotFoundError):
            run_chat_turn(_make_mock_agent("x"), "Hi", conversation_id="missing", db=db)

    def test_agent_failure_keeps_the_user_message(self, db, conversation_id):
        agent = MagicMock()
        agent.invoke.side_effect = RuntimeError("LLM exploded")
        with pytest.raises(UpstreamServiceError) as excinfo:
            run_chat_turn(agent, "Hello", conversation_id=conversation_id, db=db)
        assert "LLM exploded" not in str(excinfo.value)
        history = db.get_conversation_history(conversation_id)
        assert [m.content for m in history] == ["Hello"]

    def test_empty_reply_is_an_upstream_error(self, db, conversation_id):
        with pytest.raises(UpstreamServiceError):
            run_chat_turn(_make_mock_agent("  "), "Hello", conversation_id=conversation_id, db=db)


class TestConversationDetail:
    def test_returns_metadata_and_messages(self, db, conversation_id):
        db.save_message(conversation_id, "user", "Hi")
        db.save_message(conversation_id, "assistant", "Hello!")
        detail = get_conversation_detail(conversation_id, db=db)
        assert detail["conversation"]["id"] == conversation_id
        assert detail["conversation"]["message_count"] == 2
        assert [m["role"] for m in detail["messages"]] == ["user", "assistant"]

    def test_unknown_conversation(self, db):
        with pytest.raises(NotFoundError):
            get_conversation_detail("missing", db=db)


class TestGenerateSummary:
    @pytest.fixture
    def chatted(self, db, conversation_id):
        db.save_message(conversation_id, "user", "What projects have you led?")
        db.save_message(conversation_id, "assistant", "A ledger migration, among others.")
        db.save_message(conversation_id, "user", "Can we meet next week?")
        db.save_message(conversation_id, "assistant", "Happy to.")
        return conversation_id

    def test_full_summary_without_visitor_or_booking(self, db, chatted):
        summary = generate_summary(chatted, db=db)
        assert "**Total Messages:** 4 (2 from the visitor, 2 replies)" in summary
        assert "- What projects have you led?" in summary
        assert "**Meeting:** none requested yet" in summary
        assert "Share your contact details" in summary

    def test_summary_with_visitor_and_booking(self, db, chatted):
        visitor_id = capture_visitor(
            "jane@example.com", "Jane", "hiring_manager", conversation_id=chatted, db=db,
        )
        db.upsert_booking(
            chatted, visitor_id=visitor_id, email="jane@example.com",
            requested_datetime=datetime(2025, 6, 10, 10, 0), status="pending",
        )
        summary = generate_summary(chatted, "next_steps", db=db)
        assert "**Visitor:** Jane (jane@example.com, hiring manager)" in summary
        assert "**Meeting:** pending (10 Jun 2025 10:00 UTC)" in summary
        assert "Wait for the meeting confirmation email." in summary
        assert "Recent questions" not in summary

    def test_availability_focus_skips_questions(self, db, chatted):
        summary = generate_summary(chatted, "availability", db=db)
        assert "Meeting" in summary
        assert "Recent questions" not in summary
        assert "Next Steps" not in summary

    def test_unknown_focus_area(self, db, chatted):
        with pytest.raises(InvalidInputError, match="focus area"):
            generate_summary(chatted, "gossip", db=db)

    def test_empty_conversation(self, db, conversation_id):
        with pytest.raises(NotFoundError, match="no messages"):
            generate_summary(conversation_id, db=db)

    def test_unknown_conversation(self, db):
        with pytest.raises(NotFoundError):
            generate_summary("missing", db=db)
