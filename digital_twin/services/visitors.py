"""Visitor registry: one visitor row per (case-folded) email address."""

from __future__ import annotations

import logging

from digital_twin.db.models import VisitorRole
from digital_twin.db.store import Database, get_database
from digital_twin.services.errors import NotFoundError
from digital_twin.services.validation import (
    optional_text,
    require_choice,
    require_email,
    require_text,
)

logger = logging.getLogger(__name__)

MAX_CONTEXT_LENGTH = 500


def _require_conversation(db: Database, conversation_id: str) -> None:
    if not db.conversation_exists(conversation_id):
        raise NotFoundError(f"Conversation {conversation_id} was not found.")


def capture_visitor(
    email: str,
    name: str,
    role: str,
    context: str | None = None,
    *,
    conversation_id: str | None = None,
    db: Database | None = None,
) -> str:
    """Create or update the visitor for *email* and return its id.

    Capturing the same person twice (any letter case) returns the same id.
    When *conversation_id* is given the visitor is linked to it; an unknown
    conversation is rejected before anything is written.
    """
    db = db or get_database()
    email = require_email(email)
    name = require_text(name, "name", max_length=255)
    role = require_choice(role, VisitorRole, "role")
    context = optional_text(context, max_length=MAX_CONTEXT_LENGTH)

    if conversation_id:
        _require_conversation(db, conversation_id)

    visitor_id = db.upsert_visitor(email, name=name, role=role, context=context)
    if conversation_id:
        db.link_visitor(conversation_id, visitor_id)

    logger.info("Visitor captured: %s (%s) conversation=%s", visitor_id, role, conversation_id)
    return visitor_id


def register_visitor(
    conversation_id: str,
    name: str,
    email: str,
    linkedin: str | None = None,
    *,
    db: Database | None = None,
) -> str:
    """Form-path variant: store name and LinkedIn URL, link the conversation."""
    db = db or get_database()
    conversation_id = require_text(conversation_id, "conversation id")
    name = require_text(name, "name", max_length=255)
    email = require_email(email)
    linkedin = optional_text(linkedin, max_length=255)

    _require_conversation(db, conversation_id)
    visitor_id = db.upsert_visitor(email, name=name, linkedin=linkedin)
    db.link_visitor(conversation_id, visitor_id)

    logger.info("Visitor saved from form: %s conversation=%s", visitor_id, conversation_id)
    return visitor_id
