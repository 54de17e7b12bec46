"""FastAPI route definitions for the Digital Twin API."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from fastapi import APIRouter, HTTPException, Request, Response

from digital_twin.api.schemas import (
    AdminStatsResponse,
    BookingRequest,
    BookingResponse,
    ChatRequest,
    ChatResponse,
    ConversationDetailResponse,
    DatabaseHealthResponse,
    HealthResponse,
    VisitorRequest,
    VisitorResponse,
    VoiceRequest,
    VoiceResponse,
)
from digital_twin.db.store import Database, StoreError
from digital_twin.services.admin import get_admin_stats
from digital_twin.services.bookings import upsert_booking
from digital_twin.services.conversations import get_conversation_detail, run_chat_turn
from digital_twin.services.errors import (
    InvalidInputError,
    NotFoundError,
    UpstreamServiceError,
)
from digital_twin.services.visitors import register_visitor

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_agent(request: Request):
    """Retrieve the compiled LangGraph agent from app state.

    The agent is built once during the FastAPI lifespan (see
    ``server.py``).
    """
    agent = getattr(request.app.state, "agent", None)
    if agent is None:
        raise HTTPException(
            status_code=503,
            detail="The agent is still starting up. Please try again in a moment.",
        )
    return agent


def _get_db(request: Request) -> Database:
    db = getattr(request.app.state, "db", None)
    if db is None:
        raise HTTPException(
            status_code=503,
            detail="The database is still starting up. Please try again in a moment.",
        )
    return db


async def _run(request: Request, action: str, func: Callable[..., Any], *args, **kwargs):
    """Run a blocking service call in a worker thread and map its errors.

    Services talk to the database and the Anthropic API synchronously, so
    they are offloaded with ``asyncio.to_thread`` to keep the event loop
    free.  Visitor-facing messages of validation and not-found errors are
    returned as-is; everything else is logged and answered generically.
    """
    request_id = getattr(request.state, "request_id", "?")
    try:
        return await asyncio.to_thread(func, *args, **kwargs)
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except UpstreamServiceError as exc:
        logger.warning("[%s] %s: upstream unavailable: %s", request_id, action, exc)
        raise HTTPException(
            status_code=503,
            detail="The assistant is temporarily unavailable. Please try again shortly.",
        ) from exc
    except StoreError as exc:
        logger.exception("[%s] %s: database error", request_id, action)
        raise HTTPException(
            status_code=500, detail="Database error. Please try again.",
        ) from exc
    except Exception as exc:
        # Full traceback stays server-side.
        logger.exception("[%s] Error processing %s", request_id, action)
        raise HTTPException(
            status_code=500,
            detail="An internal error occurred. Please try again.",
        ) from exc


# ── Health ───────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse()


@router.get("/health/db", response_model=DatabaseHealthResponse)
async def database_health(request: Request, response: Response):
    """Report whether the database answers a trivial query."""
    db = _get_db(request)
    if await asyncio.to_thread(db.ping):
        return DatabaseHealthResponse(status="ok", database="connected")
    response.status_code = 503
    return DatabaseHealthResponse(status="error", database="unreachable")


# ── Conversation ─────────────────────────────────────────────────────


@router.post("/chat", response_model=ChatResponse)
async def chat(body: ChatRequest, request: Request):
    """Send a message to the twin and get its reply.

    Omit ``conversationId`` on the first message; the response carries the
    id to send with every follow-up.
    """
    agent = _get_agent(request)
    db = _get_db(request)
    turn = await _run(
        request, "chat request", run_chat_turn,
        agent, body.message,
        conversation_id=body.conversation_id,
        session_id=body.session_id,
        mode="text",
        db=db,
    )
    return ChatResponse(reply=turn.reply, conversation_id=turn.conversation_id)


@router.post("/voice", response_model=VoiceResponse)
async def voice(body: VoiceRequest, request: Request):
    """Same as ``/chat`` for transcribed speech; replies are short and plain."""
    agent = _get_agent(request)
    db = _get_db(request)
    turn = await _run(
        request, "voice request", run_chat_turn,
        agent, body.transcript,
        conversation_id=body.conversation_id,
        mode="voice",
        db=db,
    )
    return VoiceResponse(response=turn.reply, conversation_id=turn.conversation_id)


@router.get("/conversations/{conversation_id}", response_model=ConversationDetailResponse)
async def get_conversation(conversation_id: str, request: Request):
    db = _get_db(request)
    return await _run(
        request, "conversation lookup", get_conversation_detail, conversation_id, db=db,
    )


# ── Forms ────────────────────────────────────────────────────────────


@router.post("/visitors", response_model=VisitorResponse, status_code=201)
async def create_visitor(body: VisitorRequest, request: Request):
    """Save the contact form and link the visitor to the conversation."""
    db = _get_db(request)
    visitor_id = await _run(
        request, "visitor form", register_visitor,
        body.conversation_id, body.name, body.email, body.linkedin,
        db=db,
    )
    visitor = await _run(request, "visitor form", db.get_visitor, visitor_id)
    return VisitorResponse(
        visitor={
            "id": visitor.id,
            "name": visitor.name,
            "email": visitor.email,
            "linkedin": visitor.linkedin,
        }
    )


@router.post("/bookings", response_model=BookingResponse, status_code=201)
async def create_or_update_booking(body: BookingRequest, request: Request):
    """Insert or update the conversation's booking from the scheduling form."""
    db = _get_db(request)
    booking_id = await _run(
        request, "booking form", upsert_booking,
        body.conversation_id, body.email, body.status, body.preferred_time, body.notes,
        db=db,
    )
    bookings = await _run(
        request, "booking form", db.get_conversation_bookings, body.conversation_id,
    )
    booking = next((b for b in bookings if b.id == booking_id), None)
    if booking is None:
        logger.error(
            "[%s] booking %s missing after upsert",
            getattr(request.state, "request_id", "?"), booking_id,
        )
        raise HTTPException(status_code=500, detail="Database error. Please try again.")
    return BookingResponse(
        booking={
            "id": booking.id,
            "conversation_id": booking.conversation_id,
            "email": booking.email,
            "status": booking.status,
            "preferred_time": (
                booking.requested_datetime.isoformat() + "Z"
                if booking.requested_datetime else None
            ),
        }
    )


# ── Admin ────────────────────────────────────────────────────────────


@router.get("/admin/stats", response_model=AdminStatsResponse)
async def admin_stats(request: Request):
    """Aggregate counts and recent activity; zeros if the store is down."""
    db = _get_db(request)
    return await _run(request, "admin stats", get_admin_stats, db=db)
