"""Persistence layer for the Digital Twin.

Every read and write of the relational store goes through a ``Database``
instance; no other module holds a connection or builds queries.  Each
accessor runs in its own short session (one commit, no transaction held
across calls).

**Upsert contract**

Visitors (keyed by email) and bookings (keyed by conversation id) are
written with a single ``INSERT … ON CONFLICT DO UPDATE … RETURNING id``
statement against the table's unique constraint, so two concurrent first
requests for the same key converge on one row instead of racing a
look-up-then-insert.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import create_engine, func, select, text, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from digital_twin.config import (
    DATABASE_URL,
    DEFAULT_PROJECT_DESCRIPTION,
    DEFAULT_PROJECT_NAME,
)
from digital_twin.db.models import (
    Base,
    Booking,
    BookingStatus,
    Conversation,
    Message,
    MessageRole,
    Project,
    ToolCall,
    ToolCallStatus,
    Visitor,
    utc_now,
)
from digital_twin.services.metrics import metrics

logger = logging.getLogger(__name__)

_IN_MEMORY_SQLITE_URLS = ("sqlite://", "sqlite:///:memory:")


class StoreError(Exception):
    """Raised when a store operation fails.  The driver error is chained."""


@dataclass(frozen=True)
class AdminSnapshot:
    """Raw aggregate counts and recent rows for the admin report."""

    total_visitors: int
    total_conversations: int
    total_bookings: int
    pending_bookings: int
    total_messages: int
    recent_conversations: int
    recent_visitors: list[Visitor]
    recent_bookings: list[tuple[Booking, str | None]]


def _engine_options(url: str) -> dict[str, Any]:
    if url.startswith("sqlite"):
        options: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if url in _IN_MEMORY_SQLITE_URLS:
            # Every session must see the same in-memory database.
            options["poolclass"] = StaticPool
        return options
    return {"pool_pre_ping": True}


class Database:
    """Typed accessors over the Digital Twin tables.

    The default project id is resolved lazily on first use and memoized
    for the life of the instance (it never changes once created).
    """

    def __init__(self, url: str | None = None, *, echo: bool = False) -> None:
        self._url = url or DATABASE_URL
        self._engine = create_engine(self._url, echo=echo, **_engine_options(self._url))
        self._session_factory = sessionmaker(
            bind=self._engine, autoflush=False, expire_on_commit=False,
        )
        self._default_project_id: str | None = None
        self._project_lock = threading.Lock()

    # ── Internal helpers ─────────────────────────────────────────────

    @contextmanager
    def _session(self, operation: str) -> Iterator[Session]:
        """Yield a session that commits on success and rolls back on error.

        SQLAlchemy failures are re-raised as ``StoreError``; anything else
        (e.g. a ``ValueError`` from argument checks) propagates unchanged.
        """
        session = self._session_factory()
        t0 = time.perf_counter()
        try:
            yield session
            session.commit()
            metrics.record_success(
                "database", operation, latency_ms=(time.perf_counter() - t0) * 1000,
            )
        except SQLAlchemyError as exc:
            session.rollback()
            metrics.record_failure(
                "database", operation,
                error_type=type(exc).__name__,
                latency_ms=(time.perf_counter() - t0) * 1000,
            )
            logger.error("Store operation %s failed: %s", operation, exc)
            raise StoreError(f"Database operation '{operation}' failed") from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _insert(self, model: type[Base]):
        """Return a dialect-specific INSERT that supports ON CONFLICT."""
        dialect = self._engine.dialect.name
        if dialect == "postgresql":
            return postgresql.insert(model)
        if dialect == "sqlite":
            return sqlite.insert(model)
        raise StoreError(f"Atomic upserts are not supported on the {dialect!r} dialect")

    # ── Lifecycle ────────────────────────────────────────────────────

    @property
    def dialect(self) -> str:
        return self._engine.dialect.name

    def create_schema(self) -> None:
        """Create all tables and indexes that do not exist yet."""
        try:
            Base.metadata.create_all(self._engine)
        except SQLAlchemyError as exc:
            raise StoreError("Schema creation failed") from exc
        logger.info("Database schema created/verified (%s)", self.dialect)

    def dispose(self) -> None:
        self._engine.dispose()

    def ping(self) -> bool:
        """Return True if the store answers a trivial query."""
        try:
            with self._session("ping") as session:
                session.execute(text("SELECT 1"))
        except StoreError:
            return False
        return True

    # ── Projects ─────────────────────────────────────────────────────

    def get_default_project_id(self) -> str:
        """Return the id of the single default project, creating it once.

        Uses double-checked locking so that the lock is only acquired
        until the id has been resolved.
        """
        if self._default_project_id is None:
            with self._project_lock:
                if self._default_project_id is None:
                    self._default_project_id = self._ensure_default_project()
        return self._default_project_id

    def _ensure_default_project(self) -> str:
        stmt = (
            self._insert(Project)
            .values(name=DEFAULT_PROJECT_NAME, description=DEFAULT_PROJECT_DESCRIPTION)
            .on_conflict_do_nothing(index_elements=[Project.name])
        )
        with self._session("ensure_default_project") as session:
            session.execute(stmt)
            project_id = session.execute(
                select(Project.id).where(Project.name == DEFAULT_PROJECT_NAME)
            ).scalar_one()
        logger.debug("Default project resolved: %s", project_id)
        return project_id

    # ── Conversations & messages ─────────────────────────────────────

    def create_conversation(self, visitor_session_id: str | None = None) -> str:
        """Create a conversation under the default project and return its id."""
        project_id = self.get_default_project_id()
        with self._session("create_conversation") as session:
            conversation = Conversation(
                project_id=project_id, visitor_session_id=visitor_session_id,
            )
            session.add(conversation)
            session.flush()
            conversation_id = conversation.id
        logger.info("Conversation created: %s", conversation_id)
        return conversation_id

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        with self._session("get_conversation") as session:
            return session.get(Conversation, conversation_id)

    def conversation_exists(self, conversation_id: str) -> bool:
        with self._session("conversation_exists") as session:
            found = session.execute(
                select(Conversation.id).where(Conversation.id == conversation_id)
            ).scalar_one_or_none()
        return found is not None

    def update_conversation_title(self, conversation_id: str, title: str) -> None:
        with self._session("update_conversation_title") as session:
            session.execute(
                update(Conversation)
                .where(Conversation.id == conversation_id)
                .values(title=title[:255], updated_at=utc_now())
            )

    def save_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        metadata: dict[str, Any] | None = None,
    ) -> int:
        """Append one message to a conversation and return its id."""
        if not conversation_id:
            raise ValueError("conversation_id is required")
        role = MessageRole(role).value
        if not content:
            raise ValueError("content is required")

        with self._session("save_message") as session:
            message = Message(
                conversation_id=conversation_id, role=role, content=content, meta=metadata,
            )
            session.add(message)
            session.execute(
                update(Conversation)
                .where(Conversation.id == conversation_id)
                .values(updated_at=utc_now())
            )
            session.flush()
            return message.id

    def get_conversation_history(self, conversation_id: str) -> list[Message]:
        """Return the conversation's messages, oldest first."""
        with self._session("get_conversation_history") as session:
            return list(
                session.scalars(
                    select(Message)
                    .where(Message.conversation_id == conversation_id)
                    .order_by(Message.created_at.asc(), Message.id.asc())
                )
            )

    # ── Visitors ─────────────────────────────────────────────────────

    def upsert_visitor(self, email: str, *, name: str, **fields: Any) -> str:
        """Insert a visitor or update the row that has the same email.

        Only the columns passed in are written on update, so the form path
        (name, linkedin) never clears the role captured by the agent.
        """
        values = {"email": email.strip().lower(), "name": name, **fields}
        stmt = self._insert(Visitor).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[Visitor.email],
            set_={
                **{key: getattr(stmt.excluded, key) for key in values if key != "email"},
                "updated_at": utc_now(),
            },
        ).returning(Visitor.id)
        with self._session("upsert_visitor") as session:
            return session.execute(stmt).scalar_one()

    def get_visitor(self, visitor_id: str) -> Visitor | None:
        with self._session("get_visitor") as session:
            return session.get(Visitor, visitor_id)

    def link_visitor(self, conversation_id: str, visitor_id: str) -> bool:
        """Attach a visitor to a conversation.  Returns False if no row matched."""
        with self._session("link_visitor") as session:
            result = session.execute(
                update(Conversation)
                .where(Conversation.id == conversation_id)
                .values(visitor_id=visitor_id, updated_at=utc_now())
            )
            return result.rowcount > 0

    # ── Bookings ─────────────────────────────────────────────────────

    def upsert_booking(self, conversation_id: str, **fields: Any) -> str:
        """Insert the conversation's booking or update it in place."""
        values = {"conversation_id": conversation_id, **fields}
        stmt = self._insert(Booking).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[Booking.conversation_id],
            set_={
                **{
                    key: getattr(stmt.excluded, key)
                    for key in values if key != "conversation_id"
                },
                "updated_at": utc_now(),
            },
        ).returning(Booking.id)
        with self._session("upsert_booking") as session:
            return session.execute(stmt).scalar_one()

    def get_conversation_bookings(self, conversation_id: str) -> list[Booking]:
        with self._session("get_conversation_bookings") as session:
            return list(
                session.scalars(
                    select(Booking)
                    .where(Booking.conversation_id == conversation_id)
                    .order_by(Booking.created_at.desc())
                )
            )

    def get_booked_datetimes(self, start: datetime, end: datetime) -> list[datetime]:
        """Requested datetimes of non-cancelled bookings in ``[start, end)`` (UTC)."""
        with self._session("get_booked_datetimes") as session:
            return list(
                session.scalars(
                    select(Booking.requested_datetime).where(
                        Booking.requested_datetime >= start,
                        Booking.requested_datetime < end,
                        Booking.status != BookingStatus.cancelled.value,
                    )
                )
            )

    # ── Tool-call audit log ──────────────────────────────────────────

    def record_tool_call(
        self,
        conversation_id: str | None,
        tool_name: str,
        tool_input: dict[str, Any],
        output: dict[str, Any],
        status: str,
        error_message: str | None = None,
    ) -> str:
        with self._session("record_tool_call") as session:
            record = ToolCall(
                conversation_id=conversation_id,
                tool_name=tool_name,
                input=tool_input,
                output=output,
                status=ToolCallStatus(status).value,
                error_message=error_message,
            )
            session.add(record)
            session.flush()
            return record.id

    def get_tool_call_history(self, conversation_id: str) -> list[ToolCall]:
        with self._session("get_tool_call_history") as session:
            return list(
                session.scalars(
                    select(ToolCall)
                    .where(ToolCall.conversation_id == conversation_id)
                    .order_by(ToolCall.created_at.asc())
                )
            )

    def get_tool_call_stats(self) -> dict[str, Any]:
        """Return ``{total, by_tool, success_rate}`` across all tool calls."""
        with self._session("get_tool_call_stats") as session:
            rows = session.execute(
                select(ToolCall.tool_name, ToolCall.status, func.count())
                .group_by(ToolCall.tool_name, ToolCall.status)
            ).all()

        by_tool: dict[str, int] = {}
        total = successes = 0
        for tool_name, status, count in rows:
            by_tool[tool_name] = by_tool.get(tool_name, 0) + count
            total += count
            if status == ToolCallStatus.success.value:
                successes += count
        return {
            "total": total,
            "by_tool": by_tool,
            "success_rate": (successes / total) * 100 if total else 0.0,
        }

    # ── Admin report ─────────────────────────────────────────────────

    def get_admin_snapshot(self, *, since: datetime, limit: int) -> AdminSnapshot:
        """Counts plus the ``limit`` most recent visitors and bookings."""
        with self._session("get_admin_snapshot") as session:

            def count(model, *criteria) -> int:
                stmt = select(func.count()).select_from(model)
                if criteria:
                    stmt = stmt.where(*criteria)
                return session.scalar(stmt) or 0

            recent_visitors = list(
                session.scalars(
                    select(Visitor).order_by(Visitor.created_at.desc()).limit(limit)
                )
            )
            recent_bookings = [
                (booking, visitor_name)
                for booking, visitor_name in session.execute(
                    select(Booking, Visitor.name)
                    .outerjoin(Visitor, Booking.visitor_id == Visitor.id)
                    .order_by(Booking.created_at.desc())
                    .limit(limit)
                )
            ]
            return AdminSnapshot(
                total_visitors=count(Visitor),
                total_conversations=count(Conversation),
                total_bookings=count(Booking),
                pending_bookings=count(
                    Booking, Booking.status == BookingStatus.pending.value,
                ),
                total_messages=count(Message),
                recent_conversations=count(Conversation, Conversation.created_at > since),
                recent_visitors=recent_visitors,
                recent_bookings=recent_bookings,
            )


# ── Module-level singleton (thread-safe) ────────────────────────────
_database: Database | None = None
_database_lock = threading.Lock()


def get_database() -> Database:
    """Return the process-wide ``Database`` built from ``DATABASE_URL``."""
    global _database
    if _database is None:
        with _database_lock:
            if _database is None:
                _database = Database()
    return _database
