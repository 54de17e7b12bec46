"""Shared test fixtures for the Digital Twin test suite."""

from __future__ import annotations

import os
from datetime import datetime

import pytest


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    This runs before any imports, so config.py won't fail on module load.
    """
    os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key-123")
    os.environ.setdefault("DATABASE_URL", "sqlite://")
    os.environ.setdefault("METRICS_ENABLED", "false")
    os.environ.setdefault("BOOKING_TIMEZONE", "UTC")
    os.environ.setdefault("PERSONA_NAME", "Alex")
    os.environ.setdefault("CALENDAR_URL", "")


@pytest.fixture
def db():
    """A fresh in-memory SQLite database with the schema created."""
    from digital_twin.db.store import Database

    database = Database("sqlite://")
    database.create_schema()
    yield database
    database.dispose()


@pytest.fixture
def file_db(tmp_path):
    """A file-backed SQLite database, so threads get their own connections."""
    from digital_twin.db.store import Database

    database = Database(f"sqlite:///{tmp_path / 'twin.db'}")
    database.create_schema()
    yield database
    database.dispose()


@pytest.fixture
def conversation_id(db) -> str:
    return db.create_conversation(visitor_session_id="session-1")


@pytest.fixture
def book_slot(db):
    """Factory: store a booking at a naive-UTC datetime in its own conversation."""

    def _book(when: datetime, status: str = "pending") -> str:
        conversation = db.create_conversation()
        return db.upsert_booking(
            conversation,
            email="someone@example.com",
            requested_datetime=when,
            status=status,
        )

    return _book
