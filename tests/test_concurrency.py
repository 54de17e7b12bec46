"""Simultaneous first writes for one key must converge on a single row."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

from sqlalchemy import func, select

from digital_twin.db.models import Booking, Visitor
from digital_twin.services.bookings import upsert_booking
from digital_twin.services.visitors import capture_visitor

THREADS = 12


def _rows(db, model) -> int:
    with db._session("test_count") as session:
        return session.scalar(select(func.count()).select_from(model))


def _run_together(func, count: int = THREADS):
    """Start *count* calls of ``func(i)`` at once; return (results, errors)."""
    barrier = threading.Barrier(count)
    results, errors = [], []
    lock = threading.Lock()

    def worker(i):
        barrier.wait()
        try:
            value = func(i)
        except Exception as exc:
            with lock:
                errors.append(exc)
        else:
            with lock:
                results.append(value)

    with ThreadPoolExecutor(max_workers=count) as pool:
        list(pool.map(worker, range(count)))
    return results, errors


def test_concurrent_visitor_capture_keeps_one_row(file_db):
    emails = ["Same@Example.com", "same@example.com", "SAME@EXAMPLE.COM"]

    def capture(i):
        return capture_visitor(
            emails[i % len(emails)], f"Visitor {i}", "recruiter", db=file_db,
        )

    ids, errors = _run_together(capture)

    assert errors == []
    assert len(ids) == THREADS
    assert len(set(ids)) == 1
    assert _rows(file_db, Visitor) == 1


def test_concurrent_form_bookings_keep_one_row(file_db):
    conversation_id = file_db.create_conversation(visitor_session_id="session-1")

    def book(i):
        return upsert_booking(
            conversation_id, "a@b.io", notes=f"attempt {i}", db=file_db,
        )

    ids, errors = _run_together(book)

    assert errors == []
    assert len(set(ids)) == 1
    assert _rows(file_db, Booking) == 1
    assert len(file_db.get_conversation_bookings(conversation_id)) == 1
