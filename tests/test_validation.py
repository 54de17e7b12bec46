"""Tests for the shared input checks."""

from __future__ import annotations

from datetime import date, datetime
from zoneinfo import ZoneInfo

import pytest

from digital_twin.services.errors import InvalidInputError
from digital_twin.services.validation import (
    optional_text,
    parse_date,
    parse_datetime,
    require_choice,
    require_email,
    require_text,
    to_local,
    validate_email,
)


class TestValidateEmail:
    """Unit tests for the validate_email helper."""

    @pytest.mark.parametrize(
        "email",
        [
            "alice@example.com",
            "bob.jones@studio.co.uk",
            "jane+tag@gmail.com",
            "user@sub.domain.org",
            "UPPER@CASE.COM",
            "digits123@test456.io",
        ],
    )
    def test_accepts_valid_emails(self, email: str):
        assert validate_email(email) is None

    @pytest.mark.parametrize(
        "email",
        [
            "",
            "   ",
            "not-an-email",
            "missing@",
            "@no-local.com",
            "spaces in@email.com",
            "double@@at.com",
            "no-tld@localhost",
            "user@.leading-dot.com",
        ],
    )
    def test_rejects_invalid_emails(self, email: str):
        result = validate_email(email)
        assert result is not None
        assert "does not look like a valid email" in result or "No email" in result

    def test_none_is_rejected(self):
        assert "No email" in validate_email(None)


class TestRequireHelpers:
    def test_require_email_normalises_case_and_whitespace(self):
        assert require_email("  Jane.Doe@Example.COM ") == "jane.doe@example.com"

    def test_require_email_raises_with_message(self):
        with pytest.raises(InvalidInputError, match="does not look like a valid email"):
            require_email("not-an-email")

    def test_require_text_strips(self):
        assert require_text("  Jane  ", "name") == "Jane"

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_require_text_rejects_blank(self, value):
        with pytest.raises(InvalidInputError, match="The name is required"):
            require_text(value, "name")

    def test_require_text_enforces_max_length(self):
        with pytest.raises(InvalidInputError, match="at most 3"):
            require_text("abcd", "code", max_length=3)

    def test_optional_text_maps_blank_to_none_and_truncates(self):
        assert optional_text("   ", max_length=5) is None
        assert optional_text(None, max_length=5) is None
        assert optional_text(" abcdefgh ", max_length=5) == "abcde"

    def test_require_choice_accepts_enum_values(self):
        from digital_twin.db.models import MeetingType

        assert require_choice("quick_call", MeetingType, "meeting type") == "quick_call"

    def test_require_choice_lists_allowed_values(self):
        with pytest.raises(InvalidInputError, match="morning, afternoon"):
            require_choice("night", ("morning", "afternoon"), "time slot")


class TestParseDate:
    def test_parses_strict_iso_date(self):
        assert parse_date("2025-06-10") == date(2025, 6, 10)

    @pytest.mark.parametrize("value", ["13/01/2025", "2025-6-10", "20250610", "", None])
    def test_rejects_other_formats(self, value):
        with pytest.raises(InvalidInputError, match="YYYY-MM-DD"):
            parse_date(value)

    def test_rejects_impossible_dates(self):
        with pytest.raises(InvalidInputError, match="not a real calendar date"):
            parse_date("2025-02-30")


class TestParseDatetime:
    def test_naive_value_is_read_in_the_given_zone(self):
        tz = ZoneInfo("Europe/Lisbon")  # WEST, UTC+1 in June
        assert parse_datetime("2025-06-10T10:00:00", tz) == datetime(2025, 6, 10, 9, 0)

    def test_offset_value_is_converted_to_utc(self):
        tz = ZoneInfo("UTC")
        assert parse_datetime("2025-06-10T10:00:00+02:00", tz) == datetime(2025, 6, 10, 8, 0)

    def test_trailing_z_is_utc(self):
        tz = ZoneInfo("Asia/Tokyo")
        assert parse_datetime("2025-06-10T10:00:00Z", tz) == datetime(2025, 6, 10, 10, 0)

    def test_result_is_naive(self):
        assert parse_datetime("2025-06-10T10:00:00", ZoneInfo("UTC")).tzinfo is None

    @pytest.mark.parametrize("value", ["tomorrow at ten", "2025-13-01T10:00:00"])
    def test_rejects_garbage(self, value):
        with pytest.raises(InvalidInputError, match="Invalid datetime"):
            parse_datetime(value, ZoneInfo("UTC"))

    def test_rejects_blank(self):
        with pytest.raises(InvalidInputError, match="required"):
            parse_datetime("  ", ZoneInfo("UTC"))

    def test_to_local_round_trips_the_wall_clock(self):
        tz = ZoneInfo("America/New_York")
        stored = parse_datetime("2025-01-15T09:30:00", tz)
        local = to_local(stored, tz)
        assert (local.hour, local.minute) == (9, 30)
