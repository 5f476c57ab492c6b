"""Tests for pmtrack.core.normalize module."""

from __future__ import annotations

from datetime import date

import pytest

from pmtrack.core.errors import ValidationError
from pmtrack.core.normalize import normalize_priority, resolve_due_date

TODAY = date(2026, 3, 10)


class TestNormalizePriority:
    """Tests for normalize_priority()."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("high", "High"),
            ("HIGH", "High"),
            ("Medium", "Medium"),
            ("low", "Low"),
            ("high priority", "High"),
            ("low-priority", "Low"),
            ("urgent", "High"),
            ("critical", "High"),
            ("minor", "Low"),
        ],
    )
    def test_known_values(self, value, expected):
        """Test title-casing and synonyms."""
        assert normalize_priority(value) == expected

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_default_medium(self, value):
        """Test that an unset priority defaults to Medium."""
        assert normalize_priority(value) == "Medium"

    def test_invalid_raises_with_field(self):
        """Test that unknown priorities raise a field-level error."""
        with pytest.raises(ValidationError) as exc_info:
            normalize_priority("whenever")
        assert exc_info.value.errors[0]["field"] == "priority"
        assert exc_info.value.status_code == 422


class TestResolveDueDate:
    """Tests for resolve_due_date()."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("today", date(2026, 3, 10)),
            ("tomorrow", date(2026, 3, 11)),
            ("Tomorrow", date(2026, 3, 11)),
            ("next week", date(2026, 3, 17)),
            ("in 3 days", date(2026, 3, 13)),
            ("in 1 day", date(2026, 3, 11)),
            ("in 2 weeks", date(2026, 3, 24)),
            ("2026-06-01", date(2026, 6, 1)),
            ("24/04", date(2026, 4, 24)),
            ("5-7", date(2026, 7, 5)),
            ("12/05/2027", date(2027, 5, 12)),
            ("12/05/27", date(2027, 5, 12)),
            ("friday", date(2026, 3, 13)),
            ("Friday", date(2026, 3, 13)),
            ("this wednesday", date(2026, 3, 11)),
            ("next monday", date(2026, 3, 16)),
        ],
    )
    def test_expressions(self, value, expected):
        """Test relative and absolute forms."""
        assert resolve_due_date(value, TODAY) == expected

    def test_month_boundary(self):
        """Test that relative dates roll over months and years."""
        assert resolve_due_date("tomorrow", date(2026, 12, 31)) == date(2027, 1, 1)

    @pytest.mark.parametrize("value", ["someday", "31/02", "2026-13-01", ""])
    def test_invalid_raises_with_field(self, value):
        """Test that unparseable dates raise on dueDate."""
        with pytest.raises(ValidationError) as exc_info:
            resolve_due_date(value, TODAY)
        assert exc_info.value.errors[0]["field"] == "dueDate"

    def test_weekday_never_resolves_to_today(self):
        """Test naming today's weekday means a week from now."""
        assert TODAY.weekday() == 1
        assert resolve_due_date("tuesday", TODAY) == date(2026, 3, 17)

    @pytest.mark.parametrize("value", ["in 99999999 days", "in 999999999999 weeks"])
    def test_out_of_range_relative_date(self, value):
        """Test huge offsets are a dueDate validation error, not an overflow."""
        with pytest.raises(ValidationError) as exc_info:
            resolve_due_date(value, TODAY)
        assert exc_info.value.errors[0]["field"] == "dueDate"
        assert exc_info.value.status_code == 422
