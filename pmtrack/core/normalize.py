"""Value normalization applied right before a create call.

- Priority is title-cased against {High, Medium, Low}
- Due dates written relative to "now" are resolved to calendar dates
"""

from __future__ import annotations

import re
from datetime import date, timedelta

from .errors import ValidationError

PRIORITIES = ("High", "Medium", "Low")
DEFAULT_PRIORITY = "Medium"

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

# Words users reach for instead of a priority level
PRIORITY_SYNONYMS: dict[str, str] = {
    "urgent": "High",
    "critical": "High",
    "important": "High",
    "normal": "Medium",
    "minor": "Low",
}

_IN_N_UNITS = re.compile(r"^in\s+(\d+)\s+(day|week)s?$")
_WEEKDAY = re.compile(rf"^(?:(?:this|next)\s+)?({'|'.join(WEEKDAYS)})$")
_ISO_DATE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_DAY_MONTH = re.compile(r"^(\d{1,2})[/-](\d{1,2})(?:[/-](\d{2}|\d{4}))?$")


def normalize_priority(value: str | None) -> str:
    """Title-case a priority against the allowed set.

    Args:
        value: Raw priority ("high", "HIGH", "urgent", ...) or None

    Returns:
        One of "High", "Medium", "Low" ("Medium" when unset)

    Raises:
        ValidationError: If the value maps to no known priority
    """
    if value is None or not str(value).strip():
        return DEFAULT_PRIORITY

    raw = str(value).strip().lower()
    raw = re.sub(r"[\s-]*priority$", "", raw)

    if raw in PRIORITY_SYNONYMS:
        return PRIORITY_SYNONYMS[raw]

    candidate = raw.capitalize()
    if candidate in PRIORITIES:
        return candidate

    raise ValidationError.for_field(
        "priority", f"'{value}' is not one of {', '.join(PRIORITIES)}"
    )


def resolve_due_date(value: str, today: date) -> date:
    """Resolve a due-date expression to an absolute date.

    Supported forms: "today", "tomorrow", "next week", "in N days",
    "in N weeks", a weekday ("friday", "next friday"), ISO "YYYY-MM-DD",
    and day-first "dd/mm" or "dd/mm/yyyy".

    A weekday always means its next occurrence after ``today``; "this" and
    "next" are accepted and mean the same thing.

    Args:
        value: Due-date text as captured from the prompt
        today: Reference date (the dispatch date)

    Returns:
        The resolved calendar date

    Raises:
        ValidationError: If the expression cannot be understood
    """
    text = re.sub(r"\s+", " ", str(value).strip().lower())

    if text == "today":
        return today
    if text == "tomorrow":
        return today + timedelta(days=1)
    if text == "next week":
        return today + timedelta(weeks=1)

    match = _WEEKDAY.match(text)
    if match:
        target = WEEKDAYS.index(match.group(1))
        return today + timedelta(days=(target - today.weekday()) % 7 or 7)

    try:
        match = _IN_N_UNITS.match(text)
        if match:
            amount = int(match.group(1))
            if match.group(2) == "week":
                return today + timedelta(weeks=amount)
            return today + timedelta(days=amount)

        match = _ISO_DATE.match(text)
        if match:
            return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))

        match = _DAY_MONTH.match(text)
        if match:
            day, month = int(match.group(1)), int(match.group(2))
            year = today.year
            if match.group(3):
                year = int(match.group(3))
                if year < 100:
                    year += 2000
            return date(year, month, day)
    except (ValueError, OverflowError) as e:
        raise ValidationError.for_field("dueDate", f"'{value}' is not a valid date") from e

    raise ValidationError.for_field("dueDate", f"cannot understand '{value}'")


__all__ = [
    "PRIORITIES",
    "DEFAULT_PRIORITY",
    "WEEKDAYS",
    "normalize_priority",
    "resolve_due_date",
]
