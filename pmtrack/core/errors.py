"""Error taxonomy for the pmtrack quick-update core.

A missed extraction is not an error: an absent slot is simply left out of the
entity mapping. Everything below is surfaced to the caller as
``success: false`` with enough detail to retry or correct the input.
"""

from __future__ import annotations

from typing import Any


class QuickUpdateError(Exception):
    """Base exception for quick-update failures."""

    status_code = 500

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the failure payload returned by the API."""
        return {"success": False, "message": str(self)}


class IntentUndetermined(QuickUpdateError):
    """No intent could be inferred from the merged session state."""

    status_code = 200


class NotFoundError(QuickUpdateError):
    """A named project or milestone could not be resolved.

    Attributes:
        entity: Kind of entity that was looked up ("project", "milestone")
        name: The name the user typed
    """

    status_code = 404

    def __init__(self, entity: str, name: str) -> None:
        self.entity = entity
        self.name = name
        super().__init__(f"{entity.capitalize()} '{name}' not found.")

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["entity"] = self.entity
        data["name"] = self.name
        return data


class UpstreamProviderError(QuickUpdateError):
    """The language-understanding provider failed or returned garbage."""

    status_code = 502


class StoreError(QuickUpdateError):
    """The project store could not persist a write.

    The write is rolled back, so retrying the same turn is safe.
    """

    status_code = 503


class ValidationError(QuickUpdateError):
    """A create payload was malformed.

    Attributes:
        errors: Field-level details as ``{"field": ..., "message": ...}`` dicts
    """

    status_code = 422

    def __init__(self, message: str, errors: list[dict[str, str]] | None = None) -> None:
        self.errors = errors or []
        super().__init__(message)

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        """Create a ValidationError carrying a single field error."""
        return cls(f"Invalid {field}: {message}", [{"field": field, "message": message}])

    @classmethod
    def from_pydantic(cls, exc: Any) -> "ValidationError":
        """Translate a ``pydantic.ValidationError`` into field-level detail."""
        errors = [
            {
                "field": ".".join(str(part) for part in err.get("loc", ())),
                "message": err.get("msg", "invalid value"),
            }
            for err in exc.errors()
        ]
        fields = ", ".join(e["field"] for e in errors) or "payload"
        return cls(f"Invalid payload: {fields}", errors)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["errors"] = self.errors
        return data


__all__ = [
    "QuickUpdateError",
    "IntentUndetermined",
    "NotFoundError",
    "StoreError",
    "UpstreamProviderError",
    "ValidationError",
]
