"""
Error kinds raised inside the inline editing core.

None of these are fatal to a session:

    ValidationError  — field-level messages from validation or Persistence;
                       redisplayed inline, the form stays open.
    NotFoundError    — the bound record vanished between open and submit;
                       surfaced as a form-level error under FORM_ERROR_KEY.
    TransportError   — the client went away while effects were in flight;
                       the batch is dropped and the next full page load
                       reconciles the view.
"""

from __future__ import annotations

from collections.abc import Mapping

# Errors mapping key for messages that belong to the whole form.
FORM_ERROR_KEY = "__all__"


class EditingError(Exception):
    """Base class for all inline editing errors."""


class ValidationError(EditingError):
    """One or more fields were rejected."""

    def __init__(self, errors: Mapping[str, str]) -> None:
        self.errors: dict[str, str] = dict(errors)
        summary = ", ".join(f"{k}: {v}" for k, v in self.errors.items())
        super().__init__(summary or "validation failed")


class NotFoundError(EditingError):
    """The record the form is bound to no longer exists."""

    def __init__(self, item_id: int) -> None:
        self.item_id = item_id
        super().__init__(f"Item {item_id} not found")

    def as_errors(self) -> dict[str, str]:
        return {FORM_ERROR_KEY: "This entry no longer exists. Cancel to close the form."}


class TransportError(EditingError):
    """Effects could not be handed to the client."""
