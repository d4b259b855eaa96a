"""
Pydantic request/response models for the inline expense editor.

ExpenseDraft is the single source of truth for what an expense may look
like.  The sqlite store validates every create/update with it, and the
editing core uses ``draft_errors()`` as its as-you-type (local) validator.
Messages are short and meant to sit next to the input they belong to.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

DESCRIPTION_MAX_LENGTH = 60
AMOUNT_MAX = 100_000_000

# pydantic error type → message shown in the form
_FRIENDLY_MESSAGES = {
    "missing": "can't be blank",
    "int_parsing": "must be a whole number",
    "int_from_float": "must be a whole number",
    "int_type": "must be a whole number",
    "string_type": "must be text",
}


# ── Expense models ────────────────────────────────────────────────────────────

class ExpenseDraft(BaseModel):
    """Fields a user may submit for an expense. Amounts are whole cents."""
    description: str = Field(..., description="What the money was spent on", examples=["Coffee"])
    amount: int = Field(..., description="Amount in cents", examples=[300])

    @field_validator("description")
    @classmethod
    def description_valid(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("can't be blank")
        if len(v) > DESCRIPTION_MAX_LENGTH:
            raise ValueError("too long")
        return v

    @field_validator("amount", mode="before")
    @classmethod
    def amount_present(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            raise ValueError("can't be blank")
        return v.strip() if isinstance(v, str) else v

    @field_validator("amount")
    @classmethod
    def amount_in_range(cls, v: int) -> int:
        if v < 0:
            raise ValueError("must be zero or more")
        if v > AMOUNT_MAX:
            raise ValueError("is too large")
        return v


class ExpenseOut(BaseModel):
    """A persisted expense."""
    id: int = Field(..., description="Unique expense ID", examples=[1])
    description: str = Field(..., description="What the money was spent on", examples=["Coffee"])
    amount: int = Field(..., description="Amount in cents", examples=[300])


class ExpenseListResponse(BaseModel):
    """Response body for GET /api/v1/expenses."""
    total: int = Field(..., description="Number of expenses", examples=[3])
    items: list[ExpenseOut] = Field(..., description="Expenses in display order")


# ── Error model ───────────────────────────────────────────────────────────────

class ErrorResponse(BaseModel):
    """Standard error response body."""
    error: str = Field(..., description="Short error category", examples=["Bad request"])
    detail: str | None = Field(None, description="Extended error detail")
    status_code: int = Field(..., ge=400, le=599, description="HTTP status code", examples=[400])


# ── Validation helpers ────────────────────────────────────────────────────────

def _message(error: dict) -> str:
    friendly = _FRIENDLY_MESSAGES.get(error["type"])
    if friendly:
        return friendly
    msg = error["msg"]
    # field_validator errors arrive as "Value error, <our message>"
    return msg.removeprefix("Value error, ")


def draft_errors(draft: Mapping[str, Any]) -> dict[str, str]:
    """Return ``{field: message}`` for every invalid field (first error wins)."""
    try:
        ExpenseDraft.model_validate(dict(draft))
    except PydanticValidationError as exc:
        errors: dict[str, str] = {}
        for error in exc.errors():
            field = str(error["loc"][0]) if error["loc"] else "__all__"
            errors.setdefault(field, _message(error))
        return errors
    return {}


def clean_draft(draft: Mapping[str, Any]) -> ExpenseDraft:
    """Validate and coerce; raises pydantic's ValidationError."""
    return ExpenseDraft.model_validate(dict(draft))
