"""
Read-only expense endpoints.

GET /api/v1/expenses       → every expense in display order
GET /api/v1/expenses/{id}  → one expense

Writes only go through the HTML forms, so every change passes the editing
core and reaches the session's list controller.
"""

import sqlite3

from fastapi import APIRouter, Depends, HTTPException

from api.database import get_db, row_to_item
from api.models import ErrorResponse, ExpenseListResponse, ExpenseOut

router = APIRouter(prefix="/expenses", tags=["expenses"])


@router.get("", response_model=ExpenseListResponse, summary="List expenses")
def list_expenses(conn: sqlite3.Connection = Depends(get_db)) -> ExpenseListResponse:
    """Return all expenses ordered by id (the list's display order)."""
    rows = conn.execute(
        "SELECT id, description, amount FROM expenses ORDER BY id"
    ).fetchall()
    items = [ExpenseOut(**row_to_item(r).to_dict()) for r in rows]
    return ExpenseListResponse(total=len(items), items=items)


@router.get(
    "/{item_id}",
    response_model=ExpenseOut,
    responses={404: {"model": ErrorResponse}},
    summary="Get one expense",
)
def get_expense(item_id: int, conn: sqlite3.Connection = Depends(get_db)) -> ExpenseOut:
    row = conn.execute(
        "SELECT id, description, amount FROM expenses WHERE id = ?", (item_id,)
    ).fetchone()
    if row is None:
        raise HTTPException(status_code=404, detail=f"Expense {item_id} not found")
    return ExpenseOut(**row_to_item(row).to_dict())
