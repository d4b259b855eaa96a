"""
SQLite storage for expenses.

Provides:
  - get_db(): FastAPI dependency yielding a per-request connection for the
    read-only JSON routes.
  - SqliteExpenseStore: the Persistence implementation the editing core
    talks to (list / create / update / validate).

The database path is resolved once at import from APP_DB_PATH (default:
expenses.sqlite) and can be overridden by create_app(db_path=...).  Every
connection uses WAL, NORMAL synchronous and a busy timeout so concurrent
sessions writing through separate connections don't trip over each other.
"""

import logging
import os
import sqlite3
from collections.abc import Generator, Mapping
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from fastapi import HTTPException
from pydantic import ValidationError as PydanticValidationError

from api.models import clean_draft, draft_errors
from editing.errors import FORM_ERROR_KEY, NotFoundError, ValidationError
from editing.items import Item

logger = logging.getLogger(__name__)

_DB_PATH: Path = Path(os.getenv("APP_DB_PATH", "expenses.sqlite"))

_SCHEMA = """
CREATE TABLE IF NOT EXISTS expenses (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    description TEXT    NOT NULL,
    amount      INTEGER NOT NULL CHECK (amount >= 0)
);
"""

_FIELDS = ("description", "amount")


def get_db_path() -> Path:
    """Return the configured database path."""
    return _DB_PATH


def set_db_path(path: Path) -> None:
    global _DB_PATH
    _DB_PATH = Path(path)


def _make_conn(db_path: Path) -> sqlite3.Connection:
    """Open a single SQLite connection with standard pragmas."""
    conn = sqlite3.connect(str(db_path), check_same_thread=False, timeout=10)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA synchronous=NORMAL")
    conn.execute("PRAGMA busy_timeout=5000")
    return conn


def init_db(db_path: Path | None = None) -> Path:
    """Create the expenses table if needed; return the path used."""
    path = Path(db_path) if db_path is not None else _DB_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = _make_conn(path)
    try:
        conn.executescript(_SCHEMA)
        conn.commit()
    finally:
        conn.close()
    return path


def get_db() -> Generator[sqlite3.Connection, None, None]:
    """FastAPI dependency: yield a SQLite connection, close on exit.

    Raises HTTP 503 with a friendly message if the database file is missing,
    instead of silently creating an empty one.
    """
    if not _DB_PATH.exists():
        raise HTTPException(
            status_code=503,
            detail=f"Database not found at '{_DB_PATH}'.",
        )
    conn = _make_conn(_DB_PATH)
    try:
        yield conn
    finally:
        conn.close()


def row_to_item(row: sqlite3.Row) -> Item:
    return Item(id=row["id"], fields={name: row[name] for name in _FIELDS})


class SqliteExpenseStore:
    """Persistence for the editing core, one short-lived connection per call."""

    def __init__(self, db_path: Path | None = None) -> None:
        self.db_path = Path(db_path) if db_path is not None else _DB_PATH
        self._schema_ready = False

    @contextmanager
    def _connect(self):
        if not self._schema_ready:
            init_db(self.db_path)
            self._schema_ready = True
        conn = _make_conn(self.db_path)
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def list(self) -> list[Item]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT id, description, amount FROM expenses ORDER BY id"
            ).fetchall()
        return [row_to_item(r) for r in rows]

    def get(self, item_id: int) -> Item | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT id, description, amount FROM expenses WHERE id = ?",
                (item_id,),
            ).fetchone()
        return None if row is None else row_to_item(row)

    def create(self, draft: Mapping[str, Any]) -> Item:
        data = self._clean(draft)
        with self._connect() as conn:
            cur = conn.execute(
                "INSERT INTO expenses (description, amount) VALUES (?, ?)",
                (data["description"], data["amount"]),
            )
            item_id = cur.lastrowid
        logger.info("created expense %s", item_id)
        return Item(id=item_id, fields=data)

    def update(self, item_id: int, draft: Mapping[str, Any]) -> Item:
        data = self._clean(draft)
        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE expenses SET description = ?, amount = ? WHERE id = ?",
                (data["description"], data["amount"], item_id),
            )
            if cur.rowcount == 0:
                raise NotFoundError(item_id)
        logger.info("updated expense %s", item_id)
        return Item(id=item_id, fields=data)

    def validate(self, draft: Mapping[str, Any], item_id: int | None = None) -> dict[str, str]:
        """Storage-side checks that need the database (no writes)."""
        errors: dict[str, str] = {}
        if item_id is not None and self.get(item_id) is None:
            errors[FORM_ERROR_KEY] = NotFoundError(item_id).as_errors()[FORM_ERROR_KEY]
        return errors

    def count(self) -> int:
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(*) FROM expenses").fetchone()[0]

    @staticmethod
    def _clean(draft: Mapping[str, Any]) -> dict[str, Any]:
        try:
            model = clean_draft(draft)
        except PydanticValidationError:
            raise ValidationError(draft_errors(draft)) from None
        return model.model_dump()
