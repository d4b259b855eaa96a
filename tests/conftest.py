"""
Pytest fixtures for the inline editor tests.

Provides an in-memory Persistence fake, a recording effect channel, the
core objects wired the way EditingSession wires them, and a populated
sqlite database for the store and HTTP tests.
"""

import sqlite3
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from editing.effects import ActionVocabulary, EffectDispatcher  # noqa: E402
from editing.errors import NotFoundError, TransportError, ValidationError  # noqa: E402
from editing.items import Item  # noqa: E402
from editing.notifications import NotificationChannel  # noqa: E402
from editing.session import EditingSession  # noqa: E402
from editing.visibility import VisibilityCoordinator  # noqa: E402

DESCRIPTION_LIMIT = 20


class FakePersistence:
    """Dict-backed Persistence that records every call."""

    def __init__(self, rows=()):
        self.rows: dict[int, dict] = {}
        self.next_id = 1
        self.calls: list[tuple] = []
        for fields in rows:
            self.rows[self.next_id] = dict(fields)
            self.next_id += 1

    def list(self):
        self.calls.append(("list",))
        return [Item(id=i, fields=f) for i, f in self.rows.items()]

    def create(self, draft):
        self.calls.append(("create", dict(draft)))
        data = self._clean(draft)
        item_id = self.next_id
        self.next_id += 1
        self.rows[item_id] = data
        return Item(id=item_id, fields=data)

    def update(self, item_id, draft):
        self.calls.append(("update", item_id, dict(draft)))
        if item_id not in self.rows:
            raise NotFoundError(item_id)
        data = self._clean(draft)
        self.rows[item_id] = data
        return Item(id=item_id, fields=data)

    def validate(self, draft, item_id=None):
        self.calls.append(("validate", item_id))
        if item_id is not None and item_id not in self.rows:
            return NotFoundError(item_id).as_errors()
        return {}

    def delete_externally(self, item_id):
        del self.rows[item_id]

    @staticmethod
    def _clean(draft):
        errors = {}
        description = str(draft.get("description", "")).strip()
        if not description:
            errors["description"] = "can't be blank"
        elif len(description) > DESCRIPTION_LIMIT:
            errors["description"] = "too long"
        try:
            amount = int(draft.get("amount"))
        except (TypeError, ValueError):
            errors["amount"] = "must be a whole number"
        else:
            if amount < 0:
                errors["amount"] = "must be zero or more"
        if errors:
            raise ValidationError(errors)
        return {"description": description, "amount": amount}


class RecordingChannel:
    """EffectChannel that keeps every batch it was handed."""

    def __init__(self, connected=True):
        self.connected = connected
        self.batches: list[list] = []

    def send(self, effects):
        if not self.connected:
            raise TransportError("client went away")
        self.batches.append(list(effects))

    @property
    def sent(self):
        return [(e.target_selector, e.action_key) for batch in self.batches for e in batch]


@pytest.fixture()
def store():
    """Fake persistence holding Coffee (id 1) and Lunch (id 2)."""
    return FakePersistence([
        {"description": "Coffee", "amount": 300},
        {"description": "Lunch", "amount": 1250},
    ])


@pytest.fixture()
def dispatcher():
    return EffectDispatcher(ActionVocabulary())


@pytest.fixture()
def coordinator(dispatcher):
    return VisibilityCoordinator(dispatcher)


@pytest.fixture()
def notifications():
    return NotificationChannel()


@pytest.fixture()
def channel():
    return RecordingChannel()


@pytest.fixture()
def session(store):
    s = EditingSession(store, session_id="test-session")
    s.start()
    return s


def pending_pairs(dispatcher):
    """(selector, action) for everything queued on *dispatcher*."""
    return [(e.target_selector, e.action_key) for e in dispatcher.pending()]


@pytest.fixture()
def expense_db(tmp_path):
    """A sqlite database with the expenses schema and two rows."""
    db_path = tmp_path / "expenses.sqlite"
    conn = sqlite3.connect(str(db_path))
    conn.executescript("""
        CREATE TABLE expenses (
            id          INTEGER PRIMARY KEY AUTOINCREMENT,
            description TEXT    NOT NULL,
            amount      INTEGER NOT NULL CHECK (amount >= 0)
        );
        INSERT INTO expenses (description, amount) VALUES
            ('Coffee', 300),
            ('Lunch', 1250);
    """)
    conn.commit()
    conn.close()
    return db_path

