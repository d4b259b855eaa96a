"""
RowFormComponent — the editable counterpart of one row (or of the create
form).

Per instance state machine::

    CLOSED ──open──▶ OPEN ──change──▶ VALIDATING ──▶ OPEN
                      │
                      └──submit──▶ SUBMITTING ──ok──▶ CLOSED
                                        └──errors──▶ OPEN

The component only ever asks the VisibilityCoordinator to hide itself on
cancel.  After a successful submit it publishes a notification instead and
leaves closing the form to the ListController, which is the one that knows
the commit landed in the collection.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable, Mapping
from typing import Any

from editing.errors import FORM_ERROR_KEY, NotFoundError, ValidationError
from editing.items import FormKey, FormState, Item
from editing.notifications import Created, NotificationChannel, Updated
from editing.persistence import Persistence
from editing.visibility import VisibilityCoordinator

logger = logging.getLogger(__name__)

Validator = Callable[[Mapping[str, Any]], dict[str, str]]


class FormPhase(enum.Enum):
    CLOSED = "closed"
    OPEN = "open"
    VALIDATING = "validating"
    SUBMITTING = "submitting"


class RowFormComponent:
    def __init__(
        self,
        item: Item | None,
        persistence: Persistence,
        coordinator: VisibilityCoordinator,
        channel: NotificationChannel,
        validator: Validator | None = None,
    ) -> None:
        if item is not None and item.id is None:
            raise ValueError("Row forms bind persisted items; pass None for the create form")
        self.item = item
        self.phase = FormPhase.CLOSED
        # Bumped whenever the draft is reset, so the HTML layer knows the
        # rendered inputs are stale.
        self.revision = 0
        self._persistence = persistence
        self._coordinator = coordinator
        self._channel = channel
        self._validator = validator
        self._touched: set[str] = set()
        self.state = FormState(
            bound_item_id=None if item is None else item.id,
            draft=self._snapshot(),
        )
        coordinator.register(self.state, on_open=self.on_open)

    @property
    def key(self) -> FormKey:
        return self.state.key

    @property
    def is_create_form(self) -> bool:
        return self.state.bound_item_id is None

    # ── Lifecycle ─────────────────────────────────────────────────────────

    def on_open(self) -> None:
        """Closed → Open: start from a fresh copy of the bound item."""
        self._reset_draft()
        self.phase = FormPhase.OPEN

    def unmount(self) -> None:
        self._coordinator.unregister(self.key)
        self.phase = FormPhase.CLOSED

    def rebind(self, item: Item) -> None:
        """Point an idle row form at a newer version of its item."""
        if item.id != self.state.bound_item_id:
            raise ValueError(f"Cannot rebind form {self.key!r} to item {item.id}")
        self.item = item
        if not self.state.visible:
            self._reset_draft()

    # ── Events ────────────────────────────────────────────────────────────

    def on_field_change(self, field: str, value: Any) -> dict[str, str]:
        self.phase = FormPhase.VALIDATING
        self.state.draft[field] = value
        self._touched.add(field)
        errors = self._validate_draft()
        self.state.errors = {
            k: v for k, v in errors.items()
            if k in self._touched or k == FORM_ERROR_KEY
        }
        self.phase = FormPhase.OPEN
        return self.state.errors

    def merge(self, values: Mapping[str, Any]) -> None:
        """Fold submitted values into the draft without validating."""
        if not self.state.visible:
            return
        self.state.draft.update(values)

    def on_submit(self) -> bool:
        if not self.state.visible:
            logger.info("form %r is not open, ignoring submit", self.key)
            return False
        self.phase = FormPhase.SUBMITTING
        draft = dict(self.state.draft)
        bound_id = self.state.bound_item_id
        try:
            if bound_id is None:
                item = self._persistence.create(draft)
            else:
                item = self._persistence.update(bound_id, draft)
        except ValidationError as exc:
            logger.info("form %r rejected: %s", self.key, exc)
            self.state.errors = exc.errors
            self.phase = FormPhase.OPEN
            return False
        except NotFoundError as exc:
            logger.info("form %r bound to missing item %s", self.key, exc.item_id)
            self.state.errors = exc.as_errors()
            self.phase = FormPhase.OPEN
            return False

        if bound_id is None:
            self._reset_draft()
            self._channel.publish(Created(item))
        else:
            self.item = item
            self._reset_draft()
            self._channel.publish(Updated(item))
        self.phase = FormPhase.CLOSED
        return True

    def on_cancel(self) -> None:
        self._reset_draft()
        self._coordinator.hide_form(self.key)
        self.phase = FormPhase.CLOSED

    # ── Internals ─────────────────────────────────────────────────────────

    def _snapshot(self) -> dict[str, Any]:
        return {} if self.item is None else dict(self.item.fields)

    def _reset_draft(self) -> None:
        self.state.draft = self._snapshot()
        self.state.errors = {}
        self._touched.clear()
        self.revision += 1

    def _validate_draft(self) -> dict[str, str]:
        errors: dict[str, str] = {}
        if self._validator is not None:
            errors.update(self._validator(self.state.draft))
        remote = self._persistence.validate(self.state.draft, self.state.bound_item_id)
        for field, message in remote.items():
            errors.setdefault(field, message)
        return errors
