"""
Per-browser editing sessions.

An EditingSession wires one coordinator, dispatcher, notification channel,
list controller and the mounted row form components together, and runs
every user event as one sequential *turn*:

    1. the event handler runs (visibility toggle, field change, submit …)
    2. notifications published during the turn reach the ListController
    3. row form components are mounted / unmounted / rebound to match the
       collection
    4. the caller flushes queued effects into the response

Turns of one session never interleave: web routes hold ``session.lock``
(an ``asyncio.Lock``, FIFO for waiters) around each turn.  Sessions share
nothing except the Persistence object.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from editing.effects import ActionVocabulary, EffectChannel, EffectDispatcher
from editing.forms import RowFormComponent, Validator
from editing.items import CREATE_FORM, FormKey, Item
from editing.list_controller import ListChanges, ListController
from editing.notifications import NotificationChannel
from editing.persistence import Persistence
from editing.visibility import VisibilityCoordinator
from utils.cache import TTLCache

logger = logging.getLogger(__name__)


@dataclass
class TurnResult:
    """Outcome of one turn, used by the HTML layer to pick fragments."""

    ok: bool = True
    stale_forms: list[FormKey] = field(default_factory=list)
    changes: ListChanges = field(default_factory=ListChanges)


class EditingSession:
    def __init__(
        self,
        persistence: Persistence,
        *,
        session_id: str | None = None,
        vocabulary: ActionVocabulary | None = None,
        validator: Validator | None = None,
        notification_limit: int = 64,
    ) -> None:
        self.session_id = session_id or uuid.uuid4().hex
        self.vocabulary = vocabulary or ActionVocabulary()
        self.dispatcher = EffectDispatcher(self.vocabulary)
        self.coordinator = VisibilityCoordinator(self.dispatcher)
        self.notifications = NotificationChannel(limit=notification_limit)
        self.controller = ListController(persistence, self.coordinator, self.dispatcher)
        self.controller.subscribe_to(self.notifications)
        self.components: dict[FormKey, RowFormComponent] = {}
        self.lock = asyncio.Lock()
        self.created_at = time.time()
        self._persistence = persistence
        self._validator = validator
        self._started = False
        self._closed = False
        # Set when the registry evicts the session while a request holds it.
        self.retired = False
        self._guard = threading.RLock()

    # ── Setup / teardown ──────────────────────────────────────────────────

    def start(self) -> None:
        """Load the list and mount one form per item plus the create form."""
        if self._started:
            return
        self.controller.load()
        self._mount(None)
        self._reconcile()
        self.controller.take_changes()
        self._started = True
        logger.info("session %s started with %d item(s)",
                    self.session_id, len(self.controller.items))

    def close(self) -> None:
        with self._guard:
            if self._closed:
                return
            self._closed = True
            for key in list(self.components):
                self.components.pop(key).unmount()
            dropped = self.dispatcher.discard()
        logger.info("session %s closed (%d undelivered effect(s))", self.session_id, dropped)

    def retire(self) -> None:
        """Close now, or once the request holding ``lock`` is done with it."""
        self.retired = True
        if self.lock.locked():
            logger.debug("session %s busy, deferring close", self.session_id)
            return
        self.close()

    def close_if_retired(self) -> None:
        if self.retired:
            self.close()

    # ── Queries ───────────────────────────────────────────────────────────

    @property
    def items(self) -> list[Item]:
        return list(self.controller.items)

    def component(self, key: FormKey) -> RowFormComponent:
        try:
            return self.components[key]
        except KeyError:
            raise KeyError(f"No form mounted for {key!r}") from None

    # ── Events (one turn each) ────────────────────────────────────────────

    def refresh(self) -> TurnResult:
        """Re-list from Persistence, e.g. on a full page load."""
        return self._turn(self.controller.load)

    def show_create_form(self) -> TurnResult:
        return self._turn(self.coordinator.show_create_form)

    def show_update_form(self, item_id: int) -> TurnResult:
        self.component(item_id)
        return self._turn(lambda: self.coordinator.show_update_form(item_id))

    def change_field(self, key: FormKey, field_name: str, value: Any) -> TurnResult:
        component = self.component(key)
        return self._turn(lambda: component.on_field_change(field_name, value) == {})

    def submit(self, key: FormKey, values: Mapping[str, Any] | None = None) -> TurnResult:
        component = self.component(key)

        def handler() -> bool:
            if values:
                component.merge(values)
            return component.on_submit()

        return self._turn(handler)

    def cancel(self, key: FormKey) -> TurnResult:
        return self._turn(self.component(key).on_cancel)

    def flush_effects(self, channel: EffectChannel) -> int:
        return self.dispatcher.flush(channel)

    # ── Internals ─────────────────────────────────────────────────────────

    def _turn(self, handler: Callable[[], Any]) -> TurnResult:
        with self._guard:
            before = {key: c.revision for key, c in self.components.items()}
            outcome = handler()
            self.notifications.deliver()
            self._reconcile()
            result = TurnResult(
                ok=outcome is not False,
                stale_forms=[
                    key for key, c in self.components.items()
                    if before.get(key) != c.revision
                ],
                changes=self.controller.take_changes(),
            )
        if not self.coordinator.check_invariant():
            logger.error("session %s: visibility invariant broken (token=%r)",
                         self.session_id, self.coordinator.token)
        return result

    def _mount(self, item: Item | None) -> RowFormComponent:
        component = RowFormComponent(
            item,
            self._persistence,
            self.coordinator,
            self.notifications,
            validator=self._validator,
        )
        self.components[component.key] = component
        return component

    def _reconcile(self) -> None:
        listed = {item.id: item for item in self.controller.items}
        for key in list(self.components):
            if key != CREATE_FORM and key not in listed:
                self.components.pop(key).unmount()
                logger.debug("unmounted form for vanished item %s", key)
        for item_id, item in listed.items():
            component = self.components.get(item_id)  # type: ignore[arg-type]
            if component is None:
                self._mount(item)
            elif component.item != item:
                component.rebind(item)


class SessionRegistry:
    """Bounded, idle-expiring map of session id → EditingSession."""

    def __init__(
        self,
        factory: Callable[[str], EditingSession],
        maxsize: int = 1000,
        ttl_seconds: float = 1800.0,
    ) -> None:
        self._factory = factory
        self._cache = TTLCache(maxsize=maxsize, ttl_seconds=ttl_seconds,
                               on_evict=self._on_evict)

    def get(self, session_id: str) -> EditingSession | None:
        return self._cache.get(session_id)

    def get_or_create(self, session_id: str | None) -> EditingSession:
        if session_id:
            session = self._cache.get(session_id)
            if session is not None:
                return session
        session = self._factory(session_id or uuid.uuid4().hex)
        session.start()
        self._cache.set(session.session_id, session)
        return session

    def drop(self, session_id: str) -> None:
        self._cache.delete(session_id)

    def clear(self) -> None:
        self._cache.clear()

    def stats(self) -> dict[str, int]:
        return self._cache.stats()

    def __len__(self) -> int:
        return len(self._cache)

    @staticmethod
    def _on_evict(session_id: str, session: EditingSession) -> None:
        logger.info("session %s expired", session_id)
        session.retire()
