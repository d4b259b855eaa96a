"""
ListController — owner of the canonical ordered item collection.

Consumes ``Created`` / ``Updated`` notifications:

    Created(item)  re-list from Persistence; its order is canonical.
    Updated(item)  swap the entry with the same id in place, keeping its
                   position.  O(n) scan; ids are unique.

After a notification is applied the controller closes the triggering form
(state only, through the coordinator) and dispatches exactly one
``hideForm`` effect for it.  A notification for an item the collection no
longer holds changes nothing, dispatches nothing, and is only logged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from editing.effects import HIDE_FORM, EffectDispatcher, PendingEffect, selector_for
from editing.items import Item, ItemCollection
from editing.notifications import Created, Notification, NotificationChannel, Updated
from editing.persistence import Persistence
from editing.visibility import VisibilityCoordinator

logger = logging.getLogger(__name__)


@dataclass
class ListChanges:
    """What the HTML layer has to re-render after a turn."""

    rows: list[int] = field(default_factory=list)
    relisted: bool = False

    def __bool__(self) -> bool:
        return self.relisted or bool(self.rows)


class ListController:
    def __init__(
        self,
        persistence: Persistence,
        coordinator: VisibilityCoordinator,
        dispatcher: EffectDispatcher,
    ) -> None:
        self.items = ItemCollection()
        self._persistence = persistence
        self._coordinator = coordinator
        self._dispatcher = dispatcher
        self._changes = ListChanges()

    def load(self) -> None:
        self.items.reset(self._persistence.list())
        self._changes.relisted = True

    def subscribe_to(self, channel: NotificationChannel) -> None:
        channel.subscribe(self.handle)

    def handle(self, notification: Notification) -> bool:
        """Apply one notification; False when it referenced a vanished item."""
        if isinstance(notification, Created):
            applied = self._on_created(notification.item)
        elif isinstance(notification, Updated):
            applied = self._on_updated(notification.item)
        else:
            raise TypeError(f"Unsupported notification: {notification!r}")
        if not applied:
            return False

        key = notification.form_key
        self._coordinator.release(key)
        self._dispatcher.dispatch(PendingEffect(selector_for(key), HIDE_FORM))
        return True

    def take_changes(self) -> ListChanges:
        changes, self._changes = self._changes, ListChanges()
        return changes

    def _on_created(self, item: Item) -> bool:
        self.items.reset(self._persistence.list())
        self._changes.relisted = True
        if item.id not in self.items:
            logger.warning("created item %s missing from re-list, skipping effect", item.id)
            return False
        logger.info("item %s created, %d item(s) listed", item.id, len(self.items))
        return True

    def _on_updated(self, item: Item) -> bool:
        if not self.items.replace(item):
            logger.warning("updated item %s is no longer listed, ignoring", item.id)
            return False
        self._changes.rows.append(item.id)  # type: ignore[arg-type]
        logger.info("item %s updated in place", item.id)
        return True
