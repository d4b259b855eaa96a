"""
Typed notifications from row form components to the list controller.

A component publishes ``Created`` or ``Updated`` after Persistence accepted
a submit.  Notifications wait in a bounded FIFO until the session turn ends,
then ``deliver()`` hands them to every subscriber in publish order.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from typing import Union

from editing.items import CREATE_FORM, FormKey, Item

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Created:
    item: Item

    @property
    def form_key(self) -> FormKey:
        return CREATE_FORM


@dataclass(frozen=True)
class Updated:
    item: Item

    @property
    def form_key(self) -> FormKey:
        return self.item.id  # type: ignore[return-value]


Notification = Union[Created, Updated]
Handler = Callable[[Notification], None]


class NotificationChannel:
    def __init__(self, limit: int = 64) -> None:
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self._limit = limit
        self._queue: deque[Notification] = deque()
        self._handlers: list[Handler] = []

    def subscribe(self, handler: Handler) -> None:
        self._handlers.append(handler)

    def publish(self, notification: Notification) -> None:
        if len(self._queue) >= self._limit:
            # Full: drain what is queued first so order is kept and nothing is lost.
            logger.warning("notification queue full (%d), delivering early", self._limit)
            self.deliver()
        self._queue.append(notification)

    def deliver(self) -> int:
        """Run every queued notification through the subscribers, oldest first."""
        count = 0
        while self._queue:
            notification = self._queue.popleft()
            for handler in self._handlers:
                handler(notification)
            count += 1
        return count

    def __len__(self) -> int:
        return len(self._queue)
