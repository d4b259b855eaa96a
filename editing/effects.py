"""
Client-only effects: vocabulary, pending queue, and delivery channel.

The server never ships executable code to the browser.  At render time every
row and the create form carry a ``data-effects`` attribute that maps a
symbolic action key to a list of declarative ops (show / hide, optional
transition).  Later, after a click or a commit, the server only sends
``{"target": <selector>, "action": <key>}`` references; ``static/effects.js``
looks the key up on the live element and runs the ops.

Delivery is fire-and-forget.  Effects queue on an EffectDispatcher in FIFO
order and are flushed once per session turn through an EffectChannel.  The
HTMX channel writes them into the ``HX-Trigger-After-Settle`` response
header, so they run after the main swap has settled rather than as part of
it.  A channel that can't reach its client raises TransportError and the
batch is dropped.

Selectors:
    #row-<id>     the read-only row for item <id>
    #form-<id>    the inline edit form for item <id>
    #form-new     the create form
"""

from __future__ import annotations

import json
import logging
import threading
from collections import deque
from collections.abc import MutableMapping, Sequence
from dataclasses import dataclass
from typing import Protocol

from editing.errors import TransportError
from editing.items import CREATE_FORM, FormKey

logger = logging.getLogger(__name__)

SHOW_FORM = "showForm"
HIDE_FORM = "hideForm"

EFFECTS_EVENT = "editor:effects"
EFFECTS_HEADER = "HX-Trigger-After-Settle"


def row_selector(item_id: int) -> str:
    return f"#row-{item_id}"


def form_selector(key: FormKey) -> str:
    return f"#form-{key}"


def selector_for(key: FormKey) -> str:
    """Element that owns the show/hide vocabulary for a form.

    Rows own it for item forms; the create form has no row and owns it
    itself.
    """
    if key == CREATE_FORM:
        return form_selector(CREATE_FORM)
    return row_selector(key)  # type: ignore[arg-type]


# ── Declarative vocabulary ────────────────────────────────────────────────────

@dataclass(frozen=True)
class Transition:
    name: str
    duration_ms: int

    def to_dict(self) -> dict:
        return {"name": self.name, "duration_ms": self.duration_ms}


@dataclass(frozen=True)
class EffectOp:
    """One primitive the client runtime knows how to run."""

    op: str                              # "show" | "hide"
    target: str | None = None            # None = the element carrying the vocabulary
    transition: Transition | None = None

    def __post_init__(self) -> None:
        if self.op not in ("show", "hide"):
            raise ValueError(f"Unknown effect op: {self.op!r}")

    def to_dict(self) -> dict:
        data: dict = {"op": self.op}
        if self.target is not None:
            data["target"] = self.target
        if self.transition is not None:
            data["transition"] = self.transition.to_dict()
        return data


class ActionVocabulary:
    """Builds the action → ops tables embedded into the page at render time."""

    def __init__(self, transition_ms: int = 200) -> None:
        self.transition_ms = transition_ms

    def keys(self) -> frozenset[str]:
        return frozenset({SHOW_FORM, HIDE_FORM})

    def _fade_in(self) -> Transition:
        return Transition("fade-in", self.transition_ms)

    def for_row(self, item_id: int) -> dict[str, list[EffectOp]]:
        form = form_selector(item_id)
        return {
            SHOW_FORM: [EffectOp("hide"), EffectOp("show", form, self._fade_in())],
            HIDE_FORM: [EffectOp("hide", form), EffectOp("show", None, self._fade_in())],
        }

    def for_create_form(self) -> dict[str, list[EffectOp]]:
        return {
            SHOW_FORM: [EffectOp("show", None, self._fade_in())],
            HIDE_FORM: [EffectOp("hide")],
        }

    @staticmethod
    def render(actions: dict[str, list[EffectOp]]) -> str:
        """Serialize for a ``data-effects`` attribute."""
        return json.dumps(
            {key: [op.to_dict() for op in ops] for key, ops in actions.items()},
            separators=(",", ":"),
        )


# ── Pending effects and delivery ──────────────────────────────────────────────

@dataclass(frozen=True)
class PendingEffect:
    target_selector: str
    action_key: str

    def to_dict(self) -> dict[str, str]:
        return {"target": self.target_selector, "action": self.action_key}


class EffectChannel(Protocol):
    def send(self, effects: Sequence[PendingEffect]) -> None:
        """Hand a FIFO batch to the client or raise TransportError."""


class HxTriggerChannel:
    """Deliver effects through an HTMX ``HX-Trigger-After-Settle`` header.

    ``headers`` is the outgoing response's header mapping.  ``connected``
    is sampled by the route just before flushing; a client that already
    hung up can't receive the header, so the send fails.
    """

    def __init__(self, headers: MutableMapping[str, str], connected: bool = True) -> None:
        self._headers = headers
        self._connected = connected

    def send(self, effects: Sequence[PendingEffect]) -> None:
        if not self._connected:
            raise TransportError("client disconnected before effects were sent")
        payload = {EFFECTS_EVENT: {"effects": [e.to_dict() for e in effects]}}
        self._headers[EFFECTS_HEADER] = json.dumps(payload, separators=(",", ":"))


class EffectDispatcher:
    """FIFO queue of PendingEffects for one session.

    ``dispatch`` never blocks and never merges two effects, even when they
    share a selector.  ``flush`` drains the queue exactly once; if the
    channel raises TransportError the batch is gone.
    """

    def __init__(self, vocabulary: ActionVocabulary | None = None,
                 max_pending: int = 256) -> None:
        self._vocabulary = vocabulary
        self._max_pending = max_pending
        self._pending: deque[PendingEffect] = deque()
        self._lock = threading.Lock()
        self.delivered_count = 0
        self.dropped_count = 0

    def dispatch(self, effect: PendingEffect) -> None:
        if self._vocabulary is not None and effect.action_key not in self._vocabulary.keys():
            raise ValueError(f"Unknown action key: {effect.action_key!r}")
        with self._lock:
            if len(self._pending) >= self._max_pending:
                dropped = self._pending.popleft()
                self.dropped_count += 1
                logger.warning("effect queue full, dropping oldest %s", dropped)
            self._pending.append(effect)
        logger.debug("queued effect target=%s action=%s",
                     effect.target_selector, effect.action_key)

    def pending(self) -> tuple[PendingEffect, ...]:
        with self._lock:
            return tuple(self._pending)

    def discard(self) -> int:
        with self._lock:
            n = len(self._pending)
            self._pending.clear()
        return n

    def flush(self, channel: EffectChannel) -> int:
        """Send everything queued so far; return how many were delivered."""
        with self._lock:
            batch = list(self._pending)
            self._pending.clear()
        if not batch:
            return 0
        try:
            channel.send(batch)
        except TransportError as exc:
            self.dropped_count += len(batch)
            logger.info("dropped %d effect(s): %s", len(batch), exc)
            return 0
        self.delivered_count += len(batch)
        return len(batch)
