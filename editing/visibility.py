"""
Single-open-form state machine.

The coordinator owns the one authoritative "open form" key (the visibility
token) and the ``visible`` flag of every mounted FormState.  It never
touches the page: each transition is queued on the EffectDispatcher as
declarative PendingEffects, in the same critical section that flips the
token, so no observer can see two forms marked visible.

Transitions:

    show_create_form()        T  → CREATE_FORM   (close T first)
    show_update_form(id)      T  → id            (close T first)
    hide_form(key)            key → prior state  (cancel path)
    release(key)              key → None         (commit path, no effect)

"Prior state" is what was open right before ``key`` was last opened.  The
history keeps each key at most once, so repeated cancels always walk back
to "nothing open".
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from editing.effects import (
    HIDE_FORM,
    SHOW_FORM,
    EffectDispatcher,
    PendingEffect,
    selector_for,
)
from editing.items import CREATE_FORM, FormKey, FormState

logger = logging.getLogger(__name__)

OpenHook = Callable[[], None]


class VisibilityCoordinator:
    def __init__(self, dispatcher: EffectDispatcher) -> None:
        self._dispatcher = dispatcher
        self._forms: dict[FormKey, FormState] = {}
        self._open_hooks: dict[FormKey, OpenHook] = {}
        self._token: FormKey | None = None
        self._history: list[FormKey | None] = []
        self._lock = threading.RLock()

    @property
    def token(self) -> FormKey | None:
        return self._token

    def is_open(self, key: FormKey) -> bool:
        return self._token == key

    # ── Mounting ──────────────────────────────────────────────────────────

    def register(self, form: FormState, on_open: OpenHook | None = None) -> None:
        """Mount a form.  A freshly mounted form is always closed."""
        with self._lock:
            key = form.key
            if key in self._forms:
                raise ValueError(f"Form {key!r} is already registered")
            form.visible = False
            self._forms[key] = form
            if on_open is not None:
                self._open_hooks[key] = on_open

    def unregister(self, key: FormKey) -> None:
        """Unmount a form; if it was open, nothing is open afterwards."""
        with self._lock:
            form = self._forms.pop(key, None)
            self._open_hooks.pop(key, None)
            self._history = [k for k in self._history if k != key]
            if form is not None:
                form.visible = False
            if self._token == key:
                self._token = None
                logger.debug("unmounted open form %r", key)

    def registered(self) -> list[FormKey]:
        with self._lock:
            return list(self._forms)

    # ── Transitions ───────────────────────────────────────────────────────

    def show_create_form(self) -> bool:
        return self._open(CREATE_FORM)

    def show_update_form(self, item_id: int) -> bool:
        return self._open(item_id)

    def hide_form(self, key: FormKey) -> bool:
        """Close ``key`` and go back to whatever was open before it."""
        with self._lock:
            if self._token != key:
                logger.debug("hide_form(%r) ignored, open form is %r", key, self._token)
                return False
            self._close_current()
            effects = [PendingEffect(selector_for(key), HIDE_FORM)]
            prior = self._history.pop() if self._history else None
            if prior is not None and prior in self._forms:
                self._make_current(prior)
                effects.append(PendingEffect(selector_for(prior), SHOW_FORM))
            self._emit(effects)
            return True

    def release(self, key: FormKey) -> bool:
        """Close ``key`` after a commit.  The caller sends the effect."""
        with self._lock:
            if self._token != key:
                return False
            self._close_current()
            self._history.clear()
            self._log_state("release")
            return True

    def check_invariant(self) -> bool:
        """True when at most one form is visible and it matches the token."""
        with self._lock:
            visible = [k for k, f in self._forms.items() if f.visible]
            if self._token is None:
                return not visible
            return visible == [self._token]

    # ── Internals ─────────────────────────────────────────────────────────

    def _open(self, key: FormKey) -> bool:
        with self._lock:
            if key not in self._forms:
                raise KeyError(f"No form registered for {key!r}")
            if self._token == key:
                return False
            prior = self._token
            effects: list[PendingEffect] = []
            if prior is not None:
                self._close_current()
                effects.append(PendingEffect(selector_for(prior), HIDE_FORM))
            self._history = [k for k in self._history if k not in (key, prior)]
            self._history.append(prior)
            self._make_current(key)
            effects.append(PendingEffect(selector_for(key), SHOW_FORM))
            self._emit(effects)
            return True

    def _close_current(self) -> None:
        if self._token is None:
            return
        form = self._forms.get(self._token)
        if form is not None:
            form.visible = False
        self._token = None

    def _make_current(self, key: FormKey) -> None:
        self._token = key
        self._forms[key].visible = True
        hook = self._open_hooks.get(key)
        if hook is not None:
            hook()

    def _emit(self, effects: list[PendingEffect]) -> None:
        for effect in effects:
            self._dispatcher.dispatch(effect)
        self._log_state("transition")

    def _log_state(self, what: str) -> None:
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("%s: token=%r invariant=%s", what, self._token,
                         self.check_invariant())
