"""Inline list editing core: one open form at a time, typed change
notifications, and declarative client-only effects."""

from editing.effects import (
    HIDE_FORM,
    SHOW_FORM,
    ActionVocabulary,
    EffectDispatcher,
    HxTriggerChannel,
    PendingEffect,
    selector_for,
)
from editing.errors import (
    FORM_ERROR_KEY,
    EditingError,
    NotFoundError,
    TransportError,
    ValidationError,
)
from editing.forms import FormPhase, RowFormComponent
from editing.items import CREATE_FORM, FormState, Item, ItemCollection, parse_form_key
from editing.list_controller import ListController
from editing.notifications import Created, NotificationChannel, Updated
from editing.session import EditingSession, SessionRegistry, TurnResult
from editing.visibility import VisibilityCoordinator

__all__ = [
    "CREATE_FORM",
    "HIDE_FORM",
    "SHOW_FORM",
    "ActionVocabulary",
    "Created",
    "EditingError",
    "EditingSession",
    "EffectDispatcher",
    "FORM_ERROR_KEY",
    "FormPhase",
    "FormState",
    "HxTriggerChannel",
    "Item",
    "ItemCollection",
    "ListController",
    "NotFoundError",
    "NotificationChannel",
    "PendingEffect",
    "RowFormComponent",
    "SessionRegistry",
    "TransportError",
    "TurnResult",
    "Updated",
    "ValidationError",
    "VisibilityCoordinator",
    "parse_form_key",
    "selector_for",
]
