"""
Data model for the inline editor: Items, the ordered collection that owns
them, and the per-form editing state.

An Item is immutable once returned from Persistence.  Updates never mutate
an Item in place; the ListController swaps the whole object.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Union

# Form keys are item ids, or CREATE_FORM for the single create form.
CREATE_FORM = "new"
FormKey = Union[int, str]


def parse_form_key(raw: str) -> FormKey:
    """Turn a URL segment (``"new"`` or ``"12"``) into a FormKey."""
    if raw == CREATE_FORM:
        return CREATE_FORM
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Invalid form key: {raw!r}") from None


@dataclass(frozen=True)
class Item:
    """One persisted record (``id is None`` means not persisted yet)."""

    id: int | None
    fields: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Freeze a private copy so callers can't mutate through their dict.
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))

    def __getitem__(self, name: str) -> Any:
        return self.fields[name]

    def get(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, **self.fields}


class ItemCollection:
    """Ordered sequence of persisted Items with unique ids.

    Insertion order is display order.  The collection refuses items without
    an id and duplicate ids, so ``replace`` can rely on a single match.
    """

    def __init__(self, items: Iterable[Item] = ()) -> None:
        self._items: list[Item] = []
        self.reset(items)

    def reset(self, items: Iterable[Item]) -> None:
        """Replace the whole contents (used after a re-list)."""
        new_items = list(items)
        seen: set[int] = set()
        for item in new_items:
            if item.id is None:
                raise ValueError("ItemCollection only holds persisted items")
            if item.id in seen:
                raise ValueError(f"Duplicate item id {item.id}")
            seen.add(item.id)
        self._items = new_items

    def index_of(self, item_id: int) -> int | None:
        for i, item in enumerate(self._items):
            if item.id == item_id:
                return i
        return None

    def get(self, item_id: int) -> Item | None:
        idx = self.index_of(item_id)
        return None if idx is None else self._items[idx]

    def replace(self, item: Item) -> bool:
        """Swap the entry with ``item.id`` in place; False when absent."""
        if item.id is None:
            raise ValueError("Cannot replace with an unpersisted item")
        idx = self.index_of(item.id)
        if idx is None:
            return False
        self._items[idx] = item
        return True

    def ids(self) -> list[int]:
        return [item.id for item in self._items]  # type: ignore[misc]

    def __iter__(self) -> Iterator[Item]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item_id: object) -> bool:
        return any(item.id == item_id for item in self._items)


@dataclass
class FormState:
    """Mutable editing state of one form.

    ``visible`` is written only by the VisibilityCoordinator; everything
    else belongs to the owning RowFormComponent.
    """

    bound_item_id: int | None = None
    draft: dict[str, Any] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)
    visible: bool = False

    @property
    def key(self) -> FormKey:
        return CREATE_FORM if self.bound_item_id is None else self.bound_item_id
