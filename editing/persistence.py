"""
The Persistence collaborator as seen from the editing core.

Implementations own storage and record validation.  Failures are raised,
not returned:

    create / update  → ValidationError(errors) when fields are rejected
    update           → NotFoundError(item_id) when the record is gone

``validate`` is the "remote" half of as-you-type validation; it must not
write anything.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from editing.items import Item


class Persistence(Protocol):
    def list(self) -> Sequence[Item]: ...

    def create(self, draft: Mapping[str, Any]) -> Item: ...

    def update(self, item_id: int, draft: Mapping[str, Any]) -> Item: ...

    def validate(self, draft: Mapping[str, Any], item_id: int | None = None) -> dict[str, str]: ...
