"""Batch staging buffer and the explicit staging session object.

The buffer is the unsaved working list the user edits before committing.
Order only matters for display, but it is kept stable: edits replace items in
place and :meth:`StagingBuffer.insert_after` places re-inserted items at an
exact position.

All UI-level toggles that influence the reconciliation engine (batch mode,
remainder policy) live on :class:`StagingSession`, which callers pass around
instead of keeping scattered module state.
"""

from __future__ import annotations

import os
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from typing import Any

from .categories import match_category
from .errors import NothingRecognized, UnknownStagedItem, ValidationFailure
from .logging_setup import fmt_fields, get_logger
from .models import (
    Category,
    Kind,
    ParsedTransaction,
    StagedTransaction,
    to_amount,
    to_occurred_at,
)

_logger = get_logger("pocket_ledger.staging")

# Fields a user may edit directly; merge history is owned by the engine.
EDITABLE_FIELDS: frozenset[str] = frozenset(
    {"amount", "kind", "category_id", "occurred_at", "note"}
)


class RemainderPolicy(StrEnum):
    """What happens to the excess when an offset source exceeds its target."""

    PRESERVE = "preserve"
    DISCARD = "discard"


def remainder_policy_from_env(
    default: RemainderPolicy = RemainderPolicy.PRESERVE,
) -> RemainderPolicy:
    """Read ``POCKET_LEDGER_REMAINDER_POLICY``; unknown values fall back to ``default``."""

    raw = (os.getenv("POCKET_LEDGER_REMAINDER_POLICY") or "").strip().lower()
    try:
        return RemainderPolicy(raw) if raw else default
    except ValueError:
        _logger.warning("staging:unknown_remainder_policy %s", fmt_fields(value=raw))
        return default


def _staged_amount(raw: Any) -> Decimal:
    amount = to_amount(raw)
    if amount < 0:
        raise ValidationFailure(f"amount cannot be negative: {raw!r}")
    return amount


class StagingBuffer:
    """Ordered list of :class:`StagedTransaction` keyed by ``staging_id``."""

    def __init__(self, items: Iterable[StagedTransaction] = ()) -> None:
        self._items: list[StagedTransaction] = list(items)
        self._seq = len(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[StagedTransaction]:
        return iter(list(self._items))

    def items(self) -> list[StagedTransaction]:
        return list(self._items)

    def next_staging_id(self) -> str:
        taken = {it.staging_id for it in self._items}
        while True:
            self._seq += 1
            candidate = f"s{self._seq}"
            if candidate not in taken:
                return candidate

    def index_of(self, staging_id: str) -> int:
        for i, it in enumerate(self._items):
            if it.staging_id == staging_id:
                return i
        raise UnknownStagedItem(f"no staged item {staging_id!r}")

    def get(self, staging_id: str) -> StagedTransaction | None:
        return next((it for it in self._items if it.staging_id == staging_id), None)

    def require(self, staging_id: str) -> StagedTransaction:
        return self._items[self.index_of(staging_id)]

    # ---- user operations ---------------------------------------------------

    def add(
        self,
        *,
        amount: Any,
        kind: Kind,
        category_id: str,
        occurred_at: Any = None,
        note: str = "",
    ) -> StagedTransaction:
        """Append a new item with a fresh staging id."""

        item = StagedTransaction(
            staging_id=self.next_staging_id(),
            amount=_staged_amount(amount),
            kind=Kind(kind),
            category_id=category_id,
            occurred_at=to_occurred_at(occurred_at) if occurred_at is not None else datetime.now(),
            note=note.strip(),
        )
        self._items.append(item)
        return item

    def update(self, staging_id: str, field_name: str, value: Any) -> StagedTransaction:
        """Replace one editable field.

        Changing ``kind`` drops any pending persisted merge target, since the
        persisted candidate pool depends on the kind.
        """

        idx = self.index_of(staging_id)
        if field_name not in EDITABLE_FIELDS:
            raise ValidationFailure(f"field {field_name!r} cannot be edited")
        current = self._items[idx]
        changes: dict[str, Any]
        if field_name == "amount":
            changes = {"amount": _staged_amount(value)}
        elif field_name == "kind":
            try:
                new_kind = Kind(str(value).strip().lower())
            except ValueError:
                raise ValidationFailure(f"unknown kind {value!r}") from None
            changes = {"kind": new_kind}
            if new_kind is not current.kind:
                changes["merge_target_id"] = None
        elif field_name == "occurred_at":
            changes = {"occurred_at": to_occurred_at(value)}
        else:
            changes = {field_name: "" if value is None else str(value)}
        updated = replace(current, **changes)
        self._items[idx] = updated
        return updated

    def remove(self, staging_id: str) -> StagedTransaction:
        return self._items.pop(self.index_of(staging_id))

    def clear_merge_target(self, staging_id: str) -> StagedTransaction:
        idx = self.index_of(staging_id)
        updated = replace(self._items[idx], merge_target_id=None)
        self._items[idx] = updated
        return updated

    def candidates_for(
        self, staging_id: str, *, same_kind_only: bool = False
    ) -> list[StagedTransaction]:
        """Other staged items this one may merge into.

        Both kinds are valid staged targets (same kind merges, opposite kind
        offsets), so the kind filter is opt-in.
        """

        source = self.require(staging_id)
        return [
            it
            for it in self._items
            if it.staging_id != staging_id and (not same_kind_only or it.kind is source.kind)
        ]

    # ---- positional primitives used by the engine --------------------------

    def replace_item(self, item: StagedTransaction) -> None:
        self._items[self.index_of(item.staging_id)] = item

    def insert_after(self, index: int, new_items: Sequence[StagedTransaction]) -> None:
        """Insert ``new_items`` in order directly after position ``index``."""

        if not 0 <= index < len(self._items):
            raise IndexError(f"insert_after index {index} out of range")
        at = index + 1
        self._items[at:at] = list(new_items)

    def snapshot(self) -> list[StagedTransaction]:
        return list(self._items)

    def restore(self, items: Sequence[StagedTransaction]) -> None:
        self._items = list(items)


@dataclass
class StagingSession:
    """Explicit state for one add-transactions interaction."""

    buffer: StagingBuffer = field(default_factory=StagingBuffer)
    batch_mode: bool = False
    remainder_policy: RemainderPolicy = RemainderPolicy.PRESERVE

    def add(self, **fields: Any) -> StagedTransaction:
        item = self.buffer.add(**fields)
        self.batch_mode = True
        return item

    def remove(self, staging_id: str) -> StagedTransaction:
        removed = self.buffer.remove(staging_id)
        if len(self.buffer) == 0:
            self.batch_mode = False
        return removed

    def add_parsed(
        self,
        results: Sequence[ParsedTransaction],
        categories: Sequence[Category],
        *,
        now: datetime | None = None,
    ) -> list[StagedTransaction]:
        """Stage AI-parsed candidates as expenses and enter batch mode.

        Candidates with a zero amount are skipped. Raises
        :class:`NothingRecognized` when nothing usable remains.
        """

        usable = [r for r in results if r.amount > Decimal("0")]
        if not usable:
            raise NothingRecognized("nothing recognized; try again or enter it manually")
        stamp = now or datetime.now()
        added: list[StagedTransaction] = []
        for r in usable:
            cat = match_category(r.category_suggestion, categories, Kind.EXPENSE)
            added.append(
                self.buffer.add(
                    amount=r.amount,
                    kind=Kind.EXPENSE,
                    category_id=cat.id if cat is not None else "",
                    occurred_at=r.occurred_on if r.occurred_on is not None else stamp,
                    note=r.merchant,
                )
            )
        self.batch_mode = True
        _logger.info(
            "staging:parsed_added %s", fmt_fields(added=len(added), buffered=len(self.buffer))
        )
        return added


__all__ = [
    "EDITABLE_FIELDS",
    "RemainderPolicy",
    "remainder_policy_from_env",
    "StagingBuffer",
    "StagingSession",
]
