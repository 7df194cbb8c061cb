"""Merge/offset and split for staged transactions.

``merge`` combines a staged *source* into a *target* that is either another
staged item (arithmetic happens in the buffer right away) or a persisted
transaction (only the link is recorded; the arithmetic runs at commit).
``split`` reverts a staged merge result to its unmerged baseline and puts the
absorbed items back right after it.

Same-kind pairs merge (amounts add up); opposite-kind pairs offset (the
source is subtracted from the target, floored at zero). When an offset source
exceeds its target the excess is handled by the session's
:class:`~pocket_ledger.staging.RemainderPolicy`.

``apply_persisted_offset`` is the arithmetic shared by both save paths in
:mod:`pocket_ledger.commit`.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from enum import StrEnum
from typing import Protocol

from .errors import InvalidMergeTarget, InvalidSplit, UnknownStagedItem, ValidationFailure
from .logging_setup import fmt_fields, get_logger
from .models import ZERO, Kind, StagedTransaction, Transaction
from .staging import RemainderPolicy, StagingSession
from .store import TransactionStore

_logger = get_logger("pocket_ledger.reconcile")

REMAINDER_SUFFIX = "(offset remainder)"


class Relation(StrEnum):
    MERGE = "merge"
    OFFSET = "offset"
    PENDING_OFFSET = "pending_offset"  # linked to a persisted target, applied at commit


@dataclass(frozen=True, slots=True)
class MergeOutcome:
    relation: Relation
    item: StagedTransaction
    remainder: StagedTransaction | None = None


class _OffsetSource(Protocol):
    @property
    def amount(self) -> Decimal: ...

    @property
    def kind(self) -> Kind: ...

    @property
    def note(self) -> str: ...


def remainder_note(source_note: str) -> str:
    return f"{source_note} {REMAINDER_SUFFIX}" if source_note else REMAINDER_SUFFIX


def _join_notes(target_note: str, source_note: str) -> str:
    if target_note and source_note:
        return f"{target_note} + {source_note}"
    return target_note or source_note


def _append_note(note: str, annotation: str) -> str:
    return f"{note} {annotation}" if note else annotation


def apply_persisted_offset(
    target: Transaction, source: _OffsetSource
) -> tuple[Transaction, Decimal]:
    """Offset ``source`` against a persisted ``target``.

    Returns the rewritten target and the excess of the source over the target
    (``0`` when the target absorbed it completely). A fully consumed target is
    kept with amount zero and annotated as such.
    """

    remaining = target.amount - source.amount
    if remaining <= 0:
        note = _append_note(target.note, f"(fully offset: {source.kind} {source.amount})")
        excess = -remaining if remaining < 0 else ZERO
        return replace(target, amount=ZERO, note=note), excess
    detail = f"{source.kind} {source.amount} {source.note}".rstrip()
    note = _append_note(target.note, f"(offset: {detail})")
    return replace(target, amount=remaining, note=note), ZERO


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


def merge(
    session: StagingSession,
    store: TransactionStore,
    source_id: str,
    target_id: str,
    *,
    unsaved_target: bool,
) -> MergeOutcome:
    """Merge the staged item ``source_id`` into ``target_id``.

    With ``unsaved_target=False`` the target must be one of the persisted
    merge candidates for the source's kind; only ``merge_target_id`` is set.
    With ``unsaved_target=True`` both ids must be in the buffer. Any invalid
    pairing raises :class:`InvalidMergeTarget`, and a source without a positive
    amount raises :class:`ValidationFailure`, before the buffer is touched.
    """

    buffer = session.buffer
    source = buffer.get(source_id)
    if source is None:
        raise InvalidMergeTarget(f"unknown source {source_id!r}")
    if source.amount <= 0:
        raise ValidationFailure(f"{source_id!r} has no amount to merge ({source.amount})")

    if not unsaved_target:
        pool = {tx.id for tx in store.merge_candidates(source.kind, limit=None)}
        if target_id not in pool:
            raise InvalidMergeTarget(
                f"{target_id!r} is not a saved {source.kind.opposite} transaction"
            )
        linked = replace(source, merge_target_id=target_id)
        buffer.replace_item(linked)
        _logger.info(
            "reconcile:linked %s", fmt_fields(source=source_id, target=target_id)
        )
        return MergeOutcome(Relation.PENDING_OFFSET, linked)

    if source_id == target_id:
        raise InvalidMergeTarget("cannot merge an item into itself")
    target = buffer.get(target_id)
    if target is None:
        raise InvalidMergeTarget(f"unknown target {target_id!r}")

    prior_amount = target.prior_amount if target.is_merge_result else target.amount
    prior_note = target.prior_note if target.is_merge_result else target.note

    excess = ZERO
    if source.kind is target.kind:
        relation = Relation.MERGE
        amount = target.amount + source.amount
        note = _join_notes(target.note, source.note)
    else:
        relation = Relation.OFFSET
        amount = target.amount - source.amount
        if amount < 0:
            excess, amount = -amount, ZERO
        detail = f"{source.kind} {source.amount}"
        if source.note:
            detail = f"{detail}: {source.note}"
        note = _append_note(target.note, f"(offset {detail})")

    merged = replace(
        target,
        amount=amount,
        note=note,
        absorbed_children=target.absorbed_children + (source,),
        prior_amount=prior_amount,
        prior_note=prior_note,
    )

    remainder: StagedTransaction | None = None
    if excess > 0 and session.remainder_policy is RemainderPolicy.PRESERVE:
        remainder = StagedTransaction(
            staging_id=buffer.next_staging_id(),
            amount=excess,
            kind=source.kind,
            category_id=source.category_id,
            occurred_at=source.occurred_at,
            note=remainder_note(source.note),
            remainder_of=target.staging_id,
        )

    buffer.remove(source_id)
    buffer.replace_item(merged)
    if remainder is not None:
        buffer.insert_after(buffer.index_of(target_id), [remainder])

    _logger.info(
        "reconcile:merged %s",
        fmt_fields(
            relation=relation,
            source=source_id,
            target=target_id,
            amount=amount,
            excess=excess,
            policy=session.remainder_policy,
        ),
    )
    return MergeOutcome(relation, merged, remainder)


# ---------------------------------------------------------------------------
# Split
# ---------------------------------------------------------------------------


def _absorbed_anywhere(items: tuple[StagedTransaction, ...], staging_id: str) -> bool:
    for it in items:
        if it.remainder_of == staging_id or _absorbed_anywhere(it.absorbed_children, staging_id):
            return True
    return False


def split(session: StagingSession, staging_id: str) -> StagedTransaction:
    """Undo the merges recorded on ``staging_id``.

    The item goes back to its unmerged amount and note; every absorbed item
    is re-inserted right after it, in merge order, with its own history
    intact. Remainders produced by the item's offsets are withdrawn. If such
    a remainder has since been merged into another item, or has absorbed items
    of its own, the split is refused.
    """

    buffer = session.buffer
    try:
        item = buffer.require(staging_id)
    except UnknownStagedItem as e:
        raise InvalidSplit(str(e)) from e
    if not item.is_merge_result or item.prior_amount is None or item.prior_note is None:
        raise InvalidSplit(f"{staging_id!r} has nothing to split")

    others = [it for it in buffer.items() if it.staging_id != staging_id]
    derived = [it for it in others if it.remainder_of == staging_id]
    for rem in derived:
        if rem.is_merge_result:
            raise InvalidSplit(
                f"remainder {rem.staging_id!r} of {staging_id!r} has absorbed other items; "
                "split it first"
            )
    for other in others:
        if _absorbed_anywhere(other.absorbed_children, staging_id):
            raise InvalidSplit(
                f"a remainder of {staging_id!r} was merged into "
                f"{other.staging_id!r}; split that first"
            )

    reverted = replace(
        item,
        amount=item.prior_amount,
        note=item.prior_note,
        absorbed_children=(),
        prior_amount=None,
        prior_note=None,
    )
    children = [c for c in item.absorbed_children if c.remainder_of != staging_id]

    for rem in derived:
        buffer.remove(rem.staging_id)
    buffer.replace_item(reverted)
    buffer.insert_after(buffer.index_of(staging_id), children)

    _logger.info(
        "reconcile:split %s",
        fmt_fields(item=staging_id, restored=len(children), withdrawn=len(derived)),
    )
    return reverted


__all__ = [
    "REMAINDER_SUFFIX",
    "Relation",
    "MergeOutcome",
    "remainder_note",
    "apply_persisted_offset",
    "merge",
    "split",
]
