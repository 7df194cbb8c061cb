"""Turn staged work into durable changes on the transaction store.

Two save paths:

- :func:`commit_batch` resolves the whole staging buffer at once. Plain items
  become new transactions; items linked to a persisted target offset it. The
  write is all-or-nothing.
- :func:`save_single` (and :func:`commit_one` for one staged item) is the
  single-entry form. It always keeps an offset remainder as its own
  transaction, whatever the session's remainder policy says.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal

from .errors import InvalidMergeTarget, PersistenceError, ValidationFailure
from .logging_setup import fmt_fields, get_logger
from .models import Kind, StagedTransaction, Transaction, new_id, to_amount
from .reconcile import apply_persisted_offset, remainder_note
from .staging import RemainderPolicy, StagingSession
from .store import TransactionStore

_logger = get_logger("pocket_ledger.commit")


@dataclass(frozen=True, slots=True)
class Draft:
    """A new transaction typed in through the single-entry form."""

    amount: Decimal
    kind: Kind
    category_id: str
    occurred_at: datetime = field(default_factory=datetime.now)
    note: str = ""


@dataclass(frozen=True, slots=True)
class CommitResult:
    inserted: tuple[Transaction, ...] = ()
    updated: tuple[Transaction, ...] = ()
    remainders: tuple[Transaction, ...] = ()
    discarded: tuple[StagedTransaction, ...] = ()
    rejected: tuple[StagedTransaction, ...] = ()
    rejection_reasons: dict[str, str] = field(default_factory=dict)

    @property
    def problems(self) -> tuple[str, ...]:
        out = [f"{it.staging_id}: amount must be greater than zero" for it in self.discarded]
        for it in self.rejected:
            reason = self.rejection_reasons.get(it.staging_id, "offset target rejected")
            out.append(f"{it.staging_id}: {reason}")
        return tuple(out)


@dataclass(frozen=True, slots=True)
class SaveResult:
    inserted: Transaction | None = None
    updated: Transaction | None = None
    remainder: Transaction | None = None


def _remainder_tx(source: Draft | StagedTransaction, excess: Decimal, tx_id: str) -> Transaction:
    return Transaction(
        id=tx_id,
        amount=excess,
        kind=source.kind,
        category_id=source.category_id,
        occurred_at=source.occurred_at,
        note=remainder_note(source.note),
    )


def commit_batch(
    session: StagingSession,
    store: TransactionStore,
    *,
    id_factory: Callable[[], str] = new_id,
) -> CommitResult:
    """Commit every valid item in the session's buffer.

    Items with a non-positive amount are dropped from the buffer and reported.
    Items whose persisted target is gone are reported and stay staged. The
    rest is written as one batch; if that write fails nothing changes, neither
    in the store nor in the buffer, and :class:`PersistenceError` propagates.
    """

    buffer = session.buffer
    items = buffer.items()
    if not items:
        return CommitResult()

    discarded = [it for it in items if it.amount <= 0]
    valid = [it for it in items if it.amount > 0]
    if not valid:
        raise ValidationFailure(
            "nothing valid to save",
            problems=CommitResult(discarded=tuple(discarded)).problems,
        )

    plain = [it for it in valid if it.merge_target_id is None]
    offsetting: list[tuple[StagedTransaction, str]] = [
        (it, it.merge_target_id) for it in valid if it.merge_target_id is not None
    ]

    targets: dict[str, Transaction] = {}
    rejected: list[StagedTransaction] = []
    reasons: dict[str, str] = {}
    accepted: list[tuple[StagedTransaction, str]] = []
    for it, tid in offsetting:
        current = targets.get(tid) or store.get(tid)
        if current is None:
            reasons[it.staging_id] = f"offset target {tid} no longer exists"
        elif current.kind is not it.kind.opposite:
            reasons[it.staging_id] = (
                f"offset target {tid} is {current.kind}; "
                f"{it.kind} items can only offset {it.kind.opposite}"
            )
        if it.staging_id in reasons:
            rejected.append(it)
            continue
        targets[tid] = current
        accepted.append((it, tid))

    inserted = [it.to_transaction(id_factory()) for it in plain]
    remainders: list[Transaction] = []
    touched: dict[str, Transaction] = {}
    for it, tid in accepted:
        updated, excess = apply_persisted_offset(targets[tid], it)
        targets[tid] = touched[tid] = updated
        if excess > 0 and session.remainder_policy is RemainderPolicy.PRESERVE:
            remainders.append(_remainder_tx(it, excess, id_factory()))
        elif excess > 0:
            _logger.info(
                "commit:remainder_discarded %s", fmt_fields(item=it.staging_id, excess=excess)
            )

    if inserted or remainders or touched:
        store.apply_batch(inserted + remainders, list(touched.values()))

    done = {it.staging_id for it in discarded + plain}
    done.update(it.staging_id for it, _ in accepted)
    buffer.restore([it for it in items if it.staging_id not in done])
    if len(buffer) == 0:
        session.batch_mode = False

    result = CommitResult(
        inserted=tuple(inserted),
        updated=tuple(touched.values()),
        remainders=tuple(remainders),
        discarded=tuple(discarded),
        rejected=tuple(rejected),
        rejection_reasons=reasons,
    )
    _logger.info(
        "commit:batch_done %s",
        fmt_fields(
            inserted=len(inserted),
            updated=len(touched),
            remainders=len(remainders),
            discarded=len(discarded),
            rejected=len(rejected),
        ),
    )
    return result


def save_single(
    store: TransactionStore,
    draft: Draft | StagedTransaction,
    merge_target_id: str | None = None,
    merge_active: bool = False,
    *,
    id_factory: Callable[[], str] = new_id,
) -> SaveResult:
    """Save one new transaction, optionally offsetting a persisted one.

    ``merge_target_id`` is only consulted when ``merge_active`` is set.
    Validation happens before any mutation. The write follows the
    single-record policy: on a failed write the store keeps the change and
    :class:`PersistenceError` propagates.
    """

    amount = to_amount(draft.amount)
    if amount <= 0:
        raise ValidationFailure("amount must be greater than zero")
    draft = replace(draft, amount=amount)
    if not merge_active:
        tx = Transaction(
            id=id_factory(),
            amount=amount,
            kind=draft.kind,
            category_id=draft.category_id,
            occurred_at=draft.occurred_at,
            note=draft.note,
        )
        store.insert(tx)
        _logger.info("commit:single_saved %s", fmt_fields(id=tx.id, amount=amount))
        return SaveResult(inserted=tx)

    if not merge_target_id:
        raise ValidationFailure("choose a transaction to offset, or turn merging off")
    pool = {tx.id: tx for tx in store.merge_candidates(draft.kind, limit=None)}
    target = pool.get(merge_target_id)
    if target is None:
        raise InvalidMergeTarget(
            f"{merge_target_id!r} is not a saved {draft.kind.opposite} transaction"
        )

    updated, excess = apply_persisted_offset(target, draft)
    remainder = _remainder_tx(draft, excess, id_factory()) if excess > 0 else None
    store.apply_batch(
        [remainder] if remainder is not None else [], [updated], keep_on_failure=True
    )
    _logger.info(
        "commit:single_offset %s",
        fmt_fields(target=target.id, amount=updated.amount, remainder=excess),
    )
    return SaveResult(updated=updated, remainder=remainder)


def commit_one(
    session: StagingSession,
    store: TransactionStore,
    staging_id: str,
    *,
    id_factory: Callable[[], str] = new_id,
) -> SaveResult:
    """Save a single staged item through the single-entry path."""

    item = session.buffer.require(staging_id)
    try:
        result = save_single(
            store,
            item,
            merge_target_id=item.merge_target_id,
            merge_active=item.merge_target_id is not None,
            id_factory=id_factory,
        )
    except PersistenceError:
        # The store kept the change in memory, so the item counts as saved.
        session.remove(staging_id)
        raise
    session.remove(staging_id)
    return result


__all__ = [
    "Draft",
    "CommitResult",
    "SaveResult",
    "commit_batch",
    "save_single",
    "commit_one",
]
