"""Transaction store: the ordered collection of persisted transactions.

The in-memory list is the source of truth for the session. Every mutation is
written through to the key-value store as the full ``transactions`` array.
Single-record mutations keep their in-memory effect when that write fails and
raise :class:`~pocket_ledger.errors.PersistenceError` so callers can warn the
user. :meth:`TransactionStore.apply_batch` is the exception: it only swaps in
the new list after the write succeeded.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date

from .errors import PersistenceError, UnknownTransaction, ValidationFailure
from .logging_setup import fmt_fields, get_logger
from .models import Kind, Transaction, TransactionRow
from .storage import TRANSACTIONS_KEY, KeyValueStore, dump_collection, load_collection

# Number of persisted merge candidates offered to a picker by default.
MERGE_CANDIDATE_LIMIT = 20

_logger = get_logger("pocket_ledger.store")


class TransactionStore:
    def __init__(self, kv: KeyValueStore, transactions: Iterable[Transaction] = ()) -> None:
        self._kv = kv
        self._items: list[Transaction] = list(transactions)

    @classmethod
    def load(cls, kv: KeyValueStore) -> TransactionStore:
        """Read the ``transactions`` blob; a missing key yields an empty store."""

        items = load_collection(kv, TRANSACTIONS_KEY, TransactionRow, TransactionRow.to_domain)
        _logger.debug("store:loaded %s", fmt_fields(count=len(items)))
        return cls(kv, items)

    # ---- reads --------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._items)

    def all(self) -> list[Transaction]:
        return list(self._items)

    def get(self, transaction_id: str) -> Transaction | None:
        for tx in self._items:
            if tx.id == transaction_id:
                return tx
        return None

    def require(self, transaction_id: str) -> Transaction:
        tx = self.get(transaction_id)
        if tx is None:
            raise UnknownTransaction(f"no transaction with id {transaction_id!r}")
        return tx

    def query(
        self,
        *,
        kind: Kind | None = None,
        start: date | None = None,
        end: date | None = None,
    ) -> list[Transaction]:
        """Return transactions filtered by kind and an inclusive date window."""

        out: list[Transaction] = []
        for tx in self._items:
            if kind is not None and tx.kind is not kind:
                continue
            day = tx.occurred_at.date()
            if start is not None and day < start:
                continue
            if end is not None and day > end:
                continue
            out.append(tx)
        return out

    def merge_candidates(
        self, source_kind: Kind, *, limit: int | None = MERGE_CANDIDATE_LIMIT
    ) -> list[Transaction]:
        """Persisted transactions a new ``source_kind`` item may offset.

        Only the opposite kind qualifies. Newest first; ``limit=None`` returns
        the whole pool (used to validate a confirmed selection).
        """

        pool = sorted(
            self.query(kind=source_kind.opposite), key=lambda t: t.occurred_at, reverse=True
        )
        return pool if limit is None else pool[:limit]

    # ---- single-record mutations -------------------------------------------

    def insert(self, tx: Transaction) -> Transaction:
        if self.get(tx.id) is not None:
            raise ValidationFailure(f"duplicate transaction id {tx.id!r}")
        self._items.append(tx)
        self._persist("insert", tx.id)
        return tx

    def update(self, tx: Transaction) -> Transaction:
        """Replace the record with ``tx.id`` in place (position preserved)."""

        idx = self._index_of(tx.id)
        self._items[idx] = tx
        self._persist("update", tx.id)
        return tx

    def delete(self, transaction_id: str) -> Transaction:
        idx = self._index_of(transaction_id)
        removed = self._items.pop(idx)
        self._persist("delete", transaction_id)
        return removed

    # ---- batch --------------------------------------------------------------

    def apply_batch(
        self,
        inserts: Sequence[Transaction],
        updates: Sequence[Transaction],
        *,
        keep_on_failure: bool = False,
    ) -> None:
        """Apply updates in place and append inserts as one write.

        By default this is all-or-nothing: the new list is built aside,
        written, and only then adopted, so a failed write leaves the store
        unchanged. With ``keep_on_failure=True`` the new list is adopted first
        and kept even when the write fails (the single-record policy). Either
        way the :class:`PersistenceError` propagates.
        """

        staged = list(self._items)
        positions = {tx.id: i for i, tx in enumerate(staged)}
        for tx in updates:
            if tx.id not in positions:
                raise UnknownTransaction(f"no transaction with id {tx.id!r}")
            staged[positions[tx.id]] = tx
        for tx in inserts:
            if tx.id in positions:
                raise ValidationFailure(f"duplicate transaction id {tx.id!r}")
            positions[tx.id] = len(staged)
            staged.append(tx)

        if keep_on_failure:
            self._items = staged
            self._persist("batch", f"{len(inserts)}+{len(updates)}")
        else:
            dump_collection(
                self._kv, TRANSACTIONS_KEY, TransactionRow, TransactionRow.from_domain, staged
            )
            self._items = staged
        _logger.info(
            "store:batch_applied %s", fmt_fields(inserted=len(inserts), updated=len(updates))
        )

    # ---- internals ----------------------------------------------------------

    def _index_of(self, transaction_id: str) -> int:
        for i, tx in enumerate(self._items):
            if tx.id == transaction_id:
                return i
        raise UnknownTransaction(f"no transaction with id {transaction_id!r}")

    def _persist(self, op: str, transaction_id: str) -> None:
        try:
            dump_collection(
                self._kv, TRANSACTIONS_KEY, TransactionRow, TransactionRow.from_domain, self._items
            )
        except PersistenceError:
            _logger.warning(
                "store:write_through_failed %s", fmt_fields(op=op, id=transaction_id)
            )
            raise
        _logger.debug("store:%s %s", op, fmt_fields(id=transaction_id, count=len(self._items)))


__all__ = ["MERGE_CANDIDATE_LIMIT", "TransactionStore"]
