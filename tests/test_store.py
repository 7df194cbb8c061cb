from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from pocket_ledger.errors import PersistenceError, UnknownTransaction, ValidationFailure
from pocket_ledger.models import Kind
from pocket_ledger.store import MERGE_CANDIDATE_LIMIT, TransactionStore
from tests.helpers.ledger import WHEN, FailingKeyValueStore, saved, store_with


def test_crud_writes_through():
    store, kv = store_with()
    store.insert(saved("t1", "5"))
    store.insert(saved("t2", "6"))
    store.update(saved("t1", "7", note="edited"))
    store.delete("t2")

    assert store.all() == [saved("t1", "7", note="edited")]
    assert TransactionStore.load(kv).all() == store.all()


def test_update_keeps_position():
    store, _ = store_with(saved("a", "1"), saved("b", "2"), saved("c", "3"))
    store.update(saved("b", "20"))
    assert [tx.id for tx in store.all()] == ["a", "b", "c"]


def test_duplicate_and_unknown_ids():
    store, _ = store_with(saved("t1", "5"))
    with pytest.raises(ValidationFailure):
        store.insert(saved("t1", "9"))
    with pytest.raises(UnknownTransaction):
        store.update(saved("zz", "1"))
    with pytest.raises(UnknownTransaction):
        store.delete("zz")
    assert store.all() == [saved("t1", "5")]


def test_query_by_kind_and_inclusive_window():
    store, _ = store_with(
        saved("a", "1", occurred_at=datetime(2024, 5, 1, 9)),
        saved("b", "1", Kind.INCOME, occurred_at=datetime(2024, 5, 2, 23, 59)),
        saved("c", "1", occurred_at=datetime(2024, 5, 3)),
    )
    assert [t.id for t in store.query(kind=Kind.EXPENSE)] == ["a", "c"]
    window = store.query(start=date(2024, 5, 2), end=date(2024, 5, 3))
    assert [t.id for t in window] == ["b", "c"]


def test_merge_candidates_are_opposite_kind_newest_first():
    store, _ = store_with(
        saved("old", "1", Kind.INCOME, occurred_at=WHEN - timedelta(days=3)),
        saved("exp", "1", Kind.EXPENSE),
        saved("new", "1", Kind.INCOME, occurred_at=WHEN),
    )
    assert [t.id for t in store.merge_candidates(Kind.EXPENSE)] == ["new", "old"]
    assert [t.id for t in store.merge_candidates(Kind.INCOME)] == ["exp"]


def test_merge_candidates_limit():
    txs = [
        saved(f"i{n}", "1", Kind.INCOME, occurred_at=WHEN + timedelta(minutes=n))
        for n in range(MERGE_CANDIDATE_LIMIT + 5)
    ]
    store, _ = store_with(*txs)
    assert len(store.merge_candidates(Kind.EXPENSE)) == MERGE_CANDIDATE_LIMIT
    assert len(store.merge_candidates(Kind.EXPENSE, limit=None)) == MERGE_CANDIDATE_LIMIT + 5


def test_single_write_failure_keeps_memory_and_raises():
    store = TransactionStore(FailingKeyValueStore(), [saved("t1", "5")])
    with pytest.raises(PersistenceError):
        store.insert(saved("t2", "6"))
    with pytest.raises(PersistenceError):
        store.delete("t1")
    assert [tx.id for tx in store.all()] == ["t2"]


def test_apply_batch_updates_in_place_and_appends():
    store, kv = store_with(saved("a", "1"), saved("b", "2"))
    store.apply_batch([saved("c", "3")], [saved("a", "10")])
    assert [(t.id, t.amount) for t in store.all()] == [
        ("a", Decimal("10.00")),
        ("b", Decimal("2.00")),
        ("c", Decimal("3.00")),
    ]
    assert TransactionStore.load(kv).all() == store.all()


def test_apply_batch_is_all_or_nothing():
    store = TransactionStore(FailingKeyValueStore(), [saved("a", "1")])
    with pytest.raises(PersistenceError):
        store.apply_batch([saved("c", "3")], [saved("a", "10")])
    assert store.all() == [saved("a", "1")]


def test_apply_batch_validates_before_writing():
    store, kv = store_with(saved("a", "1"))
    with pytest.raises(UnknownTransaction):
        store.apply_batch([], [saved("zz", "1")])
    with pytest.raises(ValidationFailure):
        store.apply_batch([saved("a", "2")], [])
    assert kv.data == {}
    assert store.all() == [saved("a", "1")]


def test_apply_batch_keep_on_failure_adopts_changes():
    store = TransactionStore(FailingKeyValueStore(), [saved("a", "1")])
    with pytest.raises(PersistenceError):
        store.apply_batch([saved("c", "3")], [saved("a", "10")], keep_on_failure=True)
    assert [t.id for t in store.all()] == ["a", "c"]
    assert store.require("a").amount == Decimal("10.00")
