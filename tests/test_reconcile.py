from __future__ import annotations

from decimal import Decimal

import pytest

from pocket_ledger.errors import InvalidMergeTarget, InvalidSplit, ValidationFailure
from pocket_ledger.models import Kind, StagedTransaction
from pocket_ledger.reconcile import Relation, apply_persisted_offset, merge, split
from pocket_ledger.staging import RemainderPolicy
from tests.helpers.ledger import amounts, saved, session_with, staged, store_with

D = Decimal


def _ids(session) -> list[str]:
    return [it.staging_id for it in session.buffer]


# ---- merge into a staged target ------------------------------------------------


def test_same_kind_merge_sums_and_records_child():
    a = staged("a", "100", note="taxi")
    b = staged("b", "50", note="lunch")
    session = session_with(a, b)
    store, _ = store_with()

    outcome = merge(session, store, "a", "b", unsaved_target=True)

    assert outcome.relation is Relation.MERGE
    assert _ids(session) == ["b"]
    merged = session.buffer.require("b")
    assert merged.amount == D("150.00")
    assert merged.note == "lunch + taxi"
    assert merged.absorbed_children == (a,)
    assert merged.prior_amount == D("50.00")
    assert merged.prior_note == "lunch"


def test_merge_into_target_without_note_takes_source_note():
    session = session_with(staged("a", "10", note="coffee"), staged("b", "5"))
    merge(session, store_with()[0], "a", "b", unsaved_target=True)
    assert session.buffer.require("b").note == "coffee"


def test_offset_without_flooring_subtracts_and_annotates():
    s = staged("s", "30", Kind.INCOME, note="refund")
    t = staged("t", "50", note="shoes")
    session = session_with(t, s)

    outcome = merge(session, store_with()[0], "s", "t", unsaved_target=True)

    assert outcome.relation is Relation.OFFSET
    assert outcome.remainder is None
    result = session.buffer.require("t")
    assert result.amount == D("20.00")
    assert result.note == "shoes (offset income 30.00: refund)"
    assert result.kind is Kind.EXPENSE


def test_offset_floors_at_zero_and_discards_excess_under_discard_policy():
    a = staged("a", "80", Kind.INCOME, note="salary")
    b = staged("b", "50", note="lunch")
    session = session_with(a, b, remainder_policy=RemainderPolicy.DISCARD)

    outcome = merge(session, store_with()[0], "a", "b", unsaved_target=True)

    assert outcome.remainder is None
    assert amounts(session) == [("b", D("0.00"))]


def test_offset_excess_becomes_remainder_item_under_preserve_policy():
    a = staged("a", "80", Kind.INCOME, note="salary", category_id="7")
    b = staged("b", "50", note="lunch")
    c = staged("c", "5", note="gum")
    session = session_with(b, a, c)

    outcome = merge(session, store_with()[0], "a", "b", unsaved_target=True)

    rem = outcome.remainder
    assert rem is not None
    assert _ids(session) == ["b", rem.staging_id, "c"]
    assert session.buffer.require("b").amount == D("0.00")
    assert rem.amount == D("30.00")
    assert rem.kind is Kind.INCOME
    assert rem.category_id == "7"
    assert rem.note == "salary (offset remainder)"
    assert rem.remainder_of == "b"


def test_repeated_merges_keep_the_original_baseline():
    a = staged("a", "10", note="a")
    c = staged("c", "5", note="c")
    b = staged("b", "50", note="b")
    session = session_with(b, a, c)
    store, _ = store_with()

    merge(session, store, "a", "b", unsaved_target=True)
    merge(session, store, "c", "b", unsaved_target=True)

    result = session.buffer.require("b")
    assert result.amount == D("65.00")
    assert result.prior_amount == D("50.00")
    assert result.prior_note == "b"
    assert [ch.staging_id for ch in result.absorbed_children] == ["a", "c"]


def test_self_merge_is_rejected_and_buffer_untouched():
    session = session_with(staged("a", "10"), staged("b", "20"))
    before = session.buffer.items()
    with pytest.raises(InvalidMergeTarget):
        merge(session, store_with()[0], "a", "a", unsaved_target=True)
    assert session.buffer.items() == before


@pytest.mark.parametrize(("source", "target"), [("a", "zzz"), ("zzz", "a")])
def test_unknown_ids_are_invalid_merge_targets(source: str, target: str):
    session = session_with(staged("a", "10"), staged("b", "20"))
    before = session.buffer.items()
    with pytest.raises(InvalidMergeTarget):
        merge(session, store_with()[0], source, target, unsaved_target=True)
    assert session.buffer.items() == before


# ---- link to a persisted target -----------------------------------------------


@pytest.mark.parametrize("unsaved_target", [True, False])
def test_merge_of_zero_amount_source_is_a_validation_failure(unsaved_target: bool):
    session = session_with(staged("a", "0"), staged("b", "10"))
    store, _ = store_with(saved("p1", "100", Kind.INCOME))
    before = session.buffer.items()

    with pytest.raises(ValidationFailure):
        merge(session, store, "a", "b" if unsaved_target else "p1", unsaved_target=unsaved_target)

    assert session.buffer.items() == before


def test_persisted_target_only_records_link():
    store, kv = store_with(saved("p1", "100", Kind.INCOME))
    session = session_with(staged("a", "30"))

    outcome = merge(session, store, "a", "p1", unsaved_target=False)

    assert outcome.relation is Relation.PENDING_OFFSET
    item = session.buffer.require("a")
    assert item.merge_target_id == "p1"
    assert item.amount == D("30.00")
    assert store.require("p1").amount == D("100.00")
    assert kv.data == {}


def test_persisted_target_of_same_kind_is_not_a_candidate():
    store, _ = store_with(saved("p1", "100", Kind.EXPENSE))
    session = session_with(staged("a", "30"))
    with pytest.raises(InvalidMergeTarget):
        merge(session, store, "a", "p1", unsaved_target=False)
    assert session.buffer.require("a").merge_target_id is None


def test_persisted_target_must_exist():
    session = session_with(staged("a", "30"))
    with pytest.raises(InvalidMergeTarget):
        merge(session, store_with()[0], "a", "nope", unsaved_target=False)


# ---- split ------------------------------------------------------------------------


def test_split_round_trip_restores_target_and_source():
    a = staged("a", "100", note="taxi")
    b = staged("b", "50", note="lunch")
    session = session_with(b, a)
    merge(session, store_with()[0], "a", "b", unsaved_target=True)

    reverted = split(session, "b")

    assert reverted == b
    assert session.buffer.items() == [b, a]


def test_split_round_trip_for_offset_without_flooring():
    s = staged("s", "20", Kind.INCOME, note="refund")
    t = staged("t", "50", note="shoes")
    session = session_with(t, s)
    merge(session, store_with()[0], "s", "t", unsaved_target=True)

    split(session, "t")

    assert session.buffer.items() == [t, s]


def test_split_of_constructed_merge_result_reinserts_child_after_item():
    a = staged("a", "100")
    merged = StagedTransaction(
        staging_id="b",
        amount=D("150.00"),
        kind=Kind.EXPENSE,
        category_id="1",
        occurred_at=a.occurred_at,
        absorbed_children=(a,),
        prior_amount=D("50.00"),
        prior_note="",
    )
    other = staged("z", "1")
    session = session_with(merged, other)

    split(session, "b")

    assert amounts(session) == [("b", D("50.00")), ("a", D("100.00")), ("z", D("1.00"))]
    restored = session.buffer.require("b")
    assert restored.absorbed_children == ()
    assert restored.prior_amount is None and restored.prior_note is None


def test_split_is_single_level():
    c = staged("c", "5", note="c")
    a = staged("a", "10", note="a")
    b = staged("b", "50", note="b")
    session = session_with(b, a, c)
    store, _ = store_with()
    merge(session, store, "c", "a", unsaved_target=True)
    nested = session.buffer.require("a")
    merge(session, store, "a", "b", unsaved_target=True)

    split(session, "b")

    assert _ids(session) == ["b", "a"]
    restored_child = session.buffer.require("a")
    assert restored_child == nested
    assert restored_child.absorbed_children == (c,)


def test_split_withdraws_remainder_created_by_the_item():
    a = staged("a", "80", Kind.INCOME, note="salary")
    b = staged("b", "50", note="lunch")
    session = session_with(b, a)
    merge(session, store_with()[0], "a", "b", unsaved_target=True)

    split(session, "b")

    assert session.buffer.items() == [b, a]


def test_split_refused_when_remainder_was_merged_elsewhere():
    a = staged("a", "80", Kind.INCOME, note="salary")
    b = staged("b", "50", note="lunch")
    x = staged("x", "10", Kind.INCOME, note="tip")
    session = session_with(b, a, x)
    store, _ = store_with()
    outcome = merge(session, store, "a", "b", unsaved_target=True)
    assert outcome.remainder is not None
    merge(session, store, outcome.remainder.staging_id, "x", unsaved_target=True)
    before = session.buffer.items()

    with pytest.raises(InvalidSplit):
        split(session, "b")
    assert session.buffer.items() == before


def test_split_refused_when_remainder_absorbed_other_items():
    b = staged("b", "50", note="rent")
    a = staged("a", "80", Kind.INCOME, note="salary")
    x = staged("x", "10", Kind.INCOME, note="tip")
    session = session_with(b, a, x)
    store, _ = store_with()
    outcome = merge(session, store, "a", "b", unsaved_target=True)
    assert outcome.remainder is not None
    rid = outcome.remainder.staging_id
    merge(session, store, "x", rid, unsaved_target=True)
    assert session.buffer.require(rid).amount == D("40.00")
    before = session.buffer.items()

    with pytest.raises(InvalidSplit):
        split(session, "b")

    assert session.buffer.items() == before
    split(session, rid)
    split(session, "b")
    assert sorted(amounts(session)) == [
        ("a", D("80.00")),
        ("b", D("50.00")),
        ("x", D("10.00")),
    ]


def test_split_requires_a_merge_result():
    session = session_with(staged("a", "10"))
    with pytest.raises(InvalidSplit):
        split(session, "a")
    with pytest.raises(InvalidSplit):
        split(session, "missing")


# ---- persisted offset arithmetic ------------------------------------------------


def test_apply_persisted_offset_partial_and_full():
    target = saved("p1", "100", Kind.INCOME, note="salary")

    partial, excess = apply_persisted_offset(target, staged("s", "30", note="refund"))
    assert partial.amount == D("70.00")
    assert partial.note == "salary (offset: expense 30.00 refund)"
    assert excess == D("0.00")

    full, excess = apply_persisted_offset(target, staged("s", "120"))
    assert full.amount == D("0.00")
    assert full.note == "salary (fully offset: expense 120.00)"
    assert excess == D("20.00")
    assert full.id == "p1"
