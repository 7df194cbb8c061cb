from __future__ import annotations

from decimal import Decimal

import pytest

from pocket_ledger.categories import CategoryBook
from pocket_ledger.models import Kind
from pocket_ledger.staging import StagingSession
from pocket_ledger.storage import MemoryKeyValueStore
from pocket_ledger.store import TransactionStore
from pocket_ledger.term_ui import CreateCategoryRequest
from pocket_ledger.workflows import staging_flow
from tests.helpers.ledger import FailingKeyValueStore, saved, staged, store_with
from tests.helpers.prompts import ScriptedSession


def _run(lines, store=None, state=None, book=None):
    out: list[str] = []
    store = store if store is not None else store_with()[0]
    state = state if state is not None else StagingSession()
    book = book if book is not None else CategoryBook.load(MemoryKeyValueStore())
    result = staging_flow.run_staging_session(
        state, store, book, prompt_session=ScriptedSession(lines), out=out.append
    )
    return result, out, state, store


@pytest.fixture
def pick(monkeypatch: pytest.MonkeyPatch):
    """Make the merge picker answer with fixed keys and record what it offered."""

    offered: list[list[str]] = []
    answers: list[str | None] = []

    def _fake(options, **_kwargs):
        offered.append([key for key, _label in options])
        return answers.pop(0)

    monkeypatch.setattr(staging_flow, "select_merge_target", _fake)
    return offered, answers


def test_add_merge_and_save_batch(pick):
    offered, answers = pick
    answers.append("s1")

    result, out, state, store = _run(
        ["add 100 dinner", "add 30 income refund", "merge s2", "save"]
    )

    assert offered == [["s1"]]
    assert result is not None
    assert [tx.amount for tx in result.inserted] == [Decimal("70.00")]
    assert store.all()[0].note == "dinner (offset income 30.00: refund)"
    assert len(state.buffer) == 0
    assert any(line.startswith("offset:") for line in out)


def test_link_to_saved_transaction_offsets_it_on_save(pick):
    offered, answers = pick
    answers.append("p1")
    store, _ = store_with(saved("p1", "100", Kind.INCOME, note="salary"))

    result, _out, _state, _store = _run(["add 40 rent", "link s1", "save"], store=store)

    assert offered == [["p1"]]
    assert result is not None and result.inserted == ()
    assert store.require("p1").amount == Decimal("60.00")


def test_split_restores_items(pick):
    _offered, answers = pick
    answers.append("s2")

    _result, out, state, _store = _run(
        ["add 10 a", "add 20 b", "merge s1", "split s2", "ls", "quit"]
    )

    assert [(it.staging_id, it.amount) for it in state.buffer] == [
        ("s2", Decimal("20.00")),
        ("s1", Decimal("10.00")),
    ]
    assert out[-1] == "Discarded 2 unsaved item(s)."


def test_cancelled_pick_changes_nothing(pick):
    _offered, answers = pick
    answers.append(None)

    _result, out, state, _store = _run(["add 10 a", "add 20 b", "merge s1"])

    assert "Cancelled." in out
    assert [it.amount for it in state.buffer] == [Decimal("10.00"), Decimal("20.00")]


def test_errors_are_reported_and_loop_continues():
    result, out, state, _store = _run(
        [
            "add",
            "add abc",
            "edit s9 note x",
            "merge s9",
            "add 5",
            "edit s1 kind transfer",
            "edit s1 category Nope",
            "split s1",
            "frobnicate",
            'add "unterminated',
            "q",
        ]
    )

    errors = [line for line in out if line.startswith("Error:")]
    assert len(errors) == 8
    assert any(line.startswith("Unknown command") for line in out)
    assert result is None
    assert len(state.buffer) == 1


def test_edit_with_aliases_and_single_save():
    book = CategoryBook.load(MemoryKeyValueStore())
    _result, out, state, store = _run(
        [
            "add 5 snack",
            "add 7 bus",
            "edit s2 category transport",
            "edit s2 date 2024-05-01",
            "save s2",
            "save s1",
        ],
        book=book,
    )

    assert "Saved s2." in out
    assert [tx.category_id for tx in store.all()] == ["2", "1"]
    assert store.all()[0].occurred_at.date().isoformat() == "2024-05-01"
    assert len(state.buffer) == 0


def test_failed_batch_write_warns_and_keeps_items():
    store = TransactionStore(FailingKeyValueStore())
    result, out, state, _store = _run(["add 5", "save", "quit"], store=store)

    assert result is None
    assert any(line.startswith("Warning:") for line in out)
    assert len(state.buffer) == 1
    assert store.all() == []


def test_cat_command_creates_category(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(
        staging_flow, "select_category", lambda *_a, **_k: CreateCategoryRequest("Pets")
    )
    monkeypatch.setattr(staging_flow, "prompt_new_category_name", lambda **kw: kw["initial"])
    book = CategoryBook.load(MemoryKeyValueStore())

    _result, out, state, _store = _run(["add 12 kibble", "cat s1", "quit"], book=book)

    created = [c for c in book.all() if c.name == "Pets"]
    assert len(created) == 1
    assert state.buffer.require("s1").category_id == created[0].id
    assert "Created category Pets." in out


def test_end_of_input_quits():
    result, out, _state, _store = _run([])
    assert result is None
    assert out == ["(nothing staged)"]


def test_format_staged_marks_history():
    book = CategoryBook.load(MemoryKeyValueStore())
    plain = staged("s1", "5", note="tea")
    linked = staged("s2", "5", merge_target_id="0123456789abcdef")

    line = staging_flow.format_staged(plain, book)

    assert line.split()[0] == "s1"
    assert "Dining" in line and line.endswith("tea")
    assert staging_flow.format_staged(linked, book).endswith("[offsets saved 01234567]")
