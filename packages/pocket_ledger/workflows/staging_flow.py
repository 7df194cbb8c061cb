# ruff: noqa: I001
"""Interactive batch-entry loop over a :class:`~pocket_ledger.staging.StagingSession`.

The loop reads one short command per line, calls the staging buffer, the
reconciliation engine or the commit resolver, and prints the outcome. Engine
errors are reported and the loop continues; nothing here swallows a failed
write silently.
"""

from __future__ import annotations

import shlex
from collections.abc import Callable, Sequence

from prompt_toolkit import PromptSession

from ..categories import CategoryBook
from ..commit import CommitResult, commit_batch, commit_one
from ..errors import LedgerError, PersistenceError, ValidationFailure
from ..logging_setup import fmt_fields, get_logger
from ..models import Kind, StagedTransaction, Transaction
from ..reconcile import merge, split
from ..staging import StagingSession
from ..store import TransactionStore
from ..term_ui import (
    CreateCategoryRequest,
    prompt_new_category_name,
    select_category,
    select_merge_target,
)

_logger = get_logger("pocket_ledger.workflows.staging_flow")

HELP_TEXT = """Commands:
  ls                            show staged items
  add AMOUNT [expense|income] [NOTE...]
  edit ID FIELD VALUE           FIELD is amount, kind, category, date or note
  cat ID                        pick or create the category of ID
  rm ID                         drop a staged item
  merge ID                      merge or offset ID into another staged item
  link ID                       offset a saved transaction with ID on save
  unlink ID                     drop a pending saved-transaction link
  split ID                      undo the merges recorded on ID
  save [ID]                     save everything, or only ID
  help                          show this text
  quit                          leave; unsaved items are discarded"""

_FIELD_ALIASES = {"category": "category_id", "date": "occurred_at"}


def format_staged(item: StagedTransaction, book: CategoryBook) -> str:
    marks: list[str] = []
    if item.absorbed_children:
        marks.append(f"[merged x{len(item.absorbed_children)}]")
    if item.merge_target_id:
        marks.append(f"[offsets saved {item.merge_target_id[:8]}]")
    if item.remainder_of:
        marks.append(f"[remainder of {item.remainder_of}]")
    text = (
        f"{item.staging_id:>4}  {item.occurred_at:%Y-%m-%d}  {item.kind:<7} "
        f"{item.amount:>10}  {book.name_of(item.category_id)}  {item.note}"
    )
    return " ".join([text.rstrip(), *marks])


def format_saved(tx: Transaction, book: CategoryBook) -> str:
    return (
        f"{tx.occurred_at:%Y-%m-%d}  {tx.kind:<7} {tx.amount:>10}  "
        f"{book.name_of(tx.category_id)}  {tx.note}"
    ).rstrip()


def _category_id(book: CategoryBook, name: str) -> str:
    lowered = name.casefold()
    for c in book.all():
        if c.name.casefold() == lowered:
            return c.id
    raise ValidationFailure(f"unknown category {name!r}")


def _describe_commit(result: CommitResult) -> list[str]:
    lines = [
        f"Saved {len(result.inserted)} new, offset {len(result.updated)} saved, "
        f"{len(result.remainders)} remainder(s)."
    ]
    lines += [f"  skipped {p}" for p in result.problems]
    return lines


def run_staging_session(
    state: StagingSession,
    store: TransactionStore,
    book: CategoryBook,
    *,
    prompt_session: PromptSession | None = None,
    out: Callable[[str], None] = print,
) -> CommitResult | None:
    """Run the batch-entry loop until everything is saved or the user quits.

    Returns the result of the commit that emptied the buffer, or ``None`` when
    the user left with items still staged.
    """

    sess: PromptSession = prompt_session or PromptSession()

    def show() -> None:
        items = state.buffer.items()
        if not items:
            out("(nothing staged)")
        for it in items:
            out(format_staged(it, book))

    def pick_staged(source_id: str) -> str | None:
        options = [
            (c.staging_id, format_staged(c, book))
            for c in state.buffer.candidates_for(source_id)
        ]
        return _pick(options)

    def pick_saved(source_id: str) -> str | None:
        source = state.buffer.require(source_id)
        options = [
            (tx.id, format_saved(tx, book)) for tx in store.merge_candidates(source.kind)
        ]
        return _pick(options)

    def _pick(options: Sequence[tuple[str, str]]) -> str | None:
        if not options:
            out("No candidates.")
            return None
        for n, (_key, label) in enumerate(options, start=1):
            out(f"{n:>3}. {label}")
        return select_merge_target(options, session=sess)

    def pick_category(staging_id: str) -> str | None:
        item = state.buffer.require(staging_id)
        choice = select_category(
            book.all(item.kind), default=book.name_of(item.category_id, ""), session=sess
        )
        if not isinstance(choice, CreateCategoryRequest):
            return None if choice is None else choice.id
        name = prompt_new_category_name(initial=choice.name, session=sess)
        if name is None:
            return None
        cat, created = book.add(name, kind=item.kind)
        if created:
            out(f"Created category {cat.name}.")
        return cat.id

    show()
    while True:
        try:
            line = sess.prompt("stage> ")
        except (EOFError, KeyboardInterrupt):
            line = "quit"
        try:
            parts = shlex.split(line)
        except ValueError as e:
            out(f"Error: {e}")
            continue
        if not parts:
            continue
        cmd, args = parts[0].lower(), parts[1:]
        try:
            if cmd in {"quit", "exit", "q"}:
                if len(state.buffer):
                    out(f"Discarded {len(state.buffer)} unsaved item(s).")
                _logger.info("staging_flow:quit %s", fmt_fields(discarded=len(state.buffer)))
                return None
            if cmd == "help":
                out(HELP_TEXT)
            elif cmd == "ls":
                show()
            elif cmd == "add":
                if not args:
                    raise ValidationFailure("usage: add AMOUNT [expense|income] [NOTE...]")
                kind = Kind.EXPENSE
                rest = args[1:]
                if rest and rest[0].lower() in {k.value for k in Kind}:
                    kind, rest = Kind(rest[0].lower()), rest[1:]
                fallback = book.match(None, kind)
                item = state.add(
                    amount=args[0],
                    kind=kind,
                    category_id=fallback.id if fallback is not None else "",
                    note=" ".join(rest),
                )
                out(format_staged(item, book))
            elif cmd == "edit":
                if len(args) < 3:
                    raise ValidationFailure("usage: edit ID FIELD VALUE")
                field_name = _FIELD_ALIASES.get(args[1].lower(), args[1].lower())
                value: str = " ".join(args[2:])
                if field_name == "category_id":
                    value = _category_id(book, value)
                out(format_staged(state.buffer.update(args[0], field_name, value), book))
            elif cmd == "cat" and args:
                category_id = pick_category(args[0])
                if category_id is None:
                    out("Cancelled.")
                    continue
                out(format_staged(state.buffer.update(args[0], "category_id", category_id), book))
            elif cmd == "rm" and args:
                state.remove(args[0])
                show()
            elif cmd == "merge" and args:
                state.buffer.require(args[0])
                target = pick_staged(args[0])
                if target is None:
                    out("Cancelled.")
                    continue
                outcome = merge(state, store, args[0], target, unsaved_target=True)
                out(f"{outcome.relation}: {format_staged(outcome.item, book)}")
                if outcome.remainder is not None:
                    out(f"remainder: {format_staged(outcome.remainder, book)}")
            elif cmd == "link" and args:
                target = pick_saved(args[0])
                if target is None:
                    out("Cancelled.")
                    continue
                outcome = merge(state, store, args[0], target, unsaved_target=False)
                out(format_staged(outcome.item, book))
            elif cmd == "unlink" and args:
                out(format_staged(state.buffer.clear_merge_target(args[0]), book))
            elif cmd == "split" and args:
                split(state, args[0])
                show()
            elif cmd == "save":
                if args:
                    saved = commit_one(state, store, args[0])
                    out(f"Saved {args[0]}.")
                    if saved.remainder is not None:
                        out(f"remainder: {format_saved(saved.remainder, book)}")
                    if len(state.buffer) == 0:
                        return None
                    continue
                result = commit_batch(state, store)
                for msg in _describe_commit(result):
                    out(msg)
                if len(state.buffer) == 0:
                    return result
                show()
            else:
                out(f"Unknown command {line.strip()!r}; type 'help'.")
        except PersistenceError as e:
            out(f"Warning: could not write to storage; changes may not survive a restart: {e}")
        except LedgerError as e:
            out(f"Error: {e}")


__all__ = ["HELP_TEXT", "format_staged", "format_saved", "run_staging_session"]
