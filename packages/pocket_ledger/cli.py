# ruff: noqa: I001
"""CLI for the ``pocket_ledger`` package.

This module exposes callable command handlers (``cmd_add``, ``cmd_stage``,
...) and a Typer-based console interface. Environment variables (notably
``DATABASE_URL`` and ``OPENAI_API_KEY``) are loaded from a local ``.env``
using ``python-dotenv`` before delegating to command logic. Handlers print
results to stdout, print ``Error: ...`` to stderr on failure, and return a
process exit code.
"""

from __future__ import annotations

import mimetypes
import os
import sys
from datetime import date, datetime, timedelta
from pathlib import Path

import typer
from dotenv import load_dotenv
from prompt_toolkit import PromptSession
from typer.models import OptionInfo

from .categories import CategoryBook
from .commit import Draft, save_single
from .errors import LedgerError, PersistenceError, ValidationFailure
from .logging_setup import configure_logging
from .models import Kind, to_amount, to_occurred_at
from .staging import RemainderPolicy, StagingSession, remainder_policy_from_env
from .stats import DateGroup, View, compare_groups, summarize
from .storage import SqlKeyValueStore
from .store import TransactionStore
from .trips import TripBook, trip_summary
from .workflows.staging_flow import format_saved, run_staging_session


# ---- Small module-level helpers used by CLI commands -------------------------


def _open_ledger(
    database_url: str | None,
) -> tuple[SqlKeyValueStore, TransactionStore, CategoryBook]:
    kv = SqlKeyValueStore(database_url)
    return kv, TransactionStore.load(kv), CategoryBook.load(kv)


def _parse_day(raw: str | None, *, label: str) -> date | None:
    if raw is None or not raw.strip():
        return None
    try:
        return date.fromisoformat(raw.strip())
    except ValueError:
        raise ValidationFailure(f"{label} must be YYYY-MM-DD, got {raw!r}") from None


def _resolve_category(book: CategoryBook, name: str | None, kind: Kind) -> str:
    if name:
        for c in book.all():
            if c.name.casefold() == name.strip().casefold():
                return c.id
        raise ValidationFailure(f"unknown category {name!r}")
    fallback = book.match(None, kind)
    if fallback is None:
        raise ValidationFailure("no categories defined; add one first")
    return fallback.id


def _error(msg: object) -> int:
    print(f"Error: {msg}", file=sys.stderr)
    return 1


def _persistence_warning(e: PersistenceError) -> int:
    print(
        f"Warning: change kept for this session but not written to storage: {e}",
        file=sys.stderr,
    )
    return 1


def parse_group(raw: str) -> DateGroup:
    """Parse ``NAME=DAY[,DAY...]`` where a DAY may be a ``START..END`` range."""

    name, sep, body = raw.partition("=")
    if not sep or not name.strip() or not body.strip():
        raise ValidationFailure(
            f"group must look like NAME=2024-01-01,2024-01-03..2024-01-05: {raw!r}"
        )
    days: set[date] = set()
    for part in body.split(","):
        part = part.strip()
        if not part:
            continue
        start_raw, dots, end_raw = part.partition("..")
        start = _parse_day(start_raw, label="group day")
        end = _parse_day(end_raw, label="group day") if dots else start
        if start is None or end is None or end < start:
            raise ValidationFailure(f"bad day range {part!r}")
        day = start
        while day <= end:
            days.add(day)
            day += timedelta(days=1)
    return DateGroup(name=name.strip(), days=frozenset(days))


# ---- Command handlers ---------------------------------------------------------


def cmd_add(
    amount: str,
    *,
    kind: Kind = Kind.EXPENSE,
    category: str | None = None,
    note: str = "",
    on: str | None = None,
    offset: str | None = None,
    database_url: str | None = None,
) -> int:
    """Save one transaction, or offset a saved one when ``offset`` is given."""

    try:
        _kv, store, book = _open_ledger(database_url)
        draft = Draft(
            amount=to_amount(amount),
            kind=kind,
            category_id=_resolve_category(book, category, kind),
            occurred_at=to_occurred_at(on) if on else datetime.now(),
            note=note.strip(),
        )
        result = save_single(
            store, draft, merge_target_id=offset, merge_active=offset is not None
        )
    except PersistenceError as e:
        return _persistence_warning(e)
    except LedgerError as e:
        return _error(e)

    if result.inserted is not None:
        print(f"{result.inserted.id}\t{format_saved(result.inserted, book)}")
    if result.updated is not None:
        print(f"{result.updated.id}\t{format_saved(result.updated, book)}")
    if result.remainder is not None:
        print(f"{result.remainder.id}\t{format_saved(result.remainder, book)}")
    return 0


def cmd_list(
    *,
    kind: Kind | None = None,
    start: str | None = None,
    end: str | None = None,
    database_url: str | None = None,
) -> int:
    try:
        _kv, store, book = _open_ledger(database_url)
        rows = store.query(
            kind=kind,
            start=_parse_day(start, label="start"),
            end=_parse_day(end, label="end"),
        )
    except LedgerError as e:
        return _error(e)
    for tx in sorted(rows, key=lambda t: t.occurred_at, reverse=True):
        print(f"{tx.id}\t{format_saved(tx, book)}")
    return 0


def cmd_delete(transaction_id: str, *, database_url: str | None = None) -> int:
    try:
        _kv, store, _book = _open_ledger(database_url)
        removed = store.delete(transaction_id)
    except PersistenceError as e:
        return _persistence_warning(e)
    except LedgerError as e:
        return _error(e)
    print(f"Deleted {removed.id}")
    return 0


def cmd_stage(
    *,
    text: str | None = None,
    image: Path | None = None,
    mime_type: str | None = None,
    remainder_policy: RemainderPolicy | None = None,
    database_url: str | None = None,
    prompt_session: PromptSession | None = None,
) -> int:
    """Open an interactive batch session, optionally seeded by AI parsing."""

    from .parsing import parse_image, parse_text

    try:
        _kv, store, book = _open_ledger(database_url)
    except LedgerError as e:
        return _error(e)

    state = StagingSession(remainder_policy=remainder_policy or remainder_policy_from_env())
    if text or image:
        if not os.getenv("OPENAI_API_KEY"):
            return _error("OPENAI_API_KEY is not set in the environment.")
        names = [c.name for c in book.all(Kind.EXPENSE)]
        try:
            if image is not None:
                data = image.read_bytes()
                mime = mime_type or mimetypes.guess_type(image.name)[0] or "image/jpeg"
                results = parse_image(data, mime, category_names=names)
            else:
                results = parse_text(text or "", category_names=names)
            added = state.add_parsed(results, book.all())
            print(f"Recognized {len(added)} transaction(s).")
        except OSError as e:
            return _error(f"cannot read {image}: {e}")
        except LedgerError as e:
            # Recoverable: the user can still enter items by hand.
            print(f"{e}. Enter items manually with 'add'.", file=sys.stderr)

    run_staging_session(state, store, book, prompt_session=prompt_session)
    return 0


def cmd_stats(
    *,
    view: View = View.MONTH,
    on: str | None = None,
    database_url: str | None = None,
) -> int:
    try:
        _kv, store, book = _open_ledger(database_url)
        anchor = _parse_day(on, label="date") or date.today()
    except LedgerError as e:
        return _error(e)
    s = summarize(store.all(), book.all(), anchor, view)
    print(f"{view} of {anchor.isoformat()}")
    print(f"expense\t{s.expense_total}")
    print(f"income\t{s.income_total}")
    print(f"balance\t{s.balance}")
    for slice_ in s.breakdown:
        print(f"  {slice_.name}\t{slice_.value}")
    return 0


def cmd_compare(groups: list[str], *, database_url: str | None = None) -> int:
    try:
        parsed = [parse_group(g) for g in groups]
        _kv, store, _book = _open_ledger(database_url)
    except LedgerError as e:
        return _error(e)
    if not parsed:
        return _error("give at least one --group")
    print("group\ttotal\tcount\tmax\tdaily_avg\tper_tx_avg\tchange")
    for row in compare_groups(store.all(), parsed):
        if row.percent_change is None:
            change = "-"
        else:
            change = f"{row.percent_change:+}%"
        print(
            f"{row.name}\t{row.total}\t{row.count}\t{row.max_transaction}\t"
            f"{row.daily_average}\t{row.transaction_average}\t{change}"
        )
    return 0


def cmd_insight(*, database_url: str | None = None) -> int:
    from .insights import monthly_insight

    try:
        _kv, store, book = _open_ledger(database_url)
    except LedgerError as e:
        return _error(e)
    text = monthly_insight(store.all(), book.all())
    print(text if text is not None else "No expenses recorded this month.")
    return 0


def cmd_categories_list(*, database_url: str | None = None) -> int:
    try:
        _kv, _store, book = _open_ledger(database_url)
    except LedgerError as e:
        return _error(e)
    for c in book.all():
        print(f"{c.id}\t{c.kind}\t{c.name}")
    return 0


def cmd_categories_add(
    name: str, *, kind: Kind = Kind.EXPENSE, database_url: str | None = None
) -> int:
    try:
        _kv, _store, book = _open_ledger(database_url)
        cat, created = book.add(name, kind=kind)
    except LedgerError as e:
        return _error(e)
    print(f"{'Created' if created else 'Exists'}\t{cat.id}\t{cat.name}")
    return 0


def cmd_categories_delete(category_id: str, *, database_url: str | None = None) -> int:
    try:
        _kv, _store, book = _open_ledger(database_url)
        cat = book.delete(category_id)
    except LedgerError as e:
        return _error(e)
    print(f"Deleted {cat.name}")
    return 0


def cmd_trips_list(*, database_url: str | None = None) -> int:
    try:
        trips = TripBook.load(SqlKeyValueStore(database_url))
    except LedgerError as e:
        return _error(e)
    for t in trips.all():
        print(f"{t.id}\t{t.start_date}..{t.end_date}\t{t.title}")
    return 0


def cmd_trips_add(
    title: str,
    *,
    start: str,
    end: str,
    notes: str | None = None,
    database_url: str | None = None,
) -> int:
    try:
        trips = TripBook.load(SqlKeyValueStore(database_url))
        s = _parse_day(start, label="start")
        e = _parse_day(end, label="end")
        if s is None or e is None:
            raise ValidationFailure("start and end are required")
        trip = trips.add(title, s, e, notes)
    except LedgerError as err:
        return _error(err)
    print(f"{trip.id}\t{trip.title}")
    return 0


def cmd_trips_update(
    trip_id: str,
    *,
    title: str | None = None,
    start: str | None = None,
    end: str | None = None,
    notes: str | None = None,
    database_url: str | None = None,
) -> int:
    """Edit a trip; an empty ``notes`` clears them."""

    changes: dict[str, object] = {}
    try:
        if title is not None:
            changes["title"] = title.strip()
        s = _parse_day(start, label="start")
        e = _parse_day(end, label="end")
        if s is not None:
            changes["start_date"] = s
        if e is not None:
            changes["end_date"] = e
        if notes is not None:
            changes["notes"] = notes.strip() or None
        if not changes:
            raise ValidationFailure("nothing to update")
        trip = TripBook.load(SqlKeyValueStore(database_url)).update(trip_id, **changes)
    except LedgerError as err:
        return _error(err)
    print(f"{trip.id}\t{trip.start_date}..{trip.end_date}\t{trip.title}")
    return 0


def cmd_trips_delete(trip_id: str, *, database_url: str | None = None) -> int:
    try:
        trip = TripBook.load(SqlKeyValueStore(database_url)).delete(trip_id)
    except LedgerError as e:
        return _error(e)
    print(f"Deleted {trip.title}")
    return 0


def cmd_trips_show(trip_id: str, *, database_url: str | None = None) -> int:
    try:
        kv, store, book = _open_ledger(database_url)
        trip = TripBook.load(kv).require(trip_id)
    except LedgerError as e:
        return _error(e)
    s = trip_summary(trip, store.all(), book.all())
    print(f"{trip.title} ({trip.start_date}..{trip.end_date}, {s.days} day(s))")
    print(f"total\t{s.total}\tcount\t{s.count}\tdaily_avg\t{s.daily_average}")
    for slice_ in s.breakdown:
        print(f"  {slice_.name}\t{slice_.value}")
    return 0


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Track income and expenses, stage AI-parsed batches, and reconcile offsets. "
        "Loads DATABASE_URL and OPENAI_API_KEY from a local .env before running."
    ),
)
categories_app = typer.Typer(no_args_is_help=True, help="Manage categories.")
trips_app = typer.Typer(no_args_is_help=True, help="Manage trips.")
app.add_typer(categories_app, name="categories")
app.add_typer(trips_app, name="trips")

# Module-level option objects to satisfy ruff B008 (no calls in parameter
# defaults). Typer inspects these when used as default values below.
DB_URL_OPTION: OptionInfo = typer.Option(
    None, "--database-url", help="Override DATABASE_URL (falls back to env var)."
)
KIND_OPTION: OptionInfo = typer.Option(Kind.EXPENSE, "--kind", help="expense or income")


@app.command("add")
def add_cmd(
    amount: str = typer.Argument(..., help="Positive amount, e.g. 12.50"),
    kind: Kind = KIND_OPTION,
    category: str | None = typer.Option(None, help="Category name (default: first of kind)."),
    note: str = typer.Option("", help="Free-text note."),
    on: str | None = typer.Option(None, "--date", help="ISO date or timestamp (default: now)."),
    offset: str | None = typer.Option(
        None, help="Id of a saved transaction of the opposite kind to offset."
    ),
    database_url: str | None = DB_URL_OPTION,
) -> None:
    """Save one transaction, optionally offsetting a saved one."""

    raise typer.Exit(
        cmd_add(
            amount,
            kind=kind,
            category=category,
            note=note,
            on=on,
            offset=offset,
            database_url=database_url,
        )
    )


@app.command("list")
def list_cmd(
    kind: Kind | None = typer.Option(None, help="Only this kind."),
    start: str | None = typer.Option(None, help="First day, YYYY-MM-DD."),
    end: str | None = typer.Option(None, help="Last day, YYYY-MM-DD."),
    database_url: str | None = DB_URL_OPTION,
) -> None:
    """List saved transactions, newest first."""

    raise typer.Exit(cmd_list(kind=kind, start=start, end=end, database_url=database_url))


@app.command("delete")
def delete_cmd(
    transaction_id: str = typer.Argument(...),
    database_url: str | None = DB_URL_OPTION,
) -> None:
    """Delete a saved transaction."""

    raise typer.Exit(cmd_delete(transaction_id, database_url=database_url))


@app.command("stage")
def stage_cmd(
    text: str | None = typer.Option(None, help="Text to parse into transactions."),
    image: Path | None = typer.Option(
        None, help="Receipt or screenshot to parse.", dir_okay=False, exists=False
    ),
    mime_type: str | None = typer.Option(None, help="Image MIME type (default: guessed)."),
    remainder_policy: RemainderPolicy | None = typer.Option(
        None,
        help="Keep or drop offset excess (default: POCKET_LEDGER_REMAINDER_POLICY or preserve).",
    ),
    database_url: str | None = DB_URL_OPTION,
) -> None:
    """Stage several transactions, merge or offset them, then save."""

    raise typer.Exit(
        cmd_stage(
            text=text,
            image=image,
            mime_type=mime_type,
            remainder_policy=remainder_policy,
            database_url=database_url,
        )
    )


@app.command("stats")
def stats_cmd(
    view: View = typer.Option(View.MONTH, help="day, month or year."),
    on: str | None = typer.Option(None, "--date", help="Anchor day (default: today)."),
    database_url: str | None = DB_URL_OPTION,
) -> None:
    """Totals and category breakdown for a day, month or year."""

    raise typer.Exit(cmd_stats(view=view, on=on, database_url=database_url))


@app.command("compare")
def compare_cmd(
    group: list[str] = typer.Option(
        ..., help="NAME=DAY[,DAY...]; a DAY may be START..END. Repeat per group."
    ),
    database_url: str | None = DB_URL_OPTION,
) -> None:
    """Compare spending across groups of days; the first group is the baseline."""

    raise typer.Exit(cmd_compare(group, database_url=database_url))


@app.command("insight")
def insight_cmd(database_url: str | None = DB_URL_OPTION) -> None:
    """One encouraging sentence about this month's spending."""

    raise typer.Exit(cmd_insight(database_url=database_url))


@categories_app.command("list")
def categories_list_cmd(database_url: str | None = DB_URL_OPTION) -> None:
    raise typer.Exit(cmd_categories_list(database_url=database_url))


@categories_app.command("add")
def categories_add_cmd(
    name: str = typer.Argument(...),
    kind: Kind = KIND_OPTION,
    database_url: str | None = DB_URL_OPTION,
) -> None:
    raise typer.Exit(cmd_categories_add(name, kind=kind, database_url=database_url))


@categories_app.command("delete")
def categories_delete_cmd(
    category_id: str = typer.Argument(...),
    database_url: str | None = DB_URL_OPTION,
) -> None:
    raise typer.Exit(cmd_categories_delete(category_id, database_url=database_url))


@trips_app.command("list")
def trips_list_cmd(database_url: str | None = DB_URL_OPTION) -> None:
    raise typer.Exit(cmd_trips_list(database_url=database_url))


@trips_app.command("add")
def trips_add_cmd(
    title: str = typer.Argument(...),
    start: str = typer.Option(..., help="First day, YYYY-MM-DD."),
    end: str = typer.Option(..., help="Last day, YYYY-MM-DD."),
    notes: str | None = typer.Option(None),
    database_url: str | None = DB_URL_OPTION,
) -> None:
    raise typer.Exit(
        cmd_trips_add(title, start=start, end=end, notes=notes, database_url=database_url)
    )


@trips_app.command("update")
def trips_update_cmd(
    trip_id: str = typer.Argument(...),
    title: str | None = typer.Option(None),
    start: str | None = typer.Option(None, help="First day, YYYY-MM-DD."),
    end: str | None = typer.Option(None, help="Last day, YYYY-MM-DD."),
    notes: str | None = typer.Option(None, help="New notes; pass \"\" to clear."),
    database_url: str | None = DB_URL_OPTION,
) -> None:
    raise typer.Exit(
        cmd_trips_update(
            trip_id,
            title=title,
            start=start,
            end=end,
            notes=notes,
            database_url=database_url,
        )
    )


@trips_app.command("delete")
def trips_delete_cmd(
    trip_id: str = typer.Argument(...),
    database_url: str | None = DB_URL_OPTION,
) -> None:
    raise typer.Exit(cmd_trips_delete(trip_id, database_url=database_url))


@trips_app.command("show")
def trips_show_cmd(
    trip_id: str = typer.Argument(...),
    database_url: str | None = DB_URL_OPTION,
) -> None:
    """Expense summary for a trip's date window."""

    raise typer.Exit(cmd_trips_show(trip_id, database_url=database_url))


@app.callback()
def _root() -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures logging once.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()


if __name__ == "__main__":  # pragma: no cover - exercised via console script
    app()
