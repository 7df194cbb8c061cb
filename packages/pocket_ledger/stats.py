"""Aggregations over persisted transactions for the dashboard, chart and compare views.

Every function is pure: it takes the transactions (and categories where
names are needed) and returns plain frozen records. Series are zero-filled so
callers can chart them directly.
"""

from __future__ import annotations

import calendar
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import StrEnum

from .models import ZERO, Category, Kind, Transaction

_CENT = Decimal("0.01")
_TENTH = Decimal("0.1")


class View(StrEnum):
    DAY = "day"
    MONTH = "month"
    YEAR = "year"


@dataclass(frozen=True, slots=True)
class CategorySlice:
    category_id: str
    name: str
    value: Decimal
    color: str | None = None


@dataclass(frozen=True, slots=True)
class Summary:
    expense_total: Decimal
    income_total: Decimal
    breakdown: tuple[CategorySlice, ...]
    listing: tuple[Transaction, ...]

    @property
    def balance(self) -> Decimal:
        return self.income_total - self.expense_total


@dataclass(frozen=True, slots=True)
class DateGroup:
    """A named set of calendar days to compare against other sets."""

    name: str
    days: frozenset[date]


@dataclass(frozen=True, slots=True)
class GroupStats:
    name: str
    total: Decimal
    count: int
    max_transaction: Decimal
    daily_average: Decimal
    transaction_average: Decimal
    diff: Decimal
    # None when the baseline total is zero; 0 for the baseline group itself.
    percent_change: Decimal | None


def _in_view(day: date, anchor: date, view: View) -> bool:
    if view is View.YEAR:
        return day.year == anchor.year
    if view is View.MONTH:
        return (day.year, day.month) == (anchor.year, anchor.month)
    return day == anchor


def filter_range(
    transactions: Iterable[Transaction], anchor: date, view: View
) -> list[Transaction]:
    """Transactions on the anchor's day, month or year."""

    return [t for t in transactions if _in_view(t.occurred_at.date(), anchor, view)]


def _total(transactions: Iterable[Transaction]) -> Decimal:
    return sum((t.amount for t in transactions), ZERO)


def category_breakdown(
    transactions: Iterable[Transaction], categories: Sequence[Category]
) -> list[CategorySlice]:
    """Sum by category, largest first; unknown ids are labelled ``Unknown``."""

    by_id = {c.id: c for c in categories}
    totals: dict[str, Decimal] = {}
    for t in transactions:
        totals[t.category_id] = totals.get(t.category_id, ZERO) + t.amount
    slices = []
    for cid, value in totals.items():
        cat = by_id.get(cid)
        slices.append(
            CategorySlice(
                category_id=cid,
                name=cat.name if cat is not None else "Unknown",
                value=value,
                color=cat.color if cat is not None else None,
            )
        )
    # Stable sort keeps first-seen order among equal values.
    return sorted(slices, key=lambda s: s.value, reverse=True)


def summarize(
    transactions: Iterable[Transaction],
    categories: Sequence[Category],
    anchor: date,
    view: View,
) -> Summary:
    in_range = filter_range(transactions, anchor, view)
    expenses = [t for t in in_range if t.kind is Kind.EXPENSE]
    incomes = [t for t in in_range if t.kind is Kind.INCOME]
    return Summary(
        expense_total=_total(expenses),
        income_total=_total(incomes),
        breakdown=tuple(category_breakdown(expenses, categories)),
        listing=tuple(sorted(in_range, key=lambda t: t.occurred_at, reverse=True)),
    )


def daily_series(
    transactions: Iterable[Transaction], year: int, month: int
) -> list[tuple[int, Decimal]]:
    """Expense total for every day of the month, ``(day, amount)``."""

    days = calendar.monthrange(year, month)[1]
    buckets = {d: ZERO for d in range(1, days + 1)}
    for t in transactions:
        at = t.occurred_at
        if t.kind is Kind.EXPENSE and at.year == year and at.month == month:
            buckets[at.day] += t.amount
    return list(buckets.items())


def monthly_series(transactions: Iterable[Transaction], year: int) -> list[tuple[int, Decimal]]:
    """Expense total for every month of the year, ``(month, amount)``."""

    buckets = {m: ZERO for m in range(1, 13)}
    for t in transactions:
        if t.kind is Kind.EXPENSE and t.occurred_at.year == year:
            buckets[t.occurred_at.month] += t.amount
    return list(buckets.items())


def compare_groups(
    transactions: Sequence[Transaction], groups: Sequence[DateGroup]
) -> list[GroupStats]:
    """Expense statistics per day group, with change relative to the first group."""

    rows: list[GroupStats] = []
    baseline: Decimal | None = None
    for index, group in enumerate(groups):
        hits = [
            t
            for t in transactions
            if t.kind is Kind.EXPENSE and t.occurred_at.date() in group.days
        ]
        total = _total(hits)
        count = len(hits)
        days = len(group.days) or 1
        if index == 0:
            baseline = total
            diff, percent = ZERO, Decimal("0.0")
        elif not baseline:
            diff, percent = ZERO, None
        else:
            diff = total - baseline
            percent = (diff / baseline * 100).quantize(_TENTH, rounding=ROUND_HALF_UP)
        rows.append(
            GroupStats(
                name=group.name,
                total=total,
                count=count,
                max_transaction=max((t.amount for t in hits), default=ZERO),
                daily_average=(total / days).quantize(_CENT, rounding=ROUND_HALF_UP),
                transaction_average=(
                    (total / count).quantize(_CENT, rounding=ROUND_HALF_UP) if count else ZERO
                ),
                diff=diff,
                percent_change=percent,
            )
        )
    return rows


__all__ = [
    "View",
    "CategorySlice",
    "Summary",
    "DateGroup",
    "GroupStats",
    "filter_range",
    "category_breakdown",
    "summarize",
    "daily_series",
    "monthly_series",
    "compare_groups",
]
