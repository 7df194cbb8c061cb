"""Trips: named date windows with an expense summary."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from .errors import UnknownRecord, ValidationFailure
from .logging_setup import fmt_fields, get_logger
from .models import ZERO, Category, Kind, Transaction, Trip, TripRow, new_id
from .stats import CategorySlice, category_breakdown
from .storage import TRIPS_KEY, KeyValueStore, dump_collection, load_collection

_logger = get_logger("pocket_ledger.trips")

_EDITABLE = frozenset({"title", "start_date", "end_date", "notes"})


@dataclass(frozen=True, slots=True)
class TripSummary:
    trip: Trip
    total: Decimal
    count: int
    days: int
    daily_average: Decimal
    breakdown: tuple[CategorySlice, ...]
    transactions: tuple[Transaction, ...]


class TripBook:
    """Trips stored under the ``trips`` key, newest first."""

    def __init__(self, kv: KeyValueStore, trips: Iterable[Trip]) -> None:
        self._kv = kv
        self._items: list[Trip] = list(trips)

    @classmethod
    def load(cls, kv: KeyValueStore) -> TripBook:
        return cls(kv, load_collection(kv, TRIPS_KEY, TripRow, TripRow.to_domain))

    def all(self) -> list[Trip]:
        return list(self._items)

    def get(self, trip_id: str) -> Trip | None:
        return next((t for t in self._items if t.id == trip_id), None)

    def require(self, trip_id: str) -> Trip:
        trip = self.get(trip_id)
        if trip is None:
            raise UnknownRecord(f"no trip with id {trip_id!r}")
        return trip

    def add(
        self, title: str, start_date: date, end_date: date, notes: str | None = None
    ) -> Trip:
        trip = Trip(
            id=new_id(),
            title=title.strip(),
            start_date=start_date,
            end_date=end_date,
            notes=notes.strip() if notes and notes.strip() else None,
        )
        self._items.insert(0, trip)
        self._save()
        _logger.info("trips:created %s", fmt_fields(id=trip.id, title=trip.title))
        return trip

    def update(self, trip_id: str, **changes: Any) -> Trip:
        unknown = set(changes) - _EDITABLE
        if unknown:
            raise ValidationFailure(f"trip fields cannot be edited: {sorted(unknown)}")
        current = self.require(trip_id)
        updated = replace(current, **changes)
        self._items = [updated if t.id == trip_id else t for t in self._items]
        self._save()
        return updated

    def delete(self, trip_id: str) -> Trip:
        trip = self.require(trip_id)
        self._items = [t for t in self._items if t.id != trip_id]
        self._save()
        _logger.info("trips:deleted %s", fmt_fields(id=trip_id))
        return trip

    def _save(self) -> None:
        dump_collection(self._kv, TRIPS_KEY, TripRow, TripRow.from_domain, self._items)


def trip_summary(
    trip: Trip, transactions: Iterable[Transaction], categories: Sequence[Category]
) -> TripSummary:
    """Expenses dated within ``[start_date, end_date]`` (both inclusive)."""

    hits = [
        t
        for t in transactions
        if t.kind is Kind.EXPENSE and trip.start_date <= t.occurred_at.date() <= trip.end_date
    ]
    total = sum((t.amount for t in hits), ZERO)
    days = max(1, (trip.end_date - trip.start_date).days + 1)
    return TripSummary(
        trip=trip,
        total=total,
        count=len(hits),
        days=days,
        daily_average=(total / days).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP),
        breakdown=tuple(category_breakdown(hits, categories)),
        transactions=tuple(sorted(hits, key=lambda t: t.occurred_at)),
    )


__all__ = ["TripSummary", "TripBook", "trip_summary"]
