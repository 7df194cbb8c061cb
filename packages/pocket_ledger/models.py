"""Data models for ``pocket_ledger``.

Domain records are frozen dataclasses: every edit produces a new value that
replaces the old one in its collection, which keeps merge history snapshots
immune to later edits. Pydantic models at the bottom of the module are DTOs
for the two untrusted boundaries: JSON blobs read back from the key-value
store and candidate transactions returned by the AI parsing collaborator.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .errors import ValidationFailure

_CENT = Decimal("0.01")
ZERO = Decimal("0.00")


class Kind(StrEnum):
    """Direction of a transaction."""

    EXPENSE = "expense"
    INCOME = "income"

    @property
    def opposite(self) -> Kind:
        return Kind.INCOME if self is Kind.EXPENSE else Kind.EXPENSE


def to_amount(raw: Any) -> Decimal:
    """Coerce ``raw`` to a two-place Decimal (half-up).

    Raises :class:`ValidationFailure` for values that are not numbers. Sign is
    preserved; callers decide whether negatives are acceptable.
    """

    if isinstance(raw, bool) or raw is None:
        raise ValidationFailure(f"Invalid amount: {raw!r}")
    try:
        d = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        raise ValidationFailure(f"Invalid amount: {raw!r}") from None
    if not d.is_finite():
        raise ValidationFailure(f"Invalid amount: {raw!r}")
    return d.quantize(_CENT, rounding=ROUND_HALF_UP)


def new_id() -> str:
    """Return a fresh opaque identifier."""

    return uuid.uuid4().hex


def to_occurred_at(raw: Any) -> datetime:
    """Coerce a date, datetime or ISO string to a naive local datetime.

    Aware values are converted to local wall time first so every timestamp in a
    collection stays comparable.
    """

    if isinstance(raw, datetime):
        value = raw
    elif isinstance(raw, date):
        value = datetime(raw.year, raw.month, raw.day)
    elif isinstance(raw, str) and raw.strip():
        text = raw.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            value = datetime.fromisoformat(text)
        except ValueError:
            raise ValidationFailure(f"Invalid timestamp: {raw!r}") from None
    else:
        raise ValidationFailure(f"Invalid timestamp: {raw!r}")
    if value.tzinfo is not None:
        value = value.astimezone().replace(tzinfo=None)
    return value


# ---------------------------------------------------------------------------
# Domain records
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Transaction:
    """A persisted transaction owned by the transaction store."""

    id: str
    amount: Decimal
    kind: Kind
    category_id: str
    occurred_at: datetime
    note: str = ""

    def __post_init__(self) -> None:
        if not self.id:
            raise ValidationFailure("Transaction id cannot be empty")
        if not isinstance(self.kind, Kind):
            raise ValidationFailure(f"Transaction kind must be a Kind, got {self.kind!r}")
        if self.amount < 0:
            raise ValidationFailure(f"Transaction amount cannot be negative: {self.amount}")


@dataclass(frozen=True, slots=True)
class StagedTransaction:
    """An unsaved candidate transaction in the staging buffer.

    Attributes
    ----------
    staging_id:
        Identifier unique within the staging session; never persisted.
    merge_target_id:
        Id of a persisted :class:`Transaction` this item offsets on commit.
    absorbed_children:
        Snapshots of staged items merged into this one, in merge order. Each
        snapshot keeps its own children.
    prior_amount, prior_note:
        Amount and note before the first merge into this item. Later merges do
        not move the baseline, so a split always restores the unmerged state.
    remainder_of:
        Staging id of the item whose offset produced this one as the carried
        excess (remainder policy ``PRESERVE`` only).
    """

    staging_id: str
    amount: Decimal
    kind: Kind
    category_id: str
    occurred_at: datetime
    note: str = ""
    merge_target_id: str | None = None
    absorbed_children: tuple[StagedTransaction, ...] = ()
    prior_amount: Decimal | None = None
    prior_note: str | None = None
    remainder_of: str | None = None

    def __post_init__(self) -> None:
        if not self.staging_id:
            raise ValidationFailure("staging_id cannot be empty")
        if not isinstance(self.kind, Kind):
            raise ValidationFailure(f"Staged kind must be a Kind, got {self.kind!r}")
        if self.amount < 0:
            raise ValidationFailure(f"Staged amount cannot be negative: {self.amount}")
        has_snapshot = self.prior_amount is not None and self.prior_note is not None
        if bool(self.absorbed_children) != has_snapshot:
            raise ValidationFailure(
                "absorbed_children and the prior amount/note snapshot must be set together"
            )

    @property
    def is_merge_result(self) -> bool:
        return bool(self.absorbed_children)

    def to_transaction(self, transaction_id: str) -> Transaction:
        """Strip staging-only fields and return a persistable record."""

        return Transaction(
            id=transaction_id,
            amount=self.amount,
            kind=self.kind,
            category_id=self.category_id,
            occurred_at=self.occurred_at,
            note=self.note,
        )


@dataclass(frozen=True, slots=True)
class Category:
    id: str
    name: str
    icon: str
    color: str
    kind: Kind


@dataclass(frozen=True, slots=True)
class Trip:
    """A date window the user wants spending summarized for."""

    id: str
    title: str
    start_date: date
    end_date: date
    notes: str | None = None

    def __post_init__(self) -> None:
        if not self.title.strip():
            raise ValidationFailure("Trip title cannot be empty")
        if self.start_date > self.end_date:
            raise ValidationFailure(
                f"Trip start_date {self.start_date} is after end_date {self.end_date}"
            )


# ---------------------------------------------------------------------------
# DTOs for key-value blob I/O
# ---------------------------------------------------------------------------


class TransactionRow(BaseModel):
    """One element of the ``transactions`` JSON array."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    amount: Decimal = Field(ge=0)
    kind: Kind
    category_id: str
    occurred_at: datetime
    note: str = ""

    @classmethod
    def from_domain(cls, tx: Transaction) -> TransactionRow:
        return cls(
            id=tx.id,
            amount=tx.amount,
            kind=tx.kind,
            category_id=tx.category_id,
            occurred_at=tx.occurred_at,
            note=tx.note,
        )

    def to_domain(self) -> Transaction:
        return Transaction(
            id=self.id,
            amount=to_amount(self.amount),
            kind=self.kind,
            category_id=self.category_id,
            occurred_at=to_occurred_at(self.occurred_at),
            note=self.note,
        )


class CategoryRow(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    icon: str = "MoreHorizontal"
    color: str = "#9ca3af"
    kind: Kind = Kind.EXPENSE

    @classmethod
    def from_domain(cls, c: Category) -> CategoryRow:
        return cls(id=c.id, name=c.name, icon=c.icon, color=c.color, kind=c.kind)

    def to_domain(self) -> Category:
        return Category(
            id=self.id, name=self.name, icon=self.icon, color=self.color, kind=self.kind
        )


class TripRow(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    id: str = Field(min_length=1)
    title: str
    start_date: date
    end_date: date
    notes: str | None = None

    @classmethod
    def from_domain(cls, t: Trip) -> TripRow:
        return cls(
            id=t.id, title=t.title, start_date=t.start_date, end_date=t.end_date, notes=t.notes
        )

    def to_domain(self) -> Trip:
        return Trip(
            id=self.id,
            title=self.title,
            start_date=self.start_date,
            end_date=self.end_date,
            notes=self.notes,
        )


# ---------------------------------------------------------------------------
# DTO for the AI parsing collaborator
# ---------------------------------------------------------------------------


class ParsedTransaction(BaseModel):
    """A candidate transaction recognized by the model.

    Amounts are forced positive (models sometimes echo the sign of a bank
    statement). Dates that do not parse are dropped rather than rejected so a
    single odd field does not discard the whole candidate.
    """

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True, populate_by_name=True)

    amount: Decimal
    merchant: str = ""
    occurred_on: date | None = Field(
        default=None, validation_alias=AliasChoices("occurred_on", "date")
    )
    category_suggestion: str | None = Field(
        default=None,
        validation_alias=AliasChoices("category_suggestion", "categorySuggestion", "category"),
    )

    @field_validator("amount", mode="before")
    @classmethod
    def _absolute_amount(cls, v: Any) -> Decimal:
        try:
            return abs(to_amount(v))
        except ValidationFailure as e:
            raise ValueError(str(e)) from None

    @field_validator("merchant", mode="before")
    @classmethod
    def _merchant_text(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("occurred_on", mode="before")
    @classmethod
    def _lenient_date(cls, v: Any) -> date | None:
        if v is None or isinstance(v, date):
            return v
        s = str(v).strip()
        if not s:
            return None
        try:
            return date.fromisoformat(s[:10])
        except ValueError:
            return None

    @field_validator("category_suggestion", mode="before")
    @classmethod
    def _blank_suggestion(cls, v: Any) -> str | None:
        if v is None:
            return None
        s = str(v).strip()
        return s or None


__all__ = [
    "ZERO",
    "Kind",
    "to_amount",
    "new_id",
    "to_occurred_at",
    "Transaction",
    "StagedTransaction",
    "Category",
    "Trip",
    "TransactionRow",
    "CategoryRow",
    "TripRow",
    "ParsedTransaction",
]
