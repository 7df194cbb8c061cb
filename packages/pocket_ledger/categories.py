"""Category reference data, validation, and suggestion matching.

Exports
-------
- ``DEFAULT_CATEGORIES``: the seed set used when nothing is stored yet.
- ``normalize_name(...)`` / ``validate_name(...)``: shared by the CLI pickers
  for early feedback and enforced again by :class:`CategoryBook`.
- ``match_category(...)``: pure scored matcher mapping a free-text suggestion
  (typically from the AI parser) onto an existing category.
- ``CategoryBook``: idempotent create, delete and lookups over the
  ``categories`` blob.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from .errors import UnknownRecord, ValidationFailure
from .logging_setup import fmt_fields, get_logger
from .models import Category, CategoryRow, Kind, new_id
from .storage import CATEGORIES_KEY, KeyValueStore, dump_collection, load_collection

_logger = get_logger("pocket_ledger.categories")

DEFAULT_CATEGORIES: tuple[Category, ...] = (
    Category("1", "Dining", "Utensils", "#ef4444", Kind.EXPENSE),
    Category("2", "Transport", "Bus", "#3b82f6", Kind.EXPENSE),
    Category("3", "Shopping", "ShoppingBag", "#f59e0b", Kind.EXPENSE),
    Category("4", "Entertainment", "Film", "#8b5cf6", Kind.EXPENSE),
    Category("5", "Housing", "Home", "#10b981", Kind.EXPENSE),
    Category("6", "Medical", "Stethoscope", "#ec4899", Kind.EXPENSE),
    Category("7", "Salary", "Banknote", "#22c55e", Kind.INCOME),
    Category("8", "Other", "MoreHorizontal", "#9ca3af", Kind.EXPENSE),
)

# ---------------------------
# Name normalization/validation
# ---------------------------

# Word characters cover non-ASCII letters (category names are often not English).
_ALLOWED_RE = re.compile(r"^[\w &\-/]+$")


def normalize_name(name: str) -> str:
    """Trim and collapse internal whitespace; case is left alone."""

    return " ".join(name.strip().split())


@dataclass(frozen=True, slots=True)
class NameValidation:
    ok: bool
    reason: str | None = None


def validate_name(name: str, *, max_len: int = 32) -> NameValidation:
    n = normalize_name(name)
    if not n:
        return NameValidation(False, "Name cannot be empty")
    if len(n) > max_len:
        return NameValidation(False, f"Name must be at most {max_len} characters")
    if not _ALLOWED_RE.match(n):
        return NameValidation(False, "Only letters, numbers, spaces, and & - / are allowed")
    return NameValidation(True, None)


# ---------------------------
# Suggestion matching
# ---------------------------

_SCORE_EXACT = 3
_SCORE_NAME_IN_SUGGESTION = 2
_SCORE_SUGGESTION_IN_NAME = 1


def _match_score(suggestion: str, category_name: str) -> int:
    s = suggestion.casefold()
    n = category_name.casefold()
    if not n:
        return 0
    if s == n:
        return _SCORE_EXACT
    if n in s:
        return _SCORE_NAME_IN_SUGGESTION
    if s in n:
        return _SCORE_SUGGESTION_IN_NAME
    return 0


def match_category(
    suggestion: str | None,
    categories: Sequence[Category],
    kind: Kind = Kind.EXPENSE,
) -> Category | None:
    """Return the category that best matches ``suggestion``.

    Matching is case-insensitive substring containment in either direction.
    Among matches the highest score wins (exact name, then category name
    inside the suggestion, then suggestion inside the name); ties prefer the
    requested ``kind`` and then list order. Without a match, the first
    category of ``kind`` is returned, then the first category of any kind, and
    ``None`` only when ``categories`` is empty.
    """

    text = normalize_name(suggestion or "")
    if text:
        best: tuple[int, int, int] | None = None
        best_cat: Category | None = None
        for pos, cat in enumerate(categories):
            score = _match_score(text, cat.name)
            if score == 0:
                continue
            key = (score, int(cat.kind is kind), -pos)
            if best is None or key > best:
                best, best_cat = key, cat
        if best_cat is not None:
            return best_cat
    for cat in categories:
        if cat.kind is kind:
            return cat
    return categories[0] if categories else None


# ---------------------------
# Stored collection
# ---------------------------


class CategoryBook:
    """The user's categories, written through to the ``categories`` blob."""

    def __init__(self, kv: KeyValueStore, categories: Iterable[Category]) -> None:
        self._kv = kv
        self._items: list[Category] = list(categories)

    @classmethod
    def load(cls, kv: KeyValueStore) -> CategoryBook:
        items = load_collection(
            kv, CATEGORIES_KEY, CategoryRow, CategoryRow.to_domain, default=DEFAULT_CATEGORIES
        )
        return cls(kv, items)

    def all(self, kind: Kind | None = None) -> list[Category]:
        return [c for c in self._items if kind is None or c.kind is kind]

    def get(self, category_id: str) -> Category | None:
        return next((c for c in self._items if c.id == category_id), None)

    def name_of(self, category_id: str, default: str = "Unknown") -> str:
        cat = self.get(category_id)
        return cat.name if cat is not None else default

    def match(self, suggestion: str | None, kind: Kind = Kind.EXPENSE) -> Category | None:
        return match_category(suggestion, self._items, kind)

    def add(
        self,
        name: str,
        *,
        kind: Kind = Kind.EXPENSE,
        icon: str = "MoreHorizontal",
        color: str = "#10b981",
    ) -> tuple[Category, bool]:
        """Create a category unless one with the same name and kind exists.

        Returns ``(category, created)``. Names compare case-insensitively.
        """

        n = normalize_name(name)
        v = validate_name(n)
        if not v.ok:
            raise ValidationFailure(f"Invalid category name: {v.reason}")
        for existing in self._items:
            if existing.kind is kind and existing.name.casefold() == n.casefold():
                return existing, False

        cat = Category(id=new_id(), name=n, icon=icon, color=color, kind=kind)
        self._items.append(cat)
        self._save()
        _logger.info("categories:created %s", fmt_fields(id=cat.id, name=cat.name, kind=kind))
        return cat, True

    def delete(self, category_id: str) -> Category:
        """Remove a category. Transactions referencing it are left as they are."""

        cat = self.get(category_id)
        if cat is None:
            raise UnknownRecord(f"no category with id {category_id!r}")
        self._items = [c for c in self._items if c.id != category_id]
        self._save()
        _logger.info("categories:deleted %s", fmt_fields(id=category_id))
        return cat

    def _save(self) -> None:
        dump_collection(
            self._kv, CATEGORIES_KEY, CategoryRow, CategoryRow.from_domain, self._items
        )


__all__ = [
    "DEFAULT_CATEGORIES",
    "normalize_name",
    "validate_name",
    "NameValidation",
    "match_category",
    "CategoryBook",
]
