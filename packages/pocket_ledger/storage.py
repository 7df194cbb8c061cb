# ruff: noqa: I001
"""Key-value persistence for pocket_ledger.

Each collection the app keeps (``transactions``, ``categories``, ``trips``) is
stored as one JSON array under its own key, the same shape browser local
storage would hold. Two backends share the :class:`KeyValueStore` interface:

- :class:`SqlKeyValueStore`: rows in the ``kv_entries`` table owned by
  ``libs/db``, written through ``db.client.session_scope``.
- :class:`MemoryKeyValueStore`: a dict, for tests and throwaway sessions.

Reads and writes raise :class:`~pocket_ledger.errors.PersistenceError` on
any backend, serialization, or validation failure; nothing else escapes.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Iterable, Sequence
from pathlib import Path
from typing import Any, Protocol, TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from db.client import session_scope
from db.models.ledger import KvEntry
from .errors import PersistenceError
from .logging_setup import fmt_fields, get_logger

TRANSACTIONS_KEY = "transactions"
CATEGORIES_KEY = "categories"
TRIPS_KEY = "trips"

_logger = get_logger("pocket_ledger.storage")

RowT = TypeVar("RowT", bound=BaseModel)
DomainT = TypeVar("DomainT")


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...


def default_database_url() -> str:
    """Return ``DATABASE_URL`` or a SQLite file in the working directory."""

    url = os.getenv("DATABASE_URL")
    if url and url.strip():
        return url.strip()
    return f"sqlite+pysqlite:///{(Path.cwd() / 'pocket_ledger.db').resolve()}"


class SqlKeyValueStore:
    """Key-value store backed by the ``kv_entries`` table."""

    def __init__(self, database_url: str | None = None) -> None:
        self.database_url = database_url or default_database_url()

    def get(self, key: str) -> str | None:
        try:
            with session_scope(database_url=self.database_url) as session:
                return session.execute(
                    select(KvEntry.value).where(KvEntry.key == key)
                ).scalar_one_or_none()
        except SQLAlchemyError as e:
            _logger.error("storage:read_failed %s", fmt_fields(key=key, error=type(e).__name__))
            raise PersistenceError(f"failed to read {key!r}: {e}") from e

    def set(self, key: str, value: str) -> None:
        try:
            with session_scope(database_url=self.database_url) as session:
                row = session.get(KvEntry, key)
                if row is None:
                    session.add(KvEntry(key=key, value=value))
                else:
                    row.value = value
        except SQLAlchemyError as e:
            _logger.error("storage:write_failed %s", fmt_fields(key=key, error=type(e).__name__))
            raise PersistenceError(f"failed to write {key!r}: {e}") from e


class MemoryKeyValueStore:
    """Dict-backed store; values are kept as the serialized text."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value


# ----------------------------------------------------------------------------
# Typed blob helpers
# ----------------------------------------------------------------------------


def load_collection(
    kv: KeyValueStore,
    key: str,
    row_model: type[RowT],
    to_domain: Callable[[RowT], DomainT],
    *,
    default: Sequence[DomainT] = (),
) -> list[DomainT]:
    """Decode the JSON array under ``key`` into domain records.

    A missing key yields ``default``. Malformed JSON or rows that fail
    validation raise :class:`PersistenceError` rather than being skipped, so a
    corrupt blob is never silently overwritten by a partial copy.
    """

    raw = kv.get(key)
    if raw is None:
        return list(default)
    adapter = TypeAdapter(list[row_model])  # type: ignore[valid-type]
    try:
        rows = adapter.validate_json(raw)
        return [to_domain(r) for r in rows]
    except (ValidationError, ValueError) as e:
        _logger.error("storage:decode_failed %s", fmt_fields(key=key, error=type(e).__name__))
        raise PersistenceError(f"stored {key!r} is not a valid list: {e}") from e


def dump_collection(
    kv: KeyValueStore,
    key: str,
    row_model: type[RowT],
    from_domain: Callable[[Any], RowT],
    records: Iterable[Any],
) -> None:
    """Serialize ``records`` as a JSON array and write it under ``key``."""

    adapter = TypeAdapter(list[row_model])  # type: ignore[valid-type]
    try:
        text = adapter.dump_json([from_domain(r) for r in records]).decode("utf-8")
    except (ValidationError, ValueError, TypeError) as e:
        raise PersistenceError(f"failed to serialize {key!r}: {e}") from e
    kv.set(key, text)
    _logger.debug("storage:write %s", fmt_fields(key=key, bytes=len(text)))


__all__ = [
    "TRANSACTIONS_KEY",
    "CATEGORIES_KEY",
    "TRIPS_KEY",
    "KeyValueStore",
    "SqlKeyValueStore",
    "MemoryKeyValueStore",
    "default_database_url",
    "load_collection",
    "dump_collection",
]
