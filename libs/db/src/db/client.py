"""Engine and session helpers for the pocket_ledger database.

The schema is one table, ``kv_entries`` (:class:`db.models.ledger.KvEntry`):
a row per collection key (``transactions``, ``categories``, ``trips``) holding
that collection's JSON array. The table is created the first time an engine
is built for a URL, so a fresh SQLite file is usable straight away.

Engines are kept per URL. The CLI's ``--database-url`` and tests pointing at
their own ``tmp_path`` files can therefore share one process.

Usage
-----
from db.client import session_scope
from db.models.ledger import KvEntry

with session_scope(database_url=url) as s:
    row = s.get(KvEntry, "transactions")
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .models.ledger import Base

_ENGINES: dict[str, Engine] = {}
_SESSION_MAKERS: dict[str, sessionmaker[Session]] = {}


def _database_url(override: str | None = None) -> str:
    url = override or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is not set; cannot open the ledger database")
    return url


def get_engine(*, database_url: str | None = None) -> Engine:
    """Return the engine for ``database_url``, creating it and ``kv_entries`` on first use."""

    url = _database_url(database_url)
    engine = _ENGINES.get(url)
    if engine is not None:
        return engine
    engine = create_engine(url, pool_pre_ping=True)
    try:
        Base.metadata.create_all(bind=engine)
    except Exception:
        # not cached; the next call retries
        engine.dispose()
        raise
    _ENGINES[url] = engine
    _SESSION_MAKERS[url] = sessionmaker(bind=engine, expire_on_commit=False, class_=Session)
    return engine


def reset_engine() -> None:
    """Dispose of every cached engine."""

    for engine in _ENGINES.values():
        engine.dispose()
    _ENGINES.clear()
    _SESSION_MAKERS.clear()


def get_session(*, database_url: str | None = None) -> Session:
    """Return a new session bound to the engine for ``database_url``."""

    url = _database_url(database_url)
    get_engine(database_url=url)
    return _SESSION_MAKERS[url]()


@contextmanager
def session_scope(*, database_url: str | None = None) -> Iterator[Session]:
    """Commit on success, roll back on any error, always close."""

    session = get_session(database_url=database_url)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


__all__ = [
    "get_engine",
    "get_session",
    "reset_engine",
    "session_scope",
]
