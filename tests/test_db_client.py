from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy import inspect
from sqlalchemy.exc import OperationalError

from db.client import get_engine, session_scope
from db.models.ledger import KvEntry


def test_engines_are_kept_per_url_with_the_kv_table(tmp_path: Path):
    first = f"sqlite+pysqlite:///{tmp_path / 'a.db'}"
    second = f"sqlite+pysqlite:///{tmp_path / 'b.db'}"

    assert get_engine(database_url=first) is get_engine(database_url=first)
    assert get_engine(database_url=second) is not get_engine(database_url=first)
    assert "kv_entries" in inspect(get_engine(database_url=second)).get_table_names()

    with session_scope(database_url=first) as s:
        s.add(KvEntry(key="trips", value="[]"))
    with session_scope(database_url=second) as s:
        assert s.get(KvEntry, "trips") is None
    with session_scope(database_url=first) as s:
        assert s.get(KvEntry, "trips").value == "[]"


def test_failed_schema_creation_is_not_cached(tmp_path: Path):
    url = f"sqlite+pysqlite:///{tmp_path / 'later' / 'ledger.db'}"
    with pytest.raises(OperationalError):
        get_engine(database_url=url)

    (tmp_path / "later").mkdir()
    assert "kv_entries" in inspect(get_engine(database_url=url)).get_table_names()


def test_session_scope_rolls_back_on_error(tmp_path: Path):
    url = f"sqlite+pysqlite:///{tmp_path / 'ledger.db'}"
    with pytest.raises(ValueError):
        with session_scope(database_url=url) as s:
            s.add(KvEntry(key="categories", value="[]"))
            s.flush()
            raise ValueError("boom")
    with session_scope(database_url=url) as s:
        assert s.get(KvEntry, "categories") is None


def test_missing_url_is_an_error():
    with pytest.raises(RuntimeError):
        get_engine()
