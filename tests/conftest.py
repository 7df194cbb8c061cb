"""Pytest configuration for test isolation.

The workspace is not necessarily installed when tests run, so the source
roots (``packages/`` for ``pocket_ledger`` and ``libs/db/src`` for ``db``)
and the repo root (for ``tests.helpers``) are put on ``sys.path`` here.

``db.client`` keeps one process-wide engine bound to the first URL it sees.
Each test gets a fresh engine and a clean environment so a SQLite file from
one test never leaks into the next.
"""

from __future__ import annotations

import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
sys.path[:0] = [
    p
    for p in (str(_ROOT / "packages"), str(_ROOT / "libs" / "db" / "src"), str(_ROOT))
    if p not in sys.path
]

from db.client import reset_engine  # noqa: E402


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for name in (
        "DATABASE_URL",
        "OPENAI_API_KEY",
        "POCKET_LEDGER_MODEL",
        "POCKET_LEDGER_LOG_LEVEL",
        "POCKET_LEDGER_REMAINDER_POLICY",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_engine()
    yield
    reset_engine()
