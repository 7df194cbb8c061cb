"""Shared SQLAlchemy models registry for the workspace database.

Currently holds the key-value table used by ``pocket_ledger.storage``.
"""

from .ledger import Base, KvEntry

__all__ = [
    "Base",
    "KvEntry",
]
