"""Public interface for the ``pocket_ledger`` package.

This module exposes the reconciliation core (staging buffer, merge/offset and
split engine, commit resolver) and its models as the stable import surface.
There is no runtime logic here, only symbol re-exports. The CLI, AI parsing
and terminal UI live in their own modules and are not imported eagerly.
"""

from .categories import CategoryBook, match_category
from .commit import CommitResult, Draft, SaveResult, commit_batch, commit_one, save_single
from .errors import (
    InvalidMergeTarget,
    InvalidSplit,
    LedgerError,
    NothingRecognized,
    ParseFailure,
    PersistenceError,
    UnknownStagedItem,
    UnknownTransaction,
    ValidationFailure,
)
from .models import Category, Kind, ParsedTransaction, StagedTransaction, Transaction, Trip
from .reconcile import MergeOutcome, Relation, merge, split
from .staging import RemainderPolicy, StagingBuffer, StagingSession
from .storage import MemoryKeyValueStore, SqlKeyValueStore
from .store import TransactionStore

__all__ = [
    # Engine
    "StagingBuffer",
    "StagingSession",
    "RemainderPolicy",
    "merge",
    "split",
    "MergeOutcome",
    "Relation",
    "commit_batch",
    "commit_one",
    "save_single",
    "CommitResult",
    "SaveResult",
    "Draft",
    # Collections
    "TransactionStore",
    "CategoryBook",
    "match_category",
    "SqlKeyValueStore",
    "MemoryKeyValueStore",
    # Models / types
    "Kind",
    "Transaction",
    "StagedTransaction",
    "Category",
    "Trip",
    "ParsedTransaction",
    # Errors
    "LedgerError",
    "ValidationFailure",
    "InvalidMergeTarget",
    "InvalidSplit",
    "UnknownStagedItem",
    "UnknownTransaction",
    "PersistenceError",
    "ParseFailure",
    "NothingRecognized",
]
