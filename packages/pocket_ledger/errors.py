"""Exception hierarchy for ``pocket_ledger``.

Every failure the core reports derives from :class:`LedgerError` so entry
points can catch one type at their boundary. Operations raise before mutating
any state unless the class documents otherwise.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for all reportable ledger failures."""


class ValidationFailure(LedgerError, ValueError):
    """Input rejected before any mutation (non-positive amount, missing target...).

    ``problems`` carries one message per offending item when the failure
    aggregates several of them.
    """

    def __init__(self, message: str, problems: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.problems = problems


class InvalidMergeTarget(LedgerError):
    """Self-merge, or a source/target reference absent from the candidate pool."""


class InvalidSplit(LedgerError):
    """Split requested on an item that cannot be reverted."""


class UnknownRecord(LedgerError, KeyError):
    """An id that is not (or no longer) present in its collection."""

    def __str__(self) -> str:  # KeyError quotes its argument; keep messages plain
        return str(self.args[0]) if self.args else ""


class UnknownStagedItem(UnknownRecord):
    """A staging id missing from the buffer."""


class UnknownTransaction(UnknownRecord):
    """A persisted transaction id missing from the store."""


class PersistenceError(LedgerError):
    """The key-value store could not be read or written.

    For single-record mutations the in-memory state already reflects the change
    when this is raised; the caller should warn that durability is not
    guaranteed.
    """


class ParseFailure(LedgerError):
    """The AI parsing collaborator failed (transport, auth, unusable output)."""


class NothingRecognized(LedgerError):
    """The AI parsing collaborator returned no usable transactions."""


__all__ = [
    "LedgerError",
    "ValidationFailure",
    "InvalidMergeTarget",
    "InvalidSplit",
    "UnknownRecord",
    "UnknownStagedItem",
    "UnknownTransaction",
    "PersistenceError",
    "ParseFailure",
    "NothingRecognized",
]
