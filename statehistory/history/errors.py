"""Exception hierarchy for the history subsystem."""

from __future__ import annotations


class HistoryError(Exception):
    """Base class for every error raised by statehistory."""


class SnapshotError(HistoryError):
    """A snapshot could not be serialised (cycle, unsupported type, NaN)."""

    def __init__(self, which: str, cause: Exception) -> None:
        super().__init__(f"{which} is not serialisable: {cause}")
        self.which = which
        self.cause = cause


class PersistenceError(HistoryError):
    """The durable slot could not be read or written.

    Raised by slot implementations; HistoryStore contains it and logs
    instead of propagating.
    """


class UnauthenticatedError(HistoryError):
    """save_state was called with no bound actor under the ``error`` policy."""
