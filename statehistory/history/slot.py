"""Durable slots: the single persisted location backing the history.

A slot holds one opaque text document and is always read and written
wholesale.  Implementations raise PersistenceError on I/O failure; the
HistoryStore decides what to do about it.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Protocol

from statehistory.history.errors import PersistenceError


class DurableSlot(Protocol):
    """One named key in local persistent storage."""

    @property
    def name(self) -> str: ...

    def read(self) -> str | None:
        """Return the stored document, or None if nothing was ever written."""
        ...

    def write(self, data: str) -> None:
        """Replace the stored document."""
        ...


class MemorySlot:
    """Process-local slot used when persistence is disabled and in tests."""

    def __init__(self, name: str = "rollback_history", initial: str | None = None) -> None:
        self._name = name
        self._data = initial

    @property
    def name(self) -> str:
        return self._name

    def read(self) -> str | None:
        return self._data

    def write(self, data: str) -> None:
        self._data = data


class FileSlot:
    """Stores the document at ``<directory>/<key>.json``.

    Writes go to a temporary file in the same directory which is then
    renamed over the target, so a crash mid-write leaves the previous
    document intact.
    """

    def __init__(self, directory: str | Path, key: str = "rollback_history") -> None:
        self._directory = Path(directory).expanduser()
        self._key = key

    @property
    def name(self) -> str:
        return self._key

    @property
    def path(self) -> Path:
        return self._directory / f"{self._key}.json"

    def read(self) -> str | None:
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            raise PersistenceError(f"cannot read {self.path}: {exc}") from exc

    def write(self, data: str) -> None:
        tmp_name = ""
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self._directory, prefix=f".{self._key}.", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(data)
            os.replace(tmp_name, self.path)
        except OSError as exc:
            if tmp_name:
                Path(tmp_name).unlink(missing_ok=True)
            raise PersistenceError(f"cannot write {self.path}: {exc}") from exc
