"""Persistence backends for the fields that survive a session.

Defines the `PersistenceBackend` protocol, a `JSONFileStore` that keeps the
record under one namespaced key in a JSON file, and an in-memory
`MemoryStore` for tests and embedding hosts.
"""

from __future__ import annotations

from collections.abc import Mapping
import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    import os

log = logging.getLogger(__name__)

DEFAULT_KEY = "agent_prompt_state"


class PersistenceBackend(Protocol):
    """Protocol for loading and saving the persistent record."""

    def load(self) -> Mapping[str, Any] | None:
        """Return the saved record, or None when nothing usable is stored."""
        ...

    def save(self, record: Mapping[str, Any]) -> None:
        """Replace the saved record."""
        ...


class JSONFileStore:
    """Single JSON file mapping namespace key -> record.

    Other keys in the file are left untouched. Writes go to a temp file that
    is renamed into place. A corrupted entry is removed on load.
    """

    def __init__(
        self, path: str | os.PathLike[str], key: str = DEFAULT_KEY
    ) -> None:
        """Initialize the store pointing at a JSON file path."""
        self._path = Path(path)
        self._key = key

    @property
    def path(self) -> Path:
        """Location of the backing file."""
        return self._path

    def load(self) -> dict[str, Any] | None:
        """Load the record under this store's key."""
        data = self._read_all()
        if data is None:
            return None
        entry = data.get(self._key)
        if entry is None:
            return None
        if not isinstance(entry, dict):
            log.warning("Discarding malformed record under %r in %s", self._key, self._path)
            del data[self._key]
            self._write_all(data)
            return None
        return entry

    def save(self, record: Mapping[str, Any]) -> None:
        """Store ``record`` under this store's key."""
        data = self._read_all() or {}
        data[self._key] = dict(record)
        self._write_all(data)

    def clear(self) -> None:
        """Remove this store's key from the file."""
        data = self._read_all()
        if data and self._key in data:
            del data[self._key]
            self._write_all(data)

    def _read_all(self) -> dict[str, Any] | None:
        """Read the whole file; an unreadable file is removed and yields None."""
        if not self._path.exists():
            return None
        try:
            result = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            log.warning("Removing unreadable state file %s: %s", self._path, e)
            self._path.unlink(missing_ok=True)
            return None
        if not isinstance(result, dict):
            log.warning("Removing state file %s with non-object root", self._path)
            self._path.unlink(missing_ok=True)
            return None
        return result

    def _write_all(self, data: dict[str, Any]) -> None:
        """Persist data atomically via temp file rename."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
        tmp.replace(self._path)


class MemoryStore:
    """Keeps the record in memory; ``saves`` counts calls to ``save``."""

    def __init__(self, record: Mapping[str, Any] | None = None) -> None:
        self.record: dict[str, Any] | None = dict(record) if record is not None else None
        self.saves = 0

    def load(self) -> dict[str, Any] | None:
        return dict(self.record) if self.record is not None else None

    def save(self, record: Mapping[str, Any]) -> None:
        self.record = dict(record)
        self.saves += 1
