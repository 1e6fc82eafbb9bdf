"""Persistence backends for the tree index.

This module provides:
- TreeEntry: one replicated path register
- TreeStorage: abstract persistence interface
- MemoryTreeStorage: dict-backed storage for development and testing
- SqliteTreeStorage: SQLite-backed storage
"""

from __future__ import annotations

import logging
import sqlite3
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

FILE = "file"
DIR = "dir"


@dataclass(frozen=True)
class TreeEntry:
    """Last-writer-wins register for one logical path.

    Attributes:
        path: Logical path.
        kind: FILE or DIR.
        value: Stored identifier string for files ('' until written).
        clock: Lamport timestamp of the write.
        replica: Id of the replica that made the write (tie breaker).
        deleted: Tombstone flag.
    """

    path: str
    kind: str
    value: str = ""
    clock: int = 0
    replica: str = ""
    deleted: bool = False

    @property
    def version(self) -> tuple[int, str]:
        """Ordering key: higher versions win merges."""
        return (self.clock, self.replica)


class TreeStorage(ABC):
    """Abstract interface for tree index persistence."""

    @abstractmethod
    def load(self) -> dict[str, TreeEntry]:
        """Return every persisted entry keyed by path."""

    @abstractmethod
    def save(self, entries: Iterable[TreeEntry]) -> None:
        """Insert or replace entries."""

    @abstractmethod
    def close(self) -> None:
        """Release resources; persisted state is kept."""

    @abstractmethod
    def destroy(self) -> None:
        """Delete all persisted state."""


class MemoryTreeStorage(TreeStorage):
    """Dict-backed storage.

    A single instance may be shared by successive TreeIndex instances to
    simulate reopening the same database.
    """

    def __init__(self) -> None:
        self._entries: dict[str, TreeEntry] = {}

    def load(self) -> dict[str, TreeEntry]:
        return dict(self._entries)

    def save(self, entries: Iterable[TreeEntry]) -> None:
        for entry in entries:
            self._entries[entry.path] = entry

    def close(self) -> None:
        pass

    def destroy(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class SqliteTreeStorage(TreeStorage):
    """SQLite-backed storage.

    The connection is opened lazily and reopened after close().
    """

    def __init__(self, db_path: Path | str) -> None:
        """Initialize the storage.

        Args:
            db_path: Path to the SQLite database file.
        """
        self._db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        if self._conn is None:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self._db_path))
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS tree_entries (
                    path TEXT PRIMARY KEY,
                    kind TEXT NOT NULL,
                    value TEXT NOT NULL,
                    clock INTEGER NOT NULL,
                    replica TEXT NOT NULL,
                    deleted INTEGER NOT NULL DEFAULT 0
                )
            """)
            self._conn.commit()
            logger.debug("Opened tree storage at %s", self._db_path)
        return self._conn

    def load(self) -> dict[str, TreeEntry]:
        cursor = self._connect().execute(
            "SELECT path, kind, value, clock, replica, deleted FROM tree_entries"
        )
        return {row["path"]: self._row_to_entry(row) for row in cursor.fetchall()}

    def save(self, entries: Iterable[TreeEntry]) -> None:
        conn = self._connect()
        conn.executemany(
            """
            INSERT OR REPLACE INTO tree_entries (path, kind, value, clock, replica, deleted)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            [
                (e.path, e.kind, e.value, e.clock, e.replica, int(e.deleted))
                for e in entries
            ],
        )
        conn.commit()

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def destroy(self) -> None:
        self.close()
        if self._db_path.exists():
            self._db_path.unlink()
        logger.info("Destroyed tree storage at %s", self._db_path)

    def _row_to_entry(self, row: sqlite3.Row) -> TreeEntry:
        return TreeEntry(
            path=row["path"],
            kind=row["kind"],
            value=row["value"],
            clock=row["clock"],
            replica=row["replica"],
            deleted=bool(row["deleted"]),
        )
