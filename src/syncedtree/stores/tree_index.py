"""Replicated tree index.

This module provides:
- TreeIndex: logical path -> entry map with filesystem-style queries and
  mutators, persisted through a TreeStorage
- ReplicationHub: in-process peer network that replicates index writes

Each path is a last-writer-wins register ordered by (Lamport clock, replica
id). Removals leave tombstones so they replicate like any other write. A path
only exists when its own entry and every ancestor entry are live.

Architecture:
    TreeIndex.mkdir/mk/write/rm/rmdir ─► TreeStorage.save
                                      └─► ReplicationHub.broadcast ─► peer.merge ─► peer.replicated
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from syncedtree.core.paths import ROOT_PATH, base_name, join_path, name_sort_key, parent_path
from syncedtree.core.signals import Signal
from syncedtree.core.types import (
    PathAlreadyExistsError,
    PathError,
    PathNotADirectoryError,
    PathNotAFileError,
    PathNotFoundError,
    SyncedTreeError,
)
from syncedtree.stores.tree_storage import DIR, FILE, MemoryTreeStorage, TreeEntry

if TYPE_CHECKING:
    from collections.abc import Iterable

    from syncedtree.stores.tree_storage import TreeStorage

logger = logging.getLogger(__name__)


class TreeIndexClosedError(SyncedTreeError):
    """Raised when mutating a closed or dropped index."""


class TreeIndex:
    """Replicated logical directory tree.

    Usage:
        hub = ReplicationHub()
        index = TreeIndex("shared", storage=SqliteTreeStorage(db_path), hub=hub)
        await index.load()
        await index.mkdir(ROOT_PATH, "docs")
        index.content("/r/docs")  # "dir"
    """

    def __init__(
        self,
        name: str = "syncedtree",
        storage: TreeStorage | None = None,
        replica_id: str | None = None,
        hub: ReplicationHub | None = None,
    ) -> None:
        """Initialize the index.

        Args:
            name: Name of the shared tree; part of the address.
            storage: Persistence backend (in-memory by default).
            replica_id: Unique id of this replica (random by default).
            hub: Optional replication hub to join.
        """
        self.name = name
        self.replica_id = replica_id or uuid.uuid4().hex
        self._storage = storage if storage is not None else MemoryTreeStorage()
        self._hub = hub
        self._entries: dict[str, TreeEntry] = {}
        self._clock = 0
        self._closed = False
        self.replicated = Signal("replicated")
        self._reset()

        if hub is not None:
            hub.join(self)

    @property
    def address(self) -> str:
        """Network/identity handle shared by every replica of this tree."""
        return f"/syncedtree/{self.name}"

    @property
    def closed(self) -> bool:
        return self._closed

    def _reset(self) -> None:
        self._entries = {ROOT_PATH: TreeEntry(path=ROOT_PATH, kind=DIR)}
        self._clock = 0

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    join_path = staticmethod(join_path)

    def exists(self, path: str) -> bool:
        entry = self._entries.get(path)
        if entry is None or entry.deleted:
            return False
        if path == ROOT_PATH:
            return True
        parent = parent_path(path)
        return bool(parent) and self.exists(parent)

    def content(self, path: str) -> str | None:
        """Return "file", "dir", or None when path does not exist."""
        if not self.exists(path):
            return None
        return self._entries[path].kind

    def read(self, path: str) -> str | None:
        """Return the stored identifier string of a file (None for non-files)."""
        if self.content(path) != FILE:
            return None
        return self._entries[path].value

    def tree(self, path: str) -> list[str]:
        """Return every live descendant path of path, sorted."""
        prefix = f"{path}/"
        return sorted(p for p in self._entries if p.startswith(prefix) and self.exists(p))

    def ls(self, path: str) -> list[str]:
        """Return the direct children paths of path, sorted by name."""
        prefix = f"{path}/"
        children = [
            p for p in self._entries
            if p.startswith(prefix) and "/" not in p[len(prefix):] and self.exists(p)
        ]
        return sorted(children, key=lambda p: name_sort_key(base_name(p)))

    def snapshot(self) -> list[TreeEntry]:
        """Return every entry, tombstones included, for replication."""
        return list(self._entries.values())

    # -------------------------------------------------------------------------
    # Mutators
    # -------------------------------------------------------------------------

    async def mkdir(self, parent: str, name: str) -> str:
        """Create a directory. Returns its path."""
        return self._create(parent, name, DIR)

    async def mk(self, parent: str, name: str) -> str:
        """Create an empty file. Returns its path."""
        return self._create(parent, name, FILE)

    async def write(self, path: str, value: str) -> None:
        """Store an identifier string in an existing file."""
        self._check_open()
        self._require_kind(path, FILE)
        self._commit([self._stamp(path, FILE, value=value)])

    async def rm(self, path: str) -> None:
        """Remove a file."""
        self._check_open()
        self._require_kind(path, FILE)
        self._commit([self._stamp(path, FILE, deleted=True)])

    async def rmdir(self, path: str) -> None:
        """Remove a directory and everything under it."""
        self._check_open()
        self._require_kind(path, DIR)
        if path == ROOT_PATH:
            raise PathError(path)
        removed = [
            self._stamp(p, self._entries[p].kind, deleted=True)
            for p in [*self.tree(path), path]
        ]
        self._commit(removed)

    def _create(self, parent: str, name: str, kind: str) -> str:
        self._check_open()
        self._require_kind(parent, DIR)
        path = join_path(parent, name)
        if not name or "/" in name:
            raise PathError(path)
        if self.exists(path):
            raise PathAlreadyExistsError(path)
        self._commit([self._stamp(path, kind)])
        return path

    def _require_kind(self, path: str, kind: str) -> None:
        actual = self.content(path)
        if actual is None:
            raise PathNotFoundError(path)
        if actual != kind:
            raise PathNotADirectoryError(path) if kind == DIR else PathNotAFileError(path)

    def _check_open(self) -> None:
        if self._closed:
            raise TreeIndexClosedError(f"Tree index {self.address} is closed")

    def _stamp(self, path: str, kind: str, value: str = "", deleted: bool = False) -> TreeEntry:
        self._clock += 1
        return TreeEntry(
            path=path,
            kind=kind,
            value=value,
            clock=self._clock,
            replica=self.replica_id,
            deleted=deleted,
        )

    def _commit(self, entries: list[TreeEntry]) -> None:
        for entry in entries:
            self._entries[entry.path] = entry
        self._storage.save(entries)
        logger.debug("Committed %d entr(ies) on %s", len(entries), self.replica_id)
        if self._hub is not None:
            self._hub.broadcast(self, entries)

    # -------------------------------------------------------------------------
    # Replication
    # -------------------------------------------------------------------------

    def _apply(self, entries: Iterable[TreeEntry]) -> list[TreeEntry]:
        changed = []
        for entry in entries:
            self._clock = max(self._clock, entry.clock)
            current = self._entries.get(entry.path)
            if current is None or entry.version > current.version:
                self._entries[entry.path] = entry
                changed.append(entry)
        return changed

    def merge(self, entries: Iterable[TreeEntry]) -> bool:
        """Merge remote entries, emitting replicated if anything changed.

        Returns:
            True if local state changed.
        """
        if self._closed:
            return False
        changed = self._apply(entries)
        if not changed:
            return False
        self._storage.save(changed)
        logger.debug("Merged %d remote entr(ies) into %s", len(changed), self.replica_id)
        self.replicated.emit()
        return True

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def load(self) -> None:
        """Load persisted entries, then catch up with connected peers."""
        self._apply(self._storage.load())
        if self._hub is not None:
            if self not in self._hub.peers:
                self._hub.join(self)
            changed = self._apply(self._hub.snapshot(exclude=self))
            if changed:
                self._storage.save(changed)
        self._closed = False
        logger.info("Loaded tree index %s (%d entries)", self.address, len(self._entries))

    async def close(self) -> None:
        """Leave replication and release storage, keeping persisted state."""
        if self._hub is not None:
            self._hub.leave(self)
        self._storage.close()
        self._closed = True
        logger.info("Closed tree index %s", self.address)

    async def drop(self) -> None:
        """Leave replication and delete all persisted state."""
        if self._hub is not None:
            self._hub.leave(self)
        self._storage.destroy()
        self._reset()
        self._closed = True
        logger.info("Dropped tree index %s", self.address)


class ReplicationHub:
    """In-process replication between TreeIndex peers.

    Every committed write is broadcast to all other joined peers, which merge
    it and emit their replicated signal.
    """

    def __init__(self) -> None:
        self._peers: list[TreeIndex] = []

    @property
    def peers(self) -> tuple[TreeIndex, ...]:
        return tuple(self._peers)

    def join(self, index: TreeIndex) -> None:
        if index not in self._peers:
            self._peers.append(index)
            logger.debug("Replica %s joined", index.replica_id)

    def leave(self, index: TreeIndex) -> None:
        if index in self._peers:
            self._peers.remove(index)
            logger.debug("Replica %s left", index.replica_id)

    def broadcast(self, sender: TreeIndex, entries: Iterable[TreeEntry]) -> None:
        entries = list(entries)
        for peer in list(self._peers):
            if peer is not sender:
                peer.merge(entries)

    def snapshot(self, exclude: TreeIndex | None = None) -> list[TreeEntry]:
        """Collect the entries of every peer except exclude."""
        entries: list[TreeEntry] = []
        for peer in self._peers:
            if peer is not exclude:
                entries.extend(peer.snapshot())
        return entries

    def sync(self) -> None:
        """Exchange full state between all peers (e.g. after a partition)."""
        for peer in list(self._peers):
            peer.merge(self.snapshot(exclude=peer))
