"""Synchronized tree engine.

This module provides:
- TreeSignals: the engine's named signals
- SyncedTree: mutation API, lifecycle, recompute pipeline and CID
  materialization over a TreeIndex and a BlobStore

Architecture:
    mkdir/mkfile/mutate/remove/upload ─► TreeIndex ─► signal ─┐
    TreeIndex.replicated ─────────────────────────────────────┴► RecomputeQueue
                                                                      │
    root_cid ◄── BlobStore.add(manifest entries) ◄── _get_cid(ROOT_PATH) ◄┘

Mutations are not serialized with recomputes: a recompute may observe part of
a burst of mutations, and the next recompute picks up the rest.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import TYPE_CHECKING, Any

from syncedtree.core.cid import Cid
from syncedtree.core.config import ADD_CONFIG, TreeOptions
from syncedtree.core.paths import ROOT_PATH, base_name, parent_path
from syncedtree.core.signals import Signal, Subscriptions
from syncedtree.core.types import (
    EngineNotStartedError,
    PathAlreadyExistsError,
    PathNotADirectoryError,
    PathNotAFileError,
    PathNotFoundError,
    RunState,
)
from syncedtree.stores.blobstore import AddEntry, AddResult
from syncedtree.sync.queue import RecomputeQueue

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator, Mapping

    from syncedtree.core.cid import CidCodec
    from syncedtree.stores.blobstore import BlobStore
    from syncedtree.stores.tree_index import TreeIndex

logger = logging.getLogger(__name__)

# Engine signals that trigger a recompute of the root identifier
UPDATE_SIGNALS = ("upload", "mkdir", "mkfile", "mutate", "remove")


@dataclass
class TreeSignals:
    """Signals emitted by a SyncedTree.

    start/stop carry no arguments; the mutation signals carry no arguments;
    recompute_failed carries the path whose identifier could not be computed.
    """

    start: Signal = field(default_factory=lambda: Signal("start"))
    stop: Signal = field(default_factory=lambda: Signal("stop"))
    upload: Signal = field(default_factory=lambda: Signal("upload"))
    mkdir: Signal = field(default_factory=lambda: Signal("mkdir"))
    mkfile: Signal = field(default_factory=lambda: Signal("mkfile"))
    mutate: Signal = field(default_factory=lambda: Signal("mutate"))
    remove: Signal = field(default_factory=lambda: Signal("remove"))
    recompute_failed: Signal = field(default_factory=lambda: Signal("recompute_failed"))


async def _last(results: AsyncIterator[AddResult]) -> AddResult | None:
    last = None
    async for result in results:
        last = result
    return last


class SyncedTree:
    """A virtual directory tree materialized into a single root identifier.

    Usage:
        tree = await SyncedTree.create(index, store)
        await tree.mkdir(ROOT_PATH, "docs")
        await tree.wait_idle()
        tree.root_cid      # identifier of the whole tree
        await tree.stop()
    """

    def __init__(
        self,
        index: TreeIndex,
        store: BlobStore,
        options: TreeOptions | Mapping[str, Any] | None = None,
        codec: CidCodec = Cid,
    ) -> None:
        """Initialize the engine (use SyncedTree.create to also start it).

        Args:
            index: Replicated tree index holding the logical tree.
            store: Content-addressed blob store.
            options: Engine options (TreeOptions or a mapping).
            codec: Capability used to parse and validate identifiers.
        """
        self._index = index
        self._store = store
        self.options = TreeOptions.coerce(options)
        self._codec = codec
        self.events = TreeSignals()

        self.address = index.address

        self.fs = SimpleNamespace(
            join_path=index.join_path,
            exists=index.exists,
            content=index.content,
            read=index.read,
            tree=index.tree,
            ls=index.ls,
        )

        self._update_queue = RecomputeQueue()
        self._subscriptions = Subscriptions()
        # Serializes start() and stop()
        self._lifecycle_lock = asyncio.Lock()

        self._empty_file: AddResult | None = None
        self._root_cid: Cid | None = None
        self._state = RunState.NOT_STARTED

    @classmethod
    async def create(
        cls,
        index: TreeIndex,
        store: BlobStore,
        options: TreeOptions | Mapping[str, Any] | None = None,
        codec: CidCodec = Cid,
    ) -> SyncedTree:
        """Build an engine and start it when options.auto_start is set."""
        tree = cls(index, store, options, codec)
        if tree.options.auto_start:
            await tree.start()
        return tree

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def running(self) -> bool:
        return self._state is RunState.RUNNING

    @property
    def root_cid(self) -> Cid | None:
        """Identifier of the whole tree as of the last finished recompute."""
        return self._root_cid

    @property
    def empty_cid(self) -> Cid | None:
        """Identifier of zero-length content (known once started)."""
        return self._empty_file.cid if self._empty_file else None

    async def __aenter__(self) -> SyncedTree:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Start the engine. No-op unless the engine was never started."""
        async with self._lifecycle_lock:
            if self._state is RunState.NOT_STARTED:
                await self._start()

    async def _start(self) -> None:
        self._empty_file = await _last(self._store.add(b""))
        if self.options.load:
            await self._index.load()
        self._on_db_update()
        self._subscriptions.add(self._index.replicated, self._on_db_update)
        for name in UPDATE_SIGNALS:
            self._subscriptions.add(getattr(self.events, name), self._on_db_update)
        self._state = RunState.RUNNING
        logger.info("SyncedTree started (address=%s)", self.address)
        self.events.start.emit()

    async def stop(self, drop: bool = False) -> None:
        """Stop the engine. No-op unless running.

        Runs the on_stop hook, unsubscribes, waits for pending recomputes,
        then drops (drop=True) or closes the index.
        """
        async with self._lifecycle_lock:
            if self._state is RunState.RUNNING:
                await self._stop(drop)

    async def _stop(self, drop: bool) -> None:
        if self.options.on_stop is not None:
            result = self.options.on_stop()
            if inspect.isawaitable(result):
                await result
        self._subscriptions.clear()
        await self._update_queue.on_idle()
        if drop:
            await self._index.drop()
        else:
            await self._index.close()
        self._state = RunState.STOPPED
        logger.info("SyncedTree stopped (address=%s, drop=%s)", self.address, drop)
        self.events.stop.emit()

    async def wait_idle(self) -> None:
        """Wait until no recompute is pending or running."""
        await self._update_queue.on_idle()

    def _on_db_update(self, *_args: Any) -> None:
        if not self._update_queue.pending:
            self._update_queue.submit(self._recompute_root)

    async def _recompute_root(self) -> None:
        cid = await self._get_cid()
        if cid is None:
            logger.warning("Falling back to the empty identifier for %s", ROOT_PATH)
            cid = self._empty_cid()
        self._root_cid = cid
        logger.debug("Root identifier is now %s", cid)

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def upload(self, path: str, source: Any) -> None:
        """Add source to the blob store and mirror the result under path.

        Raises:
            PathNotADirectoryError: If path is not a directory.
        """
        if self.fs.content(path) != "dir":
            raise PathNotADirectoryError(path)

        try:
            results = [result async for result in self._store.add(source, **ADD_CONFIG)]
            # Start from the uploaded root so parents exist before children
            for result in reversed(results):
                await self._add_to_index(path, result)
            self.events.upload.emit()
        except Exception:
            logger.exception("SyncedTree.upload failed: path=%r source=%r", path, source)
            raise

    async def _add_to_index(self, path: str, result: AddResult) -> None:
        fs_path = f"{path}/{result.path}" if result.path else path
        parent, name = parent_path(fs_path), base_name(fs_path)

        if result.is_directory:
            if not self.fs.exists(fs_path):
                await self._index.mkdir(parent, name)
            return

        if not self.fs.exists(fs_path):
            await self._index.mk(parent, name)
        await self._index.write(self.fs.join_path(parent, name), str(result.cid))

    async def mkdir(self, path: str, name: str) -> None:
        """Create directory name under path."""
        self._require_new_child(path, name)
        await self._index.mkdir(path, name)
        self.events.mkdir.emit()

    async def mkfile(self, path: str, name: str) -> None:
        """Create empty file name under path."""
        self._require_new_child(path, name)
        await self._index.mk(path, name)
        self.events.mkfile.emit()

    async def mutate(self, path: str, cid: Cid | str) -> None:
        """Point the file at path to cid.

        Raises:
            PathNotFoundError: If path does not exist.
            PathNotAFileError: If path is not a file.
            InvalidIdentifierError: If cid is not a valid identifier.
        """
        if not self.fs.exists(path):
            raise PathNotFoundError(path)
        if self.fs.content(path) != "file":
            raise PathNotAFileError(path)
        parsed = self._codec.parse(str(cid))
        await self._index.write(path, str(parsed))
        self.events.mutate.emit()

    async def read(self, path: str) -> Cid | None:
        """Return the materialized identifier of the subtree at path.

        Files resolve to their stored identifier; directories to a freshly
        computed manifest identifier. Returns None if the computation failed,
        except for the root, which falls back to the empty identifier.

        Raises:
            EngineNotStartedError: If the engine was never started.
            PathNotFoundError: If path does not exist.
        """
        empty = self._empty_cid()
        if not self.fs.exists(path):
            raise PathNotFoundError(path)
        cid = await self._get_cid(path)
        if cid is None and path == ROOT_PATH:
            return empty
        return cid

    async def remove(self, path: str) -> None:
        """Remove the file or directory (recursively) at path."""
        if not self.fs.exists(path):
            raise PathNotFoundError(path)
        if self.fs.content(path) == "dir":
            await self._index.rmdir(path)
        else:
            await self._index.rm(path)
        self.events.remove.emit()

    def _require_new_child(self, path: str, name: str) -> None:
        if not self.fs.exists(path):
            raise PathNotFoundError(path)
        target = self.fs.join_path(path, name)
        if self.fs.exists(target):
            raise PathAlreadyExistsError(target)

    # -------------------------------------------------------------------------
    # CID materialization
    # -------------------------------------------------------------------------

    def _empty_cid(self) -> Cid:
        if self._empty_file is None:
            raise EngineNotStartedError(f"SyncedTree {self.address} was never started")
        return self._empty_file.cid

    def _file_cid(self, value: str | None) -> Cid:
        """Parse a stored value, mapping anything invalid to the empty identifier."""
        try:
            return self._codec.parse(value)  # type: ignore[arg-type]
        except ValueError:
            return self._empty_cid()

    def _manifest_entries(self, path: str) -> Iterator[AddEntry]:
        """Blob-store entries for path and its descendants, relative to path's parent."""
        offset = path.rfind("/")
        for p in [path, *self.fs.tree(path)]:
            content = (
                self._store.cat(self._file_cid(self.fs.read(p)))
                if self.fs.content(p) == "file"
                else None
            )
            yield AddEntry(path=p[offset:], content=content)

    async def _get_cid(self, path: str = ROOT_PATH) -> Cid | None:
        if not self.fs.exists(path):
            raise PathNotFoundError(path)

        try:
            if self.fs.content(path) == "file":
                return self._file_cid(self.fs.read(path))
            result = await _last(self._store.add(self._manifest_entries(path), **ADD_CONFIG))
            return result.cid if result else None
        except Exception:
            logger.exception("SyncedTree._get_cid failed: path=%r", path)
            self.events.recompute_failed.emit(path)
            return None
