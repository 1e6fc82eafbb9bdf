"""Tests for the replicated tree index and its storage backends."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from syncedtree.core.paths import ROOT_PATH
from syncedtree.core.types import (
    PathAlreadyExistsError,
    PathError,
    PathNotADirectoryError,
    PathNotAFileError,
    PathNotFoundError,
)
from syncedtree.stores.tree_index import ReplicationHub, TreeIndex, TreeIndexClosedError
from syncedtree.stores.tree_storage import (
    DIR,
    FILE,
    MemoryTreeStorage,
    SqliteTreeStorage,
    TreeEntry,
)


class TestQueries:
    """Tests for read-only index queries."""

    def test_fresh_index_has_only_root(self, index: TreeIndex) -> None:
        """A new index holds just the root directory."""
        assert index.exists(ROOT_PATH)
        assert index.content(ROOT_PATH) == DIR
        assert index.ls(ROOT_PATH) == []
        assert index.tree(ROOT_PATH) == []

    def test_address(self, index: TreeIndex) -> None:
        """The address is derived from the tree name."""
        assert index.address == "/syncedtree/test"

    @pytest.mark.asyncio
    async def test_content_and_read(self, index: TreeIndex) -> None:
        """content() reports kinds; read() only answers for files."""
        await index.mkdir(ROOT_PATH, "docs")
        await index.mk("/r/docs", "a.txt")
        await index.write("/r/docs/a.txt", "bafkvalue")

        assert index.content("/r/docs") == DIR
        assert index.content("/r/docs/a.txt") == FILE
        assert index.content("/r/missing") is None
        assert index.read("/r/docs/a.txt") == "bafkvalue"
        assert index.read("/r/docs") is None
        assert index.read("/r/missing") is None

    @pytest.mark.asyncio
    async def test_new_file_reads_empty(self, index: TreeIndex) -> None:
        """A file that was never written stores the empty string."""
        await index.mk(ROOT_PATH, "a.txt")
        assert index.read("/r/a.txt") == ""

    @pytest.mark.asyncio
    async def test_ls_sorted_case_insensitive(self, index: TreeIndex) -> None:
        """ls() lists direct children ordered by name, ignoring case."""
        await index.mk(ROOT_PATH, "Zebra")
        await index.mk(ROOT_PATH, "apple")
        await index.mkdir(ROOT_PATH, "Mango")
        await index.mk("/r/Mango", "inner")

        assert index.ls(ROOT_PATH) == ["/r/apple", "/r/Mango", "/r/Zebra"]

    @pytest.mark.asyncio
    async def test_tree_lists_descendants(self, index: TreeIndex) -> None:
        """tree() lists every live descendant."""
        await index.mkdir(ROOT_PATH, "a")
        await index.mkdir("/r/a", "b")
        await index.mk("/r/a/b", "c")

        assert index.tree(ROOT_PATH) == ["/r/a", "/r/a/b", "/r/a/b/c"]
        assert index.tree("/r/a/b") == ["/r/a/b/c"]

    def test_join_path(self, index: TreeIndex) -> None:
        """join_path is available on the index."""
        assert index.join_path(ROOT_PATH, "x") == "/r/x"


class TestMutators:
    """Tests for index mutators and their preconditions."""

    @pytest.mark.asyncio
    async def test_mkdir_and_mk_return_paths(self, index: TreeIndex) -> None:
        """Creating nodes returns their paths."""
        assert await index.mkdir(ROOT_PATH, "docs") == "/r/docs"
        assert await index.mk("/r/docs", "a.txt") == "/r/docs/a.txt"

    @pytest.mark.asyncio
    async def test_create_existing_raises(self, index: TreeIndex) -> None:
        """Creating an existing path raises PathAlreadyExistsError."""
        await index.mkdir(ROOT_PATH, "docs")
        with pytest.raises(PathAlreadyExistsError):
            await index.mkdir(ROOT_PATH, "docs")
        with pytest.raises(PathAlreadyExistsError):
            await index.mk(ROOT_PATH, "docs")

    @pytest.mark.asyncio
    async def test_create_under_missing_parent(self, index: TreeIndex) -> None:
        """Parents must exist."""
        with pytest.raises(PathNotFoundError):
            await index.mkdir("/r/missing", "docs")

    @pytest.mark.asyncio
    async def test_create_under_file(self, index: TreeIndex) -> None:
        """Parents must be directories."""
        await index.mk(ROOT_PATH, "a.txt")
        with pytest.raises(PathNotADirectoryError):
            await index.mk("/r/a.txt", "b")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", ["", "a/b"])
    async def test_invalid_names(self, index: TreeIndex, name: str) -> None:
        """Names must be non-empty and contain no slash."""
        with pytest.raises(PathError):
            await index.mkdir(ROOT_PATH, name)

    @pytest.mark.asyncio
    async def test_write_requires_file(self, index: TreeIndex) -> None:
        """write() only accepts existing files."""
        await index.mkdir(ROOT_PATH, "docs")
        with pytest.raises(PathNotAFileError):
            await index.write("/r/docs", "x")
        with pytest.raises(PathNotFoundError):
            await index.write("/r/missing", "x")

    @pytest.mark.asyncio
    async def test_rm_file(self, index: TreeIndex) -> None:
        """rm() removes files but refuses directories."""
        await index.mk(ROOT_PATH, "a.txt")
        await index.mkdir(ROOT_PATH, "docs")

        await index.rm("/r/a.txt")

        assert not index.exists("/r/a.txt")
        with pytest.raises(PathNotAFileError):
            await index.rm("/r/docs")

    @pytest.mark.asyncio
    async def test_rmdir_is_recursive(self, index: TreeIndex) -> None:
        """rmdir() removes the directory and all descendants."""
        await index.mkdir(ROOT_PATH, "docs")
        await index.mkdir("/r/docs", "sub")
        await index.mk("/r/docs/sub", "a.txt")

        await index.rmdir("/r/docs")

        assert index.tree(ROOT_PATH) == []
        assert not index.exists("/r/docs/sub/a.txt")

    @pytest.mark.asyncio
    async def test_recreate_after_remove(self, index: TreeIndex) -> None:
        """A removed directory can be recreated empty."""
        await index.mkdir(ROOT_PATH, "docs")
        await index.mk("/r/docs", "a.txt")
        await index.rmdir("/r/docs")

        await index.mkdir(ROOT_PATH, "docs")

        assert index.ls("/r/docs") == []

    @pytest.mark.asyncio
    async def test_rmdir_root_refused(self, index: TreeIndex) -> None:
        """The root cannot be removed."""
        with pytest.raises(PathError):
            await index.rmdir(ROOT_PATH)

    @pytest.mark.asyncio
    async def test_rmdir_on_file(self, index: TreeIndex) -> None:
        """rmdir() refuses files."""
        await index.mk(ROOT_PATH, "a.txt")
        with pytest.raises(PathNotADirectoryError):
            await index.rmdir("/r/a.txt")

    @pytest.mark.asyncio
    async def test_writes_are_persisted(self, index: TreeIndex, storage: MemoryTreeStorage) -> None:
        """Every commit reaches the storage backend."""
        await index.mkdir(ROOT_PATH, "docs")
        await index.mk("/r/docs", "a.txt")
        assert set(storage.load()) == {"/r/docs", "/r/docs/a.txt"}


class TestLifecycle:
    """Tests for load, close and drop."""

    @pytest.mark.asyncio
    async def test_closed_index_rejects_writes(self, index: TreeIndex) -> None:
        """Mutating a closed index raises TreeIndexClosedError."""
        await index.close()
        assert index.closed
        with pytest.raises(TreeIndexClosedError):
            await index.mkdir(ROOT_PATH, "docs")

    @pytest.mark.asyncio
    async def test_reopen_from_memory_storage(self, storage: MemoryTreeStorage) -> None:
        """A new index over the same storage sees the old entries."""
        first = TreeIndex("t", storage=storage, replica_id="a")
        await first.mkdir(ROOT_PATH, "docs")
        await first.close()

        second = TreeIndex("t", storage=storage, replica_id="a")
        await second.load()

        assert second.content("/r/docs") == DIR

    @pytest.mark.asyncio
    async def test_sqlite_persistence(self, tmp_path: Path) -> None:
        """Entries survive closing and reopening a SQLite database."""
        db_path = tmp_path / "tree.db"
        first = TreeIndex("t", storage=SqliteTreeStorage(db_path), replica_id="a")
        await first.load()
        await first.mkdir(ROOT_PATH, "docs")
        await first.mk("/r/docs", "a.txt")
        await first.write("/r/docs/a.txt", "bafkvalue")
        await first.rm("/r/docs/a.txt")
        await first.mk("/r/docs", "b.txt")
        await first.close()

        second = TreeIndex("t", storage=SqliteTreeStorage(db_path), replica_id="a")
        await second.load()

        assert second.ls("/r/docs") == ["/r/docs/b.txt"]
        assert not second.exists("/r/docs/a.txt")
        # The Lamport clock continues past the persisted writes
        await second.mk("/r/docs", "c.txt")
        assert second.snapshot()[-1].clock > 5

    @pytest.mark.asyncio
    async def test_drop_removes_state(self, tmp_path: Path) -> None:
        """drop() deletes the database and resets the index."""
        db_path = tmp_path / "tree.db"
        index = TreeIndex("t", storage=SqliteTreeStorage(db_path))
        await index.load()
        await index.mkdir(ROOT_PATH, "docs")

        await index.drop()

        assert not db_path.exists()
        assert not index.exists("/r/docs")

        fresh = TreeIndex("t", storage=SqliteTreeStorage(db_path))
        await fresh.load()
        assert fresh.tree(ROOT_PATH) == []


class TestReplication:
    """Tests for replication between index peers."""

    @pytest.fixture
    def peers(self, hub: ReplicationHub) -> tuple[TreeIndex, TreeIndex]:
        return (
            TreeIndex("shared", replica_id="a", hub=hub),
            TreeIndex("shared", replica_id="b", hub=hub),
        )

    @pytest.mark.asyncio
    async def test_writes_replicate(self, peers: tuple[TreeIndex, TreeIndex]) -> None:
        """A write on one peer appears on the other and signals it."""
        a, b = peers
        handler = MagicMock()
        b.replicated.connect(handler)

        await a.mkdir(ROOT_PATH, "docs")

        assert b.content("/r/docs") == DIR
        handler.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_sender_not_signalled(self, peers: tuple[TreeIndex, TreeIndex]) -> None:
        """Local writes do not emit replicated on the writer."""
        a, _ = peers
        handler = MagicMock()
        a.replicated.connect(handler)

        await a.mkdir(ROOT_PATH, "docs")

        handler.assert_not_called()

    @pytest.mark.asyncio
    async def test_concurrent_writes_converge(
        self, hub: ReplicationHub, peers: tuple[TreeIndex, TreeIndex]
    ) -> None:
        """Partitioned peers converge to the same winner after sync."""
        a, b = peers
        hub.leave(b)
        await a.mk(ROOT_PATH, "x")
        await a.write("/r/x", "from-a")
        await b.mk(ROOT_PATH, "x")
        await b.write("/r/x", "from-b")

        hub.join(b)
        hub.sync()

        # Equal clocks: the higher replica id wins
        assert a.read("/r/x") == b.read("/r/x") == "from-b"

    @pytest.mark.asyncio
    async def test_later_clock_wins(
        self, hub: ReplicationHub, peers: tuple[TreeIndex, TreeIndex]
    ) -> None:
        """A write with a higher clock wins regardless of replica id."""
        a, b = peers
        await a.mk(ROOT_PATH, "x")
        hub.leave(b)
        await a.write("/r/x", "first")
        await a.write("/r/x", "second")
        await b.write("/r/x", "stale")

        hub.join(b)
        hub.sync()

        assert a.read("/r/x") == b.read("/r/x") == "second"

    @pytest.mark.asyncio
    async def test_removal_replicates(self, peers: tuple[TreeIndex, TreeIndex]) -> None:
        """Tombstones replicate like writes."""
        a, b = peers
        await a.mkdir(ROOT_PATH, "docs")
        await a.mk("/r/docs", "f")

        await b.rmdir("/r/docs")

        assert not a.exists("/r/docs")
        assert not a.exists("/r/docs/f")

    @pytest.mark.asyncio
    async def test_load_pulls_peer_state(self, hub: ReplicationHub) -> None:
        """A late joiner catches up during load()."""
        a = TreeIndex("shared", replica_id="a", hub=hub)
        await a.mkdir(ROOT_PATH, "docs")

        late = TreeIndex("shared", replica_id="c", hub=hub)
        await late.load()

        assert late.content("/r/docs") == DIR

    @pytest.mark.asyncio
    async def test_closed_peer_ignores_merges(self, peers: tuple[TreeIndex, TreeIndex]) -> None:
        """A closed peer leaves the hub and merges nothing."""
        a, b = peers
        await b.close()

        await a.mkdir(ROOT_PATH, "docs")

        assert not b.exists("/r/docs")
        assert b.merge(a.snapshot()) is False

    def test_merge_ignores_older_versions(self, index: TreeIndex) -> None:
        """Merging an equal or older entry is a no-op."""
        entry = TreeEntry(path="/r/x", kind=FILE, clock=3, replica="z")
        assert index.merge([entry]) is True
        assert index.merge([entry]) is False
        assert index.merge([TreeEntry(path="/r/x", kind=FILE, clock=2, replica="zz")]) is False
