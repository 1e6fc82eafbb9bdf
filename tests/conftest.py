"""Shared fixtures for syncedtree tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio

from syncedtree.stores import MemoryBlobStore, MemoryTreeStorage, ReplicationHub, TreeIndex
from syncedtree.sync import SyncedTree


@pytest.fixture
def store() -> MemoryBlobStore:
    """Create an empty in-memory blob store."""
    return MemoryBlobStore()


@pytest.fixture
def storage() -> MemoryTreeStorage:
    """Create an empty in-memory tree storage."""
    return MemoryTreeStorage()


@pytest.fixture
def hub() -> ReplicationHub:
    """Create a replication hub with no peers."""
    return ReplicationHub()


@pytest.fixture
def index(storage: MemoryTreeStorage) -> TreeIndex:
    """Create a standalone tree index."""
    return TreeIndex("test", storage=storage, replica_id="replica-a")


@pytest_asyncio.fixture
async def tree(
    index: TreeIndex, store: MemoryBlobStore
) -> AsyncGenerator[SyncedTree, None]:
    """Create a started engine; stopped on teardown."""
    synced = await SyncedTree.create(index, store)
    await synced.wait_idle()
    yield synced
    await synced.stop()
