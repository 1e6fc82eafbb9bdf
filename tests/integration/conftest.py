"""Pytest fixtures for integration tests.

Two engines replicate one tree through an in-process hub and share one blob
store, the way separate peers share a content-addressed network.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from dataclasses import dataclass

import pytest_asyncio

from syncedtree.stores import MemoryBlobStore, MemoryTreeStorage, ReplicationHub, TreeIndex
from syncedtree.sync import SyncedTree


@dataclass
class TreePeer:
    """One replica: its index and the engine running on it."""

    index: TreeIndex
    tree: SyncedTree


@dataclass
class TreePeers:
    """Container for a pair of replicating engines."""

    hub: ReplicationHub
    store: MemoryBlobStore
    alice: TreePeer
    bob: TreePeer

    async def settle(self) -> None:
        """Wait until both engines finished recomputing."""
        await self.alice.tree.wait_idle()
        await self.bob.tree.wait_idle()


async def start_peer(hub: ReplicationHub, store: MemoryBlobStore, replica_id: str) -> TreePeer:
    """Start an engine on a fresh index joined to hub."""
    index = TreeIndex("shared", storage=MemoryTreeStorage(), replica_id=replica_id, hub=hub)
    return TreePeer(index=index, tree=await SyncedTree.create(index, store))


@pytest_asyncio.fixture
async def peers() -> AsyncGenerator[TreePeers, None]:
    """Create two started engines replicating the same tree."""
    hub = ReplicationHub()
    store = MemoryBlobStore()
    pair = TreePeers(
        hub=hub,
        store=store,
        alice=await start_peer(hub, store, "alice"),
        bob=await start_peer(hub, store, "bob"),
    )
    await pair.settle()
    yield pair
    await pair.alice.tree.stop()
    await pair.bob.tree.stop()
