"""Synchronization and materialization engine.

Architecture:
    mutation signals / TreeIndex.replicated → RecomputeQueue → SyncedTree._get_cid

Components:
- **SyncedTree**: lifecycle, mutation API and CID materialization
- **RecomputeQueue**: single-worker queue that coalesces recompute triggers
- **TreeSignals**: the engine's named signals
"""

from syncedtree.sync.engine import UPDATE_SIGNALS, SyncedTree, TreeSignals
from syncedtree.sync.queue import QueueStats, RecomputeQueue

__all__ = [
    "QueueStats",
    "RecomputeQueue",
    "SyncedTree",
    "TreeSignals",
    "UPDATE_SIGNALS",
]
