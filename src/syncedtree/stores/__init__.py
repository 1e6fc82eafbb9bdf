"""Collaborators of the engine: blob store and replicated tree index.

Both are defined as interfaces plus in-process reference implementations:
- BlobStore / MemoryBlobStore: content-addressed storage (add, cat, get)
- TreeIndex / ReplicationHub: replicated logical path index
- TreeStorage / MemoryTreeStorage / SqliteTreeStorage: index persistence
"""

from syncedtree.stores.blobstore import (
    AddEntry,
    AddResult,
    BlobNotFoundError,
    BlobStat,
    BlobStore,
    BlobStoreError,
    MemoryBlobStore,
    UploadError,
    iter_directory_entries,
)
from syncedtree.stores.tree_index import ReplicationHub, TreeIndex, TreeIndexClosedError
from syncedtree.stores.tree_storage import (
    DIR,
    FILE,
    MemoryTreeStorage,
    SqliteTreeStorage,
    TreeEntry,
    TreeStorage,
)

__all__ = [
    # Blob store
    "AddEntry",
    "AddResult",
    "BlobNotFoundError",
    "BlobStat",
    "BlobStore",
    "BlobStoreError",
    "MemoryBlobStore",
    "UploadError",
    "iter_directory_entries",
    # Tree index
    "ReplicationHub",
    "TreeIndex",
    "TreeIndexClosedError",
    # Storage
    "DIR",
    "FILE",
    "MemoryTreeStorage",
    "SqliteTreeStorage",
    "TreeEntry",
    "TreeStorage",
]
