"""syncedtree - A synchronized, optionally encrypted virtual directory tree.

The tree lives in a replicated index; its content lives in a content-addressed
blob store. After every local mutation or remote replication the engine
re-derives a single identifier for the whole tree.
"""

from syncedtree.core import (
    ROOT_PATH,
    AesGcmCrypter,
    Cid,
    DecryptionError,
    EncryptedPayload,
    EngineNotStartedError,
    InvalidIdentifierError,
    PathAlreadyExistsError,
    PathNotADirectoryError,
    PathNotAFileError,
    PathNotFoundError,
    RunState,
    SyncedTreeError,
    TreeOptions,
    cat_cid,
    encrypt_content,
    shared_crypter,
)
from syncedtree.stores import MemoryBlobStore, ReplicationHub, TreeIndex
from syncedtree.sync import SyncedTree

__version__ = "0.1.0"

__all__ = [
    "ROOT_PATH",
    "AesGcmCrypter",
    "Cid",
    "DecryptionError",
    "EncryptedPayload",
    "EngineNotStartedError",
    "InvalidIdentifierError",
    "MemoryBlobStore",
    "PathAlreadyExistsError",
    "PathNotADirectoryError",
    "PathNotAFileError",
    "PathNotFoundError",
    "ReplicationHub",
    "RunState",
    "SyncedTree",
    "SyncedTreeError",
    "TreeIndex",
    "TreeOptions",
    "cat_cid",
    "encrypt_content",
    "shared_crypter",
]
