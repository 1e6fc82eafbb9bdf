"""Core module - Identifiers, paths, chunking, crypto and shared types."""

from syncedtree.core.chunking import (
    AVG_CHUNK_SIZE,
    MAX_CHUNK_SIZE,
    MIN_CHUNK_SIZE,
    Chunk,
    chunk_bytes,
    combine_chunks,
    get_chunk_hash,
)
from syncedtree.core.cid import DAG_JSON, RAW, Cid, CidCodec
from syncedtree.core.config import ADD_CONFIG, TreeOptions
from syncedtree.core.crypto import (
    AesGcmCipher,
    AesGcmCrypter,
    Cipher,
    Crypter,
    EncryptedPayload,
    cat_cid,
    compressed_pub,
    derive_shared_secret,
    encrypt_content,
    generate_keypair,
    shared_crypter,
    verify_pub,
)
from syncedtree.core.paths import (
    ROOT_PATH,
    base_name,
    compare_names,
    join_path,
    parent_path,
    read_cid,
    remove_slash,
    sort_names,
    valid_cid,
)
from syncedtree.core.types import (
    DecryptionError,
    EngineNotStartedError,
    InvalidIdentifierError,
    PathAlreadyExistsError,
    PathError,
    PathNotADirectoryError,
    PathNotAFileError,
    PathNotFoundError,
    RunState,
    SyncedTreeError,
)

__all__ = [
    # Chunking
    "AVG_CHUNK_SIZE",
    "Chunk",
    "MAX_CHUNK_SIZE",
    "MIN_CHUNK_SIZE",
    "chunk_bytes",
    "combine_chunks",
    "get_chunk_hash",
    # Identifiers
    "Cid",
    "CidCodec",
    "DAG_JSON",
    "RAW",
    # Config
    "ADD_CONFIG",
    "TreeOptions",
    # Crypto
    "AesGcmCipher",
    "AesGcmCrypter",
    "Cipher",
    "Crypter",
    "EncryptedPayload",
    "cat_cid",
    "compressed_pub",
    "derive_shared_secret",
    "encrypt_content",
    "generate_keypair",
    "shared_crypter",
    "verify_pub",
    # Paths
    "ROOT_PATH",
    "base_name",
    "compare_names",
    "join_path",
    "parent_path",
    "read_cid",
    "remove_slash",
    "sort_names",
    "valid_cid",
    # Types
    "DecryptionError",
    "EngineNotStartedError",
    "InvalidIdentifierError",
    "PathAlreadyExistsError",
    "PathError",
    "PathNotADirectoryError",
    "PathNotAFileError",
    "PathNotFoundError",
    "RunState",
    "SyncedTreeError",
]
