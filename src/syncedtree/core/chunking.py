"""Byte chunking and accumulation for syncedtree.

This module provides:
- Content-defined chunking (FastCDC) used by the blob store to split file
  content into deduplicated, individually streamable blocks
- combine_chunks: accumulate a lazy chunk sequence into one buffer while
  reporting progress
"""

from __future__ import annotations

import hashlib
from collections.abc import AsyncIterable, Callable, Iterable, Iterator
from dataclasses import dataclass
from typing import Optional, Union

from fastcdc import fastcdc

# Chunk size configuration (in bytes)
MIN_CHUNK_SIZE = 16 * 1024   # 16 KB
AVG_CHUNK_SIZE = 64 * 1024   # 64 KB
MAX_CHUNK_SIZE = 256 * 1024  # 256 KB

BytesLike = Union[bytes, bytearray, memoryview]
ChunkSource = Union[BytesLike, str, Iterable[BytesLike], AsyncIterable[BytesLike]]

# Called with (bytes accumulated so far, expected total or None)
ProgressCallback = Callable[[int, Optional[int]], None]


@dataclass
class Chunk:
    """Represents a chunk of data with metadata."""

    index: int
    offset: int
    data: bytes
    hash: str

    @property
    def size(self) -> int:
        """Return the size of this chunk in bytes."""
        return len(self.data)


def get_chunk_hash(data: bytes) -> str:
    """Compute SHA-256 hash of data.

    Args:
        data: Raw bytes to hash.

    Returns:
        Hex-encoded SHA-256 hash string (64 characters).
    """
    return hashlib.sha256(data).hexdigest()


def chunk_bytes(data: bytes) -> Iterator[Chunk]:
    """Split data into content-defined chunks.

    Uses FastCDC algorithm to find chunk boundaries based on
    content, ensuring that insertions only affect nearby chunks.

    Args:
        data: Raw bytes to chunk.

    Yields:
        Chunk objects with index, offset, data, and hash.
    """
    if not data:
        return

    chunks = fastcdc(
        data,
        min_size=MIN_CHUNK_SIZE,
        avg_size=AVG_CHUNK_SIZE,
        max_size=MAX_CHUNK_SIZE,
    )

    for index, cdc_chunk in enumerate(chunks):
        chunk_data = data[cdc_chunk.offset : cdc_chunk.offset + cdc_chunk.length]
        yield Chunk(
            index=index,
            offset=cdc_chunk.offset,
            data=chunk_data,
            hash=get_chunk_hash(chunk_data),
        )


def _to_bytes(chunk: BytesLike | str) -> bytes:
    if isinstance(chunk, str):
        return chunk.encode("utf-8")
    return bytes(chunk)


async def combine_chunks(
    content: ChunkSource,
    on_progress: ProgressCallback | None = None,
    total: int | None = None,
) -> bytes:
    """Accumulate a chunk sequence into one contiguous buffer.

    Accepts a single bytes-like/str value, a plain iterable of chunks, or an
    async iterable of chunks. Strings are UTF-8 encoded.

    Args:
        content: The content to accumulate.
        on_progress: Optional callback (bytes_so_far, total) invoked after
            every chunk.
        total: Expected total size, passed through to on_progress.

    Returns:
        All chunks concatenated.
    """
    buffer = bytearray()

    def _append(chunk: BytesLike | str) -> None:
        buffer.extend(_to_bytes(chunk))
        if on_progress:
            on_progress(len(buffer), total)

    if isinstance(content, (bytes, bytearray, memoryview, str)):
        _append(content)
    elif isinstance(content, AsyncIterable):
        async for chunk in content:
            _append(chunk)
    else:
        for chunk in content:
            _append(chunk)

    return bytes(buffer)
