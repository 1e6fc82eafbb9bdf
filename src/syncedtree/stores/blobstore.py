"""Content-addressed blob storage.

This module provides:
- BlobStore: abstract interface the engine requires (add / cat / get)
- MemoryBlobStore: in-process implementation for development and testing
- iter_directory_entries: build an add() source from a local directory

MemoryBlobStore splits file content into FastCDC chunks stored once per
chunk hash, so identical content is deduplicated and cat() streams one chunk
at a time. Directories are canonical JSON manifests listing their children
sorted by name; a manifest does not include the directory's own name, so
identical subtrees share one identifier wherever they are mounted.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterable, Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from syncedtree.core.chunking import chunk_bytes, combine_chunks
from syncedtree.core.cid import DAG_JSON, RAW, Cid
from syncedtree.core.paths import remove_slash
from syncedtree.core.types import SyncedTreeError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator

logger = logging.getLogger(__name__)

FILE_READ_SIZE = 64 * 1024


class BlobStoreError(SyncedTreeError):
    """Base exception for blob store errors."""


class BlobNotFoundError(BlobStoreError):
    """Raised when an identifier is not present in the store."""


class UploadError(BlobStoreError):
    """Raised when add() is given content it cannot interpret."""


@dataclass(frozen=True)
class AddResult:
    """One node written by BlobStore.add().

    Attributes:
        path: Path of the node relative to the added root. For single
            content adds, the identifier string itself.
        cid: Identifier of the node.
        size: Content size (cumulative for directories).
        is_directory: Whether the node is a directory manifest.
    """

    path: str
    cid: Cid
    size: int
    is_directory: bool = False


@dataclass
class AddEntry:
    """A named entry submitted to BlobStore.add().

    Attributes:
        path: Slash-delimited path of the entry. A leading slash is ignored.
        content: Bytes, str, a (sync or async) iterable of chunks, or None
            for a directory.
    """

    path: str
    content: Any = None


@dataclass(frozen=True)
class BlobStat:
    """Metadata returned by BlobStore.get()."""

    cid: Cid
    size: int
    is_directory: bool = False


class BlobStore(ABC):
    """Abstract interface for content-addressed storage."""

    @abstractmethod
    def add(
        self,
        content: Any,
        pin: bool = True,
        wrap_with_directory: bool = False,
    ) -> AsyncIterator[AddResult]:
        """Store content and yield one result per written node.

        Content may be a single byte payload (bytes, str, or a chunk
        iterable) or an iterable of entries (AddEntry or mappings with
        "path" and "content" keys). Nodes are yielded children first; the
        last result is the top-level node.

        Args:
            content: Content to store.
            pin: Whether to pin the written nodes.
            wrap_with_directory: Wrap the top-level nodes in an extra,
                unnamed directory.
        """

    @abstractmethod
    def cat(self, cid: Cid | str) -> AsyncIterator[bytes]:
        """Stream the bytes of a file.

        Raises:
            BlobNotFoundError: If cid is unknown.
            BlobStoreError: If cid addresses a directory.
        """

    @abstractmethod
    def get(self, cid: Cid | str) -> AsyncIterator[BlobStat]:
        """Yield metadata for cid (at least one record).

        Raises:
            BlobNotFoundError: If cid is unknown.
        """


@dataclass
class _Node:
    """Directory tree node built while adding entries."""

    data: bytes | None = None
    children: dict[str, _Node] = field(default_factory=dict)

    @property
    def is_directory(self) -> bool:
        return self.data is None


def _is_entry(item: Any) -> bool:
    return isinstance(item, AddEntry) or (isinstance(item, Mapping) and "path" in item)


def _entry_fields(item: Any) -> tuple[str, Any]:
    if isinstance(item, AddEntry):
        return item.path, item.content
    return item["path"], item.get("content")


class MemoryBlobStore(BlobStore):
    """In-memory content-addressed store.

    Usage:
        store = MemoryBlobStore()
        result = [r async for r in store.add(b"hello")][-1]
        data = b"".join([c async for c in store.cat(result.cid)])
    """

    def __init__(self) -> None:
        self._chunks: dict[str, bytes] = {}  # chunk hash -> data
        self._files: dict[Cid, list[str]] = {}  # file cid -> chunk hashes
        self._manifests: dict[Cid, bytes] = {}  # dir cid -> manifest
        self._sizes: dict[Cid, int] = {}
        self._pins: set[Cid] = set()

    def __contains__(self, cid: object) -> bool:
        try:
            return Cid.parse(cid) in self._sizes  # type: ignore[arg-type]
        except SyncedTreeError:
            return False

    def is_pinned(self, cid: Cid | str) -> bool:
        """Check whether cid was added with pin=True."""
        return Cid.parse(cid) in self._pins

    @property
    def chunk_count(self) -> int:
        """Number of distinct chunks held."""
        return len(self._chunks)

    def _put_file(self, data: bytes, pin: bool) -> Cid:
        cid = Cid.from_content(data, RAW)
        if cid not in self._files:
            hashes = []
            for chunk in chunk_bytes(data):
                self._chunks.setdefault(chunk.hash, chunk.data)
                hashes.append(chunk.hash)
            self._files[cid] = hashes
            self._sizes[cid] = len(data)
        if pin:
            self._pins.add(cid)
        return cid

    def _put_manifest(self, children: list[tuple[str, AddResult]], pin: bool) -> AddResult:
        entries = [
            {
                "name": name,
                "cid": str(result.cid),
                "size": result.size,
                "type": "dir" if result.is_directory else "file",
            }
            for name, result in sorted(children, key=lambda item: item[0])
        ]
        manifest = json.dumps(
            {"entries": entries}, sort_keys=True, separators=(",", ":")
        ).encode("utf-8")
        cid = Cid.from_content(manifest, DAG_JSON)
        size = sum(result.size for _, result in children)
        self._manifests[cid] = manifest
        self._sizes[cid] = size
        if pin:
            self._pins.add(cid)
        return AddResult(path="", cid=cid, size=size, is_directory=True)

    async def _build_tree(self, entries: list[Any]) -> _Node:
        root = _Node()
        for item in entries:
            raw_path, content = _entry_fields(item)
            parts = [part for part in remove_slash(str(raw_path)).split("/") if part]
            if not parts:
                raise UploadError(f"Entry has an empty path: {raw_path!r}")

            node = root
            for part in parts[:-1]:
                node = node.children.setdefault(part, _Node())
                if not node.is_directory:
                    raise UploadError(f"Entry {raw_path!r} is nested under a file")

            name = parts[-1]
            if content is None:
                existing = node.children.setdefault(name, _Node())
                if not existing.is_directory:
                    raise UploadError(f"Entry {raw_path!r} is both a file and a directory")
            else:
                if name in node.children and node.children[name].is_directory:
                    raise UploadError(f"Entry {raw_path!r} is both a file and a directory")
                node.children[name] = _Node(data=await combine_chunks(content))
        return root

    def _write_tree(
        self, node: _Node, path: str, pin: bool, results: list[AddResult]
    ) -> AddResult:
        """Write node and its descendants post-order, appending to results."""
        if not node.is_directory:
            cid = self._put_file(node.data or b"", pin)
            result = AddResult(path=path, cid=cid, size=self._sizes[cid])
            results.append(result)
            return result

        children = [
            (name, self._write_tree(child, f"{path}/{name}" if path else name, pin, results))
            for name, child in node.children.items()
        ]
        written = self._put_manifest(children, pin)
        result = AddResult(path=path, cid=written.cid, size=written.size, is_directory=True)
        results.append(result)
        return result

    async def _collect(self, content: Any) -> tuple[list[Any] | None, Any]:
        """Split content into (entries, None) or (None, payload)."""
        if isinstance(content, (bytes, bytearray, memoryview, str)):
            return None, content
        if _is_entry(content):
            return [content], None
        if isinstance(content, AsyncIterable):
            items = [item async for item in content]
        elif isinstance(content, Iterable):
            items = list(content)
        else:
            raise UploadError(f"Unsupported content type: {type(content).__name__}")

        if items and all(_is_entry(item) for item in items):
            return items, None
        if any(_is_entry(item) for item in items):
            raise UploadError("Cannot mix named entries and raw chunks")
        return None, items

    async def add(
        self,
        content: Any,
        pin: bool = True,
        wrap_with_directory: bool = False,
    ) -> AsyncIterator[AddResult]:
        entries, payload = await self._collect(content)
        results: list[AddResult] = []

        if entries is None:
            data = await combine_chunks(payload)
            cid = self._put_file(data, pin)
            results.append(AddResult(path=str(cid), cid=cid, size=len(data)))
            top = [(str(cid), results[-1])]
        else:
            root = await self._build_tree(entries)
            top = [
                (name, self._write_tree(child, name, pin, results))
                for name, child in root.children.items()
            ]

        if wrap_with_directory:
            results.append(self._put_manifest(top, pin))

        logger.debug("Added %d node(s), top-level %s", len(results), results[-1].cid)
        for result in results:
            yield result

    async def cat(self, cid: Cid | str) -> AsyncIterator[bytes]:
        parsed = Cid.parse(cid)
        if parsed in self._manifests:
            raise BlobStoreError(f"{parsed} is a directory")
        hashes = self._files.get(parsed)
        if hashes is None:
            raise BlobNotFoundError(f"Blob not found: {parsed}")
        for chunk_hash in hashes:
            yield self._chunks[chunk_hash]

    async def get(self, cid: Cid | str) -> AsyncIterator[BlobStat]:
        parsed = Cid.parse(cid)
        if parsed not in self._sizes:
            raise BlobNotFoundError(f"Blob not found: {parsed}")
        yield BlobStat(
            cid=parsed,
            size=self._sizes[parsed],
            is_directory=parsed in self._manifests,
        )

    def ls(self, cid: Cid | str) -> list[dict[str, Any]]:
        """List a directory manifest's entries.

        Raises:
            BlobNotFoundError: If cid is not a known directory.
        """
        parsed = Cid.parse(cid)
        manifest = self._manifests.get(parsed)
        if manifest is None:
            raise BlobNotFoundError(f"Directory not found: {parsed}")
        return list(json.loads(manifest)["entries"])


def _read_file_chunks(path: Path) -> Iterator[bytes]:
    with open(path, "rb") as f:
        yield from iter(lambda: f.read(FILE_READ_SIZE), b"")


def iter_directory_entries(path: Path | str) -> Iterator[AddEntry]:
    """Build add() entries for a local directory, rooted at its name.

    Files are read lazily in FILE_READ_SIZE blocks.

    Raises:
        NotADirectoryError: If path is not a directory.
    """
    root = Path(path)
    if not root.is_dir():
        raise NotADirectoryError(f"Not a directory: {root}")

    yield AddEntry(path=root.name, content=None)
    for child in sorted(root.rglob("*")):
        relative = f"{root.name}/{child.relative_to(root).as_posix()}"
        if child.is_dir():
            yield AddEntry(path=relative, content=None)
        elif child.is_file():
            yield AddEntry(path=relative, content=_read_file_chunks(child))
