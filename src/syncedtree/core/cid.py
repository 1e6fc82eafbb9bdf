"""Content identifiers for syncedtree.

This module provides:
- Cid: immutable, comparable content identifier (CIDv1, sha2-256)
- CidCodec: capability interface used to parse and validate identifiers

Text form is the multibase base32 encoding used by IPFS for CIDv1:
    "b" + base32lower(version || codec || multihash)
"""

from __future__ import annotations

import base64
import binascii
import hashlib
from dataclasses import dataclass
from typing import Protocol

from syncedtree.core.types import InvalidIdentifierError

CID_VERSION = 1
MULTIBASE_BASE32 = "b"

# Multicodec table entries
RAW = 0x55
DAG_JSON = 0x0129
SHA2_256 = 0x12
DIGEST_SIZE = 32

CODEC_NAMES = {RAW: "raw", DAG_JSON: "dag-json"}


def _encode_varint(value: int) -> bytes:
    """Encode an unsigned integer as an unsigned LEB128 varint."""
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def _decode_varint(data: bytes, offset: int) -> tuple[int, int]:
    """Decode a varint at offset.

    Returns:
        Tuple of (value, next offset).

    Raises:
        ValueError: If the varint is truncated or longer than 9 bytes.
    """
    value = 0
    shift = 0
    for index in range(offset, min(len(data), offset + 9)):
        byte = data[index]
        value |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return value, index + 1
        shift += 7
    raise ValueError("truncated varint")


class CidCodec(Protocol):
    """Capability for turning identifier strings into identifiers."""

    def parse(self, text: str) -> Cid:
        """Parse text into an identifier.

        Raises:
            InvalidIdentifierError: If text is not a well-formed identifier.
        """
        ...


@dataclass(frozen=True, order=True)
class Cid:
    """A content identifier.

    Attributes:
        codec: Multicodec of the addressed content (RAW or DAG_JSON).
        digest: 32-byte SHA-256 digest of the addressed bytes.
    """

    codec: int
    digest: bytes

    @classmethod
    def from_content(cls, data: bytes, codec: int = RAW) -> Cid:
        """Compute the identifier of a byte sequence."""
        return cls(codec=codec, digest=hashlib.sha256(data).digest())

    @classmethod
    def parse(cls, text: str | Cid) -> Cid:
        """Parse the text form of an identifier.

        Args:
            text: Identifier string (or an already parsed Cid).

        Returns:
            The parsed Cid.

        Raises:
            InvalidIdentifierError: If text is malformed.
        """
        if isinstance(text, Cid):
            return text
        if not isinstance(text, str) or not text.startswith(MULTIBASE_BASE32):
            raise InvalidIdentifierError(f"invalid cid: {text!r}")

        encoded = text[1:].upper()
        try:
            raw = base64.b32decode(encoded + "=" * (-len(encoded) % 8))
            version, offset = _decode_varint(raw, 0)
            codec, offset = _decode_varint(raw, offset)
            hash_code, offset = _decode_varint(raw, offset)
            hash_size, offset = _decode_varint(raw, offset)
        except (binascii.Error, ValueError) as e:
            raise InvalidIdentifierError(f"invalid cid: {text!r}") from e

        digest = raw[offset:]
        if (
            version != CID_VERSION
            or codec not in CODEC_NAMES
            or hash_code != SHA2_256
            or hash_size != DIGEST_SIZE
            or len(digest) != DIGEST_SIZE
        ):
            raise InvalidIdentifierError(f"invalid cid: {text!r}")

        cid = cls(codec=codec, digest=digest)
        # Reject non-canonical spellings (e.g. stray padding characters)
        if str(cid) != text:
            raise InvalidIdentifierError(f"invalid cid: {text!r}")
        return cid

    @property
    def is_directory(self) -> bool:
        """True when the identifier addresses a directory manifest."""
        return self.codec == DAG_JSON

    @property
    def codec_name(self) -> str:
        """Human-readable multicodec name."""
        return CODEC_NAMES.get(self.codec, hex(self.codec))

    def to_bytes(self) -> bytes:
        """Binary form: version || codec || multihash."""
        return (
            _encode_varint(CID_VERSION)
            + _encode_varint(self.codec)
            + _encode_varint(SHA2_256)
            + _encode_varint(DIGEST_SIZE)
            + self.digest
        )

    def __str__(self) -> str:
        encoded = base64.b32encode(self.to_bytes()).decode("ascii")
        return MULTIBASE_BASE32 + encoded.rstrip("=").lower()

    def __repr__(self) -> str:
        return f"Cid({str(self)!r}, codec={self.codec_name})"
