"""Cryptographic functions for syncedtree.

This module provides:
- The Crypter / Cipher capability interfaces and an AES-256-GCM implementation
- ECDH (secp256k1) key agreement producing a shared cipher
- Public-key validation and compression
- Content encryption (encrypt_content) and retrieval with optional
  decryption (cat_cid)
"""

from __future__ import annotations

import base64
import logging
import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from syncedtree.core.chunking import combine_chunks
from syncedtree.core.types import DecryptionError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from syncedtree.core.chunking import ChunkSource, ProgressCallback
    from syncedtree.core.cid import Cid
    from syncedtree.stores.blobstore import BlobStore

logger = logging.getLogger(__name__)

# AES-GCM constants
KEY_SIZE = 32  # 256 bits
NONCE_SIZE = 12  # 96 bits (recommended for AES-GCM)

# secp256k1 key sizes
PRIVATE_KEY_SIZE = 32
SHARED_SECRET_INFO = b"syncedtree shared crypter"


class Cipher(Protocol):
    """A symmetric cipher bound to one key."""

    async def encrypt(self, data: bytes) -> tuple[bytes, bytes]:
        """Encrypt data, returning (cipherbytes, iv)."""
        ...

    async def decrypt(self, data: bytes, iv: bytes) -> bytes:
        """Decrypt cipherbytes produced by encrypt().

        Raises:
            DecryptionError: If the key, IV or ciphertext do not match.
        """
        ...


class Crypter(Protocol):
    """Cipher suite capability injected by callers."""

    async def generate_key(self) -> bytes: ...

    async def import_key(self, raw: bytes) -> bytes: ...

    async def export_key(self, key: bytes) -> bytes: ...

    def create(self, key: bytes) -> Cipher: ...


@dataclass
class EncryptedPayload:
    """Result of encrypt_content.

    Attributes:
        cipherbytes: Encrypted content (ciphertext || auth tag).
        iv: Base64-encoded nonce.
        raw_key: Base64-encoded key. Must be shared out-of-band.
    """

    cipherbytes: bytes
    iv: str
    raw_key: str


class AesGcmCipher:
    """AES-256-GCM cipher with a random nonce per encryption."""

    def __init__(self, key: bytes) -> None:
        self._aesgcm = AESGCM(key)

    async def encrypt(self, data: bytes) -> tuple[bytes, bytes]:
        nonce = os.urandom(NONCE_SIZE)
        return self._aesgcm.encrypt(nonce, bytes(data), None), nonce

    async def decrypt(self, data: bytes, iv: bytes) -> bytes:
        try:
            return self._aesgcm.decrypt(bytes(iv), bytes(data), None)
        except (InvalidTag, ValueError) as e:
            raise DecryptionError("authentication failed") from e


class AesGcmCrypter:
    """Crypter producing AES-256-GCM ciphers over raw 32-byte keys."""

    async def generate_key(self) -> bytes:
        return AESGCM.generate_key(bit_length=KEY_SIZE * 8)

    async def import_key(self, raw: bytes) -> bytes:
        key = bytes(raw)
        if len(key) != KEY_SIZE:
            raise ValueError(f"Invalid key: must be {KEY_SIZE} bytes, got {len(key)}")
        return key

    async def export_key(self, key: bytes) -> bytes:
        return bytes(key)

    def create(self, key: bytes) -> AesGcmCipher:
        return AesGcmCipher(key)


def _load_public_key(public_key: bytes) -> ec.EllipticCurvePublicKey:
    return ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256K1(), bytes(public_key))


def generate_keypair() -> tuple[bytes, bytes]:
    """Generate a secp256k1 key pair.

    Returns:
        Tuple of (32-byte private scalar, 33-byte compressed public key).
    """
    private = ec.generate_private_key(ec.SECP256K1())
    private_bytes = private.private_numbers().private_value.to_bytes(PRIVATE_KEY_SIZE, "big")
    public_bytes = private.public_key().public_bytes(Encoding.X962, PublicFormat.CompressedPoint)
    return private_bytes, public_bytes


def derive_shared_secret(public_key: bytes, private_key: bytes) -> bytes:
    """Derive a 32-byte secret from our private key and a peer's public key.

    Both sides of a key pair exchange derive the same secret.

    Raises:
        ValueError: If the public key is not a valid secp256k1 point.
    """
    curve = ec.SECP256K1()
    peer = _load_public_key(public_key)
    own = ec.derive_private_key(int.from_bytes(bytes(private_key), "big"), curve)
    shared = own.exchange(ec.ECDH(), peer)
    return HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=None,
        info=SHARED_SECRET_INFO,
    ).derive(shared)


def shared_crypter(
    crypter: Crypter,
) -> Callable[[bytes, bytes], Awaitable[Cipher]]:
    """Build a function turning a (public, private) key pair into a cipher.

    Usage:
        make_cipher = shared_crypter(AesGcmCrypter())
        cipher = await make_cipher(their_public_key, my_private_key)
    """

    async def _make_cipher(public_key: bytes, private_key: bytes) -> Cipher:
        secret = derive_shared_secret(public_key, private_key)
        key = await crypter.import_key(secret)
        return crypter.create(key)

    return _make_cipher


def verify_pub(public_key: bytes) -> bool:
    """Check that bytes encode a valid secp256k1 public key."""
    try:
        _load_public_key(public_key)
    except (ValueError, TypeError):
        return False
    return True


def compressed_pub(public_key: bytes) -> bytes:
    """Convert a public key to its 33-byte compressed encoding.

    Raises:
        ValueError: If the public key is invalid.
    """
    return _load_public_key(public_key).public_bytes(
        Encoding.X962, PublicFormat.CompressedPoint
    )


async def encrypt_content(crypter: Crypter, content: ChunkSource) -> EncryptedPayload:
    """Encrypt content under a freshly generated key.

    A new key is generated on every call; callers must persist raw_key and
    iv alongside the resulting CID to decrypt later.
    """
    key = await crypter.generate_key()
    cipher = crypter.create(key)
    content_buf = await combine_chunks(content)
    cipherbytes, iv = await cipher.encrypt(content_buf)
    raw_key = await crypter.export_key(key)
    return EncryptedPayload(
        cipherbytes=bytes(cipherbytes),
        iv=base64.b64encode(iv).decode("ascii"),
        raw_key=base64.b64encode(raw_key).decode("ascii"),
    )


async def cat_cid(
    store: BlobStore,
    cid: Cid | str,
    crypter: Crypter | None = None,
    key: str | None = None,
    iv: str | None = None,
    on_progress: ProgressCallback | None = None,
) -> bytes:
    """Read a blob, decrypting it when a cipher bundle is supplied.

    Args:
        store: Blob store to read from.
        cid: Identifier of the blob.
        crypter: Cipher suite used for decryption.
        key: Base64-encoded raw key from encrypt_content.
        iv: Base64-encoded IV from encrypt_content.
        on_progress: Optional callback (bytes_so_far, total_size).

    Returns:
        The plaintext, the raw bytes when no full cipher bundle is given, or
        b"" when decryption fails.
    """
    stats = [stat async for stat in store.get(cid)]
    total = stats[0].size if stats else None
    content_buf = await combine_chunks(store.cat(cid), on_progress=on_progress, total=total)

    if not crypter or not key or not iv:
        return content_buf

    try:
        crypto_key = await crypter.import_key(base64.b64decode(key))
        cipher = crypter.create(crypto_key)
        return bytes(await cipher.decrypt(content_buf, base64.b64decode(iv)))
    except Exception:
        logger.exception("cat_cid failed: CID %s", cid)
        return b""
