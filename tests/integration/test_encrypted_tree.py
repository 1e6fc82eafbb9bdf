"""End-to-end tests for encrypted content stored in a synced tree."""

from __future__ import annotations

import base64
import os

import pytest

from syncedtree.core.cid import Cid
from syncedtree.core.crypto import (
    AesGcmCrypter,
    cat_cid,
    encrypt_content,
    generate_keypair,
    shared_crypter,
)
from syncedtree.core.paths import ROOT_PATH
from tests.integration.conftest import TreePeers


class TestEncryptedTree:
    """Tests for sharing encrypted files between peers."""

    @pytest.mark.asyncio
    async def test_encrypted_upload_round_trip(self, peers: TreePeers) -> None:
        """Ciphertext uploaded by one peer decrypts on the other."""
        crypter = AesGcmCrypter()
        plaintext = os.urandom(200 * 1024)
        payload = await encrypt_content(crypter, plaintext)

        await peers.alice.tree.upload(ROOT_PATH, payload.cipherbytes)
        await peers.settle()

        [path] = peers.bob.tree.fs.ls(ROOT_PATH)
        cid = await peers.bob.tree.read(path)
        assert cid == Cid.from_content(payload.cipherbytes)

        result = await cat_cid(
            peers.store, cid, crypter=crypter, key=payload.raw_key, iv=payload.iv
        )
        assert result == plaintext

    @pytest.mark.asyncio
    async def test_wrong_key_yields_empty(self, peers: TreePeers) -> None:
        """A reader holding the wrong key gets empty bytes, not an error."""
        crypter = AesGcmCrypter()
        payload = await encrypt_content(crypter, b"for alice only")
        await peers.alice.tree.upload(ROOT_PATH, payload.cipherbytes)
        await peers.settle()

        [path] = peers.bob.tree.fs.ls(ROOT_PATH)
        other_key = base64.b64encode(await crypter.generate_key()).decode("ascii")

        result = await cat_cid(
            peers.store, await peers.bob.tree.read(path),
            crypter=crypter, key=other_key, iv=payload.iv,
        )
        assert result == b""

    @pytest.mark.asyncio
    async def test_key_agreement_protects_shared_file(self, peers: TreePeers) -> None:
        """Peers derive one cipher from their key pairs to exchange a file key."""
        crypter = AesGcmCrypter()
        make_cipher = shared_crypter(crypter)
        alice_priv, alice_pub = generate_keypair()
        bob_priv, bob_pub = generate_keypair()

        payload = await encrypt_content(crypter, b"quarterly report")
        await peers.alice.tree.mkdir(ROOT_PATH, "shared")
        await peers.alice.tree.upload("/r/shared", payload.cipherbytes)

        # Alice wraps the file key for Bob
        to_bob = await make_cipher(bob_pub, alice_priv)
        wrapped_key, wrap_iv = await to_bob.encrypt(base64.b64decode(payload.raw_key))
        await peers.settle()

        from_alice = await make_cipher(alice_pub, bob_priv)
        file_key = await from_alice.decrypt(wrapped_key, wrap_iv)
        [path] = peers.bob.tree.fs.ls("/r/shared")

        result = await cat_cid(
            peers.store,
            await peers.bob.tree.read(path),
            crypter=crypter,
            key=base64.b64encode(file_key).decode("ascii"),
            iv=payload.iv,
        )
        assert result == b"quarterly report"
