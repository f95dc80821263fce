"""Cryptographic primitives for the soul registry.

Canonical document hashing, hex/base58 key codecs, and Ed25519 signature
verification.

Quick start
-----------
::

    from soul_registry.crypto import Ed25519KeyManager, hash_document, verify_signature

    manager = Ed25519KeyManager()
    private_bytes, public_bytes = manager.generate_keypair()
    digest = hash_document({"name": "nexus", "publicKey": public_bytes.hex()})
    signature = manager.sign(private_bytes, digest).hex()
    assert verify_signature(digest, signature, public_bytes.hex())
"""
from __future__ import annotations

from soul_registry.crypto.canonical import canonicalize, hash_document
from soul_registry.crypto.encoding import (
    base58_decode,
    base58_encode,
    decode_key_material,
    is_hex,
)
from soul_registry.crypto.signing import Ed25519KeyManager, verify_signature

__all__ = [
    "Ed25519KeyManager",
    "base58_decode",
    "base58_encode",
    "canonicalize",
    "decode_key_material",
    "hash_document",
    "is_hex",
    "verify_signature",
]
