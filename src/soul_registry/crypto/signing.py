"""Ed25519 signing and signature verification.

:func:`verify_signature` is the registry's only trust check. It is fed
attacker-controlled text on every mutation, so it never raises: malformed
encodings, wrong-length keys, and bad signatures all come back as ``False``.

:class:`Ed25519KeyManager` is the client-side counterpart (key generation
and signing) used by the CLI and the tests.
"""
from __future__ import annotations

import logging

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
)

from soul_registry.crypto.encoding import base58_encode, decode_key_material

logger = logging.getLogger(__name__)

PUBLIC_KEY_LENGTH = 32
SIGNATURE_LENGTH = 64


def _message_bytes(message: bytes | str) -> bytes:
    if isinstance(message, str):
        return message.encode("utf-8")
    return bytes(message)


def verify_signature(message: bytes | str, signature: str, public_key: str) -> bool:
    """Verify an Ed25519 *signature* over *message* with *public_key*.

    Parameters
    ----------
    message:
        Raw bytes, or a string that is UTF-8 encoded before verification.
    signature:
        64-byte signature as hex or base58 text.
    public_key:
        32-byte public key as hex or base58 text.

    Returns
    -------
    bool
        ``True`` only if the signature is valid. Never raises.
    """
    try:
        signature_bytes = decode_key_material(signature)
        key_bytes = decode_key_material(public_key)
        if len(key_bytes) != PUBLIC_KEY_LENGTH or len(signature_bytes) != SIGNATURE_LENGTH:
            logger.debug(
                "Rejecting signature: key length %d, signature length %d",
                len(key_bytes),
                len(signature_bytes),
            )
            return False
        verifier = Ed25519PublicKey.from_public_bytes(key_bytes)
        verifier.verify(signature_bytes, _message_bytes(message))
        return True
    except InvalidSignature:
        return False
    except (ValueError, TypeError, AttributeError) as exc:
        logger.debug("Signature verification error: %s", exc)
        return False


class Ed25519KeyManager:
    """Ed25519 key management for clients: generate, sign, and verify.

    Keys are handled as raw bytes; :meth:`public_key_hex` and
    :meth:`public_key_base58` render them in the encodings the registry
    accepts.

    Example
    -------
    ::

        manager = Ed25519KeyManager()
        private_bytes, public_bytes = manager.generate_keypair()
        signature = manager.sign(private_bytes, "hello world")
        assert verify_signature("hello world", signature.hex(), public_bytes.hex())
    """

    def generate_keypair(self) -> tuple[bytes, bytes]:
        """Generate a new keypair as ``(private_key_bytes, public_key_bytes)``."""
        private_key = Ed25519PrivateKey.generate()
        private_bytes = private_key.private_bytes(
            Encoding.Raw, PrivateFormat.Raw, NoEncryption()
        )
        public_bytes = private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
        return private_bytes, public_bytes

    def public_key_for(self, private_key_bytes: bytes) -> bytes:
        """Derive the 32-byte public key from a raw private key."""
        private_key = Ed25519PrivateKey.from_private_bytes(private_key_bytes)
        return private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)

    def sign(self, private_key_bytes: bytes, data: bytes | str) -> bytes:
        """Sign *data* (UTF-8 encoded when a string) and return the 64-byte signature."""
        private_key = Ed25519PrivateKey.from_private_bytes(private_key_bytes)
        return private_key.sign(_message_bytes(data))

    def verify(self, public_key_bytes: bytes, signature: bytes, data: bytes | str) -> bool:
        """Verify a raw-bytes signature. Returns ``False`` on any failure."""
        return verify_signature(data, signature.hex(), public_key_bytes.hex())

    @staticmethod
    def public_key_hex(public_key_bytes: bytes) -> str:
        return public_key_bytes.hex()

    @staticmethod
    def public_key_base58(public_key_bytes: bytes) -> str:
        """Render a public key as multibase base58btc (``z`` prefix)."""
        return "z" + base58_encode(public_key_bytes)


__all__ = [
    "Ed25519KeyManager",
    "PUBLIC_KEY_LENGTH",
    "SIGNATURE_LENGTH",
    "verify_signature",
]
