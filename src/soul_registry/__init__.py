"""soul-registry: verifiable identity registry for autonomous agents.

An agent binds a self-generated Ed25519 public key to a human-readable name
and later proves it still holds the private key through signed challenges.
Every change to a record is gated on a fresh signature.

Public API
----------
The stable public surface is everything exported from this module.
Anything inside submodules not re-exported here is considered private
and may change without notice.

Example
-------
>>> import soul_registry
>>> soul_registry.__version__
'0.1.0'

Quick start
-----------
::

    from soul_registry import InMemorySoulStore, SoulRegistry

    registry = SoulRegistry(InMemorySoulStore())
    record = registry.register(document, signature)
"""
from __future__ import annotations

__version__: str = "0.1.0"

# ------------------------------------------------------------------
# Crypto
# ------------------------------------------------------------------
from soul_registry.crypto import (
    Ed25519KeyManager,
    canonicalize,
    decode_key_material,
    hash_document,
    verify_signature,
)

# ------------------------------------------------------------------
# Errors
# ------------------------------------------------------------------
from soul_registry.errors import (
    ChallengeExpiredError,
    ChallengeNotFoundError,
    ChallengeUsedError,
    ConcurrentModificationError,
    DidMismatchError,
    ErrorKind,
    InvalidSignatureError,
    NameTakenError,
    RegistryError,
    SoulNotFoundError,
    TimestampExpiredError,
)

# ------------------------------------------------------------------
# Registry core
# ------------------------------------------------------------------
from soul_registry.registry import (
    BirthCertificate,
    Challenge,
    ChallengeManager,
    ChallengeStatus,
    Contact,
    InMemorySoulStore,
    RegistryAuditLogger,
    RiskLevel,
    SearchPage,
    SearchQuery,
    SoulDocument,
    SoulRecord,
    SoulRegistry,
    SoulStatus,
    SoulStore,
    SQLiteSoulStore,
    VerificationOutcome,
    derive_did,
)
from soul_registry.registry.messages import (
    capabilities_update_message,
    contact_update_message,
    status_change_message,
)

__all__ = [
    "__version__",
    # crypto
    "Ed25519KeyManager",
    "canonicalize",
    "decode_key_material",
    "hash_document",
    "verify_signature",
    # errors
    "ChallengeExpiredError",
    "ChallengeNotFoundError",
    "ChallengeUsedError",
    "ConcurrentModificationError",
    "DidMismatchError",
    "ErrorKind",
    "InvalidSignatureError",
    "NameTakenError",
    "RegistryError",
    "SoulNotFoundError",
    "TimestampExpiredError",
    # registry
    "BirthCertificate",
    "Challenge",
    "ChallengeManager",
    "ChallengeStatus",
    "Contact",
    "InMemorySoulStore",
    "RegistryAuditLogger",
    "RiskLevel",
    "SQLiteSoulStore",
    "SearchPage",
    "SearchQuery",
    "SoulDocument",
    "SoulRecord",
    "SoulRegistry",
    "SoulStatus",
    "SoulStore",
    "VerificationOutcome",
    "derive_did",
    # signing messages
    "capabilities_update_message",
    "contact_update_message",
    "status_change_message",
]
