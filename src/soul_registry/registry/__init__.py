"""Soul registry core.

Provides :class:`SoulRegistry` (registration and signature-gated mutation),
the :class:`ChallengeManager` liveness protocol, and the storage contract
with in-memory and SQLite implementations.

Quick start
-----------
::

    from soul_registry.registry import InMemorySoulStore, SoulRegistry

    registry = SoulRegistry(InMemorySoulStore())
    record = registry.register(document, signature)
    challenge = registry.issue_challenge(record.did)
    outcome = registry.complete_challenge(record.did, challenge.challenge_id, nonce_signature)
"""
from __future__ import annotations

from soul_registry.registry.audit import AuditEvent, RegistryAuditLogger
from soul_registry.registry.challenges import ChallengeManager
from soul_registry.registry.documents import (
    BirthCertificate,
    Contact,
    RiskLevel,
    SoulDocument,
    SoulStatus,
    derive_did,
)
from soul_registry.registry.engine import SoulRegistry
from soul_registry.registry.records import (
    Challenge,
    ChallengeStatus,
    SearchPage,
    SearchQuery,
    SoulRecord,
    VerificationOutcome,
)
from soul_registry.registry.sqlite_store import SQLiteSoulStore
from soul_registry.registry.store import InMemorySoulStore, SoulStore

__all__ = [
    "AuditEvent",
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
]
