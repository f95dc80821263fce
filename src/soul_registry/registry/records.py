"""Stored state: soul records and verification challenges."""
from __future__ import annotations

import datetime
from dataclasses import dataclass, field, replace
from enum import Enum

from soul_registry.registry.documents import (
    BirthCertificate,
    Contact,
    RiskLevel,
    SoulDocument,
    SoulStatus,
)
from soul_registry.timeutil import format_timestamp


@dataclass
class SoulRecord:
    """The durable identity record for a registered soul.

    Parameters
    ----------
    did:
        ``did:soul:<name lower-cased>``. Unique and immutable.
    name:
        The registered name as submitted. Unique case-insensitively, immutable.
    public_key:
        Verification key for every later signed operation. Immutable.
    birth:
        Write-once origin certificate.
    registered_at:
        Server-assigned UTC creation time.
    status:
        Current lifecycle status. Records are never deleted; revocation is a
        status.
    verification_count:
        Number of completed challenges.
    version:
        Incremented by the store on every mutation. Internal; not part of the
        public view.
    """

    did: str
    name: str
    public_key: str
    birth: BirthCertificate
    registered_at: datetime.datetime
    avatar: str | None = None
    description: str | None = None
    website: str | None = None
    contact: Contact | None = None
    capabilities: list[str] | None = None
    risk_level: RiskLevel | None = None
    status: SoulStatus = SoulStatus.ACTIVE
    status_reason: str | None = None
    status_changed_at: datetime.datetime | None = None
    last_verified_at: datetime.datetime | None = None
    verification_count: int = 0
    version: int = 1

    @classmethod
    def from_document(
        cls, document: SoulDocument, did: str, registered_at: datetime.datetime
    ) -> SoulRecord:
        """Build a fresh ``active`` record from a verified registration document."""
        return cls(
            did=did,
            name=document.name,
            public_key=document.public_key,
            birth=document.birth.model_copy(),
            registered_at=registered_at,
            avatar=document.avatar,
            description=document.description,
            website=document.website,
            contact=document.contact.model_copy() if document.contact else None,
        )

    def copy(self) -> SoulRecord:
        """Return a detached copy safe to hand out of a store."""
        return replace(
            self,
            birth=self.birth.model_copy(),
            contact=self.contact.model_copy(deep=True) if self.contact else None,
            capabilities=list(self.capabilities) if self.capabilities is not None else None,
        )

    def to_public_dict(self) -> dict[str, object]:
        """Serialize to the public wire view. Internal fields are stripped."""
        data: dict[str, object] = {
            "did": self.did,
            "name": self.name,
            "publicKey": self.public_key,
            "birth": self.birth.to_wire(),
            "avatar": self.avatar,
            "description": self.description,
            "website": self.website,
            "contact": self.contact.to_wire() if self.contact else None,
            "capabilities": list(self.capabilities) if self.capabilities is not None else None,
            "riskLevel": self.risk_level.value if self.risk_level else None,
            "status": self.status.value,
            "statusReason": self.status_reason,
            "statusChangedAt": _maybe_format(self.status_changed_at),
            "registeredAt": format_timestamp(self.registered_at),
            "lastVerifiedAt": _maybe_format(self.last_verified_at),
            "verificationCount": self.verification_count,
        }
        return {key: value for key, value in data.items() if value is not None}


def _maybe_format(moment: datetime.datetime | None) -> str | None:
    return format_timestamp(moment) if moment is not None else None


class ChallengeStatus(str, Enum):
    """``pending`` moves exactly once, to ``completed`` or ``expired``."""

    PENDING = "pending"
    COMPLETED = "completed"
    EXPIRED = "expired"


@dataclass
class Challenge:
    """A one-time liveness proof request issued to a soul.

    The subject proves possession of its key by signing ``nonce``.
    """

    challenge_id: str
    did: str
    nonce: str
    issued_at: datetime.datetime
    expires_at: datetime.datetime
    status: ChallengeStatus = ChallengeStatus.PENDING

    def is_expired(self, now: datetime.datetime) -> bool:
        return now > self.expires_at

    def to_dict(self) -> dict[str, object]:
        return {
            "challengeId": self.challenge_id,
            "did": self.did,
            "nonce": self.nonce,
            "issuedAt": format_timestamp(self.issued_at),
            "expiresAt": format_timestamp(self.expires_at),
            "status": self.status.value,
        }


@dataclass(frozen=True)
class VerificationOutcome:
    """Result of a successfully completed challenge."""

    did: str
    challenge_id: str
    verified_at: datetime.datetime
    verified: bool = True


@dataclass
class SearchQuery:
    """Criteria for :meth:`SoulStore.search`.

    ``name`` and ``operator`` are patterns where ``*`` matches any run of
    characters; without ``*`` they match exactly (case-insensitive).
    """

    name: str | None = None
    operator: str | None = None
    status: SoulStatus | None = None
    registered_after: datetime.datetime | None = None
    registered_before: datetime.datetime | None = None
    limit: int = 20
    offset: int = 0


@dataclass
class SearchPage:
    results: list[SoulRecord] = field(default_factory=list)
    total: int = 0
    limit: int = 20
    offset: int = 0


__all__ = [
    "Challenge",
    "ChallengeStatus",
    "SearchPage",
    "SearchQuery",
    "SoulRecord",
    "VerificationOutcome",
]
