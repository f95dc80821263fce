"""SoulRegistry: registration and signature-gated mutation of soul records.

Every state change passes a fresh signature check before the store is
touched:

- registration is signed over ``hash_document(document)`` with the key the
  document itself declares (self-asserted key binding, no prior anchor);
- contact, capabilities, and status updates are signed over a message built
  from an operation tag, the DID and a client timestamp, with the key
  already on record, and the timestamp must be inside the freshness window;
- liveness checks answer a server-issued nonce through
  :class:`~soul_registry.registry.challenges.ChallengeManager`.

Signed updates on one subject are serialized by a striped lock and written
with an ``expected_version`` compare-and-swap. A completed challenge bumps
the verification counters with a single atomic increment in the store, so a
spent challenge always shows up in ``verification_count``. Reads take no lock.
"""
from __future__ import annotations

import datetime
import logging
import threading
from typing import Callable

from soul_registry.crypto.canonical import hash_document
from soul_registry.crypto.signing import verify_signature
from soul_registry.errors import (
    DidMismatchError,
    InvalidSignatureError,
    NameTakenError,
    SoulNotFoundError,
    TimestampExpiredError,
)
from soul_registry.registry.audit import RegistryAuditLogger
from soul_registry.registry.challenges import DEFAULT_CHALLENGE_TTL, ChallengeManager
from soul_registry.registry.documents import (
    DID_PREFIX,
    Contact,
    RiskLevel,
    SoulDocument,
    SoulStatus,
    derive_did,
)
from soul_registry.registry.messages import (
    capabilities_update_message,
    contact_update_message,
    status_change_message,
)
from soul_registry.registry.records import (
    Challenge,
    SearchPage,
    SearchQuery,
    SoulRecord,
    VerificationOutcome,
)
from soul_registry.registry.store import SoulStore
from soul_registry.timeutil import parse_timestamp, utcnow

logger = logging.getLogger(__name__)

DEFAULT_FRESHNESS_WINDOW = datetime.timedelta(minutes=5)
LOCK_STRIPES = 64


class _LockTable:
    """Maps keys onto a fixed set of locks.

    Keys that hash to the same stripe share a lock, so the table never grows
    with the number of distinct names or DIDs seen. Callers must not hold two
    stripes of one table at once.
    """

    def __init__(self, stripes: int = LOCK_STRIPES) -> None:
        self._locks = tuple(threading.Lock() for _ in range(stripes))

    def __len__(self) -> int:
        return len(self._locks)

    def get(self, key: str) -> threading.Lock:
        return self._locks[hash(key) % len(self._locks)]


class SoulRegistry:
    """The registry core.

    Parameters
    ----------
    store:
        Storage collaborator. There is no default or shared instance; every
        registry is handed its store explicitly.
    challenge_ttl:
        Lifetime of an issued challenge.
    freshness_window:
        Maximum distance between a signed client timestamp and server time.
    clock:
        Returns the current aware UTC datetime. Injected for tests.
    audit_logger:
        Optional audit trail for successful mutations.

    Example
    -------
    ::

        registry = SoulRegistry(InMemorySoulStore())
        record = registry.register(document, signature)
        challenge = registry.issue_challenge(record.did)
    """

    def __init__(
        self,
        store: SoulStore,
        challenge_ttl: datetime.timedelta = DEFAULT_CHALLENGE_TTL,
        freshness_window: datetime.timedelta = DEFAULT_FRESHNESS_WINDOW,
        clock: Callable[[], datetime.datetime] = utcnow,
        audit_logger: RegistryAuditLogger | None = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._freshness_window = freshness_window
        self._challenges = ChallengeManager(store, ttl=challenge_ttl, clock=clock)
        self._audit = audit_logger
        self._subject_locks = _LockTable()
        self._name_locks = _LockTable()

    @property
    def store(self) -> SoulStore:
        return self._store

    @property
    def challenges(self) -> ChallengeManager:
        return self._challenges

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, document: SoulDocument, signature: str) -> SoulRecord:
        """Register a new soul from a signed document.

        Gates, in order; a failing gate leaves no trace:

        1. ``document.did`` must be the DID derived from ``document.name``.
        2. The name must not be taken (case-insensitive).
        3. *signature* must verify over ``hash_document(document)`` with
           ``document.public_key``.

        Returns
        -------
        SoulRecord
            The stored ``active`` record with server-assigned ``registered_at``.

        Raises
        ------
        DidMismatchError
        NameTakenError
            Also raised when a concurrent registration wins the insert.
        InvalidSignatureError
        """
        expected_did = derive_did(document.name)
        if document.did.lower() != expected_did:
            raise DidMismatchError(f"DID must match name ({DID_PREFIX}{{name}})")

        with self._name_locks.get(document.name.lower()):
            if self._store.get_by_name(document.name) is not None:
                raise NameTakenError(document.name)

            digest = hash_document(document.signing_payload())
            if not verify_signature(digest, signature, document.public_key):
                raise InvalidSignatureError()

            record = SoulRecord.from_document(
                document, did=expected_did, registered_at=self._clock()
            )
            stored = self._store.create_soul(record)

        logger.info("Registered soul %s", stored.did)
        self._audit_event(
            "soul_registered", stored.did, operator=stored.birth.operator, document_hash=digest
        )
        return stored

    # ------------------------------------------------------------------
    # Resolution & search
    # ------------------------------------------------------------------

    def resolve(self, ref: str) -> SoulRecord:
        """Look up a soul by DID (``did:soul:...``) or by name.

        Raises
        ------
        SoulNotFoundError
        """
        if ref.lower().startswith(DID_PREFIX):
            record = self._store.get_by_did(ref)
        else:
            record = self._store.get_by_name(ref)
        if record is None:
            raise SoulNotFoundError(ref)
        return record

    def search(self, query: SearchQuery) -> SearchPage:
        return self._store.search(query)

    # ------------------------------------------------------------------
    # Signed metadata updates
    # ------------------------------------------------------------------

    def update_contact(
        self, ref: str, contact: Contact, signature: str, timestamp: str
    ) -> SoulRecord:
        """Replace the contact block. Signed over ``contact-update:<did>:<timestamp>``.

        Raises
        ------
        SoulNotFoundError
        TimestampExpiredError
        InvalidSignatureError
        """
        record = self._apply_signed_update(
            ref,
            timestamp,
            signature,
            message_for=lambda did: contact_update_message(did, timestamp),
            changes={"contact": contact},
        )
        self._audit_event("contact_updated", record.did, version=record.version)
        return record

    def update_capabilities(
        self,
        ref: str,
        capabilities: list[str],
        risk_level: RiskLevel | None,
        signature: str,
        timestamp: str,
    ) -> SoulRecord:
        """Replace capabilities and risk level.

        Signed over ``capabilities-update:<did>:<timestamp>``. A missing
        *risk_level* clears the stored one.
        """
        record = self._apply_signed_update(
            ref,
            timestamp,
            signature,
            message_for=lambda did: capabilities_update_message(did, timestamp),
            changes={"capabilities": list(capabilities), "risk_level": risk_level},
        )
        self._audit_event(
            "capabilities_updated",
            record.did,
            capabilities=list(capabilities),
            risk_level=risk_level.value if risk_level else None,
        )
        return record

    def change_status(
        self,
        ref: str,
        status: SoulStatus,
        reason: str,
        signature: str,
        timestamp: str,
    ) -> SoulRecord:
        """Move a soul to *status*. Signed over ``<status>:<did>:<reason>:<timestamp>``.

        Any status may move to any other, ``revoked -> active`` included;
        the only requirement is a signature from the current key holder.
        """
        status = SoulStatus(status)
        record = self._apply_signed_update(
            ref,
            timestamp,
            signature,
            message_for=lambda did: status_change_message(status, did, reason, timestamp),
            changes={
                "status": status,
                "status_reason": reason,
                "status_changed_at": self._clock(),
            },
        )
        logger.info("Soul %s is now %s", record.did, status.value)
        self._audit_event("status_changed", record.did, status=status.value, reason=reason)
        return record

    def _apply_signed_update(
        self,
        ref: str,
        timestamp: str,
        signature: str,
        message_for: Callable[[str], str],
        changes: dict[str, object],
    ) -> SoulRecord:
        subject = self.resolve(ref)
        self._check_freshness(timestamp)
        with self._subject_locks.get(subject.did):
            # Re-read under the lock so expected_version is current
            subject = self.resolve(subject.did)
            if not verify_signature(message_for(subject.did), signature, subject.public_key):
                raise InvalidSignatureError()
            return self._store.update_soul(
                subject.did, changes, expected_version=subject.version
            )

    def _check_freshness(self, timestamp: str) -> None:
        try:
            signed_at = parse_timestamp(timestamp)
        except ValueError as exc:
            raise TimestampExpiredError(f"Timestamp {timestamp!r} is not a valid datetime") from exc
        skew = abs(self._clock() - signed_at)
        if skew > self._freshness_window:
            minutes = int(self._freshness_window.total_seconds() // 60)
            raise TimestampExpiredError(f"Timestamp outside freshness window (max {minutes} minutes)")

    # ------------------------------------------------------------------
    # Challenge-response
    # ------------------------------------------------------------------

    def issue_challenge(self, ref: str) -> Challenge:
        """Issue a liveness challenge for the soul *ref* resolves to.

        Raises
        ------
        SoulNotFoundError
        """
        subject = self.resolve(ref)
        challenge = self._challenges.issue(subject.did)
        self._audit_event("challenge_issued", subject.did, challenge_id=challenge.challenge_id)
        return challenge

    def complete_challenge(self, ref: str, challenge_id: str, signature: str) -> VerificationOutcome:
        """Answer a challenge on behalf of the soul *ref* resolves to.

        On success ``verification_count`` is incremented and
        ``last_verified_at`` set.

        Raises
        ------
        ChallengeNotFoundError
        ChallengeExpiredError
        ChallengeUsedError
        SoulNotFoundError
        DidMismatchError
        InvalidSignatureError
        """
        outcome = self._challenges.complete(
            challenge_id, signature, resolve_subject=lambda: self.resolve(ref)
        )
        self._store.record_verification(outcome.did, outcome.verified_at)
        logger.info("Verified soul %s via challenge %s", outcome.did, challenge_id)
        self._audit_event("challenge_completed", outcome.did, challenge_id=challenge_id)
        return outcome

    def sweep_challenges(self) -> int:
        """Remove expired pending challenges. Returns how many were removed."""
        removed = self._challenges.sweep()
        if removed:
            logger.info("Cleaned %d expired challenges", removed)
        return removed

    def _audit_event(self, event_type: str, did: str, **details: object) -> None:
        if self._audit is not None:
            self._audit.log_event(event_type, did, **details)


__all__ = ["DEFAULT_FRESHNESS_WINDOW", "SoulRegistry"]
