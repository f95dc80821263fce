"""ChallengeManager: one-time nonces proving live possession of a soul's key.

State machine
-------------
``pending -> completed`` on a verified response, ``pending -> expired`` when
a response arrives after ``expires_at``. Both targets are terminal. Every
transition is a compare-and-set against the store, so a completion racing a
sweep or a second completion has exactly one winner; the loser reports
``CHALLENGE_USED`` or ``CHALLENGE_EXPIRED`` and never double-completes.
"""
from __future__ import annotations

import datetime
import logging
import secrets
from typing import Callable

from soul_registry.crypto.signing import verify_signature
from soul_registry.errors import (
    ChallengeExpiredError,
    ChallengeNotFoundError,
    ChallengeUsedError,
    DidMismatchError,
    InvalidSignatureError,
)
from soul_registry.registry.records import (
    Challenge,
    ChallengeStatus,
    SoulRecord,
    VerificationOutcome,
)
from soul_registry.registry.store import SoulStore
from soul_registry.timeutil import utcnow

logger = logging.getLogger(__name__)

DEFAULT_CHALLENGE_TTL = datetime.timedelta(minutes=5)
NONCE_BYTES = 32
CHALLENGE_ID_BYTES = 16
CHALLENGE_ID_PREFIX = "ch_"


def generate_nonce() -> str:
    """Return 32 random bytes as 64 lowercase hex characters."""
    return secrets.token_hex(NONCE_BYTES)


def generate_challenge_id() -> str:
    """Return an unguessable challenge id, ``ch_`` followed by 32 hex characters."""
    return CHALLENGE_ID_PREFIX + secrets.token_hex(CHALLENGE_ID_BYTES)


class ChallengeManager:
    """Issue, complete, and sweep verification challenges.

    Parameters
    ----------
    store:
        Backing store holding the challenge table.
    ttl:
        Validity window of a challenge from issuance.
    clock:
        Returns the current aware UTC datetime. Injected for tests.
    """

    def __init__(
        self,
        store: SoulStore,
        ttl: datetime.timedelta = DEFAULT_CHALLENGE_TTL,
        clock: Callable[[], datetime.datetime] = utcnow,
    ) -> None:
        self._store = store
        self._ttl = ttl
        self._clock = clock

    @property
    def ttl(self) -> datetime.timedelta:
        return self._ttl

    def issue(self, did: str) -> Challenge:
        """Create and persist a fresh ``pending`` challenge for *did*."""
        now = self._clock()
        challenge = Challenge(
            challenge_id=generate_challenge_id(),
            did=did,
            nonce=generate_nonce(),
            issued_at=now,
            expires_at=now + self._ttl,
        )
        self._store.create_challenge(challenge)
        logger.debug("Issued challenge %s for %s", challenge.challenge_id, did)
        return challenge

    def complete(
        self,
        challenge_id: str,
        signature: str,
        resolve_subject: Callable[[], SoulRecord],
    ) -> VerificationOutcome:
        """Check a signed response to a challenge and consume it.

        Parameters
        ----------
        challenge_id:
            The challenge being answered.
        signature:
            Signature over the raw nonce string, hex or base58.
        resolve_subject:
            Returns the soul the caller claims to be. May raise
            :class:`~soul_registry.errors.SoulNotFoundError`.

        Returns
        -------
        VerificationOutcome
            On success. The caller is responsible for bumping the subject's
            verification bookkeeping.

        Raises
        ------
        ChallengeNotFoundError
        ChallengeExpiredError
            Also moves a ``pending`` challenge to ``expired``.
        ChallengeUsedError
        DidMismatchError
            The challenge was issued to a different soul.
        InvalidSignatureError
            The challenge stays ``pending`` and may be answered again.
        """
        challenge = self._store.get_challenge(challenge_id)
        if challenge is None:
            raise ChallengeNotFoundError(challenge_id)

        now = self._clock()
        if challenge.is_expired(now):
            self._store.transition_challenge(
                challenge_id, ChallengeStatus.PENDING, ChallengeStatus.EXPIRED
            )
            raise ChallengeExpiredError(challenge_id)

        if challenge.status != ChallengeStatus.PENDING:
            raise ChallengeUsedError(challenge_id)

        subject = resolve_subject()
        if challenge.did.lower() != subject.did.lower():
            raise DidMismatchError("Challenge was issued for a different soul")

        if not verify_signature(challenge.nonce, signature, subject.public_key):
            raise InvalidSignatureError()

        if not self._store.transition_challenge(
            challenge_id, ChallengeStatus.PENDING, ChallengeStatus.COMPLETED
        ):
            current = self._store.get_challenge(challenge_id)
            if current is None or current.status == ChallengeStatus.EXPIRED:
                raise ChallengeExpiredError(challenge_id)
            raise ChallengeUsedError(challenge_id)

        logger.debug("Completed challenge %s for %s", challenge_id, subject.did)
        return VerificationOutcome(
            did=subject.did,
            challenge_id=challenge_id,
            verified_at=self._clock(),
        )

    def sweep(self) -> int:
        """Delete ``pending`` challenges past expiry. Returns how many were removed."""
        return self._store.delete_expired_challenges(self._clock())


__all__ = [
    "CHALLENGE_ID_PREFIX",
    "ChallengeManager",
    "DEFAULT_CHALLENGE_TTL",
    "generate_challenge_id",
    "generate_nonce",
]
