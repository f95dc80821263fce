"""Soul storage: abstract interface and in-memory implementation.

:class:`SoulStore` is the contract the registry core depends on: point
lookups by DID and by case-insensitive name, predicate search, atomic
versioned updates, and a challenge table with compare-and-set status
transitions. :class:`InMemorySoulStore` keeps everything in dictionaries
behind a single :class:`threading.Lock`; the SQLite implementation lives in
:mod:`soul_registry.registry.sqlite_store`.

Every record handed out of a store is a detached copy. Callers mutate state
only through :meth:`SoulStore.update_soul` and the challenge methods.
"""
from __future__ import annotations

import datetime
import re
import threading
from abc import ABC, abstractmethod

from soul_registry.errors import (
    ConcurrentModificationError,
    NameTakenError,
    SoulNotFoundError,
)
from soul_registry.registry.records import (
    Challenge,
    ChallengeStatus,
    SearchPage,
    SearchQuery,
    SoulRecord,
)

#: Record attributes that :meth:`SoulStore.update_soul` may change.
MUTABLE_FIELDS: frozenset[str] = frozenset(
    {
        "avatar",
        "description",
        "website",
        "contact",
        "capabilities",
        "risk_level",
        "status",
        "status_reason",
        "status_changed_at",
        "last_verified_at",
        "verification_count",
    }
)


def compile_pattern(pattern: str) -> re.Pattern[str]:
    """Translate a ``*`` wildcard pattern into a case-insensitive full-match regex."""
    parts = [re.escape(part) for part in pattern.split("*")]
    return re.compile("^" + ".*".join(parts) + "$", re.IGNORECASE | re.DOTALL)


def check_mutable_fields(changes: dict[str, object]) -> None:
    illegal = set(changes) - MUTABLE_FIELDS
    if illegal:
        raise ValueError(f"Fields {sorted(illegal)} are immutable or unknown.")


class SoulStore(ABC):
    """Abstract base class for soul registry storage backends."""

    # ------------------------------------------------------------------
    # Souls
    # ------------------------------------------------------------------

    @abstractmethod
    def create_soul(self, record: SoulRecord) -> SoulRecord:
        """Persist a new record atomically.

        Raises
        ------
        NameTakenError
            If a record with the same DID or case-insensitive name exists.
        """

    @abstractmethod
    def get_by_did(self, did: str) -> SoulRecord | None:
        """Return the record for *did* (case-insensitive), or None."""

    @abstractmethod
    def get_by_name(self, name: str) -> SoulRecord | None:
        """Return the record named *name* (case-insensitive), or None."""

    @abstractmethod
    def update_soul(
        self,
        did: str,
        changes: dict[str, object],
        expected_version: int | None = None,
    ) -> SoulRecord:
        """Apply *changes* and increment ``version`` in one atomic step.

        Parameters
        ----------
        did:
            The record to update.
        changes:
            Attribute name to new value. Only :data:`MUTABLE_FIELDS` are
            accepted.
        expected_version:
            When given, the update only applies if the stored version still
            equals it.

        Raises
        ------
        SoulNotFoundError
            If *did* is not stored.
        ConcurrentModificationError
            If *expected_version* no longer matches.
        """

    @abstractmethod
    def record_verification(self, did: str, verified_at: datetime.datetime) -> SoulRecord:
        """Increment ``verification_count``, set ``last_verified_at`` and bump
        ``version`` in one atomic step.

        Applies on top of whatever is stored, so a concurrent writer can
        never make it fail.

        Raises
        ------
        SoulNotFoundError
            If *did* is not stored.
        """

    @abstractmethod
    def search(self, query: SearchQuery) -> SearchPage:
        """Return one page of matching records, newest registration first."""

    @abstractmethod
    def count_souls(self) -> int:
        """Return the number of stored records."""

    # ------------------------------------------------------------------
    # Challenges
    # ------------------------------------------------------------------

    @abstractmethod
    def create_challenge(self, challenge: Challenge) -> None:
        """Persist a newly issued challenge."""

    @abstractmethod
    def get_challenge(self, challenge_id: str) -> Challenge | None:
        """Return the challenge with *challenge_id*, or None."""

    @abstractmethod
    def transition_challenge(
        self,
        challenge_id: str,
        from_status: ChallengeStatus,
        to_status: ChallengeStatus,
    ) -> bool:
        """Compare-and-set a challenge's status.

        Returns True only if the challenge existed with *from_status* and now
        has *to_status*.
        """

    @abstractmethod
    def delete_expired_challenges(self, now: datetime.datetime) -> int:
        """Delete ``pending`` challenges whose ``expires_at`` is before *now*."""

    def close(self) -> None:
        """Release any resources held by the store."""


class InMemorySoulStore(SoulStore):
    """Dictionary-backed store. Thread-safe.

    Example
    -------
    ::

        store = InMemorySoulStore()
        registry = SoulRegistry(store)
    """

    def __init__(self) -> None:
        self._souls: dict[str, SoulRecord] = {}
        self._names: dict[str, str] = {}
        self._challenges: dict[str, Challenge] = {}
        self._lock = threading.Lock()

    def create_soul(self, record: SoulRecord) -> SoulRecord:
        did_key = record.did.lower()
        name_key = record.name.lower()
        with self._lock:
            if did_key in self._souls or name_key in self._names:
                raise NameTakenError(record.name)
            stored = record.copy()
            self._souls[did_key] = stored
            self._names[name_key] = did_key
            return stored.copy()

    def get_by_did(self, did: str) -> SoulRecord | None:
        with self._lock:
            record = self._souls.get(did.lower())
            return record.copy() if record is not None else None

    def get_by_name(self, name: str) -> SoulRecord | None:
        with self._lock:
            did_key = self._names.get(name.lower())
            if did_key is None:
                return None
            return self._souls[did_key].copy()

    def update_soul(
        self,
        did: str,
        changes: dict[str, object],
        expected_version: int | None = None,
    ) -> SoulRecord:
        check_mutable_fields(changes)
        with self._lock:
            record = self._souls.get(did.lower())
            if record is None:
                raise SoulNotFoundError(did)
            if expected_version is not None and record.version != expected_version:
                raise ConcurrentModificationError(did, expected_version)
            for attribute, value in changes.items():
                setattr(record, attribute, value)
            record.version += 1
            return record.copy()

    def record_verification(self, did: str, verified_at: datetime.datetime) -> SoulRecord:
        with self._lock:
            record = self._souls.get(did.lower())
            if record is None:
                raise SoulNotFoundError(did)
            record.verification_count += 1
            record.last_verified_at = verified_at
            record.version += 1
            return record.copy()

    def search(self, query: SearchQuery) -> SearchPage:
        with self._lock:
            records = [record.copy() for record in self._souls.values()]

        if query.name:
            name_pattern = compile_pattern(query.name)
            records = [r for r in records if name_pattern.match(r.name)]
        if query.operator:
            operator_pattern = compile_pattern(query.operator)
            records = [r for r in records if operator_pattern.match(r.birth.operator)]
        if query.status is not None:
            records = [r for r in records if r.status == query.status]
        if query.registered_after is not None:
            records = [r for r in records if r.registered_at >= query.registered_after]
        if query.registered_before is not None:
            records = [r for r in records if r.registered_at <= query.registered_before]

        records.sort(key=lambda r: r.registered_at, reverse=True)
        page = records[query.offset : query.offset + query.limit]
        return SearchPage(results=page, total=len(records), limit=query.limit, offset=query.offset)

    def count_souls(self) -> int:
        with self._lock:
            return len(self._souls)

    def create_challenge(self, challenge: Challenge) -> None:
        with self._lock:
            self._challenges[challenge.challenge_id] = Challenge(**vars(challenge))

    def get_challenge(self, challenge_id: str) -> Challenge | None:
        with self._lock:
            challenge = self._challenges.get(challenge_id)
            return Challenge(**vars(challenge)) if challenge is not None else None

    def transition_challenge(
        self,
        challenge_id: str,
        from_status: ChallengeStatus,
        to_status: ChallengeStatus,
    ) -> bool:
        with self._lock:
            challenge = self._challenges.get(challenge_id)
            if challenge is None or challenge.status != from_status:
                return False
            challenge.status = to_status
            return True

    def delete_expired_challenges(self, now: datetime.datetime) -> int:
        with self._lock:
            expired = [
                challenge_id
                for challenge_id, challenge in self._challenges.items()
                if challenge.expires_at < now and challenge.status == ChallengeStatus.PENDING
            ]
            for challenge_id in expired:
                del self._challenges[challenge_id]
            return len(expired)

    def __len__(self) -> int:
        return self.count_souls()


__all__ = [
    "InMemorySoulStore",
    "MUTABLE_FIELDS",
    "SoulStore",
    "check_mutable_fields",
    "compile_pattern",
]
