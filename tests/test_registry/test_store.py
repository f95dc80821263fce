"""Tests for the soul stores: InMemorySoulStore and SQLiteSoulStore.

Every behavioural test runs against both backends.
"""
from __future__ import annotations

import datetime
from pathlib import Path
from typing import Iterator

import pytest

from soul_registry.errors import (
    ConcurrentModificationError,
    NameTakenError,
    SoulNotFoundError,
)
from soul_registry.registry.documents import (
    BirthCertificate,
    Contact,
    RiskLevel,
    SoulStatus,
    derive_did,
)
from soul_registry.registry.records import (
    Challenge,
    ChallengeStatus,
    SearchQuery,
    SoulRecord,
)
from soul_registry.registry.sqlite_store import SQLiteSoulStore, like_pattern
from soul_registry.registry.store import InMemorySoulStore, SoulStore, compile_pattern

BASE = datetime.datetime(2026, 1, 1, tzinfo=datetime.timezone.utc)


def _record(name: str, operator: str = "acme-labs", day: int = 0) -> SoulRecord:
    return SoulRecord(
        did=derive_did(name),
        name=name,
        public_key="ab" * 32,
        birth=BirthCertificate(timestamp="2026-01-01T00:00:00Z", operator=operator),
        registered_at=BASE + datetime.timedelta(days=day),
    )


def _challenge(challenge_id: str, did: str = "did:soul:nexus", minutes: int = 5) -> Challenge:
    return Challenge(
        challenge_id=challenge_id,
        did=did,
        nonce="00" * 32,
        issued_at=BASE,
        expires_at=BASE + datetime.timedelta(minutes=minutes),
    )


@pytest.fixture(params=["memory", "sqlite"])
def store(request: pytest.FixtureRequest, tmp_path: Path) -> Iterator[SoulStore]:
    if request.param == "memory":
        yield InMemorySoulStore()
        return
    sqlite_store = SQLiteSoulStore(str(tmp_path / "souls.db"))
    yield sqlite_store
    sqlite_store.close()


class TestPatterns:
    def test_compile_pattern_wildcard(self) -> None:
        pattern = compile_pattern("nex*")
        assert pattern.match("Nexus")
        assert not pattern.match("annex")

    def test_compile_pattern_exact_without_wildcard(self) -> None:
        pattern = compile_pattern("nexus")
        assert pattern.match("NEXUS")
        assert not pattern.match("nexus2")

    def test_compile_pattern_escapes_regex(self) -> None:
        assert not compile_pattern("a.c").match("abc")

    def test_like_pattern_escapes_sql_wildcards(self) -> None:
        assert like_pattern("a_b%c*") == "a\\_b\\%c%"


class TestSoulLifecycle:
    def test_create_and_lookup(self, store: SoulStore) -> None:
        created = store.create_soul(_record("Nexus"))
        assert created.did == "did:soul:nexus"
        assert created.version == 1
        assert store.get_by_did("did:soul:NEXUS") is not None
        by_name = store.get_by_name("nEXus")
        assert by_name is not None
        assert by_name.name == "Nexus"
        assert by_name.registered_at == BASE

    def test_missing_lookups_return_none(self, store: SoulStore) -> None:
        assert store.get_by_did("did:soul:ghost") is None
        assert store.get_by_name("ghost") is None

    def test_duplicate_name_case_insensitive(self, store: SoulStore) -> None:
        store.create_soul(_record("nexus"))
        with pytest.raises(NameTakenError):
            store.create_soul(_record("NEXUS"))
        assert store.count_souls() == 1

    def test_returned_records_are_detached(self, store: SoulStore) -> None:
        store.create_soul(_record("nexus"))
        record = store.get_by_name("nexus")
        assert record is not None
        record.status = SoulStatus.REVOKED
        record.capabilities = ["mutated"]
        fresh = store.get_by_name("nexus")
        assert fresh is not None
        assert fresh.status == SoulStatus.ACTIVE
        assert fresh.capabilities is None

    def test_update_applies_changes_and_bumps_version(self, store: SoulStore) -> None:
        store.create_soul(_record("nexus"))
        contact = Contact(email="nexus@example.com", protocols=["a2a"])
        updated = store.update_soul(
            "did:soul:nexus",
            {
                "contact": contact,
                "capabilities": ["search", "summarize"],
                "risk_level": RiskLevel.MEDIUM,
                "status": SoulStatus.SUSPENDED,
                "status_reason": "maintenance",
                "status_changed_at": BASE,
            },
        )
        assert updated.version == 2
        assert updated.contact == contact
        assert updated.capabilities == ["search", "summarize"]
        assert updated.risk_level == RiskLevel.MEDIUM
        assert updated.status == SoulStatus.SUSPENDED
        assert updated.status_changed_at == BASE

    def test_update_clears_optional_values(self, store: SoulStore) -> None:
        store.create_soul(_record("nexus"))
        store.update_soul("did:soul:nexus", {"risk_level": RiskLevel.HIGH})
        updated = store.update_soul("did:soul:nexus", {"risk_level": None})
        assert updated.risk_level is None
        assert updated.version == 3

    def test_update_with_expected_version(self, store: SoulStore) -> None:
        store.create_soul(_record("nexus"))
        store.update_soul("did:soul:nexus", {"verification_count": 1}, expected_version=1)
        with pytest.raises(ConcurrentModificationError):
            store.update_soul("did:soul:nexus", {"verification_count": 2}, expected_version=1)
        record = store.get_by_did("did:soul:nexus")
        assert record is not None
        assert record.verification_count == 1
        assert record.version == 2

    def test_update_missing_soul(self, store: SoulStore) -> None:
        with pytest.raises(SoulNotFoundError):
            store.update_soul("did:soul:ghost", {"avatar": "x"})

    def test_record_verification_increments(self, store: SoulStore) -> None:
        store.create_soul(_record("nexus"))
        store.update_soul("did:soul:nexus", {"description": "kept"})
        first = store.record_verification("did:soul:nexus", BASE)
        second = store.record_verification("DID:SOUL:NEXUS", BASE + datetime.timedelta(hours=1))
        assert first.verification_count == 1
        assert second.verification_count == 2
        assert second.last_verified_at == BASE + datetime.timedelta(hours=1)
        assert second.description == "kept"
        assert second.version == 4

    def test_record_verification_missing_soul(self, store: SoulStore) -> None:
        with pytest.raises(SoulNotFoundError):
            store.record_verification("did:soul:ghost", BASE)

    @pytest.mark.parametrize("field", ["name", "did", "public_key", "birth", "version"])
    def test_immutable_fields_rejected(self, store: SoulStore, field: str) -> None:
        store.create_soul(_record("nexus"))
        with pytest.raises(ValueError):
            store.update_soul("did:soul:nexus", {field: "other"})


class TestSearch:
    @pytest.fixture()
    def populated(self, store: SoulStore) -> SoulStore:
        store.create_soul(_record("nexus", operator="acme-labs", day=0))
        store.create_soul(_record("nexus-two", operator="acme-labs", day=1))
        store.create_soul(_record("orion", operator="stellar", day=2))
        store.create_soul(_record("a_c", operator="stellar", day=3))
        store.create_soul(_record("abc", operator="other", day=4))
        store.update_soul("did:soul:orion", {"status": SoulStatus.REVOKED})
        return store

    def _names(self, store: SoulStore, **criteria: object) -> list[str]:
        return [record.name for record in store.search(SearchQuery(**criteria)).results]

    def test_newest_first(self, populated: SoulStore) -> None:
        assert self._names(populated) == ["abc", "a_c", "orion", "nexus-two", "nexus"]

    def test_name_wildcard(self, populated: SoulStore) -> None:
        assert self._names(populated, name="NEX*") == ["nexus-two", "nexus"]

    def test_name_exact_case_insensitive(self, populated: SoulStore) -> None:
        assert self._names(populated, name="NEXUS") == ["nexus"]

    def test_underscore_is_literal(self, populated: SoulStore) -> None:
        assert self._names(populated, name="a_c") == ["a_c"]

    def test_operator_and_status(self, populated: SoulStore) -> None:
        assert self._names(populated, operator="*lab*") == ["nexus-two", "nexus"]
        assert self._names(populated, status=SoulStatus.REVOKED) == ["orion"]
        assert self._names(populated, operator="stellar", status=SoulStatus.ACTIVE) == ["a_c"]

    def test_registration_window_inclusive(self, populated: SoulStore) -> None:
        names = self._names(
            populated,
            registered_after=BASE + datetime.timedelta(days=1),
            registered_before=BASE + datetime.timedelta(days=3),
        )
        assert names == ["a_c", "orion", "nexus-two"]

    def test_paging_reports_total(self, populated: SoulStore) -> None:
        page = populated.search(SearchQuery(limit=2, offset=1))
        assert [record.name for record in page.results] == ["a_c", "orion"]
        assert page.total == 5
        assert page.limit == 2
        assert page.offset == 1


class TestChallengeTable:
    def test_create_and_get(self, store: SoulStore) -> None:
        store.create_challenge(_challenge("ch_1"))
        challenge = store.get_challenge("ch_1")
        assert challenge is not None
        assert challenge.status == ChallengeStatus.PENDING
        assert challenge.expires_at == BASE + datetime.timedelta(minutes=5)
        assert store.get_challenge("ch_missing") is None

    def test_transition_is_compare_and_set(self, store: SoulStore) -> None:
        store.create_challenge(_challenge("ch_1"))
        assert store.transition_challenge(
            "ch_1", ChallengeStatus.PENDING, ChallengeStatus.COMPLETED
        )
        assert not store.transition_challenge(
            "ch_1", ChallengeStatus.PENDING, ChallengeStatus.EXPIRED
        )
        assert not store.transition_challenge(
            "ch_missing", ChallengeStatus.PENDING, ChallengeStatus.COMPLETED
        )
        challenge = store.get_challenge("ch_1")
        assert challenge is not None
        assert challenge.status == ChallengeStatus.COMPLETED

    def test_delete_expired_only_touches_pending(self, store: SoulStore) -> None:
        store.create_challenge(_challenge("ch_old", minutes=1))
        store.create_challenge(_challenge("ch_done", minutes=1))
        store.create_challenge(_challenge("ch_fresh", minutes=30))
        store.transition_challenge("ch_done", ChallengeStatus.PENDING, ChallengeStatus.COMPLETED)

        removed = store.delete_expired_challenges(BASE + datetime.timedelta(minutes=10))

        assert removed == 1
        assert store.get_challenge("ch_old") is None
        assert store.get_challenge("ch_done") is not None
        assert store.get_challenge("ch_fresh") is not None
        assert store.delete_expired_challenges(BASE + datetime.timedelta(minutes=10)) == 0


class TestSQLitePersistence:
    def test_records_survive_reopen(self, tmp_path: Path) -> None:
        path = str(tmp_path / "nested" / "registry.db")
        first = SQLiteSoulStore(path)
        first.create_soul(_record("nexus"))
        first.update_soul(
            "did:soul:nexus", {"contact": Contact(email="nexus@example.com")}
        )
        first.close()

        second = SQLiteSoulStore(path)
        try:
            record = second.get_by_name("NEXUS")
            assert record is not None
            assert record.version == 2
            assert record.contact == Contact(email="nexus@example.com")
        finally:
            second.close()

    def test_in_memory_database(self) -> None:
        store = SQLiteSoulStore(":memory:")
        try:
            store.create_soul(_record("nexus"))
            assert store.count_souls() == 1
        finally:
            store.close()
