"""Tests for soul_registry.registry.documents: soul document validation."""
from __future__ import annotations

import pytest
from pydantic import ValidationError

from soul_registry.registry.documents import (
    BirthCertificate,
    Contact,
    SoulDocument,
    derive_did,
)


def _document(**overrides: object) -> dict[str, object]:
    document: dict[str, object] = {
        "did": "did:soul:nexus",
        "name": "nexus",
        "publicKey": "ab" * 32,
        "birth": {"timestamp": "2026-02-14T09:30:00.000Z", "operator": "acme-labs"},
    }
    document.update(overrides)
    return document


class TestDeriveDid:
    def test_lower_cases_name(self) -> None:
        assert derive_did("Nexus") == "did:soul:nexus"

    def test_keeps_separators(self) -> None:
        assert derive_did("agent_07-beta") == "did:soul:agent_07-beta"


class TestSoulDocument:
    def test_minimal_document(self) -> None:
        document = SoulDocument.model_validate(_document())
        assert document.name == "nexus"
        assert document.public_key == "ab" * 32
        assert document.birth.operator == "acme-labs"

    def test_signing_payload_matches_submitted_json(self) -> None:
        raw = _document(
            description="Research agent",
            website="https://nexus.example.com",
            contact={"email": "nexus@example.com", "protocols": ["a2a", "mcp"]},
        )
        raw["birth"] = {
            "timestamp": "2026-02-14T09:30:00.000Z",
            "operator": "acme-labs",
            "baseModel": "model-x",
            "charterHash": "c0ffee",
        }
        assert SoulDocument.model_validate(raw).signing_payload() == raw

    def test_unknown_fields_dropped(self) -> None:
        document = SoulDocument.model_validate(_document(favouriteColour="blue"))
        assert "favouriteColour" not in document.signing_payload()

    def test_upper_case_did_accepted(self) -> None:
        document = SoulDocument.model_validate(_document(did="did:soul:NEXUS"))
        assert document.did == "did:soul:NEXUS"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"name": ""},
            {"name": "x" * 65},
            {"name": "has space"},
            {"name": "dotted.name"},
            {"did": "did:web:nexus"},
            {"did": "did:soul:"},
            {"publicKey": ""},
            {"description": "d" * 501},
            {"website": "ftp://nexus.example.com"},
            {"website": "not a url"},
        ],
    )
    def test_invalid_fields_rejected(self, overrides: dict[str, object]) -> None:
        with pytest.raises(ValidationError):
            SoulDocument.model_validate(_document(**overrides))

    def test_missing_birth_rejected(self) -> None:
        raw = _document()
        del raw["birth"]
        with pytest.raises(ValidationError):
            SoulDocument.model_validate(raw)

    def test_name_at_limit_accepted(self) -> None:
        name = "n" * 64
        document = SoulDocument.model_validate(_document(name=name, did=derive_did(name)))
        assert len(document.name) == 64


class TestBirthCertificate:
    @pytest.mark.parametrize(
        "timestamp",
        ["2026-02-14T09:30:00Z", "2026-02-14T09:30:00.123Z", "2026-02-14T09:30:00+02:00"],
    )
    def test_iso_timestamps_accepted(self, timestamp: str) -> None:
        birth = BirthCertificate.model_validate({"timestamp": timestamp, "operator": "acme"})
        assert birth.timestamp == timestamp

    @pytest.mark.parametrize("timestamp", ["yesterday", "2026-02-14", ""])
    def test_bad_timestamps_rejected(self, timestamp: str) -> None:
        with pytest.raises(ValidationError):
            BirthCertificate.model_validate({"timestamp": timestamp, "operator": "acme"})

    def test_empty_operator_rejected(self) -> None:
        with pytest.raises(ValidationError):
            BirthCertificate.model_validate(
                {"timestamp": "2026-02-14T09:30:00Z", "operator": ""}
            )


class TestContact:
    def test_all_fields(self) -> None:
        contact = Contact.model_validate(
            {
                "email": "nexus@example.com",
                "inbox": "https://inbox.example.com/nexus",
                "agentmail": "nexus@agentmail.to",
                "webhook": "http://hooks.example.com/nexus",
                "protocols": ["a2a"],
                "preferred": "email",
            }
        )
        assert contact.protocols == ["a2a"]

    def test_bad_email_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Contact.model_validate({"email": "not-an-email"})

    def test_non_http_webhook_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Contact.model_validate({"webhook": "ftp://hooks.example.com"})

    def test_to_wire_omits_absent_fields(self) -> None:
        assert Contact(email="nexus@example.com").to_wire() == {"email": "nexus@example.com"}
