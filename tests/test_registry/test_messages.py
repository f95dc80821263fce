"""Tests for soul_registry.registry.messages."""
from __future__ import annotations

from soul_registry.registry.documents import SoulStatus
from soul_registry.registry.messages import (
    capabilities_update_message,
    contact_update_message,
    status_change_message,
)

TS = "2026-03-01T12:00:00.000Z"


class TestSigningMessages:
    def test_contact_update(self) -> None:
        assert contact_update_message("did:soul:nexus", TS) == f"contact-update:did:soul:nexus:{TS}"

    def test_capabilities_update(self) -> None:
        assert (
            capabilities_update_message("did:soul:nexus", TS)
            == f"capabilities-update:did:soul:nexus:{TS}"
        )

    def test_status_change_uses_status_value(self) -> None:
        message = status_change_message(SoulStatus.SUSPENDED, "did:soul:nexus", "maintenance", TS)
        assert message == f"suspended:did:soul:nexus:maintenance:{TS}"

    def test_status_change_accepts_plain_string(self) -> None:
        message = status_change_message("active", "did:soul:nexus", "back", TS)  # type: ignore[arg-type]
        assert message.startswith("active:did:soul:nexus:back:")
