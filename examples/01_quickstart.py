#!/usr/bin/env python3
"""Example: Quickstart

Registers a soul in an in-memory registry, proves liveness with a
challenge, and updates its capabilities with a signed, timestamped request.

Usage:
    python examples/01_quickstart.py

Requirements:
    pip install soul-registry
"""
from __future__ import annotations

import soul_registry
from soul_registry import (
    Ed25519KeyManager,
    InMemorySoulStore,
    RiskLevel,
    SoulDocument,
    SoulRegistry,
    capabilities_update_message,
    derive_did,
    hash_document,
)
from soul_registry.timeutil import format_timestamp, utcnow


def main() -> None:
    print(f"soul-registry version: {soul_registry.__version__}")

    registry = SoulRegistry(InMemorySoulStore())
    keys = Ed25519KeyManager()

    # Step 1: Generate a keypair and build the soul document
    private_key, public_key = keys.generate_keypair()
    document = SoulDocument.model_validate(
        {
            "did": derive_did("nexus"),
            "name": "nexus",
            "publicKey": public_key.hex(),
            "birth": {"timestamp": format_timestamp(utcnow()), "operator": "acme-labs"},
            "description": "Research assistant",
        }
    )

    # Step 2: Sign the canonical hash and register
    signature = keys.sign(private_key, hash_document(document.signing_payload())).hex()
    record = registry.register(document, signature)
    print(f"Registered: {record.did} (status={record.status.value})")

    # Step 3: Answer a liveness challenge
    challenge = registry.issue_challenge(record.did)
    outcome = registry.complete_challenge(
        record.did, challenge.challenge_id, keys.sign(private_key, challenge.nonce).hex()
    )
    print(f"Verified at {format_timestamp(outcome.verified_at)}")

    # Step 4: Signed capabilities update
    timestamp = format_timestamp(utcnow())
    message = capabilities_update_message(record.did, timestamp)
    updated = registry.update_capabilities(
        record.did,
        ["search", "summarize"],
        RiskLevel.LOW,
        keys.sign(private_key, message).hex(),
        timestamp,
    )
    print(f"Capabilities: {', '.join(updated.capabilities or [])}")
    print(f"Verification count: {updated.verification_count}")

    print("\nQuickstart complete.")


if __name__ == "__main__":
    main()
