#!/usr/bin/env python3
"""Example: Agent self-registration over HTTP

An agent generates its own keypair, registers itself with a running
registry, then answers a challenge to prove it holds the key.

Usage:
    soul-registry serve --database :memory: &
    python examples/02_self_register.py myagent "MyOperator" "An autonomous agent"

Environment:
    SOUL_REGISTRY_URL   registry base URL (default http://localhost:3000)

Requirements:
    pip install soul-registry
"""
from __future__ import annotations

import json
import os
import sys
import urllib.error
import urllib.request

from soul_registry import Ed25519KeyManager, derive_did, hash_document
from soul_registry.timeutil import format_timestamp, utcnow

REGISTRY_URL = os.environ.get("SOUL_REGISTRY_URL", "http://localhost:3000")


def _post(path: str, payload: dict[str, object] | None = None) -> tuple[int, dict[str, object]]:
    body = json.dumps(payload).encode("utf-8") if payload is not None else None
    request = urllib.request.Request(
        f"{REGISTRY_URL}{path}",
        data=body,
        method="POST",
        headers={"Content-Type": "application/json"},
    )
    try:
        with urllib.request.urlopen(request, timeout=10) as response:
            return response.status, json.loads(response.read())
    except urllib.error.HTTPError as exc:
        return exc.code, json.loads(exc.read())


def main(name: str, operator: str, description: str | None = None) -> int:
    keys = Ed25519KeyManager()
    private_key, public_key = keys.generate_keypair()

    soul_document: dict[str, object] = {
        "did": derive_did(name),
        "name": name.lower(),
        "publicKey": public_key.hex(),
        "birth": {
            "timestamp": format_timestamp(utcnow()),
            "operator": operator,
            "platform": "Agent Self-Registration",
        },
    }
    if description:
        soul_document["description"] = description

    signature = keys.sign(private_key, hash_document(soul_document)).hex()
    status, result = _post(
        "/v1/souls/register", {"soulDocument": soul_document, "signature": signature}
    )
    if status != 201:
        print(f"Registration failed ({status}): {result.get('error')} [{result.get('code')}]")
        return 1

    did = str(result["did"])
    print(f"Registered {did}")
    print(f"Registry URL: {result['registryUrl']}")

    status, challenge = _post(f"/v1/souls/{did}/challenge")
    nonce_signature = keys.sign(private_key, str(challenge["nonce"])).hex()
    status, verified = _post(
        f"/v1/souls/{did}/verify",
        {"challengeId": challenge["challengeId"], "signature": nonce_signature},
    )
    print(f"Challenge verified: {verified.get('verified', False)}")

    print("\nSAVE THESE CREDENTIALS SECURELY")
    print(f"Public key:  {public_key.hex()}")
    print(f"Private key: {private_key.hex()}")
    return 0


if __name__ == "__main__":
    if len(sys.argv) < 3:
        print(__doc__)
        sys.exit(2)
    sys.exit(main(sys.argv[1], sys.argv[2], sys.argv[3] if len(sys.argv) > 3 else None))
