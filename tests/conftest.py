"""Shared fixtures: key material, a controllable clock, and signed payload builders."""
from __future__ import annotations

import datetime
from typing import Callable

import pytest

from soul_registry.crypto import Ed25519KeyManager, hash_document
from soul_registry.registry import InMemorySoulStore, SoulDocument, SoulRecord, SoulRegistry
from soul_registry.registry.documents import derive_did

START = datetime.datetime(2026, 3, 1, 12, 0, 0, tzinfo=datetime.timezone.utc)


class FakeClock:
    """A clock that only moves when told to."""

    def __init__(self, start: datetime.datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += datetime.timedelta(**kwargs)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def key_manager() -> Ed25519KeyManager:
    return Ed25519KeyManager()


@pytest.fixture()
def keypair(key_manager: Ed25519KeyManager) -> tuple[bytes, bytes]:
    return key_manager.generate_keypair()


@pytest.fixture()
def other_keypair(key_manager: Ed25519KeyManager) -> tuple[bytes, bytes]:
    return key_manager.generate_keypair()


@pytest.fixture()
def registry(clock: FakeClock) -> SoulRegistry:
    return SoulRegistry(InMemorySoulStore(), clock=clock)


@pytest.fixture()
def signed_registration(
    key_manager: Ed25519KeyManager,
) -> Callable[..., tuple[dict[str, object], str]]:
    """Build a registration document for *name* and sign its canonical hash."""

    def _build(
        name: str,
        private_bytes: bytes,
        public_key: str | None = None,
        operator: str = "acme-labs",
        **extra: object,
    ) -> tuple[dict[str, object], str]:
        if public_key is None:
            public_key = key_manager.public_key_for(private_bytes).hex()
        document: dict[str, object] = {
            "did": derive_did(name),
            "name": name,
            "publicKey": public_key,
            "birth": {"timestamp": "2026-02-14T09:30:00.000Z", "operator": operator},
        }
        document.update(extra)
        signature = key_manager.sign(private_bytes, hash_document(document)).hex()
        return document, signature

    return _build


@pytest.fixture()
def register_soul(
    registry: SoulRegistry,
    signed_registration: Callable[..., tuple[dict[str, object], str]],
) -> Callable[..., SoulRecord]:
    """Register *name* in the ``registry`` fixture and return the stored record."""

    def _register(name: str, private_bytes: bytes, **kwargs: object) -> SoulRecord:
        document, signature = signed_registration(name, private_bytes, **kwargs)
        return registry.register(SoulDocument.model_validate(document), signature)

    return _register


@pytest.fixture()
def sign(key_manager: Ed25519KeyManager) -> Callable[[bytes, str], str]:
    """Sign a text message and return the hex signature."""

    def _sign(private_bytes: bytes, message: str) -> str:
        return key_manager.sign(private_bytes, message).hex()

    return _sign
