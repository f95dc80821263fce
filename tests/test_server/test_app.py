"""Tests for soul_registry.server.app: HTTP handler integration over a real socket."""
from __future__ import annotations

import json
import threading
import urllib.error
import urllib.request
from pathlib import Path
from typing import Iterator

import pytest

from soul_registry.config import RegistrySettings
from soul_registry.registry import InMemorySoulStore, SoulRegistry
from soul_registry.registry.sqlite_store import SQLiteSoulStore
from soul_registry.server.app import (
    ChallengeSweeper,
    SoulRegistryHandler,
    SoulRegistryServer,
    build_registry,
    create_server,
)


@pytest.fixture()
def live_server(registry: SoulRegistry) -> Iterator[str]:
    server = create_server(registry, host="127.0.0.1", port=0)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{server.server_address[1]}"
    finally:
        server.shutdown()
        server.server_close()
        thread.join(timeout=5)


def _request(
    url: str,
    method: str = "GET",
    body: bytes | None = None,
    headers: dict[str, str] | None = None,
) -> tuple[int, dict[str, object], dict[str, str]]:
    request = urllib.request.Request(url, data=body, method=method, headers=headers or {})
    try:
        with urllib.request.urlopen(request, timeout=5) as response:
            return response.status, json.loads(response.read()), dict(response.headers)
    except urllib.error.HTTPError as exc:
        return exc.code, json.loads(exc.read()), dict(exc.headers)


def _json(payload: dict[str, object]) -> bytes:
    return json.dumps(payload).encode("utf-8")


class TestCreateServer:
    def test_returns_registry_server(self, registry) -> None:
        server = create_server(registry, host="127.0.0.1", port=0)
        try:
            assert isinstance(server, SoulRegistryServer)
            assert server.RequestHandlerClass is SoulRegistryHandler
            assert server.registry is registry
        finally:
            server.server_close()

    def test_build_registry_in_memory(self) -> None:
        registry = build_registry(RegistrySettings(database_path=":memory:"))
        assert isinstance(registry.store, InMemorySoulStore)

    def test_build_registry_sqlite_with_audit(self, tmp_path: Path) -> None:
        settings = RegistrySettings(
            database_path=str(tmp_path / "registry.db"),
            audit_log_path=str(tmp_path / "audit.jsonl"),
        )
        registry = build_registry(settings)
        try:
            assert isinstance(registry.store, SQLiteSoulStore)
        finally:
            registry.store.close()


class TestHttpRoutes:
    def test_health(self, live_server: str) -> None:
        status, data, headers = _request(f"{live_server}/api/health")
        assert status == 200
        assert data["status"] == "operational"
        assert headers["Content-Type"].startswith("application/json")
        assert headers["Access-Control-Allow-Origin"] == "*"

    def test_index(self, live_server: str) -> None:
        status, data, _ = _request(f"{live_server}/v1")
        assert status == 200
        assert "endpoints" in data

    def test_unknown_route(self, live_server: str) -> None:
        status, data, _ = _request(f"{live_server}/nowhere")
        assert (status, data["code"]) == (404, "NOT_FOUND")

    def test_unknown_action(self, live_server: str) -> None:
        status, data, _ = _request(f"{live_server}/v1/souls/nexus/dance", method="POST")
        assert (status, data["code"]) == (404, "NOT_FOUND")

    def test_malformed_json(self, live_server: str) -> None:
        status, data, _ = _request(
            f"{live_server}/v1/souls/register", method="POST", body=b"{not json"
        )
        assert (status, data["code"]) == (400, "INVALID_REQUEST")

    def test_non_object_body(self, live_server: str) -> None:
        status, data, _ = _request(f"{live_server}/v1/souls/register", method="POST", body=b"[]")
        assert (status, data["code"]) == (400, "INVALID_REQUEST")

    def test_register_resolve_and_verify(
        self, live_server: str, signed_registration, keypair, sign
    ) -> None:
        document, signature = signed_registration("nexus", keypair[0])
        status, data, _ = _request(
            f"{live_server}/v1/souls/register",
            method="POST",
            body=_json({"soulDocument": document, "signature": signature}),
            headers={"Host": "registry.example.com", "X-Forwarded-Proto": "https"},
        )
        assert status == 201
        assert data["registryUrl"] == "https://registry.example.com/v1/souls/did:soul:nexus"

        status, data, _ = _request(f"{live_server}/v1/souls/did%3Asoul%3Anexus")
        assert status == 200
        assert data["name"] == "nexus"

        status, challenge, _ = _request(f"{live_server}/v1/souls/nexus/challenge", method="POST")
        assert status == 200

        status, data, _ = _request(
            f"{live_server}/v1/souls/nexus/verify",
            method="POST",
            body=_json(
                {
                    "challengeId": challenge["challengeId"],
                    "signature": sign(keypair[0], challenge["nonce"]),
                }
            ),
        )
        assert status == 200
        assert data["verified"] is True

        status, data, _ = _request(f"{live_server}/v1/souls?name=nex*")
        assert status == 200
        assert data["total"] == 1
        assert data["results"][0]["verificationCount"] == 1

    def test_put_unknown_field(self, live_server: str) -> None:
        status, data, _ = _request(f"{live_server}/v1/souls/nexus/avatar", method="PUT")
        assert (status, data["code"]) == (404, "NOT_FOUND")

    def test_internal_error_becomes_500(self, registry, live_server: str, monkeypatch) -> None:
        def _boom(ref: str) -> None:
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(registry, "resolve", _boom)
        status, data, _ = _request(f"{live_server}/v1/souls/nexus")
        assert (status, data["code"]) == (500, "INTERNAL_ERROR")


class TestChallengeSweeper:
    def test_sweeper_runs_and_stops(self) -> None:
        calls = threading.Event()

        class _Registry:
            def sweep_challenges(self) -> int:
                calls.set()
                return 0

        sweeper = ChallengeSweeper(_Registry(), interval=0.01)  # type: ignore[arg-type]
        sweeper.start()
        try:
            assert calls.wait(timeout=5)
        finally:
            sweeper.stop()
            sweeper.join(timeout=5)
        assert not sweeper.is_alive()
