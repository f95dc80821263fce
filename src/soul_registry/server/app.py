"""HTTP server for the soul registry using stdlib http.server.

Routes:
    GET    /api/health                        health check
    GET    /v1                                endpoint index
    POST   /v1/souls/register                 register a signed soul document
    GET    /v1/souls                          search
    GET    /v1/souls/{didOrName}              resolve
    PUT    /v1/souls/{didOrName}/contact      signed contact update
    PUT    /v1/souls/{didOrName}/capabilities signed capabilities update
    POST   /v1/souls/{didOrName}/challenge    issue a liveness challenge
    POST   /v1/souls/{didOrName}/verify       answer a challenge
    POST   /v1/souls/{didOrName}/suspend      signed status change
    POST   /v1/souls/{didOrName}/revoke       signed status change
    POST   /v1/souls/{didOrName}/reactivate   signed status change

Usage:
    python -m soul_registry.server.app --port 3000
    python -m soul_registry.server.app --database ./registry.db
"""
from __future__ import annotations

import argparse
import json
import logging
import re
import threading
import urllib.parse
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

from soul_registry.config import RegistrySettings, get_settings
from soul_registry.logging_config import configure_logging
from soul_registry.registry.audit import RegistryAuditLogger
from soul_registry.registry.documents import SoulStatus
from soul_registry.registry.engine import SoulRegistry
from soul_registry.registry.sqlite_store import SQLiteSoulStore
from soul_registry.registry.store import InMemorySoulStore, SoulStore
from soul_registry.server import routes

logger = logging.getLogger(__name__)

# /v1/souls/{ref} and /v1/souls/{ref}/{action}
_SOUL_PATTERN = re.compile(r"^/v1/souls/([^/]+)$")
_SOUL_ACTION_PATTERN = re.compile(r"^/v1/souls/([^/]+)/([a-z]+)$")

_STATUS_ACTIONS: dict[str, SoulStatus] = {
    "suspend": SoulStatus.SUSPENDED,
    "revoke": SoulStatus.REVOKED,
    "reactivate": SoulStatus.ACTIVE,
}


class SoulRegistryServer(ThreadingHTTPServer):
    """Threaded HTTP server that owns the registry its handlers act on."""

    daemon_threads = True

    def __init__(
        self,
        address: tuple[str, int],
        registry: SoulRegistry,
        public_base_url: str | None = None,
    ) -> None:
        super().__init__(address, SoulRegistryHandler)
        self.registry = registry
        self.public_base_url = public_base_url


class SoulRegistryHandler(BaseHTTPRequestHandler):
    """HTTP request handler for the soul registry.

    All request bodies and responses use JSON. Unexpected exceptions become
    ``500 INTERNAL_ERROR`` responses and are logged with their traceback.
    """

    server: SoulRegistryServer

    def log_message(self, format: str, *args: object) -> None:
        """Route access logs through the Python logging system."""
        logger.debug(format, *args)

    @property
    def registry(self) -> SoulRegistry:
        return self.server.registry

    # ── GET ───────────────────────────────────────────────────────────────────

    def do_GET(self) -> None:
        parsed = urllib.parse.urlparse(self.path)
        path = parsed.path.rstrip("/")

        if path == "/api/health":
            self._dispatch(lambda: routes.handle_health(self.registry))
        elif path == "/v1":
            self._dispatch(routes.handle_index)
        elif path == "/v1/souls":
            params = {
                key: values[0]
                for key, values in urllib.parse.parse_qs(parsed.query).items()
                if values
            }
            self._dispatch(lambda: routes.handle_search(self.registry, params))
        else:
            match = _SOUL_PATTERN.match(path)
            if match:
                ref = urllib.parse.unquote(match.group(1))
                self._dispatch(lambda: routes.handle_resolve(self.registry, ref))
            else:
                self._not_found("GET", path)

    # ── POST ──────────────────────────────────────────────────────────────────

    def do_POST(self) -> None:
        parsed = urllib.parse.urlparse(self.path)
        path = parsed.path.rstrip("/")

        if path == "/v1/souls/register":
            body = self._read_json_body()
            if body is not None:
                base_url = self._base_url()
                self._dispatch(lambda: routes.handle_register(self.registry, body, base_url))
            return

        match = _SOUL_ACTION_PATTERN.match(path)
        if not match:
            self._not_found("POST", path)
            return
        ref = urllib.parse.unquote(match.group(1))
        action = match.group(2)

        if action == "challenge":
            self._dispatch(lambda: routes.handle_issue_challenge(self.registry, ref))
        elif action == "verify":
            body = self._read_json_body()
            if body is not None:
                self._dispatch(lambda: routes.handle_verify(self.registry, ref, body))
        elif action in _STATUS_ACTIONS:
            body = self._read_json_body()
            if body is not None:
                status = _STATUS_ACTIONS[action]
                self._dispatch(
                    lambda: routes.handle_change_status(self.registry, ref, status, body)
                )
        else:
            self._not_found("POST", path)

    # ── PUT ───────────────────────────────────────────────────────────────────

    def do_PUT(self) -> None:
        parsed = urllib.parse.urlparse(self.path)
        path = parsed.path.rstrip("/")

        match = _SOUL_ACTION_PATTERN.match(path)
        if not match or match.group(2) not in ("contact", "capabilities"):
            self._not_found("PUT", path)
            return
        ref = urllib.parse.unquote(match.group(1))

        body = self._read_json_body()
        if body is None:
            return
        if match.group(2) == "contact":
            self._dispatch(lambda: routes.handle_update_contact(self.registry, ref, body))
        else:
            self._dispatch(lambda: routes.handle_update_capabilities(self.registry, ref, body))

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _dispatch(self, handler) -> None:  # type: ignore[no-untyped-def]
        try:
            status, data = handler()
        except Exception:
            logger.exception("Unhandled error serving %s %s", self.command, self.path)
            status, data = 500, {"error": "Internal server error", "code": "INTERNAL_ERROR"}
        self._send_json(status, data)

    def _not_found(self, method: str, path: str) -> None:
        self._send_json(
            404, {"error": f"No route for {method} {path}", "code": "NOT_FOUND"}
        )

    def _base_url(self) -> str:
        if self.server.public_base_url:
            return self.server.public_base_url
        host = self.headers.get("Host") or "localhost:3000"
        proto = self.headers.get("X-Forwarded-Proto") or "http"
        return f"{proto}://{host}"

    def _send_json(self, status: int, data: dict[str, object]) -> None:
        """Serialize *data* to JSON and send an HTTP response with *status*."""
        body = json.dumps(data, default=str).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Access-Control-Allow-Origin", "*")
        self.end_headers()
        self.wfile.write(body)

    def _read_json_body(self) -> dict[str, object] | None:
        """Read and parse the JSON request body.

        Returns None (and sends a 400 error response) if parsing fails or the
        body is not a JSON object.
        """
        content_length = int(self.headers.get("Content-Length", 0))
        if content_length == 0:
            return {}

        raw = self.rfile.read(content_length)
        try:
            parsed = json.loads(raw.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            self._send_json(
                400, {"error": f"Invalid JSON: {exc}", "code": "INVALID_REQUEST"}
            )
            return None
        if not isinstance(parsed, dict):
            self._send_json(
                400, {"error": "Request body must be a JSON object", "code": "INVALID_REQUEST"}
            )
            return None
        return parsed


class ChallengeSweeper(threading.Thread):
    """Background thread that periodically removes expired challenges."""

    def __init__(self, registry: SoulRegistry, interval: float = 60.0) -> None:
        super().__init__(name="challenge-sweeper", daemon=True)
        self._registry = registry
        self._interval = interval
        self._stopped = threading.Event()

    def run(self) -> None:
        while not self._stopped.wait(self._interval):
            try:
                self._registry.sweep_challenges()
            except Exception:
                logger.exception("Challenge sweep failed")

    def stop(self) -> None:
        self._stopped.set()


def build_store(database_path: str) -> SoulStore:
    """Return an in-memory store for ``":memory:"``, otherwise an SQLite store."""
    if database_path == ":memory:":
        return InMemorySoulStore()
    return SQLiteSoulStore(database_path)


def build_registry(settings: RegistrySettings) -> SoulRegistry:
    """Assemble a :class:`SoulRegistry` from *settings*."""
    audit_logger = (
        RegistryAuditLogger(Path(settings.audit_log_path)) if settings.audit_log_path else None
    )
    return SoulRegistry(
        build_store(settings.database_path),
        challenge_ttl=settings.challenge_ttl,
        freshness_window=settings.freshness_window,
        audit_logger=audit_logger,
    )


def create_server(
    registry: SoulRegistry,
    host: str = "0.0.0.0",
    port: int = 3000,
    public_base_url: str | None = None,
) -> SoulRegistryServer:
    """Create (but do not start) the soul registry HTTP server.

    Parameters
    ----------
    registry:
        The registry every request operates on.
    host:
        Bind address (default ``"0.0.0.0"``, all interfaces).
    port:
        TCP port to listen on (default 3000).
    public_base_url:
        Base URL advertised in ``registryUrl``; derived from request headers
        when omitted.
    """
    server = SoulRegistryServer((host, port), registry, public_base_url=public_base_url)
    logger.info("soul registry server created at http://%s:%d", host, port)
    return server


def run_server(settings: RegistrySettings | None = None) -> None:
    """Create and run the soul registry HTTP server (blocking).

    Starts the challenge sweeper alongside and closes the store on shutdown.
    """
    settings = settings or get_settings()
    registry = build_registry(settings)
    server = create_server(
        registry,
        host=settings.host,
        port=settings.port,
        public_base_url=settings.public_base_url,
    )
    sweeper = ChallengeSweeper(registry, interval=settings.sweep_interval_seconds)
    sweeper.start()
    logger.info(
        "Serving soul registry on http://%s:%d, press Ctrl-C to stop",
        settings.host,
        settings.port,
    )
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Shutting down soul registry server.")
    finally:
        sweeper.stop()
        server.server_close()
        registry.store.close()


def _build_arg_parser() -> argparse.ArgumentParser:
    settings = get_settings()
    parser = argparse.ArgumentParser(
        description="Soul registry HTTP server",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--host", default=settings.host, help="Bind address")
    parser.add_argument("--port", type=int, default=settings.port, help="TCP port")
    parser.add_argument(
        "--database", default=settings.database_path, help="SQLite path or :memory:"
    )
    parser.add_argument(
        "--log-level",
        default=settings.log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    return parser


if __name__ == "__main__":
    args = _build_arg_parser().parse_args()
    overrides = {
        "host": args.host,
        "port": args.port,
        "database_path": args.database,
        "log_level": args.log_level,
    }
    settings = get_settings().model_copy(update=overrides)
    configure_logging(settings.log_level, settings.log_format)
    run_server(settings)
