"""CLI entry point for soul-registry.

Invoked as::

    soul-registry [OPTIONS] COMMAND [ARGS]...

or, during development::

    python -m soul_registry.cli.main

Commands
--------
version         Show version information
keygen          Generate an Ed25519 keypair
hash            Print the canonical SHA-512 hash of a soul document (or raw JSON)
sign-document   Build and sign a registration payload
sign            Sign an arbitrary message (e.g. a challenge nonce)
message         Print the signing message for a signed update
serve           Run the registry HTTP server
"""
from __future__ import annotations

import json
import sys
from pathlib import Path

import click
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from soul_registry.crypto import Ed25519KeyManager, hash_document
from soul_registry.registry.documents import SoulDocument, SoulStatus, derive_did
from soul_registry.registry.messages import (
    capabilities_update_message,
    contact_update_message,
    status_change_message,
)
from soul_registry.timeutil import format_timestamp, utcnow

console = Console()

_private_key_option = click.option(
    "--private-key",
    "-k",
    required=True,
    envvar="SOUL_PRIVATE_KEY",
    help="Raw 32-byte Ed25519 private key as hex (or set SOUL_PRIVATE_KEY).",
)


def _load_private_key(text: str) -> bytes:
    """Parse a hex private key or exit with an error."""
    try:
        key_bytes = bytes.fromhex(text.removeprefix("0x"))
    except ValueError:
        console.print("[red]Error:[/red] --private-key is not valid hex.")
        sys.exit(1)
    if len(key_bytes) != 32:
        console.print(
            f"[red]Error:[/red] --private-key must be 32 bytes, got {len(key_bytes)}."
        )
        sys.exit(1)
    return key_bytes


def _format_public_key(manager: Ed25519KeyManager, public_bytes: bytes, key_format: str) -> str:
    if key_format == "base58":
        return manager.public_key_base58(public_bytes)
    return manager.public_key_hex(public_bytes)


# ------------------------------------------------------------------
# Root group
# ------------------------------------------------------------------


@click.group()
@click.version_option(package_name="soul-registry")
def cli() -> None:
    """Soul registry: verifiable identities for autonomous agents"""


@cli.command(name="version")
def version_command() -> None:
    """Show detailed version information."""
    from soul_registry import __version__

    console.print(f"[bold]soul-registry[/bold] v{__version__}")


# ------------------------------------------------------------------
# keygen
# ------------------------------------------------------------------


@cli.command(name="keygen")
@click.option(
    "--format",
    "key_format",
    type=click.Choice(["hex", "base58"]),
    default="hex",
    show_default=True,
    help="Encoding for the public key.",
)
@click.option("--json", "as_json", is_flag=True, help="Emit the keypair as JSON.")
def keygen_command(key_format: str, as_json: bool) -> None:
    """Generate a new Ed25519 keypair.

    The private key never leaves this machine; only the public key goes into
    the soul document.
    """
    manager = Ed25519KeyManager()
    private_bytes, public_bytes = manager.generate_keypair()
    public_key = _format_public_key(manager, public_bytes, key_format)

    if as_json:
        click.echo(json.dumps({"privateKey": private_bytes.hex(), "publicKey": public_key}))
        return

    table = Table(title="New Ed25519 keypair", show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value", overflow="fold")
    table.add_row("Public key", public_key)
    table.add_row("Private key", private_bytes.hex())
    console.print(table)
    console.print("[yellow]Keep the private key secret.[/yellow]")


# ------------------------------------------------------------------
# hash
# ------------------------------------------------------------------


@cli.command(name="hash")
@click.argument("document_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--raw",
    is_flag=True,
    help="Hash the JSON as-is instead of validating it as a soul document.",
)
def hash_command(document_file: Path, raw: bool) -> None:
    """Print the canonical SHA-512 hash of the soul document in DOCUMENT_FILE.

    The document is validated first and hashed in the form the registry
    verifies: unknown keys and null optional fields are dropped.
    """
    try:
        document = json.loads(document_file.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        console.print(f"[red]Error:[/red] {document_file} is not valid JSON: {escape(str(exc))}")
        sys.exit(1)
    if raw:
        click.echo(hash_document(document))
        return

    try:
        soul_document = SoulDocument.model_validate(document)
    except ValidationError as exc:
        console.print(f"[red]Error:[/red] invalid soul document:\n{escape(str(exc))}")
        sys.exit(1)
    click.echo(hash_document(soul_document.signing_payload()))


# ------------------------------------------------------------------
# sign-document
# ------------------------------------------------------------------


@cli.command(name="sign-document")
@click.option("--name", "-n", required=True, help="Soul name (letters, digits, '_' and '-').")
@click.option("--operator", "-o", required=True, help="Operator responsible for the agent.")
@_private_key_option
@click.option("--base-model", default=None, help="Underlying model identifier.")
@click.option("--platform", default=None, help="Hosting platform.")
@click.option("--description", default=None, help="Short description (max 500 chars).")
@click.option("--website", default=None, help="Homepage URL.")
@click.option("--email", default=None, help="Contact email address.")
@click.option(
    "--key-format",
    type=click.Choice(["hex", "base58"]),
    default="hex",
    show_default=True,
    help="Encoding for the embedded public key.",
)
@click.option(
    "--timestamp",
    default=None,
    help="Birth timestamp (ISO-8601). Defaults to now.",
)
def sign_document_command(
    name: str,
    operator: str,
    private_key: str,
    base_model: str | None,
    platform: str | None,
    description: str | None,
    website: str | None,
    email: str | None,
    key_format: str,
    timestamp: str | None,
) -> None:
    """Build a soul document and print the signed registration payload.

    The output is the JSON body for ``POST /v1/souls/register``.
    """
    manager = Ed25519KeyManager()
    private_bytes = _load_private_key(private_key)
    public_key = _format_public_key(manager, manager.public_key_for(private_bytes), key_format)

    birth: dict[str, object] = {
        "timestamp": timestamp or format_timestamp(utcnow()),
        "operator": operator,
    }
    if base_model:
        birth["baseModel"] = base_model
    if platform:
        birth["platform"] = platform

    raw: dict[str, object] = {
        "did": derive_did(name),
        "name": name,
        "publicKey": public_key,
        "birth": birth,
    }
    if description:
        raw["description"] = description
    if website:
        raw["website"] = website
    if email:
        raw["contact"] = {"email": email}

    try:
        document = SoulDocument.model_validate(raw)
    except ValidationError as exc:
        console.print(f"[red]Error:[/red] invalid soul document:\n{escape(str(exc))}")
        sys.exit(1)

    payload = document.signing_payload()
    signature = manager.sign(private_bytes, hash_document(payload))
    click.echo(json.dumps({"soulDocument": payload, "signature": signature.hex()}, indent=2))


# ------------------------------------------------------------------
# sign
# ------------------------------------------------------------------


@cli.command(name="sign")
@click.argument("message")
@_private_key_option
def sign_command(message: str, private_key: str) -> None:
    """Sign MESSAGE and print the hex signature.

    Use it for challenge nonces and for the strings printed by
    ``soul-registry message``.
    """
    manager = Ed25519KeyManager()
    signature = manager.sign(_load_private_key(private_key), message)
    click.echo(signature.hex())


# ------------------------------------------------------------------
# message
# ------------------------------------------------------------------


@cli.command(name="message")
@click.argument("kind", type=click.Choice(["contact", "capabilities", "status"]))
@click.argument("did")
@click.option("--timestamp", default=None, help="ISO-8601 timestamp. Defaults to now.")
@click.option(
    "--status",
    "target_status",
    type=click.Choice([status.value for status in SoulStatus]),
    default=None,
    help="Target status (status messages only).",
)
@click.option("--reason", default=None, help="Reason for the change (status messages only).")
def message_command(
    kind: str,
    did: str,
    timestamp: str | None,
    target_status: str | None,
    reason: str | None,
) -> None:
    """Print the message to sign for a KIND update of DID.

    The first output line is the message, the second the timestamp to send
    alongside the signature.
    """
    timestamp = timestamp or format_timestamp(utcnow())
    if kind == "contact":
        message = contact_update_message(did, timestamp)
    elif kind == "capabilities":
        message = capabilities_update_message(did, timestamp)
    else:
        if target_status is None or reason is None:
            console.print("[red]Error:[/red] status messages need --status and --reason.")
            sys.exit(1)
        message = status_change_message(SoulStatus(target_status), did, reason, timestamp)
    click.echo(message)
    click.echo(timestamp)


# ------------------------------------------------------------------
# serve
# ------------------------------------------------------------------


@cli.command(name="serve")
@click.option("--host", default=None, help="Bind address (default from SOUL_HOST).")
@click.option("--port", type=int, default=None, help="TCP port (default from SOUL_PORT).")
@click.option("--database", default=None, help="SQLite path or :memory:.")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
)
@click.option("--log-format", type=click.Choice(["text", "json"]), default=None)
def serve_command(
    host: str | None,
    port: int | None,
    database: str | None,
    log_level: str | None,
    log_format: str | None,
) -> None:
    """Run the soul registry HTTP server."""
    from soul_registry.config import get_settings
    from soul_registry.logging_config import configure_logging
    from soul_registry.server import run_server

    overrides = {
        key: value
        for key, value in {
            "host": host,
            "port": port,
            "database_path": database,
            "log_level": log_level.upper() if log_level else None,
            "log_format": log_format,
        }.items()
        if value is not None
    }
    settings = get_settings().model_copy(update=overrides)
    configure_logging(settings.log_level, settings.log_format)
    console.print(
        f"[bold]soul-registry[/bold] listening on http://{settings.host}:{settings.port}"
    )
    run_server(settings)


if __name__ == "__main__":
    cli()
