"""Validated soul documents: the signed payload an agent registers.

These pydantic models are the typed-decoding step between raw JSON and the
registry core. Field names follow the camelCase wire format through aliases,
and string values are kept exactly as sent, since the registration
signature covers :meth:`SoulDocument.signing_payload` byte for byte.
"""
from __future__ import annotations

import re
import urllib.parse
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from soul_registry.timeutil import parse_timestamp

DID_PREFIX = "did:soul:"

NAME_PATTERN = re.compile(r"^[a-z0-9_-]+$", re.IGNORECASE)
DID_PATTERN = re.compile(r"^did:soul:[a-z0-9_-]+$", re.IGNORECASE)
_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class SoulStatus(str, Enum):
    """Lifecycle status of a soul record."""

    ACTIVE = "active"
    SUSPENDED = "suspended"
    REVOKED = "revoked"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def derive_did(name: str) -> str:
    """Return the DID a soul named *name* must carry."""
    return f"{DID_PREFIX}{name.lower()}"


def _check_url(value: str | None) -> str | None:
    if value is None:
        return value
    parsed = urllib.parse.urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"{value!r} is not an http(s) URL")
    return value


def _check_timestamp(value: str) -> str:
    try:
        parse_timestamp(value)
    except ValueError as exc:
        raise ValueError(f"{value!r} is not an ISO-8601 datetime") from exc
    return value


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_wire(self) -> dict[str, object]:
        """Dump with camelCase keys, omitting absent optional fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class BirthCertificate(_WireModel):
    """Immutable record of a soul's origin."""

    timestamp: str
    operator: str = Field(min_length=1)
    base_model: Optional[str] = Field(default=None, alias="baseModel")
    platform: Optional[str] = None
    charter_hash: Optional[str] = Field(default=None, alias="charterHash")

    @field_validator("timestamp")
    @classmethod
    def _validate_timestamp(cls, value: str) -> str:
        return _check_timestamp(value)


class Contact(_WireModel):
    """Reachability information for a soul."""

    email: Optional[str] = None
    inbox: Optional[str] = None
    agentmail: Optional[str] = None
    webhook: Optional[str] = None
    protocols: Optional[list[str]] = None
    preferred: Optional[str] = None

    @field_validator("email")
    @classmethod
    def _validate_email(cls, value: str | None) -> str | None:
        if value is not None and not _EMAIL_PATTERN.match(value):
            raise ValueError(f"{value!r} is not an email address")
        return value

    @field_validator("inbox", "webhook")
    @classmethod
    def _validate_urls(cls, value: str | None) -> str | None:
        return _check_url(value)


class SoulDocument(_WireModel):
    """The document an agent signs and submits at registration.

    Parameters
    ----------
    did:
        Must equal :func:`derive_did` of ``name`` (checked by the registry,
        not here, so a mismatch surfaces as ``DID_MISMATCH``).
    name:
        1-64 characters of ``[A-Za-z0-9_-]``.
    public_key:
        The Ed25519 verification key, hex or base58.
    birth:
        Origin certificate.
    """

    did: str
    name: str = Field(min_length=1, max_length=64)
    public_key: str = Field(min_length=1, alias="publicKey")
    birth: BirthCertificate
    avatar: Optional[str] = None
    description: Optional[str] = Field(default=None, max_length=500)
    website: Optional[str] = None
    contact: Optional[Contact] = None

    @field_validator("website")
    @classmethod
    def _validate_website(cls, value: str | None) -> str | None:
        return _check_url(value)

    @field_validator("did")
    @classmethod
    def _validate_did(cls, value: str) -> str:
        if not DID_PATTERN.match(value):
            raise ValueError(f"{value!r} is not a did:soul identifier")
        return value

    @field_validator("name")
    @classmethod
    def _validate_name(cls, value: str) -> str:
        if not NAME_PATTERN.match(value):
            raise ValueError(f"{value!r} may only contain letters, digits, '_' and '-'")
        return value

    def signing_payload(self) -> dict[str, object]:
        """The JSON object whose canonical hash the registrant signs."""
        return self.to_wire()


__all__ = [
    "BirthCertificate",
    "Contact",
    "DID_PATTERN",
    "DID_PREFIX",
    "NAME_PATTERN",
    "RiskLevel",
    "SoulDocument",
    "SoulStatus",
    "derive_did",
]
