"""Error taxonomy for the soul registry.

Every failure the core can surface is a :class:`RegistryError` subclass
carrying a machine-readable ``code``, the HTTP status the server maps it to,
and an :class:`ErrorKind` so callers can tell "try a different name" apart
from "start a new challenge". Nothing here is retried internally.
"""
from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Broad category of a registry failure."""

    VALIDATION = "validation"
    AUTHORIZATION = "authorization"
    CONFLICT = "conflict"


class RegistryError(Exception):
    """Base class for all registry failures."""

    code: str = "REGISTRY_ERROR"
    http_status: int = 400
    kind: ErrorKind = ErrorKind.VALIDATION

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, object]:
        """Serialize to the wire error body."""
        return {"error": self.message, "code": self.code}


class DidMismatchError(RegistryError):
    """Raised when a DID does not match the name or challenge it belongs to."""

    code = "DID_MISMATCH"
    http_status = 400
    kind = ErrorKind.AUTHORIZATION


class NameTakenError(RegistryError):
    """Raised when registering a name that already exists (case-insensitive)."""

    code = "NAME_TAKEN"
    http_status = 409
    kind = ErrorKind.CONFLICT

    def __init__(self, name: str) -> None:
        super().__init__(f"Soul name {name!r} is already registered.")
        self.name = name


class InvalidSignatureError(RegistryError):
    """Raised when a signature does not verify against the expected key."""

    code = "INVALID_SIGNATURE"
    http_status = 401
    kind = ErrorKind.AUTHORIZATION

    def __init__(self, message: str = "Invalid signature") -> None:
        super().__init__(message)


class TimestampExpiredError(RegistryError):
    """Raised when a signed timestamp falls outside the freshness window."""

    code = "TIMESTAMP_EXPIRED"
    http_status = 400
    kind = ErrorKind.AUTHORIZATION


class SoulNotFoundError(RegistryError):
    """Raised when a DID or name does not resolve to a record."""

    code = "NOT_FOUND"
    http_status = 404
    kind = ErrorKind.CONFLICT

    def __init__(self, ref: str) -> None:
        super().__init__(f"Soul {ref!r} not found.")
        self.ref = ref


class ChallengeNotFoundError(RegistryError):
    code = "CHALLENGE_NOT_FOUND"
    http_status = 404
    kind = ErrorKind.CONFLICT

    def __init__(self, challenge_id: str) -> None:
        super().__init__(f"Challenge {challenge_id!r} not found.")
        self.challenge_id = challenge_id


class ChallengeExpiredError(RegistryError):
    code = "CHALLENGE_EXPIRED"
    http_status = 410
    kind = ErrorKind.CONFLICT

    def __init__(self, challenge_id: str) -> None:
        super().__init__(f"Challenge {challenge_id!r} has expired.")
        self.challenge_id = challenge_id


class ChallengeUsedError(RegistryError):
    code = "CHALLENGE_USED"
    http_status = 409
    kind = ErrorKind.CONFLICT

    def __init__(self, challenge_id: str) -> None:
        super().__init__(f"Challenge {challenge_id!r} has already been used.")
        self.challenge_id = challenge_id


class ConcurrentModificationError(RegistryError):
    """Raised when a compare-and-swap on a record's version loses a race."""

    code = "CONCURRENT_MODIFICATION"
    http_status = 409
    kind = ErrorKind.CONFLICT

    def __init__(self, did: str, expected_version: int) -> None:
        super().__init__(
            f"Soul {did!r} was modified concurrently "
            f"(expected version {expected_version})."
        )
        self.did = did
        self.expected_version = expected_version


__all__ = [
    "ChallengeExpiredError",
    "ChallengeNotFoundError",
    "ChallengeUsedError",
    "ConcurrentModificationError",
    "DidMismatchError",
    "ErrorKind",
    "InvalidSignatureError",
    "NameTakenError",
    "RegistryError",
    "SoulNotFoundError",
    "TimestampExpiredError",
]
