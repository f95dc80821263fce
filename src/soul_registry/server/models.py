"""Pydantic request/response models for the soul registry HTTP server."""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from soul_registry.registry.documents import Contact, RiskLevel, SoulDocument, SoulStatus
from soul_registry.timeutil import parse_timestamp


class _Request(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


def _iso_datetime(value: str) -> str:
    try:
        parse_timestamp(value)
    except ValueError as exc:
        raise ValueError(f"{value!r} is not an ISO-8601 datetime") from exc
    return value


class RegisterRequest(_Request):
    """Request body for POST /v1/souls/register."""

    soul_document: SoulDocument = Field(alias="soulDocument")
    signature: str = Field(min_length=1)
    operator_proof: Optional[str] = Field(default=None, alias="operatorProof")


class ContactUpdateRequest(_Request):
    """Request body for PUT /v1/souls/{ref}/contact."""

    contact: Contact
    signature: str = Field(min_length=1)
    timestamp: str

    @field_validator("timestamp")
    @classmethod
    def _validate_timestamp(cls, value: str) -> str:
        return _iso_datetime(value)


class CapabilitiesUpdateRequest(_Request):
    """Request body for PUT /v1/souls/{ref}/capabilities."""

    capabilities: list[str]
    risk_level: Optional[RiskLevel] = Field(default=None, alias="riskLevel")
    signature: str = Field(min_length=1)
    timestamp: str

    @field_validator("timestamp")
    @classmethod
    def _validate_timestamp(cls, value: str) -> str:
        return _iso_datetime(value)


class StatusUpdateRequest(_Request):
    """Request body for POST /v1/souls/{ref}/suspend|revoke|reactivate."""

    reason: str = Field(min_length=1, max_length=500)
    signature: str = Field(min_length=1)
    timestamp: str

    @field_validator("timestamp")
    @classmethod
    def _validate_timestamp(cls, value: str) -> str:
        return _iso_datetime(value)


class VerifyRequest(_Request):
    """Request body for POST /v1/souls/{ref}/verify."""

    challenge_id: str = Field(min_length=1, alias="challengeId")
    signature: str = Field(min_length=1)


class SearchParams(_Request):
    """Query parameters for GET /v1/souls."""

    name: Optional[str] = None
    operator: Optional[str] = None
    status: Optional[SoulStatus] = None
    registered_after: Optional[str] = Field(default=None, alias="registeredAfter")
    registered_before: Optional[str] = Field(default=None, alias="registeredBefore")
    limit: int = Field(default=20, ge=1, le=100)
    offset: int = Field(default=0, ge=0)

    @field_validator("registered_after", "registered_before")
    @classmethod
    def _validate_bounds(cls, value: str | None) -> str | None:
        return _iso_datetime(value) if value is not None else None


class RegisterResponse(BaseModel):
    success: bool = True
    did: str
    registeredAt: str
    registryUrl: str


class ChallengeResponse(BaseModel):
    challengeId: str
    nonce: str
    expiresAt: str


class VerifyResponse(BaseModel):
    verified: bool
    did: str
    verifiedAt: str


class StatusResponse(BaseModel):
    did: str
    status: SoulStatus
    statusChangedAt: str


class HealthResponse(BaseModel):
    """Response body for GET /api/health."""

    name: str = "Soul Protocol Registry"
    version: str = "0.1.0"
    status: str = "operational"
    soul_count: int = 0


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    code: str
    details: Optional[list[dict[str, object]]] = None

    def to_dict(self) -> dict[str, object]:
        return self.model_dump(exclude_none=True)


__all__ = [
    "CapabilitiesUpdateRequest",
    "ChallengeResponse",
    "ContactUpdateRequest",
    "ErrorResponse",
    "HealthResponse",
    "RegisterRequest",
    "RegisterResponse",
    "SearchParams",
    "StatusResponse",
    "StatusUpdateRequest",
    "VerifyRequest",
    "VerifyResponse",
]
