"""Route handler functions for the soul registry HTTP server.

Each function takes the :class:`~soul_registry.registry.SoulRegistry` it
operates on plus parsed request data, and returns a tuple of
``(status_code, response_dict)``. The HTTP handler in app.py owns the
registry instance and serializes the results to JSON.
"""
from __future__ import annotations

from pydantic import ValidationError

from soul_registry import __version__
from soul_registry.errors import RegistryError
from soul_registry.registry.documents import SoulStatus
from soul_registry.registry.engine import SoulRegistry
from soul_registry.registry.records import SearchQuery
from soul_registry.server.models import (
    CapabilitiesUpdateRequest,
    ChallengeResponse,
    ContactUpdateRequest,
    ErrorResponse,
    HealthResponse,
    RegisterRequest,
    RegisterResponse,
    SearchParams,
    StatusResponse,
    StatusUpdateRequest,
    VerifyRequest,
    VerifyResponse,
)
from soul_registry.timeutil import format_timestamp, parse_timestamp, utcnow

Response = tuple[int, dict[str, object]]


def _validation_error(exc: ValidationError, message: str, code: str) -> Response:
    details = exc.errors(include_url=False, include_context=False, include_input=False)
    return 400, ErrorResponse(error=message, code=code, details=details).to_dict()


def _registry_error(exc: RegistryError) -> Response:
    return exc.http_status, exc.to_dict()


def _invalid_body(exc: ValidationError) -> Response:
    return _validation_error(exc, "Invalid request body", "INVALID_REQUEST")


def handle_health(registry: SoulRegistry) -> Response:
    """Handle GET /api/health."""
    response = HealthResponse(version=__version__, soul_count=registry.store.count_souls())
    return 200, response.model_dump()


def handle_index() -> Response:
    """Handle GET /v1: service description and endpoint map."""
    return 200, {
        "name": "Soul Protocol Registry",
        "version": __version__,
        "status": "operational",
        "endpoints": {
            "register": "POST /v1/souls/register",
            "resolve": "GET /v1/souls/:didOrName",
            "challenge": "POST /v1/souls/:didOrName/challenge",
            "verify": "POST /v1/souls/:didOrName/verify",
            "contact": "PUT /v1/souls/:didOrName/contact",
            "capabilities": "PUT /v1/souls/:didOrName/capabilities",
            "suspend": "POST /v1/souls/:didOrName/suspend",
            "revoke": "POST /v1/souls/:didOrName/revoke",
            "reactivate": "POST /v1/souls/:didOrName/reactivate",
            "search": "GET /v1/souls",
        },
    }


def handle_register(
    registry: SoulRegistry, body: dict[str, object], base_url: str
) -> Response:
    """Handle POST /v1/souls/register.

    Parameters
    ----------
    registry:
        The registry to register into.
    body:
        Parsed JSON request body.
    base_url:
        Public base URL used to build ``registryUrl``.
    """
    try:
        request = RegisterRequest.model_validate(body)
    except ValidationError as exc:
        return _invalid_body(exc)

    try:
        record = registry.register(request.soul_document, request.signature)
    except RegistryError as exc:
        return _registry_error(exc)

    response = RegisterResponse(
        did=record.did,
        registeredAt=format_timestamp(record.registered_at),
        registryUrl=f"{base_url.rstrip('/')}/v1/souls/{record.did}",
    )
    return 201, response.model_dump()


def handle_resolve(registry: SoulRegistry, did_or_name: str) -> Response:
    """Handle GET /v1/souls/{didOrName}."""
    try:
        record = registry.resolve(did_or_name)
    except RegistryError as exc:
        return _registry_error(exc)
    return 200, record.to_public_dict()


def handle_update_contact(
    registry: SoulRegistry, did_or_name: str, body: dict[str, object]
) -> Response:
    """Handle PUT /v1/souls/{didOrName}/contact."""
    try:
        request = ContactUpdateRequest.model_validate(body)
    except ValidationError as exc:
        return _invalid_body(exc)

    try:
        record = registry.update_contact(
            did_or_name, request.contact, request.signature, request.timestamp
        )
    except RegistryError as exc:
        return _registry_error(exc)

    return 200, {
        "success": True,
        "did": record.did,
        "contact": request.contact.to_wire(),
        "updatedAt": format_timestamp(utcnow()),
    }


def handle_update_capabilities(
    registry: SoulRegistry, did_or_name: str, body: dict[str, object]
) -> Response:
    """Handle PUT /v1/souls/{didOrName}/capabilities."""
    try:
        request = CapabilitiesUpdateRequest.model_validate(body)
    except ValidationError as exc:
        return _invalid_body(exc)

    try:
        record = registry.update_capabilities(
            did_or_name,
            request.capabilities,
            request.risk_level,
            request.signature,
            request.timestamp,
        )
    except RegistryError as exc:
        return _registry_error(exc)

    return 200, {
        "success": True,
        "did": record.did,
        "capabilities": list(record.capabilities or []),
        "riskLevel": record.risk_level.value if record.risk_level else None,
        "updatedAt": format_timestamp(utcnow()),
    }


def handle_issue_challenge(registry: SoulRegistry, did_or_name: str) -> Response:
    """Handle POST /v1/souls/{didOrName}/challenge."""
    try:
        challenge = registry.issue_challenge(did_or_name)
    except RegistryError as exc:
        return _registry_error(exc)

    response = ChallengeResponse(
        challengeId=challenge.challenge_id,
        nonce=challenge.nonce,
        expiresAt=format_timestamp(challenge.expires_at),
    )
    return 200, response.model_dump()


def handle_verify(
    registry: SoulRegistry, did_or_name: str, body: dict[str, object]
) -> Response:
    """Handle POST /v1/souls/{didOrName}/verify (answer a challenge)."""
    try:
        request = VerifyRequest.model_validate(body)
    except ValidationError as exc:
        return _invalid_body(exc)

    try:
        outcome = registry.complete_challenge(
            did_or_name, request.challenge_id, request.signature
        )
    except RegistryError as exc:
        return _registry_error(exc)

    response = VerifyResponse(
        verified=outcome.verified,
        did=outcome.did,
        verifiedAt=format_timestamp(outcome.verified_at),
    )
    return 200, response.model_dump()


def handle_change_status(
    registry: SoulRegistry,
    did_or_name: str,
    status: SoulStatus,
    body: dict[str, object],
) -> Response:
    """Handle POST /v1/souls/{didOrName}/suspend, /revoke and /reactivate."""
    try:
        request = StatusUpdateRequest.model_validate(body)
    except ValidationError as exc:
        return _invalid_body(exc)

    try:
        record = registry.change_status(
            did_or_name, status, request.reason, request.signature, request.timestamp
        )
    except RegistryError as exc:
        return _registry_error(exc)

    if record.status_changed_at is None:
        raise RuntimeError(f"Status change for {record.did} stored no statusChangedAt")
    response = StatusResponse(
        did=record.did,
        status=record.status,
        statusChangedAt=format_timestamp(record.status_changed_at),
    )
    return 200, response.model_dump(mode="json")


def handle_search(registry: SoulRegistry, params: dict[str, str]) -> Response:
    """Handle GET /v1/souls."""
    try:
        parsed = SearchParams.model_validate(params)
    except ValidationError as exc:
        return _validation_error(exc, "Invalid query parameters", "INVALID_PARAMS")

    query = SearchQuery(
        name=parsed.name,
        operator=parsed.operator,
        status=parsed.status,
        registered_after=(
            parse_timestamp(parsed.registered_after) if parsed.registered_after else None
        ),
        registered_before=(
            parse_timestamp(parsed.registered_before) if parsed.registered_before else None
        ),
        limit=parsed.limit,
        offset=parsed.offset,
    )
    page = registry.search(query)
    return 200, {
        "results": [record.to_public_dict() for record in page.results],
        "total": page.total,
        "limit": page.limit,
        "offset": page.offset,
    }


__all__ = [
    "Response",
    "handle_change_status",
    "handle_health",
    "handle_index",
    "handle_issue_challenge",
    "handle_register",
    "handle_resolve",
    "handle_search",
    "handle_update_capabilities",
    "handle_update_contact",
    "handle_verify",
]
