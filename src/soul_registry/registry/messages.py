"""Signing messages for signature-gated mutations.

Clients and the registry must build these strings identically. Each is an
operation tag, the subject's DID and the signed fields, joined with ``:``.
The timestamp is embedded exactly as the client sent it.
"""
from __future__ import annotations

from soul_registry.registry.documents import SoulStatus

SEPARATOR = ":"

CONTACT_UPDATE_TAG = "contact-update"
CAPABILITIES_UPDATE_TAG = "capabilities-update"


def contact_update_message(did: str, timestamp: str) -> str:
    """``contact-update:<did>:<timestamp>``"""
    return SEPARATOR.join((CONTACT_UPDATE_TAG, did, timestamp))


def capabilities_update_message(did: str, timestamp: str) -> str:
    """``capabilities-update:<did>:<timestamp>``"""
    return SEPARATOR.join((CAPABILITIES_UPDATE_TAG, did, timestamp))


def status_change_message(status: SoulStatus, did: str, reason: str, timestamp: str) -> str:
    """``<status>:<did>:<reason>:<timestamp>``, tagged with the target status name."""
    return SEPARATOR.join((SoulStatus(status).value, did, reason, timestamp))


__all__ = [
    "CAPABILITIES_UPDATE_TAG",
    "CONTACT_UPDATE_TAG",
    "SEPARATOR",
    "capabilities_update_message",
    "contact_update_message",
    "status_change_message",
]
