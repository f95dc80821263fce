"""Canonical JSON serialization and document hashing.

Two independent implementations fed the same logical document must produce
byte-identical output, so the rules are fixed:

- object keys sorted by codepoint at every nesting level
- array element order preserved
- no whitespace (``","`` and ``":"`` separators)
- non-ASCII characters written as raw UTF-8, the way ``JSON.stringify`` does
"""
from __future__ import annotations

import hashlib
import json
from typing import Any


def _sort_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: _sort_keys(value[key]) for key in sorted(value)}
    if isinstance(value, (list, tuple)):
        return [_sort_keys(item) for item in value]
    return value


def canonicalize(value: Any) -> bytes:
    """Return the canonical UTF-8 byte form of a JSON-like *value*.

    Raises
    ------
    ValueError
        If *value* contains NaN or infinite floats.
    TypeError
        If *value* contains something that is not JSON-serializable.
    """
    text = json.dumps(
        _sort_keys(value),
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )
    return text.encode("utf-8")


def hash_document(document: Any) -> str:
    """Return the lowercase hex SHA-512 digest of ``canonicalize(document)``."""
    return hashlib.sha512(canonicalize(document)).hexdigest()


__all__ = ["canonicalize", "hash_document"]
