"""Key and signature text encodings: hex and base58btc.

Clients submit public keys and signatures either as hex (optionally
``0x``-prefixed) or as base58btc (optionally carrying the multibase ``z``
prefix). :func:`decode_key_material` accepts both.
"""
from __future__ import annotations

import re

_BASE58_ALPHABET: str = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_BASE58_INDEX: dict[str, int] = {char: index for index, char in enumerate(_BASE58_ALPHABET)}

_HEX_PATTERN = re.compile(r"^(?:[0-9a-fA-F]{2})+$")


def base58_encode(data: bytes) -> str:
    """Encode *data* as a base58btc string (no multibase prefix)."""
    n = int.from_bytes(data, "big")
    result: list[str] = []
    while n > 0:
        n, remainder = divmod(n, 58)
        result.append(_BASE58_ALPHABET[remainder])
    # Leading zero bytes are written as '1' characters
    for byte in data:
        if byte != 0:
            break
        result.append("1")
    return "".join(reversed(result))


def base58_decode(encoded: str) -> bytes:
    """Decode a base58btc string to bytes.

    Raises
    ------
    ValueError
        If *encoded* contains a character outside the base58btc alphabet.
    """
    n = 0
    for char in encoded:
        value = _BASE58_INDEX.get(char)
        if value is None:
            raise ValueError(f"Invalid base58 character {char!r}")
        n = n * 58 + value
    body = n.to_bytes((n.bit_length() + 7) // 8, "big") if n > 0 else b""
    pad_size = len(encoded) - len(encoded.lstrip("1"))
    return b"\x00" * pad_size + body


def is_hex(text: str) -> bool:
    """Return True if *text* is non-empty, even-length, well-formed hex."""
    return bool(_HEX_PATTERN.match(text))


def decode_key_material(text: str) -> bytes:
    """Decode a public key or signature given as hex or base58.

    A leading ``z`` (multibase base58btc marker) and then a leading ``0x``
    are stripped. The remainder is decoded as hex when it is well-formed hex,
    otherwise as base58.

    Raises
    ------
    ValueError
        If the text is neither valid hex nor valid base58.
    """
    if text.startswith("z"):
        text = text[1:]
    if text.startswith("0x"):
        text = text[2:]
    if not text:
        raise ValueError("Empty key material")
    if is_hex(text):
        return bytes.fromhex(text)
    return base58_decode(text)


__all__ = ["base58_decode", "base58_encode", "decode_key_material", "is_hex"]
