"""Tests for soul_registry.crypto.encoding: hex and base58 key material."""
from __future__ import annotations

import pytest

from soul_registry.crypto.encoding import (
    base58_decode,
    base58_encode,
    decode_key_material,
    is_hex,
)


class TestBase58:
    def test_known_vector(self) -> None:
        assert base58_encode(b"Hello World!") == "2NEpo7TZRRrLZSi2U"
        assert base58_decode("2NEpo7TZRRrLZSi2U") == b"Hello World!"

    def test_leading_zero_bytes_become_ones(self) -> None:
        assert base58_encode(b"\x00\x00\x01") == "112"
        assert base58_decode("112") == b"\x00\x00\x01"

    def test_empty(self) -> None:
        assert base58_encode(b"") == ""
        assert base58_decode("") == b""

    @pytest.mark.parametrize("bad", ["0abc", "O", "Il", "abc!"])
    def test_invalid_characters_raise(self, bad: str) -> None:
        with pytest.raises(ValueError):
            base58_decode(bad)


class TestIsHex:
    @pytest.mark.parametrize("text", ["00", "abcd", "ABCDEF", "0a1B"])
    def test_accepts_even_length_hex(self, text: str) -> None:
        assert is_hex(text)

    @pytest.mark.parametrize("text", ["", "abc", "zz", "0x00", "ab cd"])
    def test_rejects_everything_else(self, text: str) -> None:
        assert not is_hex(text)


class TestDecodeKeyMaterial:
    def test_plain_hex(self) -> None:
        assert decode_key_material("abcd") == b"\xab\xcd"

    def test_0x_prefixed_hex(self) -> None:
        assert decode_key_material("0xabcd") == b"\xab\xcd"

    def test_multibase_base58(self) -> None:
        key = bytes(range(32))
        assert decode_key_material("z" + base58_encode(key)) == key

    def test_odd_length_falls_back_to_base58(self) -> None:
        assert decode_key_material("2NEpo7TZRRrLZSi2U") == b"Hello World!"

    @pytest.mark.parametrize("text", ["", "z", "0x", "z0x"])
    def test_empty_after_prefixes_raises(self, text: str) -> None:
        with pytest.raises(ValueError):
            decode_key_material(text)

    def test_garbage_raises_value_error(self) -> None:
        with pytest.raises(ValueError):
            decode_key_material("not-a-key!")
