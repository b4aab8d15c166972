"""Tests for Nix base32 encoding/decoding."""

import pytest

from derive.base32 import decode, encode, encoded_length

# sha256("hello")
HELLO_SHA256 = bytes.fromhex(
    "2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824"
)
# From: echo -n "hello" | nix hash file --base32 /dev/stdin
HELLO_NIX_B32 = "094qif9n4cq4fdg459qzbhg1c6wywawwaaivx0k0x8xhbyx4vwic"


def test_encode_hello_sha256():
    assert encode(HELLO_SHA256) == HELLO_NIX_B32


def test_decode_hello_sha256():
    assert decode(HELLO_NIX_B32) == HELLO_SHA256


def test_decode_inverts_encode():
    for data in [b"", b"\x00", b"\xff", b"\x00" * 20, b"\xff" * 32, HELLO_SHA256]:
        assert decode(encode(data)) == data


def test_encoded_length():
    for n in range(40):
        assert len(encode(bytes(range(n)))) == encoded_length(n) == (n * 8 + 4) // 5


def test_store_hash_length():
    """A 20-byte store path hash is 32 characters."""
    assert encode(b"\x00" * 20) == "0" * 32


def test_low_bits_come_last():
    assert encode(b"\x01") == "01"
    assert encode(b"\x1f") == "0z"


def test_decode_invalid_char():
    with pytest.raises(ValueError, match="invalid nix base32 character"):
        decode("hello!")
