"""Nix base32, the encoding used for the hash part of store paths.

Two things differ from RFC 4648 base32:

- the alphabet is "0123456789abcdfghijklmnpqrsvwxyz" (no e, o, t, u);
- the input is read as one little-endian number and its 5-bit digits are
  written most significant first, so no padding is ever emitted.

A 20-byte store path hash encodes to 32 characters, a SHA-256 digest to 52.

See: nix/src/libutil/hash.cc — printHash32()
"""

CHARS = "0123456789abcdfghijklmnpqrsvwxyz"
_DIGITS = {c: i for i, c in enumerate(CHARS)}


def encoded_length(n: int) -> int:
    """Characters needed for n bytes: ceil(n * 8 / 5)."""
    return (n * 8 + 4) // 5


def encode(data: bytes) -> str:
    value = int.from_bytes(data, "little")
    digits = []
    for i in range(encoded_length(len(data)) - 1, -1, -1):
        digits.append(CHARS[(value >> (i * 5)) & 0x1F])
    return "".join(digits)


def decode(s: str) -> bytes:
    """Decode a Nix base32 string. Bits that do not fill a whole byte are dropped."""
    value = 0
    for ch in s:
        digit = _DIGITS.get(ch)
        if digit is None:
            raise ValueError(f"invalid nix base32 character: {ch!r}")
        value = (value << 5) | digit
    n = len(s) * 5 // 8
    return (value & ((1 << (n * 8)) - 1)).to_bytes(n, "little")
