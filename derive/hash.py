"""Hashing helpers shared by store path and derivation code.

See: nix/src/libutil/hash.cc — compressHash()
"""

import hashlib


def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def compress_hash(digest: bytes, size: int) -> bytes:
    """Fold a digest down to `size` bytes by XOR-ing the overflow back in.

    Store paths use 20 bytes of a SHA-256 digest. Bytes 20..31 are XOR'd
    onto bytes 0..11 rather than thrown away, so every input byte counts.
    """
    folded = bytearray(size)
    for i, b in enumerate(digest):
        folded[i % size] ^= b
    return bytes(folded)
