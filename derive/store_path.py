"""Store path computation and parsing.

A store path is /nix/store/<hash>-<name>, where <hash> is 32 characters of
Nix base32 (160 bits). The hash is derived from a fingerprint:

    "<type>:sha256:<hex(inner_hash)>:/nix/store:<name>"

SHA-256 of the fingerprint is XOR-folded to 20 bytes and base32-encoded.

<type> is "text" for .drv files and other text written to the store, and
"output:<name>" for derivation outputs. References are appended to the
type, sorted, each behind a ':'; with no references there is no trailing
colon.

See: nix/src/libstore/store-api.cc — makeStorePath(), makeTextPath()
"""

import re

from derive.base32 import CHARS, encode as b32encode
from derive.errors import StorePathError
from derive.hash import compress_hash, sha256

STORE_DIR = "/nix/store"
HASH_BYTES = 20
HASH_CHARS = 32
MAX_NAME_LEN = 211

_NAME_RE = re.compile(r"[A-Za-z0-9+\-._?=]+")
_HASH_RE = re.compile(f"[{CHARS}]{{{HASH_CHARS}}}")


def is_valid_name(name: str) -> bool:
    """Whether `name` may appear after the hash in a store path.

    Same rule as nix's checkName(): allowed characters only, no leading
    dot, at most 211 characters.
    """
    return (
        0 < len(name) <= MAX_NAME_LEN
        and not name.startswith(".")
        and _NAME_RE.fullmatch(name) is not None
    )


def make_store_path(type_prefix: str, inner_hash: bytes, name: str) -> str:
    if not is_valid_name(name):
        raise StorePathError(f"invalid store path name: {name!r}")
    fingerprint = f"{type_prefix}:sha256:{inner_hash.hex()}:{STORE_DIR}:{name}"
    digest = compress_hash(sha256(fingerprint.encode()), HASH_BYTES)
    return f"{STORE_DIR}/{b32encode(digest)}-{name}"


def _make_type(base: str, refs: list[str]) -> str:
    return ":".join([base, *sorted(refs)])


def make_text_store_path(name: str, content: bytes, references: list[str] | None = None) -> str:
    """Store path for text written to the store (.drv files, builtins.toFile).

    The inner hash is the SHA-256 of the raw content.
    """
    return make_store_path(_make_type("text", references or []), sha256(content), name)


def make_output_path(drv_hash: bytes, output_name: str, name: str) -> str:
    """Store path of a derivation output.

    drv_hash is hash_derivation_modulo() of the derivation. "out" keeps the
    derivation name; any other output gets "-<output>" appended.
    """
    path_name = name if output_name == "out" else f"{name}-{output_name}"
    return make_store_path(f"output:{output_name}", drv_hash, path_name)


def parse_store_path(path: str) -> tuple[str, str]:
    """Split a store path into (hash, name), raising StorePathError if malformed."""
    prefix = STORE_DIR + "/"
    if not path.startswith(prefix):
        raise StorePathError(f"path {path!r} is not in {STORE_DIR}")
    base = path[len(prefix):]
    if "/" in base:
        raise StorePathError(f"path {path!r} is not a top-level store path")
    hash_part, sep, name = base.partition("-")
    if not sep or not _HASH_RE.fullmatch(hash_part):
        raise StorePathError(f"path {path!r} has an invalid hash part")
    if not is_valid_name(name):
        raise StorePathError(f"path {path!r} has an invalid name")
    return hash_part, name


def is_store_path(path: str) -> bool:
    try:
        parse_store_path(path)
    except StorePathError:
        return False
    return True
