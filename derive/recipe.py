"""The build recipe: what a stdenv.mkDerivation descriptor declares.

    stdenv.mkDerivation {
      name = "cargo-patch";
      nativeBuildInputs = [ cmake pkgconfig ];
      buildInputs = [ curl libssh2 openssl ];
    }

becomes

    BuildRecipe(
        name="cargo-patch",
        native_build_inputs=("cmake", "pkgconfig"),
        build_inputs=("curl", "libssh2", "openssl"),
    )

Native build inputs are tools run during the build (compilers, generators,
pkg-config). Build inputs are libraries the output links against. Entries
are catalog identifiers, i.e. Nix attribute paths such as "openssl" or
"xorg.libX11"; resolving them is the catalog's job (derivepkgs.catalog).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from derive.errors import RecipeError
from derive.store_path import is_valid_name

_ATTR_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_'\-]*")

NATIVE_BUILD_INPUTS = "nativeBuildInputs"
BUILD_INPUTS = "buildInputs"


def is_identifier(ident: str) -> bool:
    """Whether `ident` is a dotted attribute path usable as a catalog key."""
    return all(_ATTR_RE.fullmatch(part) for part in ident.split("."))


@dataclass(frozen=True)
class BuildRecipe:
    name: str
    native_build_inputs: tuple[str, ...] = ()
    build_inputs: tuple[str, ...] = ()
    env: dict[str, str] = field(default_factory=dict, hash=False)

    def __post_init__(self):
        # Accept lists from callers; store tuples.
        object.__setattr__(self, "native_build_inputs", tuple(self.native_build_inputs))
        object.__setattr__(self, "build_inputs", tuple(self.build_inputs))
        object.__setattr__(self, "env", dict(self.env))

    @property
    def dependencies(self) -> tuple[str, ...]:
        """Every identifier, native inputs first, each once."""
        return tuple(dict.fromkeys(self.native_build_inputs + self.build_inputs))

    def validate(self) -> None:
        if not isinstance(self.name, str) or not self.name:
            raise RecipeError("recipe name must be a non-empty string")
        if not is_valid_name(self.name):
            raise RecipeError(f"recipe name {self.name!r} is not a valid store path name")
        for attr, idents in (
            (NATIVE_BUILD_INPUTS, self.native_build_inputs),
            (BUILD_INPUTS, self.build_inputs),
        ):
            seen = set()
            for ident in idents:
                if not isinstance(ident, str) or not is_identifier(ident):
                    raise RecipeError(f"{attr}: invalid identifier {ident!r}")
                if ident in seen:
                    raise RecipeError(f"{attr}: {ident!r} is listed twice")
                seen.add(ident)
        for key, value in self.env.items():
            if not isinstance(key, str) or not _ATTR_RE.fullmatch(key):
                raise RecipeError(f"env key {key!r} is not a plain attribute name")
            if key in ("name", NATIVE_BUILD_INPUTS, BUILD_INPUTS):
                raise RecipeError(f"{key!r} cannot be set through env")
            if not isinstance(value, str):
                raise RecipeError(f"env value for {key!r} must be a string")
        if "pname" in self.env and self.name != _name_from_pname(self.env):
            raise RecipeError(f"name {self.name!r} does not match pname and version")

    def equivalent(self, other: BuildRecipe) -> bool:
        """Same name, same dependency sets, same env. Order is ignored."""
        return (
            self.name == other.name
            and set(self.native_build_inputs) == set(other.native_build_inputs)
            and set(self.build_inputs) == set(other.build_inputs)
            and self.env == other.env
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "name": self.name,
            NATIVE_BUILD_INPUTS: list(self.native_build_inputs),
            BUILD_INPUTS: list(self.build_inputs),
        }
        d.update(sorted(self.env.items()))
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> BuildRecipe:
        """Inverse of to_dict(). Keys other than the three inputs go to env.

        pname + version without name gives name "<pname>-<version>", as in
        nixpkgs mkDerivation.
        """
        d = dict(d)
        native = d.pop(NATIVE_BUILD_INPUTS, [])
        build = d.pop(BUILD_INPUTS, [])
        for attr, value in ((NATIVE_BUILD_INPUTS, native), (BUILD_INPUTS, build)):
            if not isinstance(value, (list, tuple)):
                raise RecipeError(f"{attr} must be a list")
        name = d.pop("name", None)
        if name is None:
            name = _name_from_pname(d)
        elif "pname" in d:
            raise RecipeError("give either name or pname, not both")
        recipe = cls(name=name, native_build_inputs=native, build_inputs=build, env=d)
        recipe.validate()
        return recipe


def _name_from_pname(attrs: dict[str, Any]) -> str:
    if "pname" not in attrs:
        raise RecipeError("recipe has no name (set name, or pname and version)")
    if "version" not in attrs:
        raise RecipeError("pname requires version")
    return f"{attrs['pname']}-{attrs['version']}"
