"""Package catalogs: where recipe identifiers are looked up.

A descriptor's ``with import <nixpkgs> {};`` brings a package set into
scope and its input lists name attributes of it. A catalog plays that
role here. Each identifier (a dotted attribute path) resolves to either

  - a Package: a derivation, which becomes an input derivation, or
  - a store path string: an existing store object, which becomes an
    input source.

Two kinds of catalog:

``PackageSet``
    Python subclasses defining packages as @cached_property methods,
    with dependencies injected by parameter name through ``call()``:

        class MyPkgs(PackageSet):
            @cached_property
            def stdenv(self):
                return drv(name="stdenv", builder="/bin/sh", args=[...])

            @cached_property
            def cmake(self):
                return self.call(lambda stdenv: drv(..., deps=[stdenv]))

    Each package is computed at most once, like attributes of a lazily
    evaluated Nix attribute set.

``MappingCatalog``
    A plain (possibly nested) mapping, usually read from a YAML or JSON
    file by ``load_catalog()``.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Union

import yaml

from derive.errors import CatalogError, UnresolvedDependencyError
from derive.recipe import is_identifier
from derive.store_path import is_store_path
from derivepkgs.drv import Package, drv

logger = logging.getLogger(__name__)

Entry = Union[Package, str]

DEFAULT_SHELL = "/bin/sh"
DEFAULT_SYSTEM = "x86_64-linux"


def _check_entry(identifier: str, value) -> Entry:
    if isinstance(value, Package):
        return value
    if isinstance(value, str) and is_store_path(value):
        return value
    raise CatalogError(f"{identifier!r} is neither a package nor a store path: {value!r}")


class Catalog:
    """Interface shared by all catalogs.

    Subclasses implement _lookup(), returning the raw value at an
    attribute path or raising KeyError.
    """

    shell: str = DEFAULT_SHELL
    system: str = DEFAULT_SYSTEM

    def _lookup(self, parts: list[str]):
        raise NotImplementedError

    def resolve(self, identifier: str) -> Entry:
        if not is_identifier(identifier):
            raise CatalogError(f"invalid identifier {identifier!r}")
        try:
            value = self._lookup(identifier.split("."))
        except KeyError:
            raise UnresolvedDependencyError([identifier]) from None
        entry = _check_entry(identifier, value)
        logger.debug("resolved %s to %s", identifier, entry)
        return entry

    def __contains__(self, identifier: str) -> bool:
        try:
            self.resolve(identifier)
        except CatalogError:
            return False
        return True


def resolve_all(catalog: Catalog, identifiers) -> dict[str, Entry]:
    """Resolve every identifier, reporting all missing ones at once."""
    resolved: dict[str, Entry] = {}
    missing: list[str] = []
    for ident in identifiers:
        try:
            resolved[ident] = catalog.resolve(ident)
        except UnresolvedDependencyError:
            missing.append(ident)
    if missing:
        raise UnresolvedDependencyError(missing)
    return resolved


class PackageSet(Catalog):
    """Base class for a lazily-evaluated package set.

    Subclass this and define packages as @cached_property methods.
    Attribute names use underscores where identifiers use dashes, so
    "gnu-config" resolves to self.gnu_config. Nested package sets
    (attributes holding another PackageSet) give dotted identifiers.
    """

    def call(self, fn):
        """Resolve fn's parameters from this package set and call it.

        Like Nix's callPackage: each parameter name is looked up as an
        attribute on self.

            self.call(lambda bash, coreutils: drv(...))
            # same as: fn(bash=self.bash, coreutils=self.coreutils)
        """
        sig = inspect.signature(fn)
        kwargs = {}
        for name in sig.parameters:
            if name == "self":
                continue
            if not _has_package_attr(self, name):
                raise AttributeError(
                    f"package set has no attribute {name!r} "
                    f"(required by {fn.__qualname__})"
                )
            kwargs[name] = getattr(self, name)
        return fn(**kwargs)

    def _lookup(self, parts: list[str]):
        obj = self
        for part in parts:
            attr = part.replace("-", "_")
            if isinstance(obj, PackageSet) and _has_package_attr(obj, attr):
                obj = getattr(obj, attr)
            elif isinstance(obj, Mapping) and part in obj:
                obj = obj[part]
            else:
                raise KeyError(part)
        return obj


_RESERVED = frozenset(dir(PackageSet))


def _has_package_attr(pkgs: PackageSet, attr: str) -> bool:
    # Membership is checked without evaluating the attribute, so errors
    # raised while computing a package propagate instead of reading as
    # "missing".
    if attr.startswith("_") or attr in _RESERVED:
        return False
    return attr in vars(pkgs) or hasattr(type(pkgs), attr)


class MappingCatalog(Catalog):
    """Catalog over a nested mapping of identifiers to entries."""

    def __init__(self, packages: Mapping, *, shell: str = DEFAULT_SHELL,
                 system: str = DEFAULT_SYSTEM):
        self.packages = packages
        self.shell = shell
        self.system = system

    def _lookup(self, parts: list[str]):
        obj = self.packages
        for part in parts:
            if not isinstance(obj, Mapping) or part not in obj:
                raise KeyError(part)
            obj = obj[part]
        return obj

    def __repr__(self) -> str:
        return f"MappingCatalog({len(self.packages)} entries)"


# --- catalog files ---

_DRV_KEYS = {"name", "builder", "args", "env", "deps", "outputs", "system"}


def _flatten(packages: Mapping, prefix: str = "") -> dict[str, object]:
    """Map full identifiers to raw entries. Mappings without "builder" are groups."""
    flat: dict[str, object] = {}
    for key, value in packages.items():
        if not isinstance(key, str) or not is_identifier(key) or "." in key:
            raise CatalogError(f"invalid catalog key {prefix}{key!r}")
        ident = prefix + key
        if isinstance(value, Mapping) and "builder" not in value:
            flat.update(_flatten(value, ident + "."))
        else:
            flat[ident] = value
    return flat


def _nest(flat: Mapping[str, Entry]) -> dict:
    nested: dict = {}
    for ident, entry in flat.items():
        *groups, last = ident.split(".")
        node = nested
        for g in groups:
            node = node.setdefault(g, {})
        node[last] = entry
    return nested


class _CatalogBuilder:
    """Turns raw catalog entries into Packages, dependencies first."""

    def __init__(self, raw: dict[str, object], system: str, source: str):
        self.raw = raw
        self.system = system
        self.source = source
        self.built: dict[str, Entry] = {}
        self.visiting: list[str] = []

    def build(self, ident: str) -> Entry:
        if ident in self.built:
            return self.built[ident]
        if ident not in self.raw:
            raise CatalogError(f"{self.source}: unknown dependency {ident!r}")
        if ident in self.visiting:
            cycle = " -> ".join(self.visiting[self.visiting.index(ident):] + [ident])
            raise CatalogError(f"{self.source}: dependency cycle {cycle}")
        value = self.raw[ident]
        if isinstance(value, str):
            if not is_store_path(value):
                raise CatalogError(f"{self.source}: {ident!r} is not a store path: {value!r}")
            entry: Entry = value
        elif isinstance(value, Mapping):
            self.visiting.append(ident)
            try:
                entry = self._derivation(ident, value)
            finally:
                self.visiting.pop()
        else:
            raise CatalogError(f"{self.source}: bad entry for {ident!r}: {value!r}")
        self.built[ident] = entry
        return entry

    def _derivation(self, ident: str, attrs: Mapping) -> Package:
        unknown = set(attrs) - _DRV_KEYS
        if unknown:
            raise CatalogError(f"{self.source}: {ident!r} has unknown keys {sorted(unknown)}")
        for key in ("args", "deps", "outputs"):
            value = attrs.get(key) or []
            if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                raise CatalogError(f"{self.source}: {key} of {ident!r} must be a list of strings")
        deps: list[Package] = []
        srcs: list[str] = []
        for dep_ident in attrs.get("deps") or []:
            dep = self.build(dep_ident)
            if isinstance(dep, Package):
                deps.append(dep)
            else:
                srcs.append(dep)
        env = attrs.get("env") or {}
        if not isinstance(env, Mapping) or not all(isinstance(v, str) for v in env.values()):
            raise CatalogError(f"{self.source}: env values of {ident!r} must be strings")
        logger.debug("building catalog derivation %s", ident)
        return drv(
            name=attrs.get("name") or ident.rsplit(".", 1)[-1],
            builder=attrs["builder"],
            system=attrs.get("system") or self.system,
            args=attrs.get("args") or [],
            env=env,
            output_names=attrs.get("outputs") or ["out"],
            deps=deps,
            srcs=srcs,
        )


def load_catalog(path: str | Path) -> MappingCatalog:
    """Read a catalog file (YAML, or JSON which YAML accepts).

        system: x86_64-linux
        shell: /bin/sh
        packages:
          openssl: /nix/store/...-openssl-3.0.12
          stdenv:
            builder: /bin/sh
            args: ["-c", "echo > $out"]
          cmake:
            builder: /bin/sh
            args: ["-c", "echo > $out"]
            deps: [stdenv]
          xorg:
            libX11: /nix/store/...-libX11-1.8.7

    A mapping with a "builder" key is a derivation and is built with
    drv(); any other mapping is a group of nested attributes.
    """
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise CatalogError(f"catalog file not found: {path}") from None
    except yaml.YAMLError as e:
        raise CatalogError(f"invalid YAML in catalog {path}: {e}") from e
    if not isinstance(data, Mapping):
        raise CatalogError(f"catalog {path} must contain a mapping")

    system = data.get("system", DEFAULT_SYSTEM)
    shell = data.get("shell", DEFAULT_SHELL)
    packages = data.get("packages") or {}
    if not isinstance(packages, Mapping):
        raise CatalogError(f"catalog {path}: packages must be a mapping")

    raw = _flatten(packages)
    builder = _CatalogBuilder(raw, system, str(path))
    entries = {ident: builder.build(ident) for ident in raw}
    logger.info("loaded %d catalog entries from %s", len(entries), path)
    return MappingCatalog(_nest(entries), shell=shell, system=system)
