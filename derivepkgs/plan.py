"""Evaluate a BuildRecipe against a catalog into a build plan.

This is the step nix-instantiate performs on a descriptor:

    with import <nixpkgs> {};          # catalog
    stdenv.mkDerivation { ... }        # recipe, built with mk_derivation()

Every identifier in nativeBuildInputs and buildInputs is resolved in the
catalog, together with the stdenv the constructor belongs to. The result
is the derivation the Nix daemon would build, wrapped in a BuildPlan that
still remembers which identifier each input came from.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from derive.errors import RecipeError, UnresolvedDependencyError
from derive.expr import DEFAULT_CONSTRUCTOR, Descriptor
from derive.recipe import BuildRecipe
from derivepkgs.catalog import Catalog, Entry, resolve_all
from derivepkgs.drv import Package
from derivepkgs.mk_derivation import mk_derivation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuildPlan:
    recipe: BuildRecipe
    stdenv: Entry
    native_build_inputs: dict[str, Entry]
    build_inputs: dict[str, Entry]
    package: Package

    @property
    def name(self) -> str:
        return self.package.name

    @property
    def requested(self) -> tuple[str, ...]:
        """Identifiers this plan asked the catalog for, in declaration order.

        stdenv is the environment the build runs in, not a requested input.
        """
        return tuple(self.native_build_inputs) + tuple(self.build_inputs)

    @property
    def drv_path(self) -> str:
        return self.package.drv_path

    @property
    def outputs(self) -> dict[str, str]:
        return dict(self.package.outputs)

    @property
    def drv_text(self) -> str:
        return self.package.drv_text

    def to_dict(self) -> dict:
        """JSON view: `nix derivation show` output plus the resolved inputs."""
        def paths(entries: dict[str, Entry]) -> dict[str, str]:
            return {ident: str(entry) for ident, entry in entries.items()}

        return {
            "name": self.name,
            "drvPath": self.drv_path,
            "outputs": self.outputs,
            "stdenv": str(self.stdenv),
            "nativeBuildInputs": paths(self.native_build_inputs),
            "buildInputs": paths(self.build_inputs),
            "derivation": self.package.drv.to_dict(),
        }


def _stdenv_identifier(constructor: str) -> str:
    head, sep, tail = constructor.rpartition(".")
    if not sep or tail != "mkDerivation":
        raise RecipeError(f"unsupported constructor {constructor!r}, expected <stdenv>.mkDerivation")
    return head


def evaluate(
    recipe: BuildRecipe | Descriptor,
    catalog: Catalog,
    *,
    constructor: str = DEFAULT_CONSTRUCTOR,
    system: str | None = None,
) -> BuildPlan:
    """Resolve recipe's inputs in catalog and build its derivation.

    A Descriptor brings its own constructor. system overrides the
    catalog's build platform. Raises RecipeError for an
    invalid recipe and UnresolvedDependencyError naming every identifier
    (stdenv included) that the catalog lacks.
    """
    if isinstance(recipe, Descriptor):
        constructor = recipe.constructor
        recipe = recipe.recipe
    recipe.validate()

    stdenv_ident = _stdenv_identifier(constructor)
    missing: list[str] = []
    try:
        stdenv = catalog.resolve(stdenv_ident)
    except UnresolvedDependencyError:
        missing.append(stdenv_ident)
    try:
        resolved = resolve_all(catalog, recipe.dependencies)
    except UnresolvedDependencyError as e:
        missing.extend(e.missing)
    if missing:
        raise UnresolvedDependencyError(missing)

    native = {ident: resolved[ident] for ident in recipe.native_build_inputs}
    build = {ident: resolved[ident] for ident in recipe.build_inputs}

    env = dict(recipe.env)
    pname = env.pop("pname", None)
    # without pname, version is an ordinary attribute
    version = env.pop("version", None) if pname is not None else None
    package = mk_derivation(
        name=None if pname is not None else recipe.name,
        pname=pname,
        version=version,
        builder=catalog.shell,
        stdenv=stdenv,
        native_build_inputs=list(native.values()),
        build_inputs=list(build.values()),
        env=env,
        system=system or catalog.system,
    )
    logger.info("evaluated %s -> %s", recipe.name, package.drv_path)
    return BuildPlan(
        recipe=recipe,
        stdenv=stdenv,
        native_build_inputs=native,
        build_inputs=build,
        package=package,
    )
