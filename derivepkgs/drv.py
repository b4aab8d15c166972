"""Derivation construction with computed output paths.

    pkg = drv(name="hello", builder="/bin/sh", args=["-c", "echo hi > $out"])

drv() takes readable arguments, builds the Derivation, computes
hashDerivationModulo, fills in the output paths and computes the store
path of the .drv file itself. The result is a Package.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from derive.derivation import (
    Derivation,
    DerivationOutput,
    hash_derivation_modulo,
    serialize,
)
from derive.store_path import make_output_path, make_text_store_path


def _collect_input_hashes(deps: tuple[Package, ...], drv_hashes: dict[str, bytes]) -> None:
    """Fill drv_hashes for deps and everything below them.

    Inputs are hashed with their output paths in place (mask_outputs=False),
    as Nix's pathDerivationModulo does; only the derivation being built
    has its own outputs blanked.
    """
    for dep in deps:
        if dep.drv_path in drv_hashes:
            continue
        _collect_input_hashes(dep.deps, drv_hashes)
        drv_hashes[dep.drv_path] = hash_derivation_modulo(dep.drv, drv_hashes, mask_outputs=False)


@dataclass(frozen=True)
class Package:
    """A derivation with its output paths and .drv path computed.

    str(pkg) is the "out" path, which is what Nix interpolates a
    derivation to.
    """

    name: str
    drv: Derivation = field(compare=False)
    drv_path: str
    outputs: dict[str, str] = field(compare=False)
    deps: tuple[Package, ...] = field(default=(), compare=False, repr=False)
    _args: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def out(self) -> str:
        return self.outputs["out"]

    @property
    def drv_text(self) -> str:
        return serialize(self.drv)

    def __str__(self) -> str:
        return self.out

    def override(self, **kw) -> Package:
        """Re-derive with some arguments replaced, like pkg.override in Nix."""
        return drv(**{**self._args, **kw})


def drv(
    name: str,
    builder: str,
    system: str = "x86_64-linux",
    args: list[str] | None = None,
    env: dict[str, str] | None = None,
    output_names: list[str] | None = None,
    deps: list[Package] | None = None,
    srcs: list[str] | None = None,
    input_drvs: dict[str, list[str]] | None = None,
) -> Package:
    """Create a Package.

    Args:
        name:         Derivation name, the store path suffix.
        builder:      Path of the builder executable.
        system:       Build platform.
        args:         Arguments to the builder.
        env:          Extra environment variables.
        output_names: Output names (default: ["out"]).
        deps:         Input derivations. All their outputs are inputs
                      unless input_drvs says otherwise.
        srcs:         Input source store paths.
        input_drvs:   Per-dependency output selection, drv path -> names.
    """
    args = list(args or [])
    env = dict(env or {})
    output_names = list(output_names or ["out"])
    deps = tuple(deps or ())
    srcs = sorted(set(srcs or ()))

    orig_args = dict(
        name=name, builder=builder, system=system, args=args, env=env,
        output_names=output_names, deps=list(deps), srcs=srcs,
        input_drvs=input_drvs,
    )

    selected = {dep.drv_path: sorted(dep.outputs) for dep in deps}
    for drv_path, outs in (input_drvs or {}).items():
        if drv_path not in selected:
            raise ValueError(f"input_drvs names {drv_path}, which is not in deps")
        selected[drv_path] = sorted(outs)

    drv_obj = Derivation(
        outputs={n: DerivationOutput("") for n in output_names},
        input_drvs=selected,
        input_srcs=srcs,
        platform=system,
        builder=builder,
        args=list(args),
        env=dict(env),
    )
    drv_obj.env.setdefault("name", name)
    drv_obj.env.setdefault("builder", builder)
    drv_obj.env.setdefault("system", system)
    for n in output_names:
        drv_obj.env[n] = ""

    drv_hashes: dict[str, bytes] = {}
    _collect_input_hashes(deps, drv_hashes)
    drv_hash = hash_derivation_modulo(drv_obj, drv_hashes)

    outputs = {n: make_output_path(drv_hash, n, name) for n in output_names}
    for n, path in outputs.items():
        drv_obj.outputs[n] = DerivationOutput(path)
        drv_obj.env[n] = path

    refs = sorted(selected) + srcs
    drv_path = make_text_store_path(name + ".drv", serialize(drv_obj).encode(), refs)

    return Package(
        name=name,
        drv=drv_obj,
        drv_path=drv_path,
        outputs=outputs,
        deps=deps,
        _args=orig_args,
    )
