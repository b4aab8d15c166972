"""Python equivalent of stdenv.mkDerivation.

Like nixpkgs/pkgs/stdenv/generic/make-derivation.nix, this wraps drv()
with the environment every mkDerivation package gets:

  - the dependency attributes (nativeBuildInputs, buildInputs, depsBuildBuild,
    ...) always present, empty unless given;
  - "stdenv" pointing at the stdenv output, whose setup script the builder
    sources;
  - builder args that source $stdenv/setup and run genericBuild.

Inputs may be Packages or plain store paths. A Package becomes an input
derivation (its "out" output); a store path becomes an input source. In
both cases the path is listed, space separated, in the matching env var,
which is how setup.sh finds them.

Usage::

    pkg = mk_derivation(
        name="cargo-patch", builder="/bin/sh", stdenv=stdenv,
        native_build_inputs=[cmake, pkgconfig],
        build_inputs=[curl, libssh2, openssl],
    )
"""

from __future__ import annotations

from typing import Union

from derivepkgs.drv import Package, drv

Input = Union[Package, str]

# Attributes make-derivation.nix always sets; empty by default.
MKDERIVATION_DEFAULTS = {
    "__structuredAttrs": "",
    "buildInputs": "",
    "cmakeFlags": "",
    "configureFlags": "",
    "depsBuildBuild": "",
    "depsBuildBuildPropagated": "",
    "depsBuildTarget": "",
    "depsBuildTargetPropagated": "",
    "depsHostHost": "",
    "depsHostHostPropagated": "",
    "depsTargetTarget": "",
    "depsTargetTargetPropagated": "",
    "doCheck": "",
    "doInstallCheck": "",
    "mesonFlags": "",
    "nativeBuildInputs": "",
    "patches": "",
    "propagatedBuildInputs": "",
    "propagatedNativeBuildInputs": "",
    "strictDeps": "",
}

GENERIC_BUILDER_SCRIPT = 'source "$stdenv/setup"; genericBuild'


def mk_derivation(
    *,
    builder: str,
    stdenv: Input,
    pname: str | None = None,
    version: str | None = None,
    name: str | None = None,
    native_build_inputs: list[Input] | None = None,
    build_inputs: list[Input] | None = None,
    env: dict[str, str] | None = None,
    system: str = "x86_64-linux",
) -> Package:
    """Create a package the way stdenv.mkDerivation does.

    Either ``name`` or ``pname`` (+ ``version``) names the derivation;
    with pname both pname and version are also exported in env.

    Args:
        builder: Shell the build runs under (stdenv.shell).
        stdenv: The stdenv providing setup; a Package or store path.
        native_build_inputs: Build-time tools, in order.
        build_inputs: Libraries to build and link against, in order.
        env: Further attributes; override the defaults.
        system: Build platform.
    """
    if name is not None and pname is not None:
        raise ValueError("name and pname are mutually exclusive")
    if name is not None:
        drv_name = name
    elif pname is not None:
        drv_name = f"{pname}-{version or ''}"
    else:
        raise ValueError("either name or pname is required")

    native_build_inputs = list(native_build_inputs or [])
    build_inputs = list(build_inputs or [])

    merged_env = dict(MKDERIVATION_DEFAULTS)
    merged_env["outputs"] = "out"
    merged_env["stdenv"] = str(stdenv)
    if pname is not None:
        merged_env["pname"] = pname
        merged_env["version"] = version or ""
    if env:
        merged_env.update(env)
    merged_env["nativeBuildInputs"] = " ".join(str(i) for i in native_build_inputs)
    merged_env["buildInputs"] = " ".join(str(i) for i in build_inputs)

    deps: list[Package] = []
    srcs: list[str] = []
    for inp in [stdenv, *native_build_inputs, *build_inputs]:
        if not isinstance(inp, Package):
            srcs.append(inp)
        elif inp not in deps:
            deps.append(inp)

    # Only the "out" output of each input is used, as with ${pkg} interpolation.
    input_drvs = {dep.drv_path: ["out"] for dep in deps}

    return drv(
        name=drv_name,
        builder=builder,
        system=system,
        args=["-e", "-c", GENERIC_BUILDER_SCRIPT],
        env=merged_env,
        deps=deps,
        srcs=srcs,
        input_drvs=input_drvs,
    )
