#!/usr/bin/env python3
"""derive — read, check and evaluate stdenv.mkDerivation descriptors."""

import argparse
import json
import logging
import sys

from derive import __version__, config as configmod, derivation, expr
from derive.errors import ConfigError, DeriveError, UnresolvedDependencyError

logger = logging.getLogger(__name__)


def _read(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    try:
        with open(path, encoding="utf-8") as f:
            return f.read()
    except OSError as e:
        raise DeriveError(f"cannot read {path}: {e.strerror}") from e


def _descriptor(args) -> expr.Descriptor:
    return expr.parse(_read(args.file or args.config.descriptor))


def _catalog(args):
    from derivepkgs.catalog import load_catalog

    path = args.catalog or args.config.catalog
    if path is None:
        raise ConfigError("no catalog given (use --catalog or DERIVE_CATALOG)")
    return load_catalog(path)


def _dump(obj) -> None:
    json.dump(obj, sys.stdout, indent=2)
    print()


def cmd_show(args) -> int:
    desc = _descriptor(args)
    _dump({
        "channel": desc.channel,
        "constructor": desc.constructor,
        "recipe": desc.recipe.to_dict(),
    })
    return 0


def cmd_fmt(args) -> int:
    path = args.file or args.config.descriptor
    text = _read(path)
    formatted = expr.serialize(expr.parse(text))
    if args.check:
        if text != formatted:
            print(f"{path}: not formatted", file=sys.stderr)
            return 1
        return 0
    sys.stdout.write(formatted)
    return 0


def cmd_check(args) -> int:
    from derivepkgs.catalog import resolve_all

    desc = _descriptor(args)
    desc.recipe.validate()
    try:
        resolved = resolve_all(_catalog(args), desc.recipe.dependencies)
    except UnresolvedDependencyError as e:
        for ident in e.missing:
            print(f"missing: {ident}")
        return 1
    for ident, entry in resolved.items():
        print(f"{ident}: {entry}")
    return 0


def cmd_plan(args) -> int:
    from derivepkgs.plan import evaluate

    plan = evaluate(_descriptor(args), _catalog(args), system=args.config.system)
    if args.drv:
        print(plan.drv_text)
    else:
        _dump(plan.to_dict())
    return 0


def cmd_drv_show(args) -> int:
    drv = derivation.parse(_read(args.drv_path))
    _dump({args.drv_path: drv.to_dict()})
    return 0


def cmd_cargo_patch(args) -> int:
    from derive import cargo_patch

    replace = cargo_patch.parse_replace(args.replace)
    graph = cargo_patch.Graph.from_metadata(cargo_patch.cargo_metadata(manifest_path=args.manifest_path))
    report = cargo_patch.patch(graph, replace, args.dir)
    for name in report.skipped:
        print(f"Skipping {name}")
    for name in report.copied:
        print(f"Copying {name}...")
    for path in report.manifests:
        print(f"patched {path}")
    return 0


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="derive", description="Evaluate stdenv.mkDerivation descriptors")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="More logging (repeatable)")
    parser.add_argument("--config", dest="config_path", metavar="PATH", help="YAML config file")
    sub = parser.add_subparsers(dest="command")

    # show
    p = sub.add_parser("show", help="Print a descriptor's recipe as JSON")
    p.add_argument("file", nargs="?")
    p.set_defaults(func=cmd_show)

    # fmt
    p = sub.add_parser("fmt", help="Print a descriptor in canonical form")
    p.add_argument("file", nargs="?")
    p.add_argument("--check", action="store_true", help="Exit 1 if the file is not canonical")
    p.set_defaults(func=cmd_fmt)

    # check
    p = sub.add_parser("check", help="Resolve every dependency in the catalog")
    p.add_argument("file", nargs="?")
    p.add_argument("--catalog")
    p.set_defaults(func=cmd_check)

    # plan
    p = sub.add_parser("plan", help="Evaluate a descriptor into a build plan")
    p.add_argument("file", nargs="?")
    p.add_argument("--catalog")
    p.add_argument("--system", help="Override the catalog's build platform")
    p.add_argument("--drv", action="store_true", help="Print the ATerm .drv instead of JSON")
    p.set_defaults(func=cmd_plan)

    # drv-show
    p = sub.add_parser("drv-show", help="Show a parsed .drv file as JSON")
    p.add_argument("drv_path")
    p.set_defaults(func=cmd_drv_show)

    # cargo-patch
    p = sub.add_parser("cargo-patch", help="Point a crate's dependency graph at replacement crates")
    p.add_argument("--replace", action="append", default=[], metavar="NAME=URL",
                   help="Take crate NAME from git URL (repeatable)")
    p.add_argument("--manifest-path", help="Cargo.toml of the crate (default: found from the current directory)")
    p.add_argument("--dir", default="cargo-patch", help="Where changed crates are copied")
    p.set_defaults(func=cmd_cargo_patch)

    return parser


def _setup_logging(verbose: int, level_name: str) -> None:
    if verbose:
        level = logging.INFO if verbose == 1 else logging.DEBUG
    else:
        level = logging.getLevelName(level_name.upper())
        if not isinstance(level, int):
            raise ConfigError(f"unknown log level {level_name!r}")
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def main(argv=None) -> int:
    parser = _parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1
    try:
        args.config = configmod.load_config(args.config_path).update(
            system=getattr(args, "system", None),
        )
        _setup_logging(args.verbose, args.config.log_level)
        logger.debug("config: %s", args.config)
        return args.func(args)
    except ValueError as e:
        # DeriveError and .drv parse errors
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
