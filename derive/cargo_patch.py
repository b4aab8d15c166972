"""Patch a Cargo project's dependency graph with local or git crates.

This is the tool the cargo-patch descriptor builds, run as
``derive cargo-patch [--replace name=url ...]`` from inside a crate.

Given replacements ``name=url``, every crate that (transitively) depends on
a replaced crate has to be rebuilt against the replacement. The walk goes
depth-first over cargo's resolved graph:

  - a dependency named in the replacements points at its git URL,
  - a dependency whose own dependencies changed is copied into
    ./cargo-patch/<name> and pointed at by path,
  - everything else is left alone.

Each changed crate gets its Cargo.toml rewritten; the root crate's manifest
is rewritten in place. In [dependencies], [dev-dependencies] and
[build-dependencies] a patched entry loses its version, path and git keys
and gains the new path or git key. A plain version string is promoted to a
table first:

    serde = "1.0"            ->  serde = {git = "https://..."}
"""

from __future__ import annotations

import json
import logging
import shutil
import subprocess
from collections.abc import Iterable, MutableMapping
from dataclasses import dataclass, field
from pathlib import Path

import tomlkit

from derive.errors import PatchError

logger = logging.getLogger(__name__)

DEFAULT_PATCH_DIR = "cargo-patch"
DEPENDENCY_TABLES = ("dependencies", "dev-dependencies", "build-dependencies")
_SOURCE_KEYS = ("version", "path", "git")


def parse_replace(values: Iterable[str]) -> dict[str, str]:
    """Parse --replace arguments of the form name=url."""
    replace = {}
    for value in values:
        name, sep, url = value.partition("=")
        if not sep or not name:
            raise PatchError(f"incorrect syntax for --replace {value!r}, use name=url")
        replace[name] = url
    return replace


@dataclass(frozen=True)
class PackagePath:
    """Where a patched dependency comes from: a git URL or a local path."""

    git: str | None = None
    path: Path | None = None

    def apply(self, table: MutableMapping) -> None:
        for key in _SOURCE_KEYS:
            if key in table:
                del table[key]
        if self.git is not None:
            table["git"] = self.git
        else:
            table["path"] = str(self.path)


def rewrite_dependencies(manifest: MutableMapping, updates: dict[str, PackagePath], source="Cargo.toml") -> None:
    """Point the dependencies named in updates at their new source."""
    for table_name in DEPENDENCY_TABLES:
        deps = manifest.get(table_name)
        if deps is None:
            continue
        for name, new in updates.items():
            if name not in deps:
                continue
            dep = deps[name]
            if isinstance(dep, MutableMapping):
                new.apply(dep)
            elif isinstance(dep, str):
                table = tomlkit.inline_table()
                new.apply(table)
                deps[name] = table
            else:
                raise PatchError(f"{source}: dependency {name!r} is neither a string nor a table")


@dataclass(frozen=True)
class CargoPackage:
    id: str
    name: str
    manifest_path: Path

    @property
    def directory(self) -> Path:
        return self.manifest_path.parent


@dataclass
class Graph:
    """The resolved dependency graph from `cargo metadata`."""

    root: str
    packages: dict[str, CargoPackage]
    dependencies: dict[str, list[str]]

    @classmethod
    def from_metadata(cls, data: dict) -> Graph:
        resolve = data.get("resolve") or {}
        root = resolve.get("root")
        if root is None:
            raise PatchError("no current package; run inside a crate, not a virtual workspace")
        packages = {
            p["id"]: CargoPackage(p["id"], p["name"], Path(p["manifest_path"]))
            for p in data["packages"]
        }
        dependencies = {node["id"]: list(node["dependencies"]) for node in resolve.get("nodes", [])}
        return cls(root, packages, dependencies)

    @property
    def root_package(self) -> CargoPackage:
        return self.packages[self.root]


def cargo_metadata(cwd: str | Path = ".", manifest_path: str | Path | None = None) -> dict:
    """Run `cargo metadata` and return its JSON."""
    cmd = ["cargo", "metadata", "--format-version", "1"]
    if manifest_path is not None:
        cmd += ["--manifest-path", str(manifest_path)]
    try:
        result = subprocess.run(cmd, cwd=cwd, capture_output=True, text=True, check=True)
    except FileNotFoundError:
        raise PatchError("cargo not found on PATH") from None
    except subprocess.CalledProcessError as e:
        raise PatchError(f"cargo metadata failed: {e.stderr.strip()}") from e
    return json.loads(result.stdout)


@dataclass
class PatchReport:
    copied: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    manifests: list[Path] = field(default_factory=list)


class _Patcher:
    def __init__(self, graph: Graph, replace: dict[str, str], basedir: Path):
        self.graph = graph
        self.replace = replace
        self.basedir = basedir
        self.changed: dict[str, bool] = {}
        self.stack: list[str] = []
        self.report = PatchReport()

    def visit(self, pkg_id: str) -> bool:
        """Patch pkg_id's dependencies; return whether pkg_id itself changed."""
        if pkg_id in self.changed:
            return self.changed[pkg_id]
        if pkg_id in self.stack:
            names = [self.graph.packages[i].name for i in self.stack[self.stack.index(pkg_id):]]
            names.append(self.graph.packages[pkg_id].name)
            raise PatchError("dependency loop: " + " -> ".join(names))

        self.stack.append(pkg_id)
        updates: dict[str, PackagePath] = {}
        for dep_id in self.graph.dependencies.get(pkg_id, []):
            dep = self.graph.packages[dep_id]
            if dep.name in self.replace:
                updates[dep.name] = PackagePath(git=self.replace[dep.name])
            elif self.visit(dep_id):
                updates[dep.name] = PackagePath(path=self.basedir / dep.name)
        self.stack.pop()

        if updates:
            self._rewrite(self.graph.packages[pkg_id], updates)
        self.changed[pkg_id] = bool(updates)
        return bool(updates)

    def _rewrite(self, package: CargoPackage, updates: dict[str, PackagePath]) -> None:
        if package.id == self.graph.root:
            manifest = package.manifest_path
        else:
            dest = self.basedir / package.name
            if dest.exists():
                logger.info("skipping %s, %s exists", package.name, dest)
                self.report.skipped.append(package.name)
            else:
                logger.info("copying %s to %s", package.name, dest)
                shutil.copytree(package.directory, dest)
                self.report.copied.append(package.name)
            manifest = dest / "Cargo.toml"

        doc = tomlkit.parse(manifest.read_text(encoding="utf-8"))
        rewrite_dependencies(doc, updates, source=str(manifest))
        manifest.write_text(tomlkit.dumps(doc), encoding="utf-8")
        logger.debug("rewrote %s: %s", manifest, sorted(updates))
        self.report.manifests.append(manifest)


def patch(graph: Graph, replace: dict[str, str], basedir: str | Path = DEFAULT_PATCH_DIR) -> PatchReport:
    """Apply replace to graph, copying changed crates into basedir."""
    basedir = Path(basedir).absolute()
    if basedir.exists() and not basedir.is_dir():
        raise PatchError(f"{basedir} exists but is not a directory")
    basedir.mkdir(exist_ok=True)
    patcher = _Patcher(graph, replace, basedir)
    patcher.visit(graph.root)
    return patcher.report
