"""Evaluate build recipes into derivations.

    from derive.expr import parse
    from derivepkgs import evaluate, load_catalog

    plan = evaluate(parse(open("default.nix").read()), load_catalog("catalog.yaml"))
    print(plan.drv_path)
"""

from derivepkgs.catalog import (
    Catalog,
    MappingCatalog,
    PackageSet,
    load_catalog,
    resolve_all,
)
from derivepkgs.drv import Package, drv
from derivepkgs.mk_derivation import mk_derivation
from derivepkgs.plan import BuildPlan, evaluate

__all__ = [
    "Catalog", "MappingCatalog", "PackageSet", "load_catalog", "resolve_all",
    "Package", "drv",
    "mk_derivation",
    "BuildPlan", "evaluate",
]
