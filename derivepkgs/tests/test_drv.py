"""Tests for derivepkgs.drv: derivation construction and output path computation."""

import pytest

from derive.derivation import parse
from derive.store_path import parse_store_path
from derivepkgs.drv import drv


def test_drv_produces_store_path():
    pkg = drv(name="test", builder="/bin/sh", args=["-c", "echo > $out"])
    assert parse_store_path(pkg.out)[1] == "test"


def test_drv_path_is_store_path():
    pkg = drv(name="test", builder="/bin/sh", args=["-c", "echo > $out"])
    assert parse_store_path(pkg.drv_path)[1] == "test.drv"


def test_drv_deterministic():
    a = drv(name="det", builder="/bin/sh", args=["-c", "echo > $out"])
    b = drv(name="det", builder="/bin/sh", args=["-c", "echo > $out"])
    assert a.out == b.out
    assert a.drv_path == b.drv_path
    assert a == b


def test_drv_name_changes_path():
    a = drv(name="alpha", builder="/bin/sh")
    b = drv(name="beta", builder="/bin/sh")
    assert a.out != b.out


def test_drv_content_changes_path():
    a = drv(name="pkg", builder="/bin/sh", args=["-c", "echo a > $out"])
    b = drv(name="pkg", builder="/bin/sh", args=["-c", "echo b > $out"])
    assert a.out != b.out


def test_drv_str_is_out():
    pkg = drv(name="test", builder="/bin/sh")
    assert str(pkg) == pkg.out
    assert f"{pkg}/bin/test" == pkg.out + "/bin/test"


def test_drv_env_has_standard_vars():
    pkg = drv(name="test", builder="/bin/sh", system="aarch64-linux")
    assert pkg.drv.env["name"] == "test"
    assert pkg.drv.env["builder"] == "/bin/sh"
    assert pkg.drv.env["system"] == "aarch64-linux"
    assert pkg.drv.env["out"] == pkg.out
    assert pkg.drv.platform == "aarch64-linux"


def test_drv_multiple_outputs():
    pkg = drv(name="lib", builder="/bin/sh", output_names=["out", "dev"])
    assert pkg.outputs["dev"] == pkg.drv.env["dev"]
    assert pkg.outputs["dev"].endswith("-lib-dev")


def test_drv_text_parses_back():
    pkg = drv(name="test", builder="/bin/sh", args=["-c", 'echo "quoted" > $out'])
    assert parse(pkg.drv_text) == pkg.drv


def test_drv_with_dep():
    dep = drv(name="dep", builder="/bin/sh", output_names=["out", "dev"])
    pkg = drv(name="pkg", builder="/bin/sh", deps=[dep])
    assert pkg.drv.input_drvs == {dep.drv_path: ["dev", "out"]}
    assert pkg.deps == (dep,)


def test_drv_input_drvs_selects_outputs():
    dep = drv(name="dep", builder="/bin/sh", output_names=["out", "dev"])
    pkg = drv(name="pkg", builder="/bin/sh", deps=[dep], input_drvs={dep.drv_path: ["out"]})
    assert pkg.drv.input_drvs == {dep.drv_path: ["out"]}


def test_drv_input_drvs_must_name_a_dep():
    with pytest.raises(ValueError, match="not in deps"):
        drv(name="pkg", builder="/bin/sh", input_drvs={"/nix/store/x.drv": ["out"]})


def test_drv_srcs_sorted_and_deduplicated():
    srcs = [
        "/nix/store/0s0nm4z62gkxbl5b6z6ymc1b2m4d6cjl-b",
        "/nix/store/0s0nm4z62gkxbl5b6z6ymc1b2m4d6cjl-a",
        "/nix/store/0s0nm4z62gkxbl5b6z6ymc1b2m4d6cjl-a",
    ]
    pkg = drv(name="pkg", builder="/bin/sh", srcs=srcs)
    assert pkg.drv.input_srcs == sorted(set(srcs))


def test_drv_dep_changes_path():
    dep_a = drv(name="dep", builder="/bin/sh", args=["-c", "echo a > $out"])
    dep_b = drv(name="dep", builder="/bin/sh", args=["-c", "echo b > $out"])
    pkg_a = drv(name="pkg", builder="/bin/sh", deps=[dep_a])
    pkg_b = drv(name="pkg", builder="/bin/sh", deps=[dep_b])
    assert pkg_a.out != pkg_b.out


def test_drv_transitive_dep_changes_path():
    base_a = drv(name="base", builder="/bin/sh", args=["a"])
    base_b = drv(name="base", builder="/bin/sh", args=["b"])
    mid_a = drv(name="mid", builder="/bin/sh", deps=[base_a])
    mid_b = drv(name="mid", builder="/bin/sh", deps=[base_b])
    top_a = drv(name="top", builder="/bin/sh", deps=[mid_a])
    top_b = drv(name="top", builder="/bin/sh", deps=[mid_b])
    assert top_a.out != top_b.out


def test_override():
    pkg = drv(name="hello", builder="/bin/sh", args=["-c", "echo hi > $out"])
    pkg2 = pkg.override(name="world")
    assert pkg2.name == "world"
    assert pkg2.out != pkg.out
    assert pkg2.out.endswith("-world")
    assert pkg2.drv.args == pkg.drv.args
