"""Tests for the derive command line."""

import json
from pathlib import Path

import pytest

from derive.main import main

DATA = Path(__file__).parent / "data"
DESCRIPTOR = str(DATA / "default.nix")
CATALOG = str(DATA / "catalog.yaml")


@pytest.fixture(autouse=True)
def clean_env(tmp_path, monkeypatch):
    for var in ("DERIVE_CONFIG", "DERIVE_CATALOG", "DERIVE_SYSTEM", "DERIVE_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


def test_no_command(capsys):
    assert main([]) == 1
    assert "usage" in capsys.readouterr().out


def test_show(capsys):
    assert main(["show", DESCRIPTOR]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out["channel"] == "nixpkgs"
    assert out["recipe"]["name"] == "cargo-patch"
    assert out["recipe"]["buildInputs"] == ["curl", "libssh2", "openssl"]


def test_show_default_descriptor_from_config(tmp_path, capsys):
    (tmp_path / "shell.nix").write_text('stdenv.mkDerivation { name = "x"; }')
    (tmp_path / "derive.yaml").write_text("descriptor: shell.nix\n")
    assert main(["show"]) == 0
    assert json.loads(capsys.readouterr().out)["recipe"]["name"] == "x"


def test_fmt(capsys):
    assert main(["fmt", DESCRIPTOR]) == 0
    assert capsys.readouterr().out == Path(DESCRIPTOR).read_text()


def test_fmt_check(tmp_path, capsys):
    assert main(["fmt", "--check", DESCRIPTOR]) == 0
    messy = tmp_path / "messy.nix"
    messy.write_text('stdenv.mkDerivation {name="x";}')
    assert main(["fmt", "--check", str(messy)]) == 1
    assert "not formatted" in capsys.readouterr().err


def test_check(capsys):
    assert main(["check", DESCRIPTOR, "--catalog", CATALOG]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert [line.split(":")[0] for line in lines] == ["cmake", "pkgconfig", "curl", "libssh2", "openssl"]


def test_check_missing(tmp_path, capsys):
    desc = tmp_path / "default.nix"
    desc.write_text('stdenv.mkDerivation { name = "x"; buildInputs = [ curl zstd lz4 ]; }')
    assert main(["check", str(desc), "--catalog", CATALOG]) == 1
    assert capsys.readouterr().out.splitlines() == ["missing: zstd", "missing: lz4"]


def test_check_catalog_from_environment(monkeypatch, capsys):
    monkeypatch.setenv("DERIVE_CATALOG", CATALOG)
    assert main(["check", DESCRIPTOR]) == 0


def test_check_without_catalog(capsys):
    assert main(["check", DESCRIPTOR]) == 1
    assert "no catalog" in capsys.readouterr().err


def test_plan(capsys):
    assert main(["plan", DESCRIPTOR, "--catalog", CATALOG]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out["name"] == "cargo-patch"
    assert out["drvPath"].endswith("-cargo-patch.drv")
    assert list(out["nativeBuildInputs"]) == ["cmake", "pkgconfig"]
    assert list(out["buildInputs"]) == ["curl", "libssh2", "openssl"]
    assert out["derivation"]["env"]["out"] == out["outputs"]["out"]


def test_plan_system_override(capsys):
    assert main(["plan", DESCRIPTOR, "--catalog", CATALOG, "--system", "aarch64-linux"]) == 0
    assert json.loads(capsys.readouterr().out)["derivation"]["system"] == "aarch64-linux"


def test_plan_drv_then_drv_show(tmp_path, capsys):
    assert main(["plan", DESCRIPTOR, "--catalog", CATALOG, "--drv"]) == 0
    drv_text = capsys.readouterr().out.strip()
    assert drv_text.startswith("Derive(")
    drv_file = tmp_path / "cargo-patch.drv"
    drv_file.write_text(drv_text)
    assert main(["drv-show", str(drv_file)]) == 0
    shown = json.loads(capsys.readouterr().out)[str(drv_file)]
    assert shown["env"]["name"] == "cargo-patch"


def test_syntax_error_reported(tmp_path, capsys):
    bad = tmp_path / "bad.nix"
    bad.write_text("stdenv.mkDerivation {")
    assert main(["show", str(bad)]) == 1
    err = capsys.readouterr().err
    assert err.startswith("error: ")
    assert "line 1" in err


def test_unreadable_file(tmp_path, capsys):
    assert main(["show", str(tmp_path / "missing.nix")]) == 1
    assert "cannot read" in capsys.readouterr().err


def test_malformed_drv(tmp_path, capsys):
    bad = tmp_path / "bad.drv"
    bad.write_text("Derive(")
    assert main(["drv-show", str(bad)]) == 1
    assert capsys.readouterr().err.startswith("error: ")
