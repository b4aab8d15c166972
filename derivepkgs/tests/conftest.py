from functools import cached_property
from pathlib import Path

import pytest

from derivepkgs import PackageSet, drv

DATA = Path(__file__).parents[2] / "tests" / "data"

OPENSSL = "/nix/store/0s0nm4z62gkxbl5b6z6ymc1b2m4d6cjl-openssl-3.0.12"


def _tool(name, *deps):
    return drv(name=name, builder="/bin/sh", args=["-c", f"echo {name} > $out"], deps=list(deps))


class NixpkgsLike(PackageSet):
    """Just enough of nixpkgs to evaluate cargo-patch."""

    openssl = OPENSSL

    @cached_property
    def stdenv(self):
        return _tool("stdenv-linux")

    @cached_property
    def cmake(self):
        return self.call(lambda stdenv: _tool("cmake-3.27.7", stdenv))

    @cached_property
    def pkgconfig(self):
        return self.call(lambda stdenv: _tool("pkg-config-wrapper-0.29.2", stdenv))

    @cached_property
    def curl(self):
        return self.call(lambda stdenv: _tool("curl-8.4.0", stdenv))

    @cached_property
    def libssh2(self):
        return self.call(lambda stdenv: _tool("libssh2-1.11.0", stdenv))


@pytest.fixture
def pkgs():
    return NixpkgsLike()


@pytest.fixture
def data_dir():
    return DATA
