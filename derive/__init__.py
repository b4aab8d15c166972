"""derive — build recipes (stdenv.mkDerivation descriptors) as Nix derivations."""

__version__ = "0.1.0"
