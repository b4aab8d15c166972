"""The .drv model and its ATerm text format.

A derivation is what a build plan compiles down to: the exact inputs,
builder invocation and environment the Nix daemon runs. On disk it is a
single ATerm term:

    Derive(
        [("out","/nix/store/...-name","",""), ...],   # outputs
        [("/nix/store/...-dep.drv",["out"]), ...],    # inputDrvs
        ["/nix/store/...-src", ...],                  # inputSrcs
        "x86_64-linux",                               # platform
        "/bin/sh",                                    # builder
        ["-e", ...],                                  # args
        [("key","value"), ...]                        # env
    )

Outputs are (name, path, hashAlgo, hash). hashAlgo and hash are empty
except for fixed-output derivations.

See: nix/src/libstore/derivations.cc
"""

from dataclasses import dataclass, field

from derive.hash import sha256


@dataclass
class DerivationOutput:
    path: str
    hash_algo: str = ""
    hash_value: str = ""


@dataclass
class Derivation:
    outputs: dict[str, DerivationOutput] = field(default_factory=dict)
    input_drvs: dict[str, list[str]] = field(default_factory=dict)  # drv path -> output names
    input_srcs: list[str] = field(default_factory=list)
    platform: str = ""
    builder: str = ""
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)

    @property
    def is_fixed_output(self) -> bool:
        return (
            len(self.outputs) == 1
            and "out" in self.outputs
            and self.outputs["out"].hash_algo != ""
        )

    def to_dict(self) -> dict:
        """JSON view, same keys as `nix derivation show`."""
        return {
            "outputs": {
                name: {"path": o.path, "hashAlgo": o.hash_algo, "hash": o.hash_value}
                for name, o in sorted(self.outputs.items())
            },
            "inputDrvs": {path: sorted(outs) for path, outs in sorted(self.input_drvs.items())},
            "inputSrcs": sorted(self.input_srcs),
            "system": self.platform,
            "builder": self.builder,
            "args": list(self.args),
            "env": dict(sorted(self.env.items())),
        }


# --- ATerm parser ---

_UNESCAPE = {"n": "\n", "r": "\r", "t": "\t"}


class _Parser:
    def __init__(self, s: str):
        self.s = s
        self.pos = 0

    def peek(self) -> str:
        if self.pos >= len(self.s):
            raise ValueError("unexpected end of input")
        return self.s[self.pos]

    def expect(self, token: str) -> None:
        end = self.pos + len(token)
        if self.s[self.pos:end] != token:
            raise ValueError(f"expected {token!r} at pos {self.pos}")
        self.pos = end

    def string(self) -> str:
        self.expect('"')
        parts: list[str] = []
        while self.peek() != '"':
            ch = self.s[self.pos]
            if ch == "\\":
                self.pos += 1
                ch = _UNESCAPE.get(self.peek(), self.s[self.pos])
            parts.append(ch)
            self.pos += 1
        self.expect('"')
        return "".join(parts)

    def items(self, item):
        """Parse "[item,item,...]" calling item() for each element."""
        self.expect("[")
        result = []
        while self.peek() != "]":
            if result:
                self.expect(",")
            result.append(item())
        self.expect("]")
        return result

    def strings(self) -> list[str]:
        return self.items(self.string)

    def output(self) -> tuple[str, DerivationOutput]:
        self.expect("(")
        name = self.string()
        self.expect(",")
        path = self.string()
        self.expect(",")
        hash_algo = self.string()
        self.expect(",")
        hash_value = self.string()
        self.expect(")")
        return name, DerivationOutput(path, hash_algo, hash_value)

    def input_drv(self) -> tuple[str, list[str]]:
        self.expect("(")
        path = self.string()
        self.expect(",")
        outputs = self.strings()
        self.expect(")")
        return path, outputs

    def env_pair(self) -> tuple[str, str]:
        self.expect("(")
        key = self.string()
        self.expect(",")
        value = self.string()
        self.expect(")")
        return key, value


def parse(drv_text: str) -> Derivation:
    """Parse ATerm .drv text into a Derivation."""
    p = _Parser(drv_text)
    p.expect("Derive(")
    outputs = dict(p.items(p.output))
    p.expect(",")
    input_drvs = dict(p.items(p.input_drv))
    p.expect(",")
    input_srcs = p.strings()
    p.expect(",")
    platform = p.string()
    p.expect(",")
    builder = p.string()
    p.expect(",")
    args = p.strings()
    p.expect(",")
    env = dict(p.items(p.env_pair))
    p.expect(")")
    if p.pos != len(drv_text):
        raise ValueError(f"trailing data at pos {p.pos}")
    return Derivation(outputs, input_drvs, input_srcs, platform, builder, args, env)


def _quote(s: str) -> str:
    escaped = (
        s.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )
    return f'"{escaped}"'


def _list(items) -> str:
    return "[" + ",".join(items) + "]"


def serialize(drv: Derivation) -> str:
    """Serialize to ATerm. Outputs, inputs and env are sorted; args keep their order."""
    outputs = _list(
        f"({_quote(name)},{_quote(o.path)},{_quote(o.hash_algo)},{_quote(o.hash_value)})"
        for name, o in sorted(drv.outputs.items())
    )
    input_drvs = _list(
        f"({_quote(path)},{_list(_quote(o) for o in sorted(outs))})"
        for path, outs in sorted(drv.input_drvs.items())
    )
    input_srcs = _list(_quote(s) for s in sorted(drv.input_srcs))
    args = _list(_quote(a) for a in drv.args)
    env = _list(f"({_quote(k)},{_quote(v)})" for k, v in sorted(drv.env.items()))
    return (
        f"Derive({outputs},{input_drvs},{input_srcs},"
        f"{_quote(drv.platform)},{_quote(drv.builder)},{args},{env})"
    )


def hash_derivation_modulo(
    drv: Derivation,
    drv_hashes: dict[str, bytes] | None = None,
    mask_outputs: bool = True,
) -> bytes:
    """Hash a derivation with its input .drv paths replaced by their own hashes.

    Output paths are computed from this hash, yet a finished derivation
    contains its output paths. Blanking them (mask_outputs=True) breaks
    the cycle. Input derivations are hashed with mask_outputs=False, so a
    change anywhere in the dependency graph reaches every dependent.

    Fixed-output derivations hash only their declared content hash and
    output path: how they are fetched does not matter.

    drv_hashes maps each input .drv path to its modulo hash and must be
    complete.

    See: nix/src/libstore/derivations.cc — hashDerivationModulo()
    """
    drv_hashes = drv_hashes or {}

    if drv.is_fixed_output:
        o = drv.outputs["out"]
        return sha256(f"fixed:out:{o.hash_algo}:{o.hash_value}:{o.path}".encode())

    outputs = drv.outputs
    env = dict(drv.env)
    if mask_outputs:
        outputs = {name: DerivationOutput("", o.hash_algo, o.hash_value) for name, o in outputs.items()}
        for name in outputs:
            if name in env:
                env[name] = ""

    input_drvs = {}
    for drv_path, outs in drv.input_drvs.items():
        if drv_path not in drv_hashes:
            raise ValueError(f"missing hash for input derivation: {drv_path}")
        input_drvs[drv_hashes[drv_path].hex()] = sorted(outs)

    masked = Derivation(
        outputs=outputs,
        input_drvs=input_drvs,
        input_srcs=list(drv.input_srcs),
        platform=drv.platform,
        builder=drv.builder,
        args=list(drv.args),
        env=env,
    )
    return sha256(serialize(masked).encode())
