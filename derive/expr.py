"""Read and write stdenv.mkDerivation descriptor files.

Descriptors are Nix expressions, but only a small, fixed shape of them:

    with import <nixpkgs> {};
    stdenv.mkDerivation {
      name = "cargo-patch";
      nativeBuildInputs = [ cmake pkgconfig ];
      buildInputs = [ curl libssh2 openssl ];
    }

The grammar accepted here:

    file     := header? call
    header   := "with" "import" "<" path ">" "{" "}" ";"
    call     := attrpath "{" binding* "}"
    binding  := name "=" value ";"
    value    := string | "[" attrpath* "]" | "true" | "false" | integer

Comments ("# ..." and "/* ... */") are skipped. Strings may not
interpolate (${...}); anything beyond this shape is a syntax error rather
than something silently ignored, since there is no evaluator behind it.

Attribute values other than the two input lists end up in
BuildRecipe.env, coerced the way mkDerivation coerces them: true -> "1",
false -> "", integers -> decimal text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from derive.errors import ExprError, RecipeError
from derive.recipe import BUILD_INPUTS, NATIVE_BUILD_INPUTS, BuildRecipe

DEFAULT_CHANNEL = "nixpkgs"
DEFAULT_CONSTRUCTOR = "stdenv.mkDerivation"

_LIST_ATTRS = (NATIVE_BUILD_INPUTS, BUILD_INPUTS)


@dataclass(frozen=True)
class Descriptor:
    """A parsed descriptor file.

    channel is the <...> search path the header imports, or None when the
    file has no "with import" header. constructor is the attribute path
    being called, normally "stdenv.mkDerivation".
    """

    recipe: BuildRecipe
    channel: str | None = DEFAULT_CHANNEL
    constructor: str = DEFAULT_CONSTRUCTOR


# --- lexer ---

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<line_comment>\#[^\n]*)
  | (?P<block_comment>/\*.*?\*/)
  | (?P<spath><[A-Za-z0-9._\-+/]+>)
  | (?P<int>[0-9]+)
  | (?P<path>[A-Za-z_][A-Za-z0-9_'\-]*(?:\.[A-Za-z_][A-Za-z0-9_'\-]*)*)
  | (?P<string>")
  | (?P<punct>[{}\[\]=;])
    """,
    re.VERBOSE | re.DOTALL,
)

_STRING_ESCAPES = {"n": "\n", "r": "\r", "t": "\t"}


@dataclass
class _Token:
    kind: str
    value: str
    line: int
    column: int


class _Lexer:
    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    def position(self, pos: int) -> tuple[int, int]:
        line = self.text.count("\n", 0, pos) + 1
        column = pos - (self.text.rfind("\n", 0, pos) + 1) + 1
        return line, column

    def error(self, message: str, pos: int | None = None) -> ExprError:
        return ExprError(message, *self.position(self.pos if pos is None else pos))

    def tokens(self) -> list[_Token]:
        result = []
        while self.pos < len(self.text):
            start = self.pos
            if self.text.startswith("/*", start) and "*/" not in self.text[start + 2:]:
                raise self.error("unterminated comment")
            m = _TOKEN_RE.match(self.text, start)
            if m is None:
                raise self.error(f"unexpected character {self.text[start]!r}")
            kind = m.lastgroup
            if kind == "string":
                value = self._string(start)
            else:
                value = m.group()
                self.pos = m.end()
            if kind not in ("ws", "line_comment", "block_comment"):
                result.append(_Token(kind, value, *self.position(start)))
        result.append(_Token("eof", "", *self.position(self.pos)))
        return result

    def _string(self, start: int) -> str:
        pos = start + 1
        parts: list[str] = []
        while True:
            if pos >= len(self.text):
                raise self.error("unterminated string", start)
            ch = self.text[pos]
            if ch == '"':
                break
            if ch == "\\":
                pos += 1
                if pos >= len(self.text):
                    raise self.error("unterminated string", start)
                ch = _STRING_ESCAPES.get(self.text[pos], self.text[pos])
            elif self.text.startswith("${", pos):
                raise self.error("string interpolation is not supported", pos)
            parts.append(ch)
            pos += 1
        self.pos = pos + 1
        return "".join(parts)


# --- parser ---

class _Parser:
    def __init__(self, text: str):
        self.lexer = _Lexer(text)
        self.toks = self.lexer.tokens()
        self.i = 0

    def peek(self) -> _Token:
        return self.toks[self.i]

    def next(self) -> _Token:
        tok = self.toks[self.i]
        if tok.kind != "eof":
            self.i += 1
        return tok

    def error(self, message: str, tok: _Token | None = None) -> ExprError:
        tok = tok or self.peek()
        return ExprError(message, tok.line, tok.column)

    def expect(self, kind: str, value: str | None = None) -> _Token:
        tok = self.next()
        if tok.kind != kind or (value is not None and tok.value != value):
            want = repr(value) if value is not None else kind
            got = repr(tok.value) if tok.kind != "eof" else "end of input"
            raise self.error(f"expected {want}, got {got}", tok)
        return tok

    def header(self) -> str | None:
        tok = self.peek()
        if tok.kind != "path" or tok.value != "with":
            return None
        self.next()
        self.expect("path", "import")
        channel = self.expect("spath").value[1:-1]
        self.expect("punct", "{")
        self.expect("punct", "}")
        self.expect("punct", ";")
        return channel

    def value(self, key: str):
        tok = self.next()
        if tok.kind == "string":
            return tok.value
        if tok.kind == "int":
            return tok.value
        if tok.kind == "path" and tok.value == "true":
            return "1"
        if tok.kind == "path" and tok.value == "false":
            return ""
        if tok.kind == "punct" and tok.value == "[":
            if key not in _LIST_ATTRS:
                raise self.error(f"lists are only supported for {' and '.join(_LIST_ATTRS)}", tok)
            items = []
            while self.peek().kind == "path":
                items.append(self.next().value)
            self.expect("punct", "]")
            return items
        raise self.error(f"unsupported value for {key!r}", tok)

    def bindings(self) -> dict:
        self.expect("punct", "{")
        attrs: dict = {}
        while not (self.peek().kind == "punct" and self.peek().value == "}"):
            key_tok = self.expect("path")
            if "." in key_tok.value:
                raise self.error("nested attribute names are not supported", key_tok)
            if key_tok.value in attrs:
                raise self.error(f"attribute {key_tok.value!r} already defined", key_tok)
            self.expect("punct", "=")
            value = self.value(key_tok.value)
            if key_tok.value in _LIST_ATTRS and not isinstance(value, list):
                raise self.error(f"{key_tok.value} must be a list", key_tok)
            self.expect("punct", ";")
            attrs[key_tok.value] = value
        self.expect("punct", "}")
        return attrs

    def file(self) -> Descriptor:
        channel = self.header()
        constructor_tok = self.expect("path")
        attrs = self.bindings()
        self.expect("eof")
        try:
            recipe = BuildRecipe.from_dict(attrs)
        except RecipeError as e:
            raise ExprError(str(e), constructor_tok.line, constructor_tok.column) from e
        return Descriptor(recipe, channel, constructor_tok.value)


def parse(text: str) -> Descriptor:
    """Parse descriptor text. Raises ExprError on anything malformed."""
    return _Parser(text).file()


def parse_recipe(text: str) -> BuildRecipe:
    return parse(text).recipe


# --- serializer ---

def _quote(s: str) -> str:
    escaped = (
        s.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("${", "\\${")
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )
    return f'"{escaped}"'


def _bindings(recipe: BuildRecipe) -> list[tuple[str, str]]:
    env = dict(recipe.env)
    head = []
    if "pname" in env:
        head.append(("pname", _quote(env.pop("pname"))))
        head.append(("version", _quote(env.pop("version"))))
    else:
        head.append(("name", _quote(recipe.name)))
    for attr, idents in (
        (NATIVE_BUILD_INPUTS, recipe.native_build_inputs),
        (BUILD_INPUTS, recipe.build_inputs),
    ):
        head.append((attr, "[ " + "".join(i + " " for i in idents) + "]"))
    return head + [(k, _quote(v)) for k, v in sorted(env.items())]


def serialize(obj: Descriptor | BuildRecipe) -> str:
    """Canonical descriptor text for a Descriptor or bare BuildRecipe."""
    desc = obj if isinstance(obj, Descriptor) else Descriptor(obj)
    lines = []
    if desc.channel is not None:
        lines.append(f"with import <{desc.channel}> {{}};")
    lines.append(f"{desc.constructor} {{")
    lines.extend(f"  {key} = {value};" for key, value in _bindings(desc.recipe))
    lines.append("}")
    return "\n".join(lines) + "\n"
