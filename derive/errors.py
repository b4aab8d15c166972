"""Exception hierarchy.

Everything the library raises on bad input derives from DeriveError, which
is a ValueError so parse-style callers can keep catching ValueError.
"""


class DeriveError(ValueError):
    pass


class RecipeError(DeriveError):
    pass


class StorePathError(DeriveError):
    pass


class ConfigError(DeriveError):
    pass


class CatalogError(DeriveError):
    pass


class UnresolvedDependencyError(CatalogError):
    """One or more identifiers are missing from the catalog."""

    def __init__(self, missing):
        self.missing = tuple(missing)
        super().__init__("unresolved dependencies: " + ", ".join(self.missing))


class ExprError(DeriveError):
    """Syntax error in a descriptor file. line and column are 1-based."""

    def __init__(self, message: str, line: int, column: int):
        self.message = message
        self.line = line
        self.column = column
        super().__init__(f"{message} at line {line}, column {column}")


class PatchError(DeriveError):
    """A cargo-patch run cannot proceed."""
