"""Structured error types raised by symsys."""

from __future__ import annotations

from beartype.typing import Any, Iterable


class SymsysError(Exception):
    """Base class for all symsys errors."""


class InvalidShapeError(SymsysError, ValueError):
    """A scalar-only artifact (gradient, Hessian) was requested on a non-scalar system."""


class UnboundSymbolError(SymsysError, ValueError):
    """Function generation met symbols that are neither unknowns, parameters nor the independent variable."""

    def __init__(self, symbols: Iterable[Any]):
        self.symbols = tuple(symbols)
        names = ", ".join(str(s) for s in self.symbols)
        super().__init__(f"Symbols [{names}] are not bound to any function argument")


class MissingVariablesError(SymsysError, ValueError):
    """Binding resolution left variables without a value."""

    def __init__(self, missing: Iterable[Any]):
        self.missing = tuple(missing)
        names = ", ".join(str(s) for s in self.missing)
        super().__init__(f"[{names}] are missing from the variable map")


class NameCollisionError(SymsysError, ValueError):
    """Two distinct symbols or subsystems share one qualified name."""

    def __init__(self, name: str, detail: str = ""):
        self.name = name
        msg = f"Name collision on '{name}'"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


class StructureNotInitializedError(SymsysError, ValueError):
    """A structural accessor was used before the structure was initialized."""


class UnknownSymbolError(SymsysError, AttributeError):
    """Name lookup on a system matched nothing."""


class CircularDefinitionError(SymsysError, ValueError):
    """Symbolic defaults refer to each other in a cycle and never become concrete."""
