"""
Plain constructors for symbols.

These produce the same `Symbol` objects a declaration front end would:
an independent variable, parameters and time-dependent unknowns, with
optional integer indices folded into the name as subscripts.

>>> unknown("x", 1, 2)
x₁ˏ₂
>>> declare_parameters("a b")
(a, b)
"""

from beartype import beartype
from beartype.typing import Tuple

from symsys.types import DType, SymbolKind
from symsys.expr import Symbol

_SUBSCRIPTS = str.maketrans("0123456789", "₀₁₂₃₄₅₆₇₈₉")
INDEX_SEPARATOR = "ˏ"


def map_subscripts(index: int) -> str:
    """Render a non-negative integer with subscript digits."""
    if index < 0:
        raise ValueError(f"Index must be non-negative, got {index}")
    return str(index).translate(_SUBSCRIPTS)


@beartype
def indexed_name(name: str, *indices: int) -> str:
    """Name of an indexed symbol, e.g. ``x₁ˏ₂`` for ``("x", 1, 2)``."""
    if not indices:
        return name
    return name + INDEX_SEPARATOR.join(map_subscripts(i) for i in indices)


@beartype
def unknown(name: str, *indices: int, dtype: DType = DType.REAL) -> Symbol:
    """Time-dependent unknown."""
    return Symbol(indexed_name(name, *indices), SymbolKind.UNKNOWN, dtype)


@beartype
def parameter(name: str, *indices: int, dtype: DType = DType.REAL) -> Symbol:
    return Symbol(indexed_name(name, *indices), SymbolKind.PARAMETER, dtype)


@beartype
def independent_variable(name: str = "t", dtype: DType = DType.REAL) -> Symbol:
    return Symbol(name, SymbolKind.INDEPENDENT, dtype)


def _split_names(names: str) -> Tuple[str, ...]:
    parts = tuple(names.replace(",", " ").split())
    if not parts:
        raise ValueError("No symbol names given")
    return parts


@beartype
def declare_unknowns(names: str, dtype: DType = DType.REAL) -> Tuple[Symbol, ...]:
    """Declare several unknowns from a whitespace or comma separated string."""
    return tuple(unknown(n, dtype=dtype) for n in _split_names(names))


@beartype
def declare_parameters(names: str, dtype: DType = DType.REAL) -> Tuple[Symbol, ...]:
    """Declare several parameters from a whitespace or comma separated string."""
    return tuple(parameter(n, dtype=dtype) for n in _split_names(names))
