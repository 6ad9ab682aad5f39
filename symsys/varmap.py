"""
Variable binding resolution.

Turns user maps such as ``{x: 1.0, p2: 2 * p1}`` plus system defaults
into vectors ordered like a given variable list, resolving symbolic
values by substitution until a fixpoint is reached.

Example
-------
>>> from symsys.variables import parameter
>>> p1, p2 = parameter("p1"), parameter("p2")
>>> varmap_to_vars({p1: 3.0}, [p1, p2], defaults={p2: 2 * p1})
array([3., 6.])
"""

from collections.abc import Mapping

import numpy as np
from beartype import beartype
from beartype.typing import Any, Dict, List, Optional, Sequence

from symsys.calculus import simplify, substitute
from symsys.errors import CircularDefinitionError, MissingVariablesError
from symsys.expr import Expr, ExprKind, Symbol, get_symbols, to_expr


def _key(x: Any) -> Symbol:
    if isinstance(x, Symbol):
        return x
    if isinstance(x, Expr) and x.kind == ExprKind.SYMBOL:
        return x.symbol
    raise TypeError(f"Variable map keys must be symbols, got {x!r}")


def _is_pair(x: Any) -> bool:
    return isinstance(x, (tuple, list)) and len(x) == 2 and isinstance(x[0], (Symbol, Expr))


def _canonical(pairs) -> Dict[Symbol, Expr]:
    return {_key(k): to_expr(v) for k, v in pairs}


def _unwrap(value: Expr) -> Any:
    return value.value if value.kind == ExprKind.CONSTANT else value


@beartype
def fixpoint_sub(mapping: Mapping) -> Dict[Symbol, Any]:
    """
    Substitute the map into its own values until nothing changes.

    ``{a: 1, b: 2*a, c: b + a}`` resolves to ``{a: 1, b: 2, c: 3}``.
    Values that refer to symbols outside the map stay symbolic. Constant
    values are returned as plain numbers.

    Raises CircularDefinitionError if values refer to each other in a
    cycle.
    """
    current = _canonical(mapping.items())
    # an acyclic chain resolves in at most len(current) passes
    for _ in range(len(current) + 1):
        updated = {k: simplify(substitute(v, current)) for k, v in current.items()}
        if updated == current:
            break
        current = updated
    else:
        raise CircularDefinitionError(f"Circular definitions among {_cyclic_keys(current)}")
    cyclic = _cyclic_keys(current)
    if cyclic:
        raise CircularDefinitionError(f"Circular definitions among {cyclic}")
    return {k: _unwrap(v) for k, v in current.items()}


def _cyclic_keys(current: Dict[Symbol, Expr]) -> List[Symbol]:
    return [k for k, v in current.items() if any(s in current for s in get_symbols(v))]


def _as_vector(values: List[Any]) -> np.ndarray:
    if all(isinstance(v, (int, float, np.number)) for v in values):
        return np.array(values)
    return np.array(values, dtype=object)


@beartype
def varmap_to_vars(varmap: Any, varlist: Sequence, defaults: Optional[Mapping] = None) -> Any:
    """
    Resolve `varmap` into a vector ordered like `varlist`.

    Parameters
    ----------
    varmap : mapping, sequence of pairs, vector or None
        User bindings. Entries win over `defaults`.
    varlist : sequence of Symbol
        Output ordering.
    defaults : mapping, optional
        Fallback bindings, typically ``default_u0(sys)`` or ``default_p(sys)``.

    Returns
    -------
    ``None`` and sequences that are not sequences of pairs (plain numeric
    vectors, or an empty sequence when there are no defaults) are returned
    unchanged. Otherwise a numpy array (numeric dtype when every entry is a
    number, object dtype otherwise), or a tuple when `varmap` was a tuple
    of pairs.

    Raises
    ------
    MissingVariablesError
        Naming every variable of `varlist` left without a value.
    """
    if varmap is None:
        return None
    as_tuple = False
    if isinstance(varmap, Mapping):
        pairs = list(varmap.items())
    elif isinstance(varmap, (list, tuple)):
        if not varmap:
            if not defaults:
                return varmap
            pairs = []
        elif all(_is_pair(x) for x in varmap):
            pairs = list(varmap)
        else:
            return varmap
        as_tuple = isinstance(varmap, tuple)
    else:
        return varmap

    merged = _canonical(defaults.items()) if defaults else {}
    merged.update(_canonical(pairs))
    resolved = fixpoint_sub(merged)

    keys = [_key(v) for v in varlist]
    missing = [k for k in keys if k not in resolved]
    if missing:
        raise MissingVariablesError(missing)
    values = [resolved[k] for k in keys]
    if as_tuple:
        return tuple(values)
    return _as_vector(values)
