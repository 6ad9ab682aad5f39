"""
SymPy bridge for heavier symbolic work.

The built-in `simplify` only folds constants and removes identities.
This module converts expressions to SymPy and back, enabling:
- Collection of like terms and full algebraic simplification
- LaTeX export for documentation

Time derivatives ``D(x)`` are carried through SymPy as opaque symbols
named ``D(x)`` and restored on the way back. Argument slots of bound
programs become ``sp.IndexedBase`` entries (``u[i]``, ``p[j]``) or plain
symbols (``t``, ``gam``, locals), ready for ``sympy.lambdify``.
"""

import sympy as sp
from beartype import beartype
from beartype.typing import Any, Dict, Mapping, Union

from symsys.equations import Equation
from symsys.expr import (
    ELEMENTARY_FUNCTIONS,
    Expr,
    ExprKind,
    add,
    call,
    constant,
    iter_nodes,
    mul,
    power,
    to_expr,
)

_FROM_SYMPY_FUNCTION = {fn.sympy: fn.name for fn in ELEMENTARY_FUNCTIONS.values()}


def _leaf_name(e: Expr) -> str:
    return e.symbol.name if e.kind == ExprKind.SYMBOL else repr(e)


_TO_SYMPY = {
    ExprKind.SYMBOL: lambda c, e: sp.Symbol(e.symbol.name),
    ExprKind.DIFF: lambda c, e: sp.Symbol(repr(e)),
    ExprKind.ARG: lambda c, e: sp.Symbol(e.name) if e.value is None else sp.IndexedBase(e.name)[e.value],
    ExprKind.CONSTANT: lambda c, e: sp.Integer(int(e.value)) if float(e.value).is_integer() else sp.Float(e.value),
    ExprKind.ADD: lambda c, e: sp.Add(*(c(x) for x in e.children)),
    ExprKind.MUL: lambda c, e: sp.Mul(*(c(x) for x in e.children)),
    ExprKind.POW: lambda c, e: sp.Pow(c(e.children[0]), c(e.children[1])),
    ExprKind.CALL: lambda c, e: getattr(sp, ELEMENTARY_FUNCTIONS[e.name].sympy)(c(e.children[0])),
}


@beartype
def to_sympy(expr: Any) -> sp.Expr:
    """Convert an expression to SymPy."""

    def c(e: Expr) -> sp.Expr:
        converter = _TO_SYMPY.get(e.kind)
        if converter is None:
            raise ValueError(f"Cannot convert {e.kind.name} node {e!r} to SymPy")
        return converter(c, e)

    return c(to_expr(expr))


@beartype
def sympy_leaves(expr: Any) -> Dict[str, Expr]:
    """Names under which `to_sympy` represents the symbols and ``D(...)`` terms of `expr`."""
    out: Dict[str, Expr] = {}
    stack = [to_expr(expr)]
    while stack:
        e = stack.pop()
        if e.kind == ExprKind.SYMBOL or e.kind == ExprKind.DIFF:
            out.setdefault(_leaf_name(e), e)
            if e.kind == ExprKind.DIFF:
                stack.extend(n for n in iter_nodes(e.children[0]) if n.kind == ExprKind.SYMBOL)
        else:
            stack.extend(e.children)
    return out


@beartype
def from_sympy(sexpr: Any, leaves: Mapping[str, Expr]) -> Expr:
    """
    Convert a SymPy expression back.

    `leaves` maps SymPy symbol names to the expressions they stand for,
    as returned by `sympy_leaves`.
    """
    sexpr = sp.sympify(sexpr)

    def c(s: sp.Basic) -> Expr:
        if isinstance(s, sp.Symbol):
            if s.name not in leaves:
                raise ValueError(f"SymPy symbol '{s.name}' has no counterpart")
            return leaves[s.name]
        if isinstance(s, sp.Integer):
            return constant(int(s))
        if s.is_Number or isinstance(s, sp.NumberSymbol):
            return constant(float(s))
        if isinstance(s, sp.Add):
            return add(*(c(a) for a in s.args))
        if isinstance(s, sp.Mul):
            return mul(*(c(a) for a in s.args))
        if isinstance(s, sp.Pow):
            return power(c(s.args[0]), c(s.args[1]))
        fname = _FROM_SYMPY_FUNCTION.get(type(s).__name__)
        if fname is not None and len(s.args) == 1:
            return call(fname, c(s.args[0]))
        raise ValueError(f"Unsupported SymPy expression: {s}")

    return c(sexpr)


@beartype
def sympy_simplify(expr: Any) -> Expr:
    """Simplify with ``sympy.simplify``, collecting like terms."""
    expr = to_expr(expr)
    return from_sympy(sp.simplify(to_sympy(expr)), sympy_leaves(expr))


@beartype
def to_latex(x: Union[Expr, Equation, Any]) -> str:
    """LaTeX for an expression or an equation."""
    if isinstance(x, Equation):
        return f"{sp.latex(to_sympy(x.lhs))} = {sp.latex(to_sympy(x.rhs))}"
    return sp.latex(to_sympy(x))
