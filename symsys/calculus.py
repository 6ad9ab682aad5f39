"""
Symbolic differentiation, simplification and substitution.

All rules are dispatch tables keyed by ExprKind, so supporting a new
operation means adding an ExprKind member and one entry per table.

Example
-------
>>> from symsys.variables import unknown, parameter
>>> x, a = unknown("x"), parameter("a")
>>> derivative(a * x**2, x)
(2 * a * x)
"""

import math

import numpy as np
from beartype import beartype
from beartype.typing import Any, Callable, Dict, List, Mapping, Optional

from symsys.expr import (
    ELEMENTARY_FUNCTIONS,
    MINUS_ONE,
    ONE,
    ZERO,
    Differential,
    Expr,
    ExprKind,
    Symbol,
    add,
    call,
    constant,
    is_zero,
    mul,
    occurs,
    power,
    rebuild,
    to_expr,
)
from symsys.types import SymbolKind

# =============================================================================
# Differentiation
# =============================================================================

# A rule receives the node and `d`, the recursive derivative of a subtree.
DiffRule = Callable[[Expr, Callable[[Expr], Expr]], Expr]


def _diff_mul(e: Expr, d: Callable[[Expr], Expr]) -> Expr:
    terms = []
    for i, factor in enumerate(e.children):
        df = d(factor)
        if is_zero(df):
            continue
        terms.append(mul(*e.children[:i], df, *e.children[i + 1 :]))
    return add(*terms)


def _diff_pow(e: Expr, d: Callable[[Expr], Expr]) -> Expr:
    f, g = e.children
    df, dg = d(f), _simplify(d(g))
    if is_zero(dg):
        if g.kind == ExprKind.CONSTANT:
            reduced = constant(g.value - 1)
        else:
            reduced = add(g, MINUS_ONE)
        return mul(g, power(f, reduced), df)
    # d(f^g) = f^g * (g' * log(f) + g * f' / f)
    return mul(e, add(mul(dg, call("log", f)), mul(g, df, power(f, MINUS_ONE))))


def _diff_call(e: Expr, d: Callable[[Expr], Expr]) -> Expr:
    arg = e.children[0]
    return mul(ELEMENTARY_FUNCTIONS[e.name].derivative(arg), d(arg))


_DIFF_RULES: Dict[ExprKind, DiffRule] = {
    ExprKind.CONSTANT: lambda e, d: ZERO,
    ExprKind.ARG: lambda e, d: ZERO,
    ExprKind.ADD: lambda e, d: add(*(d(c) for c in e.children)),
    ExprKind.MUL: _diff_mul,
    ExprKind.POW: _diff_pow,
    ExprKind.CALL: _diff_call,
}


def _differentiate(
    expr: Expr,
    symbol_rule: Callable[[Symbol], Expr],
    diff_rule: Callable[[Expr], Expr],
) -> Expr:
    memo: Dict[Expr, Expr] = {}

    def d(e: Expr) -> Expr:
        if e in memo:
            return memo[e]
        if e.kind == ExprKind.SYMBOL:
            result = symbol_rule(e.symbol)
        elif e.kind == ExprKind.DIFF:
            result = diff_rule(e)
        else:
            result = _DIFF_RULES[e.kind](e, d)
        memo[e] = result
        return result

    return d(expr)


@beartype
def derivative(expr: Any, wrt: Symbol, *, simplify: bool = True) -> Expr:
    """
    Partial derivative of `expr` with respect to the symbol `wrt`.

    DIFF nodes are treated as independent quantities, so their partial
    derivative is zero. An expression in which `wrt` does not occur has
    derivative ZERO.
    """
    expr = to_expr(expr)
    if not occurs(wrt, expr):
        return ZERO
    result = _differentiate(
        expr,
        lambda s: ONE if s == wrt else ZERO,
        lambda e: ZERO,
    )
    return _simplify(result) if simplify else result


@beartype
def total_derivative(expr: Any, iv: Symbol) -> Expr:
    """
    Total derivative of `expr` with respect to the independent variable.

    Unknowns are functions of `iv`, so each unknown `x` contributes `D(x)`.
    Parameters are constant.
    """
    D = Differential(iv)

    def symbol_rule(s: Symbol) -> Expr:
        if s == iv:
            return ONE
        if s.kind == SymbolKind.UNKNOWN:
            return D(s)
        return ZERO

    return _simplify(_differentiate(to_expr(expr), symbol_rule, lambda e: D(e)))


@beartype
def expand_derivatives(expr: Any) -> Expr:
    """
    Push every DIFF node down to the unknowns it acts on.

    ``D(x*y)`` becomes ``D(x)*y + x*D(y)``; ``D(x)`` on a bare unknown is
    kept as is.
    """
    expr = to_expr(expr)
    if expr.is_leaf():
        return expr
    children = tuple(expand_derivatives(c) for c in expr.children)
    node = rebuild(expr, children)
    if node.kind != ExprKind.DIFF:
        return node
    inner = children[0]
    if inner.kind == ExprKind.SYMBOL and inner.symbol.kind == SymbolKind.UNKNOWN:
        return node
    if inner.kind == ExprKind.DIFF:
        return node
    return total_derivative(inner, node.symbol)


# =============================================================================
# Simplification
# =============================================================================


def _flatten(kind: ExprKind, children) -> List[Expr]:
    out: List[Expr] = []
    for c in children:
        if c.kind == kind:
            out.extend(c.children)
        else:
            out.append(c)
    return out


def _same(a, b) -> bool:
    return len(a) == len(b) and all(x is y for x, y in zip(a, b))


def _fold(expr: Expr, kind: ExprKind, identity, op, absorbing=None) -> Expr:
    children = tuple(_simplify(c) for c in expr.children)
    acc = identity
    rest = []
    for c in _flatten(kind, children):
        if c.kind == ExprKind.CONSTANT:
            acc = op(acc, c.value)
        else:
            rest.append(c)
    if absorbing is not None and acc == absorbing:
        return ZERO
    if acc != identity:
        rest.insert(0, constant(acc))
    if not rest:
        return ZERO if identity == 0 else ONE
    if len(rest) == 1:
        return rest[0]
    rest = tuple(rest)
    if _same(rest, expr.children):
        return expr
    return Expr(kind, rest)


def _real_or_none(value) -> Optional[Any]:
    if isinstance(value, complex):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def _simplify_pow(expr: Expr) -> Expr:
    base, exponent = (_simplify(c) for c in expr.children)
    if exponent.kind == ExprKind.CONSTANT:
        if exponent.value == 0:
            return ONE
        if exponent.value == 1:
            return base
        if base.kind == ExprKind.CONSTANT:
            try:
                with np.errstate(all="ignore"):
                    folded = _real_or_none(base.value**exponent.value)
            except (ZeroDivisionError, OverflowError):
                folded = None
            if folded is not None:
                return constant(folded)
        elif base.kind == ExprKind.POW and base.children[1].kind == ExprKind.CONSTANT:
            # (x^a)^b with integer b
            if float(exponent.value).is_integer():
                inner = base.children[1].value * exponent.value
                return _simplify_pow(power(base.children[0], inner))
    if base.kind == ExprKind.CONSTANT:
        if base.value == 1:
            return ONE
        if base.value == 0 and exponent.kind == ExprKind.CONSTANT and exponent.value > 0:
            return ZERO
    return rebuild(expr, (base, exponent))


def _simplify_call(expr: Expr) -> Expr:
    arg = _simplify(expr.children[0])
    if arg.kind == ExprKind.CONSTANT:
        fn = getattr(np, ELEMENTARY_FUNCTIONS[expr.name].numpy)
        with np.errstate(all="ignore"):
            value = fn(arg.value)
        if np.isfinite(value):
            return constant(value.item() if isinstance(value, np.generic) else value)
    return rebuild(expr, (arg,))


def _simplify_diff(expr: Expr) -> Expr:
    inner = _simplify(expr.children[0])
    if inner.kind == ExprKind.CONSTANT:
        return ZERO
    return rebuild(expr, (inner,))


_SIMPLIFY_RULES: Dict[ExprKind, Callable[[Expr], Expr]] = {
    ExprKind.SYMBOL: lambda e: e,
    ExprKind.CONSTANT: lambda e: e,
    ExprKind.ARG: lambda e: e,
    ExprKind.ADD: lambda e: _fold(e, ExprKind.ADD, 0, lambda a, b: a + b),
    ExprKind.MUL: lambda e: _fold(e, ExprKind.MUL, 1, lambda a, b: a * b, absorbing=0),
    ExprKind.POW: _simplify_pow,
    ExprKind.CALL: _simplify_call,
    ExprKind.DIFF: _simplify_diff,
}


def _simplify(expr: Expr) -> Expr:
    return _SIMPLIFY_RULES[expr.kind](expr)


@beartype
def simplify(expr: Any) -> Expr:
    """
    Algebraic clean-up: constant folding and identity elimination.

    Nested sums and products are flattened, numeric constants are folded
    and moved to the front, `x*0`, `x*1`, `x+0`, `x**0` and `x**1` are
    reduced. Like terms are not collected; use
    :func:`symsys.backends.sympy.sympy_simplify` for that.
    """
    return _simplify(to_expr(expr))


# =============================================================================
# Substitution
# =============================================================================


def _as_key(k: Any) -> Expr:
    return to_expr(k)


@beartype
def substitute(expr: Any, mapping: Mapping) -> Expr:
    """
    Replace every subtree structurally equal to a key of `mapping`.

    Keys may be Symbols or Exprs; values anything `to_expr` accepts.
    Replacement is a single pass: substituted values are not rewritten
    again.
    """
    table = {_as_key(k): to_expr(v) for k, v in mapping.items()}
    if not table:
        return to_expr(expr)
    memo: Dict[Expr, Expr] = {}

    def sub(e: Expr) -> Expr:
        if e in table:
            return table[e]
        if e.is_leaf():
            return e
        if e in memo:
            return memo[e]
        result = rebuild(e, tuple(sub(c) for c in e.children))
        memo[e] = result
        return result

    return sub(to_expr(expr))
