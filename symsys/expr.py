"""
Symbols and expression trees for symsys.

This module contains the named leaf `Symbol`, the immutable `Expr` tree
node with its closed `ExprKind` enum, and the table of elementary
functions the rest of the package knows how to differentiate, print and
compile.

================================================================================
DESIGN PRINCIPLES - DO NOT REMOVE OR IGNORE
================================================================================

1. IMMUTABILITY: Expr nodes are frozen. Rewrites build new nodes and reuse
   every unchanged subtree, since one subtree can be shared by several
   equations and cached artifacts at the same time.
2. STRUCTURAL IDENTITY: Two trees are equal when they have the same kind,
   payload and children, recursively. The content hash is computed once,
   at construction, from the children's hashes.
3. CLOSED OPERATION SET: Every operation is an ExprKind member. Adding an
   operation means extending the enum and the dispatch tables keyed by it.
4. TYPE SAFETY: Public functions use beartype for runtime type checking.

================================================================================

Example
-------
>>> from symsys.expr import Differential, sin
>>> from symsys.variables import independent_variable, parameter, unknown
>>> t = independent_variable("t")
>>> x = unknown("x")
>>> k = parameter("k")
>>> D = Differential(t)
>>> D(x)
D(x)
>>> -k * sin(x)
((-1 * k) * sin(x))
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum, auto

import numpy as np
from beartype import beartype
from beartype.typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, Union

from symsys.types import DType, Numeric, SymbolKind

# =============================================================================
# Symbol
# =============================================================================


@dataclass(frozen=True)
class Symbol:
    """
    Named leaf quantity.

    Identity is the pair (name, kind). The value type tag is carried along
    but does not take part in equality or hashing, so two declarations of
    the same name and kind are the same symbol.
    """

    name: str
    kind: SymbolKind = SymbolKind.UNKNOWN
    dtype: DType = field(default=DType.REAL, compare=False)

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Symbol name must be non-empty")

    def __repr__(self) -> str:
        return self.name

    @property
    def expr(self) -> "Expr":
        """Leaf expression wrapping this symbol."""
        return Expr(ExprKind.SYMBOL, symbol=self)

    def rename(self, name: str) -> "Symbol":
        """Return a symbol of the same kind and type under a new name."""
        return replace(self, name=name)

    def is_parameter(self) -> bool:
        return self.kind == SymbolKind.PARAMETER

    def is_unknown(self) -> bool:
        return self.kind == SymbolKind.UNKNOWN

    def is_independent(self) -> bool:
        return self.kind == SymbolKind.INDEPENDENT

    # Arithmetic operators - return Expr
    def __add__(self, other: Any) -> "Expr":
        return self.expr + other

    def __radd__(self, other: Any) -> "Expr":
        return to_expr(other) + self.expr

    def __sub__(self, other: Any) -> "Expr":
        return self.expr - other

    def __rsub__(self, other: Any) -> "Expr":
        return to_expr(other) - self.expr

    def __mul__(self, other: Any) -> "Expr":
        return self.expr * other

    def __rmul__(self, other: Any) -> "Expr":
        return to_expr(other) * self.expr

    def __truediv__(self, other: Any) -> "Expr":
        return self.expr / other

    def __rtruediv__(self, other: Any) -> "Expr":
        return to_expr(other) / self.expr

    def __pow__(self, other: Any) -> "Expr":
        return self.expr**other

    def __rpow__(self, other: Any) -> "Expr":
        return to_expr(other) ** self.expr

    def __neg__(self) -> "Expr":
        return -self.expr

    def __pos__(self) -> "Expr":
        return self.expr


# =============================================================================
# Expression tree
# =============================================================================


class ExprKind(Enum):
    """Kinds of expression nodes."""

    # Leaf nodes
    SYMBOL = auto()  # Named symbol (unknown, parameter, independent variable)
    CONSTANT = auto()  # Numeric constant
    ARG = auto()  # Indexed function argument u[i], p[j], t (function generation only)

    # Operations
    ADD = auto()  # a + b + ... (n-ary)
    MUL = auto()  # a * b * ... (n-ary)
    POW = auto()  # a ** b
    CALL = auto()  # Elementary function f(a), name in ELEMENTARY_FUNCTIONS
    DIFF = auto()  # D(a), time derivative w.r.t. the independent variable in `symbol`


LEAF_KINDS = frozenset({ExprKind.SYMBOL, ExprKind.CONSTANT, ExprKind.ARG})


@dataclass(frozen=True, eq=False)
class Expr:
    """
    Immutable expression tree node.

    Field usage by kind:

    - SYMBOL: `symbol`
    - CONSTANT: `value`
    - ARG: `name` is the argument vector ('u', 'p', 't', 'gam', 'obs'),
      `value` the position inside it (None for scalar arguments)
    - CALL: `name` is the elementary function name, one child
    - DIFF: `symbol` is the independent variable, one child
    - ADD, MUL: two or more children; POW: base and exponent
    """

    kind: ExprKind
    children: Tuple["Expr", ...] = ()
    symbol: Optional[Symbol] = None
    value: Optional[Numeric] = None
    name: Optional[str] = None
    _hash: int = field(init=False, repr=False, compare=False, default=0)

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "_hash",
            hash((self.kind, self.symbol, self.value, self.name, tuple(c._hash for c in self.children))),
        )

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Expr):
            return NotImplemented
        return is_equal(self, other)

    def __ne__(self, other: Any) -> bool:
        if not isinstance(other, Expr):
            return NotImplemented
        return not is_equal(self, other)

    def __hash__(self) -> int:
        return self._hash

    def __repr__(self) -> str:
        return _EXPR_REPR[self.kind](self)

    # Predicates and accessors used by the rest of the package
    def is_leaf(self) -> bool:
        return self.kind in LEAF_KINDS

    def is_operation(self) -> bool:
        return self.kind not in LEAF_KINDS

    @property
    def operator(self) -> ExprKind:
        return self.kind

    @property
    def operands(self) -> Tuple["Expr", ...]:
        return self.children

    # Arithmetic operators - return new Expr nodes
    def __add__(self, other: Any) -> "Expr":
        return Expr(ExprKind.ADD, (self, to_expr(other)))

    def __radd__(self, other: Any) -> "Expr":
        return Expr(ExprKind.ADD, (to_expr(other), self))

    def __sub__(self, other: Any) -> "Expr":
        return Expr(ExprKind.ADD, (self, -to_expr(other)))

    def __rsub__(self, other: Any) -> "Expr":
        return Expr(ExprKind.ADD, (to_expr(other), -self))

    def __mul__(self, other: Any) -> "Expr":
        return Expr(ExprKind.MUL, (self, to_expr(other)))

    def __rmul__(self, other: Any) -> "Expr":
        return Expr(ExprKind.MUL, (to_expr(other), self))

    def __truediv__(self, other: Any) -> "Expr":
        return Expr(ExprKind.MUL, (self, Expr(ExprKind.POW, (to_expr(other), MINUS_ONE))))

    def __rtruediv__(self, other: Any) -> "Expr":
        return Expr(ExprKind.MUL, (to_expr(other), Expr(ExprKind.POW, (self, MINUS_ONE))))

    def __pow__(self, other: Any) -> "Expr":
        return Expr(ExprKind.POW, (self, to_expr(other)))

    def __rpow__(self, other: Any) -> "Expr":
        return Expr(ExprKind.POW, (to_expr(other), self))

    def __neg__(self) -> "Expr":
        return Expr(ExprKind.MUL, (MINUS_ONE, self))

    def __pos__(self) -> "Expr":
        return self


def is_equal(a: Expr, b: Expr) -> bool:
    """Recursive structural equality of two expression trees."""
    if a is b:
        return True
    if a._hash != b._hash or a.kind != b.kind or len(a.children) != len(b.children):
        return False
    if a.symbol != b.symbol or a.name != b.name or a.value != b.value:
        return False
    return all(is_equal(x, y) for x, y in zip(a.children, b.children))


def _join(sep: str) -> Callable[[Expr], str]:
    return lambda e: "(" + sep.join(repr(c) for c in e.children) + ")"


_EXPR_REPR: Dict[ExprKind, Callable[[Expr], str]] = {
    ExprKind.SYMBOL: lambda e: e.symbol.name,
    ExprKind.CONSTANT: lambda e: f"{e.value}",
    ExprKind.ARG: lambda e: e.name if e.value is None else f"{e.name}[{e.value}]",
    ExprKind.ADD: _join(" + "),
    ExprKind.MUL: _join(" * "),
    ExprKind.POW: lambda e: f"({e.children[0]!r} ** {e.children[1]!r})",
    ExprKind.CALL: lambda e: f"{e.name}({e.children[0]!r})",
    ExprKind.DIFF: lambda e: f"D({e.children[0]!r})",
}


# =============================================================================
# Constructors
# =============================================================================

ExprLike = Union[Expr, Symbol, int, float, np.number]


@beartype
def constant(value: Numeric) -> Expr:
    """Constant leaf."""
    if isinstance(value, (bool, np.bool_)):
        raise TypeError("Boolean constants are not supported")
    return Expr(ExprKind.CONSTANT, value=value)


ZERO = Expr(ExprKind.CONSTANT, value=0)
ONE = Expr(ExprKind.CONSTANT, value=1)
MINUS_ONE = Expr(ExprKind.CONSTANT, value=-1)


@beartype
def to_expr(x: Any) -> Expr:
    """Convert symbols and numbers to Expr."""
    if isinstance(x, Expr):
        return x
    if isinstance(x, Symbol):
        return x.expr
    if isinstance(x, (bool, np.bool_)):
        raise TypeError(f"Cannot convert {type(x)} to Expr")
    if isinstance(x, (int, float, np.number)):
        return Expr(ExprKind.CONSTANT, value=x)
    if isinstance(x, np.ndarray) and x.size == 1:
        return Expr(ExprKind.CONSTANT, value=x.flat[0].item())
    raise TypeError(f"Cannot convert {type(x)} to Expr")


def add(*terms: ExprLike) -> Expr:
    """Sum of terms, without simplification."""
    if not terms:
        return ZERO
    if len(terms) == 1:
        return to_expr(terms[0])
    return Expr(ExprKind.ADD, tuple(to_expr(t) for t in terms))


def mul(*factors: ExprLike) -> Expr:
    """Product of factors, without simplification."""
    if not factors:
        return ONE
    if len(factors) == 1:
        return to_expr(factors[0])
    return Expr(ExprKind.MUL, tuple(to_expr(f) for f in factors))


def power(base: ExprLike, exponent: ExprLike) -> Expr:
    return Expr(ExprKind.POW, (to_expr(base), to_expr(exponent)))


@beartype
def call(fname: str, arg: Any) -> Expr:
    """Apply the elementary function `fname`."""
    if fname not in ELEMENTARY_FUNCTIONS:
        raise ValueError(f"Unsupported function: {fname}")
    return Expr(ExprKind.CALL, (to_expr(arg),), name=fname)


@dataclass(frozen=True)
class Differential:
    """
    Time-derivative operator with respect to an independent variable.

    >>> from symsys.variables import independent_variable, unknown
    >>> D = Differential(independent_variable("t"))
    >>> D(unknown("x"))
    D(x)
    """

    iv: Symbol

    def __post_init__(self) -> None:
        if not self.iv.is_independent():
            raise ValueError(f"Differential expects an independent variable, got {self.iv.kind.name} '{self.iv}'")

    def __call__(self, x: Any) -> Expr:
        return Expr(ExprKind.DIFF, (to_expr(x),), symbol=self.iv)


# =============================================================================
# Elementary functions
# =============================================================================


@dataclass(frozen=True)
class ElementaryFunction:
    """
    One entry of the elementary function table.

    This is the single source of truth for a function: its name in each
    target library and its derivative with respect to its argument.
    """

    name: str
    numpy: str
    casadi: str
    sympy: str
    derivative: Callable[[Expr], Expr]


def _inv_sqrt_one_minus_sq(a: Expr) -> Expr:
    return power(add(ONE, mul(MINUS_ONE, power(a, 2))), -0.5)


ELEMENTARY_FUNCTIONS: Dict[str, ElementaryFunction] = {
    f.name: f
    for f in (
        ElementaryFunction("sin", "sin", "sin", "sin", lambda a: call("cos", a)),
        ElementaryFunction("cos", "cos", "cos", "cos", lambda a: mul(MINUS_ONE, call("sin", a))),
        ElementaryFunction("tan", "tan", "tan", "tan", lambda a: add(ONE, power(call("tan", a), 2))),
        ElementaryFunction("asin", "arcsin", "asin", "asin", _inv_sqrt_one_minus_sq),
        ElementaryFunction("acos", "arccos", "acos", "acos", lambda a: mul(MINUS_ONE, _inv_sqrt_one_minus_sq(a))),
        ElementaryFunction("atan", "arctan", "atan", "atan", lambda a: power(add(ONE, power(a, 2)), MINUS_ONE)),
        ElementaryFunction("sinh", "sinh", "sinh", "sinh", lambda a: call("cosh", a)),
        ElementaryFunction("cosh", "cosh", "cosh", "cosh", lambda a: call("sinh", a)),
        ElementaryFunction(
            "tanh", "tanh", "tanh", "tanh", lambda a: add(ONE, mul(MINUS_ONE, power(call("tanh", a), 2)))
        ),
        ElementaryFunction("exp", "exp", "exp", "exp", lambda a: call("exp", a)),
        ElementaryFunction("log", "log", "log", "log", lambda a: power(a, MINUS_ONE)),
        ElementaryFunction("sqrt", "sqrt", "sqrt", "sqrt", lambda a: mul(0.5, power(call("sqrt", a), MINUS_ONE))),
        ElementaryFunction("abs", "abs", "fabs", "Abs", lambda a: call("sign", a)),
        ElementaryFunction("sign", "sign", "sign", "sign", lambda a: ZERO),
    )
}


def sin(x: ExprLike) -> Expr:
    return call("sin", x)


def cos(x: ExprLike) -> Expr:
    return call("cos", x)


def tan(x: ExprLike) -> Expr:
    return call("tan", x)


def asin(x: ExprLike) -> Expr:
    return call("asin", x)


def acos(x: ExprLike) -> Expr:
    return call("acos", x)


def atan(x: ExprLike) -> Expr:
    return call("atan", x)


def sinh(x: ExprLike) -> Expr:
    return call("sinh", x)


def cosh(x: ExprLike) -> Expr:
    return call("cosh", x)


def tanh(x: ExprLike) -> Expr:
    return call("tanh", x)


def exp(x: ExprLike) -> Expr:
    return call("exp", x)


def log(x: ExprLike) -> Expr:
    return call("log", x)


def sqrt(x: ExprLike) -> Expr:
    return call("sqrt", x)


def abs_(x: ExprLike) -> Expr:
    """Absolute value (trailing underscore avoids shadowing the builtin)."""
    return call("abs", x)


def sign(x: ExprLike) -> Expr:
    return call("sign", x)


# =============================================================================
# Traversal helpers
# =============================================================================


def iter_nodes(expr: Expr) -> Iterator[Expr]:
    """Pre-order, left-to-right traversal of all nodes."""
    stack = [expr]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


@beartype
def get_symbols(expr: Expr, kind: Optional[SymbolKind] = None) -> List[Symbol]:
    """
    Symbols appearing in an expression, unique, in order of first appearance.

    The independent variable stored on DIFF nodes is not reported; only
    SYMBOL leaves count.
    """
    seen: Dict[Symbol, None] = {}
    for node in iter_nodes(expr):
        if node.kind == ExprKind.SYMBOL and (kind is None or node.symbol.kind == kind):
            seen.setdefault(node.symbol, None)
    return list(seen)


def occurs(symbol: Symbol, expr: Expr) -> bool:
    """True if `symbol` appears as a leaf anywhere in `expr`."""
    return any(node.kind == ExprKind.SYMBOL and node.symbol == symbol for node in iter_nodes(expr))


def is_constant(expr: Expr) -> bool:
    return expr.kind == ExprKind.CONSTANT


def is_zero(expr: Expr) -> bool:
    return expr.kind == ExprKind.CONSTANT and expr.value == 0


def rebuild(expr: Expr, children: Tuple[Expr, ...]) -> Expr:
    """
    Return `expr` with new children, preserving kind and payload.

    The original node is returned when every child is unchanged, so
    rewrites keep sharing untouched subtrees.
    """
    if len(children) == len(expr.children) and all(a is b for a, b in zip(children, expr.children)):
        return expr
    return Expr(expr.kind, children, symbol=expr.symbol, value=expr.value, name=expr.name)


def map_leaves(expr: Expr, fn: Callable[[Expr], Expr]) -> Expr:
    """Rewrite every leaf with `fn`, rebuilding the operations above it."""
    if expr.is_leaf():
        return fn(expr)
    return rebuild(expr, tuple(map_leaves(c, fn) for c in expr.children))


def find_differentials(expr: Expr) -> List[Expr]:
    """All DIFF nodes in an expression, in order of appearance."""
    return [node for node in iter_nodes(expr) if node.kind == ExprKind.DIFF]


def constant_value(expr: Expr) -> Optional[Numeric]:
    """Numeric value of a CONSTANT node, None for anything else."""
    return expr.value if expr.kind == ExprKind.CONSTANT else None
