"""
Equations: lhs ~ rhs.

By convention ``D(x) ~ f`` is a differential equation for the unknown x,
``x ~ f`` an algebraic (observed) definition and ``0 ~ f`` a residual.
"""

from dataclasses import dataclass

from beartype import beartype
from beartype.typing import Any, Iterable, List, Optional

from symsys.expr import Expr, ExprKind, Symbol, to_expr


@dataclass(frozen=True)
class Equation:
    """
    Immutable equation ``lhs ~ rhs``.

    Both sides are coerced to Expr on construction, so symbols and
    numbers can be passed directly.
    """

    lhs: Expr
    rhs: Expr

    def __init__(self, lhs: Any, rhs: Any) -> None:
        object.__setattr__(self, "lhs", to_expr(lhs))
        object.__setattr__(self, "rhs", to_expr(rhs))

    def __repr__(self) -> str:
        return f"{self.lhs!r} ~ {self.rhs!r}"

    @property
    def is_differential(self) -> bool:
        """True if the left-hand side is ``D(x)`` for a plain symbol x."""
        return self.lhs.kind == ExprKind.DIFF and self.lhs.children[0].kind == ExprKind.SYMBOL

    @property
    def state(self) -> Optional[Symbol]:
        """Symbol defined by this equation, for ``D(x) ~ ...`` and ``x ~ ...``."""
        if self.is_differential:
            return self.lhs.children[0].symbol
        if self.lhs.kind == ExprKind.SYMBOL:
            return self.lhs.symbol
        return None


@beartype
def lhss(eqs: Iterable[Equation]) -> List[Expr]:
    return [eq.lhs for eq in eqs]


@beartype
def rhss(eqs: Iterable[Equation]) -> List[Expr]:
    return [eq.rhs for eq in eqs]
