"""
Derived symbolic artifacts of a system: time gradient, gradient,
Jacobian, Hessian and the factorized-W matrix ``gamma*M - J``.

Each ``calculate_*`` works on the flattened equations of the system and
fills the matching slot of the system's derived cache on first call;
later calls return the stored object itself. Matrices are tuples of row
tuples of Expr: rows follow ``equations(sys)``, columns ``unknowns(sys)``.

Observed quantities are functions of the unknowns. Their definitions are
substituted into the right-hand sides before differentiating, so the
artifacts are derivatives of what ``generate_function`` evaluates.

Example
-------
>>> from symsys import Equation, NonlinearSystem, declare_parameters, declare_unknowns
>>> x, y = declare_unknowns("x y")
>>> a, b = declare_parameters("a b")
>>> ns = NonlinearSystem([Equation(0, a * x + b * y), Equation(0, x * y)], name="ns")
>>> calculate_jacobian(ns)
((a, b), (y, x))
"""

from dataclasses import dataclass

from beartype import beartype
from beartype.typing import List, Tuple

from symsys.calculus import derivative, simplify, substitute
from symsys.errors import InvalidShapeError
from symsys.expr import ONE, ZERO, Expr, Symbol, is_zero, occurs
from symsys.namespacing import equations, loss, observed, unknowns
from symsys.system import System
from symsys.types import SymbolKind
from symsys.varmap import fixpoint_sub

Vector = Tuple[Expr, ...]
Matrix = Tuple[Tuple[Expr, ...], ...]

# scalar multiplying the mass matrix in W = gamma*M - J
GAMMA = Symbol("γ", SymbolKind.PARAMETER)


@dataclass(frozen=True)
class FactorizedW:
    """The matrix ``W = gamma*M - J`` and the symbol used for gamma."""

    W: Matrix
    gamma: Symbol = GAMMA

    @property
    def shape(self) -> Tuple[int, int]:
        return (len(self.W), len(self.W[0]) if self.W else 0)


def inline_observed(sys: System, exprs: List[Expr]) -> List[Expr]:
    """Replace observed symbols in `exprs` by their definitions in terms of the unknowns."""
    obs = observed(sys)
    if not obs:
        return list(exprs)
    resolved = fixpoint_sub({eq.lhs: eq.rhs for eq in obs})
    return [substitute(e, resolved) for e in exprs]


def _rhss(sys: System) -> List[Expr]:
    return inline_observed(sys, [eq.rhs for eq in equations(sys)])


def scalar_objective(sys: System) -> Expr:
    """
    The single scalar output of a system: its loss, or the right-hand
    side of its only equation, with observed quantities inlined.
    """
    objective = loss(sys)
    if objective is None:
        eqs = equations(sys)
        if len(eqs) != 1:
            raise InvalidShapeError(
                f"System '{sys.name}' has {len(eqs)} equations and no loss; "
                "gradient and Hessian need a single scalar equation"
            )
        objective = eqs[0].rhs
    return inline_observed(sys, [objective])[0]


@beartype
def calculate_tgrad(sys: System) -> Vector:
    """Partial derivative of each right-hand side with respect to the independent variable."""
    iv = sys.get_iv()
    if iv is None:
        raise ValueError(f"System '{sys.name}' has no independent variable; tgrad is undefined")
    return sys.get_cache().get_or_compute("tgrad", lambda: tuple(derivative(r, iv) for r in _rhss(sys)))


@beartype
def calculate_gradient(sys: System) -> Vector:
    """Gradient of the scalar objective with respect to the unknowns."""

    def compute() -> Vector:
        objective = scalar_objective(sys)
        return tuple(derivative(objective, u) for u in unknowns(sys))

    return sys.get_cache().get_or_compute("gradient", compute)


@beartype
def calculate_jacobian(sys: System) -> Matrix:
    def compute() -> Matrix:
        us = unknowns(sys)
        return tuple(tuple(derivative(r, u) for u in us) for r in _rhss(sys))

    return sys.get_cache().get_or_compute("jacobian", compute)


@beartype
def calculate_hessian(sys: System) -> Matrix:
    """Second derivatives of the scalar objective, built from the cached gradient."""

    def compute() -> Matrix:
        us = unknowns(sys)
        return tuple(tuple(derivative(g, u) for u in us) for g in calculate_gradient(sys))

    return sys.get_cache().get_or_compute("hessian", compute)


@beartype
def calculate_massmatrix(sys: System) -> Matrix:
    """
    Mass matrix of ``M * D(u) = f``: row i has a one in the column of x
    when equation i is ``D(x) ~ ...`` and is zero otherwise (an algebraic
    equation).
    """
    us = unknowns(sys)
    col = {u: j for j, u in enumerate(us)}
    rows = []
    for eq in equations(sys):
        row = [ZERO] * len(us)
        if eq.is_differential and eq.state in col:
            row[col[eq.state]] = ONE
        rows.append(tuple(row))
    return tuple(rows)


@beartype
def calculate_factorized_W(sys: System) -> FactorizedW:
    """``W = gamma*M - J``, simplified entrywise; W must be square."""

    def compute() -> FactorizedW:
        J = calculate_jacobian(sys)
        M = calculate_massmatrix(sys)
        if len(J) != len(unknowns(sys)):
            raise InvalidShapeError(
                f"System '{sys.name}' has {len(J)} equations and {len(unknowns(sys))} unknowns; W must be square"
            )
        W = tuple(
            tuple(simplify(GAMMA * m - j) for m, j in zip(m_row, j_row)) for m_row, j_row in zip(M, J)
        )
        return FactorizedW(W, GAMMA)

    return sys.get_cache().get_or_compute("factorized_W", compute)


def _sparsity(matrix: Matrix) -> List[Tuple[int, int]]:
    return [(i, j) for i, row in enumerate(matrix) for j, entry in enumerate(row) if not is_zero(entry)]


@beartype
def jacobian_sparsity(sys: System) -> List[Tuple[int, int]]:
    """Row-major sorted (row, col) pairs of the structurally nonzero Jacobian entries."""
    return _sparsity(calculate_jacobian(sys))


@beartype
def hessian_sparsity(sys: System) -> List[Tuple[int, int]]:
    return _sparsity(calculate_hessian(sys))


@beartype
def islinear(sys: System) -> bool:
    """
    True if every right-hand side is affine in the unknowns.

    The test is structural: no unknown may occur in any Jacobian entry.
    Expressions such as ``x*x - x*x`` that only cancel after collecting
    like terms are reported as nonlinear.
    """
    us = unknowns(sys)
    return not any(occurs(u, entry) for row in calculate_jacobian(sys) for entry in row for u in us)
