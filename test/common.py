"""Shared model builders for the test suite."""

import numpy as np
from beartype import beartype

from symsys import (
    Differential,
    Equation,
    NonlinearSystem,
    ODESystem,
    independent_variable,
    parameter,
    unknown,
)

EPS = 1e-9


@beartype
def decay(name: str = "decay") -> ODESystem:
    """D(x) ~ -k*x with x0 = 1, k = 2."""
    t = independent_variable("t")
    x, k = unknown("x"), parameter("k")
    D = Differential(t)
    return ODESystem(
        [Equation(D(x), -k * x)],
        t,
        name=name,
        default_u0={x: 1.0},
        default_p={k: 2.0},
    )


@beartype
def linear(name: str = "lin", **kwargs) -> ODESystem:
    """D(x) ~ a*x + b*y, D(y) ~ c*x."""
    t = independent_variable("t")
    x, y = unknown("x"), unknown("y")
    a, b, c = parameter("a"), parameter("b"), parameter("c")
    D = Differential(t)
    return ODESystem([Equation(D(x), a * x + b * y), Equation(D(y), c * x)], t, name=name, **kwargs)


@beartype
def circle(name: str = "circle") -> NonlinearSystem:
    """Residuals of the unit circle intersected with the line y = r*x."""
    x, y = unknown("x"), unknown("y")
    r = parameter("r")
    return NonlinearSystem([Equation(0, x**2 + y**2 - 1), Equation(0, y - r * x)], name=name)


def allclose(a, b) -> bool:
    return bool(np.allclose(np.asarray(a, dtype=float), np.asarray(b, dtype=float), atol=EPS))
