"""Tests for derived symbolic artifacts and the structural slot."""

import numpy as np
import pytest
from common import circle, decay, linear


def _dae():
    from symsys import Differential, Equation, ODESystem, independent_variable, unknown

    t = independent_variable("t")
    x, y = unknown("x"), unknown("y")
    return ODESystem([Equation(Differential(t)(x), -x), Equation(0, y - x)], t, name="dae")


class TestJacobian:
    """Test calculate_jacobian and its sparsity."""

    def test_columns_follow_unknown_order(self) -> None:
        from symsys import calculate_jacobian, parameter, unknown
        from symsys.expr import ZERO

        a, b, c = parameter("a"), parameter("b"), parameter("c")
        sys = linear(unknowns=[unknown("y"), unknown("x")])
        assert calculate_jacobian(sys) == ((b.expr, a.expr), (ZERO, c.expr))

    def test_cached(self) -> None:
        from symsys import calculate_jacobian

        sys = circle()
        assert calculate_jacobian(sys) is calculate_jacobian(sys)

    def test_sparsity(self) -> None:
        from symsys import jacobian_sparsity

        assert jacobian_sparsity(linear()) == [(0, 0), (0, 1), (1, 0)]

    def test_islinear(self) -> None:
        from symsys import islinear

        assert islinear(linear())
        assert islinear(decay())
        assert not islinear(circle())

    def test_observed_definitions_are_inlined(self) -> None:
        from symsys import Differential, Equation, ODESystem, calculate_jacobian, independent_variable, islinear, unknown
        from symsys.expr import occurs

        t = independent_variable("t")
        x, y = unknown("x"), unknown("y")
        sys = ODESystem([Equation(Differential(t)(x), -y)], t, name="s", observed=[Equation(y, x**2)])
        (row,) = calculate_jacobian(sys)
        assert not occurs(y, row[0])
        assert occurs(x, row[0])
        assert not islinear(sys)


class TestTgrad:
    """Test calculate_tgrad."""

    def test_explicit_time(self) -> None:
        from symsys import Differential, Equation, ODESystem, calculate_tgrad, independent_variable, unknown
        from symsys.expr import ZERO

        t = independent_variable("t")
        x = unknown("x")
        sys = ODESystem([Equation(Differential(t)(x), t * x)], t, name="s")
        assert calculate_tgrad(sys) == (x.expr,)
        assert calculate_tgrad(decay()) == (ZERO,)

    def test_needs_independent_variable(self) -> None:
        from symsys import calculate_tgrad

        with pytest.raises(ValueError, match="independent variable"):
            calculate_tgrad(circle())


class TestGradientHessian:
    """Test gradient and Hessian of scalar systems."""

    def _opt(self):
        from symsys import OptimizationSystem, parameter, unknown

        x, y, a = unknown("x"), unknown("y"), parameter("a")
        return OptimizationSystem(a * x**2 + y, name="opt")

    def test_gradient(self) -> None:
        from symsys import calculate_gradient, parameter, unknown
        from symsys.expr import ONE, mul

        a, x = parameter("a"), unknown("x")
        assert calculate_gradient(self._opt()) == (mul(2, a, x), ONE)

    def test_hessian(self) -> None:
        from symsys import calculate_hessian, hessian_sparsity, parameter
        from symsys.expr import ZERO, mul

        sys = self._opt()
        H = calculate_hessian(sys)
        assert H[0][0] == mul(2, parameter("a"))
        assert H[0][1] == ZERO
        assert H[1] == (ZERO, ZERO)
        assert hessian_sparsity(sys) == [(0, 0)]

    def test_single_equation_is_scalar(self) -> None:
        from symsys import calculate_gradient, parameter

        (g,) = calculate_gradient(decay())
        assert g == -parameter("k")

    def test_non_scalar_system(self) -> None:
        from symsys import InvalidShapeError, calculate_gradient, calculate_hessian

        with pytest.raises(InvalidShapeError):
            calculate_gradient(linear())
        with pytest.raises(InvalidShapeError):
            calculate_hessian(circle())


class TestFactorizedW:
    """Test the mass matrix and W = gamma*M - J."""

    def test_massmatrix(self) -> None:
        from symsys import calculate_massmatrix
        from symsys.expr import ONE, ZERO

        assert calculate_massmatrix(_dae()) == ((ONE, ZERO), (ZERO, ZERO))

    def test_decay_W(self) -> None:
        from symsys import calculate_factorized_W, parameter
        from symsys.derived import GAMMA
        from symsys.expr import add

        fw = calculate_factorized_W(decay())
        assert fw.gamma == GAMMA
        assert fw.shape == (1, 1)
        assert fw.W[0][0] == add(GAMMA, parameter("k"))

    def test_algebraic_row(self) -> None:
        from symsys import calculate_factorized_W, unknown
        from symsys.derived import GAMMA
        from symsys.expr import MINUS_ONE, ONE, ZERO, add

        W = calculate_factorized_W(_dae()).W
        assert W[0] == (add(ONE, GAMMA), ZERO)
        assert W[1] == (ONE, MINUS_ONE)
        assert unknown("x").expr not in W[0]

    def test_non_square(self) -> None:
        from symsys import Equation, InvalidShapeError, NonlinearSystem, calculate_factorized_W, unknown

        x, y = unknown("x"), unknown("y")
        sys = NonlinearSystem([Equation(0, x + y)], name="n")
        with pytest.raises(InvalidShapeError):
            calculate_factorized_W(sys)


class TestStructure:
    """Test the structural slot."""

    def test_not_initialized(self) -> None:
        from symsys import StructureNotInitializedError, get_structure, incidence_matrix

        sys = decay()
        with pytest.raises(StructureNotInitializedError):
            get_structure(sys)
        with pytest.raises(StructureNotInitializedError):
            incidence_matrix(sys)

    def test_incidence(self) -> None:
        from symsys import get_structure, incidence_matrix, initialize_system_structure

        sys = _dae()
        assert initialize_system_structure(sys) is sys
        s = get_structure(sys)
        assert s.n_equations == 2
        assert s.differential == (True, False)
        np.testing.assert_array_equal(incidence_matrix(sys), [[True, False], [True, True]])

    def test_initialized_once(self) -> None:
        from symsys import get_structure, initialize_system_structure

        sys = circle()
        initialize_system_structure(sys)
        first = get_structure(sys)
        initialize_system_structure(sys)
        assert get_structure(sys) is first
