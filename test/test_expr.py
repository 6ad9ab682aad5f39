"""Tests for symbols, expression trees and symbol constructors."""

import numpy as np
import pytest


class TestSymbol:
    """Test Symbol identity and construction."""

    def test_equal_by_name_and_kind(self) -> None:
        from symsys import DType, Symbol, SymbolKind

        a = Symbol("x", SymbolKind.UNKNOWN)
        b = Symbol("x", SymbolKind.UNKNOWN, DType.INTEGER)
        assert a == b
        assert hash(a) == hash(b)
        assert a != Symbol("x", SymbolKind.PARAMETER)
        assert a != Symbol("y", SymbolKind.UNKNOWN)

    def test_empty_name_rejected(self) -> None:
        from symsys import Symbol

        with pytest.raises(ValueError):
            Symbol("")

    def test_rename_keeps_kind(self) -> None:
        from symsys import SymbolKind, parameter

        k = parameter("k").rename("sub.k")
        assert k.name == "sub.k"
        assert k.kind == SymbolKind.PARAMETER

    def test_indexed_names(self) -> None:
        from symsys import unknown
        from symsys.variables import indexed_name, map_subscripts

        assert unknown("x", 1, 2).name == "x₁ˏ₂"
        assert indexed_name("q", 10) == "q₁₀"
        assert map_subscripts(0) == "₀"
        with pytest.raises(ValueError):
            map_subscripts(-1)

    def test_declare_several(self) -> None:
        from symsys import SymbolKind, declare_parameters, declare_unknowns

        x, y, z = declare_unknowns("x y, z")
        assert [s.name for s in (x, y, z)] == ["x", "y", "z"]
        assert all(s.kind == SymbolKind.UNKNOWN for s in (x, y, z))
        (a,) = declare_parameters("a")
        assert a.kind == SymbolKind.PARAMETER
        with pytest.raises(ValueError):
            declare_unknowns("   ")

    def test_independent_variable(self) -> None:
        from symsys import SymbolKind, independent_variable

        t = independent_variable()
        assert t.name == "t"
        assert t.kind == SymbolKind.INDEPENDENT


class TestExprConstruction:
    """Test operator overloading and node shapes."""

    def test_add_and_mul(self) -> None:
        from symsys import ExprKind, unknown

        x, y = unknown("x"), unknown("y")
        e = x + y
        assert e.kind == ExprKind.ADD
        assert e.children == (x.expr, y.expr)
        m = 2 * x
        assert m.kind == ExprKind.MUL
        assert m.children[0].value == 2

    def test_subtraction_is_add_of_negation(self) -> None:
        from symsys import ExprKind, unknown

        x, y = unknown("x"), unknown("y")
        e = x - y
        assert e.kind == ExprKind.ADD
        neg = e.children[1]
        assert neg.kind == ExprKind.MUL
        assert neg.children[0].value == -1

    def test_division_is_mul_by_inverse(self) -> None:
        from symsys import ExprKind, unknown

        x, y = unknown("x"), unknown("y")
        e = x / y
        assert e.kind == ExprKind.MUL
        inv = e.children[1]
        assert inv.kind == ExprKind.POW
        assert inv.children[1].value == -1

    def test_repr(self) -> None:
        from symsys import Differential, independent_variable, sin, unknown

        t = independent_variable("t")
        x, y = unknown("x"), unknown("y")
        D = Differential(t)
        assert repr(x + y) == "(x + y)"
        assert repr(x * y) == "(x * y)"
        assert repr(x**2) == "(x ** 2)"
        assert repr(sin(x)) == "sin(x)"
        assert repr(D(x)) == "D(x)"

    def test_to_expr(self) -> None:
        from symsys import ExprKind, to_expr, unknown

        assert to_expr(1.5).kind == ExprKind.CONSTANT
        assert to_expr(np.float64(2.0)).value == 2.0
        assert to_expr(np.array([3.0])).value == 3.0
        assert to_expr(unknown("x")) == unknown("x").expr
        with pytest.raises(TypeError):
            to_expr(True)
        with pytest.raises(TypeError):
            to_expr("x")

    def test_unknown_function_rejected(self) -> None:
        from symsys.expr import call

        with pytest.raises(ValueError, match="Unsupported function"):
            call("erf", 1.0)

    def test_differential_needs_independent_variable(self) -> None:
        from symsys import Differential, ExprKind, independent_variable, unknown

        t = independent_variable("t")
        d = Differential(t)(unknown("x"))
        assert d.kind == ExprKind.DIFF
        assert d.symbol == t
        with pytest.raises(ValueError):
            Differential(unknown("x"))


class TestStructuralEquality:
    """Test equality and hashing of separately built trees."""

    def test_equal_trees(self) -> None:
        from symsys import cos, parameter, unknown

        def build():
            x, k = unknown("x"), parameter("k")
            return cos(k * x) + x**2

        a, b = build(), build()
        assert a is not b
        assert a == b
        assert hash(a) == hash(b)
        assert len({a, b}) == 1

    def test_different_trees(self) -> None:
        from symsys import unknown

        x, y = unknown("x"), unknown("y")
        assert x + y != y + x
        assert x * y != x + y
        assert (x + 1) != (x + 2)

    def test_int_and_float_constants_compare_equal(self) -> None:
        from symsys import to_expr

        assert to_expr(1) == to_expr(1.0)
        assert hash(to_expr(1)) == hash(to_expr(1.0))


class TestTraversal:
    """Test traversal helpers."""

    def test_get_symbols_order_and_uniqueness(self) -> None:
        from symsys import SymbolKind, get_symbols, parameter, sin, unknown

        x, y, k = unknown("x"), unknown("y"), parameter("k")
        e = k * x + sin(y) * x + k
        assert get_symbols(e) == [k, x, y]
        assert get_symbols(e, SymbolKind.UNKNOWN) == [x, y]

    def test_occurs(self) -> None:
        from symsys import Differential, independent_variable, unknown
        from symsys.expr import occurs

        t = independent_variable("t")
        x, y = unknown("x"), unknown("y")
        assert occurs(x, (x + 1) * 2)
        assert not occurs(y, (x + 1) * 2)
        assert occurs(x, Differential(t)(x))

    def test_map_leaves_shares_untouched_subtrees(self) -> None:
        from symsys import parameter, sin, unknown
        from symsys.expr import map_leaves

        x, k = unknown("x"), parameter("k")
        untouched = sin(k)
        e = untouched + x
        out = map_leaves(e, lambda leaf: leaf * 2 if leaf == x.expr else leaf)
        assert out.children[0] is untouched
        assert out.children[1] == x.expr * 2

    def test_constant_value(self) -> None:
        from symsys import to_expr, unknown
        from symsys.expr import constant_value, is_constant

        assert constant_value(to_expr(4)) == 4
        assert constant_value(unknown("x").expr) is None
        assert is_constant(to_expr(0.5))
