"""
Function generation: symbolic expressions to numeric callables.

Expressions are first bound to their inputs in a single substitution
pass, which replaces every symbol with an indexed argument (``u[i]``,
``p[j]``, ``t``, ``gam``) or with a local holding an observed quantity.
The bound program is then translated by a backend:

- ``Backend.NUMPY`` lowers it to SymPy and compiles it with
  ``sympy.lambdify(..., modules="numpy")``.
- ``Backend.CASADI`` builds a ``casadi.Function`` (see
  :mod:`symsys.backends.casadi`).

Generated numpy functions are called as ``f(u, p, t=None)``, or
``f(u, p, gam, t=None)`` for factorized W, and return a numpy array (or
a ``scipy.sparse.csc_matrix`` for sparse Jacobians and Hessians).

Example
-------
>>> from symsys import Differential, Equation, ODESystem, independent_variable, parameter, unknown
>>> t = independent_variable("t")
>>> x, k = unknown("x"), parameter("k")
>>> sys = ODESystem([Equation(Differential(t)(x), -k * x)], t, name="decay")
>>> f = generate_function(sys, expression=False)
>>> f([1.0], [2.0])
array([-2.])
"""

import inspect
from dataclasses import dataclass, field
from enum import Enum, auto

import numpy as np
import scipy.linalg
import scipy.sparse
import scipy.sparse.linalg
from beartype import beartype
from beartype.typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from symsys.derived import (
    calculate_factorized_W,
    calculate_gradient,
    calculate_hessian,
    calculate_jacobian,
    calculate_tgrad,
)
from symsys.equations import Equation
from symsys.errors import InvalidShapeError, UnboundSymbolError
from symsys.expr import (
    Expr,
    ExprKind,
    Symbol,
    find_differentials,
    get_symbols,
    is_zero,
    iter_nodes,
    map_leaves,
    to_expr,
)
from symsys.namespacing import default_p, default_u0, equations, loss, observed, parameters, unknowns
from symsys.system import System


class Backend(Enum):
    """Target of function generation."""

    NUMPY = auto()
    CASADI = auto()


# =============================================================================
# Binding: symbols -> indexed arguments
# =============================================================================


def arg(name: str, index: Optional[int] = None) -> Expr:
    """Argument slot ``name[index]`` (or the scalar argument ``name``)."""
    return Expr(ExprKind.ARG, name=name, value=index)


@dataclass(frozen=True)
class BoundProgram:
    """
    Backend-neutral form of a function to generate.

    `locals` are ``(name, expr)`` bindings evaluated in order before the
    outputs. `outputs` are the entries to compute, row-major; for sparse
    programs only the entries listed in `sparsity`.
    """

    name: str
    locals: Tuple[Tuple[str, Expr], ...]
    outputs: Tuple[Expr, ...]
    shape: Tuple[int, ...]
    n_u: int
    n_p: int
    has_gamma: bool
    uses_t: bool
    sparsity: Optional[Tuple[Tuple[int, int], ...]] = None


def _observed_symbol(eq: Equation) -> Symbol:
    if eq.lhs.kind != ExprKind.SYMBOL:
        raise ValueError(f"Observed equation must define a symbol: {eq!r}")
    return eq.lhs.symbol


def _needed_observed(exprs: Sequence[Expr], observed_eqs: Sequence[Equation]) -> List[Equation]:
    """Observed equations the expressions depend on, directly or transitively, in order."""
    by_symbol = {_observed_symbol(eq): eq for eq in observed_eqs}
    needed = set()
    stack = [s for e in exprs for s in get_symbols(e) if s in by_symbol]
    while stack:
        s = stack.pop()
        if s in needed:
            continue
        needed.add(s)
        stack.extend(d for d in get_symbols(by_symbol[s].rhs) if d in by_symbol and d not in needed)
    return [eq for eq in observed_eqs if _observed_symbol(eq) in needed]


def _bind(
    exprs: Sequence[Expr],
    dvs: Sequence[Symbol],
    ps: Sequence[Symbol],
    iv: Optional[Symbol],
    gamma: Optional[Symbol],
    observed_eqs: Sequence[Equation],
) -> Tuple[List[Tuple[str, Expr]], List[Expr]]:
    table: Dict[Symbol, Expr] = {}
    if iv is not None:
        table[iv] = arg("t")
    if gamma is not None:
        table[gamma] = arg("gam")
    table.update({s: arg("p", j) for j, s in enumerate(ps)})
    table.update({s: arg("u", i) for i, s in enumerate(dvs)})

    unbound: Dict[Symbol, None] = {}

    def leaf(e: Expr) -> Expr:
        if e.kind == ExprKind.SYMBOL:
            if e.symbol in table:
                return table[e.symbol]
            unbound.setdefault(e.symbol, None)
        return e

    def bind(e: Expr) -> Expr:
        diffs = find_differentials(e)
        if diffs:
            raise ValueError(f"Cannot generate code for the differential {diffs[0]!r}; expand or eliminate it first")
        return map_leaves(e, leaf)

    local_bindings = []
    for k, eq in enumerate(_needed_observed(exprs, observed_eqs)):
        # earlier locals are visible to later ones
        bound = bind(eq.rhs)
        local_name = f"_obs{k}"
        table[_observed_symbol(eq)] = arg(local_name)
        local_bindings.append((local_name, bound))
    outputs = [bind(e) for e in exprs]
    if unbound:
        raise UnboundSymbolError(list(unbound))
    return local_bindings, outputs


def _uses_t(exprs: Sequence[Expr]) -> bool:
    return any(n.kind == ExprKind.ARG and n.name == "t" for e in exprs for n in iter_nodes(e))


def _normalize_outputs(outputs: Sequence) -> Tuple[List[Expr], Tuple[int, ...]]:
    rows = list(outputs)
    if rows and all(isinstance(r, (list, tuple)) for r in rows):
        n_cols = len(rows[0])
        if any(len(r) != n_cols for r in rows):
            raise InvalidShapeError("Matrix outputs must have rows of equal length")
        return [to_expr(x) for r in rows for x in r], (len(rows), n_cols)
    if any(isinstance(r, (list, tuple)) for r in rows):
        raise InvalidShapeError("Outputs must be all expressions (vector) or all rows (matrix)")
    return [to_expr(x) for x in rows], (len(rows),)


def bind_program(
    outputs: Sequence,
    dvs: Sequence,
    ps: Sequence,
    iv: Optional[Symbol] = None,
    *,
    name: str = "f",
    observed: Sequence[Equation] = (),
    sparse: bool = False,
    gamma: Optional[Symbol] = None,
) -> BoundProgram:
    """Substitute arguments into `outputs` and collect everything a backend needs."""
    if not name.isidentifier():
        raise ValueError(f"Function name must be a valid identifier, got '{name}'")
    flat, shape = _normalize_outputs(outputs)
    sparsity = None
    if sparse:
        if len(shape) != 2:
            raise ValueError("sparse=True needs matrix outputs")
        n_cols = shape[1]
        sparsity = tuple((k // n_cols, k % n_cols) for k, e in enumerate(flat) if not is_zero(e))
        flat = [e for e in flat if not is_zero(e)]
    dvs = [_as_symbol(s) for s in dvs]
    ps = [_as_symbol(s) for s in ps]
    local_bindings, bound = _bind(flat, dvs, ps, iv, gamma, observed)
    return BoundProgram(
        name=name,
        locals=tuple(local_bindings),
        outputs=tuple(bound),
        shape=shape,
        n_u=len(dvs),
        n_p=len(ps),
        has_gamma=gamma is not None,
        uses_t=_uses_t(bound + [e for _, e in local_bindings]),
        sparsity=sparsity,
    )


def _as_symbol(x: Any) -> Symbol:
    if isinstance(x, Symbol):
        return x
    if isinstance(x, Expr) and x.kind == ExprKind.SYMBOL:
        return x.symbol
    raise TypeError(f"Expected a symbol, got {x!r}")


# =============================================================================
# Numpy backend (sympy.lambdify)
# =============================================================================


def _as_array(x: Any) -> np.ndarray:
    if x is None:
        return np.zeros(0)
    return np.asarray(x, dtype=float)


def lambdify_program(program: BoundProgram) -> Callable:
    """
    Lambdify `program` with the numpy printer.

    The arguments are ``(u, p, t)``, or ``(u, p, gam, t)`` with a gamma
    argument. Observed locals are handed to lambdify as common
    subexpressions, so they are printed as assignments ahead of the
    return statement.
    """
    import sympy as sp

    from symsys.backends.sympy import to_sympy

    args = [sp.IndexedBase("u"), sp.IndexedBase("p")]
    if program.has_gamma:
        args.append(sp.Symbol("gam"))
    args.append(sp.Symbol("t"))

    cses = [(sp.Symbol(local_name), to_sympy(e)) for local_name, e in program.locals]
    entries = [to_sympy(e) for e in program.outputs]
    if len(program.shape) == 2 and program.sparsity is None:
        n_rows, n_cols = program.shape
        body = [entries[i * n_cols : (i + 1) * n_cols] for i in range(n_rows)]
    else:
        body = entries
    return sp.lambdify(args, body, modules="numpy", cse=lambda exprs: (cses, exprs))


def wrap_numpy_function(program: BoundProgram, func: Callable, source: str) -> "GeneratedFunction":
    """
    Numeric wrapper around a lambdified program.

    The wrapper takes array-likes, returns numpy arrays of the program's
    shape (a ``csc_matrix`` for sparse programs) and defaults ``t`` to
    zero when the outputs do not depend on it.
    """
    shape = program.shape
    if program.sparsity is not None:
        rows = np.array([i for i, _ in program.sparsity], dtype=int)
        cols = np.array([j for _, j in program.sparsity], dtype=int)

    def call(u, p, *rest, t=None):
        args = [_as_array(u), _as_array(p)]
        if program.has_gamma:
            gam, rest = rest[0], rest[1:]
            args.append(float(gam))
        if rest:
            t = rest[0]
        if t is None:
            if program.uses_t:
                raise ValueError(f"{program.name} depends on t; pass a value for t")
            t = 0.0
        args.append(t)
        out = np.asarray(func(*args), dtype=float)
        if program.sparsity is not None:
            return scipy.sparse.csc_matrix((out, (rows, cols)), shape=shape)
        return out.reshape(shape)

    return GeneratedFunction(
        name=program.name,
        func=call,
        shape=shape,
        backend=Backend.NUMPY,
        source=source,
        sparsity=program.sparsity,
    )


# =============================================================================
# Public entry points
# =============================================================================


@dataclass(frozen=True)
class GeneratedFunction:
    """
    A generated numeric function together with its metadata.

    Calling the object calls the function.
    """

    name: str
    func: Callable = field(repr=False)
    shape: Tuple[int, ...]
    backend: Backend = Backend.NUMPY
    source: Optional[str] = field(default=None, repr=False)
    sparsity: Optional[Tuple[Tuple[int, int], ...]] = None

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        return self.func(*args, **kwargs)


@beartype
def build_function(
    outputs: Sequence,
    dvs: Sequence,
    ps: Sequence,
    iv: Optional[Symbol] = None,
    *,
    expression: bool = True,
    backend: Backend = Backend.NUMPY,
    name: str = "f",
    observed: Sequence[Equation] = (),
    sparse: bool = False,
    gamma: Optional[Symbol] = None,
) -> Any:
    """
    Generate a numeric function from symbolic expressions.

    Parameters
    ----------
    outputs : sequence
        Expressions (vector output) or rows of expressions (matrix output).
    dvs, ps : sequence of Symbol
        Ordering of the unknowns in ``u`` and the parameters in ``p``.
    iv : Symbol, optional
        Independent variable, bound to the ``t`` argument.
    expression : bool
        If True return a symbolic representation (numpy: the source text,
        CasADi: the ``casadi.Function``); if False a `GeneratedFunction`.
    observed : sequence of Equation
        Observed equations; those the outputs depend on become local
        bindings evaluated ahead of the outputs.
    sparse : bool
        Emit a ``scipy.sparse.csc_matrix`` holding only the structurally
        nonzero entries. Matrix outputs only.
    gamma : Symbol, optional
        Extra scalar argument ``gam`` placed after ``p``.

    Raises
    ------
    UnboundSymbolError
        If an output uses a symbol that is neither in `dvs`, `ps`, nor the
        independent variable (all such symbols are reported).
    """
    program = bind_program(outputs, dvs, ps, iv, name=name, observed=observed, sparse=sparse, gamma=gamma)
    if backend == Backend.CASADI:
        from symsys.backends.casadi import casadi_function, wrap_casadi_function

        cfunc = casadi_function(program)
        return cfunc if expression else wrap_casadi_function(program, cfunc)
    func = lambdify_program(program)
    # lambdify registers its source with linecache
    source = inspect.getsource(func)
    return source if expression else wrap_numpy_function(program, func, source)


def _system_args(sys: System, dvs, ps) -> Tuple[List[Symbol], List[Symbol]]:
    return (list(unknowns(sys)) if dvs is None else list(dvs), list(parameters(sys)) if ps is None else list(ps))


def _system_outputs(sys: System) -> List[Expr]:
    eqs = equations(sys)
    if eqs:
        return [eq.rhs for eq in eqs]
    objective = loss(sys)
    return [] if objective is None else [objective]


@beartype
def generate_function(sys: System, dvs: Optional[Sequence] = None, ps: Optional[Sequence] = None, **kwargs: Any) -> Any:
    """
    Right-hand sides of the flattened equations as a function of ``(u, p, t)``.

    For a system without equations but with a loss, the single output is
    the loss.
    """
    dvs, ps = _system_args(sys, dvs, ps)
    kwargs.setdefault("name", "f")
    kwargs.setdefault("observed", observed(sys))
    return build_function(_system_outputs(sys), dvs, ps, sys.get_iv(), **kwargs)


@beartype
def generate_tgrad(sys: System, dvs: Optional[Sequence] = None, ps: Optional[Sequence] = None, **kwargs: Any) -> Any:
    dvs, ps = _system_args(sys, dvs, ps)
    kwargs.setdefault("name", "tgrad")
    kwargs.setdefault("observed", observed(sys))
    return build_function(list(calculate_tgrad(sys)), dvs, ps, sys.get_iv(), **kwargs)


@beartype
def generate_gradient(sys: System, dvs: Optional[Sequence] = None, ps: Optional[Sequence] = None, **kwargs: Any) -> Any:
    dvs, ps = _system_args(sys, dvs, ps)
    kwargs.setdefault("name", "gradient")
    kwargs.setdefault("observed", observed(sys))
    return build_function(list(calculate_gradient(sys)), dvs, ps, sys.get_iv(), **kwargs)


@beartype
def generate_jacobian(sys: System, dvs: Optional[Sequence] = None, ps: Optional[Sequence] = None, **kwargs: Any) -> Any:
    dvs, ps = _system_args(sys, dvs, ps)
    kwargs.setdefault("name", "jac")
    kwargs.setdefault("observed", observed(sys))
    return build_function(list(calculate_jacobian(sys)), dvs, ps, sys.get_iv(), **kwargs)


@beartype
def generate_hessian(sys: System, dvs: Optional[Sequence] = None, ps: Optional[Sequence] = None, **kwargs: Any) -> Any:
    dvs, ps = _system_args(sys, dvs, ps)
    kwargs.setdefault("name", "hess")
    kwargs.setdefault("observed", observed(sys))
    return build_function(list(calculate_hessian(sys)), dvs, ps, sys.get_iv(), **kwargs)


@beartype
def generate_factorized_W(
    sys: System,
    dvs: Optional[Sequence] = None,
    ps: Optional[Sequence] = None,
    *,
    factorize: bool = True,
    **kwargs: Any,
) -> Any:
    """
    ``W = gamma*M - J`` as a function of ``(u, p, gam, t)``.

    With ``factorize=True`` and ``expression=False`` the returned function
    yields an LU factorization: ``scipy.linalg.lu_factor`` of the dense
    matrix, or ``scipy.sparse.linalg.splu`` when ``sparse=True``.
    """
    dvs, ps = _system_args(sys, dvs, ps)
    kwargs.setdefault("name", "W")
    kwargs.setdefault("observed", observed(sys))
    fw = calculate_factorized_W(sys)
    result = build_function(list(fw.W), dvs, ps, sys.get_iv(), gamma=fw.gamma, **kwargs)
    if not factorize or kwargs.get("expression", True):
        return result
    sparse = kwargs.get("sparse", False)

    def factorized(u, p, gam, t=None):
        W = result(u, p, gam, t)
        if sparse:
            return scipy.sparse.linalg.splu(scipy.sparse.csc_matrix(W))
        return scipy.linalg.lu_factor(W)

    return GeneratedFunction(
        name=result.name,
        func=factorized,
        shape=result.shape,
        backend=result.backend,
        source=result.source,
        sparsity=result.sparsity,
    )


@beartype
def generate_observed(sys: System, dvs: Optional[Sequence] = None, ps: Optional[Sequence] = None, **kwargs: Any) -> Any:
    """Values of the observed quantities, in ``observed(sys)`` order."""
    dvs, ps = _system_args(sys, dvs, ps)
    obs = observed(sys)
    outputs = [eq.lhs for eq in obs]
    kwargs.setdefault("name", "obs")
    return build_function(outputs, dvs, ps, sys.get_iv(), observed=obs, **kwargs)


# =============================================================================
# Compiled bundle
# =============================================================================


@dataclass(frozen=True)
class CompiledSystem:
    """
    Numeric functions of a system plus the orderings they expect.

    ``u0()`` and ``p()`` resolve user maps against the system defaults into
    vectors in `unknowns` / `parameters` order.
    """

    system: System = field(repr=False)
    f: GeneratedFunction
    unknowns: Tuple[Symbol, ...]
    parameters: Tuple[Symbol, ...]
    jac: Optional[GeneratedFunction] = None
    tgrad: Optional[GeneratedFunction] = None

    def u0(self, u0map: Optional[Any] = None, pmap: Optional[Any] = None) -> Any:
        """Initial state; defaults of unknowns may refer to parameters."""
        from symsys.varmap import varmap_to_vars

        merged_defaults = default_p(self.system)
        merged_defaults.update(default_u0(self.system))
        varmap = _pairs(pmap)
        varmap.update(_pairs(u0map))
        return varmap_to_vars(varmap, list(self.unknowns), defaults=merged_defaults)

    def p(self, pmap: Optional[Any] = None) -> Any:
        from symsys.varmap import varmap_to_vars

        return varmap_to_vars(_pairs(pmap), list(self.parameters), defaults=default_p(self.system))


def _pairs(m: Optional[Any]) -> Dict:
    # mappings and sequences of (symbol, value) pairs
    return {} if m is None else dict(m)


@beartype
def compile_system(
    sys: System,
    jac: bool = False,
    tgrad: bool = False,
    *,
    backend: Backend = Backend.NUMPY,
    sparse: bool = False,
) -> CompiledSystem:
    """Generate the right-hand side (and optionally Jacobian and tgrad) callables of `sys`."""
    return CompiledSystem(
        system=sys,
        f=generate_function(sys, expression=False, backend=backend),
        unknowns=tuple(unknowns(sys)),
        parameters=tuple(parameters(sys)),
        jac=generate_jacobian(sys, expression=False, backend=backend, sparse=sparse) if jac else None,
        tgrad=generate_tgrad(sys, expression=False, backend=backend) if tgrad else None,
    )
