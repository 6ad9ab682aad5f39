"""
CasADi target for function generation.

A `BoundProgram` is converted into a ``casadi.Function`` with inputs
``(u, p, t)``, or ``(u, p, gam, t)`` when the program takes a gamma
argument, using scalar SX symbolics.

================================================================================
CasADi SX
================================================================================

Each entry of ``u`` and ``p`` is a separate SX scalar, so the Jacobian
sparsity of the generated function is exact. Matrix outputs start from a
structurally zero ``ca.SX(m, n)`` and only the nonzero entries are
assigned, so sparse programs keep their pattern in the CasADi output.

================================================================================
"""

import casadi as ca
import numpy as np
import scipy.sparse
from beartype.typing import Any, Callable, Dict

from symsys.codegen import Backend, BoundProgram, GeneratedFunction
from symsys.expr import ELEMENTARY_FUNCTIONS, Expr, ExprKind

# =============================================================================
# Expression Conversion - Dispatch Table
# =============================================================================


def _product(c, e: Expr):
    out = c(e.children[0])
    for child in e.children[1:]:
        out = out * c(child)
    return out


def _sum(c, e: Expr):
    out = c(e.children[0])
    for child in e.children[1:]:
        out = out + c(child)
    return out


def _make_expr_handlers(env: Dict[str, ca.SX]) -> Dict[ExprKind, Callable]:
    """Dispatch table for converting bound Expr nodes to SX, given the argument symbols."""
    return {
        ExprKind.CONSTANT: lambda c, e: ca.SX(float(e.value)),
        ExprKind.ARG: lambda c, e: env[e.name] if e.value is None else env[e.name][e.value],
        ExprKind.ADD: _sum,
        ExprKind.MUL: _product,
        ExprKind.POW: lambda c, e: c(e.children[0]) ** c(e.children[1]),
        ExprKind.CALL: lambda c, e: getattr(ca, ELEMENTARY_FUNCTIONS[e.name].casadi)(c(e.children[0])),
    }


def to_casadi(expr: Expr, env: Dict[str, ca.SX]) -> ca.SX:
    """Convert a bound expression; `env` maps argument names to SX symbols."""
    handlers = _make_expr_handlers(env)
    memo: Dict[Expr, ca.SX] = {}

    def c(e: Expr) -> ca.SX:
        if e in memo:
            return memo[e]
        handler = handlers.get(e.kind)
        if handler is None:
            raise ValueError(f"Cannot convert {e.kind.name} node {e!r} to CasADi")
        result = handler(c, e)
        memo[e] = result
        return result

    return c(expr)


# =============================================================================
# Function construction
# =============================================================================


def casadi_function(program: BoundProgram) -> ca.Function:
    """Build the ``casadi.Function`` for `program`."""
    u = ca.SX.sym("u", program.n_u)
    p = ca.SX.sym("p", program.n_p)
    t = ca.SX.sym("t")
    env: Dict[str, ca.SX] = {"u": u, "p": p, "t": t}
    inputs = [u, p]
    names_in = ["u", "p"]
    if program.has_gamma:
        gam = ca.SX.sym("gam")
        env["gam"] = gam
        inputs.append(gam)
        names_in.append("gam")
    inputs.append(t)
    names_in.append("t")

    for local_name, e in program.locals:
        env[local_name] = to_casadi(e, env)
    entries = [to_casadi(e, env) for e in program.outputs]

    if len(program.shape) == 1:
        out = ca.vertcat(*entries) if entries else ca.SX(0, 1)
    else:
        n_rows, n_cols = program.shape
        out = ca.SX(n_rows, n_cols)
        if program.sparsity is not None:
            positions = program.sparsity
        else:
            positions = [(k // n_cols, k % n_cols) for k in range(len(entries))]
        for (i, j), entry in zip(positions, entries):
            out[i, j] = entry
    return ca.Function(program.name, inputs, [out], names_in, ["out"])


def wrap_casadi_function(program: BoundProgram, func: ca.Function) -> GeneratedFunction:
    """
    Numeric wrapper around a CasADi function.

    The wrapper takes array-likes, returns numpy arrays of the program's
    shape (a ``csc_matrix`` for sparse programs) and defaults ``t`` to
    zero when the outputs do not depend on it.
    """
    shape = program.shape
    if program.sparsity is not None:
        rows = np.array([i for i, _ in program.sparsity], dtype=int)
        cols = np.array([j for _, j in program.sparsity], dtype=int)

    def _vec(x: Any, n: int) -> Any:
        if n == 0:
            return ca.DM(0, 1)
        return np.asarray(x, dtype=float).reshape(n)

    def call(u, p, *rest, t=None):
        args = [_vec(u, program.n_u), _vec(p, program.n_p)]
        if program.has_gamma:
            gam, rest = rest[0], rest[1:]
            args.append(float(gam))
        if rest:
            t = rest[0]
        if t is None:
            if program.uses_t:
                raise ValueError(f"{program.name} depends on t; pass a value for t")
            t = 0.0
        args.append(float(t))
        dense = np.array(func(*args), dtype=float).reshape(shape)
        if program.sparsity is not None:
            return scipy.sparse.csc_matrix((dense[rows, cols], (rows, cols)), shape=shape)
        return dense

    return GeneratedFunction(
        name=program.name,
        func=call,
        shape=shape,
        backend=Backend.CASADI,
        source=None,
        sparsity=program.sparsity,
    )
