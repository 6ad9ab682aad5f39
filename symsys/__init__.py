"""
symsys - symbolic equation systems compiled to numeric functions

Declare symbols, compose them into (nested) systems of differential,
algebraic or optimization equations, derive Jacobians and friends
symbolically, and generate numpy or CasADi functions from the result.
"""

__version__ = "0.1.0"

from symsys.types import NAMESPACE_SEPARATOR, DType, SymbolKind
from symsys.errors import (
    CircularDefinitionError,
    InvalidShapeError,
    MissingVariablesError,
    NameCollisionError,
    StructureNotInitializedError,
    SymsysError,
    UnboundSymbolError,
    UnknownSymbolError,
)
from symsys.expr import (
    Differential,
    Expr,
    ExprKind,
    Symbol,
    abs_,
    acos,
    asin,
    atan,
    cos,
    cosh,
    exp,
    get_symbols,
    log,
    sign,
    sin,
    sinh,
    sqrt,
    tan,
    tanh,
    to_expr,
)
from symsys.variables import (
    declare_parameters,
    declare_unknowns,
    independent_variable,
    parameter,
    unknown,
)
from symsys.calculus import derivative, expand_derivatives, simplify, substitute
from symsys.equations import Equation, lhss, rhss
from symsys.system import (
    LookupKind,
    NameLookup,
    NonlinearSystem,
    ODESystem,
    OptimizationSystem,
    System,
    rename,
    resolve_name,
    set_default,
)
from symsys.namespacing import (
    FlatSystem,
    default_p,
    default_u0,
    equations,
    flatten,
    loss,
    observed,
    parameters,
    renamespace,
    unknowns,
)
from symsys.structure import SystemStructure, get_structure, incidence_matrix, initialize_system_structure
from symsys.derived import (
    FactorizedW,
    calculate_factorized_W,
    calculate_gradient,
    calculate_hessian,
    calculate_jacobian,
    calculate_massmatrix,
    calculate_tgrad,
    hessian_sparsity,
    islinear,
    jacobian_sparsity,
)
from symsys.codegen import (
    Backend,
    CompiledSystem,
    GeneratedFunction,
    build_function,
    compile_system,
    generate_factorized_W,
    generate_function,
    generate_gradient,
    generate_hessian,
    generate_jacobian,
    generate_observed,
    generate_tgrad,
)
from symsys.varmap import fixpoint_sub, varmap_to_vars

__all__ = [
    "__version__",
    # types and errors
    "NAMESPACE_SEPARATOR",
    "DType",
    "SymbolKind",
    "SymsysError",
    "InvalidShapeError",
    "UnboundSymbolError",
    "MissingVariablesError",
    "NameCollisionError",
    "StructureNotInitializedError",
    "UnknownSymbolError",
    "CircularDefinitionError",
    # symbols and expressions
    "Symbol",
    "Expr",
    "ExprKind",
    "Differential",
    "to_expr",
    "get_symbols",
    "sin",
    "cos",
    "tan",
    "asin",
    "acos",
    "atan",
    "sinh",
    "cosh",
    "tanh",
    "exp",
    "log",
    "sqrt",
    "abs_",
    "sign",
    "unknown",
    "parameter",
    "independent_variable",
    "declare_unknowns",
    "declare_parameters",
    # calculus
    "derivative",
    "simplify",
    "substitute",
    "expand_derivatives",
    # systems
    "Equation",
    "lhss",
    "rhss",
    "System",
    "ODESystem",
    "NonlinearSystem",
    "OptimizationSystem",
    "LookupKind",
    "NameLookup",
    "rename",
    "resolve_name",
    "set_default",
    # flattening
    "FlatSystem",
    "flatten",
    "renamespace",
    "unknowns",
    "parameters",
    "equations",
    "observed",
    "default_u0",
    "default_p",
    "loss",
    # structure
    "SystemStructure",
    "initialize_system_structure",
    "get_structure",
    "incidence_matrix",
    # derived artifacts
    "FactorizedW",
    "calculate_tgrad",
    "calculate_gradient",
    "calculate_jacobian",
    "calculate_hessian",
    "calculate_factorized_W",
    "calculate_massmatrix",
    "jacobian_sparsity",
    "hessian_sparsity",
    "islinear",
    # code generation
    "Backend",
    "GeneratedFunction",
    "CompiledSystem",
    "build_function",
    "generate_function",
    "generate_tgrad",
    "generate_gradient",
    "generate_jacobian",
    "generate_hessian",
    "generate_factorized_W",
    "generate_observed",
    "compile_system",
    # variable binding
    "varmap_to_vars",
    "fixpoint_sub",
]
