"""
Namespacing and flattening of system trees.

Every function here is pull-based and non-destructive: the flattened
view is recomputed from the raw per-node data on each call and the tree
is never modified. A child's symbols are qualified by prefixing the
child's name, joined with NAMESPACE_SEPARATOR; applied recursively this
yields the full ancestor chain, e.g. ``plant.motor.omega``.

The independent variable is shared by the whole tree and is never
namespaced.
"""

from dataclasses import dataclass, field

from beartype import beartype
from beartype.typing import Dict, List, Optional, Tuple, Union

from symsys.equations import Equation
from symsys.errors import NameCollisionError
from symsys.expr import Expr, ExprKind, Symbol, add, map_leaves
from symsys.system import System
from symsys.types import NAMESPACE_SEPARATOR, SymbolKind

# =============================================================================
# Renaming primitives
# =============================================================================


@beartype
def renamespace(namespace: str, x: Union[str, Symbol]) -> Union[str, Symbol]:
    """Qualify a name or symbol with `namespace`."""
    if isinstance(x, Symbol):
        return x.rename(f"{namespace}{NAMESPACE_SEPARATOR}{x.name}")
    return f"{namespace}{NAMESPACE_SEPARATOR}{x}"


def _is_shared(symbol: Symbol, iv: Optional[Symbol]) -> bool:
    return symbol.kind == SymbolKind.INDEPENDENT or symbol == iv


@beartype
def namespace_expr(expr: Expr, namespace: str, iv: Optional[Symbol] = None) -> Expr:
    """
    Qualify every symbol leaf of `expr` with `namespace`.

    The independent variable (and any symbol of kind INDEPENDENT) is left
    untouched. Operation nodes are rebuilt around the renamed leaves;
    subtrees without symbols are shared with the input.
    """

    def leaf(e: Expr) -> Expr:
        if e.kind == ExprKind.SYMBOL and not _is_shared(e.symbol, iv):
            return renamespace(namespace, e.symbol).expr
        return e

    return map_leaves(expr, leaf)


@beartype
def namespace_equation(eq: Equation, namespace: str, iv: Optional[Symbol] = None) -> Equation:
    return Equation(namespace_expr(eq.lhs, namespace, iv), namespace_expr(eq.rhs, namespace, iv))


def _namespace_defaults(defaults: Dict[Symbol, Expr], namespace: str, iv: Optional[Symbol]) -> Dict[Symbol, Expr]:
    return {renamespace(namespace, k): namespace_expr(v, namespace, iv) for k, v in defaults.items()}


# =============================================================================
# Per-child namespaced views
# =============================================================================


@beartype
def namespace_variables(sys: System) -> List[Symbol]:
    """Flattened unknowns of `sys`, qualified with its name."""
    return [renamespace(sys.name, s) for s in unknowns(sys)]


@beartype
def namespace_parameters(sys: System) -> List[Symbol]:
    return [renamespace(sys.name, s) for s in parameters(sys)]


@beartype
def namespace_equations(sys: System) -> List[Equation]:
    return [namespace_equation(eq, sys.name, sys.get_iv()) for eq in equations(sys)]


@beartype
def namespace_observed(sys: System) -> List[Equation]:
    return [namespace_equation(eq, sys.name, sys.get_iv()) for eq in observed(sys)]


@beartype
def namespace_default_u0(sys: System) -> Dict[Symbol, Expr]:
    return _namespace_defaults(default_u0(sys), sys.name, sys.get_iv())


@beartype
def namespace_default_p(sys: System) -> Dict[Symbol, Expr]:
    return _namespace_defaults(default_p(sys), sys.name, sys.get_iv())


# =============================================================================
# Flattened accessors
# =============================================================================


def _dedup(items):
    return list(dict.fromkeys(items))


def check_names(syms: List[Symbol]) -> None:
    """Raise NameCollisionError if two distinct symbols share a qualified name."""
    seen: Dict[str, Symbol] = {}
    for s in syms:
        other = seen.setdefault(s.name, s)
        if other != s:
            raise NameCollisionError(s.name, f"used as both {other.kind.name} and {s.kind.name}")


def _collect_unknowns(sys: System) -> List[Symbol]:
    out = list(sys.get_unknowns())
    for child in sys.get_systems():
        out.extend(renamespace(child.name, s) for s in _collect_unknowns(child))
    return _dedup(out)


def _collect_parameters(sys: System) -> List[Symbol]:
    out = list(sys.get_parameters())
    for child in sys.get_systems():
        out.extend(renamespace(child.name, s) for s in _collect_parameters(child))
    return _dedup(out)


@beartype
def unknowns(sys: System) -> List[Symbol]:
    """
    Own unknowns followed by the qualified unknowns of each child, deduplicated.

    Raises NameCollisionError when an unknown shares its qualified name
    with a distinct unknown or parameter.
    """
    us = _collect_unknowns(sys)
    check_names(us + _collect_parameters(sys))
    return us


@beartype
def parameters(sys: System) -> List[Symbol]:
    ps = _collect_parameters(sys)
    check_names(_collect_unknowns(sys) + ps)
    return ps


@beartype
def equations(sys: System) -> List[Equation]:
    """Own equations followed by the qualified equations of each child."""
    out = list(sys.get_eqs())
    for child in sys.get_systems():
        out.extend(namespace_equations(child))
    return out


@beartype
def observed(sys: System) -> List[Equation]:
    out = list(sys.get_observed())
    for child in sys.get_systems():
        out.extend(namespace_observed(child))
    return _dedup(out)


@beartype
def default_u0(sys: System) -> Dict[Symbol, Expr]:
    """Merged initial-value defaults; a node's own entries override its children's."""
    out: Dict[Symbol, Expr] = {}
    for child in sys.get_systems():
        out.update(namespace_default_u0(child))
    out.update(sys.get_default_u0())
    return out


@beartype
def default_p(sys: System) -> Dict[Symbol, Expr]:
    """Merged parameter defaults; a node's own entries override its children's."""
    out: Dict[Symbol, Expr] = {}
    for child in sys.get_systems():
        out.update(namespace_default_p(child))
    out.update(sys.get_default_p())
    return out


@beartype
def defaults(sys: System) -> Dict[Symbol, Expr]:
    """Initial-value and parameter defaults in one map."""
    out = default_u0(sys)
    out.update(default_p(sys))
    return out


@beartype
def loss(sys: System) -> Optional[Expr]:
    """Own loss plus the qualified losses of all children, or None if there is none."""
    terms = []
    if sys.get_loss() is not None:
        terms.append(sys.get_loss())
    for child in sys.get_systems():
        child_loss = loss(child)
        if child_loss is not None:
            terms.append(namespace_expr(child_loss, child.name, child.get_iv()))
    if not terms:
        return None
    return add(*terms)


# =============================================================================
# Flat snapshot
# =============================================================================


@dataclass(frozen=True)
class FlatSystem:
    """
    Single-level view of a system tree.

    Produced by `flatten`; all names below the root are qualified.
    """

    name: str
    iv: Optional[Symbol]
    eqs: Tuple[Equation, ...]
    unknowns: Tuple[Symbol, ...]
    parameters: Tuple[Symbol, ...]
    observed: Tuple[Equation, ...]
    default_u0: Dict[Symbol, Expr] = field(default_factory=dict)
    default_p: Dict[Symbol, Expr] = field(default_factory=dict)
    loss: Optional[Expr] = None

    def __repr__(self) -> str:
        lines = [f"FlatSystem: {self.name}"]
        if self.iv is not None:
            lines.append(f"  iv: {self.iv}")
        lines.append(f"  unknowns: {list(self.unknowns)}")
        lines.append(f"  parameters: {list(self.parameters)}")
        if self.eqs:
            lines.append("  equations:")
            lines.extend(f"    {eq!r}" for eq in self.eqs)
        if self.observed:
            lines.append("  observed:")
            lines.extend(f"    {eq!r}" for eq in self.observed)
        if self.loss is not None:
            lines.append(f"  loss: {self.loss!r}")
        return "\n".join(lines)


@beartype
def flatten(sys: System) -> FlatSystem:
    """
    Flatten a system tree into a `FlatSystem`.

    Raises NameCollisionError when two distinct symbols (or an unknown
    and an observed output) end up with the same qualified name.
    """
    us = unknowns(sys)
    ps = parameters(sys)
    obs = observed(sys)
    obs_syms = [eq.lhs.symbol for eq in obs if eq.lhs.kind == ExprKind.SYMBOL]
    taken = {s.name for s in us + ps}
    for s in _dedup(obs_syms):
        if s.name in taken:
            raise NameCollisionError(s.name, "observed output shadows an unknown or parameter")
        taken.add(s.name)
    return FlatSystem(
        name=sys.name,
        iv=sys.get_iv(),
        eqs=tuple(equations(sys)),
        unknowns=tuple(us),
        parameters=tuple(ps),
        observed=tuple(obs),
        default_u0=default_u0(sys),
        default_p=default_p(sys),
        loss=loss(sys),
    )
