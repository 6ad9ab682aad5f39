"""
System nodes: equations, symbols, defaults and owned child systems.

A System is built once and is immutable from the point of view of its
derived-artifact cache. Children are attached at construction. The
flattened (namespaced) view of a tree lives in :mod:`symsys.namespacing`;
the raw per-node data is reached through the ``get_*`` accessors.

================================================================================
DESIGN PRINCIPLES - DO NOT REMOVE OR IGNORE
================================================================================

1. TREE, NOT GRAPH: A system exclusively owns its children. Sibling names
   must be unique.
2. RAW DATA IS LOCAL: ``get_unknowns()`` and friends return this node's own
   symbols, never namespace-qualified. Qualification happens on demand in
   the flattening functions.
3. WRITE-ONCE CACHE: Each derived-artifact slot is filled at most once.
   Structural changes require a new System.
4. EXPLICIT LOOKUP: Attribute access goes through `resolve_name`, which
   returns a tagged `NameLookup` instead of reflecting over fields.

================================================================================

Example
-------
>>> from symsys import Differential, Equation, ODESystem, independent_variable, parameter, unknown
>>> t = independent_variable("t")
>>> x, k = unknown("x"), parameter("k")
>>> D = Differential(t)
>>> decay = ODESystem([Equation(D(x), -k * x)], t, name="decay")
>>> decay.x
decay.x
"""

import copy
import threading
import warnings
from dataclasses import dataclass, field
from enum import Enum, auto

from beartype import beartype
from beartype.typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from symsys.equations import Equation
from symsys.errors import NameCollisionError, UnknownSymbolError
from symsys.expr import Expr, ExprKind, Symbol, find_differentials, get_symbols, to_expr
from symsys.types import NAMESPACE_SEPARATOR, SymbolKind

# =============================================================================
# Derived-artifact cache
# =============================================================================

CACHE_SLOTS = ("tgrad", "gradient", "jacobian", "hessian", "factorized_W", "structure")


@dataclass
class DerivedCache:
    """
    Lazily filled slots for derived artifacts.

    Slots start as None and are filled at most once. The fill is guarded
    by a re-entrant lock, since computing one artifact may request
    another from the same cache (factorized W needs the Jacobian).
    """

    tgrad: Optional[Any] = None
    gradient: Optional[Any] = None
    jacobian: Optional[Any] = None
    hessian: Optional[Any] = None
    factorized_W: Optional[Any] = None
    structure: Optional[Any] = None
    _lock: Any = field(default_factory=threading.RLock, repr=False, compare=False)

    def is_filled(self, slot: str) -> bool:
        return getattr(self, slot) is not None

    def get_or_compute(self, slot: str, compute: Callable[[], Any]) -> Any:
        """Return the slot value, computing and storing it on first use."""
        if slot not in CACHE_SLOTS:
            raise ValueError(f"Unknown cache slot: {slot}")
        value = getattr(self, slot)
        if value is not None:
            return value
        with self._lock:
            value = getattr(self, slot)
            if value is None:
                value = compute()
                setattr(self, slot, value)
        return value


# =============================================================================
# Name lookup
# =============================================================================


class LookupKind(Enum):
    """What a name resolved to on a system."""

    CHILD = auto()
    UNKNOWN = auto()
    PARAMETER = auto()
    OBSERVED = auto()
    NOT_FOUND = auto()


@dataclass(frozen=True)
class NameLookup:
    kind: LookupKind
    value: Any = None

    @property
    def found(self) -> bool:
        return self.kind != LookupKind.NOT_FOUND


# =============================================================================
# System node
# =============================================================================


def _as_symbol(x: Any) -> Symbol:
    if isinstance(x, Symbol):
        return x
    if isinstance(x, Expr) and x.kind == ExprKind.SYMBOL:
        return x.symbol
    raise TypeError(f"Expected a symbol, got {x!r}")


def _unique(items: Iterable[Symbol]) -> Tuple[Symbol, ...]:
    return tuple(dict.fromkeys(items))


def _defaults_map(defaults: Optional[Mapping]) -> Dict[Symbol, Expr]:
    if defaults is None:
        return {}
    return {_as_symbol(k): to_expr(v) for k, v in defaults.items()}


def _check_name(name: str) -> None:
    if not name:
        raise ValueError("System name must be non-empty")
    if NAMESPACE_SEPARATOR in name:
        raise ValueError(f"System name '{name}' must not contain the namespace separator '{NAMESPACE_SEPARATOR}'")


class System:
    """
    A node in a tree of equation systems.

    Parameters
    ----------
    eqs : iterable of Equation
        The node's own equations.
    iv : Symbol, optional
        Independent variable. Inferred from the ``D(...)`` terms in the
        equations (or from the children) when omitted.
    unknowns, parameters : iterable of Symbol, optional
        Explicit symbol lists. When omitted they are inferred by scanning
        the equations in order of first appearance, differential
        left-hand sides first.
    name : str
        Node name, used as the namespace for this node's symbols when it
        is a child of another system.
    observed : iterable of Equation
        Algebraic definitions ``y ~ f(x, p)`` of output quantities.
    default_u0, default_p : mapping, optional
        Default values (numbers or expressions) keyed by symbol.
    systems : iterable of System
        Owned child systems.
    loss : expression, optional
        Scalar objective, for optimization problems.
    """

    @beartype
    def __init__(
        self,
        eqs: Iterable[Equation] = (),
        iv: Optional[Symbol] = None,
        unknowns: Optional[Iterable] = None,
        parameters: Optional[Iterable] = None,
        *,
        name: str,
        observed: Iterable[Equation] = (),
        default_u0: Optional[Mapping] = None,
        default_p: Optional[Mapping] = None,
        systems: Iterable["System"] = (),
        loss: Any = None,
    ) -> None:
        _check_name(name)
        self._name = name
        self._eqs: Tuple[Equation, ...] = tuple(eqs)
        self._observed: Tuple[Equation, ...] = tuple(observed)
        self._systems: Tuple[System, ...] = tuple(systems)
        self._loss: Optional[Expr] = None if loss is None else to_expr(loss)
        self._default_u0 = _defaults_map(default_u0)
        self._default_p = _defaults_map(default_p)
        self._cache = DerivedCache()

        seen = set()
        for child in self._systems:
            if child.name in seen:
                raise NameCollisionError(child.name, f"duplicate subsystem name in '{name}'")
            seen.add(child.name)

        self._iv = iv if iv is not None else self._infer_iv()

        observed_lhs = {eq.lhs.symbol for eq in self._observed if eq.lhs.kind == ExprKind.SYMBOL}
        exprs = self._scanned_exprs()
        if unknowns is None:
            differential = [eq.state for eq in self._eqs if eq.is_differential]
            found = [s for e in exprs for s in get_symbols(e, SymbolKind.UNKNOWN)]
            self._unknowns = _unique(
                s for s in differential + found if s not in observed_lhs and not self._is_child_symbol(s)
            )
        else:
            self._unknowns = _unique(_as_symbol(s) for s in unknowns)
        if parameters is None:
            self._parameters = _unique(
                s for e in exprs for s in get_symbols(e, SymbolKind.PARAMETER) if not self._is_child_symbol(s)
            )
        else:
            self._parameters = _unique(_as_symbol(s) for s in parameters)

        if unknowns is not None or parameters is not None:
            self._warn_undeclared(exprs, observed_lhs)

    def _scanned_exprs(self) -> List[Expr]:
        exprs = [side for eq in self._eqs for side in (eq.lhs, eq.rhs)]
        exprs.extend(eq.rhs for eq in self._observed)
        if self._loss is not None:
            exprs.append(self._loss)
        return exprs

    def _is_child_symbol(self, s: Symbol) -> bool:
        # symbols such as `motor.omega` referenced in connecting equations
        # belong to the child they are qualified with
        return any(s.name.startswith(c.name + NAMESPACE_SEPARATOR) for c in self._systems)

    def _infer_iv(self) -> Optional[Symbol]:
        ivs = []
        for eq in self._eqs + self._observed:
            for side in (eq.lhs, eq.rhs):
                ivs.extend(node.symbol for node in find_differentials(side))
        ivs.extend(c.get_iv() for c in self._systems if c.get_iv() is not None)
        ivs = _unique(ivs)
        if len(ivs) > 1:
            raise ValueError(f"System '{self._name}' uses more than one independent variable: {list(ivs)}")
        return ivs[0] if ivs else None

    def _warn_undeclared(self, exprs: List[Expr], observed_lhs) -> None:
        declared = set(self._unknowns) | set(self._parameters) | observed_lhs
        used = _unique(s for e in exprs for s in get_symbols(e))
        missing = [s for s in used if s not in declared and s != self._iv and not self._is_child_symbol(s)]
        if missing:
            warnings.warn(
                f"System '{self._name}': symbols {missing} appear in the equations "
                "but are not declared as unknowns or parameters",
                UserWarning,
                stacklevel=3,
            )

    # -------------------------------------------------------------------------
    # Raw accessors (this node only, never namespaced)
    # -------------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    def get_iv(self) -> Optional[Symbol]:
        return self._iv

    def get_eqs(self) -> Tuple[Equation, ...]:
        return self._eqs

    def get_unknowns(self) -> Tuple[Symbol, ...]:
        return self._unknowns

    def get_parameters(self) -> Tuple[Symbol, ...]:
        return self._parameters

    def get_observed(self) -> Tuple[Equation, ...]:
        return self._observed

    def get_default_u0(self) -> Dict[Symbol, Expr]:
        return dict(self._default_u0)

    def get_default_p(self) -> Dict[Symbol, Expr]:
        return dict(self._default_p)

    def get_systems(self) -> Tuple["System", ...]:
        return self._systems

    def get_loss(self) -> Optional[Expr]:
        return self._loss

    def get_cache(self) -> DerivedCache:
        return self._cache

    # -------------------------------------------------------------------------
    # Property-style access
    # -------------------------------------------------------------------------

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        lookup = resolve_name(self, name)
        if not lookup.found:
            raise UnknownSymbolError(f"System '{self._name}' has no child, unknown, parameter or observed named '{name}'")
        return lookup.value

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith("_"):
            object.__setattr__(self, name, value)
        else:
            set_default(self, name, value)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(name={self._name!r}, "
            f"{len(self._eqs)} equations, {len(self._unknowns)} unknowns, "
            f"{len(self._parameters)} parameters, {len(self._systems)} subsystems)"
        )

    def __dir__(self) -> List[str]:
        names = [c.name for c in self._systems]
        names += [s.name for s in self._unknowns + self._parameters]
        names += [eq.lhs.symbol.name for eq in self._observed if eq.lhs.kind == ExprKind.SYMBOL]
        return sorted(set(super().__dir__()) | set(names))


# =============================================================================
# System flavours
# =============================================================================


class ODESystem(System):
    """Ordinary differential (or differential-algebraic) equations ``D(x) ~ f(x, p, t)``."""

    @beartype
    def __init__(
        self,
        eqs: Iterable[Equation],
        iv: Symbol,
        unknowns: Optional[Iterable] = None,
        parameters: Optional[Iterable] = None,
        **kwargs: Any,
    ) -> None:
        if not iv.is_independent():
            raise ValueError(f"ODESystem needs an independent variable, got {iv.kind.name} '{iv}'")
        eqs = tuple(eqs)
        for eq in eqs:
            for side in (eq.lhs, eq.rhs):
                for node in find_differentials(side):
                    if node.symbol != iv:
                        raise ValueError(f"Differential with respect to '{node.symbol}' in {eq!r}, expected '{iv}'")
        super().__init__(eqs, iv, unknowns, parameters, **kwargs)


class NonlinearSystem(System):
    """Algebraic residual equations ``0 ~ f(x, p)`` without an independent variable."""

    @beartype
    def __init__(
        self,
        eqs: Iterable[Equation],
        unknowns: Optional[Iterable] = None,
        parameters: Optional[Iterable] = None,
        **kwargs: Any,
    ) -> None:
        eqs = tuple(eqs)
        for eq in eqs:
            if find_differentials(eq.lhs) or find_differentials(eq.rhs):
                raise ValueError(f"NonlinearSystem equations must not contain differentials: {eq!r}")
        super().__init__(eqs, None, unknowns, parameters, **kwargs)


class OptimizationSystem(System):
    """
    Scalar objective over the unknowns.

    The loss of a composed optimization system is its own loss plus the
    namespaced losses of its children.
    """

    @beartype
    def __init__(
        self,
        loss: Any,
        unknowns: Optional[Iterable] = None,
        parameters: Optional[Iterable] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__((), None, unknowns, parameters, loss=loss, **kwargs)


# =============================================================================
# Functional operations on systems
# =============================================================================


@beartype
def rename(sys: System, name: str) -> System:
    """
    Return a copy of `sys` under a new name.

    All equations, symbols, defaults and children are shared with the
    original; the derived cache of the copy starts empty. The original
    node is not modified.
    """
    _check_name(name)
    new = copy.copy(sys)
    new._name = name
    new._default_u0 = dict(sys._default_u0)
    new._default_p = dict(sys._default_p)
    new._cache = DerivedCache()
    return new


def _qualify(sys: System, name: str) -> str:
    return f"{sys.name}{NAMESPACE_SEPARATOR}{name}"


def _scoped_child(sys: System, child: System) -> System:
    # shares equations, defaults and cache with `child`, so defaults set
    # through the returned node land in the child
    view = copy.copy(child)
    view._name = _qualify(sys, child.name)
    return view


@beartype
def resolve_name(sys: System, name: str) -> NameLookup:
    """
    Resolve `name` on a system.

    Children are looked up first, then unknowns, parameters and observed
    outputs, each in declaration order. The result is qualified with the
    name of `sys`: on a parent ``p`` holding a child ``c`` with unknown
    ``x``, ``p.c`` is the child renamed to ``p.c`` and ``p.c.x`` is the
    symbol ``p.c.x``. On the child itself, ``c.x`` is ``c.x``, the name
    the unknown has in the flattened view of ``p``.
    """
    for child in sys._systems:
        if child.name == name:
            return NameLookup(LookupKind.CHILD, _scoped_child(sys, child))
    for s in sys._unknowns:
        if s.name == name:
            return NameLookup(LookupKind.UNKNOWN, s.rename(_qualify(sys, name)))
    for s in sys._parameters:
        if s.name == name:
            return NameLookup(LookupKind.PARAMETER, s.rename(_qualify(sys, name)))
    for eq in sys._observed:
        if eq.lhs.kind == ExprKind.SYMBOL and eq.lhs.symbol.name == name:
            return NameLookup(LookupKind.OBSERVED, eq.lhs.symbol.rename(_qualify(sys, name)))
    return NameLookup(LookupKind.NOT_FOUND)


@beartype
def set_default(sys: System, name: str, value: Any) -> None:
    """
    Set the default value of a (possibly qualified) parameter or unknown.

    Parameters are matched before unknowns, by exact qualified name within
    the flattened view of `sys`. The entry is written into this node's own
    default map, which takes precedence over the children's defaults when
    flattening.
    """
    from symsys.namespacing import parameters, unknowns

    value = to_expr(value)
    for p in parameters(sys):
        if p.name == name:
            if any(c.name == name for c in sys._systems):
                warnings.warn(
                    f"'{name}' names both a parameter and a subsystem of '{sys.name}'; updating the parameter default",
                    UserWarning,
                    stacklevel=3,
                )
            sys._default_p[p] = value
            return
    for u in unknowns(sys):
        if u.name == name:
            sys._default_u0[u] = value
            return
    raise UnknownSymbolError(f"System '{sys.name}' has no parameter or unknown named '{name}'")
