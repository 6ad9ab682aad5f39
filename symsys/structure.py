"""
Structural information slot.

A structural pass (index reduction, tearing) works on which unknowns
appear in which equations. `initialize_system_structure` computes that
incidence once and stores it in the system's cache; accessors that
depend on it fail with StructureNotInitializedError until it has run.
"""

from dataclasses import dataclass

import numpy as np
from beartype import beartype
from beartype.typing import Tuple

from symsys.errors import StructureNotInitializedError
from symsys.expr import get_symbols
from symsys.namespacing import equations, unknowns
from symsys.system import System


@dataclass(frozen=True)
class SystemStructure:
    """
    Incidence of unknowns in equations.

    `incidence[i]` holds the column indices (into `unknowns`) of the
    unknowns occurring in equation `i`, sorted. `differential[j]` is True
    when unknown `j` is the state of a ``D(x) ~ ...`` equation.
    """

    unknowns: Tuple
    incidence: Tuple[Tuple[int, ...], ...]
    differential: Tuple[bool, ...]

    @property
    def n_equations(self) -> int:
        return len(self.incidence)


def _compute_structure(sys: System) -> SystemStructure:
    us = unknowns(sys)
    col = {u: j for j, u in enumerate(us)}
    incidence = []
    states = set()
    for eq in equations(sys):
        if eq.is_differential:
            states.add(eq.state)
        found = set()
        for side in (eq.lhs, eq.rhs):
            found.update(col[s] for s in get_symbols(side) if s in col)
        incidence.append(tuple(sorted(found)))
    return SystemStructure(
        unknowns=tuple(us),
        incidence=tuple(incidence),
        differential=tuple(u in states for u in us),
    )


@beartype
def initialize_system_structure(sys: System) -> System:
    """Fill the structural slot of `sys` (once) and return `sys`."""
    sys.get_cache().get_or_compute("structure", lambda: _compute_structure(sys))
    return sys


@beartype
def get_structure(sys: System) -> SystemStructure:
    cache = sys.get_cache()
    if not cache.is_filled("structure"):
        raise StructureNotInitializedError(
            f"System '{sys.name}' has no structural information; call initialize_system_structure first"
        )
    return cache.structure


@beartype
def incidence_matrix(sys: System) -> np.ndarray:
    """Boolean equation-by-unknown incidence matrix."""
    s = get_structure(sys)
    m = np.zeros((s.n_equations, len(s.unknowns)), dtype=bool)
    for i, cols in enumerate(s.incidence):
        m[i, list(cols)] = True
    return m
