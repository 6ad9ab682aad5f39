"""
Type tags shared across symsys.

Symbols carry two tags: a `SymbolKind` saying what role the symbol plays
in a system (independent variable, parameter, unknown), and a `DType`
value-type tag that is carried along but never used for identity.
"""

from __future__ import annotations

from enum import Enum, auto

import numpy as np
from beartype.typing import Union

# Separator joining a subsystem name and a local symbol name: 'spring.x'
NAMESPACE_SEPARATOR = "."

# Plain numbers accepted wherever an expression is expected
Numeric = Union[int, float, np.number]


class DType(Enum):
    """Value type of a symbol."""

    REAL = auto()  # Floating point (default)
    INTEGER = auto()
    BOOLEAN = auto()


class SymbolKind(Enum):
    """Role of a symbol inside a system."""

    INDEPENDENT = auto()  # Independent variable, usually time t
    PARAMETER = auto()  # Known constant during a solve
    UNKNOWN = auto()  # Time-dependent unknown (state or algebraic variable)
