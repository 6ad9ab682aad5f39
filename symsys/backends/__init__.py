"""
Code generation and symbolic backends.

- casadi: builds ``casadi.Function`` objects from bound programs
- sympy: conversion to and from SymPy for simplification and LaTeX
"""

from symsys.backends.casadi import casadi_function, to_casadi, wrap_casadi_function
from symsys.backends.sympy import from_sympy, sympy_leaves, sympy_simplify, to_latex, to_sympy

__all__ = [
    "casadi_function",
    "to_casadi",
    "wrap_casadi_function",
    "from_sympy",
    "sympy_leaves",
    "sympy_simplify",
    "to_latex",
    "to_sympy",
]
