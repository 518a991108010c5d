"""Mango operator compilers for filter expressions."""

from __future__ import annotations

from .set import compile_set
from .standard import compile_standard
from .string import compile_string

__all__ = [
    "compile_standard",
    "compile_set",
    "compile_string",
]
