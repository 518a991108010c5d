"""String operators -> $regex.

Mango's ``$regex`` is unanchored and case-sensitive; literal values are
escaped so user input cannot inject pattern syntax.
"""

from __future__ import annotations

import re
from typing import Any

from ..exceptions import CouchQueryError
from ..where import WhereOperator

_REGEX_SPECIALS = re.compile(r"[.*+?^${}()|\[\]\\]")

_PATTERNS: dict[WhereOperator, str] = {
    WhereOperator.CONTAINS: ".*{}.*",
    WhereOperator.STARTS_WITH: "^{}.*",
    WhereOperator.ENDS_WITH: ".*{}$",
}


def _regex_escape(s: str) -> str:
    """Escape special regex characters in a literal string."""
    return _REGEX_SPECIALS.sub(lambda m: "\\" + m.group(0), s)


def compile_string(
    field: str, op: WhereOperator | str, val: Any
) -> dict[str, Any] | None:
    """Compile string operators to Mango $regex. Returns None if not a string op."""
    spec_op = WhereOperator.parse(op)
    if not isinstance(spec_op, WhereOperator) or spec_op not in _PATTERNS:
        return None
    if not isinstance(val, str):
        raise CouchQueryError(
            f"String operator {spec_op.value} requires string value"
        )
    return {field: {"$regex": _PATTERNS[spec_op].format(_regex_escape(val))}}
