"""Set operators -> $in, $nin."""

from __future__ import annotations

from typing import Any

from ..where import WhereOperator


def compile_set(field: str, op: WhereOperator | str, val: Any) -> dict[str, Any] | None:
    """Compile membership operators. Returns None if not a set op."""
    spec_op = WhereOperator.parse(op)
    if spec_op is WhereOperator.IN:
        return {field: {"$in": _as_list(val)}}
    if spec_op is WhereOperator.NOT_IN:
        return {field: {"$nin": _as_list(val)}}
    return None


def _as_list(val: Any) -> list[Any]:
    if isinstance(val, (list, tuple, set, frozenset)):
        return list(val)
    return [val]
