"""Standard comparison operators for Mango selector compilation."""

from __future__ import annotations

from typing import Any

from ..where import WhereOperator

_MANGO_OP_MAP: dict[WhereOperator, str] = {
    WhereOperator.EQ: "$eq",
    WhereOperator.NE: "$ne",
    WhereOperator.GT: "$gt",
    WhereOperator.GTE: "$gte",
    WhereOperator.LT: "$lt",
    WhereOperator.LTE: "$lte",
}


def compile_standard(
    field: str, op: WhereOperator | str, val: Any
) -> dict[str, Any] | None:
    """Compile comparison operators to Mango fragments."""
    spec_op = WhereOperator.parse(op)
    if not isinstance(spec_op, WhereOperator):
        return None
    mango_op = _MANGO_OP_MAP.get(spec_op)
    if mango_op is None:
        return None
    return {field: {mango_op: val}}
