"""Mango query builder from filter expressions."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from .exceptions import CouchQueryError
from .operators import compile_set, compile_standard, compile_string
from .where import (
    Condition,
    Connector,
    Expression,
    LogicalExpression,
    WhereOperator,
    normalise_where,
)

Selector = dict[str, Any]

_COMPILERS = [
    compile_standard,
    compile_set,
    compile_string,
]


@dataclass(frozen=True)
class SortField:
    """One ordering key; ``direction`` is ``"asc"`` or ``"desc"``."""

    field: str
    direction: str = "asc"

    def __post_init__(self) -> None:
        direction = str(self.direction).lower()
        if direction not in ("asc", "desc"):
            raise CouchQueryError(f"Invalid sort direction: {self.direction!r}")
        object.__setattr__(self, "direction", direction)

    @property
    def descending(self) -> bool:
        return self.direction == "desc"


def _is_sort_pair(value: Any) -> bool:
    """A bare ``(field, "asc"|"desc")`` tuple."""
    return (
        isinstance(value, tuple)
        and len(value) == 2
        and isinstance(value[1], str)
        and value[1].lower() in ("asc", "desc")
    )


def normalise_order_by(order_by: Any, sort_by: Any = None) -> list[SortField]:
    """Coerce the accepted ordering shapes into :class:`SortField` entries.

    Accepts ``SortField``, ``{"field", "direction"}`` mappings,
    ``(field, direction)`` tuples and ``"-field"`` strings. ``sort_by`` is a
    single entry used when ``order_by`` is empty.
    """
    if not order_by:
        order_by = [sort_by] if sort_by else []
    elif isinstance(order_by, (SortField, Mapping, str)) or _is_sort_pair(order_by):
        order_by = [order_by]
    result: list[SortField] = []
    for item in order_by:
        if isinstance(item, SortField):
            result.append(item)
        elif isinstance(item, Mapping):
            result.append(SortField(str(item["field"]), item.get("direction", "asc")))
        elif isinstance(item, tuple):
            result.append(SortField(str(item[0]), item[1]))
        elif isinstance(item, str):
            if item.startswith("-"):
                result.append(SortField(item[1:], "desc"))
            else:
                result.append(SortField(item))
        else:
            raise CouchQueryError(f"Unsupported sort entry: {item!r}")
    return result


class CouchQueryBuilder:
    """Compiles filter expressions to CouchDB Mango selectors."""

    def __init__(self, *, id_key: str = "_id") -> None:
        self._id_key = id_key

    def build_selector(self, where: Any) -> Selector:
        """Build a Mango selector from any accepted filter shape.

        An empty or missing filter yields ``{}`` (match everything).
        """
        return self.compile(normalise_where(where))

    def compile(self, expression: Expression | None) -> Selector:
        """Recursively compile a normalised expression."""
        if expression is None:
            return {}
        if isinstance(expression, LogicalExpression):
            if not expression.children:
                return {}
            key = "$and" if expression.kind is Connector.AND else "$or"
            return {key: [self.compile(child) for child in expression.children]}
        return self._compile_leaf(expression)

    def _compile_leaf(self, condition: Condition) -> Selector:
        field = self._id_key if condition.is_identifier else condition.field
        for compiler in _COMPILERS:
            result = compiler(field, condition.operator, condition.value)
            if result is not None:
                return result
        if isinstance(condition.operator, WhereOperator):
            raise CouchQueryError(f"No compiler for operator {condition.operator}")
        # Unknown operators travel as-is so newer store operators keep working.
        return {field: {condition.operator: condition.value}}

    def build_sort(
        self,
        order_by: Sequence[SortField] | None,
        *,
        field_name: Callable[[str], str] | None = None,
    ) -> list[dict[str, str]]:
        """Build a Mango ``sort`` array: ``[{field: "asc"|"desc"}, ...]``."""
        if not order_by:
            return []
        resolve = field_name or (lambda name: name)
        return [{resolve(order.field): order.direction} for order in order_by]

    @staticmethod
    def scope_selector(selector: Selector, field: str, value: Any) -> Selector:
        """AND an equality on ``field`` into ``selector`` without mutating it."""
        if not selector:
            return {field: value}
        if set(selector) == {"$and"} and isinstance(selector["$and"], list):
            return {"$and": [*selector["$and"], {field: value}]}
        return {"$and": [selector, {field: value}]}
