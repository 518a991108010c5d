"""
Filter expressions and their normalisation.

Callers describe filters either as a flat, ordered list of conditions
(each carrying the connector that joins it to the *previous* condition)
or as an already-nested tree. ``normalise_where`` turns both into a
single canonical tree of :class:`Condition` leaves and
:class:`LogicalExpression` nodes, which the query builder then compiles
to a Mango selector.

Sequence grouping rule: consecutive ``OR`` conditions collapse into one
``OR`` node; those groups (and every ``AND`` condition) are AND-ed in
document order::

    [A, OR B, AND C]   ->  AND(OR(A, B), C)
    [A, AND B, OR C]   ->  AND(A, OR(B, C))
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from .exceptions import CouchQueryError

ID_FIELDS: frozenset[str] = frozenset({"id", "_id"})


class WhereOperator(str, Enum):
    """Operators understood by the selector compiler."""

    EQ = "eq"
    NE = "ne"
    IN = "in"
    NOT_IN = "not_in"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"

    @classmethod
    def parse(cls, value: WhereOperator | str) -> WhereOperator | str:
        """Resolve an operator name or alias.

        Unknown names are returned unchanged so they can be passed through
        to the store verbatim.
        """
        if isinstance(value, WhereOperator):
            return value
        return _OPERATOR_ALIASES.get(str(value), str(value))


_OPERATOR_ALIASES: dict[str, WhereOperator] = {
    "eq": WhereOperator.EQ,
    "equals": WhereOperator.EQ,
    "=": WhereOperator.EQ,
    "ne": WhereOperator.NE,
    "not": WhereOperator.NE,
    "!=": WhereOperator.NE,
    "in": WhereOperator.IN,
    "not_in": WhereOperator.NOT_IN,
    "notIn": WhereOperator.NOT_IN,
    "gt": WhereOperator.GT,
    ">": WhereOperator.GT,
    "gte": WhereOperator.GTE,
    ">=": WhereOperator.GTE,
    "lt": WhereOperator.LT,
    "<": WhereOperator.LT,
    "lte": WhereOperator.LTE,
    "<=": WhereOperator.LTE,
    "contains": WhereOperator.CONTAINS,
    "starts_with": WhereOperator.STARTS_WITH,
    "startsWith": WhereOperator.STARTS_WITH,
    "startswith": WhereOperator.STARTS_WITH,
    "ends_with": WhereOperator.ENDS_WITH,
    "endsWith": WhereOperator.ENDS_WITH,
    "endswith": WhereOperator.ENDS_WITH,
}


class Connector(str, Enum):
    """Boolean connector between conditions."""

    AND = "AND"
    OR = "OR"

    @classmethod
    def parse(cls, value: Connector | str | None) -> Connector:
        if value is None:
            return cls.AND
        if isinstance(value, Connector):
            return value
        try:
            return cls(str(value).upper())
        except ValueError as exc:
            raise CouchQueryError(f"Unknown connector: {value!r}") from exc


@dataclass(frozen=True)
class Condition:
    """A single ``field <operator> value`` test.

    ``connector`` only matters in sequence form, where it states how this
    condition joins the one before it.
    """

    field: str
    value: Any
    operator: WhereOperator | str = WhereOperator.EQ
    connector: Connector = Connector.AND

    def __post_init__(self) -> None:
        object.__setattr__(self, "operator", WhereOperator.parse(self.operator))
        object.__setattr__(self, "connector", Connector.parse(self.connector))

    @property
    def is_identifier(self) -> bool:
        return self.field in ID_FIELDS


@dataclass(frozen=True)
class LogicalExpression:
    """Interior node: ``kind`` applied over ``children``."""

    kind: Connector
    children: tuple[Expression, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", Connector.parse(self.kind))
        object.__setattr__(self, "children", tuple(self.children))


Expression = Union[Condition, LogicalExpression]


def condition_from_mapping(data: Mapping[str, Any]) -> Condition:
    """Build a :class:`Condition` from a host mapping.

    Accepts ``field``/``operator``/``value``/``connector`` keys as well as
    the dict-AST ``attr``/``op``/``val`` aliases.
    """
    field_name = data.get("field", data.get("attr"))
    if not field_name:
        raise CouchQueryError(f"Condition missing 'field': {dict(data)!r}")
    return Condition(
        field=str(field_name),
        value=data.get("value", data.get("val")),
        operator=data.get("operator", data.get("op")) or WhereOperator.EQ,
        connector=data.get("connector") or Connector.AND,
    )


def group_conditions(conditions: Sequence[Condition]) -> Expression | None:
    """Fold a flat condition sequence into a tree.

    Runs a two-register state machine: ``and_terms`` collects the
    top-level conjuncts, ``or_buffer`` accumulates the current run of
    OR-connected conditions and is flushed on every AND connector and at
    the end of input.
    """
    and_terms: list[Expression] = []
    or_buffer: list[Condition] = []

    def flush() -> None:
        if len(or_buffer) == 1:
            and_terms.append(or_buffer[0])
        elif or_buffer:
            and_terms.append(LogicalExpression(Connector.OR, tuple(or_buffer)))
        or_buffer.clear()

    for condition in conditions:
        if condition.connector is Connector.OR:
            or_buffer.append(condition)
        else:
            flush()
            # An AND condition opens a new run: a following OR joins it.
            or_buffer.append(condition)
    flush()

    if not and_terms:
        return None
    if len(and_terms) == 1:
        return and_terms[0]
    return LogicalExpression(Connector.AND, tuple(and_terms))


def _node_from_mapping(data: Mapping[str, Any]) -> Expression | None:
    op = str(data.get("op", "")).lower()
    if op in ("and", "or") and "conditions" in data:
        children = [
            child
            for child in (_normalise_node(c) for c in data.get("conditions") or [])
            if child is not None
        ]
        if not children:
            return None
        if len(children) == 1:
            return children[0]
        return LogicalExpression(Connector.parse(op), tuple(children))
    return condition_from_mapping(data)


def _normalise_node(node: Any) -> Expression | None:
    if isinstance(node, (Condition, LogicalExpression)):
        return node
    if isinstance(node, Mapping):
        return _node_from_mapping(node)
    if isinstance(node, Sequence) and not isinstance(node, (str, bytes)):
        return normalise_where(node)
    raise CouchQueryError(f"Unsupported filter node: {node!r}")


def normalise_where(where: Any) -> Expression | None:
    """Return the canonical expression tree for ``where``.

    ``None`` means "no filter" (match every document).
    """
    if where is None:
        return None
    if isinstance(where, (Condition, LogicalExpression, Mapping)):
        return _normalise_node(where)
    if isinstance(where, Sequence) and not isinstance(where, (str, bytes)):
        conditions: list[Condition] = []
        for item in where:
            if isinstance(item, Condition):
                conditions.append(item)
            elif isinstance(item, Mapping):
                # Entries without a field carry nothing to match on.
                if item.get("field", item.get("attr")):
                    conditions.append(condition_from_mapping(item))
            else:
                raise CouchQueryError(f"Unsupported condition: {item!r}")
        return group_conditions(conditions)
    raise CouchQueryError(f"Unsupported filter: {where!r}")


def explicit_identifier(expression: Expression | None) -> str | None:
    """Return the document id when the expression is exactly one ``id`` equality.

    Composite filters that also name an id are left to the selector path so
    their other conditions still apply.
    """
    if (
        isinstance(expression, Condition)
        and expression.is_identifier
        and expression.operator is WhereOperator.EQ
        and expression.value not in (None, "")
    ):
        return str(expression.value)
    return None
