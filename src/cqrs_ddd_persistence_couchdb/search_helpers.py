"""In-memory ordering and paging for documents.

Used when the server cannot sort (no usable index) and by the in-memory
store. Absent and ``null`` values sort last in both directions; values of
different JSON types follow CouchDB collation order
(null < boolean < number < string < array < object).
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from functools import cmp_to_key
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .query_builder import SortField

MISSING: Any = object()


def resolve_path(doc: Any, path: str) -> Any:
    """Resolve a dotted field path; returns :data:`MISSING` when absent."""
    current = doc
    for part in path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return MISSING
        current = current[part]
    return current


def collation_rank(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, bool):
        return 1
    if isinstance(value, (int, float)):
        return 2
    if isinstance(value, str):
        return 3
    if isinstance(value, (list, tuple)):
        return 4
    return 5


def compare_values(left: Any, right: Any) -> int:
    """Three-way comparison following CouchDB's type collation."""
    left_rank, right_rank = collation_rank(left), collation_rank(right)
    if left_rank != right_rank:
        return -1 if left_rank < right_rank else 1
    try:
        if left < right:
            return -1
        if left > right:
            return 1
    except TypeError:
        return 0
    return 0


def sort_documents(
    docs: Sequence[Mapping[str, Any]],
    order_by: Sequence[SortField],
    *,
    field_name: Callable[[str], str] | None = None,
) -> list[Any]:
    """Return ``docs`` ordered by ``order_by``; ties fall to the next key."""
    if not order_by:
        return list(docs)
    resolve = field_name or (lambda name: name)
    keys = [(resolve(order.field), order.descending) for order in order_by]

    def _cmp(a: Mapping[str, Any], b: Mapping[str, Any]) -> int:
        for path, descending in keys:
            a_val, b_val = resolve_path(a, path), resolve_path(b, path)
            a_missing = a_val is MISSING or a_val is None
            b_missing = b_val is MISSING or b_val is None
            if a_missing and b_missing:
                continue
            if a_missing:
                return 1
            if b_missing:
                return -1
            result = compare_values(a_val, b_val)
            if result:
                return -result if descending else result
        return 0

    return sorted(docs, key=cmp_to_key(_cmp))


def slice_page(
    docs: Sequence[Any], offset: int | None = None, limit: int | None = None
) -> list[Any]:
    """Apply ``offset``/``limit`` to an already ordered list."""
    start = offset or 0
    if limit is None:
        return list(docs[start:])
    return list(docs[start : start + limit])
