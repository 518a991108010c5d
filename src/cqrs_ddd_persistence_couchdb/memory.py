"""In-memory CouchDB fake: a dict-backed server for unit tests.

Mirrors the behaviour the adapter relies on: revision checks on every
write, Mango selector evaluation, ``_id`` ordering for unsorted queries,
the 25-row default ``_find`` limit, and bookmark paging. Passing
``sortable_fields`` makes ``_find`` reject sorts on other fields with
``no_usable_index``, as a server without the matching index would.
"""

from __future__ import annotations

import copy
import re
from collections.abc import Iterable, Mapping, Sequence
from typing import Any
from uuid import uuid4

from .exceptions import (
    CouchRequestError,
    DatabaseExistsError,
    DocumentConflictError,
    DocumentNotFoundError,
    MissingIndexError,
)
from .ports import Document, FindResult, InsertResult
from .query_builder import SortField
from .search_helpers import MISSING, compare_values, resolve_path, sort_documents

DEFAULT_FIND_LIMIT = 25


def _equal(left: Any, right: Any) -> bool:
    return compare_values(left, right) == 0 and bool(left == right)


def _apply_operator(op: str, value: Any, arg: Any) -> bool:
    if op == "$exists":
        return (value is not MISSING) is bool(arg)
    if op == "$not":
        return not _matches_condition(value, arg)
    if value is MISSING:
        return False
    if op == "$eq":
        return _equal(value, arg)
    if op == "$ne":
        return not _equal(value, arg)
    if op == "$gt":
        return compare_values(value, arg) > 0
    if op == "$gte":
        return compare_values(value, arg) >= 0
    if op == "$lt":
        return compare_values(value, arg) < 0
    if op == "$lte":
        return compare_values(value, arg) <= 0
    if op == "$in":
        return any(_equal(value, candidate) for candidate in arg)
    if op == "$nin":
        return not any(_equal(value, candidate) for candidate in arg)
    if op == "$regex":
        return isinstance(value, str) and re.search(arg, value) is not None
    if op == "$size":
        return isinstance(value, list) and len(value) == arg
    if op == "$all":
        return isinstance(value, list) and all(
            any(_equal(item, wanted) for item in value) for wanted in arg
        )
    raise CouchRequestError(
        f"Invalid operator: {op}",
        status_code=400,
        error="invalid_operator",
        reason=f"Invalid operator: {op}",
    )


def _matches_condition(value: Any, condition: Any) -> bool:
    if isinstance(condition, Mapping) and condition:
        if all(str(key).startswith("$") for key in condition):
            return all(_apply_operator(op, value, arg) for op, arg in condition.items())
        return isinstance(value, Mapping) and matches_selector(value, condition)
    return value is not MISSING and _equal(value, condition)


def matches_selector(doc: Mapping[str, Any], selector: Mapping[str, Any]) -> bool:
    """Evaluate a Mango selector against ``doc``."""
    for key, condition in selector.items():
        if key == "$and":
            if not all(matches_selector(doc, sub) for sub in condition):
                return False
        elif key == "$or":
            if not any(matches_selector(doc, sub) for sub in condition):
                return False
        elif key == "$nor":
            if any(matches_selector(doc, sub) for sub in condition):
                return False
        elif key == "$not":
            if matches_selector(doc, condition):
                return False
        elif not _matches_condition(resolve_path(doc, key), condition):
            return False
    return True


def _next_rev(previous: str | None) -> str:
    generation = int(previous.split("-", 1)[0]) + 1 if previous else 1
    return f"{generation}-{uuid4().hex}"


class InMemoryCouchDatabase:
    """One database: documents keyed by ``_id``."""

    def __init__(
        self,
        name: str,
        *,
        sortable_fields: frozenset[str] | None = None,
        default_limit: int = DEFAULT_FIND_LIMIT,
    ) -> None:
        self._name = name
        self._docs: dict[str, Document] = {}
        self._sortable_fields = sortable_fields
        self._default_limit = default_limit
        self.find_calls: list[dict[str, Any]] = []

    @property
    def name(self) -> str:
        return self._name

    async def get(self, doc_id: str) -> Document:
        doc = self._docs.get(doc_id)
        if doc is None:
            raise DocumentNotFoundError(
                f"Document {doc_id!r} not found", reason="missing"
            )
        return copy.deepcopy(doc)

    async def insert(self, doc: Document) -> InsertResult:
        stored = copy.deepcopy(doc)
        doc_id = str(stored.get("_id") or uuid4().hex)
        existing = self._docs.get(doc_id)
        current_rev = existing.get("_rev") if existing is not None else None
        if stored.get("_rev") != current_rev:
            raise DocumentConflictError(
                f"Document {doc_id!r} update conflict",
                reason="Document update conflict.",
            )
        rev = _next_rev(current_rev)
        stored["_id"] = doc_id
        stored["_rev"] = rev
        self._docs[doc_id] = stored
        return InsertResult(id=doc_id, rev=rev)

    async def destroy(self, doc_id: str, rev: str) -> None:
        existing = self._docs.get(doc_id)
        if existing is None:
            raise DocumentNotFoundError(
                f"Document {doc_id!r} not found", reason="deleted"
            )
        if existing.get("_rev") != rev:
            raise DocumentConflictError(
                f"Document {doc_id!r} update conflict",
                reason="Document update conflict.",
            )
        del self._docs[doc_id]

    async def find(
        self,
        selector: dict[str, Any],
        *,
        limit: int | None = None,
        skip: int | None = None,
        sort: list[dict[str, str]] | None = None,
        bookmark: str | None = None,
        fields: Sequence[str] | None = None,
    ) -> FindResult:
        self.find_calls.append(
            {
                "selector": selector,
                "limit": limit,
                "skip": skip,
                "sort": sort,
                "bookmark": bookmark,
            }
        )
        order = [SortField(f, d) for entry in sort or [] for f, d in entry.items()]
        if order and self._sortable_fields is not None:
            unindexed = [o.field for o in order if o.field not in self._sortable_fields]
            if unindexed:
                raise MissingIndexError(
                    "No index exists for this sort, try indexing by the sort fields.",
                    reason=f"unindexed sort fields: {', '.join(unindexed)}",
                )
        matched = [
            doc
            for _, doc in sorted(self._docs.items())
            if matches_selector(doc, selector)
        ]
        if order:
            matched = sort_documents(matched, order)
        start = (int(bookmark) if bookmark else 0) + (skip or 0)
        page_size = self._default_limit if limit is None else limit
        page = matched[start : start + page_size]
        docs = [copy.deepcopy(doc) for doc in page]
        if fields:
            docs = [{k: v for k, v in doc.items() if k in fields} for doc in docs]
        return FindResult(docs=docs, bookmark=str(start + len(page)))

    # ── Test helpers ─────────────────────────────────────────────

    @property
    def documents(self) -> list[Document]:
        return [copy.deepcopy(doc) for _, doc in sorted(self._docs.items())]

    def clear(self) -> None:
        self._docs.clear()
        self.find_calls.clear()

    def __len__(self) -> int:
        return len(self._docs)


class InMemoryCouchServer:
    """In-memory implementation of ``ICouchServer``."""

    database_cls: type[InMemoryCouchDatabase] = InMemoryCouchDatabase

    def __init__(
        self,
        *,
        sortable_fields: Iterable[str] | None = None,
        default_limit: int = DEFAULT_FIND_LIMIT,
    ) -> None:
        self._databases: dict[str, InMemoryCouchDatabase] = {}
        self._created: set[str] = set()
        self._sortable_fields = (
            frozenset(sortable_fields) if sortable_fields is not None else None
        )
        self._default_limit = default_limit
        self.create_calls: list[str] = []

    async def database_exists(self, name: str) -> bool:
        return name in self._created

    async def create_database(self, name: str) -> None:
        self.create_calls.append(name)
        if name in self._created:
            raise DatabaseExistsError()
        self._created.add(name)
        self.use(name)

    def use(self, name: str) -> InMemoryCouchDatabase:
        if name not in self._databases:
            self._databases[name] = self.database_cls(
                name,
                sortable_fields=self._sortable_fields,
                default_limit=self._default_limit,
            )
        return self._databases[name]

    # ── Test helpers ─────────────────────────────────────────────

    @property
    def database_names(self) -> list[str]:
        return sorted(self._created)

    def clear(self) -> None:
        self._databases.clear()
        self._created.clear()
        self.create_calls.clear()
