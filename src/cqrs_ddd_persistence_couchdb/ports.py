"""
Ports for the CouchDB adapter.

- ``ICouchServer`` / ``ICouchDatabase``: what the adapter needs from the
  store (implemented over HTTP in :mod:`.database` and in memory in
  :mod:`.memory`).
- ``ISchemaTransformer``: the host's schema layer (model and field renames).
- ``IDocumentAdapter``: the storage-agnostic CRUD contract the adapter
  offers to the host.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol, runtime_checkable

Document = dict[str, Any]
WriteAction = Literal["create", "update"]


@dataclass(frozen=True)
class InsertResult:
    """Reply of a successful write: the document id and its new revision."""

    id: str
    rev: str


@dataclass(frozen=True)
class FindResult:
    """One page of ``_find`` results.

    ``bookmark`` is the continuation cursor for the next page, if any.
    """

    docs: list[Document] = field(default_factory=list)
    bookmark: str | None = None
    warning: str | None = None


@runtime_checkable
class ICouchDatabase(Protocol):
    """Document operations on one CouchDB database."""

    @property
    def name(self) -> str: ...

    async def get(self, doc_id: str) -> Document:
        """Return the document or raise ``DocumentNotFoundError``."""
        ...

    async def insert(self, doc: Document) -> InsertResult:
        """Write ``doc``.

        A stale or missing ``_rev`` raises ``DocumentConflictError``.
        """
        ...

    async def destroy(self, doc_id: str, rev: str) -> None:
        """Delete a revision; raises ``DocumentNotFoundError`` or
        ``DocumentConflictError``."""
        ...

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
        """Run a Mango query; may raise ``MissingIndexError`` for ``sort``."""
        ...


@runtime_checkable
class ICouchServer(Protocol):
    """Database-level operations on a CouchDB server."""

    async def database_exists(self, name: str) -> bool: ...

    async def create_database(self, name: str) -> None:
        """Create ``name``; raises ``DatabaseExistsError`` if it exists."""
        ...

    def use(self, name: str) -> ICouchDatabase: ...


@runtime_checkable
class ISchemaTransformer(Protocol):
    """Host schema layer applied around every adapter call."""

    def model_name(self, model: str) -> str: ...

    def field_name(self, model: str, field: str) -> str: ...

    def transform_input(
        self, data: Document, model: str, action: WriteAction
    ) -> Document: ...

    def transform_output(self, doc: Document, model: str) -> Document: ...

    def transform_where(self, where: Any, model: str) -> Any: ...


@runtime_checkable
class IDocumentAdapter(Protocol):
    """Storage-agnostic CRUD contract consumed by the host framework."""

    async def create(
        self, model: str, data: Document, *, select: Sequence[str] | None = None
    ) -> Document: ...

    async def update(self, model: str, where: Any, data: Document) -> Document: ...

    async def update_many(self, model: str, where: Any, data: Document) -> int: ...

    async def delete(self, model: str, where: Any) -> None: ...

    async def delete_many(self, model: str, where: Any) -> int: ...

    async def find_one(
        self, model: str, where: Any, *, select: Sequence[str] | None = None
    ) -> Document | None: ...

    async def find_many(
        self,
        model: str,
        where: Any = None,
        *,
        limit: int | None = None,
        offset: int | None = None,
        order_by: Any = None,
        sort_by: Any = None,
        select: Sequence[str] | None = None,
    ) -> list[Document]: ...

    async def count(self, model: str, where: Any = None) -> int: ...
