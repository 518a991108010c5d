"""
CouchDBAdapter: storage-agnostic CRUD over a revisioned document store.

Every write carries the ``_rev`` read just before it. ``update`` retries a
conflicting write once with a fresh read; ``create`` with an explicit id
replaces a document that already holds that id. Batch operations process
matches one at a time and skip documents lost to concurrent writers.
Sorts the server cannot serve (no usable index) are redone in memory.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Iterator, Mapping, Sequence
from contextlib import contextmanager
from functools import partial
from typing import Any

from .config import CouchDBAdapterConfig
from .connection import CouchConnectionManager
from .database import CouchServer
from .exceptions import (
    CouchPersistenceError,
    DocumentConflictError,
    DocumentNotFoundError,
    MissingIndexError,
)
from .ports import Document, ICouchDatabase, ICouchServer, ISchemaTransformer
from .query_builder import CouchQueryBuilder, Selector, normalise_order_by
from .resolver import ResolvedStore, StorageResolver
from .schema import PassthroughSchema
from .search_helpers import slice_page, sort_documents
from .serialization import (
    ID_KEY,
    REV_KEY,
    decode_document,
    encode_changes,
    encode_document,
    merge_changes,
    merge_original_fields,
    project_fields,
)
from .where import Expression, explicit_identifier, normalise_where

logger = logging.getLogger("cqrs_ddd.couchdb.adapter")


class CouchDBAdapter:
    """CRUD contract (``IDocumentAdapter``) backed by CouchDB.

    Args:
        config: :class:`CouchDBAdapterConfig` or a mapping of its fields.
        server: Store to talk to; defaults to the HTTP server at
            ``config.url``. Pass an ``InMemoryCouchServer`` in tests.
        schema: Host schema layer; defaults to :class:`PassthroughSchema`.
        query_builder: Selector compiler override.

    Raises:
        AdapterConfigurationError: If ``config`` is invalid.
    """

    adapter_id = "couchdb-adapter"
    adapter_name = "CouchDB Adapter"

    def __init__(
        self,
        config: CouchDBAdapterConfig | Mapping[str, Any],
        *,
        server: ICouchServer | None = None,
        schema: ISchemaTransformer | None = None,
        query_builder: CouchQueryBuilder | None = None,
    ) -> None:
        self._config = CouchDBAdapterConfig.coerce(config)
        if server is None:
            server = CouchServer(
                CouchConnectionManager(self._config.url, timeout=self._config.timeout)
            )
        self._server = server
        self._schema: ISchemaTransformer = schema or PassthroughSchema()
        self._query_builder = query_builder or CouchQueryBuilder()
        self._resolver = StorageResolver(server, self._config)

    @property
    def config(self) -> CouchDBAdapterConfig:
        return self._config

    async def close(self) -> None:
        """Release the HTTP client, if this adapter owns one."""
        if isinstance(self._server, CouchServer):
            await self._server.connection.close()

    # ------------------------------------------------------------------ #
    # Diagnostics                                                         #
    # ------------------------------------------------------------------ #

    def _log(self, operation: str, level: int, msg: str, *args: Any) -> None:
        if self._config.logs_enabled(operation):
            logger.log(level, "[%s] " + msg, operation, *args)

    @contextmanager
    def _passthrough(self, operation: str, model: str) -> Iterator[None]:
        """Log store failures for ``operation``, then re-raise them unchanged."""
        try:
            yield
        except CouchPersistenceError as exc:
            self._log(operation, logging.ERROR, "model=%s failed: %r", model, exc)
            raise

    # ------------------------------------------------------------------ #
    # Shared steps                                                        #
    # ------------------------------------------------------------------ #

    async def _resolve(self, model: str) -> ResolvedStore:
        return await self._resolver.resolve(self._schema.model_name(model))

    def _expression(self, where: Any, model: str) -> Expression | None:
        return normalise_where(self._schema.transform_where(where, model))

    def _selector(
        self, store: ResolvedStore, expression: Expression | None
    ) -> Selector:
        return store.scope(self._query_builder.compile(expression))

    def _to_output(
        self,
        doc: Mapping[str, Any],
        model: str,
        store: ResolvedStore,
        select: Sequence[str] | None = None,
    ) -> Document:
        cleaned = decode_document(doc, discriminator_field=store.discriminator_field)
        transformed = self._schema.transform_output(cleaned, model)
        return project_fields(merge_original_fields(transformed, cleaned), select)

    async def _iter_pages(
        self,
        database: ICouchDatabase,
        selector: Selector,
        *,
        sort: list[dict[str, str]] | None = None,
        skip: int | None = None,
        limit: int | None = None,
        fields: Sequence[str] | None = None,
    ) -> AsyncIterator[list[Document]]:
        """Yield ``_find`` pages, following bookmarks.

        Stops when a page has no bookmark or no documents, or once
        ``limit`` documents have been returned. ``skip`` applies to the
        first page only; the bookmark already accounts for it.
        """
        page_size = self._config.page_size
        remaining = limit
        bookmark: str | None = None
        while remaining is None or remaining > 0:
            request_limit = (
                page_size if remaining is None else min(page_size, remaining)
            )
            result = await database.find(
                selector,
                limit=request_limit,
                skip=None if bookmark else skip,
                sort=sort,
                bookmark=bookmark,
                fields=fields,
            )
            if result.docs:
                yield result.docs
            if remaining is not None:
                remaining -= len(result.docs)
            if not result.bookmark or not result.docs:
                return
            bookmark = result.bookmark

    async def _find_all(
        self, database: ICouchDatabase, selector: Selector, **options: Any
    ) -> list[Document]:
        return [
            doc
            async for page in self._iter_pages(database, selector, **options)
            for doc in page
        ]

    async def _resolve_target_id(
        self, store: ResolvedStore, expression: Expression | None
    ) -> str | None:
        """Id named by the filter, else the first document it matches."""
        doc_id = explicit_identifier(expression)
        if doc_id is not None:
            return doc_id
        result = await store.database.find(self._selector(store, expression), limit=1)
        if not result.docs:
            return None
        return str(result.docs[0][ID_KEY])

    async def _merge_and_write(
        self, store: ResolvedStore, doc_id: str, changes: Mapping[str, Any]
    ) -> Document | None:
        """Fetch, merge ``changes`` and write back under the fetched ``_rev``.

        Returns the stored document, or ``None`` when it belongs to another
        model. Conflicts propagate to the caller.
        """
        existing = await store.database.get(doc_id)
        if not store.owns(existing):
            return None
        merged = merge_changes(existing, changes)
        result = await store.database.insert(merged)
        return {**merged, REV_KEY: result.rev}

    async def _replace(self, store: ResolvedStore, doc: Document) -> Document:
        """Delete whatever holds ``doc['_id']`` and insert ``doc`` once more.

        The existing document is removed even when it belongs to another
        model; that case is always logged.
        """
        database = store.database
        try:
            existing = await database.get(doc[ID_KEY])
        except DocumentNotFoundError:
            pass
        else:
            if not store.owns(existing):
                logger.warning(
                    "[create] id %s held a %r document, replacing it with %r",
                    doc[ID_KEY],
                    existing.get(store.discriminator_field or ""),
                    store.model,
                )
            await database.destroy(existing[ID_KEY], existing.get(REV_KEY, ""))
        result = await database.insert(doc)
        return await database.get(result.id)

    # ------------------------------------------------------------------ #
    # Writes                                                              #
    # ------------------------------------------------------------------ #

    async def create(
        self,
        model: str,
        data: Mapping[str, Any],
        *,
        select: Sequence[str] | None = None,
    ) -> Document:
        """Insert a document; an explicit id that is taken is replaced."""
        op = "create"
        store = await self._resolve(model)
        transformed = self._schema.transform_input(dict(data), model, "create")
        doc = encode_document(data, transformed, discriminator=store.discriminator)
        self._log(
            op, logging.DEBUG, "model=%s db=%s doc=%r", model, store.database.name, doc
        )
        with self._passthrough(op, model):
            try:
                result = await store.database.insert(doc)
                created = await store.database.get(result.id)
            except DocumentConflictError:
                if not doc.get(ID_KEY):
                    raise
                self._log(
                    op,
                    logging.WARNING,
                    "id %s already exists, replacing it",
                    doc[ID_KEY],
                )
                created = await self._replace(store, doc)
        return self._to_output(created, model, store, select)

    async def update(
        self, model: str, where: Any, data: Mapping[str, Any]
    ) -> Document:
        """Update the first matching document.

        Raises:
            DocumentNotFoundError: If nothing matches.
            DocumentConflictError: If the single retry conflicts as well.
        """
        op = "update"
        store = await self._resolve(model)
        expression = self._expression(where, model)
        changes = encode_changes(
            self._schema.transform_input(dict(data), model, "update"),
            discriminator_field=store.discriminator_field,
        )
        with self._passthrough(op, model):
            doc_id = await self._resolve_target_id(store, expression)
            self._log(
                op, logging.DEBUG, "model=%s id=%s changes=%r", model, doc_id, changes
            )
            if doc_id is None:
                raise DocumentNotFoundError(
                    f"Document not found for update in model {model}"
                )
            try:
                updated = await self._merge_and_write(store, doc_id, changes)
            except DocumentConflictError:
                self._log(
                    op,
                    logging.WARNING,
                    "conflict on %s, retrying once with a fresh read",
                    doc_id,
                )
                updated = await self._merge_and_write(store, doc_id, changes)
            if updated is None:
                raise DocumentNotFoundError(
                    f"Document not found for update in model {model}"
                )
        return self._to_output(updated, model, store)

    async def update_many(
        self, model: str, where: Any, data: Mapping[str, Any]
    ) -> int:
        """Update every match independently; returns how many were written."""
        op = "update_many"
        store = await self._resolve(model)
        selector = self._selector(store, self._expression(where, model))
        changes = encode_changes(
            self._schema.transform_input(dict(data), model, "update"),
            discriminator_field=store.discriminator_field,
        )
        self._log(
            op,
            logging.DEBUG,
            "model=%s selector=%r changes=%r",
            model,
            selector,
            changes,
        )
        updated = 0
        with self._passthrough(op, model):
            for doc in await self._find_all(store.database, selector):
                try:
                    written = await self._merge_and_write(store, doc[ID_KEY], changes)
                except DocumentConflictError:
                    self._log(
                        op, logging.WARNING, "conflict on %s, skipping", doc[ID_KEY]
                    )
                    continue
                if written is not None:
                    updated += 1
        self._log(op, logging.DEBUG, "model=%s updated=%d", model, updated)
        return updated

    async def delete(self, model: str, where: Any) -> None:
        """Delete the first matching document; missing documents are ignored."""
        op = "delete"
        store = await self._resolve(model)
        expression = self._expression(where, model)
        with self._passthrough(op, model):
            doc_id = await self._resolve_target_id(store, expression)
            if doc_id is None:
                self._log(op, logging.DEBUG, "model=%s nothing to delete", model)
                return
            try:
                doc = await store.database.get(doc_id)
                if not store.owns(doc):
                    self._log(op, logging.DEBUG, "%s belongs to another model", doc_id)
                    return
                await store.database.destroy(doc[ID_KEY], doc.get(REV_KEY, ""))
            except DocumentNotFoundError:
                self._log(op, logging.DEBUG, "%s already gone", doc_id)
                return
        self._log(op, logging.DEBUG, "model=%s deleted %s", model, doc_id)

    async def delete_many(self, model: str, where: Any) -> int:
        """Delete every match; returns how many deletions were confirmed."""
        op = "delete_many"
        store = await self._resolve(model)
        selector = self._selector(store, self._expression(where, model))
        self._log(op, logging.DEBUG, "model=%s selector=%r", model, selector)
        deleted = 0
        with self._passthrough(op, model):
            for doc in await self._find_all(store.database, selector):
                try:
                    await store.database.destroy(doc[ID_KEY], doc.get(REV_KEY, ""))
                except DocumentNotFoundError:
                    self._log(
                        op, logging.WARNING, "%s already gone, skipping", doc[ID_KEY]
                    )
                    continue
                deleted += 1
        self._log(op, logging.DEBUG, "model=%s deleted=%d", model, deleted)
        return deleted

    # ------------------------------------------------------------------ #
    # Reads                                                               #
    # ------------------------------------------------------------------ #

    async def find_one(
        self,
        model: str,
        where: Any,
        *,
        select: Sequence[str] | None = None,
    ) -> Document | None:
        """Return the first match or ``None``."""
        op = "find_one"
        store = await self._resolve(model)
        expression = self._expression(where, model)
        doc_id = explicit_identifier(expression)
        with self._passthrough(op, model):
            if doc_id is not None:
                self._log(op, logging.DEBUG, "model=%s get %s", model, doc_id)
                try:
                    doc = await store.database.get(doc_id)
                except DocumentNotFoundError:
                    return None
                if not store.owns(doc):
                    return None
            else:
                selector = self._selector(store, expression)
                self._log(op, logging.DEBUG, "model=%s selector=%r", model, selector)
                result = await store.database.find(selector, limit=1)
                if not result.docs:
                    return None
                doc = result.docs[0]
        return self._to_output(doc, model, store, select)

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
    ) -> list[Document]:
        """Return matches, ordered and paginated.

        When the server has no index for the sort, all matches are fetched
        and ordered/sliced in memory instead.
        """
        op = "find_many"
        store = await self._resolve(model)
        selector = self._selector(store, self._expression(where, model))
        orders = normalise_order_by(order_by, sort_by)
        field_name = partial(self._schema.field_name, model)
        sort = self._query_builder.build_sort(orders, field_name=field_name)
        self._log(
            op,
            logging.DEBUG,
            "model=%s selector=%r sort=%r limit=%s offset=%s",
            model,
            selector,
            sort,
            limit,
            offset,
        )
        with self._passthrough(op, model):
            try:
                docs = await self._find_all(
                    store.database,
                    selector,
                    sort=sort or None,
                    skip=offset,
                    limit=limit,
                )
            except MissingIndexError:
                self._log(
                    op,
                    logging.WARNING,
                    "no usable index for %r, sorting in memory",
                    sort,
                )
                docs = await self._find_all(store.database, selector)
                docs = sort_documents(docs, orders, field_name=field_name)
                docs = slice_page(docs, offset, limit)
        return [self._to_output(doc, model, store, select) for doc in docs]

    async def count(self, model: str, where: Any = None) -> int:
        """Count matches by walking every result page."""
        op = "count"
        store = await self._resolve(model)
        selector = self._selector(store, self._expression(where, model))
        total = 0
        with self._passthrough(op, model):
            async for page in self._iter_pages(
                store.database, selector, fields=[ID_KEY]
            ):
                total += len(page)
                self._log(op, logging.DEBUG, "page=%d total=%d", len(page), total)
        return total
