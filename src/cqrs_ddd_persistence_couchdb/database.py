"""CouchDB HTTP API: server-level and document-level operations."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx

from .exceptions import (
    CouchConnectionError,
    CouchRequestError,
    DatabaseExistsError,
    DocumentConflictError,
    DocumentNotFoundError,
    MissingIndexError,
)
from .ports import Document, FindResult, InsertResult

if TYPE_CHECKING:
    from .connection import CouchConnectionManager

logger = logging.getLogger("cqrs_ddd.couchdb.http")


def _segment(value: str) -> str:
    return quote(value, safe="")


def error_from_response(response: httpx.Response) -> CouchRequestError:
    """Map a CouchDB error reply to the matching exception."""
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    status = response.status_code
    error = body.get("error")
    reason = body.get("reason")
    message = (
        f"{response.request.method} {response.request.url.path} "
        f"failed with {status}: {error or 'error'}"
    )
    if reason:
        message = f"{message} ({reason})"
    if status == 404:
        return DocumentNotFoundError(message, error=error, reason=reason)
    if status == 409:
        return DocumentConflictError(message, error=error, reason=reason)
    if status == 412 and error == "file_exists":
        return DatabaseExistsError(message, error=error, reason=reason)
    if status == 400 and error == "no_usable_index":
        return MissingIndexError(message, error=error, reason=reason)
    return CouchRequestError(message, status_code=status, error=error, reason=reason)


async def _send(
    connection: CouchConnectionManager, method: str, path: str, **kwargs: Any
) -> httpx.Response:
    client = await connection.connect()
    try:
        return await client.request(method, path, **kwargs)
    except httpx.TransportError as e:
        raise CouchConnectionError(f"{method} {path}: {e}") from e


async def _request(
    connection: CouchConnectionManager, method: str, path: str, **kwargs: Any
) -> httpx.Response:
    response = await _send(connection, method, path, **kwargs)
    if response.is_error:
        raise error_from_response(response)
    return response


class CouchServer:
    """Server-level operations (database existence and creation)."""

    def __init__(self, connection: CouchConnectionManager) -> None:
        self._connection = connection
        self._databases: dict[str, CouchDatabase] = {}

    @property
    def connection(self) -> CouchConnectionManager:
        return self._connection

    async def database_exists(self, name: str) -> bool:
        response = await _send(self._connection, "HEAD", f"/{_segment(name)}")
        if response.status_code == 404:
            return False
        if response.is_error:
            raise error_from_response(response)
        return True

    async def create_database(self, name: str) -> None:
        await _request(self._connection, "PUT", f"/{_segment(name)}")
        logger.info("Created CouchDB database %s", name)

    def use(self, name: str) -> CouchDatabase:
        if name not in self._databases:
            self._databases[name] = CouchDatabase(self._connection, name)
        return self._databases[name]


class CouchDatabase:
    """Document operations on one database via the HTTP API."""

    def __init__(self, connection: CouchConnectionManager, name: str) -> None:
        self._connection = connection
        self._name = name
        self._path = f"/{_segment(name)}"

    @property
    def name(self) -> str:
        return self._name

    def _doc_path(self, doc_id: str) -> str:
        return f"{self._path}/{_segment(doc_id)}"

    async def get(self, doc_id: str) -> Document:
        response = await _request(self._connection, "GET", self._doc_path(doc_id))
        doc: Document = response.json()
        return doc

    async def insert(self, doc: Document) -> InsertResult:
        doc_id = doc.get("_id")
        if doc_id:
            response = await _request(
                self._connection, "PUT", self._doc_path(str(doc_id)), json=doc
            )
        else:
            response = await _request(self._connection, "POST", self._path, json=doc)
        body = response.json()
        return InsertResult(id=str(body["id"]), rev=str(body["rev"]))

    async def destroy(self, doc_id: str, rev: str) -> None:
        await _request(
            self._connection,
            "DELETE",
            self._doc_path(doc_id),
            params={"rev": rev},
        )

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
        query: dict[str, Any] = {"selector": selector}
        if limit is not None:
            query["limit"] = limit
        if skip:
            query["skip"] = skip
        if sort:
            query["sort"] = sort
        if bookmark:
            query["bookmark"] = bookmark
        if fields:
            query["fields"] = list(fields)
        response = await _request(
            self._connection, "POST", f"{self._path}/_find", json=query
        )
        body = response.json()
        if body.get("warning"):
            logger.debug("CouchDB _find warning on %s: %s", self._name, body["warning"])
        return FindResult(
            docs=list(body.get("docs", [])),
            bookmark=body.get("bookmark") or None,
            warning=body.get("warning"),
        )
