"""CouchDB persistence exceptions."""

from __future__ import annotations


class CQRSDDDError(Exception):
    """Root exception for the entire cqrs-ddd toolkit."""


class ValidationError(CQRSDDDError):
    """Raised when configuration or input validation fails.

    Carries structured errors: ``{field: [messages]}``.
    """

    def __init__(self, errors: dict[str, list[str]] | str | None = None) -> None:
        if isinstance(errors, str):
            self.errors: dict[str, list[str]] = {"__root__": [errors]}
        elif errors is None:
            self.errors = {}
        else:
            self.errors = errors
        super().__init__(str(self.errors))


class InfrastructureError(CQRSDDDError):
    """Base class for all infrastructure-related errors."""


class PersistenceError(InfrastructureError):
    """Base class for all persistence-related errors."""


class ConcurrencyError(CQRSDDDError):
    """Base class for all concurrency-related conflicts."""


class OptimisticLockingError(ConcurrencyError, PersistenceError):
    """Raised when the persistence layer detects a stale revision."""


class CouchPersistenceError(PersistenceError):
    """Base for CouchDB persistence errors."""


class CouchConnectionError(CouchPersistenceError):
    """Raised when the CouchDB server cannot be reached."""


class CouchQueryError(CouchPersistenceError):
    """Raised when a filter cannot be compiled to a Mango selector."""


class AdapterConfigurationError(ValidationError):
    """Raised when the adapter configuration is invalid."""


class CouchRequestError(CouchPersistenceError):
    """Raised for any non-success reply from the CouchDB server.

    ``error`` and ``reason`` carry the fields of CouchDB's JSON error body.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        error: str | None = None,
        reason: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.error = error
        self.reason = reason
        super().__init__(message)


class DocumentNotFoundError(CouchRequestError):
    """Raised when a document (or database) does not exist (HTTP 404)."""

    def __init__(
        self,
        message: str = "Document not found",
        *,
        status_code: int | None = 404,
        error: str | None = "not_found",
        reason: str | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code, error=error, reason=reason)


class DocumentConflictError(CouchRequestError, OptimisticLockingError):
    """Raised when a write carries a stale or missing ``_rev`` (HTTP 409)."""

    def __init__(
        self,
        message: str = "Document update conflict",
        *,
        status_code: int | None = 409,
        error: str | None = "conflict",
        reason: str | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code, error=error, reason=reason)


class MissingIndexError(CouchRequestError):
    """Raised when ``_find`` cannot serve the requested sort (no usable index)."""

    def __init__(
        self,
        message: str = "No index exists for this sort",
        *,
        status_code: int | None = 400,
        error: str | None = "no_usable_index",
        reason: str | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code, error=error, reason=reason)


class DatabaseExistsError(CouchRequestError):
    """Raised when creating a database that already exists (HTTP 412)."""

    def __init__(
        self,
        message: str = "The database could not be created, the file already exists.",
        *,
        status_code: int | None = 412,
        error: str | None = "file_exists",
        reason: str | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code, error=error, reason=reason)
