"""CouchDB persistence for CQRS/DDD.

Translates storage-agnostic filters into Mango selectors and runs CRUD with
revision-checked writes, against either one database per model or a shared
database with a discriminator field.
"""

from __future__ import annotations

# Core components
from .adapter import CouchDBAdapter
from .config import CouchDBAdapterConfig, DebugLogOptions
from .connection import CouchConnectionManager
from .database import CouchDatabase, CouchServer
from .exceptions import (
    AdapterConfigurationError,
    CouchConnectionError,
    CouchPersistenceError,
    CouchQueryError,
    CouchRequestError,
    DatabaseExistsError,
    DocumentConflictError,
    DocumentNotFoundError,
    MissingIndexError,
)
from .memory import InMemoryCouchDatabase, InMemoryCouchServer
from .ports import (
    FindResult,
    ICouchDatabase,
    ICouchServer,
    IDocumentAdapter,
    InsertResult,
    ISchemaTransformer,
)
from .query_builder import CouchQueryBuilder, SortField
from .resolver import ResolvedStore, StorageResolver
from .schema import FieldMappingSchema, PassthroughSchema
from .where import (
    Condition,
    Connector,
    LogicalExpression,
    WhereOperator,
    normalise_where,
)

__all__ = [
    # Core
    "CouchDBAdapter",
    "CouchDBAdapterConfig",
    "DebugLogOptions",
    "CouchConnectionManager",
    "CouchServer",
    "CouchDatabase",
    "StorageResolver",
    "ResolvedStore",
    # Ports
    "ICouchServer",
    "ICouchDatabase",
    "IDocumentAdapter",
    "ISchemaTransformer",
    "InsertResult",
    "FindResult",
    # Query
    "Condition",
    "Connector",
    "LogicalExpression",
    "WhereOperator",
    "normalise_where",
    "CouchQueryBuilder",
    "SortField",
    # Schema
    "PassthroughSchema",
    "FieldMappingSchema",
    # Testing
    "InMemoryCouchServer",
    "InMemoryCouchDatabase",
    # Exceptions
    "CouchPersistenceError",
    "CouchConnectionError",
    "CouchQueryError",
    "CouchRequestError",
    "DocumentNotFoundError",
    "DocumentConflictError",
    "MissingIndexError",
    "DatabaseExistsError",
    "AdapterConfigurationError",
]
