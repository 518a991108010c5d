"""Model -> database resolution for the two storage topologies.

- one database per model (``use_model_as_database=True``): the database is
  named after the model and documents carry no tag;
- shared database: every model lives in ``config.database`` and documents
  are tagged with ``config.discriminator_field``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .exceptions import DatabaseExistsError
from .query_builder import CouchQueryBuilder, Selector

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .config import CouchDBAdapterConfig
    from .ports import ICouchDatabase, ICouchServer

logger = logging.getLogger("cqrs_ddd.couchdb.resolver")


@dataclass(frozen=True)
class ResolvedStore:
    """The database a model lives in, plus its tagging policy."""

    database: ICouchDatabase
    model: str
    discriminator_field: str | None = None

    @property
    def discriminator(self) -> tuple[str, str] | None:
        if self.discriminator_field is None:
            return None
        return self.discriminator_field, self.model

    def scope(self, selector: Selector) -> Selector:
        """Restrict ``selector`` to this model's documents."""
        if self.discriminator_field is None:
            return selector
        return CouchQueryBuilder.scope_selector(
            selector, self.discriminator_field, self.model
        )

    def owns(self, doc: Mapping[str, Any]) -> bool:
        """Whether a fetched document belongs to this model."""
        if self.discriminator_field is None:
            return True
        return doc.get(self.discriminator_field) == self.model


class StorageResolver:
    """Resolve models to databases, creating each database on first use.

    Handles are cached per database name for the resolver's lifetime.
    """

    def __init__(self, server: ICouchServer, config: CouchDBAdapterConfig) -> None:
        self._server = server
        self._config = config
        self._ready: dict[str, ICouchDatabase] = {}

    def database_name(self, model: str) -> str:
        if self._config.use_model_as_database:
            return model
        return self._config.database

    async def resolve(self, model: str) -> ResolvedStore:
        name = self.database_name(model)
        database = self._ready.get(name)
        if database is None:
            database = await self._ensure_database(name)
        return ResolvedStore(
            database=database,
            model=model,
            discriminator_field=(
                self._config.discriminator_field
                if self._config.shared_database
                else None
            ),
        )

    async def _ensure_database(self, name: str) -> ICouchDatabase:
        if not await self._server.database_exists(name):
            try:
                await self._server.create_database(name)
                logger.debug("Created database %s", name)
            except DatabaseExistsError:
                # Another caller created it between the check and the create.
                logger.debug("Database %s created concurrently", name)
        database = self._server.use(name)
        self._ready[name] = database
        return database
