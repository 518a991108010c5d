"""Shared fixtures for CouchDB persistence tests."""

from __future__ import annotations

import pytest

from cqrs_ddd_persistence_couchdb import CouchDBAdapter, InMemoryCouchServer

COUCH_URL = "http://localhost:5984"


@pytest.fixture
def server():
    """Empty in-memory CouchDB server."""
    return InMemoryCouchServer()


@pytest.fixture
def adapter(server):
    """Adapter over a shared database (documents tagged by model)."""
    return CouchDBAdapter({"url": COUCH_URL}, server=server)


@pytest.fixture
def per_model_adapter(server):
    """Adapter storing each model in its own database."""
    return CouchDBAdapter(
        {"url": COUCH_URL, "use_model_as_database": True}, server=server
    )
