"""Unit tests for adapter configuration."""

from __future__ import annotations

import pytest

from cqrs_ddd_persistence_couchdb import CouchDBAdapter, InMemoryCouchServer
from cqrs_ddd_persistence_couchdb.config import CouchDBAdapterConfig, DebugLogOptions
from cqrs_ddd_persistence_couchdb.exceptions import AdapterConfigurationError


def test_defaults() -> None:
    config = CouchDBAdapterConfig(url="http://localhost:5984")
    assert config.database == "app_auth"
    assert config.shared_database is True
    assert config.discriminator_field == "doc_type"
    assert config.page_size == 1000
    assert config.logs_enabled("create") is False


def test_missing_url_rejected_at_construction() -> None:
    with pytest.raises(AdapterConfigurationError) as exc_info:
        CouchDBAdapter({"url": ""}, server=InMemoryCouchServer())
    assert exc_info.value.errors == {"url": ["CouchDB adapter requires a URL"]}


def test_absent_url_rejected() -> None:
    with pytest.raises(AdapterConfigurationError) as exc_info:
        CouchDBAdapterConfig.coerce({})
    assert "url" in exc_info.value.errors


def test_invalid_page_size_rejected() -> None:
    with pytest.raises(AdapterConfigurationError) as exc_info:
        CouchDBAdapterConfig.coerce({"url": "http://x", "page_size": 0})
    assert "page_size" in exc_info.value.errors


def test_blank_discriminator_rejected() -> None:
    with pytest.raises(AdapterConfigurationError):
        CouchDBAdapterConfig.coerce({"url": "http://x", "discriminator_field": " "})


def test_debug_logs_true_enables_everything() -> None:
    config = CouchDBAdapterConfig(url="http://x", debug_logs=True)
    assert config.logs_enabled("count") is True


def test_debug_logs_per_operation() -> None:
    config = CouchDBAdapterConfig.coerce(
        {"url": "http://x", "debug_logs": {"update": True}}
    )
    assert isinstance(config.debug_logs, DebugLogOptions)
    assert config.logs_enabled("update") is True
    assert config.logs_enabled("delete") is False


def test_coerce_returns_existing_config() -> None:
    config = CouchDBAdapterConfig(url="http://x")
    assert CouchDBAdapterConfig.coerce(config) is config
