"""Unit tests for CouchDBAdapter reads: filtering, ordering, paging, counting."""

from __future__ import annotations

import logging

import pytest

from cqrs_ddd_persistence_couchdb import CouchDBAdapter, InMemoryCouchServer, SortField

COUCH_URL = "http://localhost:5984"

USERS = [
    {"id": "u1", "name": "Ada", "age": 36, "createdAt": "2024-01-03"},
    {"id": "u2", "name": "Bob", "age": 17, "createdAt": "2024-01-01"},
    {"id": "u3", "name": "Cy", "age": 52},
    {"id": "u4", "name": "Dee", "age": 29, "createdAt": "2024-01-02"},
    {"id": "u5", "name": "Eve", "age": 41, "createdAt": None},
]


async def _seed(adapter: CouchDBAdapter) -> None:
    for user in USERS:
        await adapter.create("user", user)
    await adapter.create("session", {"id": "s1", "name": "Ada", "age": 99})


def _ids(docs):
    return [doc["id"] for doc in docs]


class TestFindMany:
    @pytest.mark.asyncio
    async def test_no_filter_returns_model_only(self, adapter):
        await _seed(adapter)
        assert _ids(await adapter.find_many("user")) == ["u1", "u2", "u3", "u4", "u5"]

    @pytest.mark.asyncio
    async def test_operators(self, adapter):
        await _seed(adapter)
        adults = await adapter.find_many(
            "user", [{"field": "age", "operator": "gte", "value": 18}]
        )
        assert _ids(adults) == ["u1", "u3", "u4", "u5"]

        named = await adapter.find_many(
            "user", [{"field": "name", "operator": "in", "value": ["Bob", "Eve"]}]
        )
        assert _ids(named) == ["u2", "u5"]

        prefixed = await adapter.find_many(
            "user", [{"field": "name", "operator": "starts_with", "value": "D"}]
        )
        assert _ids(prefixed) == ["u4"]

    @pytest.mark.asyncio
    async def test_or_then_and(self, adapter):
        """``Ada OR Bob AND age > 20`` -> ``(Ada OR Bob) AND age > 20``."""
        await _seed(adapter)
        found = await adapter.find_many(
            "user",
            [
                {"field": "name", "value": "Ada"},
                {"field": "name", "value": "Bob", "connector": "OR"},
                {"field": "age", "operator": "gt", "value": 20, "connector": "AND"},
            ],
        )
        assert _ids(found) == ["u1"]

    @pytest.mark.asyncio
    async def test_and_then_or(self, adapter):
        """``age > 40 AND name = Cy OR name = Eve`` -> ``age > 40 AND (Cy OR Eve)``."""
        await _seed(adapter)
        found = await adapter.find_many(
            "user",
            [
                {"field": "age", "operator": "gt", "value": 40},
                {"field": "name", "value": "Cy", "connector": "AND"},
                {"field": "name", "value": "Eve", "connector": "OR"},
            ],
        )
        assert _ids(found) == ["u3", "u5"]

    @pytest.mark.asyncio
    async def test_top_level_or_stays_scoped(self, adapter):
        """An OR filter never leaks documents of other models."""
        await _seed(adapter)
        found = await adapter.find_many(
            "user",
            [
                {"field": "name", "value": "Ada"},
                {"field": "age", "value": 99, "connector": "OR"},
            ],
        )
        assert _ids(found) == ["u1"]

    @pytest.mark.asyncio
    async def test_server_side_sort_limit_offset(self, adapter):
        await _seed(adapter)
        found = await adapter.find_many(
            "user", order_by=[SortField("age", "desc")], limit=2, offset=1
        )
        assert _ids(found) == ["u5", "u1"]

    @pytest.mark.asyncio
    async def test_sort_by_alias_and_select(self, adapter):
        await _seed(adapter)
        found = await adapter.find_many(
            "user",
            sort_by={"field": "age", "direction": "asc"},
            limit=1,
            select=["age"],
        )
        assert found == [{"id": "u2", "age": 17}]

    @pytest.mark.asyncio
    async def test_single_tuple_order_by(self, adapter):
        await _seed(adapter)
        found = await adapter.find_many("user", order_by=("age", "desc"), limit=2)
        assert _ids(found) == ["u3", "u5"]

    @pytest.mark.asyncio
    async def test_limit_spanning_pages(self, server):
        adapter = CouchDBAdapter({"url": COUCH_URL, "page_size": 2}, server=server)
        await _seed(adapter)
        found = await adapter.find_many("user", limit=3, offset=1)
        assert _ids(found) == ["u2", "u3", "u4"]
        calls = server.use("app_auth").find_calls
        assert [call["skip"] for call in calls] == [1, None]
        assert [call["limit"] for call in calls] == [2, 1]

    @pytest.mark.asyncio
    async def test_unbounded_scan_follows_bookmarks(self):
        """Without a limit, every page is read, not just the store's default."""
        server = InMemoryCouchServer(default_limit=2)
        adapter = CouchDBAdapter({"url": COUCH_URL, "page_size": 2}, server=server)
        await _seed(adapter)
        assert len(await adapter.find_many("user")) == 5


class TestSortFallback:
    """Sorts the server cannot serve are done in memory."""

    @pytest.fixture
    def unindexed(self):
        server = InMemoryCouchServer(sortable_fields=[])
        return server, CouchDBAdapter({"url": COUCH_URL}, server=server)

    @pytest.mark.asyncio
    async def test_desc_with_missing_values_last(self, unindexed):
        _, adapter = unindexed
        await _seed(adapter)
        found = await adapter.find_many(
            "user", order_by=[SortField("createdAt", "desc")]
        )
        ids = _ids(found)
        assert ids[:3] == ["u1", "u4", "u2"]
        assert set(ids[3:]) == {"u3", "u5"}

    @pytest.mark.asyncio
    async def test_asc_with_offset_and_limit(self, unindexed):
        _, adapter = unindexed
        await _seed(adapter)
        found = await adapter.find_many(
            "user", order_by="createdAt", offset=1, limit=2
        )
        assert _ids(found) == ["u4", "u1"]

    @pytest.mark.asyncio
    async def test_fallback_keeps_filter_and_scope(self, unindexed):
        _, adapter = unindexed
        await _seed(adapter)
        found = await adapter.find_many(
            "user",
            [{"field": "name", "value": "Ada"}],
            order_by=[("age", "desc")],
        )
        assert _ids(found) == ["u1"]

    @pytest.mark.asyncio
    async def test_fallback_is_logged(self, caplog):
        server = InMemoryCouchServer(sortable_fields=["age"])
        adapter = CouchDBAdapter({"url": COUCH_URL, "debug_logs": True}, server=server)
        await _seed(adapter)
        caplog.set_level(logging.DEBUG, logger="cqrs_ddd.couchdb.adapter")
        await adapter.find_many("user", order_by="-name")
        assert any(
            r.levelno == logging.WARNING and "sorting in memory" in r.getMessage()
            for r in caplog.records
        )


class TestCount:
    @pytest.mark.asyncio
    async def test_count_is_scoped(self, adapter):
        await _seed(adapter)
        assert await adapter.count("user") == 5
        assert await adapter.count("session") == 1
        assert await adapter.count("account") == 0

    @pytest.mark.asyncio
    async def test_count_with_filter(self, adapter):
        await _seed(adapter)
        where = [{"field": "age", "operator": "lt", "value": 30}]
        assert await adapter.count("user", where) == 2

    @pytest.mark.asyncio
    async def test_count_pages_through_results(self, server):
        adapter = CouchDBAdapter({"url": COUCH_URL, "page_size": 2}, server=server)
        await _seed(adapter)
        assert await adapter.count("user") == 5
        calls = server.use("app_auth").find_calls
        assert [call["bookmark"] for call in calls] == [None, "2", "4", "5"]
        assert all(call["limit"] == 2 for call in calls)
