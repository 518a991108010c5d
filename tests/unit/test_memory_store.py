"""Unit tests for the in-memory CouchDB fake."""

from __future__ import annotations

import pytest

from cqrs_ddd_persistence_couchdb.exceptions import (
    CouchRequestError,
    DatabaseExistsError,
    DocumentConflictError,
    DocumentNotFoundError,
    MissingIndexError,
)
from cqrs_ddd_persistence_couchdb.memory import (
    InMemoryCouchDatabase,
    InMemoryCouchServer,
    matches_selector,
)
from cqrs_ddd_persistence_couchdb.ports import ICouchDatabase, ICouchServer
from cqrs_ddd_persistence_couchdb.query_builder import CouchQueryBuilder

DOC = {
    "_id": "u1",
    "name": "Ada Lovelace",
    "age": 36,
    "tags": ["math", "poetry"],
    "profile": {"city": "London"},
}


def test_satisfies_ports() -> None:
    assert isinstance(InMemoryCouchServer(), ICouchServer)
    assert isinstance(InMemoryCouchDatabase("db"), ICouchDatabase)


class TestSelectorEvaluation:
    """Selectors produced by the builder evaluate as CouchDB would."""

    @pytest.mark.parametrize(
        ("where", "expected"),
        [
            ([{"field": "id", "value": "u1"}], True),
            ([{"field": "name", "operator": "contains", "value": "Love"}], True),
            ([{"field": "name", "operator": "starts_with", "value": "Love"}], False),
            ([{"field": "name", "operator": "ends_with", "value": "lace"}], True),
            ([{"field": "age", "operator": "gt", "value": 36}], False),
            ([{"field": "age", "operator": "lte", "value": 36}], True),
            ([{"field": "age", "operator": "in", "value": [35, 36]}], True),
            ([{"field": "age", "operator": "not_in", "value": [36]}], False),
            ([{"field": "profile.city", "value": "London"}], True),
            (
                [
                    {"field": "age", "value": 1},
                    {"field": "name", "value": "Ada Lovelace", "connector": "OR"},
                ],
                True,
            ),
            (
                [
                    {"field": "age", "value": 36},
                    {"field": "name", "value": "nobody"},
                ],
                False,
            ),
        ],
    )
    def test_compiled_filters(self, where, expected):
        selector = CouchQueryBuilder().build_selector(where)
        assert matches_selector(DOC, selector) is expected

    def test_missing_field_fails_comparisons(self):
        assert not matches_selector(DOC, {"email": {"$ne": "x"}})
        assert matches_selector(DOC, {"email": {"$exists": False}})

    def test_bare_value_is_equality(self):
        assert matches_selector(DOC, {"age": 36})
        assert matches_selector(DOC, {"profile": {"city": "London"}})

    def test_regex_metacharacters_do_not_match_loosely(self):
        selector = CouchQueryBuilder().build_selector(
            [{"field": "name", "operator": "contains", "value": "A.a"}]
        )
        assert not matches_selector(DOC, selector)

    def test_unknown_operator_rejected(self):
        with pytest.raises(CouchRequestError, match="Invalid operator"):
            matches_selector(DOC, {"age": {"$bogus": 1}})


class TestRevisions:
    @pytest.mark.asyncio
    async def test_insert_assigns_id_and_rev(self):
        db = InMemoryCouchDatabase("db")
        result = await db.insert({"name": "x"})
        assert result.rev.startswith("1-")
        stored = await db.get(result.id)
        assert stored["_rev"] == result.rev

    @pytest.mark.asyncio
    async def test_stale_rev_conflicts(self):
        db = InMemoryCouchDatabase("db")
        first = await db.insert({"_id": "a", "v": 1})
        await db.insert({"_id": "a", "_rev": first.rev, "v": 2})
        with pytest.raises(DocumentConflictError):
            await db.insert({"_id": "a", "_rev": first.rev, "v": 3})

    @pytest.mark.asyncio
    async def test_existing_id_without_rev_conflicts(self):
        db = InMemoryCouchDatabase("db")
        await db.insert({"_id": "a"})
        with pytest.raises(DocumentConflictError):
            await db.insert({"_id": "a"})

    @pytest.mark.asyncio
    async def test_destroy(self):
        db = InMemoryCouchDatabase("db")
        result = await db.insert({"_id": "a"})
        with pytest.raises(DocumentConflictError):
            await db.destroy("a", "1-stale")
        await db.destroy("a", result.rev)
        with pytest.raises(DocumentNotFoundError):
            await db.destroy("a", result.rev)
        with pytest.raises(DocumentNotFoundError):
            await db.get("a")

    @pytest.mark.asyncio
    async def test_get_returns_a_copy(self):
        db = InMemoryCouchDatabase("db")
        await db.insert({"_id": "a", "tags": []})
        doc = await db.get("a")
        doc["tags"].append("x")
        assert (await db.get("a"))["tags"] == []


class TestFind:
    @pytest.mark.asyncio
    async def test_default_limit_and_bookmarks(self):
        db = InMemoryCouchDatabase("db")
        for i in range(30):
            await db.insert({"_id": f"d{i:02d}"})
        first = await db.find({})
        assert len(first.docs) == 25
        second = await db.find({}, bookmark=first.bookmark)
        assert [d["_id"] for d in second.docs] == [f"d{i}" for i in range(25, 30)]
        third = await db.find({}, bookmark=second.bookmark)
        assert third.docs == []

    @pytest.mark.asyncio
    async def test_sort_skip_and_fields(self):
        db = InMemoryCouchDatabase("db")
        for i, n in enumerate([3, 1, 2]):
            await db.insert({"_id": f"d{i}", "n": n, "other": True})
        result = await db.find(
            {}, sort=[{"n": "desc"}], skip=1, limit=5, fields=["_id"]
        )
        assert result.docs == [{"_id": "d2"}, {"_id": "d1"}]

    @pytest.mark.asyncio
    async def test_unindexed_sort_rejected(self):
        db = InMemoryCouchDatabase("db", sortable_fields=frozenset({"n"}))
        await db.find({}, sort=[{"n": "asc"}])
        with pytest.raises(MissingIndexError):
            await db.find({}, sort=[{"name": "asc"}])


class TestServer:
    @pytest.mark.asyncio
    async def test_create_database_once(self):
        server = InMemoryCouchServer()
        assert not await server.database_exists("db")
        await server.create_database("db")
        assert await server.database_exists("db")
        with pytest.raises(DatabaseExistsError):
            await server.create_database("db")
        assert server.use("db") is server.use("db")
