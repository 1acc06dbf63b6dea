"""Tests for the MeiliSearch backend."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from unittest.mock import AsyncMock

import httpx
import pytest

from paperindex.adapters.base.exceptions import ConnectionError, IndexSchemaError, MalformedQueryError, QueryError
from paperindex.adapters.meilisearch.adapter import MeiliSearchAdapter
from paperindex.core.repository import PaperSearchRepository
from paperindex.models.paper import Paper, PaperUpdate
from paperindex.models.query import PaperQuery, PaperSortBy, SortOrder

INDEX_PATH = "/indexes/test_papers"


def _response(status: int, body: Any = None) -> httpx.Response:
    return httpx.Response(status, json=body if body is not None else {})


# ── Fixtures ──────────────────────────────────────────────────────────────────


@pytest.fixture
def adapter() -> MeiliSearchAdapter:
    return MeiliSearchAdapter(
        base_url="http://localhost:7700",
        index="test_papers",
        api_key="test-key",
        task_poll_interval=0,
    )


@pytest.fixture
def mock_client(adapter: MeiliSearchAdapter) -> AsyncMock:
    """Client for an index that already exists; every write is accepted."""
    client = AsyncMock(spec=httpx.AsyncClient)

    async def fake_get(path: str, **kwargs: Any) -> httpx.Response:
        if path.startswith("/tasks/"):
            return _response(200, {"status": "succeeded"})
        if path == "/health":
            return _response(200, {"status": "available"})
        return _response(200, {"uid": "test_papers", "primaryKey": "id"})

    client.get.side_effect = fake_get
    client.patch.return_value = _response(202, {"taskUid": 1})
    client.post.return_value = _response(202, {"taskUid": 2})
    client.put.return_value = _response(202, {"taskUid": 3})
    client.delete.return_value = _response(202, {"taskUid": 4})
    adapter._client = client
    return client


@pytest.fixture
def paper() -> Paper:
    return Paper(
        id="p1",
        external_id="arxiv:2401.00001",
        title="Solar Nowcasting with Transformers",
        summary="Satellite imagery.",
        authors=["Alice Kim"],
        categories=["cs.LG"],
        issued_at=datetime(2024, 1, 1, tzinfo=UTC),
        created_at=datetime(2024, 2, 1, tzinfo=UTC),
    )


# ── Properties ───────────────────────────────────────────────────────────────


class TestMeiliSearchProperties:
    def test_name(self, adapter: MeiliSearchAdapter) -> None:
        assert adapter.name == "meilisearch"

    def test_default_values(self) -> None:
        a = MeiliSearchAdapter()
        assert a._base_url == "http://localhost:7700"
        assert a.index_name == "papers"

    def test_custom_values(self, adapter: MeiliSearchAdapter) -> None:
        assert adapter.index_name == "test_papers"
        assert adapter._api_key == "test-key"

    def test_not_enabled_until_initialized(self, adapter: MeiliSearchAdapter) -> None:
        assert adapter.is_enabled is False

    async def test_initialize_disabled_opens_no_client(self) -> None:
        a = MeiliSearchAdapter(enabled=False)
        await a.initialize()
        assert a._client is None


# ── Query planning ───────────────────────────────────────────────────────────


class TestMeiliSearchFilter:
    def test_no_filters(self) -> None:
        assert MeiliSearchAdapter.build_filter(PaperQuery()) is None

    def test_or_within_field_and_across_fields(self) -> None:
        query = PaperQuery(categories=["cs.AI", "cs.LG"], authors=["Alice Kim"], year=2024)
        assert MeiliSearchAdapter.build_filter(query) == (
            '(categories = "cs.AI" OR categories = "cs.LG") AND (authors = "Alice Kim") '
            "AND (issuedAt >= 1704067200 AND issuedAt < 1735689600)"
        )

    def test_values_are_escaped(self) -> None:
        query = PaperQuery(authors=['O"Brien \\ Co'])
        assert MeiliSearchAdapter.build_filter(query) == '(authors = "O\\"Brien \\\\ Co")'


class TestMeiliSearchPayload:
    def test_text_query_sends_no_sort(self) -> None:
        payload = MeiliSearchAdapter.build_search_payload(
            PaperQuery(search_query="transformer", sort_by=PaperSortBy.LIKE_COUNT)
        )
        assert payload["q"] == "transformer"
        assert "sort" not in payload
        assert payload["attributesToRetrieve"] == ["id"]

    def test_placeholder_query_sorts_by_requested_field(self) -> None:
        payload = MeiliSearchAdapter.build_search_payload(
            PaperQuery(sort_by=PaperSortBy.VIEW_COUNT, sort_order=SortOrder.ASC, page=3, limit=10)
        )
        assert payload["q"] == ""
        assert payload["sort"] == ["totalViewCount:asc"]
        assert payload["offset"] == 20
        assert payload["limit"] == 10
        assert "filter" not in payload

    def test_filter_included(self) -> None:
        payload = MeiliSearchAdapter.build_search_payload(PaperQuery(categories=["cs.CV"]))
        assert payload["filter"] == '(categories = "cs.CV")'


# ── Schema ───────────────────────────────────────────────────────────────────


class TestMeiliSearchSchema:
    def test_settings_payload(self, adapter: MeiliSearchAdapter) -> None:
        payload = adapter._settings_payload()
        assert payload["searchableAttributes"] == [
            "title",
            "translatedSummary",
            "summary",
            "hashtags",
            "categories",
            "authors",
        ]
        assert payload["rankingRules"] == ["words", "typo", "proximity", "attribute", "sort", "exactness"]
        assert payload["typoTolerance"]["minWordSizeForTypos"] == {"oneTypo": 3, "twoTypos": 6}
        assert payload["sortableAttributes"] == ["createdAt", "issuedAt", "likeCount", "totalViewCount"]
        assert "issuedAt" in payload["filterableAttributes"]
        assert "the" in payload["stopWords"]
        assert payload["nonSeparatorTokens"] == ["+", "#"]

    async def test_existing_index_reapplies_settings(self, adapter: MeiliSearchAdapter, mock_client) -> None:
        assert await adapter.ensure_index_exists() is True
        assert await adapter.ensure_index_exists() is True
        assert mock_client.patch.await_count == 2
        mock_client.post.assert_not_awaited()
        mock_client.patch.assert_awaited_with(f"{INDEX_PATH}/settings", json=adapter._settings_payload())

    async def test_missing_index_is_created_and_configured(self, adapter: MeiliSearchAdapter, mock_client) -> None:
        async def fake_get(path: str, **kwargs: Any) -> httpx.Response:
            if path == INDEX_PATH:
                return _response(404, {"code": "index_not_found"})
            return _response(200, {"status": "succeeded"})

        mock_client.get.side_effect = fake_get

        assert await adapter.ensure_index_exists() is True
        mock_client.post.assert_awaited_once_with("/indexes", json={"uid": "test_papers", "primaryKey": "id"})
        mock_client.patch.assert_awaited_once_with(f"{INDEX_PATH}/settings", json=adapter._settings_payload())

    async def test_failed_configuration_drops_index(self, adapter: MeiliSearchAdapter, mock_client) -> None:
        async def fake_get(path: str, **kwargs: Any) -> httpx.Response:
            if path == INDEX_PATH:
                return _response(404, {"code": "index_not_found"})
            if path == "/tasks/1":
                return _response(200, {"status": "failed", "error": {"code": "invalid_settings_ranking_rules"}})
            return _response(200, {"status": "succeeded"})

        mock_client.get.side_effect = fake_get

        assert await adapter.ensure_index_exists() is False
        mock_client.delete.assert_awaited_once_with(INDEX_PATH)

    async def test_delete_missing_index_is_not_an_error(self, adapter: MeiliSearchAdapter, mock_client) -> None:
        mock_client.delete.return_value = _response(404, {"code": "index_not_found"})
        await adapter.delete_index()

    async def test_index_status(self, adapter: MeiliSearchAdapter, mock_client) -> None:
        async def fake_get(path: str, **kwargs: Any) -> httpx.Response:
            if path.endswith("/stats"):
                return _response(200, {"numberOfDocuments": 12})
            if path.endswith("/settings"):
                return _response(200, {"rankingRules": ["words"]})
            return _response(200, {"uid": "test_papers"})

        mock_client.get.side_effect = fake_get

        status = await adapter.index_status()
        assert status.enabled is True
        assert status.index_exists is True
        assert status.document_count == 12
        assert status.settings == {"rankingRules": ["words"]}


# ── Settings tasks ───────────────────────────────────────────────────────────


def _settings_server(task_status: str, requests: list[str]) -> httpx.MockTransport:
    """MeiliSearch stand-in that rejects sorted searches until settings task 7 was polled."""
    settled = False

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal settled
        path = request.url.path
        requests.append(f"{request.method} {path}")
        if path == INDEX_PATH:
            return httpx.Response(200, json={"uid": "test_papers", "primaryKey": "id"})
        if path == f"{INDEX_PATH}/settings":
            return httpx.Response(202, json={"taskUid": 7, "status": "enqueued"})
        if path == "/tasks/7":
            settled = True
            error = None if task_status == "succeeded" else {"code": "invalid_settings_sortable_attributes"}
            return httpx.Response(200, json={"uid": 7, "status": task_status, "error": error})
        if path == f"{INDEX_PATH}/search":
            if not settled:
                return httpx.Response(400, json={"code": "invalid_search_sort"})
            return httpx.Response(200, json={"hits": [], "estimatedTotalHits": 0})
        return httpx.Response(404, json={"code": "not_found"})

    return httpx.MockTransport(handler)


@pytest.fixture
async def serve(adapter: MeiliSearchAdapter):
    """Point *adapter* at a settings-task server; returns the request log."""

    def _serve(task_status: str) -> list[str]:
        requests: list[str] = []
        adapter._client = httpx.AsyncClient(
            base_url="http://localhost:7700",
            transport=_settings_server(task_status, requests),
        )
        return requests

    yield _serve
    await adapter.shutdown()


class TestMeiliSearchSettingsTask:
    async def test_search_waits_for_settings_task(self, adapter: MeiliSearchAdapter, serve) -> None:
        requests = serve("succeeded")

        hits = await adapter.search(PaperQuery(sort_by=PaperSortBy.LIKE_COUNT))

        assert hits.ids == []
        assert requests.index("GET /tasks/7") < requests.index(f"POST {INDEX_PATH}/search")

    async def test_listing_is_served_by_index(self, adapter: MeiliSearchAdapter, serve, store) -> None:
        serve("succeeded")
        page = await PaperSearchRepository(adapter, store).list(PaperQuery())
        assert page.source == "search"

    async def test_failed_settings_task_blocks_search(self, adapter: MeiliSearchAdapter, serve) -> None:
        requests = serve("failed")
        with pytest.raises(IndexSchemaError):
            await adapter.search(PaperQuery())
        assert f"POST {INDEX_PATH}/search" not in requests

    async def test_failed_settings_task_falls_back_to_database(
        self, adapter: MeiliSearchAdapter, serve, store
    ) -> None:
        serve("failed")
        page = await PaperSearchRepository(adapter, store).list(PaperQuery())
        assert page.source == "database"


# ── Documents ────────────────────────────────────────────────────────────────


class TestMeiliSearchDocuments:
    async def test_upsert_stores_dates_as_timestamps(
        self, adapter: MeiliSearchAdapter, mock_client, paper: Paper
    ) -> None:
        await adapter.index_document(paper)

        mock_client.post.assert_awaited_once()
        call = mock_client.post.call_args
        assert call.args[0] == f"{INDEX_PATH}/documents"
        doc = call.kwargs["json"][0]
        assert doc["id"] == "p1"
        assert doc["externalId"] == "arxiv:2401.00001"
        assert doc["issuedAt"] == 1704067200
        assert doc["createdAt"] == 1706745600

    async def test_partial_update_sends_only_set_fields(self, adapter: MeiliSearchAdapter, mock_client) -> None:
        await adapter.update_document("p1", PaperUpdate(title="New title", url="https://example.org"))

        mock_client.put.assert_awaited_once()
        assert mock_client.put.call_args.kwargs["json"] == [{"title": "New title", "id": "p1"}]

    async def test_delete_missing_document_is_swallowed(self, adapter: MeiliSearchAdapter, mock_client) -> None:
        mock_client.delete.return_value = _response(404, {"code": "document_not_found"})
        await adapter.delete_document("ghost")
        mock_client.delete.assert_awaited_once_with(f"{INDEX_PATH}/documents/ghost")

    async def test_index_document_swallows_transport_errors(
        self, adapter: MeiliSearchAdapter, mock_client, paper: Paper
    ) -> None:
        mock_client.post.side_effect = httpx.ConnectError("Connection refused")
        await adapter.index_document(paper)


# ── Search ───────────────────────────────────────────────────────────────────


class TestMeiliSearchSearch:
    async def test_search_not_initialized_raises(self, adapter: MeiliSearchAdapter) -> None:
        with pytest.raises(ConnectionError, match="not initialized"):
            await adapter.search(PaperQuery())

    async def test_search_returns_ids_in_backend_order(self, adapter: MeiliSearchAdapter, mock_client) -> None:
        mock_client.post.return_value = _response(
            200, {"hits": [{"id": "p2"}, {"id": "p1"}], "estimatedTotalHits": 42, "offset": 0, "limit": 20}
        )

        hits = await adapter.search(PaperQuery(search_query="transformer"))
        assert hits.ids == ["p2", "p1"]
        assert hits.total == 42
        assert mock_client.post.call_args.args[0] == f"{INDEX_PATH}/search"

    async def test_page_past_end_keeps_total(self, adapter: MeiliSearchAdapter, mock_client) -> None:
        mock_client.post.return_value = _response(200, {"hits": [], "estimatedTotalHits": 5})
        hits = await adapter.search(PaperQuery(page=10, limit=20))
        assert hits.ids == []
        assert hits.total == 5

    async def test_invalid_filter_raises_malformed(self, adapter: MeiliSearchAdapter, mock_client) -> None:
        mock_client.post.return_value = _response(
            400, {"code": "invalid_search_filter", "message": "Attribute `x` is not filterable."}
        )
        with pytest.raises(MalformedQueryError):
            await adapter.search(PaperQuery(categories=["cs.AI"]))

    async def test_server_error_raises_query_error(self, adapter: MeiliSearchAdapter, mock_client) -> None:
        mock_client.post.return_value = _response(500, {"code": "internal"})
        with pytest.raises(QueryError):
            await adapter.search(PaperQuery())

    async def test_transport_error_raises_connection_error(self, adapter: MeiliSearchAdapter, mock_client) -> None:
        mock_client.post.side_effect = httpx.ReadTimeout("timed out")
        with pytest.raises(ConnectionError):
            await adapter.search(PaperQuery())


# ── Health ───────────────────────────────────────────────────────────────────


class TestMeiliSearchHealth:
    async def test_health_disabled(self) -> None:
        health = await MeiliSearchAdapter(enabled=False).health_check()
        assert health.status == "disabled"

    async def test_health_not_initialized(self, adapter: MeiliSearchAdapter) -> None:
        health = await adapter.health_check()
        assert health.status == "unhealthy"

    async def test_health_available(self, adapter: MeiliSearchAdapter, mock_client) -> None:
        health = await adapter.health_check()
        assert health.status == "healthy"

    async def test_health_exception(self, adapter: MeiliSearchAdapter, mock_client) -> None:
        mock_client.get.side_effect = RuntimeError("Connection refused")
        health = await adapter.health_check()
        assert health.status == "unhealthy"
        assert "Connection refused" in (health.message or "")
