"""MeiliSearch backend: Typo-tolerant paper index over the REST API.

Communicates with MeiliSearch through ``httpx``; no SDK is required.
MeiliSearch filters compare numbers only, so date attributes are stored
as UNIX timestamps (seconds).

Usage::

    backend = MeiliSearchAdapter(
        base_url="http://localhost:7700",
        index="papers",
        api_key="your-master-key",
    )
    await backend.initialize()
    hits = await backend.search(PaperQuery(search_query="transformer"))
"""

from __future__ import annotations

import asyncio
import calendar
import logging
import time
from datetime import UTC, datetime
from typing import Any

import httpx

from paperindex.adapters.base.adapter import AdapterHealth, SearchBackend
from paperindex.adapters.base.exceptions import (
    ConnectionError,
    DocumentNotFoundError,
    IndexSchemaError,
    MalformedQueryError,
    QueryError,
)
from paperindex.adapters.base.index_config import build_paper_index
from paperindex.models.index import IndexDescriptor, IndexStatus
from paperindex.models.paper import PaperDocument
from paperindex.models.query import PaperQuery, SearchHits

logger = logging.getLogger(__name__)

_TERMINAL_TASK_STATES = frozenset({"succeeded", "failed", "canceled"})


def _epoch(value: datetime) -> int:
    return calendar.timegm(value.astimezone(UTC).timetuple())


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class MeiliSearchAdapter(SearchBackend):
    """Paper index backed by MeiliSearch.

    Communicates with MeiliSearch via its `REST API`_ over HTTP.

    .. _REST API: https://www.meilisearch.com/docs/reference/api/overview

    Args:
        base_url: MeiliSearch instance URL, e.g. ``"http://localhost:7700"``.
        index: Index UID.  Ignored when *descriptor* is given.
        api_key: Master key or API key for authentication.
        timeout: Per-request timeout in seconds.
        enabled: Configuration switch.
        descriptor: Index schema; defaults to the standard paper index.
        task_timeout: How long to wait for schema tasks to finish.
        max_total_hits: Upper bound on paginable hits.
        **kwargs: Extra keyword arguments stored for future use.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:7700",
        index: str = "papers",
        api_key: str | None = None,
        timeout: float = 10.0,
        enabled: bool = True,
        descriptor: IndexDescriptor | None = None,
        task_timeout: float = 30.0,
        task_poll_interval: float = 0.1,
        max_total_hits: int = 10_000,
        **kwargs: Any,
    ) -> None:
        super().__init__(descriptor or build_paper_index(index), enabled=enabled)
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._task_timeout = task_timeout
        self._task_poll_interval = task_poll_interval
        self._max_total_hits = max_total_hits
        self._extra_kwargs = kwargs
        self._client: httpx.AsyncClient | None = None

    @property
    def name(self) -> str:
        return "meilisearch"

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    async def initialize(self) -> None:
        """Create an ``httpx.AsyncClient`` and verify connection to MeiliSearch."""
        if not self._enabled:
            logger.warning("MeiliSearch is disabled")
            return

        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key and self._api_key.strip():
            headers["Authorization"] = f"Bearer {self._api_key.strip()}"

        client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(self._timeout),
            headers=headers,
        )

        try:
            resp = await client.get("/health")
            resp.raise_for_status()
            data = resp.json()
            if data.get("status") != "available":
                raise ConnectionError(f"MeiliSearch not available: {data}")
        except (httpx.HTTPError, ConnectionError) as e:
            await client.aclose()
            raise ConnectionError(f"Failed to connect to MeiliSearch: {e}") from e

        self._client = client
        logger.info("Connected to MeiliSearch at %s (index: %s)", self._base_url, self.index_name)

    async def shutdown(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    # ── HTTP plumbing ────────────────────────────────────────────────────

    async def _call(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        if not self._client:
            raise ConnectionError("MeiliSearch client not initialized.")
        try:
            return await getattr(self._client, method)(path, **kwargs)
        except httpx.HTTPError as e:
            raise ConnectionError(f"MeiliSearch request failed: {e}") from e

    @staticmethod
    def _error_code(resp: httpx.Response) -> str:
        try:
            body = resp.json()
        except ValueError:
            return ""
        return str(body.get("code", "")) if isinstance(body, dict) else ""

    def _check(self, resp: httpx.Response, action: str) -> None:
        """Map an unsuccessful response to the adapter exception hierarchy."""
        if resp.is_success:
            return
        code = self._error_code(resp)
        message = f"MeiliSearch {action} failed: HTTP {resp.status_code} {code}".rstrip()
        if resp.status_code == 404:
            raise DocumentNotFoundError(message)
        if resp.status_code == 400 and code.startswith("invalid_search"):
            raise MalformedQueryError(message)
        raise QueryError(message)

    async def _wait_for_task(self, resp: httpx.Response) -> dict[str, Any]:
        """Poll ``/tasks/{uid}`` until the enqueued task reaches a terminal state."""
        task_uid = resp.json().get("taskUid")
        if task_uid is None:
            return {"status": "succeeded"}

        deadline = time.monotonic() + self._task_timeout
        while True:
            task_resp = await self._call("get", f"/tasks/{task_uid}")
            self._check(task_resp, "task lookup")
            task = task_resp.json()
            if task.get("status") in _TERMINAL_TASK_STATES:
                return task
            if time.monotonic() >= deadline:
                raise IndexSchemaError(f"MeiliSearch task {task_uid} did not finish in {self._task_timeout}s")
            await asyncio.sleep(self._task_poll_interval)

    # ── Schema ───────────────────────────────────────────────────────────

    def _settings_payload(self) -> dict[str, Any]:
        d = self.descriptor
        return {
            "searchableAttributes": list(d.searchable_attributes),
            "displayedAttributes": list(d.displayed_attributes),
            "filterableAttributes": sorted(d.filterable_attributes),
            "sortableAttributes": sorted(d.sortable_attributes),
            "rankingRules": list(d.ranking_rules),
            "typoTolerance": {
                "enabled": d.typo_tolerance.enabled,
                "minWordSizeForTypos": {
                    "oneTypo": d.typo_tolerance.one_typo_min_word_size,
                    "twoTypos": d.typo_tolerance.two_typos_min_word_size,
                },
                "disableOnWords": list(d.typo_tolerance.disable_on_words),
                "disableOnAttributes": list(d.typo_tolerance.disable_on_attributes),
            },
            "stopWords": list(d.stop_words),
            "separatorTokens": list(d.separator_tokens),
            "nonSeparatorTokens": list(d.non_separator_tokens),
            "pagination": {"maxTotalHits": self._max_total_hits},
        }

    async def _index_exists(self) -> bool:
        resp = await self._call("get", f"/indexes/{self.index_name}")
        if resp.status_code == 404:
            return False
        self._check(resp, "index lookup")
        return True

    async def _create_index(self) -> None:
        resp = await self._call(
            "post",
            "/indexes",
            json={"uid": self.index_name, "primaryKey": self.descriptor.primary_key},
        )
        self._check(resp, "index creation")
        task = await self._wait_for_task(resp)
        if task.get("status") != "succeeded":
            error = task.get("error") or {}
            if error.get("code") != "index_already_exists":
                raise IndexSchemaError(f"Failed to create index {self.index_name}: {error}")

        try:
            resp = await self._call("patch", f"/indexes/{self.index_name}/settings", json=self._settings_payload())
            self._check(resp, "settings update")
            task = await self._wait_for_task(resp)
            if task.get("status") != "succeeded":
                raise IndexSchemaError(f"Failed to configure index {self.index_name}: {task.get('error')}")
        except Exception:
            logger.error("Dropping half-configured index %s", self.index_name)
            try:
                await self._delete_index()
            except Exception:
                logger.warning("Could not drop index %s", self.index_name, exc_info=True)
            raise

    async def _apply_settings(self) -> None:
        resp = await self._call("patch", f"/indexes/{self.index_name}/settings", json=self._settings_payload())
        self._check(resp, "settings update")
        # Searches may only run once filterable and sortable attributes are live.
        task = await self._wait_for_task(resp)
        if task.get("status") != "succeeded":
            raise IndexSchemaError(f"Failed to configure index {self.index_name}: {task.get('error')}")

    async def _delete_index(self) -> None:
        resp = await self._call("delete", f"/indexes/{self.index_name}")
        if resp.status_code == 404:
            return
        self._check(resp, "index deletion")
        task = await self._wait_for_task(resp)
        if task.get("status") != "succeeded":
            error = task.get("error") or {}
            if error.get("code") != "index_not_found":
                raise IndexSchemaError(f"Failed to delete index {self.index_name}: {error}")

    async def _index_status(self) -> IndexStatus:
        status = IndexStatus(enabled=True, backend=self.name, index_name=self.index_name)
        if not await self._index_exists():
            return status

        stats = await self._call("get", f"/indexes/{self.index_name}/stats")
        self._check(stats, "stats lookup")
        settings = await self._call("get", f"/indexes/{self.index_name}/settings")
        self._check(settings, "settings lookup")

        status.index_exists = True
        status.document_count = int(stats.json().get("numberOfDocuments", 0))
        status.settings = settings.json()
        return status

    # ── Documents ────────────────────────────────────────────────────────

    @staticmethod
    def _serialize(fields: dict[str, Any]) -> dict[str, Any]:
        return {k: _epoch(v) if isinstance(v, datetime) else v for k, v in fields.items()}

    async def _upsert(self, document: PaperDocument) -> None:
        resp = await self._call(
            "post",
            f"/indexes/{self.index_name}/documents",
            params={"primaryKey": self.descriptor.primary_key},
            json=[self._serialize(document.to_index_fields())],
        )
        self._check(resp, "document upsert")

    async def _partial_update(self, paper_id: str, fields: dict[str, Any]) -> None:
        # PUT merges the given attributes into the stored document
        resp = await self._call(
            "put",
            f"/indexes/{self.index_name}/documents",
            params={"primaryKey": self.descriptor.primary_key},
            json=[{**self._serialize(fields), self.descriptor.primary_key: paper_id}],
        )
        self._check(resp, "document update")

    async def _delete(self, paper_id: str) -> None:
        resp = await self._call("delete", f"/indexes/{self.index_name}/documents/{paper_id}")
        self._check(resp, "document deletion")

    # ── Query ────────────────────────────────────────────────────────────

    @staticmethod
    def _any_of(attribute: str, values: list[str]) -> str:
        return "(" + " OR ".join(f"{attribute} = {_quote(v)}" for v in values) + ")"

    @classmethod
    def build_filter(cls, query: PaperQuery) -> str | None:
        """Translate the query filters into a MeiliSearch filter expression."""
        clauses: list[str] = []
        if query.categories:
            clauses.append(cls._any_of("categories", query.categories))
        if query.authors:
            clauses.append(cls._any_of("authors", query.authors))
        year_range = query.year_range()
        if year_range:
            start, end = year_range
            clauses.append(f"(issuedAt >= {_epoch(start)} AND issuedAt < {_epoch(end)})")
        return " AND ".join(clauses) or None

    @classmethod
    def build_search_payload(cls, query: PaperQuery) -> dict[str, Any]:
        """Build the ``/search`` request body for *query*.

        With a search term the ranking rules decide the order and no sort is
        sent.  Without one MeiliSearch runs a placeholder search ordered only
        by the requested field.
        """
        payload: dict[str, Any] = {
            "q": query.search_query or "",
            "offset": query.offset,
            "limit": query.limit,
            "attributesToRetrieve": ["id"],
        }
        filter_expr = cls.build_filter(query)
        if filter_expr:
            payload["filter"] = filter_expr
        if not query.has_text:
            payload["sort"] = [f"{query.sort_by.value}:{query.sort_order.value}"]
        return payload

    async def _execute_search(self, query: PaperQuery) -> SearchHits:
        resp = await self._call(
            "post",
            f"/indexes/{self.index_name}/search",
            json=self.build_search_payload(query),
        )
        if resp.status_code == 404:
            raise QueryError(f"MeiliSearch index {self.index_name} not found")
        self._check(resp, "query")

        data = resp.json()
        hits = data.get("hits", [])
        total = data.get("estimatedTotalHits", data.get("totalHits", len(hits)))
        ids = [str(hit["id"]) for hit in hits if hit.get("id") is not None]
        return SearchHits(ids=ids, total=total)

    # ── Health ───────────────────────────────────────────────────────────

    async def health_check(self) -> AdapterHealth:
        """Check MeiliSearch health."""
        if not self._enabled:
            return AdapterHealth(status="disabled", message="MeiliSearch is disabled")
        if not self._client:
            return AdapterHealth(status="unhealthy", message="Client not initialized")

        try:
            start = time.monotonic()
            resp = await self._client.get("/health")
            latency_ms = int((time.monotonic() - start) * 1000)

            if resp.status_code == 200:
                status = resp.json().get("status", "unknown")
                return AdapterHealth(
                    status="healthy" if status == "available" else "degraded",
                    latency_ms=latency_ms,
                    last_check=datetime.now(UTC).isoformat(),
                    message=f"Index: {self.index_name}, status: {status}",
                )
            return AdapterHealth(
                status="degraded",
                latency_ms=latency_ms,
                last_check=datetime.now(UTC).isoformat(),
                message=f"MeiliSearch returned HTTP {resp.status_code}",
            )
        except Exception as e:
            return AdapterHealth(status="unhealthy", message=str(e))
