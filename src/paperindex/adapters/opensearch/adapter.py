"""OpenSearch backend: BM25 paper index for OpenSearch (v2+).

OpenSearch is an AWS-maintained fork of Elasticsearch with a compatible
query DSL.  This backend uses ``opensearch-py`` (async) and maps the
backend-neutral :class:`IndexDescriptor` onto analysis settings, field
mappings and a boosted ``multi_match`` query:

  - searchable-attribute priority → per-field boosts
  - typo tolerance               → ``fuzziness: AUTO:<one>,<two>``
  - proximity / exactness        → ``should`` clauses (phrase, keyword term)
  - stop / separator tokens      → custom analyzer
"""

from __future__ import annotations

import logging
import time
from datetime import UTC, datetime
from typing import Any

from opensearchpy import AsyncOpenSearch
from opensearchpy.exceptions import NotFoundError, OpenSearchException, RequestError

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

_TEXT_ANALYZER = "paper_text"

# Index attribute → field that carries its full-text representation.
_SEARCH_FIELDS = {
    "title": "title",
    "translatedSummary": "translatedSummary",
    "summary": "summary",
    "hashtags": "hashtags.text",
    "categories": "categories.text",
    "authors": "authors",
}


def _iso(value: Any) -> Any:
    return value.astimezone(UTC).isoformat() if isinstance(value, datetime) else value


def _escape(token: str) -> str:
    """Spell *token* as ``\\uXXXX`` escapes for analysis rule lists."""
    return "".join(f"\\u{ord(ch):04x}" for ch in token)


class OpenSearchAdapter(SearchBackend):
    """Paper index backed by OpenSearch (v2+).

    Args:
        hosts: List of OpenSearch node URLs.
        index: Index name.  Ignored when *descriptor* is given.
        username: Optional HTTP basic-auth username.
        password: Optional HTTP basic-auth password.
        verify_certs: Whether to verify TLS certificates.
        timeout: Per-request timeout in seconds.
        enabled: Configuration switch.
        descriptor: Index schema; defaults to the standard paper index.
        number_of_replicas: Replicas for a newly created index.
        **kwargs: Additional keyword arguments forwarded to ``AsyncOpenSearch``.
    """

    def __init__(
        self,
        hosts: list[str] | None = None,
        index: str = "papers",
        username: str | None = None,
        password: str | None = None,
        verify_certs: bool = True,
        timeout: float = 10.0,
        enabled: bool = True,
        descriptor: IndexDescriptor | None = None,
        number_of_replicas: int = 1,
        **kwargs: Any,
    ) -> None:
        super().__init__(descriptor or build_paper_index(index), enabled=enabled)
        self._hosts = hosts or ["https://localhost:9200"]
        self._username = username
        self._password = password
        self._verify_certs = verify_certs
        self._timeout = timeout
        self._number_of_replicas = number_of_replicas
        self._extra_kwargs = kwargs
        self._client: Any = None

    @property
    def name(self) -> str:
        return "opensearch"

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    async def initialize(self) -> None:
        """Create and verify the ``AsyncOpenSearch`` client."""
        if not self._enabled:
            logger.warning("OpenSearch is disabled")
            return

        client_kwargs: dict[str, Any] = {
            "hosts": self._hosts,
            "verify_certs": self._verify_certs,
            "ssl_show_warn": False,
            "timeout": self._timeout,
        }
        if self._username and self._password:
            client_kwargs["http_auth"] = (self._username, self._password)

        client_kwargs.update(self._extra_kwargs)

        client = AsyncOpenSearch(**client_kwargs)
        try:
            info = await client.info()
        except Exception as e:
            await client.close()
            raise ConnectionError(f"Failed to connect to OpenSearch: {e}") from e

        self._client = client
        version = info.get("version", {}).get("number", "unknown")
        cluster = info.get("cluster_name", "unknown")
        logger.info("Connected to OpenSearch cluster: %s (v%s, index: %s)", cluster, version, self.index_name)

    async def shutdown(self) -> None:
        """Close the OpenSearch client."""
        if self._client:
            await self._client.close()
            self._client = None

    # ── Schema ───────────────────────────────────────────────────────────

    def build_index_body(self) -> dict[str, Any]:
        """Translate the descriptor into index settings and mappings."""
        d = self.descriptor
        text_field = {"type": "text", "analyzer": _TEXT_ANALYZER}
        keyword_sub = {"keyword": {"type": "keyword", "normalizer": "paper_lowercase", "ignore_above": 512}}

        word_delimiter: dict[str, Any] = {
            "type": "word_delimiter_graph",
            "split_on_case_change": False,
            "split_on_numerics": False,
        }
        if d.non_separator_tokens:
            word_delimiter["type_table"] = [f"{_escape(token)} => ALPHA" for token in d.non_separator_tokens]

        analyzer: dict[str, Any] = {
            "type": "custom",
            "tokenizer": "whitespace",
            "filter": ["paper_word_delimiter", "lowercase", "paper_stop"],
        }
        char_filters: dict[str, Any] = {}
        if d.separator_tokens:
            char_filters["paper_separators"] = {
                "type": "mapping",
                "mappings": [f"{_escape(token)} => \\u0020" for token in d.separator_tokens],
            }
            analyzer["char_filter"] = ["paper_separators"]

        return {
            "settings": {
                "number_of_shards": 1,
                "number_of_replicas": self._number_of_replicas,
                "analysis": {
                    "char_filter": char_filters,
                    "filter": {
                        "paper_word_delimiter": word_delimiter,
                        "paper_stop": {"type": "stop", "stopwords": list(d.stop_words)},
                    },
                    "analyzer": {_TEXT_ANALYZER: analyzer},
                    "normalizer": {
                        "paper_lowercase": {"type": "custom", "filter": ["lowercase"]},
                    },
                },
            },
            "mappings": self._mappings(text_field, keyword_sub),
        }

    def _mappings(self, text_field: dict[str, Any], keyword_sub: dict[str, Any]) -> dict[str, Any]:
        d = self.descriptor
        return {
            "dynamic": "strict",
            "_meta": {
                "searchable_attributes": list(d.searchable_attributes),
                "filterable_attributes": sorted(d.filterable_attributes),
                "sortable_attributes": sorted(d.sortable_attributes),
                "ranking_rules": list(d.ranking_rules),
            },
            "properties": {
                "id": {"type": "keyword"},
                "externalId": {"type": "keyword"},
                "title": {**text_field, "fields": keyword_sub},
                "summary": text_field,
                "translatedSummary": text_field,
                "authors": {**text_field, "fields": {"keyword": {"type": "keyword"}}},
                "categories": {"type": "keyword", "fields": {"text": text_field}},
                "hashtags": {"type": "keyword", "fields": {"text": text_field}},
                "doi": {"type": "keyword"},
                "issuedAt": {"type": "date"},
                "createdAt": {"type": "date"},
                "likeCount": {"type": "integer"},
                "totalViewCount": {"type": "integer"},
            },
        }

    async def _index_exists(self) -> bool:
        try:
            return bool(await self._client.indices.exists(index=self.index_name))
        except OpenSearchException as e:
            raise ConnectionError(f"OpenSearch index lookup failed: {e}") from e

    async def _create_index(self) -> None:
        # Settings and mappings are applied atomically by index creation.
        try:
            await self._client.indices.create(index=self.index_name, body=self.build_index_body())
        except RequestError as e:
            if getattr(e, "error", "") == "resource_already_exists_exception":
                await self._apply_settings()
                return
            raise IndexSchemaError(f"Failed to create index {self.index_name}: {e}") from e
        except OpenSearchException as e:
            raise IndexSchemaError(f"Failed to create index {self.index_name}: {e}") from e

    async def _apply_settings(self) -> None:
        """Upsert the mappings; recreate the index when our analyzer is missing."""
        try:
            current = await self._client.indices.get_settings(index=self.index_name)
            analysis = current.get(self.index_name, {}).get("settings", {}).get("index", {}).get("analysis", {})
            if _TEXT_ANALYZER not in analysis.get("analyzer", {}):
                logger.warning(
                    "Index %s lost its analysis settings; recreating it (run a reindex to restore documents)",
                    self.index_name,
                )
                await self._delete_index()
                await self._client.indices.create(index=self.index_name, body=self.build_index_body())
                return

            body = self.build_index_body()
            await self._client.indices.put_mapping(index=self.index_name, body=body["mappings"])
        except OpenSearchException as e:
            raise IndexSchemaError(f"Failed to update settings of {self.index_name}: {e}") from e

    async def _delete_index(self) -> None:
        try:
            await self._client.indices.delete(index=self.index_name)
        except NotFoundError:
            logger.debug("Index %s did not exist", self.index_name)
        except OpenSearchException as e:
            raise IndexSchemaError(f"Failed to delete index {self.index_name}: {e}") from e

    async def _index_status(self) -> IndexStatus:
        status = IndexStatus(enabled=True, backend=self.name, index_name=self.index_name)
        if not await self._index_exists():
            return status

        try:
            count = await self._client.count(index=self.index_name)
            mapping = await self._client.indices.get_mapping(index=self.index_name)
            settings = await self._client.indices.get_settings(index=self.index_name)
        except OpenSearchException as e:
            raise QueryError(f"OpenSearch status lookup failed: {e}") from e

        status.index_exists = True
        status.document_count = int(count.get("count", 0))
        status.settings = {
            "mappings": mapping.get(self.index_name, {}).get("mappings"),
            "settings": settings.get(self.index_name, {}).get("settings"),
        }
        return status

    async def _optimize(self) -> None:
        try:
            await self._client.indices.refresh(index=self.index_name)
            await self._client.indices.forcemerge(index=self.index_name, max_num_segments=1)
        except OpenSearchException as e:
            raise QueryError(f"OpenSearch optimize failed: {e}") from e
        logger.info("OpenSearch index optimized: %s", self.index_name)

    # ── Documents ────────────────────────────────────────────────────────

    async def _upsert(self, document: PaperDocument) -> None:
        try:
            await self._client.index(
                index=self.index_name,
                id=document.id,
                body=document.model_dump(by_alias=True, mode="json"),
                refresh=False,
            )
        except OpenSearchException as e:
            raise QueryError(f"OpenSearch document upsert failed: {e}") from e

    async def _partial_update(self, paper_id: str, fields: dict[str, Any]) -> None:
        try:
            await self._client.update(
                index=self.index_name,
                id=paper_id,
                body={"doc": {k: _iso(v) for k, v in fields.items()}},
                refresh=False,
            )
        except NotFoundError as e:
            raise DocumentNotFoundError(f"Document '{paper_id}' not found.") from e
        except OpenSearchException as e:
            raise QueryError(f"OpenSearch document update failed: {e}") from e

    async def _delete(self, paper_id: str) -> None:
        try:
            await self._client.delete(index=self.index_name, id=paper_id, refresh=False)
        except NotFoundError as e:
            raise DocumentNotFoundError(f"Document '{paper_id}' not found.") from e
        except OpenSearchException as e:
            raise QueryError(f"OpenSearch document deletion failed: {e}") from e

    # ── Query ────────────────────────────────────────────────────────────

    def _boosted_fields(self) -> list[str]:
        attributes = self.descriptor.searchable_attributes
        weight = len(attributes)
        fields: list[str] = []
        for attribute in attributes:
            fields.append(f"{_SEARCH_FIELDS.get(attribute, attribute)}^{weight}")
            weight -= 1
        return fields

    def _text_clauses(self, text: str) -> tuple[dict[str, Any], list[dict[str, Any]]]:
        typo = self.descriptor.typo_tolerance
        fields = self._boosted_fields()
        match: dict[str, Any] = {
            "query": text,
            "fields": fields,
            "type": "best_fields",
            "operator": "or",
            "tie_breaker": 0.3,
        }
        if typo.enabled:
            match["fuzziness"] = f"AUTO:{typo.one_typo_min_word_size},{typo.two_typos_min_word_size}"
        should = [
            {"multi_match": {"query": text, "fields": fields, "type": "phrase", "slop": 3, "boost": 2}},
            {"term": {"title.keyword": {"value": text, "boost": 0.5}}},
        ]
        return {"multi_match": match}, should

    def build_filters(self, query: PaperQuery) -> list[dict[str, Any]]:
        """Filter-context clauses; ``terms`` ORs the values within one field."""
        filters: list[dict[str, Any]] = []
        if query.categories:
            filters.append({"terms": {"categories": query.categories}})
        if query.authors:
            filters.append({"terms": {"authors.keyword": query.authors}})
        year_range = query.year_range()
        if year_range:
            start, end = year_range
            filters.append({"range": {"issuedAt": {"gte": start.isoformat(), "lt": end.isoformat()}}})
        return filters

    def build_search_body(self, query: PaperQuery) -> dict[str, Any]:
        """Build the search request for *query*.

        Text queries are ordered by relevance score alone.  Without text
        every clause runs in filter context, so nothing is scored and the
        requested field decides the order.
        """
        filters = self.build_filters(query)
        body: dict[str, Any] = {
            "from": query.offset,
            "size": query.limit,
            "_source": ["id"],
            "track_total_hits": True,
        }

        if query.search_query:
            must, should = self._text_clauses(query.search_query)
            body["query"] = {"bool": {"must": [must], "should": should, "filter": filters}}
            body["sort"] = ["_score", {"id": {"order": "asc"}}]
        else:
            body["query"] = {"bool": {"filter": filters}} if filters else {"match_all": {}}
            body["sort"] = [
                {query.sort_by.value: {"order": query.sort_order.value, "missing": "_last"}},
                {"id": {"order": "asc"}},
            ]
        return body

    async def _execute_search(self, query: PaperQuery) -> SearchHits:
        try:
            response = await self._client.search(index=self.index_name, body=self.build_search_body(query))
        except RequestError as e:
            raise MalformedQueryError(f"OpenSearch rejected the query: {e}") from e
        except OpenSearchException as e:
            raise QueryError(f"OpenSearch query failed: {e}") from e

        hits = response.get("hits", {})
        total = hits.get("total", 0)
        if isinstance(total, dict):
            total = total.get("value", 0)
        ids = [str(hit.get("_source", {}).get("id", hit.get("_id"))) for hit in hits.get("hits", [])]
        return SearchHits(ids=ids, total=total)

    # ── Health ───────────────────────────────────────────────────────────

    async def health_check(self) -> AdapterHealth:
        """Check OpenSearch cluster health."""
        if not self._enabled:
            return AdapterHealth(status="disabled", message="OpenSearch is disabled")
        if not self._client:
            return AdapterHealth(status="unhealthy", message="Client not initialized")

        try:
            start = time.monotonic()
            health = await self._client.cluster.health()
            latency_ms = int((time.monotonic() - start) * 1000)

            status_map = {"green": "healthy", "yellow": "degraded", "red": "unhealthy"}

            return AdapterHealth(
                status=status_map.get(health.get("status", "red"), "unhealthy"),
                latency_ms=latency_ms,
                last_check=datetime.now(UTC).isoformat(),
                message=f"Cluster: {health.get('cluster_name')}, Nodes: {health.get('number_of_nodes')}",
            )
        except Exception as e:
            return AdapterHealth(status="unhealthy", message=str(e))
