"""Integration test fixtures: Live search backends plus a seeded SQLite store.

Expects backends to be running locally, e.g.::

    docker run -p 7700:7700 -e MEILI_MASTER_KEY=test-master-key getmeili/meilisearch:v1.10
    docker run -p 9201:9200 -e DISABLE_SECURITY_PLUGIN=true -e discovery.type=single-node \
        opensearchproject/opensearch:2

Tests are skipped when a backend does not answer.  Override the endpoints
with ``PAPERINDEX_TEST_MEILISEARCH_URL`` / ``PAPERINDEX_TEST_OPENSEARCH_URL``.
"""

from __future__ import annotations

import os
import time
from datetime import UTC, datetime

import httpx
import pytest

from paperindex.models.paper import PaperCreate

MEILISEARCH_URL = os.environ.get("PAPERINDEX_TEST_MEILISEARCH_URL", "http://localhost:7700")
MEILISEARCH_KEY = os.environ.get("PAPERINDEX_TEST_MEILISEARCH_KEY", "test-master-key")
OPENSEARCH_URL = os.environ.get("PAPERINDEX_TEST_OPENSEARCH_URL", "http://localhost:9201")
SERVICE_TIMEOUT = float(os.environ.get("PAPERINDEX_TEST_SERVICE_TIMEOUT", "5"))

SEED_PAPERS: list[PaperCreate] = [
    PaperCreate(
        external_id="arxiv:2406.00001",
        title="Advances in Solar Nowcasting Using Deep Learning",
        summary="A convolutional network predicts solar irradiance from satellite imagery.",
        authors=["Alice Johnson"],
        categories=["cs.LG", "physics.ao-ph"],
        hashtags=["solar", "nowcasting"],
        issued_at=datetime(2024, 6, 15, tzinfo=UTC),
        created_at=datetime(2024, 6, 16, tzinfo=UTC),
        like_count=12,
    ),
    PaperCreate(
        external_id="arxiv:2403.00002",
        title="Transformer Models for Natural Language Understanding",
        summary="We survey BERT, GPT and T5 on GLUE and SuperGLUE.",
        authors=["Bob Smith", "Carol Zhang"],
        categories=["cs.CL"],
        hashtags=["transformers"],
        issued_at=datetime(2024, 3, 20, tzinfo=UTC),
        created_at=datetime(2024, 3, 21, tzinfo=UTC),
        like_count=40,
    ),
    PaperCreate(
        external_id="arxiv:2311.00003",
        title="Federated Learning for Privacy-Preserving Medical Imaging",
        summary="Federated averaging across twelve hospital sites.",
        authors=["Carol Zhang"],
        categories=["cs.LG", "eess.IV"],
        hashtags=["federated"],
        issued_at=datetime(2023, 11, 2, tzinfo=UTC),
        created_at=datetime(2023, 11, 3, tzinfo=UTC),
        like_count=7,
    ),
    PaperCreate(
        external_id="arxiv:2501.00004",
        title="Graph Neural Networks for Drug Discovery",
        summary="Message passing over molecular graphs.",
        authors=["Dana Lee"],
        categories=["cs.LG", "q-bio.BM"],
        hashtags=["gnn"],
        issued_at=datetime(2025, 1, 1, tzinfo=UTC),
        created_at=datetime(2025, 1, 2, tzinfo=UTC),
        like_count=3,
    ),
    PaperCreate(
        external_id="arxiv:0000.00005",
        title="Unpublished Notes on C++ Template Metaprogramming",
        summary="Working draft.",
        authors=["Eve Park"],
        categories=["cs.PL"],
        created_at=datetime(2025, 2, 1, tzinfo=UTC),
    ),
]


def _wait_for_service(url: str, timeout: float = SERVICE_TIMEOUT, **kwargs) -> bool:
    """Block until *url* returns HTTP 200, or timeout."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        try:
            r = httpx.get(url, timeout=2, **kwargs)
            if r.status_code == 200:
                return True
        except httpx.HTTPError:
            pass
        time.sleep(0.5)
    return False


@pytest.fixture(scope="session")
def meilisearch_ready() -> str:
    """Ensure MeiliSearch is running."""
    if not _wait_for_service(f"{MEILISEARCH_URL}/health"):
        pytest.skip(f"MeiliSearch not available at {MEILISEARCH_URL}")
    return MEILISEARCH_URL


@pytest.fixture(scope="session")
def opensearch_ready() -> str:
    """Ensure OpenSearch is running."""
    if not _wait_for_service(OPENSEARCH_URL, verify=False):
        pytest.skip(f"OpenSearch not available at {OPENSEARCH_URL}")
    return OPENSEARCH_URL


@pytest.fixture
def seed_papers() -> list[PaperCreate]:
    return list(SEED_PAPERS)


@pytest.fixture(scope="session")
def meilisearch_key() -> str:
    return MEILISEARCH_KEY
