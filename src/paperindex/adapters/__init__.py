"""Search backend layer: Interchangeable connectors for the paper index.

Built-in backends:
  - meilisearch: MeiliSearch (instant, typo-tolerant search)
  - opensearch: OpenSearch v2+ (BM25 full-text search)

Subclass ``SearchBackend`` to index papers into another engine.
"""
