"""Static configuration of the paper index.

Every backend derives its schema from :func:`build_paper_index`.
"""

from __future__ import annotations

from paperindex.models.index import IndexDescriptor, TypoTolerance

PAPERS_INDEX = "papers"

# Priority order: a title match is the strongest signal, an author match the weakest.
SEARCHABLE_ATTRIBUTES = (
    "title",
    "translatedSummary",
    "summary",
    "hashtags",
    "categories",
    "authors",
)

DISPLAYED_ATTRIBUTES = (
    "id",
    "externalId",
    "title",
    "summary",
    "translatedSummary",
    "authors",
    "categories",
    "hashtags",
    "doi",
    "issuedAt",
    "createdAt",
    "likeCount",
    "totalViewCount",
)

FILTERABLE_ATTRIBUTES = frozenset(
    {"categories", "authors", "issuedAt", "createdAt", "likeCount", "totalViewCount"}
)

SORTABLE_ATTRIBUTES = frozenset({"issuedAt", "createdAt", "likeCount", "totalViewCount"})

# Explicit sort sits below lexical relevance; exactness is the last tie-break.
RANKING_RULES = ("words", "typo", "proximity", "attribute", "sort", "exactness")

STOP_WORDS = (
    # Korean particles
    "은", "는", "이", "가", "을", "를", "의", "에", "와", "과",
    "도", "로", "으로", "에서", "에게", "께",
    # English function words
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with",
)  # fmt: skip

SEPARATOR_TOKENS = ("&", "/", "|")

# Kept inside words so "C++", "C#" and "F#" stay searchable.
NON_SEPARATOR_TOKENS = ("+", "#")


def build_paper_index(name: str = PAPERS_INDEX) -> IndexDescriptor:
    """Return the descriptor of the paper index named *name*."""
    return IndexDescriptor(
        name=name,
        primary_key="id",
        searchable_attributes=SEARCHABLE_ATTRIBUTES,
        displayed_attributes=DISPLAYED_ATTRIBUTES,
        filterable_attributes=FILTERABLE_ATTRIBUTES,
        sortable_attributes=SORTABLE_ATTRIBUTES,
        ranking_rules=RANKING_RULES,
        typo_tolerance=TypoTolerance(enabled=True, one_typo_min_word_size=3, two_typos_min_word_size=6),
        stop_words=STOP_WORDS,
        separator_tokens=SEPARATOR_TOKENS,
        non_separator_tokens=NON_SEPARATOR_TOKENS,
    )
