"""The capability set every search backend implements.

Backends satisfy ``SearchBackend`` structurally; they do not inherit from a
common base class. A new backend is added by implementing these methods and
registering a factory in ``src.search.gateway``.
"""

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from src.search.types import (
    ListingDocument,
    RecommendationResult,
    SearchQuery,
    SearchResult,
    SortMode,
    TrendingResult,
)

# Facet buckets for prices in cents: (label, inclusive lower, exclusive upper).
PRICE_RANGES: list[tuple[str, int, int | None]] = [
    ("free", 0, 1),
    ("under_10", 1, 1000),
    ("10_to_25", 1000, 2500),
    ("25_to_50", 2500, 5000),
    ("50_plus", 5000, None),
]

FACET_FIELDS = {"sports": "sport", "levels": "level", "file_types": "file_type"}

# (field, descending) pairs applied after the primary ordering of each mode.
# Relevance is handled by each backend's own scoring.
SORT_FIELDS: dict[SortMode, list[tuple[str, bool]]] = {
    SortMode.NEWEST: [("uploaded_at", True)],
    SortMode.PRICE_ASC: [("price_cents", False), ("uploaded_at", True)],
    SortMode.PRICE_DESC: [("price_cents", True), ("uploaded_at", True)],
    SortMode.RATING: [("rating", True), ("uploaded_at", True)],
    SortMode.POPULAR: [("purchase_count", True), ("uploaded_at", True)],
    SortMode.TRENDING: [
        ("purchase_count", True),
        ("view_count", True),
        ("uploaded_at", True),
    ],
}


@runtime_checkable
class SearchBackend(Protocol):
    """Query, indexing and health contract shared by all backends."""

    def search(self, query: SearchQuery) -> SearchResult:
        """Run ``query``; only listed/active resources may be returned."""
        ...

    def index_resource(self, document: ListingDocument) -> None:
        """Insert or replace one document."""
        ...

    def remove_resource(self, resource_id: str) -> None:
        """Delete one document; unknown ids are ignored."""
        ...

    def reindex_all(self, documents: Sequence[ListingDocument]) -> None:
        """Replace the whole corpus without exposing a mixed generation."""
        ...

    def get_trending(self, limit: int = 12) -> list[TrendingResult]:
        """Native trending fast path, or an empty list."""
        ...

    def get_recommendations(
        self, resource_id: str, limit: int = 12
    ) -> list[RecommendationResult]:
        """Native related-items fast path, or an empty list."""
        ...

    def is_healthy(self) -> bool:
        """Cheap liveness probe."""
        ...


def price_range_label(price_cents: int) -> str:
    """Return the facet bucket label for a price."""
    for label, low, high in PRICE_RANGES:
        if price_cents >= low and (high is None or price_cents < high):
            return label
    return PRICE_RANGES[-1][0]
