"""Search backend for deployments without a search service.

Returns well-formed empty results for every call so callers never need to
special-case a missing backend.
"""

from collections.abc import Sequence

from src.search.types import (
    ListingDocument,
    RecommendationResult,
    SearchQuery,
    SearchResult,
    TrendingResult,
    empty_result,
)
from src.utils.logger import get_logger

logger = get_logger(__name__)


class DisabledSearchBackend:
    """No-op backend; always healthy, never matches anything."""

    vendor = "none"

    def search(self, query: SearchQuery) -> SearchResult:
        return empty_result(query)

    def index_resource(self, document: ListingDocument) -> None:
        logger.debug("Search disabled; not indexing %s", document.id)

    def remove_resource(self, resource_id: str) -> None:
        logger.debug("Search disabled; not removing %s", resource_id)

    def reindex_all(self, documents: Sequence[ListingDocument]) -> None:
        logger.debug("Search disabled; skipping reindex of %d documents", len(documents))

    def get_trending(self, limit: int = 12) -> list[TrendingResult]:
        return []

    def get_recommendations(
        self, resource_id: str, limit: int = 12
    ) -> list[RecommendationResult]:
        return []

    def is_healthy(self) -> bool:
        return True
