"""Pydantic schemas for API request/response validation.

Defines the data models used for serialization and validation of all
API endpoint inputs and outputs.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from src.search.types import RecommendationReason


class SearchHitItem(BaseModel):
    """A single search hit.

    Attributes:
        id: Resource identifier.
        highlights: Optional ``<em>``-marked title/description snippets.
    """

    id: str
    title: str
    description: str
    sport: str
    level: str
    file_type: str
    price_cents: int
    rating: float
    purchase_count: int
    view_count: int
    uploaded_at: datetime | None = None
    seller_name: str | None = None
    seller_id: str | None = None
    highlights: dict[str, str] | None = None


class SearchResponse(BaseModel):
    """Response schema for the search endpoint.

    Attributes:
        hits: The current page of results.
        total_hits: Matches across all pages.
        page: 1-based page number.
        total_pages: ``ceil(total_hits / per_page)``.
        processing_time_ms: Backend latency.
        facets: Per-bucket counts among the matches.
        vendor: Backend that answered the query.
        degraded: True when the relational fallback answered instead of
            the configured backend.
    """

    hits: list[SearchHitItem]
    total_hits: int
    page: int
    total_pages: int
    processing_time_ms: int
    facets: dict[str, dict[str, int]] | None = None
    vendor: str
    degraded: bool = False


class TrendingItem(BaseModel):
    """A ranked trending resource."""

    id: str
    title: str
    sport: str
    price_cents: int
    score: float
    rank: int
    seller_name: str | None = None


class TrendingResponse(BaseModel):
    """Response schema for the trending endpoint.

    Attributes:
        items: Ranked resources, best first.
        cached: Whether the result was served from cache.
    """

    items: list[TrendingItem]
    cached: bool = False


class TrendingRefreshResponse(BaseModel):
    """Response schema for a trending cache refresh."""

    refreshed: int
    computed_at: datetime | None = None


class RecommendationItem(BaseModel):
    """A single recommended resource with its score."""

    id: str
    title: str
    sport: str
    level: str
    price_cents: int
    rating: float
    purchase_count: int
    similarity_score: float
    reason: RecommendationReason


class RecommendResponse(BaseModel):
    """Response schema for the recommendation endpoint.

    Attributes:
        resource_id: The source resource.
        recommendations: Related resources.
        cached: Whether the result was served from cache.
    """

    resource_id: str
    recommendations: list[RecommendationItem]
    cached: bool = False


class ClickRequest(BaseModel):
    """Request schema for recording a search result click."""

    query: str = Field(default="", max_length=500)
    resource_id: str = Field(min_length=1)
    session_id: str | None = None


class ClickResponse(BaseModel):
    accepted: bool


class ClickItem(BaseModel):
    """A recorded search result click."""

    query: str
    resource_id: str
    session_id: str | None = None
    clicked_at: datetime


class RecentClicksResponse(BaseModel):
    clicks: list[ClickItem]


class IndexResponse(BaseModel):
    """Response schema for indexing operations.

    Attributes:
        action: ``indexed``, ``removed`` or ``rebuilt``.
        resource_id: The affected resource, if a single one.
        count: Documents written by a rebuild.
    """

    action: str
    resource_id: str | None = None
    count: int | None = None


class HealthResponse(BaseModel):
    """Response schema for health check endpoint.

    Attributes:
        status: ``healthy`` or ``degraded``.
        vendor: The configured search vendor.
        backend_healthy: Result of the bounded backend probe.
    """

    status: str
    vendor: str
    backend_healthy: bool
