"""Domain types shared by every search backend and scoring engine.

These are plain dataclasses; the HTTP layer converts them to and from the
pydantic schemas in ``src.api.schemas``.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class SortMode(str, Enum):
    """Result orderings every backend must support."""

    RELEVANCE = "relevance"
    NEWEST = "newest"
    TRENDING = "trending"
    PRICE_ASC = "price_asc"
    PRICE_DESC = "price_desc"
    RATING = "rating"
    POPULAR = "popular"


class RecommendationReason(str, Enum):
    """Why a resource was recommended."""

    CO_PURCHASE = "co_purchase"
    SAME_SELLER = "same_seller"
    SAME_SPORT = "same_sport"
    SIMILAR_CONTENT = "similar_content"


@dataclass
class ListingDocument:
    """Denormalized, indexable projection of a catalog listing.

    Attributes:
        id: Resource identifier.
        title: Listing title.
        description: Listing description.
        tags: Free-text tags.
        sport: Primary sport tag.
        level: Primary level tag.
        file_type: File type of the downloadable resource.
        price_cents: Price in minor currency units, never negative.
        uploaded_at: Upload timestamp (aware, UTC).
        purchase_count: Completed purchases.
        view_count: Detail page views.
        rating: Average rating, clamped to [0, 5].
        is_listed: True only for listed and active resources.
        seller_name: Display name of the seller.
        seller_id: Seller identifier.
    """

    id: str
    title: str
    description: str
    tags: list[str]
    sport: str
    level: str
    file_type: str
    price_cents: int
    uploaded_at: datetime
    purchase_count: int = 0
    view_count: int = 0
    rating: float = 0.0
    is_listed: bool = True
    seller_name: str | None = None
    seller_id: str | None = None

    def __post_init__(self) -> None:
        if isinstance(self.price_cents, bool) or not isinstance(self.price_cents, int):
            raise ValueError(f"price_cents must be an integer, got {self.price_cents!r}")
        if self.price_cents < 0:
            raise ValueError(f"price_cents must be non-negative, got {self.price_cents}")
        self.rating = min(5.0, max(0.0, float(self.rating or 0.0)))

    def to_index_body(self) -> dict:
        """Serialize for remote indexes (dates as ISO strings and epoch seconds)."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "tags": list(self.tags),
            "sport": self.sport,
            "level": self.level,
            "file_type": self.file_type,
            "price_cents": self.price_cents,
            "uploaded_at": self.uploaded_at.isoformat(),
            "uploaded_at_ts": int(self.uploaded_at.timestamp()),
            "purchase_count": self.purchase_count,
            "view_count": self.view_count,
            "rating": self.rating,
            "is_listed": self.is_listed,
            "seller_name": self.seller_name,
            "seller_id": self.seller_id,
        }


@dataclass
class SearchFilters:
    """Optional, additive filters applied on top of the listed/active filter."""

    sports: list[str] = field(default_factory=list)
    levels: list[str] = field(default_factory=list)
    file_types: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    price_min: int | None = None
    price_max: int | None = None
    rating_min: float | None = None
    uploaded_from: datetime | None = None
    uploaded_to: datetime | None = None


@dataclass
class SearchQuery:
    """A search request.

    Raises:
        ValueError: If page < 1 or per_page <= 0.
    """

    q: str = ""
    page: int = 1
    per_page: int = 20
    filters: SearchFilters = field(default_factory=SearchFilters)
    sort: SortMode = SortMode.RELEVANCE

    def __post_init__(self) -> None:
        if self.page < 1:
            raise ValueError(f"page must be >= 1, got {self.page}")
        if self.per_page <= 0:
            raise ValueError(f"per_page must be > 0, got {self.per_page}")
        self.q = (self.q or "").strip()
        self.sort = SortMode(self.sort)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per_page


@dataclass
class SearchHit:
    """One search result row."""

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
    uploaded_at: datetime | None
    seller_name: str | None = None
    seller_id: str | None = None
    highlights: dict[str, str] | None = None


@dataclass
class SearchResult:
    """A page of hits plus paging metadata and optional facets."""

    hits: list[SearchHit]
    total_hits: int
    page: int
    total_pages: int
    processing_time_ms: int
    facets: dict[str, dict[str, int]] | None = None


@dataclass
class TrendingScore:
    """Intermediate trending computation for one resource."""

    resource_id: str
    raw_score: float
    purchases: int
    views: int
    age_days: int
    score: float


@dataclass
class TrendingResult:
    """A ranked trending resource as served to callers."""

    id: str
    title: str
    sport: str
    price_cents: int
    score: float
    rank: int
    seller_name: str | None = None


@dataclass
class RecommendationResult:
    """A related resource with its algorithm-internal similarity score."""

    id: str
    title: str
    sport: str
    level: str
    price_cents: int
    rating: float
    purchase_count: int
    similarity_score: float
    reason: RecommendationReason


def total_pages_for(total_hits: int, per_page: int) -> int:
    """Number of pages needed to show ``total_hits`` results."""
    return math.ceil(total_hits / per_page) if total_hits > 0 else 0


def empty_result(query: SearchQuery, elapsed_ms: int = 0) -> SearchResult:
    """A well-formed zero-hit result for ``query``."""
    return SearchResult(
        hits=[],
        total_hits=0,
        page=query.page,
        total_pages=0,
        processing_time_ms=elapsed_ms,
        facets={},
    )
