"""Search API endpoint.

Queries go to the configured backend through the gateway. When that
backend is unreachable the relational fallback answers and the response
is flagged as degraded.
"""

from dataclasses import asdict
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query

from src.api.dependencies import get_fallback, get_gateway
from src.api.schemas import SearchHitItem, SearchResponse
from src.search.errors import SearchBackendUnavailable
from src.search.gateway import SearchGateway
from src.search.relational import RelationalSearchBackend
from src.search.types import SearchFilters, SearchQuery, SortMode
from src.utils.config import config
from src.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/search", tags=["search"])

_search_config = config.get("search", {})
DEFAULT_PER_PAGE = int(_search_config.get("default_per_page", 20))
MAX_PER_PAGE = int(_search_config.get("max_per_page", 100))


@router.get("", response_model=SearchResponse)
def search(
    q: str = Query(default="", max_length=200),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=DEFAULT_PER_PAGE, ge=1, le=MAX_PER_PAGE),
    sort: SortMode = Query(default=SortMode.RELEVANCE),
    sports: list[str] = Query(default=[]),
    levels: list[str] = Query(default=[]),
    file_types: list[str] = Query(default=[]),
    tags: list[str] = Query(default=[]),
    price_min: int | None = Query(default=None, ge=0),
    price_max: int | None = Query(default=None, ge=0),
    rating_min: float | None = Query(default=None, ge=0, le=5),
    uploaded_from: datetime | None = None,
    uploaded_to: datetime | None = None,
    gateway: SearchGateway = Depends(get_gateway),
    fallback: RelationalSearchBackend = Depends(get_fallback),
) -> SearchResponse:
    """Search listed resources.

    Args:
        q: Free-text query; empty browses the catalog.
        page: 1-based page number.
        per_page: Page size.
        sort: Result ordering.

    Returns:
        SearchResponse with one page of hits.
    """
    try:
        query = SearchQuery(
            q=q,
            page=page,
            per_page=per_page,
            sort=sort,
            filters=SearchFilters(
                sports=sports,
                levels=levels,
                file_types=file_types,
                tags=tags,
                price_min=price_min,
                price_max=price_max,
                rating_min=rating_min,
                uploaded_from=uploaded_from,
                uploaded_to=uploaded_to,
            ),
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    vendor = gateway.vendor
    degraded = False
    try:
        result = gateway.search(query)
    except SearchBackendUnavailable as e:
        if gateway.backend is fallback:
            raise HTTPException(status_code=503, detail=str(e))
        logger.warning("%s search unavailable, using database fallback: %s", vendor, e)
        try:
            result = fallback.search(query)
        except SearchBackendUnavailable as fallback_error:
            raise HTTPException(status_code=503, detail=str(fallback_error))
        vendor = fallback.vendor
        degraded = True

    return SearchResponse(
        hits=[SearchHitItem(**asdict(hit)) for hit in result.hits],
        total_hits=result.total_hits,
        page=result.page,
        total_pages=result.total_pages,
        processing_time_ms=result.processing_time_ms,
        facets=result.facets,
        vendor=vendor,
        degraded=degraded,
    )
