"""Trending API endpoints.

Reads try the response cache, then the backend's native fast path, then
the ranked trending cache maintained by the trending engine.
"""

import sqlite3
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Query

from src.api.cache import RedisCache
from src.api.dependencies import get_cache, get_gateway, get_trending_engine
from src.api.schemas import TrendingItem, TrendingRefreshResponse, TrendingResponse
from src.engines.trending import TrendingEngine
from src.search.gateway import SearchGateway
from src.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/trending", tags=["trending"])


@router.get("", response_model=TrendingResponse)
def get_trending(
    limit: int = Query(default=12, ge=1, le=100),
    gateway: SearchGateway = Depends(get_gateway),
    engine: TrendingEngine = Depends(get_trending_engine),
    cache: RedisCache | None = Depends(get_cache),
) -> TrendingResponse:
    """Get the top ``limit`` trending resources.

    Args:
        limit: Number of resources to return.

    Returns:
        TrendingResponse ordered by rank.
    """
    key = RedisCache.trending_key(limit)
    if cache is not None:
        cached = cache.get(key)
        if cached is not None:
            return TrendingResponse(items=[TrendingItem(**item) for item in cached], cached=True)

    results = gateway.get_trending(limit) or engine.get_trending(limit)
    items = [TrendingItem(**asdict(result)) for result in results]

    if cache is not None and items:
        cache.set(key, [item.model_dump() for item in items], ttl=cache.trending_ttl)
    return TrendingResponse(items=items, cached=False)


@router.post("/refresh", response_model=TrendingRefreshResponse)
def refresh_trending(
    engine: TrendingEngine = Depends(get_trending_engine),
    cache: RedisCache | None = Depends(get_cache),
) -> TrendingRefreshResponse:
    """Recompute trending scores and replace the ranked cache."""
    try:
        written = engine.refresh()
    except sqlite3.Error as e:
        logger.error("Trending refresh failed: %s", e)
        raise HTTPException(status_code=503, detail="Trending refresh failed")

    if cache is not None:
        cache.invalidate_trending()
    return TrendingRefreshResponse(refreshed=written, computed_at=engine.last_computed_at())
