"""Recommendation API endpoints.

Provides related-resource recommendations for a listing using the
co-purchase engine with its content-similarity fallback, and other
listings by the same seller.
"""

import sqlite3
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Query

from src.api.cache import RedisCache
from src.api.dependencies import (
    get_cache,
    get_db_path,
    get_gateway,
    get_recommendation_engine,
)
from src.api.schemas import RecommendationItem, RecommendResponse
from src.engines.recommendations import RecommendationEngine
from src.search.gateway import SearchGateway
from src.utils.database import get_resource_row
from src.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/recommendations", tags=["recommendations"])


@router.get("/{resource_id}", response_model=RecommendResponse)
def get_recommendations(
    resource_id: str,
    limit: int = Query(default=12, ge=1, le=50),
    gateway: SearchGateway = Depends(get_gateway),
    engine: RecommendationEngine = Depends(get_recommendation_engine),
    cache: RedisCache | None = Depends(get_cache),
) -> RecommendResponse:
    """Get up to ``limit`` resources related to ``resource_id``.

    Args:
        resource_id: The source resource.
        limit: Number of recommendations to return.

    Returns:
        RecommendResponse with related resources, possibly empty.
    """
    key = RedisCache.rec_key(resource_id, limit)
    if cache is not None:
        cached = cache.get(key)
        if cached is not None:
            return RecommendResponse(
                resource_id=resource_id,
                recommendations=[RecommendationItem(**item) for item in cached],
                cached=True,
            )

    results = engine.recommend(resource_id, limit=limit)
    if not results:
        results = gateway.get_recommendations(resource_id, limit)

    items = [
        RecommendationItem(**{**asdict(r), "similarity_score": round(r.similarity_score, 4)})
        for r in results
    ]
    if cache is not None and items:
        cache.set(key, [item.model_dump(mode="json") for item in items])

    return RecommendResponse(resource_id=resource_id, recommendations=items, cached=False)


@router.get("/{resource_id}/seller", response_model=RecommendResponse)
def get_seller_resources(
    resource_id: str,
    limit: int = Query(default=6, ge=1, le=50),
    engine: RecommendationEngine = Depends(get_recommendation_engine),
    db_path: str = Depends(get_db_path),
) -> RecommendResponse:
    """Other listings by the seller of ``resource_id``, most purchased first.

    Raises:
        HTTPException: 404 if the resource is not in the catalog, 503 if the
            catalog cannot be read.
    """
    try:
        row = get_resource_row(db_path, resource_id)
    except sqlite3.Error as e:
        logger.error("Catalog read failed for %s: %s", resource_id, e)
        raise HTTPException(status_code=503, detail="Catalog unavailable")
    if row is None:
        raise HTTPException(status_code=404, detail=f"Resource {resource_id} not found")
    if not row["seller_id"]:
        return RecommendResponse(resource_id=resource_id, recommendations=[])

    results = engine.seller_other_resources(resource_id, row["seller_id"], limit)
    return RecommendResponse(
        resource_id=resource_id,
        recommendations=[RecommendationItem(**asdict(r)) for r in results],
    )
