"""FastAPI dependency injection for shared resources.

Provides dependency functions for accessing the search gateway, scoring
engines, cache layer and click tracker stored on the application state.
"""

from fastapi import Request

from src.analytics.clicks import ClickTracker
from src.api.cache import RedisCache
from src.engines.recommendations import RecommendationEngine
from src.engines.trending import TrendingEngine
from src.search.gateway import SearchGateway
from src.search.relational import RelationalSearchBackend


def get_gateway(request: Request) -> SearchGateway:
    """Retrieve the search gateway from app state.

    Args:
        request: The incoming FastAPI request.

    Returns:
        The gateway built at startup.
    """
    return request.app.state.gateway


def get_fallback(request: Request) -> RelationalSearchBackend:
    """Retrieve the relational backend used when the gateway is unavailable."""
    return request.app.state.fallback


def get_trending_engine(request: Request) -> TrendingEngine:
    return request.app.state.trending_engine


def get_recommendation_engine(request: Request) -> RecommendationEngine:
    return request.app.state.recommendation_engine


def get_cache(request: Request) -> RedisCache | None:
    """Retrieve the Redis cache, or None when caching is not configured."""
    return getattr(request.app.state, "cache", None)


def get_click_tracker(request: Request) -> ClickTracker:
    return request.app.state.click_tracker


def get_db_path(request: Request) -> str:
    return request.app.state.db_path
