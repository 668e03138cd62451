"""FastAPI application setup and configuration.

Defines the FastAPI application with lifespan management for the search
gateway, scoring engines, cache and background scheduler, and registers
the API routes.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import redis
from fastapi import FastAPI, Request

from src.analytics.clicks import ClickTracker
from src.api.cache import RedisCache
from src.api.routes import clicks, index, recommend, search, trending
from src.api.schemas import HealthResponse
from src.engines.recommendations import RecommendationEngine, RecommendationWeights
from src.engines.trending import TrendingEngine, TrendingWeights
from src.jobs.scheduler import start_scheduler
from src.search.gateway import SearchGateway
from src.search.relational import RelationalSearchBackend
from src.utils.config import config, settings
from src.utils.database import init_db
from src.utils.logger import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifecycle: startup and shutdown.

    Initializes the catalog database, builds the search gateway for the
    configured vendor and the scoring engines, and starts the trending
    refresh job when enabled.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control to the application runtime.

    Raises:
        ConfigurationError: If the configured search vendor is unknown or
            incompletely configured.
    """
    db_path = settings.db_path
    init_db(db_path)
    app.state.db_path = db_path

    gateway = SearchGateway.from_settings(settings, config.get("search", {}))
    app.state.gateway = gateway
    # A relational gateway doubles as its own fallback.
    if isinstance(gateway.backend, RelationalSearchBackend):
        app.state.fallback = gateway.backend
    else:
        app.state.fallback = RelationalSearchBackend(db_path)
    app.state.trending_engine = TrendingEngine(
        db_path, TrendingWeights.from_config(config.get("trending"))
    )
    app.state.recommendation_engine = RecommendationEngine(
        db_path, RecommendationWeights.from_config(config.get("recommendations"))
    )
    app.state.click_tracker = ClickTracker(db_path)

    redis_config = config.get("redis", {})
    app.state.cache = RedisCache(
        redis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            db=int(redis_config.get("db", 0)),
            decode_responses=True,
        )
    )

    scheduler = start_scheduler(
        app.state.trending_engine,
        config.get("scheduler", {}),
        on_refresh=app.state.cache.invalidate_trending,
    )

    logger.info("Application started with %s search backend", app.state.gateway.vendor)
    yield
    if scheduler is not None:
        scheduler.shutdown(wait=False)
    logger.info("Application shutdown")


app = FastAPI(
    title="Marketplace Search",
    version=config.get("app", {}).get("version", "1.0.0"),
    lifespan=lifespan,
)

app.include_router(search.router)
app.include_router(trending.router)
app.include_router(recommend.router)
app.include_router(index.router)
app.include_router(clicks.router)


@app.get("/health", response_model=HealthResponse)
def health_check(request: Request) -> HealthResponse:
    """Check application health status.

    The backend probe is time-bounded by the gateway, so a hung backend
    reports unhealthy instead of blocking the check.

    Returns:
        HealthResponse with the backend vendor and probe result.
    """
    gateway: SearchGateway = request.app.state.gateway
    healthy = gateway.is_healthy()
    return HealthResponse(
        status="healthy" if healthy else "degraded",
        vendor=gateway.vendor,
        backend_healthy=healthy,
    )
