"""Background refresh of the trending cache."""

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from src.engines.trending import TrendingEngine
from src.utils.logger import get_logger

logger = get_logger(__name__)

JOB_ID = "refresh_trending"


def run_trending_refresh(engine: TrendingEngine, on_refresh=None) -> int:
    """Refresh the trending cache, logging instead of raising on failure.

    Args:
        engine: The trending engine to run.
        on_refresh: Optional callback invoked after a successful refresh,
            e.g. to invalidate cached trending responses.

    Returns:
        Rows written, or 0 if the refresh failed.
    """
    try:
        written = engine.refresh()
    except Exception:
        logger.exception("Scheduled trending refresh failed")
        return 0
    if on_refresh is not None:
        on_refresh()
    logger.info("Scheduled trending refresh completed (%d rows)", written)
    return written


def start_scheduler(
    engine: TrendingEngine, scheduler_config: dict, on_refresh=None
) -> BackgroundScheduler | None:
    """Start the background scheduler if enabled in config.

    Args:
        engine: The trending engine whose cache is refreshed.
        scheduler_config: The ``scheduler`` config section.
        on_refresh: Passed through to ``run_trending_refresh``.

    Returns:
        The running scheduler, or None when scheduling is disabled.
    """
    if not scheduler_config.get("enabled"):
        logger.info("Scheduled trending refresh is disabled")
        return None

    minutes = int(scheduler_config.get("trending_refresh_minutes", 60))
    scheduler = BackgroundScheduler()
    scheduler.add_job(
        run_trending_refresh,
        trigger=IntervalTrigger(minutes=minutes),
        args=[engine, on_refresh],
        id=JOB_ID,
        name="Trending cache refresh",
        replace_existing=True,
    )
    scheduler.start()
    logger.info("Trending refresh scheduled every %d minutes", minutes)
    return scheduler
