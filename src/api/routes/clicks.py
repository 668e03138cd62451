"""Search click tracking endpoints."""

import sqlite3
from dataclasses import asdict

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query

from src.analytics.clicks import ClickTracker
from src.api.dependencies import get_click_tracker
from src.api.schemas import ClickItem, ClickRequest, ClickResponse, RecentClicksResponse
from src.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/clicks", tags=["analytics"])


@router.post("", response_model=ClickResponse, status_code=202)
async def track_click(
    click: ClickRequest,
    background_tasks: BackgroundTasks,
    tracker: ClickTracker = Depends(get_click_tracker),
) -> ClickResponse:
    """Accept a click and record it after the response is sent."""
    background_tasks.add_task(
        tracker.track_click, click.query, click.resource_id, click.session_id
    )
    return ClickResponse(accepted=True)


@router.get("/recent", response_model=RecentClicksResponse)
def recent_clicks(
    limit: int = Query(default=100, ge=1, le=1000),
    tracker: ClickTracker = Depends(get_click_tracker),
) -> RecentClicksResponse:
    """Most recent recorded clicks, newest first."""
    try:
        events = tracker.recent_clicks(limit)
    except sqlite3.Error as e:
        logger.error("Click history read failed: %s", e)
        raise HTTPException(status_code=503, detail="Click history unavailable")
    return RecentClicksResponse(clicks=[ClickItem(**asdict(event)) for event in events])
