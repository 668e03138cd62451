"""Search click tracking.

Clicks are appended to the ``search_clicks`` table for the analytics
collaborator to consume. Tracking is fire-and-forget: failures are logged
and never reach the caller.
"""

import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone

from src.utils.database import get_connection, parse_db_timestamp, to_db_timestamp
from src.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class ClickEvent:
    """A search result click."""

    query: str
    resource_id: str
    session_id: str | None
    clicked_at: datetime


class ClickTracker:
    """Records search result clicks.

    Attributes:
        db_path: Path to the catalog database.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path

    def track_click(
        self,
        query: str,
        resource_id: str,
        session_id: str | None = None,
        clicked_at: datetime | None = None,
    ) -> bool:
        """Record one click.

        Returns:
            True if the click was stored.
        """
        event = ClickEvent(
            query=(query or "").strip(),
            resource_id=resource_id,
            session_id=session_id,
            clicked_at=clicked_at or datetime.now(timezone.utc),
        )
        try:
            conn = get_connection(self.db_path)
            try:
                conn.execute(
                    """
                    INSERT INTO search_clicks (query, resource_id, session_id, clicked_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (
                        event.query,
                        event.resource_id,
                        event.session_id,
                        to_db_timestamp(event.clicked_at),
                    ),
                )
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.warning("Could not record click on %s: %s", resource_id, e)
            return False
        return True

    def recent_clicks(self, limit: int = 100) -> list[ClickEvent]:
        """Most recent clicks first."""
        conn = get_connection(self.db_path)
        try:
            rows = conn.execute(
                "SELECT query, resource_id, session_id, clicked_at FROM search_clicks "
                "ORDER BY clicked_at DESC, id DESC LIMIT ?",
                (limit,),
            ).fetchall()
        finally:
            conn.close()
        return [
            ClickEvent(
                query=row["query"],
                resource_id=row["resource_id"],
                session_id=row["session_id"],
                clicked_at=parse_db_timestamp(row["clicked_at"]),
            )
            for row in rows
        ]
