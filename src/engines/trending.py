"""Time-decayed trending scores and the ranked trending cache.

Each listed/active resource gets::

    raw   = purchases * purchase_weight + views * view_weight
    age   = max(1, floor(days since upload))
    score = raw / (1 + age / decay_days)

With the default weights a purchase counts six times a view, and an item a
week older needs twice the engagement to rank equally. The ranked cache is
replaced in a single transaction so readers never see two generations mixed.
"""

import math
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone

import numpy as np
import pandas as pd

from src.search.types import TrendingResult, TrendingScore
from src.utils.database import (
    VISIBLE_CLAUSE,
    decode_list,
    get_connection,
    parse_db_timestamp,
    to_db_timestamp,
)
from src.utils.logger import get_logger

logger = get_logger(__name__)

SECONDS_PER_DAY = 86400.0


@dataclass(frozen=True)
class TrendingWeights:
    """Tunable trending parameters.

    Attributes:
        purchase_weight: Contribution of one purchase to the raw score.
        view_weight: Contribution of one view to the raw score.
        decay_days: Age in days that adds one unit to the decay divisor.
    """

    purchase_weight: float = 3.0
    view_weight: float = 0.5
    decay_days: float = 7.0

    @classmethod
    def from_config(cls, section: dict | None) -> "TrendingWeights":
        section = section or {}
        return cls(
            purchase_weight=float(section.get("purchase_weight", cls.purchase_weight)),
            view_weight=float(section.get("view_weight", cls.view_weight)),
            decay_days=float(section.get("decay_days", cls.decay_days)),
        )


def age_in_days(uploaded_at: datetime, now: datetime) -> int:
    """Whole days elapsed since upload, never less than 1."""
    if uploaded_at.tzinfo is None:
        uploaded_at = uploaded_at.replace(tzinfo=timezone.utc)
    elapsed = (now - uploaded_at).total_seconds() / SECONDS_PER_DAY
    return max(1, math.floor(elapsed))


def compute_trending_score(
    purchases: int,
    views: int,
    uploaded_at: datetime,
    now: datetime | None = None,
    weights: TrendingWeights | None = None,
) -> float:
    """Compute the decayed trending score for a single resource.

    Args:
        purchases: Completed purchase count.
        views: View count.
        uploaded_at: Upload time of the resource.
        now: Reference time. Defaults to the current UTC time.
        weights: Scoring weights. Defaults to ``TrendingWeights()``.

    Returns:
        The trending score.
    """
    weights = weights or TrendingWeights()
    now = now or datetime.now(timezone.utc)
    raw = purchases * weights.purchase_weight + views * weights.view_weight
    decay = 1.0 + age_in_days(uploaded_at, now) / weights.decay_days
    return raw / decay


def read_trending_cache(db_path: str, limit: int) -> list[TrendingResult]:
    """Read the ranked cache, skipping resources no longer listed.

    Raises:
        sqlite3.Error: If the cache cannot be read.
    """
    conn = get_connection(db_path)
    try:
        rows = conn.execute(
            f"""
            SELECT t.resource_id, t.trending_score, t.rank_position,
                   r.title, r.sports, r.price_cents,
                   TRIM(COALESCE(s.first_name, '') || ' ' || COALESCE(s.last_name, ''))
                       AS seller_name
            FROM trending_cache t
            JOIN resources r ON r.id = t.resource_id
            LEFT JOIN seller_profiles s ON s.id = r.seller_id
            WHERE {VISIBLE_CLAUSE}
            ORDER BY t.rank_position ASC
            LIMIT ?
            """,
            (limit,),
        ).fetchall()
    finally:
        conn.close()

    results = []
    for row in rows:
        sports = decode_list(row["sports"])
        results.append(
            TrendingResult(
                id=row["resource_id"],
                title=row["title"],
                sport=sports[0] if sports else "",
                price_cents=int(row["price_cents"]),
                score=float(row["trending_score"]),
                rank=int(row["rank_position"]),
                seller_name=row["seller_name"] or None,
            )
        )
    return results


class TrendingEngine:
    """Computes trending scores and maintains the ranked cache.

    Attributes:
        db_path: Path to the catalog database.
        weights: Scoring weights.
    """

    def __init__(self, db_path: str, weights: TrendingWeights | None = None) -> None:
        self.db_path = db_path
        self.weights = weights or TrendingWeights()

    def _load_resources(self) -> pd.DataFrame:
        conn = get_connection(self.db_path)
        try:
            return pd.read_sql_query(
                f"""
                SELECT r.id AS resource_id,
                       r.purchase_count AS purchases,
                       r.view_count AS views,
                       COALESCE(r.uploaded_at, r.created_at) AS uploaded_at
                FROM resources r
                WHERE {VISIBLE_CLAUSE}
                """,
                conn,
            )
        finally:
            conn.close()

    def score_frame(self, resources: pd.DataFrame, now: datetime) -> pd.DataFrame:
        """Score a frame of resources and order it by rank.

        Args:
            resources: Columns ``resource_id``, ``purchases``, ``views``,
                ``uploaded_at``.
            now: Reference time for age computation.

        Returns:
            The frame with ``raw_score``, ``age_days``, ``score`` and
            ``rank_position`` columns, sorted by score descending with ties
            broken by resource id ascending.
        """
        frame = resources.copy()
        if frame.empty:
            for column in ("raw_score", "age_days", "score", "rank_position"):
                frame[column] = pd.Series(dtype="float64")
            return frame

        frame["purchases"] = frame["purchases"].fillna(0).astype(int)
        frame["views"] = frame["views"].fillna(0).astype(int)
        uploaded = pd.to_datetime(frame["uploaded_at"], utc=True, format="ISO8601")
        elapsed_days = (pd.Timestamp(now) - uploaded).dt.total_seconds() / SECONDS_PER_DAY
        frame["age_days"] = np.maximum(1, np.floor(elapsed_days)).astype(int)

        w = self.weights
        frame["raw_score"] = frame["purchases"] * w.purchase_weight + frame["views"] * w.view_weight
        frame["score"] = frame["raw_score"] / (1.0 + frame["age_days"] / w.decay_days)

        frame = frame.sort_values(
            ["score", "resource_id"], ascending=[False, True], kind="mergesort"
        ).reset_index(drop=True)
        frame["rank_position"] = np.arange(1, len(frame) + 1)
        return frame

    def _scored(self, now: datetime | None) -> pd.DataFrame:
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return self.score_frame(self._load_resources(), now)

    def compute_all(self, now: datetime | None = None) -> list[TrendingScore]:
        """Score every listed/active resource, highest first.

        Returns an empty list if the catalog cannot be read.
        """
        try:
            frame = self._scored(now)
        except (sqlite3.Error, pd.errors.DatabaseError, ValueError):
            logger.exception("Error computing trending scores")
            return []

        return [
            TrendingScore(
                resource_id=row.resource_id,
                raw_score=float(row.raw_score),
                purchases=int(row.purchases),
                views=int(row.views),
                age_days=int(row.age_days),
                score=float(row.score),
            )
            for row in frame.itertuples(index=False)
        ]

    def refresh(self, now: datetime | None = None) -> int:
        """Recompute all scores and replace the ranked cache atomically.

        When scores cannot be computed the previous cache generation is
        kept and 0 is returned.

        Returns:
            Number of ranked rows written.

        Raises:
            sqlite3.Error: If the new generation cannot be written; the
                transaction is rolled back and the old generation remains.
        """
        try:
            frame = self._scored(now)
        except (sqlite3.Error, pd.errors.DatabaseError, ValueError):
            logger.exception("Trending refresh skipped: scores unavailable")
            return 0

        computed_at = to_db_timestamp(now or datetime.now(timezone.utc))
        rows = [
            (row.resource_id, float(row.score), int(row.rank_position), computed_at)
            for row in frame.itertuples(index=False)
        ]

        conn = get_connection(self.db_path)
        try:
            conn.execute("BEGIN IMMEDIATE")
            conn.execute("DELETE FROM trending_cache")
            conn.executemany(
                """
                INSERT INTO trending_cache
                    (resource_id, trending_score, rank_position, computed_at)
                VALUES (?, ?, ?, ?)
                """,
                rows,
            )
            conn.commit()
        except sqlite3.Error:
            conn.rollback()
            raise
        finally:
            conn.close()

        logger.info("Trending cache refreshed with %d resources", len(rows))
        return len(rows)

    def get_trending(self, limit: int = 12) -> list[TrendingResult]:
        """Top ``limit`` resources from the ranked cache; empty on failure."""
        try:
            return read_trending_cache(self.db_path, limit)
        except sqlite3.Error:
            logger.exception("Error getting trending from cache")
            return []

    def last_computed_at(self) -> datetime | None:
        """Timestamp of the current cache generation, if any."""
        try:
            conn = get_connection(self.db_path)
            try:
                row = conn.execute(
                    "SELECT MAX(computed_at) AS computed_at FROM trending_cache"
                ).fetchone()
            finally:
                conn.close()
        except sqlite3.Error:
            logger.exception("Error reading trending cache generation")
            return None
        return parse_db_timestamp(row["computed_at"]) if row else None
