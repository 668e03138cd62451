"""Related-item recommendations for a catalog resource.

Two stages:

1. Co-purchase: other resources bought by buyers of the source resource,
   scored by the number of distinct co-purchasing buyers plus a recency
   weight that decays linearly to a floor over a 30-day window.
2. Content fill: when stage 1 comes up short, listings sharing the source's
   seller, sports, levels or category, scored by overlap with a small
   popularity nudge.

Recommendations are an enhancement, so store errors in either stage are
logged and the engine returns whatever it managed to compute.
"""

import math
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone

import numpy as np
import pandas as pd

from src.search.types import RecommendationReason, RecommendationResult
from src.utils.database import (
    COMPLETED_PURCHASE_STATUSES,
    VISIBLE_CLAUSE,
    decode_list,
    get_connection,
)
from src.utils.logger import get_logger

logger = get_logger(__name__)

SECONDS_PER_DAY = 86400.0


@dataclass(frozen=True)
class RecommendationWeights:
    """Tunable recommendation parameters.

    Field names match the keys of the ``recommendations`` config section.
    """

    co_purchase_count_weight: float = 1.0
    co_purchase_recency_weight: float = 0.25
    recency_window_days: float = 30.0
    recency_floor: float = 0.1
    same_seller_bonus: float = 2.0
    sport_overlap_weight: float = 1.5
    level_overlap_weight: float = 1.0
    category_match_weight: float = 1.0
    popularity_weight: float = 0.1

    @classmethod
    def from_config(cls, section: dict | None) -> "RecommendationWeights":
        section = section or {}
        values = {
            name: float(section[name])
            for name in cls.__dataclass_fields__
            if name in section
        }
        return cls(**values)


def recency_weight(days_since_purchase: int, weights: RecommendationWeights | None = None) -> float:
    """Weight of one co-purchase made ``days_since_purchase`` days ago."""
    weights = weights or RecommendationWeights()
    return max(
        weights.recency_floor,
        1.0 - days_since_purchase / weights.recency_window_days,
    )


def _first(values: list[str]) -> str:
    return values[0] if values else ""


def _placeholders(values) -> str:
    return ", ".join("?" for _ in values)


class RecommendationEngine:
    """Co-purchase recommender with a content-similarity fallback.

    Attributes:
        db_path: Path to the catalog database.
        weights: Scoring weights.
    """

    def __init__(
        self, db_path: str, weights: RecommendationWeights | None = None
    ) -> None:
        self.db_path = db_path
        self.weights = weights or RecommendationWeights()

    def _load_co_purchases(self, resource_id: str) -> pd.DataFrame:
        statuses = list(COMPLETED_PURCHASE_STATUSES)
        conn = get_connection(self.db_path)
        try:
            return pd.read_sql_query(
                f"""
                SELECT p.buyer_id, p.resource_id, p.created_at,
                       r.title, r.sports, r.levels, r.price_cents,
                       r.rating, r.purchase_count
                FROM purchases p
                JOIN resources r ON r.id = p.resource_id
                WHERE p.buyer_id IN (
                        SELECT buyer_id FROM purchases
                        WHERE resource_id = ?
                          AND status IN ({_placeholders(statuses)})
                      )
                  AND p.resource_id != ?
                  AND p.status IN ({_placeholders(statuses)})
                  AND {VISIBLE_CLAUSE}
                """,
                conn,
                params=[resource_id, *statuses, resource_id, *statuses],
            )
        finally:
            conn.close()

    def score_co_purchases(self, purchases: pd.DataFrame, now: datetime) -> pd.DataFrame:
        """Aggregate co-purchase rows into one scored row per candidate.

        Args:
            purchases: One row per qualifying co-purchase with ``buyer_id``,
                ``resource_id`` and ``created_at`` columns plus the
                candidate's display fields.
            now: Reference time for recency.

        Returns:
            Frame with ``buyer_count``, ``recent_weight`` and
            ``score`` columns, sorted by score descending then id ascending.
        """
        if purchases.empty:
            return purchases.assign(buyer_count=[], recent_weight=[], score=[])

        w = self.weights
        frame = purchases.copy()
        created = pd.to_datetime(frame["created_at"], utc=True, format="ISO8601")
        days = np.floor(
            (pd.Timestamp(now) - created).dt.total_seconds() / SECONDS_PER_DAY
        )
        frame["weight"] = np.maximum(w.recency_floor, 1.0 - days / w.recency_window_days)

        grouped = frame.groupby("resource_id", as_index=False).agg(
            buyer_count=("buyer_id", "nunique"),
            recent_weight=("weight", "sum"),
            title=("title", "first"),
            sports=("sports", "first"),
            levels=("levels", "first"),
            price_cents=("price_cents", "first"),
            rating=("rating", "first"),
            purchase_count=("purchase_count", "first"),
        )
        grouped["score"] = (
            grouped["buyer_count"] * w.co_purchase_count_weight
            + grouped["recent_weight"] * w.co_purchase_recency_weight
        )
        return grouped.sort_values(
            ["score", "resource_id"], ascending=[False, True], kind="mergesort"
        ).reset_index(drop=True)

    def co_purchase_candidates(
        self, resource_id: str, now: datetime | None = None
    ) -> list[RecommendationResult]:
        """Stage 1: resources also bought by this resource's buyers.

        Raises:
            sqlite3.Error: If purchases cannot be read.
        """
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        scored = self.score_co_purchases(self._load_co_purchases(resource_id), now)
        return [
            RecommendationResult(
                id=row.resource_id,
                title=row.title,
                sport=_first(decode_list(row.sports)),
                level=_first(decode_list(row.levels)),
                price_cents=int(row.price_cents),
                rating=float(row.rating or 0),
                purchase_count=int(row.purchase_count or 0),
                similarity_score=float(row.score),
                reason=RecommendationReason.CO_PURCHASE,
            )
            for row in scored.itertuples(index=False)
        ]

    def content_candidates(
        self, resource_id: str, exclude: set[str] | None = None
    ) -> list[RecommendationResult]:
        """Stage 2: listings similar in seller, sport, level or category.

        Raises:
            sqlite3.Error: If resources cannot be read.
        """
        exclude = set(exclude or ()) | {resource_id}
        conn = get_connection(self.db_path)
        try:
            source = conn.execute(
                "SELECT sports, levels, category, seller_id FROM resources WHERE id = ?",
                (resource_id,),
            ).fetchone()
            if source is None:
                return []

            source_sports = set(decode_list(source["sports"]))
            source_levels = set(decode_list(source["levels"]))
            category = source["category"]
            seller_id = source["seller_id"]

            matches: list[str] = []
            params: list = []
            for column, values in (("sports", source_sports), ("levels", source_levels)):
                if values:
                    matches.append(
                        f"EXISTS (SELECT 1 FROM json_each(r.{column}) AS je "
                        f"WHERE je.value IN ({_placeholders(values)}))"
                    )
                    params.extend(sorted(values))
            if category:
                matches.append("r.category = ?")
                params.append(category)
            if seller_id:
                matches.append("r.seller_id = ?")
                params.append(seller_id)
            if not matches:
                return []

            rows = conn.execute(
                f"SELECT r.* FROM resources r WHERE {VISIBLE_CLAUSE} "
                f"AND r.id != ? AND ({' OR '.join(matches)})",
                [resource_id, *params],
            ).fetchall()
        finally:
            conn.close()

        w = self.weights
        candidates = []
        for row in rows:
            if row["id"] in exclude:
                continue
            sports = decode_list(row["sports"])
            levels = decode_list(row["levels"])
            purchase_count = int(row["purchase_count"] or 0)

            score = 0.0
            reason = RecommendationReason.SIMILAR_CONTENT
            if seller_id and row["seller_id"] == seller_id:
                score += w.same_seller_bonus
                reason = RecommendationReason.SAME_SELLER
            score += len(source_sports.intersection(sports)) * w.sport_overlap_weight
            score += len(source_levels.intersection(levels)) * w.level_overlap_weight
            if category and row["category"] == category:
                score += w.category_match_weight
            score += math.log1p(purchase_count) * w.popularity_weight

            candidates.append(
                RecommendationResult(
                    id=row["id"],
                    title=row["title"],
                    sport=_first(sports),
                    level=_first(levels),
                    price_cents=int(row["price_cents"]),
                    rating=float(row["rating"] or 0),
                    purchase_count=purchase_count,
                    similarity_score=score,
                    reason=reason,
                )
            )

        candidates.sort(key=lambda r: r.id)
        candidates.sort(key=lambda r: r.similarity_score, reverse=True)
        return candidates

    def recommend(
        self, resource_id: str, limit: int = 12, now: datetime | None = None
    ) -> list[RecommendationResult]:
        """Recommend up to ``limit`` resources related to ``resource_id``.

        Co-purchase results come first; content-similar listings fill the
        remaining slots. The source resource is never returned and no id
        appears twice.

        Args:
            resource_id: The source resource.
            limit: Maximum number of results.
            now: Reference time for recency weighting.

        Returns:
            Ordered recommendations, possibly empty.
        """
        if limit <= 0:
            return []

        try:
            results = self.co_purchase_candidates(resource_id, now)[:limit]
        except (sqlite3.Error, pd.errors.DatabaseError, ValueError):
            logger.exception("Co-purchase lookup failed for %s", resource_id)
            results = []

        if len(results) < limit:
            seen = {r.id for r in results}
            try:
                fill = self.content_candidates(resource_id, exclude=seen)
            except sqlite3.Error:
                logger.exception("Content recommendations failed for %s", resource_id)
                fill = []
            results.extend(fill[: limit - len(results)])

        logger.debug(
            "Recommendations for %s: %d results (%d co-purchase)",
            resource_id,
            len(results),
            sum(r.reason == RecommendationReason.CO_PURCHASE for r in results),
        )
        return results

    def seller_other_resources(
        self, resource_id: str, seller_id: str, limit: int = 6
    ) -> list[RecommendationResult]:
        """Other listed resources by the same seller, most purchased first."""
        try:
            conn = get_connection(self.db_path)
            try:
                rows = conn.execute(
                    f"SELECT r.* FROM resources r WHERE {VISIBLE_CLAUSE} "
                    "AND r.seller_id = ? AND r.id != ? "
                    "ORDER BY r.purchase_count DESC, r.id ASC LIMIT ?",
                    (seller_id, resource_id, limit),
                ).fetchall()
            finally:
                conn.close()
        except sqlite3.Error:
            logger.exception("Error getting seller resources for %s", seller_id)
            return []

        return [
            RecommendationResult(
                id=row["id"],
                title=row["title"],
                sport=_first(decode_list(row["sports"])),
                level=_first(decode_list(row["levels"])),
                price_cents=int(row["price_cents"]),
                rating=float(row["rating"] or 0),
                purchase_count=int(row["purchase_count"] or 0),
                similarity_score=round(1.0 - index * 0.1, 4),
                reason=RecommendationReason.SAME_SELLER,
            )
            for index, row in enumerate(rows)
        ]
