"""Tests for the co-purchase recommendation engine."""

import math
import sqlite3
from datetime import datetime, timedelta
from unittest.mock import patch

import pandas as pd
import pytest

from src.engines.recommendations import (
    RecommendationEngine,
    RecommendationWeights,
    recency_weight,
)
from src.search.types import RecommendationReason
from src.utils.database import get_connection, insert_purchase, upsert_resource


@pytest.fixture
def engine(catalog_db: str) -> RecommendationEngine:
    return RecommendationEngine(catalog_db)


class TestRecencyWeight:
    """Tests for the per-purchase recency weight."""

    def test_today_counts_fully(self) -> None:
        assert recency_weight(0) == 1.0

    def test_linear_decay(self) -> None:
        assert recency_weight(15) == pytest.approx(0.5)

    def test_floor(self) -> None:
        assert recency_weight(30) == pytest.approx(0.1)
        assert recency_weight(400) == pytest.approx(0.1)


class TestCoPurchase:
    """Stage 1: resources bought by the same buyers."""

    def test_scores_are_exact(self, engine: RecommendationEngine, now: datetime) -> None:
        """Score is buyer count plus a quarter of the summed recency weights."""
        results = engine.co_purchase_candidates("res-1", now)
        assert [r.id for r in results] == ["res-2", "res-3"]
        # res-2: bought by b1 two days ago and b2 twenty days ago.
        assert results[0].similarity_score == pytest.approx(
            2 * 1.0 + (28 / 30 + 10 / 30) * 0.25
        )
        # res-3: bought by b1 forty days ago, so only the floor weight counts.
        assert results[1].similarity_score == pytest.approx(1.0 + 0.1 * 0.25)
        assert all(r.reason == RecommendationReason.CO_PURCHASE for r in results)

    def test_refunds_and_drafts_ignored(
        self, engine: RecommendationEngine, now: datetime
    ) -> None:
        """Refunded purchases and de-listed resources never qualify."""
        ids = {r.id for r in engine.co_purchase_candidates("res-1", now)}
        assert "res-4" not in ids
        assert "res-5" not in ids

    def test_buyer_counted_once(
        self, catalog_db: str, engine: RecommendationEngine, now: datetime
    ) -> None:
        """Repeat purchases by one buyer raise weight but not buyer count."""
        insert_purchase(catalog_db, "b1", "res-3", "completed", now - timedelta(days=0))
        res3 = next(r for r in engine.co_purchase_candidates("res-1", now) if r.id == "res-3")
        assert res3.similarity_score == pytest.approx(1.0 + (0.1 + 1.0) * 0.25)

    def test_score_frame_columns(self, engine: RecommendationEngine, now: datetime) -> None:
        frame = pd.DataFrame(
            {
                "buyer_id": ["x", "y", "x"],
                "resource_id": ["r2", "r2", "r3"],
                "created_at": ["2024-06-01T00:00:00Z"] * 3,
                "title": ["two", "two", "three"],
                "sports": ["[]"] * 3,
                "levels": ["[]"] * 3,
                "price_cents": [0, 0, 0],
                "rating": [0.0, 0.0, 0.0],
                "purchase_count": [0, 0, 0],
            }
        )
        scored = engine.score_co_purchases(frame, now)
        assert list(scored["resource_id"]) == ["r2", "r3"]
        assert list(scored["buyer_count"]) == [2, 1]
        assert list(scored["score"]) == pytest.approx([2.5, 1.25])


class TestContentFallback:
    """Stage 2: content similarity."""

    def test_only_content_when_no_purchases(
        self, engine: RecommendationEngine, now: datetime
    ) -> None:
        """A resource with no completed purchases falls through to content."""
        results = engine.recommend("res-4", now=now)
        assert [r.id for r in results] == ["res-3"]
        assert results[0].reason == RecommendationReason.SAME_SELLER
        assert results[0].similarity_score == pytest.approx(2.0 + math.log1p(1) * 0.1)

    def test_match_on_seller_without_levels(
        self, engine: RecommendationEngine
    ) -> None:
        """A resource with no level or category still matches by seller."""
        results = engine.content_candidates("res-6")
        assert [r.id for r in results] == ["res-1", "res-2"]
        assert results[0].similarity_score == pytest.approx(2.0 + math.log1p(3) * 0.1)

    def test_overlap_weights(self, catalog_db: str, engine: RecommendationEngine) -> None:
        """Sport, level and category overlaps add their weights."""
        upsert_resource(
            catalog_db,
            {
                "id": "res-7",
                "seller_id": "s2",
                "title": "More soccer drills",
                "sports": ["soccer"],
                "levels": ["beginner"],
                "category": "drills",
                "price_cents": 0,
            },
        )
        res7 = next(r for r in engine.content_candidates("res-1") if r.id == "res-7")
        assert res7.similarity_score == pytest.approx(1.5 + 1.0 + 1.0)
        assert res7.reason == RecommendationReason.SIMILAR_CONTENT

    def test_unknown_resource(self, engine: RecommendationEngine) -> None:
        assert engine.content_candidates("missing") == []

    def test_exclude_respected(self, engine: RecommendationEngine) -> None:
        ids = [r.id for r in engine.content_candidates("res-6", exclude={"res-1"})]
        assert ids == ["res-2"]


class TestRecommend:
    """End-to-end recommendation assembly."""

    def test_co_purchase_first_then_fill(
        self, engine: RecommendationEngine, now: datetime
    ) -> None:
        results = engine.recommend("res-1", now=now)
        assert [r.id for r in results] == ["res-2", "res-3", "res-6"]
        assert [r.reason for r in results] == [
            RecommendationReason.CO_PURCHASE,
            RecommendationReason.CO_PURCHASE,
            RecommendationReason.SAME_SELLER,
        ]

    def test_source_excluded_and_no_duplicates(
        self, engine: RecommendationEngine, now: datetime
    ) -> None:
        for resource_id in ("res-1", "res-2", "res-3", "res-4", "res-6"):
            ids = [r.id for r in engine.recommend(resource_id, now=now)]
            assert resource_id not in ids
            assert len(ids) == len(set(ids))
            assert "res-5" not in ids

    def test_limit(self, engine: RecommendationEngine, now: datetime) -> None:
        assert [r.id for r in engine.recommend("res-1", limit=1, now=now)] == ["res-2"]
        assert engine.recommend("res-1", limit=0, now=now) == []

    def test_unknown_resource_is_empty(
        self, engine: RecommendationEngine, now: datetime
    ) -> None:
        assert engine.recommend("missing", now=now) == []

    def test_co_purchase_failure_falls_back(
        self, engine: RecommendationEngine, now: datetime
    ) -> None:
        """Errors in stage 1 are logged and stage 2 still answers."""
        with patch.object(
            engine, "_load_co_purchases", side_effect=sqlite3.OperationalError("locked")
        ):
            results = engine.recommend("res-1", now=now)
        assert results
        assert all(r.reason != RecommendationReason.CO_PURCHASE for r in results)

    def test_fractional_second_purchase_time(
        self, catalog_db: str, engine: RecommendationEngine, now: datetime
    ) -> None:
        """Purchase timestamps with fractional seconds are scored normally."""
        conn = get_connection(catalog_db)
        conn.execute(
            "INSERT INTO purchases (buyer_id, resource_id, status, created_at) "
            "VALUES ('b1', 'res-6', 'completed', '2024-05-30T08:15:00.5+00:00')"
        )
        conn.commit()
        conn.close()

        results = engine.recommend("res-1", now=now)
        assert [r.id for r in results] == ["res-2", "res-6", "res-3"]
        assert results[1].reason == RecommendationReason.CO_PURCHASE
        assert results[1].similarity_score == pytest.approx(1.0 + (29 / 30) * 0.25)

    def test_unparseable_purchase_time_falls_back(
        self, catalog_db: str, engine: RecommendationEngine, now: datetime
    ) -> None:
        conn = get_connection(catalog_db)
        conn.execute(
            "INSERT INTO purchases (buyer_id, resource_id, status, created_at) "
            "VALUES ('b1', 'res-6', 'completed', 'yesterday')"
        )
        conn.commit()
        conn.close()

        results = engine.recommend("res-1", now=now)
        assert results
        assert all(r.reason != RecommendationReason.CO_PURCHASE for r in results)

    def test_both_stages_failing(self, tmp_dir, now: datetime) -> None:
        engine = RecommendationEngine(str(tmp_dir / "blank.db"))
        assert engine.recommend("res-1", now=now) == []

    def test_custom_weights(self, catalog_db: str, now: datetime) -> None:
        weights = RecommendationWeights.from_config(
            {"co_purchase_count_weight": 0.0, "co_purchase_recency_weight": 1.0}
        )
        results = RecommendationEngine(catalog_db, weights).co_purchase_candidates("res-1", now)
        assert results[0].similarity_score == pytest.approx(28 / 30 + 10 / 30)


class TestSellerOtherResources:
    def test_other_listings_by_seller(self, engine: RecommendationEngine) -> None:
        results = engine.seller_other_resources("res-1", "s1")
        assert [r.id for r in results] == ["res-2", "res-6"]
        assert [r.similarity_score for r in results] == [1.0, 0.9]
        assert all(r.reason == RecommendationReason.SAME_SELLER for r in results)

    def test_drafts_skipped(self, engine: RecommendationEngine) -> None:
        assert [r.id for r in engine.seller_other_resources("res-3", "s2")] == ["res-4"]
