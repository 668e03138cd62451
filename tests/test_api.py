"""Tests for the FastAPI application endpoints."""

import threading
import time
from datetime import timedelta
from unittest.mock import MagicMock

import fakeredis
import pytest
from fastapi.testclient import TestClient

from src.analytics.clicks import ClickTracker
from src.api.app import app
from src.api.cache import RedisCache
from src.engines.trending import TrendingEngine
from src.search.errors import IndexingError, SearchBackendUnavailable
from src.search.gateway import SearchGateway
from src.search.relational import RelationalSearchBackend
from src.utils.config import settings


@pytest.fixture
def test_client(catalog_db: str, monkeypatch: pytest.MonkeyPatch) -> TestClient:
    """Create a test client bound to the seeded catalog and a fake Redis."""
    monkeypatch.setattr(settings, "db_path", catalog_db)
    monkeypatch.setattr(settings, "search_vendor", "database")
    with TestClient(app) as client:
        # Set state after lifespan has initialized
        app.state.cache = RedisCache(fakeredis.FakeRedis(decode_responses=True))
        yield client


def _failing_gateway(vendor: str = "elastic") -> SearchGateway:
    backend = MagicMock()
    backend.search.side_effect = SearchBackendUnavailable("cluster down")
    backend.index_resource.side_effect = IndexingError("write rejected")
    backend.remove_resource.side_effect = IndexingError("write rejected")
    backend.reindex_all.side_effect = IndexingError("write rejected")
    backend.get_trending.return_value = []
    backend.get_recommendations.return_value = []
    backend.is_healthy.return_value = False
    return SearchGateway(backend, vendor)


class TestHealthEndpoint:
    """Tests for the /health endpoint."""

    def test_health_returns_200(self, test_client: TestClient) -> None:
        response = test_client.get("/health")
        assert response.status_code == 200
        assert response.json() == {
            "status": "healthy",
            "vendor": "database",
            "backend_healthy": True,
        }

    def test_unhealthy_backend_reports_degraded(self, test_client: TestClient) -> None:
        app.state.gateway = _failing_gateway()
        data = test_client.get("/health").json()
        assert data["status"] == "degraded"
        assert data["backend_healthy"] is False


class TestSearchEndpoint:
    """Tests for the /search endpoint."""

    def test_text_search(self, test_client: TestClient) -> None:
        response = test_client.get("/search", params={"q": "soccer"})
        assert response.status_code == 200
        data = response.json()
        assert data["total_hits"] == 2
        assert data["vendor"] == "database"
        assert data["degraded"] is False
        assert {hit["id"] for hit in data["hits"]} == {"res-1", "res-2"}

    def test_filters_and_sort(self, test_client: TestClient) -> None:
        response = test_client.get(
            "/search",
            params={"sports": ["soccer", "tennis"], "sort": "price_desc", "per_page": 2},
        )
        data = response.json()
        assert [hit["id"] for hit in data["hits"]] == ["res-4", "res-2"]
        assert data["total_hits"] == 3
        assert data["total_pages"] == 2

    def test_facets_returned(self, test_client: TestClient) -> None:
        data = test_client.get("/search").json()
        assert data["facets"]["file_types"] == {"pdf": 3, "video": 2}

    @pytest.mark.parametrize(
        "params", [{"page": 0}, {"per_page": 0}, {"per_page": 1000}, {"sort": "cheapest"}]
    )
    def test_invalid_params(self, test_client: TestClient, params: dict) -> None:
        assert test_client.get("/search", params=params).status_code == 422

    def test_fallback_when_backend_unavailable(self, test_client: TestClient) -> None:
        app.state.gateway = _failing_gateway()
        data = test_client.get("/search", params={"q": "soccer"}).json()
        assert data["degraded"] is True
        assert data["vendor"] == "database"
        assert data["total_hits"] == 2

    def test_503_when_fallback_also_fails(self, test_client: TestClient, tmp_dir) -> None:
        app.state.gateway = _failing_gateway()
        app.state.fallback = RelationalSearchBackend(str(tmp_dir / "blank.db"))
        assert test_client.get("/search", params={"q": "soccer"}).status_code == 503

    def test_database_vendor_is_its_own_fallback(self, test_client: TestClient) -> None:
        assert app.state.fallback is app.state.gateway.backend

    def test_relational_failure_not_retried(self, test_client: TestClient) -> None:
        backend = MagicMock()
        backend.search.side_effect = SearchBackendUnavailable("database is locked")
        app.state.gateway = SearchGateway(backend, "database")
        app.state.fallback = backend
        assert test_client.get("/search", params={"q": "soccer"}).status_code == 503
        backend.search.assert_called_once()

    def test_slow_backend_does_not_block_other_requests(
        self, test_client: TestClient
    ) -> None:
        """A search stuck on its backend leaves other endpoints responsive."""
        started = threading.Event()
        release = threading.Event()

        def slow_search(query):
            started.set()
            release.wait(5)
            raise SearchBackendUnavailable("timed out")

        backend = MagicMock()
        backend.search.side_effect = slow_search
        backend.get_trending.return_value = []
        app.state.gateway = SearchGateway(backend, "elastic")

        pending = threading.Thread(target=test_client.get, args=("/search",))
        pending.start()
        try:
            assert started.wait(2)
            began = time.monotonic()
            assert test_client.get("/trending").status_code == 200
            assert time.monotonic() - began < 2
        finally:
            release.set()
            pending.join()


class TestTrendingEndpoint:
    """Tests for the /trending endpoints."""

    def test_reads_ranked_cache(self, test_client: TestClient, catalog_db: str, now) -> None:
        TrendingEngine(catalog_db).refresh(now)
        first = test_client.get("/trending", params={"limit": 2}).json()
        assert [item["id"] for item in first["items"]] == ["res-1", "res-3"]
        assert first["cached"] is False

        second = test_client.get("/trending", params={"limit": 2}).json()
        assert second["cached"] is True
        assert second["items"] == first["items"]

    def test_empty_before_first_refresh(self, test_client: TestClient) -> None:
        assert test_client.get("/trending").json()["items"] == []

    def test_refresh_invalidates_cache(self, test_client: TestClient) -> None:
        response = test_client.post("/trending/refresh")
        assert response.status_code == 200
        assert response.json()["refreshed"] == 5
        assert response.json()["computed_at"] is not None

        test_client.get("/trending")
        test_client.post("/trending/refresh")
        assert test_client.get("/trending").json()["cached"] is False


class TestRecommendEndpoint:
    """Tests for the /recommendations/{resource_id} endpoint."""

    def test_recommendations(self, test_client: TestClient) -> None:
        data = test_client.get("/recommendations/res-1").json()
        assert data["resource_id"] == "res-1"
        assert [r["id"] for r in data["recommendations"]] == ["res-2", "res-3", "res-6"]
        assert data["recommendations"][0]["reason"] == "co_purchase"
        assert data["recommendations"][2]["reason"] == "same_seller"
        assert data["cached"] is False

    def test_cached_on_second_call(self, test_client: TestClient) -> None:
        first = test_client.get("/recommendations/res-1", params={"limit": 2}).json()
        second = test_client.get("/recommendations/res-1", params={"limit": 2}).json()
        assert second["cached"] is True
        assert second["recommendations"] == first["recommendations"]

    def test_unknown_resource_is_empty(self, test_client: TestClient) -> None:
        response = test_client.get("/recommendations/ghost")
        assert response.status_code == 200
        assert response.json()["recommendations"] == []

    def test_limit_validated(self, test_client: TestClient) -> None:
        assert test_client.get("/recommendations/res-1", params={"limit": 0}).status_code == 422

    def test_seller_listings(self, test_client: TestClient) -> None:
        data = test_client.get("/recommendations/res-1/seller").json()
        assert [r["id"] for r in data["recommendations"]] == ["res-2", "res-6"]
        assert {r["reason"] for r in data["recommendations"]} == {"same_seller"}

    def test_seller_listings_unknown_resource(self, test_client: TestClient) -> None:
        assert test_client.get("/recommendations/ghost/seller").status_code == 404


class TestIndexEndpoints:
    """Tests for the /index endpoints."""

    def test_index_listed_resource(self, test_client: TestClient) -> None:
        response = test_client.put("/index/res-1")
        assert response.status_code == 200
        assert response.json()["action"] == "indexed"

    def test_index_draft_removes_it(self, test_client: TestClient) -> None:
        assert test_client.put("/index/res-5").json()["action"] == "removed"

    def test_index_unknown_resource(self, test_client: TestClient) -> None:
        assert test_client.put("/index/ghost").status_code == 404

    def test_delete_unknown_is_noop(self, test_client: TestClient) -> None:
        response = test_client.delete("/index/ghost")
        assert response.status_code == 200
        assert response.json() == {"action": "removed", "resource_id": "ghost", "count": None}

    def test_rebuild(self, test_client: TestClient) -> None:
        data = test_client.post("/index/rebuild").json()
        assert data == {"action": "rebuilt", "resource_id": None, "count": 5}

    def test_rebuild_passes_listed_documents(self, test_client: TestClient) -> None:
        backend = MagicMock()
        app.state.gateway = SearchGateway(backend, "elastic")
        test_client.post("/index/rebuild")
        documents = backend.reindex_all.call_args.args[0]
        assert sorted(doc.id for doc in documents) == ["res-1", "res-2", "res-3", "res-4", "res-6"]

    @pytest.mark.parametrize(
        "method, path",
        [("put", "/index/res-1"), ("delete", "/index/res-1"), ("post", "/index/rebuild")],
    )
    def test_indexing_errors_are_503(
        self, test_client: TestClient, method: str, path: str
    ) -> None:
        app.state.gateway = _failing_gateway()
        assert getattr(test_client, method)(path).status_code == 503


class TestClickEndpoint:
    """Tests for the /clicks endpoint."""

    def test_click_accepted_and_recorded(self, test_client: TestClient, catalog_db: str) -> None:
        response = test_client.post(
            "/clicks", json={"query": "drills", "resource_id": "res-3", "session_id": "s-9"}
        )
        assert response.status_code == 202
        assert response.json() == {"accepted": True}

        clicks = ClickTracker(catalog_db).recent_clicks()
        assert [(c.query, c.resource_id, c.session_id) for c in clicks] == [
            ("drills", "res-3", "s-9")
        ]

    def test_click_requires_resource(self, test_client: TestClient) -> None:
        assert test_client.post("/clicks", json={"query": "drills"}).status_code == 422

    def test_recent_clicks(self, test_client: TestClient, catalog_db: str, now) -> None:
        tracker = ClickTracker(catalog_db)
        tracker.track_click("drills", "res-1", "s-1", clicked_at=now)
        tracker.track_click("playbook", "res-2", None, clicked_at=now + timedelta(minutes=1))

        data = test_client.get("/clicks/recent", params={"limit": 1}).json()
        assert data["clicks"] == [
            {
                "query": "playbook",
                "resource_id": "res-2",
                "session_id": None,
                "clicked_at": "2024-06-01T00:01:00Z",
            }
        ]
