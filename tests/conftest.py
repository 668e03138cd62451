"""Shared test fixtures for the marketplace search test suite.

``catalog_db`` seeds a small catalog whose trending and recommendation
scores are easy to compute by hand (all relative to ``NOW``):

=====  ======  ==========  ============  ===========  =====  ======  ======
id     seller  sports      levels        category     price  rating  status
=====  ======  ==========  ============  ===========  =====  ======  ======
res-1  s1      soccer      beginner      drills         999  4.5     listed
res-2  s1      soccer      intermediate  playbook      1999  4.0     listed
res-3  s2      basketball  beginner      drills           0  3.5     listed
res-4  s2      tennis      advanced      clinic        2999  5.0     listed
res-5  s2      soccer      beginner      drills         500  4.9     draft
res-6  s1      volleyball  (none)        (none)         999  4.5     listed
=====  ======  ==========  ============  ===========  =====  ======  ======
"""

import json
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import requests

from src.search.types import ListingDocument
from src.utils.database import init_db, insert_purchase, upsert_resource, upsert_seller

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)

RESOURCES = [
    {
        "id": "res-1",
        "seller_id": "s1",
        "title": "Soccer passing drills",
        "description": "Passing drills for youth soccer teams",
        "tags": ["passing", "youth"],
        "sports": ["soccer"],
        "levels": ["beginner"],
        "category": "drills",
        "file_type": "pdf",
        "price_cents": 999,
        "rating": 4.5,
        "purchase_count": 3,
        "view_count": 40,
        "uploaded_at": NOW - timedelta(days=10),
    },
    {
        "id": "res-2",
        "seller_id": "s1",
        "title": "Soccer defending playbook",
        "description": "Zonal defending patterns",
        "tags": ["defense"],
        "sports": ["soccer"],
        "levels": ["intermediate"],
        "category": "playbook",
        "file_type": "video",
        "price_cents": 1999,
        "rating": 4.0,
        "purchase_count": 2,
        "view_count": 10,
        "uploaded_at": NOW - timedelta(days=3),
    },
    {
        "id": "res-3",
        "seller_id": "s2",
        "title": "Basketball shooting drills",
        "description": "Form shooting progressions",
        "tags": ["shooting", "youth"],
        "sports": ["basketball"],
        "levels": ["beginner"],
        "category": "drills",
        "file_type": "pdf",
        "price_cents": 0,
        "rating": 3.5,
        "purchase_count": 1,
        "view_count": 100,
        "uploaded_at": NOW - timedelta(days=30),
    },
    {
        "id": "res-4",
        "seller_id": "s2",
        "title": "Tennis serve clinic",
        "description": "Serve mechanics for competitive players",
        "tags": ["serve"],
        "sports": ["tennis"],
        "levels": ["advanced"],
        "category": "clinic",
        "file_type": "video",
        "price_cents": 2999,
        "rating": 5.0,
        "purchase_count": 0,
        "view_count": 5,
        "uploaded_at": NOW - timedelta(days=1),
    },
    {
        "id": "res-5",
        "seller_id": "s2",
        "title": "Soccer fitness plan",
        "description": "Preseason soccer conditioning",
        "tags": ["fitness"],
        "sports": ["soccer"],
        "levels": ["beginner"],
        "category": "drills",
        "file_type": "pdf",
        "price_cents": 500,
        "rating": 4.9,
        "purchase_count": 50,
        "view_count": 900,
        "status": "draft",
        "is_listed": False,
        "uploaded_at": NOW - timedelta(days=2),
    },
    {
        "id": "res-6",
        "seller_id": "s1",
        "title": "Volleyball warmups",
        "description": "Dynamic warmup routines",
        "tags": [],
        "sports": ["volleyball"],
        "levels": [],
        "category": None,
        "file_type": "pdf",
        "price_cents": 999,
        "rating": 4.5,
        "purchase_count": 0,
        "view_count": 0,
        "uploaded_at": NOW - timedelta(days=10),
    },
]

# (buyer, resource, status, days before NOW)
PURCHASES = [
    ("b1", "res-1", "completed", 1),
    ("b1", "res-2", "completed", 2),
    ("b1", "res-3", "succeeded", 40),
    ("b2", "res-1", "completed", 5),
    ("b2", "res-2", "succeeded", 20),
    ("b3", "res-1", "completed", 3),
    ("b3", "res-4", "refunded", 1),
    ("b4", "res-1", "completed", 4),
    ("b4", "res-5", "completed", 4),
]


@pytest.fixture
def tmp_dir() -> Path:
    """Create a temporary directory for test artifacts."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def now() -> datetime:
    """Fixed reference time for the seeded catalog."""
    return NOW


@pytest.fixture
def empty_db(tmp_dir: Path) -> str:
    """An initialized catalog database with no rows."""
    db_path = str(tmp_dir / "catalog.db")
    init_db(db_path)
    return db_path


@pytest.fixture
def catalog_db(empty_db: str) -> str:
    """A catalog database seeded with sellers, listings and purchases."""
    upsert_seller(empty_db, "s1", "Ana", "Costa")
    upsert_seller(empty_db, "s2", "Ben", "Okafor")
    for resource in RESOURCES:
        upsert_resource(empty_db, resource)
    for buyer_id, resource_id, status, days_ago in PURCHASES:
        insert_purchase(
            empty_db,
            buyer_id=buyer_id,
            resource_id=resource_id,
            status=status,
            created_at=NOW - timedelta(days=days_ago),
        )
    return empty_db


@pytest.fixture
def sample_config_yaml(tmp_dir: Path) -> Path:
    """Create a temporary config YAML file for testing."""
    config_path = tmp_dir / "config.yaml"
    config_path.write_text(
        """
app:
  name: test-search
  version: 0.1.0
  log_level: ${TEST_LOG_LEVEL:DEBUG}

sqlite:
  path: ${TEST_DB_PATH:data/test.db}

trending:
  purchase_weight: 3.0
  view_weight: 0.5
  decay_days: 7.0

redis:
  host: localhost
  port: 6379
  db: 0
  recommendation_ttl: 3600
  trending_ttl: 900

api:
  host: 0.0.0.0
  port: 8000
"""
    )
    return config_path


@pytest.fixture
def document() -> ListingDocument:
    """A listed document as the indexing layer would build it."""
    return ListingDocument(
        id="res-1",
        title="Soccer passing drills",
        description="Passing drills for youth soccer teams",
        tags=["passing", "youth"],
        sport="soccer",
        level="beginner",
        file_type="pdf",
        price_cents=999,
        uploaded_at=NOW - timedelta(days=10),
        purchase_count=3,
        view_count=40,
        rating=4.5,
        seller_name="Ana Costa",
        seller_id="s1",
    )


def _json_response(status_code: int = 200, payload: object = None) -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    response._content = json.dumps(payload).encode() if payload is not None else b""
    response.url = "http://test"
    return response


@pytest.fixture
def make_response():
    """Factory for real ``requests.Response`` objects carrying JSON payloads."""
    return _json_response
