"""Script to seed a small demo catalog for local runs.

Generates sellers, listings and purchases with a fixed random seed so that
trending and recommendation output is reproducible, then computes the
first trending cache generation.
"""

import random
from datetime import datetime, timedelta, timezone

from src.engines.trending import TrendingEngine
from src.utils.database import (
    init_db,
    insert_purchase,
    sync_purchase_counts,
    upsert_resource,
    upsert_seller,
)

SPORTS = ["soccer", "basketball", "tennis", "volleyball", "swimming"]
LEVELS = ["beginner", "intermediate", "advanced"]
CATEGORIES = ["drills", "playbook", "conditioning", "tactics"]
FILE_TYPES = ["pdf", "video", "spreadsheet"]
SELLERS = [
    ("seller-1", "Ana", "Costa"),
    ("seller-2", "Ben", "Okafor"),
    ("seller-3", "Chloe", "Martin"),
    ("seller-4", "Dev", "Patel"),
]


def create_sample_data(
    db_path: str = "data/catalog.db", n_resources: int = 60, n_buyers: int = 40
) -> None:
    """Populate ``db_path`` with a demo catalog.

    Args:
        db_path: SQLite database to write.
        n_resources: Number of listings to create.
        n_buyers: Number of distinct buyers generating purchases.
    """
    random.seed(42)
    init_db(db_path)
    now = datetime.now(timezone.utc).replace(microsecond=0)

    for seller_id, first_name, last_name in SELLERS:
        upsert_seller(db_path, seller_id, first_name, last_name)

    resource_ids = []
    for i in range(1, n_resources + 1):
        sport = random.choice(SPORTS)
        level = random.choice(LEVELS)
        category = random.choice(CATEGORIES)
        resource_id = f"res-{i:03d}"
        resource_ids.append(resource_id)
        upsert_resource(
            db_path,
            {
                "id": resource_id,
                "seller_id": random.choice(SELLERS)[0],
                "title": f"{level.title()} {sport} {category} pack {i}",
                "description": f"A {level} {category} resource for {sport} coaches.",
                "tags": [sport, category],
                "sports": [sport],
                "levels": [level],
                "category": category,
                "file_type": random.choice(FILE_TYPES),
                "price_cents": random.choice([0, 499, 999, 1499, 2499, 4999]),
                "rating": round(random.uniform(2.5, 5.0), 1),
                "view_count": random.randint(0, 500),
                # Every tenth listing is a de-listed draft.
                "status": "draft" if i % 10 == 0 else "active",
                "is_listed": i % 10 != 0,
                "uploaded_at": now - timedelta(days=random.randint(1, 120)),
                "created_at": now - timedelta(days=random.randint(121, 150)),
            },
        )

    purchases = 0
    for buyer in range(1, n_buyers + 1):
        for resource_id in random.sample(resource_ids, random.randint(1, 5)):
            insert_purchase(
                db_path,
                buyer_id=f"buyer-{buyer:03d}",
                resource_id=resource_id,
                status=random.choice(["completed", "completed", "succeeded", "refunded"]),
                created_at=now - timedelta(days=random.randint(0, 60)),
            )
            purchases += 1

    sync_purchase_counts(db_path)
    ranked = TrendingEngine(db_path).refresh(now)
    print(
        f"Created {n_resources} resources, {purchases} purchases and "
        f"{ranked} trending rows in {db_path}"
    )


if __name__ == "__main__":
    create_sample_data()
