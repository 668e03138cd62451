"""SQLite catalog store utilities.

Manages the SQLite connection and schema for the catalog tables read by the
search core (resources, seller profiles, purchases) and the tables the core
owns itself (the trending rank cache and the search click log).

List-valued columns (sports, levels, tags) are stored as JSON arrays in TEXT
columns and queried with the JSON1 ``json_each`` table function. Timestamps
are stored as ISO-8601 UTC strings with second precision so that they sort
lexicographically.
"""

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from src.utils.logger import get_logger

logger = get_logger(__name__)

COMPLETED_PURCHASE_STATUSES = ("succeeded", "completed")
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

RESOURCE_SELECT = """
    SELECT r.*,
           TRIM(COALESCE(s.first_name, '') || ' ' || COALESCE(s.last_name, ''))
               AS seller_name
    FROM resources r
    LEFT JOIN seller_profiles s ON s.id = r.seller_id
"""

VISIBLE_CLAUSE = "r.status = 'active' AND r.is_listed = 1"


def get_connection(db_path: str = "data/catalog.db") -> sqlite3.Connection:
    """Create or open a SQLite database connection.

    Args:
        db_path: Path to the SQLite database file.

    Returns:
        An open SQLite connection with row factory enabled.
    """
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    return conn


def init_db(db_path: str = "data/catalog.db") -> None:
    """Initialize the database schema.

    Creates the catalog and cache tables if they do not already exist.

    Args:
        db_path: Path to the SQLite database file.
    """
    conn = get_connection(db_path)
    try:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS seller_profiles (
                id TEXT PRIMARY KEY,
                first_name TEXT NOT NULL DEFAULT '',
                last_name TEXT NOT NULL DEFAULT ''
            );

            CREATE TABLE IF NOT EXISTS resources (
                id TEXT PRIMARY KEY,
                seller_id TEXT REFERENCES seller_profiles(id),
                title TEXT NOT NULL,
                description TEXT NOT NULL DEFAULT '',
                tags TEXT NOT NULL DEFAULT '[]',
                sports TEXT NOT NULL DEFAULT '[]',
                levels TEXT NOT NULL DEFAULT '[]',
                category TEXT,
                file_type TEXT NOT NULL DEFAULT 'pdf',
                price_cents INTEGER NOT NULL DEFAULT 0 CHECK(price_cents >= 0),
                rating REAL NOT NULL DEFAULT 0,
                purchase_count INTEGER NOT NULL DEFAULT 0,
                view_count INTEGER NOT NULL DEFAULT 0,
                status TEXT NOT NULL DEFAULT 'draft',
                is_listed INTEGER NOT NULL DEFAULT 0,
                uploaded_at TEXT,
                created_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_resources_visible
                ON resources(status, is_listed);

            CREATE TABLE IF NOT EXISTS purchases (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                buyer_id TEXT NOT NULL,
                resource_id TEXT NOT NULL,
                status TEXT NOT NULL,
                created_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_purchases_resource
                ON purchases(resource_id);

            CREATE INDEX IF NOT EXISTS idx_purchases_buyer
                ON purchases(buyer_id);

            CREATE TABLE IF NOT EXISTS trending_cache (
                resource_id TEXT PRIMARY KEY,
                trending_score REAL NOT NULL,
                rank_position INTEGER NOT NULL,
                computed_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS search_clicks (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                query TEXT NOT NULL DEFAULT '',
                resource_id TEXT NOT NULL,
                session_id TEXT,
                clicked_at TEXT NOT NULL
            );
            """
        )
        conn.commit()
        logger.info("Database schema initialized at %s", db_path)
    finally:
        conn.close()


def to_db_timestamp(value: datetime) -> str:
    """Format a datetime as the canonical stored timestamp string.

    Naive datetimes are assumed to be UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def parse_db_timestamp(value: str | None) -> datetime | None:
    """Parse a stored timestamp back into an aware UTC datetime."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def decode_list(value: str | None) -> list[str]:
    """Decode a JSON array column, tolerating NULL and malformed values."""
    if not value:
        return []
    try:
        decoded = json.loads(value)
    except (TypeError, ValueError):
        return []
    return [str(v) for v in decoded] if isinstance(decoded, list) else []


def upsert_seller(
    db_path: str, seller_id: str, first_name: str, last_name: str
) -> None:
    """Insert or update a seller profile.

    Args:
        db_path: Path to the SQLite database file.
        seller_id: The seller identifier.
        first_name: Seller first name.
        last_name: Seller last name.
    """
    conn = get_connection(db_path)
    try:
        conn.execute(
            """
            INSERT INTO seller_profiles (id, first_name, last_name)
            VALUES (?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                first_name = excluded.first_name,
                last_name = excluded.last_name
            """,
            (seller_id, first_name, last_name),
        )
        conn.commit()
    finally:
        conn.close()


def upsert_resource(db_path: str, resource: dict[str, Any]) -> None:
    """Insert or replace a catalog resource row.

    List fields are JSON-encoded and datetimes normalized before storage.

    Args:
        db_path: Path to the SQLite database file.
        resource: Mapping with the ``resources`` column names as keys.
    """
    now = to_db_timestamp(datetime.now(timezone.utc))
    uploaded_at = resource.get("uploaded_at")
    created_at = resource.get("created_at") or uploaded_at
    row = {
        "id": resource["id"],
        "seller_id": resource.get("seller_id"),
        "title": resource["title"],
        "description": resource.get("description", ""),
        "tags": json.dumps(list(resource.get("tags", []))),
        "sports": json.dumps(list(resource.get("sports", []))),
        "levels": json.dumps(list(resource.get("levels", []))),
        "category": resource.get("category"),
        "file_type": resource.get("file_type", "pdf"),
        "price_cents": int(resource.get("price_cents", 0)),
        "rating": float(resource.get("rating", 0.0)),
        "purchase_count": int(resource.get("purchase_count", 0)),
        "view_count": int(resource.get("view_count", 0)),
        "status": resource.get("status", "active"),
        "is_listed": 1 if resource.get("is_listed", True) else 0,
        "uploaded_at": (
            to_db_timestamp(uploaded_at) if isinstance(uploaded_at, datetime) else uploaded_at
        ),
        "created_at": (
            to_db_timestamp(created_at) if isinstance(created_at, datetime) else created_at or now
        ),
    }
    columns = ", ".join(row)
    placeholders = ", ".join(f":{name}" for name in row)
    conn = get_connection(db_path)
    try:
        conn.execute(
            f"INSERT OR REPLACE INTO resources ({columns}) VALUES ({placeholders})",
            row,
        )
        conn.commit()
    finally:
        conn.close()


def insert_purchase(
    db_path: str,
    buyer_id: str,
    resource_id: str,
    status: str,
    created_at: datetime,
) -> None:
    """Record a purchase row.

    Args:
        db_path: Path to the SQLite database file.
        buyer_id: The purchasing user.
        resource_id: The purchased resource.
        status: Payment status, e.g. ``succeeded`` or ``refunded``.
        created_at: When the purchase happened.
    """
    conn = get_connection(db_path)
    try:
        conn.execute(
            """
            INSERT INTO purchases (buyer_id, resource_id, status, created_at)
            VALUES (?, ?, ?, ?)
            """,
            (buyer_id, resource_id, status, to_db_timestamp(created_at)),
        )
        conn.commit()
    finally:
        conn.close()


def get_resource_row(db_path: str, resource_id: str) -> sqlite3.Row | None:
    """Fetch one resource joined with its seller's display name.

    Args:
        db_path: Path to the SQLite database file.
        resource_id: The resource identifier.

    Returns:
        The row, or None when the resource does not exist.
    """
    conn = get_connection(db_path)
    try:
        return conn.execute(
            f"{RESOURCE_SELECT} WHERE r.id = ?",
            (resource_id,),
        ).fetchone()
    finally:
        conn.close()


def get_all_resource_rows(db_path: str) -> list[sqlite3.Row]:
    """Fetch every resource row joined with seller names, ordered by id."""
    conn = get_connection(db_path)
    try:
        return conn.execute(f"{RESOURCE_SELECT} ORDER BY r.id").fetchall()
    finally:
        conn.close()


def sync_purchase_counts(db_path: str) -> None:
    """Recompute ``resources.purchase_count`` from completed purchases."""
    statuses = ", ".join("?" for _ in COMPLETED_PURCHASE_STATUSES)
    conn = get_connection(db_path)
    try:
        conn.execute(
            f"""
            UPDATE resources SET purchase_count = (
                SELECT COUNT(*) FROM purchases p
                WHERE p.resource_id = resources.id AND p.status IN ({statuses})
            )
            """,
            COMPLETED_PURCHASE_STATUSES,
        )
        conn.commit()
    finally:
        conn.close()
