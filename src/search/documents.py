"""Build indexable ListingDocuments from catalog rows."""

import sqlite3
from datetime import datetime, timezone

from src.search.types import ListingDocument
from src.utils.database import (
    decode_list,
    get_all_resource_rows,
    get_resource_row,
    parse_db_timestamp,
)


def build_document(row: sqlite3.Row | dict) -> ListingDocument:
    """Project one catalog row (joined with ``seller_name``) into a document.

    The document is marked listed only when the row is both listed and
    active, so de-listed or archived resources are filtered by every
    backend's listed clause.
    """
    sports = decode_list(row["sports"])
    levels = decode_list(row["levels"])
    uploaded_at = parse_db_timestamp(row["uploaded_at"] or row["created_at"])
    return ListingDocument(
        id=row["id"],
        title=row["title"],
        description=row["description"] or "",
        tags=decode_list(row["tags"]),
        sport=sports[0] if sports else "",
        level=levels[0] if levels else "",
        file_type=row["file_type"] or "",
        price_cents=int(row["price_cents"]),
        uploaded_at=uploaded_at or datetime.now(timezone.utc),
        purchase_count=int(row["purchase_count"] or 0),
        view_count=int(row["view_count"] or 0),
        rating=float(row["rating"] or 0),
        is_listed=bool(row["is_listed"]) and row["status"] == "active",
        seller_name=row["seller_name"] or None,
        seller_id=row["seller_id"],
    )


def load_document(db_path: str, resource_id: str) -> ListingDocument | None:
    """Document for one resource, or None if it is not in the catalog."""
    row = get_resource_row(db_path, resource_id)
    return build_document(row) if row is not None else None


def load_documents(db_path: str) -> list[ListingDocument]:
    """Documents for every listed/active resource, for a full reindex."""
    documents = [build_document(row) for row in get_all_resource_rows(db_path)]
    return [doc for doc in documents if doc.is_listed]
