"""Relational fallback backend querying the catalog store directly.

Text matching is a case-insensitive substring match on title and description
(SQLite ``LIKE``), so relevance is coarse, but the backend needs no external
index and is available whenever the catalog is. The catalog *is* the corpus,
which makes the indexing operations no-ops.
"""

import re
import sqlite3
import time
from collections import Counter
from collections.abc import Sequence

from src.engines.trending import read_trending_cache
from src.search.base import FACET_FIELDS, SORT_FIELDS, price_range_label
from src.search.errors import SearchBackendUnavailable
from src.search.types import (
    ListingDocument,
    RecommendationReason,
    RecommendationResult,
    SearchHit,
    SearchQuery,
    SearchResult,
    SortMode,
    TrendingResult,
    total_pages_for,
)
from src.utils.database import (
    RESOURCE_SELECT,
    VISIBLE_CLAUSE,
    decode_list,
    get_connection,
    parse_db_timestamp,
    to_db_timestamp,
)
from src.utils.logger import get_logger

logger = get_logger(__name__)

UPLOADED_EXPR = "COALESCE(r.uploaded_at, r.created_at)"

_COLUMN_EXPR = {
    "uploaded_at": UPLOADED_EXPR,
    "price_cents": "r.price_cents",
    "rating": "r.rating",
    "purchase_count": "r.purchase_count",
    "view_count": "r.view_count",
}


def _like_pattern(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _placeholders(values: Sequence) -> str:
    return ", ".join("?" for _ in values)


def highlight(text: str, term: str) -> str | None:
    """Wrap case-insensitive occurrences of ``term`` in ``<em>`` tags.

    Returns None when ``term`` does not occur in ``text``.
    """
    if not term or not text:
        return None
    pattern = re.compile(re.escape(term), re.IGNORECASE)
    if not pattern.search(text):
        return None
    return pattern.sub(lambda m: f"<em>{m.group(0)}</em>", text)


class RelationalSearchBackend:
    """Search backend over the SQLite catalog store.

    Attributes:
        db_path: Path to the catalog database.
    """

    vendor = "database"

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path

    def _build_where(self, query: SearchQuery) -> tuple[str, list]:
        """Compile the query's text and filters into a WHERE clause.

        The listed/active clause is always the first condition.
        """
        clauses = [VISIBLE_CLAUSE]
        params: list = []
        filters = query.filters

        if query.q:
            pattern = _like_pattern(query.q)
            clauses.append(
                "(r.title LIKE ? ESCAPE '\\' OR r.description LIKE ? ESCAPE '\\')"
            )
            params.extend([pattern, pattern])

        for column, values in (
            ("sports", filters.sports),
            ("levels", filters.levels),
            ("tags", filters.tags),
        ):
            if values:
                clauses.append(
                    f"EXISTS (SELECT 1 FROM json_each(r.{column}) AS je "
                    f"WHERE je.value IN ({_placeholders(values)}))"
                )
                params.extend(values)

        if filters.file_types:
            clauses.append(f"r.file_type IN ({_placeholders(filters.file_types)})")
            params.extend(filters.file_types)
        if filters.price_min is not None:
            clauses.append("r.price_cents >= ?")
            params.append(filters.price_min)
        if filters.price_max is not None:
            clauses.append("r.price_cents <= ?")
            params.append(filters.price_max)
        if filters.rating_min is not None:
            clauses.append("r.rating >= ?")
            params.append(filters.rating_min)
        if filters.uploaded_from is not None:
            clauses.append(f"{UPLOADED_EXPR} >= ?")
            params.append(to_db_timestamp(filters.uploaded_from))
        if filters.uploaded_to is not None:
            clauses.append(f"{UPLOADED_EXPR} <= ?")
            params.append(to_db_timestamp(filters.uploaded_to))

        return " AND ".join(clauses), params

    def _build_order(self, query: SearchQuery) -> tuple[str, list]:
        params: list = []
        if query.sort == SortMode.RELEVANCE:
            terms = []
            if query.q:
                # Title matches rank above description-only matches.
                terms.append("CASE WHEN r.title LIKE ? ESCAPE '\\' THEN 0 ELSE 1 END")
                params.append(_like_pattern(query.q))
            terms.append(f"{UPLOADED_EXPR} DESC")
        else:
            terms = [
                f"{_COLUMN_EXPR[name]} {'DESC' if descending else 'ASC'}"
                for name, descending in SORT_FIELDS[query.sort]
            ]
        terms.append("r.id ASC")
        return ", ".join(terms), params

    def _row_to_hit(self, row: sqlite3.Row, term: str) -> SearchHit:
        sports = decode_list(row["sports"])
        levels = decode_list(row["levels"])
        highlights = None
        if term:
            spans = {
                name: marked
                for name, marked in (
                    ("title", highlight(row["title"], term)),
                    ("description", highlight(row["description"], term)),
                )
                if marked is not None
            }
            highlights = spans or None
        return SearchHit(
            id=row["id"],
            title=row["title"],
            description=row["description"],
            sport=sports[0] if sports else "",
            level=levels[0] if levels else "",
            file_type=row["file_type"],
            price_cents=int(row["price_cents"]),
            rating=float(row["rating"] or 0),
            purchase_count=int(row["purchase_count"] or 0),
            view_count=int(row["view_count"] or 0),
            uploaded_at=parse_db_timestamp(row["uploaded_at"] or row["created_at"]),
            seller_name=row["seller_name"] or None,
            seller_id=row["seller_id"],
            highlights=highlights,
        )

    def _facets(
        self, conn: sqlite3.Connection, where: str, params: list
    ) -> dict[str, dict[str, int]]:
        """Count sport, level, file-type and price buckets over every match."""
        rows = conn.execute(
            f"SELECT r.sports, r.levels, r.file_type, r.price_cents "
            f"FROM resources r WHERE {where}",
            params,
        ).fetchall()
        counters = {name: Counter() for name in FACET_FIELDS}
        prices = Counter()
        for row in rows:
            counters["sports"].update(set(decode_list(row["sports"])))
            counters["levels"].update(set(decode_list(row["levels"])))
            if row["file_type"]:
                counters["file_types"][row["file_type"]] += 1
            prices[price_range_label(int(row["price_cents"]))] += 1
        facets = {name: dict(counter) for name, counter in counters.items()}
        facets["price_ranges"] = dict(prices)
        return facets

    def search(self, query: SearchQuery) -> SearchResult:
        """Execute a search against the catalog tables.

        Raises:
            SearchBackendUnavailable: If the catalog database cannot be read.
        """
        started = time.perf_counter()
        where, where_params = self._build_where(query)
        order_by, order_params = self._build_order(query)

        try:
            conn = get_connection(self.db_path)
            try:
                total = conn.execute(
                    f"SELECT COUNT(*) FROM resources r WHERE {where}", where_params
                ).fetchone()[0]
                rows = conn.execute(
                    f"{RESOURCE_SELECT} WHERE {where} ORDER BY {order_by} "
                    "LIMIT ? OFFSET ?",
                    [*where_params, *order_params, query.per_page, query.offset],
                ).fetchall()
                facets = self._facets(conn, where, where_params)
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.error("Fallback search failed: %s", e)
            raise SearchBackendUnavailable(f"Catalog store unavailable: {e}") from e

        hits = [self._row_to_hit(row, query.q) for row in rows]
        return SearchResult(
            hits=hits,
            total_hits=int(total),
            page=query.page,
            total_pages=total_pages_for(int(total), query.per_page),
            processing_time_ms=int((time.perf_counter() - started) * 1000),
            facets=facets,
        )

    def index_resource(self, document: ListingDocument) -> None:
        logger.debug("Fallback backend reads the catalog directly; skip %s", document.id)

    def remove_resource(self, resource_id: str) -> None:
        logger.debug("Fallback backend reads the catalog directly; skip %s", resource_id)

    def reindex_all(self, documents: Sequence[ListingDocument]) -> None:
        logger.debug("Fallback backend reindex is a no-op (%d documents)", len(documents))

    def get_trending(self, limit: int = 12) -> list[TrendingResult]:
        """Read the ranked trending cache written by the trending engine."""
        try:
            return read_trending_cache(self.db_path, limit)
        except sqlite3.Error:
            logger.exception("Fallback trending lookup failed")
            return []

    def get_recommendations(
        self, resource_id: str, limit: int = 12
    ) -> list[RecommendationResult]:
        """Other listings sharing a sport with the source, most purchased first."""
        try:
            conn = get_connection(self.db_path)
            try:
                source = conn.execute(
                    "SELECT sports FROM resources WHERE id = ?", (resource_id,)
                ).fetchone()
                sports = decode_list(source["sports"]) if source else []
                if not sports:
                    return []
                rows = conn.execute(
                    f"SELECT r.* FROM resources r WHERE {VISIBLE_CLAUSE} AND r.id != ? "
                    "AND EXISTS (SELECT 1 FROM json_each(r.sports) AS je "
                    f"WHERE je.value IN ({_placeholders(sports)})) "
                    "ORDER BY r.purchase_count DESC, r.id ASC LIMIT ?",
                    [resource_id, *sports, limit],
                ).fetchall()
            finally:
                conn.close()
        except sqlite3.Error:
            logger.exception("Fallback recommendations failed for %s", resource_id)
            return []

        results = []
        for index, row in enumerate(rows):
            row_sports = decode_list(row["sports"])
            row_levels = decode_list(row["levels"])
            results.append(
                RecommendationResult(
                    id=row["id"],
                    title=row["title"],
                    sport=row_sports[0] if row_sports else "",
                    level=row_levels[0] if row_levels else "",
                    price_cents=int(row["price_cents"]),
                    rating=float(row["rating"] or 0),
                    purchase_count=int(row["purchase_count"] or 0),
                    similarity_score=round(1.0 - index * 0.1, 4),
                    reason=RecommendationReason.SAME_SPORT,
                )
            )
        return results

    def is_healthy(self) -> bool:
        try:
            conn = get_connection(self.db_path)
            try:
                conn.execute("SELECT 1 FROM resources LIMIT 1").fetchall()
            finally:
                conn.close()
            return True
        except sqlite3.Error as e:
            logger.warning("Catalog store health check failed: %s", e)
            return False
