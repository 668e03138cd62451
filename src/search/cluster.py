"""Self-hosted text-search cluster backend (Elasticsearch client).

Queries and writes go through an alias named after the configured index.
``reindex_all`` builds a timestamped shadow index, loads it, and then moves
the alias in a single ``_aliases`` call so readers switch generations
atomically.
"""

import time
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

from elasticsearch import ApiError, Elasticsearch, NotFoundError, TransportError, helpers
from elasticsearch.helpers import BulkIndexError

from src.search.base import FACET_FIELDS, PRICE_RANGES, SORT_FIELDS
from src.search.errors import IndexingError, SearchBackendUnavailable
from src.search.types import (
    ListingDocument,
    RecommendationResult,
    SearchHit,
    SearchQuery,
    SearchResult,
    SortMode,
    TrendingResult,
    total_pages_for,
)
from src.utils.logger import get_logger

logger = get_logger(__name__)

ES_ERRORS = (ApiError, TransportError)

INDEX_MAPPING = {
    "mappings": {
        "properties": {
            "id": {"type": "keyword"},
            "title": {"type": "text", "analyzer": "standard"},
            "description": {"type": "text", "analyzer": "standard"},
            "tags": {"type": "text", "fields": {"keyword": {"type": "keyword"}}},
            "sport": {"type": "text", "fields": {"keyword": {"type": "keyword"}}},
            "level": {"type": "text", "fields": {"keyword": {"type": "keyword"}}},
            "file_type": {"type": "text", "fields": {"keyword": {"type": "keyword"}}},
            "price_cents": {"type": "integer"},
            "uploaded_at": {"type": "date"},
            "uploaded_at_ts": {"type": "long"},
            "purchase_count": {"type": "integer"},
            "view_count": {"type": "integer"},
            "rating": {"type": "float"},
            "is_listed": {"type": "boolean"},
            "seller_name": {"type": "keyword"},
            "seller_id": {"type": "keyword"},
        }
    }
}

TEXT_FIELDS = ["title^3", "description^2", "tags^2", "sport", "level"]


def build_query(query: SearchQuery) -> dict[str, Any]:
    """Translate a SearchQuery into a ``bool`` query.

    The ``is_listed`` term is always the first filter.
    """
    filters: list[dict] = [{"term": {"is_listed": True}}]
    f = query.filters

    if query.q:
        must: list[dict] = [
            {
                "multi_match": {
                    "query": query.q,
                    "fields": TEXT_FIELDS,
                    "type": "best_fields",
                    "fuzziness": "AUTO",
                }
            }
        ]
    else:
        must = [{"match_all": {}}]

    for field, values in (
        ("sport.keyword", f.sports),
        ("level.keyword", f.levels),
        ("file_type.keyword", f.file_types),
        ("tags.keyword", f.tags),
    ):
        if values:
            filters.append({"terms": {field: list(values)}})

    price: dict[str, int] = {}
    if f.price_min is not None:
        price["gte"] = f.price_min
    if f.price_max is not None:
        price["lte"] = f.price_max
    if price:
        filters.append({"range": {"price_cents": price}})

    if f.rating_min is not None:
        filters.append({"range": {"rating": {"gte": f.rating_min}}})

    uploaded: dict[str, str] = {}
    if f.uploaded_from is not None:
        uploaded["gte"] = f.uploaded_from.isoformat()
    if f.uploaded_to is not None:
        uploaded["lte"] = f.uploaded_to.isoformat()
    if uploaded:
        filters.append({"range": {"uploaded_at": uploaded}})

    return {"bool": {"must": must, "filter": filters}}


def build_sort(sort: SortMode) -> list:
    """Sort clauses for ``sort``; every mode ends with newest-first, then id."""
    if sort == SortMode.RELEVANCE:
        clauses: list = ["_score", {"uploaded_at": {"order": "desc"}}]
    else:
        clauses = [
            {name: {"order": "desc" if descending else "asc"}}
            for name, descending in SORT_FIELDS[sort]
        ]
    clauses.append({"id": {"order": "asc"}})
    return clauses


def build_aggregations() -> dict[str, Any]:
    aggs: dict[str, Any] = {
        name: {"terms": {"field": f"{field}.keyword", "size": 50}}
        for name, field in FACET_FIELDS.items()
    }
    aggs["price_ranges"] = {
        "range": {
            "field": "price_cents",
            "keyed": True,
            "ranges": [
                {"key": label, "from": low, **({"to": high} if high is not None else {})}
                for label, low, high in PRICE_RANGES
            ],
        }
    }
    return aggs


def parse_facets(aggregations: dict | None) -> dict[str, dict[str, int]]:
    if not aggregations:
        return {}
    facets: dict[str, dict[str, int]] = {}
    for name in FACET_FIELDS:
        if name in aggregations:
            facets[name] = {
                str(bucket["key"]): int(bucket["doc_count"])
                for bucket in aggregations[name].get("buckets", [])
            }
    ranges = aggregations.get("price_ranges", {}).get("buckets", {})
    if ranges:
        facets["price_ranges"] = {
            key: int(bucket["doc_count"]) for key, bucket in ranges.items()
        }
    return facets


def parse_hit(hit: dict) -> SearchHit:
    source = hit.get("_source", {})
    uploaded = source.get("uploaded_at")
    highlight = hit.get("highlight") or {}
    spans = {
        name: highlight[name][0]
        for name in ("title", "description")
        if highlight.get(name)
    }
    return SearchHit(
        id=str(hit["_id"]),
        title=source.get("title", ""),
        description=source.get("description", ""),
        sport=source.get("sport", ""),
        level=source.get("level", ""),
        file_type=source.get("file_type", ""),
        price_cents=int(source.get("price_cents", 0)),
        rating=float(source.get("rating") or 0),
        purchase_count=int(source.get("purchase_count") or 0),
        view_count=int(source.get("view_count") or 0),
        uploaded_at=datetime.fromisoformat(uploaded) if uploaded else None,
        seller_name=source.get("seller_name"),
        seller_id=source.get("seller_id"),
        highlights=spans or None,
    )


def _body(response: Any) -> dict:
    """Plain dict from a client response object."""
    return getattr(response, "body", response)


class ClusterSearchBackend:
    """Search backend for a self-hosted Elasticsearch cluster.

    Attributes:
        client: Elasticsearch client bound to the node URL.
        alias: Alias that always points at the live index generation.
        timeout: Per-request timeout in seconds.
        health_timeout: Timeout for the health probe.
    """

    vendor = "elastic"

    def __init__(
        self,
        node_url: str,
        index_name: str,
        username: str = "",
        password: str = "",
        timeout: float = 10.0,
        health_timeout: float = 2.0,
        client: Elasticsearch | None = None,
    ) -> None:
        self.alias = index_name
        self.timeout = timeout
        self.health_timeout = health_timeout
        self.client = client or Elasticsearch(
            node_url.rstrip("/"),
            basic_auth=(username, password) if username else None,
            request_timeout=timeout,
        )

    def search(self, query: SearchQuery) -> SearchResult:
        """Run ``query`` against the live alias.

        Raises:
            SearchBackendUnavailable: If the cluster cannot be reached or
                reports an error.
        """
        started = time.perf_counter()
        try:
            result = _body(
                self.client.search(
                    index=self.alias,
                    query=build_query(query),
                    sort=build_sort(query.sort),
                    from_=query.offset,
                    size=query.per_page,
                    track_total_hits=True,
                    highlight={"fields": {"title": {}, "description": {}, "tags": {}}},
                    aggs=build_aggregations(),
                )
            )
        except NotFoundError:
            result = {}
        except ES_ERRORS as e:
            logger.error("Cluster search error: %s", e)
            raise SearchBackendUnavailable("Search temporarily unavailable") from e

        hits_section = result.get("hits", {})
        total = hits_section.get("total", 0)
        total_hits = int(total.get("value", 0) if isinstance(total, dict) else total)
        hits = [parse_hit(hit) for hit in hits_section.get("hits", [])][: query.per_page]
        return SearchResult(
            hits=hits,
            total_hits=total_hits,
            page=query.page,
            total_pages=total_pages_for(total_hits, query.per_page),
            processing_time_ms=int(
                result.get("took", (time.perf_counter() - started) * 1000)
            ),
            facets=parse_facets(result.get("aggregations")),
        )

    def index_resource(self, document: ListingDocument) -> None:
        try:
            self.client.index(
                index=self.alias,
                id=document.id,
                document=document.to_index_body(),
                refresh="wait_for",
            )
        except ES_ERRORS as e:
            logger.error("Cluster index error for %s: %s", document.id, e)
            raise IndexingError(f"Failed to index {document.id}") from e

    def remove_resource(self, resource_id: str) -> None:
        try:
            self.client.delete(index=self.alias, id=resource_id, refresh="wait_for")
        except NotFoundError:
            return
        except ES_ERRORS as e:
            logger.error("Cluster delete error for %s: %s", resource_id, e)
            raise IndexingError(f"Failed to remove {resource_id}") from e

    def _current_indices(self) -> list[str]:
        """Concrete indices currently behind the alias."""
        try:
            return list(_body(self.client.indices.get_alias(name=self.alias)))
        except NotFoundError:
            return []

    def reindex_all(self, documents: Sequence[ListingDocument]) -> None:
        """Rebuild into a shadow index and swap the alias onto it.

        Raises:
            IndexingError: If any step fails; the alias keeps pointing at the
                previous generation and the shadow index is dropped.
        """
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S%f")
        shadow = f"{self.alias}-{stamp}"
        try:
            self._load_shadow(shadow, documents)
            previous = self._swap_alias(shadow)
        except (*ES_ERRORS, BulkIndexError) as e:
            logger.error("Cluster reindex error: %s", e)
            self._drop_index(shadow)
            raise IndexingError("Full reindex failed") from e

        for name in previous:
            self._drop_index(name)
        logger.info("Reindexed %d documents into %s", len(documents), shadow)

    def _load_shadow(self, shadow: str, documents: Sequence[ListingDocument]) -> None:
        self.client.indices.create(index=shadow, mappings=INDEX_MAPPING["mappings"])
        if documents:
            helpers.bulk(
                self.client,
                (
                    {"_index": shadow, "_id": doc.id, "_source": doc.to_index_body()}
                    for doc in documents
                ),
            )
        self.client.indices.refresh(index=shadow)

    def _swap_alias(self, shadow: str) -> list[str]:
        """Point the alias at ``shadow`` in one call.

        Returns:
            The indices that backed the alias before the swap.
        """
        previous = self._current_indices()
        actions: list[dict] = [{"add": {"index": shadow, "alias": self.alias}}]
        if not previous and self.client.indices.exists(index=self.alias):
            # A write before the first rebuild auto-created a plain index
            # under the alias name; it has to go in the same call.
            actions.insert(0, {"remove_index": {"index": self.alias}})
        else:
            actions.extend(
                {"remove": {"index": name, "alias": self.alias}} for name in previous
            )
        self.client.indices.update_aliases(actions=actions)
        return previous

    def _drop_index(self, name: str) -> None:
        try:
            self.client.indices.delete(index=name, ignore_unavailable=True)
        except ES_ERRORS as e:
            logger.warning("Could not delete index %s: %s", name, e)

    def get_trending(self, limit: int = 12) -> list[TrendingResult]:
        return []

    def get_recommendations(
        self, resource_id: str, limit: int = 12
    ) -> list[RecommendationResult]:
        return []

    def is_healthy(self) -> bool:
        try:
            health = _body(
                self.client.options(request_timeout=self.health_timeout).cluster.health()
            )
        except ES_ERRORS:
            return False
        return health.get("status") in ("green", "yellow")
