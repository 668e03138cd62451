"""Hosted full-text index backend (Algolia REST API).

Each non-relevance sort mode is served by a replica index named
``<index>_<sort>`` whose ranking puts the sort attribute first and newest
uploads second. ``configure_index`` pushes those settings.

``reindex_all`` loads a temporary index, re-applies the primary and replica
settings, and only then moves the temporary index over the live one, which
the service applies atomically. The move keeps the live index's replicas.
"""

import time
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

import requests

from src.search.base import FACET_FIELDS, SORT_FIELDS
from src.search.errors import IndexingError, SearchBackendUnavailable
from src.search.types import (
    ListingDocument,
    RecommendationResult,
    SearchFilters,
    SearchHit,
    SearchQuery,
    SearchResult,
    SortMode,
    TrendingResult,
    total_pages_for,
)
from src.utils.logger import get_logger

logger = get_logger(__name__)

BATCH_SIZE = 1000
TASK_POLL_SECONDS = 0.2
DEFAULT_RANKING = ["typo", "geo", "words", "filters", "proximity", "attribute", "exact", "custom"]

# Algolia attribute names differ where the index stores epoch seconds.
_ATTRIBUTE = {"uploaded_at": "uploaded_at_ts"}
_FACET_ATTRIBUTES = {field: name for name, field in FACET_FIELDS.items()}


def _quote(value: str) -> str:
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def build_filters(filters: SearchFilters) -> str:
    """Compile filters into the hosted filter syntax.

    ``is_listed:true`` is always the first clause.
    """
    clauses = ["is_listed:true"]
    for attribute, values in (
        ("sport", filters.sports),
        ("level", filters.levels),
        ("file_type", filters.file_types),
        ("tags", filters.tags),
    ):
        if values:
            alternatives = " OR ".join(f"{attribute}:{_quote(v)}" for v in values)
            clauses.append(f"({alternatives})")
    if filters.price_min is not None:
        clauses.append(f"price_cents >= {int(filters.price_min)}")
    if filters.price_max is not None:
        clauses.append(f"price_cents <= {int(filters.price_max)}")
    if filters.rating_min is not None:
        clauses.append(f"rating >= {float(filters.rating_min)}")
    if filters.uploaded_from is not None:
        clauses.append(f"uploaded_at_ts >= {int(filters.uploaded_from.timestamp())}")
    if filters.uploaded_to is not None:
        clauses.append(f"uploaded_at_ts <= {int(filters.uploaded_to.timestamp())}")
    return " AND ".join(clauses)


def replica_ranking(sort: SortMode) -> list[str]:
    """Ranking criteria for the replica serving ``sort``."""
    criteria = [
        f"{'desc' if descending else 'asc'}({_ATTRIBUTE.get(name, name)})"
        for name, descending in SORT_FIELDS[sort]
    ]
    return criteria + DEFAULT_RANKING


def parse_hit(hit: dict) -> SearchHit:
    highlight = hit.get("_highlightResult") or {}
    spans = {
        name: highlight[name]["value"]
        for name in ("title", "description")
        if isinstance(highlight.get(name), dict)
        and highlight[name].get("matchLevel", "none") != "none"
    }
    uploaded = hit.get("uploaded_at")
    return SearchHit(
        id=str(hit.get("objectID") or hit.get("id")),
        title=hit.get("title", ""),
        description=hit.get("description", ""),
        sport=hit.get("sport", ""),
        level=hit.get("level", ""),
        file_type=hit.get("file_type", ""),
        price_cents=int(hit.get("price_cents", 0)),
        rating=float(hit.get("rating") or 0),
        purchase_count=int(hit.get("purchase_count") or 0),
        view_count=int(hit.get("view_count") or 0),
        uploaded_at=datetime.fromisoformat(uploaded) if uploaded else None,
        seller_name=hit.get("seller_name"),
        seller_id=hit.get("seller_id"),
        highlights=spans or None,
    )


class HostedSearchBackend:
    """Search backend for the hosted index service.

    Attributes:
        app_id: Application id.
        index_name: Name of the live primary index.
        timeout: Per-request timeout in seconds.
        health_timeout: Timeout for the health probe.
        task_timeout: Maximum seconds to wait for an indexing task.
    """

    vendor = "algolia"

    def __init__(
        self,
        app_id: str,
        admin_api_key: str,
        search_api_key: str,
        index_name: str,
        timeout: float = 10.0,
        health_timeout: float = 2.0,
        task_timeout: float = 60.0,
        session: requests.Session | None = None,
    ) -> None:
        self.app_id = app_id
        self.admin_api_key = admin_api_key
        self.search_api_key = search_api_key or admin_api_key
        self.index_name = index_name
        self.timeout = timeout
        self.health_timeout = health_timeout
        self.task_timeout = task_timeout
        self.session = session or requests.Session()
        self.read_host = f"https://{app_id}-dsn.algolia.net"
        self.write_host = f"https://{app_id}.algolia.net"

    def _request(
        self,
        method: str,
        path: str,
        body: Any = None,
        *,
        write: bool = False,
        allow_404: bool = False,
        timeout: float | None = None,
    ) -> dict:
        """Send one request and decode the JSON response.

        Raises:
            requests.RequestException: On connection problems or error
                status codes (404 is returned as ``{}`` when allowed).
        """
        response = self.session.request(
            method,
            f"{self.write_host if write else self.read_host}{path}",
            json=body,
            headers={
                "X-Algolia-Application-Id": self.app_id,
                "X-Algolia-API-Key": self.admin_api_key if write else self.search_api_key,
            },
            timeout=timeout or self.timeout,
        )
        if allow_404 and response.status_code == 404:
            return {}
        response.raise_for_status()
        return response.json() if response.content else {}

    def index_for(self, sort: SortMode) -> str:
        """Index (primary or replica) that serves ``sort``."""
        if sort == SortMode.RELEVANCE:
            return self.index_name
        return f"{self.index_name}_{sort.value}"

    def _primary_settings(self) -> dict:
        return {
            "searchableAttributes": ["title", "description", "tags", "sport", "level"],
            "attributesForFaceting": [
                "filterOnly(is_listed)",
                "sport",
                "level",
                "file_type",
                "filterOnly(tags)",
            ],
            "customRanking": ["desc(uploaded_at_ts)"],
            "attributesToHighlight": ["title", "description", "tags"],
        }

    def configure_index(self) -> None:
        """Push primary and replica settings.

        Raises:
            IndexingError: If any settings update fails.
        """
        replicas = [self.index_for(sort) for sort in SORT_FIELDS]
        try:
            task = self._request(
                "PUT",
                f"/1/indexes/{self.index_name}/settings",
                {**self._primary_settings(), "replicas": replicas},
                write=True,
            )
            self._wait_task(self.index_name, task)
            for sort in SORT_FIELDS:
                replica = self.index_for(sort)
                task = self._request(
                    "PUT",
                    f"/1/indexes/{replica}/settings",
                    {**self._primary_settings(), "ranking": replica_ranking(sort)},
                    write=True,
                )
                self._wait_task(replica, task)
        except requests.RequestException as e:
            logger.error("Hosted index configuration error: %s", e)
            raise IndexingError("Index configuration failed") from e

    def _wait_task(self, index: str, task: dict) -> None:
        """Block until ``task`` is published or ``task_timeout`` elapses.

        Raises:
            IndexingError: If the task does not publish in time.
        """
        task_id = task.get("taskID")
        if task_id is None:
            return
        deadline = time.monotonic() + self.task_timeout
        while time.monotonic() < deadline:
            status = self._request("GET", f"/1/indexes/{index}/task/{task_id}", write=True)
            if status.get("status") == "published":
                return
            time.sleep(TASK_POLL_SECONDS)
        raise IndexingError(f"Task {task_id} on {index} did not complete")

    def search(self, query: SearchQuery) -> SearchResult:
        """Run ``query`` on the index serving its sort mode.

        Raises:
            SearchBackendUnavailable: If the service cannot be reached.
        """
        body = {
            "query": query.q,
            "page": query.page - 1,
            "hitsPerPage": query.per_page,
            "filters": build_filters(query.filters),
            "facets": list(_FACET_ATTRIBUTES),
        }
        try:
            result = self._request(
                "POST", f"/1/indexes/{self.index_for(query.sort)}/query", body
            )
        except (requests.RequestException, ValueError) as e:
            logger.error("Hosted search error: %s", e)
            raise SearchBackendUnavailable("Search temporarily unavailable") from e

        total_hits = int(result.get("nbHits", 0))
        facets = {
            _FACET_ATTRIBUTES[attribute]: {str(k): int(v) for k, v in counts.items()}
            for attribute, counts in (result.get("facets") or {}).items()
            if attribute in _FACET_ATTRIBUTES
        }
        return SearchResult(
            hits=[parse_hit(hit) for hit in result.get("hits", [])][: query.per_page],
            total_hits=total_hits,
            page=query.page,
            total_pages=total_pages_for(total_hits, query.per_page),
            processing_time_ms=int(result.get("processingTimeMS", 0)),
            facets=facets,
        )

    def _object(self, document: ListingDocument) -> dict:
        return {"objectID": document.id, **document.to_index_body()}

    def index_resource(self, document: ListingDocument) -> None:
        try:
            self._request(
                "PUT",
                f"/1/indexes/{self.index_name}/{document.id}",
                self._object(document),
                write=True,
            )
        except requests.RequestException as e:
            logger.error("Hosted index error for %s: %s", document.id, e)
            raise IndexingError(f"Failed to index {document.id}") from e

    def remove_resource(self, resource_id: str) -> None:
        try:
            self._request(
                "DELETE",
                f"/1/indexes/{self.index_name}/{resource_id}",
                write=True,
                allow_404=True,
            )
        except requests.RequestException as e:
            logger.error("Hosted delete error for %s: %s", resource_id, e)
            raise IndexingError(f"Failed to remove {resource_id}") from e

    def reindex_all(self, documents: Sequence[ListingDocument]) -> None:
        """Load a temporary index and move it over the live one.

        Settings are pushed before the move, so the new corpus goes live
        with its replicas already configured.

        Raises:
            IndexingError: If loading, configuration or the move fails. The
                live corpus is replaced only by a successful move.
        """
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
        tmp = f"{self.index_name}_tmp_{stamp}"
        try:
            task = self._request(
                "PUT", f"/1/indexes/{tmp}/settings", self._primary_settings(), write=True
            )
            self._wait_task(tmp, task)
            for start in range(0, len(documents), BATCH_SIZE):
                chunk = documents[start : start + BATCH_SIZE]
                task = self._request(
                    "POST",
                    f"/1/indexes/{tmp}/batch",
                    {
                        "requests": [
                            {"action": "addObject", "body": self._object(doc)}
                            for doc in chunk
                        ]
                    },
                    write=True,
                )
                self._wait_task(tmp, task)
            self.configure_index()
            task = self._request(
                "POST",
                f"/1/indexes/{tmp}/operation",
                {"operation": "move", "destination": self.index_name},
                write=True,
            )
            self._wait_task(self.index_name, task)
        except (requests.RequestException, IndexingError) as e:
            logger.error("Hosted reindex error: %s", e)
            self._drop_index(tmp)
            raise IndexingError("Full reindex failed") from e
        logger.info("Reindexed %d documents into %s", len(documents), self.index_name)

    def _drop_index(self, name: str) -> None:
        try:
            self._request("DELETE", f"/1/indexes/{name}", write=True, allow_404=True)
        except requests.RequestException as e:
            logger.warning("Could not delete index %s: %s", name, e)

    def get_trending(self, limit: int = 12) -> list[TrendingResult]:
        return []

    def get_recommendations(
        self, resource_id: str, limit: int = 12
    ) -> list[RecommendationResult]:
        return []

    def is_healthy(self) -> bool:
        try:
            self._request("GET", "/1/isalive", timeout=self.health_timeout)
        except (requests.RequestException, ValueError):
            return False
        return True
