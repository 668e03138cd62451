"""Search gateway: the single entry point to the configured backend.

The gateway is constructed once (normally at application startup) and
passed to callers explicitly. It selects a backend by vendor identifier and
otherwise forwards every call unchanged.
"""

from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError

from src.search.base import SearchBackend
from src.search.cluster import ClusterSearchBackend
from src.search.disabled import DisabledSearchBackend
from src.search.errors import ConfigurationError
from src.search.hosted import HostedSearchBackend
from src.search.relational import RelationalSearchBackend
from src.search.types import (
    ListingDocument,
    RecommendationResult,
    SearchQuery,
    SearchResult,
    TrendingResult,
)
from src.utils.config import Settings
from src.utils.logger import get_logger

logger = get_logger(__name__)


def _hosted(settings: Settings, search_config: dict) -> SearchBackend:
    if not settings.algolia_app_id or not settings.algolia_admin_api_key:
        raise ConfigurationError("algolia vendor requires ALGOLIA_APP_ID and ALGOLIA_ADMIN_API_KEY")
    return HostedSearchBackend(
        app_id=settings.algolia_app_id,
        admin_api_key=settings.algolia_admin_api_key,
        search_api_key=settings.algolia_search_api_key,
        index_name=settings.algolia_index_resources,
        timeout=float(search_config.get("request_timeout", 10)),
        health_timeout=float(search_config.get("health_timeout", 2)),
    )


def _cluster(settings: Settings, search_config: dict) -> SearchBackend:
    if not settings.elastic_node_url:
        raise ConfigurationError("elastic vendor requires ELASTIC_NODE_URL")
    return ClusterSearchBackend(
        node_url=settings.elastic_node_url,
        index_name=settings.elastic_index_resources,
        username=settings.elastic_username,
        password=settings.elastic_password,
        timeout=float(search_config.get("request_timeout", 10)),
        health_timeout=float(search_config.get("health_timeout", 2)),
    )


def _relational(settings: Settings, search_config: dict) -> SearchBackend:
    return RelationalSearchBackend(settings.db_path)


def _disabled(settings: Settings, search_config: dict) -> SearchBackend:
    return DisabledSearchBackend()


BACKEND_FACTORIES: dict[str, Callable[[Settings, dict], SearchBackend]] = {
    "algolia": _hosted,
    "elastic": _cluster,
    "database": _relational,
    "none": _disabled,
}


def create_backend(
    vendor: str, settings: Settings, search_config: dict | None = None
) -> SearchBackend:
    """Instantiate the backend registered for ``vendor``.

    Raises:
        ConfigurationError: If the vendor is unknown or its settings are
            incomplete.
    """
    factory = BACKEND_FACTORIES.get((vendor or "").strip().lower())
    if factory is None:
        raise ConfigurationError(
            f"Unsupported search vendor: {vendor!r} "
            f"(expected one of {', '.join(sorted(BACKEND_FACTORIES))})"
        )
    return factory(settings, search_config or {})


class SearchGateway:
    """Pass-through wrapper around one search backend.

    Attributes:
        backend: The active backend.
        vendor: Identifier the backend was selected with.
        health_timeout: Seconds allowed for ``is_healthy``.
    """

    def __init__(
        self, backend: SearchBackend, vendor: str, health_timeout: float = 2.0
    ) -> None:
        self._backend = backend
        self._vendor = vendor
        self.health_timeout = health_timeout

    @property
    def backend(self) -> SearchBackend:
        return self._backend

    @property
    def vendor(self) -> str:
        return self._vendor

    @classmethod
    def from_settings(
        cls, settings: Settings, search_config: dict | None = None
    ) -> "SearchGateway":
        """Build the gateway for ``settings.search_vendor``.

        Raises:
            ConfigurationError: If the vendor is unknown.
        """
        search_config = search_config or {}
        vendor = settings.search_vendor
        backend = create_backend(vendor, settings, search_config)
        logger.info("Search gateway using %s backend", vendor)
        return cls(
            backend,
            vendor=vendor,
            health_timeout=float(search_config.get("health_timeout", 2)),
        )

    def search(self, query: SearchQuery) -> SearchResult:
        return self._backend.search(query)

    def index_resource(self, document: ListingDocument) -> None:
        self._backend.index_resource(document)

    def remove_resource(self, resource_id: str) -> None:
        self._backend.remove_resource(resource_id)

    def reindex_all(self, documents: Sequence[ListingDocument]) -> None:
        self._backend.reindex_all(list(documents))

    def get_trending(self, limit: int = 12) -> list[TrendingResult]:
        return self._backend.get_trending(limit)

    def get_recommendations(
        self, resource_id: str, limit: int = 12
    ) -> list[RecommendationResult]:
        return self._backend.get_recommendations(resource_id, limit)

    def is_healthy(self, timeout: float | None = None) -> bool:
        """Probe the backend, treating slow or failing probes as unhealthy."""
        timeout = self.health_timeout if timeout is None else timeout
        executor = ThreadPoolExecutor(max_workers=1)
        future = executor.submit(self._backend.is_healthy)
        try:
            return bool(future.result(timeout=timeout))
        except FutureTimeoutError:
            logger.warning("%s health probe exceeded %.1fs", self._vendor, timeout)
            return False
        except Exception as e:
            logger.warning("%s health probe failed: %s", self._vendor, e)
            return False
        finally:
            executor.shutdown(wait=False)
