"""Exceptions raised by the search layer."""


class SearchError(Exception):
    """Base class for search layer errors."""


class ConfigurationError(SearchError):
    """The search layer was configured with an unknown or incomplete backend."""


class SearchBackendUnavailable(SearchError):
    """The backend could not be reached or returned a server error.

    Distinct from a query that matched nothing; callers should route the
    request to the relational fallback instead of reporting zero hits.
    """


class IndexingError(SearchError):
    """A document could not be written to or removed from the index.

    Retryable. A listing whose indexing failed must not be treated as
    published.
    """
