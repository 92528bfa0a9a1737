class CatalogError(Exception):
    """
    Base class for failures in the catalog download and sync pipeline.
    """


class CatalogAPIError(CatalogError):
    """
    Raised when the external catalog API cannot be used to fetch data.
    """


class CatalogNetworkError(CatalogAPIError):
    """
    Raised when a request keeps failing with timeouts, connection errors,
    rate limiting or server errors after every retry has been used.
    """


class CatalogHTTPError(CatalogAPIError):
    """
    Raised for client errors which retrying would not fix.
    """

    def __init__(self, status_code: int, message: str):
        super().__init__(f"HTTP {status_code} error from catalog API: {message}")
        self.status_code = status_code


class CatalogAuthenticationError(CatalogHTTPError):
    """
    Raised when the API rejects the configured key (HTTP 401 or 403).
    """


class CatalogResponseError(CatalogAPIError):
    """
    Raised when a response body is not the JSON array of records we expect.
    """


class CatalogDownloadError(CatalogError):
    """
    Raised when a download run cannot continue, i.e. the first page failed
    and the number of chunks is unknown.
    """


class ChunkParseError(CatalogError):
    """
    Raised when a chunk file cannot be read or is not a JSON array. The chunk
    is left in ``pending/`` for manual inspection.
    """


class ChunkStorageError(CatalogError):
    """
    Raised when the chunk directories cannot be created or written.
    """
