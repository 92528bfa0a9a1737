from logging import getLogger
from typing import NamedTuple, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .conf import catalog_setting
from .exceptions import (
    CatalogAuthenticationError,
    CatalogHTTPError,
    CatalogNetworkError,
)

logger = getLogger(__name__)

RETRY_STATUS_CODES = (429, 500, 502, 503, 504)

#: Response header carrying the size of the whole catalog, when available
TOTAL_COUNT_HEADER = "X-Total-Count"


class CatalogPage(NamedTuple):
    #: Verbatim response body: a JSON array of records
    payload: bytes
    #: Size of the whole catalog if the API reported it
    total_count: Optional[int]


def requests_retry_session(
    attempts=3,
    backoff_factor=2,
    status_forcelist=RETRY_STATUS_CODES,
    session=None,
):
    """
    Return a session which retries connection failures, read timeouts and
    the given status codes with exponential backoff, making at most
    ``attempts`` requests in total.
    """
    session = session or requests.Session()
    retries = max(attempts - 1, 0)
    retry = Retry(
        total=retries,
        read=retries,
        connect=retries,
        status=retries,
        backoff_factor=backoff_factor,
        status_forcelist=status_forcelist,
        allowed_methods=frozenset(["GET"]),
        respect_retry_after_header=True,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def extract_error_message(response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200] or "Unknown error"
    if isinstance(data, dict):
        return str(data.get("message") or data.get("error") or "Unknown error")
    return "Unknown error"


class CatalogClient:
    """
    Client for the external item catalog API

    Transient failures (timeouts, connection errors, HTTP 429 and 5xx) are
    retried inside the session's transport adapter. Anything that still fails
    is raised as a subclass of ``CatalogAPIError``.
    """

    def __init__(
        self,
        base_url=None,
        api_key=None,
        game=None,
        timeout=None,
        attempts=None,
        backoff_factor=None,
        session=None,
    ):
        self.base_url = (base_url or catalog_setting("CATALOG_API_BASE_URL")).rstrip(
            "/"
        )
        self.api_key = (
            api_key if api_key is not None else catalog_setting("CATALOG_API_KEY")
        )
        self.game = game or catalog_setting("CATALOG_API_GAME")
        self.timeout = timeout or catalog_setting("CATALOG_API_TIMEOUT")
        self.session = requests_retry_session(
            attempts=attempts or catalog_setting("CATALOG_API_MAX_ATTEMPTS"),
            backoff_factor=(
                backoff_factor
                if backoff_factor is not None
                else catalog_setting("CATALOG_API_BACKOFF_FACTOR")
            ),
            session=session,
        )

    @property
    def items_url(self):
        return f"{self.base_url}/items"

    def _get(self, params):
        query = {"key": self.api_key, "game": self.game}
        query.update(params)

        try:
            resp = self.session.get(
                self.items_url,
                params=query,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as exc:
            logger.warning(
                "Request to %s failed after retrying: %s", self.items_url, exc
            )
            raise CatalogNetworkError(
                f"Request to {self.items_url} failed: {exc}"
            ) from exc

        if resp.status_code in (401, 403):
            raise CatalogAuthenticationError(
                resp.status_code,
                "authentication failed, check CATALOG_API_KEY",
            )

        if resp.status_code in RETRY_STATUS_CODES:
            # Only reached when the adapter stops retrying without raising
            raise CatalogNetworkError(
                f"HTTP {resp.status_code} from {self.items_url} after retrying"
            )

        if resp.status_code >= 400:
            raise CatalogHTTPError(resp.status_code, extract_error_message(resp))

        return resp

    def fetch_page(self, page_size: int, page_number: int) -> CatalogPage:
        """
        Fetch one page of the catalog.

        Pages are 1-indexed. The returned payload is the unparsed response
        body so the caller decides how much of it to hold in memory.
        """
        logger.info(
            "Fetching catalog page %d with up to %d records", page_number, page_size
        )
        resp = self._get({"max": page_size, "page": page_number})

        total_count = None
        header = resp.headers.get(TOTAL_COUNT_HEADER)
        if header is not None:
            try:
                total_count = int(header)
            except ValueError:
                logger.warning(
                    "Ignoring non-numeric %s header: %r", TOTAL_COUNT_HEADER, header
                )

        return CatalogPage(payload=resp.content, total_count=total_count)

    def fetch_all_items(self) -> bytes:
        """
        Fetch the whole catalog in one request. Only suitable for small
        catalogs; larger ones should be paged with ``fetch_page``.
        """
        logger.info("Fetching the complete catalog from %s", self.items_url)
        return self._get({}).content
