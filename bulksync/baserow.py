"""Baserow REST API client module."""
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Iterator, Mapping

import requests


BASEROW_BASE_URL = "https://api.baserow.io/api"
DEFAULT_TIMEOUT = 10
RATE_LIMIT_DELAY = 0.1  # minimum spacing between requests
MAX_RETRIES = 3
DEFAULT_PAGE_SIZE = 200

# Logical tables of the catalog, each bound to a numeric table id
TABLES = (
    "contents",
    "episodes",
    "banners",
    "categories",
    "users",
    "sessions",
    "platforms",
)

# Methods that may be re-sent after a timeout or dropped connection
IDEMPOTENT_METHODS = {"GET", "PATCH", "DELETE"}

log = logging.getLogger(__name__)


class BaserowError(Exception):
    """Exception raised for Baserow API errors."""

    def __init__(self, message: str, status: int | None = None, code: str | None = None):
        super().__init__(message)
        self.status = status
        self.code = code


class ConfigurationError(BaserowError):
    """Raised before any network call when the client is not configured."""
    pass


@dataclass(frozen=True)
class BaserowConfig:
    """Connection settings for one Baserow database."""
    api_token: str
    base_url: str = BASEROW_BASE_URL
    table_ids: Mapping[str, str] = field(default_factory=dict)
    timeout: float = DEFAULT_TIMEOUT


@dataclass(frozen=True)
class RowPage:
    """One page of a row listing."""
    results: list[dict[str, Any]]
    count: int
    has_next: bool


def _filter_params(filters: Mapping[str, Any] | None) -> dict[str, Any]:
    """
    Translate ``{"Nome": "x", "Link__contains": "y"}`` into Baserow
    ``filter__<field>__<type>`` query parameters (``equal`` by default).
    """
    params: dict[str, Any] = {}
    for key, value in (filters or {}).items():
        if "__" not in key:
            key = f"{key}__equal"
        params[f"filter__{key}"] = value
    return params


class BaserowClient:
    """Client for the Baserow rows API."""

    def __init__(
        self,
        config: BaserowConfig,
        session: requests.Session | None = None,
        rate_limit_delay: float = RATE_LIMIT_DELAY,
        retries: int = MAX_RETRIES,
    ):
        """
        Initialize the client.

        Args:
            config: Token, base URL and table ids.
            session: Optional requests session (a new one by default).
            rate_limit_delay: Minimum seconds between two requests.
            retries: Attempts per request for rate limits and network errors.

        Raises:
            ConfigurationError: If no API token is configured
        """
        if not config.api_token:
            raise ConfigurationError(
                "Baserow API token not found.\n"
                "Set it using one of these methods:\n"
                "  1. Environment variable: export BASEROW_API_TOKEN=your_token\n"
                "  2. Create a .env file with: BASEROW_API_TOKEN=your_token\n"
                "  3. bulksync config set api_token your_token"
            )
        self.config = config
        self.base_url = config.base_url.rstrip("/")
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Token {config.api_token}",
            "Content-Type": "application/json",
        })
        self.rate_limit_delay = rate_limit_delay
        self.retries = max(1, retries)
        self._last_request_time = 0.0
        self._rate_lock = threading.Lock()

    # -- configuration ---------------------------------------------

    def table_id(self, table: str) -> str:
        """
        Return the configured id of a logical table.

        Raises:
            ConfigurationError: If the table has no id bound
        """
        table_id = str(self.config.table_ids.get(table) or "").strip()
        if not table_id:
            raise ConfigurationError(
                f"No table id configured for '{table}' "
                f"(set BASEROW_TABLE_{table.upper()})"
            )
        return table_id

    # -- transport -------------------------------------------------

    def _rate_limit(self) -> None:
        """Apply rate limiting between requests (shared by all threads)."""
        with self._rate_lock:
            elapsed = time.monotonic() - self._last_request_time
            if elapsed < self.rate_limit_delay:
                time.sleep(self.rate_limit_delay - elapsed)
            self._last_request_time = time.monotonic()

    @staticmethod
    def _error_from_response(method: str, path: str, response: requests.Response) -> BaserowError:
        code = None
        detail: Any = response.reason or ""
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            code = body.get("error")
            detail = body.get("detail") or detail
        message = f"{method} {path} failed: HTTP {response.status_code}"
        if code:
            message += f" {code}"
        if detail:
            message += f": {detail}"
        return BaserowError(message, status=response.status_code, code=code)

    def _request(
        self,
        method: str,
        path: str,
        params: dict | None = None,
        payload: dict | None = None,
    ) -> Any:
        """
        Make a request to the Baserow API.

        Args:
            method: HTTP method
            path: Path below the base URL (e.g. '/database/rows/table/1/')
            params: Query parameters
            payload: JSON body

        Returns:
            Decoded JSON response, or None for empty responses

        Raises:
            BaserowError: On any non-success response or network failure
        """
        url = f"{self.base_url}{path}"
        all_params = {"user_field_names": "true", **(params or {})}

        for attempt in range(1, self.retries + 1):
            self._rate_limit()
            log.debug("%s %s params=%s", method, path, all_params)
            try:
                response = self.session.request(
                    method,
                    url,
                    params=all_params,
                    json=payload,
                    timeout=self.config.timeout,
                )
            except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
                log.debug("%s %s: %s (attempt %d/%d)", method, path, e, attempt, self.retries)
                if method in IDEMPOTENT_METHODS and attempt < self.retries:
                    time.sleep(1)
                    continue
                raise BaserowError(f"{method} {path} failed: {e}") from e
            except requests.exceptions.RequestException as e:
                raise BaserowError(f"{method} {path} failed: {e}") from e

            log.debug("Response status: %s", response.status_code)

            if response.status_code == 429 and attempt < self.retries:
                try:
                    retry_after = float(response.headers.get("Retry-After", 1))
                except ValueError:
                    retry_after = 1.0
                log.info("Rate limited, waiting %.1fs", retry_after)
                time.sleep(retry_after)
                continue

            if not response.ok:
                raise self._error_from_response(method, path, response)

            if response.status_code == 204 or not response.content:
                return None
            try:
                return response.json()
            except ValueError as e:
                raise BaserowError(
                    f"{method} {path} returned invalid JSON",
                    status=response.status_code,
                ) from e

        raise BaserowError(f"{method} {path} failed after {self.retries} attempts")

    def _rows_path(self, table: str, row_id: int | str | None = None) -> str:
        path = f"/database/rows/table/{self.table_id(table)}/"
        if row_id is not None:
            path += f"{row_id}/"
        return path

    # -- rows API --------------------------------------------------

    def list_rows(
        self,
        table: str,
        page: int = 1,
        size: int = 100,
        filters: Mapping[str, Any] | None = None,
        search: str | None = None,
    ) -> RowPage:
        """
        Fetch one page of rows.

        Args:
            table: Logical table name (e.g. 'contents')
            page: 1-based page number
            size: Page size
            filters: Server-side filters, see ``_filter_params``
            search: Optional full-text search term

        Returns:
            RowPage with the results, total count and next-page flag
        """
        path = self._rows_path(table)
        params: dict[str, Any] = {"page": page, "size": size, **_filter_params(filters)}
        if search:
            params["search"] = search
        data = self._request("GET", path, params=params) or {}
        return RowPage(
            results=list(data.get("results") or []),
            count=int(data.get("count") or 0),
            has_next=data.get("next") is not None,
        )

    def iter_rows(
        self,
        table: str,
        page_size: int = DEFAULT_PAGE_SIZE,
        filters: Mapping[str, Any] | None = None,
    ) -> Iterator[dict[str, Any]]:
        """Yield every row of *table*, page by page."""
        page = 1
        while True:
            result = self.list_rows(table, page=page, size=page_size, filters=filters)
            yield from result.results
            if not result.has_next or not result.results:
                return
            page += 1

    def search(self, table: str, term: str, page: int = 1, size: int = 10) -> RowPage:
        """Full-text search in *table*."""
        return self.list_rows(table, page=page, size=size, search=term)

    def get_row(self, table: str, row_id: int | str) -> dict[str, Any]:
        return self._request("GET", self._rows_path(table, row_id))

    def create_row(self, table: str, fields: Mapping[str, Any]) -> dict[str, Any]:
        """Create a row and return it, including its assigned ``id``."""
        row = self._request("POST", self._rows_path(table), payload=dict(fields))
        if not isinstance(row, dict) or "id" not in row:
            raise BaserowError(f"Create in '{table}' returned no row id")
        return row

    def update_row(
        self, table: str, row_id: int | str, fields: Mapping[str, Any]
    ) -> dict[str, Any]:
        """Patch the given fields of one row."""
        return self._request("PATCH", self._rows_path(table, row_id), payload=dict(fields))

    def delete_row(self, table: str, row_id: int | str) -> bool:
        self._request("DELETE", self._rows_path(table, row_id))
        return True
