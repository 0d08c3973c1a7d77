"""
Catalog Client - paginated fetch of a public storefront product listing.

Reads ``https://{domain}/products.json?limit=250&page=N`` until an empty
page comes back (or follows ``Link: rel="next"`` when the origin sends
one). Either every page is fetched or a FetchError is raised: a sync
needs the complete catalog to infer removals, so partial results are
never returned.
"""

import asyncio
import logging
import re
from typing import List, Optional
from urllib.parse import urlsplit

import httpx

from django.conf import settings

from .errors import (
    FetchError,
    FetchTimeout,
    InvalidResponse,
    NetworkUnavailable,
    RemoteRateLimited,
    ServerError,
)
from .types import RemoteProduct

logger = logging.getLogger(__name__)

CATALOG_PATH = "/products.json"

# Used when a 429 carries no parseable Retry-After header
DEFAULT_RETRY_AFTER = 60.0

_DOMAIN_RE = re.compile(r"^[a-z0-9.-]+(:\d+)?$")


def normalize_domain(value: str) -> str:
    """
    Reduce user input to a bare host name.

    "https://Shop.Example.com/collections/all " -> "shop.example.com"

    Raises:
        ValueError: if nothing host-like remains
    """
    raw = (value or "").strip()
    if "://" not in raw:
        raw = f"https://{raw}"
    host = (urlsplit(raw).netloc or "").strip().lower().rstrip(".")
    if not host or not _DOMAIN_RE.match(host):
        raise ValueError(f"Not a valid store domain: {value!r}")
    return host


def parse_retry_after(value: Optional[str]) -> float:
    """Retry-After in seconds; HTTP-date forms fall back to the default."""
    if not value:
        return DEFAULT_RETRY_AFTER
    try:
        return max(0.0, float(value))
    except ValueError:
        return DEFAULT_RETRY_AFTER


class CatalogClient:
    """
    Async client for the public product listing endpoint.

    Features:
    - One pooled httpx.AsyncClient per instance (async context manager)
    - Bounded timeout per page request (whole request, not just each phase)
    - Retry with exponential backoff on timeouts, connection errors and 5xx
    - Page-number pagination with Link-header cursor support
    - Structured FetchError classification
    """

    DEFAULT_USER_AGENT = (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_0) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/120.0.0.0 Safari/537.36"
    )

    DEFAULT_HEADERS = {
        "Accept": "application/json",
        "Accept-Language": "en-US,en;q=0.9",
        "Accept-Encoding": "gzip, deflate",
    }

    def __init__(
        self,
        timeout: Optional[float] = None,
        page_size: Optional[int] = None,
        max_pages: Optional[int] = None,
        max_retries: Optional[int] = None,
        user_agent: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        scheme: str = "https",
    ):
        """
        Initialize the catalog client.

        Args:
            timeout: Per-page request timeout in seconds (default from settings)
            page_size: Products per page (default from settings, max 250)
            max_pages: Safety cap on pages per fetch (default from settings)
            max_retries: Extra attempts for transient failures (default from settings)
            user_agent: Custom User-Agent string
            transport: Optional httpx transport (tests pass httpx.MockTransport)
            scheme: URL scheme for the catalog origin
        """
        self.timeout = timeout or getattr(settings, "WATCHER_REQUEST_TIMEOUT", 30)
        self.page_size = page_size or getattr(settings, "WATCHER_PAGE_SIZE", 250)
        self.max_pages = max_pages or getattr(settings, "WATCHER_MAX_PAGES", 100)
        self.max_retries = (
            max_retries if max_retries is not None
            else getattr(settings, "WATCHER_MAX_RETRIES", 2)
        )
        self.user_agent = user_agent or self.DEFAULT_USER_AGENT
        self.scheme = scheme

        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        """Async context manager entry."""
        await self._init_http_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def _init_http_client(self):
        """Initialize HTTP client."""
        if self._http_client is None:
            headers = {
                **self.DEFAULT_HEADERS,
                "User-Agent": self.user_agent,
            }
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                headers=headers,
                follow_redirects=True,
                transport=self._transport,
            )

    async def close(self):
        """Close HTTP client connection."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    def page_url(self, domain: str, page: int) -> str:
        return f"{self.scheme}://{domain}{CATALOG_PATH}?limit={self.page_size}&page={page}"

    async def fetch_all_products(self, domain: str) -> List[RemoteProduct]:
        """
        Fetch every page of a store's catalog.

        Args:
            domain: Bare host name of the store

        Returns:
            All products in feed order

        Raises:
            FetchError: on the first failing page; nothing partial is returned
            InvalidResponse: if products continue past ``max_pages`` pages
        """
        if self._http_client is None:
            await self._init_http_client()

        products: List[RemoteProduct] = []
        url = self.page_url(domain, 1)
        page = 1

        while True:
            response = await self._get(url, domain)
            page_products = self._parse_products(response, domain)

            logger.debug(f"Catalog page {page} for {domain}: {len(page_products)} products")

            if not page_products:
                break

            # The page past the cap is read only to confirm the listing ended
            if page > self.max_pages:
                logger.warning(
                    f"Catalog for {domain} still has products past page cap {self.max_pages}"
                )
                raise InvalidResponse(
                    f"Catalog for {domain} exceeds {self.max_pages} pages",
                    domain=domain,
                )

            products.extend(page_products)

            page += 1
            next_url = response.links.get("next", {}).get("url")
            url = next_url or self.page_url(domain, page)

        logger.info(f"Fetched {len(products)} products from {domain} in {page} request(s)")
        return products

    async def fetch_page(self, domain: str, page: int) -> List[RemoteProduct]:
        """
        Fetch a single listing page by number.

        Raises:
            FetchError: if the page cannot be fetched or decoded
        """
        if self._http_client is None:
            await self._init_http_client()

        response = await self._get(self.page_url(domain, page), domain)
        return self._parse_products(response, domain)

    async def probe(self, domain: str) -> List[RemoteProduct]:
        """
        Fetch only the first page; used to validate a store before adding it.

        Raises:
            FetchError: if the domain does not serve a catalog listing
        """
        return await self.fetch_page(domain, 1)

    async def _get(self, url: str, domain: str) -> httpx.Response:
        """
        GET one page, mapping failures to FetchError.

        Uses exponential backoff on transient failures.
        """
        attempts = self.max_retries + 1
        last_error: Optional[FetchError] = None

        for attempt in range(attempts):
            try:
                # httpx.Timeout bounds each phase; wait_for bounds the whole page
                response = await asyncio.wait_for(self._http_client.get(url), timeout=self.timeout)
            except (httpx.TimeoutException, asyncio.TimeoutError) as e:
                last_error = FetchTimeout(f"Timeout fetching {url}: {e}", domain=domain)
                logger.warning(f"Timeout fetching {url} (attempt {attempt + 1}/{attempts})")
            except httpx.TransportError as e:
                last_error = NetworkUnavailable(f"Cannot reach {domain}: {e}", domain=domain)
                logger.warning(f"Network error for {url}: {e} (attempt {attempt + 1}/{attempts})")
            else:
                if response.status_code == 429:
                    retry_after = parse_retry_after(response.headers.get("Retry-After"))
                    raise RemoteRateLimited(retry_after, domain=domain)

                if 200 <= response.status_code < 300:
                    return response

                last_error = ServerError(response.status_code, domain=domain)
                # Don't retry client errors
                if response.status_code < 500:
                    raise last_error
                logger.warning(
                    f"HTTP error {response.status_code} for {url} "
                    f"(attempt {attempt + 1}/{attempts})"
                )

            # Exponential backoff
            if attempt < attempts - 1:
                await asyncio.sleep(2 ** attempt)

        raise last_error

    def _parse_products(self, response: httpx.Response, domain: str) -> List[RemoteProduct]:
        """Decode one listing page into RemoteProducts."""
        try:
            payload = response.json()
        except ValueError as e:
            raise InvalidResponse(f"Malformed JSON from {domain}: {e}", domain=domain) from e

        if not isinstance(payload, dict) or not isinstance(payload.get("products"), list):
            raise InvalidResponse(f"No product listing in response from {domain}", domain=domain)

        try:
            return [RemoteProduct.from_json(item) for item in payload["products"]]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise InvalidResponse(f"Malformed product record from {domain}: {e}", domain=domain) from e


def get_catalog_client(**kwargs) -> CatalogClient:
    """Factory used by the orchestrator so tests can swap the client."""
    return CatalogClient(**kwargs)


__all__ = [
    "CatalogClient",
    "FetchError",
    "get_catalog_client",
    "normalize_domain",
    "parse_retry_after",
]
