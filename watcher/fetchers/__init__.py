"""
Remote catalog fetching.

- catalog_client: paginated httpx client for the public product listing
- errors: FetchError taxonomy
- types: immutable RemoteProduct / RemoteVariant records
"""

from .errors import (
    FetchError,
    NetworkUnavailable,
    FetchTimeout,
    ServerError,
    InvalidResponse,
    RemoteRateLimited,
)
from .types import RemoteProduct, RemoteVariant, parse_price
from .catalog_client import CatalogClient, get_catalog_client, normalize_domain

__all__ = [
    "FetchError",
    "NetworkUnavailable",
    "FetchTimeout",
    "ServerError",
    "InvalidResponse",
    "RemoteRateLimited",
    "RemoteProduct",
    "RemoteVariant",
    "parse_price",
    "CatalogClient",
    "get_catalog_client",
    "normalize_domain",
]
