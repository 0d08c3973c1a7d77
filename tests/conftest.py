"""
Pytest configuration and fixtures for the Catalog Watcher test suite.
"""

from decimal import Decimal

import pytest

from watcher.fetchers.errors import FetchError
from watcher.fetchers.types import RemoteProduct, RemoteVariant


@pytest.fixture(autouse=True)
def clear_watcher_caches():
    """Preferences are cached and sync errors are process-global."""
    from django.core.cache import cache
    from watcher.services.sync_state import get_sync_state

    cache.clear()
    get_sync_state().clear_errors()
    yield
    cache.clear()
    get_sync_state().clear_errors()


@pytest.fixture
def api_client():
    """Create a test API client."""
    from rest_framework.test import APIClient

    return APIClient()


def make_variant(id, price="10.00", available=True, title=None, position=1, compare_at_price=None):
    return RemoteVariant(
        id=id,
        title=title or f"Variant {id}",
        price=Decimal(price),
        available=available,
        position=position,
        compare_at_price=Decimal(compare_at_price) if compare_at_price else None,
    )


def make_product(id, title=None, price="10.00", available=True, images=(), variants=None):
    """RemoteProduct with one variant (id * 10) unless variants are given."""
    if variants is None:
        variants = [make_variant(id * 10, price=price, available=available)]
    return RemoteProduct(
        id=id,
        title=title or f"Product {id}",
        handle=f"product-{id}",
        image_urls=tuple(images),
        variants=tuple(variants),
    )


@pytest.fixture
def remote_product():
    """Factory for RemoteProduct values."""
    return make_product


@pytest.fixture
def remote_variant():
    """Factory for RemoteVariant values."""
    return make_variant


class FakeCatalogClient:
    """Stands in for CatalogClient; serves catalogs from a dict keyed by domain."""

    def __init__(self, factory):
        self.factory = factory

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return None

    def _lookup(self, domain):
        self.factory.requests.append(domain)
        error = self.factory.errors.get(domain)
        if error is not None:
            raise error
        if domain not in self.factory.catalogs:
            raise FetchError("No catalog", domain=domain)
        return list(self.factory.catalogs[domain])

    async def probe(self, domain):
        return self._lookup(domain)[:1]

    async def fetch_all_products(self, domain):
        return self._lookup(domain)


class FakeClientFactory:
    """Callable client factory with per-domain catalogs and errors."""

    def __init__(self):
        self.catalogs = {}
        self.errors = {}
        self.requests = []

    def __call__(self):
        return FakeCatalogClient(self)


@pytest.fixture
def client_factory():
    return FakeClientFactory()


class RecordingNotifier:
    def __init__(self):
        self.batches = []

    def notify(self, batch):
        self.batches.append(batch)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def gateway():
    from watcher.services.persistence import PersistenceGateway

    return PersistenceGateway()


@pytest.fixture
def store():
    """A stored Store; the requesting test must enable database access."""
    from watcher.models import Store

    return Store.objects.create(name="Test Store", domain="test-store.example.com")


@pytest.fixture
def orchestrator(gateway, client_factory, notifier):
    """SyncOrchestrator with fake fetches, a recording notifier and no rate gate."""
    from watcher.monitoring import FailureTracker
    from watcher.services.notification_bridge import NotificationBridge
    from watcher.services.preferences import PreferencesService
    from watcher.services.sync_orchestrator import SyncOrchestrator
    from watcher.services.sync_state import SyncStateRegistry

    preferences = PreferencesService()
    return SyncOrchestrator(
        gateway=gateway,
        client_factory=client_factory,
        state=SyncStateRegistry(),
        notifications=NotificationBridge(notifier=notifier, preferences=preferences),
        preferences=preferences,
        failure_tracker=FailureTracker(redis_client=None),
        min_sync_interval=0,
    )
