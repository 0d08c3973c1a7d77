"""
Tests for Django Admin functionality.

These tests verify admin actions for stores, change events and the
preferences singleton.
"""

import pytest
from django.contrib.admin.sites import AdminSite
from django.contrib.auth import get_user_model
from django.contrib.messages.storage.fallback import FallbackStorage
from django.contrib.sessions.middleware import SessionMiddleware
from django.test import RequestFactory
from unittest.mock import patch

from watcher.admin import ChangeEventAdmin, StoreAdmin, WatcherPreferencesAdmin
from watcher.models import ChangeEvent, ChangeType, Store, WatcherPreferences


@pytest.fixture
def admin_user(db):
    """Create an admin user for testing."""
    User = get_user_model()
    return User.objects.create_superuser(
        username="admin",
        email="admin@test.com",
        password="testpass123",
    )


@pytest.fixture
def admin_request(admin_user):
    """Create an admin request with user and messages support attached."""
    request = RequestFactory().get("/admin/")
    request.user = admin_user

    middleware = SessionMiddleware(lambda x: None)
    middleware.process_request(request)
    request.session.save()

    setattr(request, "_messages", FallbackStorage(request))

    return request


@pytest.mark.django_db
class TestStoreAdmin:

    def test_trigger_sync_queues_one_task_per_store(self, admin_request):
        first = Store.objects.create(name="A", domain="a.example.com")
        second = Store.objects.create(name="B", domain="b.example.com")
        model_admin = StoreAdmin(Store, AdminSite())

        with patch("watcher.admin.sync_store") as task:
            model_admin.trigger_sync(admin_request, Store.objects.all())

        queued = {c.kwargs["args"][0] for c in task.apply_async.call_args_list}
        assert queued == {str(first.id), str(second.id)}


@pytest.mark.django_db
class TestChangeEventAdmin:

    def test_mark_read_and_unread(self, admin_request):
        store = Store.objects.create(name="A", domain="a.example.com")
        for _ in range(2):
            ChangeEvent.objects.create(store=store, change_type=ChangeType.NEW_PRODUCT, product_title="Mug")
        model_admin = ChangeEventAdmin(ChangeEvent, AdminSite())

        model_admin.mark_read(admin_request, ChangeEvent.objects.all())
        assert ChangeEvent.objects.filter(is_read=True).count() == 2

        model_admin.mark_unread(admin_request, ChangeEvent.objects.all())
        assert ChangeEvent.objects.filter(is_read=False).count() == 2

    def test_change_type_badge(self):
        store = Store(name="A", domain="a.example.com")
        event = ChangeEvent(store=store, change_type=ChangeType.PRICE_DROPPED, product_title="Mug")
        model_admin = ChangeEventAdmin(ChangeEvent, AdminSite())

        html = model_admin.change_type_badge(event)

        assert "#28a745" in html
        assert "Price Dropped" in html


@pytest.mark.django_db
class TestWatcherPreferencesAdmin:

    def test_singleton_permissions(self, admin_request):
        model_admin = WatcherPreferencesAdmin(WatcherPreferences, AdminSite())

        assert model_admin.has_add_permission(admin_request) is True

        WatcherPreferences.load()

        assert model_admin.has_add_permission(admin_request) is False
        assert model_admin.has_delete_permission(admin_request) is False
