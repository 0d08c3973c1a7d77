"""
Django admin configuration for the Catalog Watcher.

Stores, their products and variants, the change event log and the
singleton preferences row. Sync actions dispatch the Celery tasks.
"""

from django.contrib import admin
from django.utils.html import format_html

from watcher.models import (
    ChangeEvent,
    ChangeType,
    Product,
    Store,
    Variant,
    VariantSnapshot,
    WatcherPreferences,
)
from watcher.tasks import sync_store

BADGE_STYLE = "color: white; padding: 2px 8px; border-radius: 4px;"

CHANGE_TYPE_COLORS = {
    ChangeType.PRICE_DROPPED: "#28a745",
    ChangeType.PRICE_INCREASED: "#dc3545",
    ChangeType.BACK_IN_STOCK: "#007bff",
    ChangeType.OUT_OF_STOCK: "#6c757d",
    ChangeType.NEW_PRODUCT: "#17a2b8",
    ChangeType.PRODUCT_REMOVED: "#343a40",
    ChangeType.IMAGES_CHANGED: "#ffc107",
}


@admin.register(Store)
class StoreAdmin(admin.ModelAdmin):
    list_display = ["name", "domain", "cached_product_count", "added_at", "last_fetched_at"]
    search_fields = ["name", "domain"]
    readonly_fields = [
        "id",
        "added_at",
        "last_fetched_at",
        "cached_product_count",
        "cached_preview_image_urls",
    ]
    ordering = ["-added_at"]

    fieldsets = (
        ("Identity", {
            "fields": ("id", "name", "domain"),
        }),
        ("Status", {
            "fields": ("added_at", "last_fetched_at"),
        }),
        ("Listing Cache", {
            "fields": ("cached_product_count", "cached_preview_image_urls"),
            "classes": ("collapse",),
        }),
    )

    actions = ["trigger_sync"]

    @admin.action(description="Sync now")
    def trigger_sync(self, request, queryset):
        """Queue a sync for each selected store."""
        count = 0
        for store in queryset:
            sync_store.apply_async(args=[str(store.id)])
            count += 1
        self.message_user(request, f"Queued sync for {count} store(s).")


class VariantInline(admin.TabularInline):
    model = Variant
    extra = 0
    fields = ["external_id", "title", "sku", "price", "compare_at_price", "available", "position"]
    readonly_fields = fields
    can_delete = False


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ["title", "store", "cached_price", "cached_is_available", "is_removed", "first_seen_at"]
    list_filter = ["store", "is_removed", "cached_is_available"]
    search_fields = ["title", "handle", "vendor"]
    readonly_fields = ["cached_price", "cached_is_available", "title_search_key", "first_seen_at"]
    inlines = [VariantInline]


@admin.register(VariantSnapshot)
class VariantSnapshotAdmin(admin.ModelAdmin):
    list_display = ["variant", "captured_at", "price", "compare_at_price", "available"]
    list_filter = ["available"]
    date_hierarchy = "captured_at"
    raw_id_fields = ["variant"]


@admin.register(ChangeEvent)
class ChangeEventAdmin(admin.ModelAdmin):
    list_display = [
        "occurred_at",
        "store",
        "change_type_badge",
        "magnitude",
        "product_title",
        "variant_title",
        "old_value",
        "new_value",
        "is_read",
    ]
    list_filter = ["change_type", "magnitude", "is_read", "store"]
    search_fields = ["product_title", "variant_title"]
    date_hierarchy = "occurred_at"
    ordering = ["-occurred_at"]

    actions = ["mark_read", "mark_unread"]

    def change_type_badge(self, obj):
        """Display the change type as a colored badge."""
        color = CHANGE_TYPE_COLORS.get(obj.change_type, "#6c757d")
        return format_html(
            '<span style="background-color: {}; {}">{}</span>',
            color, BADGE_STYLE, obj.get_change_type_display(),
        )
    change_type_badge.short_description = "Change"
    change_type_badge.admin_order_field = "change_type"

    @admin.action(description="Mark selected events as read")
    def mark_read(self, request, queryset):
        count = queryset.update(is_read=True)
        self.message_user(request, f"Marked {count} event(s) as read.")

    @admin.action(description="Mark selected events as unread")
    def mark_unread(self, request, queryset):
        count = queryset.update(is_read=False)
        self.message_user(request, f"Marked {count} event(s) as unread.")


@admin.register(WatcherPreferences)
class WatcherPreferencesAdmin(admin.ModelAdmin):
    fieldsets = (
        ("Sync", {
            "fields": ("sync_interval_minutes",),
        }),
        ("Notifications", {
            "fields": (
                "notifications_enabled",
                "price_drop_threshold",
                "price_increase_threshold",
                "notify_price_dropped",
                "notify_price_increased",
                "notify_back_in_stock",
                "notify_out_of_stock",
                "notify_new_product",
                "notify_product_removed",
                "notify_images_changed",
            ),
        }),
        ("Retention", {
            "fields": (
                "auto_delete_events",
                "event_retention_days",
                "prune_snapshots",
                "snapshot_retention_days",
            ),
        }),
    )

    def has_add_permission(self, request):
        return not WatcherPreferences.objects.exists()

    def has_delete_permission(self, request, obj=None):
        return False
