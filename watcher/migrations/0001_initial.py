import uuid
from decimal import Decimal

import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models

import watcher.models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Store",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(help_text="Display name", max_length=200)),
                ("domain", models.CharField(help_text="Catalog origin, e.g. shop.example.com", max_length=255)),
                ("added_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("last_fetched_at", models.DateTimeField(blank=True, help_text="Last successful catalog fetch", null=True)),
                ("cached_product_count", models.IntegerField(default=0)),
                ("cached_preview_image_urls", models.JSONField(blank=True, default=list)),
            ],
            options={
                "db_table": "watcher_stores",
                "ordering": ["-added_at"],
            },
        ),
        migrations.CreateModel(
            name="WatcherPreferences",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("sync_interval_minutes", models.IntegerField(default=watcher.models.default_sync_interval_minutes, validators=[django.core.validators.MinValueValidator(5)])),
                ("notifications_enabled", models.BooleanField(default=True)),
                ("price_drop_threshold", models.CharField(choices=[("any", "Any amount"), ("dollars5", "At least $5"), ("dollars10", "At least $10"), ("dollars25", "At least $25"), ("percent10", "At least 10%"), ("percent25", "At least 25%")], default="any", max_length=20)),
                ("price_increase_threshold", models.CharField(choices=[("any", "Any amount"), ("dollars5", "At least $5"), ("dollars10", "At least $10"), ("dollars25", "At least $25"), ("percent10", "At least 10%"), ("percent25", "At least 25%")], default="any", max_length=20)),
                ("notify_price_dropped", models.BooleanField(default=True)),
                ("notify_price_increased", models.BooleanField(default=True)),
                ("notify_back_in_stock", models.BooleanField(default=True)),
                ("notify_out_of_stock", models.BooleanField(default=True)),
                ("notify_new_product", models.BooleanField(default=True)),
                ("notify_product_removed", models.BooleanField(default=True)),
                ("notify_images_changed", models.BooleanField(default=False)),
                ("auto_delete_events", models.BooleanField(default=False)),
                ("event_retention_days", models.IntegerField(default=watcher.models.default_event_retention_days, validators=[django.core.validators.MinValueValidator(1)])),
                ("prune_snapshots", models.BooleanField(default=True)),
                ("snapshot_retention_days", models.IntegerField(default=watcher.models.default_snapshot_retention_days, validators=[django.core.validators.MinValueValidator(1)])),
                ("updated_at", models.DateTimeField(default=django.utils.timezone.now)),
            ],
            options={
                "db_table": "watcher_preferences",
                "verbose_name": "Watcher Preferences",
                "verbose_name_plural": "Watcher Preferences",
            },
        ),
        migrations.CreateModel(
            name="Product",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("external_id", models.BigIntegerField(help_text="Origin's stable product id")),
                ("handle", models.CharField(blank=True, max_length=255)),
                ("title", models.CharField(max_length=500)),
                ("vendor", models.CharField(blank=True, max_length=255, null=True)),
                ("product_type", models.CharField(blank=True, max_length=255, null=True)),
                ("image_urls", models.JSONField(blank=True, default=list, help_text="Ordered image URLs")),
                ("first_seen_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("is_removed", models.BooleanField(default=False)),
                ("cached_price", models.DecimalField(decimal_places=2, default=Decimal("0"), max_digits=12)),
                ("cached_is_available", models.BooleanField(default=False)),
                ("title_search_key", models.CharField(blank=True, default="", max_length=500)),
                ("store", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="products", to="watcher.store")),
            ],
            options={
                "db_table": "watcher_products",
                "ordering": ["first_seen_at", "id"],
            },
        ),
        migrations.CreateModel(
            name="Variant",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("external_id", models.BigIntegerField(help_text="Origin's stable variant id")),
                ("title", models.CharField(max_length=500)),
                ("sku", models.CharField(blank=True, max_length=255, null=True)),
                ("price", models.DecimalField(decimal_places=2, max_digits=12)),
                ("compare_at_price", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("available", models.BooleanField(default=False)),
                ("position", models.IntegerField(default=1, validators=[django.core.validators.MinValueValidator(0)])),
                ("product", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="variants", to="watcher.product")),
            ],
            options={
                "db_table": "watcher_variants",
                "ordering": ["position", "external_id"],
            },
        ),
        migrations.CreateModel(
            name="VariantSnapshot",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("captured_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("price", models.DecimalField(decimal_places=2, max_digits=12)),
                ("compare_at_price", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("available", models.BooleanField()),
                ("variant", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="snapshots", to="watcher.variant")),
            ],
            options={
                "db_table": "watcher_variant_snapshots",
                "ordering": ["captured_at", "id"],
            },
        ),
        migrations.CreateModel(
            name="ChangeEvent",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("occurred_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("change_type", models.CharField(choices=[("priceDropped", "Price Dropped"), ("priceIncreased", "Price Increased"), ("backInStock", "Back In Stock"), ("outOfStock", "Out Of Stock"), ("newProduct", "New Product"), ("productRemoved", "Product Removed"), ("imagesChanged", "Images Changed")], max_length=20)),
                ("magnitude", models.CharField(choices=[("small", "Small (<10%)"), ("medium", "Medium (10-25%)"), ("large", "Large (>25%)")], default="medium", max_length=10)),
                ("product_title", models.CharField(max_length=500)),
                ("variant_title", models.CharField(blank=True, max_length=500, null=True)),
                ("old_value", models.CharField(blank=True, max_length=100, null=True)),
                ("new_value", models.CharField(blank=True, max_length=100, null=True)),
                ("price_change", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("is_read", models.BooleanField(default=False)),
                ("product_external_id", models.BigIntegerField(blank=True, null=True)),
                ("store", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="change_events", to="watcher.store")),
            ],
            options={
                "db_table": "watcher_change_events",
                "ordering": ["-occurred_at"],
            },
        ),
        migrations.AddConstraint(
            model_name="product",
            constraint=models.UniqueConstraint(fields=("store", "external_id"), name="unique_product_external_id_per_store"),
        ),
        migrations.AddIndex(
            model_name="product",
            index=models.Index(fields=["store", "is_removed"], name="watcher_pro_store_i_4b1c2e_idx"),
        ),
        migrations.AddIndex(
            model_name="product",
            index=models.Index(fields=["store", "cached_is_available"], name="watcher_pro_store_i_8d5a71_idx"),
        ),
        migrations.AddIndex(
            model_name="product",
            index=models.Index(fields=["store", "cached_price"], name="watcher_pro_store_i_c3e9f0_idx"),
        ),
        migrations.AddIndex(
            model_name="product",
            index=models.Index(fields=["store", "title_search_key"], name="watcher_pro_store_i_1a7b36_idx"),
        ),
        migrations.AddConstraint(
            model_name="variant",
            constraint=models.UniqueConstraint(fields=("product", "external_id"), name="unique_variant_external_id_per_product"),
        ),
        migrations.AddIndex(
            model_name="variantsnapshot",
            index=models.Index(fields=["captured_at"], name="watcher_var_capture_5e2d90_idx"),
        ),
        migrations.AddIndex(
            model_name="variantsnapshot",
            index=models.Index(fields=["variant", "captured_at"], name="watcher_var_variant_9f4c12_idx"),
        ),
        migrations.AddIndex(
            model_name="changeevent",
            index=models.Index(fields=["store", "occurred_at"], name="watcher_cha_store_i_7c3a55_idx"),
        ),
        migrations.AddIndex(
            model_name="changeevent",
            index=models.Index(fields=["change_type", "occurred_at"], name="watcher_cha_change__2b8e41_idx"),
        ),
        migrations.AddIndex(
            model_name="changeevent",
            index=models.Index(fields=["is_read"], name="watcher_cha_is_read_6d0f83_idx"),
        ),
    ]
