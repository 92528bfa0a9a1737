import django.core.serializers.json
import django.db.models.deletion
from django.db import migrations, models

import catalog.models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="CatalogItem",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "external_id",
                    models.CharField(
                        help_text="Unique item ID assigned by the upstream catalog",
                        max_length=100,
                        unique=True,
                    ),
                ),
                ("name", models.CharField(blank=True, default="", max_length=255)),
                (
                    "market_name",
                    models.CharField(blank=True, default="", max_length=255),
                ),
                (
                    "hash_name",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Market hash name used by the upstream marketplace",
                        max_length=255,
                    ),
                ),
                (
                    "image_url",
                    models.URLField(blank=True, default="", max_length=500),
                ),
                ("slug", models.CharField(blank=True, default="", max_length=255)),
                ("class_id", models.CharField(blank=True, default="", max_length=50)),
                (
                    "instance_id",
                    models.CharField(blank=True, default="", max_length=50),
                ),
                ("group_id", models.CharField(blank=True, default="", max_length=100)),
                ("quality", models.CharField(blank=True, default="", max_length=50)),
                (
                    "rarity",
                    models.CharField(
                        blank=True, db_index=True, default="", max_length=50
                    ),
                ),
                ("rarity_color", models.CharField(blank=True, default="", max_length=7)),
                (
                    "border_color",
                    models.CharField(blank=True, default="", max_length=20),
                ),
                ("item_color", models.CharField(blank=True, default="", max_length=20)),
                ("points", models.IntegerField(blank=True, null=True)),
                ("tradable", models.BooleanField(blank=True, null=True)),
                ("marketable", models.BooleanField(blank=True, null=True)),
                (
                    "metadata",
                    models.JSONField(
                        blank=True,
                        default=catalog.models.metadata_default,
                        encoder=django.core.serializers.json.DjangoJSONEncoder,
                        help_text="Raw record returned by the remote API",
                    ),
                ),
                (
                    "active",
                    models.BooleanField(
                        db_index=True,
                        default=True,
                        help_text="False once the item is no longer present in the catalog",
                    ),
                ),
                ("created", models.DateTimeField(auto_now_add=True)),
                ("modified", models.DateTimeField(auto_now=True)),
                (
                    "last_synced",
                    models.DateTimeField(
                        blank=True, help_text="Last time a sync saw this item", null=True
                    ),
                ),
            ],
            options={
                "ordering": ["external_id"],
            },
        ),
        migrations.CreateModel(
            name="ItemPrice",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("price_date", models.DateTimeField()),
                ("price", models.DecimalField(decimal_places=2, max_digits=10)),
                (
                    "median_price",
                    models.DecimalField(
                        blank=True, decimal_places=2, max_digits=10, null=True
                    ),
                ),
                (
                    "lowest_price",
                    models.DecimalField(
                        blank=True, decimal_places=2, max_digits=10, null=True
                    ),
                ),
                (
                    "highest_price",
                    models.DecimalField(
                        blank=True, decimal_places=2, max_digits=10, null=True
                    ),
                ),
                ("volume", models.IntegerField(blank=True, null=True)),
                (
                    "source",
                    models.CharField(
                        choices=[("catalog", "Catalog API")],
                        default="catalog",
                        max_length=50,
                    ),
                ),
                ("created", models.DateTimeField(auto_now_add=True)),
                (
                    "item",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="prices",
                        to="catalog.catalogitem",
                    ),
                ),
            ],
            options={
                "ordering": ["item", "-price_date"],
                "indexes": [
                    models.Index(
                        fields=["item", "price_date"],
                        name="catalog_price_item_date_idx",
                    )
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("item", "price_date", "source"),
                        name="unique_item_price_per_date_and_source",
                    )
                ],
            },
        ),
    ]
