from django.core.serializers.json import DjangoJSONEncoder
from django.db import models


def metadata_default():
    return {}


class CatalogItemQuerySet(models.QuerySet):
    def active(self):
        return self.filter(active=True)

    def inactive(self):
        return self.filter(active=False)


class CatalogItem(models.Model):
    """
    One item of the external catalog as stored locally

    Items are created the first time their external ID is seen, updated in
    place on every later sync and flagged inactive, never deleted, when they
    disappear from the catalog.
    """

    objects = CatalogItemQuerySet.as_manager()

    external_id = models.CharField(
        max_length=100,
        unique=True,
        help_text="Unique item ID assigned by the upstream catalog",
    )

    name = models.CharField(max_length=255, blank=True, default="")
    market_name = models.CharField(max_length=255, blank=True, default="")
    hash_name = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Market hash name used by the upstream marketplace",
    )
    image_url = models.URLField(max_length=500, blank=True, default="")
    slug = models.CharField(max_length=255, blank=True, default="")

    class_id = models.CharField(max_length=50, blank=True, default="")
    instance_id = models.CharField(max_length=50, blank=True, default="")
    group_id = models.CharField(max_length=100, blank=True, default="")

    quality = models.CharField(max_length=50, blank=True, default="")
    rarity = models.CharField(max_length=50, blank=True, default="", db_index=True)
    rarity_color = models.CharField(max_length=7, blank=True, default="")
    border_color = models.CharField(max_length=20, blank=True, default="")
    item_color = models.CharField(max_length=20, blank=True, default="")

    points = models.IntegerField(null=True, blank=True)
    tradable = models.BooleanField(null=True, blank=True)
    marketable = models.BooleanField(null=True, blank=True)

    metadata = models.JSONField(
        default=metadata_default,
        blank=True,
        encoder=DjangoJSONEncoder,
        help_text="Raw record returned by the remote API",
    )

    active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="False once the item is no longer present in the catalog",
    )

    created = models.DateTimeField(auto_now_add=True)
    modified = models.DateTimeField(auto_now=True)
    last_synced = models.DateTimeField(
        null=True, blank=True, help_text="Last time a sync saw this item"
    )

    class Meta:
        ordering = ["external_id"]

    def __str__(self):
        return f"{self.external_id}: {self.name or self.hash_name}"


class ItemPrice(models.Model):
    """
    A price observation for a catalog item, derived from a synced record
    """

    class Source(models.TextChoices):
        CATALOG = "catalog", "Catalog API"

    item = models.ForeignKey(
        CatalogItem, on_delete=models.CASCADE, related_name="prices"
    )
    price_date = models.DateTimeField()
    price = models.DecimalField(max_digits=10, decimal_places=2)
    median_price = models.DecimalField(
        max_digits=10, decimal_places=2, null=True, blank=True
    )
    lowest_price = models.DecimalField(
        max_digits=10, decimal_places=2, null=True, blank=True
    )
    highest_price = models.DecimalField(
        max_digits=10, decimal_places=2, null=True, blank=True
    )
    volume = models.IntegerField(null=True, blank=True)
    source = models.CharField(
        max_length=50, choices=Source.choices, default=Source.CATALOG
    )
    created = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["item", "-price_date"]
        constraints = [
            models.UniqueConstraint(
                fields=["item", "price_date", "source"],
                name="unique_item_price_per_date_and_source",
            )
        ]
        indexes = [
            models.Index(
                fields=["item", "price_date"], name="catalog_price_item_date_idx"
            )
        ]

    def __str__(self):
        return f"{self.item.external_id} {self.price} @ {self.price_date:%Y-%m-%d}"
