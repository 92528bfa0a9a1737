from datetime import datetime, timezone as dt_timezone
from decimal import Decimal
from typing import Optional

from django.utils import timezone

from .models import CatalogItem, ItemPrice
from .schema import CatalogRecord

#: Display colours for the rarity names used by the catalog
RARITY_COLORS = {
    "Covert": "#eb4b4b",
    "Extraordinary": "#eb4b4b",
    "Exotic": "#eb4b4b",
    "Contraband": "#e4ae39",
    "Classified": "#d32ce6",
    "Exceptional": "#d32ce6",
    "Restricted": "#8847ff",
    "Master": "#e4ae39",
    "Remarkable": "#e4ae39",
    "Mil-Spec Grade": "#4b69ff",
    "Distinguished": "#4b69ff",
    "Superior": "#4b69ff",
    "High Grade": "#5e98d9",
    "Industrial Grade": "#5e98d9",
    "Base Grade": "#b0c3d9",
    "Consumer Grade": "#b0c3d9",
    "Common": "#b0c3d9",
}
DEFAULT_RARITY_COLOR = "#b0c3d9"

#: (record attribute, CatalogItem field) pairs copied verbatim when present
FIELD_MAP = (
    ("markethashname", "hash_name"),
    ("marketname", "market_name"),
    ("itemimage", "image_url"),
    ("slug", "slug"),
    ("classid", "class_id"),
    ("instanceid", "instance_id"),
    ("groupid", "group_id"),
    ("bordercolor", "border_color"),
    ("color", "item_color"),
    ("quality", "quality"),
    ("points", "points"),
    ("tradable", "tradable"),
    ("marketable", "marketable"),
)

CENTS = Decimal("0.01")


def rarity_color(rarity: str) -> str:
    return RARITY_COLORS.get(rarity, DEFAULT_RARITY_COLOR)


def populate_item_from_record(
    item: CatalogItem, record: CatalogRecord, raw: dict, synced_at: datetime
) -> CatalogItem:
    """
    Overwrite the mutable fields of ``item`` from a validated record and mark
    the item as active, since appearing in the catalog proves it still exists.

    Attributes missing from the record keep their current value.
    """

    for record_attr, item_field in FIELD_MAP:
        value = getattr(record, record_attr)
        if value is not None:
            setattr(item, item_field, value)

    if record.marketname:
        item.name = record.marketname
    elif not item.name and record.markethashname:
        item.name = record.markethashname

    if record.rarity is not None:
        item.rarity = record.rarity
        item.rarity_color = rarity_color(record.rarity)

    item.metadata = raw
    item.active = True
    item.last_synced = synced_at
    return item


def _money(value: Optional[Decimal]) -> Optional[Decimal]:
    if value is None:
        return None
    return value.quantize(CENTS)


def price_date_for_record(record: CatalogRecord, default: datetime) -> datetime:
    price_date = record.priceupdatedat
    if price_date is None:
        return default
    if timezone.is_naive(price_date):
        # The API reports UTC timestamps without an offset
        price_date = timezone.make_aware(price_date, dt_timezone.utc)
    return price_date


def build_item_price(
    item: CatalogItem, record: CatalogRecord, default_date: datetime
) -> Optional[ItemPrice]:
    """
    Return an unsaved ItemPrice for the record's price data, or None when the
    record has no latest-sell price to store.
    """
    if record.pricelatestsell is None:
        return None

    return ItemPrice(
        item=item,
        price_date=price_date_for_record(record, default_date),
        price=_money(record.pricelatestsell),
        median_price=_money(record.pricemedian),
        lowest_price=_money(record.pricemin),
        highest_price=_money(record.pricemax),
        volume=record.volume,
        source=ItemPrice.Source.CATALOG,
    )
