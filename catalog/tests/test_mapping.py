from datetime import datetime, timezone as dt_timezone
from decimal import Decimal

from django.test import SimpleTestCase
from django.utils import timezone

from catalog.mapping import (
    DEFAULT_RARITY_COLOR,
    build_item_price,
    populate_item_from_record,
    rarity_color,
)
from catalog.models import CatalogItem, ItemPrice
from catalog.schema import parse_record


class PopulateItemTests(SimpleTestCase):
    def setUp(self):
        self.synced_at = timezone.now()

    def test_maps_record_attributes(self):
        raw = {
            "id": "abc",
            "markethashname": "AK-47 | Redline (Field-Tested)",
            "marketname": "AK-47 | Redline",
            "itemimage": "https://cdn.example.com/ak.png",
            "classid": 310776,
            "rarity": "Classified",
            "bordercolor": "D32CE6",
            "tradable": True,
            "marketable": False,
            "points": 3,
            "extra": "kept in metadata",
        }
        item = populate_item_from_record(
            CatalogItem(active=False), parse_record(raw), raw, self.synced_at
        )

        self.assertEqual(item.name, "AK-47 | Redline")
        self.assertEqual(item.market_name, "AK-47 | Redline")
        self.assertEqual(item.hash_name, "AK-47 | Redline (Field-Tested)")
        self.assertEqual(item.image_url, "https://cdn.example.com/ak.png")
        self.assertEqual(item.class_id, "310776")
        self.assertEqual(item.rarity, "Classified")
        self.assertEqual(item.rarity_color, "#d32ce6")
        self.assertEqual(item.border_color, "D32CE6")
        self.assertIs(item.tradable, True)
        self.assertIs(item.marketable, False)
        self.assertEqual(item.points, 3)
        self.assertEqual(item.metadata, raw)
        self.assertTrue(item.active)
        self.assertEqual(item.last_synced, self.synced_at)

    def test_missing_attributes_keep_current_values(self):
        item = CatalogItem(external_id="abc", name="Old name", slug="old-slug")
        raw = {"id": "abc"}

        populate_item_from_record(item, parse_record(raw), raw, self.synced_at)

        self.assertEqual(item.name, "Old name")
        self.assertEqual(item.slug, "old-slug")

    def test_name_falls_back_to_hash_name(self):
        raw = {"id": "abc", "markethashname": "Sticker | Hello"}
        item = populate_item_from_record(
            CatalogItem(), parse_record(raw), raw, self.synced_at
        )
        self.assertEqual(item.name, "Sticker | Hello")

    def test_unknown_rarity_uses_default_color(self):
        self.assertEqual(rarity_color("Legendary-ish"), DEFAULT_RARITY_COLOR)
        self.assertEqual(rarity_color("Covert"), "#eb4b4b")


class BuildItemPriceTests(SimpleTestCase):
    def setUp(self):
        self.item = CatalogItem(external_id="abc")
        self.default_date = timezone.now()

    def test_no_latest_price(self):
        record = parse_record({"id": "abc", "pricemedian": "1.00"})
        self.assertIsNone(build_item_price(self.item, record, self.default_date))

    def test_builds_price_from_record(self):
        record = parse_record(
            {
                "id": "abc",
                "pricelatestsell": "12.346",
                "pricemedian": "11.5",
                "pricemin": 10,
                "pricemax": 14.999,
                "soldtotal": 120,
                "priceupdatedat": "2025-11-17 04:00:00",
            }
        )

        price = build_item_price(self.item, record, self.default_date)

        self.assertIs(price.item, self.item)
        self.assertEqual(price.price, Decimal("12.35"))
        self.assertEqual(price.median_price, Decimal("11.50"))
        self.assertEqual(price.lowest_price, Decimal("10.00"))
        self.assertEqual(price.highest_price, Decimal("15.00"))
        self.assertEqual(price.volume, 120)
        self.assertEqual(price.source, ItemPrice.Source.CATALOG)
        self.assertEqual(
            price.price_date, datetime(2025, 11, 17, 4, 0, tzinfo=dt_timezone.utc)
        )

    def test_price_date_defaults_to_sync_time(self):
        record = parse_record({"id": "abc", "pricelatestsell": 1})
        price = build_item_price(self.item, record, self.default_date)
        self.assertEqual(price.price_date, self.default_date)
