from unittest.mock import patch

from django.http import QueryDict
from django.test import TestCase

from warehouse.audit import ACTION_RATE_LIMIT_EXCEEDED, ACTION_SKU_UPDATED
from warehouse.config import RateLimitPolicy, WarehouseSecurityConfig
from warehouse.exceptions import RateLimitExceeded, ValidationError
from warehouse.models import AuditEntry, SkuField, SkuRecord
from warehouse.rate_limiter import RateLimiter
from warehouse.services import (
    InventorySummary,
    SkuLookupService,
    SkuUpdateService,
    clean_sku_form,
)

from .helpers import FakeClock, make_client, make_item, make_sku


class InventorySummaryTests(TestCase):

    def test_absent_row_means_zero(self):
        self.assertEqual(InventorySummary.from_row(None), InventorySummary(0, 0, 0))

    def test_null_aggregates_mean_zero(self):
        summary = InventorySummary.from_row({"total_on_hand": None, "total_allocated": None, "location_count": 0})
        self.assertEqual(summary.to_dict(), {
            "total_on_hand": 0,
            "total_allocated": 0,
            "total_available": 0,
            "location_count": 0,
        })

    def test_available_is_on_hand_minus_allocated(self):
        summary = InventorySummary.from_row({"total_on_hand": 12, "total_allocated": 5, "location_count": 2})
        self.assertEqual(summary.total_available, 7)


class SkuLookupServiceTests(TestCase):

    def setUp(self):
        self.client_row = make_client("Acme Retail")
        self.service = SkuLookupService()

    def test_lookup_without_inventory_rows_returns_zeros(self):
        make_sku("ABC-123", client=self.client_row)

        data = self.service.lookup("ABC-123", include_inventory=True)

        self.assertTrue(data["found"])
        self.assertEqual(data["inventory"]["total_on_hand"], 0)
        self.assertEqual(data["inventory"]["location_count"], 0)
        self.assertEqual(data["inventory"]["total_available"], 0)

    def test_lookup_returns_all_fields(self):
        make_sku(
            "PHN-900", client=self.client_row, description="Phone", product_group="Electronics",
            ean="123", fragile=True, high_security=True, each_weight=0.4, packed_weight=4.5,
        )

        data = self.service.lookup("PHN-900")

        self.assertEqual(data["sku_id"], "PHN-900")
        self.assertEqual(data["description"], "Phone")
        self.assertEqual(data["client_id"], self.client_row.id)
        self.assertEqual(data["client_name"], "Acme Retail")
        self.assertEqual(data["product_group"], "Electronics")
        self.assertIs(data["fragile"], True)
        self.assertIs(data["high_security"], True)
        self.assertEqual(data["packed_weight"], 4.5)
        self.assertEqual(data["api_version"], "1.0")
        self.assertIn("timestamp", data)
        self.assertNotIn("inventory", data)

    def test_inventory_summary_aggregates(self):
        sku = make_sku("GLS-500", client=self.client_row)
        make_item("T1", sku, qty_on_hand=10, qty_allocated=2, location_id="A-01")
        make_item("T2", sku, qty_on_hand=5, qty_allocated=0, location_id="A-02")
        make_item("T3", sku, qty_on_hand=1, qty_allocated=1, location_id="A-02")

        inventory = self.service.lookup("GLS-500", include_inventory=True)["inventory"]

        self.assertEqual(inventory, {
            "total_on_hand": 16,
            "total_allocated": 3,
            "total_available": 13,
            "location_count": 2,
        })

    def test_unknown_sku_is_not_found_with_defaults(self):
        data = self.service.lookup("NOPE-1", include_inventory=True)
        self.assertFalse(data["found"])
        self.assertEqual(data["description"], "")
        self.assertIsNone(data["client_id"])
        self.assertEqual(data["each_weight"], 0.0)
        self.assertEqual(data["inventory"]["total_on_hand"], 0)

    def test_invalid_sku_id_rejected(self):
        with self.assertRaises(ValidationError):
            self.service.lookup("ABC 123; --")


class CleanSkuFormTests(TestCase):

    def _form(self, **overrides):
        data = {
            "description": "Demo Widget",
            "pack_config": "12x1",
            "ean": "4006381333931",
            "unit_weight": "0.25",
            "each_weight": "",
            "packed_weight": "3.2",
            "fragile": "1",
            "client_id": "7",
        }
        data.update(overrides)
        query = QueryDict(mutable=True)
        for key, value in data.items():
            if value is not None:
                query[key] = value
        return query

    def test_valid_form_is_keyed_by_sku_field(self):
        payload, errors = clean_sku_form(self._form())

        self.assertEqual(errors, {})
        self.assertTrue(all(isinstance(key, SkuField) for key in payload))
        self.assertEqual(payload[SkuField.UNIT_WEIGHT], 0.25)
        self.assertEqual(payload[SkuField.EACH_WEIGHT], 0.0)
        self.assertIs(payload[SkuField.FRAGILE], True)
        self.assertIs(payload[SkuField.HIGH_SECURITY], False)
        self.assertEqual(payload[SkuField.CLIENT], 7)
        self.assertEqual(payload[SkuField.ORIGIN], "")

    def test_item_code_is_never_in_payload(self):
        payload, _ = clean_sku_form(self._form(item_code="HIJACK"))
        self.assertNotIn("item_code", [key.value for key in payload])

    def test_errors_are_collected_per_field(self):
        _, errors = clean_sku_form(self._form(description="  ", unit_weight="-1", client_id="abc"))
        self.assertEqual(set(errors), {"description", "unit_weight", "client_id"})

    def test_markup_stripped_from_text(self):
        payload, _ = clean_sku_form(self._form(description="<script>x</script>Widget"))
        self.assertNotIn("<", payload[SkuField.DESCRIPTION])

    def test_long_text_truncated(self):
        settings = WarehouseSecurityConfig(text_max_length=10)
        payload, _ = clean_sku_form(self._form(description="A" * 40, ean="9" * 40), settings)
        self.assertEqual(len(payload[SkuField.DESCRIPTION]), 10)
        self.assertEqual(len(payload[SkuField.EAN]), 32)


@patch("warehouse.services.WarehouseSentryMonitor")
class SkuUpdateServiceTests(TestCase):

    def setUp(self):
        self.client_row = make_client("Acme Retail")
        self.other_client = make_client("Northwind")
        make_sku("ABC-123", client=self.client_row)
        self.clock = FakeClock(start=300.0 * 1000)
        self.service = SkuUpdateService(limiter=RateLimiter(clock=self.clock))

    def _payload(self, **overrides):
        payload = {
            SkuField.DESCRIPTION: "Renamed Widget",
            SkuField.UNIT_WEIGHT: 0.5,
            SkuField.CLIENT: self.other_client.id,
        }
        payload.update(overrides)
        return payload

    def test_update_applies_allow_listed_fields(self, _monitor):
        affected = self.service.update("ABC-123", self._payload(), "alice", "10.0.0.1")

        self.assertEqual(affected, 1)
        sku = SkuRecord.objects.get(item_code="ABC-123")
        self.assertEqual(sku.description, "Renamed Widget")
        self.assertEqual(sku.client_id, self.other_client.id)

        entry = AuditEntry.objects.get(action=ACTION_SKU_UPDATED)
        self.assertIn("SKU: ABC-123", entry.detail)
        self.assertIn("description", entry.detail)

    def test_zero_rows_reported_without_audit(self, _monitor):
        affected = self.service.update("MISSING-1", self._payload(), "alice")
        self.assertEqual(affected, 0)
        self.assertFalse(AuditEntry.objects.filter(action=ACTION_SKU_UPDATED).exists())

    def test_unknown_client_rejected(self, _monitor):
        with self.assertRaises(ValidationError) as ctx:
            self.service.update("ABC-123", self._payload(**{SkuField.CLIENT: 99999}), "alice")
        self.assertEqual(ctx.exception.field, "client_id")
        self.assertEqual(SkuRecord.objects.get(item_code="ABC-123").client_id, self.client_row.id)

    def test_get_returns_current_values(self, _monitor):
        row = self.service.get("ABC-123")
        self.assertEqual(row["item_code"], "ABC-123")
        self.assertEqual(row["client_id"], self.client_row.id)
        self.assertIsNone(self.service.get("MISSING-1"))

    def test_update_rate_limited(self, _monitor):
        settings = WarehouseSecurityConfig(sku_update_limit=RateLimitPolicy(2, 300))
        service = SkuUpdateService(limiter=RateLimiter(clock=self.clock), settings=settings)
        service.update("ABC-123", self._payload(), "alice")
        service.update("ABC-123", self._payload(), "alice")

        with self.assertRaises(RateLimitExceeded):
            service.update("ABC-123", self._payload(description="Third"), "alice")

        self.assertNotEqual(SkuRecord.objects.get(item_code="ABC-123").description, "Third")
        self.assertEqual(AuditEntry.objects.filter(action=ACTION_RATE_LIMIT_EXCEEDED).count(), 1)

    def test_throttle_counts_attempts_before_update(self, _monitor):
        settings = WarehouseSecurityConfig(sku_update_limit=RateLimitPolicy(1, 300))
        service = SkuUpdateService(limiter=RateLimiter(clock=self.clock), settings=settings)

        service.throttle("alice")
        affected = service.update("ABC-123", self._payload(), "alice", check_rate_limit=False)

        self.assertEqual(affected, 1)
        with self.assertRaises(RateLimitExceeded):
            service.throttle("alice")
