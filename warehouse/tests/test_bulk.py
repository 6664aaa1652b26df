from unittest.mock import patch

from django.db import OperationalError, connections
from django.test import TestCase, TransactionTestCase

from warehouse.audit import ACTION_INVENTORY_DELETED, ACTION_RATE_LIMIT_EXCEEDED, AuditLogger
from warehouse.bulk import (
    STATUS_NOTHING_SUCCEEDED,
    STATUS_PARTIAL,
    STATUS_SUCCESS,
    BulkInventoryMutator,
    BulkResult,
    Fatal,
    Ok,
    RowError,
)
from warehouse.config import RateLimitPolicy, WarehouseSecurityConfig
from warehouse.exceptions import (
    QueryBindingError,
    RateLimitExceeded,
    StorageError,
    TransactionError,
    ValidationError,
)
from warehouse.executor import SecureQueryExecutor
from warehouse.models import AuditEntry, InventoryItem, InventoryMovement
from warehouse.rate_limiter import RateLimiter

from .helpers import FakeClock, make_item, make_sku


class BulkResultTests(TestCase):

    def test_status_success(self):
        result = BulkResult(deleted_count=2)
        self.assertEqual(result.status, STATUS_SUCCESS)
        self.assertTrue(result.success)

    def test_status_partial(self):
        result = BulkResult(deleted_count=1, row_errors=["T3 not found"])
        self.assertEqual(result.status, STATUS_PARTIAL)
        self.assertIn("1 could not be deleted", result.message)

    def test_status_nothing_succeeded(self):
        result = BulkResult(deleted_count=0, row_errors=["T3 not found"])
        self.assertEqual(result.status, STATUS_NOTHING_SUCCEEDED)
        self.assertFalse(result.success)
        self.assertEqual(result.to_dict(), {
            "success": False,
            "deleted_count": 0,
            "errors": ["T3 not found"],
            "message": "No inventory items were deleted.",
        })


@patch("warehouse.bulk.WarehouseSentryMonitor")
class BulkInventoryMutatorTests(TestCase):

    def setUp(self):
        self.sku = make_sku("GLS-500")
        self.clock = FakeClock(start=3600.0 * 1000)
        self.mutator = BulkInventoryMutator(limiter=RateLimiter(clock=self.clock))

    def test_mixed_batch_reports_each_row(self, _monitor):
        make_item("T1", self.sku, qty_on_hand=10, qty_allocated=0)
        make_item("T2", self.sku, qty_on_hand=8, qty_allocated=5)

        result = self.mutator.delete_items(["T1", "T2", "T3"], "alice")

        self.assertEqual(result.deleted_count, 1)
        self.assertEqual(result.row_errors, ["T2 blocked: allocated quantity", "T3 not found"])
        self.assertEqual(result.status, STATUS_PARTIAL)
        self.assertFalse(InventoryItem.objects.filter(tag_id="T1").exists())
        self.assertTrue(InventoryItem.objects.filter(tag_id="T2").exists())
        self.assertEqual([type(o) for o in result.outcomes], [Ok, RowError, RowError])

    def test_deleted_row_writes_movement_and_audit(self, _monitor):
        make_item("T1", self.sku, qty_on_hand=10, location_id="A-01-01")

        self.mutator.delete_items(["T1"], "alice", reason="Damaged", ip_address="10.0.0.9")

        movement = InventoryMovement.objects.get()
        self.assertEqual(movement.movement_type, InventoryMovement.MOVEMENT_DELETION)
        self.assertEqual(movement.quantity, -10)
        self.assertEqual(movement.location_from, "A-01-01")
        self.assertEqual(movement.location_to, "DELETED")
        self.assertEqual(movement.reference_number, "DEL-T1")
        self.assertEqual(movement.reason, "Damaged")
        self.assertEqual(movement.sku_id, "GLS-500")

        entry = AuditEntry.objects.get()
        self.assertEqual(entry.action, ACTION_INVENTORY_DELETED)
        self.assertEqual(entry.actor, "alice")
        self.assertEqual(entry.ip_address, "10.0.0.9")
        self.assertIn("Tag: T1", entry.detail)

    def test_counts_add_up_to_deduplicated_batch(self, _monitor):
        for i in range(4):
            make_item(f"OK{i}", self.sku, qty_allocated=0)
        for i in range(3):
            make_item(f"AL{i}", self.sku, qty_allocated=1)
        raw = ["OK0", "OK1", "AL0", "NF0", "OK2", "AL1", "OK0", "bad id", "OK3", "AL2", "NF1", "AL0"]

        result = self.mutator.delete_items(raw, "alice")

        not_found = {e for e in result.row_errors if e.endswith("not found")}
        blocked = {e for e in result.row_errors if e.endswith("blocked: allocated quantity")}
        self.assertEqual(result.deleted_count + len(not_found) + len(blocked), 9)
        self.assertEqual(result.deleted_count, 4)

    def test_allocated_item_never_deleted_regardless_of_on_hand(self, _monitor):
        make_item("Z0", self.sku, qty_on_hand=0, qty_allocated=3)
        make_item("Z1", self.sku, qty_on_hand=100, qty_allocated=1)
        for order in (["Z0", "Z1"], ["Z1", "Z0"]):
            result = self.mutator.delete_items(order, "alice")
            self.assertEqual(result.deleted_count, 0)
        self.assertEqual(InventoryItem.objects.filter(tag_id__in=["Z0", "Z1"]).count(), 2)

    def test_on_hand_stock_does_not_block_deletion(self, _monitor):
        make_item("T1", self.sku, qty_on_hand=50, qty_allocated=0)
        result = self.mutator.delete_items(["T1"], "alice")
        self.assertEqual(result.deleted_count, 1)

    def test_repeat_delete_reports_not_found(self, _monitor):
        make_item("T1", self.sku)
        self.mutator.delete_items(["T1"], "alice")

        result = self.mutator.delete_items(["T1"], "alice")

        self.assertEqual(result.deleted_count, 0)
        self.assertEqual(result.row_errors, ["T1 not found"])
        self.assertEqual(result.status, STATUS_NOTHING_SUCCEEDED)

    def test_invalid_identifiers_dropped_silently(self, _monitor):
        make_item("T1", self.sku)
        result = self.mutator.delete_items(["T1", "T1; DROP TABLE inventory", "<b>"], "alice")
        self.assertEqual(result.deleted_count, 1)
        self.assertEqual(result.row_errors, [])

    def test_empty_batch_after_validation_raises(self, _monitor):
        with self.assertRaises(ValidationError) as ctx:
            self.mutator.delete_items(["", "bad id", "<x>"], "alice")
        self.assertEqual(ctx.exception.message, "no valid items")

    def test_oversized_batch_rejected(self, _monitor):
        settings = WarehouseSecurityConfig(max_batch_size=2)
        mutator = BulkInventoryMutator(settings=settings)
        with self.assertRaises(ValidationError):
            mutator.delete_items(["A", "B", "C"], "alice")

    def test_small_batches_are_not_rate_limited(self, _monitor):
        for _ in range(5):
            self.mutator.delete_items([f"T{i}" for i in range(10)], "alice")

    def test_large_batches_are_rate_limited_before_touching_rows(self, _monitor):
        tags = [f"T{i}" for i in range(11)]
        for tag in tags:
            make_item(tag, self.sku, qty_allocated=1)
        for _ in range(3):
            self.mutator.delete_items(tags, "alice")

        make_item("FREE", self.sku, qty_allocated=0)
        with self.assertRaises(RateLimitExceeded):
            self.mutator.delete_items(tags + ["FREE"], "alice")

        self.assertTrue(InventoryItem.objects.filter(tag_id="FREE").exists())
        self.assertEqual(AuditEntry.objects.filter(action=ACTION_RATE_LIMIT_EXCEEDED).count(), 1)

    def test_bulk_limit_resets_after_window(self, _monitor):
        tags = [f"T{i}" for i in range(11)]
        policy = WarehouseSecurityConfig(bulk_delete_limit=RateLimitPolicy(1, 3600))
        mutator = BulkInventoryMutator(limiter=RateLimiter(clock=self.clock), settings=policy)

        mutator.delete_items(tags, "alice")
        with self.assertRaises(RateLimitExceeded):
            mutator.delete_items(tags, "alice")
        self.clock.advance(3600)
        mutator.delete_items(tags, "alice")

    def test_row_storage_error_is_recorded_and_loop_continues(self, _monitor):
        make_item("T1", self.sku)
        make_item("T2", self.sku)
        executor = SecureQueryExecutor()
        original_delete = executor.delete

        def flaky_delete(table, where_clause, where_params, types=None):
            if where_params == ["T1"]:
                raise StorageError("constraint violation")
            return original_delete(table, where_clause, where_params, types)

        with patch.object(executor, "delete", side_effect=flaky_delete):
            result = BulkInventoryMutator(executor=executor).delete_items(["T1", "T2"], "alice")

        self.assertEqual(result.deleted_count, 1)
        self.assertEqual(result.row_errors, ["T1 failed: storage error"])
        self.assertTrue(InventoryItem.objects.filter(tag_id="T1").exists())
        self.assertFalse(InventoryMovement.objects.filter(tag_id="T1").exists())

    def test_movement_failure_rolls_back_that_row_only(self, _monitor):
        make_item("T1", self.sku)
        make_item("T2", self.sku)
        executor = SecureQueryExecutor()
        original_insert = executor.insert

        def flaky_insert(table, field_map):
            if table == "inventory_movements" and field_map["tag_id"] == "T2":
                raise StorageError("insert failed")
            return original_insert(table, field_map)

        with patch.object(executor, "insert", side_effect=flaky_insert):
            result = BulkInventoryMutator(executor=executor).delete_items(["T1", "T2"], "alice")

        self.assertEqual(result.deleted_count, 1)
        self.assertEqual(result.row_errors, ["T2 failed: storage error"])
        self.assertTrue(InventoryItem.objects.filter(tag_id="T2").exists())

    def test_audit_failure_does_not_undo_deletion(self, _monitor):
        make_item("T1", self.sku)
        audit = AuditLogger()
        with patch.object(audit, "log", return_value=False):
            result = BulkInventoryMutator(audit=audit).delete_items(["T1"], "alice")
        self.assertEqual(result.deleted_count, 1)
        self.assertFalse(InventoryItem.objects.filter(tag_id="T1").exists())

    def test_binding_error_is_fatal_and_rolls_back_batch(self, _monitor):
        make_item("T1", self.sku)
        make_item("T2", self.sku)
        executor = SecureQueryExecutor()
        original_delete = executor.delete

        def broken_delete(table, where_clause, where_params, types=None):
            if where_params == ["T2"]:
                raise QueryBindingError("placeholder mismatch")
            return original_delete(table, where_clause, where_params, types)

        with patch.object(executor, "delete", side_effect=broken_delete):
            with self.assertRaises(QueryBindingError):
                BulkInventoryMutator(executor=executor).delete_items(["T1", "T2"], "alice")

        self.assertTrue(InventoryItem.objects.filter(tag_id="T1").exists())
        self.assertEqual(InventoryMovement.objects.count(), 0)

    def test_fatal_outcome_type(self, _monitor):
        make_item("T1", self.sku)
        with patch.object(SecureQueryExecutor, "select_one", side_effect=QueryBindingError("bad")):
            outcome = self.mutator._delete_one("T1", "alice", "", None)
        self.assertIsInstance(outcome, Fatal)


@patch("warehouse.bulk.WarehouseSentryMonitor")
class BulkCommitFailureTests(TransactionTestCase):
    """Commit failures need real transactions, not the TestCase wrapper."""

    def test_commit_failure_rolls_back_every_row(self, _monitor):
        sku = make_sku("GLS-500")
        make_item("T1", sku)
        make_item("T2", sku)
        connection = connections["default"]

        with patch.object(connection, "commit", side_effect=OperationalError("commit failed")):
            with self.assertRaises(TransactionError):
                BulkInventoryMutator().delete_items(["T1", "T2"], "alice")

        self.assertEqual(set(InventoryItem.objects.values_list("tag_id", flat=True)), {"T1", "T2"})
        self.assertEqual(InventoryMovement.objects.count(), 0)
        self.assertEqual(AuditEntry.objects.count(), 0)
        self.assertTrue(connection.get_autocommit())
