"""
Transactional bulk deletion of inventory rows.

Each row is handled in its own savepoint inside one outer transaction and
yields an ``Ok``, ``RowError`` or ``Fatal`` outcome. Business-rule
rejections and per-row storage failures are reported and the loop moves on;
a ``Fatal`` outcome or a failure of the outer transaction (commit included)
rolls back the whole batch.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Union

from django.db import DatabaseError, transaction
from django.utils import timezone

from .audit import ACTION_INVENTORY_DELETED, AuditLogger
from .config import WarehouseSecurityConfig, config as default_config
from .exceptions import QueryBindingError, StorageError, TransactionError, ValidationError, WarehouseError
from .executor import SecureQueryExecutor
from .logging_utils import get_warehouse_logger
from .models import InventoryMovement
from .rate_limiter import RateLimiter, rate_limiter as default_rate_limiter
from .sentry_monitoring import WarehouseSentryMonitor
from .services import enforce_rate_limit
from .validators import dedupe_identifiers, sanitize_string

logger = get_warehouse_logger("bulk_mutator")

BULK_DELETE_ACTION = 'bulk_delete'

STATUS_SUCCESS = 'success'
STATUS_PARTIAL = 'partial'
STATUS_NOTHING_SUCCEEDED = 'nothing_succeeded'

SELECT_INVENTORY_ROW = (
    "SELECT tag_id, sku_id, qty_on_hand, qty_allocated, location_id "
    "FROM inventory WHERE tag_id = %s"
)


@dataclass(frozen=True)
class Ok:
    tag_id: str
    row: Dict[str, Any]


@dataclass(frozen=True)
class RowError:
    tag_id: str
    reason: str


@dataclass(frozen=True)
class Fatal:
    tag_id: str
    error: Exception


RowOutcome = Union[Ok, RowError, Fatal]


@dataclass
class BulkResult:
    deleted_count: int = 0
    row_errors: List[str] = field(default_factory=list)
    outcomes: List[RowOutcome] = field(default_factory=list)

    @property
    def status(self) -> str:
        if self.deleted_count == 0:
            return STATUS_NOTHING_SUCCEEDED
        if self.row_errors:
            return STATUS_PARTIAL
        return STATUS_SUCCESS

    @property
    def success(self) -> bool:
        return self.deleted_count > 0

    @property
    def message(self) -> str:
        if self.status == STATUS_SUCCESS:
            return f"Deleted {self.deleted_count} inventory item(s)."
        if self.status == STATUS_PARTIAL:
            return (
                f"Deleted {self.deleted_count} inventory item(s); "
                f"{len(self.row_errors)} could not be deleted."
            )
        return "No inventory items were deleted."

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'deleted_count': self.deleted_count,
            'errors': list(self.row_errors),
            'message': self.message,
        }


class BulkInventoryMutator:

    def __init__(
        self,
        executor: Optional[SecureQueryExecutor] = None,
        audit: Optional[AuditLogger] = None,
        limiter: Optional[RateLimiter] = None,
        settings: Optional[WarehouseSecurityConfig] = None,
    ):
        self.executor = executor or SecureQueryExecutor()
        self.audit = audit or AuditLogger(self.executor)
        self.limiter = limiter or default_rate_limiter
        self.settings = settings or default_config

    def delete_items(self, raw_tag_ids: Iterable[Any], actor: str, reason: str = '',
                     ip_address: Optional[str] = None) -> BulkResult:
        tag_ids = dedupe_identifiers(raw_tag_ids, field='tag_id', max_len=self.settings.identifier_max_length)
        if not tag_ids:
            raise ValidationError("no valid items", field='tag_ids')
        if len(tag_ids) > self.settings.max_batch_size:
            raise ValidationError(
                f"at most {self.settings.max_batch_size} items can be deleted at once", field='tag_ids'
            )
        reason = sanitize_string(reason, self.settings.reason_max_length, field='reason')

        if len(tag_ids) > self.settings.bulk_threshold:
            enforce_rate_limit(BULK_DELETE_ACTION, actor, self.settings.bulk_delete_limit, self.audit,
                               ip_address, self.limiter)

        result = BulkResult()
        try:
            with transaction.atomic(using=self.executor.using):
                for tag_id in tag_ids:
                    outcome = self._delete_one(tag_id, actor, reason, ip_address)
                    result.outcomes.append(outcome)
                    if isinstance(outcome, Fatal):
                        raise outcome.error
                    if isinstance(outcome, Ok):
                        result.deleted_count += 1
                    else:
                        result.row_errors.append(outcome.reason)
        except QueryBindingError:
            logger.critical(
                "Bulk delete aborted by binding error; batch of %s rolled back", len(tag_ids),
                extra={"operation": "delete_items"}
            )
            raise
        except (DatabaseError, WarehouseError) as exc:
            logger.error(
                "Bulk delete transaction failed, batch of %s rolled back: %s", len(tag_ids), type(exc).__name__,
                extra={"operation": "delete_items"}
            )
            WarehouseSentryMonitor.capture_exception(exc, WarehouseSentryMonitor.COMPONENT_BULK, "delete_items")
            raise TransactionError("bulk delete transaction failed") from exc

        logger.info(
            "Bulk delete by %s: %s deleted, %s row errors", actor, result.deleted_count, len(result.row_errors),
            extra={"operation": "delete_items"}
        )
        WarehouseSentryMonitor.track_bulk_result("delete_items", result.deleted_count, result.row_errors, result.status)
        return result

    def _lookup_sql(self) -> str:
        if self.executor.supports_row_locks:
            return SELECT_INVENTORY_ROW + " FOR UPDATE"
        return SELECT_INVENTORY_ROW

    def _delete_one(self, tag_id: str, actor: str, reason: str, ip_address: Optional[str]) -> RowOutcome:
        try:
            with transaction.atomic(using=self.executor.using):
                row = self.executor.select_one(self._lookup_sql(), [tag_id], 's')
                if row is None:
                    return RowError(tag_id, f"{tag_id} not found")
                if int(row['qty_allocated'] or 0) > 0:
                    return RowError(tag_id, f"{tag_id} blocked: allocated quantity")

                if self.executor.delete('inventory', 'tag_id = %s', [tag_id], 's') == 0:
                    return RowError(tag_id, f"{tag_id} not found")
                self.executor.insert('inventory_movements', self._movement(row, actor, reason))
        except QueryBindingError as exc:
            return Fatal(tag_id, exc)
        except StorageError:
            logger.warning("Storage error deleting %s", tag_id, extra={"operation": "delete_one"})
            return RowError(tag_id, f"{tag_id} failed: storage error")

        self.audit.log(actor, ACTION_INVENTORY_DELETED, self._audit_detail(row, reason), ip_address)
        return Ok(tag_id, row)

    @staticmethod
    def _movement(row: Dict[str, Any], actor: str, reason: str) -> Dict[str, Any]:
        return {
            'sku_id': row['sku_id'],
            'tag_id': row['tag_id'],
            'movement_type': InventoryMovement.MOVEMENT_DELETION,
            'quantity': -int(row['qty_on_hand'] or 0),
            'location_from': row['location_id'] or 'UNKNOWN',
            'location_to': 'DELETED',
            'reference_number': f"DEL-{row['tag_id']}",
            'reason': reason or 'Inventory deletion',
            'actor': actor[:150],
            'created_at': timezone.now(),
        }

    @staticmethod
    def _audit_detail(row: Dict[str, Any], reason: str) -> str:
        detail = (
            f"Tag: {row['tag_id']}, SKU: {row['sku_id']}, Qty: {int(row['qty_on_hand'] or 0)}, "
            f"Location: {row['location_id'] or 'N/A'}"
        )
        if reason:
            detail += f", Reason: {reason}"
        return detail
