from typing import Optional

from django.db import DatabaseError, transaction
from django.utils import timezone

from .exceptions import RateLimitExceeded, WarehouseError
from .executor import SecureQueryExecutor
from .logging_utils import get_warehouse_logger
from .sentry_monitoring import WarehouseSentryMonitor

logger = get_warehouse_logger("audit")

ACTION_INVENTORY_DELETED = 'INVENTORY_DELETED'
ACTION_SKU_UPDATED = 'SKU_UPDATED'
ACTION_RATE_LIMIT_EXCEEDED = 'RATE_LIMIT_EXCEEDED'


class AuditLogger:
    """Appends rows to ``audit_log``.

    Writing is best-effort: a failed insert is rolled back to its own
    savepoint, reported to the operational log and Sentry, and never raised.
    The caller's mutation stands either way.
    """

    def __init__(self, executor: Optional[SecureQueryExecutor] = None):
        self.executor = executor or SecureQueryExecutor()

    def log(self, actor: str, action: str, detail: str, ip_address: Optional[str] = None) -> bool:
        entry = {
            'actor': (actor or 'anonymous')[:150],
            'action': action[:64],
            'detail': detail or '',
            'ip_address': (ip_address or '')[:45],
            'timestamp': timezone.now(),
        }
        try:
            with transaction.atomic(using=self.executor.using):
                self.executor.insert('audit_log', entry)
        except (WarehouseError, DatabaseError) as exc:
            logger.error(
                "Audit write failed for %s by %s: %s", action, entry['actor'], type(exc).__name__,
                extra={"operation": "log"}
            )
            WarehouseSentryMonitor.track_audit_failure(action, exc)
            return False
        return True

    def log_rate_limit(self, error: RateLimitExceeded, actor: str, ip_address: Optional[str] = None) -> bool:
        detail = f"Key: {error.key}, Limit: {error.limit}/{error.window_seconds}s"
        return self.log(actor, ACTION_RATE_LIMIT_EXCEEDED, detail, ip_address)
