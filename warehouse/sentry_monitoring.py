import time
from typing import Any, Dict, Optional

import sentry_sdk
from sentry_sdk import capture_exception, capture_message

from .logging_utils import get_warehouse_logger

logger = get_warehouse_logger("sentry_monitoring")


class WarehouseSentryMonitor:
    """Sentry reporting for the warehouse mutation layer.

    Only failures are sent: partial or empty bulk results, security
    rejections, audit write failures and query binding defects.
    """

    APP = "warehouse"
    COMPONENT_BULK = "bulk_mutator"
    COMPONENT_EXECUTOR = "query_executor"
    COMPONENT_AUDIT = "audit"
    COMPONENT_SECURITY = "security"

    @staticmethod
    def add_breadcrumb(message: str, category: str = "warehouse", level: str = "info", data: Optional[Dict] = None):
        sentry_sdk.add_breadcrumb(
            category=category,
            message=message,
            level=level,
            data=data or {}
        )

    @staticmethod
    def track_bulk_result(operation: str, deleted_count: int, row_errors: list, status: str):
        """Report a bulk operation that did not fully succeed."""
        if status == "success":
            return

        sentry_sdk.set_tag("app", WarehouseSentryMonitor.APP)
        sentry_sdk.set_tag("bulk_status", status)
        sentry_sdk.set_context("bulk_result", {
            "operation": operation,
            "deleted_count": deleted_count,
            "error_count": len(row_errors),
            "errors": row_errors[:20],
            "timestamp": time.time(),
        })

        level = "warning" if status == "partial" else "error"
        capture_message(
            f"Warehouse {operation} {status}: {deleted_count} deleted, {len(row_errors)} row errors",
            level=level
        )

    @staticmethod
    def track_security_rejection(kind: str, identity: str, path: str = "", data: Optional[Dict[str, Any]] = None):
        """Record a CSRF or rate-limit rejection."""
        context = {"kind": kind, "identity": identity, "path": path}
        if data:
            context.update(data)
        sentry_sdk.set_tag("security_rejection", kind)
        sentry_sdk.set_context("security_rejection", context)
        capture_message(f"Warehouse security rejection: {kind}", level="warning")

    @staticmethod
    def track_audit_failure(action: str, error: Exception):
        sentry_sdk.set_context("audit_failure", {
            "action": action,
            "error_type": type(error).__name__,
        })
        capture_exception(error)

    @staticmethod
    def capture_exception(error: Exception, component: str, operation: str = ""):
        sentry_sdk.set_tag("component", component)
        sentry_sdk.set_context("error_context", {
            "component": component,
            "operation": operation,
            "error_type": type(error).__name__,
        })
        logger.debug("Reporting %s to Sentry", type(error).__name__, extra={"operation": operation})
        capture_exception(error)
