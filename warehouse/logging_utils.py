"""
Logging utilities for the warehouse app.

Provides a standardized logger with:
- Component-based prefixes
- Operation context tracking
- Input sanitization so user-supplied values cannot forge log lines
"""

import logging
from typing import Any, Dict, Optional

LOG_NAMESPACE = "warehouse"
SECURITY_LOG_NAMESPACE = "warehouse.security"


def _sanitize_log_input(value: Any) -> Any:
    """Replace newlines and carriage returns in string values."""
    if isinstance(value, str):
        return value.replace("\n", " ").replace("\r", " ")
    return value


class WarehouseLogger(logging.LoggerAdapter):
    """Logger adapter for warehouse components.

    Example:
        logger = get_warehouse_logger("bulk_mutator")
        logger.info("Deleted %s rows", 3, extra={"operation": "delete_items"})
        # Output: [warehouse][component=bulk_mutator][op=delete_items] Deleted 3 rows
    """

    def __init__(self, component: str, extra: Optional[Dict[str, Any]] = None, namespace: str = LOG_NAMESPACE):
        base_logger = logging.getLogger(namespace)
        merged_extra = {"component": component}
        if extra:
            merged_extra.update(extra)
        super().__init__(base_logger, merged_extra)

    def process(self, msg, kwargs):
        msg = _sanitize_log_input(msg)
        extra = kwargs.pop("extra", None) or {}

        component = _sanitize_log_input(self.extra.get("component", "warehouse"))
        operation = extra.get("operation") or self.extra.get("operation")

        prefix_parts = [f"[warehouse][component={component}]"]
        if operation:
            prefix_parts.append(f"[op={_sanitize_log_input(operation)}]")

        prefixed = "".join(prefix_parts) + f" {msg}"
        kwargs["extra"] = {**self.extra, **extra}
        return prefixed, kwargs

    def log(self, level, msg, *args, **kwargs):
        if not self.isEnabledFor(level):
            return
        msg, kwargs = self.process(msg, kwargs)
        clean_args = tuple(_sanitize_log_input(arg) for arg in args)
        self.logger.log(level, msg, *clean_args, **kwargs)


def get_warehouse_logger(component: str, extra: Optional[Dict[str, Any]] = None) -> WarehouseLogger:
    return WarehouseLogger(component, extra)


def get_security_logger(component: str) -> WarehouseLogger:
    """Logger for security rejections (CSRF, rate limits, binding defects)."""
    return WarehouseLogger(component, namespace=SECURITY_LOG_NAMESPACE)
