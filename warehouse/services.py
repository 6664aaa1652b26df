"""
SKU lookup and SKU update services.

Views hand these services an executor, the acting identity and already
extracted request values; nothing here reads request or session state.
"""
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

from django.db import transaction
from django.utils import timezone

from .audit import ACTION_SKU_UPDATED, AuditLogger
from .config import RateLimitPolicy, WarehouseSecurityConfig, config as default_config
from .exceptions import RateLimitExceeded, ValidationError
from .executor import SecureQueryExecutor
from .logging_utils import get_warehouse_logger
from .models import SkuField
from .rate_limiter import RateLimiter, RateLimitCounter, rate_limit_key, rate_limiter as default_rate_limiter
from .sentry_monitoring import WarehouseSentryMonitor
from .validators import (
    sanitize_string,
    validate_boolean,
    validate_float,
    validate_identifier,
    validate_integer,
)

logger = get_warehouse_logger("services")

SKU_INFO_ACTION = 'sku_info_api'
SKU_UPDATE_ACTION = 'sku_update'


def enforce_rate_limit(action: str, identity: str, policy: RateLimitPolicy, audit: AuditLogger,
                       ip_address: Optional[str] = None, limiter: Optional[RateLimiter] = None) -> RateLimitCounter:
    """Count one request for ``action``; audit and re-raise when over the limit."""
    limiter = limiter or default_rate_limiter
    try:
        return limiter.check_rate_limit(rate_limit_key(action, identity), policy.max_requests, policy.window_seconds)
    except RateLimitExceeded as exc:
        audit.log_rate_limit(exc, identity, ip_address)
        WarehouseSentryMonitor.track_security_rejection("rate_limit", identity, data={"key": exc.key})
        raise


def _int_or_zero(value: Any) -> int:
    return 0 if value is None else int(value)


def _float_or_zero(value: Any) -> float:
    return 0.0 if value is None else float(value)


def _text_or_empty(value: Any) -> str:
    return '' if value is None else str(value)


@dataclass(frozen=True)
class InventorySummary:
    total_on_hand: int = 0
    total_allocated: int = 0
    location_count: int = 0

    @property
    def total_available(self) -> int:
        return self.total_on_hand - self.total_allocated

    @classmethod
    def from_row(cls, row: Optional[Mapping[str, Any]]) -> 'InventorySummary':
        """Absent rows and NULL aggregates both mean zero."""
        if not row:
            return cls()
        return cls(
            total_on_hand=_int_or_zero(row.get('total_on_hand')),
            total_allocated=_int_or_zero(row.get('total_allocated')),
            location_count=_int_or_zero(row.get('location_count')),
        )

    def to_dict(self) -> Dict[str, int]:
        return {
            'total_on_hand': self.total_on_hand,
            'total_allocated': self.total_allocated,
            'total_available': self.total_available,
            'location_count': self.location_count,
        }


class SkuLookupService:
    SKU_QUERY = (
        "SELECT s.item_code AS sku_id, s.description, s.pack_config, s.client_id, "
        "c.client_name, s.product_group, s.ean, s.fragile, s.high_security, "
        "s.each_weight, s.packed_weight "
        "FROM sku_master s LEFT JOIN clients c ON c.id = s.client_id "
        "WHERE s.item_code = %s"
    )
    INVENTORY_QUERY = (
        "SELECT COALESCE(SUM(qty_on_hand), 0) AS total_on_hand, "
        "COALESCE(SUM(qty_allocated), 0) AS total_allocated, "
        "COUNT(DISTINCT location_id) AS location_count "
        "FROM inventory WHERE sku_id = %s"
    )

    def __init__(self, executor: Optional[SecureQueryExecutor] = None,
                 settings: Optional[WarehouseSecurityConfig] = None):
        self.executor = executor or SecureQueryExecutor()
        self.settings = settings or default_config

    def inventory_summary(self, sku_id: str) -> InventorySummary:
        return InventorySummary.from_row(self.executor.select_one(self.INVENTORY_QUERY, [sku_id], 's'))

    def lookup(self, raw_sku_id: Any, include_inventory: bool = False) -> Dict[str, Any]:
        sku_id = validate_identifier(raw_sku_id, field='sku_id', max_len=self.settings.identifier_max_length)
        row = self.executor.select_one(self.SKU_QUERY, [sku_id], 's')

        if row is None:
            logger.info("SKU %s not found", sku_id, extra={"operation": "lookup"})
            row = {}

        response = {
            'sku_id': sku_id,
            'description': _text_or_empty(row.get('description')),
            'pack_config': _text_or_empty(row.get('pack_config')),
            'client_id': row.get('client_id'),
            'client_name': _text_or_empty(row.get('client_name')),
            'product_group': _text_or_empty(row.get('product_group')),
            'ean': _text_or_empty(row.get('ean')),
            'fragile': bool(row.get('fragile')),
            'high_security': bool(row.get('high_security')),
            'each_weight': _float_or_zero(row.get('each_weight')),
            'packed_weight': _float_or_zero(row.get('packed_weight')),
            'found': bool(row),
            'timestamp': timezone.now().isoformat(),
            'api_version': self.settings.api_version,
        }
        if include_inventory:
            response['inventory'] = self.inventory_summary(sku_id).to_dict()
        return response


# Editable text columns and their stored lengths.
TEXT_FIELDS = {
    SkuField.PACK_CONFIG: 100,
    SkuField.EAN: 32,
    SkuField.SERIAL_NUMBER: 100,
    SkuField.ORIGIN: 100,
    SkuField.DIMENSION: 100,
    SkuField.PRODUCT_GROUP: 100,
}
WEIGHT_FIELDS = (SkuField.UNIT_WEIGHT, SkuField.EACH_WEIGHT, SkuField.PACKED_WEIGHT)
FLAG_FIELDS = (SkuField.FRAGILE, SkuField.HIGH_SECURITY)


def clean_sku_form(data: Mapping[str, Any],
                   settings: Optional[WarehouseSecurityConfig] = None) -> Tuple[Dict[SkuField, Any], Dict[str, str]]:
    """Validate a submitted edit form.

    Returns the cleaned update payload keyed by ``SkuField`` and a mapping of
    field name to error message. The payload is only usable when there are no
    errors. Unchecked checkboxes are absent from the form and mean False.
    """
    settings = settings or default_config
    cleaned: Dict[SkuField, Any] = {}
    errors: Dict[str, str] = {}

    def run(sku_field: SkuField, func):
        try:
            cleaned[sku_field] = func(data.get(sku_field.value))
        except ValidationError as exc:
            errors[sku_field.value] = exc.message

    run(SkuField.DESCRIPTION, lambda raw: sanitize_string(
        raw, settings.text_max_length, field='description', required=True))
    for sku_field, max_len in TEXT_FIELDS.items():
        run(sku_field, lambda raw, f=sku_field, n=max_len: sanitize_string(raw, n, field=f.value))
    for sku_field in WEIGHT_FIELDS:
        run(sku_field, lambda raw, f=sku_field: validate_float(
            0 if raw in (None, '') else raw, 0, field=f.value))
    for sku_field in FLAG_FIELDS:
        run(sku_field, lambda raw, f=sku_field: validate_boolean(raw, field=f.value))
    run(SkuField.CLIENT, lambda raw: validate_integer(raw, 1, field='client_id'))

    return cleaned, errors


class SkuUpdateService:

    CLIENT_EXISTS_QUERY = "SELECT id FROM clients WHERE id = %s"

    def __init__(self, executor: Optional[SecureQueryExecutor] = None, audit: Optional[AuditLogger] = None,
                 limiter: Optional[RateLimiter] = None, settings: Optional[WarehouseSecurityConfig] = None):
        self.executor = executor or SecureQueryExecutor()
        self.audit = audit or AuditLogger(self.executor)
        self.limiter = limiter or default_rate_limiter
        self.settings = settings or default_config

    def get(self, raw_item_code: Any) -> Optional[Dict[str, Any]]:
        item_code = validate_identifier(raw_item_code, field='item_code', max_len=self.settings.identifier_max_length)
        return self.executor.select_one(
            "SELECT item_code, description, pack_config, ean, serial_number, origin, dimension, "
            "unit_weight, product_group, fragile, high_security, each_weight, packed_weight, client_id "
            "FROM sku_master WHERE item_code = %s",
            [item_code], 's'
        )

    def throttle(self, actor: str, ip_address: Optional[str] = None) -> RateLimitCounter:
        """Count one edit attempt for ``actor``, valid or not."""
        return enforce_rate_limit(SKU_UPDATE_ACTION, actor, self.settings.sku_update_limit, self.audit,
                                  ip_address, self.limiter)

    def update(self, raw_item_code: Any, payload: Mapping[SkuField, Any], actor: str,
               ip_address: Optional[str] = None, check_rate_limit: bool = True) -> int:
        """Apply an allow-listed update; returns the affected row count.

        Zero means no SKU matched ``item_code``. Pass ``check_rate_limit=False``
        when the caller already counted the attempt with ``throttle``.
        """
        if check_rate_limit:
            self.throttle(actor, ip_address)
        item_code = validate_identifier(raw_item_code, field='item_code', max_len=self.settings.identifier_max_length)

        client_id = payload.get(SkuField.CLIENT)
        if client_id is not None:
            if self.executor.select_one(self.CLIENT_EXISTS_QUERY, [client_id], 'i') is None:
                raise ValidationError("client_id does not reference an existing client", field='client_id')

        with transaction.atomic(using=self.executor.using):
            affected = self.executor.update('sku_master', payload, 'item_code = %s', [item_code], 's')

        if affected:
            fields = ', '.join(key.value for key in payload)
            self.audit.log(actor, ACTION_SKU_UPDATED, f"SKU: {item_code}, Fields: {fields}", ip_address)
            logger.info("SKU %s updated by %s", item_code, actor, extra={"operation": "update"})
        else:
            logger.info("SKU %s update matched no rows", item_code, extra={"operation": "update"})
        return affected
