"""
Parameter-bound query execution over Django's raw DB-API cursor.

Callers supply fixed SQL templates with ``%s`` placeholders and a separate
parameter sequence. Table and column names never come from request data:
they are looked up in ``TABLES`` and quoted by the backend. Binding defects
raise ``QueryBindingError`` before the database is touched; database
failures surface as ``StorageError``.
"""
import datetime
import decimal
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Sequence, Type

from django.db import DatabaseError, connections
from django.utils import timezone

from .exceptions import QueryBindingError, StorageError
from .logging_utils import get_warehouse_logger
from .models import SkuField
from .sentry_monitoring import WarehouseSentryMonitor

logger = get_warehouse_logger("query_executor")

BINDABLE_TYPES = (str, int, float, bool, decimal.Decimal, datetime.datetime, datetime.date, type(None))

TYPE_CODES = {
    's': (str,),
    'i': (int,),
    'd': (int, float, decimal.Decimal),
    'b': (bool,),
    't': (datetime.datetime, datetime.date),
}

PLACEHOLDER = '%s'
STRAY_FORMAT = re.compile(r'%(?!s)')


@dataclass(frozen=True)
class TableSpec:
    name: str
    columns: FrozenSet[str]
    fields: Optional[Type[Enum]] = None
    stamps_last_updated: bool = False


TABLES: Dict[str, TableSpec] = {
    'clients': TableSpec('clients', frozenset({'id', 'client_name'})),
    'sku_master': TableSpec(
        'sku_master',
        frozenset({'id', 'item_code', 'last_updated'} | {f.value for f in SkuField}),
        fields=SkuField,
        stamps_last_updated=True,
    ),
    'inventory': TableSpec(
        'inventory',
        frozenset({'id', 'tag_id', 'sku_id', 'qty_on_hand', 'qty_allocated', 'location_id', 'last_updated'}),
        stamps_last_updated=True,
    ),
    'inventory_movements': TableSpec(
        'inventory_movements',
        frozenset({
            'sku_id', 'tag_id', 'movement_type', 'quantity', 'location_from', 'location_to',
            'reference_number', 'reason', 'actor', 'created_at',
        }),
    ),
    'audit_log': TableSpec('audit_log', frozenset({'actor', 'action', 'detail', 'ip_address', 'timestamp'})),
}


def _binding_error(message: str) -> QueryBindingError:
    error = QueryBindingError(message)
    logger.critical("Query binding error: %s", message, extra={"operation": "bind"})
    WarehouseSentryMonitor.capture_exception(error, WarehouseSentryMonitor.COMPONENT_EXECUTOR, "bind")
    return error


def check_binding(query: str, params: Sequence[Any], types: Optional[str] = None) -> None:
    """Verify placeholder arity, parameter types and the optional type codes."""
    if not isinstance(query, str) or not query.strip():
        raise _binding_error("query template must be a non-empty string")
    if not isinstance(params, (list, tuple)):
        raise _binding_error(f"params must be a list or tuple, got {type(params).__name__}")

    template = query.replace('%%', '')
    placeholders = template.count(PLACEHOLDER)
    if STRAY_FORMAT.search(template.replace(PLACEHOLDER, '')):
        raise _binding_error("query template contains a placeholder other than %s")
    if placeholders != len(params):
        raise _binding_error(f"query expects {placeholders} parameters, got {len(params)}")

    for index, value in enumerate(params):
        if not isinstance(value, BINDABLE_TYPES):
            raise _binding_error(f"parameter {index} has unbindable type {type(value).__name__}")

    if types is None:
        return
    if len(types) != len(params):
        raise _binding_error(f"type string declares {len(types)} parameters, got {len(params)}")
    for index, (code, value) in enumerate(zip(types, params)):
        expected = TYPE_CODES.get(code)
        if expected is None:
            raise _binding_error(f"unknown type code {code!r}")
        if value is None:
            continue
        if code in ('i', 'd') and isinstance(value, bool):
            raise _binding_error(f"parameter {index} is a bool, declared {code!r}")
        if not isinstance(value, expected):
            raise _binding_error(f"parameter {index} has type {type(value).__name__}, declared {code!r}")


class SecureQueryExecutor:
    """Thin wrapper over ``connections[using].cursor()``.

    The executor holds no transaction of its own; callers that need one wrap
    their calls in ``transaction.atomic(using=...)``.
    """

    def __init__(self, using: str = 'default'):
        self.using = using

    @property
    def connection(self):
        return connections[self.using]

    @property
    def supports_row_locks(self) -> bool:
        return bool(self.connection.features.has_select_for_update)

    def _table(self, table: str) -> TableSpec:
        spec = TABLES.get(table)
        if spec is None:
            raise _binding_error(f"table {table!r} is not registered")
        return spec

    def _quote(self, name: str) -> str:
        return self.connection.ops.quote_name(name)

    def _now(self):
        return self.connection.ops.adapt_datetimefield_value(timezone.now())

    def _execute(self, operation: str, sql: str, params: Sequence[Any]):
        cursor = None
        try:
            cursor = self.connection.cursor()
            cursor.execute(sql, list(params))
            return cursor
        except DatabaseError as exc:
            if cursor is not None:
                cursor.close()
            logger.error(
                "Database error during %s: %s", operation, exc,
                extra={"operation": operation}
            )
            raise StorageError(f"{operation} failed: {type(exc).__name__}") from exc

    @staticmethod
    def _rows(cursor) -> List[Dict[str, Any]]:
        try:
            columns = [col[0] for col in cursor.description or ()]
            return [dict(zip(columns, row)) for row in cursor.fetchall()]
        finally:
            cursor.close()

    def select_one(self, query: str, params: Sequence[Any], types: Optional[str] = None) -> Optional[Dict[str, Any]]:
        check_binding(query, params, types)
        rows = self._rows(self._execute("select_one", query, params))
        return rows[0] if rows else None

    def select_all(self, query: str, params: Sequence[Any], types: Optional[str] = None) -> List[Dict[str, Any]]:
        check_binding(query, params, types)
        return self._rows(self._execute("select_all", query, params))

    def update(self, table: str, field_map: Mapping[Enum, Any], where_clause: str,
               where_params: Sequence[Any], types: Optional[str] = None) -> int:
        """Update allow-listed columns; returns the affected row count.

        ``field_map`` keys must be members of the table's field enum.
        ``types`` describes ``where_params`` only.
        """
        spec = self._table(table)
        if spec.fields is None:
            raise _binding_error(f"table {table!r} accepts no updates")
        if not field_map:
            raise _binding_error("update requires at least one field")
        for key in field_map:
            if not isinstance(key, spec.fields):
                raise _binding_error(f"{key!r} is not an updatable field of {table!r}")
        if not where_clause or not where_clause.strip():
            raise _binding_error("update requires a WHERE clause")
        check_binding(where_clause, where_params, types)

        assignments = [(key.value, value) for key, value in field_map.items()]
        if spec.stamps_last_updated:
            assignments.append(('last_updated', self._now()))
        set_values = [value for _, value in assignments]
        check_binding(PLACEHOLDER * len(set_values), set_values)

        set_sql = ', '.join(f"{self._quote(column)} = %s" for column, _ in assignments)
        sql = f"UPDATE {self._quote(spec.name)} SET {set_sql} WHERE {where_clause}"
        cursor = self._execute("update", sql, [*set_values, *where_params])
        try:
            return cursor.rowcount
        finally:
            cursor.close()

    def delete(self, table: str, where_clause: str, where_params: Sequence[Any], types: Optional[str] = None) -> int:
        spec = self._table(table)
        if not where_clause or not where_clause.strip():
            raise _binding_error("delete requires a WHERE clause")
        check_binding(where_clause, where_params, types)

        sql = f"DELETE FROM {self._quote(spec.name)} WHERE {where_clause}"
        cursor = self._execute("delete", sql, where_params)
        try:
            return cursor.rowcount
        finally:
            cursor.close()

    def insert(self, table: str, field_map: Mapping[str, Any]) -> int:
        """Insert one row into a registered table; returns the affected row count."""
        spec = self._table(table)
        if not field_map:
            raise _binding_error("insert requires at least one column")
        unknown = [column for column in field_map if column not in spec.columns]
        if unknown:
            raise _binding_error(f"unknown columns for {table!r}: {', '.join(sorted(unknown))}")

        values = [
            self.connection.ops.adapt_datetimefield_value(value) if isinstance(value, datetime.datetime) else value
            for value in field_map.values()
        ]
        check_binding(', '.join([PLACEHOLDER] * len(values)), values)

        columns = ', '.join(self._quote(column) for column in field_map)
        placeholders = ', '.join([PLACEHOLDER] * len(values))
        sql = f"INSERT INTO {self._quote(spec.name)} ({columns}) VALUES ({placeholders})"
        cursor = self._execute("insert", sql, values)
        try:
            return cursor.rowcount
        finally:
            cursor.close()

    def ping(self) -> bool:
        """Round-trip ``SELECT 1``; raises ``StorageError`` when the database is unreachable."""
        row = self.select_one("SELECT 1 AS ok", [])
        return bool(row and row.get('ok') == 1)
