from django.db import DatabaseError
from django.http import JsonResponse
from django.shortcuts import render
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from .audit import AuditLogger
from .bulk import BulkInventoryMutator
from .config import config
from .csrf import FORM_FIELD, HEADER_NAME, csrf_guard, require_session_csrf
from .exceptions import StorageError
from .executor import TABLES, SecureQueryExecutor
from .middleware import _is_api_request, require_staff
from .models import SkuField
from .services import SKU_INFO_ACTION, SkuLookupService, SkuUpdateService, clean_sku_form, enforce_rate_limit
from .validators import validate_boolean

BULK_ID_FIELDS = ('tag_ids', 'tag_ids[]')
LEGACY_ID_FIELD = 'tag_id'


def _identity(request) -> str:
    """Rate limits and audit entries are keyed by the logged-in user."""
    user = getattr(request, 'user', None)
    if user is not None and user.is_authenticated:
        return user.get_username()
    return request.session.session_key or 'anonymous'


def _client_ip(request) -> str:
    return request.META.get('REMOTE_ADDR', '') or ''


@require_staff
@require_GET
def csrf_token_view(request):
    """
    Return the session CSRF token for API clients.

    Usage:
        1. GET /api/csrf-token/
        2. Send the token on POST requests via the X-CSRF-Token header
           or the csrf_token form field.
    """
    return JsonResponse({
        'csrfToken': csrf_guard.issue_token(request.session),
        'field': FORM_FIELD,
        'header': HEADER_NAME,
    })


@require_staff
@require_GET
def sku_info_api(request):
    """
    SKU lookup.

    Query params:
      - sku_id: SKU code (required)
      - include_inventory: 1/true to add the inventory summary
    """
    executor = SecureQueryExecutor()
    enforce_rate_limit(SKU_INFO_ACTION, _identity(request), config.api_read_limit,
                       AuditLogger(executor), _client_ip(request))

    include_inventory = validate_boolean(request.GET.get('include_inventory'), field='include_inventory')
    data = SkuLookupService(executor).lookup(request.GET.get('sku_id'), include_inventory=include_inventory)
    return JsonResponse(data)


@require_staff
@require_POST
@require_session_csrf
def inventory_bulk_delete(request):
    """
    Delete inventory rows by tag id.

    Accepts the legacy single ``tag_id`` field and/or ``tag_ids`` /
    ``tag_ids[]`` lists, plus an optional ``reason``.
    """
    raw_ids = []
    for name in BULK_ID_FIELDS:
        raw_ids.extend(request.POST.getlist(name))
    legacy = request.POST.get(LEGACY_ID_FIELD)
    if legacy:
        raw_ids.append(legacy)

    mutator = BulkInventoryMutator(SecureQueryExecutor())
    result = mutator.delete_items(
        raw_ids, _identity(request), reason=request.POST.get('reason', ''), ip_address=_client_ip(request)
    )

    if _is_api_request(request):
        return JsonResponse(result.to_dict())
    return render(request, 'warehouse/bulk_delete_result.html', {'result': result})


def _form_initial(row):
    initial = {sku_field.value: row.get(sku_field.value) for sku_field in SkuField}
    initial['item_code'] = row.get('item_code')
    return initial


@require_staff
@require_http_methods(["GET", "POST"])
@require_session_csrf
def sku_edit(request, item_code):
    service = SkuUpdateService(SecureQueryExecutor())
    identity, ip_address = _identity(request), _client_ip(request)
    if request.method == 'POST':
        # Every submitted edit counts, including ones that fail validation.
        service.throttle(identity, ip_address)

    row = service.get(item_code)
    if row is None:
        return render(request, 'warehouse/sku_edit.html', {
            'item_code': item_code,
            'not_found': True,
        }, status=404)

    context = {'item_code': row['item_code'], 'sku': _form_initial(row), 'errors': {}}
    if request.method == 'GET':
        return render(request, 'warehouse/sku_edit.html', context)

    payload, errors = clean_sku_form(request.POST)
    if errors:
        context.update({'sku': {**context['sku'], **request.POST.dict()}, 'errors': errors})
        return render(request, 'warehouse/sku_edit.html', context, status=400)

    affected = service.update(row['item_code'], payload, identity, ip_address, check_rate_limit=False)
    context['affected_rows'] = affected
    if affected:
        context['message'] = f"SKU {row['item_code']} updated ({affected} row affected)."
        context['sku'] = _form_initial(service.get(row['item_code']) or row)
    else:
        context['message'] = f"No SKU matched {row['item_code']}; nothing was updated."
    return render(request, 'warehouse/sku_edit.html', context)


@require_staff
@require_GET
def db_status(request):
    executor = SecureQueryExecutor()
    connection = executor.connection
    response_data = {
        'connection': {'connected': False, 'vendor': connection.vendor, 'error': None},
        'tables': {},
    }

    try:
        response_data['connection']['connected'] = executor.ping()
        existing = set(connection.introspection.table_names())
    except (StorageError, DatabaseError):
        response_data['connection']['error'] = 'Database unavailable'
        existing = set()

    for name in TABLES:
        response_data['tables'][name] = name in existing

    healthy = response_data['connection']['connected'] and all(response_data['tables'].values())
    response_data['overall_status'] = 'healthy' if healthy else 'unhealthy'
    return JsonResponse(response_data, status=200 if healthy else 503)
