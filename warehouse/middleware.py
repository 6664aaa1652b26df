import functools
from typing import Callable

from django.contrib.auth.views import redirect_to_login
from django.http import JsonResponse
from django.shortcuts import render

from .exceptions import RateLimitExceeded, WarehouseError
from .logging_utils import get_warehouse_logger
from .sentry_monitoring import WarehouseSentryMonitor

logger = get_warehouse_logger("middleware")


def _is_api_request(request) -> bool:
    """Decide whether the caller expects JSON.

    Signals: `/api/` path prefix, an ``ajax`` form/query flag, the
    ``X-Requested-With: XMLHttpRequest`` header, or JSON in Accept or
    Content-Type.
    """
    path = getattr(request, 'path', '') or ''
    accept = request.META.get('HTTP_ACCEPT', '') or ''
    content_type = getattr(request, 'content_type', '') or ''

    if path.startswith('/api/'):
        return True
    if request.META.get('HTTP_X_REQUESTED_WITH') == 'XMLHttpRequest':
        return True
    if request.GET.get('ajax') == '1':
        return True
    if request.method == 'POST' and request.POST.get('ajax') == '1':
        return True
    if 'application/json' in accept.lower():
        return True
    if 'application/json' in content_type.lower():
        return True
    return False


# --- Decorators to mark views ---
def require_staff(view_func: Callable) -> Callable:
    """Decorator to mark a view as requiring an authenticated staff user."""

    @functools.wraps(view_func)
    def _wrapped(*args, **kwargs):
        return view_func(*args, **kwargs)

    setattr(_wrapped, 'require_staff', True)
    return _wrapped


# --- Middleware classes ---
class StaffAuthMiddleware:
    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        return self.get_response(request)

    def process_view(self, request, view_func, view_args, view_kwargs):
        if not getattr(view_func, 'require_staff', False):
            return None

        user = getattr(request, 'user', None)
        if user and getattr(user, 'is_authenticated', False):
            if getattr(user, 'is_staff', False) and getattr(user, 'is_active', False):
                return None
            if _is_api_request(request):
                return JsonResponse({'error': 'Staff access is required.'}, status=403)
            return render(request, 'warehouse/error.html', {'message': 'Staff access is required.'}, status=403)

        if _is_api_request(request):
            return JsonResponse({'error': 'Authentication required.'}, status=401)
        return redirect_to_login(request.get_full_path())


class SecurityErrorMiddleware:
    """Turns warehouse errors into responses without leaking internals.

    API callers get ``{"error", "code"}`` JSON; browsers get the error page.
    Unexpected exceptions become a generic JSON 500 for API callers and are
    left to Django's handler otherwise.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        return self.get_response(request)

    def process_exception(self, request, exception):
        if not isinstance(exception, WarehouseError):
            if not _is_api_request(request):
                return None
            logger.exception(
                "Unhandled %s on %s", type(exception).__name__, request.path,
                extra={"operation": "process_exception"}
            )
            WarehouseSentryMonitor.capture_exception(exception, "view", request.path)
            return JsonResponse({'error': str(WarehouseError.public_message), 'code': WarehouseError.code}, status=500)

        if exception.status_code >= 500:
            logger.error(
                "%s on %s: %s", type(exception).__name__, request.path, exception,
                extra={"operation": "process_exception"}
            )
        else:
            logger.info(
                "%s on %s: %s", type(exception).__name__, request.path, exception,
                extra={"operation": "process_exception"}
            )

        message = exception.user_message()
        if _is_api_request(request):
            response = JsonResponse({'error': message, 'code': exception.code}, status=exception.status_code)
        else:
            response = render(
                request, 'warehouse/error.html',
                {'message': message, 'code': exception.code},
                status=exception.status_code,
            )

        if isinstance(exception, RateLimitExceeded) and exception.retry_after:
            response['Retry-After'] = str(exception.retry_after)
        return response
