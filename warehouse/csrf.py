"""
Session-bound CSRF tokens for the warehouse forms and endpoints.

The token lives in the Django session under ``csrf_token`` and travels back
either in the ``csrf_token`` form field or the ``X-CSRF-Token`` header.
"""
import functools
import re
import secrets
from typing import Callable, Optional

from django.utils.crypto import constant_time_compare
from django.views.decorators.csrf import csrf_exempt

from .exceptions import CsrfError
from .logging_utils import get_security_logger
from .sentry_monitoring import WarehouseSentryMonitor

logger = get_security_logger("csrf")

SESSION_KEY = 'csrf_token'
FORM_FIELD = 'csrf_token'
HEADER_NAME = 'X-CSRF-Token'
META_HEADER = 'HTTP_X_CSRF_TOKEN'

TOKEN_BYTES = 32
TOKEN_PATTERN = re.compile(r'^[0-9a-f]{64}$')


class CsrfGuard:

    def issue_token(self, session) -> str:
        """Return the session's token, creating one on first use."""
        token = session.get(SESSION_KEY)
        if not isinstance(token, str) or not TOKEN_PATTERN.match(token):
            token = self.rotate_token(session)
        return token

    def rotate_token(self, session) -> str:
        token = secrets.token_hex(TOKEN_BYTES)
        session[SESSION_KEY] = token
        return token

    def validate(self, session, supplied: Optional[str]) -> None:
        if not supplied:
            raise CsrfError("CSRF token missing")
        if not isinstance(supplied, str) or not TOKEN_PATTERN.match(supplied):
            raise CsrfError("CSRF token malformed")

        expected = session.get(SESSION_KEY)
        if not expected or not constant_time_compare(expected, supplied):
            raise CsrfError("CSRF token mismatch")

    @staticmethod
    def token_from_request(request) -> Optional[str]:
        header = request.META.get(META_HEADER)
        if header:
            return header.strip()
        value = request.POST.get(FORM_FIELD)
        return value.strip() if value else None


csrf_guard = CsrfGuard()


def require_session_csrf(view_func: Callable) -> Callable:
    """Reject state-changing requests whose session token does not match.

    Safe methods pass through untouched. The check runs before the view body,
    so a rejected request never reaches validation or the database. Django's
    cookie-based check is replaced by this one for the decorated view.
    """

    @functools.wraps(view_func)
    def _wrapped(request, *args, **kwargs):
        if request.method not in ('GET', 'HEAD', 'OPTIONS'):
            try:
                csrf_guard.validate(request.session, CsrfGuard.token_from_request(request))
            except CsrfError as exc:
                identity = getattr(request.user, 'username', '') or 'anonymous'
                logger.warning(
                    "CSRF rejection on %s for %s: %s", request.path, identity, exc,
                    extra={"operation": "validate"}
                )
                WarehouseSentryMonitor.track_security_rejection("csrf", identity, request.path)
                raise
        return view_func(request, *args, **kwargs)

    return csrf_exempt(_wrapped)
